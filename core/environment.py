"""
core/environment.py -- One-shot environment classification for a single customer.

Combines the hosting-type short-circuits used by the enrichment pipeline with
a live probe through the orchestrator. Shared by POST /validate-environment
and by every poller tick so both interpret a probe the same way.
"""

from collections.abc import Mapping
from typing import Optional

from core.enricher import classify_customer
from core.models import EnvironmentStatus, ProbeReason, ProbeResult
from core.orchestrator import ValidationOrchestrator

# Statuses decided without probing. Resident hosting with a known database is
# not among them: those environments are probed like any other.
_SHORT_CIRCUIT = frozenset(
    {
        EnvironmentStatus.invalid_domain,
        EnvironmentStatus.itar_hosting,
        EnvironmentStatus.unavailable,
    }
)


def status_from_probe(result: Optional[ProbeResult]) -> EnvironmentStatus:
    """Interpret a probe as ready / not_ready / unavailable.

    Transport failures and redirects to the main site both mean the
    environment is not there yet. A 5xx from the environment itself is
    reported as unavailable so it stays distinguishable after polling ends.
    """
    if result is None:
        return EnvironmentStatus.pending_validation
    if result.reachable:
        return EnvironmentStatus.ready
    if result.reason == ProbeReason.api_error:
        return EnvironmentStatus.unavailable
    return EnvironmentStatus.not_ready


def short_circuit_status(
    domain: Optional[str],
    resident_hosting: bool,
    itar_hosting: bool,
    resident_map: Mapping[str, str],
) -> Optional[EnvironmentStatus]:
    """Return a terminal status if the customer must not be probed, else None."""
    status = classify_customer(domain, itar_hosting, resident_hosting, resident_map)
    if status in _SHORT_CIRCUIT:
        return status
    return None


async def validate_environment(
    orchestrator: ValidationOrchestrator,
    domain: Optional[str],
    resident_hosting: bool,
    itar_hosting: bool,
    resident_map: Mapping[str, str],
) -> EnvironmentStatus:
    status = short_circuit_status(domain, resident_hosting, itar_hosting, resident_map)
    if status is not None:
        return status
    result = await orchestrator.refresh(domain or "")
    return status_from_probe(result)
