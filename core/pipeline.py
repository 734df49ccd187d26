"""
core/pipeline.py -- Fetch-and-enrich for the customer list, and the backup pull flow.

No print statements. Called by both the CLI (main.py) and the REST API
(api/routes/v1/*.py).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from core.config import Settings
from core.context import DashboardContext
from core.enricher import enrich_customers, lookup_resident_database
from core.environment import short_circuit_status, validate_environment
from core.fetcher import fetch_customers, trigger_backup
from core.models import EnrichmentResult, EnvironmentStatus

logger = logging.getLogger("pullboard.pipeline")


class IneligibleCustomerError(Exception):
    """The customer's environment can never be pulled (ITAR, no domain, unmapped resident)."""

    def __init__(self, status: EnvironmentStatus) -> None:
        super().__init__(f"Customer is not eligible for a backup pull: {status.value}")
        self.status = status


@dataclass
class PullOutcome:
    customer_id: str
    database: str
    timestamp: Optional[str]
    polling: bool
    triggered: bool = True


def load_customers(
    settings: Settings,
    preshared_token: str,
    resident_map: Mapping[str, str],
    timestamps: Mapping[Any, Any],
    **query: Optional[str],
) -> EnrichmentResult:
    """Fetch the vendor list and enrich it. VendorAPIError propagates."""
    raw = fetch_customers(settings, preshared_token, **query)
    return enrich_customers(
        raw,
        resident_map,
        timestamps,
        excluded_ids=settings.excluded_customer_ids,
        dev_host_suffix=settings.dev_host_suffix,
        customer_view_url=settings.customer_view_url,
    )


def backup_database_name(domain: str, resident_hosting: bool, resident_map: Mapping[str, str]) -> str:
    """Resident customers pull their mapped database; everyone else pulls by domain."""
    if resident_hosting:
        database = lookup_resident_database(domain, resident_map)
        if database:
            return database
    return domain.strip().lower()


async def run_pull(
    ctx: DashboardContext,
    customer_id: Any,
    domain: Optional[str],
    resident_hosting: bool,
    itar_hosting: bool,
) -> PullOutcome:
    """Trigger a backup, record it, and start polling the environment.

    Order matters: the poll is registered only after the backup request has
    gone through. If trigger_backup raises (timeout or error) nothing is
    recorded and no poll exists for the customer.

    A customer is claimed in ctx.pulls_in_progress before the trigger is
    sent and released once the poll is registered, so a second request that
    arrives while the first is still waiting on the backup service is
    answered like one that arrives during polling: triggered=False.

    Raises IneligibleCustomerError or VendorAPIError.
    """
    blocked = short_circuit_status(domain, resident_hosting, itar_hosting, ctx.resident_map)
    if blocked is not None:
        raise IneligibleCustomerError(blocked)

    key = str(customer_id)
    domain = (domain or "").strip()
    database = backup_database_name(domain, resident_hosting, ctx.resident_map)
    if key in ctx.pulls_in_progress or ctx.poller.is_active(key):
        logger.info("Pull for customer %s ignored: a pull is already in progress", key)
        return PullOutcome(
            customer_id=key,
            database=database,
            timestamp=ctx.timestamps.get(key),
            polling=True,
            triggered=False,
        )

    ctx.pulls_in_progress.add(key)
    try:
        response = await asyncio.to_thread(trigger_backup, ctx.settings, database)
        logger.info("Backup triggered for customer %s (%s): %s", key, database, response)

        timestamp = ctx.timestamps.record(key)

        # The environment is about to be rebuilt; the memoized answer is stale.
        ctx.orchestrator.invalidate(domain)
        ctx.board.publish(key, EnvironmentStatus.not_ready)

        async def check() -> EnvironmentStatus:
            return await validate_environment(ctx.orchestrator, domain, resident_hosting, itar_hosting, ctx.resident_map)

        polling = ctx.poller.start(key, check)
    finally:
        ctx.pulls_in_progress.discard(key)
    return PullOutcome(customer_id=key, database=database, timestamp=timestamp, polling=polling)
