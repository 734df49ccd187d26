"""
enricher.py -- Turns the raw vendor customer list into dashboard rows.

Pure: no network, no file I/O. The resident-hosting map and the pull
timestamps are passed in as plain mappings, which keeps this cheap enough to
re-run on every fetch. Everything that needs a live probe is left in
pending_validation for the validation orchestrator.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from .models import (
    PLACEHOLDER_DOMAINS,
    CustomerRecord,
    EnrichmentResult,
    EnrichmentSummary,
    EnvironmentStatus,
)

logger = logging.getLogger(__name__)

# String spellings the vendor uses for "off" in its flag columns.
_FALSE_STRINGS = frozenset({"", "0", "false", "no", "off", "null", "none", "undefined"})

_PRIORITY_TIERS: dict[str, str] = {
    "lite": "Lite",
    "l": "Lite",
    "standard": "Standard",
    "std": "Standard",
    "s": "Standard",
    "enterprise": "Enterprise",
    "ent": "Enterprise",
    "e": "Enterprise",
}

# Row states that can be probed. Resident-hosting rows with a known database
# are probed too; only the database name differs when they are pulled.
PROBE_ELIGIBLE = frozenset({EnvironmentStatus.pending_validation, EnvironmentStatus.resident_hosting})


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def is_truthy_flag(value: Any) -> bool:
    """Interpret a vendor flag column. 0, "0", "", "false", None and False are off."""
    if value is None or isinstance(value, bool):
        return bool(value)
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() not in _FALSE_STRINGS


def has_valid_domain(domain: Any) -> bool:
    if domain is None:
        return False
    return str(domain).strip().lower() not in PLACEHOLDER_DOMAINS


def normalize_priority_support(value: Any) -> Optional[str]:
    """Map free-text support tiers onto Lite / Standard / Enterprise, else None."""
    if value is None:
        return None
    return _PRIORITY_TIERS.get(str(value).strip().lower())


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def lookup_resident_database(domain: str, resident_map: Mapping[str, str]) -> Optional[str]:
    """Case-insensitive lookup in the resident-hosting map."""
    if not domain:
        return None
    key = domain.strip().lower()
    if key in resident_map:
        return resident_map[key]
    for name, database in resident_map.items():
        if name.lower() == key:
            return database
    return None


def lookup_last_pulled(customer_id: Any, timestamps: Mapping[Any, Any]) -> Optional[str]:
    """Find the last pull for a customer, tolerating str or native-typed keys."""
    entry = timestamps.get(str(customer_id))
    if entry is None:
        entry = timestamps.get(customer_id)
    if isinstance(entry, dict):
        return entry.get("last_pulled_at")
    if isinstance(entry, str):
        return entry
    return None


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_customer(
    domain: Any,
    itar_hosting: bool,
    resident_hosting: bool,
    resident_map: Mapping[str, str],
) -> EnvironmentStatus:
    """Decide the initial environment status without touching the network.

    Priority: no domain, then ITAR, then resident hosting, then pending.

    ITAR customers are otherwise itar_hosting whatever their domain. A
    missing domain still wins over ITAR: such a row has no environment at
    all, and either way it is never probed or pulled.
    """
    if not has_valid_domain(domain):
        return EnvironmentStatus.invalid_domain
    if itar_hosting:
        return EnvironmentStatus.itar_hosting
    if resident_hosting:
        if lookup_resident_database(str(domain), resident_map) is not None:
            return EnvironmentStatus.resident_hosting
        return EnvironmentStatus.unavailable
    return EnvironmentStatus.pending_validation


def _itar_flag(raw: Mapping[str, Any]) -> bool:
    return is_truthy_flag(raw.get("itar_hosting_bc")) or is_truthy_flag(raw.get("itar_hosting"))


def _build_record(
    raw: Mapping[str, Any],
    resident_map: Mapping[str, str],
    timestamps: Mapping[Any, Any],
    dev_host_suffix: str,
    customer_view_url: str,
) -> CustomerRecord:
    domain_valid = has_valid_domain(raw.get("domain"))
    domain = str(raw.get("domain")).strip() if domain_valid else ""
    itar = _itar_flag(raw)
    resident = is_truthy_flag(raw.get("resident_hosting"))
    status = classify_customer(domain, itar, resident, resident_map)
    customer_id = _as_int(raw.get("id"))

    return CustomerRecord(
        id=customer_id,
        name=str(raw.get("name") or ""),
        domain=domain,
        ok_to_bill=True,
        itar_hosting=itar,
        resident_hosting=resident,
        environment_status=status,
        last_pulled_at=lookup_last_pulled(raw.get("id"), timestamps),
        priority_support=normalize_priority_support(raw.get("priority_support")),
        test_environment=is_truthy_flag(raw.get("test_environment")),
        total_users=_as_int(raw.get("num_prod_users")) + _as_int(raw.get("num_full_users")),
        devel_url=f"http://{domain}.{dev_host_suffix}" if domain and not itar else None,
        customer_url=customer_view_url.format(id=customer_id) if customer_view_url else None,
        resident_database=lookup_resident_database(domain, resident_map) if resident else None,
    )


def summarize(customers: Iterable[CustomerRecord]) -> EnrichmentSummary:
    summary = EnrichmentSummary()
    for customer in customers:
        summary.total += 1
        status = customer.environment_status
        if status == EnvironmentStatus.pending_validation:
            summary.pending += 1
        elif status == EnvironmentStatus.resident_hosting:
            summary.resident += 1
        elif status == EnvironmentStatus.itar_hosting:
            summary.itar += 1
        elif status == EnvironmentStatus.invalid_domain:
            summary.invalid += 1
        elif status == EnvironmentStatus.unavailable:
            summary.unavailable += 1
    return summary


def enrich_customers(
    raw_customers: Iterable[Mapping[str, Any]],
    resident_map: Mapping[str, str],
    timestamps: Mapping[Any, Any],
    excluded_ids: Iterable[Any] = (),
    dev_host_suffix: str = "cetecerpdevel.com",
    customer_view_url: str = "",
) -> EnrichmentResult:
    """Filter, classify and annotate the raw vendor list, preserving order.

    Steps:
      1. drop customers whose ok_to_bill flag is off
      2. drop denylisted customer ids
      3. classify environment_status
      4. attach last_pulled_at from the timestamp map
    """
    excluded = {str(cid) for cid in excluded_ids}
    customers: list[CustomerRecord] = []
    dropped = 0
    for raw in raw_customers:
        if not is_truthy_flag(raw.get("ok_to_bill")):
            dropped += 1
            continue
        if str(raw.get("id")) in excluded:
            dropped += 1
            continue
        customers.append(_build_record(raw, resident_map, timestamps, dev_host_suffix, customer_view_url))

    logger.debug("Enriched %d customers (%d filtered out)", len(customers), dropped)
    return EnrichmentResult(customers=customers, summary=summarize(customers))


# ---------------------------------------------------------------------------
# Search and filter
# ---------------------------------------------------------------------------


def search_customers(
    customers: Iterable[CustomerRecord],
    search: Optional[str] = None,
    priority_support: Optional[str] = None,
    resident_hosting: Optional[bool] = None,
    itar_hosting: Optional[bool] = None,
    test_environment: Optional[bool] = None,
    environment_status: Optional[EnvironmentStatus] = None,
) -> list[CustomerRecord]:
    """Case-insensitive substring search over name/domain plus exact filters.

    Filters left as None are not applied. Input order is preserved.
    """
    term = search.strip().lower() if search else ""
    tier = normalize_priority_support(priority_support) if priority_support else None

    results: list[CustomerRecord] = []
    for customer in customers:
        if term and term not in customer.name.lower() and term not in customer.domain.lower():
            continue
        if priority_support and customer.priority_support != tier:
            continue
        if resident_hosting is not None and customer.resident_hosting != resident_hosting:
            continue
        if itar_hosting is not None and customer.itar_hosting != itar_hosting:
            continue
        if test_environment is not None and customer.test_environment != test_environment:
            continue
        if environment_status is not None and customer.environment_status != environment_status:
            continue
        results.append(customer)
    return results
