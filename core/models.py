from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Values the vendor API uses in place of a real domain. Compared after
# stripping and lowercasing.
PLACEHOLDER_DOMAINS = frozenset({"", "undefined", "null", "none"})

# Probe path on every development environment.
LOGIN_PROBE_PATH = "/auth/login_new"


class EnvironmentStatus(str, Enum):
    """Per-customer environment status. Exactly one value at any time."""

    pending_validation = "pending_validation"
    ready = "ready"
    not_ready = "not_ready"
    resident_hosting = "resident_hosting"
    itar_hosting = "itar_hosting"
    unavailable = "unavailable"
    invalid_domain = "invalid_domain"


class ProbeReason(str, Enum):
    redirected_to_main_site = "redirected_to_main_site"
    network_error = "network_error"
    api_error = "api_error"


class ValidationStatus(str, Enum):
    """Read view of one validation cache entry."""

    pending = "pending"
    valid = "valid"
    invalid = "invalid"
    redirected = "redirected"
    error = "error"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single environment probe. Doubles as the cache entry."""

    reachable: bool
    http_status: Optional[int] = None
    final_url: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[ProbeReason] = None


@dataclass
class CustomerRecord:
    """One billable vendor customer after enrichment."""

    id: int
    name: str
    domain: str
    ok_to_bill: bool
    itar_hosting: bool
    resident_hosting: bool
    environment_status: EnvironmentStatus
    last_pulled_at: Optional[str] = None
    priority_support: Optional[str] = None  # Lite / Standard / Enterprise
    test_environment: bool = False
    total_users: int = 0
    devel_url: Optional[str] = None
    customer_url: Optional[str] = None
    resident_database: Optional[str] = None


@dataclass
class EnrichmentSummary:
    total: int = 0
    pending: int = 0
    resident: int = 0
    itar: int = 0
    invalid: int = 0
    unavailable: int = 0


@dataclass
class EnrichmentResult:
    customers: list[CustomerRecord] = field(default_factory=list)
    summary: EnrichmentSummary = field(default_factory=EnrichmentSummary)
