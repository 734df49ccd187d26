"""
API request and response models for the backup dashboard REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in core/models.py, which
own the internal domain representation. Route handlers map between the two.

The frontend speaks camelCase on the environment and pull endpoints, so those
models declare aliases and accept either spelling on input (populate_by_name).
FastAPI serialises responses by alias.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.models import CustomerRecord, EnvironmentStatus, ProbeReason, ValidationStatus

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ValidateEnvironmentRequest(BaseModel):
    """Request body for POST /api/v1/validate-environment and POST /api/v1/pull."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    customer_id: str = Field(alias="customerId", min_length=1, max_length=32)
    domain: Optional[str] = Field(default=None, max_length=255)
    resident_hosting: bool = Field(default=False, alias="residentHosting")
    itar_hosting: bool = Field(default=False, alias="itarHosting")

    @field_validator("customer_id", mode="before")
    @classmethod
    def coerce_customer_id(cls, value: object) -> str:
        """Accept numeric ids from the vendor payload as well as strings."""
        if value is None:
            return value  # let the required-field check report it
        return str(value)


class ValidateLinkRequest(BaseModel):
    """Request body for POST /api/v1/validate-link."""

    model_config = ConfigDict(str_strip_whitespace=True)

    domain: str = Field(min_length=1, max_length=255)


class PullRecordRequest(BaseModel):
    """Request body for POST /api/v1/pull/record."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    customer_id: str = Field(alias="customerId", min_length=1, max_length=32)

    @field_validator("customer_id", mode="before")
    @classmethod
    def coerce_customer_id(cls, value: object) -> str:
        if value is None:
            return value
        return str(value)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class EnvironmentStatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    environment_status: EnvironmentStatus = Field(alias="environmentStatus")


class LinkValidationResponse(BaseModel):
    """Raw prober result, without any hosting-type short-circuits."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    reachable: bool
    status: Optional[int] = None
    final_url: Optional[str] = Field(default=None, alias="finalUrl")
    reason: Optional[ProbeReason] = None
    error: Optional[str] = None


class ValidationStatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    domain: str
    status: ValidationStatus
    in_flight: bool = Field(alias="inFlight")


class PullRecordResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: str


class PullResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    customer_id: str = Field(alias="customerId")
    database: str
    timestamp: Optional[str] = None
    polling: bool
    triggered: bool


class PollStatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    customer_id: str = Field(alias="customerId")
    phase: str
    active: bool
    ticks: int
    ready_streak: int = Field(alias="readyStreak")
    last_status: Optional[EnvironmentStatus] = Field(default=None, alias="lastStatus")


class CustomerRow(BaseModel):
    """One dashboard row. Sensitive vendor columns are never copied here."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    domain: str
    itar_hosting: bool
    resident_hosting: bool
    test_environment: bool
    priority_support: Optional[str]
    total_users: int
    environment_status: EnvironmentStatus
    last_pulled_at: Optional[str]
    devel_url: Optional[str]
    customer_url: Optional[str]
    validation: Optional[ValidationStatus] = None
    live_status: Optional[EnvironmentStatus] = None
    live_status_at: Optional[str] = None

    @classmethod
    def from_record(
        cls,
        record: CustomerRecord,
        validation: Optional[ValidationStatus] = None,
        live: Optional[tuple[EnvironmentStatus, str]] = None,
    ) -> "CustomerRow":
        return cls(
            id=record.id,
            name=record.name,
            domain=record.domain,
            itar_hosting=record.itar_hosting,
            resident_hosting=record.resident_hosting,
            test_environment=record.test_environment,
            priority_support=record.priority_support,
            total_users=record.total_users,
            environment_status=record.environment_status,
            last_pulled_at=record.last_pulled_at,
            devel_url=record.devel_url,
            customer_url=record.customer_url,
            validation=validation,
            live_status=live[0] if live else None,
            live_status_at=live[1] if live else None,
        )


class CustomerSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    pending: int
    resident: int
    itar: int
    invalid: int
    unavailable: int


class CustomerListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    summary: CustomerSummary
    returned: int
    customers: list[CustomerRow]


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
