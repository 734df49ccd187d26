"""
api/routes/v1/customers.py -- Enriched customer list for the dashboard.

GET /customers proxies the vendor customer API (the caller's preshared token
is passed straight through), runs the enrichment pipeline, applies search and
filters, and then acts as the consumer of the validation orchestrator: every
returned row that can be probed asks for validation. The orchestrator's
dedup and cool-down make that safe to do on every fetch.

Rate limits are applied via slowapi. The @limiter.limit() decorator must sit
ABOVE @router.get so slowapi can attach the limit string to the function
object before FastAPI wraps it.
"""

import asyncio
from typing import Annotated, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from api.limiter import limiter
from api.models import CustomerListResponse, CustomerRow, CustomerSummary, ErrorDetail
from core.context import DashboardContext
from core.enricher import PROBE_ELIGIBLE, search_customers
from core.fetcher import VendorAPIError
from core.models import EnrichmentResult, EnvironmentStatus
from core.pipeline import load_customers

router = APIRouter()


@limiter.limit("30/minute")
@router.get("/customers", response_model=CustomerListResponse)
async def list_customers(
    request: Request,
    preshared_token: Annotated[Optional[str], Query(max_length=256)] = None,
    id: Annotated[Optional[str], Query(max_length=64)] = None,
    name: Annotated[Optional[str], Query(max_length=255)] = None,
    external_key: Annotated[Optional[str], Query(max_length=255)] = None,
    columns: Annotated[Optional[str], Query(max_length=1000)] = None,
    search: Annotated[Optional[str], Query(max_length=255)] = None,
    priority_support: Optional[str] = None,
    resident_hosting: Optional[bool] = None,
    itar_hosting: Optional[bool] = None,
    test_environment: Optional[bool] = None,
    environment_status: Optional[EnvironmentStatus] = None,
) -> CustomerListResponse:
    """Return billable customers with their environment status and summary counts.

    Query params:
        preshared_token -- vendor API token (required, passed through)
        id, name, external_key, columns -- forwarded to the vendor API
        search          -- substring match on name or domain
        priority_support, resident_hosting, itar_hosting, test_environment,
        environment_status -- exact filters

    The summary counts cover the whole enriched list, not just the filtered rows.
    """
    if not preshared_token:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="missing_token", message="preshared_token is required").model_dump(),
        )

    ctx: DashboardContext = request.app.state.ctx

    def _load() -> EnrichmentResult:
        return load_customers(
            ctx.settings,
            preshared_token,
            ctx.resident_map,
            ctx.timestamps.load(),
            id=id,
            name=name,
            external_key=external_key,
            columns=columns,
        )

    try:
        result = await asyncio.to_thread(_load)
    except VendorAPIError as e:
        raise HTTPException(
            status_code=502,
            detail=ErrorDetail(code="vendor_unavailable", message=e.message, detail=e.detail).model_dump(),
        ) from e

    records = search_customers(
        result.customers,
        search=search,
        priority_support=priority_support,
        resident_hosting=resident_hosting,
        itar_hosting=itar_hosting,
        test_environment=test_environment,
        environment_status=environment_status,
    )

    rows: list[CustomerRow] = []
    for record in records:
        validation = None
        if record.environment_status in PROBE_ELIGIBLE:
            ctx.orchestrator.request_validation(record.domain, record.id, itar_hosting=record.itar_hosting)
            validation = ctx.orchestrator.get_status(record.domain)
        rows.append(CustomerRow.from_record(record, validation, ctx.board.get(record.id)))

    s = result.summary
    return CustomerListResponse(
        summary=CustomerSummary(
            total=s.total,
            pending=s.pending,
            resident=s.resident,
            itar=s.itar,
            invalid=s.invalid,
            unavailable=s.unavailable,
        ),
        returned=len(rows),
        customers=rows,
    )
