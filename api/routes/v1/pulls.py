"""
api/routes/v1/pulls.py -- Backup pull endpoints.

POST /pull                       -- trigger backup, record it, start polling
POST /pull/record                -- record a pull timestamp only
GET  /pull/{customer_id}/status  -- state of the post-pull poll

Route registration order matters: /pull/record is a literal path and is
registered before the parameterised status route.
"""

from fastapi import APIRouter, HTTPException, Request

from api.limiter import limiter
from api.models import (
    ErrorDetail,
    PollStatusResponse,
    PullRecordRequest,
    PullRecordResponse,
    PullResponse,
    ValidateEnvironmentRequest,
)
from core.config import get_settings
from core.context import DashboardContext
from core.fetcher import VendorAPIError
from core.pipeline import IneligibleCustomerError, run_pull

router = APIRouter()


@limiter.limit("30/minute")
@router.post("/pull/record", response_model=PullRecordResponse)
def post_pull_record(request: Request, body: PullRecordRequest) -> PullRecordResponse:
    """Record a pull for a customer and return the stored ISO-8601 UTC timestamp.

    A failed write is logged by the store; the timestamp is returned regardless.
    """
    ctx: DashboardContext = request.app.state.ctx
    return PullRecordResponse(timestamp=ctx.timestamps.record(body.customer_id))


@limiter.limit(lambda: get_settings().pull_rate_limit)
@router.post("/pull", response_model=PullResponse)
async def post_pull(request: Request, body: ValidateEnvironmentRequest) -> PullResponse:
    """Trigger a backup pull for one customer.

    409 -- the customer can never be pulled (ITAR, no domain, unmapped resident)
    502 -- the backup service failed or timed out; nothing is recorded or polled
    A repeat request while a poll is running returns 200 with triggered=false.
    """
    ctx: DashboardContext = request.app.state.ctx
    try:
        outcome = await run_pull(ctx, body.customer_id, body.domain, body.resident_hosting, body.itar_hosting)
    except IneligibleCustomerError as e:
        raise HTTPException(
            status_code=409,
            detail=ErrorDetail(
                code="not_pullable",
                message="This customer's environment cannot be pulled.",
                detail=e.status.value,
            ).model_dump(),
        ) from e
    except VendorAPIError as e:
        raise HTTPException(
            status_code=502,
            detail=ErrorDetail(code="backup_failed", message=e.message, detail=e.detail).model_dump(),
        ) from e

    return PullResponse(
        customer_id=outcome.customer_id,
        database=outcome.database,
        timestamp=outcome.timestamp,
        polling=outcome.polling,
        triggered=outcome.triggered,
    )


@limiter.limit("120/minute")
@router.get("/pull/{customer_id}/status", response_model=PollStatusResponse)
def get_pull_status(request: Request, customer_id: str) -> PollStatusResponse:
    """Return the post-pull poll state for a customer, or 404 if never polled."""
    ctx: DashboardContext = request.app.state.ctx
    state = ctx.poller.get_state(customer_id)
    if state is None:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(code="not_found", message=f"No poll for customer {customer_id[:32]}.").model_dump(),
        )
    return PollStatusResponse(
        customer_id=state.customer_id,
        phase=state.phase.value,
        active=ctx.poller.is_active(customer_id),
        ticks=state.ticks,
        ready_streak=state.ready_streak,
        last_status=state.last_status,
    )
