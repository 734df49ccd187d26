"""
api/routes/v1/environments.py -- Environment validation endpoints.

POST /validate-environment  -- hosting short-circuits, then a live probe
POST /validate-link         -- raw prober result, for diagnostics
GET  /validation/{domain}   -- orchestrator's current view of a domain

None of these ever fail because the environment is unreachable; that is an
ordinary answer, not an error.
"""

import asyncio

from fastapi import APIRouter, HTTPException, Request

from api.limiter import limiter
from api.models import (
    EnvironmentStatusResponse,
    ErrorDetail,
    LinkValidationResponse,
    ValidateEnvironmentRequest,
    ValidateLinkRequest,
    ValidationStatusResponse,
)
from core.context import DashboardContext
from core.enricher import has_valid_domain
from core.environment import validate_environment

router = APIRouter()


def _invalid_domain(domain: str) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail=ErrorDetail(
            code="invalid_domain",
            message="A customer domain is required.",
            detail=f"{domain[:50]!r} is empty or a placeholder.",
        ).model_dump(),
    )


@limiter.limit("120/minute")
@router.post("/validate-environment", response_model=EnvironmentStatusResponse)
async def post_validate_environment(request: Request, body: ValidateEnvironmentRequest) -> EnvironmentStatusResponse:
    """Classify one customer's environment and publish the result for its row."""
    ctx: DashboardContext = request.app.state.ctx
    status = await validate_environment(
        ctx.orchestrator,
        body.domain,
        body.resident_hosting,
        body.itar_hosting,
        ctx.resident_map,
    )
    ctx.board.publish(body.customer_id, status)
    return EnvironmentStatusResponse(environment_status=status)


@limiter.limit("60/minute")
@router.post("/validate-link", response_model=LinkValidationResponse)
async def post_validate_link(request: Request, body: ValidateLinkRequest) -> LinkValidationResponse:
    """Probe a domain directly. Bypasses the cache and the hosting rules."""
    if not has_valid_domain(body.domain):
        raise _invalid_domain(body.domain)
    ctx: DashboardContext = request.app.state.ctx
    result = await asyncio.to_thread(ctx.probe, body.domain)
    return LinkValidationResponse(
        reachable=result.reachable,
        status=result.http_status,
        final_url=result.final_url,
        reason=result.reason,
        error=result.error,
    )


@limiter.limit("120/minute")
@router.get("/validation/{domain}", response_model=ValidationStatusResponse)
def get_validation_status(request: Request, domain: str) -> ValidationStatusResponse:
    """Return pending / valid / invalid / redirected / error for a domain. Never probes."""
    ctx: DashboardContext = request.app.state.ctx
    return ValidationStatusResponse(
        domain=domain.strip().lower(),
        status=ctx.orchestrator.get_status(domain),
        in_flight=ctx.orchestrator.is_inflight(domain),
    )
