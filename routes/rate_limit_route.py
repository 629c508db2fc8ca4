"""
Route handlers for rate limit status checks.
"""
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from models.api_models import RateLimitStatusResponse
from services.rate_limiter import (
    format_reset_time,
    get_client_identifier,
    rate_limit_headers,
    retry_after_ms
)
from utils.errors import RateLimitedError

router = APIRouter()


@router.get("/rate-limit-status")
async def rate_limit_status(request: Request):
    """Report the caller's chat quota without using it up."""
    client_id = get_client_identifier(request)

    # Status checks have their own, more generous limiter
    gate = request.app.state.status_limiter.admit(client_id)
    if not gate.allowed:
        raise RateLimitedError(
            limit=gate.limit,
            remaining=gate.remaining,
            reset_at=gate.reset_at,
            retry_after_ms=retry_after_ms(gate.reset_at)
        )

    status = request.app.state.chat_limiter.status(client_id)
    body = RateLimitStatusResponse(
        is_rate_limited=status.is_rate_limited,
        limit=status.limit,
        remaining=status.remaining,
        reset_time=format_reset_time(status.reset_at)
    )

    return JSONResponse(
        content=body.model_dump(by_alias=True),
        headers=rate_limit_headers(gate.limit, gate.remaining, gate.reset_at)
    )
