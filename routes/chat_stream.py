"""
Route handlers for streaming chat operations.
Handles the /chat-stream endpoint with per-client rate limiting.
"""
from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError as PydanticValidationError
from models.api_models import ChatStreamRequest
from services.rate_limiter import get_client_identifier, rate_limit_headers, retry_after_ms
from services.stream_service import StreamService
from utils.errors import RateLimitedError, ValidationError
from utils.logger import app_logger

router = APIRouter()


async def parse_chat_request(request: Request) -> ChatStreamRequest:
    """Read and validate the conversation from the request body."""
    try:
        payload = await request.json()
        return ChatStreamRequest.model_validate(payload)
    except (PydanticValidationError, ValueError) as e:
        app_logger.warning(f"Invalid chat request from {get_client_identifier(request)}: {e}")
        raise ValidationError("Invalid messages format") from e


@router.post("/chat-stream")
async def chat_stream(request: Request):
    """
    Streaming chat endpoint relaying model output as SSE events.
    """
    chat_request = await parse_chat_request(request)

    client_id = get_client_identifier(request)
    decision = request.app.state.chat_limiter.admit(client_id)

    if not decision.allowed:
        raise RateLimitedError(
            limit=decision.limit,
            remaining=decision.remaining,
            reset_at=decision.reset_at,
            retry_after_ms=retry_after_ms(decision.reset_at)
        )

    messages = [message.model_dump() for message in chat_request.messages]
    app_logger.info(
        f"Chat stream for {client_id}: {len(messages)} messages "
        f"({decision.remaining}/{decision.limit} requests left)"
    )

    return StreamingResponse(
        StreamService.relay_chat_stream(
            provider=request.app.state.provider,
            messages=messages,
            is_disconnected=request.is_disconnected
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            **rate_limit_headers(decision.limit, decision.remaining, decision.reset_at)
        }
    )
