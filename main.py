"""
Chat Relay - FastAPI application streaming model output to browsers over SSE.
Gates each client with a fixed-window rate limiter and reports its state in headers.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from config import Config
from models.api_models import ErrorResponse, RateLimitExceededResponse
from routes import chat_stream, rate_limit_route, health_route
from services.llm_provider import OllamaProvider
from services.rate_limiter import (
    RateLimiter,
    create_chat_limiter,
    create_status_limiter,
    format_reset_time,
    rate_limit_headers,
    retry_after_ms,
    utc_now
)
from utils.errors import RateLimitedError, RateLimitStoreError, ValidationError
from utils.logger import app_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    app_logger.info(
        f"{Config.APP_TITLE} ready: model {app.state.provider.model}, "
        f"{app.state.chat_limiter.max_requests} chat request(s) per {Config.RATE_LIMIT_WINDOW_SECONDS:g}s"
    )
    yield
    app_logger.info(f"{Config.APP_TITLE} shutting down")


def register_exception_handlers(app: FastAPI) -> None:
    """Map chat relay errors to JSON responses."""

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        """Reject malformed conversations before any stream is opened."""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(error=exc.message).model_dump(),
        )

    @app.exception_handler(RateLimitedError)
    async def rate_limited_exception_handler(request: Request, exc: RateLimitedError):
        """Tell throttled clients when they may try again."""
        reset_at = exc.reset_at or utc_now()
        retry_ms = exc.retry_after_ms or retry_after_ms(reset_at)
        body = RateLimitExceededResponse(
            error=exc.message,
            limit=exc.limit,
            remaining=exc.remaining,
            reset_time=format_reset_time(reset_at),
            retry_after_ms=retry_ms
        )

        headers = rate_limit_headers(exc.limit, exc.remaining, reset_at)
        headers["Retry-After"] = str(max(1, -(-retry_ms // 1000)))

        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=body.model_dump(by_alias=True),
            headers=headers,
        )

    @app.exception_handler(RateLimitStoreError)
    async def rate_limit_store_exception_handler(request: Request, exc: RateLimitStoreError):
        """Report store failures instead of pretending the client is not limited."""
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error=exc.message).model_dump(),
        )


def create_app(
    provider=None,
    chat_limiter: RateLimiter | None = None,
    status_limiter: RateLimiter | None = None
) -> FastAPI:
    """
    Build the relay application.

    Args:
        provider: Inference provider (defaults to OllamaProvider)
        chat_limiter: Limiter for /chat-stream
        status_limiter: Limiter for /rate-limit-status

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(title=Config.APP_TITLE, lifespan=lifespan)

    app.state.provider = provider if provider is not None else OllamaProvider()
    app.state.chat_limiter = chat_limiter or create_chat_limiter()
    app.state.status_limiter = status_limiter or create_status_limiter()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
    )

    register_exception_handlers(app)

    app.include_router(chat_stream.router, tags=["chat"])
    app.include_router(rate_limit_route.router, tags=["rate-limit"])
    app.include_router(health_route.router, tags=["health"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=Config.HOST, port=Config.PORT)
