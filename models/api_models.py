"""
Pydantic data models for API requests and responses.
"""
from typing import List, Literal
from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    """Chat message model."""
    role: Literal["user", "assistant", "system"]
    content: str


class ChatStreamRequest(BaseModel):
    """Chat stream request carrying the whole conversation so far."""
    messages: List[Message] = Field(..., min_length=1)


class RateLimitExceededResponse(BaseModel):
    """Body of a 429 response."""
    model_config = ConfigDict(populate_by_name=True)

    error: str = "Too many requests"
    limit: int = Field(..., ge=0)
    remaining: int = Field(..., ge=0)
    reset_time: str = Field(..., alias="resetTime")
    retry_after_ms: int = Field(..., gt=0, alias="retryAfterMs")


class RateLimitStatusResponse(BaseModel):
    """Body of the rate limit status endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    is_rate_limited: bool = Field(..., alias="isRateLimited")
    limit: int = Field(..., ge=0)
    remaining: int = Field(..., ge=0)
    reset_time: str = Field(..., alias="resetTime")


class ErrorResponse(BaseModel):
    """Plain error body."""
    error: str
