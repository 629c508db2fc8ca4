"""
Models package exports.
"""
from models.api_models import (
    Message,
    ChatStreamRequest,
    RateLimitExceededResponse,
    RateLimitStatusResponse,
    ErrorResponse
)
from models.chat_models import (
    RateLimitRecord,
    RateLimitDecision,
    RateLimitStatus,
    ProviderDelta,
    StreamEvent,
    ChatState,
    RateLimitState
)

__all__ = [
    'Message',
    'ChatStreamRequest',
    'RateLimitExceededResponse',
    'RateLimitStatusResponse',
    'ErrorResponse',
    'RateLimitRecord',
    'RateLimitDecision',
    'RateLimitStatus',
    'ProviderDelta',
    'StreamEvent',
    'ChatState',
    'RateLimitState'
]
