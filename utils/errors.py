"""
Error types shared by the relay server and the chat client.
"""
from datetime import datetime


class ChatRelayError(Exception):
    """Base class for chat relay errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ChatRelayError):
    """Request body does not contain a usable conversation."""

    def __init__(self, message: str = "Invalid messages format"):
        super().__init__(message)


class RateLimitedError(ChatRelayError):
    """Request rejected because the client used up its window."""

    def __init__(
        self,
        message: str = "Too many requests",
        limit: int = 0,
        remaining: int = 0,
        reset_at: datetime | None = None,
        retry_after_ms: int | None = None
    ):
        super().__init__(message)
        self.limit = limit
        self.remaining = remaining
        self.reset_at = reset_at
        self.retry_after_ms = retry_after_ms


class RateLimitStoreError(ChatRelayError):
    """Rate limit record could not be read from the store."""


class UpstreamError(ChatRelayError):
    """The inference provider failed while producing the response."""


class TransportError(ChatRelayError):
    """Network failure between the chat client and the relay."""


class ParseError(ChatRelayError):
    """A single SSE event could not be decoded."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class UnknownStatusError(ChatRelayError):
    """The relay answered with an HTTP status the client does not handle."""

    def __init__(self, status_code: int):
        super().__init__(f"Server error: {status_code}")
        self.status_code = status_code
