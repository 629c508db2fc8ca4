"""
Data models for chat processing.
Contains rate limit records, stream events, and client-side session state.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Mapping, Optional


@dataclass
class RateLimitRecord:
    """Request count of one client identifier within its current window."""
    count: int
    window_start: datetime

    def window_end(self, window: timedelta) -> datetime:
        """Get the moment this window resets."""
        return self.window_start + window

    def is_expired(self, now: datetime, window: timedelta) -> bool:
        """Check whether the window has elapsed."""
        return now >= self.window_end(window)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of an admission check."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime


@dataclass(frozen=True)
class RateLimitStatus:
    """Current usage of a client identifier, read without consuming a slot."""
    is_rate_limited: bool
    limit: int
    remaining: int
    reset_at: datetime


@dataclass(frozen=True)
class ProviderDelta:
    """One incremental piece of a provider response."""
    content: Optional[str] = None
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class StreamEvent:
    """
    Wire-level stream event.
    Exactly one of the fields is set per event; unset fields mean "not present".
    """
    content: Optional[str] = None
    finish_reason: Optional[str] = None
    error: Optional[str] = None
    done: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping) -> "StreamEvent":
        """Build an event from a decoded JSON object, ignoring unknown keys."""
        content = payload.get("content")
        finish_reason = payload.get("finish_reason")
        error = payload.get("error")
        return cls(
            content=content if isinstance(content, str) else None,
            finish_reason=finish_reason if isinstance(finish_reason, str) else None,
            error=str(error) if error is not None else None,
            done=payload.get("done") is True
        )

    def to_payload(self) -> dict:
        """Get the JSON object for this event."""
        if self.error is not None:
            return {"error": self.error}
        if self.done:
            return {"done": True}
        if self.finish_reason is not None:
            return {"finish_reason": self.finish_reason}
        return {"content": self.content or ""}

    @property
    def is_terminal(self) -> bool:
        """Whether the stream ends after this event."""
        return self.done or self.finish_reason is not None or self.error is not None


class ChatState(Enum):
    """States of the chat session controller."""
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"
    RATE_LIMITED = "rate_limited"


@dataclass
class RateLimitState:
    """Client view of the relay's rate limit, refreshed on every response."""
    limit: int = 1
    remaining: int = 1
    reset_at: Optional[datetime] = None
    is_limited: bool = False

    @classmethod
    def from_headers(cls, headers: Mapping[str, str], status_code: int) -> "RateLimitState":
        """Read X-RateLimit-* headers; missing or malformed values count as 0 / absent."""
        return cls(
            limit=parse_count(headers.get("x-ratelimit-limit")),
            remaining=parse_count(headers.get("x-ratelimit-remaining")),
            reset_at=parse_timestamp(headers.get("x-ratelimit-reset")),
            is_limited=status_code == 429
        )

    def seconds_until_reset(self, now: datetime) -> Optional[int]:
        """Whole seconds until reset, rounded up and never negative."""
        if self.reset_at is None:
            return None
        diff = (self.reset_at - now).total_seconds()
        return math.ceil(diff) if diff > 0 else 0

    def blocks_sending(self, now: datetime) -> bool:
        """Whether new sends must wait for the window to reset."""
        exhausted = self.is_limited or self.remaining <= 0
        if not exhausted:
            return False
        if self.reset_at is None:
            return self.is_limited
        return now < self.reset_at


def parse_count(value: Optional[str]) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)
