"""
Fixed-window rate limiting keyed by client identifier.
Keeps per-client request counts in a lock-guarded in-memory store.
"""
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
from fastapi import Request
from config import Config
from models.chat_models import RateLimitRecord, RateLimitDecision, RateLimitStatus
from utils.errors import RateLimitStoreError
from utils.logger import app_logger


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class MemoryRateLimitStore:
    """
    In-memory store of rate limit records.

    All reads and writes go through a single lock, so the
    check-and-increment in `increment` is atomic per key.
    """

    def __init__(self, sweep_interval: int = Config.RATE_LIMIT_SWEEP_INTERVAL):
        self._records: Dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()
        self._sweep_interval = max(1, sweep_interval)
        self._writes_since_sweep = 0

    def increment(self, key: str, now: datetime, window: timedelta) -> RateLimitRecord:
        """
        Count one request for key, starting a new window if the current one elapsed.

        Returns:
            Snapshot of the updated record
        """
        with self._lock:
            record = self._records.get(key)
            if record is None or record.is_expired(now, window):
                record = RateLimitRecord(count=0, window_start=now)
                self._records[key] = record

            record.count += 1

            self._writes_since_sweep += 1
            if self._writes_since_sweep >= self._sweep_interval:
                self._evict_expired_locked(now, window, keep=key)

            return replace(record)

    def get(self, key: str) -> Optional[RateLimitRecord]:
        """Get a snapshot of the record for key without modifying it."""
        with self._lock:
            record = self._records.get(key)
            return replace(record) if record is not None else None

    def evict_expired(self, now: datetime, window: timedelta) -> int:
        """Remove records whose window has elapsed."""
        with self._lock:
            return self._evict_expired_locked(now, window)

    def clear(self) -> None:
        """Drop every record."""
        with self._lock:
            self._records.clear()
            self._writes_since_sweep = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _evict_expired_locked(self, now: datetime, window: timedelta, keep: Optional[str] = None) -> int:
        expired = [
            key for key, record in self._records.items()
            if key != keep and record.is_expired(now, window)
        ]
        for key in expired:
            del self._records[key]

        self._writes_since_sweep = 0
        if expired:
            app_logger.debug(f"Rate limit store: evicted {len(expired)} expired records")
        return len(expired)


class RateLimiter:
    """Fixed-window limiter allowing max_requests per window per client."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = Config.RATE_LIMIT_WINDOW_SECONDS,
        store: Optional[MemoryRateLimitStore] = None,
        name: str = "default"
    ):
        self.max_requests = max(0, max_requests)
        self.window = timedelta(seconds=window_seconds)
        self.store = store if store is not None else MemoryRateLimitStore()
        self.name = name

    def admit(self, client_id: str, now: Optional[datetime] = None) -> RateLimitDecision:
        """
        Count a request for client_id and decide whether it may proceed.

        Args:
            client_id: Caller identifier, usually derived from the network address
            now: Current time (defaults to the wall clock)

        Returns:
            RateLimitDecision with the counters after this request
        """
        now = now or utc_now()
        record = self.store.increment(client_id, now, self.window)
        allowed = record.count <= self.max_requests

        if not allowed:
            app_logger.warning(
                f"Rate limit '{self.name}' exceeded for {client_id} "
                f"({record.count}/{self.max_requests})"
            )

        return RateLimitDecision(
            allowed=allowed,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - record.count),
            reset_at=record.window_end(self.window)
        )

    def status(self, client_id: str, now: Optional[datetime] = None) -> RateLimitStatus:
        """
        Read current usage for client_id without counting a request.

        Raises:
            RateLimitStoreError: If the store lookup fails
        """
        now = now or utc_now()
        try:
            record = self.store.get(client_id)
        except Exception as e:
            app_logger.error(f"Error getting rate limit data: {e}")
            raise RateLimitStoreError("Failed to retrieve rate limit status") from e

        if record is None or record.is_expired(now, self.window) or record.count == 0:
            return RateLimitStatus(
                is_rate_limited=False,
                limit=self.max_requests,
                remaining=self.max_requests,
                reset_at=now + self.window
            )

        remaining = max(0, self.max_requests - record.count)
        return RateLimitStatus(
            is_rate_limited=remaining <= 0,
            limit=self.max_requests,
            remaining=remaining,
            reset_at=record.window_end(self.window)
        )

    def reset(self) -> None:
        """Forget all recorded requests."""
        self.store.clear()


def retry_after_ms(reset_at: datetime, now: Optional[datetime] = None) -> int:
    """Milliseconds until reset_at, or the default delay if that is not positive."""
    now = now or utc_now()
    remaining_ms = int((reset_at - now).total_seconds() * 1000)
    return remaining_ms if remaining_ms > 0 else Config.DEFAULT_RETRY_AFTER_MS


def format_reset_time(reset_at: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return reset_at.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def get_client_identifier(request: Request) -> str:
    """Derive the rate limit key for a request."""
    if Config.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit_headers(limit: int, remaining: int, reset_at: Optional[datetime]) -> Dict[str, str]:
    """Build the X-RateLimit-* response headers."""
    headers = {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(remaining),
    }
    if reset_at is not None:
        headers["X-RateLimit-Reset"] = format_reset_time(reset_at)
    return headers


def create_chat_limiter() -> RateLimiter:
    """Limiter for the chat stream endpoint."""
    return RateLimiter(Config.CHAT_RATE_LIMIT_MAX, Config.RATE_LIMIT_WINDOW_SECONDS, name="chat")


def create_status_limiter() -> RateLimiter:
    """Limiter for the rate limit status endpoint."""
    return RateLimiter(Config.STATUS_RATE_LIMIT_MAX, Config.RATE_LIMIT_WINDOW_SECONDS, name="status")
