import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from config import Config
from services.rate_limiter import (
    MemoryRateLimitStore,
    RateLimiter,
    format_reset_time,
    rate_limit_headers,
    retry_after_ms
)
from utils.errors import RateLimitStoreError

NOW = datetime(2030, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def limiter():
    return RateLimiter(max_requests=1, window_seconds=60, name="chat")


def test_second_request_in_window_is_rejected(limiter):
    """Given max=1, two admissions in one window should yield exactly one allowed."""
    first = limiter.admit("1.2.3.4", NOW)
    second = limiter.admit("1.2.3.4", NOW + timedelta(seconds=10))

    assert first.allowed is True
    assert first.remaining == 0
    assert second.allowed is False
    assert second.remaining == 0
    assert second.reset_at == NOW + timedelta(seconds=60)


def test_request_after_window_is_admitted_again(limiter):
    """Given an elapsed window, the next admission should start a fresh window."""
    limiter.admit("1.2.3.4", NOW)
    limiter.admit("1.2.3.4", NOW + timedelta(seconds=30))

    later = NOW + timedelta(seconds=60)
    decision = limiter.admit("1.2.3.4", later)

    assert decision.allowed is True
    assert decision.reset_at == later + timedelta(seconds=60)


def test_clients_are_limited_independently(limiter):
    """Given two identifiers, one exhausting its quota should not affect the other."""
    limiter.admit("alice", NOW)
    assert limiter.admit("alice", NOW).allowed is False
    assert limiter.admit("bob", NOW).allowed is True


@pytest.mark.parametrize("max_requests, calls, expected_remaining", [
    (10, 1, 9),
    (10, 10, 0),
    (10, 12, 0),
    (0, 1, 0),
])
def test_remaining_never_goes_negative(max_requests, calls, expected_remaining):
    """Given various quotas, remaining should count down and stop at zero."""
    limiter = RateLimiter(max_requests=max_requests, window_seconds=60)
    decision = None
    for _ in range(calls):
        decision = limiter.admit("client", NOW)

    assert decision.remaining == expected_remaining
    assert decision.limit == max_requests
    assert decision.allowed is (calls <= max_requests)


def test_status_does_not_count_requests(limiter):
    """Given repeated status reads, the next admission should behave as if they never happened."""
    for _ in range(5):
        status = limiter.status("1.2.3.4", NOW)
        assert status.is_rate_limited is False
        assert status.remaining == 1

    assert limiter.admit("1.2.3.4", NOW).allowed is True


def test_status_for_unknown_client_reports_full_quota(limiter):
    """Given no record, status should report the full quota and a window from now."""
    status = limiter.status("new-client", NOW)

    assert status.is_rate_limited is False
    assert status.limit == 1
    assert status.remaining == 1
    assert status.reset_at == NOW + timedelta(seconds=60)


def test_status_reports_limited_client(limiter):
    """Given an exhausted quota, status should report the client as limited until the window ends."""
    limiter.admit("1.2.3.4", NOW)
    status = limiter.status("1.2.3.4", NOW + timedelta(seconds=5))

    assert status.is_rate_limited is True
    assert status.remaining == 0
    assert status.reset_at == NOW + timedelta(seconds=60)


def test_status_after_window_reports_not_limited(limiter):
    """Given an expired record, status should report the client as free again."""
    limiter.admit("1.2.3.4", NOW)
    status = limiter.status("1.2.3.4", NOW + timedelta(seconds=61))

    assert status.is_rate_limited is False
    assert status.remaining == 1


def test_status_store_failure_is_reported(limiter, mocker):
    """Given a failing store lookup, status should raise rather than report 'not limited'."""
    mocker.patch.object(limiter.store, "get", side_effect=RuntimeError("store offline"))

    with pytest.raises(RateLimitStoreError) as exc_info:
        limiter.status("1.2.3.4", NOW)

    assert exc_info.value.message == "Failed to retrieve rate limit status"


def test_concurrent_admissions_admit_only_one(limiter):
    """Given many concurrent admissions for one identifier and one slot, only one should be admitted."""
    barrier = threading.Barrier(16)

    def admit():
        barrier.wait()
        return limiter.admit("1.2.3.4", NOW).allowed

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(lambda _: admit(), range(16)))

    assert results.count(True) == 1
    assert results.count(False) == 15


def test_store_sweep_evicts_expired_records():
    """Given expired records, the periodic sweep should drop them but keep the active key."""
    store = MemoryRateLimitStore(sweep_interval=3)
    window = timedelta(seconds=60)

    store.increment("old-1", NOW, window)
    store.increment("old-2", NOW, window)
    assert len(store) == 2

    later = NOW + timedelta(seconds=120)
    store.increment("fresh", later, window)

    assert len(store) == 1
    assert store.get("fresh").count == 1
    assert store.get("old-1") is None


def test_store_returns_snapshots():
    """Given a record snapshot, mutating it should not change the stored record."""
    store = MemoryRateLimitStore()
    snapshot = store.increment("client", NOW, timedelta(seconds=60))
    snapshot.count = 99

    assert store.get("client").count == 1


def test_retry_after_is_positive_for_future_reset():
    """Given a reset time in the future, retry_after_ms should be the time left."""
    assert retry_after_ms(NOW + timedelta(seconds=30), NOW) == 30000


@pytest.mark.parametrize("offset_seconds", [0, -5])
def test_retry_after_defaults_when_reset_has_passed(offset_seconds):
    """Given a reset time that is not in the future, retry_after_ms should fall back to the default."""
    assert retry_after_ms(NOW + timedelta(seconds=offset_seconds), NOW) == Config.DEFAULT_RETRY_AFTER_MS == 60000


def test_reset_time_is_iso_utc():
    """Given an aware datetime, format_reset_time should produce an ISO timestamp in UTC."""
    assert format_reset_time(NOW) == "2030-01-01T12:00:00.000Z"


def test_rate_limit_headers():
    """Given counters, rate_limit_headers should build the X-RateLimit-* headers."""
    headers = rate_limit_headers(1, 0, NOW)

    assert headers == {
        "X-RateLimit-Limit": "1",
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": "2030-01-01T12:00:00.000Z",
    }
    assert "X-RateLimit-Reset" not in rate_limit_headers(1, 1, None)
