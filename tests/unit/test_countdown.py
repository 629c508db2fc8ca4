from datetime import datetime, timedelta, timezone

import pytest

from client.countdown import countdown_until_reset, describe_rate_limit, format_countdown
from models.chat_models import RateLimitState

NOW = datetime(2030, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("seconds, expected", [
    (0, "0s"),
    (45, "45s"),
    (59, "59s"),
    (60, "1m 0s"),
    (90, "1m 30s"),
    (3601, "60m 1s"),
    (-3, "0s"),
])
def test_format_countdown(seconds, expected):
    """Given a number of seconds, format_countdown should render minutes and seconds."""
    assert format_countdown(seconds) == expected


@pytest.mark.parametrize("offset, expected", [
    (timedelta(seconds=90), "1m 30s"),
    (timedelta(seconds=45), "45s"),
    (timedelta(seconds=44, milliseconds=100), "45s"),
    (timedelta(seconds=-10), "0s"),
])
def test_countdown_until_reset(offset, expected):
    """Given a reset time relative to now, the countdown should round up and never go negative."""
    state = RateLimitState(limit=1, remaining=0, reset_at=NOW + offset)
    assert countdown_until_reset(state, NOW) == expected


def test_countdown_without_reset_time_is_none():
    """Given no reset time, there should be nothing to count down."""
    assert countdown_until_reset(RateLimitState(), NOW) is None
    assert RateLimitState().seconds_until_reset(NOW) is None


def test_describe_rate_limit_when_exhausted():
    """Given a used-up quota, the footer should show the countdown and the usage line."""
    state = RateLimitState(limit=1, remaining=0, reset_at=NOW + timedelta(seconds=90), is_limited=True)

    lines = describe_rate_limit(state, NOW)

    assert lines[0] == "Rate limited. Reset in 1m 30s"
    assert lines[1].startswith("Messages left: 0 / 1 · Resets at ")


def test_describe_rate_limit_with_quota_left():
    """Given quota left and no reset time, only the usage line should be shown."""
    assert describe_rate_limit(RateLimitState(limit=5, remaining=3), NOW) == ["Messages left: 3 / 5"]


def test_rate_limit_state_from_headers():
    """Given X-RateLimit headers, the state should mirror them and flag 429 responses."""
    headers = {
        "x-ratelimit-limit": "1",
        "x-ratelimit-remaining": "0",
        "x-ratelimit-reset": "2030-01-01T12:01:00.000Z",
    }

    ok = RateLimitState.from_headers(headers, 200)
    limited = RateLimitState.from_headers(headers, 429)

    assert ok == RateLimitState(limit=1, remaining=0, reset_at=NOW + timedelta(seconds=60), is_limited=False)
    assert limited.is_limited is True


def test_rate_limit_state_from_missing_headers():
    """Given no rate limit headers, the state should fall back to zero counters and no reset time."""
    state = RateLimitState.from_headers({"x-ratelimit-limit": "abc"}, 500)

    assert state == RateLimitState(limit=0, remaining=0, reset_at=None, is_limited=False)


@pytest.mark.parametrize("state, expected", [
    (RateLimitState(limit=1, remaining=1), False),
    (RateLimitState(limit=1, remaining=0, reset_at=NOW + timedelta(seconds=30)), True),
    (RateLimitState(limit=1, remaining=0, reset_at=NOW - timedelta(seconds=1)), False),
    (RateLimitState(limit=1, remaining=0, reset_at=NOW + timedelta(seconds=30), is_limited=True), True),
    (RateLimitState(limit=1, remaining=0, reset_at=NOW, is_limited=True), False),
    (RateLimitState(limit=1, remaining=1, is_limited=True), True),
])
def test_rate_limit_state_blocks_sending_until_reset(state, expected):
    """Given a limited state, sending should be blocked only until the reset time passes."""
    assert state.blocks_sending(NOW) is expected
