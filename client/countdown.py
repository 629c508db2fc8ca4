"""
Rate limit countdown formatting for the chat client.
"""
from datetime import datetime
from typing import Optional
from models.chat_models import RateLimitState


def format_countdown(seconds: int) -> str:
    """Format whole seconds as "45s" or "1m 30s"."""
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes, remaining_seconds = divmod(seconds, 60)
    return f"{minutes}m {remaining_seconds}s"


def countdown_until_reset(state: RateLimitState, now: datetime) -> Optional[str]:
    """Countdown text until the window resets, or None if the reset time is unknown."""
    seconds = state.seconds_until_reset(now)
    if seconds is None:
        return None
    return format_countdown(seconds)


def describe_rate_limit(state: RateLimitState, now: datetime) -> list[str]:
    """
    Footer lines shown under the conversation.

    Returns:
        A "Rate limited" notice while the quota is used up, then the usage line
    """
    lines = []
    countdown = countdown_until_reset(state, now)
    if countdown is not None and state.remaining <= 0:
        lines.append(f"Rate limited. Reset in {countdown}")

    usage = f"Messages left: {state.remaining} / {state.limit}"
    if state.reset_at is not None:
        usage += f" · Resets at {state.reset_at.astimezone().strftime('%H:%M:%S')}"
    lines.append(usage)
    return lines
