"""
Time helpers shared by every component.

Purpose
-------
Keep the lazy-reset comparisons in one place. Nothing in the engine runs a
cleanup job: buffs expire, weekly counters roll over and duel challenges time
out because a later read compares a stored timestamp or week id against the
clock. If two components compared differently (`<` vs `<=`, local vs UTC
weeks) a player could, for instance, use a buff in one path that another path
already treats as gone.

Design Notes
------------
- All timestamps are float epoch seconds in UTC.
- `Clock` is any zero-argument callable returning epoch seconds; services
  take one by injection so tests can freeze or advance time.
- A deadline is expired when `now >= expires_at`.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], float]


def system_clock() -> float:
    return time.time()


def to_utc(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def iso_week_id(timestamp: float) -> str:
    """ISO-8601 week identifier, e.g. ``2026-W42``."""
    year, week, _ = to_utc(timestamp).isocalendar()
    return f"{year}-W{week:02d}"


def is_current_week(stored_week: Optional[str], timestamp: float) -> bool:
    """True if a stored week id belongs to the week containing `timestamp`."""
    return stored_week == iso_week_id(timestamp)


def utc_day(timestamp: float) -> str:
    return to_utc(timestamp).strftime("%Y-%m-%d")


def is_expired(expires_at: Optional[float], now: float) -> bool:
    """A missing deadline never expires."""
    return expires_at is not None and now >= expires_at


def remaining_seconds(expires_at: Optional[float], now: float) -> float:
    if expires_at is None:
        return 0.0
    return max(0.0, expires_at - now)


def elapsed_seconds(since: float, now: float) -> float:
    return max(0.0, now - since)
