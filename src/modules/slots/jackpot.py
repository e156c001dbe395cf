"""
Hourly jackpot timing.

Every UTC hour has one lucky second, derived from the date so that players
cannot learn a fixed second: ``(day * 100 + month * 10 + hour) % divisor``.
The first spin landing on it claims the hour's jackpot for everybody.
"""

from __future__ import annotations

from src.modules.shared.timeutils import to_utc


def hour_id(timestamp: float) -> str:
    return to_utc(timestamp).strftime("%Y-%m-%dT%H")


def lucky_second(timestamp: float, divisor: int = 60) -> int:
    moment = to_utc(timestamp)
    return (moment.day * 100 + moment.month * 10 + moment.hour) % divisor


def is_lucky_second(timestamp: float, divisor: int = 60) -> bool:
    return to_utc(timestamp).second == lucky_second(timestamp, divisor)
