"""
Domain validators.

Purpose
-------
Reusable game-rule checks that raise structured domain exceptions. Unlike
`InputValidator` (shape of the raw input), these operate on state a service
already loaded: balances, cooldown deadlines, weekly counters.

Design Notes
------------
- Raise-on-error: return None on success.
- No storage access; callers pass the values they read.

Usage
-----
    from src.modules.shared.validators import validate_sufficient_funds

    validate_sufficient_funds("dachsfan", required=100, available=40)
    # Raises: InsufficientFundsError
"""

from __future__ import annotations

from typing import Optional

from src.modules.shared.timeutils import is_current_week, remaining_seconds


def validate_sufficient_funds(username: str, required: int, available: int) -> None:
    """
    Raises:
        InsufficientFundsError: If available < required
    """
    from .exceptions import InsufficientFundsError

    if available < required:
        raise InsufficientFundsError(username, required, available)


def validate_cooldown(action: str, expires_at: Optional[float], now: float) -> None:
    """
    Validate that a stored cooldown deadline has passed.

    Raises:
        CooldownActiveError: If the deadline is still in the future
    """
    from .exceptions import CooldownActiveError

    remaining = remaining_seconds(expires_at, now)
    if remaining > 0:
        raise CooldownActiveError(action, remaining)


def validate_weekly_limit(
    item_type: str,
    stored_week: Optional[str],
    stored_count: int,
    limit: int,
    now: float,
    week_id: str,
) -> int:
    """
    Check a weekly purchase counter and return the count for the current week.

    A counter stored under a previous week counts as zero.

    Raises:
        LimitExceededError: If the current-week count already reached the limit
    """
    from .exceptions import LimitExceededError

    count = stored_count if is_current_week(stored_week, now) else 0
    if count >= limit:
        raise LimitExceededError(item_type, limit, week_id)
    return count


def validate_not_self(challenger: str, target: str) -> None:
    """
    Raises:
        InvalidTargetError: If both names refer to the same player
    """
    from .exceptions import InvalidTargetError

    if challenger.lower() == target.lower():
        raise InvalidTargetError(target, "cannot target yourself")
