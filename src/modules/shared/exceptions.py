"""
Domain exceptions for the DachsTaler engine.

Services raise these for rule violations (insufficient funds, weekly caps,
stale duels); the chat collaborator turns `error_code` and `details` into a
message. Every one of them means "no state was changed".
"""

from __future__ import annotations

from typing import Any, Optional

from src.core.exceptions import EngineError, ErrorSeverity, get_error_severity, is_transient_error

__all__ = [
    "AccountRequiredError",
    "ChallengeExpiredError",
    "CooldownActiveError",
    "GameDomainException",
    "InsufficientFundsError",
    "InvalidOperationError",
    "InvalidTargetError",
    "LimitExceededError",
    "NoActiveChallengeError",
    "NotFoundError",
    "ValidationError",
    "get_error_severity",
    "is_transient_error",
]


class GameDomainException(EngineError):
    """
    Base exception for player-facing rule violations.

    Example:
        >>> raise GameDomainException("Spin rejected", {"reason": "self-banned"})
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO


class InsufficientFundsError(GameDomainException):
    """
    Raised when a debit would drive a balance below zero.

    Args:
        username: Player whose balance was checked
        required: Amount the action needs
        current: Balance at read time
    """

    def __init__(self, username: str, required: int, current: int) -> None:
        self.username = username
        self.required = required
        self.current = current
        super().__init__(
            f"Insufficient DachsTaler: need {required:,}, have {current:,}",
            details={
                "username": username,
                "required": required,
                "current": current,
                "deficit": required - current,
            },
            error_code="INSUFFICIENT_FUNDS",
        )


class InvalidTargetError(GameDomainException):
    """Raised when a duel target is missing, self-referential or unavailable."""

    def __init__(self, target: str, reason: str) -> None:
        self.target = target
        self.reason = reason
        super().__init__(
            f"Invalid target '{target}': {reason}",
            details={"target": target, "reason": reason},
            error_code="INVALID_TARGET",
        )


class LimitExceededError(GameDomainException):
    """
    Raised when a weekly purchase cap has been reached.

    Args:
        item_type: Limited item family (e.g. "spin_bundle")
        limit: Configured weekly cap
        week_id: ISO week the counter belongs to
    """

    def __init__(self, item_type: str, limit: int, week_id: str) -> None:
        self.item_type = item_type
        self.limit = limit
        self.week_id = week_id
        super().__init__(
            f"Weekly limit reached for {item_type}: {limit} per week",
            details={"item_type": item_type, "limit": limit, "week_id": week_id},
            error_code="LIMIT_EXCEEDED",
        )


class NoActiveChallengeError(GameDomainException):
    """Raised when a duel command finds no open challenge for the player."""

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(
            f"No active duel challenge for {username}",
            details={"username": username},
            error_code="NO_ACTIVE_CHALLENGE",
        )


class ChallengeExpiredError(GameDomainException):
    """Raised when a challenge is observed past its response window."""

    def __init__(self, challenger: str, target: str, age_seconds: float) -> None:
        self.challenger = challenger
        self.target = target
        self.age_seconds = age_seconds
        super().__init__(
            f"Duel challenge from {challenger} to {target} expired",
            details={
                "challenger": challenger,
                "target": target,
                "age_seconds": round(age_seconds, 1),
            },
            error_code="CHALLENGE_EXPIRED",
        )


class NotFoundError(GameDomainException):
    """
    Raised when a requested catalog entry or resource cannot be found.

    Args:
        resource_type: Type of resource (e.g., "ShopItem", "Achievement")
        identifier: Optional identifier for the missing resource
    """

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ValidationError(GameDomainException):
    """
    Raised when action input fails shape validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class CooldownActiveError(GameDomainException):
    """
    Raised when an action is on cooldown.

    Args:
        action: Name of the action on cooldown
        remaining_seconds: Time remaining until cooldown expires
    """

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    DEFAULT_RETRYABLE = True

    def __init__(self, action: str, remaining_seconds: float) -> None:
        self.action = action
        self.remaining_seconds = remaining_seconds
        super().__init__(
            f"{action} is on cooldown: {remaining_seconds:.1f}s remaining",
            details={
                "action": action,
                "remaining": remaining_seconds,
                "retry_after": remaining_seconds,
            },
            error_code="COOLDOWN_ACTIVE",
        )


class AccountRequiredError(GameDomainException):
    """Raised when a player without an active account tries to play."""

    def __init__(self, username: str, reason: str) -> None:
        self.username = username
        self.reason = reason
        super().__init__(
            f"{username} cannot play: {reason}",
            details={"username": username, "reason": reason},
            error_code="ACCOUNT_REQUIRED",
        )


class InvalidOperationError(GameDomainException):
    """
    Raised when a player attempts an action that violates game rules.

    Args:
        action: Description of the invalid action
        reason: Explanation of why it's not allowed

    Example:
        >>> raise InvalidOperationError("purchase", "slots_30 requires slots_20")
    """

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason},
            error_code=f"INVALID_{action.upper()}",
        )
