"""
Shared domain foundations.

Architecture
------------
- BaseService: foundation for service classes (logging, config, events)
- Domain exceptions: player-facing rule violations
- Validators: game-rule checks with structured error raising
- keys / timeutils: store key layout and the shared lazy-reset comparisons

Usage
-----
    from src.modules.shared import BaseService, InsufficientFundsError
"""

from __future__ import annotations

from .base_service import BaseService
from .exceptions import (
    AccountRequiredError,
    ChallengeExpiredError,
    CooldownActiveError,
    GameDomainException,
    InsufficientFundsError,
    InvalidOperationError,
    InvalidTargetError,
    LimitExceededError,
    NoActiveChallengeError,
    NotFoundError,
    ValidationError,
    get_error_severity,
    is_transient_error,
)
from .validators import (
    validate_cooldown,
    validate_not_self,
    validate_sufficient_funds,
    validate_weekly_limit,
)

__all__ = [
    "BaseService",
    "GameDomainException",
    "AccountRequiredError",
    "ChallengeExpiredError",
    "CooldownActiveError",
    "InsufficientFundsError",
    "InvalidOperationError",
    "InvalidTargetError",
    "LimitExceededError",
    "NoActiveChallengeError",
    "NotFoundError",
    "ValidationError",
    "get_error_severity",
    "is_transient_error",
    "validate_cooldown",
    "validate_not_self",
    "validate_sufficient_funds",
    "validate_weekly_limit",
]
