"""
Exception foundations for the DachsTaler engine.

Purpose
-------
`EngineError` carries the structured fields every engine exception shares.
Two families derive from it:

- `EngineInfrastructureException` (this module): storage, durable-store and
  configuration failures. Engineering problems, never the player's fault.
- `GameDomainException` (`src.modules.shared.exceptions`): player-facing
  rule violations. Raising one always means no state was changed.

Fields
------
- `message`: human-readable description
- `details`: structured context (dict), safe to log and to serialize
- `severity`: `ErrorSeverity` used by log handlers
- `is_retryable`: whether repeating the whole action can succeed
- `error_code`: short, stable identifier for the chat collaborator
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    DEBUG = "debug"  # expected, e.g. cooldowns
    INFO = "info"  # rule violations
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"  # process cannot serve actions


class EngineError(Exception):
    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            self.DEFAULT_RETRYABLE if is_retryable is None else is_retryable
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form for logs and the CLI."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} | {self.details}"


class EngineInfrastructureException(EngineError):
    """Base class for store, database and configuration failures."""


class ConfigurationError(EngineInfrastructureException):
    """
    Raised when a configuration key is invalid or missing.

    Raised at load time, so a broken catalog stops the process before any
    player action is served.

    Args:
        config_key: The configuration key that has issues
        message: Description of the configuration problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = False

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        error_message = f"Configuration error for {config_key}: {message}"
        super().__init__(
            error_message,
            details={
                "config_key": config_key,
                "message": message,
            },
            error_code="CONFIG_ERROR",
        )


class StorageUnavailableError(EngineInfrastructureException):
    """
    Raised when a key-value store call fails.

    Args:
        operation: Store operation that failed (GET, PUT, LIST, ...)
        key: Key or prefix involved
        original_error: The underlying client exception, if any
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        key: str,
        original_error: Optional[BaseException] = None,
    ) -> None:
        self.operation = operation
        self.key = key
        self.original_error = original_error
        reason = str(original_error) if original_error else "store unavailable"
        super().__init__(
            f"Storage {operation} failed for {key}: {reason}",
            details={
                "operation": operation,
                "key": key,
                "error_type": type(original_error).__name__ if original_error else None,
            },
            error_code="STORAGE_UNAVAILABLE",
        )


class DatabaseError(EngineInfrastructureException):
    """
    Raised when durable-store operations fail.

    Args:
        operation: Description of the database operation that failed
        original_error: The underlying database exception
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Exception) -> None:
        self.operation = operation
        self.original_error = original_error
        message = f"Database error during {operation}: {str(original_error)}"
        super().__init__(
            message,
            details={
                "operation": operation,
                "error": str(original_error),
                "error_type": type(original_error).__name__,
            },
            error_code="DATABASE_ERROR",
        )


def is_transient_error(exc: BaseException) -> bool:
    """True if the failed action may be retried as a whole."""
    return isinstance(exc, EngineError) and exc.is_retryable


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    if isinstance(exc, EngineError):
        return exc.severity
    return ErrorSeverity.ERROR
