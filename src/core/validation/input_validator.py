"""
Input Validation Layer for the DachsTaler engine.

Purpose
-------
Reject malformed action input before it reaches a service. Every public
engine action (spin, duel, purchase, achievement query) passes its raw
arguments through `InputValidator` first, so a bad username or a stake of
``"abc"`` never causes a storage access.

Responsibilities
----------------
- Validate and normalize usernames (case-insensitive identity)
- Validate and convert numeric inputs with bounds (stakes, item ids)
- Validate spin amount tokens ("all", digits, nothing)
- Raise ValidationError with a user-friendly message

Non-Responsibilities
--------------------
- Game rule validation such as unlocks or balances (service layer concern)
- Persistence or side effects

Observability
-------------
Every validation failure is logged at debug level with the field name, the
raw value (repr) and the reason.
"""

from __future__ import annotations

import re
from typing import Any, NoReturn, Optional, Sequence, Union

from src.core.logging.logger import get_logger
from src.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-z0-9_]{1,25}$")
ALL_IN_TOKEN = "all"


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    """Log and raise a ValidationError."""
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": repr(value),
            "reason": message,
        },
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """
    Stateless shape validation for action inputs.

    All methods return the validated (normalized) value or raise
    ValidationError; none of them touch storage.
    """

    # =========================================================================
    # INTEGER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
    ) -> int:
        """
        Validate and convert value to integer with optional bounds checking.

        Booleans are rejected even though they are ints in Python; strings
        must be plain decimal digits (an optional leading minus is allowed so
        the bounds check can produce the better message).
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if isinstance(value, bool):
            _raise_validation_error(field_name, value, "Must be a whole number")

        if isinstance(value, str):
            text = value.strip()
            if not re.fullmatch(r"-?\d+", text):
                _raise_validation_error(field_name, value, f"Must be a whole number, got '{value}'")
            int_value = int(text)
        elif isinstance(value, int):
            int_value = value
        else:
            _raise_validation_error(field_name, value, f"Must be a whole number, got '{value}'")

        if min_value is not None and int_value < min_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Must be at least {min_value}, got {int_value}",
            )

        if max_value is not None and int_value > max_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Cannot exceed {max_value}, got {int_value}",
            )

        return int_value

    @staticmethod
    def validate_positive_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        return InputValidator.validate_integer(value, field_name, min_value=1, max_value=max_value)

    # =========================================================================
    # IDENTITY VALIDATION
    # =========================================================================

    @staticmethod
    def validate_username(value: Any, field_name: str = "username") -> str:
        """
        Validate a chat username and return its canonical (lower-case) form.

        Accepts a leading ``@`` as typed in chat mentions.
        """
        if value is None or not isinstance(value, str):
            _raise_validation_error(field_name, value, "Username is required")

        name = value.strip().lstrip("@").lower()
        if not USERNAME_PATTERN.match(name):
            _raise_validation_error(
                field_name,
                value,
                "Must be 1-25 characters of letters, digits or underscore",
            )
        return name

    # =========================================================================
    # ACTION ARGUMENTS
    # =========================================================================

    @staticmethod
    def validate_spin_amount(value: Any) -> Optional[Union[int, str]]:
        """
        Normalize a spin amount token.

        Returns None for "no amount", the string ``"all"`` for an all-in
        spin, or a positive integer.
        """
        if value is None:
            return None
        if isinstance(value, str):
            token = value.strip().lower()
            if token == "":
                return None
            if token == ALL_IN_TOKEN:
                return ALL_IN_TOKEN
        return InputValidator.validate_positive_integer(value, "amount")

    @staticmethod
    def validate_item_id(value: Any, max_item_id: int) -> int:
        return InputValidator.validate_integer(value, "item_id", min_value=1, max_value=max_item_id)

    @staticmethod
    def validate_choice(value: Any, field_name: str, valid_choices: Sequence[str]) -> str:
        """Validate that value is one of the allowed choices (case-insensitive)."""
        str_value = str(value).lower().strip()
        if str_value not in {choice.lower() for choice in valid_choices}:
            choices_str = ", ".join(sorted(valid_choices))
            _raise_validation_error(
                field_name,
                value,
                f"Invalid choice '{value}'. Must be one of: {choices_str}",
            )
        return str_value
