"""
Validation package.

Exposes `InputValidator`, the shape validation applied to every action
input before it enters a service. Game-rule checks live in
`src.modules.shared.validators`.
"""

from src.core.validation.input_validator import InputValidator

__all__ = ["InputValidator"]
