"""
Shop Module
===========

Exports:
- ShopService: item purchases with prerequisites and weekly limits
- PurchaseResult / WheelOutcome / spin_wheel
"""

from .models import PurchaseResult, WheelOutcome, spin_wheel
from .service import ShopService

__all__ = ["PurchaseResult", "ShopService", "WheelOutcome", "spin_wheel"]
