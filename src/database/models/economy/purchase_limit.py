"""
PurchaseLimit - weekly purchase counter per player and item family.
Pure schema only.

`week_id` is the ISO week ("2025-W07") the count belongs to; a row whose
week differs from the current one counts as zero.
"""

from __future__ import annotations

from sqlalchemy import CheckConstraint, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin


class PurchaseLimit(Base, IdMixin, TimestampMixin):
    __tablename__ = "purchase_limits"
    __table_args__ = (
        UniqueConstraint("username", "item_type", name="uq_purchase_limits_username_type"),
        CheckConstraint("count >= 0", name="count_non_negative"),
    )

    username: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    item_type: Mapped[str] = mapped_column(String(32), nullable=False)
    week_id: Mapped[str] = mapped_column(String(10), nullable=False)
    count: Mapped[int] = mapped_column(nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<PurchaseLimit(username={self.username!r}, item_type={self.item_type!r}, "
            f"week_id={self.week_id!r}, count={self.count})>"
        )
