"""
DuelLog - one row per resolved duel.
Pure schema only.

`idempotency_key` is the key of the resolution write intent; inserting the
same key twice is rejected by the unique constraint, so a replayed
resolution never logs a second duel.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, utcnow


class DuelLog(Base, IdMixin):
    __tablename__ = "duel_log"
    __table_args__ = (
        Index("ix_duel_log_challenger", "challenger"),
        Index("ix_duel_log_target", "target"),
    )

    idempotency_key: Mapped[str] = mapped_column(String(96), nullable=False, unique=True)
    challenger: Mapped[str] = mapped_column(String(32), nullable=False)
    target: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[int] = mapped_column(nullable=False)
    challenger_grid: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    target_grid: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    challenger_score: Mapped[int] = mapped_column(nullable=False)
    target_score: Mapped[int] = mapped_column(nullable=False)
    winner: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    pot: Mapped[int] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<DuelLog(challenger={self.challenger!r}, target={self.target!r}, "
            f"amount={self.amount}, winner={self.winner!r})>"
        )
