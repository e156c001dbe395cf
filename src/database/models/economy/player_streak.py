"""
PlayerStreak - snapshot of a player's slot streak.
Pure schema only.
"""

from __future__ import annotations

from sqlalchemy import Float, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, TimestampMixin


class PlayerStreak(Base, TimestampMixin):
    __tablename__ = "player_streaks"

    username: Mapped[str] = mapped_column(String(32), primary_key=True)
    wins: Mapped[int] = mapped_column(nullable=False, default=0)
    losses: Mapped[int] = mapped_column(nullable=False, default=0)
    multiplier_streak: Mapped[int] = mapped_column(nullable=False, default=0)
    multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)

    def __repr__(self) -> str:
        return (
            f"<PlayerStreak(username={self.username!r}, wins={self.wins}, "
            f"losses={self.losses}, multiplier={self.multiplier})>"
        )
