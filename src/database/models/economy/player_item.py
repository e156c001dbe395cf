"""
PlayerItem - durable copy of a player's paid item state.
Pure schema only.

One row per (username, item_key). `value` holds the JSON document the primary
store holds under the same logical key (buff record, unlock flag, free-spin
ledger, prestige rank).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin


class PlayerItem(Base, IdMixin, TimestampMixin):
    __tablename__ = "player_items"
    __table_args__ = (
        UniqueConstraint("username", "item_key", name="uq_player_items_username_item"),
        Index("ix_player_items_item_key", "item_key"),
    )

    username: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    item_key: Mapped[str] = mapped_column(String(64), nullable=False)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<PlayerItem(username={self.username!r}, item_key={self.item_key!r})>"
