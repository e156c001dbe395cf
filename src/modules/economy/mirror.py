"""
DurableMirror - secondary relational copy of double-spend sensitive fields.

Purpose
-------
The primary store has no multi-key transactions and no compare-and-swap.
Paid item state, weekly purchase counters, streak snapshots and duel
results are therefore copied into SQL, which does offer atomic single-row
updates, and the weekly counter claim there is the check of record.

Responsibilities
----------------
- `mirror(record)`: upsert every item, limit and streak row of a committed
  write intent and insert its duel log
- `claim_weekly_slot(...)`: atomic conditional increment of a weekly counter
- `release_weekly_slot(...)`: give a claimed slot back when the primary
  write that needed it failed
- `record_duel(...)`: idempotent duel log insert

Design Notes
------------
- Every operation runs in its own `DatabaseService.get_transaction()`.
- SQLAlchemy failures surface as `DatabaseError`; the ledger decides whether
  that is fatal (it never is for `mirror`).
- Upserts use select-then-update/insert inside the transaction rather than a
  dialect-specific ON CONFLICT so SQLite and PostgreSQL behave the same.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from src.core.database.service import DatabaseService
from src.core.exceptions import DatabaseError
from src.core.logging.logger import get_logger
from src.database.models import DuelLog, PlayerItem, PlayerStreak, PurchaseLimit

logger = get_logger(__name__)


@dataclass(frozen=True)
class LimitSnapshot:
    username: str
    item_type: str
    week_id: str
    count: int


@dataclass
class MirrorRecord:
    """Durable part of one committed write intent."""

    idempotency_key: Optional[str] = None
    items: Dict[Tuple[str, str], Any] = field(default_factory=dict)
    limits: List[LimitSnapshot] = field(default_factory=list)
    streaks: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    duel_log: Optional[Dict[str, Any]] = None

    @property
    def is_empty(self) -> bool:
        return not (self.items or self.limits or self.streaks or self.duel_log)

    def to_document(self) -> Dict[str, Any]:
        return {
            "idempotency_key": self.idempotency_key,
            "items": [
                {"username": u, "item_key": k, "value": v} for (u, k), v in self.items.items()
            ],
            "limits": [vars(limit) for limit in self.limits],
            "streaks": self.streaks,
            "duel_log": self.duel_log,
        }


class DurableMirror:
    async def mirror(self, record: MirrorRecord) -> None:
        """
        Raises:
            DatabaseError: If the transaction fails; nothing is partially applied
        """
        if record.is_empty:
            return
        try:
            async with DatabaseService.get_transaction() as session:
                for (username, item_key), value in record.items.items():
                    row = await session.scalar(
                        select(PlayerItem).where(
                            PlayerItem.username == username, PlayerItem.item_key == item_key
                        )
                    )
                    if row is None:
                        session.add(PlayerItem(username=username, item_key=item_key, value=value))
                    else:
                        row.value = value

                for limit in record.limits:
                    row = await session.scalar(
                        select(PurchaseLimit).where(
                            PurchaseLimit.username == limit.username,
                            PurchaseLimit.item_type == limit.item_type,
                        )
                    )
                    if row is None:
                        session.add(
                            PurchaseLimit(
                                username=limit.username,
                                item_type=limit.item_type,
                                week_id=limit.week_id,
                                count=limit.count,
                            )
                        )
                    elif row.week_id != limit.week_id or row.count < limit.count:
                        row.week_id = limit.week_id
                        row.count = limit.count

                for username, snapshot in record.streaks.items():
                    row = await session.get(PlayerStreak, username)
                    if row is None:
                        row = PlayerStreak(username=username)
                        session.add(row)
                    row.wins = int(snapshot.get("wins", 0))
                    row.losses = int(snapshot.get("losses", 0))
                    row.multiplier_streak = int(snapshot.get("multiplier_streak", 0))
                    row.multiplier = float(snapshot.get("multiplier", 1.0))

                if record.duel_log is not None:
                    await self._insert_duel(session, record.duel_log)

        except SQLAlchemyError as exc:
            raise DatabaseError("mirror", exc) from exc

        logger.debug(
            "Mirrored write intent",
            extra={
                "idempotency_key": record.idempotency_key,
                "items": len(record.items),
                "limits": len(record.limits),
                "streaks": len(record.streaks),
            },
        )

    async def claim_weekly_slot(
        self, username: str, item_type: str, week_id: str, limit: int
    ) -> bool:
        """
        Atomically take one slot of a weekly counter.

        Returns True if the slot was granted. A row stored under another week
        is reset to this week with count 1.

        Raises:
            DatabaseError: If the claim could not be executed
        """
        if limit <= 0:
            return False
        try:
            async with DatabaseService.get_transaction() as session:
                result = await session.execute(
                    update(PurchaseLimit)
                    .where(
                        PurchaseLimit.username == username,
                        PurchaseLimit.item_type == item_type,
                        PurchaseLimit.week_id == week_id,
                        PurchaseLimit.count < limit,
                    )
                    .values(count=PurchaseLimit.count + 1)
                )
                if result.rowcount == 1:
                    return True

                result = await session.execute(
                    update(PurchaseLimit)
                    .where(
                        PurchaseLimit.username == username,
                        PurchaseLimit.item_type == item_type,
                        PurchaseLimit.week_id != week_id,
                    )
                    .values(week_id=week_id, count=1)
                )
                if result.rowcount == 1:
                    return True

                existing = await session.scalar(
                    select(PurchaseLimit.id).where(
                        PurchaseLimit.username == username,
                        PurchaseLimit.item_type == item_type,
                    )
                )
                if existing is not None:
                    return False

                try:
                    async with session.begin_nested():
                        session.add(
                            PurchaseLimit(
                                username=username, item_type=item_type, week_id=week_id, count=1
                            )
                        )
                except IntegrityError:
                    # Concurrent first purchase inserted the row first.
                    logger.info(
                        "Weekly slot insert lost race",
                        extra={"username": username, "item_type": item_type, "week_id": week_id},
                    )
                    return False
                return True
        except SQLAlchemyError as exc:
            raise DatabaseError("claim_weekly_slot", exc) from exc

    async def release_weekly_slot(self, username: str, item_type: str, week_id: str) -> None:
        try:
            async with DatabaseService.get_transaction() as session:
                await session.execute(
                    update(PurchaseLimit)
                    .where(
                        PurchaseLimit.username == username,
                        PurchaseLimit.item_type == item_type,
                        PurchaseLimit.week_id == week_id,
                        PurchaseLimit.count > 0,
                    )
                    .values(count=PurchaseLimit.count - 1)
                )
        except SQLAlchemyError as exc:
            raise DatabaseError("release_weekly_slot", exc) from exc

    async def get_weekly_count(self, username: str, item_type: str, week_id: str) -> int:
        try:
            async with DatabaseService.get_session() as session:
                row = await session.scalar(
                    select(PurchaseLimit).where(
                        PurchaseLimit.username == username,
                        PurchaseLimit.item_type == item_type,
                    )
                )
        except SQLAlchemyError as exc:
            raise DatabaseError("get_weekly_count", exc) from exc
        if row is None or row.week_id != week_id:
            return 0
        return row.count

    async def record_duel(self, log: Dict[str, Any]) -> bool:
        """Insert a duel log once per idempotency key; returns False on a replay."""
        try:
            async with DatabaseService.get_transaction() as session:
                return await self._insert_duel(session, log)
        except SQLAlchemyError as exc:
            raise DatabaseError("record_duel", exc) from exc

    @staticmethod
    async def _insert_duel(session: Any, log: Dict[str, Any]) -> bool:
        existing = await session.scalar(
            select(DuelLog.id).where(DuelLog.idempotency_key == log["idempotency_key"])
        )
        if existing is not None:
            return False
        created_at = log.get("created_at")
        session.add(
            DuelLog(
                idempotency_key=log["idempotency_key"],
                challenger=log["challenger"],
                target=log["target"],
                amount=int(log["amount"]),
                challenger_grid=list(log["challenger_grid"]),
                target_grid=list(log["target_grid"]),
                challenger_score=int(log["challenger_score"]),
                target_score=int(log["target_score"]),
                winner=log.get("winner"),
                pot=int(log["pot"]),
                created_at=(
                    datetime.fromtimestamp(created_at, tz=timezone.utc)
                    if created_at is not None
                    else datetime.now(timezone.utc)
                ),
            )
        )
        return True
