"""
EconomyLedger - the only writer of player balances.

Purpose
-------
Every balance change in the engine is expressed as a `WriteIntent` and
committed here. An intent bundles everything one action changes: balance
deltas for one or more players, statistic increments, weekly purchase
claims, and arbitrary documents (buff sets, streaks, free spins, cooldowns,
challenge deletions). `commit()` turns it into a single `put_many` on the
primary store.

Responsibilities
----------------
- Read balances with hard-failure semantics (`StoreResult.require`)
- Reject any debit that would drive a balance below zero
  (`InsufficientFundsError`, no state change) and clamp credits at the
  configured maximum balance
- Check and increment weekly purchase limits keyed by ISO week, with the
  durable mirror's atomic claim as the check of record
- Apply statistic increments / maxima to the player's stats document
- Make intents with an idempotency key replay-safe: a committed intent
  leaves a receipt, and committing the same key again returns that receipt
  without applying anything
- Adjust the bank counter and mirror durable fields, both best-effort

Design Notes
------------
- A failed primary write propagates (`StorageUnavailableError`); a failed
  mirror write is logged at error level, published as `ledger.mirror_failed`
  and appended under `reconcile:` for an operator job, but never fails the
  action.
- Balance reads and the batch write are as close together as the store
  allows; there is no compare-and-swap, so two concurrent actions of one
  player can still lose an update. The chat layer's cooldown serializes
  spins in practice.
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from src.core.exceptions import DatabaseError, StorageUnavailableError
from src.core.logging.logger import get_logger
from src.core.storage.base import KeyValueStore, WriteBatch
from src.modules.economy.mirror import DurableMirror, LimitSnapshot, MirrorRecord
from src.modules.shared import keys
from src.modules.shared.exceptions import AccountRequiredError, LimitExceededError
from src.modules.shared.timeutils import Clock, iso_week_id, system_clock
from src.modules.shared.validators import validate_sufficient_funds, validate_weekly_limit

if TYPE_CHECKING:
    from src.core.config.game_config import EconomyConfig
    from src.core.event.bus import EventBus

logger = get_logger(__name__)

LIMIT_TTL_SECONDS = 8 * 24 * 3600
MIRROR_FAILED_EVENT = "ledger.mirror_failed"


# ============================================================================
# Write intent
# ============================================================================


@dataclass(frozen=True)
class LimitClaim:
    username: str
    item_type: str
    limit: int


@dataclass
class StatChanges:
    increments: Dict[str, int] = field(default_factory=dict)
    maxima: Dict[str, int] = field(default_factory=dict)

    def apply(self, stats: Mapping[str, Any]) -> Dict[str, int]:
        updated = {k: int(v) for k, v in stats.items() if isinstance(v, (int, float))}
        for stat, amount in self.increments.items():
            updated[stat] = updated.get(stat, 0) + amount
        for stat, value in self.maxima.items():
            updated[stat] = max(updated.get(stat, 0), value)
        return updated


@dataclass
class WriteIntent:
    """Everything one action changes, committed as one write."""

    reason: str
    idempotency_key: Optional[str] = None
    deltas: Dict[str, int] = field(default_factory=dict)
    batch: WriteBatch = field(default_factory=WriteBatch)
    stats: Dict[str, StatChanges] = field(default_factory=dict)
    limits: List[LimitClaim] = field(default_factory=list)
    mirror_items: Dict[Tuple[str, str], Any] = field(default_factory=dict)
    streaks: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    duel_log: Optional[Dict[str, Any]] = None
    bank_delta: Optional[int] = None
    create_accounts: Tuple[str, ...] = ()

    def add_delta(self, username: str, amount: int) -> "WriteIntent":
        name = keys.normalize(username)
        self.deltas[name] = self.deltas.get(name, 0) + amount
        return self

    def _stats_for(self, username: str) -> StatChanges:
        return self.stats.setdefault(keys.normalize(username), StatChanges())

    def increment_stat(self, username: str, stat: str, amount: int = 1) -> "WriteIntent":
        if amount:
            changes = self._stats_for(username)
            changes.increments[stat] = changes.increments.get(stat, 0) + amount
        return self

    def max_stat(self, username: str, stat: str, value: int) -> "WriteIntent":
        changes = self._stats_for(username)
        changes.maxima[stat] = max(changes.maxima.get(stat, 0), value)
        return self

    def claim_limit(self, username: str, item_type: str, limit: int) -> "WriteIntent":
        self.limits.append(LimitClaim(keys.normalize(username), item_type, limit))
        return self

    def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> "WriteIntent":
        self.batch.put(key, value, ttl_seconds)
        return self

    def delete(self, key: str) -> "WriteIntent":
        self.batch.delete(key)
        return self

    def mirror_item(self, username: str, item_key: str, value: Any) -> "WriteIntent":
        self.mirror_items[(keys.normalize(username), item_key)] = value
        return self

    def mirror_streak(self, username: str, snapshot: Dict[str, Any]) -> "WriteIntent":
        self.streaks[keys.normalize(username)] = dict(snapshot)
        return self

    @property
    def players(self) -> List[str]:
        return sorted(set(self.deltas) | set(self.stats))


@dataclass(frozen=True)
class LedgerReceipt:
    reason: str
    balances: Mapping[str, int]
    previous: Mapping[str, int]
    stats: Mapping[str, Mapping[str, int]]
    week_id: str
    idempotency_key: Optional[str] = None
    replayed: bool = False

    def balance(self, username: str) -> int:
        return self.balances[keys.normalize(username)]

    def delta(self, username: str) -> int:
        name = keys.normalize(username)
        return self.balances[name] - self.previous[name]

    def stats_for(self, username: str) -> Mapping[str, int]:
        return self.stats.get(keys.normalize(username), MappingProxyType({}))

    def to_document(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "balances": dict(self.balances),
            "previous": dict(self.previous),
            "stats": {k: dict(v) for k, v in self.stats.items()},
            "week_id": self.week_id,
            "idempotency_key": self.idempotency_key,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "LedgerReceipt":
        return cls(
            reason=str(doc.get("reason", "")),
            balances=MappingProxyType({k: int(v) for k, v in doc.get("balances", {}).items()}),
            previous=MappingProxyType({k: int(v) for k, v in doc.get("previous", {}).items()}),
            stats=MappingProxyType(
                {k: MappingProxyType(dict(v)) for k, v in doc.get("stats", {}).items()}
            ),
            week_id=str(doc.get("week_id", "")),
            idempotency_key=doc.get("idempotency_key"),
            replayed=True,
        )


# ============================================================================
# Ledger
# ============================================================================


class EconomyLedger:
    def __init__(
        self,
        store: KeyValueStore,
        economy: EconomyConfig,
        event_bus: EventBus,
        *,
        mirror: Optional[DurableMirror] = None,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self._economy = economy
        self._events = event_bus
        self._mirror = mirror
        self._clock = clock

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get_balance(self, username: str) -> int:
        """
        Current balance; 0 for names without an account. Never creates one.

        Raises:
            StorageUnavailableError: If the store cannot be read
        """
        return int((await self._store.read(keys.balance_key(username), 0)).require())

    async def get_bank(self) -> int:
        result = await self._store.read(keys.BANK_KEY, self._economy.bank_start)
        return int(result.value)

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    async def apply_delta(self, username: str, delta: int, reason: str) -> int:
        """
        Change one balance and return the new value.

        Raises:
            InsufficientFundsError: If a debit would leave a negative balance
            StorageUnavailableError: If the write fails
        """
        receipt = await self.commit(WriteIntent(reason=reason).add_delta(username, delta))
        return receipt.balance(username)

    async def commit(self, intent: WriteIntent) -> LedgerReceipt:
        """
        Validate and apply a write intent as one primary-store write.

        Raises:
            InsufficientFundsError: A debit would drive a balance negative
            LimitExceededError: A weekly purchase claim is over its cap
            AccountRequiredError: A delta targets a name without an account
            StorageUnavailableError: A critical read or the write failed
        """
        start = time.perf_counter()
        now = self._clock()
        week_id = iso_week_id(now)

        if intent.idempotency_key:
            stored = await self._store.read(keys.receipt_key(intent.idempotency_key), None)
            if stored.found and isinstance(stored.value, Mapping):
                logger.info(
                    "Replayed committed write intent",
                    extra={"idempotency_key": intent.idempotency_key, "reason": intent.reason},
                )
                return LedgerReceipt.from_document(stored.value)

        players = intent.players
        creatable = {keys.normalize(n) for n in intent.create_accounts}
        balance_reads = await asyncio.gather(
            *(self._store.read(keys.balance_key(name), 0) for name in players)
        )
        previous: Dict[str, int] = {}
        balances: Dict[str, int] = {}
        for name, result in zip(players, balance_reads):
            current = int(result.require())
            if name in intent.deltas and not result.found and name not in creatable:
                raise AccountRequiredError(name, "no account")
            delta = intent.deltas.get(name, 0)
            if delta < 0:
                validate_sufficient_funds(name, -delta, current)
            previous[name] = current
            balances[name] = min(self._economy.max_balance, current + delta)

        batch = WriteBatch(list(intent.batch.writes), list(intent.batch.deletes))
        for name in intent.deltas:
            batch.put(keys.balance_key(name), balances[name])

        mirror = MirrorRecord(
            idempotency_key=intent.idempotency_key,
            items=dict(intent.mirror_items),
            streaks=dict(intent.streaks),
            duel_log=intent.duel_log,
        )
        claimed = await self._claim_limits(intent, batch, mirror, now, week_id)

        stats: Dict[str, Dict[str, int]] = {}
        if intent.stats:
            stat_reads = await asyncio.gather(
                *(self._store.read(keys.stats_key(name), {}) for name in intent.stats)
            )
            for (name, changes), result in zip(intent.stats.items(), stat_reads):
                current_stats = result.value if isinstance(result.value, Mapping) else {}
                stats[name] = changes.apply(current_stats)
                batch.put(keys.stats_key(name), stats[name])

        receipt = LedgerReceipt(
            reason=intent.reason,
            balances=MappingProxyType(balances),
            previous=MappingProxyType(previous),
            stats=MappingProxyType({k: MappingProxyType(v) for k, v in stats.items()}),
            week_id=week_id,
            idempotency_key=intent.idempotency_key,
        )
        if intent.idempotency_key:
            batch.put(
                keys.receipt_key(intent.idempotency_key),
                receipt.to_document(),
                self._economy.receipt_ttl_seconds,
            )

        try:
            await self._store.put_many(batch)
        except StorageUnavailableError:
            logger.error(
                "Ledger write failed",
                extra={
                    "reason": intent.reason,
                    "players": players,
                    "keys": len(batch),
                    "idempotency_key": intent.idempotency_key,
                },
                exc_info=True,
            )
            await self._release_limits(claimed, week_id)
            raise

        bank_delta = intent.bank_delta
        if bank_delta is None:
            bank_delta = -sum(balances[n] - previous[n] for n in intent.deltas)
        await self._adjust_bank(bank_delta)
        await self._mirror_best_effort(mirror, intent.reason)

        logger.info(
            "Ledger committed",
            extra={
                "reason": intent.reason,
                "deltas": {n: balances[n] - previous[n] for n in intent.deltas},
                "keys": len(batch),
                "idempotency_key": intent.idempotency_key,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return receipt

    # ------------------------------------------------------------------ #
    # Weekly limits
    # ------------------------------------------------------------------ #

    async def _claim_limits(
        self,
        intent: WriteIntent,
        batch: WriteBatch,
        mirror: MirrorRecord,
        now: float,
        week_id: str,
    ) -> List[LimitClaim]:
        claimed: List[LimitClaim] = []
        for claim in intent.limits:
            key = keys.limit_key(claim.username, claim.item_type)
            stored = (await self._store.read(key, {})).require()
            stored = stored if isinstance(stored, Mapping) else {}
            count = validate_weekly_limit(
                claim.item_type,
                stored.get("week"),
                int(stored.get("count", 0)),
                claim.limit,
                now,
                week_id,
            )

            if self._mirror is not None:
                try:
                    granted = await self._mirror.claim_weekly_slot(
                        claim.username, claim.item_type, week_id, claim.limit
                    )
                except DatabaseError:
                    logger.warning(
                        "Durable weekly claim unavailable, using primary counter",
                        extra={"username": claim.username, "item_type": claim.item_type},
                        exc_info=True,
                    )
                else:
                    if not granted:
                        await self._release_limits(claimed, week_id)
                        raise LimitExceededError(claim.item_type, claim.limit, week_id)
                    claimed.append(claim)

            batch.put(key, {"week": week_id, "count": count + 1}, LIMIT_TTL_SECONDS)
            mirror.limits.append(LimitSnapshot(claim.username, claim.item_type, week_id, count + 1))
        return claimed

    async def _release_limits(self, claimed: List[LimitClaim], week_id: str) -> None:
        if self._mirror is None:
            return
        for claim in claimed:
            try:
                await self._mirror.release_weekly_slot(claim.username, claim.item_type, week_id)
            except DatabaseError:
                logger.error(
                    "Could not release durable weekly slot",
                    extra={"username": claim.username, "item_type": claim.item_type, "week_id": week_id},
                    exc_info=True,
                )

    # ------------------------------------------------------------------ #
    # Best-effort side effects
    # ------------------------------------------------------------------ #

    async def _adjust_bank(self, delta: int) -> None:
        if delta == 0:
            return
        try:
            current = await self._store.read(keys.BANK_KEY, None)
            current.require()
            if current.found:
                await self._store.increment(keys.BANK_KEY, delta)
            else:
                await self._store.put(keys.BANK_KEY, self._economy.bank_start + delta)
        except StorageUnavailableError:
            logger.warning("Bank update skipped", extra={"delta": delta}, exc_info=True)

    async def _mirror_best_effort(self, record: MirrorRecord, reason: str) -> None:
        if self._mirror is None or record.is_empty:
            return
        try:
            await self._mirror.mirror(record)
        except DatabaseError as exc:
            logger.error(
                "Durable mirror failed; queued for reconciliation",
                extra={"reason": reason, "idempotency_key": record.idempotency_key},
                exc_info=True,
            )
            document = record.to_document()
            marker = record.idempotency_key or reason
            try:
                await self._store.put(
                    keys.reconcile_key(math.floor(self._clock() * 1000), marker), document
                )
            except StorageUnavailableError:
                logger.error("Could not queue reconciliation record", extra={"reason": reason})
            await self._events.publish(
                MIRROR_FAILED_EVENT,
                {"reason": reason, "error": str(exc), "record": document},
            )

    async def pending_reconciliation(self, limit: Optional[int] = None) -> List[str]:
        return await self._store.list_keys(keys.RECONCILE_PREFIX, limit)
