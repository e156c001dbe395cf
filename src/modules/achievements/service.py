"""
Achievement Service
===================

Purpose
-------
Run the achievement engine after every ledger-affecting action, persist
new unlocks exactly once and pay (or defer) their rewards.

Responsibilities
----------------
- `process()`: one unlock batch for one player, from the statistics the
  ledger just wrote plus the events the action observed
- `overview()`: unlocked / locked catalog with progress for display
- `pay_pending_rewards()`: credit rewards that accrued while payouts were
  disabled
- `revoke()`: admin-only removal of an unlock

Design Notes
------------
- The rewards flag is read once per batch. Every unlock of the batch
  follows the same rule even if the catalog is swapped mid-way.
- Rewards disabled: the unlock is recorded and the reward accrues under
  `pending_rewards`. Rewards enabled: one ledger credit for the batch,
  tagged with an idempotency key built from the unlocked ids.
- The unlock record is written before the reward is credited. A failed
  credit is logged and never rolls the unlock back; a failed unlock write
  means nothing was earned and the next action retries detection.
- Achievements never break the action that triggered them: every failure
  in `process()` is logged and an empty tuple is returned.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional, Tuple

from src.core.exceptions import StorageUnavailableError
from src.core.logging.logger import get_logger
from src.modules.achievements.engine import (
    AchievementProgress,
    AchievementRecord,
    collect_triple,
    detect_unlocks,
    progress_overview,
    total_reward,
)
from src.modules.achievements.repository import AchievementRepository
from src.modules.economy.ledger import EconomyLedger, WriteIntent
from src.modules.shared import keys
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    GameDomainException,
    InvalidOperationError,
    NotFoundError,
)
from src.modules.shared.timeutils import Clock, system_clock

if TYPE_CHECKING:
    from src.core.config.game_config import GameConfig
    from src.core.event.bus import EventBus

LUCKY_BALANCE = "lucky_777"
UNLOCKED_EVENT = "achievement.unlocked"


class AchievementService(BaseService):
    def __init__(
        self,
        repository: AchievementRepository,
        ledger: EconomyLedger,
        game_config: GameConfig,
        event_bus: EventBus,
        *,
        clock: Clock = system_clock,
    ) -> None:
        super().__init__(game_config, event_bus, get_logger(__name__))
        self._repo = repository
        self._ledger = ledger
        self._clock = clock

    # ========================================================================
    # PUBLIC API - Unlocking
    # ========================================================================

    async def process(
        self,
        username: str,
        stats: Mapping[str, int],
        events: Iterable[str] = (),
        *,
        balance: Optional[int] = None,
        triple_symbol: Optional[str] = None,
    ) -> Tuple[str, ...]:
        """
        Detect and record newly earned achievements.

        Args:
            username: Player the action belonged to
            stats: Statistic counters after the action
            events: Event achievement ids observed by the action
            balance: Balance after the action, for balance thresholds
            triple_symbol: Symbol of a displayed triple, if any

        Returns:
            Newly unlocked achievement ids (empty on any failure)
        """
        name = keys.normalize(username)
        config = self._config.achievements
        rewards_enabled = config.rewards_enabled

        try:
            record = await self._repo.load(name)
        except StorageUnavailableError:
            self.log.warning(
                "Achievement record unavailable, detection skipped",
                extra={"username": name},
            )
            return ()

        observed = list(events)
        if triple_symbol is not None:
            record, triple_events = collect_triple(record, triple_symbol, config)
            observed.extend(triple_events)

        view: Dict[str, int] = dict(stats)
        if balance is not None:
            view["balance"] = balance
            if balance == config.lucky_balance:
                observed.append(LUCKY_BALANCE)

        new_ids = detect_unlocks(view, record.unlocked_at, config, observed)
        if not new_ids and triple_symbol is None:
            return ()

        reward = total_reward(new_ids, config)
        updated = record.with_unlocks(
            new_ids, self._clock(), pending=0 if rewards_enabled else reward
        )
        try:
            await self._repo.save(name, updated)
        except StorageUnavailableError as exc:
            self.log_error("process", exc, username=name, achievement_ids=list(new_ids))
            return ()

        if not new_ids:
            return ()

        await self._repo.increment_counters(new_ids)
        if rewards_enabled and reward > 0:
            await self._credit(name, new_ids, reward)

        self.log_operation(
            "achievements_unlocked",
            username=name,
            achievement_ids=list(new_ids),
            reward=reward,
            rewards_enabled=rewards_enabled,
        )
        for achievement_id in new_ids:
            await self.emit_event(
                UNLOCKED_EVENT,
                {
                    "username": name,
                    "achievement_id": achievement_id,
                    "reward": config.catalog[achievement_id].reward if rewards_enabled else 0,
                },
            )
        return new_ids

    async def _credit(self, username: str, ids: Tuple[str, ...], amount: int) -> None:
        intent = WriteIntent(
            reason="achievement_reward",
            idempotency_key=f"achievement:{username}:{'+'.join(ids)}",
        ).add_delta(username, amount)
        try:
            await self._ledger.commit(intent)
        except (GameDomainException, StorageUnavailableError) as exc:
            self.log_error("achievement_reward", exc, username=username, achievement_ids=list(ids))

    # ========================================================================
    # PUBLIC API - Queries
    # ========================================================================

    async def overview(self, username: str) -> List[AchievementProgress]:
        name = keys.normalize(username)
        result = await self._repo.read(name)
        if result.failed:
            self.log.warning("Achievement record unavailable, showing none", extra={"username": name})
        record = AchievementRecord.from_document(result.value)
        stats = (await self._ledger.store.read(keys.stats_key(name), {})).value
        view = dict(stats) if isinstance(stats, Mapping) else {}
        view["balance"] = int((await self._ledger.store.read(keys.balance_key(name), 0)).value)
        return progress_overview(record, view, self._config.achievements)

    async def rarity(self) -> Dict[str, int]:
        """Global unlock count per catalog id."""
        return await self._repo.unlock_counts(self._config.achievements.catalog)

    # ========================================================================
    # PUBLIC API - Admin
    # ========================================================================

    async def pay_pending_rewards(self, username: str) -> int:
        """
        Credit rewards that accrued while payouts were disabled.

        Returns the credited amount (0 while payouts are still disabled).
        """
        if not self._config.achievements.rewards_enabled:
            return 0
        name = keys.normalize(username)
        record = await self._repo.load(name)
        if record.pending_rewards <= 0:
            return 0
        amount = record.pending_rewards
        intent = WriteIntent(reason="achievement_pending_rewards").add_delta(name, amount)
        intent.put(
            keys.achievements_key(name),
            AchievementRecord(record.unlocked_at, record.triples, 0).to_document(),
        )
        await self._ledger.commit(intent)
        self.log_operation("pay_pending_rewards", username=name, amount=amount)
        return amount

    async def revoke(self, username: str, achievement_id: str, *, actor: str) -> None:
        """
        Raises:
            InvalidOperationError: If the actor is not an admin
            NotFoundError: If the player does not hold the achievement
        """
        if not self._config.is_admin(actor):
            raise InvalidOperationError("revoke_achievement", "admin only")
        name = keys.normalize(username)
        record = await self._repo.load(name)
        if not record.is_unlocked(achievement_id):
            raise NotFoundError("achievement", achievement_id)
        unlocked = {k: v for k, v in record.unlocked_at.items() if k != achievement_id}
        await self._repo.save(name, AchievementRecord(unlocked, record.triples, record.pending_rewards))
        await self._repo.increment_counters([achievement_id], -1)
        self.log_operation("revoke_achievement", username=name, achievement_id=achievement_id, actor=actor)
