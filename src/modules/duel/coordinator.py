"""
Duel Coordinator
================

Purpose
-------
Run the two-party duel protocol: a challenger stakes an amount against a
target, the target accepts or declines within the response window, and an
accepted duel is resolved by one buff-free spin per side.

States
------
    CREATED -> ACCEPTED -> RESOLVED
    CREATED -> DECLINED
    CREATED -> EXPIRED      (observed by a later duel command)
    CREATED -> CANCELLED    (challenger withdrew, or a side became insolvent)

Design Notes
------------
- Expiry is lazy. Any duel command that reads a challenge older than the
  response window deletes it and emits `duel.expired`; nothing runs in the
  background.
- Resolution is one `WriteIntent` tagged with the challenge's idempotency
  key: the loser pays the stake, the winner receives it, the challenge key
  is deleted, duel statistics and streaks are updated. Debiting both stakes
  and crediting the pot therefore land together or not at all, and a retry
  of a committed resolution replays the stored receipt.
- Grids are drawn with the base jackpot chance only. Buffs, boosts, peeks
  and streak multipliers never touch a duel.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, List, Optional, Tuple

from src.core.logging.logger import get_logger
from src.core.storage.base import KeyValueStore, WriteBatch
from src.modules.achievements.service import AchievementService
from src.modules.duel.models import DuelChallenge, DuelOutcome, DuelStatus
from src.modules.duel.repository import DuelRepository
from src.modules.duel.scoring import CHALLENGER, decide_winner, score_grid
from src.modules.economy.ledger import EconomyLedger, WriteIntent
from src.modules.player.models import AccountRecord
from src.modules.player.service import PlayerService
from src.modules.shared import keys
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    AccountRequiredError,
    ChallengeExpiredError,
    InsufficientFundsError,
    InvalidOperationError,
    InvalidTargetError,
    NoActiveChallengeError,
    ValidationError,
)
from src.modules.shared.timeutils import Clock, system_clock
from src.modules.shared.validators import (
    validate_cooldown,
    validate_not_self,
    validate_sufficient_funds,
)
from src.modules.slots.symbols import SymbolGenerator

if TYPE_CHECKING:
    from src.core.config.game_config import GameConfig
    from src.core.event.bus import EventBus

DUEL_ACTION = "duel"
FIRST_DUEL = "first_duel"

# Challenge keys outlive the response window slightly so that a late
# accept is reported as expired rather than as missing.
CHALLENGE_TTL_GRACE_SECONDS = 10


class DuelCoordinator(BaseService):
    def __init__(
        self,
        store: KeyValueStore,
        ledger: EconomyLedger,
        players: PlayerService,
        achievements: AchievementService,
        generator: SymbolGenerator,
        game_config: GameConfig,
        event_bus: EventBus,
        *,
        clock: Clock = system_clock,
    ) -> None:
        super().__init__(game_config, event_bus, get_logger(__name__))
        self._store = store
        self._repo = DuelRepository(store)
        self._ledger = ledger
        self._players = players
        self._achievements = achievements
        self._generator = generator
        self._clock = clock

    @property
    def repository(self) -> DuelRepository:
        return self._repo

    # ========================================================================
    # PUBLIC API - Challenge lifecycle
    # ========================================================================

    async def create(self, challenger: str, target: str, amount: int) -> DuelChallenge:
        """
        Open a challenge from `challenger` to `target`.

        Raises:
            InvalidTargetError: Self-challenge, unknown/banned/opted-out target,
                or a target who cannot cover the stake
            ValidationError: Stake below the minimum
            AccountRequiredError: Challenger cannot play
            InvalidOperationError: Challenger opted out or already has an open challenge
            CooldownActiveError: Challenger is within the duel cooldown
            InsufficientFundsError: Challenger cannot cover the stake
        """
        cfg = self._config.duel
        name = keys.normalize(challenger)
        other = keys.normalize(target)
        now = self._clock()

        # Step 1: Shape and identity
        validate_not_self(name, other)
        if amount < cfg.min_stake:
            raise ValidationError("amount", f"minimum duel stake is {cfg.min_stake}")

        # Step 2: Both parties
        account = await self._players.require_playable(name)
        if account.duel_opt_out:
            raise InvalidOperationError(DUEL_ACTION, "you opted out of duels")
        await self._require_target(other)

        # Step 3: Open challenge and cooldown
        existing = await self._repo.get(name)
        if existing is not None:
            if not existing.is_expired(now, cfg.response_window_seconds):
                raise InvalidOperationError(
                    DUEL_ACTION, f"challenge to {existing.target} is still open"
                )
            await self._expire(existing, now)
        cooldown = await self._repo.read_cooldown(name)
        validate_cooldown(DUEL_ACTION, cooldown.value, now)

        # Step 4: Solvency of both sides
        challenger_balance, target_balance = await asyncio.gather(
            self._ledger.get_balance(name), self._ledger.get_balance(other)
        )
        validate_sufficient_funds(name, amount, challenger_balance)
        if target_balance < amount:
            raise InvalidTargetError(other, "cannot cover the stake")

        # Step 5: Persist challenge and cooldown together
        challenge = DuelChallenge(challenger=name, target=other, amount=amount, created_at=now)
        batch = WriteBatch()
        batch.put(
            keys.duel_key(name),
            challenge.to_document(),
            cfg.response_window_seconds + CHALLENGE_TTL_GRACE_SECONDS,
        )
        batch.put(keys.duel_cooldown_key(name), now + cfg.cooldown_seconds, cfg.cooldown_seconds)
        await self._store.put_many(batch)

        self.log_operation("duel_create", challenger=name, target=other, amount=amount)
        await self.emit_event(
            "duel.created", {"challenger": name, "target": other, "amount": amount}
        )
        return challenge

    async def accept(self, target: str) -> DuelOutcome:
        """
        Accept the oldest open challenge addressed to `target` and resolve it.

        Raises:
            NoActiveChallengeError: Nothing addressed to the player
            ChallengeExpiredError: Only stale challenges were found
            AccountRequiredError: Target cannot play
            InsufficientFundsError: A side can no longer cover the stake
                (the challenge is cancelled)
            StorageUnavailableError: A critical read or the resolution write failed
        """
        start = time.perf_counter()
        name = keys.normalize(target)
        now = self._clock()

        # Step 1: Locate a live challenge
        challenge = await self._live_challenge_for(name, now)
        await self._players.require_playable(name)

        # Step 2: Solvency re-check; balances may have moved since creation
        balances = await asyncio.gather(
            self._ledger.get_balance(challenge.challenger), self._ledger.get_balance(name)
        )
        for username, balance in zip((challenge.challenger, name), balances):
            if balance < challenge.amount:
                await self._close(challenge, DuelStatus.CANCELLED, reason="insufficient_funds")
                raise InsufficientFundsError(username, challenge.amount, balance)

        # Step 3: Buff-free roll for both sides
        cfg = self._config
        chance = cfg.symbols.jackpot_chance
        challenger_grid = tuple(self._generator.draw_grid(chance))
        target_grid = tuple(self._generator.draw_grid(chance))
        challenger_score = score_grid(challenger_grid, cfg.duel.tiebreak, cfg.symbols.jackpot_symbol)
        target_score = score_grid(target_grid, cfg.duel.tiebreak, cfg.symbols.jackpot_symbol)
        side = decide_winner(challenger_score, target_score)
        winner: Optional[str] = None
        if side is not None:
            winner = challenge.challenger if side == CHALLENGER else challenge.target

        # Step 4: One intent for stakes, pot, stats and log
        intent = await self._resolution_intent(
            challenge, winner, now,
            grids=(challenger_grid, target_grid),
            scores=(challenger_score.value, target_score.value),
        )
        receipt = await self._ledger.commit(intent)

        # Step 5: Achievements for both sides
        unlocked = {}
        for username in (challenge.challenger, challenge.target):
            unlocked[username] = await self._achievements.process(
                username,
                receipt.stats_for(username),
                [FIRST_DUEL],
                balance=receipt.balance(username),
            )

        outcome = DuelOutcome(
            challenge=challenge,
            challenger_grid=challenger_grid,
            target_grid=target_grid,
            challenger_score=challenger_score,
            target_score=target_score,
            winner=winner,
            challenger_balance=receipt.balance(challenge.challenger),
            target_balance=receipt.balance(challenge.target),
            achievements=unlocked,
        )
        self.log.info(
            "Duel resolved",
            extra={
                "challenger": challenge.challenger,
                "target": challenge.target,
                "amount": challenge.amount,
                "winner": winner,
                "challenger_score": challenger_score.value,
                "target_score": target_score.value,
                "replayed": receipt.replayed,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        await self.emit_event(
            "duel.resolved",
            {
                "challenger": challenge.challenger,
                "target": challenge.target,
                "amount": challenge.amount,
                "winner": winner,
                "pot": outcome.pot,
            },
        )
        return outcome

    async def decline(self, target: str) -> DuelChallenge:
        """
        Raises:
            NoActiveChallengeError: Nothing addressed to the player
            ChallengeExpiredError: Only stale challenges were found
        """
        name = keys.normalize(target)
        challenge = await self._live_challenge_for(name, self._clock())
        await self._close(challenge, DuelStatus.DECLINED)
        return challenge

    async def cancel(self, challenger: str) -> DuelChallenge:
        """
        Withdraw the player's own open challenge.

        Raises:
            NoActiveChallengeError: The player has no open challenge
            ChallengeExpiredError: The challenge was already stale
        """
        name = keys.normalize(challenger)
        now = self._clock()
        challenge = await self._repo.get(name)
        if challenge is None:
            raise NoActiveChallengeError(name)
        if challenge.is_expired(now, self._config.duel.response_window_seconds):
            await self._expire(challenge, now)
            raise ChallengeExpiredError(challenge.challenger, challenge.target, challenge.age(now))
        await self._close(challenge, DuelStatus.CANCELLED, reason="withdrawn")
        return challenge

    async def set_opt_out(self, username: str, opted_out: bool) -> AccountRecord:
        return await self._players.set_duel_opt_out(username, opted_out)

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def outgoing(self, challenger: str) -> Optional[DuelChallenge]:
        """The player's open challenge, if it is still within the window."""
        challenge = await self._repo.get(challenger)
        now = self._clock()
        if challenge is None or challenge.is_expired(now, self._config.duel.response_window_seconds):
            return None
        return challenge

    async def incoming(self, target: str) -> List[DuelChallenge]:
        now = self._clock()
        window = self._config.duel.response_window_seconds
        return [c for c in await self._repo.incoming(target) if not c.is_expired(now, window)]

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _require_target(self, target: str) -> AccountRecord:
        try:
            account = await self._players.require_playable(target)
        except AccountRequiredError as exc:
            raise InvalidTargetError(target, exc.reason) from exc
        if account.duel_opt_out:
            raise InvalidTargetError(target, "opted out of duels")
        return account

    async def _live_challenge_for(self, target: str, now: float) -> DuelChallenge:
        window = self._config.duel.response_window_seconds
        stale: List[DuelChallenge] = []
        for challenge in await self._repo.incoming(target):
            if not challenge.is_expired(now, window):
                for old in stale:
                    await self._expire(old, now)
                return challenge
            stale.append(challenge)

        if not stale:
            raise NoActiveChallengeError(target)
        for old in stale:
            await self._expire(old, now)
        newest = stale[-1]
        raise ChallengeExpiredError(newest.challenger, newest.target, newest.age(now))

    async def _expire(self, challenge: DuelChallenge, now: float) -> None:
        await self._repo.delete(challenge.challenger)
        self.log_operation(
            "duel_expired",
            challenger=challenge.challenger,
            target=challenge.target,
            age_seconds=round(challenge.age(now), 1),
        )
        await self.emit_event(
            "duel.expired",
            {"challenger": challenge.challenger, "target": challenge.target, "amount": challenge.amount},
        )

    async def _close(
        self, challenge: DuelChallenge, status: DuelStatus, reason: Optional[str] = None
    ) -> None:
        await self._repo.delete(challenge.challenger)
        self.log_operation(
            f"duel_{status.value}",
            challenger=challenge.challenger,
            target=challenge.target,
            reason=reason,
        )
        await self.emit_event(
            f"duel.{status.value}",
            {
                "challenger": challenge.challenger,
                "target": challenge.target,
                "amount": challenge.amount,
                "reason": reason,
            },
        )

    async def _resolution_intent(
        self,
        challenge: DuelChallenge,
        winner: Optional[str],
        now: float,
        *,
        grids: Tuple[Tuple[str, ...], Tuple[str, ...]],
        scores: Tuple[int, int],
    ) -> WriteIntent:
        cfg = self._config.duel
        amount = challenge.amount
        intent = WriteIntent(
            reason="duel",
            idempotency_key=challenge.idempotency_key,
            bank_delta=0,
        )
        intent.delete(keys.duel_key(challenge.challenger))

        for username in (challenge.challenger, challenge.target):
            intent.increment_stat(username, "duelsPlayed")

        if winner is not None:
            loser = challenge.target if winner == challenge.challenger else challenge.challenger
            intent.add_delta(loser, -amount).add_delta(winner, amount)
            intent.increment_stat(winner, "duelsWon")
            intent.increment_stat(winner, "totalDuelWinnings", amount * 2)
            intent.increment_stat(loser, "duelsLost")

            streak = await self._repo.read_streak(winner) + 1
            intent.put(keys.duel_streak_key(winner), streak, cfg.streak_ttl_seconds)
            intent.max_stat(winner, "maxDuelStreak", streak)
            intent.put(keys.duel_streak_key(loser), 0, cfg.streak_ttl_seconds)

        intent.duel_log = {
            "idempotency_key": challenge.idempotency_key,
            "challenger": challenge.challenger,
            "target": challenge.target,
            "amount": amount,
            "challenger_grid": list(grids[0]),
            "target_grid": list(grids[1]),
            "challenger_score": scores[0],
            "target_score": scores[1],
            "winner": winner,
            "pot": amount * 2,
            "created_at": now,
        }
        return intent
