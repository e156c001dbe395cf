"""
Unit tests for SlotService, driven through the wired GameEngine.

Purpose
-------
A spin gates the player, picks the stake, rolls, layers boosts, streak and
buffs on the payout and commits everything in one ledger write. A stored
peek grid makes the rolled grid deterministic, so most tests plant one.

Test Coverage
-------------
- Stake parsing (fixed amounts, unlocks, all-in)
- Base spin cost, payout and achievements
- Insurance refund, happy hour, free spins, wild card
- Streak multiplier, combo bonuses and the hot streak on the fifth win in a row
- Hourly jackpot (once per hour)
- Gates: disclaimer, self-ban, cooldown, insufficient funds

Testing Strategy
----------------
- Frozen clock; cooldowns are passed with clock.advance(30) or (31), never
  landing on the lucky second of the hour
- Balances and buffs are asserted from the primary store after the spin
"""

from datetime import datetime, timezone

import pytest

from src.modules.buffs.models import BuffSet, OneShotBuff, TimedBuff, UsesBuff
from src.modules.economy.free_spins import FreeSpinPool
from src.modules.shared import keys
from src.modules.shared.exceptions import (
    AccountRequiredError,
    CooldownActiveError,
    InsufficientFundsError,
    InvalidOperationError,
    ValidationError,
)
from src.modules.slots.service import SPIN_COMPLETED_EVENT, SpinBet, parse_spin_amount

LOSS_GRID = ["🍒", "🍋", "🍊"]
CHERRY_PAIR = ["🍒", "🍒", "🍋"]
STAR_TRIPLE = ["⭐", "⭐", "⭐"]


@pytest.fixture
def peek(give_buffs, clock):
    """Plant the grid the next spin of a player will show."""

    async def _peek(username, grid, *extra):
        await give_buffs(username, OneShotBuff("peek", {"grid": list(grid)}, clock() + 3600), *extra)

    return _peek


# ============================================================================
# STAKE PARSING
# ============================================================================


@pytest.mark.unit
class TestParseSpinAmount:
    """Requested amount to cost and bet multiplier."""

    def test_no_amount_is_base_cost(self, game_config):
        assert parse_spin_amount(None, 100, frozenset(), game_config.spin) == SpinBet(10, 1)
        assert parse_spin_amount("10", 100, frozenset(), game_config.spin) == SpinBet(10, 1)

    def test_fixed_amount_needs_unlock(self, game_config):
        with pytest.raises(InvalidOperationError):
            parse_spin_amount(20, 100, frozenset(), game_config.spin)

        bet = parse_spin_amount(50, 100, frozenset({"slots_50"}), game_config.spin)

        assert bet == SpinBet(50, 5)

    @pytest.mark.parametrize("amount", [5, 15, 150])
    def test_unavailable_stakes(self, game_config, amount):
        with pytest.raises(ValidationError):
            parse_spin_amount(amount, 1000, frozenset({"slots_20"}), game_config.spin)

    def test_free_amount_unlock(self, game_config):
        unlocks = frozenset({"slots_all"})

        assert parse_spin_amount(37, 100, unlocks, game_config.spin) == SpinBet(37, 3)
        assert parse_spin_amount(7, 100, unlocks, game_config.spin) == SpinBet(7, 1)
        with pytest.raises(InsufficientFundsError):
            parse_spin_amount(101, 100, unlocks, game_config.spin)

    def test_all_in(self, game_config):
        bet = parse_spin_amount("all", 255, frozenset({"slots_all"}), game_config.spin)

        assert bet == SpinBet(255, 25, all_in=True)

    def test_all_in_requires_unlock(self, game_config):
        with pytest.raises(InvalidOperationError):
            parse_spin_amount("all", 255, frozenset(), game_config.spin)


# ============================================================================
# SPIN OUTCOMES
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestSpinOutcomes:
    """Payouts and the single committed write."""

    async def test_pair_win_on_fresh_account(self, engine, make_player, peek, store):
        # Arrange
        name = await make_player("Dachsfan")
        await peek(name, CHERRY_PAIR)

        # Act
        result = await engine.spin("Dachsfan")

        # Assert
        assert result.grid == tuple(CHERRY_PAIR)
        assert result.cost == 10
        assert result.points == 5
        assert result.balance == 95
        assert result.achievements == ("first_spin", "first_win")
        assert await store.get(keys.balance_key(name)) == 95
        stats = await store.get(keys.stats_key(name))
        assert stats["totalSpins"] == 1
        assert stats["wins"] == 1
        assert stats["playDays"] == 1
        assert await store.get(keys.buffs_key(name)) == {}

    async def test_loss_with_insurance_refunds_half(self, engine, make_player, peek, store, clock):
        # Arrange
        name = await make_player("dachsfan")
        await peek(name, LOSS_GRID, UsesBuff("insurance", 5))

        # Act
        result = await engine.spin(name)

        # Assert
        assert result.points == 0
        assert result.insurance_refund == 5
        assert result.balance == 95
        assert "insurance_save" in result.achievements
        buffs = BuffSet.from_document(await store.get(keys.buffs_key(name)))
        assert buffs.active("insurance", clock()).uses == 4
        stats = await store.get(keys.stats_key(name))
        assert stats["totalLost"] == 5
        assert stats["insuranceTriggers"] == 1

    async def test_happy_hour_halves_cost(self, engine, make_player, peek, clock):
        name = await make_player("dachsfan")
        await peek(name, LOSS_GRID, TimedBuff("happy_hour", clock() + 3600))

        result = await engine.spin(name)

        assert result.cost == 5
        assert result.balance == 95

    async def test_free_spin_uses_stored_multiplier(self, engine, make_player, peek, store):
        # Arrange
        name = await make_player("dachsfan")
        await store.put(keys.free_spins_key(name), {"2": 1})
        await peek(name, CHERRY_PAIR)

        # Act
        result = await engine.spin(name)

        # Assert
        assert result.free_spin_used is True
        assert result.cost == 0
        assert result.multiplier == 2
        assert result.points == 10
        assert result.balance == 110
        assert result.free_spins_remaining == 0
        assert "free_spin_win" in result.achievements
        assert FreeSpinPool.from_document(await store.get(keys.free_spins_key(name))).total == 0

    async def test_diamond_triple_awards_free_spins(self, engine, make_player, peek, store):
        name = await make_player("dachsfan")
        await peek(name, ["💎", "💎", "💎"])

        result = await engine.spin(name)

        assert result.points == 0
        assert result.free_spins_awarded == 5
        assert result.balance == 90
        assert await store.get(keys.free_spins_key(name)) == {"1": 5}

    async def test_dachs_triple(self, engine, make_player, peek):
        name = await make_player("dachsfan")
        await peek(name, ["🦡", "🦡", "🦡"])

        result = await engine.spin(name)

        assert result.points == 15000
        assert result.balance == 15090
        assert "first_dachs" in result.achievements
        assert "dachs_triple" in result.achievements

    async def test_wild_card_completes_triple(self, engine, make_player, peek):
        name = await make_player("dachsfan")
        await peek(name, CHERRY_PAIR, OneShotBuff("wild_card", {}))

        result = await engine.spin(name)

        assert result.original_grid == tuple(CHERRY_PAIR)
        assert result.grid == ("🍒", "🍒", "🍒")
        assert result.points == 50
        assert "wild_card_win" in result.achievements

    async def test_second_win_pays_combo_bonus(self, engine, make_player, peek, clock):
        # Arrange
        name = await make_player("dachsfan")
        await peek(name, STAR_TRIPLE)
        first = await engine.spin(name)
        clock.advance(31)
        await peek(name, STAR_TRIPLE)

        # Act
        result = await engine.spin(name)

        # Assert
        assert first.points == 500
        assert result.streak_multiplier == 1.1
        assert result.points == 550
        assert result.bonuses == (("combo", 10),)
        assert result.total_win == 560
        assert result.balance == first.balance - 10 + 560

    async def test_hot_streak_on_fifth_consecutive_win(self, engine, make_player, peek, clock, store):
        # Arrange
        name = await make_player("dachsfan", balance=1000)
        results = []

        # Act
        for _ in range(6):
            await peek(name, STAR_TRIPLE)
            results.append(await engine.spin(name))
            clock.advance(31)

        # Assert
        assert [r.bonuses for r in results] == [
            (),
            (("combo", 10),),
            (("combo", 30),),
            (("combo", 100),),
            (("hot_streak", 500),),
            (),
        ]
        assert [r.streak_multiplier for r in results] == [1.0, 1.1, 1.2, 1.3, 1.4, 1.5]
        assert results[4].points == 700
        assert results[4].total_win == 1200
        assert "hot_streak" in results[4].achievements
        assert results[5].points == 750
        streak = await store.get(keys.streak_key(name))
        assert streak["wins"] == 1
        assert streak["multiplier_streak"] == 6

    async def test_higher_stake_after_unlock(self, engine, make_player, peek, clock):
        # Arrange
        name = await make_player("dachsfan", balance=600)
        await engine.purchase(name, 13)
        clock.advance(1)
        await peek(name, CHERRY_PAIR)

        # Act
        result = await engine.spin(name, "20")

        # Assert
        assert result.cost == 20
        assert result.multiplier == 2
        assert result.points == 10
        assert result.balance == 90

    async def test_spin_completed_event(self, engine, make_player, peek, record_events):
        name = await make_player("dachsfan")
        await peek(name, LOSS_GRID)
        events = record_events(SPIN_COMPLETED_EVENT)

        await engine.spin(name)

        assert len(events) == 1
        assert events[0]["username"] == name
        assert events[0]["balance"] == 90


@pytest.mark.unit
@pytest.mark.asyncio
class TestHourlyJackpot:
    """The lucky second of each UTC hour pays once."""

    async def test_paid_once_per_hour(self, engine, make_player, peek, clock, store):
        # Arrange
        first = await make_player("dachsfan")
        second = await make_player("dachsfreund")
        clock.now = datetime(2026, 10, 14, 12, 1, 12, tzinfo=timezone.utc).timestamp()
        await peek(first, LOSS_GRID)
        await peek(second, LOSS_GRID)

        # Act
        winner = await engine.spin(first)
        runner_up = await engine.spin(second)

        # Assert
        assert winner.hourly_jackpot is True
        assert winner.points == 100
        assert winner.balance == 190
        assert "hourly_jackpot" in winner.achievements
        assert runner_up.hourly_jackpot is False
        assert runner_up.balance == 90
        claim = await store.get(keys.jackpot_key("2026-10-14T12"))
        assert claim["username"] == first


# ============================================================================
# GATES
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestSpinGates:
    """Everything that stops a spin before the roll."""

    async def test_disclaimer_required(self, engine):
        with pytest.raises(AccountRequiredError):
            await engine.spin("stranger")

    async def test_self_banned_player_cannot_spin(self, engine, make_player):
        name = await make_player("dachsfan")
        await engine.self_ban(name)

        with pytest.raises(AccountRequiredError):
            await engine.spin(name)

    async def test_cooldown_between_spins(self, engine, make_player, clock):
        name = await make_player("dachsfan")
        await engine.spin(name)

        with pytest.raises(CooldownActiveError):
            await engine.spin(name)

        clock.advance(30)
        result = await engine.spin(name)
        assert result.username == name

    async def test_insufficient_funds_leaves_balance(self, engine, make_player, store):
        name = await make_player("dachsfan", balance=5)

        with pytest.raises(InsufficientFundsError):
            await engine.spin(name)

        assert await store.get(keys.balance_key(name)) == 5
        assert await store.get(keys.stats_key(name)) is None

    async def test_locked_stake_rejected(self, engine, make_player):
        name = await make_player("dachsfan")

        with pytest.raises(InvalidOperationError):
            await engine.spin(name, 20)
        with pytest.raises(InvalidOperationError):
            await engine.spin(name, "all")

    @pytest.mark.parametrize("amount", ["abc", -5, 0])
    async def test_malformed_amount(self, engine, make_player, amount):
        name = await make_player("dachsfan")

        with pytest.raises(ValidationError):
            await engine.spin(name, amount)

    async def test_malformed_username(self, engine):
        with pytest.raises(ValidationError):
            await engine.spin("not a name!")
