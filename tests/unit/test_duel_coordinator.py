"""
Unit tests for DuelCoordinator.

Purpose
-------
Duels move a stake from the loser to the winner in one ledger write after
a buff-free spin per side. Challenges expire lazily: whichever duel command
reads a stale challenge deletes it.

Test Coverage
-------------
- Challenge creation: stake minimum, self/unknown/opted-out/insolvent
  targets, one open challenge per challenger, duel cooldown
- Resolution: tier win, tiebreak win, exact tie, streaks and statistics
- Lazy expiry, decline, cancel, insolvency at accept time

Testing Strategy
----------------
- The coordinator is built on the engine's services with a mocked
  SymbolGenerator whose `draw_grid` returns the challenger grid first
"""

import pytest

from src.modules.duel.coordinator import DuelCoordinator
from src.modules.shared import keys
from src.modules.shared.exceptions import (
    ChallengeExpiredError,
    CooldownActiveError,
    InsufficientFundsError,
    InvalidOperationError,
    InvalidTargetError,
    NoActiveChallengeError,
    ValidationError,
)
from src.modules.slots.symbols import SymbolGenerator

STAR_TRIPLE = ["⭐", "⭐", "⭐"]
NOTHING = ["🍒", "🍋", "🍊"]


@pytest.fixture
def generator(mocker):
    return mocker.Mock(spec=SymbolGenerator)


@pytest.fixture
def duels(engine, store, game_config, event_bus, clock, generator):
    return DuelCoordinator(
        store,
        engine.ledger,
        engine.players,
        engine.achievement_service,
        generator,
        game_config,
        event_bus,
        clock=clock,
    )


@pytest.fixture
def players(make_player):
    async def _players(alice=500, bob=500):
        return await make_player("alice", balance=alice), await make_player("bob", balance=bob)

    return _players


# ============================================================================
# CREATE
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestCreate:
    """Opening a challenge."""

    async def test_create_stores_challenge_and_cooldown(self, duels, players, store, clock, record_events):
        # Arrange
        await players()
        events = record_events("duel.created")

        # Act
        challenge = await duels.create("Alice", "bob", 200)

        # Assert
        assert challenge.challenger == "alice"
        assert challenge.target == "bob"
        assert challenge.created_at == clock()
        assert await store.get(keys.duel_key("alice")) == challenge.to_document()
        assert await store.get(keys.duel_cooldown_key("alice")) == clock() + 30
        assert events == [{"challenger": "alice", "target": "bob", "amount": 200}]
        assert await duels.outgoing("alice") == challenge
        assert await duels.incoming("bob") == [challenge]

    async def test_stake_minimum(self, duels, players):
        await players()

        with pytest.raises(ValidationError):
            await duels.create("alice", "bob", 99)

    async def test_self_challenge(self, duels, players):
        await players()

        with pytest.raises(InvalidTargetError):
            await duels.create("alice", "ALICE", 100)

    async def test_unknown_target(self, duels, players):
        await players()

        with pytest.raises(InvalidTargetError):
            await duels.create("alice", "nobody", 100)

    async def test_opted_out_target(self, duels, players):
        await players()
        await duels.set_opt_out("bob", True)

        with pytest.raises(InvalidTargetError):
            await duels.create("alice", "bob", 100)

    async def test_opted_out_challenger(self, duels, players):
        await players()
        await duels.set_opt_out("alice", True)

        with pytest.raises(InvalidOperationError):
            await duels.create("alice", "bob", 100)

    async def test_target_must_cover_stake(self, duels, players):
        await players(bob=150)

        with pytest.raises(InvalidTargetError):
            await duels.create("alice", "bob", 200)

    async def test_challenger_must_cover_stake(self, duels, players):
        await players(alice=150)

        with pytest.raises(InsufficientFundsError):
            await duels.create("alice", "bob", 200)

    async def test_one_open_challenge_then_cooldown(self, duels, players, make_player, clock):
        # Arrange
        await players()
        await make_player("carol", balance=500)
        await duels.create("alice", "bob", 100)

        # Act / Assert
        with pytest.raises(InvalidOperationError):
            await duels.create("alice", "carol", 100)

        await duels.cancel("alice")
        with pytest.raises(CooldownActiveError):
            await duels.create("alice", "carol", 100)

        clock.advance(30)
        challenge = await duels.create("alice", "carol", 100)
        assert challenge.target == "carol"


# ============================================================================
# ACCEPT
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestAccept:
    """Resolution of an accepted challenge."""

    async def test_higher_tier_wins_stake(self, duels, players, generator, game_config, store, record_events):
        # Arrange
        await players()
        await duels.create("alice", "bob", 200)
        generator.draw_grid.side_effect = [STAR_TRIPLE, NOTHING]
        resolved = record_events("duel.resolved")

        # Act
        outcome = await duels.accept("bob")

        # Assert
        assert outcome.winner == "alice"
        assert outcome.loser == "bob"
        assert outcome.pot == 400
        assert outcome.challenger_balance == 700
        assert outcome.target_balance == 300
        assert outcome.achievements == {"alice": ("first_duel",), "bob": ("first_duel",)}
        generator.draw_grid.assert_called_with(game_config.symbols.jackpot_chance)
        assert await store.get(keys.duel_key("alice")) is None
        assert await store.get(keys.duel_streak_key("alice")) == 1
        assert await store.get(keys.duel_streak_key("bob")) == 0
        alice_stats = await store.get(keys.stats_key("alice"))
        assert alice_stats["duelsWon"] == 1
        assert alice_stats["totalDuelWinnings"] == 400
        assert (await store.get(keys.stats_key("bob")))["duelsLost"] == 1
        assert resolved[0]["winner"] == "alice"

    async def test_tiebreak_sum_decides_equal_tiers(self, duels, players, generator):
        await players()
        await duels.create("alice", "bob", 200)
        # 3 + 4 + 5 against 25 + 4 + 5
        generator.draw_grid.side_effect = [NOTHING, ["⭐", "🍋", "🍊"]]

        outcome = await duels.accept("bob")

        assert outcome.winner == "bob"
        assert outcome.challenger_balance == 300
        assert outcome.target_balance == 700

    async def test_exact_tie_moves_nothing(self, duels, players, generator, store, engine):
        # Arrange
        await players()
        bank_before = await engine.ledger.get_bank()
        await duels.create("alice", "bob", 200)
        generator.draw_grid.side_effect = [NOTHING, list(NOTHING)]

        # Act
        outcome = await duels.accept("bob")

        # Assert
        assert outcome.is_tie is True
        assert outcome.loser is None
        assert outcome.challenger_balance == 500
        assert outcome.target_balance == 500
        assert (await store.get(keys.stats_key("bob")))["duelsPlayed"] == 1
        assert await engine.ledger.get_bank() == bank_before

    async def test_duel_streak_grows(self, duels, players, generator, store, clock):
        await players(alice=1000, bob=1000)
        for _ in range(2):
            await duels.create("alice", "bob", 100)
            generator.draw_grid.side_effect = [STAR_TRIPLE, NOTHING]
            await duels.accept("bob")
            clock.advance(30)

        assert await store.get(keys.duel_streak_key("alice")) == 2
        assert (await store.get(keys.stats_key("alice")))["maxDuelStreak"] == 2

    async def test_insolvent_challenger_cancels(self, duels, players, store, generator, record_events):
        # Arrange
        await players()
        await duels.create("alice", "bob", 200)
        await store.put(keys.balance_key("alice"), 50)
        cancelled = record_events("duel.cancelled")

        # Act
        with pytest.raises(InsufficientFundsError):
            await duels.accept("bob")

        # Assert
        assert await store.get(keys.duel_key("alice")) is None
        assert cancelled[0]["reason"] == "insufficient_funds"
        generator.draw_grid.assert_not_called()

    async def test_no_challenge(self, duels, players):
        await players()

        with pytest.raises(NoActiveChallengeError):
            await duels.accept("bob")

    async def test_stale_challenge_expires_on_read(self, duels, players, clock, store, record_events):
        # Arrange
        await players()
        await duels.create("alice", "bob", 200)
        expired = record_events("duel.expired")
        clock.advance(61)

        # Act
        with pytest.raises(ChallengeExpiredError):
            await duels.accept("bob")

        # Assert
        assert await store.get(keys.duel_key("alice")) is None
        assert expired == [{"challenger": "alice", "target": "bob", "amount": 200}]
        assert await store.get(keys.balance_key("alice")) == 500


# ============================================================================
# DECLINE / CANCEL
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestDeclineAndCancel:
    async def test_decline(self, duels, players, store, record_events):
        await players()
        await duels.create("alice", "bob", 200)
        declined = record_events("duel.declined")

        challenge = await duels.decline("bob")

        assert challenge.challenger == "alice"
        assert await store.get(keys.duel_key("alice")) is None
        assert declined[0]["target"] == "bob"

    async def test_cancel_without_challenge(self, duels, players):
        await players()

        with pytest.raises(NoActiveChallengeError):
            await duels.cancel("alice")

    async def test_cancel_stale_challenge(self, duels, players, clock):
        await players()
        await duels.create("alice", "bob", 200)
        clock.advance(61)

        with pytest.raises(ChallengeExpiredError):
            await duels.cancel("alice")
        assert await duels.outgoing("alice") is None
