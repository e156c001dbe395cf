"""
Unit tests for ShopService.

Purpose
-------
A purchase checks prerequisites and the weekly limit, debits the price and
grants the item in one ledger write. Instant items draw from the shared
random source; tests patch that source to pin the draw.

Test Coverage
-------------
- Unlock chain, duplicate unlocks, prestige rank order
- Weekly limits (spin bundle) with the balance left untouched on denial
- Buff grants: additive insurance, single dachs boost
- Instant items: chaos spin clamp, wheel, mystery box (grant and refund),
  reverse chaos, diamond mine
- Peek tokens feed the next spin
"""

import pytest

from src.modules.buffs.models import BuffSet, symbol_boost_key
from src.modules.shared import keys
from src.modules.shared.exceptions import (
    InsufficientFundsError,
    InvalidOperationError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from src.modules.shop.service import PURCHASED_EVENT


@pytest.fixture
def grant_unlocks(engine):
    async def _grant(username, *unlock_keys):
        account = await engine.accounts.get_account(username)
        for key in unlock_keys:
            account = account.with_unlock(key)
        await engine.accounts.save_account(account)

    return _grant


async def stored_buffs(store, username):
    return BuffSet.from_document(await store.get(keys.buffs_key(username)))


# ============================================================================
# CATALOG
# ============================================================================


@pytest.mark.unit
class TestCatalog:
    def test_catalog_is_ordered_by_id(self, engine):
        ids = [item.id for item in engine.shop.catalog()]

        assert ids == list(range(1, 40))

    def test_unknown_item(self, engine):
        with pytest.raises(NotFoundError):
            engine.shop.get_item(99)


# ============================================================================
# PREREQUISITES & LIMITS
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestPrerequisites:
    """Unlock chain, ranks, limits and funds."""

    async def test_unlock_chain(self, engine, make_player, store):
        # Arrange
        name = await make_player("dachsfan", balance=600)

        # Act / Assert: slots_30 needs slots_20 first
        with pytest.raises(InvalidOperationError):
            await engine.purchase(name, 19)

        result = await engine.purchase(name, 13)

        assert result.balance == 100
        assert result.net == -500
        assert "first_purchase" in result.achievements
        account = await engine.accounts.get_account(name)
        assert account.has_unlock("slots_20")

    async def test_duplicate_unlock_rejected(self, engine, make_player, store):
        name = await make_player("dachsfan", balance=600)
        await engine.purchase(name, 13)
        await store.put(keys.balance_key(name), 600)

        with pytest.raises(InvalidOperationError):
            await engine.purchase(name, 13)

        assert await store.get(keys.balance_key(name)) == 600

    async def test_last_slot_unlock_reports_all_slots(self, engine, make_player, grant_unlocks):
        name = await make_player("dachsfan", balance=5000)
        await grant_unlocks(name, "slots_20", "slots_30", "slots_50", "slots_100")

        result = await engine.purchase(name, 25)

        assert "unlock_all_slots" in result.achievements

    async def test_prestige_ranks_in_order(self, engine, make_player):
        # Arrange
        name = await make_player("dachsfan", balance=5000)

        # Act / Assert
        with pytest.raises(InvalidOperationError):
            await engine.purchase(name, 22)

        await engine.purchase(name, 17)
        assert (await engine.accounts.get_account(name)).prestige_rank == "🥉"

        with pytest.raises(InvalidOperationError):
            await engine.purchase(name, 17)

        await engine.purchase(name, 22)
        assert (await engine.accounts.get_account(name)).prestige_rank == "🥈"

    async def test_weekly_bundle_limit(self, engine, make_player, store):
        # Arrange
        name = await make_player("dachsfan", balance=1000)
        for _ in range(3):
            await engine.purchase(name, 15)

        # Act
        with pytest.raises(LimitExceededError):
            await engine.purchase(name, 15)

        # Assert
        assert await store.get(keys.balance_key(name)) == 730
        assert await store.get(keys.free_spins_key(name)) == {"1": 30}
        assert (await store.get(keys.limit_key(name, "spin_bundle")))["count"] == 3

    async def test_insufficient_funds(self, engine, make_player, store):
        name = await make_player("dachsfan")

        with pytest.raises(InsufficientFundsError):
            await engine.purchase(name, 9)

        assert await store.get(keys.balance_key(name)) == 100

    async def test_second_dachs_boost_rejected(self, engine, make_player, store, clock):
        name = await make_player("dachsfan", balance=1000)
        await engine.purchase(name, 8)

        with pytest.raises(InvalidOperationError):
            await engine.purchase(name, 8)

        assert (await stored_buffs(store, name)).has(symbol_boost_key("🦡"), clock())
        assert await store.get(keys.balance_key(name)) == 850

    async def test_item_id_out_of_range(self, engine, make_player):
        name = await make_player("dachsfan")

        with pytest.raises(ValidationError):
            await engine.purchase(name, 40)


# ============================================================================
# GRANTS
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestGrants:
    """Buff and free-spin grants."""

    async def test_insurance_packs_add_up(self, engine, make_player, store, clock):
        name = await make_player("dachsfan", balance=1000)

        await engine.purchase(name, 9)
        await engine.purchase(name, 9)

        assert (await stored_buffs(store, name)).active("insurance", clock()).uses == 10
        assert await store.get(keys.balance_key(name)) == 500

    async def test_timed_buff(self, engine, make_player, store, clock):
        name = await make_player("dachsfan", balance=1000)

        await engine.purchase(name, 14)

        assert (await stored_buffs(store, name)).has("happy_hour", clock())

    async def test_diamond_mine(self, engine, make_player, store, rng, mocker):
        name = await make_player("dachsfan", balance=3000)
        mocker.patch.object(rng, "randint", return_value=4)

        result = await engine.purchase(name, 36)

        assert result.free_spins == 4
        assert await store.get(keys.free_spins_key(name)) == {"1": 4}

    async def test_peek_grid_is_played_next(self, engine, make_player, store, clock):
        # Arrange
        name = await make_player("dachsfan", balance=1000)
        result = await engine.purchase(name, 1)
        peeked = (await stored_buffs(store, name)).active("peek", clock()).data["grid"]

        # Act
        spin = await engine.spin(name)

        # Assert
        assert list(spin.grid) == peeked
        assert result.peek_wins == spin.won
        assert not (await stored_buffs(store, name)).has("peek", clock())

    async def test_purchase_event(self, engine, make_player, record_events):
        name = await make_player("dachsfan", balance=1000)
        events = record_events(PURCHASED_EVENT)

        await engine.purchase(name, 9)

        assert events == [
            {
                "username": name,
                "item_id": 9,
                "price": 250,
                "net": -250,
                "balance": 750,
                "refunded": False,
            }
        ]


# ============================================================================
# INSTANT ITEMS
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestInstantItems:
    """Instant items settle in the purchase write."""

    async def test_chaos_spin_loss_is_clamped_at_zero(self, engine, make_player, rng, mocker):
        name = await make_player("dachsfan", balance=300)
        mocker.patch.object(rng, "randint", return_value=-300)

        result = await engine.purchase(name, 11)

        assert result.credited == -50
        assert result.balance == 0

    async def test_chaos_spin_win(self, engine, make_player, rng, mocker):
        name = await make_player("dachsfan", balance=1000)
        mocker.patch.object(rng, "randint", return_value=700)

        result = await engine.purchase(name, 11)

        assert result.balance == 1450
        assert result.net == 450

    async def test_reverse_chaos(self, engine, make_player, rng, mocker):
        name = await make_player("dachsfan", balance=200)
        mocker.patch.object(rng, "randint", return_value=120)

        result = await engine.purchase(name, 31)

        assert result.balance == 170

    async def test_wheel_star_band(self, engine, make_player, rng, mocker):
        name = await make_player("dachsfan", balance=1000)
        mocker.patch.object(rng, "random", return_value=0.3)

        result = await engine.purchase(name, 12)

        assert result.wheel.label == "star"
        assert result.balance == 900

    async def test_wheel_jackpot(self, engine, make_player, rng, mocker):
        name = await make_player("dachsfan", balance=1000)
        mocker.patch.object(rng, "random", return_value=0.0)

        result = await engine.purchase(name, 12)

        assert result.wheel.jackpot is True
        assert result.balance == 100700
        assert "wheel_jackpot" in result.achievements

    async def test_mystery_box_grants_drawn_item(self, engine, make_player, store, rng, mocker, clock):
        name = await make_player("dachsfan", balance=1000)
        mocker.patch.object(rng, "choice", return_value=7)

        result = await engine.purchase(name, 16)

        assert result.granted.id == 7
        assert result.balance == 0
        assert (await stored_buffs(store, name)).has(symbol_boost_key("⭐"), clock())

    async def test_mystery_box_refunds_unusable_draw(self, engine, make_player, store, rng, mocker):
        # Arrange
        name = await make_player("dachsfan", balance=1000)
        mocker.patch.object(rng, "choice", return_value=99)

        # Act
        result = await engine.purchase(name, 16)

        # Assert
        assert result.refunded is True
        assert result.net == 0
        assert result.balance == 1000
        assert result.achievements == ()
        assert await store.get(keys.stats_key(name)) is None
