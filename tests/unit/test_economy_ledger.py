"""
Unit tests for EconomyLedger.

Purpose
-------
Verify that every balance change goes through one validated write: debits
never drive a balance negative, credits clamp at the maximum, weekly limits
are enforced per ISO week, committed intents replay instead of re-applying,
and the durable mirror never fails an action.

Test Coverage
-------------
- Funds validation and clamping
- Account requirement for balance deltas
- Idempotent replay of committed intents
- Weekly purchase limits (primary counter and durable claim)
- Statistic increments and maxima
- Bank counter
- Mirror failure queued for reconciliation

Testing Strategy
----------------
- InMemoryStore with a frozen clock
- AsyncMock stands in for DurableMirror where its outcome matters
"""

import pytest

from src.core.exceptions import DatabaseError, StorageUnavailableError
from src.core.storage.memory_store import InMemoryStore
from src.modules.economy.ledger import MIRROR_FAILED_EVENT, EconomyLedger, WriteIntent
from src.modules.economy.mirror import DurableMirror
from src.modules.shared import keys
from src.modules.shared.exceptions import (
    AccountRequiredError,
    InsufficientFundsError,
    LimitExceededError,
)


class BrokenWriteStore(InMemoryStore):
    """Reads work, batch writes fail."""

    async def put_many(self, batch):
        raise StorageUnavailableError("PUT_MANY", "batch", ConnectionError("down"))


@pytest.fixture
def ledger(store, game_config, event_bus, clock):
    return EconomyLedger(store, game_config.economy, event_bus, clock=clock)


@pytest.fixture
def durable(mocker):
    mirror = mocker.AsyncMock(spec=DurableMirror)
    mirror.claim_weekly_slot.return_value = True
    return mirror


# ============================================================================
# BALANCE CHANGES
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestBalanceChanges:
    """Debits, credits and the account requirement."""

    async def test_credit_and_debit(self, ledger, store):
        # Arrange
        await store.put(keys.balance_key("dachsfan"), 100)

        # Act
        after_credit = await ledger.apply_delta("dachsfan", 50, "test")
        after_debit = await ledger.apply_delta("DachsFan", -150, "test")

        # Assert
        assert after_credit == 150
        assert after_debit == 0
        assert await ledger.get_balance("dachsfan") == 0

    async def test_debit_beyond_balance_is_rejected(self, ledger, store):
        await store.put(keys.balance_key("dachsfan"), 40)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await ledger.apply_delta("dachsfan", -41, "test")

        assert exc_info.value.required == 41
        assert exc_info.value.current == 40
        assert await ledger.get_balance("dachsfan") == 40

    async def test_credit_clamps_at_max_balance(self, ledger, store, game_config):
        cap = game_config.economy.max_balance
        await store.put(keys.balance_key("dachsfan"), cap - 5)

        receipt = await ledger.commit(WriteIntent(reason="test").add_delta("dachsfan", 100))

        assert receipt.balance("dachsfan") == cap
        assert receipt.delta("dachsfan") == 5

    async def test_delta_for_unknown_name_requires_account(self, ledger, store):
        with pytest.raises(AccountRequiredError):
            await ledger.apply_delta("ghost", 10, "test")

        assert await store.get(keys.balance_key("ghost")) is None

    async def test_create_accounts_allows_first_balance(self, ledger):
        intent = WriteIntent(reason="disclaimer", create_accounts=("newbie",))
        intent.add_delta("newbie", 100)

        receipt = await ledger.commit(intent)

        assert receipt.balance("newbie") == 100
        assert receipt.previous["newbie"] == 0

    async def test_unknown_name_reads_zero_without_creating(self, ledger, store):
        assert await ledger.get_balance("nobody") == 0
        assert len(store) == 0

    async def test_intent_writes_documents_with_balances(self, ledger, store):
        # Arrange
        await store.put(keys.balance_key("dachsfan"), 100)
        await store.put(keys.duel_key("dachsfan"), {"target": "x"})
        intent = WriteIntent(reason="test").add_delta("dachsfan", -10)
        intent.put(keys.free_spins_key("dachsfan"), {"1": 2})
        intent.delete(keys.duel_key("dachsfan"))

        # Act
        await ledger.commit(intent)

        # Assert
        assert await store.get(keys.balance_key("dachsfan")) == 90
        assert await store.get(keys.free_spins_key("dachsfan")) == {"1": 2}
        assert await store.get(keys.duel_key("dachsfan")) is None

    async def test_failed_write_propagates(self, game_config, event_bus, clock):
        store = BrokenWriteStore(clock)
        await store.put(keys.balance_key("dachsfan"), 100)
        ledger = EconomyLedger(store, game_config.economy, event_bus, clock=clock)

        with pytest.raises(StorageUnavailableError):
            await ledger.apply_delta("dachsfan", -10, "test")

        assert await store.get(keys.balance_key("dachsfan")) == 100


# ============================================================================
# IDEMPOTENCY
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestIdempotency:
    """A committed intent replays its receipt instead of applying twice."""

    async def test_replay_returns_stored_receipt(self, ledger, store):
        # Arrange
        await store.put(keys.balance_key("dachsfan"), 100)

        def intent():
            return WriteIntent(reason="reward", idempotency_key="reward:dachsfan:1").add_delta(
                "dachsfan", 25
            )

        # Act
        first = await ledger.commit(intent())
        second = await ledger.commit(intent())

        # Assert
        assert first.replayed is False
        assert second.replayed is True
        assert second.balance("dachsfan") == 125
        assert await ledger.get_balance("dachsfan") == 125

    async def test_receipt_expires_with_ttl(self, ledger, store, clock, game_config):
        await store.put(keys.balance_key("dachsfan"), 100)
        await ledger.commit(WriteIntent(reason="r", idempotency_key="k").add_delta("dachsfan", 1))

        clock.advance(game_config.economy.receipt_ttl_seconds)
        receipt = await ledger.commit(
            WriteIntent(reason="r", idempotency_key="k").add_delta("dachsfan", 1)
        )

        assert receipt.replayed is False
        assert await ledger.get_balance("dachsfan") == 102


# ============================================================================
# WEEKLY LIMITS
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestWeeklyLimits:
    """Weekly purchase counters keyed by ISO week."""

    async def test_limit_reached_rejects_without_charging(self, ledger, store):
        # Arrange
        await store.put(keys.balance_key("dachsfan"), 1000)

        def purchase():
            intent = WriteIntent(reason="purchase").add_delta("dachsfan", -90)
            return intent.claim_limit("dachsfan", "spin_bundle", 2)

        # Act
        await ledger.commit(purchase())
        await ledger.commit(purchase())
        with pytest.raises(LimitExceededError) as exc_info:
            await ledger.commit(purchase())

        # Assert
        assert exc_info.value.limit == 2
        assert await ledger.get_balance("dachsfan") == 820
        stored = await store.get(keys.limit_key("dachsfan", "spin_bundle"))
        assert stored["count"] == 2

    async def test_counter_resets_next_week(self, ledger, store, clock):
        await store.put(keys.balance_key("dachsfan"), 1000)

        await ledger.commit(WriteIntent(reason="p").claim_limit("dachsfan", "dachs_boost", 1))
        clock.advance(7 * 24 * 3600)
        receipt = await ledger.commit(
            WriteIntent(reason="p").claim_limit("dachsfan", "dachs_boost", 1)
        )

        stored = await store.get(keys.limit_key("dachsfan", "dachs_boost"))
        assert stored == {"week": receipt.week_id, "count": 1}

    async def test_durable_claim_is_check_of_record(
        self, store, game_config, event_bus, clock, durable
    ):
        # Arrange
        durable.claim_weekly_slot.return_value = False
        ledger = EconomyLedger(store, game_config.economy, event_bus, mirror=durable, clock=clock)
        await store.put(keys.balance_key("dachsfan"), 1000)

        # Act & Assert
        with pytest.raises(LimitExceededError):
            await ledger.commit(
                WriteIntent(reason="p").add_delta("dachsfan", -90).claim_limit("dachsfan", "spin_bundle", 3)
            )
        assert await ledger.get_balance("dachsfan") == 1000

    async def test_failed_write_releases_durable_claim(
        self, game_config, event_bus, clock, durable
    ):
        store = BrokenWriteStore(clock)
        await store.put(keys.balance_key("dachsfan"), 1000)
        ledger = EconomyLedger(store, game_config.economy, event_bus, mirror=durable, clock=clock)

        with pytest.raises(StorageUnavailableError):
            await ledger.commit(
                WriteIntent(reason="p").add_delta("dachsfan", -90).claim_limit("dachsfan", "spin_bundle", 3)
            )

        durable.release_weekly_slot.assert_awaited_once()

    async def test_durable_outage_falls_back_to_primary_counter(
        self, store, game_config, event_bus, clock, durable
    ):
        durable.claim_weekly_slot.side_effect = DatabaseError("claim", RuntimeError("down"))
        ledger = EconomyLedger(store, game_config.economy, event_bus, mirror=durable, clock=clock)
        await store.put(keys.balance_key("dachsfan"), 1000)

        await ledger.commit(WriteIntent(reason="p").claim_limit("dachsfan", "spin_bundle", 1))

        with pytest.raises(LimitExceededError):
            await ledger.commit(WriteIntent(reason="p").claim_limit("dachsfan", "spin_bundle", 1))


# ============================================================================
# STATS, BANK, MIRROR
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestSideEffects:
    """Statistics, the bank counter and the durable mirror."""

    async def test_stat_increments_and_maxima(self, ledger, store):
        await store.put(keys.stats_key("dachsfan"), {"totalSpins": 4, "biggestWin": 50})
        intent = WriteIntent(reason="spin")
        intent.increment_stat("dachsfan", "totalSpins")
        intent.max_stat("dachsfan", "biggestWin", 30)

        receipt = await ledger.commit(intent)

        assert receipt.stats_for("dachsfan") == {"totalSpins": 5, "biggestWin": 50}
        assert await store.get(keys.stats_key("dachsfan")) == {"totalSpins": 5, "biggestWin": 50}

    async def test_bank_moves_opposite_to_players(self, ledger, store, game_config):
        await store.put(keys.balance_key("a"), 100)
        await store.put(keys.balance_key("b"), 100)

        await ledger.apply_delta("a", 30, "win")
        await ledger.apply_delta("b", -10, "loss")

        assert await ledger.get_bank() == game_config.economy.bank_start - 20

    async def test_explicit_bank_delta_overrides_player_sum(self, ledger, store, game_config):
        await store.put(keys.balance_key("a"), 100)
        await store.put(keys.balance_key("b"), 100)
        intent = WriteIntent(reason="duel", bank_delta=0)
        intent.add_delta("a", 50).add_delta("b", -50)

        await ledger.commit(intent)

        assert await ledger.get_bank() == game_config.economy.bank_start

    async def test_mirror_failure_is_queued_not_raised(
        self, store, game_config, event_bus, clock, durable, record_events
    ):
        # Arrange
        durable.mirror.side_effect = DatabaseError("mirror", RuntimeError("db down"))
        failures = record_events(MIRROR_FAILED_EVENT)
        ledger = EconomyLedger(store, game_config.economy, event_bus, mirror=durable, clock=clock)
        await store.put(keys.balance_key("dachsfan"), 300)
        intent = WriteIntent(reason="purchase", idempotency_key="buy:1").add_delta("dachsfan", -250)
        intent.mirror_item("dachsfan", "insurance", 5)

        # Act
        receipt = await ledger.commit(intent)

        # Assert
        assert receipt.balance("dachsfan") == 50
        assert len(await ledger.pending_reconciliation()) == 1
        assert failures[0]["reason"] == "purchase"
        assert failures[0]["record"]["items"] == [
            {"username": "dachsfan", "item_key": "insurance", "value": 5}
        ]

    async def test_empty_mirror_record_is_not_sent(
        self, store, game_config, event_bus, clock, durable
    ):
        ledger = EconomyLedger(store, game_config.economy, event_bus, mirror=durable, clock=clock)
        await store.put(keys.balance_key("dachsfan"), 100)

        await ledger.apply_delta("dachsfan", -10, "spin")

        durable.mirror.assert_not_awaited()
