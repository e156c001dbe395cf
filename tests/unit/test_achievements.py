"""
Unit tests for achievements: the pure detection engine and AchievementService.

Purpose
-------
Achievements unlock exactly once, from the statistics the ledger wrote and
the events an action observed. Rewards are either credited in one ledger
write per batch or accrued as pending while payouts are disabled.

Test Coverage
-------------
- Progressive and event unlocks, catalog order, idempotent detection
- Triple collection (fruit collector, all triples)
- Overview hides locked hidden entries
- Rewards disabled: pending accrual, no balance change
- Rewards enabled: one idempotent credit per batch
- Lucky balance, rarity counters, pending payout, admin revoke
"""

import dataclasses

import pytest

from src.modules.achievements.engine import (
    AchievementRecord,
    collect_triple,
    detect_unlocks,
    progress_overview,
    total_reward,
)
from src.modules.achievements.repository import AchievementRepository
from src.modules.achievements.service import UNLOCKED_EVENT, AchievementService
from src.modules.economy.ledger import EconomyLedger
from src.modules.shared import keys
from src.modules.shared.exceptions import InvalidOperationError, NotFoundError


def with_rewards(game_config, enabled=True):
    return dataclasses.replace(
        game_config,
        achievements=dataclasses.replace(game_config.achievements, rewards_enabled=enabled),
    )


@pytest.fixture
def build_service(store, event_bus, clock):
    def _build(config):
        ledger = EconomyLedger(store, config.economy, event_bus, clock=clock)
        return AchievementService(
            AchievementRepository(store), ledger, config, event_bus, clock=clock
        )

    return _build


# ============================================================================
# DETECTION ENGINE
# ============================================================================


@pytest.mark.unit
class TestDetection:
    """Pure unlock detection."""

    def test_progressive_and_event_unlocks_in_catalog_order(self, game_config):
        config = game_config.achievements

        earned = detect_unlocks({"totalSpins": 100}, (), config, ["first_spin"])

        assert earned == ("first_spin", "spin_100")
        assert total_reward(earned, config) == 60

    def test_already_unlocked_are_ignored(self, game_config):
        config = game_config.achievements

        earned = detect_unlocks({"totalSpins": 500}, {"spin_100": 1.0}, config)

        assert earned == ("spin_500",)

    def test_unknown_events_are_ignored(self, game_config):
        assert detect_unlocks({}, (), game_config.achievements, ["no_such_thing"]) == ()

    def test_fruit_collector_on_last_fruit(self, game_config):
        config = game_config.achievements
        record = AchievementRecord(triples=frozenset({"watermelon", "grapes", "orange", "lemon"}))

        updated, events = collect_triple(record, "🍒", config)

        assert events == ["fruit_collector"]
        assert "cherry" in updated.triples

    def test_all_triples_after_every_symbol(self, game_config):
        config = game_config.achievements
        record = AchievementRecord(triples=frozenset(set(config.triple_keys.values()) - {"dachs"}))

        _, events = collect_triple(record, "🦡", config)

        assert events == ["dachs_triple", "fruit_collector", "all_triples"]

    def test_overview_hides_locked_hidden_entries(self, game_config):
        config = game_config.achievements
        record = AchievementRecord(unlocked_at={"zero_hero": 5.0})

        overview = {p.id: p for p in progress_overview(record, {"totalSpins": 250}, config)}

        assert "zero_hero" in overview
        assert "perfect_timing" not in overview
        assert overview["spin_500"].current == 250
        assert overview["spin_100"].current == 100
        assert overview["zero_hero"].unlocked is True

    def test_record_round_trip(self):
        record = AchievementRecord({"first_spin": 1.5}, frozenset({"lemon"}), 35)

        assert AchievementRecord.from_document(record.to_document()) == record


# ============================================================================
# SERVICE
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestAchievementService:
    """Unlock persistence and rewards."""

    async def test_rewards_disabled_accrue_pending(self, build_service, game_config, store):
        # Arrange
        await store.put(keys.balance_key("dachsfan"), 100)
        service = build_service(with_rewards(game_config, False))

        # Act
        unlocked = await service.process("dachsfan", {"totalSpins": 100}, ["first_spin"])

        # Assert
        assert unlocked == ("first_spin", "spin_100")
        record = AchievementRecord.from_document(await store.get(keys.achievements_key("dachsfan")))
        assert record.pending_rewards == 60
        assert await store.get(keys.balance_key("dachsfan")) == 100

    async def test_rewards_enabled_credit_once(self, build_service, game_config, store, record_events):
        # Arrange
        await store.put(keys.balance_key("dachsfan"), 100)
        service = build_service(with_rewards(game_config))
        events = record_events(UNLOCKED_EVENT)

        # Act
        first = await service.process("dachsfan", {}, ["first_spin", "first_win"])
        second = await service.process("dachsfan", {}, ["first_spin", "first_win"])

        # Assert
        assert first == ("first_spin", "first_win")
        assert second == ()
        assert await store.get(keys.balance_key("dachsfan")) == 135
        assert await store.get(keys.receipt_key("achievement:dachsfan:first_spin+first_win"))
        assert [e["achievement_id"] for e in events] == ["first_spin", "first_win"]
        assert events[0]["reward"] == 10

    async def test_failed_credit_keeps_unlock(self, build_service, game_config, store):
        service = build_service(with_rewards(game_config))

        # No balance key: the credit is rejected, the unlock stays
        unlocked = await service.process("ghost", {}, ["first_spin"])

        assert unlocked == ("first_spin",)
        assert await store.get(keys.balance_key("ghost")) is None
        record = AchievementRecord.from_document(await store.get(keys.achievements_key("ghost")))
        assert record.is_unlocked("first_spin")

    async def test_lucky_balance(self, build_service, game_config):
        service = build_service(game_config)

        assert await service.process("dachsfan", {}, balance=777) == ("lucky_777",)

    async def test_balance_threshold(self, build_service, game_config):
        service = build_service(game_config)

        unlocked = await service.process("dachsfan", {}, balance=5000)

        assert unlocked == ("balance_1000", "balance_5000")

    async def test_triple_collection_is_saved_without_unlocks(self, build_service, game_config, store):
        service = build_service(game_config)

        assert await service.process("dachsfan", {}, triple_symbol="🍋") == ()

        record = AchievementRecord.from_document(await store.get(keys.achievements_key("dachsfan")))
        assert record.triples == frozenset({"lemon"})

    async def test_rarity_counts_unlocks(self, build_service, game_config):
        service = build_service(game_config)
        await service.process("a", {}, ["first_spin"])
        await service.process("b", {}, ["first_spin", "first_win"])

        rarity = await service.rarity()

        assert rarity["first_spin"] == 2
        assert rarity["first_win"] == 1
        assert rarity["zero_hero"] == 0

    async def test_pay_pending_rewards_after_enabling(self, build_service, game_config, store):
        # Arrange
        await store.put(keys.balance_key("dachsfan"), 100)
        await build_service(game_config).process("dachsfan", {}, ["first_spin"])

        # Act
        disabled_paid = await build_service(game_config).pay_pending_rewards("dachsfan")
        paid = await build_service(with_rewards(game_config)).pay_pending_rewards("dachsfan")

        # Assert
        assert disabled_paid == 0
        assert paid == 10
        assert await store.get(keys.balance_key("dachsfan")) == 110
        record = AchievementRecord.from_document(await store.get(keys.achievements_key("dachsfan")))
        assert record.pending_rewards == 0
        assert record.is_unlocked("first_spin")

    async def test_revoke_requires_admin(self, build_service, game_config):
        service = build_service(game_config)
        await service.process("dachsfan", {}, ["first_spin"])

        with pytest.raises(InvalidOperationError):
            await service.revoke("dachsfan", "first_spin", actor="dachsfan")

        await service.revoke("dachsfan", "first_spin", actor="DachsAdmin")

        assert (await service.rarity())["first_spin"] == 0
        with pytest.raises(NotFoundError):
            await service.revoke("dachsfan", "first_spin", actor="dachsadmin")

    async def test_overview_reads_balance_and_stats(self, build_service, game_config, store):
        await store.put(keys.balance_key("dachsfan"), 1200)
        await store.put(keys.stats_key("dachsfan"), {"wins": 40})
        service = build_service(game_config)

        overview = {p.id: p for p in await service.overview("dachsfan")}

        assert overview["balance_1000"].current == 1000
        assert overview["win_100"].current == 40
        assert overview["balance_1000"].unlocked is False
