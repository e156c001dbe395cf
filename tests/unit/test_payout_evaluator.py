"""
Unit tests for PayoutEvaluator and grid classification.

Test Coverage
-------------
- Triple and adjacent pair payouts scaled by the bet multiplier
- Outer (0-2) matches are not pairs
- Jackpot symbol tiers by count, with free spins recorded alongside
- Free-spin symbol awards without currency
- Input validation
"""

import pytest

from src.modules.slots.payout import (
    PayoutEvaluator,
    Tier,
    adjacent_pair,
    any_pair,
    classify,
)


@pytest.fixture
def evaluator(game_config):
    return PayoutEvaluator(game_config.payouts, game_config.symbols)


@pytest.mark.unit
class TestClassification:
    """Tier and deciding symbol independent of the payout tables."""

    @pytest.mark.parametrize(
        "grid,expected",
        [
            (("⭐", "⭐", "⭐"), (Tier.TRIPLE, "⭐")),
            (("🍒", "🍒", "🍋"), (Tier.PAIR, "🍒")),
            (("🍋", "🍒", "🍒"), (Tier.PAIR, "🍒")),
            (("🍒", "🍋", "🍒"), (Tier.NONE, None)),
            (("🍒", "🦡", "🍋"), (Tier.SINGLE, "🦡")),
        ],
    )
    def test_classify(self, grid, expected):
        assert classify(grid, "🦡") == expected

    def test_adjacent_pair_ignores_triples(self):
        assert adjacent_pair(("🍒", "🍒", "🍒")) is None

    def test_any_pair_includes_outer_positions(self):
        assert any_pair(("🍒", "🍋", "🍒")) == (0, 2)
        assert any_pair(("🍒", "🍋", "🍊")) is None


@pytest.mark.unit
class TestEvaluate:
    """Base payouts, jackpot tiers and free spins."""

    def test_triple_pays_table_times_bet(self, evaluator):
        result = evaluator.evaluate(["⭐", "⭐", "⭐"], multiplier=2)

        assert result.tier is Tier.TRIPLE
        assert result.points == 1000
        assert result.message_key == "triple"

    def test_adjacent_pair_pays_pair_table(self, evaluator):
        assert evaluator.evaluate(["🍋", "🍉", "🍉"]).points == 25
        assert evaluator.evaluate(["🍒", "🍒", "🍋"]).points == 5

    def test_outer_match_is_a_loss(self, evaluator):
        result = evaluator.evaluate(["🍒", "🍋", "🍒"])

        assert result.points == 0
        assert result.is_win is False
        assert result.message_key == "loss"

    @pytest.mark.parametrize(
        "grid,points,key",
        [
            (["🦡", "🍒", "🍋"], 100, "jackpot_single"),
            (["🍒", "🦡", "🦡"], 2500, "jackpot_pair"),
            (["🦡", "🍋", "🦡"], 2500, "jackpot_pair"),
            (["🦡", "🦡", "🦡"], 15000, "jackpot_triple"),
        ],
    )
    def test_jackpot_tiers_by_count(self, evaluator, grid, points, key):
        result = evaluator.evaluate(grid)

        assert result.points == points
        assert result.message_key == key
        assert result.symbol == "🦡"

    def test_jackpot_keeps_free_spins(self, evaluator):
        result = evaluator.evaluate(["💎", "💎", "🦡"])

        assert result.points == 100
        assert result.free_spins == 1
        assert result.jackpot_count == 1

    def test_free_spin_triple_pays_no_currency(self, evaluator):
        result = evaluator.evaluate(["💎", "💎", "💎"], multiplier=5)

        assert result.points == 0
        assert result.free_spins == 5
        assert result.is_win is True
        assert result.message_key == "free_spins_triple"

    def test_free_spin_pair(self, evaluator):
        result = evaluator.evaluate(["🍒", "💎", "💎"])

        assert result.free_spins == 1
        assert result.tier is Tier.PAIR

    def test_wrong_grid_length_rejected(self, evaluator):
        with pytest.raises(ValueError):
            evaluator.evaluate(["🍒", "🍒"])

    def test_multiplier_below_one_rejected(self, evaluator):
        with pytest.raises(ValueError):
            evaluator.evaluate(["🍒", "🍒", "🍒"], multiplier=0)
