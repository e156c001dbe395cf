"""
Unit tests for SymbolGenerator and hourly jackpot timing.

Test Coverage
-------------
- Weighted draws never produce the jackpot symbol
- Jackpot gate and symbol magnets
- Every symbol's frequency over 100k draws matches its weight, jackpot gate included
- Lucky second derivation per UTC hour
"""

import random
from collections import Counter
from datetime import datetime, timezone

import pytest

from src.modules.slots import jackpot
from src.modules.slots.symbols import SymbolGenerator


@pytest.fixture
def generator(game_config):
    return SymbolGenerator(game_config.symbols, random.Random(7))


@pytest.mark.unit
class TestDraws:
    """Weighted draws and grid shaping."""

    def test_total_weight(self, generator):
        assert generator.total_weight == 120

    def test_weighted_draw_never_yields_jackpot(self, generator):
        draws = {generator.draw() for _ in range(2000)}

        assert "🦡" not in draws
        assert draws == set(generator.symbols)

    def test_distribution_follows_weights(self, game_config):
        # Arrange
        generator = SymbolGenerator(game_config.symbols, random.Random(2026))
        weights = game_config.symbols.weights
        draws = 100_000

        # Act
        counts = Counter(generator.draw() for _ in range(draws))

        # Assert
        assert set(counts) == set(weights)
        for symbol, weight in weights.items():
            assert counts[symbol] / draws == pytest.approx(weight / generator.total_weight, abs=0.01)

    def test_gated_jackpot_frequency(self, game_config):
        # Arrange
        generator = SymbolGenerator(game_config.symbols, random.Random(2026))
        config = game_config.symbols
        chance = 1 / config.jackpot_one_in
        grids = 34_000

        # Act
        counts = Counter(
            symbol for _ in range(grids) for symbol in generator.draw_grid(jackpot_chance=chance)
        )

        # Assert
        cells = grids * config.grid_size
        assert cells >= 100_000
        assert counts[config.jackpot_symbol] / cells == pytest.approx(chance, abs=0.002)
        for symbol, weight in config.weights.items():
            expected = (1 - chance) * weight / generator.total_weight
            assert counts[symbol] / cells == pytest.approx(expected, abs=0.01)

    def test_certain_jackpot_fills_grid(self, generator):
        assert generator.draw_grid(jackpot_chance=1.0) == ["🦡", "🦡", "🦡"]

    def test_zero_jackpot_chance(self, generator):
        grids = [generator.draw_grid(jackpot_chance=0.0) for _ in range(200)]

        assert all("🦡" not in grid for grid in grids)
        assert all(len(grid) == 3 for grid in grids)

    def test_certain_magnet_attracts_its_symbol(self, generator):
        grid = generator.draw_grid(0.0, ("⭐",), reroll_chance=1.0, boost_chance=1.0)

        assert grid == ["⭐", "⭐", "⭐"]

    def test_magnet_precedence_falls_through_on_match(self, game_config, mocker):
        rng = mocker.Mock(spec=random.Random)
        rng.random.return_value = 0.5
        # Cumulative table: 🍒 24, 🍋 44, 🍊 63, 💎 84, 🍇 99, 🍉 110, ⭐ 120
        rng.randrange.return_value = 119
        generator = SymbolGenerator(game_config.symbols, rng)

        grid = generator.draw_grid(0.0, ("⭐", "💎"), reroll_chance=1.0, boost_chance=1.0)

        assert grid == ["💎", "💎", "💎"]


@pytest.mark.unit
class TestHourlyJackpotTiming:
    """One lucky second per UTC hour."""

    def test_lucky_second_formula(self):
        # 14 Oct 2026, 12h: (14 * 100 + 10 * 10 + 12) % 60 = 12
        ts = datetime(2026, 10, 14, 12, 0, 0, tzinfo=timezone.utc).timestamp()

        assert jackpot.lucky_second(ts) == 12
        assert jackpot.hour_id(ts) == "2026-10-14T12"

    def test_only_the_lucky_second_matches(self):
        base = datetime(2026, 10, 14, 12, 5, 0, tzinfo=timezone.utc).timestamp()

        matches = [s for s in range(60) if jackpot.is_lucky_second(base + s)]

        assert matches == [12]
