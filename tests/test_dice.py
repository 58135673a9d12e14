"""
Tests for the dice roller primitive.
"""

import sys
import os
import pytest

# Add the backend directory to Python path
sys.path.insert(
    0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend"))
)

from sagamachine.dice import DiceRoller


class ScriptedRoller(DiceRoller):
    """Returns preset die results in order."""

    def __init__(self, results):
        super().__init__(seed=0)
        self.results = list(results)

    def roll_die(self, faces):
        return self.results.pop(0)


class TestRoll:
    """Test formula handling and kept dice."""

    def test_single_die(self):
        """Test 1d10 totals its only die."""
        roll = ScriptedRoller([7]).roll("1d10")
        assert roll.values == [7]
        assert roll.total == 7

    def test_keep_highest(self):
        """Test kh1 keeps the highest and discards the rest."""
        roll = ScriptedRoller([3, 9, 5]).roll("3d10kh1")
        assert roll.total == 9
        assert [d.discarded for d in roll.dice] == [True, False, True]

    def test_keep_lowest(self):
        """Test kl1 keeps the lowest."""
        roll = ScriptedRoller([3, 9, 5]).roll("3d10kl1")
        assert roll.total == 3
        assert [d.active for d in roll.dice] == [True, False, False]

    def test_tied_dice_keep_first(self):
        """Test only one of two equal dice is kept."""
        roll = ScriptedRoller([8, 8]).roll("2d10kh1")
        assert roll.total == 8
        assert [d.discarded for d in roll.dice] == [False, True]

    def test_unsupported_formula(self):
        """Test formulas outside NdF[kh|kl]N are rejected."""
        with pytest.raises(ValueError, match="Unsupported dice formula"):
            DiceRoller().roll("2d6+3")

    def test_seeded_rolls_repeat(self):
        """Test the same seed gives the same rolls."""
        first = DiceRoller(seed=42).roll("5d10kh1")
        second = DiceRoller(seed=42).roll("5d10kh1")
        assert first.values == second.values
        assert all(1 <= v <= 10 for v in first.values)
