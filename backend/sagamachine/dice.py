"""
Dice rolling primitive for tests.

Supports the three shapes tests need: "1d10", "Nd10kh1" (roll N, keep the
highest) and "Nd10kl1" (roll N, keep the lowest). Every rolled die is
reported, with the ones not kept marked as discarded.
"""

import re
import random
from typing import List, Optional

from pydantic import BaseModel, Field

_FORMULA_RE = re.compile(r"^(\d*)d(\d+)(?:k([hl])(\d+))?$")


class DieResult(BaseModel):
    """A single rolled die."""

    result: int
    discarded: bool = False

    @property
    def active(self) -> bool:
        return not self.discarded


class RollResult(BaseModel):
    """Outcome of a roll: every die plus the running total of kept dice."""

    formula: str
    dice: List[DieResult] = Field(default_factory=list)
    total: int = 0

    @property
    def values(self) -> List[int]:
        return [d.result for d in self.dice]


class DiceRoller:
    """
    Rolls dice from a private random.Random stream.

    Pass ``seed`` for deterministic replays. Subclasses may override
    ``roll_die`` to script results.
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random(seed)

    def roll_die(self, faces: int) -> int:
        return self.rng.randint(1, faces)

    def roll(self, formula: str) -> RollResult:
        """
        Roll a formula such as "1d10", "4d10kh1" or "3d10kl1".

        Raises:
            ValueError: If the formula is not one of the supported shapes.
        """
        match = _FORMULA_RE.match(formula.replace(" ", ""))
        if not match:
            raise ValueError(f"Unsupported dice formula: {formula}")

        count = int(match.group(1) or 1)
        faces = int(match.group(2))
        dice = [DieResult(result=self.roll_die(faces)) for _ in range(count)]

        keep_mode = match.group(3)
        if keep_mode:
            keep = int(match.group(4))
            ordered = sorted(
                range(count),
                key=lambda i: dice[i].result,
                reverse=keep_mode == "h",
            )
            kept = set(ordered[:keep])
            for i, die in enumerate(dice):
                die.discarded = i not in kept

        total = sum(d.result for d in dice if d.active)
        return RollResult(formula=formula, dice=dice, total=total)
