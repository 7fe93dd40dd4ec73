"""Dice notation for the free-form "/r" chat command.

Accepted form: ``<count>d<faces>`` with an optional ``+K`` or ``-K``
modifier, e.g. ``1d100``, ``3d6+2``, ``2D8 - 1``. Anything else is rejected
before a single die is thrown.
"""

from __future__ import annotations

import re

from pydantic import BaseModel

from obscura.randomness import RandomSource

MAX_DICE = 100
MIN_FACES = 2
MAX_FACES = 1000

_DICE_RE = re.compile(r"(\d+)\s*[dD]\s*(\d+)(?:\s*([+-])\s*(\d+))?")


class InvalidDiceExpression(ValueError):
    """Raised for dice notation that cannot be rolled."""


class DiceExpression(BaseModel):
    count: int
    faces: int
    modifier: int = 0

    def __str__(self) -> str:
        text = f"{self.count}d{self.faces}"
        if self.modifier > 0:
            text += f"+{self.modifier}"
        elif self.modifier < 0:
            text += f"-{-self.modifier}"
        return text


class DiceRoll(BaseModel):
    expression: DiceExpression
    rolls: list[int]
    total: int

    def describe(self) -> str:
        """Chat text, e.g. ``3d6+2 roll: 13 (4, 5, 2)``."""
        joined = ", ".join(str(r) for r in self.rolls)
        return f"{self.expression} roll: {self.total} ({joined})"


def parse_dice_expression(text: str) -> DiceExpression:
    """Parse ``NdM[+-K]``. Raises InvalidDiceExpression on anything else."""
    match = _DICE_RE.fullmatch(text.strip())
    if not match:
        raise InvalidDiceExpression(f"Invalid dice: {text!r}")
    count, faces = int(match.group(1)), int(match.group(2))
    if not 1 <= count <= MAX_DICE:
        raise InvalidDiceExpression(f"Dice count must be 1-{MAX_DICE}, got {count}")
    if not MIN_FACES <= faces <= MAX_FACES:
        raise InvalidDiceExpression(
            f"Dice faces must be {MIN_FACES}-{MAX_FACES}, got {faces}"
        )
    modifier = 0
    if match.group(3):
        modifier = int(match.group(4))
        if match.group(3) == "-":
            modifier = -modifier
    return DiceExpression(count=count, faces=faces, modifier=modifier)


def roll_dice(text: str, source: RandomSource) -> DiceRoll:
    """Parse and roll a dice expression."""
    expression = parse_dice_expression(text)
    rolls = [source.roll_uniform(1, expression.faces) for _ in range(expression.count)]
    return DiceRoll(
        expression=expression,
        rolls=rolls,
        total=sum(rolls) + expression.modifier,
    )
