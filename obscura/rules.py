"""Game rules — derived attributes, checks, bonus/penalty dice, skill defaults.

Damage bonus / build, keyed by STR + SIZ:
  < 65      -2     build -2
  65-84     -1     build -1
  85-124    0      build 0
  125-164   1d4    build 1
  165-204   1d6    build 2
  205+      (1+k)d6, build 2+k   where k = ceil((total - 204) / 80)

Movement: 7 if DEX and STR are both below SIZ, 9 if both above, else 8;
then -1 for each of the ages 40, 50, 60, 70, 80 reached. No floor.

Check tiers, first match wins:
  roll <= 1           critical     (even at skill 0)
  roll <= skill // 5  extreme
  roll <= skill // 2  hard
  roll <= skill       regular
  roll >= 96          fumble
  otherwise           failure

Bonus/penalty: three d100 draws, five levels reported together:
  p2 min(a, b, c)   p1 min(a, b)   p0 a   n1 max(a, b)   n2 max(a, b, c)

Everything here is pure and total over ints: same inputs, same outputs, no
clock and no hidden randomness. Draws come in from a RandomSource.
"""

from __future__ import annotations

import math
from typing import Any, NamedTuple

from obscura.models import (
    BonusPenaltyOutcome,
    Character,
    CharacterStats,
    CheckOutcome,
    CompactClass,
    ResultClass,
    RollOutcome,
)
from obscura.randomness import RandomSource, roll_percentile

# ---------------------------------------------------------------------------
# Derived attributes
# ---------------------------------------------------------------------------

# (exclusive upper bound of STR+SIZ, damage bonus, build)
DAMAGE_BONUS_TABLE = [
    (65, "-2", -2),
    (85, "-1", -1),
    (125, "0", 0),
    (165, "1d4", 1),
    (205, "1d6", 2),
]

MOVEMENT_BASE = 8
MOVEMENT_AGE_THRESHOLDS = (40, 50, 60, 70, 80)

# Fields whose change forces a recompute
DERIVED_INPUTS = ("stats.strength", "stats.size", "stats.dexterity", "age")


class DerivedResult(NamedTuple):
    damage_bonus: str
    build: int
    movement: int


def damage_bonus_and_build(strength: int, size: int) -> tuple[str, int]:
    total = strength + size
    for upper, bonus, build in DAMAGE_BONUS_TABLE:
        if total < upper:
            return bonus, build
    extra = math.ceil((total - 204) / 80)
    return f"{1 + extra}d6", 2 + extra


def movement_rate(dexterity: int, strength: int, size: int, age: int) -> int:
    mov = MOVEMENT_BASE
    if dexterity < size and strength < size:
        mov = 7
    elif dexterity > size and strength > size:
        mov = 9
    for threshold in MOVEMENT_AGE_THRESHOLDS:
        if age >= threshold:
            mov -= 1
    return mov


def calculate_derived(stats: CharacterStats, age: int) -> DerivedResult:
    bonus, build = damage_bonus_and_build(stats.strength, stats.size)
    mov = movement_rate(stats.dexterity, stats.strength, stats.size, age)
    return DerivedResult(damage_bonus=bonus, build=build, movement=mov)


def recompute_patch(character: Character) -> dict[str, Any]:
    """Return the field patch that brings cached derived values up to date.

    Empty when the stored values already match, so calling it on an
    unchanged character never produces a write.
    """
    fresh = calculate_derived(character.stats, character.age)
    patch: dict[str, Any] = {}
    if (
        character.derived.damage_bonus != fresh.damage_bonus
        or character.derived.build != fresh.build
    ):
        patch["derived"] = {"damage_bonus": fresh.damage_bonus, "build": fresh.build}
    if character.stats.movement != fresh.movement:
        patch["stats.movement"] = fresh.movement
    return patch


# ---------------------------------------------------------------------------
# Vital ceilings (display only, never clamped)
# ---------------------------------------------------------------------------

def max_hp(character: Character) -> int:
    divisor = 5 if character.vitals.pulp_hp else 10
    return (character.stats.constitution + character.stats.size) // divisor


def max_mp(character: Character) -> int:
    return character.stats.power // 5


def max_sanity(character: Character) -> int:
    return 99 - character.skills.get(CTHULHU_MYTHOS, 0)


def major_wound_threshold(character: Character) -> int:
    return max_hp(character) // 2


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

FUMBLE_THRESHOLD = 96

RESULT_TEXT: dict[ResultClass, str] = {
    "success-critical": "Critical Success",
    "success-extreme": "Extreme Success",
    "success-hard": "Hard Success",
    "success-regular": "Success",
    "fumble": "Fumble",
    "failure": "Failure",
}


def check_tier(skill_value: int, roll: int) -> ResultClass:
    if roll <= 1:
        return "success-critical"
    if roll <= skill_value // 5:
        return "success-extreme"
    if roll <= skill_value // 2:
        return "success-hard"
    if roll <= skill_value:
        return "success-regular"
    if roll >= FUMBLE_THRESHOLD:
        return "fumble"
    return "failure"


def compact_class(tier: ResultClass) -> CompactClass:
    if tier.startswith("success"):
        return "success"
    return "fumble" if tier == "fumble" else "failure"


def resolve_check(skill_value: int, roll: int) -> CheckOutcome:
    tier = check_tier(skill_value, roll)
    return CheckOutcome(
        roll=roll,
        skill_value=skill_value,
        hard_value=skill_value // 2,
        extreme_value=skill_value // 5,
        result_text=RESULT_TEXT[tier],
        result_class=tier,
    )


def roll_check(skill_value: int, source: RandomSource) -> CheckOutcome:
    return resolve_check(skill_value, roll_percentile(source))


# ---------------------------------------------------------------------------
# Bonus / penalty dice
# ---------------------------------------------------------------------------

BONUS_PENALTY_LEVELS = ("p2", "p1", "p0", "n1", "n2")


def _level_outcome(skill_value: int, roll: int) -> RollOutcome:
    tier = check_tier(skill_value, roll)
    return RollOutcome(roll=roll, text=RESULT_TEXT[tier], result_class=compact_class(tier))


def resolve_bonus_penalty(skill_value: int, draws: list[int]) -> BonusPenaltyOutcome:
    """Derive all five bonus/penalty levels from exactly three draws."""
    if len(draws) != 3:
        raise ValueError(f"Bonus/penalty needs exactly 3 draws, got {len(draws)}")
    a, b, c = draws
    selected = {
        "p2": min(a, b, c),
        "p1": min(a, b),
        "p0": a,
        "n1": max(a, b),
        "n2": max(a, b, c),
    }
    return BonusPenaltyOutcome(
        skill_value=skill_value,
        hard_value=skill_value // 2,
        extreme_value=skill_value // 5,
        all_rolls=[a, b, c],
        results={
            level: _level_outcome(skill_value, selected[level])
            for level in BONUS_PENALTY_LEVELS
        },
    )


def roll_bonus_penalty(skill_value: int, source: RandomSource) -> BonusPenaltyOutcome:
    draws = [roll_percentile(source) for _ in range(3)]
    return resolve_bonus_penalty(skill_value, draws)


# ---------------------------------------------------------------------------
# Skills
# ---------------------------------------------------------------------------

DODGE = "Dodge"
OWN_LANGUAGE = "Language (Own)"
CTHULHU_MYTHOS = "Cthulhu Mythos"

BASE_SKILLS: dict[str, int] = {
    "Spot Hidden": 25, "Library Use": 20, "Listen": 20, "Jump": 20,
    "Fast Talk": 5, "Charm": 15, "Disguise": 5, "Persuade": 10,
    "Sleight of Hand": 10, "Swim": 20, "Ride": 5, "Psychology": 10,
    "Intimidate": 15, "Stealth": 20, "Track": 10, "Throw": 20,
    "Fighting (Brawl)": 25, "Firearms (Handgun)": 20,
    "Firearms (Rifle/Shotgun)": 25, DODGE: 0,
    "Mechanical Repair": 10, "Locksmith": 1, "Electrical Repair": 10,
    "Drive Auto": 20, "Operate Heavy Machinery": 1,
    "Archaeology": 1, "History": 5, "Occult": 5, "Medicine": 1,
    "Anthropology": 1, "Natural World": 10, "Psychoanalysis": 1,
    CTHULHU_MYTHOS: 0, "Accounting": 5, OWN_LANGUAGE: 0,
    "Art/Craft": 5, "Science": 1, "Survival": 10, "First Aid": 30,
    "Climb": 20, "Credit Rating": 0, "Navigate": 10,
}


def _dynamic_defaults(stats: CharacterStats) -> dict[str, int]:
    return {DODGE: stats.dexterity // 2, OWN_LANGUAGE: stats.education}


def skill_value(character: Character, name: str) -> int:
    """Live value: stored → stat-derived (dodge, own language) → table → 0."""
    if name in character.skills:
        return character.skills[name]
    dynamic = _dynamic_defaults(character.stats)
    if name in dynamic:
        return dynamic[name]
    return BASE_SKILLS.get(name, 0)


def live_skills(character: Character) -> dict[str, int]:
    """Every skill on the sheet: table defaults plus custom skills, resolved."""
    names = sorted(set(BASE_SKILLS) | set(character.skills))
    return {name: skill_value(character, name) for name in names}


def missing_dynamic_defaults(character: Character) -> dict[str, int]:
    """Stat-derived skills with no stored value, to be persisted once."""
    return {
        name: value
        for name, value in _dynamic_defaults(character.stats).items()
        if name not in character.skills
    }


# ---------------------------------------------------------------------------
# Template
# ---------------------------------------------------------------------------

def new_character(
    character_id: str,
    name: str,
    owner: str,
    player_name: str = "",
    movement: int | None = None,
) -> Character:
    """Fresh investigator with the fixed starting values.

    `movement` overrides the computed movement rate at creation only; the
    next recompute replaces it.
    """
    initial = 50
    character = Character(
        id=character_id,
        name=name or "Unnamed Investigator",
        owner=owner,
        player_name=player_name,
        skills={
            CTHULHU_MYTHOS: 0,
            DODGE: initial // 2,
            OWN_LANGUAGE: initial,
        },
        expressions={"default": ""},
    )
    fresh = calculate_derived(character.stats, character.age)
    character.derived.damage_bonus = fresh.damage_bonus
    character.derived.build = fresh.build
    character.stats.movement = fresh.movement if movement is None else movement
    return character
