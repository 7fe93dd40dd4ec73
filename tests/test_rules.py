"""Tests for obscura.rules — derived attributes, checks, bonus/penalty, skills."""

import pytest

from obscura.models import Character, CharacterStats
from obscura.randomness import SequenceRandom
from obscura.rules import (
    BASE_SKILLS,
    CTHULHU_MYTHOS,
    DODGE,
    OWN_LANGUAGE,
    calculate_derived,
    check_tier,
    damage_bonus_and_build,
    live_skills,
    major_wound_threshold,
    max_hp,
    max_mp,
    max_sanity,
    missing_dynamic_defaults,
    movement_rate,
    new_character,
    recompute_patch,
    resolve_bonus_penalty,
    resolve_check,
    roll_bonus_penalty,
    roll_check,
    skill_value,
)


def _character(**stats) -> Character:
    return Character(id="c1", name="Harvey", owner="u1", stats=CharacterStats(**stats))


# ── Damage bonus / build ───────────────────────────────────


@pytest.mark.parametrize(
    "total, bonus, build",
    [
        (64, "-2", -2),
        (65, "-1", -1),
        (84, "-1", -1),
        (85, "0", 0),
        (124, "0", 0),
        (125, "1d4", 1),
        (164, "1d4", 1),
        (165, "1d6", 2),
        (204, "1d6", 2),
        (205, "2d6", 3),
    ],
)
def test_damage_bonus_boundaries(total, bonus, build):
    assert damage_bonus_and_build(total - 40, 40) == (bonus, build)


def test_damage_bonus_examples():
    assert damage_bonus_and_build(80, 80) == ("1d4", 1)
    assert damage_bonus_and_build(110, 110) == ("2d6", 3)


def test_damage_bonus_extends_every_80_points():
    assert damage_bonus_and_build(142, 142) == ("2d6", 3)  # 284 → k=1
    assert damage_bonus_and_build(143, 142) == ("3d6", 4)  # 285 → k=2


def test_build_monotonic_in_total():
    builds = [damage_bonus_and_build(total, 0)[1] for total in range(0, 400)]
    assert builds == sorted(builds)


# ── Movement ───────────────────────────────────────────────


def test_movement_mixed_case_keeps_base():
    assert movement_rate(dexterity=60, strength=40, size=50, age=25) == 8


def test_movement_both_above_with_all_age_penalties():
    assert movement_rate(dexterity=70, strength=70, size=50, age=82) == 4


def test_movement_both_below():
    assert movement_rate(dexterity=40, strength=40, size=50, age=30) == 7


def test_movement_ties_keep_base():
    assert movement_rate(dexterity=50, strength=60, size=50, age=20) == 8
    assert movement_rate(dexterity=50, strength=50, size=50, age=20) == 8


@pytest.mark.parametrize("age, penalty", [(39, 0), (40, 1), (49, 1), (50, 2), (60, 3), (70, 4), (80, 5), (95, 5)])
def test_movement_age_thresholds(age, penalty):
    assert movement_rate(dexterity=50, strength=50, size=50, age=age) == 8 - penalty


def test_movement_has_no_floor():
    assert movement_rate(dexterity=10, strength=10, size=90, age=85) == 2


# ── calculate_derived / recompute_patch ────────────────────


def test_calculate_derived_is_idempotent():
    stats = CharacterStats(strength=75, size=65, dexterity=80)
    assert calculate_derived(stats, 44) == calculate_derived(stats, 44)
    assert calculate_derived(stats, 44) == ("1d4", 1, 8)


def test_recompute_patch_empty_when_current():
    char = new_character("c1", "Harvey", "u1")
    assert recompute_patch(char) == {}


def test_recompute_patch_overwrites_stale_values():
    char = _character(strength=90, size=80, dexterity=85)
    char.derived.damage_bonus = "0"
    char.derived.build = 0
    char.stats.movement = 8
    patch = recompute_patch(char)
    assert patch == {
        "derived": {"damage_bonus": "1d6", "build": 2},
        "stats.movement": 9,
    }


def test_recompute_patch_after_hand_edit_of_derived():
    """A derived value set by hand is not trusted."""
    char = new_character("c1", "Harvey", "u1")
    char.derived.build = 5
    assert recompute_patch(char)["derived"]["build"] == 0


# ── Vital ceilings ─────────────────────────────────────────


def test_vital_ceilings():
    char = _character(constitution=55, size=70, power=65)
    char.skills[CTHULHU_MYTHOS] = 12
    assert max_hp(char) == 12
    assert max_mp(char) == 13
    assert max_sanity(char) == 87
    assert major_wound_threshold(char) == 6


def test_pulp_hp_doubles_ceiling():
    char = _character(constitution=55, size=70)
    char.vitals.pulp_hp = True
    assert max_hp(char) == 25


def test_sanity_ceiling_without_mythos():
    assert max_sanity(_character()) == 99


# ── Checks ─────────────────────────────────────────────────


def test_roll_of_one_is_always_critical():
    for skill in range(0, 101):
        assert check_tier(skill, 1) == "success-critical"


def test_extreme_tier():
    for skill in range(10, 101):
        for roll in range(2, skill // 5 + 1):
            assert check_tier(skill, roll) == "success-extreme"


def test_tier_ladder_for_skill_60():
    assert check_tier(60, 12) == "success-extreme"
    assert check_tier(60, 13) == "success-hard"
    assert check_tier(60, 30) == "success-hard"
    assert check_tier(60, 31) == "success-regular"
    assert check_tier(60, 60) == "success-regular"
    assert check_tier(60, 61) == "failure"
    assert check_tier(60, 95) == "failure"
    assert check_tier(60, 96) == "fumble"
    assert check_tier(60, 100) == "fumble"


def test_high_skill_never_fumbles_under_value():
    for skill in (96, 98, 100):
        for roll in range(96, skill + 1):
            assert check_tier(skill, roll).startswith("success")


def test_skill_zero_roll_two_fails():
    assert check_tier(0, 2) == "failure"


def test_resolve_check_outcome_fields():
    outcome = resolve_check(65, 20)
    assert outcome.roll == 20
    assert outcome.skill_value == 65
    assert outcome.hard_value == 32
    assert outcome.extreme_value == 13
    assert outcome.result_class == "success-hard"
    assert outcome.result_text == "Hard Success"
    assert outcome.is_success


def test_resolve_check_fumble_is_not_success():
    outcome = resolve_check(40, 99)
    assert outcome.result_text == "Fumble"
    assert not outcome.is_success


def test_roll_check_draws_once_from_d100():
    source = SequenceRandom([37])
    outcome = roll_check(50, source)
    assert outcome.roll == 37
    assert source.remaining == 0


# ── Bonus / penalty ────────────────────────────────────────


def test_bonus_penalty_selection():
    outcome = resolve_bonus_penalty(50, [40, 15, 90])
    rolls = {level: r.roll for level, r in outcome.results.items()}
    assert rolls == {"p2": 15, "p1": 15, "p0": 40, "n1": 40, "n2": 90}
    assert outcome.all_rolls == [40, 15, 90]


def test_bonus_penalty_plain_level_is_first_draw():
    for draws in ([70, 1, 99], [5, 50, 60], [100, 100, 1]):
        outcome = resolve_bonus_penalty(50, draws)
        assert outcome.results["p0"].roll == draws[0]
        assert outcome.results["p2"].roll == min(draws)
        assert outcome.results["n2"].roll == max(draws)


def test_bonus_penalty_compact_classes_keep_label():
    outcome = resolve_bonus_penalty(60, [8, 45, 97])
    assert outcome.results["p2"].result_class == "success"
    assert outcome.results["p2"].text == "Extreme Success"
    assert outcome.results["n1"].result_class == "success"
    assert outcome.results["n1"].text == "Success"
    assert outcome.results["n2"].result_class == "fumble"
    assert outcome.results["n2"].text == "Fumble"


def test_bonus_penalty_failure_class():
    outcome = resolve_bonus_penalty(20, [50, 60, 70])
    assert {r.result_class for r in outcome.results.values()} == {"failure"}


def test_bonus_penalty_needs_three_draws():
    with pytest.raises(ValueError):
        resolve_bonus_penalty(50, [1, 2])


def test_roll_bonus_penalty_draws_three():
    source = SequenceRandom([33, 66, 11])
    outcome = roll_bonus_penalty(45, source)
    assert outcome.all_rolls == [33, 66, 11]
    assert source.remaining == 0


# ── Skills ─────────────────────────────────────────────────


def test_dynamic_dodge_default():
    char = _character(dexterity=63)
    assert skill_value(char, DODGE) == 31


def test_dynamic_own_language_default():
    char = _character(education=72)
    assert skill_value(char, OWN_LANGUAGE) == 72


def test_stored_value_wins_over_dynamic_default():
    char = _character(dexterity=63)
    char.skills[DODGE] = 40
    char.stats.dexterity = 90
    assert skill_value(char, DODGE) == 40


def test_stored_zero_counts_as_set():
    char = _character(dexterity=80)
    char.skills[DODGE] = 0
    assert skill_value(char, DODGE) == 0


def test_table_default_and_unknown_skill():
    char = _character()
    assert skill_value(char, "First Aid") == 30
    assert skill_value(char, "Basket Weaving") == 0


def test_live_skills_includes_custom_skills():
    char = _character(dexterity=40)
    char.skills["Pilot (Airship)"] = 45
    skills = live_skills(char)
    assert skills["Pilot (Airship)"] == 45
    assert skills[DODGE] == 20
    assert set(BASE_SKILLS) <= set(skills)
    assert list(skills) == sorted(skills)


def test_missing_dynamic_defaults():
    char = _character(dexterity=63, education=70)
    char.skills[OWN_LANGUAGE] = 80
    assert missing_dynamic_defaults(char) == {DODGE: 31}


# ── Template ───────────────────────────────────────────────


def test_new_character_template():
    char = new_character("c1", "Harvey Walters", "u1", player_name="Ann")
    assert char.owner == "u1"
    assert char.player_name == "Ann"
    assert char.age == 25
    assert char.stats.strength == 50
    assert char.stats.movement == 8
    assert char.vitals.hp == 10
    assert char.vitals.mp == 10
    assert char.vitals.sanity == 50
    assert char.vitals.initial_sanity == 50
    assert char.derived.damage_bonus == "0"
    assert char.derived.build == 0
    assert char.skills == {CTHULHU_MYTHOS: 0, DODGE: 25, OWN_LANGUAGE: 50}


def test_new_character_blank_name():
    assert new_character("c1", "", "u1").name == "Unnamed Investigator"


def test_new_character_movement_override_is_replaced_on_recompute():
    char = new_character("c1", "Harvey", "u1", movement=10)
    assert char.stats.movement == 10
    assert recompute_patch(char) == {"stats.movement": 8}
