from __future__ import annotations

import random
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from forge.errors import NotFoundError, ValidationError
from forge.formulas import KNOWN_EXERCISES, xp_threshold
from forge.game import (
    AggregateStats,
    apply_workout,
    effective_stats,
    equip_item,
    grant_xp,
    new_user,
    unequip_item,
    workout_events,
)
from forge.models import ActivityType, UserProgress

DAY = date(2024, 5, 1)


def test_sixty_pushups_stay_below_level_two() -> None:
    user = new_user(1, "Ada")

    result = apply_workout(user, "pushup", 60, today=DAY)

    assert result.xp_gained == 94
    assert not result.leveled_up
    assert user.level == 1
    assert user.xp == 94
    assert user.strength == 13
    assert (user.endurance, user.agility) == (10, 10)
    assert result.stat_gains == {"strength": 3}
    assert result.raid_damage == 132
    assert user.workout_streak == 1
    assert user.last_workout_date == "2024-05-01"


def test_crossing_the_threshold_adds_one_level_bonus() -> None:
    user = new_user(1)
    apply_workout(user, "pushup", 60, today=DAY)

    result = apply_workout(user, "pushup", 10, today=DAY)

    assert result.leveled_up
    assert result.levels_gained == 1
    assert user.level == 2
    assert user.xp == 10
    # +2/+2/+1 for the level, +1 strength from the pushups themselves
    assert user.strength == 16
    assert user.endurance == 12
    assert user.agility == 11


def test_large_workout_levels_up_several_times() -> None:
    user = new_user(1)

    result = apply_workout(user, "pushup", 1000, today=DAY)

    assert result.levels_gained == 5
    assert user.level == 6
    assert 0 <= user.xp < xp_threshold(user.level)
    assert user.strength == 10 + 2 * result.levels_gained + 41
    assert user.endurance == 10 + 2 * result.levels_gained
    assert user.agility == 10 + result.levels_gained


def test_level_invariant_holds_over_many_workouts() -> None:
    rng = random.Random(42)
    user = new_user(7)
    exercises = sorted(KNOWN_EXERCISES)
    today = DAY
    for _ in range(300):
        if rng.random() < 0.5:
            today += timedelta(days=rng.randint(0, 3))
        apply_workout(user, rng.choice(exercises), rng.randint(1, 1000), today=today)
        assert 0 <= user.xp < xp_threshold(user.level)
        assert user.level >= 1


@pytest.mark.parametrize("reps", [0, -5, 1001, 2.5, True, "10", None])
def test_rejected_reps_leave_user_untouched(reps: object) -> None:
    user = new_user(1)
    apply_workout(user, "squat", 20, today=DAY)
    before = user.to_dict()

    with pytest.raises(ValidationError):
        apply_workout(user, "squat", reps, today=DAY + timedelta(days=1))

    assert user.to_dict() == before


def test_unknown_exercise_is_rejected() -> None:
    user = new_user(1)
    before = user.to_dict()

    with pytest.raises(ValidationError):
        apply_workout(user, "yoga", 10, today=DAY)

    assert user.to_dict() == before


def test_max_reps_is_configurable() -> None:
    user = new_user(1)
    with pytest.raises(ValidationError):
        apply_workout(user, "squat", 51, today=DAY, max_reps=50)
    apply_workout(user, "squat", 50, today=DAY, max_reps=50)
    assert user.lifetime_reps == 50


def test_streak_policy() -> None:
    user = new_user(1)

    assert apply_workout(user, "squat", 10, today=DAY).streak == 1
    assert apply_workout(user, "squat", 10, today=DAY + timedelta(days=1)).streak == 2
    # a second workout on the same day does not move the streak
    assert apply_workout(user, "squat", 10, today=DAY + timedelta(days=1)).streak == 2
    assert apply_workout(user, "squat", 10, today=DAY + timedelta(days=2)).streak == 3
    # a missed day starts over
    assert apply_workout(user, "squat", 10, today=DAY + timedelta(days=4)).streak == 1
    assert user.last_workout_date == (DAY + timedelta(days=4)).isoformat()


def test_experience_uses_pre_workout_streak() -> None:
    fresh = new_user(1)
    first = apply_workout(fresh, "squat", 50, today=DAY)

    streaking = new_user(2)
    streaking.workout_streak = 4
    streaking.last_workout_date = (DAY - timedelta(days=1)).isoformat()
    boosted = apply_workout(streaking, "squat", 50, today=DAY)

    assert boosted.xp_gained > first.xp_gained
    assert streaking.workout_streak == 5


def test_lifetime_totals_accumulate() -> None:
    user = new_user(1)
    apply_workout(user, "squats", 20, today=DAY)
    apply_workout(user, "Push-Ups", 15, today=DAY)
    apply_workout(user, "squat", 5, today=DAY)

    assert user.total_workouts == 3
    assert user.lifetime_reps == 40
    assert user.exercise_reps == {"squat": 25, "pushup": 15}


def test_workout_events_include_level_and_streak_milestones() -> None:
    user = new_user(1)
    user.workout_streak = 2
    user.last_workout_date = (DAY - timedelta(days=1)).isoformat()
    user.xp = 99

    result = apply_workout(user, "squat", 10, today=DAY)
    kinds = [event.kind for event in workout_events(user, result, previous_streak=2)]

    assert kinds == [ActivityType.WORKOUT, ActivityType.LEVEL_UP, ActivityType.STREAK_MILESTONE]


def test_grant_xp_shares_the_level_loop() -> None:
    user = new_user(1)
    assert grant_xp(user, 350) == 2
    assert (user.level, user.xp) == (3, 50)
    with pytest.raises(ValidationError):
        grant_xp(user, -1)


def test_equip_moves_items_between_inventory_and_slots() -> None:
    user = new_user(1)
    assert user.inventory == ["basic_gloves", "water_bottle"]

    assert equip_item(user, "basic_gloves") is None
    assert user.equipment == {"accessory": "basic_gloves"}
    assert user.inventory == ["water_bottle"]

    assert equip_item(user, "water_bottle") == "basic_gloves"
    assert user.equipment == {"accessory": "water_bottle"}
    assert user.inventory == ["basic_gloves"]
    assert not set(user.equipment.values()) & set(user.inventory)

    stats = effective_stats(user)
    assert stats["endurance"] == user.endurance + 1
    assert user.endurance == 10

    assert unequip_item(user, "accessory") == "water_bottle"
    assert user.equipment == {}
    assert sorted(user.inventory) == ["basic_gloves", "water_bottle"]


def test_equip_errors() -> None:
    user = new_user(1)
    with pytest.raises(NotFoundError):
        equip_item(user, "excalibur")
    with pytest.raises(NotFoundError):
        equip_item(user, "kettlebell")
    with pytest.raises(NotFoundError):
        unequip_item(user, "weapon")
    with pytest.raises(ValidationError):
        unequip_item(user, "helmet")


def test_user_record_drops_equipped_items_from_inventory() -> None:
    user = UserProgress(
        user_id=3,
        equipment={"weapon": "kettlebell"},
        inventory=["kettlebell", "basic_gloves", "basic_gloves"],
    )
    assert user.inventory == ["basic_gloves"]


def test_aggregate_snapshot_is_detached_from_user() -> None:
    user = new_user(1)
    apply_workout(user, "squat", 10, today=DAY)
    snapshot = AggregateStats.from_user(user, duel_wins=2)

    apply_workout(user, "squat", 10, today=DAY)

    assert snapshot.total_workouts == 1
    assert snapshot.exercise_reps["squat"] == 10
    assert snapshot.metric("duel_wins") == 2
    with pytest.raises(TypeError):
        snapshot.exercise_reps["squat"] = 99  # type: ignore[index]
