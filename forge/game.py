"""Progression ledger: the only code that changes a user's numeric state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from .errors import ConflictError, NotFoundError, ValidationError
from .formulas import normalize_exercise, raid_damage, stat_gains, xp_gained, xp_threshold
from .models import (
    ITEM_CATALOG,
    LEVEL_UP_STAT_BONUS,
    STARTER_INVENTORY,
    ActivityType,
    EquipmentSlot,
    UserProgress,
)

log = logging.getLogger(__name__)

DEFAULT_MAX_REPS = 1000

STREAK_MILESTONES = (3, 7, 14, 30, 100)


@dataclass(frozen=True, slots=True)
class GameEvent:
    """Something worth telling the activity feed about."""

    kind: ActivityType
    user_id: int
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class WorkoutResult:
    exercise: str
    reps: int
    xp_gained: int
    stat_gains: Dict[str, int]
    leveled_up: bool
    levels_gained: int
    new_level: int
    raid_damage: int
    streak: int


@dataclass(frozen=True, slots=True)
class AggregateStats:
    """Read-only snapshot of a user taken right after the ledger ran.

    Every tracker reacting to the same workout receives the same snapshot,
    so none of them can observe another tracker's writes.
    """

    user_id: int
    level: int
    xp: int
    strength: int
    endurance: int
    agility: int
    workout_streak: int
    total_workouts: int
    lifetime_reps: int
    exercise_reps: Mapping[str, int]
    duel_wins: int = 0

    @classmethod
    def from_user(cls, user: UserProgress, *, duel_wins: int = 0) -> "AggregateStats":
        return cls(
            user_id=user.user_id,
            level=user.level,
            xp=user.xp,
            strength=user.strength,
            endurance=user.endurance,
            agility=user.agility,
            workout_streak=user.workout_streak,
            total_workouts=user.total_workouts,
            lifetime_reps=user.lifetime_reps,
            exercise_reps=MappingProxyType(dict(user.exercise_reps)),
            duel_wins=duel_wins,
        )

    def metric(self, name: str) -> int:
        if name in ("level", "user_level"):
            return self.level
        if name == "workout_streak":
            return self.workout_streak
        if name == "total_workouts":
            return self.total_workouts
        if name == "lifetime_reps":
            return self.lifetime_reps
        if name == "duel_wins":
            return self.duel_wins
        raise KeyError(f"Unknown aggregate metric: {name}")


def new_user(user_id: int, username: str = "", *, now: float = 0.0) -> UserProgress:
    return UserProgress(
        user_id=user_id,
        username=username,
        inventory=list(STARTER_INVENTORY),
        created_at=now,
    )


def validate_workout(exercise: str, reps: Any, *, max_reps: int = DEFAULT_MAX_REPS) -> str:
    """Return the canonical exercise name or raise :class:`ValidationError`."""

    if isinstance(reps, bool) or not isinstance(reps, int):
        raise ValidationError("Reps must be a whole number.")
    if reps <= 0:
        raise ValidationError("Reps must be greater than zero.")
    if reps > max_reps:
        raise ValidationError(f"Reps cannot exceed {max_reps} in a single workout.")
    normalized = normalize_exercise(exercise)
    if normalized is None:
        raise ValidationError(f"Unknown exercise: {exercise!r}.")
    return normalized


def _parse_day(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        log.warning("Ignoring malformed last workout date %r", value)
        return None


def _next_streak(user: UserProgress, today: date) -> tuple[int, str]:
    """Return the streak and last workout date after a workout on ``today``.

    A second workout on the same day leaves the streak where it is. Dates in
    the future relative to ``today`` are treated the same way.
    """

    last = _parse_day(user.last_workout_date)
    if last is None:
        return 1, today.isoformat()
    gap = (today - last).days
    if gap <= 0:
        return max(1, user.workout_streak), max(last, today).isoformat()
    if gap == 1:
        return user.workout_streak + 1, today.isoformat()
    return 1, today.isoformat()


def _resolve_level_ups(user: UserProgress) -> int:
    gained = 0
    while user.xp >= xp_threshold(user.level):
        user.xp -= xp_threshold(user.level)
        user.level += 1
        gained += 1
        for stat, bonus in LEVEL_UP_STAT_BONUS.items():
            setattr(user, stat, getattr(user, stat) + bonus)
    return gained


def grant_xp(user: UserProgress, amount: int) -> int:
    """Add ``amount`` experience and return the number of levels gained."""

    if amount < 0:
        raise ValidationError("Experience grants cannot be negative.")
    user.xp += amount
    gained = _resolve_level_ups(user)
    if gained:
        log.info("User %s reached level %s (+%s)", user.user_id, user.level, gained)
    return gained


def apply_workout(
    user: UserProgress,
    exercise: str,
    reps: Any,
    *,
    today: date,
    max_reps: int = DEFAULT_MAX_REPS,
) -> WorkoutResult:
    """Apply one workout to ``user`` in place.

    Input is validated before anything is touched, so a rejected workout
    leaves the record exactly as it was. Experience is computed from the
    level and streak the user had before this workout.
    """

    normalized = validate_workout(exercise, reps, max_reps=max_reps)

    earned = xp_gained(normalized, reps, user.level, user.workout_streak)
    gains = stat_gains(normalized, reps)
    streak, last_day = _next_streak(user, today)

    levels = grant_xp(user, earned)
    for stat, delta in gains.items():
        setattr(user, stat, getattr(user, stat) + delta)
    user.workout_streak = streak
    user.last_workout_date = last_day
    user.total_workouts += 1
    user.lifetime_reps += reps
    user.exercise_reps[normalized] = user.exercise_reps.get(normalized, 0) + reps

    return WorkoutResult(
        exercise=normalized,
        reps=reps,
        xp_gained=earned,
        stat_gains=gains,
        leveled_up=levels > 0,
        levels_gained=levels,
        new_level=user.level,
        raid_damage=raid_damage(normalized, reps, user.level),
        streak=streak,
    )


def workout_events(
    user: UserProgress, result: WorkoutResult, *, previous_streak: int
) -> List[GameEvent]:
    events = [
        GameEvent(
            ActivityType.WORKOUT,
            user.user_id,
            {"exercise": result.exercise, "reps": result.reps, "xp": result.xp_gained},
        )
    ]
    if result.leveled_up:
        events.append(
            GameEvent(ActivityType.LEVEL_UP, user.user_id, {"level": result.new_level})
        )
    if result.streak != previous_streak and result.streak in STREAK_MILESTONES:
        events.append(
            GameEvent(ActivityType.STREAK_MILESTONE, user.user_id, {"streak": result.streak})
        )
    return events


def equip_item(user: UserProgress, item_key: str) -> Optional[str]:
    """Move ``item_key`` from the inventory into its slot.

    Returns the key of the item that previously occupied the slot, which is
    put back into the inventory.
    """

    item = ITEM_CATALOG.get(item_key)
    if item is None:
        raise NotFoundError(f"Unknown item: {item_key!r}.")
    if item_key in user.equipment.values():
        raise ConflictError(f"{item.name} is already equipped.")
    if item_key not in user.inventory:
        raise NotFoundError(f"{item.name} is not in your inventory.")

    slot = item.slot.value
    previous = user.equipment.get(slot)
    user.inventory.remove(item_key)
    if previous is not None:
        user.inventory.append(previous)
    user.equipment[slot] = item_key
    return previous


def unequip_item(user: UserProgress, slot: EquipmentSlot | str) -> str:
    try:
        slot_key = EquipmentSlot.from_value(slot).value
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    item_key = user.equipment.pop(slot_key, None)
    if item_key is None:
        raise NotFoundError(f"Nothing is equipped in the {slot_key} slot.")
    if item_key not in user.inventory:
        user.inventory.append(item_key)
    return item_key


def effective_stats(user: UserProgress) -> Dict[str, int]:
    """Base stats plus equipment bonuses; the record itself is untouched."""

    totals = user.stats()
    for item_key in user.equipment.values():
        item = ITEM_CATALOG.get(item_key)
        if item is None:
            continue
        for stat, bonus in item.stats.items():
            if stat in totals:
                totals[stat] += bonus
    return totals


__all__ = [
    "AggregateStats",
    "DEFAULT_MAX_REPS",
    "GameEvent",
    "WorkoutResult",
    "apply_workout",
    "effective_stats",
    "equip_item",
    "grant_xp",
    "new_user",
    "unequip_item",
    "validate_workout",
    "workout_events",
]
