"""Pure progression formulas shared by the ledger and the trackers."""

from __future__ import annotations

import math
from types import MappingProxyType
from typing import Mapping

# Experience multipliers per unit of work. Most exercises are counted in reps;
# planks are counted in seconds and runs in minutes.
_BASE_XP_MULTIPLIERS: Mapping[str, float] = {
    "squat": 2.0,
    "pushup": 1.5,
    "pullup": 2.5,
    "situp": 1.2,
    "lunge": 1.8,
    "burpee": 3.0,
    "plank": 0.5,
    "run": 3.0,
}

EXERCISE_XP_MULTIPLIERS: Mapping[str, float] = MappingProxyType(dict(_BASE_XP_MULTIPLIERS))

KNOWN_EXERCISES: frozenset[str] = frozenset(EXERCISE_XP_MULTIPLIERS)

EXERCISE_UNITS: Mapping[str, str] = MappingProxyType(
    {"plank": "seconds", "run": "minutes"}
)

# Each level adds 5% on top of the base experience.
LEVEL_BONUS_RATE = 0.05

# Each consecutive day adds 5%, capped at ten days (+50%).
STREAK_BONUS_RATE = 0.05
STREAK_BONUS_CAP_DAYS = 10

EXERCISE_STATS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "squat": ("strength",),
        "pushup": ("strength",),
        "pullup": ("strength", "agility"),
        "situp": ("endurance",),
        "lunge": ("agility", "strength"),
        "burpee": ("endurance", "agility"),
        "plank": ("endurance",),
        "run": ("endurance",),
    }
)

# Reps needed for each additional stat point beyond the first.
STAT_GAIN_STEP = 25

# Raid multipliers never drop below 2.0 so damage always outpaces raw reps.
RAID_DAMAGE_MULTIPLIERS: Mapping[str, float] = MappingProxyType(
    {
        "squat": 3.0,
        "pushup": 2.0,
        "pullup": 3.5,
        "situp": 2.0,
        "lunge": 2.5,
        "burpee": 4.0,
        "plank": 2.0,
        "run": 2.5,
    }
)
RAID_LEVEL_RATE = 0.1

XP_PER_LEVEL = 100


def normalize_exercise(exercise: str | None) -> str | None:
    if not exercise:
        return None
    normalized = str(exercise).strip().lower().replace("-", "").replace(" ", "")
    if normalized.endswith("s") and normalized[:-1] in KNOWN_EXERCISES:
        normalized = normalized[:-1]
    return normalized if normalized in KNOWN_EXERCISES else None


def xp_threshold(level: int) -> int:
    """Return the experience required to advance past ``level``."""

    return max(1, int(level)) * XP_PER_LEVEL


def xp_gained(exercise: str, reps: int, level: int, streak_days: int) -> int:
    """Return the experience earned for a single workout."""

    multiplier = EXERCISE_XP_MULTIPLIERS.get(exercise, 0.0)
    base = max(0, reps) * multiplier
    level_factor = 1 + max(0, level) * LEVEL_BONUS_RATE
    streak_factor = 1 + min(max(0, streak_days), STREAK_BONUS_CAP_DAYS) * STREAK_BONUS_RATE
    return max(0, math.floor(base * level_factor * streak_factor))


def stat_gains(exercise: str, reps: int) -> dict[str, int]:
    """Return stat deltas for the stats trained by ``exercise``.

    Stats an exercise does not train are left out of the mapping entirely.
    """

    if reps <= 0:
        return {}
    delta = 1 + reps // STAT_GAIN_STEP
    return {stat: delta for stat in EXERCISE_STATS.get(exercise, ())}


def raid_damage(exercise: str, reps: int, level: int) -> int:
    multiplier = RAID_DAMAGE_MULTIPLIERS.get(exercise, 0.0)
    level_factor = 1 + max(0, level) * RAID_LEVEL_RATE
    return max(0, math.floor(max(0, reps) * multiplier * level_factor))


__all__ = [
    "EXERCISE_XP_MULTIPLIERS",
    "EXERCISE_STATS",
    "EXERCISE_UNITS",
    "KNOWN_EXERCISES",
    "LEVEL_BONUS_RATE",
    "RAID_DAMAGE_MULTIPLIERS",
    "STREAK_BONUS_CAP_DAYS",
    "STREAK_BONUS_RATE",
    "normalize_exercise",
    "raid_damage",
    "stat_gains",
    "xp_gained",
    "xp_threshold",
]
