"""Guild rankings built from the stored progress, raid, duel and club records.

Ties share a rank and the next distinct score skips ahead (1, 2, 2, 4), so a
user's rank is one more than the number of entries strictly ahead of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional

from .errors import ValidationError
from .models import Club, Duel, DuelStatus, GymLocation, RaidBoss, UserProgress
from .territory import club_power, club_territory_count

DEFAULT_LEADERBOARD_SIZE = 10
MAX_LEADERBOARD_SIZE = 50


class LeaderboardMetric(str, Enum):
    OVERALL = "overall"
    STREAK = "streak"
    WORKOUTS = "workouts"
    REPS = "reps"
    RAID = "raid"
    DUELS = "duels"
    CLUBS = "clubs"

    @classmethod
    def from_value(cls, value: "LeaderboardMetric | str") -> "LeaderboardMetric":
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower()
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValidationError(f"Unknown leaderboard: {value!r}.") from exc

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    LeaderboardMetric.OVERALL: "Level",
    LeaderboardMetric.STREAK: "Streak",
    LeaderboardMetric.WORKOUTS: "Workouts",
    LeaderboardMetric.REPS: "Lifetime reps",
    LeaderboardMetric.RAID: "Raid damage",
    LeaderboardMetric.DUELS: "Duel wins",
    LeaderboardMetric.CLUBS: "Club power",
}


@dataclass(slots=True)
class Standing:
    subject_id: str
    name: str
    value: int
    tiebreak: int = 0
    rank: int = 0


def raid_damage_totals(bosses: Iterable[RaidBoss]) -> Dict[int, int]:
    totals: Dict[int, int] = {}
    for boss in bosses:
        for user_id, damage in boss.contributions.items():
            totals[user_id] = totals.get(user_id, 0) + damage
    return totals


def duel_win_totals(duels: Iterable[Duel]) -> Dict[int, int]:
    totals: Dict[int, int] = {}
    for duel in duels:
        if duel.status is DuelStatus.COMPLETED and duel.winner_id is not None:
            totals[duel.winner_id] = totals.get(duel.winner_id, 0) + 1
    return totals


def user_standings(
    users: Iterable[UserProgress],
    metric: LeaderboardMetric,
    *,
    raid_damage: Mapping[int, int] | None = None,
    duel_wins: Mapping[int, int] | None = None,
) -> List[Standing]:
    if metric is LeaderboardMetric.CLUBS:
        raise ValidationError("Club rankings are built with club_standings.")
    raid_damage = raid_damage or {}
    duel_wins = duel_wins or {}
    standings = []
    for user in users:
        if metric is LeaderboardMetric.OVERALL:
            value, tiebreak = user.level, user.xp
        elif metric is LeaderboardMetric.STREAK:
            value, tiebreak = user.workout_streak, user.level
        elif metric is LeaderboardMetric.WORKOUTS:
            value, tiebreak = user.total_workouts, user.level
        elif metric is LeaderboardMetric.REPS:
            value, tiebreak = user.lifetime_reps, user.level
        elif metric is LeaderboardMetric.RAID:
            value, tiebreak = raid_damage.get(user.user_id, 0), user.level
        else:
            value, tiebreak = duel_wins.get(user.user_id, 0), user.level
        standings.append(
            Standing(
                subject_id=str(user.user_id),
                name=user.username or f"User {user.user_id}",
                value=value,
                tiebreak=tiebreak,
            )
        )
    return rank_standings(standings)


def club_standings(
    clubs: Iterable[Club],
    users: Mapping[int, UserProgress],
    locations: Iterable[GymLocation],
) -> List[Standing]:
    locations = list(locations)
    return rank_standings(
        [
            Standing(
                subject_id=club.club_id,
                name=f"[{club.tag}] {club.name}",
                value=club_power(club, users),
                tiebreak=club_territory_count(club.club_id, locations),
            )
            for club in clubs
        ]
    )


def rank_standings(standings: Iterable[Standing]) -> List[Standing]:
    ordered = sorted(standings, key=lambda item: (-item.value, -item.tiebreak, item.subject_id))
    previous: Optional[tuple[int, int]] = None
    for position, standing in enumerate(ordered, start=1):
        score = (standing.value, standing.tiebreak)
        if score != previous:
            standing.rank = position
            previous = score
        else:
            standing.rank = ordered[position - 2].rank
    return ordered


def find_standing(standings: Iterable[Standing], subject_id: int | str) -> Optional[Standing]:
    key = str(subject_id)
    return next((standing for standing in standings if standing.subject_id == key), None)


__all__ = [
    "DEFAULT_LEADERBOARD_SIZE",
    "LeaderboardMetric",
    "MAX_LEADERBOARD_SIZE",
    "Standing",
    "club_standings",
    "duel_win_totals",
    "find_standing",
    "rank_standings",
    "raid_damage_totals",
    "user_standings",
]
