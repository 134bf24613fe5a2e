from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from forge.errors import ValidationError
from forge.game import new_user
from forge.leaderboard import (
    LeaderboardMetric,
    club_standings,
    duel_win_totals,
    find_standing,
    raid_damage_totals,
    user_standings,
)
from forge.models import Club, Duel, DuelStatus, GymLocation, RaidBoss, UserProgress


def _user(user_id: int, **values: int) -> UserProgress:
    user = new_user(user_id, f"athlete{user_id}")
    for name, value in values.items():
        setattr(user, name, value)
    return user


def test_overall_ranks_by_level_then_xp() -> None:
    users = [
        _user(1, level=3, xp=10),
        _user(2, level=5, xp=0),
        _user(3, level=3, xp=40),
    ]

    board = user_standings(users, LeaderboardMetric.OVERALL)

    assert [(s.subject_id, s.rank) for s in board] == [("2", 1), ("3", 2), ("1", 3)]
    assert board[0].name == "athlete2"
    assert board[0].value == 5


def test_ties_share_a_rank() -> None:
    users = [
        _user(1, workout_streak=4, level=2),
        _user(2, workout_streak=9, level=1),
        _user(3, workout_streak=4, level=2),
        _user(4, workout_streak=1, level=7),
    ]

    board = user_standings(users, LeaderboardMetric.STREAK)

    assert [s.rank for s in board] == [1, 2, 2, 4]
    assert find_standing(board, 3).rank == 2
    assert find_standing(board, 4).rank == 4
    assert find_standing(board, 99) is None


def test_raid_and_duel_totals_come_from_their_records() -> None:
    bosses = [
        RaidBoss(boss_id="a", name="A", total_hp=100, current_hp=0, contributions={1: 60, 2: 40}),
        RaidBoss(boss_id="b", name="B", total_hp=500, current_hp=400, contributions={2: 100}),
    ]
    duels = [
        Duel("d1", 1, 2, "pushups_1h", status=DuelStatus.COMPLETED, winner_id=2),
        Duel("d2", 1, 2, "pushups_1h", status=DuelStatus.COMPLETED, winner_id=2),
        Duel("d3", 1, 3, "pushups_1h", status=DuelStatus.COMPLETED, winner_id=None),
        Duel("d4", 1, 3, "pushups_1h", status=DuelStatus.ACTIVE),
    ]

    assert raid_damage_totals(bosses) == {1: 60, 2: 140}
    assert duel_win_totals(duels) == {2: 2}

    users = [_user(1), _user(2), _user(3)]
    raid = user_standings(
        users, LeaderboardMetric.RAID, raid_damage=raid_damage_totals(bosses)
    )
    duel = user_standings(users, LeaderboardMetric.DUELS, duel_wins=duel_win_totals(duels))

    assert [(s.subject_id, s.value) for s in raid] == [("2", 140), ("1", 60), ("3", 0)]
    assert duel[0].subject_id == "2" and duel[0].value == 2


def test_clubs_rank_by_member_levels_then_territory() -> None:
    users = {1: _user(1, level=4), 2: _user(2, level=3), 3: _user(3, level=7)}
    red = Club(club_id="red", name="Red", tag="RED", founder_id=1, members=[1, 2])
    blue = Club(club_id="blue", name="Blue", tag="BLU", founder_id=3, members=[3])
    gyms = [
        GymLocation(location_id="g1", place_id="p1", name="G1", controlling_club_id="blue",
                    control_strength=10),
    ]

    board = club_standings([red, blue], users, gyms)

    assert [s.subject_id for s in board] == ["blue", "red"]
    assert [s.rank for s in board] == [1, 2]
    assert board[0].value == board[1].value == 7
    assert board[0].tiebreak == 1
    assert board[1].name == "[RED] Red"


def test_metric_names_are_validated() -> None:
    assert LeaderboardMetric.from_value(" Reps ") is LeaderboardMetric.REPS
    with pytest.raises(ValidationError):
        LeaderboardMetric.from_value("charisma")
    with pytest.raises(ValidationError):
        user_standings([], LeaderboardMetric.CLUBS)
