"""Quests, achievements, duels and raid bosses."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ._validation import (
    FieldSpec,
    MappingSpec,
    ModelValidator,
    SequenceSpec,
    is_non_empty_str,
    is_non_negative_int,
    is_user_id,
    validate_record,
)
from .players import _coerce_int, _known_fields


class QuestKind(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MILESTONE = "milestone"

    @classmethod
    def from_value(cls, value: "QuestKind | str") -> "QuestKind":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class QuestMetric(str, Enum):
    """What a quest counts.

    The first three accumulate per workout; the rest mirror lifetime totals.
    """

    WORKOUT_COUNT = "workout_count"
    TOTAL_REPS = "total_reps"
    EXERCISE_REPS = "exercise_reps"
    TOTAL_WORKOUTS = "total_workouts"
    LIFETIME_REPS = "lifetime_reps"
    WORKOUT_STREAK = "workout_streak"
    USER_LEVEL = "user_level"

    @property
    def is_cumulative(self) -> bool:
        return self in (
            QuestMetric.WORKOUT_COUNT,
            QuestMetric.TOTAL_REPS,
            QuestMetric.EXERCISE_REPS,
        )


@dataclass(frozen=True, slots=True)
class QuestTemplate:
    key: str
    title: str
    description: str
    kind: QuestKind
    metric: QuestMetric
    targets: Tuple[int, ...]
    xp_reward: int
    exercise: Optional[str] = None
    reward_item: Optional[str] = None

    def target_for_level(self, level: int) -> int:
        if len(self.targets) == 1:
            return self.targets[0]
        if level < 5:
            return self.targets[0]
        if level < 15:
            return self.targets[min(1, len(self.targets) - 1)]
        return self.targets[-1]


def _template(
    key: str,
    title: str,
    description: str,
    kind: QuestKind,
    metric: QuestMetric,
    targets: Tuple[int, ...],
    xp_reward: int,
    *,
    exercise: str | None = None,
    reward_item: str | None = None,
) -> QuestTemplate:
    return QuestTemplate(
        key=key,
        title=title,
        description=description,
        kind=kind,
        metric=metric,
        targets=targets,
        xp_reward=xp_reward,
        exercise=exercise,
        reward_item=reward_item,
    )


QUEST_TEMPLATES: Tuple[QuestTemplate, ...] = (
    _template("daily_workout", "Daily Dedication", "Complete any workout today",
              QuestKind.DAILY, QuestMetric.WORKOUT_COUNT, (1,), 50),
    _template("daily_reps", "Rep Counter", "Complete {target} total reps today",
              QuestKind.DAILY, QuestMetric.TOTAL_REPS, (50, 75, 100), 75),
    _template("daily_squats", "Squat Challenge", "Complete {target} squats today",
              QuestKind.DAILY, QuestMetric.EXERCISE_REPS, (20, 30, 40), 60, exercise="squat"),
    _template("daily_pushups", "Push-up Power", "Complete {target} push-ups today",
              QuestKind.DAILY, QuestMetric.EXERCISE_REPS, (15, 25, 35), 60, exercise="pushup"),
    _template("weekly_sessions", "Week Warrior", "Log {target} workouts this week",
              QuestKind.WEEKLY, QuestMetric.WORKOUT_COUNT, (5, 6, 7), 300),
    _template("weekly_total_reps", "Rep Master", "Complete {target} total reps this week",
              QuestKind.WEEKLY, QuestMetric.TOTAL_REPS, (500, 750, 1000), 350),
    _template("weekly_pullups", "Bar Baron", "Complete {target} pull-ups this week",
              QuestKind.WEEKLY, QuestMetric.EXERCISE_REPS, (50, 100, 150), 250, exercise="pullup"),
    _template("first_steps", "First Steps", "Complete your first workout",
              QuestKind.MILESTONE, QuestMetric.TOTAL_WORKOUTS, (1,), 100,
              reward_item="training_shoes"),
    _template("centurion", "Centurion", "Complete 100 total workouts",
              QuestKind.MILESTONE, QuestMetric.TOTAL_WORKOUTS, (100,), 1000,
              reward_item="champion_badge"),
    _template("rep_master_1k", "Rep Master", "Complete 1,000 total reps",
              QuestKind.MILESTONE, QuestMetric.LIFETIME_REPS, (1000,), 500,
              reward_item="weight_belt"),
    _template("rep_legend_10k", "Rep Legend", "Complete 10,000 total reps",
              QuestKind.MILESTONE, QuestMetric.LIFETIME_REPS, (10000,), 2000,
              reward_item="legendary_gloves"),
    _template("streak_master_7", "Streak Master", "Maintain a 7-day workout streak",
              QuestKind.MILESTONE, QuestMetric.WORKOUT_STREAK, (7,), 400,
              reward_item="streak_ring"),
    _template("level_10", "Rising Star", "Reach level 10",
              QuestKind.MILESTONE, QuestMetric.USER_LEVEL, (10,), 500),
)

QUEST_TEMPLATE_INDEX: Mapping[str, QuestTemplate] = MappingProxyType(
    {template.key: template for template in QUEST_TEMPLATES}
)


@dataclass(slots=True)
class Quest:
    quest_id: str
    template_id: str
    user_id: int
    kind: QuestKind
    title: str
    target_metric: QuestMetric
    target_value: int
    xp_reward: int
    description: str = ""
    exercise: Optional[str] = None
    progress_value: int = 0
    completed: bool = False
    claimed: bool = False
    reward_item: Optional[str] = None
    created_at: float = 0.0
    expires_at: Optional[float] = None
    completed_at: Optional[float] = None

    def __post_init__(self) -> None:
        self.user_id = int(self.user_id)
        self.kind = QuestKind.from_value(self.kind)
        self.target_metric = QuestMetric(self.target_metric)
        self.target_value = max(1, _coerce_int(self.target_value, 1))
        self.progress_value = min(
            self.target_value, max(0, _coerce_int(self.progress_value))
        )
        self.xp_reward = max(0, _coerce_int(self.xp_reward))

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Quest":
        payload = validate_record(cls, data)
        return cls(**_known_fields(cls, payload))


class QuestValidator(ModelValidator):
    model = Quest
    fields = {
        "quest_id": FieldSpec(is_non_empty_str, "a non-empty quest id"),
        "template_id": FieldSpec(is_non_empty_str, "a quest template key"),
        "user_id": FieldSpec(is_user_id, "the owner's user id"),
        "kind": FieldSpec(str, "a quest kind"),
        "target_metric": FieldSpec(str, "a quest metric"),
        "target_value": FieldSpec(int, "an integer target"),
        "progress_value": FieldSpec(is_non_negative_int, "non-negative progress", required=False),
        "completed": FieldSpec(bool, "a completion flag", required=False),
        "claimed": FieldSpec(bool, "a claim flag", required=False),
    }


Quest.validator = QuestValidator


@dataclass(frozen=True, slots=True)
class Achievement:
    key: str
    name: str
    description: str
    metric: str
    threshold: int


ACHIEVEMENTS: Tuple[Achievement, ...] = (
    Achievement("first_workout", "First Blood", "Complete your first workout", "total_workouts", 1),
    Achievement("workout_10", "Getting Warmed Up", "Complete 10 workouts", "total_workouts", 10),
    Achievement("workout_50", "Dedicated Athlete", "Complete 50 workouts", "total_workouts", 50),
    Achievement("workout_100", "Centurion", "Complete 100 workouts", "total_workouts", 100),
    Achievement("reps_1k", "Rep Counter", "Complete 1,000 total reps", "lifetime_reps", 1000),
    Achievement("reps_10k", "Rep Master", "Complete 10,000 total reps", "lifetime_reps", 10000),
    Achievement("streak_3", "Consistency", "Maintain a 3-day workout streak", "workout_streak", 3),
    Achievement("streak_7", "Streak Warrior", "Maintain a 7-day workout streak", "workout_streak", 7),
    Achievement("streak_30", "Unstoppable", "Maintain a 30-day workout streak", "workout_streak", 30),
    Achievement("level_2", "Level Up!", "Reach level 2", "level", 2),
    Achievement("level_5", "Rising Star", "Reach level 5", "level", 5),
    Achievement("level_10", "Experienced", "Reach level 10", "level", 10),
    Achievement("level_25", "Veteran", "Reach level 25", "level", 25),
    Achievement("first_duel", "Challenger", "Win your first duel", "duel_wins", 1),
    Achievement("duel_master", "Duel Master", "Win 10 duels", "duel_wins", 10),
)


@dataclass(slots=True)
class AchievementLedger:
    """Per-user unlock state; the catalog itself never changes."""

    user_id: int
    unlocked: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.user_id = int(self.user_id)
        self.unlocked = {str(key): float(value) for key, value in self.unlocked.items()}

    def is_unlocked(self, key: str) -> bool:
        return key in self.unlocked

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AchievementLedger":
        return cls(**_known_fields(cls, validate_record(cls, data)))


class DuelStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    DECLINED = "declined"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (DuelStatus.COMPLETED, DuelStatus.DECLINED, DuelStatus.EXPIRED)


@dataclass(frozen=True, slots=True)
class DuelChallenge:
    key: str
    name: str
    exercise: Optional[str]
    duration_seconds: int
    metric: str = "total_reps"


DUEL_CHALLENGES: Mapping[str, DuelChallenge] = MappingProxyType(
    {
        challenge.key: challenge
        for challenge in (
            DuelChallenge("squats_24h", "Most squats in 24h", "squat", 24 * 60 * 60),
            DuelChallenge("pushups_1h", "Most push-ups in 1h", "pushup", 60 * 60),
            DuelChallenge("pullups_24h", "Most pull-ups in 24h", "pullup", 24 * 60 * 60),
            DuelChallenge("total_reps_week", "Most total reps this week", None, 7 * 24 * 60 * 60),
            DuelChallenge(
                "workouts_week", "Most workouts this week", None, 7 * 24 * 60 * 60, "workout_count"
            ),
        )
    }
)


@dataclass(slots=True)
class Duel:
    duel_id: str
    challenger_id: int
    opponent_id: int
    challenge_type: str
    status: DuelStatus = DuelStatus.PENDING
    scores: Dict[int, int] = field(default_factory=dict)
    deadline: Optional[float] = None
    winner_id: Optional[int] = None
    created_at: float = 0.0
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    def __post_init__(self) -> None:
        self.challenger_id = int(self.challenger_id)
        self.opponent_id = int(self.opponent_id)
        self.status = DuelStatus(self.status)
        scores = {int(key): _coerce_int(value) for key, value in self.scores.items()}
        for participant in (self.challenger_id, self.opponent_id):
            scores.setdefault(participant, 0)
        self.scores = scores
        if self.winner_id is not None:
            self.winner_id = int(self.winner_id)

    @property
    def challenge(self) -> DuelChallenge:
        return DUEL_CHALLENGES[self.challenge_type]

    def involves(self, user_id: int) -> bool:
        return user_id in (self.challenger_id, self.opponent_id)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Duel":
        return cls(**_known_fields(cls, validate_record(cls, data)))


class DuelValidator(ModelValidator):
    model = Duel
    fields = {
        "duel_id": FieldSpec(is_non_empty_str, "a non-empty duel id"),
        "challenger_id": FieldSpec(is_user_id, "the challenger's user id"),
        "opponent_id": FieldSpec(is_user_id, "the opponent's user id"),
        "challenge_type": FieldSpec(lambda value: value in DUEL_CHALLENGES, "a known challenge"),
        "scores": FieldSpec(MappingSpec(is_user_id, int), "a score table", required=False),
    }


Duel.validator = DuelValidator


@dataclass(frozen=True, slots=True)
class RaidBossTemplate:
    key: str
    name: str
    vulnerabilities: Tuple[str, ...]
    total_hp: int


RAID_BOSS_TEMPLATES: Mapping[str, RaidBossTemplate] = MappingProxyType(
    {
        template.key: template
        for template in (
            RaidBossTemplate("titan_squat", "The Titan Squat", ("squat",), 10000),
            RaidBossTemplate("iron_golem", "Iron Golem", ("pushup", "pullup"), 15000),
            RaidBossTemplate("flame_titan", "Flame Titan", ("burpee", "run"), 20000),
        )
    }
)


@dataclass(slots=True)
class RaidBoss:
    boss_id: str
    name: str
    total_hp: int
    current_hp: int
    vulnerabilities: List[str] = field(default_factory=list)
    participants: List[int] = field(default_factory=list)
    contributions: Dict[int, int] = field(default_factory=dict)
    defeated_at: Optional[float] = None
    spawned_at: float = 0.0

    def __post_init__(self) -> None:
        self.total_hp = max(1, _coerce_int(self.total_hp, 1))
        self.current_hp = min(self.total_hp, max(0, _coerce_int(self.current_hp)))
        self.vulnerabilities = [str(item) for item in self.vulnerabilities]
        participants: List[int] = []
        for user_id in self.participants:
            if int(user_id) not in participants:
                participants.append(int(user_id))
        self.participants = participants
        self.contributions = {
            int(key): max(0, _coerce_int(value)) for key, value in self.contributions.items()
        }

    @property
    def is_defeated(self) -> bool:
        return self.current_hp <= 0

    def is_vulnerable_to(self, exercise: str) -> bool:
        return exercise in self.vulnerabilities

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RaidBoss":
        return cls(**_known_fields(cls, validate_record(cls, data)))


class RaidBossValidator(ModelValidator):
    model = RaidBoss
    fields = {
        "boss_id": FieldSpec(is_non_empty_str, "a non-empty boss id"),
        "name": FieldSpec(str, "a boss name"),
        "total_hp": FieldSpec(int, "an integer hit point pool"),
        "current_hp": FieldSpec(is_non_negative_int, "non-negative hit points"),
        "vulnerabilities": FieldSpec(SequenceSpec(str), "a list of exercises", required=False),
    }


RaidBoss.validator = RaidBossValidator


__all__ = [
    "ACHIEVEMENTS",
    "Achievement",
    "AchievementLedger",
    "DUEL_CHALLENGES",
    "Duel",
    "DuelChallenge",
    "DuelStatus",
    "QUEST_TEMPLATES",
    "QUEST_TEMPLATE_INDEX",
    "Quest",
    "QuestKind",
    "QuestMetric",
    "QuestTemplate",
    "RAID_BOSS_TEMPLATES",
    "RaidBoss",
    "RaidBossTemplate",
]
