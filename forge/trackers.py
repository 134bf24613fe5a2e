"""Workout consumers that own quests, achievements, duels and raid bosses.

Each tracker is built around the records it may write and reacts to a
workout through ``on_workout``.  Trackers never read each other's records;
they only see the :class:`~forge.game.AggregateStats` snapshot produced by
the ledger.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import (
    AlreadyResolvedError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .formulas import raid_damage
from .game import AggregateStats, GameEvent, grant_xp
from .models import (
    ACHIEVEMENTS,
    DUEL_CHALLENGES,
    ITEM_CATALOG,
    QUEST_TEMPLATES,
    RAID_BOSS_TEMPLATES,
    AchievementLedger,
    ActivityType,
    Duel,
    DuelStatus,
    Quest,
    QuestKind,
    QuestMetric,
    QuestTemplate,
    RaidBoss,
    UserProgress,
)

log = logging.getLogger(__name__)

DAILY_QUEST_COUNT = 3
WEEKLY_QUEST_COUNT = 2


class _Tracker:
    def __init__(self, now: float) -> None:
        self.now = now
        self._changed: Dict[str, object] = {}

    def _touch(self, key: str, record: object) -> None:
        self._changed[key] = record

    @property
    def changed(self) -> List[object]:
        """Records modified since the tracker was created."""

        return list(self._changed.values())


# ---------------------------------------------------------------------------
# Quests
# ---------------------------------------------------------------------------


def _end_of_day(now: float) -> float:
    current = datetime.fromtimestamp(now, tz=timezone.utc)
    midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)
    return (midnight + timedelta(days=1)).timestamp()


def _end_of_week(now: float) -> float:
    current = datetime.fromtimestamp(now, tz=timezone.utc)
    midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)
    return (midnight + timedelta(days=7 - current.weekday())).timestamp()


def _quest_from_template(
    template: QuestTemplate, user: UserProgress, *, quest_id: str, now: float
) -> Quest:
    target = template.target_for_level(user.level)
    if template.kind is QuestKind.DAILY:
        expires_at: Optional[float] = _end_of_day(now)
    elif template.kind is QuestKind.WEEKLY:
        expires_at = _end_of_week(now)
    else:
        expires_at = None
    return Quest(
        quest_id=quest_id,
        template_id=template.key,
        user_id=user.user_id,
        kind=template.kind,
        title=template.title,
        description=template.description.format(target=target),
        target_metric=template.metric,
        target_value=target,
        xp_reward=template.xp_reward,
        exercise=template.exercise,
        reward_item=template.reward_item,
        created_at=now,
        expires_at=expires_at,
    )


def refresh_quests(
    user: UserProgress,
    existing: Sequence[Quest],
    *,
    now: float,
    rng: random.Random,
) -> tuple[List[Quest], List[Quest]]:
    """Roll new daily and weekly quests and seed missing milestones.

    Returns ``(created, expired)``.  Expired daily and weekly quests are
    handed back so the caller can delete them; milestones never expire.
    """

    expired = [
        quest
        for quest in existing
        if quest.kind is not QuestKind.MILESTONE and quest.is_expired(now)
    ]
    live = [quest for quest in existing if quest not in expired]
    created: List[Quest] = []

    stamp = int(now)
    for kind, count in ((QuestKind.DAILY, DAILY_QUEST_COUNT), (QuestKind.WEEKLY, WEEKLY_QUEST_COUNT)):
        if any(quest.kind is kind for quest in live):
            continue
        templates = [template for template in QUEST_TEMPLATES if template.kind is kind]
        for template in rng.sample(templates, min(count, len(templates))):
            created.append(
                _quest_from_template(
                    template,
                    user,
                    quest_id=f"{user.user_id}-{template.key}-{stamp}",
                    now=now,
                )
            )

    seeded = {quest.template_id for quest in live}
    snapshot = AggregateStats.from_user(user)
    for template in QUEST_TEMPLATES:
        if template.kind is not QuestKind.MILESTONE or template.key in seeded:
            continue
        quest = _quest_from_template(
            template, user, quest_id=f"{user.user_id}-{template.key}", now=now
        )
        _advance_quest(quest, snapshot.metric(quest.target_metric.value), now)
        created.append(quest)

    if created:
        log.debug("Created %d quests for user %s", len(created), user.user_id)
    return created, expired


def _advance_quest(quest: Quest, value: int, now: float) -> bool:
    """Raise progress to ``value`` and return ``True`` when it just completed."""

    quest.progress_value = min(quest.target_value, max(quest.progress_value, value))
    if quest.progress_value >= quest.target_value and not quest.completed:
        quest.completed = True
        quest.completed_at = now
        return True
    return False


class QuestTracker(_Tracker):
    def __init__(self, quests: Iterable[Quest], *, now: float) -> None:
        super().__init__(now)
        self.quests = list(quests)

    def on_workout(
        self, user_id: int, exercise: str, reps: int, stats: AggregateStats
    ) -> List[GameEvent]:
        events: List[GameEvent] = []
        for quest in self.quests:
            if quest.user_id != user_id or quest.completed or quest.is_expired(self.now):
                continue
            metric = quest.target_metric
            if metric.is_cumulative:
                if metric is QuestMetric.WORKOUT_COUNT:
                    delta = 1
                elif metric is QuestMetric.TOTAL_REPS:
                    delta = reps
                elif quest.exercise == exercise:
                    delta = reps
                else:
                    continue
                value = quest.progress_value + delta
            else:
                value = stats.metric(metric.value)
            before = quest.progress_value
            finished = _advance_quest(quest, value, self.now)
            if quest.progress_value != before or finished:
                self._touch(quest.quest_id, quest)
            if finished:
                events.append(
                    GameEvent(
                        ActivityType.QUEST_COMPLETE,
                        user_id,
                        {"quest_id": quest.quest_id, "title": quest.title},
                    )
                )
        return events


def claim_quest_reward(
    user: UserProgress, quest: Quest, *, now: float
) -> tuple[int, int, Optional[str]]:
    """Grant a completed quest's reward exactly once.

    Returns ``(xp, levels_gained, item_key)``.
    """

    if quest.user_id != user.user_id:
        raise NotFoundError("That quest does not belong to you.")
    if not quest.completed:
        raise ConflictError(f"{quest.title} is not complete yet.")
    if quest.claimed:
        raise ConflictError(f"The reward for {quest.title} was already claimed.")

    quest.claimed = True
    levels = grant_xp(user, quest.xp_reward)
    item_key = quest.reward_item
    awarded: Optional[str] = None
    if (
        item_key
        and item_key in ITEM_CATALOG
        and item_key not in user.inventory
        and item_key not in user.equipment.values()
    ):
        user.inventory.append(item_key)
        awarded = item_key
    log.info("User %s claimed quest %s for %s XP", user.user_id, quest.quest_id, quest.xp_reward)
    return quest.xp_reward, levels, awarded


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class AchievementTracker(_Tracker):
    def __init__(self, ledger: AchievementLedger, *, now: float) -> None:
        super().__init__(now)
        self.ledger = ledger

    def evaluate(self, stats: AggregateStats) -> List[GameEvent]:
        events: List[GameEvent] = []
        for achievement in ACHIEVEMENTS:
            if self.ledger.is_unlocked(achievement.key):
                continue
            if stats.metric(achievement.metric) < achievement.threshold:
                continue
            self.ledger.unlocked[achievement.key] = self.now
            self._touch(str(self.ledger.user_id), self.ledger)
            events.append(
                GameEvent(
                    ActivityType.ACHIEVEMENT_UNLOCK,
                    self.ledger.user_id,
                    {"achievement": achievement.key, "name": achievement.name},
                )
            )
        return events

    def on_workout(
        self, user_id: int, exercise: str, reps: int, stats: AggregateStats
    ) -> List[GameEvent]:
        if user_id != self.ledger.user_id:
            return []
        return self.evaluate(stats)


# ---------------------------------------------------------------------------
# Duels
# ---------------------------------------------------------------------------


def create_duel(
    challenger_id: int,
    opponent_id: int,
    challenge_type: str,
    *,
    duel_id: str,
    now: float,
) -> Duel:
    if challenger_id == opponent_id:
        raise ValidationError("You cannot duel yourself.")
    if challenge_type not in DUEL_CHALLENGES:
        raise ValidationError(f"Unknown duel challenge: {challenge_type!r}.")
    return Duel(
        duel_id=duel_id,
        challenger_id=challenger_id,
        opponent_id=opponent_id,
        challenge_type=challenge_type,
        created_at=now,
    )


def complete_duel(duel: Duel, *, now: float) -> List[GameEvent]:
    if duel.status.is_terminal:
        raise AlreadyResolvedError("This duel has already been resolved.")
    challenger_score = duel.scores.get(duel.challenger_id, 0)
    opponent_score = duel.scores.get(duel.opponent_id, 0)
    if challenger_score > opponent_score:
        duel.winner_id = duel.challenger_id
    elif opponent_score > challenger_score:
        duel.winner_id = duel.opponent_id
    else:
        duel.winner_id = None
    duel.status = DuelStatus.COMPLETED
    duel.completed_at = now
    log.info(
        "Duel %s completed %s-%s, winner %s",
        duel.duel_id,
        challenger_score,
        opponent_score,
        duel.winner_id,
    )
    data = {"duel_id": duel.duel_id, "challenge": duel.challenge_type}
    if duel.winner_id is None:
        return [GameEvent(ActivityType.DUEL_DRAW, duel.challenger_id, data)]
    return [GameEvent(ActivityType.DUEL_WIN, duel.winner_id, data)]


def expire_duel(duel: Duel, *, now: float, pending_ttl: float) -> List[GameEvent]:
    """Settle time-based transitions that are due at ``now``."""

    if duel.status is DuelStatus.PENDING and now > duel.created_at + pending_ttl:
        duel.status = DuelStatus.EXPIRED
        duel.completed_at = now
        log.info("Duel %s expired before it was accepted", duel.duel_id)
        return []
    if duel.status is DuelStatus.ACTIVE and duel.deadline is not None and now > duel.deadline:
        return complete_duel(duel, now=now)
    return []


def accept_duel(duel: Duel, user_id: int, *, now: float, pending_ttl: float) -> List[GameEvent]:
    if user_id != duel.opponent_id:
        raise PermissionDeniedError("Only the challenged user can accept this duel.")
    events = expire_duel(duel, now=now, pending_ttl=pending_ttl)
    if duel.status is not DuelStatus.PENDING:
        raise AlreadyResolvedError(f"This duel is already {duel.status.value}.")
    duel.status = DuelStatus.ACTIVE
    duel.started_at = now
    duel.deadline = now + duel.challenge.duration_seconds
    return events


def decline_duel(duel: Duel, user_id: int, *, now: float, pending_ttl: float) -> None:
    if not duel.involves(user_id):
        raise PermissionDeniedError("You are not part of this duel.")
    expire_duel(duel, now=now, pending_ttl=pending_ttl)
    if duel.status is not DuelStatus.PENDING:
        raise AlreadyResolvedError(f"This duel is already {duel.status.value}.")
    duel.status = DuelStatus.DECLINED
    duel.completed_at = now


class DuelTracker(_Tracker):
    def __init__(self, duels: Iterable[Duel], *, now: float) -> None:
        super().__init__(now)
        self.duels = list(duels)

    def on_workout(
        self, user_id: int, exercise: str, reps: int, stats: AggregateStats
    ) -> List[GameEvent]:
        events: List[GameEvent] = []
        for duel in self.duels:
            if duel.status is not DuelStatus.ACTIVE or not duel.involves(user_id):
                continue
            if duel.deadline is not None and self.now > duel.deadline:
                events.extend(complete_duel(duel, now=self.now))
                self._touch(duel.duel_id, duel)
                continue
            challenge = duel.challenge
            if challenge.exercise is not None and challenge.exercise != exercise:
                continue
            points = 1 if challenge.metric == "workout_count" else reps
            duel.scores[user_id] = duel.scores.get(user_id, 0) + points
            self._touch(duel.duel_id, duel)
        return events


# ---------------------------------------------------------------------------
# Raids
# ---------------------------------------------------------------------------


def spawn_raid_boss(
    template_key: str, *, boss_id: str, now: float, total_hp: Optional[int] = None
) -> RaidBoss:
    template = RAID_BOSS_TEMPLATES.get(template_key)
    if template is None:
        raise NotFoundError(f"Unknown raid boss: {template_key!r}.")
    hp = template.total_hp if total_hp is None else total_hp
    if hp <= 0:
        raise ValidationError("Raid bosses need a positive hit point pool.")
    log.info("Spawned raid boss %s (%s) with %s HP", boss_id, template.name, hp)
    return RaidBoss(
        boss_id=boss_id,
        name=template.name,
        total_hp=hp,
        current_hp=hp,
        vulnerabilities=list(template.vulnerabilities),
        spawned_at=now,
    )


def reset_raid_boss(boss: RaidBoss, *, now: float) -> None:
    boss.current_hp = boss.total_hp
    boss.participants = []
    boss.contributions = {}
    boss.defeated_at = None
    boss.spawned_at = now


class RaidTracker(_Tracker):
    def __init__(self, bosses: Iterable[RaidBoss], *, now: float) -> None:
        super().__init__(now)
        self.bosses = list(bosses)

    def on_workout(
        self, user_id: int, exercise: str, reps: int, stats: AggregateStats
    ) -> List[GameEvent]:
        events: List[GameEvent] = []
        for boss in self.bosses:
            if boss.is_defeated or not boss.is_vulnerable_to(exercise):
                continue
            dealt = min(boss.current_hp, raid_damage(exercise, reps, stats.level))
            boss.current_hp -= dealt
            if user_id not in boss.participants:
                boss.participants.append(user_id)
            boss.contributions[user_id] = boss.contributions.get(user_id, 0) + dealt
            self._touch(boss.boss_id, boss)
            events.append(
                GameEvent(
                    ActivityType.RAID_DAMAGE,
                    user_id,
                    {"boss": boss.name, "damage": dealt, "remaining": boss.current_hp},
                )
            )
            if boss.is_defeated:
                boss.defeated_at = self.now
                log.info("Raid boss %s defeated by %d participants", boss.boss_id, len(boss.participants))
                events.append(
                    GameEvent(
                        ActivityType.RAID_COMPLETE,
                        user_id,
                        {"boss": boss.name, "participants": list(boss.participants)},
                    )
                )
        return events


__all__ = [
    "AchievementTracker",
    "DuelTracker",
    "QuestTracker",
    "RaidTracker",
    "accept_duel",
    "claim_quest_reward",
    "complete_duel",
    "create_duel",
    "decline_duel",
    "expire_duel",
    "refresh_quests",
    "reset_raid_boss",
    "spawn_raid_boss",
]
