"""Bounded activity feed fed by game events."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .game import GameEvent
from .models import ActivityEntry, ActivityType

DEFAULT_ACTIVITY_LIMIT = 100

_TEMPLATES: Mapping[ActivityType, str] = {
    ActivityType.WORKOUT: "{name} completed {reps} {exercise} (+{xp} XP)",
    ActivityType.LEVEL_UP: "{name} reached level {level}",
    ActivityType.QUEST_COMPLETE: "{name} completed the quest {title}",
    ActivityType.QUEST_CLAIM: "{name} claimed {xp} XP from {title}",
    ActivityType.ACHIEVEMENT_UNLOCK: "{name} unlocked {name_of_achievement}",
    ActivityType.DUEL_WIN: "{name} won a duel",
    ActivityType.DUEL_DRAW: "A duel involving {name} ended in a draw",
    ActivityType.RAID_DAMAGE: "{name} dealt {damage} damage to {boss}",
    ActivityType.RAID_COMPLETE: "{name} landed the final blow on {boss}",
    ActivityType.CLUB_CREATE: "{name} founded the club {club}",
    ActivityType.CLUB_JOIN: "{name} joined the club {club}",
    ActivityType.TERRITORY_CAPTURE: "{name} captured {location}",
    ActivityType.TERRITORY_DEFENDED: "{name} failed to capture {location}",
    ActivityType.PARTY_CREATE: "{name} created the party {party}",
    ActivityType.PARTY_JOIN: "{name} joined the party {party}",
    ActivityType.STREAK_MILESTONE: "{name} hit a {streak}-day streak",
}


class _Defaults(dict):
    def __missing__(self, key: str) -> str:
        return "?"


def describe(event: GameEvent, username: str) -> str:
    values: Dict[str, Any] = _Defaults(event.data)
    values["name"] = username or f"User {event.user_id}"
    if "name" in event.data:
        values["name_of_achievement"] = event.data["name"]
    template = _TEMPLATES.get(event.kind, "{name} did something")
    return template.format_map(values)


class ActivityRecorder:
    """Turns game events into feed entries and keeps the newest ``limit``."""

    def __init__(
        self,
        entries: Iterable[ActivityEntry] = (),
        *,
        id_factory: Callable[[], str],
        limit: int = DEFAULT_ACTIVITY_LIMIT,
    ) -> None:
        self._entries: List[ActivityEntry] = sorted(entries, key=lambda entry: entry.timestamp)
        self._id_factory = id_factory
        self.limit = max(1, limit)
        self._trim()

    def _trim(self) -> None:
        if len(self._entries) > self.limit:
            del self._entries[: len(self._entries) - self.limit]

    def record(
        self,
        events: Sequence[GameEvent],
        *,
        now: float,
        usernames: Optional[Mapping[int, str]] = None,
    ) -> List[ActivityEntry]:
        usernames = usernames or {}
        added = [
            ActivityEntry(
                entry_id=self._id_factory(),
                user_id=event.user_id,
                kind=event.kind,
                action=describe(event, usernames.get(event.user_id, "")),
                data=dict(event.data),
                timestamp=now,
            )
            for event in events
        ]
        self._entries.extend(added)
        self._trim()
        return added

    def feed(self, limit: Optional[int] = None) -> List[ActivityEntry]:
        newest = list(reversed(self._entries))
        return newest if limit is None else newest[: max(0, limit)]

    def to_record(self) -> Dict[str, Any]:
        return {"entries": [entry.to_dict() for entry in self._entries]}

    @classmethod
    def from_record(
        cls,
        record: Optional[Mapping[str, Any]],
        *,
        id_factory: Callable[[], str],
        limit: int = DEFAULT_ACTIVITY_LIMIT,
    ) -> "ActivityRecorder":
        raw = (record or {}).get("entries", [])
        entries = [ActivityEntry.from_dict(item) for item in raw if isinstance(item, Mapping)]
        return cls(entries, id_factory=id_factory, limit=limit)


__all__ = ["ActivityRecorder", "DEFAULT_ACTIVITY_LIMIT", "describe"]
