"""Activity feed entries."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping

from .players import _known_fields


class ActivityType(str, Enum):
    WORKOUT = "workout"
    LEVEL_UP = "level_up"
    QUEST_COMPLETE = "quest_complete"
    QUEST_CLAIM = "quest_claim"
    ACHIEVEMENT_UNLOCK = "achievement_unlock"
    DUEL_WIN = "duel_win"
    DUEL_DRAW = "duel_draw"
    RAID_DAMAGE = "raid_damage"
    RAID_COMPLETE = "raid_complete"
    CLUB_CREATE = "club_create"
    CLUB_JOIN = "club_join"
    TERRITORY_CAPTURE = "territory_capture"
    TERRITORY_DEFENDED = "territory_defended"
    PARTY_CREATE = "party_create"
    PARTY_JOIN = "party_join"
    STREAK_MILESTONE = "streak_milestone"

    @classmethod
    def from_value(cls, value: "ActivityType | str") -> "ActivityType":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


@dataclass(slots=True)
class ActivityEntry:
    entry_id: str
    user_id: int
    kind: ActivityType
    action: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        self.user_id = int(self.user_id)
        self.kind = ActivityType.from_value(self.kind)
        self.data = dict(self.data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActivityEntry":
        return cls(**_known_fields(cls, data))


__all__ = ["ActivityEntry", "ActivityType"]
