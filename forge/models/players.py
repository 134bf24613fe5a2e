"""Player-centric domain models."""

from __future__ import annotations

from collections import abc
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional

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
from .progression import DEFAULT_BASE_STAT, STAT_NAMES, EquipmentSlot


def _known_fields(cls: type[Any], data: Mapping[str, Any]) -> dict[str, Any]:
    names = {item.name for item in fields(cls)}
    return {key: value for key, value in data.items() if key in names}


def _coerce_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class PartyRole(str, Enum):
    OWNER = "owner"
    MEMBER = "member"

    @classmethod
    def from_value(cls, value: "PartyRole | str") -> "PartyRole":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            return cls.MEMBER


@dataclass(slots=True)
class UserProgress:
    """Canonical progression record for a single athlete."""

    user_id: int
    username: str = ""
    level: int = 1
    xp: int = 0
    strength: int = DEFAULT_BASE_STAT
    endurance: int = DEFAULT_BASE_STAT
    agility: int = DEFAULT_BASE_STAT
    workout_streak: int = 0
    last_workout_date: Optional[str] = None
    equipment: Dict[str, str] = field(default_factory=dict)
    inventory: List[str] = field(default_factory=list)
    total_workouts: int = 0
    lifetime_reps: int = 0
    exercise_reps: Dict[str, int] = field(default_factory=dict)
    party_id: Optional[str] = None
    party_role: Optional[PartyRole] = None
    club_id: Optional[str] = None
    defending_location_id: Optional[str] = None
    created_at: float = 0.0

    def __post_init__(self) -> None:
        self.user_id = int(self.user_id)
        self.level = max(1, _coerce_int(self.level, 1))
        self.xp = max(0, _coerce_int(self.xp))
        for stat in STAT_NAMES:
            setattr(self, stat, max(0, _coerce_int(getattr(self, stat))))
        self.workout_streak = max(0, _coerce_int(self.workout_streak))
        self.total_workouts = max(0, _coerce_int(self.total_workouts))
        self.lifetime_reps = max(0, _coerce_int(self.lifetime_reps))
        self.exercise_reps = {
            str(key): max(0, _coerce_int(value)) for key, value in self.exercise_reps.items()
        }

        equipment: Dict[str, str] = {}
        for slot, item_key in self.equipment.items():
            if not item_key:
                continue
            try:
                slot_key = EquipmentSlot.from_value(slot)
            except ValueError:
                continue
            equipment[slot_key.value] = str(item_key)
        self.equipment = equipment

        equipped = set(equipment.values())
        inventory: List[str] = []
        for item_key in self.inventory:
            key = str(item_key)
            if key and key not in equipped and key not in inventory:
                inventory.append(key)
        self.inventory = inventory

        if self.party_role is not None:
            self.party_role = PartyRole.from_value(self.party_role)
        if self.party_id is None:
            self.party_role = None

    def stats(self) -> Dict[str, int]:
        return {stat: getattr(self, stat) for stat in STAT_NAMES}

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserProgress":
        payload = validate_record(cls, data)
        return cls(**_known_fields(cls, payload))


class UserProgressValidator(ModelValidator):
    model = UserProgress
    fields = {
        "user_id": FieldSpec(is_user_id, "a numeric user id"),
        "username": FieldSpec(str, "a display name", required=False),
        "level": FieldSpec(int, "an integer level"),
        "xp": FieldSpec(is_non_negative_int, "a non-negative integer"),
        "equipment": FieldSpec(MappingSpec(str, str), "a slot to item mapping", required=False),
        "inventory": FieldSpec(SequenceSpec(str), "a list of item keys", required=False),
        "party_id": FieldSpec(str, "a party id", required=False, allow_none=True),
        "club_id": FieldSpec(str, "a club id", required=False, allow_none=True),
    }


UserProgress.validator = UserProgressValidator


@dataclass(slots=True)
class PartyMember:
    user_id: int
    role: PartyRole = PartyRole.MEMBER
    joined_at: float = 0.0

    def __post_init__(self) -> None:
        self.user_id = int(self.user_id)
        self.role = PartyRole.from_value(self.role)
        self.joined_at = float(self.joined_at or 0.0)


@dataclass(slots=True)
class Party:
    """A short-lived workout group joined through an invite code."""

    party_id: str
    name: str
    invite_code: str
    owner_id: int
    members: List[PartyMember] = field(default_factory=list)
    max_members: int = 8
    is_active: bool = True
    created_at: float = 0.0
    disbanded_at: Optional[float] = None

    def __post_init__(self) -> None:
        self.owner_id = int(self.owner_id)
        members: List[PartyMember] = []
        for entry in self.members:
            if isinstance(entry, PartyMember):
                members.append(entry)
            elif isinstance(entry, Mapping):
                members.append(PartyMember(**_known_fields(PartyMember, entry)))
            else:
                raise TypeError("Party members must be PartyMember instances or mappings")
        self.members = members
        self.max_members = max(1, _coerce_int(self.max_members, 8))

    @property
    def member_ids(self) -> List[int]:
        return [member.user_id for member in self.members]

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.max_members

    def member(self, user_id: int) -> Optional[PartyMember]:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def owners(self) -> Iterator[PartyMember]:
        return (member for member in self.members if member.role is PartyRole.OWNER)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Party":
        payload = validate_record(cls, data)
        return cls(**_known_fields(cls, payload))


class PartyValidator(ModelValidator):
    model = Party
    fields = {
        "party_id": FieldSpec(is_non_empty_str, "a non-empty party id"),
        "name": FieldSpec(is_non_empty_str, "a party name"),
        "invite_code": FieldSpec(is_non_empty_str, "an invite code"),
        "owner_id": FieldSpec(is_user_id, "the owner's user id"),
        "members": FieldSpec(SequenceSpec(abc.Mapping), "a list of member tables", required=False),
        "is_active": FieldSpec(bool, "an activity flag", required=False),
    }


Party.validator = PartyValidator


__all__ = [
    "Party",
    "PartyMember",
    "PartyRole",
    "UserProgress",
]
