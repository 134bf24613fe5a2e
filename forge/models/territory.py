"""Clubs and the gym locations they fight over."""

from __future__ import annotations

from collections import abc
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ._validation import (
    FieldSpec,
    ModelValidator,
    SequenceSpec,
    is_non_empty_str,
    is_non_negative_int,
    is_user_id,
    validate_record,
)
from .players import _coerce_int, _known_fields

MAX_DEFENDERS = 6


@dataclass(slots=True)
class Club:
    club_id: str
    name: str
    tag: str
    founder_id: int
    members: List[int] = field(default_factory=list)
    wins: int = 0
    losses: int = 0
    created_at: float = 0.0

    def __post_init__(self) -> None:
        self.founder_id = int(self.founder_id)
        self.tag = str(self.tag).strip().upper()
        members: List[int] = []
        for user_id in self.members:
            if int(user_id) not in members:
                members.append(int(user_id))
        self.members = members
        self.wins = max(0, _coerce_int(self.wins))
        self.losses = max(0, _coerce_int(self.losses))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Club":
        return cls(**_known_fields(cls, validate_record(cls, data)))


class ClubValidator(ModelValidator):
    model = Club
    fields = {
        "club_id": FieldSpec(is_non_empty_str, "a non-empty club id"),
        "name": FieldSpec(is_non_empty_str, "a club name"),
        "tag": FieldSpec(is_non_empty_str, "a club tag"),
        "founder_id": FieldSpec(is_user_id, "the founder's user id"),
        "members": FieldSpec(SequenceSpec(is_user_id), "a list of user ids", required=False),
    }


Club.validator = ClubValidator


@dataclass(slots=True)
class Defender:
    user_id: int
    level: int = 1

    def __post_init__(self) -> None:
        self.user_id = int(self.user_id)
        self.level = max(1, _coerce_int(self.level, 1))


@dataclass(slots=True)
class GymLocation:
    """A real-world gym that clubs can claim and contest.

    ``control_strength`` is zero exactly when no club controls the location.
    """

    location_id: str
    place_id: str
    name: str
    latitude: float = 0.0
    longitude: float = 0.0
    address: str = ""
    controlling_club_id: Optional[str] = None
    control_strength: int = 0
    defenders: List[Defender] = field(default_factory=list)
    total_battles: int = 0
    last_battle_at: Optional[float] = None
    created_at: float = 0.0

    def __post_init__(self) -> None:
        self.latitude = float(self.latitude)
        self.longitude = float(self.longitude)
        defenders: List[Defender] = []
        for entry in self.defenders:
            if isinstance(entry, Defender):
                defenders.append(entry)
            elif isinstance(entry, Mapping):
                defenders.append(Defender(**_known_fields(Defender, entry)))
            else:
                raise TypeError("Defenders must be Defender instances or mappings")
        self.defenders = defenders[:MAX_DEFENDERS]
        self.control_strength = max(0, _coerce_int(self.control_strength))
        self.total_battles = max(0, _coerce_int(self.total_battles))
        if self.controlling_club_id is None:
            self.control_strength = 0
            self.defenders = []

    @property
    def is_controlled(self) -> bool:
        return self.controlling_club_id is not None

    def defender_ids(self) -> List[int]:
        return [defender.user_id for defender in self.defenders]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GymLocation":
        return cls(**_known_fields(cls, validate_record(cls, data)))


class GymLocationValidator(ModelValidator):
    model = GymLocation
    fields = {
        "location_id": FieldSpec(is_non_empty_str, "a non-empty location id"),
        "place_id": FieldSpec(is_non_empty_str, "an external place id"),
        "name": FieldSpec(str, "a location name"),
        "latitude": FieldSpec(float, "a latitude", required=False),
        "longitude": FieldSpec(float, "a longitude", required=False),
        "controlling_club_id": FieldSpec(str, "a club id", required=False, allow_none=True),
        "control_strength": FieldSpec(is_non_negative_int, "a non-negative strength", required=False),
        "defenders": FieldSpec(SequenceSpec(abc.Mapping), "a list of defender tables", required=False),
    }


GymLocation.validator = GymLocationValidator


@dataclass(slots=True)
class BattleRecord:
    battle_id: str
    location_id: str
    attacker_id: int
    attacker_club_id: str
    defender_club_id: str
    attack_power: int
    defense_power: int
    winner: str
    created_at: float = 0.0

    @property
    def attacker_won(self) -> bool:
        return self.winner == "attacker"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BattleRecord":
        return cls(**_known_fields(cls, data))


__all__ = [
    "BattleRecord",
    "Club",
    "Defender",
    "GymLocation",
    "MAX_DEFENDERS",
]
