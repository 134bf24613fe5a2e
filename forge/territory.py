"""Club membership and combat over gym locations."""

from __future__ import annotations

import logging
import math
import random
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional

from .errors import (
    AlreadyControlledError,
    ConflictError,
    NotControlledError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .game import GameEvent
from .models import (
    MAX_DEFENDERS,
    ActivityType,
    BattleRecord,
    Club,
    Defender,
    GymLocation,
    UserProgress,
)

log = logging.getLogger(__name__)

CLAIM_STRENGTH_PER_LEVEL = 10
ATTACK_PER_LEVEL = 10
ATTACK_JITTER = 19
DEFENSE_JITTER = 9
DEFEND_STRENGTH_PER_LEVEL = 5
EARTH_RADIUS_KM = 6371.0

_TAG_RE = re.compile(r"^[A-Z0-9]{2,5}$")


# ---------------------------------------------------------------------------
# Clubs
# ---------------------------------------------------------------------------


def create_club(
    user: UserProgress,
    name: str,
    tag: str,
    *,
    club_id: str,
    tag_in_use: bool,
    now: float,
) -> Club:
    if user.club_id is not None:
        raise ConflictError("Leave your current club before founding a new one.")
    cleaned = " ".join(str(name or "").split())
    if len(cleaned) < 2:
        raise ValidationError("Club names need at least 2 characters.")
    normalized_tag = str(tag or "").strip().upper()
    if not _TAG_RE.match(normalized_tag):
        raise ValidationError("Club tags are 2-5 letters or digits.")
    if tag_in_use:
        raise ConflictError(f"The tag [{normalized_tag}] is already taken.")
    club = Club(
        club_id=club_id,
        name=cleaned,
        tag=normalized_tag,
        founder_id=user.user_id,
        members=[user.user_id],
        created_at=now,
    )
    user.club_id = club.club_id
    log.info("User %s founded club %s [%s]", user.user_id, club.club_id, club.tag)
    return club


def join_club(user: UserProgress, club: Club) -> None:
    if user.club_id is not None:
        raise ConflictError("You already belong to a club.")
    if user.user_id not in club.members:
        club.members.append(user.user_id)
    user.club_id = club.club_id
    log.info("User %s joined club %s", user.user_id, club.club_id)


def leave_club(user: UserProgress, club: Club) -> bool:
    """Remove ``user`` from ``club``; returns ``True`` when the club is left empty.

    A departing founder hands the role to the longest-standing member.
    """

    if user.club_id != club.club_id or user.user_id not in club.members:
        raise NotFoundError("You are not a member of that club.")
    if user.defending_location_id is not None:
        raise ConflictError("Stop defending your location before leaving the club.")
    club.members.remove(user.user_id)
    user.club_id = None
    if not club.members:
        log.info("User %s left club %s; the club is disbanded", user.user_id, club.club_id)
        return True
    if club.founder_id == user.user_id:
        club.founder_id = club.members[0]
        log.info("Club %s founder role passed to %s", club.club_id, club.founder_id)
    log.info("User %s left club %s", user.user_id, club.club_id)
    return False


def release_location(location: GymLocation) -> None:
    """Drop control of a location whose club no longer exists."""

    location.controlling_club_id = None
    location.control_strength = 0
    location.defenders = []


def club_power(club: Club, users: Mapping[int, UserProgress]) -> int:
    return sum(users[user_id].level for user_id in club.members if user_id in users)


def club_territory_count(club_id: str, locations: Iterable[GymLocation]) -> int:
    return sum(1 for location in locations if location.controlling_club_id == club_id)


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


def upsert_location(
    existing: Optional[GymLocation],
    *,
    location_id: str,
    place_id: str,
    name: str,
    latitude: float,
    longitude: float,
    address: str = "",
    now: float,
) -> GymLocation:
    """Create a location from external place data or refresh its details.

    Control state is never touched by a refresh.
    """

    if not place_id:
        raise ValidationError("Locations need an external place id.")
    if not -90.0 <= latitude <= 90.0 or not -180.0 <= longitude <= 180.0:
        raise ValidationError("Coordinates are out of range.")
    if existing is not None:
        existing.name = name or existing.name
        existing.latitude = float(latitude)
        existing.longitude = float(longitude)
        existing.address = address or existing.address
        return existing
    return GymLocation(
        location_id=location_id,
        place_id=place_id,
        name=name or place_id,
        latitude=latitude,
        longitude=longitude,
        address=address,
        created_at=now,
    )


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def nearby_locations(
    locations: Iterable[GymLocation],
    latitude: float,
    longitude: float,
    *,
    radius_km: float = 5.0,
) -> List[tuple[GymLocation, float]]:
    """Return locations within ``radius_km`` sorted by distance."""

    found = []
    for location in locations:
        distance = haversine_km(latitude, longitude, location.latitude, location.longitude)
        if distance <= radius_km:
            found.append((location, distance))
    found.sort(key=lambda item: item[1])
    return found


# ---------------------------------------------------------------------------
# Combat
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class BattleOutcome:
    record: BattleRecord
    displaced: List[int] = field(default_factory=list)
    events: List[GameEvent] = field(default_factory=list)


def _require_club(user: UserProgress) -> str:
    if user.club_id is None:
        raise PermissionDeniedError("Join a club before fighting over territory.")
    return user.club_id


def _require_free(user: UserProgress, location: GymLocation) -> None:
    if user.defending_location_id not in (None, location.location_id):
        raise ConflictError("You are already defending another location.")


def claim(user: UserProgress, location: GymLocation, *, now: float) -> List[GameEvent]:
    club_id = _require_club(user)
    if location.is_controlled:
        raise AlreadyControlledError(f"{location.name} is already controlled.")
    _require_free(user, location)
    location.controlling_club_id = club_id
    location.control_strength = user.level * CLAIM_STRENGTH_PER_LEVEL
    location.defenders = [Defender(user.user_id, user.level)]
    user.defending_location_id = location.location_id
    log.info(
        "Club %s claimed %s with strength %s",
        club_id,
        location.location_id,
        location.control_strength,
    )
    return [
        GameEvent(
            ActivityType.TERRITORY_CAPTURE,
            user.user_id,
            {"location": location.name, "club_id": club_id, "claimed": True},
        )
    ]


def challenge(
    attacker: UserProgress,
    location: GymLocation,
    *,
    battle_id: str,
    rng: random.Random,
    now: float,
    attacker_club: Optional[Club] = None,
    defender_club: Optional[Club] = None,
) -> BattleOutcome:
    """Resolve one attack against a controlled location.

    The attack only wins when strictly stronger than the defense.  A failed
    attack still wears the location down, but never below a strength of 1.
    """

    club_id = _require_club(attacker)
    if not location.is_controlled:
        raise NotControlledError(f"{location.name} is not controlled by anyone.")
    defending_club_id = location.controlling_club_id
    if defending_club_id == club_id:
        raise AlreadyControlledError(f"Your club already controls {location.name}.")
    _require_free(attacker, location)

    attack_power = attacker.level * ATTACK_PER_LEVEL + rng.randint(0, ATTACK_JITTER)
    defense_power = location.control_strength + rng.randint(0, DEFENSE_JITTER)
    attacker_won = attack_power > defense_power

    location.total_battles += 1
    location.last_battle_at = now
    displaced: List[int] = []
    if attacker_won:
        displaced = [uid for uid in location.defender_ids() if uid != attacker.user_id]
        location.controlling_club_id = club_id
        location.control_strength = attacker.level * CLAIM_STRENGTH_PER_LEVEL
        location.defenders = [Defender(attacker.user_id, attacker.level)]
        attacker.defending_location_id = location.location_id
        if attacker_club is not None:
            attacker_club.wins += 1
        if defender_club is not None:
            defender_club.losses += 1
        kind = ActivityType.TERRITORY_CAPTURE
    else:
        location.control_strength = max(
            1, location.control_strength - max(1, attack_power // 2)
        )
        if attacker_club is not None:
            attacker_club.losses += 1
        if defender_club is not None:
            defender_club.wins += 1
        kind = ActivityType.TERRITORY_DEFENDED

    record = BattleRecord(
        battle_id=battle_id,
        location_id=location.location_id,
        attacker_id=attacker.user_id,
        attacker_club_id=club_id,
        defender_club_id=defending_club_id,
        attack_power=attack_power,
        defense_power=defense_power,
        winner="attacker" if attacker_won else "defender",
        created_at=now,
    )
    log.info(
        "Battle %s at %s: attack %s vs defense %s, %s wins",
        battle_id,
        location.location_id,
        attack_power,
        defense_power,
        record.winner,
    )
    event = GameEvent(
        kind,
        attacker.user_id,
        {
            "location": location.name,
            "attacker_club_id": club_id,
            "defender_club_id": defending_club_id,
            "attack_power": attack_power,
            "defense_power": defense_power,
            "winner": record.winner,
        },
    )
    return BattleOutcome(record=record, displaced=displaced, events=[event])


def defend(user: UserProgress, location: GymLocation) -> int:
    """Add ``user`` to the defenders and return the new control strength."""

    club_id = _require_club(user)
    if not location.is_controlled:
        raise NotControlledError(f"{location.name} is not controlled by anyone.")
    if location.controlling_club_id != club_id:
        raise PermissionDeniedError("Only the controlling club can defend this location.")
    if user.user_id in location.defender_ids():
        raise ConflictError("You are already defending this location.")
    _require_free(user, location)
    if len(location.defenders) >= MAX_DEFENDERS:
        raise ConflictError(f"{location.name} already has {MAX_DEFENDERS} defenders.")
    location.defenders.append(Defender(user.user_id, user.level))
    location.control_strength += user.level * DEFEND_STRENGTH_PER_LEVEL
    user.defending_location_id = location.location_id
    log.info("User %s now defends %s", user.user_id, location.location_id)
    return location.control_strength


def stop_defending(user: UserProgress, location: GymLocation) -> None:
    """Withdraw ``user`` from the defenders; the club keeps control."""

    if user.defending_location_id != location.location_id:
        raise NotFoundError("You are not defending that location.")
    remaining = [defender for defender in location.defenders if defender.user_id != user.user_id]
    if len(remaining) != len(location.defenders) and location.is_controlled:
        location.control_strength = max(
            1, location.control_strength - user.level * DEFEND_STRENGTH_PER_LEVEL
        )
    location.defenders = remaining
    user.defending_location_id = None


__all__ = [
    "BattleOutcome",
    "challenge",
    "claim",
    "club_power",
    "club_territory_count",
    "create_club",
    "defend",
    "haversine_km",
    "join_club",
    "leave_club",
    "nearby_locations",
    "release_location",
    "stop_defending",
    "upsert_location",
]
