"""Workout party state machine.

A user is either outside any party, a party member, or the party owner.
Every transition here updates both the :class:`Party` record and the
``party_id``/``party_role`` back-references on the affected users; nothing
else in the code base writes those fields.
"""

from __future__ import annotations

import logging
import random
import re
from typing import Callable, List, Mapping, Optional

from .errors import (
    AlreadyInPartyError,
    CodeGenerationError,
    ConflictError,
    NotFoundError,
    PartyFullError,
    PermissionDeniedError,
    ValidationError,
)
from .models import Party, PartyMember, PartyRole, UserProgress

log = logging.getLogger(__name__)

INVITE_CODE_LENGTH = 6
INVITE_CODE_ATTEMPTS = 10
MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 32

_INVITE_CODE_RE = re.compile(r"^[0-9A-F]{6}$")


def normalize_invite_code(code: str) -> str:
    normalized = str(code or "").strip().upper()
    if not _INVITE_CODE_RE.match(normalized):
        raise ValidationError("Invite codes are six characters using 0-9 and A-F.")
    return normalized


def _clean_name(name: str) -> str:
    cleaned = " ".join(str(name or "").split())
    if len(cleaned) < MIN_NAME_LENGTH:
        raise ValidationError(f"Party names need at least {MIN_NAME_LENGTH} characters.")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"Party names are limited to {MAX_NAME_LENGTH} characters.")
    return cleaned


def generate_invite_code(
    code_in_use: Callable[[str], bool],
    *,
    rng: random.Random,
    attempts: int = INVITE_CODE_ATTEMPTS,
) -> str:
    for attempt in range(1, attempts + 1):
        code = f"{rng.getrandbits(4 * INVITE_CODE_LENGTH):0{INVITE_CODE_LENGTH}X}"
        if not code_in_use(code):
            return code
        log.debug("Invite code collision on attempt %d", attempt)
    raise CodeGenerationError(
        f"Could not generate a unique invite code after {attempts} attempts."
    )


def _require_active(party: Party) -> None:
    if not party.is_active:
        raise ConflictError("That party has been disbanded.")


def _require_owner(user: UserProgress, party: Party) -> None:
    _require_active(party)
    if party.member(user.user_id) is None:
        raise NotFoundError("You are not a member of that party.")
    if party.owner_id != user.user_id:
        raise PermissionDeniedError("Only the party owner can do that.")


def create_party(
    user: UserProgress,
    name: str,
    *,
    party_id: str,
    code_in_use: Callable[[str], bool],
    rng: random.Random,
    now: float,
    max_members: int = 8,
    attempts: int = INVITE_CODE_ATTEMPTS,
) -> Party:
    if user.party_id is not None:
        raise AlreadyInPartyError("Leave your current party before creating a new one.")
    cleaned = _clean_name(name)
    code = generate_invite_code(code_in_use, rng=rng, attempts=attempts)
    party = Party(
        party_id=party_id,
        name=cleaned,
        invite_code=code,
        owner_id=user.user_id,
        members=[PartyMember(user.user_id, PartyRole.OWNER, now)],
        max_members=max_members,
        created_at=now,
    )
    user.party_id = party.party_id
    user.party_role = PartyRole.OWNER
    log.info("User %s created party %s (%s)", user.user_id, party.party_id, code)
    return party


def join_party(user: UserProgress, party: Party, *, now: float) -> None:
    if user.party_id is not None:
        raise AlreadyInPartyError("You are already in a party.")
    if not party.is_active:
        raise NotFoundError("No active party uses that invite code.")
    if party.member(user.user_id) is not None:
        raise AlreadyInPartyError("You are already a member of that party.")
    if party.is_full:
        raise PartyFullError(f"{party.name} is full ({party.max_members} members).")
    party.members.append(PartyMember(user.user_id, PartyRole.MEMBER, now))
    user.party_id = party.party_id
    user.party_role = PartyRole.MEMBER
    log.info("User %s joined party %s", user.user_id, party.party_id)


def successor_id(party: Party, leaving_id: int) -> Optional[int]:
    """Member who takes over if ``leaving_id`` leaves, or ``None`` when nobody does."""

    if party.owner_id != leaving_id:
        return None
    remaining = [member for member in party.members if member.user_id != leaving_id]
    if not remaining:
        return None
    return min(remaining, key=lambda member: member.joined_at).user_id


def leave_party(
    user: UserProgress,
    party: Party,
    members: Mapping[int, UserProgress],
    *,
    now: float,
) -> Optional[UserProgress]:
    """Remove ``user`` from ``party``.

    Returns the member promoted to owner when the owner leaves, so the caller
    can persist that user's record too.  When the last member leaves the
    party is disbanded and its invite code becomes available again.
    """

    _require_active(party)
    if user.party_id != party.party_id or party.member(user.user_id) is None:
        raise NotFoundError("You are not a member of that party.")
    next_owner_id = successor_id(party, user.user_id)
    successor_user = members.get(next_owner_id) if next_owner_id is not None else None
    if next_owner_id is not None and successor_user is None:
        raise NotFoundError(f"Party member {next_owner_id} has no progress record.")

    party.members = [member for member in party.members if member.user_id != user.user_id]
    user.party_id = None
    user.party_role = None

    if not party.members:
        party.is_active = False
        party.disbanded_at = now
        log.info("Party %s disbanded", party.party_id)
        return None

    if successor_user is None:
        log.info("User %s left party %s", user.user_id, party.party_id)
        return None

    successor = party.member(successor_user.user_id)
    successor.role = PartyRole.OWNER
    party.owner_id = successor_user.user_id
    successor_user.party_role = PartyRole.OWNER
    log.info(
        "Owner %s left party %s; ownership passed to %s",
        user.user_id,
        party.party_id,
        successor_user.user_id,
    )
    return successor_user


def kick_member(owner: UserProgress, target: UserProgress, party: Party) -> None:
    _require_owner(owner, party)
    if target.user_id == owner.user_id:
        raise ValidationError("You cannot kick yourself; leave the party instead.")
    if party.member(target.user_id) is None:
        raise NotFoundError("That user is not in your party.")
    party.members = [member for member in party.members if member.user_id != target.user_id]
    target.party_id = None
    target.party_role = None
    log.info("Owner %s kicked %s from party %s", owner.user_id, target.user_id, party.party_id)


def regenerate_invite_code(
    owner: UserProgress,
    party: Party,
    *,
    code_in_use: Callable[[str], bool],
    rng: random.Random,
    attempts: int = INVITE_CODE_ATTEMPTS,
) -> str:
    _require_owner(owner, party)
    party.invite_code = generate_invite_code(code_in_use, rng=rng, attempts=attempts)
    return party.invite_code


def rename_party(owner: UserProgress, party: Party, name: str) -> None:
    _require_owner(owner, party)
    party.name = _clean_name(name)


def member_ids_in_join_order(party: Party) -> List[int]:
    return [member.user_id for member in sorted(party.members, key=lambda m: m.joined_at)]


__all__ = [
    "INVITE_CODE_ATTEMPTS",
    "create_party",
    "generate_invite_code",
    "join_party",
    "kick_member",
    "leave_party",
    "member_ids_in_join_order",
    "normalize_invite_code",
    "regenerate_invite_code",
    "rename_party",
    "successor_id",
]
