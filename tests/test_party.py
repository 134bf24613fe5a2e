from __future__ import annotations

import random
import re
import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from forge.errors import (
    AlreadyInPartyError,
    CodeGenerationError,
    ConflictError,
    NotFoundError,
    PartyFullError,
    PermissionDeniedError,
    ValidationError,
)
from forge.game import new_user
from forge.models import Party, PartyRole, UserProgress
from forge.party import (
    create_party,
    generate_invite_code,
    join_party,
    kick_member,
    leave_party,
    member_ids_in_join_order,
    normalize_invite_code,
    regenerate_invite_code,
    rename_party,
    successor_id,
)


def _never_used(code: str) -> bool:
    return False


def _party_with(
    *user_ids: int, max_members: int = 8, seed: int = 1
) -> tuple[Party, dict[int, UserProgress]]:
    users = {user_id: new_user(user_id) for user_id in user_ids}
    owner_id, *rest = user_ids
    party = create_party(
        users[owner_id],
        "Dawn Patrol",
        party_id="p1",
        code_in_use=_never_used,
        rng=random.Random(seed),
        now=1.0,
        max_members=max_members,
    )
    for offset, user_id in enumerate(rest, start=2):
        join_party(users[user_id], party, now=float(offset))
    return party, users


def _assert_consistent(party: Party, users: dict[int, UserProgress]) -> None:
    owners = list(party.owners())
    if party.is_active:
        assert len(owners) == 1
        assert owners[0].user_id == party.owner_id
    for user_id, user in users.items():
        member = party.member(user_id)
        if member is None:
            assert user.party_id != party.party_id
        else:
            assert user.party_id == party.party_id
            assert user.party_role is member.role


def test_create_party_makes_the_creator_owner() -> None:
    party, users = _party_with(1)

    assert re.fullmatch(r"[0-9A-F]{6}", party.invite_code)
    assert party.member_ids == [1]
    assert users[1].party_id == "p1"
    assert users[1].party_role is PartyRole.OWNER
    _assert_consistent(party, users)


def test_party_names_are_validated() -> None:
    user = new_user(1)
    for name in ("", " a ", "x" * 33):
        with pytest.raises(ValidationError):
            create_party(user, name, party_id="p", code_in_use=_never_used, rng=random.Random(0), now=0.0)
    assert user.party_id is None


def test_users_hold_one_party_at_a_time() -> None:
    party, users = _party_with(1, 2)
    with pytest.raises(AlreadyInPartyError):
        create_party(users[2], "Second", party_id="p2", code_in_use=_never_used, rng=random.Random(0), now=5.0)
    with pytest.raises(AlreadyInPartyError):
        join_party(users[2], party, now=5.0)


def test_full_party_rejects_new_members() -> None:
    party, users = _party_with(1, 2, max_members=2)
    outsider = new_user(3)

    with pytest.raises(PartyFullError):
        join_party(outsider, party, now=9.0)

    assert outsider.party_id is None
    assert party.member_ids == [1, 2]
    assert isinstance(PartyFullError("x"), ConflictError)


def test_owner_leaving_promotes_earliest_member() -> None:
    party, users = _party_with(1, 2, 3)

    successor = leave_party(users[1], party, users, now=10.0)

    assert successor is users[2]
    assert party.owner_id == 2
    assert users[2].party_role is PartyRole.OWNER
    assert users[3].party_role is PartyRole.MEMBER
    assert users[1].party_id is None
    assert users[1].party_role is None
    assert member_ids_in_join_order(party) == [2, 3]
    _assert_consistent(party, users)


def test_member_leaving_keeps_owner() -> None:
    party, users = _party_with(1, 2)

    assert leave_party(users[2], party, users, now=10.0) is None

    assert party.owner_id == 1
    assert party.member_ids == [1]
    _assert_consistent(party, users)


def test_last_member_leaving_disbands_and_frees_the_code() -> None:
    party, users = _party_with(1, seed=7)
    code = party.invite_code

    assert leave_party(users[1], party, users, now=3.0) is None

    assert not party.is_active
    assert party.disbanded_at == 3.0
    assert party.members == []

    active = [party]

    def in_use(candidate: str) -> bool:
        return any(p.is_active and p.invite_code == candidate for p in active)

    again = create_party(
        users[1], "Round Two", party_id="p2", code_in_use=in_use, rng=random.Random(7), now=4.0
    )
    assert again.invite_code == code

    with pytest.raises(NotFoundError):
        join_party(new_user(5), party, now=5.0)
    with pytest.raises(ConflictError):
        leave_party(users[1], party, users, now=5.0)


def test_leaving_a_party_you_are_not_in() -> None:
    party, users = _party_with(1)
    with pytest.raises(NotFoundError):
        leave_party(new_user(4), party, users, now=2.0)


def test_kick_requires_ownership() -> None:
    party, users = _party_with(1, 2, 3)

    with pytest.raises(PermissionDeniedError):
        kick_member(users[2], users[3], party)
    with pytest.raises(ValidationError):
        kick_member(users[1], users[1], party)
    with pytest.raises(NotFoundError):
        kick_member(users[1], new_user(9), party)

    kick_member(users[1], users[3], party)

    assert party.member_ids == [1, 2]
    assert users[3].party_id is None
    _assert_consistent(party, users)


def test_regenerate_and_rename_are_owner_only() -> None:
    party, users = _party_with(1, 2)
    old_code = party.invite_code

    with pytest.raises(PermissionDeniedError):
        regenerate_invite_code(users[2], party, code_in_use=_never_used, rng=random.Random(2))
    with pytest.raises(PermissionDeniedError):
        rename_party(users[2], party, "Mutiny")

    new_code = regenerate_invite_code(
        users[1], party, code_in_use=lambda code: code == old_code, rng=random.Random(1)
    )
    rename_party(users[1], party, "  Night   Owls ")

    assert new_code != old_code
    assert party.invite_code == new_code
    assert party.name == "Night Owls"


def test_code_generation_gives_up_after_bounded_attempts() -> None:
    calls: list[str] = []

    def always_taken(code: str) -> bool:
        calls.append(code)
        return True

    with pytest.raises(CodeGenerationError):
        generate_invite_code(always_taken, rng=random.Random(0), attempts=10)

    assert len(calls) == 10


def test_invite_codes_are_normalized() -> None:
    assert normalize_invite_code(" ab12cd ") == "AB12CD"
    for bad in ("", "XYZ123", "ABC", "ABCDEF0"):
        with pytest.raises(ValidationError):
            normalize_invite_code(bad)


def test_successor_is_only_named_for_a_leaving_owner() -> None:
    party, users = _party_with(1, 2, 3)

    assert successor_id(party, 1) == 2
    assert successor_id(party, 3) is None

    with pytest.raises(NotFoundError):
        leave_party(users[1], party, {3: users[3]}, now=10.0)
    assert party.owner_id == 1
    assert party.member_ids == [1, 2, 3]
    assert users[1].party_id == "p1"

    solo, _ = _party_with(9)
    assert successor_id(solo, 9) is None
