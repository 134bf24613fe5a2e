from __future__ import annotations

import random
import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from forge.errors import (
    AlreadyControlledError,
    ConflictError,
    NotControlledError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from forge.game import new_user
from forge.models import MAX_DEFENDERS, ActivityType, Club, GymLocation, UserProgress
from forge.territory import (
    challenge,
    claim,
    club_power,
    club_territory_count,
    create_club,
    defend,
    haversine_km,
    join_club,
    leave_club,
    nearby_locations,
    release_location,
    stop_defending,
    upsert_location,
)

NOW = 1_700_000_000.0


def _athlete(user_id: int, level: int, club: Club | None = None) -> UserProgress:
    user = new_user(user_id)
    user.level = level
    if club is not None:
        join_club(user, club)
    return user


def _club(club_id: str, tag: str) -> Club:
    return Club(club_id=club_id, name=f"Club {tag}", tag=tag, founder_id=0)


def _gym(location_id: str = "gym-1") -> GymLocation:
    return upsert_location(
        None,
        location_id=location_id,
        place_id=f"place-{location_id}",
        name="Iron Temple",
        latitude=52.52,
        longitude=13.405,
        now=NOW,
    )


def test_claiming_an_open_location() -> None:
    red = _club("red", "RED")
    owner = _athlete(1, 3, red)
    gym = _gym()

    events = claim(owner, gym, now=NOW)

    assert gym.controlling_club_id == "red"
    assert gym.control_strength == 30
    assert gym.defender_ids() == [1]
    assert owner.defending_location_id == "gym-1"
    assert [event.kind for event in events] == [ActivityType.TERRITORY_CAPTURE]


def test_claim_conflicts() -> None:
    red, blue = _club("red", "RED"), _club("blue", "BLUE")
    gym = _gym()
    claim(_athlete(1, 3, red), gym, now=NOW)

    with pytest.raises(AlreadyControlledError):
        claim(_athlete(2, 9, blue), gym, now=NOW)
    with pytest.raises(PermissionDeniedError):
        claim(_athlete(3, 9), _gym("gym-2"), now=NOW)
    assert gym.controlling_club_id == "red"


def test_challenge_conflicts() -> None:
    red, blue = _club("red", "RED"), _club("blue", "BLUE")
    rng = random.Random(0)

    with pytest.raises(NotControlledError):
        challenge(_athlete(2, 5, blue), _gym(), battle_id="b", rng=rng, now=NOW)

    gym = _gym()
    claim(_athlete(1, 3, red), gym, now=NOW)
    with pytest.raises(AlreadyControlledError):
        challenge(_athlete(4, 5, red), gym, battle_id="b", rng=rng, now=NOW)
    with pytest.raises(PermissionDeniedError):
        challenge(_athlete(5, 5), gym, battle_id="b", rng=rng, now=NOW)
    assert gym.total_battles == 0


def test_challenge_matches_replayed_rolls() -> None:
    for seed in range(25):
        red, blue = _club("red", "RED"), _club("blue", "BLUE")
        gym = _gym()
        claim(_athlete(1, 3, red), gym, now=NOW)
        gym.control_strength = 35
        attacker = _athlete(2, 3, blue)

        replay = random.Random(seed)
        attack = 30 + replay.randint(0, 19)
        defense = 35 + replay.randint(0, 9)

        outcome = challenge(
            attacker,
            gym,
            battle_id=f"battle-{seed}",
            rng=random.Random(seed),
            now=NOW,
            attacker_club=blue,
            defender_club=red,
        )

        assert outcome.record.attack_power == attack
        assert outcome.record.defense_power == defense
        assert outcome.record.attacker_won is (attack > defense)
        assert gym.total_battles == 1
        if attack > defense:
            assert gym.controlling_club_id == "blue"
            assert (blue.wins, red.losses) == (1, 1)
        else:
            assert gym.controlling_club_id == "red"
            assert gym.control_strength == max(1, 35 - max(1, attack // 2))
            assert (blue.losses, red.wins) == (1, 1)


def test_strong_attacker_takes_over() -> None:
    red, blue = _club("red", "RED"), _club("blue", "BLUE")
    gym = _gym()
    holder = _athlete(1, 3, red)
    claim(holder, gym, now=NOW)
    attacker = _athlete(2, 10, blue)

    outcome = challenge(
        attacker,
        gym,
        battle_id="b1",
        rng=random.Random(11),
        now=NOW + 5,
        attacker_club=blue,
        defender_club=red,
    )

    assert outcome.record.attacker_won
    assert outcome.displaced == [1]
    assert gym.controlling_club_id == "blue"
    assert gym.control_strength == 100
    assert gym.defender_ids() == [2]
    assert gym.last_battle_at == NOW + 5
    assert attacker.defending_location_id == "gym-1"
    assert [event.kind for event in outcome.events] == [ActivityType.TERRITORY_CAPTURE]


def test_failed_attacks_never_drop_strength_below_one() -> None:
    red, blue = _club("red", "RED"), _club("blue", "BLUE")
    gym = _gym()
    claim(_athlete(1, 1, red), gym, now=NOW)
    attacker = _athlete(2, 1, blue)
    rng = random.Random(3)

    # level 1 attacks top out at 29, below a fresh level 3 defense
    gym.control_strength = 30
    outcome = challenge(attacker, gym, battle_id="b0", rng=rng, now=NOW)
    assert not outcome.record.attacker_won
    assert [event.kind for event in outcome.events] == [ActivityType.TERRITORY_DEFENDED]

    for index in range(50):
        before = gym.control_strength
        outcome = challenge(attacker, gym, battle_id=f"b{index + 1}", rng=rng, now=NOW)
        if outcome.record.attacker_won:
            break
        assert 1 <= gym.control_strength < before or gym.control_strength == 1
    assert gym.control_strength >= 1


def test_defenders_add_strength_up_to_the_limit() -> None:
    red = _club("red", "RED")
    gym = _gym()
    claim(_athlete(1, 2, red), gym, now=NOW)
    helper = _athlete(2, 4, red)

    assert defend(helper, gym) == 20 + 20
    assert helper.defending_location_id == "gym-1"
    with pytest.raises(ConflictError):
        defend(helper, gym)

    for user_id in range(3, 3 + MAX_DEFENDERS - 2):
        defend(_athlete(user_id, 1, red), gym)
    assert len(gym.defenders) == MAX_DEFENDERS

    with pytest.raises(ConflictError):
        defend(_athlete(99, 1, red), gym)


def test_only_the_controlling_club_defends() -> None:
    red, blue = _club("red", "RED"), _club("blue", "BLUE")
    gym = _gym()
    claim(_athlete(1, 2, red), gym, now=NOW)

    with pytest.raises(PermissionDeniedError):
        defend(_athlete(2, 2, blue), gym)
    with pytest.raises(NotControlledError):
        defend(_athlete(3, 2, red), _gym("gym-2"))


def test_one_location_per_defender() -> None:
    red = _club("red", "RED")
    first, second = _gym("gym-1"), _gym("gym-2")
    user = _athlete(1, 2, red)
    claim(user, first, now=NOW)

    with pytest.raises(ConflictError):
        claim(user, second, now=NOW)
    assert not second.is_controlled

    with pytest.raises(ConflictError):
        leave_club(user, red)

    stop_defending(user, first)
    assert user.defending_location_id is None
    assert first.defenders == []
    assert first.controlling_club_id == "red"
    assert first.control_strength == 10

    with pytest.raises(NotFoundError):
        stop_defending(user, first)
    leave_club(user, red)
    assert user.club_id is None


def test_club_creation_and_membership() -> None:
    founder = new_user(1)
    club = create_club(founder, "Iron Wolves", "iwf", club_id="c1", tag_in_use=False, now=NOW)

    assert club.tag == "IWF"
    assert founder.club_id == "c1"
    assert club.members == [1]

    with pytest.raises(ConflictError):
        create_club(founder, "Another", "ANO", club_id="c2", tag_in_use=False, now=NOW)
    with pytest.raises(ValidationError):
        create_club(new_user(2), "Bad Tag", "TOOLONG", club_id="c3", tag_in_use=False, now=NOW)
    with pytest.raises(ConflictError):
        create_club(new_user(3), "Copycat", "IWF", club_id="c4", tag_in_use=True, now=NOW)

    member = _athlete(4, 7, club)
    users = {1: founder, 4: member}
    assert club_power(club, users) == 8
    with pytest.raises(ConflictError):
        join_club(member, club)


def test_territory_count_per_club() -> None:
    red = _club("red", "RED")
    gyms = [_gym("a"), _gym("b"), _gym("c")]
    claim(_athlete(1, 1, red), gyms[0], now=NOW)
    claim(_athlete(2, 1, red), gyms[2], now=NOW)

    assert club_territory_count("red", gyms) == 2
    assert club_territory_count("blue", gyms) == 0


def test_nearby_locations_are_sorted_by_distance() -> None:
    here = upsert_location(None, location_id="here", place_id="p1", name="Here",
                           latitude=0.0, longitude=0.0, now=NOW)
    close = upsert_location(None, location_id="close", place_id="p2", name="Close",
                            latitude=0.0, longitude=0.01, now=NOW)
    far = upsert_location(None, location_id="far", place_id="p3", name="Far",
                          latitude=0.0, longitude=1.0, now=NOW)

    found = nearby_locations([far, close, here], 0.0, 0.0, radius_km=5.0)

    assert [location.location_id for location, _ in found] == ["here", "close"]
    assert haversine_km(0.0, 0.0, 0.0, 1.0) == pytest.approx(111.19, abs=0.01)


def test_refreshing_a_location_keeps_control() -> None:
    red = _club("red", "RED")
    gym = _gym()
    claim(_athlete(1, 3, red), gym, now=NOW)

    same = upsert_location(
        gym,
        location_id="ignored",
        place_id=gym.place_id,
        name="Iron Temple Mitte",
        latitude=52.5,
        longitude=13.4,
        now=NOW + 1,
    )

    assert same is gym
    assert gym.name == "Iron Temple Mitte"
    assert gym.controlling_club_id == "red"
    assert gym.control_strength == 30

    with pytest.raises(ValidationError):
        upsert_location(None, location_id="x", place_id="p", name="Nowhere",
                        latitude=91.0, longitude=0.0, now=NOW)


def test_founder_leaving_hands_the_club_to_the_longest_member() -> None:
    founder = new_user(1)
    club = create_club(founder, "Iron Wolves", "IWF", club_id="c1", tag_in_use=False, now=NOW)
    second, third = _athlete(2, 1, club), _athlete(3, 1, club)

    assert leave_club(founder, club) is False

    assert club.founder_id == 2
    assert club.members == [2, 3]
    assert founder.club_id is None

    assert leave_club(third, club) is False
    assert club.founder_id == 2
    assert leave_club(second, club) is True
    assert club.members == []


def test_released_locations_lose_control() -> None:
    red = _club("red", "RED")
    gym = _gym()
    holder = _athlete(1, 3, red)
    claim(holder, gym, now=NOW)
    stop_defending(holder, gym)

    release_location(gym)

    assert not gym.is_controlled
    assert gym.control_strength == 0
    assert gym.defenders == []
