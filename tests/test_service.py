from __future__ import annotations

import asyncio
import random
import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from forge.config import ForgeConfig
from forge.errors import (
    AlreadyControlledError,
    AlreadyResolvedError,
    ConflictError,
    NotFoundError,
    PartyFullError,
    PermissionDeniedError,
    ValidationError,
)
from forge.models import ActivityType, DuelStatus, Party, PartyRole
from forge.service import GameService
from forge.storage import DataStore

GUILD = 1
NOW = 1_700_000_000.0
HOUR = 60 * 60


def _service(tmp_path: Path, **config: int) -> tuple[GameService, list[float]]:
    clock = [NOW]
    service = GameService(
        DataStore(tmp_path),
        ForgeConfig(**config),
        rng=random.Random(1234),
        clock=lambda: clock[0],
    )
    return service, clock


async def _register(service: GameService, *user_ids: int) -> None:
    for user_id in user_ids:
        await service.register_user(GUILD, user_id, f"athlete{user_id}")


def test_workout_is_persisted(tmp_path: Path) -> None:
    service, _ = _service(tmp_path)

    async def scenario() -> None:
        await _register(service, 1)
        report = await service.apply_workout(GUILD, 1, "pushups", 60)
        assert report.result.xp_gained == 94
        assert report.user.strength == 13
        assert report.events_of(ActivityType.WORKOUT)

        reloaded = GameService(DataStore(tmp_path))
        user = await reloaded.get_user(GUILD, 1)
        assert user is not None
        assert (user.level, user.xp, user.total_workouts) == (1, 94, 1)
        assert user.username == "athlete1"

    asyncio.run(scenario())
    assert (tmp_path / "data" / "1" / "users" / "1.toml").exists()


def test_rejected_workout_leaves_storage_untouched(tmp_path: Path) -> None:
    service, _ = _service(tmp_path)
    record = tmp_path / "data" / "1" / "users" / "1.toml"

    async def scenario() -> None:
        await _register(service, 1)
        await service.apply_workout(GUILD, 1, "squat", 20)
        before = record.read_bytes()

        for reps in (0, -3, 1001, 12.5):
            with pytest.raises(ValidationError):
                await service.apply_workout(GUILD, 1, "squat", reps)
        with pytest.raises(ValidationError):
            await service.apply_workout(GUILD, 1, "yoga", 10)
        with pytest.raises(NotFoundError):
            await service.apply_workout(GUILD, 2, "squat", 10)

        assert record.read_bytes() == before

    asyncio.run(scenario())


def test_register_is_get_or_create(tmp_path: Path) -> None:
    service, _ = _service(tmp_path)

    async def scenario() -> None:
        first = await service.register_user(GUILD, 5, "Sam")
        await service.apply_workout(GUILD, 5, "run", 20)
        again = await service.register_user(GUILD, 5, "Sam")
        assert first.total_workouts == 0
        assert again.total_workouts == 1
        assert await service.get_user(GUILD, 6) is None

    asyncio.run(scenario())


def test_one_workout_reaches_every_tracker(tmp_path: Path) -> None:
    service, _ = _service(tmp_path)

    async def scenario() -> None:
        await _register(service, 1, 2)
        boss = await service.spawn_raid_boss(GUILD, "titan_squat", total_hp=1000)
        await service.refresh_quests(GUILD, 1)
        duel = await service.create_duel(GUILD, 1, 2, "squats_24h")
        await service.accept_duel(GUILD, 2, duel.duel_id)

        report = await service.apply_workout(GUILD, 1, "squat", 30)

        kinds = {event.kind for event in report.events}
        assert {
            ActivityType.WORKOUT,
            ActivityType.RAID_DAMAGE,
            ActivityType.ACHIEVEMENT_UNLOCK,
            ActivityType.QUEST_COMPLETE,
        } <= kinds

        (stored_boss,) = await service.list_raid_bosses(GUILD)
        assert stored_boss.boss_id == boss.boss_id
        assert stored_boss.current_hp == 1000 - 99
        assert stored_boss.contributions == {1: 99}

        (stored_duel,) = await service.list_duels(GUILD, 1)
        assert stored_duel.scores == {1: 30, 2: 0}

        ledger = await service.list_achievements(GUILD, 1)
        assert ledger.is_unlocked("first_workout")

        quests = {quest.template_id: quest for quest in await service.list_quests(GUILD, 1)}
        assert quests["first_steps"].completed

        feed = await service.activity_feed(GUILD)
        assert {entry.kind for entry in feed} >= {ActivityType.WORKOUT, ActivityType.RAID_DAMAGE}
        assert any("athlete1" in entry.action for entry in feed)

    asyncio.run(scenario())


def test_quest_rewards_are_claimed_once(tmp_path: Path) -> None:
    service, _ = _service(tmp_path)

    async def scenario() -> None:
        await _register(service, 1)
        await service.refresh_quests(GUILD, 1)
        await service.apply_workout(GUILD, 1, "squat", 30)

        claim = await service.claim_quest_reward(GUILD, 1, "1-first_steps")
        assert claim.xp == 100
        assert claim.item_key == "training_shoes"
        assert claim.levels_gained == 1

        with pytest.raises(ConflictError):
            await service.claim_quest_reward(GUILD, 1, "1-first_steps")
        with pytest.raises(NotFoundError):
            await service.claim_quest_reward(GUILD, 1, "missing")

        user = await service.get_user(GUILD, 1)
        assert user is not None
        assert (user.level, user.xp) == (2, 63)
        assert "training_shoes" in user.inventory

    asyncio.run(scenario())


def test_duel_lifecycle(tmp_path: Path) -> None:
    service, clock = _service(tmp_path)

    async def scenario() -> None:
        await _register(service, 1, 2)
        duel = await service.create_duel(GUILD, 1, 2, "pushups_1h")

        with pytest.raises(ConflictError):
            await service.create_duel(GUILD, 2, 1, "squats_24h")
        with pytest.raises(PermissionDeniedError):
            await service.accept_duel(GUILD, 1, duel.duel_id)

        await service.accept_duel(GUILD, 2, duel.duel_id)
        await service.apply_workout(GUILD, 2, "pushup", 10)
        await service.apply_workout(GUILD, 1, "squat", 50)

        clock[0] += 2 * HOUR
        (settled,) = await service.list_duels(GUILD, 1)
        assert settled.status is DuelStatus.COMPLETED
        assert settled.winner_id == 2

        with pytest.raises(AlreadyResolvedError):
            await service.decline_duel(GUILD, 1, duel.duel_id)

        unlocked = await service.check_achievements(GUILD, 2)
        assert "first_duel" in [event.data["achievement"] for event in unlocked]
        feed = await service.activity_feed(GUILD, limit=100)
        assert ActivityType.DUEL_WIN in {entry.kind for entry in feed}

    asyncio.run(scenario())


def test_pending_duels_expire_lazily(tmp_path: Path) -> None:
    service, clock = _service(tmp_path)

    async def scenario() -> None:
        await _register(service, 1, 2)
        duel = await service.create_duel(GUILD, 1, 2, "squats_24h")

        clock[0] += 25 * HOUR
        (expired,) = await service.list_duels(GUILD, 2)
        assert expired.status is DuelStatus.EXPIRED

        with pytest.raises(AlreadyResolvedError):
            await service.accept_duel(GUILD, 2, duel.duel_id)

        # an expired duel no longer blocks a rematch
        rematch = await service.create_duel(GUILD, 1, 2, "squats_24h")
        assert rematch.duel_id != duel.duel_id

    asyncio.run(scenario())


def test_last_party_slot_goes_to_one_joiner(tmp_path: Path) -> None:
    service, _ = _service(tmp_path, party_max_members=2)

    async def scenario() -> None:
        await _register(service, 1, 2, 3)
        party = await service.create_party(GUILD, 1, "Sprinters")

        results = await asyncio.gather(
            service.join_party(GUILD, 2, party.invite_code.lower()),
            service.join_party(GUILD, 3, party.invite_code),
            return_exceptions=True,
        )

        assert sum(isinstance(result, Party) for result in results) == 1
        assert sum(isinstance(result, PartyFullError) for result in results) == 1
        stored = await service.get_party(GUILD, 1)
        assert len(stored.members) == 2

    asyncio.run(scenario())


def test_party_ownership_and_disband(tmp_path: Path) -> None:
    service, clock = _service(tmp_path)

    async def scenario() -> None:
        await _register(service, 1, 2, 3)
        party = await service.create_party(GUILD, 1, "Sprinters")
        clock[0] += 1
        await service.join_party(GUILD, 2, party.invite_code)
        clock[0] += 1
        await service.join_party(GUILD, 3, party.invite_code)

        with pytest.raises(PermissionDeniedError):
            await service.kick_member(GUILD, 2, 3)

        after = await service.leave_party(GUILD, 1)
        assert after.owner_id == 2
        successor = await service.get_user(GUILD, 2)
        assert successor is not None and successor.party_role is PartyRole.OWNER
        former = await service.get_user(GUILD, 1)
        assert former is not None and former.party_id is None

        renamed = await service.rename_party(GUILD, 2, "Night Runners")
        assert renamed.name == "Night Runners"
        code = await service.regenerate_invite_code(GUILD, 2)
        assert code != party.invite_code

        await service.kick_member(GUILD, 2, 3)
        disbanded = await service.leave_party(GUILD, 2)
        assert not disbanded.is_active

        with pytest.raises(NotFoundError):
            await service.join_party(GUILD, 1, code)
        with pytest.raises(ValidationError):
            await service.join_party(GUILD, 1, "nope")

    asyncio.run(scenario())


def test_concurrent_claims_have_one_winner(tmp_path: Path) -> None:
    service, _ = _service(tmp_path)

    async def scenario() -> None:
        await _register(service, 1, 2)
        await service.create_club(GUILD, 1, "Alpha Squad", "ALPHA")
        await service.create_club(GUILD, 2, "Bravo Squad", "BRAVO")
        gym = await service.upsert_location(
            GUILD, {"place_id": "osm-1", "name": "Iron Temple", "latitude": 1.0, "longitude": 2.0}
        )

        results = await asyncio.gather(
            service.claim_territory(GUILD, 1, gym.location_id),
            service.claim_territory(GUILD, 2, gym.location_id),
            return_exceptions=True,
        )

        assert sum(isinstance(result, AlreadyControlledError) for result in results) == 1
        [(location, _)] = await service.nearby_locations(GUILD, 1.0, 2.0)
        assert location.is_controlled
        assert location.control_strength == 10

    asyncio.run(scenario())


def test_successful_challenge_updates_everyone(tmp_path: Path) -> None:
    service, _ = _service(tmp_path)

    async def scenario() -> None:
        await _register(service, 1, 2)
        alpha = await service.create_club(GUILD, 1, "Alpha Squad", "ALPHA")
        bravo = await service.create_club(GUILD, 2, "Bravo Squad", "BRAVO")
        with pytest.raises(ConflictError):
            await service.create_club(GUILD, 1, "Copy", "BRAVO")

        gym = await service.upsert_location(
            GUILD, {"place_id": "osm-9", "name": "Lift Lab", "latitude": 10.0, "longitude": 10.0}
        )
        await service.claim_territory(GUILD, 1, gym.location_id)
        # level 6 attacks start at 60, well above a level 1 claim
        await service.apply_workout(GUILD, 2, "pushup", 1000)

        record = await service.challenge_territory(GUILD, 2, gym.location_id)

        assert record.attacker_won
        assert (tmp_path / "data" / "1" / "battles" / f"{record.battle_id}.toml").exists()
        displaced = await service.get_user(GUILD, 1)
        assert displaced is not None and displaced.defending_location_id is None
        attacker = await service.get_user(GUILD, 2)
        assert attacker is not None and attacker.defending_location_id == gym.location_id

        winner = await service.club_summary(GUILD, bravo.club_id)
        loser = await service.club_summary(GUILD, alpha.club_id)
        assert (winner.club.wins, winner.territories_controlled, winner.total_power) == (1, 1, 6)
        assert (loser.club.losses, loser.territories_controlled) == (1, 0)

        # the displaced defender is free to leave the club now
        await service.leave_club(GUILD, 1)
        with pytest.raises(ConflictError):
            await service.leave_club(GUILD, 2)
        await service.stop_defending(GUILD, 2)
        await service.leave_club(GUILD, 2)

    asyncio.run(scenario())


def test_upserting_a_place_twice_keeps_one_location(tmp_path: Path) -> None:
    service, _ = _service(tmp_path)

    async def scenario() -> None:
        place = {"place_id": "osm-2", "name": "Old Name", "latitude": 0.0, "longitude": 0.0}
        first = await service.upsert_location(GUILD, place)
        second = await service.upsert_location(GUILD, {**place, "name": "New Name"})
        assert first.location_id == second.location_id
        assert second.name == "New Name"
        assert len(await service.nearby_locations(GUILD, 0.0, 0.0)) == 1

        with pytest.raises(ValidationError):
            await service.upsert_location(GUILD, {"name": "No id"})

    asyncio.run(scenario())


def test_activity_feed_is_bounded(tmp_path: Path) -> None:
    service, clock = _service(tmp_path, activity_limit=5)

    async def scenario() -> None:
        await _register(service, 1)
        for _ in range(8):
            clock[0] += 1
            await service.apply_workout(GUILD, 1, "situp", 5)

        feed = await service.activity_feed(GUILD, limit=50)
        assert len(feed) == 5
        timestamps = [entry.timestamp for entry in feed]
        assert timestamps == sorted(timestamps, reverse=True)
        assert feed[0].timestamp == clock[0]

    asyncio.run(scenario())


def test_equipment_and_raid_reset_round_trip(tmp_path: Path) -> None:
    service, _ = _service(tmp_path)

    async def scenario() -> None:
        await _register(service, 1)
        user = await service.equip_item(GUILD, 1, "water_bottle")
        assert user.equipment == {"accessory": "water_bottle"}
        user = await service.unequip_item(GUILD, 1, "accessory")
        assert user.equipment == {}

        boss = await service.spawn_raid_boss(GUILD, "iron_golem", total_hp=50)
        await service.apply_workout(GUILD, 1, "pullup", 10)
        (hurt,) = await service.list_raid_bosses(GUILD)
        assert hurt.current_hp < 50

        reset = await service.reset_raid_boss(GUILD, boss.boss_id)
        assert reset.current_hp == 50
        assert reset.participants == []
        with pytest.raises(NotFoundError):
            await service.reset_raid_boss(GUILD, "unknown")

    asyncio.run(scenario())


def test_owner_leaves_even_if_another_member_record_is_gone(tmp_path: Path) -> None:
    service, clock = _service(tmp_path)

    async def scenario() -> None:
        await _register(service, 1, 2, 3)
        party = await service.create_party(GUILD, 1, "Sprinters")
        for user_id in (2, 3):
            clock[0] += 1
            await service.join_party(GUILD, user_id, party.invite_code)
        await service.store.delete(GUILD, "users", 3)

        after = await service.leave_party(GUILD, 1)

        assert after.owner_id == 2
        successor = await service.get_user(GUILD, 2)
        assert successor is not None and successor.party_role is PartyRole.OWNER

    asyncio.run(scenario())


def test_abandoned_club_frees_its_tag_and_territory(tmp_path: Path) -> None:
    service, _ = _service(tmp_path)

    async def scenario() -> None:
        await _register(service, 1, 2)
        iron = await service.create_club(GUILD, 1, "Iron Crew", "IRON")
        await service.join_club(GUILD, 2, iron.club_id)

        left = await service.leave_club(GUILD, 1)
        assert left.founder_id == 2
        summary = await service.club_summary(GUILD, iron.club_id)
        assert (summary.club.founder_id, summary.club.members) == (2, [2])

        gym = await service.upsert_location(
            GUILD, {"place_id": "osm-7", "name": "Barbell Barn", "latitude": 3.0, "longitude": 4.0}
        )
        await service.claim_territory(GUILD, 2, gym.location_id)
        await service.stop_defending(GUILD, 2)

        last = await service.leave_club(GUILD, 2)
        assert last.members == []
        with pytest.raises(NotFoundError):
            await service.club_summary(GUILD, iron.club_id)
        [(location, _)] = await service.nearby_locations(GUILD, 3.0, 4.0)
        assert not location.is_controlled
        assert location.control_strength == 0

        again = await service.create_club(GUILD, 1, "Iron Reborn", "IRON")
        assert again.tag == "IRON"

    asyncio.run(scenario())


def test_operations_require_a_guild(tmp_path: Path) -> None:
    service, _ = _service(tmp_path)

    async def scenario() -> None:
        for guild in (None, "", " "):
            with pytest.raises(ValidationError):
                await service.register_user(guild, 1, "u1")
        with pytest.raises(ValidationError):
            await service.leaderboard(None)
        assert await service.get_user(GUILD, 1) is None

    asyncio.run(scenario())


def test_leaderboards_rank_the_guild(tmp_path: Path) -> None:
    service, _ = _service(tmp_path)

    async def scenario() -> None:
        await _register(service, 1, 2, 3)
        await service.apply_workout(GUILD, 1, "pushup", 1000)
        await service.apply_workout(GUILD, 2, "squat", 20)

        overall = await service.leaderboard(GUILD)
        assert [standing.subject_id for standing in overall] == ["1", "2", "3"]
        assert (overall[0].rank, overall[0].value, overall[0].name) == (1, 6, "athlete1")

        reps = await service.leaderboard(GUILD, "reps", limit=2)
        assert [(standing.subject_id, standing.value) for standing in reps] == [
            ("1", 1000),
            ("2", 20),
        ]
        mine = await service.leaderboard_rank(GUILD, 3, "reps")
        assert (mine.rank, mine.value) == (3, 0)

        with pytest.raises(ValidationError):
            await service.leaderboard(GUILD, "charisma")
        with pytest.raises(ValidationError):
            await service.leaderboard(GUILD, limit=0)
        with pytest.raises(NotFoundError):
            await service.leaderboard_rank(GUILD, 99)

        alpha = await service.create_club(GUILD, 1, "Alpha Squad", "ALPHA")
        [club] = await service.leaderboard(GUILD, "clubs")
        assert (club.subject_id, club.value) == (alpha.club_id, 6)
        with pytest.raises(NotFoundError):
            await service.leaderboard_rank(GUILD, 2, "clubs")

    asyncio.run(scenario())
