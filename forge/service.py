"""Transactional game operations on top of :class:`~forge.storage.DataStore`.

Each public coroutine opens exactly one store transaction, loads the
records it needs, runs the pure rules from the ledger, trackers, party and
territory modules, and stages the results.  If any rule raises, nothing
is written.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, AsyncContextManager, Callable, Dict, List, Mapping, Optional

from . import game, leaderboard as rankings, party as parties, territory, trackers
from .activity import ActivityRecorder
from .config import ForgeConfig
from .errors import ConflictError, NotFoundError, ValidationError
from .game import AggregateStats, GameEvent, WorkoutResult
from .leaderboard import LeaderboardMetric, Standing
from .models import (
    AchievementLedger,
    ActivityEntry,
    ActivityType,
    BattleRecord,
    Club,
    Duel,
    DuelStatus,
    GymLocation,
    Party,
    Quest,
    RaidBoss,
    UserProgress,
)
from .storage import DataStore, StoreTransaction

log = logging.getLogger(__name__)

ACTIVITY_FEED_KEY = "global"


@dataclass(slots=True)
class WorkoutReport:
    result: WorkoutResult
    user: UserProgress
    events: List[GameEvent] = field(default_factory=list)

    def events_of(self, kind: ActivityType) -> List[GameEvent]:
        return [event for event in self.events if event.kind is kind]


@dataclass(slots=True)
class QuestClaim:
    quest: Quest
    xp: int
    levels_gained: int
    item_key: Optional[str]


@dataclass(slots=True)
class ClubSummary:
    club: Club
    total_power: int
    territories_controlled: int


class GameService:
    """Entry point used by front-ends; holds no game state of its own."""

    def __init__(
        self,
        store: DataStore,
        config: ForgeConfig | None = None,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.config = config or ForgeConfig()
        self._rng = rng or random.Random()
        self._clock = clock

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _transaction(self, guild_id: int | str) -> AsyncContextManager[StoreTransaction]:
        if guild_id is None or isinstance(guild_id, bool) or str(guild_id).strip() == "":
            raise ValidationError("A guild id is required.")
        return self.store.transaction(guild_id)

    def _new_id(self) -> str:
        return f"{self._rng.getrandbits(48):012x}"

    def _today(self, now: float) -> date:
        return datetime.fromtimestamp(now, tz=timezone.utc).date()

    @staticmethod
    def _load_user(txn: StoreTransaction, user_id: int) -> UserProgress:
        payload = txn.get("users", user_id)
        if payload is None:
            raise NotFoundError(f"User {user_id} has not registered yet.")
        return UserProgress.from_dict(payload)

    @staticmethod
    def _save(txn: StoreTransaction, collection: str, key: Any, record: Any) -> None:
        txn.set(collection, key, record.to_dict())

    @staticmethod
    def _load(txn: StoreTransaction, collection: str, key: str, model: Any, label: str) -> Any:
        payload = txn.get(collection, key)
        if payload is None:
            raise NotFoundError(f"Unknown {label}: {key}.")
        return model.from_dict(payload)

    @staticmethod
    def _all(txn: StoreTransaction, collection: str, model: Any) -> List[Any]:
        return [model.from_dict(payload) for payload in txn.all(collection).values()]

    def _quests_for(self, txn: StoreTransaction, user_id: int) -> List[Quest]:
        return [quest for quest in self._all(txn, "quests", Quest) if quest.user_id == user_id]

    def _duels_for(self, txn: StoreTransaction, user_id: int) -> List[Duel]:
        return [duel for duel in self._all(txn, "duels", Duel) if duel.involves(user_id)]

    def _duel_wins(self, txn: StoreTransaction, user_id: int) -> int:
        return sum(
            1
            for duel in self._all(txn, "duels", Duel)
            if duel.status is DuelStatus.COMPLETED and duel.winner_id == user_id
        )

    def _achievements(self, txn: StoreTransaction, user_id: int) -> AchievementLedger:
        payload = txn.get("achievements", user_id)
        if payload is None:
            return AchievementLedger(user_id=user_id)
        return AchievementLedger.from_dict(payload)

    def _record_activity(
        self, txn: StoreTransaction, events: List[GameEvent], now: float
    ) -> List[ActivityEntry]:
        if not events:
            return []
        recorder = ActivityRecorder.from_record(
            txn.get("activity", ACTIVITY_FEED_KEY),
            id_factory=self._new_id,
            limit=self.config.activity_limit,
        )
        usernames: Dict[int, str] = {}
        for user_id in {event.user_id for event in events}:
            payload = txn.get("users", user_id)
            if payload is not None:
                usernames[user_id] = str(payload.get("username", ""))
        added = recorder.record(events, now=now, usernames=usernames)
        txn.set("activity", ACTIVITY_FEED_KEY, recorder.to_record())
        return added

    @staticmethod
    def _code_in_use(txn: StoreTransaction) -> Callable[[str], bool]:
        codes = {
            payload.get("invite_code")
            for payload in txn.all("parties").values()
            if payload.get("is_active", True)
        }
        return codes.__contains__

    def _party_of(self, txn: StoreTransaction, user: UserProgress) -> Party:
        if user.party_id is None:
            raise NotFoundError("You are not in a party.")
        return self._load(txn, "parties", user.party_id, Party, "party")

    # ------------------------------------------------------------------
    # users and workouts
    # ------------------------------------------------------------------

    async def register_user(
        self, guild_id: int | str, user_id: int, username: str = ""
    ) -> UserProgress:
        """Create a progress record, or return the existing one."""

        async with self._transaction(guild_id) as txn:
            payload = txn.get("users", user_id)
            if payload is not None:
                user = UserProgress.from_dict(payload)
                if username and user.username != username:
                    user.username = username
                    self._save(txn, "users", user.user_id, user)
                return user
            user = game.new_user(user_id, username, now=self._clock())
            self._save(txn, "users", user.user_id, user)
            log.info("Registered user %s (%s)", user_id, username)
            return user

    async def get_user(self, guild_id: int | str, user_id: int) -> Optional[UserProgress]:
        async with self._transaction(guild_id) as txn:
            payload = txn.get("users", user_id)
            return UserProgress.from_dict(payload) if payload is not None else None

    async def apply_workout(
        self, guild_id: int | str, user_id: int, exercise: str, reps: Any
    ) -> WorkoutReport:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            user = self._load_user(txn, user_id)
            previous_streak = user.workout_streak
            result = game.apply_workout(
                user, exercise, reps, today=self._today(now), max_reps=self.config.max_reps
            )
            stats = AggregateStats.from_user(user, duel_wins=self._duel_wins(txn, user_id))

            quest_tracker = trackers.QuestTracker(self._quests_for(txn, user_id), now=now)
            achievement_tracker = trackers.AchievementTracker(
                self._achievements(txn, user_id), now=now
            )
            duel_tracker = trackers.DuelTracker(self._duels_for(txn, user_id), now=now)
            raid_tracker = trackers.RaidTracker(self._all(txn, "raids", RaidBoss), now=now)

            events = game.workout_events(user, result, previous_streak=previous_streak)
            for tracker in (quest_tracker, achievement_tracker, duel_tracker, raid_tracker):
                events.extend(tracker.on_workout(user.user_id, result.exercise, result.reps, stats))

            self._save(txn, "users", user.user_id, user)
            for quest in quest_tracker.changed:
                self._save(txn, "quests", quest.quest_id, quest)
            for ledger in achievement_tracker.changed:
                self._save(txn, "achievements", ledger.user_id, ledger)
            for duel in duel_tracker.changed:
                self._save(txn, "duels", duel.duel_id, duel)
            for boss in raid_tracker.changed:
                self._save(txn, "raids", boss.boss_id, boss)
            self._record_activity(txn, events, now)

            log.info(
                "User %s logged %s %s for %s XP (level %s)",
                user_id,
                result.reps,
                result.exercise,
                result.xp_gained,
                result.new_level,
            )
            return WorkoutReport(result=result, user=user, events=events)

    async def equip_item(
        self, guild_id: int | str, user_id: int, item_key: str
    ) -> UserProgress:
        async with self._transaction(guild_id) as txn:
            user = self._load_user(txn, user_id)
            game.equip_item(user, item_key)
            self._save(txn, "users", user.user_id, user)
            return user

    async def unequip_item(
        self, guild_id: int | str, user_id: int, slot: str
    ) -> UserProgress:
        async with self._transaction(guild_id) as txn:
            user = self._load_user(txn, user_id)
            game.unequip_item(user, slot)
            self._save(txn, "users", user.user_id, user)
            return user

    # ------------------------------------------------------------------
    # quests and achievements
    # ------------------------------------------------------------------

    async def refresh_quests(self, guild_id: int | str, user_id: int) -> List[Quest]:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            user = self._load_user(txn, user_id)
            existing = self._quests_for(txn, user_id)
            created, expired = trackers.refresh_quests(user, existing, now=now, rng=self._rng)
            for quest in expired:
                txn.delete("quests", quest.quest_id)
            for quest in created:
                self._save(txn, "quests", quest.quest_id, quest)
            live = [quest for quest in existing if quest not in expired] + created
            return sorted(live, key=lambda quest: (quest.kind.value, quest.quest_id))

    async def list_quests(self, guild_id: int | str, user_id: int) -> List[Quest]:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            self._load_user(txn, user_id)
            quests = [quest for quest in self._quests_for(txn, user_id) if not quest.is_expired(now)]
            return sorted(quests, key=lambda quest: (quest.kind.value, quest.quest_id))

    async def claim_quest_reward(
        self, guild_id: int | str, user_id: int, quest_id: str
    ) -> QuestClaim:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            user = self._load_user(txn, user_id)
            quest = self._load(txn, "quests", quest_id, Quest, "quest")
            xp, levels, item_key = trackers.claim_quest_reward(user, quest, now=now)
            self._save(txn, "quests", quest.quest_id, quest)
            self._save(txn, "users", user.user_id, user)
            events = [
                GameEvent(ActivityType.QUEST_CLAIM, user_id, {"title": quest.title, "xp": xp})
            ]
            if levels:
                events.append(GameEvent(ActivityType.LEVEL_UP, user_id, {"level": user.level}))
            self._record_activity(txn, events, now)
            return QuestClaim(quest=quest, xp=xp, levels_gained=levels, item_key=item_key)

    async def check_achievements(
        self, guild_id: int | str, user_id: int
    ) -> List[GameEvent]:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            user = self._load_user(txn, user_id)
            tracker = trackers.AchievementTracker(self._achievements(txn, user_id), now=now)
            events = tracker.evaluate(
                AggregateStats.from_user(user, duel_wins=self._duel_wins(txn, user_id))
            )
            for ledger in tracker.changed:
                self._save(txn, "achievements", ledger.user_id, ledger)
            self._record_activity(txn, events, now)
            return events

    async def list_achievements(
        self, guild_id: int | str, user_id: int
    ) -> AchievementLedger:
        async with self._transaction(guild_id) as txn:
            self._load_user(txn, user_id)
            return self._achievements(txn, user_id)

    # ------------------------------------------------------------------
    # duels
    # ------------------------------------------------------------------

    def _settle_duels(self, txn: StoreTransaction, duels: List[Duel], now: float) -> List[GameEvent]:
        events: List[GameEvent] = []
        for duel in duels:
            before = duel.status
            events.extend(
                trackers.expire_duel(duel, now=now, pending_ttl=self.config.duel_pending_seconds)
            )
            if duel.status is not before:
                self._save(txn, "duels", duel.duel_id, duel)
        return events

    async def create_duel(
        self,
        guild_id: int | str,
        challenger_id: int,
        opponent_id: int,
        challenge_type: str,
    ) -> Duel:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            self._load_user(txn, challenger_id)
            self._load_user(txn, opponent_id)
            duels = self._duels_for(txn, challenger_id)
            self._record_activity(txn, self._settle_duels(txn, duels, now), now)
            for duel in duels:
                if duel.involves(opponent_id) and not duel.status.is_terminal:
                    raise ConflictError("You already have an open duel with that user.")
            duel = trackers.create_duel(
                challenger_id, opponent_id, challenge_type, duel_id=self._new_id(), now=now
            )
            self._save(txn, "duels", duel.duel_id, duel)
            log.info("User %s challenged %s to %s", challenger_id, opponent_id, challenge_type)
            return duel

    async def accept_duel(self, guild_id: int | str, user_id: int, duel_id: str) -> Duel:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            duel = self._load(txn, "duels", duel_id, Duel, "duel")
            events = trackers.accept_duel(
                duel, user_id, now=now, pending_ttl=self.config.duel_pending_seconds
            )
            self._save(txn, "duels", duel.duel_id, duel)
            self._record_activity(txn, events, now)
            log.info("User %s accepted duel %s", user_id, duel_id)
            return duel

    async def decline_duel(self, guild_id: int | str, user_id: int, duel_id: str) -> Duel:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            duel = self._load(txn, "duels", duel_id, Duel, "duel")
            trackers.decline_duel(duel, user_id, now=now, pending_ttl=self.config.duel_pending_seconds)
            self._save(txn, "duels", duel.duel_id, duel)
            log.info("User %s declined duel %s", user_id, duel_id)
            return duel

    async def list_duels(self, guild_id: int | str, user_id: int) -> List[Duel]:
        """Return the user's duels, settling any that are past due."""

        async with self._transaction(guild_id) as txn:
            now = self._clock()
            duels = self._duels_for(txn, user_id)
            self._record_activity(txn, self._settle_duels(txn, duels, now), now)
            return sorted(duels, key=lambda duel: duel.created_at, reverse=True)

    # ------------------------------------------------------------------
    # parties
    # ------------------------------------------------------------------

    async def create_party(self, guild_id: int | str, user_id: int, name: str) -> Party:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            user = self._load_user(txn, user_id)
            party = parties.create_party(
                user,
                name,
                party_id=self._new_id(),
                code_in_use=self._code_in_use(txn),
                rng=self._rng,
                now=now,
                max_members=self.config.party_max_members,
                attempts=self.config.invite_code_attempts,
            )
            self._save(txn, "parties", party.party_id, party)
            self._save(txn, "users", user.user_id, user)
            self._record_activity(
                txn, [GameEvent(ActivityType.PARTY_CREATE, user_id, {"party": party.name})], now
            )
            return party

    async def join_party(
        self, guild_id: int | str, user_id: int, invite_code: str
    ) -> Party:
        code = parties.normalize_invite_code(invite_code)
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            user = self._load_user(txn, user_id)
            party = next(
                (
                    candidate
                    for candidate in self._all(txn, "parties", Party)
                    if candidate.is_active and candidate.invite_code == code
                ),
                None,
            )
            if party is None:
                raise NotFoundError(f"No active party uses the invite code {code}.")
            parties.join_party(user, party, now=now)
            self._save(txn, "parties", party.party_id, party)
            self._save(txn, "users", user.user_id, user)
            self._record_activity(
                txn, [GameEvent(ActivityType.PARTY_JOIN, user_id, {"party": party.name})], now
            )
            return party

    async def get_party(self, guild_id: int | str, user_id: int) -> Party:
        async with self._transaction(guild_id) as txn:
            return self._party_of(txn, self._load_user(txn, user_id))

    async def leave_party(self, guild_id: int | str, user_id: int) -> Party:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            user = self._load_user(txn, user_id)
            party = self._party_of(txn, user)
            next_owner_id = parties.successor_id(party, user_id)
            members = {}
            if next_owner_id is not None:
                members[next_owner_id] = self._load_user(txn, next_owner_id)
            successor = parties.leave_party(user, party, members, now=now)
            self._save(txn, "parties", party.party_id, party)
            self._save(txn, "users", user.user_id, user)
            if successor is not None:
                self._save(txn, "users", successor.user_id, successor)
            return party

    async def kick_member(
        self, guild_id: int | str, owner_id: int, target_id: int
    ) -> Party:
        async with self._transaction(guild_id) as txn:
            owner = self._load_user(txn, owner_id)
            target = self._load_user(txn, target_id)
            party = self._party_of(txn, owner)
            parties.kick_member(owner, target, party)
            self._save(txn, "parties", party.party_id, party)
            self._save(txn, "users", target.user_id, target)
            return party

    async def regenerate_invite_code(self, guild_id: int | str, owner_id: int) -> str:
        async with self._transaction(guild_id) as txn:
            owner = self._load_user(txn, owner_id)
            party = self._party_of(txn, owner)
            code = parties.regenerate_invite_code(
                owner,
                party,
                code_in_use=self._code_in_use(txn),
                rng=self._rng,
                attempts=self.config.invite_code_attempts,
            )
            self._save(txn, "parties", party.party_id, party)
            return code

    async def rename_party(
        self, guild_id: int | str, owner_id: int, name: str
    ) -> Party:
        async with self._transaction(guild_id) as txn:
            owner = self._load_user(txn, owner_id)
            party = self._party_of(txn, owner)
            parties.rename_party(owner, party, name)
            self._save(txn, "parties", party.party_id, party)
            return party

    # ------------------------------------------------------------------
    # clubs and territory
    # ------------------------------------------------------------------

    async def create_club(
        self, guild_id: int | str, user_id: int, name: str, tag: str
    ) -> Club:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            user = self._load_user(txn, user_id)
            tags = {str(payload.get("tag", "")).upper() for payload in txn.all("clubs").values()}
            club = territory.create_club(
                user,
                name,
                tag,
                club_id=self._new_id(),
                tag_in_use=str(tag or "").strip().upper() in tags,
                now=now,
            )
            self._save(txn, "clubs", club.club_id, club)
            self._save(txn, "users", user.user_id, user)
            self._record_activity(
                txn, [GameEvent(ActivityType.CLUB_CREATE, user_id, {"club": club.name})], now
            )
            return club

    async def join_club(self, guild_id: int | str, user_id: int, club_id: str) -> Club:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            user = self._load_user(txn, user_id)
            club = self._load(txn, "clubs", club_id, Club, "club")
            territory.join_club(user, club)
            self._save(txn, "clubs", club.club_id, club)
            self._save(txn, "users", user.user_id, user)
            self._record_activity(
                txn, [GameEvent(ActivityType.CLUB_JOIN, user_id, {"club": club.name})], now
            )
            return club

    async def leave_club(self, guild_id: int | str, user_id: int) -> Club:
        async with self._transaction(guild_id) as txn:
            user = self._load_user(txn, user_id)
            if user.club_id is None:
                raise NotFoundError("You are not in a club.")
            club = self._load(txn, "clubs", user.club_id, Club, "club")
            disbanded = territory.leave_club(user, club)
            self._save(txn, "users", user.user_id, user)
            if not disbanded:
                self._save(txn, "clubs", club.club_id, club)
                return club
            txn.delete("clubs", club.club_id)
            for location in self._all(txn, "locations", GymLocation):
                if location.controlling_club_id == club.club_id:
                    territory.release_location(location)
                    self._save(txn, "locations", location.location_id, location)
            log.info("Club %s [%s] disbanded", club.club_id, club.tag)
            return club

    async def club_summary(self, guild_id: int | str, club_id: str) -> ClubSummary:
        async with self._transaction(guild_id) as txn:
            club = self._load(txn, "clubs", club_id, Club, "club")
            users = {}
            for member_id in club.members:
                payload = txn.get("users", member_id)
                if payload is not None:
                    users[member_id] = UserProgress.from_dict(payload)
            return ClubSummary(
                club=club,
                total_power=territory.club_power(club, users),
                territories_controlled=territory.club_territory_count(
                    club.club_id, self._all(txn, "locations", GymLocation)
                ),
            )

    async def upsert_location(
        self, guild_id: int | str, place: Mapping[str, Any]
    ) -> GymLocation:
        """Store a gym from external place data keyed by its ``place_id``."""

        try:
            place_id = str(place["place_id"])
            latitude = float(place["latitude"])
            longitude = float(place["longitude"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError("Place data needs place_id, latitude and longitude.") from exc
        async with self._transaction(guild_id) as txn:
            existing = next(
                (
                    location
                    for location in self._all(txn, "locations", GymLocation)
                    if location.place_id == place_id
                ),
                None,
            )
            location = territory.upsert_location(
                existing,
                location_id=existing.location_id if existing else self._new_id(),
                place_id=place_id,
                name=str(place.get("name", "")),
                latitude=latitude,
                longitude=longitude,
                address=str(place.get("address", "")),
                now=self._clock(),
            )
            self._save(txn, "locations", location.location_id, location)
            return location

    async def nearby_locations(
        self,
        guild_id: int | str,
        latitude: float,
        longitude: float,
        radius_km: float = 5.0,
    ) -> List[tuple[GymLocation, float]]:
        async with self._transaction(guild_id) as txn:
            return territory.nearby_locations(
                self._all(txn, "locations", GymLocation), latitude, longitude, radius_km=radius_km
            )

    async def claim_territory(
        self, guild_id: int | str, user_id: int, location_id: str
    ) -> GymLocation:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            user = self._load_user(txn, user_id)
            location = self._load(txn, "locations", location_id, GymLocation, "location")
            events = territory.claim(user, location, now=now)
            self._save(txn, "locations", location.location_id, location)
            self._save(txn, "users", user.user_id, user)
            self._record_activity(txn, events, now)
            return location

    async def challenge_territory(
        self, guild_id: int | str, user_id: int, location_id: str
    ) -> BattleRecord:
        async with self._transaction(guild_id) as txn:
            now = self._clock()
            attacker = self._load_user(txn, user_id)
            location = self._load(txn, "locations", location_id, GymLocation, "location")
            attacker_club = (
                self._load(txn, "clubs", attacker.club_id, Club, "club")
                if attacker.club_id
                else None
            )
            defender_club = None
            if location.controlling_club_id is not None:
                payload = txn.get("clubs", location.controlling_club_id)
                defender_club = Club.from_dict(payload) if payload is not None else None

            outcome = territory.challenge(
                attacker,
                location,
                battle_id=self._new_id(),
                rng=self._rng,
                now=now,
                attacker_club=attacker_club,
                defender_club=defender_club,
            )
            for displaced_id in outcome.displaced:
                payload = txn.get("users", displaced_id)
                if payload is None:
                    continue
                displaced = UserProgress.from_dict(payload)
                if displaced.defending_location_id == location.location_id:
                    displaced.defending_location_id = None
                    self._save(txn, "users", displaced.user_id, displaced)

            self._save(txn, "locations", location.location_id, location)
            self._save(txn, "users", attacker.user_id, attacker)
            self._save(txn, "battles", outcome.record.battle_id, outcome.record)
            for club in (attacker_club, defender_club):
                if club is not None:
                    self._save(txn, "clubs", club.club_id, club)
            self._record_activity(txn, outcome.events, now)
            return outcome.record

    async def defend_territory(
        self, guild_id: int | str, user_id: int, location_id: str
    ) -> GymLocation:
        async with self._transaction(guild_id) as txn:
            user = self._load_user(txn, user_id)
            location = self._load(txn, "locations", location_id, GymLocation, "location")
            territory.defend(user, location)
            self._save(txn, "locations", location.location_id, location)
            self._save(txn, "users", user.user_id, user)
            return location

    async def stop_defending(self, guild_id: int | str, user_id: int) -> GymLocation:
        async with self._transaction(guild_id) as txn:
            user = self._load_user(txn, user_id)
            if user.defending_location_id is None:
                raise NotFoundError("You are not defending any location.")
            location = self._load(
                txn, "locations", user.defending_location_id, GymLocation, "location"
            )
            territory.stop_defending(user, location)
            self._save(txn, "locations", location.location_id, location)
            self._save(txn, "users", user.user_id, user)
            return location

    # ------------------------------------------------------------------
    # raids and activity
    # ------------------------------------------------------------------

    async def spawn_raid_boss(
        self,
        guild_id: int | str,
        template_key: str = "titan_squat",
        *,
        total_hp: int | None = None,
    ) -> RaidBoss:
        async with self._transaction(guild_id) as txn:
            boss = trackers.spawn_raid_boss(
                template_key, boss_id=self._new_id(), now=self._clock(), total_hp=total_hp
            )
            self._save(txn, "raids", boss.boss_id, boss)
            return boss

    async def reset_raid_boss(self, guild_id: int | str, boss_id: str) -> RaidBoss:
        async with self._transaction(guild_id) as txn:
            boss = self._load(txn, "raids", boss_id, RaidBoss, "raid boss")
            trackers.reset_raid_boss(boss, now=self._clock())
            self._save(txn, "raids", boss.boss_id, boss)
            log.info("Raid boss %s reset to %s HP", boss_id, boss.total_hp)
            return boss

    async def list_raid_bosses(self, guild_id: int | str) -> List[RaidBoss]:
        async with self._transaction(guild_id) as txn:
            return sorted(self._all(txn, "raids", RaidBoss), key=lambda boss: boss.spawned_at)

    # ------------------------------------------------------------------
    # leaderboards
    # ------------------------------------------------------------------

    def _standings(self, txn: StoreTransaction, metric: LeaderboardMetric) -> List[Standing]:
        users = self._all(txn, "users", UserProgress)
        if metric is LeaderboardMetric.CLUBS:
            return rankings.club_standings(
                self._all(txn, "clubs", Club),
                {user.user_id: user for user in users},
                self._all(txn, "locations", GymLocation),
            )
        return rankings.user_standings(
            users,
            metric,
            raid_damage=rankings.raid_damage_totals(self._all(txn, "raids", RaidBoss)),
            duel_wins=rankings.duel_win_totals(self._all(txn, "duels", Duel)),
        )

    async def leaderboard(
        self,
        guild_id: int | str,
        metric: str = "overall",
        limit: int = rankings.DEFAULT_LEADERBOARD_SIZE,
    ) -> List[Standing]:
        board = LeaderboardMetric.from_value(metric)
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("Leaderboard size must be a positive whole number.")
        async with self._transaction(guild_id) as txn:
            return self._standings(txn, board)[: min(limit, rankings.MAX_LEADERBOARD_SIZE)]

    async def leaderboard_rank(
        self, guild_id: int | str, user_id: int, metric: str = "overall"
    ) -> Standing:
        """Where the user (or, for club rankings, the user's club) stands."""

        board = LeaderboardMetric.from_value(metric)
        async with self._transaction(guild_id) as txn:
            user = self._load_user(txn, user_id)
            subject: int | str = user.user_id
            if board is LeaderboardMetric.CLUBS:
                if user.club_id is None:
                    raise NotFoundError("You are not in a club.")
                subject = user.club_id
            standing = rankings.find_standing(self._standings(txn, board), subject)
            if standing is None:
                raise NotFoundError("No ranking recorded yet.")
            return standing

    async def activity_feed(
        self, guild_id: int | str, limit: int = 20
    ) -> List[ActivityEntry]:
        async with self._transaction(guild_id) as txn:
            recorder = ActivityRecorder.from_record(
                txn.get("activity", ACTIVITY_FEED_KEY),
                id_factory=self._new_id,
                limit=self.config.activity_limit,
            )
            return recorder.feed(limit)


__all__ = ["ClubSummary", "GameService", "QuestClaim", "WorkoutReport"]
