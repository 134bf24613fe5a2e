"""Domain models for the progression core."""

from ._validation import ModelValidationError
from .activity import ActivityEntry, ActivityType
from .players import Party, PartyMember, PartyRole, UserProgress
from .progression import (
    DEFAULT_BASE_STAT,
    ITEM_CATALOG,
    LEVEL_UP_STAT_BONUS,
    STARTER_INVENTORY,
    STAT_NAMES,
    EquipmentItem,
    EquipmentSlot,
    ItemRarity,
)
from .territory import MAX_DEFENDERS, BattleRecord, Club, Defender, GymLocation
from .world import (
    ACHIEVEMENTS,
    DUEL_CHALLENGES,
    QUEST_TEMPLATE_INDEX,
    QUEST_TEMPLATES,
    RAID_BOSS_TEMPLATES,
    Achievement,
    AchievementLedger,
    Duel,
    DuelChallenge,
    DuelStatus,
    Quest,
    QuestKind,
    QuestMetric,
    QuestTemplate,
    RaidBoss,
    RaidBossTemplate,
)

__all__ = [
    "ACHIEVEMENTS",
    "Achievement",
    "AchievementLedger",
    "ActivityEntry",
    "ActivityType",
    "BattleRecord",
    "Club",
    "DEFAULT_BASE_STAT",
    "DUEL_CHALLENGES",
    "Defender",
    "Duel",
    "DuelChallenge",
    "DuelStatus",
    "EquipmentItem",
    "EquipmentSlot",
    "GymLocation",
    "ITEM_CATALOG",
    "ItemRarity",
    "LEVEL_UP_STAT_BONUS",
    "MAX_DEFENDERS",
    "ModelValidationError",
    "Party",
    "PartyMember",
    "PartyRole",
    "QUEST_TEMPLATES",
    "QUEST_TEMPLATE_INDEX",
    "Quest",
    "QuestKind",
    "QuestMetric",
    "QuestTemplate",
    "RAID_BOSS_TEMPLATES",
    "RaidBoss",
    "RaidBossTemplate",
    "STARTER_INVENTORY",
    "STAT_NAMES",
    "UserProgress",
]
