"""Progression-related enumerations and the equipment catalog."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Tuple

STAT_NAMES: Tuple[str, ...] = ("strength", "endurance", "agility")

DEFAULT_BASE_STAT = 10

# Added to the base stats once for every level gained.
LEVEL_UP_STAT_BONUS: Mapping[str, int] = MappingProxyType(
    {"strength": 2, "endurance": 2, "agility": 1}
)


class EquipmentSlot(str, Enum):
    """Equipment positions available to an athlete."""

    WEAPON = "weapon"
    ARMOR = "armor"
    ACCESSORY = "accessory"

    @classmethod
    def from_value(
        cls, value: "EquipmentSlot | str | None", *, default: "EquipmentSlot | None" = None
    ) -> "EquipmentSlot":
        if isinstance(value, cls):
            return value
        if value is None:
            if default is not None:
                return default
            raise ValueError("Equipment slot cannot be None")
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        if default is not None:
            return default
        raise ValueError(f"Unknown equipment slot: {value}")


class ItemRarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    LEGENDARY = "legendary"


@dataclass(frozen=True, slots=True)
class EquipmentItem:
    key: str
    name: str
    slot: EquipmentSlot
    rarity: ItemRarity = ItemRarity.COMMON
    stats: Mapping[str, int] = field(default_factory=dict)


def _item(
    key: str, name: str, slot: EquipmentSlot, rarity: ItemRarity, **stats: int
) -> EquipmentItem:
    return EquipmentItem(key=key, name=name, slot=slot, rarity=rarity, stats=dict(stats))


_ITEMS: Dict[str, EquipmentItem] = {
    item.key: item
    for item in (
        _item("basic_gloves", "Basic Gloves", EquipmentSlot.ACCESSORY, ItemRarity.COMMON, strength=1),
        _item("water_bottle", "Water Bottle", EquipmentSlot.ACCESSORY, ItemRarity.COMMON, endurance=1),
        _item("training_shoes", "Training Shoes", EquipmentSlot.ACCESSORY, ItemRarity.COMMON, agility=2),
        _item("running_gear", "Running Gear", EquipmentSlot.ARMOR, ItemRarity.UNCOMMON, endurance=3),
        _item("weight_belt", "Weight Belt", EquipmentSlot.ACCESSORY, ItemRarity.UNCOMMON, strength=3),
        _item("kettlebell", "Iron Kettlebell", EquipmentSlot.WEAPON, ItemRarity.UNCOMMON, strength=4),
        _item("streak_ring", "Streak Ring", EquipmentSlot.ACCESSORY, ItemRarity.RARE, endurance=2, agility=2),
        _item("raid_armor", "Raid Armor", EquipmentSlot.ARMOR, ItemRarity.RARE, strength=2, endurance=4),
        _item(
            "champion_badge",
            "Champion Badge",
            EquipmentSlot.ACCESSORY,
            ItemRarity.RARE,
            strength=1,
            endurance=1,
            agility=1,
        ),
        _item("legendary_gloves", "Legendary Gloves", EquipmentSlot.WEAPON, ItemRarity.LEGENDARY, strength=8),
    )
}

ITEM_CATALOG: Mapping[str, EquipmentItem] = MappingProxyType(_ITEMS)

STARTER_INVENTORY: Tuple[str, ...] = ("basic_gloves", "water_bottle")


__all__ = [
    "DEFAULT_BASE_STAT",
    "EquipmentItem",
    "EquipmentSlot",
    "ITEM_CATALOG",
    "ItemRarity",
    "LEVEL_UP_STAT_BONUS",
    "STARTER_INVENTORY",
    "STAT_NAMES",
]
