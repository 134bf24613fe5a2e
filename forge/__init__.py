"""Fitness RPG progression core with a Discord front-end."""

from .config import ForgeConfig
from .errors import ForgeError
from .service import GameService
from .storage import DataStore

__all__ = ["DataStore", "ForgeConfig", "ForgeError", "GameService"]
