"""Runtime configuration utilities."""

from __future__ import annotations

import os
from dataclasses import dataclass


def env(name: str, default: str | None = None) -> str:
    value = os.getenv(name, default)
    if value is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be an integer") from exc


@dataclass(slots=True)
class ForgeConfig:
    token: str = ""
    max_reps: int = 1000
    party_max_members: int = 8
    invite_code_attempts: int = 10
    activity_limit: int = 100
    duel_pending_hours: int = 24

    @property
    def duel_pending_seconds(self) -> int:
        return self.duel_pending_hours * 60 * 60

    @classmethod
    def from_env(cls, *, require_token: bool = True) -> "ForgeConfig":
        token = env("DISCORD_TOKEN") if require_token else os.getenv("DISCORD_TOKEN", "")
        max_reps = max(1, _int_env("FORGE_MAX_REPS", 1000))
        party_max_members = min(8, max(2, _int_env("FORGE_PARTY_MAX_MEMBERS", 8)))
        activity_limit = max(1, _int_env("FORGE_ACTIVITY_LIMIT", 100))
        duel_pending_hours = max(1, _int_env("FORGE_DUEL_PENDING_HOURS", 24))
        return cls(
            token=token,
            max_reps=max_reps,
            party_max_members=party_max_members,
            activity_limit=activity_limit,
            duel_pending_hours=duel_pending_hours,
        )


__all__ = ["ForgeConfig"]
