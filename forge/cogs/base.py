"""Shared helpers for cogs."""

from __future__ import annotations

import logging
from typing import Any

import discord
from discord.ext import commands

from ..errors import ForgeError
from ..models import ModelValidationError
from ..service import GameService
from ..storage import DataStore

log = logging.getLogger(__name__)


class ForgeCog(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @property
    def store(self) -> DataStore:
        return self.bot.store  # type: ignore[return-value]

    @property
    def service(self) -> GameService:
        return self.bot.service  # type: ignore[return-value]

    @staticmethod
    def guild_id(interaction: discord.Interaction) -> int:
        guild = interaction.guild
        assert guild is not None
        return guild.id

    async def respond(self, interaction: discord.Interaction, **kwargs: Any) -> None:
        if interaction.response.is_done():
            await interaction.followup.send(**kwargs)
        else:
            await interaction.response.send_message(**kwargs)

    async def send_error(self, interaction: discord.Interaction, error: ForgeError) -> None:
        if isinstance(error, ModelValidationError):
            await self.send_validation_error(interaction, error)
            return
        log.debug("Command failed with %s: %s", error.kind, error.reason)
        await self.respond(interaction, content=error.reason, ephemeral=True)

    async def send_validation_error(
        self,
        interaction: discord.Interaction,
        error: ModelValidationError,
    ) -> None:
        header = f"Stored {error.model.__name__} data is invalid:"
        details = error.errors or [str(error)]
        bullet_list = "\n".join(f"• {entry}" for entry in details)
        log.warning("%s %s", header, "; ".join(details))
        await self.respond(interaction, content=f"{header}\n{bullet_list}", ephemeral=True)
