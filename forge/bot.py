"""Entry point for the Forge fitness RPG Discord bot."""

from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands

from .config import ForgeConfig
from .service import GameService
from .storage import DataStore

log = logging.getLogger(__name__)

EXTENSIONS = (
    "forge.cogs.progress",
    "forge.cogs.party",
    "forge.cogs.social",
)


class ForgeBot(commands.Bot):
    def __init__(self, config: ForgeConfig, *, store: DataStore | None = None):
        intents = discord.Intents.default()
        super().__init__(command_prefix="!", intents=intents)
        self.config = config
        self.store = store or DataStore()
        self.service = GameService(self.store, config)
        self._synced = False

    async def setup_hook(self) -> None:
        for extension in EXTENSIONS:
            await self.load_extension(extension)

    async def on_ready(self) -> None:
        if not self._synced:
            await self.tree.sync()
            self._synced = True
            log.info("Application commands synced")
        if self.user:
            log.info("Connected as %s (%s)", self.user, self.user.id)

    async def on_guild_join(self, guild: discord.Guild) -> None:
        await self.tree.sync(guild=guild)
        log.info("Synced application commands for guild %s (%s)", guild.name, guild.id)


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    config = ForgeConfig.from_env()
    bot = ForgeBot(config)
    log.info("Storing game data under %s", bot.store.root)
    async with bot:
        await bot.start(config.token)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
