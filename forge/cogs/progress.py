from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from ..errors import ForgeError, NotFoundError
from ..formulas import EXERCISE_UNITS, KNOWN_EXERCISES, xp_threshold
from ..game import effective_stats
from ..leaderboard import LeaderboardMetric
from ..models import ACHIEVEMENTS, ITEM_CATALOG, ActivityType, EquipmentSlot, UserProgress
from .base import ForgeCog

EXERCISE_CHOICES = [
    app_commands.Choice(name=f"{name} ({EXERCISE_UNITS.get(name, 'reps')})", value=name)
    for name in sorted(KNOWN_EXERCISES)
]

SLOT_CHOICES = [
    app_commands.Choice(name=slot.value.title(), value=slot.value) for slot in EquipmentSlot
]

BOARD_CHOICES = [
    app_commands.Choice(name=metric.label, value=metric.value) for metric in LeaderboardMetric
]


def _profile_embed(user: UserProgress, display_name: str) -> discord.Embed:
    embed = discord.Embed(
        title=f"{display_name} - Level {user.level}",
        description=f"XP {user.xp}/{xp_threshold(user.level)}",
        colour=discord.Colour.gold(),
    )
    totals = effective_stats(user)
    embed.add_field(
        name="Stats",
        value="\n".join(
            f"{stat.title()}: {totals[stat]} ({base} base)" for stat, base in user.stats().items()
        ),
        inline=True,
    )
    embed.add_field(
        name="Training",
        value=(
            f"Streak: {user.workout_streak} day(s)\n"
            f"Workouts: {user.total_workouts}\n"
            f"Lifetime reps: {user.lifetime_reps}"
        ),
        inline=True,
    )
    equipped = [
        f"{slot.title()}: {ITEM_CATALOG[key].name}"
        for slot, key in sorted(user.equipment.items())
        if key in ITEM_CATALOG
    ]
    embed.add_field(name="Equipment", value="\n".join(equipped) or "Nothing equipped", inline=False)
    bag = [ITEM_CATALOG[key].name for key in user.inventory if key in ITEM_CATALOG]
    embed.add_field(name="Inventory", value=", ".join(bag) or "Empty", inline=False)
    return embed


class ProgressCog(ForgeCog):
    def __init__(self, bot: commands.Bot):
        super().__init__(bot)

    @app_commands.command(name="register", description="Start tracking your workouts")
    @app_commands.guild_only()
    async def register(self, interaction: discord.Interaction) -> None:
        user = await self.service.register_user(
            self.guild_id(interaction), interaction.user.id, interaction.user.display_name
        )
        await self.respond(
            interaction, embed=_profile_embed(user, interaction.user.display_name), ephemeral=True
        )

    @app_commands.command(name="workout", description="Log a workout")
    @app_commands.describe(exercise="What you trained", reps="Reps, seconds or minutes")
    @app_commands.choices(exercise=EXERCISE_CHOICES)
    @app_commands.guild_only()
    async def workout(
        self,
        interaction: discord.Interaction,
        exercise: app_commands.Choice[str],
        reps: app_commands.Range[int, 1, 1000],
    ) -> None:
        try:
            report = await self.service.apply_workout(
                self.guild_id(interaction), interaction.user.id, exercise.value, reps
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        result = report.result
        embed = discord.Embed(
            title="Workout Logged",
            description=f"{result.reps} {result.exercise} for **{result.xp_gained} XP**",
            colour=discord.Colour.green(),
        )
        if result.stat_gains:
            embed.add_field(
                name="Stat Gains",
                value=", ".join(f"+{delta} {stat}" for stat, delta in result.stat_gains.items()),
                inline=False,
            )
        if result.leveled_up:
            embed.add_field(name="Level Up!", value=f"You reached level {result.new_level}.", inline=False)
        embed.add_field(name="Streak", value=f"{result.streak} day(s)", inline=True)
        highlights = [
            event
            for event in report.events
            if event.kind
            in (
                ActivityType.QUEST_COMPLETE,
                ActivityType.ACHIEVEMENT_UNLOCK,
                ActivityType.RAID_DAMAGE,
                ActivityType.RAID_COMPLETE,
                ActivityType.DUEL_WIN,
            )
        ]
        if highlights:
            embed.add_field(
                name="Progress",
                value="\n".join(
                    f"{event.kind.value.replace('_', ' ').title()}: "
                    + ", ".join(f"{key}={value}" for key, value in event.data.items())
                    for event in highlights[:10]
                ),
                inline=False,
            )
        await self.respond(interaction, embed=embed)

    @app_commands.command(name="profile", description="View your progress")
    @app_commands.guild_only()
    async def profile(
        self, interaction: discord.Interaction, member: discord.Member | None = None
    ) -> None:
        target = member or interaction.user
        user = await self.service.get_user(self.guild_id(interaction), target.id)
        if user is None:
            await self.respond(interaction, content="Register first with /register", ephemeral=True)
            return
        await self.respond(interaction, embed=_profile_embed(user, target.display_name))

    @app_commands.command(name="equip", description="Equip an item from your inventory")
    @app_commands.guild_only()
    async def equip(self, interaction: discord.Interaction, item: str) -> None:
        try:
            user = await self.service.equip_item(self.guild_id(interaction), interaction.user.id, item)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(
            interaction, embed=_profile_embed(user, interaction.user.display_name), ephemeral=True
        )

    @equip.autocomplete("item")
    async def equip_autocomplete(
        self, interaction: discord.Interaction, current: str
    ) -> list[app_commands.Choice[str]]:
        user = await self.service.get_user(self.guild_id(interaction), interaction.user.id)
        if user is None:
            return []
        needle = current.lower()
        return [
            app_commands.Choice(name=ITEM_CATALOG[key].name, value=key)
            for key in user.inventory
            if key in ITEM_CATALOG and needle in ITEM_CATALOG[key].name.lower()
        ][:25]

    @app_commands.command(name="unequip", description="Return an equipped item to your inventory")
    @app_commands.choices(slot=SLOT_CHOICES)
    @app_commands.guild_only()
    async def unequip(
        self, interaction: discord.Interaction, slot: app_commands.Choice[str]
    ) -> None:
        try:
            user = await self.service.unequip_item(
                self.guild_id(interaction), interaction.user.id, slot.value
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(
            interaction, embed=_profile_embed(user, interaction.user.display_name), ephemeral=True
        )

    @app_commands.command(name="quests", description="Show your daily, weekly and milestone quests")
    @app_commands.guild_only()
    async def quests(self, interaction: discord.Interaction) -> None:
        try:
            quests = await self.service.refresh_quests(self.guild_id(interaction), interaction.user.id)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        embed = discord.Embed(title="Quest Board", colour=discord.Colour.blurple())
        for quest in quests[:25]:
            if quest.claimed:
                status = "claimed"
            elif quest.completed:
                status = "ready to claim"
            else:
                status = f"{quest.progress_value}/{quest.target_value}"
            embed.add_field(
                name=f"[{quest.kind.value}] {quest.title}",
                value=f"{quest.description}\n{status} - {quest.xp_reward} XP\n`{quest.quest_id}`",
                inline=False,
            )
        await self.respond(interaction, embed=embed, ephemeral=True)

    @app_commands.command(name="claim", description="Claim the reward of a completed quest")
    @app_commands.guild_only()
    async def claim(self, interaction: discord.Interaction, quest_id: str) -> None:
        try:
            claim = await self.service.claim_quest_reward(
                self.guild_id(interaction), interaction.user.id, quest_id
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        message = f"Claimed **{claim.xp} XP** from {claim.quest.title}."
        if claim.item_key:
            message += f" You received {ITEM_CATALOG[claim.item_key].name}."
        if claim.levels_gained:
            message += f" Level up x{claim.levels_gained}!"
        await self.respond(interaction, content=message)

    @app_commands.command(name="achievements", description="List your unlocked achievements")
    @app_commands.guild_only()
    async def achievements(self, interaction: discord.Interaction) -> None:
        guild_id = self.guild_id(interaction)
        try:
            await self.service.check_achievements(guild_id, interaction.user.id)
            ledger = await self.service.list_achievements(guild_id, interaction.user.id)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        lines = [
            f"{'✅' if ledger.is_unlocked(item.key) else '▫️'} **{item.name}** - {item.description}"
            for item in ACHIEVEMENTS
        ]
        embed = discord.Embed(
            title="Achievements", description="\n".join(lines), colour=discord.Colour.purple()
        )
        await self.respond(interaction, embed=embed, ephemeral=True)

    @app_commands.command(name="leaderboard", description="Server rankings")
    @app_commands.choices(board=BOARD_CHOICES)
    @app_commands.guild_only()
    async def leaderboard(
        self, interaction: discord.Interaction, board: app_commands.Choice[str] | None = None
    ) -> None:
        guild_id = self.guild_id(interaction)
        metric = LeaderboardMetric.from_value(board.value if board else "overall")
        standings = await self.service.leaderboard(guild_id, metric.value)
        lines = [
            f"**{standing.rank}.** {standing.name} - {standing.value}" for standing in standings
        ]
        embed = discord.Embed(
            title=f"Leaderboard: {metric.label}",
            description="\n".join(lines) or "Nobody has trained yet.",
            colour=discord.Colour.gold(),
        )
        try:
            own = await self.service.leaderboard_rank(guild_id, interaction.user.id, metric.value)
        except NotFoundError:
            own = None
        if own is not None:
            embed.set_footer(text=f"Your rank: #{own.rank} ({own.value})")
        await self.respond(interaction, embed=embed)

    @app_commands.command(name="activity", description="Recent activity on this server")
    @app_commands.guild_only()
    async def activity(self, interaction: discord.Interaction) -> None:
        entries = await self.service.activity_feed(self.guild_id(interaction), limit=15)
        embed = discord.Embed(
            title="Recent Activity",
            description="\n".join(f"<t:{int(entry.timestamp)}:R> {entry.action}" for entry in entries)
            or "Nothing has happened yet.",
            colour=discord.Colour.dark_teal(),
        )
        await self.respond(interaction, embed=embed)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(ProgressCog(bot))
