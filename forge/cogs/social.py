"""Duels, clubs, territory and raid commands."""

from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from ..errors import ForgeError
from ..models import DUEL_CHALLENGES, RAID_BOSS_TEMPLATES, Duel, GymLocation
from .base import ForgeCog

CHALLENGE_CHOICES = [
    app_commands.Choice(name=challenge.name, value=key) for key, challenge in DUEL_CHALLENGES.items()
]

BOSS_CHOICES = [
    app_commands.Choice(name=template.name, value=key)
    for key, template in RAID_BOSS_TEMPLATES.items()
]


def _duel_line(duel: Duel) -> str:
    scores = " vs ".join(
        f"<@{user_id}> {duel.scores.get(user_id, 0)}"
        for user_id in (duel.challenger_id, duel.opponent_id)
    )
    return f"`{duel.duel_id}` {duel.challenge.name} [{duel.status.value}] {scores}"


def _location_embed(location: GymLocation, *, title: str) -> discord.Embed:
    embed = discord.Embed(title=title, description=location.name, colour=discord.Colour.red())
    embed.add_field(name="Controlled By", value=location.controlling_club_id or "Nobody", inline=True)
    embed.add_field(name="Strength", value=str(location.control_strength), inline=True)
    embed.add_field(
        name="Defenders",
        value=", ".join(f"<@{uid}>" for uid in location.defender_ids()) or "None",
        inline=False,
    )
    return embed


class SocialCog(ForgeCog):
    duel_group = app_commands.Group(name="duel", description="Head-to-head challenges")
    club_group = app_commands.Group(name="club", description="Clubs that fight over gyms")
    gym_group = app_commands.Group(name="gym", description="Claim and contest gym locations")
    raid_group = app_commands.Group(name="raid", description="Cooperative raid bosses")

    def __init__(self, bot: commands.Bot):
        super().__init__(bot)

    # duels -------------------------------------------------------------

    @duel_group.command(name="challenge", description="Challenge another member to a duel")
    @app_commands.choices(challenge=CHALLENGE_CHOICES)
    @app_commands.guild_only()
    async def duel_challenge(
        self,
        interaction: discord.Interaction,
        opponent: discord.Member,
        challenge: app_commands.Choice[str],
    ) -> None:
        try:
            duel = await self.service.create_duel(
                self.guild_id(interaction), interaction.user.id, opponent.id, challenge.value
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(
            interaction,
            content=(
                f"{opponent.mention}, {interaction.user.mention} challenges you to "
                f"**{challenge.name}**. Accept with `/duel accept {duel.duel_id}`."
            ),
        )

    @duel_group.command(name="accept", description="Accept a pending duel")
    @app_commands.guild_only()
    async def duel_accept(self, interaction: discord.Interaction, duel_id: str) -> None:
        try:
            duel = await self.service.accept_duel(
                self.guild_id(interaction), interaction.user.id, duel_id
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(
            interaction, content=f"Duel on! Ends <t:{int(duel.deadline or 0)}:R>.\n{_duel_line(duel)}"
        )

    @duel_group.command(name="decline", description="Decline or cancel a pending duel")
    @app_commands.guild_only()
    async def duel_decline(self, interaction: discord.Interaction, duel_id: str) -> None:
        try:
            duel = await self.service.decline_duel(
                self.guild_id(interaction), interaction.user.id, duel_id
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(interaction, content=_duel_line(duel), ephemeral=True)

    @duel_group.command(name="list", description="Show your duels")
    @app_commands.guild_only()
    async def duel_list(self, interaction: discord.Interaction) -> None:
        duels = await self.service.list_duels(self.guild_id(interaction), interaction.user.id)
        lines = [_duel_line(duel) for duel in duels[:15]]
        await self.respond(
            interaction, content="\n".join(lines) or "You have no duels.", ephemeral=True
        )

    # clubs -------------------------------------------------------------

    @club_group.command(name="create", description="Found a new club")
    @app_commands.guild_only()
    async def club_create(self, interaction: discord.Interaction, name: str, tag: str) -> None:
        try:
            club = await self.service.create_club(
                self.guild_id(interaction), interaction.user.id, name, tag
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(
            interaction, content=f"Founded **{club.name}** [{club.tag}] (`{club.club_id}`)."
        )

    @club_group.command(name="join", description="Join a club")
    @app_commands.guild_only()
    async def club_join(self, interaction: discord.Interaction, club_id: str) -> None:
        try:
            club = await self.service.join_club(
                self.guild_id(interaction), interaction.user.id, club_id
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(interaction, content=f"You joined **{club.name}** [{club.tag}].")

    @club_group.command(name="leave", description="Leave your club")
    @app_commands.guild_only()
    async def club_leave(self, interaction: discord.Interaction) -> None:
        try:
            club = await self.service.leave_club(self.guild_id(interaction), interaction.user.id)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        note = "" if club.members else " The club has been disbanded."
        await self.respond(interaction, content=f"You left **{club.name}**.{note}", ephemeral=True)

    @club_group.command(name="info", description="Show a club's power and territory")
    @app_commands.guild_only()
    async def club_info(self, interaction: discord.Interaction, club_id: str) -> None:
        try:
            summary = await self.service.club_summary(self.guild_id(interaction), club_id)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        club = summary.club
        embed = discord.Embed(title=f"[{club.tag}] {club.name}", colour=discord.Colour.dark_gold())
        embed.add_field(name="Members", value=str(len(club.members)), inline=True)
        embed.add_field(name="Power", value=str(summary.total_power), inline=True)
        embed.add_field(name="Territories", value=str(summary.territories_controlled), inline=True)
        embed.add_field(name="Record", value=f"{club.wins}W / {club.losses}L", inline=True)
        await self.respond(interaction, embed=embed)

    # territory ---------------------------------------------------------

    @gym_group.command(name="add", description="Register a gym from place data")
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.guild_only()
    async def gym_add(
        self,
        interaction: discord.Interaction,
        place_id: str,
        name: str,
        latitude: app_commands.Range[float, -90.0, 90.0],
        longitude: app_commands.Range[float, -180.0, 180.0],
    ) -> None:
        place = {"place_id": place_id, "name": name, "latitude": latitude, "longitude": longitude}
        try:
            location = await self.service.upsert_location(self.guild_id(interaction), place)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(
            interaction, content=f"Registered {location.name} as `{location.location_id}`."
        )

    @gym_group.command(name="nearby", description="List gyms near a position")
    @app_commands.guild_only()
    async def gym_nearby(
        self,
        interaction: discord.Interaction,
        latitude: app_commands.Range[float, -90.0, 90.0],
        longitude: app_commands.Range[float, -180.0, 180.0],
        radius_km: app_commands.Range[float, 0.1, 50.0] = 5.0,
    ) -> None:
        found = await self.service.nearby_locations(
            self.guild_id(interaction), latitude, longitude, radius_km
        )
        lines = [
            f"`{location.location_id}` {location.name} - {distance:.1f} km"
            f" ({location.controlling_club_id or 'unclaimed'})"
            for location, distance in found[:15]
        ]
        await self.respond(interaction, content="\n".join(lines) or "No gyms nearby.", ephemeral=True)

    @gym_group.command(name="claim", description="Claim an unclaimed gym for your club")
    @app_commands.guild_only()
    async def gym_claim(self, interaction: discord.Interaction, location_id: str) -> None:
        try:
            location = await self.service.claim_territory(
                self.guild_id(interaction), interaction.user.id, location_id
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(interaction, embed=_location_embed(location, title="Gym Claimed"))

    @gym_group.command(name="challenge", description="Attack a gym held by another club")
    @app_commands.guild_only()
    async def gym_challenge(self, interaction: discord.Interaction, location_id: str) -> None:
        try:
            battle = await self.service.challenge_territory(
                self.guild_id(interaction), interaction.user.id, location_id
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        outcome = "captured the gym" if battle.attacker_won else "was repelled"
        await self.respond(
            interaction,
            content=(
                f"{interaction.user.mention} {outcome} "
                f"(attack {battle.attack_power} vs defense {battle.defense_power})."
            ),
        )

    @gym_group.command(name="defend", description="Reinforce a gym your club controls")
    @app_commands.guild_only()
    async def gym_defend(self, interaction: discord.Interaction, location_id: str) -> None:
        try:
            location = await self.service.defend_territory(
                self.guild_id(interaction), interaction.user.id, location_id
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(interaction, embed=_location_embed(location, title="Gym Reinforced"))

    @gym_group.command(name="withdraw", description="Stop defending your gym")
    @app_commands.guild_only()
    async def gym_withdraw(self, interaction: discord.Interaction) -> None:
        try:
            location = await self.service.stop_defending(
                self.guild_id(interaction), interaction.user.id
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(
            interaction, content=f"You stopped defending {location.name}.", ephemeral=True
        )

    # raids -------------------------------------------------------------

    @raid_group.command(name="spawn", description="Summon a raid boss")
    @app_commands.choices(boss=BOSS_CHOICES)
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.guild_only()
    async def raid_spawn(
        self, interaction: discord.Interaction, boss: app_commands.Choice[str]
    ) -> None:
        try:
            raid = await self.service.spawn_raid_boss(self.guild_id(interaction), boss.value)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(
            interaction,
            content=(
                f"**{raid.name}** appears with {raid.total_hp} HP! "
                f"Weak to: {', '.join(raid.vulnerabilities)}."
            ),
        )

    @raid_group.command(name="reset", description="Restore a raid boss to full health")
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.guild_only()
    async def raid_reset(self, interaction: discord.Interaction, boss_id: str) -> None:
        try:
            raid = await self.service.reset_raid_boss(self.guild_id(interaction), boss_id)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(interaction, content=f"{raid.name} is back at {raid.total_hp} HP.")

    @raid_group.command(name="status", description="Show raid boss health")
    @app_commands.guild_only()
    async def raid_status(self, interaction: discord.Interaction) -> None:
        bosses = await self.service.list_raid_bosses(self.guild_id(interaction))
        lines = []
        for raid in bosses:
            top = sorted(raid.contributions.items(), key=lambda item: item[1], reverse=True)[:3]
            leaders = ", ".join(f"<@{uid}> {damage}" for uid, damage in top) or "no damage yet"
            lines.append(
                f"`{raid.boss_id}` **{raid.name}** {raid.current_hp}/{raid.total_hp} HP - {leaders}"
            )
        await self.respond(interaction, content="\n".join(lines) or "No raid bosses yet.")


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(SocialCog(bot))
