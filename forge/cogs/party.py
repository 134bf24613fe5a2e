from __future__ import annotations

from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from ..errors import ForgeError, NotFoundError
from ..models import Party, PartyRole
from ..party import member_ids_in_join_order
from .base import ForgeCog


class PartyActionView(discord.ui.View):
    def __init__(
        self,
        cog: "PartyCog",
        guild_id: int,
        user_id: int,
        party: Party | None,
        *,
        timeout: float = 90.0,
    ) -> None:
        super().__init__(timeout=timeout)
        self.cog = cog
        self.guild_id = guild_id
        self.user_id = user_id
        self.party = party
        self.message: Optional[discord.Message] = None
        self._update_button_states()

    def set_party(self, party: Party | None) -> None:
        self.party = party if party is not None and party.is_active else None
        self._update_button_states()

    def _update_button_states(self) -> None:
        has_party = self.party is not None
        self.invite.disabled = not has_party
        self.info.disabled = not has_party
        self.leave.disabled = not has_party

    async def _ensure_authorized(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.user_id:
            await interaction.response.send_message(
                "Only the party member who opened this panel can use these controls.",
                ephemeral=True,
            )
            return False
        return True

    async def on_timeout(self) -> None:
        for child in self.children:
            child.disabled = True
        if self.message:
            try:
                await self.message.edit(view=self)
            except discord.HTTPException:
                pass

    @discord.ui.button(label="Invite Code", style=discord.ButtonStyle.secondary, emoji="🪪")
    async def invite(  # type: ignore[override]
        self, interaction: discord.Interaction, button: discord.ui.Button
    ) -> None:
        if not await self._ensure_authorized(interaction):
            return
        if self.party is None:
            await interaction.response.send_message(
                "You are not currently in a party.", ephemeral=True
            )
            return
        await interaction.response.send_message(
            f"Your party invite code is `{self.party.invite_code}`.",
            ephemeral=True,
        )

    @discord.ui.button(label="Refresh Info", style=discord.ButtonStyle.primary, emoji="📜")
    async def info(  # type: ignore[override]
        self, interaction: discord.Interaction, button: discord.ui.Button
    ) -> None:
        if not await self._ensure_authorized(interaction):
            return
        await self.cog.refresh_party_view(interaction, self)

    @discord.ui.button(label="Leave Party", style=discord.ButtonStyle.danger, emoji="🚪")
    async def leave(  # type: ignore[override]
        self, interaction: discord.Interaction, button: discord.ui.Button
    ) -> None:
        if not await self._ensure_authorized(interaction):
            return
        await self.cog.leave_party_from_view(interaction, self)


class PartyCog(ForgeCog):
    party_group = app_commands.Group(name="party", description="Train together in a party")

    def __init__(self, bot: commands.Bot):
        super().__init__(bot)

    def _party_members_text(self, guild: discord.Guild, party: Party) -> str:
        members: list[str] = []
        for member_id in member_ids_in_join_order(party):
            member = guild.get_member(member_id)
            mention = member.mention if member else f"<@{member_id}>"
            entry = party.member(member_id)
            prefix = "[Owner]" if entry and entry.role is PartyRole.OWNER else "•"
            members.append(f"{prefix} {mention}")
        return "\n".join(members) if members else "No members."

    def _party_embed(
        self,
        guild: discord.Guild,
        party: Party,
        *,
        title: str,
        description: str,
        colour: discord.Colour | None = None,
    ) -> discord.Embed:
        embed = discord.Embed(
            title=title,
            description=description,
            colour=colour or discord.Colour.blurple(),
        )
        embed.add_field(name="Party", value=party.name, inline=True)
        embed.add_field(name="Invite Code", value=f"`{party.invite_code}`", inline=True)
        embed.add_field(
            name="Members",
            value=self._party_members_text(guild, party),
            inline=False,
        )
        embed.set_footer(text=f"Party size: {len(party.members)}/{party.max_members}")
        return embed

    async def _send_panel(
        self,
        interaction: discord.Interaction,
        party: Party | None,
        embed: discord.Embed,
        *,
        ephemeral: bool = False,
    ) -> None:
        view = PartyActionView(self, self.guild_id(interaction), interaction.user.id, party)
        await interaction.response.send_message(embed=embed, view=view, ephemeral=ephemeral)
        try:
            view.message = await interaction.original_response()
        except discord.HTTPException:
            view.message = None

    async def refresh_party_view(
        self, interaction: discord.Interaction, view: PartyActionView
    ) -> None:
        guild = interaction.guild
        if guild is None:
            await interaction.response.send_message(
                "This server is no longer available.", ephemeral=True
            )
            return
        try:
            party = await self.service.get_party(guild.id, view.user_id)
        except NotFoundError:
            view.set_party(None)
            await interaction.response.send_message(
                "Your party could not be found.", ephemeral=True
            )
            return
        view.set_party(party)
        embed = self._party_embed(
            guild,
            party,
            title="Party Roster",
            description="Current members of your workout party.",
        )
        await interaction.response.edit_message(embed=embed, view=view)
        if interaction.message is not None:
            view.message = interaction.message

    async def leave_party_from_view(
        self, interaction: discord.Interaction, view: PartyActionView
    ) -> None:
        try:
            await self.service.leave_party(self.guild_id(interaction), view.user_id)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        view.set_party(None)
        embed = discord.Embed(
            title="Party Departure",
            description="You leave your training partners behind.",
            colour=discord.Colour.orange(),
        )
        await interaction.response.edit_message(embed=embed, view=view)
        if interaction.message is not None:
            view.message = interaction.message

    @party_group.command(name="create", description="Create a new party")
    @app_commands.describe(name="Name for your party")
    @app_commands.guild_only()
    async def party_create(self, interaction: discord.Interaction, name: str) -> None:
        guild = interaction.guild
        assert guild is not None
        try:
            party = await self.service.create_party(guild.id, interaction.user.id, name)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        embed = self._party_embed(
            guild,
            party,
            title="Party Created",
            description="Share the invite code with your training partners.",
        )
        await self._send_panel(interaction, party, embed)

    @party_group.command(name="join", description="Join a party with an invite code")
    @app_commands.describe(invite_code="Six character invite code")
    @app_commands.guild_only()
    async def party_join(self, interaction: discord.Interaction, invite_code: str) -> None:
        guild = interaction.guild
        assert guild is not None
        try:
            party = await self.service.join_party(guild.id, interaction.user.id, invite_code)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        embed = self._party_embed(
            guild,
            party,
            title="Joined Party",
            description=f"{interaction.user.mention} joins {party.name}.",
        )
        await self._send_panel(interaction, party, embed)

    @party_group.command(name="leave", description="Leave your current party")
    @app_commands.guild_only()
    async def party_leave(self, interaction: discord.Interaction) -> None:
        guild = interaction.guild
        assert guild is not None
        try:
            party = await self.service.leave_party(guild.id, interaction.user.id)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        if party.is_active:
            embed = self._party_embed(
                guild,
                party,
                title="Party Departure",
                description="You take your leave. The rest of the party trains on.",
                colour=discord.Colour.orange(),
            )
        else:
            embed = discord.Embed(
                title="Party Departure",
                description="You were the last member, so the party has been disbanded.",
                colour=discord.Colour.orange(),
            )
        await self._send_panel(interaction, None, embed)

    @party_group.command(name="kick", description="Remove a member from your party")
    @app_commands.guild_only()
    async def party_kick(self, interaction: discord.Interaction, member: discord.Member) -> None:
        guild = interaction.guild
        assert guild is not None
        try:
            party = await self.service.kick_member(guild.id, interaction.user.id, member.id)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        embed = self._party_embed(
            guild,
            party,
            title="Member Removed",
            description=f"{member.mention} was removed from the party.",
        )
        await self._send_panel(interaction, party, embed, ephemeral=True)

    @party_group.command(name="newcode", description="Generate a new invite code")
    @app_commands.guild_only()
    async def party_newcode(self, interaction: discord.Interaction) -> None:
        try:
            code = await self.service.regenerate_invite_code(
                self.guild_id(interaction), interaction.user.id
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(interaction, content=f"New invite code: `{code}`", ephemeral=True)

    @party_group.command(name="rename", description="Rename your party")
    @app_commands.guild_only()
    async def party_rename(self, interaction: discord.Interaction, name: str) -> None:
        try:
            party = await self.service.rename_party(
                self.guild_id(interaction), interaction.user.id, name
            )
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        await self.respond(interaction, content=f"Party renamed to **{party.name}**.")

    @party_group.command(name="info", description="View your party information")
    @app_commands.guild_only()
    async def party_info(self, interaction: discord.Interaction) -> None:
        guild = interaction.guild
        assert guild is not None
        try:
            party = await self.service.get_party(guild.id, interaction.user.id)
        except ForgeError as error:
            await self.send_error(interaction, error)
            return
        embed = self._party_embed(
            guild,
            party,
            title="Party Roster",
            description="Here is your current party.",
        )
        await self._send_panel(interaction, party, embed)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(PartyCog(bot))
