"""
Guild configuration cog: where Warden posts its audit log and alerts.

Slash commands:
- /audit-channel: Toggle the audit log to this channel, or off if it is already here
- /alert-channel: Toggle probation alerts to this channel, or off if it is already here
- /warden-status: Show the configured channels

Only members whose highest role is above the bot's highest role may use them.
Responses are ephemeral to avoid leaking configuration in public channels.
"""

from typing import Literal, Optional

import discord
from discord.ext import commands

from warden.bot.services import ModerationServices
from warden.database.db_connection import db_connection
from warden.repositories.guild_config_repo import guild_config_repo
from warden.util.logger import get_logger

logger = get_logger("guild_config_cmds")

ChannelKind = Literal["audit", "alert"]


def outranks_bot(ctx: discord.ApplicationContext) -> bool:
    """True if the invoker's top role is strictly above the bot's top role."""
    guild = ctx.guild
    if guild is None or guild.me is None:
        return False
    author_top = getattr(ctx.author, "top_role", None)
    if author_top is None:
        return False
    return author_top > guild.me.top_role


def _describe(channel_id: Optional[int]) -> str:
    return f"<#{channel_id}>" if channel_id else "off"


class GuildConfigCog(commands.Cog):
    """Per-guild audit and alert channel toggles."""

    def __init__(self, discord_bot_instance, services: ModerationServices):
        self.discord_bot_instance = discord_bot_instance
        self.services = services
        logger.info("[GUILD CONFIG CMDS] Guild config cog loaded")

    async def _check_permissions(self, ctx: discord.ApplicationContext) -> bool:
        if not ctx.guild_id:
            await ctx.respond("This command can only be used in a server.", ephemeral=True)
            return False
        if not outranks_bot(ctx):
            await ctx.respond("Your highest role must be above mine to configure Warden.", ephemeral=True)
            return False
        return True

    async def _toggle(self, ctx: discord.ApplicationContext, kind: ChannelKind) -> None:
        if not await self._check_permissions(ctx):
            return

        guild_id, channel_id = ctx.guild_id, ctx.channel_id
        async with db_connection.transaction() as conn:
            config = await guild_config_repo.get(conn, guild_id)
            current = config.audit_channel_id if kind == "audit" else config.alert_channel_id
            new_channel = None if current == channel_id else channel_id
            if kind == "audit":
                await guild_config_repo.set_audit_channel(conn, guild_id, new_channel)
            else:
                await guild_config_repo.set_alert_channel(conn, guild_id, new_channel)

        logger.info(
            "[GUILD CONFIG CMDS] %s channel of guild %s set to %s by %s",
            kind, guild_id, new_channel, ctx.author.id,
        )
        if new_channel is None:
            await ctx.respond(f"The {kind} channel is now off.", ephemeral=True)
        else:
            await ctx.respond(f"The {kind} channel is now <#{new_channel}>.", ephemeral=True)

    @commands.slash_command(name="audit-channel", description="Toggle posting Warden's audit log to this channel.")
    async def audit_channel(self, ctx: discord.ApplicationContext):
        await self._toggle(ctx, "audit")

    @commands.slash_command(name="alert-channel", description="Toggle posting Warden's probation alerts to this channel.")
    async def alert_channel(self, ctx: discord.ApplicationContext):
        await self._toggle(ctx, "alert")

    @commands.slash_command(name="warden-status", description="Show where Warden posts its audit log and alerts.")
    async def warden_status(self, ctx: discord.ApplicationContext):
        if not await self._check_permissions(ctx):
            return
        async with db_connection.read() as conn:
            config = await guild_config_repo.get(conn, ctx.guild_id)
        await ctx.respond(
            f"Audit channel: {_describe(config.audit_channel_id)}\n"
            f"Alert channel: {_describe(config.alert_channel_id)}\n"
            f"Pending audit batches: {len(self.services.audit_log.pending)}",
            ephemeral=True,
        )


def setup(discord_bot_instance, services: ModerationServices):
    """Register the GuildConfigCog with the bot."""
    discord_bot_instance.add_cog(GuildConfigCog(discord_bot_instance, services))
