"""
discord_utils.py
================

Low-level Discord helpers for Warden.

Every helper here is best-effort: Discord failures are caught and logged and
reported back as ``None``/``False`` so callers can carry on with their own
(authoritative) database work.
"""

from __future__ import annotations

from typing import Optional, Union

import discord

from warden.util.logger import get_logger

logger = get_logger("discord_utils")

FLAG_EMOJI = "🚨"

Messageable = Union[discord.TextChannel, discord.Thread, discord.VoiceChannel]


def is_ignored_author(author: Union[discord.User, discord.Member]) -> bool:
    """Bots and webhooks are never moderated."""
    return bool(getattr(author, "bot", False))


def is_snowflake(value: str) -> bool:
    """True for a bare decimal identifier such as ``"123456789012345678"`` that fits a signed 64-bit column."""
    return value.isascii() and value.isdigit() and len(value) <= 19 and int(value) < 2**63


async def fetch_channel(bot: discord.Client, channel_id: int) -> Optional[discord.abc.GuildChannel]:
    channel = bot.get_channel(channel_id)
    if channel is not None:
        return channel
    try:
        return await bot.fetch_channel(channel_id)
    except Exception as exc:
        logger.warning("Could not fetch channel %s: %s", channel_id, exc)
        return None


async def fetch_messageable(bot: discord.Client, channel_id: int) -> Optional[Messageable]:
    """Resolve a channel we can send messages to, or None."""
    channel = await fetch_channel(bot, channel_id)
    if channel is None or not hasattr(channel, "send"):
        return None
    return channel


async def fetch_message(bot: discord.Client, channel_id: int, message_id: int) -> Optional[discord.Message]:
    channel = await fetch_messageable(bot, channel_id)
    if channel is None:
        return None
    try:
        return await channel.fetch_message(message_id)
    except discord.NotFound:
        logger.debug("Message %s in channel %s no longer exists", message_id, channel_id)
    except Exception as exc:
        logger.warning("Could not fetch message %s in channel %s: %s", message_id, channel_id, exc)
    return None


async def fetch_guild(bot: discord.Client, guild_id: int) -> Optional[discord.Guild]:
    guild = bot.get_guild(guild_id)
    if guild is not None:
        return guild
    try:
        return await bot.fetch_guild(guild_id)
    except Exception as exc:
        logger.warning("Could not fetch guild %s: %s", guild_id, exc)
        return None


async def fetch_member(guild: discord.Guild, user_id: int) -> Optional[discord.Member]:
    member = guild.get_member(user_id)
    if member is not None:
        return member
    try:
        return await guild.fetch_member(user_id)
    except Exception as exc:
        logger.warning("Could not fetch member %s in guild %s: %s", user_id, guild.id, exc)
        return None


async def fetch_user(bot: discord.Client, user_id: int) -> Optional[discord.User]:
    user = bot.get_user(user_id)
    if user is not None:
        return user
    try:
        return await bot.fetch_user(user_id)
    except Exception as exc:
        logger.warning("Could not fetch user %s: %s", user_id, exc)
        return None


async def resolve_display_name(bot: discord.Client, guild_id: int, user_id: int) -> str:
    """Member display name, falling back to the global user name, then ``"Unknown"``."""
    guild = await fetch_guild(bot, guild_id)
    if guild is not None:
        member = await fetch_member(guild, user_id)
        if member is not None:
            return member.display_name
    user = await fetch_user(bot, user_id)
    return str(user) if user is not None else "Unknown"


async def safe_delete_message(message: discord.Message) -> bool:
    """
    Attempt to delete a Discord message, suppressing recoverable errors.

    Returns:
        bool: True if deletion succeeded, False otherwise.
    """
    try:
        await message.delete()
        return True
    except discord.NotFound:
        return False
    except discord.Forbidden:
        logger.warning("No permission to delete message %s", message.id)
    except Exception as exc:
        logger.error("Error deleting message %s: %s", message.id, exc)
    return False


async def remove_flag_reaction(bot: discord.Client, message: discord.Message) -> None:
    """Remove our own flag marker. Purely cosmetic, so every failure is swallowed."""
    if bot.user is None:
        return
    try:
        await message.remove_reaction(FLAG_EMOJI, bot.user)
    except Exception as exc:
        logger.debug("Could not remove flag reaction from %s: %s", message.id, exc)


async def send_dm(
    bot: discord.Client,
    user_id: int,
    *,
    content: Optional[str] = None,
    embed: Optional[discord.Embed] = None,
) -> None:
    """
    Send a direct message.

    Unlike the other helpers this one raises, because callers gate one-shot
    notification flags on whether the DM went through.

    Raises:
        LookupError: If the user cannot be resolved.
        discord.HTTPException: If Discord rejects the message (e.g. DMs closed).
    """
    user = await fetch_user(bot, user_id)
    if user is None:
        raise LookupError(f"User {user_id} not found")
    await user.send(content=content, embed=embed)


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    if len(text) <= limit:
        return text
    return text[: max(limit - len(suffix), 0)] + suffix
