"""
Message listener cog: turns flagged guild messages into incidents.

For every guild message from a human author:

1. Cache it (the cache supplies conversation context for later incidents).
2. Classify it with the moderation endpoint.
3. If flagged: mark it with 🚨, record an incident with its content and the
   preceding conversation, audit the flagged categories and run the duty
   cycle straight away instead of waiting for the next tick.
"""

import asyncio

import discord
from discord.ext import commands

from warden.bot.services import ModerationServices
from warden.database.db_connection import db_connection
from warden.datatypes.incident_datatypes import CachedMessage, Incident
from warden.repositories.incident_repo import incident_repo
from warden.repositories.message_cache_repo import message_cache_repo
from warden.util.discord_utils import FLAG_EMOJI, is_ignored_author
from warden.util.logger import get_logger
from warden.util.timer import unix_now

logger = get_logger("message_listener")


def capture_content(message: discord.Message, limit: int) -> str:
    """Message text truncated to ``limit`` characters, followed by attachment URLs."""
    text = message.content or ""
    suffix = "... " if len(text) > limit else " "
    attachments = " ".join(attachment.url for attachment in message.attachments)
    return (text[:limit] + suffix + attachments).strip()


class MessageListenerCog(commands.Cog):
    """Cog that classifies new messages and records incidents."""

    def __init__(self, discord_bot_instance, services: ModerationServices):
        self.bot = discord_bot_instance
        self.services = services
        logger.info("[MESSAGE LISTENER] Message listener cog loaded")

    async def _cache_message(self, message: discord.Message, now: int) -> None:
        settings = self.services.settings
        cached = CachedMessage(
            message_id=message.id,
            guild_id=message.guild.id,
            channel_id=message.channel.id,
            author_id=message.author.id,
            content=message.content or "",
            created_at=now,
        )
        async with db_connection.transaction() as conn:
            await message_cache_repo.insert_and_prune(
                conn,
                cached,
                older_than=now - int(settings.message_cache_hours * 3600),
                keep_per_channel=settings.message_cache_per_channel,
            )

    async def _build_context(self, message: discord.Message) -> str:
        async with db_connection.read() as conn:
            previous = await message_cache_repo.recent_before(
                conn,
                message.guild.id,
                message.channel.id,
                message.id,
                self.services.settings.context_messages,
            )
        lines = [f"{cached.author_id}: {cached.content}" for cached in previous]
        lines.append(f"{message.author.id}: {message.content}")
        return "\n".join(lines)

    async def _record_incident(self, message: discord.Message, categories: str, now: int) -> Incident:
        context = await self._build_context(message)
        async with db_connection.transaction() as conn:
            return await incident_repo.create(
                conn,
                guild_id=message.guild.id,
                channel_id=message.channel.id,
                message_id=message.id,
                offender_id=message.author.id,
                content=capture_content(message, self.services.settings.content_limit),
                context=context,
                categories=categories,
                created_at=now,
            )

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message):
        if message.guild is None or is_ignored_author(message.author):
            return

        now = unix_now()
        try:
            await self._cache_message(message, now)
        except Exception as exc:
            logger.error("[MESSAGE LISTENER] Failed to cache message %s: %s", message.id, exc)

        try:
            categories = await self.services.classifier.classify(message.content or "", message.attachments)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[MESSAGE LISTENER] Classification of message %s failed: %s", message.id, exc)
            return
        if not categories:
            return

        try:
            await message.add_reaction(FLAG_EMOJI)
        except Exception as exc:
            logger.debug("[MESSAGE LISTENER] Could not flag message %s: %s", message.id, exc)

        try:
            incident = await self._record_incident(message, categories, now)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[MESSAGE LISTENER] Failed to record incident for message %s: %s", message.id, exc)
            return
        logger.info("[MESSAGE LISTENER] Message %s: %s: incident %d", message.id, categories, incident.id)
        self.services.audit_log.log(
            incident,
            f"Flagged message by {message.author.id} for: {categories}",
            quote=incident.content,
        )

        await self.services.duty_cycle.run()


def setup(discord_bot_instance, services: ModerationServices):
    """Register the MessageListenerCog with the bot."""
    discord_bot_instance.add_cog(MessageListenerCog(discord_bot_instance, services))
