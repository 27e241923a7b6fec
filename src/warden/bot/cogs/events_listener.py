"""Event listener cog for Warden.

Handles bot lifecycle (``on_ready`` starts the duty cycle), victim decision
button presses and application command errors. Message events are handled by
the MessageListenerCog.
"""

import discord
from discord.ext import commands

from warden.bot.services import ModerationServices
from warden.ui.victim_decision_ui import handle_decision
from warden.util.logger import get_logger

logger = get_logger("events_listener_cog")


class EventsListenerCog(commands.Cog):
    """Cog containing bot lifecycle, interaction and command error handlers."""

    def __init__(self, discord_bot_instance, services: ModerationServices):
        self.bot = discord_bot_instance
        self.services = services
        logger.info("Events listener cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self):
        if self.bot.user:
            logger.info("Bot connected as %s (ID: %s)", self.bot.user, self.bot.user.id)
        else:
            logger.warning("Bot partially connected, but user information not yet available.")

        await self.bot.change_presence(
            status=discord.Status.online,
            activity=discord.Activity(type=discord.ActivityType.watching, name="over the chat"),
        )
        self.services.duty_cycle.start()

    @commands.Cog.listener(name="on_interaction")
    async def on_interaction(self, interaction: discord.Interaction):
        if interaction.type != discord.InteractionType.component:
            return
        try:
            await handle_decision(interaction, self.services.audit_log, self.services.settings)
        except Exception as exc:
            logger.error("[EVENTS] Failed to handle interaction %s: %s", interaction.id, exc, exc_info=True)

    @commands.Cog.listener(name="on_application_command_error")
    async def on_application_command_error(self, ctx: discord.ApplicationContext, error: discord.DiscordException):
        logger.error("[EVENTS] Command /%s failed: %s", ctx.command, error)
        try:
            await ctx.respond("Something went wrong running that command.", ephemeral=True)
        except discord.HTTPException as exc:
            logger.debug("[EVENTS] Could not report command error: %s", exc)


def setup(discord_bot_instance, services: ModerationServices):
    """Register the EventsListenerCog with the bot."""
    discord_bot_instance.add_cog(EventsListenerCog(discord_bot_instance, services))
