"""
Warden
======

A Discord bot that flags harmful messages with a moderation classifier,
triages each incident with an LLM and walks offenders through intervention,
probation and punishment, keeping a per-incident audit log for the staff.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. WARDEN_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("WARDEN_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv
from openai import AsyncOpenAI

from warden.bot.cogs import events_listener, guild_config_cmds, message_listener
from warden.bot.services import ModerationServices, build_services
from warden.configuration.app_configuration import app_config
from warden.database.database import initialize_database, shutdown_database
from warden.util.logger import get_logger, handle_exception


logger = get_logger("main")


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents for guild messages with content, members and reactions."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.reactions = True
    intents.members = True
    return intents


def build_openai_client() -> AsyncOpenAI:
    ai_settings = app_config.ai_settings
    return AsyncOpenAI(api_key=ai_settings.api_key, base_url=ai_settings.base_url)


def load_cogs(discord_bot_instance: discord.Bot, services: ModerationServices) -> None:
    events_listener.setup(discord_bot_instance, services)
    message_listener.setup(discord_bot_instance, services)
    guild_config_cmds.setup(discord_bot_instance, services)

    logger.info("All cogs loaded successfully.")


def create_bot(client: AsyncOpenAI) -> tuple[discord.Bot, ModerationServices]:
    """Instantiate the Discord bot, its services and register all cogs."""
    bot = discord.Bot(intents=build_intents())
    services = build_services(bot, app_config, client)
    load_cogs(bot, services)
    return bot, services


async def start_bot(bot: discord.Bot, token: str) -> None:
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot | None, services: ModerationServices | None) -> None:
    """Stop the duty cycle, post pending audit batches, close the bot and the database."""
    if services is not None:
        try:
            await services.duty_cycle.shutdown()
            await services.audit_log.flush_all()
        except Exception as exc:
            logger.exception("Error during moderation shutdown: %s", exc)

    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the bot: %s", exc)

    await shutdown_database()
    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the database, services and bot, returning an exit code."""
    token = load_environment()

    logger.info("Initializing database...")
    if not await initialize_database():
        logger.critical("Failed to initialize database. Bot cannot start.")
        return 1

    bot: discord.Bot | None = None
    services: ModerationServices | None = None
    exit_code = 0
    try:
        bot, services = create_bot(build_openai_client())
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, services)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    sys.excepthook = handle_exception
    logger.info("Starting Warden…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
