from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from fakes import AUDIT_CHANNEL_ID, GUILD_ID
from warden.bot.cogs import guild_config_cmds
from warden.database.db_connection import db_connection
from warden.repositories.guild_config_repo import guild_config_repo


def make_services():
    return SimpleNamespace(audit_log=SimpleNamespace(pending=frozenset()))


class Ctx:
    def __init__(self, *, author_rank=10, bot_rank=5, guild_id=GUILD_ID, channel_id=AUDIT_CHANNEL_ID):
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.guild = SimpleNamespace(me=SimpleNamespace(top_role=bot_rank)) if guild_id else None
        self.author = SimpleNamespace(id=42, top_role=author_rank)
        self.respond = AsyncMock()


async def stored_config():
    async with db_connection.read() as conn:
        return await guild_config_repo.get(conn, GUILD_ID)


def test_setup_adds_cog():
    captured = {}

    def fake_add_cog(cog):
        captured["cog"] = cog

    fake_bot = SimpleNamespace(add_cog=fake_add_cog)
    guild_config_cmds.setup(fake_bot, make_services())
    assert isinstance(captured["cog"], guild_config_cmds.GuildConfigCog)


def test_outranks_bot_requires_strictly_higher_role():
    assert guild_config_cmds.outranks_bot(Ctx(author_rank=10, bot_rank=5)) is True
    assert guild_config_cmds.outranks_bot(Ctx(author_rank=5, bot_rank=5)) is False
    assert guild_config_cmds.outranks_bot(Ctx(author_rank=1, bot_rank=5)) is False


@pytest.mark.asyncio
async def test_audit_channel_toggles_on_and_off(db):
    cog = guild_config_cmds.GuildConfigCog(SimpleNamespace(), make_services())
    cb = guild_config_cmds.GuildConfigCog.audit_channel.callback

    ctx = Ctx()
    await cb(cog, ctx)
    assert (await stored_config()).audit_channel_id == AUDIT_CHANNEL_ID
    ctx.respond.assert_awaited_once_with(f"The audit channel is now <#{AUDIT_CHANNEL_ID}>.", ephemeral=True)

    ctx = Ctx()
    await cb(cog, ctx)
    assert (await stored_config()).audit_channel_id is None
    ctx.respond.assert_awaited_once_with("The audit channel is now off.", ephemeral=True)


@pytest.mark.asyncio
async def test_alert_channel_moves_to_new_channel(db):
    cog = guild_config_cmds.GuildConfigCog(SimpleNamespace(), make_services())
    cb = guild_config_cmds.GuildConfigCog.alert_channel.callback

    await cb(cog, Ctx(channel_id=111111111))
    await cb(cog, Ctx(channel_id=222222222))

    config = await stored_config()
    assert config.alert_channel_id == 222222222
    assert config.audit_channel_id is None


@pytest.mark.asyncio
async def test_toggle_denied_when_not_outranking_bot(db):
    cog = guild_config_cmds.GuildConfigCog(SimpleNamespace(), make_services())
    ctx = Ctx(author_rank=1, bot_rank=5)

    await guild_config_cmds.GuildConfigCog.audit_channel.callback(cog, ctx)

    assert (await stored_config()).audit_channel_id is None
    assert ctx.respond.await_args.kwargs["ephemeral"] is True


@pytest.mark.asyncio
async def test_toggle_requires_guild_context(db):
    cog = guild_config_cmds.GuildConfigCog(SimpleNamespace(), make_services())
    ctx = Ctx(guild_id=None)

    await guild_config_cmds.GuildConfigCog.audit_channel.callback(cog, ctx)

    ctx.respond.assert_awaited_once_with("This command can only be used in a server.", ephemeral=True)


@pytest.mark.asyncio
async def test_status_reports_channels(db):
    async with db_connection.transaction() as conn:
        await guild_config_repo.set_audit_channel(conn, GUILD_ID, AUDIT_CHANNEL_ID)
    cog = guild_config_cmds.GuildConfigCog(SimpleNamespace(), make_services())
    ctx = Ctx()

    await guild_config_cmds.GuildConfigCog.warden_status.callback(cog, ctx)

    message = ctx.respond.await_args.args[0]
    assert f"Audit channel: <#{AUDIT_CHANNEL_ID}>" in message
    assert "Alert channel: off" in message
