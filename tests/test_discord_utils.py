from types import SimpleNamespace

import pytest

from fakes import CHANNEL_ID, GUILD_ID, OFFENDER_ID, FakeBot, FakeMember, FakeMessage
from warden.util import discord_utils


@pytest.mark.parametrize(
    "value, expected",
    [
        ("123456789012345678", True),
        ("9223372036854775807", True),
        ("9223372036854775808", False),
        ("99999999999999999999999", False),
        ("12 34", False),
        ("abc", False),
        ("", False),
        ("١٢٣", False),
    ],
)
def test_is_snowflake(value, expected):
    assert discord_utils.is_snowflake(value) is expected


def test_is_ignored_author():
    assert discord_utils.is_ignored_author(SimpleNamespace(bot=True)) is True
    assert discord_utils.is_ignored_author(SimpleNamespace(bot=False)) is False


def test_truncate():
    assert discord_utils.truncate("hello", 10) == "hello"
    assert discord_utils.truncate("hello world", 8) == "hello..."


@pytest.mark.asyncio
async def test_fetch_message_returns_none_when_missing():
    bot = FakeBot()
    bot.add_channel(CHANNEL_ID)

    assert await discord_utils.fetch_message(bot, CHANNEL_ID, 1) is None
    assert await discord_utils.fetch_message(bot, CHANNEL_ID + 1, 1) is None


@pytest.mark.asyncio
async def test_resolve_display_name_fallbacks():
    bot = FakeBot()
    guild = bot.add_guild()
    guild.members[OFFENDER_ID] = FakeMember(OFFENDER_ID, "Nickname")
    bot.add_user(OFFENDER_ID + 1, "global-name")

    assert await discord_utils.resolve_display_name(bot, GUILD_ID, OFFENDER_ID) == "Nickname"
    assert await discord_utils.resolve_display_name(bot, GUILD_ID, OFFENDER_ID + 1) == "global-name"
    assert await discord_utils.resolve_display_name(bot, GUILD_ID, OFFENDER_ID + 2) == "Unknown"


@pytest.mark.asyncio
async def test_safe_delete_message_reports_failure():
    bot = FakeBot()
    message = FakeMessage(1, bot.add_channel(CHANNEL_ID))
    message.fail_delete = True

    assert await discord_utils.safe_delete_message(message) is False
    message.fail_delete = False
    assert await discord_utils.safe_delete_message(message) is True
    assert message.deleted is True


@pytest.mark.asyncio
async def test_send_dm_raises_for_unknown_user():
    with pytest.raises(LookupError):
        await discord_utils.send_dm(FakeBot(), OFFENDER_ID, content="hi")


@pytest.mark.asyncio
async def test_send_dm_delivers_embed():
    bot = FakeBot()
    user = bot.add_user(OFFENDER_ID)

    await discord_utils.send_dm(bot, OFFENDER_ID, content="hi")

    assert user.dms == [{"content": "hi", "embed": None}]
