from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest

from fakes import CHANNEL_ID, GUILD_ID, OFFENDER_ID, FakeChannel, FakeMessage, fast_settings, fetch_all
from warden.ai.errors import ClassifierError
from warden.bot.cogs import message_listener
from warden.util.discord_utils import FLAG_EMOJI


def make_services(categories=False, error=None, **settings):
    return SimpleNamespace(
        settings=fast_settings(**settings),
        classifier=SimpleNamespace(classify=AsyncMock(return_value=categories, side_effect=error)),
        audit_log=SimpleNamespace(log=Mock()),
        duty_cycle=SimpleNamespace(run=AsyncMock(return_value=True)),
    )


def guild_message(message_id, content, author_id=OFFENDER_ID, channel=None, bot=False):
    message = FakeMessage(message_id, channel or FakeChannel(CHANNEL_ID), content, author_id=author_id)
    message.guild = SimpleNamespace(id=GUILD_ID)
    message.author.bot = bot
    return message


def test_capture_content_truncates_and_appends_attachments():
    message = guild_message(1, "abcdefghij")
    message.attachments = [SimpleNamespace(url="https://cdn.example/a.png")]

    assert message_listener.capture_content(message, 4) == "abcd... https://cdn.example/a.png"
    assert message_listener.capture_content(message, 100) == "abcdefghij https://cdn.example/a.png"


def test_capture_content_without_attachments():
    assert message_listener.capture_content(guild_message(1, "hello"), 100) == "hello"


@pytest.mark.asyncio
async def test_flagged_message_becomes_incident(db):
    services = make_services(categories=False)
    cog = message_listener.MessageListenerCog(SimpleNamespace(), services)
    channel = FakeChannel(CHANNEL_ID)

    await cog.on_message(guild_message(1, "hi all", author_id=42, channel=channel))
    services.classifier.classify.return_value = "harassment"
    flagged = guild_message(2, "you are all idiots", channel=channel)
    await cog.on_message(flagged)

    incidents = await fetch_all("SELECT * FROM incidents")
    assert len(incidents) == 1
    incident = incidents[0]
    assert incident["message_id"] == 2
    assert incident["offender_id"] == OFFENDER_ID
    assert incident["categories"] == "harassment"
    assert incident["context"] == f"42: hi all\n{OFFENDER_ID}: you are all idiots"
    assert FLAG_EMOJI in flagged.reactions

    text = services.audit_log.log.call_args.args[1]
    assert text == f"Flagged message by {OFFENDER_ID} for: harassment"
    services.duty_cycle.run.assert_awaited_once()


@pytest.mark.asyncio
async def test_clean_message_is_only_cached(db):
    services = make_services(categories=False)
    cog = message_listener.MessageListenerCog(SimpleNamespace(), services)

    await cog.on_message(guild_message(1, "good morning"))

    assert await fetch_all("SELECT * FROM incidents") == []
    assert len(await fetch_all("SELECT * FROM cached_messages")) == 1
    services.duty_cycle.run.assert_not_awaited()


@pytest.mark.asyncio
async def test_bots_and_direct_messages_are_ignored(db):
    services = make_services(categories="harassment")
    cog = message_listener.MessageListenerCog(SimpleNamespace(), services)
    direct = guild_message(1, "idiots")
    direct.guild = None

    await cog.on_message(direct)
    await cog.on_message(guild_message(2, "idiots", bot=True))

    services.classifier.classify.assert_not_awaited()
    assert await fetch_all("SELECT * FROM cached_messages") == []


@pytest.mark.asyncio
async def test_classifier_failure_records_nothing(db):
    services = make_services(error=ClassifierError("no results"))
    cog = message_listener.MessageListenerCog(SimpleNamespace(), services)

    await cog.on_message(guild_message(1, "idiots"))

    assert await fetch_all("SELECT * FROM incidents") == []
    services.audit_log.log.assert_not_called()
    services.duty_cycle.run.assert_not_awaited()


@pytest.mark.asyncio
async def test_incident_write_failure_is_contained(db, monkeypatch):
    services = make_services(categories="harassment")
    cog = message_listener.MessageListenerCog(SimpleNamespace(), services)
    monkeypatch.setattr(cog, "_record_incident", AsyncMock(side_effect=RuntimeError("database is locked")))

    await cog.on_message(guild_message(1, "idiots"))

    services.audit_log.log.assert_not_called()
    services.duty_cycle.run.assert_not_awaited()


def test_setup_adds_cog():
    fake_bot = SimpleNamespace(add_cog=Mock())

    message_listener.setup(fake_bot, make_services())

    cog = fake_bot.add_cog.call_args.args[0]
    assert isinstance(cog, message_listener.MessageListenerCog)
