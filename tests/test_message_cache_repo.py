import pytest

from fakes import CHANNEL_ID, GUILD_ID, fetch_all
from warden.database.db_connection import db_connection
from warden.datatypes.incident_datatypes import CachedMessage
from warden.repositories.message_cache_repo import message_cache_repo


def cached(message_id, created_at, channel_id=CHANNEL_ID, content=None):
    return CachedMessage(
        message_id=message_id,
        guild_id=GUILD_ID,
        channel_id=channel_id,
        author_id=42,
        content=content or f"message {message_id}",
        created_at=created_at,
    )


async def store(message, *, older_than=0, keep_per_channel=100):
    async with db_connection.transaction() as conn:
        await message_cache_repo.insert_and_prune(
            conn, message, older_than=older_than, keep_per_channel=keep_per_channel
        )


@pytest.mark.asyncio
async def test_keeps_at_most_n_messages_per_channel(db):
    for message_id in range(1, 6):
        await store(cached(message_id, 1000 + message_id), keep_per_channel=3)
    await store(cached(99, 1000, channel_id=CHANNEL_ID + 1), keep_per_channel=3)

    rows = await fetch_all("SELECT message_id FROM cached_messages WHERE channel_id = ? ORDER BY message_id", (CHANNEL_ID,))
    assert [row["message_id"] for row in rows] == [3, 4, 5]
    assert len(await fetch_all("SELECT * FROM cached_messages WHERE channel_id = ?", (CHANNEL_ID + 1,))) == 1


@pytest.mark.asyncio
async def test_prunes_expired_messages_in_every_channel(db):
    await store(cached(1, 100, channel_id=CHANNEL_ID + 1))
    await store(cached(2, 500))

    await store(cached(3, 1000), older_than=400)

    rows = await fetch_all("SELECT message_id FROM cached_messages ORDER BY message_id")
    assert [row["message_id"] for row in rows] == [2, 3]


@pytest.mark.asyncio
async def test_recent_before_returns_oldest_first(db):
    for message_id in range(1, 6):
        await store(cached(message_id, 1000 + message_id))

    async with db_connection.read() as conn:
        previous = await message_cache_repo.recent_before(conn, GUILD_ID, CHANNEL_ID, 5, 3)

    assert [m.message_id for m in previous] == [2, 3, 4]


@pytest.mark.asyncio
async def test_reinserting_message_replaces_it(db):
    await store(cached(1, 1000, content="before"))
    await store(cached(1, 1000, content="after"))

    rows = await fetch_all("SELECT content FROM cached_messages")
    assert [row["content"] for row in rows] == ["after"]
