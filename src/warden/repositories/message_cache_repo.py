"""
Rolling cache of recent guild messages used to reconstruct the conversation
around a flagged message.

Retention policy: every insert prunes rows older than the configured age and
keeps at most the configured number of messages for the inserted channel.
"""

from __future__ import annotations

from typing import List

import aiosqlite

from warden.datatypes.incident_datatypes import CachedMessage


class MessageCacheRepo:
    """Low-level CRUD for the ``cached_messages`` table."""

    @staticmethod
    async def insert(conn: aiosqlite.Connection, message: CachedMessage) -> None:
        await conn.execute(
            """
            INSERT OR REPLACE INTO cached_messages
                (message_id, guild_id, channel_id, author_id, content, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                message.message_id,
                message.guild_id,
                message.channel_id,
                message.author_id,
                message.content,
                message.created_at,
            ),
        )

    @staticmethod
    async def prune(
        conn: aiosqlite.Connection,
        guild_id: int,
        channel_id: int,
        *,
        older_than: int,
        keep_per_channel: int,
    ) -> int:
        """Delete expired rows everywhere and overflow rows in one channel. Returns rows deleted."""
        cursor = await conn.execute(
            "DELETE FROM cached_messages WHERE created_at < ?",
            (older_than,),
        )
        deleted = max(cursor.rowcount, 0)

        cursor = await conn.execute(
            """
            DELETE FROM cached_messages
            WHERE guild_id = ? AND channel_id = ?
              AND message_id NOT IN (
                SELECT message_id FROM cached_messages
                WHERE guild_id = ? AND channel_id = ?
                ORDER BY created_at DESC, message_id DESC
                LIMIT ?
              )
            """,
            (guild_id, channel_id, guild_id, channel_id, max(keep_per_channel, 0)),
        )
        return deleted + max(cursor.rowcount, 0)

    @staticmethod
    async def insert_and_prune(
        conn: aiosqlite.Connection,
        message: CachedMessage,
        *,
        older_than: int,
        keep_per_channel: int,
    ) -> None:
        await MessageCacheRepo.insert(conn, message)
        await MessageCacheRepo.prune(
            conn,
            message.guild_id,
            message.channel_id,
            older_than=older_than,
            keep_per_channel=keep_per_channel,
        )

    @staticmethod
    async def recent_before(
        conn: aiosqlite.Connection,
        guild_id: int,
        channel_id: int,
        before_message_id: int,
        limit: int,
    ) -> List[CachedMessage]:
        """Up to ``limit`` messages preceding ``before_message_id``, oldest first."""
        cursor = await conn.execute(
            """
            SELECT * FROM cached_messages
            WHERE guild_id = ? AND channel_id = ? AND message_id < ?
            ORDER BY message_id DESC
            LIMIT ?
            """,
            (guild_id, channel_id, before_message_id, limit),
        )
        rows = await cursor.fetchall()
        return [
            CachedMessage(
                message_id=row["message_id"],
                guild_id=row["guild_id"],
                channel_id=row["channel_id"],
                author_id=row["author_id"],
                content=row["content"],
                created_at=row["created_at"],
            )
            for row in reversed(rows)
        ]


# Module-level singleton
message_cache_repo = MessageCacheRepo()
