"""
Persistent storage for per-guild audit and alert channel settings.
"""

from __future__ import annotations

from typing import Optional

import aiosqlite

from warden.datatypes.incident_datatypes import GuildConfig


class GuildConfigRepo:
    """Low-level CRUD for the ``guilds`` table."""

    @staticmethod
    async def get(conn: aiosqlite.Connection, guild_id: int) -> GuildConfig:
        """Return the guild's config; a guild without a row has no channels configured."""
        cursor = await conn.execute(
            "SELECT guild_id, audit_channel_id, alert_channel_id FROM guilds WHERE guild_id = ?",
            (guild_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return GuildConfig(guild_id=guild_id)
        return GuildConfig(
            guild_id=row["guild_id"],
            audit_channel_id=row["audit_channel_id"],
            alert_channel_id=row["alert_channel_id"],
        )

    @staticmethod
    async def set_audit_channel(
        conn: aiosqlite.Connection,
        guild_id: int,
        channel_id: Optional[int],
    ) -> None:
        await conn.execute(
            """
            INSERT INTO guilds (guild_id, audit_channel_id) VALUES (?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET audit_channel_id = excluded.audit_channel_id
            """,
            (guild_id, channel_id),
        )

    @staticmethod
    async def set_alert_channel(
        conn: aiosqlite.Connection,
        guild_id: int,
        channel_id: Optional[int],
    ) -> None:
        await conn.execute(
            """
            INSERT INTO guilds (guild_id, alert_channel_id) VALUES (?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET alert_channel_id = excluded.alert_channel_id
            """,
            (guild_id, channel_id),
        )


# Module-level singleton
guild_config_repo = GuildConfigRepo()
