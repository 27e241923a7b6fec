"""
Persistent storage for incidents and their triage children: victim
interventions, group interventions and pardons.

Timestamps are INTEGER unix seconds.
"""

from __future__ import annotations

from typing import List, Optional

import aiosqlite

from warden.datatypes.incident_datatypes import (
    GroupIntervention,
    Incident,
    VictimIntervention,
)
from warden.util.logger import get_logger

logger = get_logger("incident_repo")


class IncidentRepo:
    """Low-level CRUD for ``incidents`` and its child tables."""

    # ------------------------------------------------------------------
    # Incidents
    # ------------------------------------------------------------------

    @staticmethod
    async def create(
        conn: aiosqlite.Connection,
        *,
        guild_id: int,
        channel_id: int,
        message_id: int,
        offender_id: int,
        content: str,
        context: str,
        categories: str,
        created_at: int,
    ) -> Incident:
        cursor = await conn.execute(
            """
            INSERT INTO incidents
                (guild_id, channel_id, message_id, offender_id, content, context, categories, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (guild_id, channel_id, message_id, offender_id, content, context, categories, created_at),
        )
        return Incident(
            id=int(cursor.lastrowid),
            guild_id=guild_id,
            channel_id=channel_id,
            message_id=message_id,
            offender_id=offender_id,
            content=content,
            context=context,
            categories=categories,
            created_at=created_at,
        )

    @staticmethod
    async def get(conn: aiosqlite.Connection, incident_id: int) -> Optional[Incident]:
        cursor = await conn.execute("SELECT * FROM incidents WHERE id = ?", (incident_id,))
        row = await cursor.fetchone()
        return Incident.from_row(row) if row is not None else None

    @staticmethod
    async def list_unprocessed(conn: aiosqlite.Connection, since: int) -> List[Incident]:
        """
        Incidents created after ``since`` that have no recorded outcome yet.

        An incident leaves this set as soon as it gets an ignore reason or any
        intervention, probation or punishment row, so repeated calls without
        new triage results return the same rows and nothing already handled.
        """
        cursor = await conn.execute(
            """
            SELECT * FROM incidents i
            WHERE i.created_at > ?
              AND i.ignored_because IS NULL
              AND NOT EXISTS (SELECT 1 FROM victim_interventions v WHERE v.incident_id = i.id)
              AND NOT EXISTS (SELECT 1 FROM group_interventions g WHERE g.incident_id = i.id)
              AND NOT EXISTS (SELECT 1 FROM probations p WHERE p.incident_id = i.id)
              AND NOT EXISTS (SELECT 1 FROM punishments u WHERE u.incident_id = i.id)
            ORDER BY i.id
            """,
            (since,),
        )
        rows = await cursor.fetchall()
        return [Incident.from_row(row) for row in rows]

    @staticmethod
    async def set_ignored(
        conn: aiosqlite.Connection,
        incident_id: int,
        reason: str,
        *,
        pardoned: bool = False,
    ) -> None:
        await conn.execute(
            "UPDATE incidents SET ignored_because = ?, pardoned = ? WHERE id = ?",
            (reason, int(pardoned), incident_id),
        )

    # ------------------------------------------------------------------
    # Interventions
    # ------------------------------------------------------------------

    @staticmethod
    async def create_victim_intervention(
        conn: aiosqlite.Connection,
        incident_id: int,
        victim_id: int,
        rule: str,
        created_at: int,
    ) -> VictimIntervention:
        cursor = await conn.execute(
            "INSERT INTO victim_interventions (incident_id, victim_id, rule, created_at) VALUES (?, ?, ?, ?)",
            (incident_id, victim_id, rule, created_at),
        )
        return VictimIntervention(
            id=int(cursor.lastrowid),
            incident_id=incident_id,
            victim_id=victim_id,
            rule=rule,
            created_at=created_at,
        )

    @staticmethod
    async def create_group_intervention(
        conn: aiosqlite.Connection,
        incident_id: int,
        rule: str,
        message_deleted: bool,
        caution: Optional[str],
        created_at: int,
    ) -> GroupIntervention:
        cursor = await conn.execute(
            """
            INSERT INTO group_interventions (incident_id, rule, message_deleted, caution, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (incident_id, rule, int(message_deleted), caution, created_at),
        )
        return GroupIntervention(
            id=int(cursor.lastrowid),
            incident_id=incident_id,
            rule=rule,
            message_deleted=message_deleted,
            caution=caution,
            created_at=created_at,
        )

    @staticmethod
    async def find_pending_victim_intervention(
        conn: aiosqlite.Connection,
        guild_id: int,
        offender_id: int,
        victim_id: int,
    ) -> Optional[VictimIntervention]:
        """Newest intervention for this victim that has neither a pardon nor a probation yet."""
        cursor = await conn.execute(
            """
            SELECT v.* FROM victim_interventions v
            JOIN incidents i ON i.id = v.incident_id
            WHERE i.guild_id = ? AND i.offender_id = ? AND v.victim_id = ?
              AND NOT EXISTS (SELECT 1 FROM pardons pa WHERE pa.intervention_id = v.id)
              AND NOT EXISTS (SELECT 1 FROM probations p WHERE p.incident_id = v.incident_id)
            ORDER BY v.id DESC
            LIMIT 1
            """,
            (guild_id, offender_id, victim_id),
        )
        row = await cursor.fetchone()
        return VictimIntervention.from_row(row) if row is not None else None

    # ------------------------------------------------------------------
    # Pardons
    # ------------------------------------------------------------------

    @staticmethod
    async def create_pardon(
        conn: aiosqlite.Connection,
        incident_id: int,
        intervention_id: int,
        created_at: int,
    ) -> int:
        cursor = await conn.execute(
            "INSERT INTO pardons (incident_id, intervention_id, created_at) VALUES (?, ?, ?)",
            (incident_id, intervention_id, created_at),
        )
        return int(cursor.lastrowid)

    @staticmethod
    async def has_pardon(
        conn: aiosqlite.Connection,
        guild_id: int,
        offender_id: int,
        victim_id: int,
        since: int,
    ) -> bool:
        """True if ``victim_id`` pardoned ``offender_id`` in this guild at or after ``since``."""
        cursor = await conn.execute(
            """
            SELECT 1 FROM pardons pa
            JOIN incidents i ON i.id = pa.incident_id
            JOIN victim_interventions v ON v.id = pa.intervention_id
            WHERE i.guild_id = ? AND i.offender_id = ? AND v.victim_id = ? AND pa.created_at >= ?
            LIMIT 1
            """,
            (guild_id, offender_id, victim_id, since),
        )
        return await cursor.fetchone() is not None


# Module-level singleton
incident_repo = IncidentRepo()
