"""
Persistent storage for probations and the punishments that violate them.

Each notification and enforcement step is gated by a one-shot flag column
(``start_informed``, ``end_informed``, ``executed``); the list queries only
return rows whose flag is still unset.
"""

from __future__ import annotations

from typing import List, Optional

import aiosqlite

from warden.datatypes.incident_datatypes import (
    Incident,
    Probation,
    ProbationNotice,
    Punishment,
    PunishmentKind,
    PunishmentOrder,
)
from warden.util.logger import get_logger

logger = get_logger("probation_repo")

_INCIDENT_COLUMNS = (
    "i.id, i.guild_id, i.channel_id, i.message_id, i.offender_id, i.content, "
    "i.context, i.categories, i.created_at, i.ignored_because, i.pardoned"
)

# Rule and caution of whichever intervention an incident received
_RULE_OF = (
    "COALESCE("
    "(SELECT g.rule FROM group_interventions g WHERE g.incident_id = {col} ORDER BY g.id LIMIT 1), "
    "(SELECT v.rule FROM victim_interventions v WHERE v.incident_id = {col} ORDER BY v.id LIMIT 1), "
    "'')"
)
_CAUTION_OF = "(SELECT g.caution FROM group_interventions g WHERE g.incident_id = {col} ORDER BY g.id LIMIT 1)"


def _probation_from_aliased(row: aiosqlite.Row) -> Probation:
    return Probation(
        id=row["probation_id"],
        incident_id=row["id"],
        expires_at=row["probation_expires_at"],
        start_informed=bool(row["probation_start_informed"]),
        end_informed=bool(row["probation_end_informed"]),
        created_at=row["probation_created_at"],
    )


class ProbationRepo:
    """Low-level CRUD for the ``probations`` table."""

    @staticmethod
    async def create(
        conn: aiosqlite.Connection,
        incident_id: int,
        expires_at: int,
        created_at: int,
    ) -> Probation:
        cursor = await conn.execute(
            "INSERT INTO probations (incident_id, expires_at, created_at) VALUES (?, ?, ?)",
            (incident_id, expires_at, created_at),
        )
        return Probation(
            id=int(cursor.lastrowid),
            incident_id=incident_id,
            expires_at=expires_at,
            start_informed=False,
            end_informed=False,
            created_at=created_at,
        )

    @staticmethod
    async def get(conn: aiosqlite.Connection, probation_id: int) -> Optional[Probation]:
        cursor = await conn.execute("SELECT * FROM probations WHERE id = ?", (probation_id,))
        row = await cursor.fetchone()
        return Probation.from_row(row) if row is not None else None

    @staticmethod
    async def find_active_for_offender(
        conn: aiosqlite.Connection,
        guild_id: int,
        offender_id: int,
        now: int,
        *,
        victim_id: Optional[int] = None,
        exclude_incident_id: Optional[int] = None,
    ) -> Optional[Probation]:
        """
        One unexpired probation of ``offender_id`` in ``guild_id``, if any.

        With ``victim_id`` the originating incident must have a victim
        intervention naming that victim; without it the originating incident
        must have a group intervention. The probation expiring last wins.
        """
        if victim_id is None:
            scope = "EXISTS (SELECT 1 FROM group_interventions g WHERE g.incident_id = i.id)"
            scope_params: tuple = ()
        else:
            scope = "EXISTS (SELECT 1 FROM victim_interventions v WHERE v.incident_id = i.id AND v.victim_id = ?)"
            scope_params = (victim_id,)

        cursor = await conn.execute(
            f"""
            SELECT p.* FROM probations p
            JOIN incidents i ON i.id = p.incident_id
            WHERE i.guild_id = ? AND i.offender_id = ? AND p.expires_at > ?
              AND i.id != ?
              AND {scope}
            ORDER BY p.expires_at DESC, p.id DESC
            LIMIT 1
            """,
            (guild_id, offender_id, now, exclude_incident_id or -1, *scope_params),
        )
        row = await cursor.fetchone()
        return Probation.from_row(row) if row is not None else None

    @staticmethod
    async def list_start_uninformed(conn: aiosqlite.Connection) -> List[ProbationNotice]:
        cursor = await conn.execute(
            f"""
            SELECT {_INCIDENT_COLUMNS},
                   p.id AS probation_id, p.expires_at AS probation_expires_at,
                   p.start_informed AS probation_start_informed,
                   p.end_informed AS probation_end_informed,
                   p.created_at AS probation_created_at,
                   {_RULE_OF.format(col="i.id")} AS rule,
                   {_CAUTION_OF.format(col="i.id")} AS caution
            FROM probations p
            JOIN incidents i ON i.id = p.incident_id
            WHERE p.start_informed = 0
            ORDER BY p.id
            """
        )
        rows = await cursor.fetchall()
        return [
            ProbationNotice(
                probation=_probation_from_aliased(row),
                incident=Incident.from_row(row),
                rule=row["rule"],
                caution=row["caution"],
            )
            for row in rows
        ]

    @staticmethod
    async def list_end_uninformed(conn: aiosqlite.Connection, now: int) -> List[ProbationNotice]:
        cursor = await conn.execute(
            f"""
            SELECT {_INCIDENT_COLUMNS},
                   p.id AS probation_id, p.expires_at AS probation_expires_at,
                   p.start_informed AS probation_start_informed,
                   p.end_informed AS probation_end_informed,
                   p.created_at AS probation_created_at,
                   {_RULE_OF.format(col="i.id")} AS rule
            FROM probations p
            JOIN incidents i ON i.id = p.incident_id
            WHERE p.end_informed = 0 AND p.expires_at <= ?
            ORDER BY p.id
            """,
            (now,),
        )
        rows = await cursor.fetchall()
        return [
            ProbationNotice(
                probation=_probation_from_aliased(row),
                incident=Incident.from_row(row),
                rule=row["rule"],
            )
            for row in rows
        ]

    @staticmethod
    async def mark_start_informed(conn: aiosqlite.Connection, probation_id: int) -> None:
        await conn.execute("UPDATE probations SET start_informed = 1 WHERE id = ?", (probation_id,))

    @staticmethod
    async def mark_end_informed(conn: aiosqlite.Connection, probation_id: int) -> None:
        await conn.execute("UPDATE probations SET end_informed = 1 WHERE id = ?", (probation_id,))


class PunishmentRepo:
    """Low-level CRUD for the ``punishments`` table."""

    @staticmethod
    async def create(
        conn: aiosqlite.Connection,
        probation_id: int,
        incident_id: int,
        until: int,
        kind: PunishmentKind,
        created_at: int,
    ) -> Punishment:
        cursor = await conn.execute(
            """
            INSERT INTO punishments (probation_id, incident_id, until, kind, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (probation_id, incident_id, until, kind, created_at),
        )
        return Punishment(
            id=int(cursor.lastrowid),
            probation_id=probation_id,
            incident_id=incident_id,
            until=until,
            kind=kind,
            executed=False,
            created_at=created_at,
        )

    @staticmethod
    async def count_for_offender(conn: aiosqlite.Connection, guild_id: int, offender_id: int) -> int:
        cursor = await conn.execute(
            """
            SELECT COUNT(*) FROM punishments u
            JOIN incidents i ON i.id = u.incident_id
            WHERE i.guild_id = ? AND i.offender_id = ?
            """,
            (guild_id, offender_id),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row is not None else 0

    @staticmethod
    async def list_unexecuted(conn: aiosqlite.Connection) -> List[PunishmentOrder]:
        cursor = await conn.execute(
            f"""
            SELECT {_INCIDENT_COLUMNS},
                   u.id AS punishment_id, u.probation_id AS punishment_probation_id,
                   u.until AS punishment_until, u.kind AS punishment_kind,
                   u.created_at AS punishment_created_at,
                   {_RULE_OF.format(col="p.incident_id")} AS rule
            FROM punishments u
            JOIN incidents i ON i.id = u.incident_id
            JOIN probations p ON p.id = u.probation_id
            WHERE u.executed = 0
            ORDER BY u.id
            """
        )
        rows = await cursor.fetchall()
        return [
            PunishmentOrder(
                punishment=Punishment(
                    id=row["punishment_id"],
                    probation_id=row["punishment_probation_id"],
                    incident_id=row["id"],
                    until=row["punishment_until"],
                    kind=row["punishment_kind"],
                    executed=False,
                    created_at=row["punishment_created_at"],
                ),
                incident=Incident.from_row(row),
                rule=row["rule"],
            )
            for row in rows
        ]

    @staticmethod
    async def mark_executed(conn: aiosqlite.Connection, punishment_id: int) -> None:
        await conn.execute("UPDATE punishments SET executed = 1 WHERE id = ?", (punishment_id,))


# Module-level singletons
probation_repo = ProbationRepo()
punishment_repo = PunishmentRepo()
