"""
Database schema initialization.

Creates the incident workflow tables and their lookup indexes. Rows are
append-only audit history; nothing here cascades deletes.
"""

import aiosqlite
from warden.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates tables and indexes and records the schema version."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized")

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS guilds (
                guild_id INTEGER PRIMARY KEY,
                audit_channel_id INTEGER,
                alert_channel_id INTEGER
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS incidents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id INTEGER NOT NULL,
                channel_id INTEGER NOT NULL,
                message_id INTEGER NOT NULL,
                offender_id INTEGER NOT NULL,
                content TEXT NOT NULL DEFAULT '',
                context TEXT NOT NULL DEFAULT '',
                categories TEXT NOT NULL DEFAULT '',
                created_at INTEGER NOT NULL,
                ignored_because TEXT,
                pardoned INTEGER NOT NULL DEFAULT 0
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS victim_interventions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                incident_id INTEGER NOT NULL REFERENCES incidents(id),
                victim_id INTEGER NOT NULL,
                rule TEXT NOT NULL,
                created_at INTEGER NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS group_interventions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                incident_id INTEGER NOT NULL REFERENCES incidents(id),
                rule TEXT NOT NULL,
                message_deleted INTEGER NOT NULL DEFAULT 0,
                caution TEXT,
                created_at INTEGER NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS pardons (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                incident_id INTEGER NOT NULL REFERENCES incidents(id),
                intervention_id INTEGER NOT NULL REFERENCES victim_interventions(id),
                created_at INTEGER NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS probations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                incident_id INTEGER NOT NULL REFERENCES incidents(id),
                expires_at INTEGER NOT NULL,
                start_informed INTEGER NOT NULL DEFAULT 0,
                end_informed INTEGER NOT NULL DEFAULT 0,
                created_at INTEGER NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS punishments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                probation_id INTEGER NOT NULL REFERENCES probations(id),
                incident_id INTEGER NOT NULL REFERENCES incidents(id),
                until INTEGER NOT NULL,
                kind TEXT NOT NULL DEFAULT 'mute',
                executed INTEGER NOT NULL DEFAULT 0,
                created_at INTEGER NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS cached_messages (
                message_id INTEGER PRIMARY KEY,
                guild_id INTEGER NOT NULL,
                channel_id INTEGER NOT NULL,
                author_id INTEGER NOT NULL,
                content TEXT NOT NULL DEFAULT '',
                created_at INTEGER NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute("CREATE INDEX IF NOT EXISTS idx_incidents_created ON incidents(created_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_incidents_offender ON incidents(guild_id, offender_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_victim_interventions_incident ON victim_interventions(incident_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_victim_interventions_victim ON victim_interventions(victim_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_group_interventions_incident ON group_interventions(incident_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_pardons_intervention ON pardons(intervention_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_probations_incident ON probations(incident_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_probations_flags ON probations(start_informed, end_informed, expires_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_punishments_incident ON punishments(incident_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_punishments_executed ON punishments(executed)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_cached_messages_channel ON cached_messages(guild_id, channel_id, created_at DESC)")

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
