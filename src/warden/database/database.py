"""
Database lifecycle: open the shared connection and create the schema at
startup, close it at shutdown.
"""

from __future__ import annotations

from pathlib import Path

from warden.database.db_connection import db_connection
from warden.database.db_schema import SchemaManager
from warden.util.logger import get_logger

logger = get_logger("database")

DB_PATH = Path("./data/warden.db").resolve()


async def initialize_database(db_path: Path = DB_PATH) -> bool:
    """
    Open the connection and create all tables and indexes.

    Returns:
        True if initialization succeeded, False otherwise.
    """
    try:
        await db_connection.open(db_path)
        await SchemaManager.initialize_schema(db_connection.connection)
    except Exception as exc:
        logger.error("[DATABASE] Database initialization failed: %s", exc)
        return False

    logger.info("[DATABASE] Database initialized at %s", db_path)
    return True


async def shutdown_database() -> None:
    await db_connection.close()
    logger.info("[DATABASE] Database shutdown complete")
