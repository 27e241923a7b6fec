"""
Pytest configuration and fixtures for Warden tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest_asyncio

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from warden.database.db_connection import db_connection  # noqa: E402
from warden.database.db_schema import SchemaManager  # noqa: E402


@pytest_asyncio.fixture
async def db(tmp_path):
    """Fresh on-disk database per test, opened through the shared connection manager."""
    # Each test runs on its own event loop
    db_connection._write_sem = asyncio.Semaphore(1)
    await db_connection.open(tmp_path / "warden-test.db")
    await SchemaManager.initialize_schema(db_connection.connection)
    yield db_connection
    await db_connection.close()
