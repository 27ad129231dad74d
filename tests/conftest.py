"""Shared test setup.

Settings are read at import time, so the environment has to be in place
before anything under lessonmatch is imported.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-at-least-32-characters-long")
os.environ["SCORER_MODE"] = "deterministic"
os.environ["DATABASE_URL"] = ""
os.environ.setdefault("TIMEZONE", "UTC")

import aiosqlite
import pytest

from lessonmatch.db.database import SCHEMA_PATH


async def open_test_db() -> aiosqlite.Connection:
    """Fresh in-memory database with the full schema applied."""
    db = await aiosqlite.connect(":memory:")
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA foreign_keys = ON")
    await db.executescript(SCHEMA_PATH.read_text())
    return db


@pytest.fixture
def new_db():
    return open_test_db
