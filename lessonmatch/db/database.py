"""Database abstraction layer supporting both SQLite (aiosqlite) and PostgreSQL (asyncpg).

Backend is selected via the DATABASE_URL setting:
  - starts with "postgresql://" → asyncpg
  - absent / empty             → aiosqlite (uses DATABASE_PATH)

The PostgreSQL wrapper transparently converts:
  - ? placeholders → $1, $2, … (positional)
  - cursor.lastrowid → RETURNING id
  - cursor.rowcount → parsed from the command status tag
  - Row access by column name (dict-like)

Multi-statement writes go through ``atomic(db)``, which commits on success and
rolls back on any error (including cancellation) on both backends.
"""

import re
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, date
from pathlib import Path

from alembic import command
from alembic.config import Config

from lessonmatch.config import settings

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


def _is_postgres() -> bool:
    return settings.database_url.startswith("postgresql://")


# ── SQLite helpers ────────────────────────────────────────────────────

async def _connect_sqlite():
    import aiosqlite
    db = await aiosqlite.connect(settings.database_path)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA foreign_keys = ON")
    return db


# ── PostgreSQL wrapper ────────────────────────────────────────────────

_pg_pool = None


async def _get_pg_pool():
    global _pg_pool
    if _pg_pool is None:
        import asyncpg
        _pg_pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=2,
            max_size=10,
        )
    return _pg_pool


def _sqlite_compat(value):
    """Convert asyncpg-native types to SQLite-compatible Python types.

    SQLite always returns timestamps as strings; asyncpg returns datetime
    objects.  Converting here keeps every caller working unchanged.
    """
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class PgRow:
    """Wraps an asyncpg Record to support dict-style access by column name.

    Mimics sqlite3.Row interface: keys() + __getitem__ enable dict(row).
    """

    __slots__ = ("_record",)

    def __init__(self, record):
        self._record = record

    def __getitem__(self, key):
        return _sqlite_compat(self._record[key])

    def __contains__(self, key):
        return key in self._record.keys()

    def __len__(self):
        return len(self._record)

    def keys(self):
        return self._record.keys()

    def values(self):
        return [_sqlite_compat(v) for v in self._record.values()]

    def items(self):
        return {k: _sqlite_compat(self._record[k]) for k in self._record.keys()}.items()

    def get(self, key, default=None):
        try:
            return _sqlite_compat(self._record[key])
        except (KeyError, IndexError):
            return default


# Regex to replace ? placeholders with $1, $2, … while skipping quoted strings
_PARAM_RE = re.compile(r"'[^']*'|(\?)")


def _convert_placeholders(sql: str) -> str:
    """Replace ? with $1, $2, … for asyncpg, skipping ?s inside string literals."""
    counter = [0]

    def _replacer(match):
        if match.group(1) is None:
            # Quoted string, leave unchanged
            return match.group(0)
        counter[0] += 1
        return f"${counter[0]}"

    return _PARAM_RE.sub(_replacer, sql)


def _is_insert(sql: str) -> bool:
    return sql.lstrip().upper().startswith("INSERT")


def _status_rowcount(status: str) -> int:
    """Parse the affected row count from an asyncpg status tag ("UPDATE 3")."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return -1


class PgCursor:
    """Mimics aiosqlite cursor for the result of execute()."""

    __slots__ = ("_rows", "_lastrowid", "_idx", "rowcount")

    def __init__(self, rows=None, lastrowid=None, rowcount=-1):
        self._rows = rows or []
        self._lastrowid = lastrowid
        self._idx = 0
        self.rowcount = rowcount

    @property
    def lastrowid(self):
        return self._lastrowid

    async def fetchone(self):
        if self._idx < len(self._rows):
            row = self._rows[self._idx]
            self._idx += 1
            return PgRow(row)
        return None

    async def fetchall(self):
        remaining = self._rows[self._idx:]
        self._idx = len(self._rows)
        return [PgRow(r) for r in remaining]


class PgConnection:
    """Wraps an asyncpg connection to present an aiosqlite-compatible interface.

    Statements autocommit unless begin() opened an explicit transaction,
    in which case commit()/rollback() end it.
    """

    def __init__(self, conn):
        self._conn = conn
        self._tx = None

    async def execute(self, sql: str, params=None):
        pg_sql = _convert_placeholders(sql)
        args = tuple(params) if params else ()

        if _is_insert(pg_sql):
            if "RETURNING" not in pg_sql.upper():
                pg_sql = pg_sql.rstrip().rstrip(";") + " RETURNING id"
            row = await self._conn.fetchrow(pg_sql, *args)
            lastrowid = row["id"] if row else None
            return PgCursor(rows=[row] if row else [], lastrowid=lastrowid, rowcount=1 if row else 0)

        stripped = pg_sql.lstrip().upper()
        if stripped.startswith("SELECT") or "RETURNING" in stripped:
            rows = await self._conn.fetch(pg_sql, *args)
            return PgCursor(rows=rows, rowcount=len(rows))
        status = await self._conn.execute(pg_sql, *args)
        return PgCursor(rowcount=_status_rowcount(status))

    async def begin(self):
        self._tx = self._conn.transaction()
        await self._tx.start()

    async def commit(self):
        if self._tx is not None:
            tx, self._tx = self._tx, None
            await tx.commit()

    async def rollback(self):
        if self._tx is not None:
            tx, self._tx = self._tx, None
            await tx.rollback()

    async def close(self):
        # No-op: pool release is handled by get_db() dependency
        pass


# ── Public API ────────────────────────────────────────────────────────

@asynccontextmanager
async def atomic(db):
    """Run a block of writes as one unit: commit on success, roll back on error."""
    # aiosqlite opens its transaction implicitly on the first write
    if isinstance(db, PgConnection):
        await db.begin()
    try:
        yield db
    except BaseException:
        await db.rollback()
        raise
    else:
        await db.commit()


async def get_db() -> AsyncGenerator:
    """FastAPI dependency that yields a database connection and closes it after the request."""
    if _is_postgres():
        pool = await _get_pg_pool()
        conn = await pool.acquire()
        pg_conn = PgConnection(conn)
        try:
            yield pg_conn
        finally:
            await pool.release(conn)
    else:
        db = await _connect_sqlite()
        try:
            yield db
        finally:
            await db.close()


def _run_alembic_upgrade():
    """Run Alembic migrations to head (synchronous, called once at startup)."""
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))

    if _is_postgres():
        alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    else:
        alembic_cfg.set_main_option(
            "sqlalchemy.url", f"sqlite:///{settings.database_path}"
        )

    command.upgrade(alembic_cfg, "head")


async def init_db():
    if _is_postgres():
        logger.info("Using PostgreSQL backend: %s", settings.database_url.split("@")[-1])
    else:
        # Ensure parent directory exists (for Docker volume mounts)
        db_path = Path(settings.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Using SQLite backend: %s", settings.database_path)

    # Alembic handles all schema creation and migrations
    _run_alembic_upgrade()


async def close_db():
    """Shutdown hook: close the connection pool if using PostgreSQL."""
    global _pg_pool
    if _pg_pool is not None:
        await _pg_pool.close()
        _pg_pool = None
