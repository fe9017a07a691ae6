"""SQLite database connection manager with schema migration."""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from fleet_copilot.log import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS threads (
    thread_id            TEXT PRIMARY KEY,
    title                TEXT,
    total_input_tokens   INTEGER NOT NULL DEFAULT 0,
    total_output_tokens  INTEGER NOT NULL DEFAULT 0,
    total_tokens         INTEGER NOT NULL DEFAULT 0,
    created_at           TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now')),
    updated_at           TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);

CREATE INDEX IF NOT EXISTS idx_threads_updated
    ON threads(updated_at DESC);

CREATE TABLE IF NOT EXISTS messages (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    thread_id       TEXT    NOT NULL,
    role            TEXT    NOT NULL CHECK(role IN ('user','assistant','tool_call','tool_call_result')),
    content         TEXT    NOT NULL,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now')),
    FOREIGN KEY(thread_id) REFERENCES threads(thread_id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_messages_thread
    ON messages(thread_id, id);

CREATE TABLE IF NOT EXISTS token_usage (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    thread_id       TEXT,
    model           TEXT,
    input_tokens    INTEGER NOT NULL DEFAULT 0,
    output_tokens   INTEGER NOT NULL DEFAULT 0,
    total_tokens    INTEGER NOT NULL DEFAULT 0,
    request_type    TEXT    NOT NULL DEFAULT 'chat',
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);

CREATE INDEX IF NOT EXISTS idx_token_usage_thread
    ON token_usage(thread_id, created_at);

CREATE TABLE IF NOT EXISTS vehicles (
    id              TEXT PRIMARY KEY,
    name            TEXT NOT NULL,
    make            TEXT,
    model           TEXT,
    year            INTEGER,
    license_plate   TEXT,
    vin             TEXT
);

CREATE INDEX IF NOT EXISTS idx_vehicles_name
    ON vehicles(name);

CREATE TABLE IF NOT EXISTS tags (
    external_id         TEXT PRIMARY KEY,
    name                TEXT NOT NULL,
    parent_external_id  TEXT,
    vehicles_json       TEXT NOT NULL DEFAULT '[]',
    drivers_json        TEXT NOT NULL DEFAULT '[]',
    assets_json         TEXT NOT NULL DEFAULT '[]',
    addresses_json      TEXT NOT NULL DEFAULT '[]',
    machines_json       TEXT NOT NULL DEFAULT '[]',
    sensors_json        TEXT NOT NULL DEFAULT '[]',
    external_ids_json   TEXT NOT NULL DEFAULT '{}',
    data_hash           TEXT NOT NULL,
    updated_at          TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);

CREATE INDEX IF NOT EXISTS idx_tags_parent
    ON tags(parent_external_id);

CREATE TABLE IF NOT EXISTS kv_cache (
    key             TEXT PRIMARY KEY,
    value_json      TEXT NOT NULL,
    updated_at      TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);
"""


class Database:
    """Async SQLite database manager."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> str:
        return self._db_path

    async def initialize(self) -> None:
        """Open connection and run migrations."""
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()
        logger.info("database_initialized", path=self._db_path)

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._conn

    async def ping(self) -> bool:
        if self._conn is None:
            return False
        cursor = await self._conn.execute("SELECT 1")
        return (await cursor.fetchone()) is not None

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("database_closed")
