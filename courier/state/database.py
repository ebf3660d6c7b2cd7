"""Database connection and lifecycle management."""
import aiosqlite
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

SCHEMA_VERSION = "1.0.0"
# Seconds a writer waits for a competing writer's lock before failing.
_BUSY_TIMEOUT = 10.0


class DatabaseManager:
    """Manages SQLite database connections and schema initialization."""

    def __init__(self, db_path: Path, busy_timeout: float = _BUSY_TIMEOUT) -> None:
        self._db_path = db_path
        self._busy_timeout = busy_timeout
        self._initialized = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Create tables and indexes. Safe to call more than once."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self.connection() as conn:
            await conn.execute("PRAGMA journal_mode = WAL")
            await conn.executescript(_SCHEMA)
            await conn.execute(
                "INSERT OR IGNORE INTO schema_versions (version, applied_at) "
                "VALUES (?, datetime('now'))",
                (SCHEMA_VERSION,),
            )
            await conn.commit()
        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield an async database connection."""
        conn = await aiosqlite.connect(self._db_path, timeout=self._busy_timeout)
        conn.row_factory = aiosqlite.Row
        try:
            await conn.execute("PRAGMA foreign_keys = ON")
            yield conn
        finally:
            await conn.close()

    async def close(self) -> None:
        """Mark the manager as closed."""
        self._initialized = False


_SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_versions (version TEXT PRIMARY KEY, applied_at TEXT NOT NULL);

CREATE TABLE IF NOT EXISTS outbound_messages (
    message_id          TEXT PRIMARY KEY,
    channel             TEXT NOT NULL,
    recipient           TEXT NOT NULL,
    subject             TEXT,
    template_key        TEXT,
    payload             TEXT NOT NULL,
    status              TEXT NOT NULL DEFAULT 'queued',
    idempotency_key     TEXT UNIQUE,
    attempts            INTEGER NOT NULL DEFAULT 0,
    provider_message_id TEXT,
    error_code          TEXT,
    error_message       TEXT,
    queued_at           TEXT NOT NULL,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL,
    sent_at             TEXT,
    delivered_at        TEXT,
    failed_at           TEXT,
    CHECK(channel IN ('sms', 'whatsapp', 'email')),
    CHECK(status IN ('queued', 'sending', 'sent', 'delivered', 'failed', 'dead_lettered')),
    CHECK(idempotency_key IS NULL OR length(idempotency_key) <= 128)
);
CREATE INDEX IF NOT EXISTS idx_outbound_status ON outbound_messages(status, created_at);
CREATE INDEX IF NOT EXISTS idx_outbound_created ON outbound_messages(created_at);

CREATE TABLE IF NOT EXISTS dead_letters (
    entry_id       TEXT PRIMARY KEY,
    message_id     TEXT NOT NULL,
    channel        TEXT NOT NULL,
    payload        TEXT NOT NULL,
    attempts       INTEGER NOT NULL,
    error_code     TEXT,
    error_message  TEXT,
    last_exception TEXT,
    created_at     TEXT NOT NULL,
    FOREIGN KEY (message_id) REFERENCES outbound_messages(message_id)
);
CREATE INDEX IF NOT EXISTS idx_dead_letters_created ON dead_letters(created_at);
CREATE INDEX IF NOT EXISTS idx_dead_letters_channel ON dead_letters(channel);
"""
