"""Dead-letter repository."""
import sqlite3
from datetime import datetime
from typing import Optional

import aiosqlite

from courier.errors import StorageError
from courier.state.models.dead_letter import DeadLetterEntry, DeadLetterStats

_MAX_LIST_LIMIT = 500


class DeadLetterRepository:
    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert(self, entry: DeadLetterEntry) -> None:
        try:
            await self._conn.execute(
                "INSERT INTO dead_letters (entry_id, message_id, channel, payload, attempts, "
                "error_code, error_message, last_exception, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    entry.entry_id,
                    entry.message_id,
                    entry.channel,
                    entry.payload,
                    entry.attempts,
                    entry.error_code,
                    entry.error_message,
                    entry.last_exception,
                    entry.created_at.isoformat(),
                ),
            )
            await self._conn.commit()
        except sqlite3.Error as exc:
            await self._conn.rollback()
            raise StorageError(f"Failed to record dead letter for {entry.message_id}: {exc}") from exc

    async def get(self, entry_id: str) -> Optional[DeadLetterEntry]:
        c = await self._conn.execute("SELECT * FROM dead_letters WHERE entry_id = ?", (entry_id,))
        r = await c.fetchone()
        return self._row_to_entry(r) if r else None

    async def delete(self, entry_id: str) -> bool:
        c = await self._conn.execute("DELETE FROM dead_letters WHERE entry_id = ?", (entry_id,))
        await self._conn.commit()
        return c.rowcount > 0

    async def delete_all(self) -> int:
        c = await self._conn.execute("DELETE FROM dead_letters")
        await self._conn.commit()
        return c.rowcount

    async def list_recent(self, limit: int = 50, channel: Optional[str] = None) -> list[DeadLetterEntry]:
        """List entries newest first, optionally for one channel.

        Raises:
            ValueError: If limit is not a positive integer.
        """
        if not isinstance(limit, int) or limit < 1:
            raise ValueError(f"limit must be a positive integer, got {limit!r}")
        capped = min(limit, _MAX_LIST_LIMIT)
        if channel is not None:
            c = await self._conn.execute(
                "SELECT * FROM dead_letters WHERE channel = ? ORDER BY created_at DESC LIMIT ?",
                (channel, capped),
            )
        else:
            c = await self._conn.execute(
                "SELECT * FROM dead_letters ORDER BY created_at DESC LIMIT ?", (capped,)
            )
        rows = await c.fetchall()
        return [self._row_to_entry(r) for r in rows]

    async def stats(self, since: datetime, top: int = 5) -> DeadLetterStats:
        """Aggregate entries created at or after ``since``.

        Args:
            since: Window start (timezone-aware).
            top: How many of the most frequent error codes to report.

        Returns:
            DeadLetterStats with total, per-channel counts, the top error
            codes (most frequent first) and the attempts distribution.
        """
        cutoff = since.isoformat()
        c = await self._conn.execute(
            "SELECT COUNT(*) FROM dead_letters WHERE created_at >= ?", (cutoff,)
        )
        total = (await c.fetchone())[0]

        c = await self._conn.execute(
            "SELECT channel, COUNT(*) FROM dead_letters WHERE created_at >= ? "
            "GROUP BY channel ORDER BY channel",
            (cutoff,),
        )
        by_channel = {row[0]: row[1] for row in await c.fetchall()}

        c = await self._conn.execute(
            "SELECT error_code, COUNT(*) AS n FROM dead_letters "
            "WHERE created_at >= ? AND error_code IS NOT NULL "
            "GROUP BY error_code ORDER BY n DESC, error_code ASC LIMIT ?",
            (cutoff, top),
        )
        top_error_codes = [(row[0], row[1]) for row in await c.fetchall()]

        c = await self._conn.execute(
            "SELECT attempts, COUNT(*) FROM dead_letters WHERE created_at >= ? "
            "GROUP BY attempts ORDER BY attempts",
            (cutoff,),
        )
        attempts_distribution = {row[0]: row[1] for row in await c.fetchall()}

        return DeadLetterStats(
            since=since,
            total=total,
            by_channel=by_channel,
            top_error_codes=top_error_codes,
            attempts_distribution=attempts_distribution,
        )

    @staticmethod
    def _row_to_entry(r: aiosqlite.Row) -> DeadLetterEntry:
        return DeadLetterEntry(
            entry_id=r["entry_id"],
            message_id=r["message_id"],
            channel=r["channel"],
            payload=r["payload"],
            attempts=r["attempts"],
            created_at=datetime.fromisoformat(r["created_at"]),
            error_code=r["error_code"],
            error_message=r["error_message"],
            last_exception=r["last_exception"],
        )
