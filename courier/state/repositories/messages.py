"""Outbound message repository."""
import sqlite3
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import aiosqlite

from courier.errors import MessageNotFoundError, StorageError
from courier.models.intent import MessageIntent
from courier.state.models.message import (
    CreateOutcome, CreateResult, MessageStatus, OutboundMessage,
)

_META_COLUMNS = ("provider_message_id", "error_code", "error_message")
_STATUS_TIMESTAMPS = {
    MessageStatus.SENT: "sent_at",
    MessageStatus.DELIVERED: "delivered_at",
    MessageStatus.FAILED: "failed_at",
}
_INSERT = (
    "INSERT INTO outbound_messages (message_id, channel, recipient, subject, "
    "template_key, payload, status, idempotency_key, attempts, queued_at, "
    "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_idempotency_conflict(exc: sqlite3.IntegrityError) -> bool:
    text = str(exc)
    return "UNIQUE" in text and "outbound_messages.idempotency_key" in text


def _insert_params(msg: OutboundMessage) -> tuple:
    now = _now()
    return (
        msg.message_id,
        msg.channel,
        msg.recipient,
        msg.subject,
        msg.template_key,
        msg.payload,
        msg.status.value,
        msg.idempotency_key,
        msg.attempts,
        msg.queued_at.isoformat(),
        now,
        now,
    )


class OutboundMessageRepository:
    """Reads and writes rows of the outbound_messages table.

    The UNIQUE constraint on ``idempotency_key`` is the only deduplication
    mechanism: ``create`` never checks for an existing key first.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create(self, msg: OutboundMessage) -> CreateResult:
        """Insert a new message.

        Returns:
            CreateResult with outcome CREATED, or DUPLICATE_KEY when another
            row already owns the idempotency key.

        Raises:
            StorageError: On any other database failure.
        """
        try:
            await self._conn.execute(_INSERT, _insert_params(msg))
            await self._conn.commit()
        except sqlite3.IntegrityError as exc:
            await self._conn.rollback()
            if msg.idempotency_key is not None and _is_idempotency_conflict(exc):
                return CreateResult(CreateOutcome.DUPLICATE_KEY, msg.message_id)
            raise StorageError(f"Failed to create message {msg.message_id}: {exc}") from exc
        except sqlite3.Error as exc:
            await self._conn.rollback()
            raise StorageError(f"Failed to create message {msg.message_id}: {exc}") from exc
        return CreateResult(CreateOutcome.CREATED, msg.message_id)

    async def create_many(self, msgs: Sequence[OutboundMessage]) -> None:
        """Insert all messages in one transaction; nothing is kept on failure."""
        try:
            await self._conn.executemany(_INSERT, [_insert_params(m) for m in msgs])
            await self._conn.commit()
        except sqlite3.Error as exc:
            await self._conn.rollback()
            raise StorageError(f"Batch insert of {len(msgs)} messages failed: {exc}") from exc

    async def get(self, message_id: str) -> Optional[OutboundMessage]:
        cursor = await self._conn.execute(
            "SELECT * FROM outbound_messages WHERE message_id = ?", (message_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_message(row) if row else None

    async def find_by_idempotency_key(self, key: str) -> Optional[OutboundMessage]:
        cursor = await self._conn.execute(
            "SELECT * FROM outbound_messages WHERE idempotency_key = ?", (key,)
        )
        row = await cursor.fetchone()
        return self._row_to_message(row) if row else None

    async def update_status(
        self,
        message_id: str,
        status: MessageStatus,
        meta: Optional[dict[str, Any]] = None,
        expected: Optional[MessageStatus] = None,
    ) -> bool:
        """Move a message to ``status``.

        Args:
            message_id: The message to update.
            status: New status.
            meta: Optional provider_message_id / error_code / error_message.
            expected: When set, only update if the current status matches.
                This is the compare-and-set used to claim a queued message.

        Returns:
            True if a row was updated.
        """
        now = _now()
        assignments = ["status = ?", "updated_at = ?"]
        params: list[Any] = [status.value, now]
        ts_column = _STATUS_TIMESTAMPS.get(status)
        if ts_column:
            assignments.append(f"{ts_column} = ?")
            params.append(now)
        if status is MessageStatus.QUEUED:
            assignments.append("queued_at = ?")
            params.append(now)
        for column in _META_COLUMNS:
            if meta and column in meta:
                assignments.append(f"{column} = ?")
                params.append(meta[column])
        sql = f"UPDATE outbound_messages SET {', '.join(assignments)} WHERE message_id = ?"
        params.append(message_id)
        if expected is not None:
            sql += " AND status = ?"
            params.append(expected.value)
        try:
            cursor = await self._conn.execute(sql, params)
            await self._conn.commit()
        except sqlite3.Error as exc:
            await self._conn.rollback()
            raise StorageError(f"Failed to update message {message_id}: {exc}") from exc
        return cursor.rowcount > 0

    async def reset_for_retry(
        self, message_id: str, intent: MessageIntent, expected: MessageStatus
    ) -> bool:
        """Requeue a message with a fresh payload and a zero attempt count.

        Only applies while the message is still in ``expected``, so two
        concurrent resets of the same row cannot both succeed.

        Returns:
            False if the message does not exist or has left ``expected``.
        """
        now = _now()
        try:
            cursor = await self._conn.execute(
                "UPDATE outbound_messages SET status = ?, attempts = 0, payload = ?, "
                "recipient = ?, subject = ?, template_key = ?, provider_message_id = NULL, "
                "error_code = NULL, error_message = NULL, queued_at = ?, updated_at = ? "
                "WHERE message_id = ? AND status = ?",
                (
                    MessageStatus.QUEUED.value,
                    intent.to_json(),
                    intent.to,
                    intent.subject,
                    intent.template_key,
                    now,
                    now,
                    message_id,
                    expected.value,
                ),
            )
            await self._conn.commit()
        except sqlite3.Error as exc:
            await self._conn.rollback()
            raise StorageError(f"Failed to reset message {message_id}: {exc}") from exc
        return cursor.rowcount > 0

    async def increment_attempts(self, message_id: str) -> int:
        """Add one to the attempt counter and return the new value.

        Raises:
            MessageNotFoundError: If the message does not exist.
        """
        try:
            cursor = await self._conn.execute(
                "UPDATE outbound_messages SET attempts = attempts + 1, updated_at = ? "
                "WHERE message_id = ?",
                (_now(), message_id),
            )
            if cursor.rowcount == 0:
                await self._conn.rollback()
                raise MessageNotFoundError(f"Message {message_id} not found")
            # Same transaction, so this reads our own increment.
            cursor = await self._conn.execute(
                "SELECT attempts FROM outbound_messages WHERE message_id = ?", (message_id,)
            )
            row = await cursor.fetchone()
            await self._conn.commit()
        except sqlite3.Error as exc:
            await self._conn.rollback()
            raise StorageError(f"Failed to increment attempts for {message_id}: {exc}") from exc
        return row[0]

    async def count_by_status(self) -> dict[str, int]:
        """Count messages grouped by status, plus a 'total' key."""
        cursor = await self._conn.execute(
            "SELECT status, COUNT(*) FROM outbound_messages GROUP BY status"
        )
        rows = await cursor.fetchall()
        counts: dict[str, int] = {s.value: 0 for s in MessageStatus}
        for row in rows:
            if row[0] in counts:
                counts[row[0]] = row[1]
        counts["total"] = sum(counts.values())
        return counts

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> OutboundMessage:
        """Convert a database row to an OutboundMessage."""
        def ts(column: str) -> Optional[datetime]:
            return datetime.fromisoformat(row[column]) if row[column] else None

        return OutboundMessage(
            message_id=row["message_id"],
            channel=row["channel"],
            recipient=row["recipient"],
            payload=row["payload"],
            queued_at=datetime.fromisoformat(row["queued_at"]),
            status=MessageStatus(row["status"]),
            idempotency_key=row["idempotency_key"],
            attempts=row["attempts"],
            subject=row["subject"],
            template_key=row["template_key"],
            provider_message_id=row["provider_message_id"],
            error_code=row["error_code"],
            error_message=row["error_message"],
            created_at=ts("created_at"),
            updated_at=ts("updated_at"),
            sent_at=ts("sent_at"),
            delivered_at=ts("delivered_at"),
            failed_at=ts("failed_at"),
        )
