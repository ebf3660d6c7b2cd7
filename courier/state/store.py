"""Store adapters that open one connection per operation.

The engine holds these for its whole lifetime, so they must not keep a
connection open between calls. Each call borrows one from the
DatabaseManager and hands it to a repository.
"""
from datetime import datetime
from typing import Any, Optional, Sequence

from courier.models.intent import MessageIntent
from courier.state.database import DatabaseManager
from courier.state.models.dead_letter import DeadLetterEntry, DeadLetterStats
from courier.state.models.message import CreateResult, MessageStatus, OutboundMessage
from courier.state.repositories import DeadLetterRepository, OutboundMessageRepository


class SqliteMessageStore:
    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def create(self, msg: OutboundMessage) -> CreateResult:
        async with self._db.connection() as conn:
            return await OutboundMessageRepository(conn).create(msg)

    async def create_many(self, msgs: Sequence[OutboundMessage]) -> None:
        async with self._db.connection() as conn:
            await OutboundMessageRepository(conn).create_many(msgs)

    async def get(self, message_id: str) -> Optional[OutboundMessage]:
        async with self._db.connection() as conn:
            return await OutboundMessageRepository(conn).get(message_id)

    async def find_by_idempotency_key(self, key: str) -> Optional[OutboundMessage]:
        async with self._db.connection() as conn:
            return await OutboundMessageRepository(conn).find_by_idempotency_key(key)

    async def update_status(
        self,
        message_id: str,
        status: MessageStatus,
        meta: Optional[dict[str, Any]] = None,
        expected: Optional[MessageStatus] = None,
    ) -> bool:
        async with self._db.connection() as conn:
            return await OutboundMessageRepository(conn).update_status(message_id, status, meta, expected)

    async def reset_for_retry(
        self, message_id: str, intent: MessageIntent, expected: MessageStatus
    ) -> bool:
        async with self._db.connection() as conn:
            return await OutboundMessageRepository(conn).reset_for_retry(message_id, intent, expected)

    async def increment_attempts(self, message_id: str) -> int:
        async with self._db.connection() as conn:
            return await OutboundMessageRepository(conn).increment_attempts(message_id)

    async def count_by_status(self) -> dict[str, int]:
        async with self._db.connection() as conn:
            return await OutboundMessageRepository(conn).count_by_status()


class SqliteDeadLetterStore:
    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def insert(self, entry: DeadLetterEntry) -> None:
        async with self._db.connection() as conn:
            await DeadLetterRepository(conn).insert(entry)

    async def get(self, entry_id: str) -> Optional[DeadLetterEntry]:
        async with self._db.connection() as conn:
            return await DeadLetterRepository(conn).get(entry_id)

    async def delete(self, entry_id: str) -> bool:
        async with self._db.connection() as conn:
            return await DeadLetterRepository(conn).delete(entry_id)

    async def delete_all(self) -> int:
        async with self._db.connection() as conn:
            return await DeadLetterRepository(conn).delete_all()

    async def list_recent(self, limit: int = 50, channel: Optional[str] = None) -> list[DeadLetterEntry]:
        async with self._db.connection() as conn:
            return await DeadLetterRepository(conn).list_recent(limit, channel)

    async def stats(self, since: datetime, top: int = 5) -> DeadLetterStats:
        async with self._db.connection() as conn:
            return await DeadLetterRepository(conn).stats(since, top)
