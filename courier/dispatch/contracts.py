"""Contracts between the dispatch engine and its collaborators."""
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

from courier.models.intent import MessageIntent
from courier.models.result import SendResult
from courier.state.models.dead_letter import DeadLetterEntry, DeadLetterStats
from courier.state.models.message import CreateResult, MessageStatus, OutboundMessage


class MessageRepository(Protocol):
    async def create(self, msg: OutboundMessage) -> CreateResult: ...

    async def create_many(self, msgs: Sequence[OutboundMessage]) -> None: ...

    async def get(self, message_id: str) -> Optional[OutboundMessage]: ...

    async def find_by_idempotency_key(self, key: str) -> Optional[OutboundMessage]: ...

    async def update_status(
        self,
        message_id: str,
        status: MessageStatus,
        meta: Optional[dict[str, Any]] = None,
        expected: Optional[MessageStatus] = None,
    ) -> bool: ...

    async def reset_for_retry(
        self, message_id: str, intent: MessageIntent, expected: MessageStatus
    ) -> bool: ...

    async def increment_attempts(self, message_id: str) -> int: ...


class DeadLetterStore(Protocol):
    async def insert(self, entry: DeadLetterEntry) -> None: ...

    async def get(self, entry_id: str) -> Optional[DeadLetterEntry]: ...

    async def delete(self, entry_id: str) -> bool: ...

    async def delete_all(self) -> int: ...

    async def list_recent(self, limit: int = 50, channel: Optional[str] = None) -> list[DeadLetterEntry]: ...

    async def stats(self, since: datetime, top: int = 5) -> DeadLetterStats: ...


class Sender(Protocol):
    """Delivers one intent through one provider.

    ``provider`` names the breaker that guards this sender. Senders report
    provider failures through the returned SendResult; they may also raise,
    which the engine treats as a transient failure.
    """

    provider: str

    async def send(self, intent: MessageIntent) -> SendResult: ...


AttemptHandler = Callable[[str], Awaitable[Any]]


class AttemptScheduler(Protocol):
    """Runs an attempt for ``message_id`` no earlier than ``delay_seconds`` from now."""

    async def schedule(self, message_id: str, delay_seconds: float) -> None: ...
