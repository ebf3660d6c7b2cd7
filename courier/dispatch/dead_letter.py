"""Dead-letter capture and replay."""
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Optional

from ulid import ULID

from courier.clock import Clock, SystemClock
from courier.dispatch.contracts import DeadLetterStore, MessageRepository
from courier.errors import DeadLetterNotFoundError, MessageNotFoundError
from courier.events import EventSink, MessageDeadLettered, safe_emit
from courier.metrics import MetricsSink
from courier.models.intent import MessageIntent
from courier.state.models.dead_letter import DeadLetterEntry, DeadLetterStats
from courier.state.models.message import MessageStatus

if TYPE_CHECKING:
    from courier.dispatch.dispatcher import Dispatcher

logger = logging.getLogger(__name__)


class DeadLetterRecorder:
    """Parks terminally failed messages and lets operators replay them.

    ``record`` is not idempotent on its own; the retry coordinator calls it
    at most once per terminal failure.
    """

    def __init__(
        self,
        store: DeadLetterStore,
        repository: MessageRepository,
        events: EventSink,
        metrics: MetricsSink,
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = store
        self._repository = repository
        self._events = events
        self._metrics = metrics
        self._clock = clock or SystemClock()
        self._dispatcher: Optional["Dispatcher"] = None

    def bind_dispatcher(self, dispatcher: "Dispatcher") -> None:
        """Set the dispatcher that replayed messages re-enter through."""
        self._dispatcher = dispatcher

    async def record(
        self,
        message_id: str,
        channel: str,
        intent: MessageIntent,
        attempts: int,
        error_code: Optional[str],
        error_message: Optional[str],
        last_exception: Optional[str] = None,
    ) -> DeadLetterEntry:
        entry = DeadLetterEntry(
            entry_id=str(ULID()),
            message_id=message_id,
            channel=channel,
            payload=intent.to_json(),
            attempts=attempts,
            created_at=self._clock.now(),
            error_code=error_code,
            error_message=error_message,
            last_exception=last_exception,
        )
        await self._store.insert(entry)
        await self._repository.update_status(
            message_id,
            MessageStatus.DEAD_LETTERED,
            {"error_code": error_code, "error_message": error_message},
        )
        logger.error(
            "Message %s dead-lettered after %d attempts: %s %s",
            message_id, attempts, error_code, error_message,
        )
        safe_emit(
            self._events,
            MessageDeadLettered(message_id, entry.entry_id, channel, attempts, error_code),
        )
        self._metrics.increment("courier.dead_lettered", tags={"channel": channel})
        return entry

    async def replay(self, entry_id: str) -> str:
        """Requeue the message behind ``entry_id`` and drop the entry.

        Returns:
            The replayed message id.

        Raises:
            DeadLetterNotFoundError: If the entry does not exist.
            MessageNotFoundError: If its message no longer exists.
        """
        if self._dispatcher is None:
            raise RuntimeError("DeadLetterRecorder has no dispatcher bound")
        entry = await self._store.get(entry_id)
        if entry is None:
            raise DeadLetterNotFoundError(f"Dead letter {entry_id} not found")
        intent = MessageIntent.from_json(entry.payload)
        if not await self._repository.reset_for_retry(
            entry.message_id, intent, expected=MessageStatus.DEAD_LETTERED
        ):
            current = await self._repository.get(entry.message_id)
            if current is None:
                raise MessageNotFoundError(f"Message {entry.message_id} not found")
            # A concurrent replay of this entry already requeued it.
            logger.info(
                "Dead letter %s not replayed, message %s is already %s",
                entry_id, entry.message_id, current.status.value,
            )
            return entry.message_id
        await self._dispatcher.schedule_attempt(entry.message_id, intent)
        await self._store.delete(entry_id)
        logger.info("Replayed dead letter %s as message %s", entry_id, entry.message_id)
        self._metrics.increment("courier.replayed", tags={"channel": entry.channel})
        return entry.message_id

    async def list_entries(self, limit: int = 50, channel: Optional[str] = None) -> list[DeadLetterEntry]:
        return await self._store.list_recent(limit, channel)

    async def purge(self, entry_id: Optional[str] = None) -> int:
        """Delete one entry, or every entry when ``entry_id`` is None.

        Returns:
            Number of entries removed.
        """
        if entry_id is not None:
            removed = 1 if await self._store.delete(entry_id) else 0
        else:
            removed = await self._store.delete_all()
        logger.info("Purged %d dead letter(s)", removed)
        return removed

    async def stats(self, days: int = 7, top: int = 5) -> DeadLetterStats:
        since = self._clock.now() - timedelta(days=days)
        return await self._store.stats(since, top)
