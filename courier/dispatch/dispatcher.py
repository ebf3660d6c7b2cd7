"""Idempotent message creation and attempt scheduling."""
import logging
from typing import Optional, Sequence

from ulid import ULID

from courier.clock import Clock, SystemClock
from courier.config import DEFAULT_MAX_PAYLOAD_SIZE
from courier.dispatch.contracts import AttemptScheduler, MessageRepository
from courier.errors import PayloadTooLargeError, StorageError
from courier.events import (
    EventSink, MessageCreateConflict, MessageDuplicateSkipped, MessageQueued,
    MessageRetryScheduled, safe_emit,
)
from courier.masking import mask_recipient
from courier.metrics import MetricsSink
from courier.models.intent import MessageIntent
from courier.state.models.message import SKIP_STATUSES, MessageStatus, OutboundMessage

logger = logging.getLogger(__name__)


class Dispatcher:
    """Turns intents into persisted messages and schedules their first attempt.

    An idempotency key maps to exactly one message forever. Creation races
    are settled by the store's uniqueness constraint: the loser adopts the
    winner's id and schedules nothing.
    """

    def __init__(
        self,
        repository: MessageRepository,
        scheduler: AttemptScheduler,
        events: EventSink,
        metrics: MetricsSink,
        clock: Optional[Clock] = None,
        max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE,
    ) -> None:
        self._repository = repository
        self._scheduler = scheduler
        self._events = events
        self._metrics = metrics
        self._clock = clock or SystemClock()
        self._max_payload_size = max_payload_size

    def _serialize(self, intent: MessageIntent) -> str:
        payload = intent.to_json()
        size = len(payload.encode("utf-8"))
        if size > self._max_payload_size:
            logger.error(
                "Rejected %s intent to %s: payload %d bytes exceeds %d",
                intent.channel.value, mask_recipient(intent.to), size, self._max_payload_size,
            )
            raise PayloadTooLargeError(size, self._max_payload_size)
        return payload

    def _new_message(self, intent: MessageIntent, payload: str) -> OutboundMessage:
        return OutboundMessage(
            message_id=str(ULID()),
            channel=intent.channel.value,
            recipient=intent.to,
            payload=payload,
            queued_at=self._clock.now(),
            idempotency_key=intent.idempotency_key,
            subject=intent.subject,
            template_key=intent.template_key,
        )

    async def dispatch(self, intent: MessageIntent) -> str:
        """Persist ``intent`` (at most once per idempotency key) and schedule it.

        Returns:
            The message id. Repeated calls with the same key return the
            same id.

        Raises:
            PayloadTooLargeError: Before any storage access.
            StorageError: On any store failure other than a key conflict.
        """
        payload = self._serialize(intent)
        key = intent.idempotency_key
        logger.info(
            "Dispatch received channel=%s to=%s key=%s",
            intent.channel.value, mask_recipient(intent.to), key,
        )

        if key is not None:
            existing = await self._repository.find_by_idempotency_key(key)
            if existing is not None:
                return await self._handle_existing(existing, intent)

        message = self._new_message(intent, payload)
        result = await self._repository.create(message)
        if not result.created:
            return await self._adopt_winner(key)

        await self.schedule_attempt(message.message_id, intent)
        return message.message_id

    async def _handle_existing(self, existing: OutboundMessage, intent: MessageIntent) -> str:
        key = existing.idempotency_key
        if existing.status in SKIP_STATUSES:
            return self._skip_duplicate(existing)

        # Only FAILED remains: reuse the row and start over.
        if not await self._repository.reset_for_retry(
            existing.message_id, intent, expected=MessageStatus.FAILED
        ):
            # Another dispatch reset it first, or an attempt moved it on.
            current = await self._repository.get(existing.message_id)
            if current is None:
                raise StorageError(f"Message {existing.message_id} vanished during retry reset")
            return self._skip_duplicate(current)
        logger.info("Retrying failed message %s for key=%s", existing.message_id, key)
        safe_emit(self._events, MessageRetryScheduled(existing.message_id, attempt=0, delay_seconds=0.0))
        await self.schedule_attempt(existing.message_id, intent)
        return existing.message_id

    def _skip_duplicate(self, existing: OutboundMessage) -> str:
        key = existing.idempotency_key
        logger.info(
            "Duplicate dispatch for key=%s skipped, message %s is %s",
            key, existing.message_id, existing.status.value,
        )
        safe_emit(self._events, MessageDuplicateSkipped(existing.message_id, key, existing.status.value))
        self._metrics.increment("courier.duplicate_skipped", tags={"channel": existing.channel})
        return existing.message_id

    async def _adopt_winner(self, key: Optional[str]) -> str:
        winner = await self._repository.find_by_idempotency_key(key) if key else None
        if winner is None:
            raise StorageError(f"Idempotency conflict for key={key} but no existing message found")
        logger.info("Create conflict for key=%s, using message %s", key, winner.message_id)
        safe_emit(self._events, MessageCreateConflict(winner.message_id, key))
        self._metrics.increment("courier.create_conflict", tags={"channel": winner.channel})
        return winner.message_id

    def _delay_for(self, intent: MessageIntent) -> float:
        if intent.send_at is None:
            return 0.0
        return max(0.0, (intent.send_at - self._clock.now()).total_seconds())

    async def schedule_attempt(self, message_id: str, intent: MessageIntent) -> None:
        """Schedule the next attempt for an already queued message."""
        delay = self._delay_for(intent)
        await self._scheduler.schedule(message_id, delay)
        logger.info("Message %s queued on %s, delay=%.3fs", message_id, intent.channel.value, delay)
        safe_emit(self._events, MessageQueued(message_id, intent.channel.value, delay))

    async def dispatch_batch(self, intents: Sequence[MessageIntent]) -> list[str]:
        """Persist all intents in one transaction, then schedule each.

        No idempotency lookups are made. A key conflict or any other
        storage failure aborts the whole batch with StorageError.
        """
        payloads = [self._serialize(intent) for intent in intents]
        if not payloads:
            return []
        messages = [self._new_message(i, p) for i, p in zip(intents, payloads)]
        await self._repository.create_many(messages)
        logger.info("Batch of %d messages persisted", len(messages))
        for message, intent in zip(messages, intents):
            await self.schedule_attempt(message.message_id, intent)
        return [m.message_id for m in messages]