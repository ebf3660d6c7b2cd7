"""Domain events emitted by the dispatch engine.

Events are fire-and-forget: emitting one never blocks or fails the
operation that produced it.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageQueued:
    message_id: str
    channel: str
    delay_seconds: float = 0.0


@dataclass(frozen=True)
class MessageDuplicateSkipped:
    message_id: str
    idempotency_key: str
    status: str


@dataclass(frozen=True)
class MessageCreateConflict:
    """Another writer inserted the same idempotency key first."""

    message_id: str
    idempotency_key: str


@dataclass(frozen=True)
class MessageRetryScheduled:
    message_id: str
    attempt: int
    delay_seconds: float
    error_code: Optional[str] = None


@dataclass(frozen=True)
class MessageSending:
    message_id: str
    channel: str
    attempt: int


@dataclass(frozen=True)
class MessageFinalized:
    message_id: str
    channel: str
    provider_message_id: Optional[str]
    attempts: int


@dataclass(frozen=True)
class MessageDeadLettered:
    message_id: str
    entry_id: str
    channel: str
    attempts: int
    error_code: Optional[str] = None


@dataclass(frozen=True)
class CircuitStateChanged:
    service: str
    previous: str
    current: str


class EventSink(Protocol):
    def emit(self, event: Any) -> None: ...


Subscriber = Callable[[Any], None]


class EventBus:
    """Fans events out to subscribers.

    A subscriber can listen to one event type or, with ``event_type=None``,
    to everything. A subscriber that raises is logged and skipped.
    """

    def __init__(self) -> None:
        self._subscribers: list[tuple[Optional[type], Subscriber]] = []

    def subscribe(self, callback: Subscriber, event_type: Optional[type] = None) -> None:
        self._subscribers.append((event_type, callback))

    def unsubscribe(self, callback: Subscriber) -> None:
        self._subscribers = [(t, cb) for t, cb in self._subscribers if cb is not callback]

    def emit(self, event: Any) -> None:
        for event_type, callback in list(self._subscribers):
            if event_type is not None and not isinstance(event, event_type):
                continue
            try:
                callback(event)
            except Exception:
                logger.exception("Event subscriber failed for %s", type(event).__name__)


class LoggingEventSink:
    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    def emit(self, event: Any) -> None:
        logger.log(self._level, "event=%s %s", type(event).__name__, asdict(event))


def safe_emit(sink: EventSink, event: Any) -> None:
    """Emit through ``sink`` and log, rather than raise, any sink failure."""
    try:
        sink.emit(event)
    except Exception:
        logger.exception("Event sink failed for %s", type(event).__name__)
