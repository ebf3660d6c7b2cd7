"""Wires the dispatch engine together from explicit dependencies."""
import logging
import random
from typing import Mapping, Optional, Sequence

from redis.asyncio import Redis

from courier.clock import Clock, SystemClock
from courier.config import CourierConfig
from courier.dispatch.contracts import AttemptScheduler, Sender
from courier.dispatch.dead_letter import DeadLetterRecorder
from courier.dispatch.dispatcher import Dispatcher
from courier.dispatch.retry import AttemptOutcome, RetryCoordinator
from courier.dispatch.scheduler import AsyncioAttemptScheduler
from courier.errors import UnknownChannelError, UnknownServiceError
from courier.events import EventSink, LoggingEventSink
from courier.metrics import FallbackMetricsSink, LoggingMetricsSink, MetricsSink
from courier.models.intent import Channel, MessageIntent
from courier.resilience.cache import Cache, InMemoryCache
from courier.resilience.circuit_breaker import CircuitBreakerRegistry, CircuitStatus
from courier.resilience.redis_cache import RedisCache
from courier.state.database import DatabaseManager
from courier.state.store import SqliteDeadLetterStore, SqliteMessageStore

logger = logging.getLogger(__name__)


def _channel_key(key: Channel | str) -> str:
    try:
        return Channel(key).value
    except ValueError:
        raise UnknownChannelError(f"Sender registered for unknown channel '{key}'") from None


class CourierEngine:
    """Entry point for callers: dispatch, replay and breaker inspection."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        coordinator: RetryCoordinator,
        recorder: DeadLetterRecorder,
        breakers: CircuitBreakerRegistry,
        scheduler: AttemptScheduler,
        messages: SqliteMessageStore,
        providers: Sequence[str] = (),
        redis: Optional[Redis] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.coordinator = coordinator
        self.recorder = recorder
        self.breakers = breakers
        self.scheduler = scheduler
        self.messages = messages
        self._redis = redis
        for provider in providers:
            breakers.get(provider)

    async def dispatch(self, intent: MessageIntent) -> str:
        return await self.dispatcher.dispatch(intent)

    async def dispatch_batch(self, intents: Sequence[MessageIntent]) -> list[str]:
        return await self.dispatcher.dispatch_batch(intents)

    async def attempt(self, message_id: str) -> AttemptOutcome:
        return await self.coordinator.attempt(message_id)

    async def replay(self, entry_id: str) -> str:
        return await self.recorder.replay(entry_id)

    async def circuit_status(self, service: Optional[str] = None) -> list[CircuitStatus]:
        """Status of one provider's breaker, or of every known breaker."""
        if service is not None:
            if service not in self.breakers.services():
                raise UnknownServiceError(f"No circuit for service '{service}'")
            return [await self.breakers.get(service).status()]
        return await self.breakers.statuses()

    async def aclose(self) -> None:
        aclose = getattr(self.scheduler, "aclose", None)
        if aclose is not None:
            await aclose()
        if self._redis is not None:
            await self._redis.aclose()


def build_engine(
    config: CourierConfig,
    db: DatabaseManager,
    senders: Mapping[Channel | str, Sender],
    cache: Optional[Cache] = None,
    events: Optional[EventSink] = None,
    metrics: Optional[MetricsSink] = None,
    clock: Optional[Clock] = None,
    scheduler: Optional[AttemptScheduler] = None,
    rng: Optional[random.Random] = None,
) -> CourierEngine:
    """Construct every engine component once.

    When no cache is given, a Redis cache is used if ``config.redis_url``
    is set, otherwise an in-process cache (single worker only).
    A scheduler exposing ``set_handler`` is bound to the coordinator.
    """
    clock = clock or SystemClock()
    events = events or LoggingEventSink()
    metrics = FallbackMetricsSink(metrics or LoggingMetricsSink())
    scheduler = scheduler or AsyncioAttemptScheduler()
    channel_senders = {_channel_key(key): sender for key, sender in senders.items()}

    redis = None
    if cache is None:
        if config.redis_url:
            redis = Redis.from_url(config.redis_url)
            cache = RedisCache(redis)
            logger.info("Circuit state shared through Redis")
        else:
            cache = InMemoryCache(clock)
            logger.info("Circuit state kept in process memory")

    messages = SqliteMessageStore(db)
    dead_letters = SqliteDeadLetterStore(db)
    breakers = CircuitBreakerRegistry(cache, config.circuit_breaker, clock, events)
    dispatcher = Dispatcher(messages, scheduler, events, metrics, clock, config.max_payload_size)
    recorder = DeadLetterRecorder(dead_letters, messages, events, metrics, clock)
    recorder.bind_dispatcher(dispatcher)
    coordinator = RetryCoordinator(
        messages, channel_senders, breakers, recorder, scheduler, events, metrics,
        config.retry, rng,
    )
    set_handler = getattr(scheduler, "set_handler", None)
    if set_handler is not None:
        set_handler(coordinator.attempt)

    return CourierEngine(
        dispatcher, coordinator, recorder, breakers, scheduler, messages,
        providers=sorted({s.provider for s in channel_senders.values()}),
        redis=redis,
    )
