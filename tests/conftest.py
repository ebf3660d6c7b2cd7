"""Shared fixtures and test doubles for the dispatch engine."""
import random
from collections import deque
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

import pytest
import pytest_asyncio

from courier.config import CircuitBreakerConfig, CourierConfig, RetryPolicy
from courier.engine import CourierEngine, build_engine
from courier.metrics import InMemoryMetricsSink
from courier.models.intent import Channel, MessageIntent
from courier.models.result import SendResult
from courier.resilience.cache import InMemoryCache
from courier.state.database import DatabaseManager

EPOCH = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = EPOCH) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class RecordingEventSink:
    def __init__(self) -> None:
        self.events: list[Any] = []

    def emit(self, event: Any) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[Any]:
        return [e for e in self.events if isinstance(e, event_type)]


Scripted = Union[SendResult, BaseException]


class ScriptedSender:
    """Returns (or raises) scripted outcomes in order, then succeeds."""

    def __init__(self, provider: str = "twilio", outcomes: Iterable[Scripted] = ()) -> None:
        self.provider = provider
        self._outcomes = deque(outcomes)
        self.calls: list[MessageIntent] = []

    def script(self, *outcomes: Scripted) -> None:
        self._outcomes.extend(outcomes)

    async def send(self, intent: MessageIntent) -> SendResult:
        self.calls.append(intent)
        if not self._outcomes:
            return SendResult.success(f"{self.provider}-{len(self.calls)}")
        outcome = self._outcomes.popleft()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class ManualScheduler:
    """Records scheduled attempts; tests run them explicitly."""

    def __init__(self) -> None:
        self.scheduled: list[tuple[str, float]] = []
        self.history: list[tuple[str, float]] = []
        self._handler: Optional[Callable] = None

    def set_handler(self, handler: Callable) -> None:
        self._handler = handler

    async def schedule(self, message_id: str, delay_seconds: float) -> None:
        self.scheduled.append((message_id, delay_seconds))
        self.history.append((message_id, delay_seconds))

    async def run_next(self) -> Any:
        message_id, _ = self.scheduled.pop(0)
        return await self._handler(message_id)

    async def run_all(self, max_steps: int = 100) -> list[Any]:
        outcomes = []
        for _ in range(max_steps):
            if not self.scheduled:
                break
            outcomes.append(await self.run_next())
        return outcomes


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def metrics() -> InMemoryMetricsSink:
    return InMemoryMetricsSink()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def sms_sender() -> ScriptedSender:
    return ScriptedSender("twilio")


@pytest.fixture
def email_sender() -> ScriptedSender:
    return ScriptedSender("sendgrid")


@pytest.fixture
def courier_config(tmp_path: Path) -> CourierConfig:
    retry = {channel.value: RetryPolicy(max_attempts=3, base_delay_ms=1000, max_delay_ms=60000)
             for channel in Channel}
    return CourierConfig(
        retry=retry,
        circuit_breaker=CircuitBreakerConfig(failure_threshold=5, timeout=60, success_threshold=2, max_trials=3),
        db_path=tmp_path / "courier.db",
    )


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> DatabaseManager:
    """Create and initialize a temp database."""
    manager = DatabaseManager(tmp_path / "courier.db")
    await manager.initialize()
    return manager


@pytest.fixture
def make_engine(
    courier_config: CourierConfig,
    db: DatabaseManager,
    clock: FakeClock,
    events: RecordingEventSink,
    metrics: InMemoryMetricsSink,
    scheduler: ManualScheduler,
    sms_sender: ScriptedSender,
    email_sender: ScriptedSender,
) -> Callable[..., CourierEngine]:
    """Build an engine over the temp database with recording collaborators."""
    def _make(config: Optional[CourierConfig] = None, senders: Optional[dict] = None) -> CourierEngine:
        if senders is None:
            senders = {"sms": sms_sender, "whatsapp": sms_sender, "email": email_sender}
        return build_engine(
            config or courier_config, db, senders,
            cache=InMemoryCache(clock), events=events, metrics=metrics,
            clock=clock, scheduler=scheduler, rng=random.Random(7),
        )
    return _make


@pytest.fixture
def engine(make_engine: Callable[..., CourierEngine]) -> CourierEngine:
    return make_engine()


def sms_intent(**kwargs: Any) -> MessageIntent:
    defaults: dict[str, Any] = dict(channel=Channel.SMS, to="+15551234567", text="Your code is 1234")
    defaults.update(kwargs)
    return MessageIntent(**defaults)


@pytest.fixture
def make_intent() -> Callable[..., MessageIntent]:
    return sms_intent
