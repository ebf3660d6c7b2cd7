"""Per-provider circuit breaker backed by the shared cache.

State lives entirely in the cache so every worker sees the same breaker.
Counters only move through ``Cache.increment`` and state only moves
through ``Cache.compare_and_swap``; there is no read-modify-write.

Transitions::

    closed --(failure_threshold failures)--> open
    open --(timeout elapsed, next availability check)--> half_open
    half_open --(success_threshold successes)--> closed
    half_open --(any failure)--> open

A half_open window whose trials are all spent without a verdict (for
example every trial ended in a permanent failure) is restarted once
``trial_window`` seconds have passed since it opened.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from courier.clock import Clock, SystemClock
from courier.events import CircuitStateChanged, EventSink, safe_emit
from courier.resilience.cache import Cache

if TYPE_CHECKING:
    from courier.config import CircuitBreakerConfig

logger = logging.getLogger(__name__)

KEY_PREFIX = "circuit_breaker"


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitStatus:
    """Read-only snapshot of one breaker."""

    service: str
    state: CircuitState
    failure_count: int
    success_count: int
    trial_count: int
    last_failure_at: Optional[datetime]
    estimated_recovery_at: Optional[datetime] = None
    recovery_in_seconds: Optional[float] = None
    trials_remaining: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "trial_count": self.trial_count,
            "last_failure_at": self.last_failure_at.isoformat() if self.last_failure_at else None,
            "estimated_recovery_at": (
                self.estimated_recovery_at.isoformat() if self.estimated_recovery_at else None
            ),
            "recovery_in_seconds": self.recovery_in_seconds,
            "trials_remaining": self.trials_remaining,
        }


class CircuitBreaker:
    """Guards calls to one provider service.

    Args:
        service: Provider name, used in cache keys.
        cache: Shared cache holding the breaker state.
        config: Thresholds and timeouts.
        clock: Time source.
        events: Receives a CircuitStateChanged event on every transition.
    """

    def __init__(
        self,
        service: str,
        cache: Cache,
        config: "CircuitBreakerConfig",
        clock: Optional[Clock] = None,
        events: Optional[EventSink] = None,
    ) -> None:
        self.service = service
        self._cache = cache
        self._config = config
        self._clock = clock or SystemClock()
        self._events = events

    def _key(self, suffix: str) -> str:
        return f"{KEY_PREFIX}:{self.service}:{suffix}"

    @property
    def _state_key(self) -> str:
        return self._key("state")

    def _now(self) -> float:
        return self._clock.now().timestamp()

    async def get_state(self) -> CircuitState:
        raw = await self._cache.get(self._state_key)
        return CircuitState(raw) if raw else CircuitState.CLOSED

    async def is_available(self) -> bool:
        """Whether a call to the provider may proceed right now.

        In half_open every True answer consumes one trial, so at most
        ``max_trials`` calls get through per trial window.
        """
        state = await self.get_state()
        if state is CircuitState.CLOSED:
            return True
        if state is CircuitState.HALF_OPEN:
            return await self._take_trial()

        last_failure = await self._cache.get(self._key("last_failure"))
        if last_failure is not None and self._now() - float(last_failure) < self._config.timeout:
            return False
        if await self._swap(CircuitState.OPEN, CircuitState.HALF_OPEN):
            await self._cache.put(self._key("trials_since"), self._now(), self._config.ttl)
            return await self._take_trial()
        # Lost the race; answer from whatever state the winner left.
        state = await self.get_state()
        if state is CircuitState.HALF_OPEN:
            return await self._take_trial()
        return state is CircuitState.CLOSED

    async def record_success(self) -> None:
        state = await self.get_state()
        if state is CircuitState.CLOSED:
            await self._cache.forget(self._key("failures"))
        elif state is CircuitState.HALF_OPEN:
            successes = await self._cache.increment(self._key("successes"), 1, self._config.ttl)
            if successes >= self._config.success_threshold:
                if await self._swap(CircuitState.HALF_OPEN, CircuitState.CLOSED):
                    await self._clear("failures", "successes", "trials", "trials_since")

    async def record_failure(self) -> None:
        await self._cache.put(self._key("last_failure"), self._now(), self._config.ttl)
        state = await self.get_state()
        if state is CircuitState.HALF_OPEN:
            if await self._swap(CircuitState.HALF_OPEN, CircuitState.OPEN):
                await self._clear("successes", "trials", "trials_since")
        elif state is CircuitState.CLOSED:
            failures = await self._cache.increment(self._key("failures"), 1, self._config.ttl)
            if failures >= self._config.failure_threshold:
                if await self._swap(CircuitState.CLOSED, CircuitState.OPEN):
                    await self._clear("successes", "trials", "trials_since")

    async def reset(self) -> None:
        """Force the breaker closed and drop every counter."""
        previous = await self.get_state()
        await self._cache.put(self._state_key, CircuitState.CLOSED.value, self._config.ttl)
        await self._clear("failures", "successes", "trials", "trials_since", "last_failure")
        if previous is not CircuitState.CLOSED:
            self._transitioned(previous, CircuitState.CLOSED)
        logger.info("Circuit for %s reset", self.service)

    async def status(self) -> CircuitStatus:
        state = await self.get_state()
        failures = int(await self._cache.get(self._key("failures")) or 0)
        successes = int(await self._cache.get(self._key("successes")) or 0)
        trials = int(await self._cache.get(self._key("trials")) or 0)
        raw_last = await self._cache.get(self._key("last_failure"))
        last_failure_at = (
            datetime.fromtimestamp(float(raw_last), tz=timezone.utc) if raw_last is not None else None
        )

        recovery_at = None
        recovery_in = None
        trials_remaining = None
        if state is CircuitState.OPEN and last_failure_at is not None:
            recovery_at = last_failure_at + timedelta(seconds=self._config.timeout)
            recovery_in = max(0.0, (recovery_at - self._clock.now()).total_seconds())
        if state is CircuitState.HALF_OPEN:
            trials_remaining = max(0, self._config.max_trials - trials)

        return CircuitStatus(
            service=self.service,
            state=state,
            failure_count=failures,
            success_count=successes,
            trial_count=trials,
            last_failure_at=last_failure_at,
            estimated_recovery_at=recovery_at,
            recovery_in_seconds=recovery_in,
            trials_remaining=trials_remaining,
        )

    async def _take_trial(self) -> bool:
        trials = await self._cache.increment(self._key("trials"), 1, self._config.ttl)
        if trials <= self._config.max_trials:
            return True
        return await self._restart_trials()

    async def _restart_trials(self) -> bool:
        """Start a new trial window if the current one has lapsed.

        Only the caller that wins the compare-and-swap on the window start
        resets the counter; it also takes the first trial of the new window.
        """
        key = self._key("trials_since")
        started = await self._cache.get(key)
        now = self._now()
        if started is None:
            await self._cache.compare_and_swap(key, None, now, self._config.ttl)
            return False
        if now - float(started) < self._config.trial_window:
            return False
        if not await self._cache.compare_and_swap(key, started, now, self._config.ttl):
            return False
        await self._cache.put(self._key("trials"), 1, self._config.ttl)
        logger.info("Circuit for %s: trial window lapsed without a verdict, allowing new trials", self.service)
        return True

    async def _swap(self, current: CircuitState, new: CircuitState) -> bool:
        ttl = self._config.ttl
        swapped = await self._cache.compare_and_swap(self._state_key, current.value, new.value, ttl)
        if not swapped and current is CircuitState.CLOSED:
            # An absent state key also means closed.
            swapped = await self._cache.compare_and_swap(self._state_key, None, new.value, ttl)
        if swapped:
            self._transitioned(current, new)
        return swapped

    async def _clear(self, *suffixes: str) -> None:
        for suffix in suffixes:
            await self._cache.forget(self._key(suffix))

    def _transitioned(self, previous: CircuitState, current: CircuitState) -> None:
        if current is CircuitState.OPEN:
            logger.warning("Circuit for %s opened (was %s)", self.service, previous.value)
        else:
            logger.info("Circuit for %s moved %s -> %s", self.service, previous.value, current.value)
        if self._events is not None:
            safe_emit(self._events, CircuitStateChanged(self.service, previous.value, current.value))


class CircuitBreakerRegistry:
    """One lazily created breaker per provider service name."""

    def __init__(
        self,
        cache: Cache,
        config: "CircuitBreakerConfig",
        clock: Optional[Clock] = None,
        events: Optional[EventSink] = None,
    ) -> None:
        self._cache = cache
        self._config = config
        self._clock = clock
        self._events = events
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, service: str) -> CircuitBreaker:
        breaker = self._breakers.get(service)
        if breaker is None:
            breaker = CircuitBreaker(service, self._cache, self._config, self._clock, self._events)
            self._breakers[service] = breaker
        return breaker

    def services(self) -> list[str]:
        return sorted(self._breakers)

    async def statuses(self) -> list[CircuitStatus]:
        return [await self._breakers[name].status() for name in self.services()]

    async def reset(self, service: str) -> None:
        await self.get(service).reset()
