"""Shared cache contract used for circuit breaker state."""
import threading
from typing import Any, Optional, Protocol

from courier.clock import Clock, SystemClock


class Cache(Protocol):
    """Key/value store shared by every worker.

    ``increment`` and ``compare_and_swap`` must be atomic across all
    processes using the same backend.
    """

    async def get(self, key: str) -> Any: ...

    async def put(self, key: str, value: Any, ttl: Optional[int] = None) -> None: ...

    async def increment(self, key: str, by: int = 1, ttl: Optional[int] = None) -> int: ...

    async def compare_and_swap(
        self, key: str, expected: Any, new: Any, ttl: Optional[int] = None
    ) -> bool: ...

    async def forget(self, key: str) -> bool: ...


class InMemoryCache:
    """Process-local cache. Expiry is checked lazily on access."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or SystemClock()
        self._data: dict[str, tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()

    def _now(self) -> float:
        return self._clock.now().timestamp()

    def _expires(self, ttl: Optional[int]) -> Optional[float]:
        return self._now() + ttl if ttl else None

    def _read(self, key: str) -> Any:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= self._now():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Any:
        with self._lock:
            return self._read(key)

    async def put(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        with self._lock:
            self._data[key] = (value, self._expires(ttl))

    async def increment(self, key: str, by: int = 1, ttl: Optional[int] = None) -> int:
        with self._lock:
            current = self._read(key)
            value = int(current or 0) + by
            if current is None or ttl:
                expires_at = self._expires(ttl)
            else:
                expires_at = self._data[key][1]
            self._data[key] = (value, expires_at)
            return value

    async def compare_and_swap(
        self, key: str, expected: Any, new: Any, ttl: Optional[int] = None
    ) -> bool:
        with self._lock:
            if self._read(key) != expected:
                return False
            self._data[key] = (new, self._expires(ttl))
            return True

    async def forget(self, key: str) -> bool:
        with self._lock:
            present = self._read(key) is not None
            self._data.pop(key, None)
            return present

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
