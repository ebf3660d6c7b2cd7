"""Counters for dispatch outcomes."""
import logging
import threading
from collections import Counter
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

Tags = Optional[dict[str, str]]


class MetricsSink(Protocol):
    def increment(self, metric: str, by: int = 1, tags: Tags = None) -> None: ...


def _tag_key(tags: Tags) -> tuple[tuple[str, str], ...]:
    return tuple(sorted((tags or {}).items()))


class LoggingMetricsSink:
    """Writes one log line per increment."""

    def increment(self, metric: str, by: int = 1, tags: Tags = None) -> None:
        logger.info("metric=%s by=%d tags=%s", metric, by, dict(_tag_key(tags)))


class InMemoryMetricsSink:
    """Accumulates counters in process, keyed by name and sorted tags."""

    def __init__(self) -> None:
        self._counts: Counter = Counter()
        self._lock = threading.Lock()

    def increment(self, metric: str, by: int = 1, tags: Tags = None) -> None:
        with self._lock:
            self._counts[(metric, _tag_key(tags))] += by

    def value(self, metric: str, tags: Tags = None) -> int:
        """Counter for an exact name and tag set."""
        with self._lock:
            return self._counts[(metric, _tag_key(tags))]

    def total(self, metric: str) -> int:
        """Counter summed over every tag set."""
        with self._lock:
            return sum(n for (name, _), n in self._counts.items() if name == metric)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            out: dict[str, int] = {}
            for (name, tags), n in self._counts.items():
                label = name if not tags else name + "{" + ",".join(f"{k}={v}" for k, v in tags) + "}"
                out[label] = n
            return out


class FallbackMetricsSink:
    """Wraps a metrics backend and falls back to logging when it fails."""

    def __init__(self, primary: MetricsSink, fallback: Optional[MetricsSink] = None) -> None:
        self._primary = primary
        self._fallback = fallback or LoggingMetricsSink()

    def increment(self, metric: str, by: int = 1, tags: Tags = None) -> None:
        try:
            self._primary.increment(metric, by, tags)
        except Exception as exc:
            logger.warning("Metrics backend failed for %s, using fallback: %s", metric, exc)
            self._fallback.increment(metric, by, tags)
