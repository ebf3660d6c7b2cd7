"""Retry delay calculation."""
import random
from enum import Enum
from typing import Optional


class BackoffStrategy(str, Enum):
    EXPONENTIAL = "exponential"
    DECORRELATED = "decorrelated"


def exponential_with_jitter(attempt: int, base_ms: int, max_ms: int, rng: random.Random) -> int:
    """Exponential delay plus up to 50% random jitter, never above ``max_ms``.

    The result is always at least ``base_ms`` (given ``base_ms <= max_ms``).
    """
    capped = min(max_ms, base_ms * (2 ** attempt))
    return min(max_ms, capped + rng.randint(0, capped // 2))


def decorrelated_jitter(
    attempt: int, base_ms: int, max_ms: int, previous_ms: int, rng: random.Random
) -> int:
    """AWS-style decorrelated jitter: random between base and 3x the previous delay."""
    if attempt == 0:
        return base_ms
    return min(max_ms, rng.randint(base_ms, max(base_ms, previous_ms * 3)))


class BackoffCalculator:
    """Computes retry delays for one channel's retry policy.

    Args:
        strategy: "exponential" or "decorrelated".
        base_ms: Delay for the first retry.
        max_ms: Upper bound for every delay.
        rng: Source of jitter. Pass a seeded ``random.Random`` in tests.
    """

    def __init__(
        self,
        strategy: BackoffStrategy | str = BackoffStrategy.EXPONENTIAL,
        base_ms: int = 1000,
        max_ms: int = 60000,
        rng: Optional[random.Random] = None,
    ) -> None:
        if base_ms < 0 or max_ms < base_ms:
            raise ValueError(f"Invalid backoff bounds: base_ms={base_ms}, max_ms={max_ms}")
        self._strategy = BackoffStrategy(strategy)
        self._base_ms = base_ms
        self._max_ms = max_ms
        self._rng = rng or random.Random()

    @property
    def strategy(self) -> BackoffStrategy:
        return self._strategy

    def delay_ms(self, attempt: int, previous_ms: int = 0) -> int:
        if attempt < 0:
            raise ValueError("attempt cannot be negative")
        if self._strategy is BackoffStrategy.DECORRELATED:
            return decorrelated_jitter(attempt, self._base_ms, self._max_ms, previous_ms, self._rng)
        return exponential_with_jitter(attempt, self._base_ms, self._max_ms, self._rng)

    def delay_seconds(self, attempt: int, previous_ms: int = 0) -> float:
        return self.delay_ms(attempt, previous_ms) / 1000.0
