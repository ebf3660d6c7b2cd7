"""Resilience primitives: backoff, circuit breakers and their shared cache."""
from courier.resilience.backoff import (
    BackoffCalculator, BackoffStrategy, decorrelated_jitter, exponential_with_jitter,
)
from courier.resilience.cache import Cache, InMemoryCache
from courier.resilience.circuit_breaker import (
    CircuitBreaker, CircuitBreakerRegistry, CircuitState, CircuitStatus,
)
from courier.resilience.redis_cache import RedisCache
__all__ = [
    "BackoffCalculator", "BackoffStrategy", "decorrelated_jitter", "exponential_with_jitter",
    "Cache", "InMemoryCache",
    "CircuitBreaker", "CircuitBreakerRegistry", "CircuitState", "CircuitStatus",
    "RedisCache",
]
