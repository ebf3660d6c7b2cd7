"""Engine configuration."""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from courier.models.intent import Channel
from courier.resilience.backoff import BackoffStrategy

logger = logging.getLogger(__name__)

_RECOGNISED_BOOL_VALUES = frozenset(
    ("1", "true", "yes", "0", "false", "no")
)
DEFAULT_MAX_PAYLOAD_SIZE = 262144


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently one channel retries transient failures."""

    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 60000
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL

    def __post_init__(self) -> None:
        object.__setattr__(self, "strategy", BackoffStrategy(self.strategy))
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms cannot be negative")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Breaker thresholds shared by every provider.

    ``ttl`` bounds how long breaker state survives in the cache. It must
    outlive ``timeout`` or an open breaker could silently expire to closed
    before its cool-down ends.

    ``trial_window`` is how long a half_open breaker waits for a verdict
    before handing out a fresh set of ``max_trials`` trials. It is at least
    ``timeout`` and shorter than ``ttl``.
    """

    failure_threshold: int = 5
    timeout: int = 60
    success_threshold: int = 2
    max_trials: int = 3
    ttl: int = 86400
    trial_window: int = 300

    def __post_init__(self) -> None:
        for name in ("failure_threshold", "timeout", "success_threshold", "max_trials", "ttl", "trial_window"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive")
        if self.ttl <= self.timeout:
            raise ValueError("ttl must be greater than timeout")
        if self.max_trials < self.success_threshold:
            raise ValueError("max_trials must be >= success_threshold")
        if not self.timeout <= self.trial_window < self.ttl:
            raise ValueError("trial_window must be >= timeout and less than ttl")


def _default_retry() -> dict[str, RetryPolicy]:
    return {channel.value: RetryPolicy() for channel in Channel}


@dataclass(frozen=True)
class CourierConfig:
    retry: dict[str, RetryPolicy] = field(default_factory=_default_retry)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE
    db_path: Path = field(default_factory=lambda: Path("data/courier.db"))
    redis_url: Optional[str] = None
    log_level: str = "INFO"
    request_logging: bool = True

    def retry_policy(self, channel: Channel | str) -> RetryPolicy:
        """Policy for ``channel``, falling back to the defaults."""
        key = channel.value if isinstance(channel, Channel) else channel
        return self.retry.get(key) or RetryPolicy()


def _parse_bool(value: str, default: bool) -> bool:
    """Parse a boolean environment variable with explicit default.

    Recognises ``true/1/yes`` and ``false/0/no`` (case-insensitive).
    Returns *default* when the value is empty or unset and logs a warning
    for anything else.
    """
    if not value:
        return default
    normalised = value.lower()
    if normalised not in _RECOGNISED_BOOL_VALUES:
        logger.warning(
            "Unrecognised boolean value %r, using default %s. "
            "Expected one of: true/1/yes or false/0/no.",
            value,
            default,
        )
        return default
    return normalised in ("1", "true", "yes")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _load_retry_policy(channel: Channel) -> RetryPolicy:
    prefix = f"COURIER_{channel.value.upper()}_"
    return RetryPolicy(
        max_attempts=_env_int(prefix + "MAX_ATTEMPTS", 3),
        base_delay_ms=_env_int(prefix + "BASE_DELAY_MS", 1000),
        max_delay_ms=_env_int(prefix + "MAX_DELAY_MS", 60000),
        strategy=os.environ.get(prefix + "BACKOFF", BackoffStrategy.EXPONENTIAL.value),
    )


def load_config_from_env() -> CourierConfig:
    """Build a CourierConfig from ``COURIER_*`` environment variables.

    Raises:
        ValueError: On malformed numbers or inconsistent breaker settings.
    """
    return CourierConfig(
        retry={channel.value: _load_retry_policy(channel) for channel in Channel},
        circuit_breaker=CircuitBreakerConfig(
            failure_threshold=_env_int("COURIER_CB_FAILURE_THRESHOLD", 5),
            timeout=_env_int("COURIER_CB_TIMEOUT", 60),
            success_threshold=_env_int("COURIER_CB_SUCCESS_THRESHOLD", 2),
            max_trials=_env_int("COURIER_CB_MAX_TRIALS", 3),
            ttl=_env_int("COURIER_CB_TTL", 86400),
            trial_window=_env_int("COURIER_CB_TRIAL_WINDOW", 300),
        ),
        max_payload_size=_env_int("COURIER_MAX_PAYLOAD_SIZE", DEFAULT_MAX_PAYLOAD_SIZE),
        db_path=Path(os.environ.get("COURIER_DB_PATH", "data/courier.db")),
        redis_url=os.environ.get("COURIER_REDIS_URL") or None,
        log_level=os.environ.get("COURIER_LOG_LEVEL", "INFO").upper(),
        request_logging=_parse_bool(os.environ.get("COURIER_REQUEST_LOGGING", ""), default=True),
    )
