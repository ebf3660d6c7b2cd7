"""Reliable outbound multi-channel message dispatch."""
from courier.config import CircuitBreakerConfig, CourierConfig, RetryPolicy, load_config_from_env
from courier.engine import CourierEngine, build_engine
from courier.errors import (
    CourierError, DeadLetterNotFoundError, IntentValidationError, MessageNotFoundError,
    PayloadTooLargeError, StorageError, UnknownChannelError, UnknownServiceError,
)
from courier.models import Channel, MessageIntent, SendResult, SendStatus

__version__ = "1.0.0"
__all__ = [
    "CircuitBreakerConfig", "CourierConfig", "RetryPolicy", "load_config_from_env",
    "CourierEngine", "build_engine",
    "CourierError", "DeadLetterNotFoundError", "IntentValidationError", "MessageNotFoundError",
    "PayloadTooLargeError", "StorageError", "UnknownChannelError", "UnknownServiceError",
    "Channel", "MessageIntent", "SendResult", "SendStatus",
]
