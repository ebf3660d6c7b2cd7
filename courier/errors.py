"""Exception types for the dispatch engine."""
from typing import Any, Optional


class CourierError(Exception):
    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class IntentValidationError(CourierError, ValueError):
    """The message intent is malformed. Raised before any side effect."""

    status_code = 422
    error_code = "INVALID_INTENT"


class PayloadTooLargeError(CourierError):
    status_code = 413
    error_code = "PAYLOAD_TOO_LARGE"

    def __init__(self, size: int, max_size: int) -> None:
        super().__init__(
            f"Payload exceeds maximum size of {max_size} bytes",
            {"size": size, "max_size": max_size},
        )
        self.size = size
        self.max_size = max_size


class StorageError(CourierError):
    """Any store failure other than an idempotency key conflict."""

    error_code = "STORAGE_ERROR"


class MessageNotFoundError(CourierError):
    status_code = 404
    error_code = "MESSAGE_NOT_FOUND"


class DeadLetterNotFoundError(CourierError):
    status_code = 404
    error_code = "DEAD_LETTER_NOT_FOUND"


class UnknownChannelError(CourierError):
    """No sender is registered for the requested channel."""

    error_code = "SENDER_NOT_CONFIGURED"


class UnknownServiceError(CourierError):
    """No circuit breaker exists for the named provider service."""

    status_code = 404
    error_code = "UNKNOWN_SERVICE"
