"""Pydantic models for request/response validation."""
from courier.server.models.requests import MessageRequest
from courier.server.models.responses import (
    CircuitListResponse,
    CircuitStatusResponse,
    DeadLetterListResponse,
    DeadLetterResponse,
    DeadLetterStatsResponse,
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
    MessageQueuedResponse,
    PurgeResponse,
)

__all__ = [
    "MessageRequest",
    "CircuitListResponse",
    "CircuitStatusResponse",
    "DeadLetterListResponse",
    "DeadLetterResponse",
    "DeadLetterStatsResponse",
    "ErrorDetail",
    "ErrorResponse",
    "HealthResponse",
    "MessageQueuedResponse",
    "PurgeResponse",
]
