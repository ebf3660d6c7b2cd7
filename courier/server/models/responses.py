"""Response models for API endpoints."""
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, Field

from courier.resilience.circuit_breaker import CircuitStatus
from courier.state.models.dead_letter import DeadLetterEntry, DeadLetterStats


class MessageQueuedResponse(BaseModel):
    status: Literal["queued"] = "queued"
    message_id: Annotated[str, Field()]


class CircuitStatusResponse(BaseModel):
    service: Annotated[str, Field()]
    state: Annotated[Literal["closed", "open", "half_open"], Field()]
    failure_count: int = 0
    success_count: int = 0
    trial_count: int = 0
    last_failure_at: Optional[str] = None
    estimated_recovery_at: Optional[str] = None
    recovery_in_seconds: Optional[float] = None
    trials_remaining: Optional[int] = None

    @classmethod
    def from_status(cls, status: CircuitStatus) -> "CircuitStatusResponse":
        return cls(**status.to_dict())


class CircuitListResponse(BaseModel):
    circuits: Annotated[list[CircuitStatusResponse], Field()]


class HealthResponse(BaseModel):
    status: Annotated[Literal["healthy", "degraded"], Field()]
    timestamp: Annotated[str, Field()]
    circuits: Annotated[dict[str, str], Field()]
    messages: Optional[dict[str, int]] = None
    message: Optional[str] = None


class DeadLetterResponse(BaseModel):
    entry_id: Annotated[str, Field()]
    message_id: Annotated[str, Field()]
    channel: Annotated[str, Field()]
    attempts: Annotated[int, Field()]
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Annotated[str, Field()]

    @classmethod
    def from_entry(cls, entry: DeadLetterEntry) -> "DeadLetterResponse":
        return cls(
            entry_id=entry.entry_id,
            message_id=entry.message_id,
            channel=entry.channel,
            attempts=entry.attempts,
            error_code=entry.error_code,
            error_message=entry.error_message,
            created_at=entry.created_at.isoformat(),
        )


class DeadLetterListResponse(BaseModel):
    entries: Annotated[list[DeadLetterResponse], Field()]
    count: Annotated[int, Field()]


class DeadLetterStatsResponse(BaseModel):
    since: Annotated[str, Field()]
    total: Annotated[int, Field()]
    by_channel: dict[str, int] = Field(default_factory=dict)
    top_error_codes: list[dict[str, Any]] = Field(default_factory=list)
    attempts_distribution: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_stats(cls, stats: DeadLetterStats) -> "DeadLetterStatsResponse":
        return cls(
            since=stats.since.isoformat(),
            total=stats.total,
            by_channel=stats.by_channel,
            top_error_codes=[{"error_code": c, "count": n} for c, n in stats.top_error_codes],
            attempts_distribution={str(k): v for k, v in stats.attempts_distribution.items()},
        )


class PurgeResponse(BaseModel):
    deleted: Annotated[int, Field()]


class ErrorDetail(BaseModel):
    code: Annotated[str, Field()]
    message: Annotated[str, Field()]
    details: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail
