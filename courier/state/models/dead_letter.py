"""Dead-letter models."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class DeadLetterEntry:
    """A terminally failed message kept for operator triage and replay.

    Attributes:
        entry_id: Unique identifier (ULID).
        message_id: The originating outbound message.
        channel: Channel value of the originating message.
        payload: Serialized MessageIntent to replay.
        attempts: Attempts made before giving up.
        error_code: Final error code.
        error_message: Final error message.
        last_exception: Formatted traceback when the sender raised.
        created_at: When the entry was recorded.
    """

    entry_id: str
    message_id: str
    channel: str
    payload: str
    attempts: int
    created_at: datetime
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    last_exception: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.entry_id:
            raise ValueError("entry_id cannot be empty")
        if not self.message_id:
            raise ValueError("message_id cannot be empty")
        if not self.channel:
            raise ValueError("channel cannot be empty")


@dataclass(frozen=True)
class DeadLetterStats:
    """Aggregates over dead-letter entries created since ``since``."""

    since: datetime
    total: int
    by_channel: dict[str, int] = field(default_factory=dict)
    top_error_codes: list[tuple[str, int]] = field(default_factory=list)
    attempts_distribution: dict[int, int] = field(default_factory=dict)
