"""Outbound message models."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class MessageStatus(Enum):
    """Lifecycle status of an outbound message."""

    QUEUED = "queued"
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    DEAD_LETTERED = "dead_lettered"


# A dispatch carrying the same idempotency key as a message in one of
# these states is a duplicate: it returns the existing id and does nothing.
SKIP_STATUSES = frozenset({
    MessageStatus.QUEUED,
    MessageStatus.SENDING,
    MessageStatus.SENT,
    MessageStatus.DELIVERED,
    MessageStatus.DEAD_LETTERED,
})


@dataclass(frozen=True)
class OutboundMessage:
    """A persisted outbound message.

    Attributes:
        message_id: Unique identifier (ULID).
        channel: Channel value ('sms', 'whatsapp', 'email').
        recipient: Phone number or email address.
        payload: Serialized MessageIntent (JSON).
        queued_at: When the message last entered the queued state.
        status: Current lifecycle status.
        idempotency_key: Caller key, unique across all messages when set.
        attempts: Send attempts made since the last (re)queue.
        subject: Email subject, if any.
        template_key: Provider template identifier, if any.
        provider_message_id: Identifier assigned by the provider on send.
        error_code: Last error code reported for this message.
        error_message: Last error message reported for this message.
    """

    message_id: str
    channel: str
    recipient: str
    payload: str
    queued_at: datetime
    status: MessageStatus = MessageStatus.QUEUED
    idempotency_key: Optional[str] = None
    attempts: int = 0
    subject: Optional[str] = None
    template_key: Optional[str] = None
    provider_message_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Validate required fields."""
        if not self.message_id:
            raise ValueError("message_id cannot be empty")
        if not self.channel:
            raise ValueError("channel cannot be empty")
        if not self.recipient:
            raise ValueError("recipient cannot be empty")
        if self.attempts < 0:
            raise ValueError("attempts cannot be negative")


class CreateOutcome(Enum):
    CREATED = "created"
    DUPLICATE_KEY = "duplicate_key"


@dataclass(frozen=True)
class CreateResult:
    """Result of inserting a message row.

    ``DUPLICATE_KEY`` means the store's uniqueness constraint rejected the
    idempotency key because another writer got there first. Every other
    storage failure is raised as StorageError instead.
    """

    outcome: CreateOutcome
    message_id: str

    @property
    def created(self) -> bool:
        return self.outcome is CreateOutcome.CREATED
