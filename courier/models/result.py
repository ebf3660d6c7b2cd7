"""Provider send results."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class SendStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    UNDELIVERABLE = "undeliverable"


@dataclass(frozen=True)
class SendResult:
    """Outcome of one provider call.

    ``failed`` means the provider may accept a retry; ``undeliverable``
    means it never will (bad recipient, rejected content).
    """

    status: SendStatus
    provider_message_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, provider_message_id: str, raw: Optional[dict[str, Any]] = None) -> "SendResult":
        return cls(SendStatus.SENT, provider_message_id=provider_message_id, raw=raw or {})

    @classmethod
    def failed(
        cls,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        raw: Optional[dict[str, Any]] = None,
    ) -> "SendResult":
        return cls(SendStatus.FAILED, error_code=error_code, error_message=error_message, raw=raw or {})

    @classmethod
    def undeliverable(
        cls,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        raw: Optional[dict[str, Any]] = None,
    ) -> "SendResult":
        return cls(SendStatus.UNDELIVERABLE, error_code=error_code, error_message=error_message, raw=raw or {})

    @property
    def ok(self) -> bool:
        return self.status is SendStatus.SENT
