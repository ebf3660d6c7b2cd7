"""Message intent: the immutable description of one logical send."""
import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from courier.errors import IntentValidationError

MAX_IDEMPOTENCY_KEY_LENGTH = 128
_PHONE_MIN_LENGTH = 8
_PHONE_MAX_LENGTH = 20
_PHONE_STRIP = re.compile(r"[^0-9+]")
_EMAIL = re.compile(
    r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)+$"
)


class Channel(str, Enum):
    SMS = "sms"
    WHATSAPP = "whatsapp"
    EMAIL = "email"


def _valid_email(address: str) -> bool:
    if not _EMAIL.match(address):
        return False
    local = address.split("@", 1)[0]
    return not (local.startswith(".") or local.endswith(".") or ".." in local)


def _valid_phone(number: str) -> bool:
    cleaned = _PHONE_STRIP.sub("", number)
    if not _PHONE_MIN_LENGTH <= len(cleaned) <= _PHONE_MAX_LENGTH:
        return False
    digits = cleaned[1:] if cleaned.startswith("+") else cleaned
    return digits.isdigit()


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        raw = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            return datetime.fromisoformat(raw)
        except ValueError as exc:
            raise IntentValidationError(f"Invalid send_at '{value}'") from exc
    raise IntentValidationError(f"Invalid send_at {value!r}")


@dataclass(frozen=True)
class MessageIntent:
    """What to send, to whom, over which channel.

    Attributes:
        channel: Delivery channel.
        to: Recipient phone number (sms/whatsapp) or email address.
        subject: Email subject.
        text: Plain text body.
        html: HTML body (email only).
        template_key: Provider template identifier.
        template_data: Template variables, copied into a read-only mapping.
        media_urls: Media attachment URLs.
        metadata: Free-form caller metadata, copied into a read-only mapping.
        idempotency_key: Caller-supplied key that scopes one logical send.
        send_at: Earliest time to attempt delivery (timezone-aware).

    Invalid input raises IntentValidationError at construction.
    """

    channel: Channel
    to: str
    subject: Optional[str] = None
    text: Optional[str] = None
    html: Optional[str] = None
    template_key: Optional[str] = None
    template_data: Mapping[str, Any] = field(default_factory=dict, hash=False)
    media_urls: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)
    idempotency_key: Optional[str] = None
    send_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        try:
            channel = Channel(self.channel)
        except ValueError:
            valid = ", ".join(c.value for c in Channel)
            raise IntentValidationError(
                f"Invalid channel '{self.channel}'. Must be one of: {valid}"
            ) from None
        object.__setattr__(self, "channel", channel)
        object.__setattr__(self, "media_urls", tuple(self.media_urls))
        object.__setattr__(self, "template_data", MappingProxyType(dict(self.template_data or {})))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata or {})))

        if not isinstance(self.to, str) or not self.to.strip():
            raise IntentValidationError("Recipient (to) cannot be empty")
        if channel is Channel.EMAIL and not _valid_email(self.to):
            raise IntentValidationError(
                f"Invalid email address '{self.to}' for email channel"
            )
        if channel in (Channel.SMS, Channel.WHATSAPP) and not _valid_phone(self.to):
            raise IntentValidationError(
                f"Invalid phone number '{self.to}' for {channel.value} channel "
                f"(must be {_PHONE_MIN_LENGTH}-{_PHONE_MAX_LENGTH} digits)"
            )

        if self.idempotency_key is not None:
            if not self.idempotency_key:
                raise IntentValidationError("Idempotency key cannot be empty")
            if len(self.idempotency_key) > MAX_IDEMPOTENCY_KEY_LENGTH:
                raise IntentValidationError(
                    f"Idempotency key cannot exceed {MAX_IDEMPOTENCY_KEY_LENGTH} characters"
                )

        if self.send_at is not None and self.send_at.tzinfo is None:
            raise IntentValidationError("send_at must be timezone-aware")

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel.value,
            "to": self.to,
            "subject": self.subject,
            "text": self.text,
            "html": self.html,
            "template_key": self.template_key,
            "template_data": dict(self.template_data),
            "media_urls": list(self.media_urls),
            "metadata": dict(self.metadata),
            "idempotency_key": self.idempotency_key,
            "send_at": self.send_at.isoformat() if self.send_at else None,
        }

    def to_json(self) -> str:
        """Serialized form persisted on messages and dead-letter entries."""
        return json.dumps(self.to_dict(), sort_keys=True, default=str)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MessageIntent":
        return cls(
            channel=data.get("channel", ""),
            to=data.get("to", ""),
            subject=data.get("subject"),
            text=data.get("text"),
            html=data.get("html"),
            template_key=data.get("template_key"),
            template_data=data.get("template_data") or {},
            media_urls=tuple(data.get("media_urls") or ()),
            metadata=data.get("metadata") or {},
            idempotency_key=data.get("idempotency_key"),
            send_at=_parse_datetime(data.get("send_at")),
        )

    @classmethod
    def from_json(cls, raw: str) -> "MessageIntent":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise IntentValidationError(f"Malformed intent payload: {exc}") from exc
        if not isinstance(data, dict):
            raise IntentValidationError("Intent payload must be a JSON object")
        return cls.from_dict(data)
