"""Request models for API endpoints."""
from datetime import datetime
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, Field

from courier.models.intent import MessageIntent


class MessageRequest(BaseModel):
    channel: Annotated[Literal["sms", "whatsapp", "email"], Field()]
    to: Annotated[str, Field()]
    subject: Optional[str] = None
    text: Optional[str] = None
    html: Optional[str] = None
    template_key: Optional[str] = None
    template_data: dict[str, Any] = Field(default_factory=dict)
    media_urls: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    idempotency_key: Optional[str] = None
    send_at: Optional[datetime] = None

    def to_intent(self) -> MessageIntent:
        """Build the domain intent; raises IntentValidationError on bad input."""
        return MessageIntent(
            channel=self.channel,
            to=self.to,
            subject=self.subject,
            text=self.text,
            html=self.html,
            template_key=self.template_key,
            template_data=self.template_data,
            media_urls=tuple(self.media_urls),
            metadata=self.metadata,
            idempotency_key=self.idempotency_key,
            send_at=self.send_at,
        )
