"""Value models shared by the engine and its collaborators."""
from courier.models.intent import Channel, MessageIntent, MAX_IDEMPOTENCY_KEY_LENGTH
from courier.models.result import SendResult, SendStatus
__all__ = ["Channel", "MessageIntent", "MAX_IDEMPOTENCY_KEY_LENGTH", "SendResult", "SendStatus"]
