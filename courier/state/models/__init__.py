"""State models."""
from courier.state.models.dead_letter import DeadLetterEntry, DeadLetterStats
from courier.state.models.message import (
    CreateOutcome, CreateResult, MessageStatus, OutboundMessage, SKIP_STATUSES,
)
__all__ = [
    "DeadLetterEntry", "DeadLetterStats",
    "CreateOutcome", "CreateResult", "MessageStatus", "OutboundMessage", "SKIP_STATUSES",
]
