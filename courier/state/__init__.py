"""State management module."""
from courier.state.database import DatabaseManager
from courier.state.models import (
    CreateOutcome, CreateResult, DeadLetterEntry, DeadLetterStats, MessageStatus,
    OutboundMessage, SKIP_STATUSES,
)
from courier.state.repositories import DeadLetterRepository, OutboundMessageRepository
from courier.state.store import SqliteDeadLetterStore, SqliteMessageStore
__all__ = ["DatabaseManager", "CreateOutcome", "CreateResult", "DeadLetterEntry", "DeadLetterStats",
           "MessageStatus", "OutboundMessage", "SKIP_STATUSES", "DeadLetterRepository",
           "OutboundMessageRepository", "SqliteDeadLetterStore", "SqliteMessageStore"]
