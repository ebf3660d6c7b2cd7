"""Repositories."""
from courier.state.repositories.dead_letters import DeadLetterRepository
from courier.state.repositories.messages import OutboundMessageRepository
__all__ = [
    "DeadLetterRepository",
    "OutboundMessageRepository",
]
