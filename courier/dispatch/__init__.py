"""Dispatch engine: creation, attempts, retries and dead letters."""
from courier.dispatch.contracts import AttemptScheduler, DeadLetterStore, MessageRepository, Sender
from courier.dispatch.dead_letter import DeadLetterRecorder
from courier.dispatch.dispatcher import Dispatcher
from courier.dispatch.retry import AttemptOutcome, ResultClass, RetryCoordinator, classify_result
from courier.dispatch.scheduler import AsyncioAttemptScheduler
__all__ = [
    "AttemptScheduler", "DeadLetterStore", "MessageRepository", "Sender",
    "DeadLetterRecorder", "Dispatcher",
    "AttemptOutcome", "ResultClass", "RetryCoordinator", "classify_result",
    "AsyncioAttemptScheduler",
]
