"""Send attempts, failure classification and retry scheduling."""
import logging
import random
import re
import traceback
from enum import Enum
from typing import Mapping, Optional

import httpx

from courier.config import RetryPolicy
from courier.dispatch.contracts import AttemptScheduler, MessageRepository, Sender
from courier.dispatch.dead_letter import DeadLetterRecorder
from courier.errors import IntentValidationError
from courier.events import (
    EventSink, MessageFinalized, MessageRetryScheduled, MessageSending, safe_emit,
)
from courier.metrics import MetricsSink
from courier.models.intent import MessageIntent
from courier.models.result import SendResult, SendStatus
from courier.resilience.backoff import BackoffCalculator
from courier.resilience.circuit_breaker import CircuitBreakerRegistry
from courier.state.models.message import MessageStatus

logger = logging.getLogger(__name__)

CIRCUIT_OPEN = "CIRCUIT_OPEN"
NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
SENDER_EXCEPTION = "SENDER_EXCEPTION"
SENDER_NOT_CONFIGURED = "SENDER_NOT_CONFIGURED"
INVALID_PAYLOAD = "INVALID_PAYLOAD"

PERMANENT_ERROR_CODES = frozenset({"VALIDATION_ERROR", "INVALID_RECIPIENT"})
_RETRYABLE_CLIENT_ERRORS = frozenset({408, 429})
_HTTP_CODE = re.compile(r"^(?:HTTP_)?(\d{3})$")


class ResultClass(Enum):
    SUCCESS = "success"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class AttemptOutcome(Enum):
    """What one call to ``RetryCoordinator.attempt`` did."""

    SENT = "sent"
    RETRY_SCHEDULED = "retry_scheduled"
    DEAD_LETTERED = "dead_lettered"
    FAILED = "failed"
    SKIPPED = "skipped"


def classify_result(result: SendResult) -> ResultClass:
    """Decide whether a send result is final, retryable or a success.

    A ``failed`` result is permanent when its error code is an HTTP 4xx
    other than 408/429 (``"404"`` or ``"HTTP_404"``) or a known validation
    code. Everything else, including an open circuit, is transient.
    """
    if result.status is SendStatus.SENT:
        return ResultClass.SUCCESS
    if result.status is SendStatus.UNDELIVERABLE:
        return ResultClass.PERMANENT
    code = result.error_code or ""
    if code in PERMANENT_ERROR_CODES:
        return ResultClass.PERMANENT
    match = _HTTP_CODE.match(code)
    if match:
        status = int(match.group(1))
        if 400 <= status < 500 and status not in _RETRYABLE_CLIENT_ERRORS:
            return ResultClass.PERMANENT
    return ResultClass.TRANSIENT


class RetryCoordinator:
    """Drives a single send attempt for one message.

    The message is claimed by moving it from ``queued`` to ``sending``
    with a compare-and-set, so concurrent attempts for the same message
    cannot both call the provider.
    """

    def __init__(
        self,
        repository: MessageRepository,
        senders: Mapping[str, Sender],
        breakers: CircuitBreakerRegistry,
        recorder: DeadLetterRecorder,
        scheduler: AttemptScheduler,
        events: EventSink,
        metrics: MetricsSink,
        retry_policies: Optional[Mapping[str, RetryPolicy]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._repository = repository
        self._senders = dict(senders)
        self._breakers = breakers
        self._recorder = recorder
        self._scheduler = scheduler
        self._events = events
        self._metrics = metrics
        self._policies = dict(retry_policies or {})
        self._rng = rng or random.Random()
        self._backoffs: dict[str, BackoffCalculator] = {}
        # Last delay per message, for decorrelated jitter. Process-local.
        self._last_delay_ms: dict[str, int] = {}

    def policy_for(self, channel: str) -> RetryPolicy:
        return self._policies.get(channel) or RetryPolicy()

    def _backoff_for(self, channel: str) -> BackoffCalculator:
        calc = self._backoffs.get(channel)
        if calc is None:
            policy = self.policy_for(channel)
            calc = BackoffCalculator(policy.strategy, policy.base_delay_ms, policy.max_delay_ms, self._rng)
            self._backoffs[channel] = calc
        return calc

    async def attempt(self, message_id: str) -> AttemptOutcome:
        message = await self._repository.get(message_id)
        if message is None:
            logger.warning("Attempt for unknown message %s skipped", message_id)
            return AttemptOutcome.SKIPPED
        if not await self._repository.update_status(
            message_id, MessageStatus.SENDING, expected=MessageStatus.QUEUED
        ):
            logger.info("Message %s is %s, attempt skipped", message_id, message.status.value)
            return AttemptOutcome.SKIPPED
        attempts = await self._repository.increment_attempts(message_id)
        channel = message.channel

        try:
            intent = MessageIntent.from_json(message.payload)
        except IntentValidationError as exc:
            logger.error("Message %s has an unreadable payload: %s", message_id, exc)
            await self._repository.update_status(
                message_id, MessageStatus.FAILED,
                {"error_code": INVALID_PAYLOAD, "error_message": str(exc)},
            )
            return AttemptOutcome.FAILED

        safe_emit(self._events, MessageSending(message_id, channel, attempts))
        sender = self._senders.get(channel)
        if sender is None:
            logger.error("No sender configured for channel %s", channel)
            result = SendResult.failed(SENDER_NOT_CONFIGURED, f"No sender for channel '{channel}'")
            return await self._dead_letter(message_id, channel, intent, attempts, result, None)

        result, trace = await self._send(sender, intent)
        verdict = classify_result(result)

        breaker = self._breakers.get(sender.provider)
        if verdict is ResultClass.SUCCESS:
            await breaker.record_success()
            await self._repository.update_status(
                message_id, MessageStatus.SENT, {"provider_message_id": result.provider_message_id}
            )
            self._last_delay_ms.pop(message_id, None)
            logger.info("Message %s sent via %s on attempt %d", message_id, sender.provider, attempts)
            safe_emit(
                self._events,
                MessageFinalized(message_id, channel, result.provider_message_id, attempts),
            )
            self._metrics.increment("courier.sent", tags={"channel": channel, "provider": sender.provider})
            return AttemptOutcome.SENT

        if verdict is ResultClass.PERMANENT:
            return await self._dead_letter(message_id, channel, intent, attempts, result, trace)

        if result.error_code != CIRCUIT_OPEN:
            await breaker.record_failure()
        policy = self.policy_for(channel)
        if attempts >= policy.max_attempts:
            return await self._dead_letter(message_id, channel, intent, attempts, result, trace)

        delay_ms = self._backoff_for(channel).delay_ms(attempts, self._last_delay_ms.get(message_id, 0))
        self._last_delay_ms[message_id] = delay_ms
        delay = delay_ms / 1000.0
        await self._repository.update_status(
            message_id,
            MessageStatus.QUEUED,
            {"error_code": result.error_code, "error_message": result.error_message},
        )
        logger.warning(
            "Message %s attempt %d/%d failed (%s), retrying in %.3fs",
            message_id, attempts, policy.max_attempts, result.error_code, delay,
        )
        safe_emit(self._events, MessageRetryScheduled(message_id, attempts, delay, result.error_code))
        await self._scheduler.schedule(message_id, delay)
        self._metrics.increment("courier.retry", tags={"channel": channel})
        return AttemptOutcome.RETRY_SCHEDULED

    async def _send(self, sender: Sender, intent: MessageIntent) -> tuple[SendResult, Optional[str]]:
        breaker = self._breakers.get(sender.provider)
        if not await breaker.is_available():
            return SendResult.failed(CIRCUIT_OPEN, f"Circuit open for {sender.provider}"), None
        try:
            return await sender.send(intent), None
        except httpx.TimeoutException as exc:
            return SendResult.failed(NETWORK_TIMEOUT, str(exc) or "Provider request timed out"), None
        except Exception as exc:
            logger.exception("Sender %s raised", sender.provider)
            return SendResult.failed(SENDER_EXCEPTION, str(exc)), traceback.format_exc()

    async def _dead_letter(
        self,
        message_id: str,
        channel: str,
        intent: MessageIntent,
        attempts: int,
        result: SendResult,
        trace: Optional[str],
    ) -> AttemptOutcome:
        meta = {"error_code": result.error_code, "error_message": result.error_message}
        await self._repository.update_status(message_id, MessageStatus.FAILED, meta)
        self._last_delay_ms.pop(message_id, None)
        await self._recorder.record(
            message_id, channel, intent, attempts, result.error_code, result.error_message, trace
        )
        return AttemptOutcome.DEAD_LETTERED
