"""Tests for dead-letter capture, replay and housekeeping."""
import pytest

from courier.dispatch.retry import AttemptOutcome
from courier.errors import DeadLetterNotFoundError
from courier.models.intent import Channel, MessageIntent
from courier.models.result import SendResult
from courier.state.models.message import MessageStatus


async def _dead_letter(engine, scheduler, sender, intent, code="INVALID_RECIPIENT"):
    sender.script(SendResult.failed(code, "rejected"))
    message_id = await engine.dispatch(intent)
    assert await scheduler.run_next() is AttemptOutcome.DEAD_LETTERED
    return message_id


class TestReplay:
    """Replaying a dead letter."""

    @pytest.mark.asyncio
    async def test_replay_requeues_same_message(self, engine, scheduler, sms_sender, metrics, make_intent) -> None:
        message_id = await _dead_letter(engine, scheduler, sms_sender, make_intent(idempotency_key="otp-1"))
        entry = (await engine.recorder.list_entries())[0]

        replayed = await engine.replay(entry.entry_id)

        assert replayed == message_id
        stored = await engine.messages.get(message_id)
        assert stored.status is MessageStatus.QUEUED
        assert stored.attempts == 0
        assert stored.error_code is None
        assert await engine.recorder.list_entries() == []
        assert scheduler.scheduled == [(message_id, 0.0)]
        assert metrics.total("courier.replayed") == 1

        assert await scheduler.run_next() is AttemptOutcome.SENT
        assert (await engine.messages.get(message_id)).status is MessageStatus.SENT

    @pytest.mark.asyncio
    async def test_replayed_message_can_dead_letter_again(self, engine, scheduler, sms_sender, make_intent) -> None:
        await _dead_letter(engine, scheduler, sms_sender, make_intent())
        entry = (await engine.recorder.list_entries())[0]
        await engine.replay(entry.entry_id)
        sms_sender.script(SendResult.undeliverable("BLOCKED"))
        assert await scheduler.run_next() is AttemptOutcome.DEAD_LETTERED
        entries = await engine.recorder.list_entries()
        assert len(entries) == 1
        assert entries[0].entry_id != entry.entry_id
        assert entries[0].error_code == "BLOCKED"

    @pytest.mark.asyncio
    async def test_replay_of_already_requeued_message_schedules_nothing(
        self, engine, scheduler, sms_sender, metrics, make_intent
    ) -> None:
        message_id = await _dead_letter(engine, scheduler, sms_sender, make_intent())
        entry = (await engine.recorder.list_entries())[0]
        intent = MessageIntent.from_json(entry.payload)
        assert await engine.messages.reset_for_retry(message_id, intent, expected=MessageStatus.DEAD_LETTERED)

        assert await engine.replay(entry.entry_id) == message_id

        assert scheduler.scheduled == []
        assert metrics.total("courier.replayed") == 0

    @pytest.mark.asyncio
    async def test_unknown_entry(self, engine) -> None:
        with pytest.raises(DeadLetterNotFoundError):
            await engine.replay("01HUNKNOWNENTRY")


class TestHousekeeping:
    """Listing, purging and stats."""

    @pytest.mark.asyncio
    async def test_list_filters_by_channel(
        self, engine, scheduler, sms_sender, email_sender, make_intent
    ) -> None:
        await _dead_letter(engine, scheduler, sms_sender, make_intent(idempotency_key="a"))
        await _dead_letter(
            engine, scheduler, email_sender,
            make_intent(channel=Channel.EMAIL, to="user@example.com", idempotency_key="b"),
        )
        assert len(await engine.recorder.list_entries()) == 2
        email_only = await engine.recorder.list_entries(channel="email")
        assert [e.channel for e in email_only] == ["email"]

    @pytest.mark.asyncio
    async def test_purge_one(self, engine, scheduler, sms_sender, make_intent) -> None:
        await _dead_letter(engine, scheduler, sms_sender, make_intent(idempotency_key="a"))
        await _dead_letter(engine, scheduler, sms_sender, make_intent(idempotency_key="b"))
        entries = await engine.recorder.list_entries()
        assert await engine.recorder.purge(entries[0].entry_id) == 1
        assert await engine.recorder.purge(entries[0].entry_id) == 0
        assert len(await engine.recorder.list_entries()) == 1

    @pytest.mark.asyncio
    async def test_purge_all(self, engine, scheduler, sms_sender, make_intent) -> None:
        await _dead_letter(engine, scheduler, sms_sender, make_intent(idempotency_key="a"))
        await _dead_letter(engine, scheduler, sms_sender, make_intent(idempotency_key="b"))
        assert await engine.recorder.purge() == 2
        assert await engine.recorder.list_entries() == []

    @pytest.mark.asyncio
    async def test_stats_window(self, engine, scheduler, sms_sender, clock, make_intent) -> None:
        await _dead_letter(engine, scheduler, sms_sender, make_intent(idempotency_key="old"), code="400")
        clock.advance(10 * 86400)
        await _dead_letter(engine, scheduler, sms_sender, make_intent(idempotency_key="a"))
        await _dead_letter(engine, scheduler, sms_sender, make_intent(idempotency_key="b"))

        stats = await engine.recorder.stats(days=7)

        assert stats.total == 2
        assert stats.by_channel == {"sms": 2}
        assert stats.top_error_codes == [("INVALID_RECIPIENT", 2)]
        assert stats.attempts_distribution == {1: 2}
        assert (await engine.recorder.stats(days=30)).total == 3
