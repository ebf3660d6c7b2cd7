"""Tests for MessageIntent validation and serialization."""
import pytest
from datetime import datetime, timezone

from courier.errors import IntentValidationError
from courier.models.intent import Channel, MessageIntent
from courier.models.result import SendResult, SendStatus


class TestIntentValidation:
    """Invalid intents are rejected at construction."""

    def test_channel_string_is_coerced(self) -> None:
        intent = MessageIntent(channel="sms", to="+15551234567")
        assert intent.channel is Channel.SMS

    def test_unknown_channel_raises(self) -> None:
        with pytest.raises(IntentValidationError, match="Invalid channel"):
            MessageIntent(channel="fax", to="+15551234567")

    def test_validation_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            MessageIntent(channel="sms", to="")

    def test_blank_recipient_raises(self) -> None:
        with pytest.raises(IntentValidationError, match="Recipient"):
            MessageIntent(channel="email", to="   ")

    @pytest.mark.parametrize("number", ["+15551234567", "0044 20 7946 0958", "(555) 123-4567", "12345678"])
    def test_valid_phone_numbers(self, number: str) -> None:
        MessageIntent(channel="whatsapp", to=number)

    @pytest.mark.parametrize("number", ["1234567", "+1" + "2" * 20, "++15551234567", "1+5551234567"])
    def test_invalid_phone_numbers(self, number: str) -> None:
        with pytest.raises(IntentValidationError, match="phone"):
            MessageIntent(channel="sms", to=number)

    @pytest.mark.parametrize("address", ["user@example.com", "first.last+tag@mail.example.co.uk"])
    def test_valid_emails(self, address: str) -> None:
        MessageIntent(channel="email", to=address)

    @pytest.mark.parametrize("address", ["no-at-sign", "user@", "@example.com", ".user@example.com",
                                         "us..er@example.com", "user@localhost"])
    def test_invalid_emails(self, address: str) -> None:
        with pytest.raises(IntentValidationError, match="email"):
            MessageIntent(channel="email", to=address)

    def test_idempotency_key_at_limit_accepted(self) -> None:
        intent = MessageIntent(channel="sms", to="+15551234567", idempotency_key="k" * 128)
        assert len(intent.idempotency_key) == 128

    def test_idempotency_key_over_limit_rejected(self) -> None:
        with pytest.raises(IntentValidationError, match="128"):
            MessageIntent(channel="sms", to="+15551234567", idempotency_key="k" * 129)

    def test_empty_idempotency_key_rejected(self) -> None:
        with pytest.raises(IntentValidationError, match="empty"):
            MessageIntent(channel="sms", to="+15551234567", idempotency_key="")

    def test_naive_send_at_rejected(self) -> None:
        with pytest.raises(IntentValidationError, match="timezone"):
            MessageIntent(channel="sms", to="+15551234567", send_at=datetime(2026, 1, 1))

    def test_frozen(self) -> None:
        intent = MessageIntent(channel="sms", to="+15551234567")
        with pytest.raises(AttributeError):
            intent.to = "+15550000000"  # type: ignore[misc]

    def test_mappings_are_copied_from_caller(self) -> None:
        data = {"name": "Ada"}
        meta = {"order": 1}
        intent = MessageIntent(channel="sms", to="+15551234567", template_data=data, metadata=meta)
        data["name"] = "Grace"
        meta["extra"] = True
        assert intent.template_data == {"name": "Ada"}
        assert intent.metadata == {"order": 1}

    def test_mappings_are_read_only(self) -> None:
        intent = MessageIntent(channel="sms", to="+15551234567", template_data={"name": "Ada"})
        with pytest.raises(TypeError):
            intent.template_data["name"] = "Grace"  # type: ignore[index]
        with pytest.raises(TypeError):
            intent.metadata["order"] = 2  # type: ignore[index]

    def test_hashable_with_mappings(self) -> None:
        first = MessageIntent(channel="sms", to="+15551234567", template_data={"a": 1}, metadata={"b": 2})
        second = MessageIntent(channel="sms", to="+15551234567", template_data={"a": 1}, metadata={"b": 2})
        assert first == second
        assert hash(first) == hash(second)
        assert len({first, second}) == 1


class TestIntentSerialization:
    """The JSON form is what gets persisted and replayed."""

    def test_json_restores_equal_intent(self) -> None:
        intent = MessageIntent(
            channel="email", to="user@example.com", subject="Hi", html="<p>Hi</p>",
            template_data={"name": "Ada"}, media_urls=["https://cdn.example.com/a.png"],
            metadata={"order": 1}, idempotency_key="order:1:email",
            send_at=datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc),
        )
        assert MessageIntent.from_json(intent.to_json()) == intent

    def test_to_dict_returns_plain_mappings(self) -> None:
        intent = MessageIntent(channel="sms", to="+15551234567", template_data={"a": 1}, metadata={"b": 2})
        data = intent.to_dict()
        assert type(data["template_data"]) is dict
        assert type(data["metadata"]) is dict
        assert '"template_data": {"a": 1}' in intent.to_json()

    def test_json_is_key_sorted(self) -> None:
        raw = MessageIntent(channel="sms", to="+15551234567").to_json()
        assert raw.index('"channel"') < raw.index('"to"')

    def test_from_dict_accepts_z_suffix(self) -> None:
        intent = MessageIntent.from_dict(
            {"channel": "sms", "to": "+15551234567", "send_at": "2026-03-01T12:00:00Z"}
        )
        assert intent.send_at == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_from_json_rejects_garbage(self) -> None:
        with pytest.raises(IntentValidationError, match="Malformed"):
            MessageIntent.from_json("{not json")

    def test_from_json_rejects_non_object(self) -> None:
        with pytest.raises(IntentValidationError, match="object"):
            MessageIntent.from_json("[1, 2]")


class TestSendResult:
    def test_success(self) -> None:
        result = SendResult.success("SM123", {"sid": "SM123"})
        assert result.ok
        assert result.status is SendStatus.SENT
        assert result.provider_message_id == "SM123"

    def test_failed(self) -> None:
        result = SendResult.failed("503", "Service unavailable")
        assert not result.ok
        assert result.status is SendStatus.FAILED
        assert result.raw == {}

    def test_undeliverable(self) -> None:
        result = SendResult.undeliverable("INVALID_RECIPIENT")
        assert result.status is SendStatus.UNDELIVERABLE
        assert result.error_code == "INVALID_RECIPIENT"
