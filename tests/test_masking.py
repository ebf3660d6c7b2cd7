"""Tests for recipient masking in log output."""
from courier.masking import mask_email, mask_phone, mask_recipient


class TestMasking:
    def test_mask_email_keeps_edges_and_domain(self) -> None:
        assert mask_email("jonathan@example.com") == "j******n@example.com"

    def test_mask_short_email_local_part(self) -> None:
        assert mask_email("ab@example.com") == "**@example.com"

    def test_mask_email_without_at(self) -> None:
        assert mask_email("nonsense") == "***"

    def test_mask_phone_keeps_two_each_side(self) -> None:
        assert mask_phone("+1 (555) 123-4567") == "+1********67"

    def test_mask_short_phone(self) -> None:
        assert mask_phone("1234") == "****"

    def test_mask_recipient_dispatches_on_at_sign(self) -> None:
        assert mask_recipient("ann@example.com") == "a*n@example.com"
        assert mask_recipient("+15551234567") == "+1********67"
