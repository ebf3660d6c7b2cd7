"""Recipient masking for log output."""
import re

_PHONE_STRIP = re.compile(r"[^0-9+]")


def mask_email(email: str) -> str:
    """Keep the first and last character of the local part and the domain."""
    if "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    if len(local) <= 2:
        return "*" * len(local) + "@" + domain
    return local[0] + "*" * (len(local) - 2) + local[-1] + "@" + domain


def mask_phone(phone: str) -> str:
    """Keep the first two and last two characters of the cleaned number."""
    cleaned = _PHONE_STRIP.sub("", phone)
    if len(cleaned) <= 4:
        return "*" * len(cleaned)
    return cleaned[:2] + "*" * (len(cleaned) - 4) + cleaned[-2:]


def mask_recipient(recipient: str) -> str:
    return mask_email(recipient) if "@" in recipient else mask_phone(recipient)
