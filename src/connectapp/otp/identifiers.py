"""Identifier normalization for OTP delivery targets."""

from __future__ import annotations

import re

from connectapp.errors import InvalidIdentifier

CHANNEL_SMS = "sms"
CHANNEL_EMAIL = "email"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_SEPARATORS_RE = re.compile(r"[\s\-.()]")
_E164_RE = re.compile(r"^\+\d{8,15}$")


def normalize_email(raw: str) -> str | None:
    candidate = raw.strip().lower()
    return candidate if _EMAIL_RE.match(candidate) else None


def normalize_phone(raw: str, default_country_code: str = "+91") -> str | None:
    """Return *raw* in E.164 form, or ``None`` if it is not a phone number.

    ``9876543210`` and ``919876543210`` both become ``+919876543210`` with
    the default ``+91`` country code.
    """
    cleaned = _PHONE_SEPARATORS_RE.sub("", raw.strip())
    country_digits = default_country_code.lstrip("+")

    if cleaned.isdigit():
        if len(cleaned) == 10:
            cleaned = default_country_code + cleaned
        elif len(cleaned) == 10 + len(country_digits) and cleaned.startswith(country_digits):
            cleaned = "+" + cleaned

    return cleaned if _E164_RE.match(cleaned) else None


def normalize_identifier(
    raw: str | None,
    channel: str | None = None,
    default_country_code: str = "+91",
) -> tuple[str, str]:
    """Validate *raw* and return ``(identifier, channel)``.

    The channel is inferred from the identifier's shape.  An explicit
    *channel* must agree with it.
    """
    if not raw or not raw.strip():
        raise InvalidIdentifier("Phone number or email is required")

    if channel not in (None, CHANNEL_SMS, CHANNEL_EMAIL):
        raise InvalidIdentifier(f"Unsupported channel: {channel}")

    if "@" in raw:
        email = normalize_email(raw)
        if email is None or channel == CHANNEL_SMS:
            raise InvalidIdentifier("Invalid email format")
        return email, CHANNEL_EMAIL

    phone = normalize_phone(raw, default_country_code)
    if phone is None or channel == CHANNEL_EMAIL:
        raise InvalidIdentifier("Invalid phone number")
    return phone, CHANNEL_SMS
