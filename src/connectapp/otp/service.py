"""OTP service — issues codes, dispatches them and verifies submissions."""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Mapping
from dataclasses import dataclass

from connectapp.config import Settings
from connectapp.errors import (
    CodeExpired,
    DeliveryFailed,
    InternalError,
    InvalidCode,
    InvalidInput,
    NotFoundOrExpired,
    TooManyAttempts,
)
from connectapp.otp.channels import DeliveryChannel, DeliveryError
from connectapp.otp.identifiers import normalize_identifier
from connectapp.otp.store import OTPStore, VerifyOutcome

logger = logging.getLogger(__name__)

_OUTCOME_ERRORS = {
    VerifyOutcome.NOT_FOUND_OR_EXPIRED: NotFoundOrExpired,
    VerifyOutcome.EXPIRED: CodeExpired,
    VerifyOutcome.INVALID: InvalidCode,
    VerifyOutcome.TOO_MANY_ATTEMPTS: TooManyAttempts,
}


@dataclass
class IssuedCode:
    """Where a code was sent and how long it stays valid."""

    identifier: str
    channel: str
    expires_in: int


class OTPService:
    """Issues and verifies time-boxed one-time codes.

    Issuance never looks the identifier up in the user table, so a request
    for an unknown phone or email is indistinguishable from a known one.
    """

    def __init__(
        self,
        store: OTPStore,
        channels: Mapping[str, DeliveryChannel],
        ttl_seconds: int = 600,
        code_length: int = 6,
        max_attempts: int | None = 5,
        default_country_code: str = "+91",
    ) -> None:
        self._store = store
        self._channels = dict(channels)
        self._ttl = ttl_seconds
        self._code_length = code_length
        self._max_attempts = max_attempts
        self._country_code = default_country_code

    @classmethod
    def from_settings(
        cls, settings: Settings, store: OTPStore, channels: Mapping[str, DeliveryChannel]
    ) -> OTPService:
        return cls(
            store,
            channels,
            ttl_seconds=settings.otp_ttl_seconds,
            code_length=settings.otp_length,
            max_attempts=settings.otp_max_attempts,
            default_country_code=settings.default_country_code,
        )

    @property
    def store(self) -> OTPStore:
        return self._store

    def normalize(self, identifier: str | None, channel: str | None = None) -> tuple[str, str]:
        return normalize_identifier(identifier, channel, self._country_code)

    def generate_code(self) -> str:
        return "".join(secrets.choice(string.digits) for _ in range(self._code_length))

    async def issue(self, identifier: str | None, channel: str | None = None) -> IssuedCode:
        """Generate a fresh code, store it, then hand it to the delivery channel.

        The stored code survives a delivery failure; ``DeliveryFailed`` is
        raised afterwards so the caller can report it.
        """
        key, channel_name = self.normalize(identifier, channel)
        sender = self._channels.get(channel_name)
        if sender is None:
            logger.error("No delivery channel configured for %s", channel_name)
            raise InternalError(f"{channel_name} delivery is not configured")

        code = self.generate_code()
        self._store.put(key, code, self._ttl)

        try:
            await sender.send_code(key, code, self._ttl)
        except DeliveryError as exc:
            logger.warning("OTP for %s stored but delivery via %s failed: %s", key, channel_name, exc)
            raise DeliveryFailed() from exc

        logger.info("OTP issued for %s via %s", key, channel_name)
        return IssuedCode(identifier=key, channel=channel_name, expires_in=self._ttl)

    def verify(self, identifier: str | None, code: str | None) -> VerifyOutcome:
        """Check *code* for *identifier*; a match consumes the code."""
        key, _ = self.normalize(identifier)
        if not code or not code.strip():
            raise InvalidInput("OTP is required")

        outcome = self._store.consume(key, code.strip(), self._max_attempts)
        logger.info("OTP verification for %s: %s", key, outcome.value)
        return outcome

    def verify_or_raise(self, identifier: str | None, code: str | None) -> str:
        """Like :meth:`verify`, but raise on failure. Returns the normalized identifier."""
        outcome = self.verify(identifier, code)
        if outcome is not VerifyOutcome.VERIFIED:
            raise _OUTCOME_ERRORS[outcome]()
        key, _ = self.normalize(identifier)
        return key
