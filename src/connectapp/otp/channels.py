"""Delivery channels — hand a freshly issued code to an SMS or email gateway."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from email.message import EmailMessage

import aiosmtplib
import httpx

from connectapp.config import Settings
from connectapp.otp.identifiers import CHANNEL_EMAIL, CHANNEL_SMS

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """Raised when a gateway rejects or cannot accept a message."""


class DeliveryChannel(ABC):
    """Abstract base class for every OTP delivery channel."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel key, ``sms`` or ``email``."""

    @abstractmethod
    async def send_code(self, identifier: str, code: str, ttl_seconds: int) -> None:
        """Deliver *code* to *identifier*.

        Parameters
        ----------
        identifier:
            Normalized phone number (E.164) or lower-cased email.
        code:
            The one-time code.  Implementations must not log it above DEBUG.
        ttl_seconds:
            Validity window, quoted in the message body.
        """


def _sms_text(app_name: str, code: str, ttl_seconds: int) -> str:
    minutes = max(ttl_seconds // 60, 1)
    return (
        f"Your {app_name} verification code is: {code}. "
        f"Valid for {minutes} minutes. Do not share this code with anyone."
    )


class ConsoleSmsChannel(DeliveryChannel):
    """Development channel: logs the dispatch instead of calling a gateway."""

    def __init__(self, app_name: str) -> None:
        self._app_name = app_name

    @property
    def name(self) -> str:
        return CHANNEL_SMS

    async def send_code(self, identifier: str, code: str, ttl_seconds: int) -> None:
        logger.info("SMS gateway disabled; OTP for %s logged at DEBUG level", identifier)
        logger.debug("SMS to %s: %s", identifier, _sms_text(self._app_name, code, ttl_seconds))


class TwilioSmsChannel(DeliveryChannel):
    """Sends codes through the Twilio Messages REST API."""

    API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        app_name: str,
        timeout: float = 10.0,
    ) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._app_name = app_name
        self._timeout = timeout

    @property
    def name(self) -> str:
        return CHANNEL_SMS

    async def send_code(self, identifier: str, code: str, ttl_seconds: int) -> None:
        url = self.API_URL.format(sid=self._account_sid)
        data = {
            "To": identifier,
            "From": self._from_number,
            "Body": _sms_text(self._app_name, code, ttl_seconds),
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    url, data=data, auth=(self._account_sid, self._auth_token)
                )
        except httpx.HTTPError as exc:
            logger.exception("Twilio request error for %s: %s", identifier, exc)
            raise DeliveryError(str(exc)) from exc

        if resp.status_code >= 400:
            logger.error("Twilio send failed: %s %s", resp.status_code, resp.text)
            raise DeliveryError(f"Twilio responded with {resp.status_code}")

        logger.info("SMS sent to %s via Twilio", identifier)


class EmailChannel(DeliveryChannel):
    """Sends codes as plain-text email using the configured SMTP server."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def name(self) -> str:
        return CHANNEL_EMAIL

    async def send_code(self, identifier: str, code: str, ttl_seconds: int) -> None:
        s = self._settings
        minutes = max(ttl_seconds // 60, 1)

        msg = EmailMessage()
        msg["Subject"] = f"Your {s.app_name} Verification Code"
        msg["From"] = s.email_from
        msg["To"] = identifier
        msg.set_content(
            "Hello,\n\n"
            f"Your {s.app_name} verification code is: {code}\n"
            f"It is valid for {minutes} minutes.\n\n"
            "Never share this code with anyone. If you didn't request it, "
            "please ignore this email.\n\n"
            "Best regards,\n"
            f"The {s.app_name} Team"
        )

        logger.info("Sending OTP email to %s", identifier)
        try:
            await aiosmtplib.send(
                msg,
                hostname=s.smtp_host,
                port=s.smtp_port,
                username=s.smtp_username or None,
                password=s.smtp_password or None,
                start_tls=True,
            )
        except aiosmtplib.SMTPException as exc:
            logger.exception("SMTP delivery to %s failed: %s", identifier, exc)
            raise DeliveryError(str(exc)) from exc
        except OSError as exc:
            logger.exception("SMTP connection for %s failed: %s", identifier, exc)
            raise DeliveryError(str(exc)) from exc

        logger.info("OTP email sent to %s", identifier)


def build_channels(settings: Settings) -> dict[str, DeliveryChannel]:
    """Instantiate the configured SMS channel plus the email channel."""
    if settings.sms_provider == "twilio":
        sms: DeliveryChannel = TwilioSmsChannel(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_from_number,
            app_name=settings.app_name,
        )
    elif settings.sms_provider == "console":
        sms = ConsoleSmsChannel(settings.app_name)
    else:
        raise ValueError(f"Unknown SMS provider: {settings.sms_provider!r}")

    email = EmailChannel(settings)
    return {sms.name: sms, email.name: email}
