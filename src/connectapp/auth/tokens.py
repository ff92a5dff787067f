"""Signed session credentials (JWT, HMAC-SHA256 by default).

The server keeps no session table: a credential is valid for as long as its
signature checks out against the configured secret and ``exp`` lies in the
future.  Logout only clears the cookie on the client.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import jwt

from connectapp.errors import ConfigurationError, Unauthorized

logger = logging.getLogger(__name__)

_REQUIRED_CLAIMS = ["sub", "role", "iat", "exp"]


@dataclass(frozen=True)
class SessionClaims:
    """Identity asserted by a verified credential."""

    subject_id: str
    role: str
    issued_at: int
    expires_at: int
    email: str | None = None
    user_type: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.subject_id,
            "role": self.role,
            "email": self.email,
            "user_type": self.user_type,
            "expires_at": self.expires_at,
        }


class TokenManager:
    """Mints and checks signed session credentials.

    An empty secret is treated as a deployment error: both :meth:`issue`
    and :meth:`decode` raise :class:`ConfigurationError`, so nobody is
    authenticated until the secret is set.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        ttl_seconds: int = 7 * 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def _require_secret(self) -> str:
        if not self._secret:
            logger.critical("JWT secret is not configured; refusing to handle credentials")
            raise ConfigurationError()
        return self._secret

    def issue(
        self,
        subject_id: str | int,
        role: str,
        *,
        email: str | None = None,
        user_type: str | None = None,
        ttl_seconds: int | None = None,
    ) -> str:
        """Return a signed credential for *subject_id* with *role*."""
        secret = self._require_secret()
        now = int(self._clock())
        payload = {
            "sub": str(subject_id),
            "role": role,
            "email": email,
            "user_type": user_type,
            "iat": now,
            "exp": now + (ttl_seconds if ttl_seconds is not None else self._ttl),
        }
        return jwt.encode(payload, secret, algorithm=self._algorithm)

    def decode(self, token: str | None) -> SessionClaims:
        """Verify *token* and return its claims.

        Missing, tampered, wrongly-signed and expired tokens all raise the
        same :class:`Unauthorized`.
        """
        secret = self._require_secret()
        if not token:
            raise Unauthorized()
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self._algorithm],
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected session credential: %s", type(exc).__name__)
            raise Unauthorized() from exc

        return SessionClaims(
            subject_id=payload["sub"],
            role=payload["role"],
            issued_at=payload["iat"],
            expires_at=payload["exp"],
            email=payload.get("email"),
            user_type=payload.get("user_type"),
        )
