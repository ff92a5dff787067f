"""In-memory OTP store with lazy expiry.

Each entry maps ``identifier → PendingCode``.  At most one code is pending
per identifier; issuing a new one replaces the previous entry.  Expiry is
checked when an entry is consumed, and :meth:`OTPStore.sweep` can be run
periodically to drop abandoned entries.

The store is process-local.  Running several app instances behind a load
balancer requires moving it to a shared TTL-capable key-value store.
"""

from __future__ import annotations

import enum
import hmac
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)


class VerifyOutcome(str, enum.Enum):
    """Terminal result of a single verification attempt."""

    VERIFIED = "verified"
    NOT_FOUND_OR_EXPIRED = "not_found_or_expired"
    EXPIRED = "expired"
    INVALID = "invalid"
    TOO_MANY_ATTEMPTS = "too_many_attempts"


@dataclass(frozen=True)
class PendingCode:
    """A one-time code awaiting verification."""

    identifier: str
    code: str
    issued_at: float
    expires_at: float
    attempts: int = 0

    def __post_init__(self) -> None:
        if self.expires_at <= self.issued_at:
            raise ValueError("expires_at must be later than issued_at")

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class OTPStore:
    """Thread-safe map of pending one-time codes.

    A single lock serializes every operation.  Critical sections are plain
    dictionary operations, so callers for different identifiers never wait
    on each other's I/O.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, PendingCode] = {}
        self._lock = threading.Lock()

    def put(self, identifier: str, code: str, ttl: float) -> PendingCode:
        """Insert or replace the pending code for *identifier*."""
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        now = self._clock()
        entry = PendingCode(
            identifier=identifier, code=code, issued_at=now, expires_at=now + ttl
        )
        with self._lock:
            replaced = identifier in self._entries
            self._entries[identifier] = entry
            size = len(self._entries)
        logger.info(
            "OTP stored for %s (replaced=%s, store size=%d)", identifier, replaced, size
        )
        return entry

    def get(self, identifier: str) -> PendingCode | None:
        """Return the raw entry, expired or not; callers check :meth:`PendingCode.is_expired`."""
        with self._lock:
            return self._entries.get(identifier)

    def delete(self, identifier: str) -> bool:
        """Remove the entry for *identifier*. Deleting a missing key is not an error."""
        with self._lock:
            return self._entries.pop(identifier, None) is not None

    def consume(
        self, identifier: str, code: str, max_attempts: int | None = None
    ) -> VerifyOutcome:
        """Check *code* against the pending entry as one atomic step.

        The entry is removed on success, on expiry and once the attempt
        bound is reached.  A mismatch keeps the entry and bumps its
        attempt counter so the user can retry until it expires.
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(identifier)
            if entry is None:
                return VerifyOutcome.NOT_FOUND_OR_EXPIRED

            if entry.is_expired(now):
                del self._entries[identifier]
                return VerifyOutcome.EXPIRED

            if max_attempts is not None and entry.attempts >= max_attempts:
                del self._entries[identifier]
                return VerifyOutcome.TOO_MANY_ATTEMPTS

            if hmac.compare_digest(entry.code.encode(), code.encode()):
                del self._entries[identifier]
                return VerifyOutcome.VERIFIED

            self._entries[identifier] = replace(entry, attempts=entry.attempts + 1)
            return VerifyOutcome.INVALID

    def sweep(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("Swept %d expired OTP(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._entries
