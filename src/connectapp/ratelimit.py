"""Fixed-window request limiter.

Counts hits per key inside a window that starts with the first hit.  Keys
are namespaced by the caller, e.g. ``otp-send:ip:203.0.113.7`` or
``otp-send:id:+919999999999``.  Like the OTP store it is process-local and
created by the application factory.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request

from connectapp.errors import RateLimited

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float


class RateLimiter:
    """Thread-safe fixed-window counters keyed by arbitrary strings."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window_seconds: float) -> RateLimitResult:
        """Record one request against *key* and report whether it is allowed."""
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or window.reset_at <= now:
                window = _Window(count=0, reset_at=now + window_seconds)
                self._windows[key] = window
            window.count += 1
            return RateLimitResult(
                allowed=window.count <= limit,
                limit=limit,
                remaining=max(0, limit - window.count),
                reset_at=window.reset_at,
            )

    def check(self, key: str, limit: int, window_seconds: float, message: str | None = None) -> None:
        """Like :meth:`hit` but raise :class:`RateLimited` once *limit* is exceeded."""
        result = self.hit(key, limit, window_seconds)
        if not result.allowed:
            retry_after = max(1, math.ceil(result.reset_at - self._clock()))
            logger.warning("Rate limit exceeded for %s (retry in %ds)", key, retry_after)
            raise RateLimited(retry_after, message)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [key for key, window in self._windows.items() if window.reset_at <= now]
            for key in stale:
                del self._windows[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


def client_ip(request: Request) -> str:
    """Best-effort client address, honouring common reverse-proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


class IpRateLimit:
    """FastAPI dependency limiting one route per client address.

    *limit_setting* and *window_setting* name :class:`~connectapp.config.Settings`
    fields, read from the running app on every call.
    """

    def __init__(self, scope: str, limit_setting: str, window_setting: str, message: str | None = None) -> None:
        self.scope = scope
        self.limit_setting = limit_setting
        self.window_setting = window_setting
        self.message = message

    def __call__(self, request: Request) -> None:
        cfg = request.app.state.settings
        limiter: RateLimiter = request.app.state.rate_limiter
        limiter.check(
            f"{self.scope}:ip:{client_ip(request)}",
            getattr(cfg, self.limit_setting),
            getattr(cfg, self.window_setting),
            self.message,
        )
