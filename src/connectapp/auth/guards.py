"""Session verifier and role guard, exposed as FastAPI dependencies.

Usage::

    @router.get("/api/admin/users")
    async def list_users(claims: SessionClaims = Depends(require_admin)):
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from fastapi import Request

from connectapp.auth.tokens import SessionClaims, TokenManager
from connectapp.errors import Forbidden
from connectapp.models.user import Role

logger = logging.getLogger(__name__)


def get_token_manager(request: Request) -> TokenManager:
    return request.app.state.tokens


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


class SessionGuard:
    """Resolve the caller's :class:`SessionClaims` or raise ``Unauthorized``.

    The credential is read from the cookie named by the *cookie_setting*
    field of the running app's settings, falling back to an
    ``Authorization: Bearer`` header.
    """

    def __init__(self, cookie_setting: str = "session_cookie_name") -> None:
        self.cookie_setting = cookie_setting

    def cookie_name(self, request: Request) -> str:
        return getattr(request.app.state.settings, self.cookie_setting)

    def __call__(self, request: Request) -> SessionClaims:
        token = request.cookies.get(self.cookie_name(request)) or _bearer_token(request)
        return get_token_manager(request).decode(token)


class RoleGuard(SessionGuard):
    """A :class:`SessionGuard` that additionally requires one of *allowed_roles*."""

    def __init__(
        self, allowed_roles: Iterable[str], cookie_setting: str = "session_cookie_name"
    ) -> None:
        super().__init__(cookie_setting)
        self.allowed_roles = frozenset(allowed_roles)

    def __call__(self, request: Request) -> SessionClaims:
        claims = super().__call__(request)
        if claims.role not in self.allowed_roles:
            logger.warning(
                "Subject %s with role %s denied access to %s",
                claims.subject_id,
                claims.role,
                request.url.path,
            )
            raise Forbidden()
        return claims


current_user = SessionGuard("session_cookie_name")
require_seller = RoleGuard({Role.SELLER.value, Role.ADMIN.value}, "session_cookie_name")
require_admin = RoleGuard({Role.ADMIN.value}, "admin_cookie_name")
