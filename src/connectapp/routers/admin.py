"""Admin router — admin session and account moderation.

Endpoints
---------
POST  /api/admin/login               → admin email + password login
POST  /api/admin/logout              → clear the admin cookie
GET   /api/admin/verify              → confirm the admin session
GET   /api/admin/users               → list accounts
PATCH /api/admin/users/{id}/status   → activate / deactivate an account
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from connectapp.auth.cookies import clear_session_cookie, set_session_cookie
from connectapp.auth.guards import require_admin
from connectapp.auth.passwords import verify_password
from connectapp.auth.tokens import SessionClaims, TokenManager
from connectapp.database.engine import get_session
from connectapp.database.repository import UserRepository
from connectapp.errors import Forbidden, InvalidInput, NotFound, Unauthorized
from connectapp.models.user import Role, UserType
from connectapp.routers.auth import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


class AdminLoginRequest(BaseModel):
    email: str
    password: str


class UserStatusRequest(BaseModel):
    active: bool


@router.post("/login")
async def admin_login(
    body: AdminLoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_session),
):
    """Only accounts with the ADMIN role may sign in here."""
    user = await UserRepository(db).find_by_email(body.email)
    if (
        user is None
        or user.role != Role.ADMIN
        or not verify_password(body.password, user.password_hash)
    ):
        logger.warning("Invalid admin login attempt for %s", body.email)
        raise Unauthorized("Invalid email or password")
    if not user.is_active:
        raise Forbidden("Your account has been deactivated. Please contact support.")

    settings = get_settings(request)
    tokens: TokenManager = request.app.state.tokens
    token = tokens.issue(
        user.id,
        Role.ADMIN.value,
        email=user.email,
        ttl_seconds=settings.admin_session_ttl_seconds,
    )
    set_session_cookie(
        response,
        settings.admin_cookie_name,
        token,
        max_age=settings.admin_session_ttl_seconds,
        secure=settings.cookie_secure,
    )
    logger.info("Admin login for user %s", user.id)
    return {
        "success": True,
        "message": "Admin login successful",
        "admin": {"email": user.email, "name": user.name, "role": Role.ADMIN.value},
        "redirect_url": "/admin/dashboard",
    }


@router.post("/logout")
async def admin_logout(request: Request, response: Response):
    settings = get_settings(request)
    clear_session_cookie(response, settings.admin_cookie_name, settings.cookie_secure)
    return {"success": True, "message": "Admin logged out successfully"}


@router.get("/verify")
async def verify_admin(claims: SessionClaims = Depends(require_admin)):
    return {
        "success": True,
        "authenticated": True,
        "admin": {"email": claims.email, "role": claims.role},
    }


@router.get("/users")
async def list_users(
    user_type: UserType | None = None,
    claims: SessionClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    users = await UserRepository(db).list_users(user_type)
    return {
        "success": True,
        "count": len(users),
        "users": [u.to_public_dict() for u in users],
    }


@router.patch("/users/{user_id}/status")
async def set_user_status(
    user_id: int,
    body: UserStatusRequest,
    claims: SessionClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Suspend or reinstate an account. Admins cannot suspend themselves."""
    if str(user_id) == claims.subject_id and not body.active:
        raise InvalidInput("You cannot deactivate your own account")

    user = await UserRepository(db).get(user_id)
    if user is None:
        raise NotFound("User not found")

    user.is_active = body.active
    await db.commit()
    logger.info(
        "Admin %s set user %s active=%s", claims.subject_id, user_id, body.active
    )
    return {"success": True, "user": user.to_public_dict()}
