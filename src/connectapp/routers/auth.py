"""Account router — registration, password and OTP login, logout.

Endpoints
---------
POST /api/auth/register         → create an account (phone OTP required)
POST /api/auth/login            → email + password login
POST /api/auth/login-otp        → phone/email + OTP login
POST /api/auth/reset-password   → OTP-gated password reset
POST /api/auth/logout           → clear the session cookie
GET  /api/auth/me               → current account
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from connectapp.auth.cookies import clear_session_cookie, set_session_cookie
from connectapp.auth.guards import current_user
from connectapp.auth.passwords import hash_password, is_strong_password, verify_password
from connectapp.auth.tokens import SessionClaims, TokenManager
from connectapp.config import Settings
from connectapp.database.engine import get_session
from connectapp.database.repository import UserRepository
from connectapp.errors import Conflict, Forbidden, InvalidInput, NotFound, Unauthorized
from connectapp.models.user import Role, User, UserType
from connectapp.otp.identifiers import CHANNEL_EMAIL, CHANNEL_SMS
from connectapp.otp.service import OTPService
from connectapp.ratelimit import IpRateLimit
from connectapp.routers.otp import get_otp_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

WEAK_PASSWORD_MESSAGE = (
    "Password must include uppercase, lowercase, number & special character (min 6 chars)"
)
DUPLICATE_ACCOUNT_MESSAGE = "An account with this email or phone already exists"

_DASHBOARDS = {
    UserType.BUYER: "/buyer/dashboard",
    UserType.SELLER: "/vendor/dashboard",
    UserType.EMPLOYER: "/company/dashboard",
}


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def dashboard_for(user: User) -> str:
    """Landing page after login, chosen by role first and account type second."""
    if user.role == Role.ADMIN:
        return "/admin/dashboard"
    return _DASHBOARDS.get(user.user_type, "/buyer/dashboard")


def start_session(response: Response, request: Request, user: User) -> None:
    """Mint a credential for *user* and attach it as the session cookie."""
    settings = get_settings(request)
    tokens: TokenManager = request.app.state.tokens
    token = tokens.issue(
        user.id, user.role.value, email=user.email, user_type=user.user_type.value
    )
    set_session_cookie(
        response,
        settings.session_cookie_name,
        token,
        max_age=tokens.ttl_seconds,
        secure=settings.cookie_secure,
    )


# ── Request models ───────────────────────────────────────

class RegisterRequest(BaseModel):
    name: str
    email: str
    phone: str
    password: str
    user_type: UserType = UserType.BUYER
    code: str


class LoginRequest(BaseModel):
    email: str
    password: str


class OTPLoginRequest(BaseModel):
    identifier: str
    code: str


class ResetPasswordRequest(BaseModel):
    identifier: str
    code: str
    new_password: str


# ── Endpoints ────────────────────────────────────────────

@router.post(
    "/register",
    status_code=201,
    dependencies=[
        Depends(
            IpRateLimit(
                "register",
                "register_limit",
                "register_window_seconds",
                "Too many registration attempts. Please try again later.",
            )
        )
    ],
)
async def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    otp: OTPService = Depends(get_otp_service),
    db: AsyncSession = Depends(get_session),
):
    """Create an account once the phone number is proven by OTP.

    The code is checked before the duplicate lookup, so without a valid
    code this endpoint reveals nothing about existing accounts.
    """
    if not body.name.strip():
        raise InvalidInput("Name is required")
    if not is_strong_password(body.password):
        raise InvalidInput(WEAK_PASSWORD_MESSAGE)

    email, _ = otp.normalize(body.email, CHANNEL_EMAIL)
    phone, _ = otp.normalize(body.phone, CHANNEL_SMS)

    otp.verify_or_raise(phone, body.code)

    repo = UserRepository(db)
    if await repo.find_by_email(email) or await repo.find_by_phone(phone):
        raise Conflict(DUPLICATE_ACCOUNT_MESSAGE)

    try:
        user = await repo.create(
            name=body.name.strip(),
            email=email,
            phone=phone,
            password_hash=hash_password(body.password),
            user_type=body.user_type,
            role=Role.SELLER if body.user_type == UserType.SELLER else Role.USER,
            is_verified=True,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Registration lost a race on a unique column for %s", email)
        raise Conflict(DUPLICATE_ACCOUNT_MESSAGE)

    logger.info("Registered %s account %s", user.user_type.value, user.id)

    start_session(response, request, user)
    return {
        "success": True,
        "message": "Registration successful",
        "user": user.to_public_dict(),
        "redirect_url": dashboard_for(user),
    }


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_session),
):
    """Email + password login."""
    user = await UserRepository(db).find_by_email(body.email)
    if user is None or not verify_password(body.password, user.password_hash):
        logger.info("Failed password login for %s", body.email)
        raise Unauthorized("Invalid email or password")

    if not user.is_active:
        raise Forbidden("Your account has been deactivated. Please contact support.")

    start_session(response, request, user)
    logger.info("Password login for user %s", user.id)
    return {
        "success": True,
        "message": "Login successful",
        "user": user.to_public_dict(),
        "redirect_url": dashboard_for(user),
    }


@router.post("/login-otp")
async def login_with_otp(
    body: OTPLoginRequest,
    request: Request,
    response: Response,
    otp: OTPService = Depends(get_otp_service),
    db: AsyncSession = Depends(get_session),
):
    """Log in with a code sent to the account's phone or email."""
    identifier = otp.verify_or_raise(body.identifier, body.code)

    repo = UserRepository(db)
    if "@" in identifier:
        user = await repo.find_by_email(identifier)
    else:
        user = await repo.find_by_phone(identifier)

    if user is None:
        raise NotFound(
            "No account found with this phone number or email. Please register first.",
            not_registered=True,
        )
    if not user.is_active:
        raise Forbidden("Your account has been deactivated. Please contact support.")

    start_session(response, request, user)
    logger.info("OTP login for user %s", user.id)
    return {
        "success": True,
        "message": "Login successful",
        "user": user.to_public_dict(),
        "redirect_url": dashboard_for(user),
    }


@router.post("/reset-password")
async def reset_password(
    body: ResetPasswordRequest,
    otp: OTPService = Depends(get_otp_service),
    db: AsyncSession = Depends(get_session),
):
    """Set a new password after proving control of the phone or email."""
    if not is_strong_password(body.new_password):
        raise InvalidInput(WEAK_PASSWORD_MESSAGE)

    identifier = otp.verify_or_raise(body.identifier, body.code)

    repo = UserRepository(db)
    if "@" in identifier:
        user = await repo.find_by_email(identifier)
    else:
        user = await repo.find_by_phone(identifier)
    if user is None:
        raise NotFound("No account found with this phone number or email")

    user.password_hash = hash_password(body.new_password)
    await db.commit()
    logger.info("Password reset for user %s", user.id)
    return {"success": True, "message": "Password reset successfully"}


@router.post("/logout")
async def logout(request: Request, response: Response):
    settings = get_settings(request)
    clear_session_cookie(response, settings.session_cookie_name, settings.cookie_secure)
    return {"success": True, "message": "Logged out successfully"}


@router.get("/me")
async def me(
    claims: SessionClaims = Depends(current_user),
    db: AsyncSession = Depends(get_session),
):
    """Return the signed-in account, re-read from the database."""
    user = await UserRepository(db).get_by_subject(claims.subject_id)
    if user is None or not user.is_active:
        raise Unauthorized()
    return {"success": True, "user": user.to_public_dict()}
