"""OTP router — issue and verify one-time codes.

Endpoints
---------
POST /api/otp/send     → generate a code and deliver it by SMS or email
POST /api/otp/verify   → check a submitted code
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from connectapp.otp.service import OTPService
from connectapp.ratelimit import IpRateLimit, RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/otp", tags=["otp"])


def get_otp_service(request: Request) -> OTPService:
    return request.app.state.otp_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


# ── Response / request models ────────────────────────────

class OTPSendRequest(BaseModel):
    identifier: str
    channel: str | None = None


class OTPSendResponse(BaseModel):
    success: bool
    message: str
    channel: str
    expires_in: int


class OTPVerifyRequest(BaseModel):
    identifier: str
    code: str


class OTPVerifyResponse(BaseModel):
    success: bool
    message: str


# ── Endpoints ────────────────────────────────────────────

@router.post(
    "/send",
    response_model=OTPSendResponse,
    dependencies=[Depends(IpRateLimit("otp-send", "otp_send_ip_limit", "otp_send_window_seconds"))],
)
async def send_otp(
    body: OTPSendRequest,
    request: Request,
    service: OTPService = Depends(get_otp_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Issue a new code, replacing any code still pending for the identifier.

    Requests are limited per client address and per normalized identifier.
    """
    identifier, _ = service.normalize(body.identifier, body.channel)
    cfg = request.app.state.settings
    limiter.check(
        f"otp-send:id:{identifier}",
        cfg.otp_send_limit,
        cfg.otp_send_window_seconds,
        "Too many OTP requests. Please try again later.",
    )
    issued = await service.issue(body.identifier, body.channel)
    target = "email" if issued.channel == "email" else "phone"
    return OTPSendResponse(
        success=True,
        message=f"OTP sent to your {target}",
        channel=issued.channel,
        expires_in=issued.expires_in,
    )


@router.post("/verify", response_model=OTPVerifyResponse)
async def verify_otp(body: OTPVerifyRequest, service: OTPService = Depends(get_otp_service)):
    """Validate a code. Success consumes it."""
    service.verify_or_raise(body.identifier, body.code)
    return OTPVerifyResponse(success=True, message="OTP verified successfully")
