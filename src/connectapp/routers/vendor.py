"""Vendor router — seller-only account endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from connectapp.auth.guards import require_seller
from connectapp.auth.tokens import SessionClaims
from connectapp.database.engine import get_session
from connectapp.database.repository import UserRepository
from connectapp.errors import Unauthorized

router = APIRouter(prefix="/api/vendor", tags=["vendor"])


@router.get("/profile")
async def vendor_profile(
    claims: SessionClaims = Depends(require_seller),
    db: AsyncSession = Depends(get_session),
):
    """Profile of the signed-in seller."""
    user = await UserRepository(db).get_by_subject(claims.subject_id)
    if user is None or not user.is_active:
        raise Unauthorized()
    return {
        "success": True,
        "vendor": user.to_public_dict(),
        "dashboard": "/vendor/dashboard",
    }
