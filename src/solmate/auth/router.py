"""Wallet sign-in and onboarding: /api/auth/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from solmate.dependencies import get_db
from solmate.users.schemas import (
    OnboardRequest,
    OnboardResponse,
    SignInRequest,
    SignInResponse,
    UserResponse,
)
from solmate.users.service import onboard_user, sign_in

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/signin", response_model=SignInResponse)
async def signin(
    body: SignInRequest,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> SignInResponse:
    """Resolve a connected wallet to its profile, or ask the client to onboard."""
    user = await sign_in(db, body.wallet_address)
    if user is None:
        return SignInResponse(user=None, needs_onboarding=True)
    return SignInResponse(user=UserResponse.model_validate(user), needs_onboarding=False)


@router.post("/onboard", response_model=OnboardResponse)
async def onboard(
    body: OnboardRequest,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> OnboardResponse:
    """Create the profile for a newly connected wallet."""
    user = await onboard_user(
        db,
        wallet_address=body.wallet_address,
        name=body.name,
        age=body.age,
        gender=body.gender,
        bio=body.bio,
        photos=body.photos,
        preferred_tip_amount=body.preferred_tip_amount,
    )
    return OnboardResponse(user=UserResponse.model_validate(user))
