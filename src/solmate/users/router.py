"""User endpoints: discovery and public profiles under /api/users."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from solmate.dependencies import get_db
from solmate.users.schemas import UserResponse
from solmate.users.service import get_discovery_candidates, get_user_by_wallet

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("/discovery/{wallet_address}", response_model=list[UserResponse])
async def discovery(
    wallet_address: str,
    limit: int | None = Query(default=None, ge=1),
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> list[UserResponse]:
    """Profiles to swipe on: online, opposite gender, no shared match history.

    ``limit`` above ``discovery_max_limit`` is capped, not rejected.
    """
    users = await get_discovery_candidates(db, wallet_address, limit)
    return [UserResponse.model_validate(u) for u in users]


@router.get("/{wallet_address}", response_model=UserResponse)
async def get_user(
    wallet_address: str,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> UserResponse:
    """Public profile with reputation counters and ghosting risk."""
    user = await get_user_by_wallet(db, wallet_address)
    return UserResponse.model_validate(user)
