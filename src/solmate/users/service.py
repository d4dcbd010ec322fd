"""User profiles, wallet sign-in, onboarding and discovery."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from solmate.config import get_settings
from solmate.db.models import Gender, Match, User
from solmate.exceptions import InvalidProfile, UserAlreadyExists, UserNotFound

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def get_user_by_wallet_or_none(db: AsyncSession, wallet_address: str) -> User | None:
    """Get a user by wallet address, or None."""
    result = await db.execute(select(User).where(User.wallet_address == wallet_address))
    return result.scalar_one_or_none()


async def get_user_by_wallet(db: AsyncSession, wallet_address: str) -> User:
    """Get a user by wallet address. Raises UserNotFound."""
    user = await get_user_by_wallet_or_none(db, wallet_address)
    if user is None:
        raise UserNotFound(wallet_address)
    return user


def parse_gender(value: str | Gender) -> Gender:
    """Accept 'male'/'MALE'/Gender.MALE and friends."""
    if isinstance(value, Gender):
        return value
    try:
        return Gender(value.strip().upper())
    except ValueError as exc:
        raise InvalidProfile(f"Unknown gender: {value!r}") from exc


def ghosting_risk(ghosted_count: int) -> str:
    """Classify how often a user lets tips expire: none, warning, high or critical."""
    settings = get_settings()
    if ghosted_count >= settings.ghosting_critical_threshold:
        return "critical"
    if ghosted_count >= settings.ghosting_high_threshold:
        return "high"
    if ghosted_count >= settings.ghosting_warning_threshold:
        return "warning"
    return "none"


def validate_profile(
    name: str,
    age: int,
    bio: str,
    photos: list[str],
    preferred_tip_amount: int,
) -> None:
    """Raise InvalidProfile if any onboarding field is out of bounds."""
    settings = get_settings()
    if not name.strip():
        raise InvalidProfile("Name is required")
    if not settings.min_age <= age <= settings.max_age:
        raise InvalidProfile(f"Age must be between {settings.min_age} and {settings.max_age}")
    if len(bio) > settings.max_bio_length:
        raise InvalidProfile(f"Bio must be at most {settings.max_bio_length} characters")
    if not settings.min_photos <= len(photos) <= settings.max_photos:
        raise InvalidProfile(f"Between {settings.min_photos} and {settings.max_photos} photos are required")
    if any(not p.strip() for p in photos):
        raise InvalidProfile("Photo references must not be empty")
    if preferred_tip_amount <= 0:
        raise InvalidProfile("Preferred tip amount must be positive")


async def sign_in(db: AsyncSession, wallet_address: str) -> User | None:
    """Look up the wallet's user and mark them online. None means onboarding is needed."""
    user = await get_user_by_wallet_or_none(db, wallet_address)
    if user is None:
        logger.info("signin_needs_onboarding", wallet=wallet_address)
        return None
    user.is_online = True
    user.last_active = _utcnow()
    await db.commit()
    return user


async def onboard_user(
    db: AsyncSession,
    wallet_address: str,
    name: str,
    age: int,
    gender: str | Gender,
    bio: str | None = None,
    photos: list[str] | None = None,
    preferred_tip_amount: int | None = None,
) -> User:
    """Create the profile for a wallet on first sign-in."""
    settings = get_settings()
    bio = bio or ""
    photos = photos or []
    preferred_tip_amount = preferred_tip_amount or settings.default_tip_amount
    parsed_gender = parse_gender(gender)
    validate_profile(name, age, bio, photos, preferred_tip_amount)

    if await get_user_by_wallet_or_none(db, wallet_address) is not None:
        raise UserAlreadyExists(wallet_address)

    now = _utcnow()
    user = User(
        wallet_address=wallet_address,
        name=name.strip(),
        age=age,
        gender=parsed_gender,
        bio=bio,
        photos=list(photos),
        preferred_tip_amount=preferred_tip_amount,
        is_online=True,
        last_active=now,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise UserAlreadyExists(wallet_address) from None

    logger.info("user_onboarded", wallet=wallet_address, gender=parsed_gender.value)
    return user


async def get_excluded_user_ids(db: AsyncSession, user_id: str) -> set[str]:
    """The user plus everyone they share a match with, whatever its status."""
    result = await db.execute(
        select(Match.sender_id, Match.receiver_id).where(
            or_(Match.sender_id == user_id, Match.receiver_id == user_id)
        )
    )
    excluded = {user_id}
    for sender_id, receiver_id in result.all():
        excluded.add(sender_id)
        excluded.add(receiver_id)
    return excluded


async def get_discovery_candidates(
    db: AsyncSession,
    wallet_address: str,
    limit: int | None = None,
) -> list[User]:
    """Online users of the opposite gender with no match history, most recently active first."""
    settings = get_settings()
    if limit is None:
        limit = settings.discovery_default_limit
    limit = max(0, min(limit, settings.discovery_max_limit))

    user = await get_user_by_wallet(db, wallet_address)
    excluded = await get_excluded_user_ids(db, user.id)

    result = await db.execute(
        select(User)
        .where(
            User.id.not_in(sorted(excluded)),
            User.gender == user.gender.opposite,
            User.is_online.is_(True),
        )
        .order_by(User.last_active.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
