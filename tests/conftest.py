"""Shared test fixtures.

Tests run against an in-memory SQLite database built from the ORM metadata
and an in-process simulated ledger. Redis is not started; the rate limiter
fails open without it.
"""

from __future__ import annotations

import os

os.environ["SOLMATE_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SOLMATE_DEBUG"] = "true"
os.environ["SOLMATE_LOG_FORMAT"] = "console"
os.environ["SOLMATE_LEDGER_PROVIDER"] = "simulated"
os.environ["SOLMATE_GHOST_POLICY"] = "refund"

from collections.abc import AsyncGenerator, Awaitable, Callable, Iterator  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from solmate.config import get_settings  # noqa: E402
from solmate.database import close_db, get_engine, get_session, init_db  # noqa: E402
from solmate.db.base import Base  # noqa: E402
from solmate.db.models import Gender, Match, Transaction, User  # noqa: E402
from solmate.dependencies import get_ledger  # noqa: E402
from solmate.ledger import BaseLedger, SimulatedLedger, reset_ledger  # noqa: E402
from solmate.main import create_app  # noqa: E402
from solmate.matches.service import create_match  # noqa: E402
from solmate.matches.tipping import bind_match_escrow  # noqa: E402

UserFactory = Callable[..., Awaitable[User]]
MatchOpener = Callable[..., Awaitable[Match]]


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    """Drop cached settings so monkeypatched env vars take effect."""
    get_settings.cache_clear()
    reset_ledger()
    yield
    get_settings.cache_clear()
    reset_ledger()


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[None, None]:
    """Fresh in-memory schema per test."""
    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(db_engine: None) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for setup and assertions."""
    async for session in get_session():
        yield session
        await session.close()
        break


@pytest.fixture
def ledger() -> SimulatedLedger:
    """Simulated escrow book; every wallet starts with 100."""
    return SimulatedLedger(starting_balance=Decimal("100"))


@pytest.fixture
def app(ledger: SimulatedLedger) -> FastAPI:
    """Application with the ledger dependency pointed at the test ledger."""
    application = create_app()
    application.dependency_overrides[get_ledger] = lambda: ledger
    return application


@pytest_asyncio.fixture
async def client(db_engine: None, app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client wired to the test database and ledger."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def user_factory(db_session: AsyncSession) -> UserFactory:
    """Insert a user directly. Defaults to an online male profile."""

    async def _create_user(
        wallet_address: str,
        gender: Gender = Gender.MALE,
        *,
        name: str | None = None,
        is_online: bool = True,
        minutes_ago: int = 0,
        **fields: object,
    ) -> User:
        now = datetime.now(timezone.utc)
        user = User(
            wallet_address=wallet_address,
            name=name or wallet_address,
            age=fields.pop("age", 27),
            gender=gender,
            bio=fields.pop("bio", ""),
            photos=fields.pop("photos", ["https://img.example/1.jpg"]),
            preferred_tip_amount=fields.pop("preferred_tip_amount", 3),
            is_online=is_online,
            last_active=now - timedelta(minutes=minutes_ago),
            **fields,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _create_user


@pytest_asyncio.fixture
async def open_match(db_session: AsyncSession, ledger: SimulatedLedger) -> MatchOpener:
    """Record a tip and bind its escrow, as the tip endpoints do.

    Binds into the test ledger unless another book is passed as ``on_ledger``.
    """

    async def _open(
        sender_wallet: str,
        receiver_wallet: str,
        amount: int | str | Decimal = 5,
        tx_hash: str = "0xtip",
        *,
        now: datetime | None = None,
        on_ledger: BaseLedger | None = None,
    ) -> Match:
        match = await create_match(db_session, sender_wallet, receiver_wallet, amount, tx_hash, now=now)
        await bind_match_escrow(on_ledger or ledger, match, sender_wallet)
        return match

    return _open


async def reload_user(db: AsyncSession, wallet_address: str) -> User:
    """Read a user straight from the database, bypassing the identity map."""
    result = await db.execute(
        select(User).where(User.wallet_address == wallet_address).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def transactions_for_match(db: AsyncSession, match_id: str) -> list[Transaction]:
    """All audit rows for a match, oldest first."""
    result = await db.execute(
        select(Transaction)
        .where(Transaction.match_id == match_id)
        .order_by(Transaction.timestamp, Transaction.type)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest.fixture
def db_helpers() -> object:
    """Expose the read helpers to test modules without importing conftest."""

    class _Helpers:
        reload_user = staticmethod(reload_user)
        transactions_for_match = staticmethod(transactions_for_match)

    return _Helpers
