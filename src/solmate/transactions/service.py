"""Ledger audit history per wallet."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from solmate.db.models import Transaction
from solmate.users.service import get_user_by_wallet


async def list_transactions_for_wallet(db: AsyncSession, wallet_address: str, limit: int = 100) -> list[Transaction]:
    """Audit rows owned by the wallet, newest first. Raises UserNotFound."""
    await get_user_by_wallet(db, wallet_address)
    result = await db.execute(
        select(Transaction)
        .where(Transaction.wallet_address == wallet_address)
        .order_by(Transaction.timestamp.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
