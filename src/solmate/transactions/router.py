"""Ledger audit history: /api/transactions/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from solmate.dependencies import get_db
from solmate.transactions.schemas import TransactionResponse
from solmate.transactions.service import list_transactions_for_wallet

router = APIRouter(prefix="/api/transactions", tags=["Transactions"])


@router.get("/{wallet_address}", response_model=list[TransactionResponse])
async def wallet_transactions(
    wallet_address: str,
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> list[TransactionResponse]:
    """Tips sent and received, refunds and forfeits for a wallet, newest first."""
    transactions = await list_transactions_for_wallet(db, wallet_address, limit)
    return [TransactionResponse.model_validate(t) for t in transactions]
