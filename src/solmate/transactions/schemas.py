"""Pydantic response models for ledger audit transactions."""

from __future__ import annotations

from datetime import datetime

from solmate.db.models import TransactionStatus, TransactionType
from solmate.schemas import ApiModel


class TransactionResponse(ApiModel):
    id: str
    wallet_address: str
    type: TransactionType
    amount: float
    transaction_hash: str | None
    match_id: str | None
    timestamp: datetime
    status: TransactionStatus
