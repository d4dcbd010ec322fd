"""Pydantic request/response models for match and tip endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from solmate.db.models import MatchStatus
from solmate.schemas import ApiModel
from solmate.transactions.schemas import TransactionResponse
from solmate.users.schemas import UserResponse


class MatchCreateRequest(ApiModel):
    sender_wallet: str = Field(min_length=1, max_length=64)
    receiver_wallet: str = Field(min_length=1, max_length=64)
    tip_amount: float
    transaction_hash: str = Field(min_length=1, max_length=128)


class TipRequest(ApiModel):
    sender_wallet: str = Field(min_length=1, max_length=64)
    receiver_wallet: str = Field(min_length=1, max_length=64)
    tip_amount: float


class MatchResponse(ApiModel):
    id: str
    sender_id: str
    receiver_id: str
    tip_amount: float
    transaction_hash: str
    status: MatchStatus
    created_at: datetime
    expires_at: datetime
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    ghosted_at: datetime | None = None
    sender: UserResponse
    receiver: UserResponse


class MatchWithTransactionsResponse(MatchResponse):
    transactions: list[TransactionResponse]


class MatchConflictResponse(ApiModel):
    detail: str
    code: str
    existing_match: MatchResponse


class SweepResponse(ApiModel):
    ghosted: list[str]
    skipped: list[str]
    failed: dict[str, str]
