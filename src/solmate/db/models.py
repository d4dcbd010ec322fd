"""ORM models for users, matches and ledger audit transactions.

Tables are created by the Alembic baseline revision; tests build them from
this metadata directly.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from solmate.db.base import Base, UTCDateTime


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Gender(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"

    @property
    def opposite(self) -> Gender:
        return Gender.FEMALE if self is Gender.MALE else Gender.MALE


class MatchStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    GHOSTED = "GHOSTED"


class TransactionType(str, enum.Enum):
    TIP_SENT = "TIP_SENT"
    TIP_RECEIVED = "TIP_RECEIVED"
    REFUND = "REFUND"
    GHOST_FORFEIT = "GHOST_FORFEIT"


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


def _enum_column(enum_cls: type[enum.Enum]) -> Enum:
    return Enum(enum_cls, native_enum=False, length=16, validate_strings=True)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """A wallet-identified dating profile with reputation counters."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    wallet_address: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    gender: Mapped[Gender] = mapped_column(_enum_column(Gender), nullable=False)
    bio: Mapped[str] = mapped_column(Text, nullable=False, default="")
    photos: Mapped[list[str]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list
    )
    preferred_tip_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_active: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_utcnow)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_utcnow, onupdate=_utcnow)

    # --- Reputation counters (mutated only by the match engine) ---
    match_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ghosted_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ghosted_by_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------


class Match(Base):
    """A tip from sender to receiver and its lifecycle state.

    ``pair_low_id``/``pair_high_id`` hold the sorted user pair so the database
    enforces one match per unordered pair.
    """

    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("pair_low_id", "pair_high_id", name="uq_matches_pair"),
        CheckConstraint("sender_id <> receiver_id", name="ck_matches_not_self"),
        Index("idx_matches_status_expires", "status", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    sender_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    pair_low_id: Mapped[str] = mapped_column(String(36), nullable=False)
    pair_high_id: Mapped[str] = mapped_column(String(36), nullable=False)
    tip_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    status: Mapped[MatchStatus] = mapped_column(
        _enum_column(MatchStatus), nullable=False, default=MatchStatus.PENDING
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_utcnow)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    ghosted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    sender: Mapped[User] = relationship("User", foreign_keys=[sender_id], lazy="selectin")
    receiver: Mapped[User] = relationship("User", foreign_keys=[receiver_id], lazy="selectin")
    transactions: Mapped[list[Transaction]] = relationship(
        "Transaction",
        back_populates="match",
        lazy="selectin",
        order_by="Transaction.timestamp",
    )

    @staticmethod
    def pair_key(user_a_id: str, user_b_id: str) -> tuple[str, str]:
        """Sorted (low, high) key for an unordered user pair."""
        return (user_a_id, user_b_id) if user_a_id <= user_b_id else (user_b_id, user_a_id)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def participant_ids(self) -> tuple[str, str]:
        return self.sender_id, self.receiver_id


# ---------------------------------------------------------------------------
# Ledger audit trail
# ---------------------------------------------------------------------------


class Transaction(Base):
    """Audit record for a value-moving event. Only ``status`` and ``transaction_hash`` change after insert."""

    __tablename__ = "transactions"
    __table_args__ = (Index("idx_transactions_wallet_ts", "wallet_address", "timestamp"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[TransactionType] = mapped_column(_enum_column(TransactionType), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    transaction_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    match_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("matches.id", ondelete="SET NULL"), nullable=True
    )
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_utcnow)
    status: Mapped[TransactionStatus] = mapped_column(
        _enum_column(TransactionStatus), nullable=False, default=TransactionStatus.PENDING
    )

    match: Mapped[Match | None] = relationship("Match", back_populates="transactions")

