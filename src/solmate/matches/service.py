"""Match lifecycle engine.

Rules:
- One match per unordered user pair, ever (enforced by a unique constraint)
- A tip becomes a PENDING match that expires after ``match_expiry_hours``
- Accept pays the escrowed tip to the receiver and counts a match for both users
- Reject refunds the sender; no counters move
- Expired PENDING matches are ghosted by the sweep: sender ghosted_by +1, receiver ghosted +1
- Ledger first, terminal state second: every settlement is audited as PENDING
  before the ledger is called, so a crash in between is visible for reconciliation
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from solmate.config import get_settings
from solmate.db.models import (
    Match,
    MatchStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
    User,
)
from solmate.exceptions import (
    DuplicateTransactionHash,
    InvalidTipAmount,
    InvalidTransition,
    LedgerTimeout,
    MatchAlreadyExists,
    MatchExpired,
    MatchNotFound,
    SelfMatchForbidden,
    SolmateError,
)
from solmate.ledger import BaseLedger, LedgerReceipt, call_ledger
from solmate.matches.state_machine import transition_values, validate_transition
from solmate.users.service import get_user_by_wallet

logger = structlog.get_logger()

GHOST_POLICIES = frozenset({"refund", "forfeit"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_tip_amount(amount: Decimal | float | int | str) -> Decimal:
    """Coerce a tip amount to Decimal. Raises InvalidTipAmount unless finite and positive."""
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidTipAmount(amount) from exc
    if not value.is_finite() or value <= 0:
        raise InvalidTipAmount(amount)
    return value


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def _load_match(db: AsyncSession, match_id: str, *, for_update: bool = False, skip_locked: bool = False) -> Match | None:
    q = select(Match).where(Match.id == match_id).execution_options(populate_existing=True)
    if for_update:
        q = q.with_for_update(skip_locked=skip_locked)
    result = await db.execute(q)
    return result.scalar_one_or_none()


async def get_match(db: AsyncSession, match_id: str) -> Match:
    """Get a match by ID with sender and receiver loaded."""
    match = await _load_match(db, match_id)
    if match is None:
        raise MatchNotFound(match_id)
    return match


async def find_match_for_pair(db: AsyncSession, user_a_id: str, user_b_id: str) -> Match | None:
    """Find the match between two users, in either direction."""
    low, high = Match.pair_key(user_a_id, user_b_id)
    result = await db.execute(
        select(Match)
        .where(Match.pair_low_id == low, Match.pair_high_id == high)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_matches_for_wallet(db: AsyncSession, wallet_address: str) -> list[Match]:
    """All matches the wallet's user sent or received, newest first."""
    user = await get_user_by_wallet(db, wallet_address)
    result = await db.execute(
        select(Match)
        .where(or_(Match.sender_id == user.id, Match.receiver_id == user.id))
        .order_by(Match.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def create_match(
    db: AsyncSession,
    sender_wallet: str,
    receiver_wallet: str,
    tip_amount: Decimal | float | int | str,
    transaction_hash: str,
    *,
    now: datetime | None = None,
) -> Match:
    """Record a tip whose funds the caller has already locked in escrow.

    Inserts a PENDING match and a CONFIRMED TIP_SENT transaction for the
    sender in one commit. The ledger is not called here.
    """
    if sender_wallet == receiver_wallet:
        raise SelfMatchForbidden(sender_wallet)
    amount = parse_tip_amount(tip_amount)

    sender = await get_user_by_wallet(db, sender_wallet)
    receiver = await get_user_by_wallet(db, receiver_wallet)

    existing = await find_match_for_pair(db, sender.id, receiver.id)
    if existing is not None:
        raise MatchAlreadyExists(existing)

    hash_taken = await db.execute(select(Match.id).where(Match.transaction_hash == transaction_hash))
    if hash_taken.scalar_one_or_none() is not None:
        raise DuplicateTransactionHash(transaction_hash)

    now = now or _utcnow()
    settings = get_settings()
    sender_id, receiver_id = sender.id, receiver.id
    low, high = Match.pair_key(sender_id, receiver_id)
    match = Match(
        sender=sender,
        receiver=receiver,
        pair_low_id=low,
        pair_high_id=high,
        tip_amount=amount,
        transaction_hash=transaction_hash,
        status=MatchStatus.PENDING,
        created_at=now,
        expires_at=now + timedelta(hours=settings.match_expiry_hours),
    )
    db.add(match)
    db.add(
        Transaction(
            wallet_address=sender_wallet,
            type=TransactionType.TIP_SENT,
            amount=amount,
            transaction_hash=transaction_hash,
            match=match,
            timestamp=now,
            status=TransactionStatus.CONFIRMED,
        )
    )

    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent create for the same pair or hash
        await db.rollback()
        winner = await find_match_for_pair(db, sender_id, receiver_id)
        if winner is not None:
            raise MatchAlreadyExists(winner) from None
        raise DuplicateTransactionHash(transaction_hash) from None

    logger.info(
        "match_created",
        match_id=match.id,
        sender=sender_wallet,
        receiver=receiver_wallet,
        tip_amount=str(amount),
        expires_at=match.expires_at.isoformat(),
    )
    return match


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


class _RowBusy(Exception):
    """Another transaction holds the match row lock (SKIP LOCKED)."""


@dataclass(frozen=True)
class _SettlementPlan:
    ledger_operation: str  # "release" | "refund"
    payee_wallet: str
    audit_type: TransactionType
    audit_wallet: str


def _plan_settlement(match: Match, target: MatchStatus, ghost_policy: str) -> _SettlementPlan:
    sender_wallet = match.sender.wallet_address
    receiver_wallet = match.receiver.wallet_address
    if target is MatchStatus.ACCEPTED:
        return _SettlementPlan("release", receiver_wallet, TransactionType.TIP_RECEIVED, receiver_wallet)
    if target is MatchStatus.REJECTED:
        return _SettlementPlan("refund", sender_wallet, TransactionType.REFUND, sender_wallet)
    if ghost_policy == "forfeit":
        return _SettlementPlan("release", receiver_wallet, TransactionType.GHOST_FORFEIT, sender_wallet)
    return _SettlementPlan("refund", sender_wallet, TransactionType.REFUND, sender_wallet)


async def _call_plan(ledger: BaseLedger, plan: _SettlementPlan, match_id: str) -> LedgerReceipt:
    if plan.ledger_operation == "release":
        return await call_ledger("release_funds", ledger.release_funds(match_id, plan.payee_wallet))
    return await call_ledger("refund_funds", ledger.refund_funds(match_id, plan.payee_wallet))


async def _apply_counters(db: AsyncSession, match: Match, target: MatchStatus) -> None:
    """All reputation counter mutation happens here."""
    if target is MatchStatus.ACCEPTED:
        await db.execute(
            update(User)
            .where(User.id.in_(match.participant_ids()))
            .values(match_count=User.match_count + 1)
            .execution_options(synchronize_session=False)
        )
    elif target is MatchStatus.GHOSTED:
        await db.execute(
            update(User)
            .where(User.id == match.sender_id)
            .values(ghosted_by_count=User.ghosted_by_count + 1)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            update(User)
            .where(User.id == match.receiver_id)
            .values(ghosted_count=User.ghosted_count + 1)
            .execution_options(synchronize_session=False)
        )


def _check_preconditions(match: Match, target: MatchStatus, now: datetime, *, check_expiry: bool) -> None:
    validate_transition(match.status, target)
    if check_expiry and match.is_expired(now):
        raise MatchExpired(match.id)
    if target is MatchStatus.GHOSTED and not match.is_expired(now):
        raise InvalidTransition(match.status.value, target.value)


async def _settle(
    db: AsyncSession,
    ledger: BaseLedger,
    match_id: str,
    target: MatchStatus,
    *,
    now: datetime,
    check_expiry: bool,
    ghost_policy: str = "refund",
    skip_locked: bool = False,
) -> Match:
    """Move a PENDING match to ``target`` and settle its escrow.

    1. Validate, then commit a PENDING audit transaction.
    2. Lock the row, re-validate, call the ledger, write status, counters and
       audit confirmation in one commit.
    3. On failure roll back. The audit row is deleted if the ledger was never
       called and marked FAILED if the ledger refused. It is left PENDING if
       the ledger timed out or succeeded without the commit following, since
       funds may have moved.
    """
    match = await get_match(db, match_id)
    _check_preconditions(match, target, now, check_expiry=check_expiry)
    plan = _plan_settlement(match, target, ghost_policy)

    audit = Transaction(
        wallet_address=plan.audit_wallet,
        type=plan.audit_type,
        amount=match.tip_amount,
        match_id=match.id,
        timestamp=now,
        status=TransactionStatus.PENDING,
    )
    db.add(audit)
    await db.commit()
    audit_id = audit.id

    ledger_state = "not_called"
    try:
        locked = await _load_match(db, match_id, for_update=True, skip_locked=skip_locked)
        if locked is None:
            raise _RowBusy(match_id)
        _check_preconditions(locked, target, now, check_expiry=check_expiry)

        ledger_state = "failed"
        receipt = await _call_plan(ledger, plan, match_id)
        ledger_state = "succeeded"

        result = await db.execute(
            update(Match)
            .where(Match.id == match_id, Match.status == MatchStatus.PENDING)
            .values(**transition_values(target, now))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransition(MatchStatus.PENDING.value, target.value)
        await _apply_counters(db, locked, target)
        await db.execute(
            update(Transaction)
            .where(Transaction.id == audit_id)
            .values(status=TransactionStatus.CONFIRMED, transaction_hash=receipt.transaction_hash)
        )
        await db.commit()
    except Exception as exc:
        await db.rollback()
        if isinstance(exc, LedgerTimeout):
            ledger_state = "unknown"
        await _close_audit(db, audit_id, match_id, ledger_state)
        raise

    settled = await get_match(db, match_id)
    await db.refresh(settled.sender)
    await db.refresh(settled.receiver)
    return settled


async def _close_audit(db: AsyncSession, audit_id: str, match_id: str, ledger_state: str) -> None:
    if ledger_state == "not_called":
        await db.execute(delete(Transaction).where(Transaction.id == audit_id))
    elif ledger_state == "failed":
        await db.execute(
            update(Transaction)
            .where(Transaction.id == audit_id, Transaction.status == TransactionStatus.PENDING)
            .values(status=TransactionStatus.FAILED)
        )
    else:
        logger.error(
            "settlement_needs_reconciliation",
            match_id=match_id,
            audit_id=audit_id,
            ledger_state=ledger_state,
        )
        return
    await db.commit()


async def accept_match(
    db: AsyncSession,
    ledger: BaseLedger,
    match_id: str,
    *,
    now: datetime | None = None,
) -> Match:
    """Accept a pending, unexpired match: release the tip to the receiver."""
    now = now or _utcnow()
    match = await _settle(db, ledger, match_id, MatchStatus.ACCEPTED, now=now, check_expiry=True)
    logger.info("match_accepted", match_id=match_id)
    return match


async def reject_match(
    db: AsyncSession,
    ledger: BaseLedger,
    match_id: str,
    *,
    now: datetime | None = None,
) -> Match:
    """Reject a pending match: refund the tip to the sender. Allowed after expiry."""
    now = now or _utcnow()
    match = await _settle(db, ledger, match_id, MatchStatus.REJECTED, now=now, check_expiry=False)
    logger.info("match_rejected", match_id=match_id)
    return match


# ---------------------------------------------------------------------------
# Expiry sweep
# ---------------------------------------------------------------------------


@dataclass
class SweepReport:
    """Outcome of one sweep run."""

    ghosted: list[Match] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def processed(self) -> int:
        return len(self.ghosted) + len(self.skipped) + len(self.failed)


async def sweep_expired(
    db: AsyncSession,
    ledger: BaseLedger,
    *,
    now: datetime | None = None,
    batch_size: int | None = None,
    ghost_policy: str | None = None,
) -> SweepReport:
    """Ghost every PENDING match whose ``expires_at`` has passed.

    Each match is settled independently; a failure on one is recorded in the
    report and does not stop the others. Only PENDING rows are selected, so
    repeated or overlapping runs settle each match once.
    """
    settings = get_settings()
    now = now or _utcnow()
    batch_size = batch_size or settings.sweep_batch_size
    ghost_policy = (ghost_policy or settings.ghost_policy).lower()
    if ghost_policy not in GHOST_POLICIES:
        msg = f"Unsupported ghost policy: {ghost_policy}"
        raise ValueError(msg)

    result = await db.execute(
        select(Match.id)
        .where(Match.status == MatchStatus.PENDING, Match.expires_at <= now)
        .order_by(Match.expires_at)
        .limit(batch_size)
    )
    expired_ids = list(result.scalars().all())

    report = SweepReport()
    for match_id in expired_ids:
        try:
            match = await _settle(
                db,
                ledger,
                match_id,
                MatchStatus.GHOSTED,
                now=now,
                check_expiry=False,
                ghost_policy=ghost_policy,
                skip_locked=True,
            )
        except (_RowBusy, InvalidTransition):
            # Settled or being settled by a concurrent accept/reject/sweep
            report.skipped.append(match_id)
        except SolmateError as exc:
            report.failed[match_id] = exc.message
            logger.warning("sweep_match_failed", match_id=match_id, error=exc.message, code=exc.code)
        except Exception as exc:
            report.failed[match_id] = str(exc)
            logger.exception("sweep_match_error", match_id=match_id)
        else:
            report.ghosted.append(match)

    if expired_ids:
        logger.info(
            "sweep_completed",
            candidates=len(expired_ids),
            ghosted=len(report.ghosted),
            skipped=len(report.skipped),
            failed=len(report.failed),
            ghost_policy=ghost_policy,
        )
    return report
