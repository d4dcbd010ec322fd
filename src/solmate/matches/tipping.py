"""Tip entry points: escrow the funds, record the match, bind the two.

The match engine never talks to the ledger when a match is created. This
module is the caller that locks funds (server-side tips) and tells the
ledger which match a lock receipt backs, so settlement can find it.
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from solmate.db.models import Match
from solmate.exceptions import InsufficientBalance, LedgerUnavailable, MatchAlreadyExists, SelfMatchForbidden
from solmate.ledger import BaseLedger, call_ledger
from solmate.matches.service import create_match, find_match_for_pair, parse_tip_amount
from solmate.users.service import get_user_by_wallet

logger = structlog.get_logger()


async def bind_match_escrow(ledger: BaseLedger, match: Match, sender_wallet: str) -> None:
    """Attach the escrow behind ``match.transaction_hash`` to the match."""
    try:
        await call_ledger(
            "bind_escrow",
            ledger.bind_escrow(match.transaction_hash, match.id, sender_wallet, match.tip_amount),
        )
    except LedgerUnavailable:
        # The match is recorded but settlement will be refused until the escrow is bound
        logger.error("escrow_bind_failed", match_id=match.id, receipt=match.transaction_hash)
        raise


async def record_tip(
    db: AsyncSession,
    ledger: BaseLedger,
    sender_wallet: str,
    receiver_wallet: str,
    tip_amount: Decimal | float | int | str,
    transaction_hash: str,
) -> Match:
    """Record a tip the client locked itself and bind its receipt to the new match."""
    match = await create_match(db, sender_wallet, receiver_wallet, tip_amount, transaction_hash)
    await bind_match_escrow(ledger, match, sender_wallet)
    return match


async def send_tip(
    db: AsyncSession,
    ledger: BaseLedger,
    sender_wallet: str,
    receiver_wallet: str,
    tip_amount: Decimal | float | int | str,
) -> Match:
    """Lock the tip in escrow and open a PENDING match for it."""
    if sender_wallet == receiver_wallet:
        raise SelfMatchForbidden(sender_wallet)
    amount = parse_tip_amount(tip_amount)
    sender = await get_user_by_wallet(db, sender_wallet)
    receiver = await get_user_by_wallet(db, receiver_wallet)

    existing = await find_match_for_pair(db, sender.id, receiver.id)
    if existing is not None:
        raise MatchAlreadyExists(existing)

    if not await call_ledger("has_sufficient_balance", ledger.has_sufficient_balance(sender_wallet, amount)):
        raise InsufficientBalance(sender_wallet)

    receipt = await call_ledger("lock_funds", ledger.lock_funds(sender_wallet, amount))
    logger.info("tip_funds_locked", sender=sender_wallet, amount=str(amount), receipt=receipt.transaction_hash)

    try:
        match = await create_match(db, sender_wallet, receiver_wallet, amount, receipt.transaction_hash)
    except MatchAlreadyExists:
        # A concurrent tip for the same pair won; this escrow lock has no match
        logger.error(
            "escrow_lock_orphaned",
            sender=sender_wallet,
            receiver=receiver_wallet,
            receipt=receipt.transaction_hash,
        )
        raise
    await bind_match_escrow(ledger, match, sender_wallet)
    return match
