"""Server-side escrow: balance check and lock before the match is recorded."""

from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio

from solmate.db.models import Gender, MatchStatus
from solmate.exceptions import InsufficientBalance, MatchAlreadyExists, SelfMatchForbidden
from solmate.ledger import SimulatedLedger
from solmate.matches.service import accept_match, reject_match
from solmate.matches.tipping import send_tip


@pytest_asyncio.fixture
async def users(user_factory):
    await user_factory("w-alex", Gender.MALE)
    await user_factory("w-sophia", Gender.FEMALE)


class TestSendTip:
    @pytest.mark.asyncio
    async def test_locks_funds_and_creates_match(self, db_session, users, ledger):
        match = await send_tip(db_session, ledger, "w-alex", "w-sophia", 7)

        assert match.status is MatchStatus.PENDING
        assert match.transaction_hash.startswith("escrow-")
        escrow = ledger.escrow[match.transaction_hash]
        assert (escrow.sender_wallet, escrow.amount, escrow.match_id) == ("w-alex", Decimal("7"), match.id)
        assert ledger.balance_of("w-alex") == Decimal("93")

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, db_session, users):
        ledger = SimulatedLedger(starting_balance=Decimal("2"))
        with pytest.raises(InsufficientBalance):
            await send_tip(db_session, ledger, "w-alex", "w-sophia", 5)
        assert ledger.escrow == {}

    @pytest.mark.asyncio
    async def test_existing_pair_checked_before_lock(self, db_session, users, ledger):
        await send_tip(db_session, ledger, "w-alex", "w-sophia", 5)
        with pytest.raises(MatchAlreadyExists):
            await send_tip(db_session, ledger, "w-sophia", "w-alex", 5)
        assert len(ledger.escrow) == 1
        assert ledger.balance_of("w-sophia") == Decimal("100")

    @pytest.mark.asyncio
    async def test_self_tip(self, db_session, users, ledger):
        with pytest.raises(SelfMatchForbidden):
            await send_tip(db_session, ledger, "w-alex", "w-alex", 5)


class TestEscrowSettlement:
    """Escrowed value follows the match to whoever it is settled to."""

    @pytest.mark.asyncio
    async def test_reject_returns_tip_to_sender(self, db_session, users):
        ledger = SimulatedLedger(starting_balance=Decimal("10"))
        match = await send_tip(db_session, ledger, "w-alex", "w-sophia", 10)
        match_id = match.id
        assert ledger.balance_of("w-alex") == Decimal("0")

        await reject_match(db_session, ledger, match_id)

        assert ledger.balance_of("w-alex") == Decimal("10")
        assert ledger.balance_of("w-sophia") == Decimal("10")
        assert ledger.escrow == {}

    @pytest.mark.asyncio
    async def test_accept_pays_receiver(self, db_session, users):
        ledger = SimulatedLedger(starting_balance=Decimal("10"))
        match = await send_tip(db_session, ledger, "w-alex", "w-sophia", 4)
        match_id = match.id

        await accept_match(db_session, ledger, match_id)

        assert ledger.balance_of("w-alex") == Decimal("6")
        assert ledger.balance_of("w-sophia") == Decimal("14")
        assert ledger.escrow == {}
        assert ledger.settlements[match_id].amount == Decimal("4")
