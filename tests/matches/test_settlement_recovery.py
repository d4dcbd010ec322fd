"""Settlement under failure: ledger timeouts and overlapping transitions."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
import pytest_asyncio
from structlog.testing import capture_logs

from solmate.database import get_session
from solmate.db.models import Gender, MatchStatus, TransactionStatus, TransactionType
from solmate.exceptions import InvalidTransition, LedgerUnavailable
from solmate.ledger import SimulatedLedger
from solmate.matches import service
from solmate.matches.service import accept_match, get_match, reject_match, sweep_expired
from solmate.matches.tipping import bind_match_escrow

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
ACCEPT_AT = T0 + timedelta(hours=1)
AFTER_EXPIRY = T0 + timedelta(hours=25)


class HangingLedger(SimulatedLedger):
    """Pays out, then stops answering."""

    async def release_funds(self, match_id, recipient_wallet):
        receipt = await super().release_funds(match_id, recipient_wallet)
        await asyncio.sleep(5)
        return receipt


class RacingLedger(SimulatedLedger):
    """Runs a competing request while this book's release is in flight."""

    def __init__(self, rival) -> None:
        super().__init__()
        self.rival = rival

    async def release_funds(self, match_id, recipient_wallet):
        await self.rival(match_id)
        return await super().release_funds(match_id, recipient_wallet)


@pytest_asyncio.fixture
async def pair(user_factory):
    await user_factory("w-alex", Gender.MALE)
    await user_factory("w-sophia", Gender.FEMALE)


@pytest_asyncio.fixture
async def rival_session(db_engine):
    """A second session standing in for a concurrent request."""
    async for session in get_session():
        yield session
        await session.close()
        break


def _settlement_rows(txs):
    return [t for t in txs if t.type is not TransactionType.TIP_SENT]


class TestLedgerTimeout:
    """A timed-out payout may have happened; the audit row must say so."""

    @pytest.mark.asyncio
    async def test_timeout_leaves_audit_pending(self, db_session, pair, open_match, db_helpers, monkeypatch):
        from solmate.config import get_settings

        monkeypatch.setenv("SOLMATE_LEDGER_TIMEOUT_SECONDS", "0.05")
        get_settings.cache_clear()
        ledger = HangingLedger()
        match = await open_match("w-alex", "w-sophia", 5, "0xslow", now=T0, on_ledger=ledger)
        match_id = match.id

        with capture_logs() as logs, pytest.raises(LedgerUnavailable) as exc_info:
            await accept_match(db_session, ledger, match_id, now=ACCEPT_AT)

        assert exc_info.value.code == "LedgerUnavailable"
        assert match_id in ledger.settlements
        assert ledger.balance_of("w-sophia") == Decimal("105")

        current = await get_match(db_session, match_id)
        assert current.status is MatchStatus.PENDING
        rows = _settlement_rows(await db_helpers.transactions_for_match(db_session, match_id))
        assert [(r.type, r.status) for r in rows] == [(TransactionType.TIP_RECEIVED, TransactionStatus.PENDING)]

        flagged = [e for e in logs if e["event"] == "settlement_needs_reconciliation"]
        assert len(flagged) == 1
        assert flagged[0]["match_id"] == match_id
        assert flagged[0]["ledger_state"] == "unknown"

    @pytest.mark.asyncio
    async def test_later_sweep_keeps_the_flag(self, db_session, pair, open_match, db_helpers, monkeypatch):
        """The ledger refuses the refund; the original PENDING row is not overwritten."""
        from solmate.config import get_settings

        monkeypatch.setenv("SOLMATE_LEDGER_TIMEOUT_SECONDS", "0.05")
        get_settings.cache_clear()
        ledger = HangingLedger()
        match = await open_match("w-alex", "w-sophia", 5, "0xslow", now=T0, on_ledger=ledger)
        match_id = match.id
        with pytest.raises(LedgerUnavailable):
            await accept_match(db_session, ledger, match_id, now=ACCEPT_AT)

        report = await sweep_expired(db_session, ledger, now=AFTER_EXPIRY)

        assert set(report.failed) == {match_id}
        rows = _settlement_rows(await db_helpers.transactions_for_match(db_session, match_id))
        statuses = {(r.type, r.status) for r in rows}
        assert statuses == {
            (TransactionType.TIP_RECEIVED, TransactionStatus.PENDING),
            (TransactionType.REFUND, TransactionStatus.FAILED),
        }


class TestOverlappingSettlement:
    """Two requests racing on one match: exactly one transition lands."""

    @pytest.mark.asyncio
    async def test_loser_rechecks_under_row_lock(
        self, db_session, rival_session, pair, open_match, ledger, db_helpers
    ):
        match = await open_match("w-alex", "w-sophia", 5, "0x1", now=T0)
        match_id = match.id
        real_load = service._load_match
        rival_results = []

        async def _rival_accepts_first(db, mid, **kwargs):
            if kwargs.get("for_update") and db is db_session and not rival_results:
                rival_results.append(await accept_match(rival_session, ledger, mid, now=ACCEPT_AT))
            return await real_load(db, mid, **kwargs)

        with (
            patch.object(service, "_load_match", _rival_accepts_first),
            pytest.raises(InvalidTransition),
        ):
            await accept_match(db_session, ledger, match_id, now=ACCEPT_AT)

        assert rival_results[0].status is MatchStatus.ACCEPTED
        for wallet in ("w-alex", "w-sophia"):
            assert (await db_helpers.reload_user(db_session, wallet)).match_count == 1
        assert ledger.balance_of("w-sophia") == Decimal("105")

        rows = _settlement_rows(await db_helpers.transactions_for_match(db_session, match_id))
        assert [(r.type, r.status) for r in rows] == [(TransactionType.TIP_RECEIVED, TransactionStatus.CONFIRMED)]

    @pytest.mark.asyncio
    async def test_compare_and_set_rejects_second_writer(
        self, db_session, rival_session, pair, open_match, ledger, db_helpers
    ):
        """The rival lands between the locked read and the write; the payout is flagged."""
        match = await open_match("w-alex", "w-sophia", 5, "0x1", now=T0)
        match_id = match.id

        async def _rival_accepts(mid):
            await accept_match(rival_session, ledger, mid, now=ACCEPT_AT)

        racing = RacingLedger(_rival_accepts)
        await bind_match_escrow(racing, match, "w-alex")

        with capture_logs() as logs, pytest.raises(InvalidTransition):
            await accept_match(db_session, racing, match_id, now=ACCEPT_AT)

        current = await get_match(db_session, match_id)
        assert current.status is MatchStatus.ACCEPTED
        for wallet in ("w-alex", "w-sophia"):
            assert (await db_helpers.reload_user(db_session, wallet)).match_count == 1

        rows = _settlement_rows(await db_helpers.transactions_for_match(db_session, match_id))
        assert sorted(r.status.value for r in rows) == ["CONFIRMED", "PENDING"]
        flagged = [e for e in logs if e["event"] == "settlement_needs_reconciliation"]
        assert [e["ledger_state"] for e in flagged] == ["succeeded"]

    @pytest.mark.asyncio
    async def test_sweep_skips_match_settled_after_selection(
        self, db_session, rival_session, pair, open_match, ledger, db_helpers
    ):
        match = await open_match("w-alex", "w-sophia", 5, "0x1", now=T0)
        match_id = match.id
        real_settle = service._settle
        rival_results = []

        async def _rival_rejects_first(db, book, mid, target, **kwargs):
            if db is db_session and not rival_results:
                rival_results.append(await reject_match(rival_session, ledger, mid, now=AFTER_EXPIRY))
            return await real_settle(db, book, mid, target, **kwargs)

        with patch.object(service, "_settle", _rival_rejects_first):
            report = await sweep_expired(db_session, ledger, now=AFTER_EXPIRY)

        assert report.skipped == [match_id]
        assert report.ghosted == [] and report.failed == {}
        assert (await get_match(db_session, match_id)).status is MatchStatus.REJECTED
        sophia = await db_helpers.reload_user(db_session, "w-sophia")
        assert sophia.ghosted_count == 0
        assert ledger.balance_of("w-alex") == Decimal("100")

    @pytest.mark.asyncio
    async def test_sweep_skips_row_locked_elsewhere(self, db_session, pair, open_match, ledger, db_helpers):
        """SKIP LOCKED returned nothing: leave the match to whoever holds it."""
        match = await open_match("w-alex", "w-sophia", 5, "0x1", now=T0)
        match_id = match.id
        real_load = service._load_match

        async def _row_held(db, mid, **kwargs):
            if kwargs.get("skip_locked"):
                return None
            return await real_load(db, mid, **kwargs)

        with patch.object(service, "_load_match", _row_held):
            report = await sweep_expired(db_session, ledger, now=AFTER_EXPIRY)

        assert report.skipped == [match_id]
        assert (await get_match(db_session, match_id)).status is MatchStatus.PENDING
        assert match_id not in ledger.settlements
        assert _settlement_rows(await db_helpers.transactions_for_match(db_session, match_id)) == []
