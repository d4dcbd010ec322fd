"""arq sweep worker: cron schedule and the job body."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from solmate.db.models import Gender, MatchStatus
from solmate.ledger import get_ledger
from solmate.matches.service import get_match
from solmate.matches.worker import SweepWorkerSettings, _sweep_minutes, sweep_expired_matches


class TestSweepSchedule:
    def test_every_five_minutes(self):
        assert _sweep_minutes(5) == {0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55}

    def test_interval_clamped(self):
        assert _sweep_minutes(0) == set(range(60))
        assert _sweep_minutes(90) == {0}

    def test_interval_rounded_to_divisor_of_hour(self):
        """A 7 minute interval would fire at :56 then :00; it runs every 6 instead."""
        assert _sweep_minutes(7) == _sweep_minutes(6)
        assert _sweep_minutes(45) == {0, 30}

    def test_worker_registers_sweep(self):
        assert sweep_expired_matches in SweepWorkerSettings.functions
        assert len(SweepWorkerSettings.cron_jobs) == 1


class TestSweepJob:
    @pytest.mark.asyncio
    async def test_job_ghosts_expired_matches(self, db_session, user_factory, open_match):
        await user_factory("w-alex", Gender.MALE)
        await user_factory("w-sophia", Gender.FEMALE)
        long_ago = datetime.now(timezone.utc) - timedelta(days=3)
        book = get_ledger()
        match = await open_match("w-alex", "w-sophia", 5, "0xold", now=long_ago, on_ledger=book)
        match_id = match.id

        result = await sweep_expired_matches({})

        assert result == {"ghosted": 1, "skipped": 0, "failed": 0}
        assert (await get_match(db_session, match_id)).status is MatchStatus.GHOSTED
        assert book.settlements[match_id].operation == "refund"
