"""Unit tests for the match state machine."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from solmate.db.models import Match, MatchStatus
from solmate.exceptions import InvalidTransition
from solmate.matches.state_machine import (
    TIMESTAMP_FIELDS,
    VALID_TRANSITIONS,
    check_invariants,
    is_terminal,
    transition_values,
    validate_transition,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _match(status: MatchStatus = MatchStatus.PENDING, **stamps: datetime) -> Match:
    return Match(
        id="m-1",
        sender_id="a",
        receiver_id="b",
        status=status,
        created_at=NOW,
        expires_at=NOW + timedelta(hours=24),
        **stamps,
    )


class TestMatchStateMachine:
    """Test match state transitions."""

    def test_valid_transitions_structure(self):
        """Every status has an entry."""
        assert set(VALID_TRANSITIONS) == set(MatchStatus)

    @pytest.mark.parametrize("target", [MatchStatus.ACCEPTED, MatchStatus.REJECTED, MatchStatus.GHOSTED])
    def test_pending_to_terminal(self, target):
        """PENDING may move to any terminal status."""
        validate_transition(MatchStatus.PENDING, target)

    @pytest.mark.parametrize("status", [MatchStatus.ACCEPTED, MatchStatus.REJECTED, MatchStatus.GHOSTED])
    def test_terminal_statuses_have_no_exits(self, status):
        """Terminal statuses cannot transition anywhere."""
        assert is_terminal(status)
        for target in MatchStatus:
            with pytest.raises(InvalidTransition, match="Invalid transition"):
                validate_transition(status, target)

    def test_pending_is_not_terminal(self):
        assert not is_terminal(MatchStatus.PENDING)

    def test_pending_to_pending_rejected(self):
        """Self-transition is not a transition."""
        with pytest.raises(InvalidTransition):
            validate_transition(MatchStatus.PENDING, MatchStatus.PENDING)

    def test_invalid_transition_message(self):
        with pytest.raises(InvalidTransition) as exc_info:
            validate_transition(MatchStatus.ACCEPTED, MatchStatus.REJECTED)
        assert exc_info.value.message == "Invalid transition: ACCEPTED -> REJECTED"
        assert exc_info.value.status_code == 409


class TestTransitionValues:
    """Each terminal status stamps exactly its own timestamp."""

    @pytest.mark.parametrize("target", list(TIMESTAMP_FIELDS))
    def test_stamps_single_field(self, target):
        values = transition_values(target, NOW)
        assert values == {"status": target, TIMESTAMP_FIELDS[target]: NOW}


class TestInvariants:
    """Status and terminal timestamps must agree."""

    def test_pending_without_timestamps_is_consistent(self):
        assert check_invariants(_match()) == []

    def test_accepted_with_accepted_at_is_consistent(self):
        assert check_invariants(_match(MatchStatus.ACCEPTED, accepted_at=NOW)) == []

    def test_ghosted_with_ghosted_at_is_consistent(self):
        assert check_invariants(_match(MatchStatus.GHOSTED, ghosted_at=NOW)) == []

    def test_pending_with_timestamp_is_flagged(self):
        problems = check_invariants(_match(rejected_at=NOW))
        assert len(problems) == 1
        assert "PENDING" in problems[0]

    def test_terminal_without_timestamp_is_flagged(self):
        assert check_invariants(_match(MatchStatus.ACCEPTED)) != []

    def test_two_timestamps_are_flagged(self):
        problems = check_invariants(_match(MatchStatus.ACCEPTED, accepted_at=NOW, ghosted_at=NOW))
        assert any("multiple" in p for p in problems)


class TestMatchModel:
    """Pair key and expiry helpers on the ORM model."""

    def test_pair_key_is_order_independent(self):
        assert Match.pair_key("b", "a") == Match.pair_key("a", "b") == ("a", "b")

    def test_is_expired_at_boundary(self):
        """A match is expired from the instant expires_at is reached."""
        match = _match()
        assert not match.is_expired(match.expires_at - timedelta(seconds=1))
        assert match.is_expired(match.expires_at)
