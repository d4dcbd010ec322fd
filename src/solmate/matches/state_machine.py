"""Match state machine.

State progression: PENDING -> ACCEPTED | REJECTED | GHOSTED
All three outcomes are terminal. Each transition stamps exactly one
timestamp column on the match.
"""

from __future__ import annotations

from datetime import datetime

from solmate.db.models import Match, MatchStatus
from solmate.exceptions import InvalidTransition

VALID_TRANSITIONS: dict[MatchStatus, frozenset[MatchStatus]] = {
    MatchStatus.PENDING: frozenset({MatchStatus.ACCEPTED, MatchStatus.REJECTED, MatchStatus.GHOSTED}),
    MatchStatus.ACCEPTED: frozenset(),
    MatchStatus.REJECTED: frozenset(),
    MatchStatus.GHOSTED: frozenset(),
}

# Terminal status -> the timestamp column it sets
TIMESTAMP_FIELDS: dict[MatchStatus, str] = {
    MatchStatus.ACCEPTED: "accepted_at",
    MatchStatus.REJECTED: "rejected_at",
    MatchStatus.GHOSTED: "ghosted_at",
}


def is_terminal(status: MatchStatus) -> bool:
    return not VALID_TRANSITIONS[status]


def validate_transition(current: MatchStatus, target: MatchStatus) -> None:
    """Validate a state transition. Raises InvalidTransition if not allowed."""
    if target not in VALID_TRANSITIONS[current]:
        raise InvalidTransition(current.value, target.value)


def transition_values(target: MatchStatus, now: datetime) -> dict[str, object]:
    """Column values written when a match enters ``target``."""
    return {"status": target, TIMESTAMP_FIELDS[target]: now}


def check_invariants(match: Match) -> list[str]:
    """Return violations of the status/timestamp invariant (empty when consistent)."""
    problems: list[str] = []
    stamped = [status for status, attr in TIMESTAMP_FIELDS.items() if getattr(match, attr) is not None]
    if len(stamped) > 1:
        problems.append(f"multiple terminal timestamps set: {[s.value for s in stamped]}")
    expected = [match.status] if match.status in TIMESTAMP_FIELDS else []
    if stamped != expected and len(stamped) <= 1:
        problems.append(f"status {match.status.value} does not match timestamps {[s.value for s in stamped]}")
    return problems
