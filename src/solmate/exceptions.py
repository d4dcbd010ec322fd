"""
Application-level exceptions.

Every domain error carries the HTTP status the API reports it with; the
global handler in ``solmate.middleware.error_handler`` does the mapping.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from solmate.db.models import Match


class SolmateError(Exception):
    """Base class for domain errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def code(self) -> str:
        return type(self).__name__


# --- Validation (400) ---


class ValidationFailed(SolmateError):
    status_code = 400


class SelfMatchForbidden(ValidationFailed):
    def __init__(self, wallet_address: str) -> None:
        super().__init__("Cannot send a tip to yourself")
        self.wallet_address = wallet_address


class InvalidTipAmount(ValidationFailed):
    def __init__(self, amount: object) -> None:
        super().__init__(f"Tip amount must be positive, got {amount}")
        self.amount = amount


class InvalidProfile(ValidationFailed):
    pass


# --- Payment (402) ---


class InsufficientBalance(SolmateError):
    status_code = 402

    def __init__(self, wallet_address: str) -> None:
        super().__init__("Insufficient balance for this tip")
        self.wallet_address = wallet_address


# --- Not found (404) ---


class UserNotFound(SolmateError):
    status_code = 404

    def __init__(self, wallet_address: str) -> None:
        super().__init__("User not found")
        self.wallet_address = wallet_address


class MatchNotFound(SolmateError):
    status_code = 404

    def __init__(self, match_id: str) -> None:
        super().__init__("Match not found")
        self.match_id = match_id


# --- Conflict (409) ---


class MatchAlreadyExists(SolmateError):
    """An unordered pair already has a match. Not retryable: the existing match is authoritative."""

    status_code = 409

    def __init__(self, existing: Match) -> None:
        super().__init__("Match already exists between these users")
        self.existing = existing


class InvalidTransition(SolmateError):
    status_code = 409

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Invalid transition: {current} -> {target}")
        self.current = current
        self.target = target


class DuplicateTransactionHash(SolmateError):
    status_code = 409

    def __init__(self, transaction_hash: str) -> None:
        super().__init__("Transaction hash already used by another match")
        self.transaction_hash = transaction_hash


class UserAlreadyExists(SolmateError):
    status_code = 409

    def __init__(self, wallet_address: str) -> None:
        super().__init__("User already onboarded for this wallet")
        self.wallet_address = wallet_address


# --- Expired (410) ---


class MatchExpired(SolmateError):
    status_code = 410

    def __init__(self, match_id: str) -> None:
        super().__init__("Match has expired")
        self.match_id = match_id


# --- External dependency (503) ---


class LedgerUnavailable(SolmateError):
    """The ledger failed or timed out. Transient; the client may retry."""

    status_code = 503

    def __init__(self, operation: str, reason: str = "") -> None:
        super().__init__("Payment ledger is temporarily unavailable, please retry")
        self.operation = operation
        self.reason = reason


class LedgerTimeout(LedgerUnavailable):
    """The ledger did not answer in time; the operation may or may not have happened."""

    def __init__(self, operation: str) -> None:
        super().__init__(operation, "timeout")

    @property
    def code(self) -> str:
        return "LedgerUnavailable"
