"""Ledger collaborator: escrow lock, release and refund of tips."""

from solmate.ledger.service import (
    BaseLedger,
    Escrow,
    HttpLedger,
    LedgerError,
    LedgerReceipt,
    SimulatedLedger,
    call_ledger,
    get_ledger,
    reset_ledger,
)

__all__ = [
    "BaseLedger",
    "Escrow",
    "HttpLedger",
    "LedgerError",
    "LedgerReceipt",
    "SimulatedLedger",
    "call_ledger",
    "get_ledger",
    "reset_ledger",
]
