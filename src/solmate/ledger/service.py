"""
Ledger with provider abstraction.

Holds and moves tip value. Supports an in-process simulated escrow book
(default) and a remote escrow service over HTTP. Provider is selected via
configuration.
"""

from __future__ import annotations

import asyncio
import secrets
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, TypeVar

import structlog

from solmate.config import get_settings
from solmate.exceptions import LedgerTimeout, LedgerUnavailable

logger = structlog.get_logger()

T = TypeVar("T")


class LedgerError(Exception):
    """Raised by a provider when a ledger operation is refused or fails."""


@dataclass(frozen=True)
class LedgerReceipt:
    """Proof of a completed ledger operation."""

    transaction_hash: str
    operation: str
    wallet_address: str
    match_id: str | None = None
    amount: Decimal | None = None


@dataclass
class Escrow:
    """Funds held for one tip, optionally bound to the match that records it."""

    sender_wallet: str
    amount: Decimal
    match_id: str | None = None


class BaseLedger(ABC):
    """Abstract base class for ledger providers."""

    @abstractmethod
    async def has_sufficient_balance(self, wallet_address: str, amount: Decimal) -> bool:
        """Check whether the wallet can cover ``amount``."""
        ...

    @abstractmethod
    async def lock_funds(self, wallet_address: str, amount: Decimal) -> LedgerReceipt:
        """Move ``amount`` from the wallet into escrow."""
        ...

    @abstractmethod
    async def bind_escrow(self, escrow_hash: str, match_id: str, sender_wallet: str, amount: Decimal) -> None:
        """Attach the escrow behind a lock receipt to the match recording the tip."""
        ...

    @abstractmethod
    async def release_funds(self, match_id: str, recipient_wallet: str) -> LedgerReceipt:
        """Pay the escrowed tip of a match out to the recipient."""
        ...

    @abstractmethod
    async def refund_funds(self, match_id: str, sender_wallet: str) -> LedgerReceipt:
        """Return the escrowed tip of a match to its sender."""
        ...


@dataclass
class SimulatedLedger(BaseLedger):
    """In-process escrow book for development and tests.

    Every wallet starts with ``starting_balance``. Locked funds sit in
    ``escrow`` under the lock receipt hash until bound to a match; settling
    the match pays them out and closes the entry. A match settles once.
    A receipt issued outside this book (a client-side lock) is adopted when
    bound: the sender is debited then, as ``lock_funds`` would have done.
    """

    starting_balance: Decimal = Decimal("100")
    balances: dict[str, Decimal] = field(default_factory=dict)
    escrow: dict[str, Escrow] = field(default_factory=dict)
    bindings: dict[str, str] = field(default_factory=dict)
    settlements: dict[str, LedgerReceipt] = field(default_factory=dict)

    def balance_of(self, wallet_address: str) -> Decimal:
        return self.balances.get(wallet_address, self.starting_balance)

    def escrow_for_match(self, match_id: str) -> Escrow | None:
        escrow_hash = self.bindings.get(match_id)
        return self.escrow.get(escrow_hash) if escrow_hash else None

    @staticmethod
    def _new_hash(prefix: str) -> str:
        return f"{prefix}-{secrets.token_hex(16)}"

    async def has_sufficient_balance(self, wallet_address: str, amount: Decimal) -> bool:
        return self.balance_of(wallet_address) >= amount

    async def lock_funds(self, wallet_address: str, amount: Decimal) -> LedgerReceipt:
        if amount <= 0:
            raise LedgerError(f"Cannot lock non-positive amount {amount}")
        balance = self.balance_of(wallet_address)
        if balance < amount:
            raise LedgerError(f"Insufficient balance in {wallet_address}")
        self.balances[wallet_address] = balance - amount
        receipt = LedgerReceipt(
            transaction_hash=self._new_hash("escrow"),
            operation="lock",
            wallet_address=wallet_address,
            amount=amount,
        )
        self.escrow[receipt.transaction_hash] = Escrow(sender_wallet=wallet_address, amount=amount)
        return receipt

    async def bind_escrow(self, escrow_hash: str, match_id: str, sender_wallet: str, amount: Decimal) -> None:
        bound = self.bindings.get(match_id)
        if bound is not None:
            if bound != escrow_hash:
                raise LedgerError(f"Match {match_id} is already bound to escrow {bound}")
            return
        entry = self.escrow.get(escrow_hash)
        if entry is None:
            balance = self.balance_of(sender_wallet)
            if balance < amount:
                raise LedgerError(f"Insufficient balance in {sender_wallet}")
            self.balances[sender_wallet] = balance - amount
            entry = self.escrow[escrow_hash] = Escrow(sender_wallet=sender_wallet, amount=amount)
        elif entry.match_id is not None:
            raise LedgerError(f"Escrow {escrow_hash} already backs match {entry.match_id}")
        elif entry.sender_wallet != sender_wallet or entry.amount != amount:
            raise LedgerError(f"Escrow {escrow_hash} does not match the recorded tip")
        entry.match_id = match_id
        self.bindings[match_id] = escrow_hash

    def _settle(self, operation: str, match_id: str, wallet_address: str) -> LedgerReceipt:
        if match_id in self.settlements:
            previous = self.settlements[match_id]
            raise LedgerError(f"Match {match_id} already settled by {previous.operation}")
        entry = self.escrow_for_match(match_id)
        if entry is None:
            raise LedgerError(f"No escrow held for match {match_id}")
        if operation == "refund" and wallet_address != entry.sender_wallet:
            raise LedgerError(f"Refund for match {match_id} must go to {entry.sender_wallet}")

        del self.escrow[self.bindings.pop(match_id)]
        self.balances[wallet_address] = self.balance_of(wallet_address) + entry.amount
        receipt = LedgerReceipt(
            transaction_hash=self._new_hash(operation),
            operation=operation,
            wallet_address=wallet_address,
            match_id=match_id,
            amount=entry.amount,
        )
        self.settlements[match_id] = receipt
        return receipt

    async def release_funds(self, match_id: str, recipient_wallet: str) -> LedgerReceipt:
        return self._settle("release", match_id, recipient_wallet)

    async def refund_funds(self, match_id: str, sender_wallet: str) -> LedgerReceipt:
        return self._settle("refund", match_id, sender_wallet)


def _field(data: dict[str, Any], key: str, path: str) -> Any:
    try:
        return data[key]
    except (KeyError, TypeError) as exc:
        raise LedgerError(f"{path} response is missing {key!r}") from exc


class HttpLedger(BaseLedger):
    """Talk to a remote escrow service over HTTP."""

    def __init__(self, base_url: str, api_key: str, timeout: float) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    async def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        import httpx

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
                response = await client.request(method, path, headers=headers, json=payload)
                response.raise_for_status()
                data: dict[str, Any] = response.json()
                return data
        except httpx.HTTPError as exc:
            raise LedgerError(f"{method} {path} failed: {exc}") from exc
        except ValueError as exc:
            raise LedgerError(f"{method} {path} returned a malformed body") from exc

    async def has_sufficient_balance(self, wallet_address: str, amount: Decimal) -> bool:
        path = f"/wallets/{wallet_address}/balance"
        data = await self._request("GET", path)
        try:
            balance = Decimal(str(_field(data, "balance", path)))
        except ArithmeticError as exc:
            raise LedgerError(f"{path} returned a malformed balance") from exc
        return balance >= amount

    async def lock_funds(self, wallet_address: str, amount: Decimal) -> LedgerReceipt:
        path = "/escrow/lock"
        data = await self._request("POST", path, {"wallet": wallet_address, "amount": str(amount)})
        return LedgerReceipt(
            transaction_hash=_field(data, "transactionHash", path),
            operation="lock",
            wallet_address=wallet_address,
            amount=amount,
        )

    async def bind_escrow(self, escrow_hash: str, match_id: str, sender_wallet: str, amount: Decimal) -> None:
        await self._request(
            "POST",
            f"/escrow/{escrow_hash}/bind",
            {"matchId": match_id, "wallet": sender_wallet, "amount": str(amount)},
        )

    async def release_funds(self, match_id: str, recipient_wallet: str) -> LedgerReceipt:
        path = f"/escrow/{match_id}/release"
        data = await self._request("POST", path, {"wallet": recipient_wallet})
        return LedgerReceipt(
            transaction_hash=_field(data, "transactionHash", path),
            operation="release",
            wallet_address=recipient_wallet,
            match_id=match_id,
        )

    async def refund_funds(self, match_id: str, sender_wallet: str) -> LedgerReceipt:
        path = f"/escrow/{match_id}/refund"
        data = await self._request("POST", path, {"wallet": sender_wallet})
        return LedgerReceipt(
            transaction_hash=_field(data, "transactionHash", path),
            operation="refund",
            wallet_address=sender_wallet,
            match_id=match_id,
        )


async def call_ledger(operation: str, call: Awaitable[T], timeout: float | None = None) -> T:
    """Await a ledger call with a bounded timeout.

    A refusal surfaces as ``LedgerUnavailable``. A timeout surfaces as
    ``LedgerTimeout``: the caller cannot tell whether the operation happened.
    """
    if timeout is None:
        timeout = get_settings().ledger_timeout_seconds
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("ledger_timeout", operation=operation, timeout=timeout)
        raise LedgerTimeout(operation) from exc
    except LedgerError as exc:
        logger.warning("ledger_call_failed", operation=operation, error=str(exc))
        raise LedgerUnavailable(operation, str(exc)) from exc


def _create_ledger() -> BaseLedger:
    """Create ledger provider based on configuration."""
    settings = get_settings()
    provider_name = settings.ledger_provider.lower()

    if provider_name == "simulated":
        return SimulatedLedger(starting_balance=Decimal(str(settings.simulated_starting_balance)))
    if provider_name == "http":
        return HttpLedger(
            base_url=settings.ledger_url,
            api_key=settings.ledger_api_key,
            timeout=settings.ledger_timeout_seconds,
        )
    msg = f"Unsupported ledger provider: {provider_name}"
    raise ValueError(msg)


# Module-level singleton
_ledger: BaseLedger | None = None


def get_ledger() -> BaseLedger:
    """Get or create the ledger singleton (FastAPI dependency)."""
    global _ledger  # noqa: PLW0603
    if _ledger is None:
        _ledger = _create_ledger()
    return _ledger


def reset_ledger() -> None:
    """Reset the ledger singleton (for testing)."""
    global _ledger  # noqa: PLW0603
    _ledger = None
