"""Match and tip endpoints: /api/matches/*, /api/tips."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from solmate.dependencies import get_db, get_ledger
from solmate.exceptions import MatchAlreadyExists
from solmate.ledger import BaseLedger
from solmate.matches.schemas import (
    MatchConflictResponse,
    MatchCreateRequest,
    MatchResponse,
    MatchWithTransactionsResponse,
    TipRequest,
)
from solmate.matches.service import (
    accept_match,
    list_matches_for_wallet,
    reject_match,
)
from solmate.matches.tipping import record_tip, send_tip


router = APIRouter(tags=["Matches"])

_CONFLICT = {409: {"model": MatchConflictResponse}}


def _conflict_response(exc: MatchAlreadyExists) -> JSONResponse:
    """409 carrying the authoritative existing match so the client can reconcile."""
    body = MatchConflictResponse(
        detail=exc.message,
        code=exc.code,
        existing_match=MatchResponse.model_validate(exc.existing),
    )
    return JSONResponse(status_code=409, content=body.model_dump(mode="json", by_alias=True))


@router.post("/api/matches", response_model=MatchResponse, responses=_CONFLICT)
async def create_match_endpoint(
    body: MatchCreateRequest,
    db: AsyncSession = Depends(get_db),  # noqa: B008
    ledger: BaseLedger = Depends(get_ledger),  # noqa: B008
) -> MatchResponse | JSONResponse:
    """Record a tip the client already locked in escrow as a PENDING match."""
    try:
        match = await record_tip(
            db,
            ledger,
            body.sender_wallet,
            body.receiver_wallet,
            body.tip_amount,
            body.transaction_hash,
        )
    except MatchAlreadyExists as exc:
        return _conflict_response(exc)
    return MatchResponse.model_validate(match)


@router.post("/api/tips", response_model=MatchResponse, responses=_CONFLICT)
async def send_tip_endpoint(
    body: TipRequest,
    db: AsyncSession = Depends(get_db),  # noqa: B008
    ledger: BaseLedger = Depends(get_ledger),  # noqa: B008
) -> MatchResponse | JSONResponse:
    """Lock the tip in server-side escrow and open a PENDING match."""
    try:
        match = await send_tip(db, ledger, body.sender_wallet, body.receiver_wallet, body.tip_amount)
    except MatchAlreadyExists as exc:
        return _conflict_response(exc)
    return MatchResponse.model_validate(match)


@router.get("/api/matches/{wallet_address}", response_model=list[MatchWithTransactionsResponse])
async def list_matches_endpoint(
    wallet_address: str,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> list[MatchWithTransactionsResponse]:
    """Every match the wallet sent or received, newest first."""
    matches = await list_matches_for_wallet(db, wallet_address)
    return [MatchWithTransactionsResponse.model_validate(m) for m in matches]


@router.patch("/api/matches/{match_id}/accept", response_model=MatchResponse)
async def accept_match_endpoint(
    match_id: str,
    db: AsyncSession = Depends(get_db),  # noqa: B008
    ledger: BaseLedger = Depends(get_ledger),  # noqa: B008
) -> MatchResponse:
    """Accept a pending match and release the tip to the receiver."""
    match = await accept_match(db, ledger, match_id)
    return MatchResponse.model_validate(match)


@router.patch("/api/matches/{match_id}/reject", response_model=MatchResponse)
async def reject_match_endpoint(
    match_id: str,
    db: AsyncSession = Depends(get_db),  # noqa: B008
    ledger: BaseLedger = Depends(get_ledger),  # noqa: B008
) -> MatchResponse:
    """Reject a pending match and refund the tip to the sender."""
    match = await reject_match(db, ledger, match_id)
    return MatchResponse.model_validate(match)
