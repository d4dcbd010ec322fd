"""Debug-only endpoints: demo data seeding and an on-demand expiry sweep.

Mounted by ``create_app`` only when ``SOLMATE_DEBUG`` is set.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from solmate.dependencies import get_db, get_ledger
from solmate.dev.seed import seed_demo_data
from solmate.ledger import BaseLedger
from solmate.matches.schemas import SweepResponse
from solmate.matches.service import sweep_expired

router = APIRouter(prefix="/api", tags=["Debug"])


@router.post("/seed")
async def seed_endpoint(
    db: AsyncSession = Depends(get_db),  # noqa: B008
    ledger: BaseLedger = Depends(get_ledger),  # noqa: B008
) -> dict[str, object]:
    """Replace all data with the demo set."""
    summary = await seed_demo_data(db, ledger)
    return {"message": "Database seeded with demo data", **summary}


@router.post("/sweep", response_model=SweepResponse)
async def sweep_endpoint(
    db: AsyncSession = Depends(get_db),  # noqa: B008
    ledger: BaseLedger = Depends(get_ledger),  # noqa: B008
) -> SweepResponse:
    """Run one expiry sweep now instead of waiting for the worker."""
    report = await sweep_expired(db, ledger)
    return SweepResponse(
        ghosted=[m.id for m in report.ghosted],
        skipped=report.skipped,
        failed=report.failed,
    )
