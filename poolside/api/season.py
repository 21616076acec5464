from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from poolside.core.database import get_db
from poolside.schemas.season import (
    ChecklistResponse, CompletionCheckResponse, SeasonCompleteResponse, WinnerResponse,
)
from poolside.api.deps import require_admin
from poolside.services.season import validate_season_completion, complete_season, has_final_week
from poolside.services.week_lifecycle import get_pool

router = APIRouter(prefix="/api/pools/{pool_id}/season", tags=["Season"])


@router.get("/checklist", response_model=ChecklistResponse)
async def season_checklist(pool_id: int, db: AsyncSession = Depends(get_db)):
    checks = await validate_season_completion(db, pool_id)
    return ChecklistResponse(
        pool_id=pool_id,
        offered=await has_final_week(db, pool_id),
        ready=all(c.passed for c in checks),
        checks=[CompletionCheckResponse.model_validate(c) for c in checks],
    )


@router.post("/complete", response_model=SeasonCompleteResponse)
async def finish_season(
    pool_id: int,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    winners = await complete_season(db, pool_id)
    pool = await get_pool(db, pool_id)
    return SeasonCompleteResponse(
        pool_id=pool_id,
        season_completed_at=pool.season_completed_at,
        winners=[
            WinnerResponse(place=w.place, entry_id=w.entry_id, total_points=w.total_points)
            for w in winners
        ],
    )
