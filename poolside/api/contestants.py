from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from poolside.core.database import get_db
from poolside.models.models import Contestant
from poolside.schemas.pools import (
    ContestantCreate, ContestantBulkCreate, ContestantResponse,
    ContestantWeekResponse, ContestantStatusResponse,
)
from poolside.api.deps import require_admin
from poolside.services.status_resolver import (
    load_pool_snapshot, status_as_of_week, active_contestants_for_week, get_status_as_of_week,
)
from poolside.services.week_lifecycle import get_pool

router = APIRouter(prefix="/api/pools/{pool_id}/contestants", tags=["Contestants"])


async def _name_taken(db: AsyncSession, pool_id: int, name: str) -> bool:
    result = await db.execute(
        select(Contestant.id).where(Contestant.pool_id == pool_id, Contestant.name == name)
    )
    return result.scalar_one_or_none() is not None


@router.post("", response_model=ContestantResponse, status_code=201)
async def add_contestant(
    pool_id: int,
    body: ContestantCreate,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    await get_pool(db, pool_id)
    if await _name_taken(db, pool_id, body.name):
        raise HTTPException(status_code=409, detail="A contestant with that name already exists in this pool")
    contestant = Contestant(pool_id=pool_id, name=body.name, sort_order=body.sort_order)
    db.add(contestant)
    await db.flush()
    await db.refresh(contestant)
    return contestant


@router.post("/bulk", response_model=list[ContestantResponse], status_code=201)
async def bulk_add_contestants(
    pool_id: int,
    body: ContestantBulkCreate,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    await get_pool(db, pool_id)
    names = [c.name for c in body.contestants]
    if len(set(names)) != len(names):
        raise HTTPException(status_code=409, detail="Duplicate contestant names in request")

    created = []
    for c in body.contestants:
        if await _name_taken(db, pool_id, c.name):
            raise HTTPException(status_code=409, detail=f"Contestant {c.name!r} already exists in this pool")
        contestant = Contestant(pool_id=pool_id, name=c.name, sort_order=c.sort_order)
        db.add(contestant)
        created.append(contestant)
    await db.flush()
    for c in created:
        await db.refresh(c)
    return created


@router.get("", response_model=list[ContestantWeekResponse])
async def list_contestants(
    pool_id: int,
    week: int | None = Query(None, gt=0, description="Annotate each contestant with their status for this week"),
    active_only: bool = Query(False, description="With week, only contestants still active at the end of it"),
    db: AsyncSession = Depends(get_db),
):
    await get_pool(db, pool_id)
    snapshot = await load_pool_snapshot(db, pool_id)
    if week is None:
        return [ContestantWeekResponse.model_validate(c) for c in snapshot.contestants]

    events = snapshot.status_events()
    contestants = snapshot.contestants
    if active_only:
        contestants = active_contestants_for_week(contestants, week, events)
    items = []
    for contestant in contestants:
        status = status_as_of_week(contestant, week, events)
        items.append(ContestantWeekResponse(
            **ContestantResponse.model_validate(contestant).model_dump(),
            week_number=week,
            active_this_week=status.active,
            reason=status.reason,
        ))
    return items


@router.get("/{contestant_id}/status", response_model=ContestantStatusResponse)
async def contestant_status(
    pool_id: int,
    contestant_id: int,
    week: int = Query(..., gt=0),
    db: AsyncSession = Depends(get_db),
):
    await get_pool(db, pool_id)
    return await get_status_as_of_week(db, pool_id, contestant_id, week)
