import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from poolside.core.config import get_settings
from poolside.core.database import get_db
from poolside.models.models import Pool, PoolEntry, BonusQuestion, Contestant
from poolside.schemas.pools import (
    PoolCreate, PoolUpdate, PoolResponse,
    EntryCreate, EntryResponse,
    BonusQuestionCreate, BonusQuestionUpdate, BonusQuestionResponse,
)
from poolside.api.deps import require_admin
from poolside.services.rule_seeder import seed_default_rules
from poolside.services.week_lifecycle import get_pool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pools", tags=["Pools"])


@router.post("", response_model=PoolResponse, status_code=201)
async def create_pool(
    body: PoolCreate,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    settings = get_settings()
    pool = Pool(
        name=body.name,
        season_number=body.season_number,
        max_nominees=body.max_nominees or settings.default_max_nominees,
        picks_per_team=body.picks_per_team or settings.default_picks_per_team,
        enabled_special_events=body.enabled_special_events,
    )
    db.add(pool)
    await db.flush()
    # Shared defaults are created once, by whichever pool comes first
    await seed_default_rules(db)
    await db.refresh(pool)
    logger.info("Created pool %s (%s)", pool.id, pool.name)
    return pool


@router.get("/{pool_id}", response_model=PoolResponse)
async def read_pool(pool_id: int, db: AsyncSession = Depends(get_db)):
    return await get_pool(db, pool_id)


@router.patch("/{pool_id}", response_model=PoolResponse)
async def update_pool(
    pool_id: int,
    body: PoolUpdate,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    pool = await get_pool(db, pool_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(pool, field, value)
    await db.flush()
    await db.refresh(pool)
    return pool


# --- Entries ---

@router.get("/{pool_id}/entries", response_model=list[EntryResponse])
async def list_entries(pool_id: int, db: AsyncSession = Depends(get_db)):
    await get_pool(db, pool_id)
    result = await db.execute(select(PoolEntry).where(PoolEntry.pool_id == pool_id).order_by(PoolEntry.id))
    return result.scalars().all()


@router.post("/{pool_id}/entries", response_model=EntryResponse, status_code=201)
async def create_entry(
    pool_id: int,
    body: EntryCreate,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    pool = await get_pool(db, pool_id)
    if len(body.picks) > pool.picks_per_team:
        raise HTTPException(status_code=422, detail=f"A team may pick at most {pool.picks_per_team} contestants")
    if len(set(body.picks)) != len(body.picks):
        raise HTTPException(status_code=422, detail="A contestant can only be picked once per team")

    result = await db.execute(select(Contestant.id).where(Contestant.pool_id == pool_id))
    known = set(result.scalars().all())
    unknown = [cid for cid in body.picks if cid not in known]
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unknown contestants: {unknown}")

    entry = PoolEntry(
        pool_id=pool_id,
        team_name=body.team_name,
        participant_name=body.participant_name,
        picks=body.picks,
        bonus_answers=body.bonus_answers,
    )
    db.add(entry)
    await db.flush()
    await db.refresh(entry)
    return entry


# --- Bonus questions ---

@router.get("/{pool_id}/bonus-questions", response_model=list[BonusQuestionResponse])
async def list_bonus_questions(pool_id: int, db: AsyncSession = Depends(get_db)):
    await get_pool(db, pool_id)
    result = await db.execute(
        select(BonusQuestion)
        .where(BonusQuestion.pool_id == pool_id)
        .order_by(BonusQuestion.sort_order, BonusQuestion.id)
    )
    return result.scalars().all()


@router.post("/{pool_id}/bonus-questions", response_model=BonusQuestionResponse, status_code=201)
async def create_bonus_question(
    pool_id: int,
    body: BonusQuestionCreate,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    await get_pool(db, pool_id)
    question = BonusQuestion(pool_id=pool_id, **body.model_dump())
    db.add(question)
    await db.flush()
    await db.refresh(question)
    return question


@router.patch("/{pool_id}/bonus-questions/{question_id}", response_model=BonusQuestionResponse)
async def update_bonus_question(
    pool_id: int,
    question_id: int,
    body: BonusQuestionUpdate,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    result = await db.execute(
        select(BonusQuestion).where(BonusQuestion.id == question_id, BonusQuestion.pool_id == pool_id)
    )
    question = result.scalar_one_or_none()
    if not question:
        raise HTTPException(status_code=404, detail="Bonus question not found")

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(question, field, value)
    await db.flush()
    await db.refresh(question)
    return question
