from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from poolside.core.database import get_db
from poolside.models.models import ScoringRule, SpecialEvent
from poolside.schemas.rules import RuleCreate, RuleUpdate, RuleResponse, RescoreResponse
from poolside.api.deps import require_admin
from poolside.services.scoring_rules import get_pool_rules
from poolside.services.week_lifecycle import get_pool, refresh_special_event_points

router = APIRouter(prefix="/api/pools/{pool_id}/rules", tags=["Scoring Rules"])


async def _get_pool_rule_or_404(db: AsyncSession, pool_id: int, rule_id: int) -> ScoringRule:
    # Shared defaults are not editable through a pool; override them instead
    result = await db.execute(
        select(ScoringRule).where(ScoringRule.id == rule_id, ScoringRule.pool_id == pool_id)
    )
    rule = result.scalar_one_or_none()
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


async def _ensure_no_active_duplicate(db: AsyncSession, rule: ScoringRule) -> None:
    result = await db.execute(
        select(ScoringRule.id).where(
            ScoringRule.pool_id == rule.pool_id,
            ScoringRule.category == rule.category,
            ScoringRule.subcategory == rule.subcategory,
            ScoringRule.is_active == True,  # noqa: E712
            ScoringRule.id != (rule.id or 0),
        )
    )
    if result.scalars().first() is not None:
        raise HTTPException(status_code=409, detail="An active rule for this category/subcategory already exists in this pool")


@router.get("", response_model=list[RuleResponse])
async def list_rules(
    pool_id: int,
    active_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    await get_pool(db, pool_id)
    return await get_pool_rules(db, pool_id, active_only=active_only)


# Must be defined BEFORE /{rule_id} to prevent path conflict
@router.post("/rescore", response_model=RescoreResponse)
async def rescore_pool(
    pool_id: int,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    await get_pool(db, pool_id)
    changed = await refresh_special_event_points(db, pool_id)
    return RescoreResponse(special_events_repriced=changed)


@router.post("", response_model=RuleResponse, status_code=201)
async def create_rule(
    pool_id: int,
    body: RuleCreate,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    await get_pool(db, pool_id)
    rule = ScoringRule(pool_id=pool_id, **body.model_dump())
    if rule.is_active:
        await _ensure_no_active_duplicate(db, rule)
    db.add(rule)
    await db.flush()
    await db.refresh(rule)
    return rule


@router.patch("/{rule_id}", response_model=RuleResponse)
async def update_rule(
    pool_id: int,
    rule_id: int,
    body: RuleUpdate,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    rule = await _get_pool_rule_or_404(db, pool_id, rule_id)
    update_data = body.model_dump(exclude_unset=True)
    if update_data.get("is_active") and not rule.is_active:
        await _ensure_no_active_duplicate(db, rule)

    for field, value in update_data.items():
        setattr(rule, field, value)

    await db.flush()
    await db.refresh(rule)
    return rule


@router.delete("/{rule_id}", status_code=204)
async def delete_rule(
    pool_id: int,
    rule_id: int,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    rule = await _get_pool_rule_or_404(db, pool_id, rule_id)
    # Special events may name their rule by id; those must keep resolving
    result = await db.execute(
        select(SpecialEvent.id).where(SpecialEvent.pool_id == pool_id, SpecialEvent.event_type == str(rule.id))
    )
    if result.scalars().first() is not None:
        raise HTTPException(
            status_code=409,
            detail="Special events still refer to this rule; deactivate it instead",
        )
    await db.delete(rule)
