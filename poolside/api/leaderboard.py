from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from poolside.core.database import get_db
from poolside.schemas.leaderboard import (
    PointsResponse, ContestantPointsItem, LeaderboardResponse, StandingItem,
)
from poolside.services.scoring_engine import compute_points, get_standings
from poolside.services.status_resolver import load_pool_snapshot
from poolside.services.week_lifecycle import get_pool

router = APIRouter(prefix="/api/pools/{pool_id}", tags=["Leaderboard"])


@router.get("/points", response_model=PointsResponse)
async def pool_points(pool_id: int, db: AsyncSession = Depends(get_db)):
    await get_pool(db, pool_id)
    snapshot = await load_pool_snapshot(db, pool_id)
    points = compute_points(snapshot.records, snapshot.special_events, snapshot.table, snapshot.contestants)
    names = {c.id: c.name for c in snapshot.contestants}

    items = [
        ContestantPointsItem(
            contestant_id=cid,
            contestant_name=names.get(cid, f"#{cid}"),
            weekly=p.weekly,
            cumulative=p.cumulative,
            total=p.total,
        )
        for cid, p in points.items()
    ]
    items.sort(key=lambda x: (-x.total, x.contestant_name))
    weeks = sorted({w for p in points.values() for w in p.weekly})
    return PointsResponse(pool_id=pool_id, weeks=weeks, contestants=items)


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(pool_id: int, db: AsyncSession = Depends(get_db)):
    pool = await get_pool(db, pool_id)
    standings = await get_standings(db, pool_id)
    return LeaderboardResponse(
        pool_id=pool_id,
        season_complete=pool.season_complete,
        entries=[
            StandingItem(
                rank=s.rank,
                entry_id=s.entry_id,
                team_name=s.team_name,
                participant_name=s.participant_name,
                picks=s.picks,
                contestant_points=s.contestant_points,
                bonus_points=s.bonus_points,
                total_points=s.total_points,
            )
            for s in standings
        ],
    )
