"""
Season completion gate.

Completing a season is the one irreversible step in a pool's life: it writes
final placements, locks every week against further edits and freezes the
standings into PoolWinner rows.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from poolside.core.errors import IncompleteSeasonError, SeasonLockedError
from poolside.models.models import WeekEventRecord, BonusQuestion, PoolEntry, PoolWinner
from poolside.services.scoring_engine import get_standings
from poolside.services.status_resolver import load_pool_snapshot
from poolside.services.week_lifecycle import get_pool

logger = logging.getLogger(__name__)

WINNER_PLACES = 3


@dataclass
class CompletionCheck:
    id: str
    label: str
    passed: bool
    description: str = ""
    issues: list[str] = field(default_factory=list)


async def _final_week(db: AsyncSession, pool_id: int) -> WeekEventRecord | None:
    result = await db.execute(
        select(WeekEventRecord)
        .where(WeekEventRecord.pool_id == pool_id, WeekEventRecord.is_final_week == True)  # noqa: E712
        .order_by(WeekEventRecord.week_number.desc())
    )
    return result.scalars().first()


async def has_final_week(db: AsyncSession, pool_id: int) -> bool:
    return await _final_week(db, pool_id) is not None


async def validate_season_completion(db: AsyncSession, pool_id: int) -> list[CompletionCheck]:
    """Named pass/fail checklist. Every check is evaluated so all problems show at once."""
    pool = await get_pool(db, pool_id)
    final = await _final_week(db, pool_id)
    checks = []

    issues = []
    if final is None:
        issues.append("No final week has been recorded")
    else:
        if final.is_draft:
            issues.append(f"Week {final.week_number} is still a draft")
        if final.winner is None:
            issues.append("Winner is not set")
        if final.runner_up is None:
            issues.append("Runner-up is not set")
    checks.append(CompletionCheck(
        "final_week", "Final week submitted", not issues,
        "The finale week is submitted with a winner and runner-up", issues,
    ))

    snapshot = await load_pool_snapshot(db, pool_id)
    contestant_ids = {c.id for c in snapshot.contestants}
    issues = []
    if final is not None:
        for name in ("winner", "runner_up", "americas_favorite"):
            cid = getattr(final, name)
            if cid is not None and cid not in contestant_ids:
                issues.append(f"{name} refers to unknown contestant {cid}")
        if final.winner is not None and final.winner == final.runner_up:
            issues.append("Winner and runner-up are the same contestant")
    else:
        issues.append("Final placements need a final week")
    checks.append(CompletionCheck(
        "final_placements", "Final placements set", not issues,
        "Winner and runner-up resolve to two different contestants", issues,
    ))

    result = await db.execute(
        select(BonusQuestion).where(BonusQuestion.pool_id == pool_id, BonusQuestion.is_active == True)  # noqa: E712
    )
    unanswered = [q for q in result.scalars().all() if q.correct_answer is None]
    checks.append(CompletionCheck(
        "bonus_questions", "Bonus questions answered", not unanswered,
        "Every active bonus question has a revealed answer",
        [f"No answer for: {q.question_text}" for q in unanswered],
    ))

    result = await db.execute(select(PoolEntry).where(PoolEntry.pool_id == pool_id))
    issues = []
    for entry in result.scalars().all():
        unknown = [cid for cid in (entry.picks or []) if cid not in contestant_ids]
        if unknown:
            issues.append(f"{entry.team_name} picked unknown contestants {unknown}")
        if len(entry.picks or []) > pool.picks_per_team:
            issues.append(f"{entry.team_name} has more than {pool.picks_per_team} picks")
    checks.append(CompletionCheck(
        "standings", "Standings computable", not issues,
        "Every team's picks resolve to contestants in this pool", issues,
    ))

    checks.append(CompletionCheck(
        "season_open", "Season not already completed", not pool.season_complete,
        "A season can only be completed once",
        ["Season is already complete"] if pool.season_complete else [],
    ))
    return checks


async def complete_season(db: AsyncSession, pool_id: int) -> list[PoolWinner]:
    """
    Complete the season. One-way: raises SeasonLockedError if already done and
    IncompleteSeasonError (with the failing checks) if the checklist is not met.
    """
    pool = await get_pool(db, pool_id)
    if pool.season_complete:
        raise SeasonLockedError(pool_id)

    checks = await validate_season_completion(db, pool_id)
    failing = [c for c in checks if not c.passed]
    if failing:
        raise IncompleteSeasonError(failing)

    final = await _final_week(db, pool_id)
    snapshot = await load_pool_snapshot(db, pool_id)
    for contestant in snapshot.contestants:
        if contestant.id == final.winner:
            contestant.final_placement = 1
        elif contestant.id == final.runner_up:
            contestant.final_placement = 2
        contestant.americas_favorite = contestant.id == final.americas_favorite

    standings = await get_standings(db, pool_id)
    winners = []
    for standing in standings[:WINNER_PLACES]:
        winner = PoolWinner(
            pool_id=pool_id,
            entry_id=standing.entry_id,
            place=standing.rank,
            total_points=standing.total_points,
        )
        db.add(winner)
        winners.append(winner)

    pool.season_complete = True
    pool.draft_locked = True
    pool.season_completed_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("Season complete for pool %s; %d winners recorded", pool_id, len(winners))
    return winners
