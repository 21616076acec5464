"""
Points engine.

Reads scoring rules from the DB, applies them to the recorded weeks and special
events, and calculates every contestant's points from scratch. Nothing is
cached or patched incrementally: changing a rule, a week or a special event and
asking again gives the new answer. compute_points() is a pure function, so the
async helpers here only load data and hand it over.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from poolside.models.models import (
    Contestant, WeekEventRecord, SpecialEvent, PoolEntry, BonusQuestion,
)
from poolside.services import scoring_rules as sr
from poolside.services.ceremony import WeekCeremony
from poolside.services.scoring_rules import ScoringRuleTable
from poolside.services.status_resolver import (
    ingest_status_events, status_as_of_week, load_pool_snapshot,
)

logger = logging.getLogger(__name__)

BLOCK_SURVIVAL_MILESTONES = ((2, sr.BLOCK_SURVIVAL_2), (4, sr.BLOCK_SURVIVAL_4))
FLOATER_WEEKS = 4


@dataclass
class ContestantPoints:
    contestant_id: int
    weekly: dict[int, int] = field(default_factory=dict)
    cumulative: dict[int, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        if not self.cumulative:
            return 0
        return self.cumulative[max(self.cumulative)]


class _Ledger:
    def __init__(self):
        self.buckets: dict[int, dict[int, int]] = defaultdict(lambda: defaultdict(int))

    def add(self, contestant_id: int | None, week: int, points: int | None) -> None:
        if contestant_id is None or points is None:
            return
        self.buckets[contestant_id][week] += points


def _score_cycles(ledger: _Ledger, ceremony: WeekCeremony, table: ScoringRuleTable) -> None:
    week = ceremony.week_number
    for index, cycle in enumerate(ceremony.active_cycles()):
        if cycle.hoh_winner is not None:
            ledger.add(cycle.hoh_winner, week, table.get_points(sr.COMPETITION, sr.HOH_WINNER))
        if cycle.pov_winner is not None:
            ledger.add(cycle.pov_winner, week, table.get_points(sr.COMPETITION, sr.POV_WINNER))
        if cycle.ai_arena_winner is not None:
            ledger.add(cycle.ai_arena_winner, week, table.get_points(sr.WEEKLY, sr.BB_ARENA_WINNER))
        if cycle.evicted_contestant is not None:
            ledger.add(cycle.evicted_contestant, week, table.get_points(sr.WEEKLY, sr.EVICTED))

        # Roles below only score when the pool defines a rule for them
        nominee_points = table.optional_points(sr.WEEKLY, sr.NOMINEE)
        for nominee in cycle.filled_nominees:
            ledger.add(nominee, week, nominee_points)
        if cycle.pov_used and cycle.replacement_nominee is not None:
            ledger.add(cycle.replacement_nominee, week, table.optional_points(sr.WEEKLY, sr.REPLACEMENT_NOMINEE))
        if cycle.veto_target is not None:
            ledger.add(cycle.veto_target, week, table.optional_points(sr.WEEKLY, sr.POV_USED_ON))
        if cycle.eviction_recorded:
            survived = table.optional_points(sr.WEEKLY, sr.SURVIVED_NOMINATION)
            for nominee in cycle.post_veto_nominees():
                if nominee != cycle.evicted_contestant:
                    ledger.add(nominee, week, survived)


def _score_finale(ledger: _Ledger, ceremony: WeekCeremony, table: ScoringRuleTable) -> None:
    week = ceremony.week_number
    if ceremony.winner is not None:
        ledger.add(ceremony.winner, week, table.get_points(sr.FINAL_PLACEMENT, sr.WINNER))
    if ceremony.runner_up is not None:
        ledger.add(ceremony.runner_up, week, table.get_points(sr.FINAL_PLACEMENT, sr.RUNNER_UP))
    if ceremony.americas_favorite is not None:
        ledger.add(ceremony.americas_favorite, week, table.get_points(sr.FINAL_PLACEMENT, sr.AMERICAS_FAVORITE))


def _score_block_survival(ledger: _Ledger, ceremonies: list[WeekCeremony], table: ScoringRuleTable) -> None:
    """Milestone bonus for surviving an eviction vote while on the block (2 and 4 times)."""
    milestones = [(count, table.optional_points(sr.SPECIAL_ACHIEVEMENTS, sub)) for count, sub in BLOCK_SURVIVAL_MILESTONES]
    milestones = [(count, points) for count, points in milestones if points is not None]
    if not milestones:
        return

    survivals: dict[int, int] = defaultdict(int)
    for ceremony in ceremonies:
        for cycle in ceremony.active_cycles():
            if cycle.evicted_contestant is None:
                continue
            for nominee in cycle.final_nominee_set():
                if nominee == cycle.evicted_contestant:
                    continue
                survivals[nominee] += 1
                for count, points in milestones:
                    if survivals[nominee] == count:
                        ledger.add(nominee, ceremony.week_number, points)


def _score_status_awards(ledger, ceremonies, contestants, status_events, table) -> None:
    """Survival, jury and floater awards; these need to know who was still in the house."""
    survival = table.optional_points(sr.WEEKLY, sr.SURVIVAL)
    jury = table.optional_points(sr.JURY, sr.JURY_MEMBER)
    floater = table.optional_points(sr.SPECIAL_ACHIEVEMENTS, sr.FLOATER)
    if survival is None and jury is None and floater is None:
        return

    streaks: dict[int, int] = defaultdict(int)
    floated: set[int] = set()
    for ceremony in ceremonies:
        if ceremony.is_final_week:
            continue
        week = ceremony.week_number
        winners = set()
        for cycle in ceremony.active_cycles():
            winners.update(c for c in (cycle.hoh_winner, cycle.pov_winner, cycle.ai_arena_winner) if c is not None)

        for contestant in contestants:
            if not status_as_of_week(contestant, week, status_events).active:
                streaks[contestant.id] = 0
                continue
            ledger.add(contestant.id, week, survival)
            if ceremony.is_jury_phase:
                ledger.add(contestant.id, week, jury)
            if floater is None or contestant.id in floated:
                continue
            streaks[contestant.id] = 0 if contestant.id in winners else streaks[contestant.id] + 1
            if streaks[contestant.id] >= FLOATER_WEEKS:
                floated.add(contestant.id)
                ledger.add(contestant.id, week, floater)


def compute_points(
    records: list[WeekEventRecord],
    special_events: list[SpecialEvent],
    table: ScoringRuleTable,
    contestants: list[Contestant] | None = None,
) -> dict[int, ContestantPoints]:
    """
    Calculate weekly and cumulative points for every contestant.

    Args:
        records: The pool's week records (drafts included; unset fields score nothing)
        special_events: The pool's special events; their stored points are added as-is
        table: Scoring rules for the pool
        contestants: The pool's contestants. Needed for awards that depend on who
            was in the house (survival, jury, floater); every contestant listed gets
            an entry even with no points.

    Returns:
        {contestant_id: ContestantPoints}, with cumulative running totals over
        every week that has a record or a special event.
    """
    ledger = _Ledger()
    ceremonies = [WeekCeremony.from_record(r) for r in sorted(records, key=lambda r: r.week_number)]

    for ceremony in ceremonies:
        if ceremony.is_final_week:
            _score_finale(ledger, ceremony, table)
        else:
            _score_cycles(ledger, ceremony, table)

    _score_block_survival(ledger, ceremonies, table)
    if contestants:
        status_events = ingest_status_events(records, special_events, table)
        _score_status_awards(ledger, ceremonies, contestants, status_events, table)

    for special in sorted(special_events, key=lambda e: (e.week_number, e.id or 0)):
        ledger.add(special.contestant_id, special.week_number, special.points_awarded or 0)

    weeks = sorted({c.week_number for c in ceremonies} | {s.week_number for s in special_events})
    contestant_ids = set(ledger.buckets)
    if contestants:
        contestant_ids.update(c.id for c in contestants)

    results = {}
    for contestant_id in sorted(contestant_ids):
        bucket = ledger.buckets.get(contestant_id, {})
        points = ContestantPoints(contestant_id)
        running = 0
        for week in weeks:
            weekly = bucket.get(week, 0)
            running += weekly
            points.weekly[week] = weekly
            points.cumulative[week] = running
        results[contestant_id] = points
    return results


# --- Team standings ---

@dataclass
class TeamStanding:
    entry_id: int
    team_name: str
    participant_name: str
    picks: list[int]
    contestant_points: int
    bonus_points: int
    rank: int = 0

    @property
    def total_points(self) -> int:
        return self.contestant_points + self.bonus_points


def _normalize(answer):
    if isinstance(answer, str):
        return answer.strip().lower()
    return answer


def bonus_answer_correct(answer, correct) -> bool:
    """
    Compare a participant's answer to the revealed one.

    A list answer (a "pick two players" question) matches regardless of order;
    a list correct_answer with a scalar answer means any of them counts.
    """
    if answer is None or correct is None:
        return False
    if isinstance(answer, list) and isinstance(correct, list):
        return sorted(map(str, map(_normalize, answer))) == sorted(map(str, map(_normalize, correct)))
    if isinstance(correct, list):
        return _normalize(answer) in [_normalize(c) for c in correct]
    return _normalize(answer) == _normalize(correct)


def score_bonus_answers(entry: PoolEntry, questions: list[BonusQuestion]) -> int:
    answers = entry.bonus_answers or {}
    total = 0
    for question in questions:
        if not question.is_active or question.correct_answer is None:
            continue
        answer = answers.get(str(question.id), answers.get(question.id))
        if bonus_answer_correct(answer, question.correct_answer):
            total += question.points_value or 0
    return total


def compute_standings(
    entries: list[PoolEntry],
    points: dict[int, ContestantPoints],
    questions: list[BonusQuestion],
) -> list[TeamStanding]:
    """Rank teams by total points (picked contestants plus bonus answers); ties go to team name."""
    standings = []
    for entry in entries:
        picks = list(entry.picks or [])
        standings.append(TeamStanding(
            entry_id=entry.id,
            team_name=entry.team_name,
            participant_name=entry.participant_name,
            picks=picks,
            contestant_points=sum(points[cid].total for cid in picks if cid in points),
            bonus_points=score_bonus_answers(entry, questions),
        ))
    standings.sort(key=lambda s: (-s.total_points, s.team_name.lower(), s.entry_id))
    for rank, standing in enumerate(standings, start=1):
        standing.rank = rank
    return standings


# --- Async helpers ---

async def get_pool_points(db: AsyncSession, pool_id: int) -> dict[int, ContestantPoints]:
    snapshot = await load_pool_snapshot(db, pool_id)
    return compute_points(snapshot.records, snapshot.special_events, snapshot.table, snapshot.contestants)


async def get_standings(db: AsyncSession, pool_id: int) -> list[TeamStanding]:
    points = await get_pool_points(db, pool_id)
    entries = await db.execute(select(PoolEntry).where(PoolEntry.pool_id == pool_id).order_by(PoolEntry.id))
    questions = await db.execute(
        select(BonusQuestion).where(BonusQuestion.pool_id == pool_id).order_by(BonusQuestion.sort_order, BonusQuestion.id)
    )
    return compute_standings(list(entries.scalars().all()), points, list(questions.scalars().all()))
