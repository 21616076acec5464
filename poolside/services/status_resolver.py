"""
Roster & status resolver.

Whether a contestant is "in the house" depends on the week being asked about:
someone evicted in week 3 who came back in week 6 is active in weeks 1-2,
inactive in 3-5 and active again from 6. This module replays the event log to
answer that for any week.

Structured evictions and status-changing special events are first normalized
into StatusEvent objects so the replay has a single shape to walk. Special
event identifiers may be a literal subcategory or a reference to a scoring
rule; the rule table resolves both.
"""

import enum
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from poolside.core.errors import NotFoundError, ValidationError
from poolside.models.models import Contestant, SpecialEvent, WeekEventRecord
from poolside.services import scoring_rules
from poolside.services.ceremony import WeekCeremony, StepIssue
from poolside.services.scoring_rules import ScoringRuleTable, load_rule_table

logger = logging.getLogger(__name__)


class StatusKind(str, enum.Enum):
    EVICTION = "eviction"
    RETURN = "return"
    QUIT = "quit"


QUIT_SUBCATEGORIES = {scoring_rules.SELF_EVICTED, scoring_rules.REMOVED_PRODUCTION}
RETURN_SUBCATEGORIES = {scoring_rules.CAME_BACK_EVICTED}

# Within a week structured evictions apply before special events
_PHASE_STRUCTURED = 0
_PHASE_SPECIAL = 1


@dataclass(frozen=True)
class StatusEvent:
    kind: StatusKind
    contestant_id: int
    week_number: int
    source: str  # "cycle-2", "special:self_evicted", ...
    phase: int = _PHASE_STRUCTURED
    order: int = 0

    @property
    def sort_key(self):
        return (self.week_number, self.phase, self.order)


@dataclass(frozen=True)
class ContestantWeekStatus:
    contestant_id: int
    week_number: int
    active: bool
    reason: str  # active | evicted | returned | quit | inactive


def classify_special_event(event_type, table: ScoringRuleTable) -> StatusKind | None:
    subcategory = table.resolve_identifier(event_type)
    if subcategory in QUIT_SUBCATEGORIES:
        return StatusKind.QUIT
    if subcategory in RETURN_SUBCATEGORIES:
        return StatusKind.RETURN
    return None


def ingest_status_events(
    records: list[WeekEventRecord],
    special_events: list[SpecialEvent],
    table: ScoringRuleTable,
) -> list[StatusEvent]:
    """Normalize evictions and status-changing special events into one ordered list."""
    events = []
    for record in records:
        ceremony = WeekCeremony.from_record(record)
        for index, cycle in enumerate(ceremony.active_cycles()):
            if cycle.evicted_contestant is not None:
                events.append(StatusEvent(
                    StatusKind.EVICTION, cycle.evicted_contestant, record.week_number,
                    source=f"cycle-{index + 1}", phase=_PHASE_STRUCTURED, order=index,
                ))

    for position, special in enumerate(sorted(special_events, key=lambda e: (e.week_number, e.id or 0))):
        kind = classify_special_event(special.event_type, table)
        if kind is None:
            continue
        events.append(StatusEvent(
            kind, special.contestant_id, special.week_number,
            source=f"special:{table.resolve_identifier(special.event_type)}",
            phase=_PHASE_SPECIAL, order=position,
        ))

    events.sort(key=lambda e: e.sort_key)
    return events


def _apply(event: StatusEvent) -> tuple[bool, str]:
    if event.kind == StatusKind.RETURN:
        return True, "returned"
    if event.kind == StatusKind.QUIT:
        return False, "quit"
    return False, "evicted"


def _starting_status(contestant: Contestant, events: list[StatusEvent]) -> tuple[bool, str]:
    # Submitting a week writes its evictions back to is_active, so a contestant
    # whose inactivity is explained by the log is replayed from active
    if any(e.contestant_id == contestant.id for e in events):
        return True, "active"
    if contestant.is_active is False:
        return False, "inactive"
    return True, "active"


def status_as_of_week(contestant: Contestant, week: int, events: list[StatusEvent]) -> ContestantWeekStatus:
    """Status at the end of ``week``: every event up to and including that week is applied."""
    active, reason = _starting_status(contestant, events)
    for event in events:
        if event.week_number > week:
            break
        if event.contestant_id != contestant.id:
            continue
        active, reason = _apply(event)
    return ContestantWeekStatus(contestant.id, week, active, reason)


def entering_week_status(contestant: Contestant, week: int, events: list[StatusEvent]) -> bool:
    """
    Whether the contestant takes part in ``week``'s ceremonies.

    Earlier weeks are fully applied; from the week itself only returns count
    (a returnee plays that week, while someone evicted or quitting that week
    was still in the house for it).
    """
    active, _ = _starting_status(contestant, events)
    for event in events:
        if event.week_number > week:
            break
        if event.contestant_id != contestant.id:
            continue
        if event.week_number < week or event.kind == StatusKind.RETURN:
            active, _ = _apply(event)
    return active


def roster_for_week(contestants: list[Contestant], week: int, events: list[StatusEvent]) -> list[int]:
    """Ids of contestants eligible for ``week``'s ceremonies, in display order."""
    ordered = sorted(contestants, key=lambda c: (c.sort_order or 0, c.id))
    return [c.id for c in ordered if entering_week_status(c, week, events)]


def active_contestants_for_week(contestants: list[Contestant], week: int, events: list[StatusEvent]) -> list[Contestant]:
    """Contestants still active at the end of ``week``."""
    ordered = sorted(contestants, key=lambda c: (c.sort_order or 0, c.id))
    return [c for c in ordered if status_as_of_week(c, week, events).active]


def sync_contestant_flags(
    contestants: list[Contestant],
    events: list[StatusEvent],
    previously_tracked: set[int] | None = None,
) -> list[int]:
    """
    Write the replayed end-of-log status back to Contestant.is_active.

    Only contestants the log knows about are touched, plus any listed in
    ``previously_tracked`` (contestants whose history was just removed, who
    fall back to active). Returns the ids that changed.
    """
    tracked = {e.contestant_id for e in events}
    reset = set(previously_tracked or ()) - tracked
    last_week = max((e.week_number for e in events), default=0)
    changed = []
    for contestant in contestants:
        if contestant.id in tracked:
            active = status_as_of_week(contestant, last_week, events).active
        elif contestant.id in reset:
            active = True
        else:
            continue
        if contestant.is_active != active:
            contestant.is_active = active
            changed.append(contestant.id)
    if changed:
        logger.info("Contestant status changed for %s", changed)
    return changed


def check_special_events(
    specials: list,
    week: int,
    contestants: list[Contestant],
    prior_events: list[StatusEvent],
    table: ScoringRuleTable,
) -> list[StepIssue]:
    """
    Sanity checks for a week's special events before they are written.

    ``specials`` are objects with contestant_id and event_type; ``prior_events``
    is the status log without this week's special events.
    """
    by_id = {c.id: c for c in contestants}
    issues = []
    seen = set()
    returning = set()
    for special in specials:
        key = (special.contestant_id, str(special.event_type))
        if key in seen:
            issues.append(StepIssue(
                "special_events", "event_type",
                f"Duplicate {special.event_type} event for contestant {special.contestant_id}",
            ))
            continue
        seen.add(key)

        contestant = by_id.get(special.contestant_id)
        if contestant is None:
            issues.append(StepIssue(
                "special_events", "contestant_id",
                f"Contestant {special.contestant_id} is not in this pool",
            ))
            continue

        kind = classify_special_event(special.event_type, table)
        if kind is None:
            continue
        in_house = entering_week_status(contestant, week, prior_events)
        if kind == StatusKind.RETURN:
            if in_house:
                issues.append(StepIssue(
                    "special_events", "event_type",
                    f"{contestant.name} cannot return; they are still in the house in week {week}",
                ))
            returning.add(contestant.id)
        elif kind == StatusKind.QUIT and not in_house and contestant.id not in returning:
            issues.append(StepIssue(
                "special_events", "event_type",
                f"{contestant.name} cannot leave; they are not in the house in week {week}",
            ))
    return issues


def validate_special_events(specials, week, contestants, prior_events, table, issues=None) -> None:
    """Raise ValidationError listing ``issues`` plus every status problem in ``specials``."""
    issues = list(issues or []) + check_special_events(specials, week, contestants, prior_events, table)
    if issues:
        raise ValidationError(
            f"Week {week} special events are invalid: " + "; ".join(i.message for i in issues),
            issues,
        )


# --- Loading ---

@dataclass
class PoolSnapshot:
    """Everything the resolver and the points engine read, loaded once per request."""
    pool_id: int
    contestants: list[Contestant]
    records: list[WeekEventRecord]
    special_events: list[SpecialEvent]
    table: ScoringRuleTable

    def status_events(self, exclude_special_week: int | None = None) -> list[StatusEvent]:
        specials = self.special_events
        if exclude_special_week is not None:
            specials = [s for s in specials if s.week_number != exclude_special_week]
        return ingest_status_events(self.records, specials, self.table)

    def contestant(self, contestant_id: int) -> Contestant:
        for contestant in self.contestants:
            if contestant.id == contestant_id:
                return contestant
        raise NotFoundError(f"Contestant {contestant_id} not found in pool {self.pool_id}")


async def load_pool_snapshot(db: AsyncSession, pool_id: int) -> PoolSnapshot:
    contestants = await db.execute(
        select(Contestant).where(Contestant.pool_id == pool_id).order_by(Contestant.sort_order, Contestant.id)
    )
    records = await db.execute(
        select(WeekEventRecord).where(WeekEventRecord.pool_id == pool_id).order_by(WeekEventRecord.week_number)
    )
    specials = await db.execute(
        select(SpecialEvent).where(SpecialEvent.pool_id == pool_id).order_by(SpecialEvent.week_number, SpecialEvent.id)
    )
    return PoolSnapshot(
        pool_id=pool_id,
        contestants=list(contestants.scalars().all()),
        records=list(records.scalars().all()),
        special_events=list(specials.scalars().all()),
        table=await load_rule_table(db, pool_id),
    )


async def get_status_as_of_week(db: AsyncSession, pool_id: int, contestant_id: int, week: int) -> ContestantWeekStatus:
    snapshot = await load_pool_snapshot(db, pool_id)
    contestant = snapshot.contestant(contestant_id)
    return status_as_of_week(contestant, week, snapshot.status_events())
