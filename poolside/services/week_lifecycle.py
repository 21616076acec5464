"""
Draft / submission lifecycle for week records.

A week is autosaved as a draft (is_draft=True) while the administrator works
through the ceremony, submitted once every step is filled in, and may be
marked complete or reopened at any time. Nothing here is terminal except
season completion (see season.py), which locks every week of the pool.

Every write checks the optimistic version token: callers pass the version they
loaded, and a write against a record that has moved on raises StaleWeekError.
Submit validates everything before touching a row; the request session's
transaction makes the week row, its special events and the contestant flags
land together or not at all.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete

from poolside.core.errors import (
    NotFoundError, JuryPhaseConflict, StaleWeekError, SeasonLockedError,
)
from poolside.models.models import Pool, WeekEventRecord, SpecialEvent
from poolside.services import scoring_rules as sr
from poolside.services.ceremony import (
    WeekCeremony, StepIssue, CeremonyState, ensure_constraints, validate_for_submit, describe_state,
)
from poolside.services.status_resolver import (
    PoolSnapshot, load_pool_snapshot, ingest_status_events, roster_for_week,
    validate_special_events, sync_contestant_flags,
)

logger = logging.getLogger(__name__)


@dataclass
class SpecialEventInput:
    contestant_id: int
    event_type: str  # subcategory, rule id, or "custom"
    points: int | None = None  # required for custom events, ignored otherwise
    description: str | None = None


async def get_pool(db: AsyncSession, pool_id: int) -> Pool:
    result = await db.execute(select(Pool).where(Pool.id == pool_id))
    pool = result.scalar_one_or_none()
    if pool is None:
        raise NotFoundError(f"Pool {pool_id} not found")
    return pool


async def get_week_event_record(db: AsyncSession, pool_id: int, week: int) -> WeekEventRecord | None:
    result = await db.execute(
        select(WeekEventRecord).where(WeekEventRecord.pool_id == pool_id, WeekEventRecord.week_number == week)
    )
    return result.scalar_one_or_none()


async def get_week_special_events(db: AsyncSession, pool_id: int, week: int) -> list[SpecialEvent]:
    result = await db.execute(
        select(SpecialEvent)
        .where(SpecialEvent.pool_id == pool_id, SpecialEvent.week_number == week)
        .order_by(SpecialEvent.id)
    )
    return list(result.scalars().all())


def _ensure_unlocked(pool: Pool) -> None:
    if pool.season_complete or pool.draft_locked:
        raise SeasonLockedError(pool.id)


def _check_version(week: int, record: WeekEventRecord | None, expected_version: int | None) -> None:
    if expected_version is None:
        return
    actual = record.version if record is not None else 0
    if actual != expected_version:
        raise StaleWeekError(week, expected_version, actual)


async def _check_jury_phase(db: AsyncSession, pool_id: int, ceremony: WeekCeremony) -> None:
    if not ceremony.is_jury_phase:
        return
    result = await db.execute(
        select(WeekEventRecord.week_number).where(
            WeekEventRecord.pool_id == pool_id,
            WeekEventRecord.is_jury_phase == True,  # noqa: E712
            WeekEventRecord.week_number != ceremony.week_number,
        )
    )
    existing = result.scalars().first()
    if existing is not None:
        raise JuryPhaseConflict(ceremony.week_number, existing)


async def _prepare_write(
    db: AsyncSession, pool_id: int, ceremony: WeekCeremony, expected_version: int | None
) -> tuple[Pool, WeekEventRecord | None]:
    """Checks shared by every week write. Raises before anything is modified."""
    pool = await get_pool(db, pool_id)
    _ensure_unlocked(pool)
    record = await get_week_event_record(db, pool_id, ceremony.week_number)
    _check_version(ceremony.week_number, record, expected_version)
    ceremony.max_nominees = pool.max_nominees
    ensure_constraints(ceremony)
    await _check_jury_phase(db, pool_id, ceremony)
    return pool, record


def _write_record(db: AsyncSession, pool_id: int, record: WeekEventRecord | None, ceremony: WeekCeremony) -> WeekEventRecord:
    if record is None:
        record = WeekEventRecord(pool_id=pool_id, week_number=ceremony.week_number, version=1)
        db.add(record)
    else:
        record.version = (record.version or 0) + 1
    ceremony.apply_to(record)
    return record


def _build_special_events(
    pool: Pool, week: int, inputs: list[SpecialEventInput], snapshot: PoolSnapshot
) -> list[SpecialEvent]:
    """Turn inputs into (unsaved) SpecialEvent rows with their points resolved."""
    enabled = set(pool.enabled_special_events or [])
    issues = []
    events = []
    for item in inputs:
        event_type = str(item.event_type)
        if event_type == sr.CUSTOM_EVENT:
            if item.points is None:
                issues.append(StepIssue("special_events", "points", "Custom events need a point value"))
                continue
            points = item.points
        else:
            subcategory = snapshot.table.resolve_identifier(event_type)
            if subcategory is None or snapshot.table.rule_for_subcategory(subcategory) is None:
                issues.append(StepIssue("special_events", "event_type", f"Unknown special event type {event_type!r}"))
                continue
            if enabled and subcategory not in enabled:
                issues.append(StepIssue("special_events", "event_type", f"{subcategory} is not enabled for this pool"))
                continue
            points = snapshot.table.points_for_identifier(event_type)
        events.append(SpecialEvent(
            pool_id=pool.id,
            contestant_id=item.contestant_id,
            week_number=week,
            event_type=event_type,
            points_awarded=points,
            description=item.description,
        ))

    validate_special_events(
        events, week, snapshot.contestants, snapshot.status_events(exclude_special_week=week), snapshot.table,
        issues=issues,
    )
    return events


async def _replace_special_events(db: AsyncSession, pool_id: int, week: int, events: list[SpecialEvent]) -> None:
    await db.execute(delete(SpecialEvent).where(SpecialEvent.pool_id == pool_id, SpecialEvent.week_number == week))
    for event in events:
        db.add(event)


async def _resync_contestants(db: AsyncSession, pool_id: int, previously_tracked: set[int]) -> None:
    await db.flush()
    snapshot = await load_pool_snapshot(db, pool_id)
    sync_contestant_flags(snapshot.contestants, snapshot.status_events(), previously_tracked)
    await db.flush()


def _tracked_ids(snapshot: PoolSnapshot) -> set[int]:
    return {e.contestant_id for e in snapshot.status_events()}


async def save_draft(
    db: AsyncSession,
    pool_id: int,
    ceremony: WeekCeremony,
    special_events: list[SpecialEventInput] | None = None,
    expected_version: int | None = None,
) -> WeekEventRecord:
    """
    Autosave a week. Only hard constraints are enforced; missing steps are fine.
    Saving a submitted week turns it back into a draft but keeps is_complete.
    """
    pool, record = await _prepare_write(db, pool_id, ceremony, expected_version)
    snapshot = await load_pool_snapshot(db, pool_id)
    new_specials = None
    if special_events is not None:
        new_specials = _build_special_events(pool, ceremony.week_number, special_events, snapshot)

    record = _write_record(db, pool_id, record, ceremony)
    record.is_draft = True
    if record.is_complete is None:
        record.is_complete = False
    if new_specials is not None:
        await _replace_special_events(db, pool_id, ceremony.week_number, new_specials)
    await _resync_contestants(db, pool_id, _tracked_ids(snapshot))
    logger.debug("Saved draft for pool %s week %s (version %s)", pool_id, ceremony.week_number, record.version)
    return record


async def submit_week(
    db: AsyncSession,
    pool_id: int,
    ceremony: WeekCeremony,
    special_events: list[SpecialEventInput] | None = None,
    expected_version: int | None = None,
) -> WeekEventRecord:
    """
    Validate and submit a week.

    Raises IncompleteWeekError naming every unmet step, or a ConstraintViolation;
    in both cases nothing has been written. On success the week row, its
    special events (replaced wholesale) and contestant active flags are updated
    in the current transaction.
    """
    pool, record = await _prepare_write(db, pool_id, ceremony, expected_version)
    snapshot = await load_pool_snapshot(db, pool_id)
    week = ceremony.week_number

    if special_events is None:
        # Keep whatever was autosaved with the draft
        kept = [s for s in snapshot.special_events if s.week_number == week]
        special_events = [
            SpecialEventInput(s.contestant_id, s.event_type, s.points_awarded, s.description) for s in kept
        ]
    new_specials = _build_special_events(pool, week, special_events, snapshot)

    other_specials = [s for s in snapshot.special_events if s.week_number != week]
    events = ingest_status_events(snapshot.records, other_specials + new_specials, snapshot.table)
    roster = roster_for_week(snapshot.contestants, week, events)
    validate_for_submit(ceremony, roster)

    record = _write_record(db, pool_id, record, ceremony)
    record.is_draft = False
    record.is_complete = True
    await _replace_special_events(db, pool_id, week, new_specials)
    await _resync_contestants(db, pool_id, _tracked_ids(snapshot))
    logger.info("Submitted pool %s week %s (version %s)", pool_id, week, record.version)
    return record


async def mark_week_complete(
    db: AsyncSession, pool_id: int, week: int, complete: bool = True, expected_version: int | None = None
) -> WeekEventRecord:
    """Toggle is_complete. Not terminal: a complete week stays editable."""
    pool = await get_pool(db, pool_id)
    _ensure_unlocked(pool)
    record = await get_week_event_record(db, pool_id, week)
    if record is None:
        raise NotFoundError(f"Week {week} has not been recorded")
    _check_version(week, record, expected_version)
    record.is_complete = complete
    record.version = (record.version or 0) + 1
    await db.flush()
    return record


async def reopen_week(db: AsyncSession, pool_id: int, week: int, expected_version: int | None = None) -> WeekEventRecord:
    return await mark_week_complete(db, pool_id, week, complete=False, expected_version=expected_version)


async def clear_week(db: AsyncSession, pool_id: int, week: int) -> None:
    """Wipe a week: its record and every special event tied to it."""
    pool = await get_pool(db, pool_id)
    _ensure_unlocked(pool)
    snapshot = await load_pool_snapshot(db, pool_id)
    record = await get_week_event_record(db, pool_id, week)
    has_specials = any(s.week_number == week for s in snapshot.special_events)
    if record is None and not has_specials:
        raise NotFoundError(f"Week {week} has not been recorded")

    await db.execute(delete(SpecialEvent).where(SpecialEvent.pool_id == pool_id, SpecialEvent.week_number == week))
    if record is not None:
        await db.delete(record)
    await _resync_contestants(db, pool_id, _tracked_ids(snapshot))
    logger.info("Cleared pool %s week %s", pool_id, week)


async def refresh_special_event_points(db: AsyncSession, pool_id: int) -> int:
    """
    Re-price stored rule-backed special events from the current rules.
    Custom events keep their value. Returns how many rows changed.
    """
    pool = await get_pool(db, pool_id)
    _ensure_unlocked(pool)
    snapshot = await load_pool_snapshot(db, pool_id)
    changed = 0
    for special in snapshot.special_events:
        if special.event_type == sr.CUSTOM_EVENT:
            continue
        points = snapshot.table.points_for_identifier(special.event_type)
        if special.points_awarded != points:
            special.points_awarded = points
            changed += 1
    await db.flush()
    if changed:
        logger.info("Re-priced %d special events in pool %s", changed, pool_id)
    return changed


async def get_week_state(db: AsyncSession, pool_id: int, week: int) -> tuple[WeekCeremony, CeremonyState]:
    """Current ceremony (empty if unrecorded) plus its advisory state for the editor."""
    pool = await get_pool(db, pool_id)
    record = await get_week_event_record(db, pool_id, week)
    if record is not None:
        ceremony = WeekCeremony.from_record(record, max_nominees=pool.max_nominees)
    else:
        ceremony = WeekCeremony(week_number=week, max_nominees=pool.max_nominees)
    snapshot = await load_pool_snapshot(db, pool_id)
    roster = roster_for_week(snapshot.contestants, week, snapshot.status_events())
    return ceremony, describe_state(ceremony, roster)
