from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from poolside.core.database import get_db
from poolside.core.errors import NotFoundError
from poolside.models.models import WeekEventRecord
from poolside.schemas.weeks import (
    WeekPayload, WeekResponse, WeekStateResponse, SpecialEventResponse,
    CycleStateResponse, StepIssueResponse,
)
from poolside.api.deps import require_admin
from poolside.services.ceremony import WeekCeremony, CeremonyState
from poolside.services.week_lifecycle import (
    SpecialEventInput, get_week_event_record, get_week_special_events, get_week_state,
    save_draft, submit_week, mark_week_complete, reopen_week, clear_week, get_pool,
)

router = APIRouter(prefix="/api/pools/{pool_id}/weeks", tags=["Weeks"])


def _special_inputs(body: WeekPayload) -> list[SpecialEventInput] | None:
    if body.special_events is None:
        return None
    return [
        SpecialEventInput(e.contestant_id, e.event_type, e.points, e.description)
        for e in body.special_events
    ]


async def _week_response(db: AsyncSession, record: WeekEventRecord) -> WeekResponse:
    specials = await get_week_special_events(db, record.pool_id, record.week_number)
    response = WeekResponse.model_validate(record)
    response.special_events = [SpecialEventResponse.model_validate(s) for s in specials]
    return response


def _state_response(state: CeremonyState) -> WeekStateResponse:
    return WeekStateResponse(
        week_number=state.week_number,
        is_final_week=state.is_final_week,
        final_step=state.final_step.value if state.final_step else None,
        cycles=[
            CycleStateResponse(
                cycle=c.cycle,
                current_step=c.current_step.value,
                steps=[s.value for s in c.steps],
                completed_steps=[s.value for s in c.completed_steps],
                candidates=c.candidates,
            )
            for c in state.cycles
        ],
        issues=[StepIssueResponse(**i.to_dict()) for i in state.issues],
        can_submit=state.can_submit,
    )


@router.get("/{week}", response_model=WeekResponse)
async def read_week(
    pool_id: int,
    week: int,
    db: AsyncSession = Depends(get_db),
):
    await get_pool(db, pool_id)
    record = await get_week_event_record(db, pool_id, week)
    if record is None:
        raise NotFoundError(f"Week {week} has not been recorded")
    return await _week_response(db, record)


@router.get("/{week}/flat")
async def read_week_flat(
    pool_id: int,
    week: int,
    db: AsyncSession = Depends(get_db),
):
    """The week in the legacy flat field layout (second_*, third_* prefixes)."""
    pool = await get_pool(db, pool_id)
    record = await get_week_event_record(db, pool_id, week)
    if record is None:
        raise NotFoundError(f"Week {week} has not been recorded")
    flat = WeekCeremony.from_record(record, max_nominees=pool.max_nominees).to_flat()
    flat.update(is_draft=record.is_draft, is_complete=record.is_complete, version=record.version)
    return flat


@router.get("/{week}/state", response_model=WeekStateResponse)
async def read_week_state(
    pool_id: int,
    week: int,
    db: AsyncSession = Depends(get_db),
):
    _, state = await get_week_state(db, pool_id, week)
    return _state_response(state)


@router.put("/{week}", response_model=WeekResponse)
async def save_week_draft(
    pool_id: int,
    week: int,
    body: WeekPayload,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    record = await save_draft(
        db, pool_id, body.to_ceremony(week),
        special_events=_special_inputs(body),
        expected_version=body.expected_version,
    )
    return await _week_response(db, record)


@router.post("/{week}/submit", response_model=WeekResponse)
async def submit_week_events(
    pool_id: int,
    week: int,
    body: WeekPayload,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    record = await submit_week(
        db, pool_id, body.to_ceremony(week),
        special_events=_special_inputs(body),
        expected_version=body.expected_version,
    )
    return await _week_response(db, record)


@router.post("/{week}/complete", response_model=WeekResponse)
async def complete_week(
    pool_id: int,
    week: int,
    complete: bool = Query(True, description="False reopens the week"),
    expected_version: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    if complete:
        record = await mark_week_complete(db, pool_id, week, expected_version=expected_version)
    else:
        record = await reopen_week(db, pool_id, week, expected_version=expected_version)
    return await _week_response(db, record)


@router.delete("/{week}", status_code=204)
async def clear_week_events(
    pool_id: int,
    week: int,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(require_admin),
):
    await clear_week(db, pool_id, week)
    return Response(status_code=204)
