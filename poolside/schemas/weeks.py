from pydantic import BaseModel, Field, field_validator

from poolside.core.errors import ValidationError
from poolside.models.models import NO_EVICTION
from poolside.services.ceremony import WeekCeremony, EvictionCycle


class EvictionCycleSchema(BaseModel):
    hoh_winner: int | None = None
    nominees: list[int] = []
    pov_winner: int | None = None
    pov_used: bool | None = None
    pov_used_on: int | None = None
    replacement_nominee: int | None = None
    ai_arena_winner: int | None = None
    evicted: int | str | None = None

    @field_validator("evicted")
    @classmethod
    def evicted_is_contestant_or_sentinel(cls, value):
        if isinstance(value, str) and value != NO_EVICTION:
            if not value.isdigit():
                raise ValueError(f"evicted must be a contestant id or {NO_EVICTION!r}")
            return int(value)
        return value


class SpecialEventSchema(BaseModel):
    contestant_id: int
    event_type: str = Field(..., max_length=64)
    points: int | None = None
    description: str | None = None


class WeekPayload(BaseModel):
    """
    A week as sent by the editor. ``cycles`` is the native shape; when it is
    omitted the body is read in the flat form (hoh_winner, second_hoh_winner,
    third_evicted, ...) which is why unknown keys are allowed.
    """
    is_double_eviction: bool = False
    is_triple_eviction: bool = False
    is_final_week: bool = False
    is_jury_phase: bool = False
    ai_arena_enabled: bool = False
    cycles: list[EvictionCycleSchema] | None = None
    winner: int | None = None
    runner_up: int | None = None
    americas_favorite: int | None = None
    special_events: list[SpecialEventSchema] | None = None
    expected_version: int | None = None

    model_config = {"extra": "allow"}

    def to_ceremony(self, week_number: int) -> WeekCeremony:
        if self.cycles is not None:
            return WeekCeremony(
                week_number=week_number,
                cycles=[EvictionCycle.from_dict(c.model_dump()) for c in self.cycles],
                is_double_eviction=self.is_double_eviction,
                is_triple_eviction=self.is_triple_eviction,
                is_final_week=self.is_final_week,
                is_jury_phase=self.is_jury_phase,
                ai_arena_enabled=self.ai_arena_enabled,
                winner=self.winner,
                runner_up=self.runner_up,
                americas_favorite=self.americas_favorite,
            )
        try:
            return WeekCeremony.from_flat(self.model_dump(), week_number=week_number)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Malformed week body: {e}")


class SpecialEventResponse(BaseModel):
    id: int
    contestant_id: int
    week_number: int
    event_type: str
    points_awarded: int
    description: str | None

    model_config = {"from_attributes": True}


class WeekResponse(BaseModel):
    pool_id: int
    week_number: int
    is_draft: bool
    is_complete: bool
    is_double_eviction: bool
    is_triple_eviction: bool
    is_final_week: bool
    is_jury_phase: bool
    ai_arena_enabled: bool
    cycles: list[EvictionCycleSchema]
    winner: int | None
    runner_up: int | None
    americas_favorite: int | None
    version: int
    special_events: list[SpecialEventResponse] = []

    model_config = {"from_attributes": True}


class StepIssueResponse(BaseModel):
    cycle: int | None
    step: str
    field: str
    message: str

    model_config = {"from_attributes": True}


class CycleStateResponse(BaseModel):
    cycle: int
    current_step: str
    steps: list[str]
    completed_steps: list[str]
    candidates: dict[str, list[int]]

    model_config = {"from_attributes": True}


class WeekStateResponse(BaseModel):
    week_number: int
    is_final_week: bool
    final_step: str | None
    cycles: list[CycleStateResponse]
    issues: list[StepIssueResponse]
    can_submit: bool

    model_config = {"from_attributes": True}
