from pydantic import BaseModel, Field
from datetime import datetime


class PoolCreate(BaseModel):
    name: str = Field(..., max_length=100)
    season_number: int | None = None
    max_nominees: int | None = Field(None, ge=2)
    picks_per_team: int | None = Field(None, gt=0)
    enabled_special_events: list[str] = []


class PoolUpdate(BaseModel):
    name: str | None = None
    max_nominees: int | None = Field(None, ge=2)
    picks_per_team: int | None = Field(None, gt=0)
    enabled_special_events: list[str] | None = None


class PoolResponse(BaseModel):
    id: int
    name: str
    season_number: int | None
    max_nominees: int
    picks_per_team: int
    enabled_special_events: list[str]
    draft_locked: bool
    season_complete: bool
    season_completed_at: datetime | None

    model_config = {"from_attributes": True}


class ContestantCreate(BaseModel):
    name: str = Field(..., max_length=100)
    sort_order: int = 0


class ContestantBulkCreate(BaseModel):
    contestants: list[ContestantCreate]


class ContestantResponse(BaseModel):
    id: int
    pool_id: int
    name: str
    is_active: bool
    final_placement: int | None
    americas_favorite: bool
    sort_order: int

    model_config = {"from_attributes": True}


class ContestantWeekResponse(ContestantResponse):
    # Only filled when a week is asked for
    week_number: int | None = None
    active_this_week: bool | None = None
    reason: str | None = None


class ContestantStatusResponse(BaseModel):
    contestant_id: int
    week_number: int
    active: bool
    reason: str

    model_config = {"from_attributes": True}


class EntryCreate(BaseModel):
    team_name: str = Field(..., max_length=100)
    participant_name: str = Field(..., max_length=100)
    picks: list[int]
    bonus_answers: dict[str, str | int | list | None] = {}


class EntryResponse(BaseModel):
    id: int
    pool_id: int
    team_name: str
    participant_name: str
    picks: list[int]
    bonus_answers: dict

    model_config = {"from_attributes": True}


class BonusQuestionCreate(BaseModel):
    question_text: str
    points_value: int = 0
    correct_answer: str | int | list | None = None
    sort_order: int = 0


class BonusQuestionUpdate(BaseModel):
    question_text: str | None = None
    points_value: int | None = None
    correct_answer: str | int | list | None = None
    is_active: bool | None = None
    sort_order: int | None = None


class BonusQuestionResponse(BaseModel):
    id: int
    pool_id: int
    question_text: str
    correct_answer: str | int | list | None
    points_value: int
    is_active: bool
    sort_order: int

    model_config = {"from_attributes": True}
