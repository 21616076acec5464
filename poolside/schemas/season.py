from pydantic import BaseModel
from datetime import datetime


class CompletionCheckResponse(BaseModel):
    id: str
    label: str
    passed: bool
    description: str
    issues: list[str]

    model_config = {"from_attributes": True}


class ChecklistResponse(BaseModel):
    pool_id: int
    offered: bool  # A final week exists
    ready: bool
    checks: list[CompletionCheckResponse]


class WinnerResponse(BaseModel):
    place: int
    entry_id: int
    total_points: int

    model_config = {"from_attributes": True}


class SeasonCompleteResponse(BaseModel):
    pool_id: int
    season_completed_at: datetime | None
    winners: list[WinnerResponse]
