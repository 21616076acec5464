from pydantic import BaseModel


class ContestantPointsItem(BaseModel):
    contestant_id: int
    contestant_name: str
    weekly: dict[int, int]
    cumulative: dict[int, int]
    total: int


class PointsResponse(BaseModel):
    pool_id: int
    weeks: list[int]
    contestants: list[ContestantPointsItem]


class StandingItem(BaseModel):
    rank: int
    entry_id: int
    team_name: str
    participant_name: str
    picks: list[int]
    contestant_points: int
    bonus_points: int
    total_points: int

    model_config = {"from_attributes": True}


class LeaderboardResponse(BaseModel):
    pool_id: int
    season_complete: bool
    entries: list[StandingItem]
