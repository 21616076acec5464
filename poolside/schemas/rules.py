from pydantic import BaseModel, Field


class RuleCreate(BaseModel):
    category: str = Field(..., max_length=50)
    subcategory: str = Field(..., max_length=50)
    points: int
    description: str | None = None
    emoji: str | None = Field(None, max_length=16)
    is_active: bool = True
    sort_order: int = 0


class RuleUpdate(BaseModel):
    points: int | None = None
    description: str | None = None
    emoji: str | None = None
    is_active: bool | None = None
    sort_order: int | None = None


class RuleResponse(BaseModel):
    id: int
    pool_id: int | None
    category: str
    subcategory: str
    points: int
    description: str | None
    emoji: str | None
    is_active: bool
    sort_order: int

    model_config = {"from_attributes": True}


class RescoreResponse(BaseModel):
    special_events_repriced: int
