from typing import Optional

from pydantic import BaseModel, Field


class SetWeightRequest(BaseModel):
    value: float


class ApplySuggestionRequest(BaseModel):
    weights: dict[str, float]
    rationale: dict[str, str] = Field(default_factory=dict)


class WeightStateResponse(BaseModel):
    session_id: str
    weights: dict[str, float]
    locked: list[str]
    total: float
    valid: bool
    history_depth: int
    rationale: dict[str, str]


class WeightSuggestion(BaseModel):
    weight: float
    reason: str


class WeightSuggestionsResponse(BaseModel):
    session_id: str
    suggestions: dict[str, WeightSuggestion]


class ColumnSummary(BaseModel):
    column: str
    weight: float
    missing: int
    mean: Optional[float] = None
    std: Optional[float] = None


class WeightedSummaryResponse(BaseModel):
    session_id: str
    rows: int
    columns: list[ColumnSummary]
    weighted_mean: Optional[float] = None
    row_scores: dict[int, Optional[float]]
