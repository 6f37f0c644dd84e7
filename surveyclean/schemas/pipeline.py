from typing import Any, Optional

from pydantic import BaseModel, Field

from surveyclean.models.dataset import ColumnRole, ColumnType
from surveyclean.services.pipeline import Stage


class ColumnAssignment(BaseModel):
    type: Optional[ColumnType] = None
    role: Optional[ColumnRole] = None


class SchemaUpdateRequest(BaseModel):
    columns: dict[str, ColumnAssignment]


class SchemaSuggestionResponse(BaseModel):
    session_id: str
    columns: dict[str, ColumnAssignment]


class NavigateRequest(BaseModel):
    stage: Stage


class CollaboratorPayload(BaseModel):
    """Output of an external visualization or report step, stored as given."""
    payload: dict[str, Any] = Field(default_factory=dict)


class StageResponse(BaseModel):
    session_id: str
    stage: str
    stale: list[str]
