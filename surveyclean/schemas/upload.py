from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from surveyclean.models.dataset import ColumnRole, ColumnType


class SessionCreateRequest(BaseModel):
    """Parsed tabular data posted by the ingestion collaborator."""
    header: list[str] = Field(..., min_length=1)
    rows: list[Union[list[Any], dict[str, Any]]] = Field(default_factory=list)
    types: dict[str, ColumnType] = Field(default_factory=dict)
    roles: dict[str, ColumnRole] = Field(default_factory=dict)


class ColumnInfo(BaseModel):
    name: str
    type: ColumnType
    role: ColumnRole


class SessionResponse(BaseModel):
    session_id: str
    created_at: datetime
    stage: str
    completed: list[str]
    stale: list[str]
    columns: list[ColumnInfo]
    original_rows: int
    processed_rows: Optional[int] = None
    cleaning_status: Optional[str] = None
