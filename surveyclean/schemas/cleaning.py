from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from surveyclean.config import settings


# ── Module configuration ─────────────────────────────────────────────────────

class DeduplicationConfig(BaseModel):
    enabled: bool = True
    method: Literal["exact", "fuzzy", "phonetic"] = "fuzzy"
    threshold: float = Field(0.85, ge=0.5, le=1.0)
    key_columns: list[str] = Field(default_factory=list)   # blocking columns, exact match
    compare_columns: Optional[list[str]] = None   # None = everything except ids/keys/excluded


class MissingValuesConfig(BaseModel):
    enabled: bool = True
    method: Literal["mean", "median", "knn", "multiple_imputation"] = "multiple_imputation"
    iterations: int = Field(5, ge=1, le=50)
    threshold: float = Field(0.5, ge=0.1, le=0.9)
    n_neighbors: int = Field(5, ge=1, le=50)
    columns: Optional[list[str]] = None           # None = numeric response/demographic columns
    seed: int = settings.RANDOM_SEED


class OutlierConfig(BaseModel):
    enabled: bool = True
    method: Literal["z_score", "iqr", "isolation_forest", "local_outlier_factor"] = "isolation_forest"
    contamination: float = Field(0.1, ge=0.01, le=0.3)
    sensitivity: float = Field(0.8, ge=0.5, le=1.0)
    columns: Optional[list[str]] = None           # None = numeric response columns
    seed: int = settings.RANDOM_SEED


class ValidationRule(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    allowed: Optional[list[Any]] = None


class InvalidDataConfig(BaseModel):
    enabled: bool = False
    strict_mode: bool = False
    tolerance: float = Field(0.95, ge=0.5, le=1.0)
    rules: dict[str, ValidationRule] = Field(default_factory=dict)


class StraightLinerConfig(BaseModel):
    enabled: bool = True
    consecutive_threshold: int = Field(5, ge=3, le=20)
    variance_threshold: float = Field(0.1, ge=0.01, le=0.5)
    columns: Optional[list[str]] = None           # None = response columns


class SpeederConfig(BaseModel):
    enabled: bool = True
    min_time_seconds: float = Field(30, ge=0)
    max_time_seconds: float = Field(3600, gt=0)
    time_column: str = "completion_time"

    @model_validator(mode="after")
    def _check_range(self):
        if self.max_time_seconds <= self.min_time_seconds:
            raise ValueError("max_time_seconds must be greater than min_time_seconds")
        return self


class CleaningConfig(BaseModel):
    deduplication: DeduplicationConfig = Field(default_factory=DeduplicationConfig)
    missing_values: MissingValuesConfig = Field(default_factory=MissingValuesConfig)
    outliers: OutlierConfig = Field(default_factory=OutlierConfig)
    invalid_data: InvalidDataConfig = Field(default_factory=InvalidDataConfig)
    straight_liners: StraightLinerConfig = Field(default_factory=StraightLinerConfig)
    speeders: SpeederConfig = Field(default_factory=SpeederConfig)


# ── Responses ────────────────────────────────────────────────────────────────

class ModuleResultResponse(BaseModel):
    module: str
    method: str
    rows_before: int
    rows_after: int
    rows_removed: int
    cells_modified: int
    removed_rows: list[int]
    flagged_rows: list[int]
    details: dict[str, Any]


class CleaningErrorResponse(BaseModel):
    module: str
    kind: str
    message: str
    column: Optional[str] = None
    value: Optional[str] = None


class CleaningSummaryResponse(BaseModel):
    session_id: str
    status: str
    original_rows: int
    processed_rows: int
    removed_rows: int
    modified_rows: int
    quality_score: Optional[float]
    modules: list[ModuleResultResponse]
    errors: list[CleaningErrorResponse] = []
    fingerprint: Optional[str] = None
    stale: bool = False


class AuditLogEntry(BaseModel):
    module: str
    action: str
    reason: str
    row_index: Optional[int]
    column_name: Optional[str]
    original_value: Optional[str]
    new_value: Optional[str]
    timestamp: datetime

    model_config = {"from_attributes": True}
