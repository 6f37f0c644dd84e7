"""Name-based schema defaults offered before the user configures roles and types."""

from __future__ import annotations

import re
from typing import Iterable

from surveyclean.models.dataset import ColumnRole, ColumnType

IDENTIFIER_NAMES = {"id", "uid", "respondent_id", "response_id", "identifier"}
DEMOGRAPHIC_KEYWORDS = ("age", "gender", "sex", "location", "region", "country", "income", "education")
METADATA_KEYWORDS = ("date", "time", "timestamp", "duration", "device", "browser")
LIKERT_KEYWORDS = ("satisfaction", "rating", "agree", "likert", "nps")
NUMBER_KEYWORDS = ("age", "score", "count", "amount")
DURATION_KEYWORDS = ("completion", "duration", "elapsed", "seconds")


def _tokens(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")


def infer_type(name: str) -> ColumnType:
    key = _tokens(name)
    if any(k in key for k in DURATION_KEYWORDS):
        return ColumnType.DURATION
    if any(k in key for k in LIKERT_KEYWORDS):
        return ColumnType.LIKERT
    if "date" in key or "timestamp" in key:
        return ColumnType.DATE
    if any(k in key for k in NUMBER_KEYWORDS) or "time" in key:
        return ColumnType.NUMBER
    return ColumnType.TEXT


def infer_role(name: str) -> ColumnRole:
    key = _tokens(name)
    if key in IDENTIFIER_NAMES or key.endswith("_id") or "identifier" in key:
        return ColumnRole.IDENTIFIER
    if key == "weight" or key.endswith("_weight"):
        return ColumnRole.WEIGHT
    if any(k in key for k in DEMOGRAPHIC_KEYWORDS):
        return ColumnRole.DEMOGRAPHIC
    if any(k in key for k in METADATA_KEYWORDS) or "completion" in key:
        return ColumnRole.METADATA
    return ColumnRole.RESPONSE


def suggest_schema(column_names: Iterable[str]) -> dict[str, dict[str, str]]:
    """Return ``{column: {"type": ..., "role": ...}}`` defaults for every column."""
    return {
        name: {"type": infer_type(name).value, "role": infer_role(name).value}
        for name in column_names
    }
