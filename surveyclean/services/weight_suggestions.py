"""
Deterministic weight suggestions and weighted summaries.

Suggestions are advisory: they are returned to the caller and only take
effect through WeightEngine.apply_suggestion.
"""

from __future__ import annotations

import logging
import math
from typing import Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from surveyclean.models.dataset import ColumnRole, Dataset
from surveyclean.services.weights import TOTAL, equal_split

logger = logging.getLogger(__name__)


def _column_signal(dataset: Dataset, column: str) -> tuple[float, str]:
    """Return (raw importance score, rationale) for one response column."""
    completeness = 1.0 - dataset.missing_fraction(column)
    if completeness == 0:
        return 0.0, "No answers recorded"

    if not dataset.column(column).is_numeric:
        distinct = dataset.frame[column].dropna().map(str).nunique()
        if distinct <= 1:
            return completeness * 0.5, "Single answer category, little information"
        reason = "Categorical response with complete coverage"
        if completeness < 0.8:
            reason = f"Categorical response, {100 - completeness * 100:.0f}% missing"
        return completeness, reason

    series = dataset.numeric_series(column).dropna()
    spread_range = float(series.max() - series.min()) if len(series) else 0.0
    relative_spread = float(series.std(ddof=0)) / spread_range if spread_range > 0 else 0.0
    score = completeness * (0.5 + relative_spread)

    if completeness < 0.8:
        reason = f"Lower weight: {100 - completeness * 100:.0f}% of responses missing"
    elif relative_spread >= 0.3:
        reason = "High response variance, discriminates between respondents"
    elif relative_spread == 0:
        reason = "Every respondent gave the same answer"
    else:
        reason = "Low variance, stable responses"
    return score, reason


def suggest_weights(dataset: Dataset, columns: Optional[Sequence[str]] = None) -> dict[str, dict]:
    """
    Suggest a weight per response column: completeness × answer spread,
    scaled to 100 and rounded to one decimal (the last column takes the
    rounding remainder).
    """
    columns = list(columns) if columns is not None else dataset.columns_with_role(ColumnRole.RESPONSE)
    dataset.require_columns(columns)
    if not columns:
        return {}

    signals = {c: _column_signal(dataset, c) for c in columns}
    raw_total = sum(score for score, _ in signals.values())
    if raw_total <= 0:
        shares = equal_split(columns)
    else:
        shares = {c: score / raw_total * TOTAL for c, (score, _) in signals.items()}

    suggestions = {}
    remaining = TOTAL
    for index, column in enumerate(columns):
        if index == len(columns) - 1:
            weight = round(remaining, 1)
        else:
            weight = round(shares[column], 1)
            remaining -= weight
        suggestions[column] = {"weight": weight, "reason": signals[column][1]}

    logger.info("suggested weights for %d response columns", len(columns))
    return suggestions


def weighted_summary(dataset: Dataset, weights: Mapping[str, float]) -> dict:
    """Per-column statistics plus a weighted composite score per row."""
    dataset.require_columns(list(weights))
    numeric = [c for c in weights if dataset.column(c).is_numeric]

    columns = []
    for column, weight in weights.items():
        entry = {
            "column": column,
            "weight": weight,
            "missing": int(dataset.missing_mask(column).sum()),
            "mean": None,
            "std": None,
        }
        if column in numeric:
            series = dataset.numeric_series(column)
            if series.notna().any():
                entry["mean"] = float(series.mean())
                entry["std"] = float(series.std(ddof=0))
        columns.append(entry)

    row_scores = {}
    weighted_mean = None
    if numeric:
        frame = pd.DataFrame({c: dataset.numeric_series(c) for c in numeric})
        w = np.array([weights[c] for c in numeric], dtype=float)
        values = frame.to_numpy()
        present = ~np.isnan(values)
        denom = (present * w).sum(axis=1)
        numer = np.where(present, values, 0.0) @ w
        scores = np.divide(numer, denom, out=np.full(len(frame), np.nan), where=denom > 0)
        row_scores = {
            int(pos): (None if math.isnan(s) else float(s))
            for pos, s in zip(frame.index, scores)
        }
        valid = [s for s in row_scores.values() if s is not None]
        weighted_mean = float(np.mean(valid)) if valid else None

    return {
        "rows": dataset.row_count,
        "columns": columns,
        "weighted_mean": weighted_mean,
        "row_scores": row_scores,
    }
