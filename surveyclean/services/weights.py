"""
Weight redistribution over the response columns.

``redistribute`` is the pure edit rule; ``WeightEngine`` holds the current
vector, the locked set and a bounded undo history around it.

Edit rule for set_weight(column, value):
  1. delta = value - current
  2. every unlocked other column gets -delta / k (k = their count),
     an even share rather than one proportional to its current weight
  3. every column is clamped to [0, 100]
  4. the whole vector, locked columns included, is scaled to total 100

Step 4 means a locked column can drift slightly on each edit. This matches
the behaviour of the wizard UI and is kept on purpose until product decides
otherwise.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import Iterable, Mapping, Optional

from surveyclean.config import settings
from surveyclean.errors import (
    ColumnLocked,
    ColumnSetMismatch,
    InvalidWeightTotal,
    InvalidWeightValue,
    NoHistory,
    UnknownColumn,
)

logger = logging.getLogger(__name__)

TOTAL = 100.0


def equal_split(columns: Iterable[str]) -> dict[str, float]:
    columns = list(columns)
    if not columns:
        return {}
    share = TOTAL / len(columns)
    return {c: share for c in columns}


def clamp(value: float, low: float = 0.0, high: float = TOTAL) -> float:
    return max(low, min(high, value))


def normalize(weights: Mapping[str, float]) -> dict[str, float]:
    total = sum(weights.values())
    if total <= 0:
        raise InvalidWeightTotal(f"Cannot normalise a weight vector totalling {total:g}", value=total)
    return {c: w / total * TOTAL for c, w in weights.items()}


def total_is_valid(weights: Mapping[str, float], tolerance: float = None) -> bool:
    tolerance = settings.WEIGHT_TOTAL_TOLERANCE if tolerance is None else tolerance
    return abs(sum(weights.values()) - TOTAL) <= tolerance


def _check_value(column: str, value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise InvalidWeightValue(f"Weight for '{column}' is not a number", column=column, value=value) from None
    if not math.isfinite(value):
        raise InvalidWeightValue(f"Weight for '{column}' must be finite", column=column, value=value)
    return value


def redistribute(
    weights: Mapping[str, float],
    locked: Iterable[str],
    column: str,
    new_value: float,
) -> dict[str, float]:
    """
    Apply one edit and return the new vector; ``weights`` is not modified.

    Returns an unchanged copy when the value does not change or when no
    unlocked column other than ``column`` can absorb the difference.
    """
    locked = set(locked)
    if column not in weights:
        raise UnknownColumn(f"'{column}' is not a weighted response column", column=column)
    if column in locked:
        raise ColumnLocked(f"Column '{column}' is locked", column=column, value=weights[column])

    new_value = clamp(_check_value(column, new_value))
    old_value = weights[column]
    if new_value == old_value:
        return dict(weights)

    others = [c for c in weights if c != column and c not in locked]
    if not others:
        return dict(weights)

    adjustment = -(new_value - old_value) / len(others)
    result = dict(weights)
    result[column] = new_value
    for other in others:
        result[other] = clamp(result[other] + adjustment)
    return normalize(result)


class WeightEngine:
    def __init__(
        self,
        response_columns: Iterable[str],
        history_size: Optional[int] = None,
        tolerance: Optional[float] = None,
    ):
        self.response_columns = list(response_columns)
        self.tolerance = settings.WEIGHT_TOTAL_TOLERANCE if tolerance is None else tolerance
        self.history_size = settings.WEIGHT_HISTORY_SIZE if history_size is None else history_size
        self.weights: dict[str, float] = equal_split(self.response_columns)
        self.locked: set[str] = set()
        self.history: deque[dict[str, float]] = deque(maxlen=self.history_size)
        self.suggestion_rationale: dict[str, str] = {}

    # ── Internal helpers ─────────────────────────────────────────────

    def _require(self, column: str) -> None:
        if column not in self.weights:
            raise UnknownColumn(f"'{column}' is not a weighted response column", column=column)

    def _replace(self, weights: dict[str, float]) -> None:
        self.history.append(dict(self.weights))
        self.weights = weights

    # ── Operations ───────────────────────────────────────────────────

    def set_weight(self, column: str, value: float) -> dict[str, float]:
        updated = redistribute(self.weights, self.locked, column, value)
        if updated == self.weights:
            logger.debug("set_weight(%s, %s) left the vector unchanged", column, value)
            return self.snapshot()
        self._replace(updated)
        return self.snapshot()

    def lock(self, column: str) -> None:
        self._require(column)
        self.locked.add(column)

    def unlock(self, column: str) -> None:
        self._require(column)
        self.locked.discard(column)

    def toggle_lock(self, column: str) -> bool:
        self._require(column)
        if column in self.locked:
            self.locked.discard(column)
            return False
        self.locked.add(column)
        return True

    def apply_suggestion(
        self,
        vector: Mapping[str, float],
        rationale: Optional[Mapping[str, str]] = None,
    ) -> dict[str, float]:
        """Replace the whole vector with an externally computed one."""
        expected = set(self.response_columns)
        given = set(vector)
        if given != expected:
            missing = sorted(expected - given)
            extra = sorted(given - expected)
            raise ColumnSetMismatch(
                f"Suggested columns do not match response columns (missing {missing}, unexpected {extra})",
                column=(missing + extra)[0],
            )

        candidate = {}
        for column in self.response_columns:
            value = _check_value(column, vector[column])
            if value < 0:
                raise InvalidWeightValue(f"Weight for '{column}' is negative", column=column, value=value)
            candidate[column] = value
        if not total_is_valid(candidate, self.tolerance):
            candidate = normalize(candidate)

        self._replace(candidate)
        self.suggestion_rationale = dict(rationale or {})
        logger.info("applied suggested weights for %d columns", len(candidate))
        return self.snapshot()

    def reset(self) -> dict[str, float]:
        self._replace(equal_split(self.response_columns))
        self.locked.clear()
        self.suggestion_rationale = {}
        return self.snapshot()

    def undo(self) -> dict[str, float]:
        if not self.history:
            raise NoHistory("Nothing to undo")
        self.weights = self.history.pop()
        return self.snapshot()

    # ── Read-only views ──────────────────────────────────────────────

    @property
    def total(self) -> float:
        return sum(self.weights.values())

    def check_total(self) -> bool:
        return total_is_valid(self.weights, self.tolerance)

    def snapshot(self) -> dict[str, float]:
        return dict(self.weights)

    def state(self) -> dict:
        return {
            "weights": self.snapshot(),
            "locked": sorted(self.locked),
            "total": self.total,
            "valid": self.check_total(),
            "history_depth": len(self.history),
            "rationale": dict(self.suggestion_rationale),
        }
