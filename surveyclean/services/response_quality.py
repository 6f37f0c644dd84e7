"""
Respondent-quality modules: straight-liner and speeder detection.

Both operate row by row and only remove rows; neither touches cell values.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence, Union

import numpy as np

from surveyclean.errors import MissingTimeColumn
from surveyclean.models.cleaning_log import log_entry
from surveyclean.models.cleaning_result import ModuleResult
from surveyclean.models.dataset import ColumnRole, ColumnType, Dataset, coerce_value, normalize_value
from surveyclean.schemas.cleaning import SpeederConfig, StraightLinerConfig

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Straight-liners
# ─────────────────────────────────────────────────────────────────────────────

def longest_run(
    values: Sequence[Any],
    numeric: Union[bool, Sequence[bool]],
    variance_threshold: float,
) -> int:
    """
    Length of the longest run of consecutive same answers.

    ``numeric`` is one flag for the whole row or one flag per answer. Numeric
    answers stay in a run while the run's population variance is at most
    ``variance_threshold``; text answers must match exactly. A missing answer
    (None) or a switch between numeric and text columns breaks the run.
    """
    flags = [numeric] * len(values) if isinstance(numeric, bool) else list(numeric)
    best = 0
    window: list = []
    window_numeric = None
    for value, is_numeric in zip(values, flags):
        if value is None:
            window = []
            continue
        if is_numeric != window_numeric:
            window = []
            window_numeric = is_numeric
        if is_numeric:
            window.append(value)
            while len(window) > 1 and np.var(window) > variance_threshold:
                window.pop(0)
        else:
            if window and window[-1] != value:
                window = []
            window.append(value)
        best = max(best, len(window))
    return best


def _answer_column(dataset: Dataset, column: str) -> list:
    if dataset.column(column).is_numeric:
        return [None if np.isnan(v) else float(v) for v in dataset.numeric_series(column).to_numpy()]
    return [normalize_value(v) for v in dataset.frame[column]]


def detect_straight_liners(dataset: Dataset, config: StraightLinerConfig) -> tuple[Dataset, ModuleResult]:
    module = "straight_liners"
    columns = (
        list(config.columns)
        if config.columns is not None
        else dataset.columns_with_role(ColumnRole.RESPONSE)
    )
    dataset.require_columns(columns)
    numeric = [dataset.column(c).is_numeric for c in columns]

    if columns:
        matrix = [list(row) for row in zip(*(_answer_column(dataset, c) for c in columns))]
    else:
        matrix = [[] for _ in range(dataset.row_count)]

    removed = []
    runs = {}
    log = []
    for position, answers in zip(dataset.positions, matrix):
        run = longest_run(answers, numeric, config.variance_threshold)
        if run >= config.consecutive_threshold:
            removed.append(position)
            runs[position] = run
            log.append(
                log_entry(
                    module,
                    action="remove_straight_liner",
                    reason=f"{run} consecutive identical answers (threshold {config.consecutive_threshold})",
                    row_index=position,
                )
            )

    cleaned = dataset.drop_positions(removed)
    logger.info(
        "straight_liners (threshold=%d): %d rows removed",
        config.consecutive_threshold, len(removed),
    )
    result = ModuleResult(
        module=module,
        method="variance" if any(numeric) else "exact",
        dataset=cleaned,
        rows_before=dataset.row_count,
        rows_removed=len(removed),
        removed_rows=tuple(removed),
        details={
            "straight_liners_detected": len(removed),
            "straight_liners_removed": len(removed),
            "threshold": config.consecutive_threshold,
            "variance_threshold": config.variance_threshold,
            "columns": columns,
            "longest_runs": runs,
        },
        log=tuple(log),
    )
    return cleaned, result


# ─────────────────────────────────────────────────────────────────────────────
# Speeders
# ─────────────────────────────────────────────────────────────────────────────

def _completion_seconds(value: Any, column: str) -> Optional[float]:
    return coerce_value(value, ColumnType.DURATION, column)


def detect_speeders(dataset: Dataset, config: SpeederConfig) -> tuple[Dataset, ModuleResult]:
    module = "speeders"
    if not dataset.has_column(config.time_column):
        raise MissingTimeColumn(
            f"Time column '{config.time_column}' not found in dataset",
            column=config.time_column,
        )

    removed = []
    too_fast = 0
    too_slow = 0
    missing = 0
    log = []
    for position, row in dataset.iter_rows():
        seconds = _completion_seconds(row[config.time_column], config.time_column)
        if seconds is None:
            missing += 1
            continue
        if seconds < config.min_time_seconds:
            too_fast += 1
            reason = f"Completed in {seconds:g}s, below minimum {config.min_time_seconds:g}s"
        elif seconds > config.max_time_seconds:
            too_slow += 1
            reason = f"Completed in {seconds:g}s, above maximum {config.max_time_seconds:g}s"
        else:
            continue
        removed.append(position)
        log.append(
            log_entry(
                module,
                action="remove_speeder",
                reason=reason,
                column_name=config.time_column,
                row_index=position,
                original_value=row[config.time_column],
            )
        )

    cleaned = dataset.drop_positions(removed)
    logger.info(
        "speeders [%gs, %gs]: %d too fast, %d too slow, %d missing times",
        config.min_time_seconds, config.max_time_seconds, too_fast, too_slow, missing,
    )
    result = ModuleResult(
        module=module,
        method="time_range",
        dataset=cleaned,
        rows_before=dataset.row_count,
        rows_removed=len(removed),
        removed_rows=tuple(removed),
        details={
            "speeders_detected": len(removed),
            "speeders_removed": len(removed),
            "too_fast": too_fast,
            "too_slow": too_slow,
            "missing_times": missing,
            "min_time": config.min_time_seconds,
            "max_time": config.max_time_seconds,
            "time_column": config.time_column,
        },
        log=tuple(log),
    )
    return cleaned, result
