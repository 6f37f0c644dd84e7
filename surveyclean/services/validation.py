"""Invalid-data validation module: declared-type and rule checks per row."""

from __future__ import annotations

import logging
from typing import Any

from surveyclean.errors import TypeMismatch
from surveyclean.models.cleaning_log import log_entry
from surveyclean.models.cleaning_result import ModuleResult
from surveyclean.models.dataset import (
    ColumnRole,
    ColumnType,
    Dataset,
    coerce_value,
    is_missing,
    normalize_value,
)
from surveyclean.schemas.cleaning import InvalidDataConfig, ValidationRule

logger = logging.getLogger(__name__)

MODULE = "invalid_data"


def _checked_columns(dataset: Dataset, config: InvalidDataConfig) -> list[str]:
    dataset.require_columns(list(config.rules))
    return [
        c.name for c in dataset.columns
        if c.name in config.rules
        or (c.type != ColumnType.TEXT and c.role != ColumnRole.EXCLUDE)
    ]


def check_cell(value: Any, column_type: ColumnType, column: str, rule: ValidationRule | None) -> str | None:
    """Return the reason a non-missing cell is invalid, or None when it is valid."""
    try:
        typed = coerce_value(value, column_type, column)
    except TypeMismatch as exc:
        return exc.message
    if rule is None:
        return None

    if rule.allowed is not None:
        allowed = {normalize_value(v) for v in rule.allowed}
        if normalize_value(value) not in allowed:
            return f"{value!r} not in allowed values"

    if rule.min is not None or rule.max is not None:
        try:
            number = typed if isinstance(typed, float) else float(typed)
        except (TypeError, ValueError):
            return f"{value!r} is not numeric for a range rule"
        if rule.min is not None and number < rule.min:
            return f"{number:g} below minimum {rule.min:g}"
        if rule.max is not None and number > rule.max:
            return f"{number:g} above maximum {rule.max:g}"
    return None


def validate_rows(dataset: Dataset, config: InvalidDataConfig) -> tuple[Dataset, ModuleResult]:
    columns = _checked_columns(dataset, config)
    defs = {name: dataset.column(name) for name in columns}

    removed = []
    invalid_cells = 0
    invalid_by_column: dict[str, int] = {}
    log = []
    for position, row in dataset.iter_rows():
        checked = 0
        problems = []
        for name in columns:
            value = row[name]
            if is_missing(value):
                continue
            checked += 1
            reason = check_cell(value, defs[name].type, name, config.rules.get(name))
            if reason is not None:
                problems.append((name, value, reason))

        if not problems:
            continue
        invalid_cells += len(problems)
        for name, _, _ in problems:
            invalid_by_column[name] = invalid_by_column.get(name, 0) + 1

        valid_fraction = (checked - len(problems)) / checked
        if config.strict_mode or valid_fraction < config.tolerance:
            removed.append(position)
            name, value, reason = problems[0]
            log.append(
                log_entry(
                    MODULE,
                    action="remove_invalid",
                    reason=f"{len(problems)} invalid cell(s), valid fraction {valid_fraction:.2f}: {reason}",
                    column_name=name,
                    row_index=position,
                    original_value=value,
                )
            )

    cleaned = dataset.drop_positions(removed)
    logger.info(
        "invalid_data (strict=%s, tolerance=%s): %d invalid cells, %d rows removed",
        config.strict_mode, config.tolerance, invalid_cells, len(removed),
    )
    result = ModuleResult(
        module=MODULE,
        method="strict" if config.strict_mode else "tolerance",
        dataset=cleaned,
        rows_before=dataset.row_count,
        rows_removed=len(removed),
        removed_rows=tuple(removed),
        details={
            "invalid_cells": invalid_cells,
            "invalid_by_column": invalid_by_column,
            "invalid_rows_removed": len(removed),
            "checked_columns": columns,
            "tolerance": config.tolerance,
        },
        log=tuple(log),
    )
    return cleaned, result
