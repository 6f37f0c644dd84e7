"""
Missing-value imputation module.

Only numeric columns are imputed. A column whose missing fraction exceeds the
configured threshold is left untouched and reported in ``skipped_columns``.

Methods
  mean / median        column statistic over observed cells
  knn                  sklearn KNNImputer over the numeric response and
                       demographic columns
  multiple_imputation  ``iterations`` seeded hot-deck draws from the observed
                       values, averaged per cell
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd
from sklearn.impute import KNNImputer

from surveyclean.errors import UnsupportedColumnType
from surveyclean.models.cleaning_log import log_entry
from surveyclean.models.cleaning_result import ModuleResult
from surveyclean.models.dataset import ColumnRole, Dataset
from surveyclean.schemas.cleaning import MissingValuesConfig

logger = logging.getLogger(__name__)

MODULE = "missing_values"


def _target_columns(dataset: Dataset, config: MissingValuesConfig) -> tuple[list[str], list[str]]:
    """Return (numeric target columns, non-numeric columns skipped by default)."""
    if config.columns is not None:
        dataset.require_columns(config.columns)
        for name in config.columns:
            col = dataset.column(name)
            if not col.is_numeric:
                raise UnsupportedColumnType(
                    f"Cannot apply {config.method} imputation to {col.type.value} column '{name}'",
                    column=name,
                    value=col.type.value,
                )
        return list(config.columns), []

    candidates = dataset.columns_with_role(ColumnRole.RESPONSE, ColumnRole.DEMOGRAPHIC)
    numeric = [c for c in candidates if dataset.column(c).is_numeric]
    return numeric, [c for c in candidates if c not in numeric]


def _knn_matrix(dataset: Dataset, targets: list[str], n_neighbors: int) -> pd.DataFrame:
    features = list(targets)
    for name in dataset.columns_with_role(ColumnRole.RESPONSE, ColumnRole.DEMOGRAPHIC):
        if name not in features and dataset.column(name).is_numeric:
            features.append(name)
    frame = pd.DataFrame({name: dataset.numeric_series(name) for name in features})
    observed_rows = int(frame.notna().any(axis=1).sum())
    imputer = KNNImputer(n_neighbors=max(1, min(n_neighbors, observed_rows)), keep_empty_features=True)
    filled = imputer.fit_transform(frame.to_numpy())
    return pd.DataFrame(filled, index=frame.index, columns=features)


def _multiple_imputation(series: pd.Series, iterations: int, seed: int, column_index: int) -> pd.Series:
    observed = series.dropna().to_numpy()
    missing = series.index[series.isna()]
    draws = np.empty((iterations, len(missing)))
    for draw in range(iterations):
        rng = np.random.default_rng([seed, column_index, draw])
        draws[draw] = rng.choice(observed, size=len(missing), replace=True)
    return pd.Series(draws.mean(axis=0), index=missing)


def impute_missing(dataset: Dataset, config: MissingValuesConfig) -> tuple[Dataset, ModuleResult]:
    targets, non_numeric = _target_columns(dataset, config)

    eligible = []
    skipped = {}
    for name in targets:
        fraction = dataset.missing_fraction(name)
        if fraction == 0:
            continue
        if fraction > config.threshold:
            skipped[name] = round(fraction, 4)
            continue
        eligible.append(name)

    knn_filled = None
    if config.method == "knn" and eligible:
        knn_filled = _knn_matrix(dataset, eligible, config.n_neighbors)

    cleaned = dataset
    log = []
    cells_imputed = 0
    modified_rows: set[int] = set()
    per_column = {}
    for column_index, name in enumerate(eligible):
        series = dataset.numeric_series(name)
        missing = series.index[series.isna()]
        if config.method == "mean":
            fills = pd.Series(series.mean(), index=missing)
        elif config.method == "median":
            fills = pd.Series(series.median(), index=missing)
        elif config.method == "knn":
            fills = knn_filled.loc[missing, name]
        else:
            fills = _multiple_imputation(series, config.iterations, config.seed, column_index)

        values = {int(pos): float(val) for pos, val in fills.items()}
        cleaned = cleaned.with_values(name, values)
        for pos, val in values.items():
            log.append(
                log_entry(
                    MODULE,
                    action="fill_missing",
                    reason=f"Null filled with {config.method} ({val:.4g})",
                    column_name=name,
                    row_index=pos,
                    new_value=round(val, 4),
                )
            )
        cells_imputed += len(values)
        modified_rows.update(values)
        per_column[name] = len(values)

    for name, fraction in skipped.items():
        log.append(
            log_entry(
                MODULE,
                action="skip_column",
                reason=f"Column is {fraction * 100:.1f}% missing (threshold {config.threshold * 100:.0f}%), not imputed",
                column_name=name,
            )
        )

    logger.info(
        "missing_values (%s): %d cells imputed across %d columns, %d columns over threshold",
        config.method, cells_imputed, len(per_column), len(skipped),
    )
    details = {
        "cells_imputed": cells_imputed,
        "columns_affected": len(per_column),
        "imputed_by_column": per_column,
        "rows_modified": len(modified_rows),
        "modified_rows": sorted(modified_rows),
        "skipped_columns": skipped,
        "skipped_non_numeric": non_numeric,
        "threshold": config.threshold,
    }
    if config.method == "multiple_imputation":
        details["seed"] = config.seed
        details["iterations"] = config.iterations
    result = ModuleResult(
        module=MODULE,
        method=config.method,
        dataset=cleaned,
        rows_before=dataset.row_count,
        cells_modified=cells_imputed,
        details=details,
        log=tuple(log),
    )
    return cleaned, result
