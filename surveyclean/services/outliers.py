"""
Outlier detection module.

Every row gets an anomaly score over the numeric response columns (missing
cells take the column median for scoring only). Higher means more anomalous.

    z_score               max |z| across columns
    iqr                   max distance beyond the Tukey fences, in IQR units
    isolation_forest      -IsolationForest.score_samples (seeded)
    local_outlier_factor  -LocalOutlierFactor.negative_outlier_factor_

Rows scoring above the (1 - contamination) quantile are removed. Rows above
the (1 - contamination / sensitivity) quantile but not removed are flagged
and kept.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd
from sklearn.ensemble import IsolationForest
from sklearn.neighbors import LocalOutlierFactor

from surveyclean.errors import UnsupportedColumnType
from surveyclean.models.cleaning_log import log_entry
from surveyclean.models.cleaning_result import ModuleResult
from surveyclean.models.dataset import ColumnRole, Dataset
from surveyclean.schemas.cleaning import OutlierConfig

logger = logging.getLogger(__name__)

MODULE = "outliers"

MIN_ROWS = 3
IQR_K = 1.5


def _score_columns(dataset: Dataset, config: OutlierConfig) -> list[str]:
    if config.columns is None:
        return [
            c for c in dataset.columns_with_role(ColumnRole.RESPONSE)
            if dataset.column(c).is_numeric
        ]
    dataset.require_columns(config.columns)
    for name in config.columns:
        col = dataset.column(name)
        if not col.is_numeric:
            raise UnsupportedColumnType(
                f"Outlier scoring needs a numeric column; '{name}' is {col.type.value}",
                column=name,
                value=col.type.value,
            )
    return list(config.columns)


def _score_frame(dataset: Dataset, columns: list[str]) -> pd.DataFrame:
    frame = pd.DataFrame({name: dataset.numeric_series(name) for name in columns})
    frame = frame.loc[:, frame.notna().any()]
    return frame.fillna(frame.median())


def zscore_scores(frame: pd.DataFrame) -> np.ndarray:
    std = frame.std(ddof=0).replace(0, np.nan)
    z = (frame - frame.mean()).abs() / std
    return z.fillna(0).max(axis=1).to_numpy()


def iqr_scores(frame: pd.DataFrame) -> np.ndarray:
    q1 = frame.quantile(0.25)
    q3 = frame.quantile(0.75)
    iqr = q3 - q1
    scale = iqr.where(iqr > 0, 1.0)
    below = (q1 - IQR_K * iqr - frame) / scale
    above = (frame - (q3 + IQR_K * iqr)) / scale
    distance = np.maximum(below, above).clip(lower=0)
    return distance.max(axis=1).to_numpy()


def isolation_forest_scores(frame: pd.DataFrame, seed: int) -> np.ndarray:
    model = IsolationForest(n_estimators=100, random_state=seed)
    model.fit(frame.to_numpy())
    return -model.score_samples(frame.to_numpy())


def lof_scores(frame: pd.DataFrame) -> np.ndarray:
    model = LocalOutlierFactor(n_neighbors=min(20, len(frame) - 1))
    model.fit(frame.to_numpy())
    return -model.negative_outlier_factor_


def anomaly_scores(frame: pd.DataFrame, method: str, seed: int) -> np.ndarray:
    if method == "z_score":
        return zscore_scores(frame)
    if method == "iqr":
        return iqr_scores(frame)
    if method == "isolation_forest":
        return isolation_forest_scores(frame, seed)
    return lof_scores(frame)


def detect_outliers(dataset: Dataset, config: OutlierConfig) -> tuple[Dataset, ModuleResult]:
    columns = _score_columns(dataset, config)
    frame = _score_frame(dataset, columns) if columns else pd.DataFrame()

    if len(frame.columns) == 0 or len(frame) < MIN_ROWS:
        logger.info("outliers: nothing to score (%d rows, %d numeric columns)", len(frame), len(frame.columns))
        result = ModuleResult(
            module=MODULE,
            method=config.method,
            dataset=dataset,
            rows_before=dataset.row_count,
            details={
                "outliers_detected": 0,
                "outliers_removed": 0,
                "outliers_flagged": 0,
                "columns": list(frame.columns),
                "skipped": "not enough rows or numeric columns",
            },
        )
        return dataset, result

    scores = anomaly_scores(frame, config.method, config.seed)
    remove_threshold = float(np.quantile(scores, 1 - config.contamination))
    flag_threshold = float(np.quantile(scores, 1 - min(1.0, config.contamination / config.sensitivity)))

    positions = np.array(dataset.positions, dtype=np.int64)
    remove_mask = scores > remove_threshold
    flag_mask = (scores > flag_threshold) & ~remove_mask
    removed = [int(p) for p in positions[remove_mask]]
    flagged = [int(p) for p in positions[flag_mask]]

    log = []
    for pos, score in zip(positions[remove_mask], scores[remove_mask]):
        log.append(
            log_entry(
                MODULE,
                action="remove_outlier",
                reason=f"Anomaly score {score:.4g} above removal threshold {remove_threshold:.4g}",
                row_index=pos,
            )
        )
    for pos, score in zip(positions[flag_mask], scores[flag_mask]):
        log.append(
            log_entry(
                MODULE,
                action="flag_outlier",
                reason=f"Anomaly score {score:.4g} in flag range ({flag_threshold:.4g}, {remove_threshold:.4g}]",
                row_index=pos,
            )
        )

    cleaned = dataset.drop_positions(removed)
    logger.info(
        "outliers (%s, contamination=%s, sensitivity=%s): %d removed, %d flagged",
        config.method, config.contamination, config.sensitivity, len(removed), len(flagged),
    )
    details = {
        "outliers_detected": len(removed) + len(flagged),
        "outliers_removed": len(removed),
        "outliers_flagged": len(flagged),
        "remove_threshold": remove_threshold,
        "flag_threshold": flag_threshold,
        "columns": list(frame.columns),
        "contamination": config.contamination,
        "sensitivity": config.sensitivity,
    }
    if config.method == "isolation_forest":
        details["seed"] = config.seed
    result = ModuleResult(
        module=MODULE,
        method=config.method,
        dataset=cleaned,
        rows_before=dataset.row_count,
        rows_removed=len(removed),
        removed_rows=tuple(removed),
        flagged_rows=tuple(flagged),
        details=details,
        log=tuple(log),
    )
    return cleaned, result
