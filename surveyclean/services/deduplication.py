"""
Deduplication module.

Rows are blocked by exact key-column values, then compared pairwise over the
compare columns. The first unclustered row (in source order) seeds a cluster
and absorbs every later unclustered row whose similarity reaches the
threshold; the seed is kept, the rest are removed.

Similarity is the mean per-column agreement in [0, 1]:
  exact     1 if normalised values are equal, else 0
  fuzzy     rapidfuzz ratio / 100
  phonetic  1 if Soundex codes (text columns) or values (other columns) agree
Two missing cells agree; one missing cell scores 0.
"""

from __future__ import annotations

import logging
import re

import numpy as np
from rapidfuzz import fuzz, process

from surveyclean.models.cleaning_log import log_entry
from surveyclean.models.cleaning_result import ModuleResult
from surveyclean.models.dataset import ColumnRole, ColumnType, Dataset, normalize_value
from surveyclean.schemas.cleaning import DeduplicationConfig

logger = logging.getLogger(__name__)

MODULE = "deduplication"

_SOUNDEX_CODES = {
    **dict.fromkeys("bfpv", "1"),
    **dict.fromkeys("cgjkqsxz", "2"),
    **dict.fromkeys("dt", "3"),
    "l": "4",
    **dict.fromkeys("mn", "5"),
    "r": "6",
}

_EPSILON = 1e-9


def soundex(text: str) -> str:
    """American Soundex of each word; words without letters pass through."""
    codes = []
    for word in str(text).lower().split():
        letters = re.sub(r"[^a-z]", "", word)
        if not letters:
            codes.append(word)
            continue
        first = letters[0]
        encoded = first.upper()
        last = _SOUNDEX_CODES.get(first, "")
        for ch in letters[1:]:
            code = _SOUNDEX_CODES.get(ch, "")
            if code and code != last:
                encoded += code
            if ch not in "hw":
                last = code
        codes.append((encoded + "000")[:4])
    return " ".join(codes)


def _default_compare_columns(dataset: Dataset, key_columns: list[str]) -> list[str]:
    skipped = {ColumnRole.IDENTIFIER, ColumnRole.EXCLUDE, ColumnRole.WEIGHT}
    return [
        c.name for c in dataset.columns
        if c.role not in skipped and c.name not in key_columns
    ]


def _column_keys(dataset: Dataset, column: str, method: str) -> np.ndarray:
    values = [normalize_value(v) for v in dataset.frame[column]]
    col_type = dataset.column(column).type
    if method == "phonetic" and col_type in (ColumnType.TEXT, ColumnType.CATEGORICAL):
        values = [soundex(v) if v is not None else None for v in values]
    return np.array(values, dtype=object)


def _similarity_to_seed(
    seed: int,
    candidates: np.ndarray,
    keys_by_column: list[np.ndarray],
    missing_by_column: list[np.ndarray],
    method: str,
) -> np.ndarray:
    """Mean per-column agreement between row ``seed`` and each candidate row."""
    if not keys_by_column:
        return np.ones(len(candidates))

    total = np.zeros(len(candidates))
    for keys, missing in zip(keys_by_column, missing_by_column):
        other_missing = missing[candidates]
        if missing[seed]:
            total += other_missing.astype(float)
            continue
        if method == "fuzzy":
            choices = ["" if m else k for k, m in zip(keys[candidates], other_missing)]
            scores = process.cdist([keys[seed]], choices, scorer=fuzz.ratio)[0].astype(float) / 100.0
        else:
            scores = (keys[candidates] == keys[seed]).astype(float)
        scores[other_missing] = 0.0
        total += scores
    return total / len(keys_by_column)


def _blocks(dataset: Dataset, key_columns: list[str]) -> list[np.ndarray]:
    """Row offsets grouped by exact key values, in first-appearance order."""
    if not key_columns:
        return [np.arange(dataset.row_count)]
    groups: dict[tuple, list[int]] = {}
    frame = dataset.frame
    for offset, values in enumerate(frame[key_columns].itertuples(index=False, name=None)):
        key = tuple(normalize_value(v) for v in values)
        groups.setdefault(key, []).append(offset)
    return [np.array(offsets) for offsets in groups.values()]


def deduplicate(dataset: Dataset, config: DeduplicationConfig) -> tuple[Dataset, ModuleResult]:
    key_columns = list(config.key_columns)
    dataset.require_columns(key_columns)
    compare_columns = (
        list(config.compare_columns)
        if config.compare_columns is not None
        else _default_compare_columns(dataset, key_columns)
    )
    dataset.require_columns(compare_columns)

    positions = np.array(dataset.positions, dtype=np.int64)
    keys_by_column = [_column_keys(dataset, c, config.method) for c in compare_columns]
    missing_by_column = [np.array([k is None for k in keys], dtype=bool) for keys in keys_by_column]

    clusters = []
    removed: list[int] = []
    log = []
    for block in _blocks(dataset, key_columns):
        assigned = np.zeros(len(block), dtype=bool)
        for i in range(len(block)):
            if assigned[i]:
                continue
            assigned[i] = True
            remaining = np.flatnonzero(~assigned)
            if remaining.size == 0:
                break
            sims = _similarity_to_seed(
                block[i], block[remaining], keys_by_column, missing_by_column, config.method
            )
            hit = sims >= config.threshold - _EPSILON
            matched = remaining[hit]
            if matched.size == 0:
                continue
            assigned[matched] = True
            kept = int(positions[block[i]])
            pairs = sorted(zip((int(positions[block[j]]) for j in matched), sims[hit]))
            dupes = [pos for pos, _ in pairs]
            clusters.append({"kept": kept, "removed": dupes})
            removed.extend(dupes)
            for pos, sim in pairs:
                log.append(
                    log_entry(
                        MODULE,
                        action="remove_duplicate",
                        reason=f"Row duplicates row {kept} (similarity {sim:.3f} >= {config.threshold})",
                        row_index=pos,
                    )
                )

    removed.sort()
    cleaned = dataset.drop_positions(removed)
    logger.info(
        "deduplication (%s, threshold=%s): %d clusters, %d rows removed",
        config.method, config.threshold, len(clusters), len(removed),
    )
    result = ModuleResult(
        module=MODULE,
        method=config.method,
        dataset=cleaned,
        rows_before=dataset.row_count,
        rows_removed=len(removed),
        removed_rows=tuple(removed),
        details={
            "duplicates_found": len(clusters),
            "duplicates_removed": len(removed),
            "threshold": config.threshold,
            "key_columns": key_columns,
            "compare_columns": compare_columns,
            "clusters": clusters,
        },
        log=tuple(log),
    )
    return cleaned, result
