"""Quality score calculator, produces a 0-100 composite score."""

from surveyclean.errors import TypeMismatch
from surveyclean.models.dataset import ColumnType, Dataset


def calculate_quality_score(dataset: Dataset, original_row_count: int) -> float:
    """
    Composite quality score (0–100) weighted across 4 dimensions:

    Completeness  40%  % of non-missing cells
    Uniqueness    30%  % of rows kept (vs original)
    Consistency   20%  % of columns whose cells all coerce to the declared type
    Integrity     10%  penalises missing cells still remaining after cleaning
    """
    if dataset.row_count == 0 or len(dataset.columns) == 0:
        return 0.0

    row_count = dataset.row_count
    col_count = len(dataset.columns)
    total_cells = row_count * col_count

    # ── Completeness ─────────────────────────────────────────────────
    missing_cells = sum(int(dataset.missing_mask(c).sum()) for c in dataset.column_names)
    completeness = (total_cells - missing_cells) / total_cells * 100

    # ── Uniqueness ───────────────────────────────────────────────────
    if original_row_count > 0:
        uniqueness = min(row_count / original_row_count * 100, 100.0)
    else:
        uniqueness = 100.0

    # ── Consistency ──────────────────────────────────────────────────
    consistent_cols = 0
    for col in dataset.columns:
        if col.type == ColumnType.TEXT:
            consistent_cols += 1
            continue
        try:
            dataset.typed_values(col.name)
        except TypeMismatch:
            continue
        consistent_cols += 1
    consistency = consistent_cols / col_count * 100

    # ── Integrity ────────────────────────────────────────────────────
    integrity = max(0.0, (1 - missing_cells / total_cells) * 100)

    score = (
        completeness * 0.40
        + uniqueness * 0.30
        + consistency * 0.20
        + integrity * 0.10
    )
    return round(min(max(score, 0.0), 100.0), 2)
