"""
Tests for straight-liner and speeder detection.

Run with:
    pytest tests/test_response_quality.py -v
"""

from __future__ import annotations

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from surveyclean.errors import MissingTimeColumn
from surveyclean.models.dataset import Dataset
from surveyclean.schemas.cleaning import SpeederConfig, StraightLinerConfig
from surveyclean.services.response_quality import (
    detect_speeders,
    detect_straight_liners,
    longest_run,
)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

QUESTIONS = [f"q{i}" for i in range(1, 8)]


def make_survey(rows) -> Dataset:
    return Dataset.from_rows(
        ["id"] + QUESTIONS + ["completion_time"],
        rows,
        types={**{q: "likert" for q in QUESTIONS}, "completion_time": "duration"},
        roles={"id": "identifier", "completion_time": "metadata"},
    )


# ═════════════════════════════════════════════════════════════════════════════
# longest_run
# ═════════════════════════════════════════════════════════════════════════════

class TestLongestRun:

    def test_numeric_identical(self):
        assert longest_run([3.0, 3.0, 3.0, 1.0, 3.0], True, 0.1) == 3

    def test_numeric_window_within_variance(self):
        # variance of [3, 3, 3, 4] is 0.1875, of [3, 3, 4] is 0.222
        assert longest_run([3.0, 3.0, 3.0, 4.0], True, 0.2) == 4
        assert longest_run([3.0, 3.0, 3.0, 4.0], True, 0.1) == 3

    def test_missing_breaks_run(self):
        assert longest_run([2.0, 2.0, None, 2.0, 2.0, 2.0], True, 0.1) == 3

    def test_text_requires_equality(self):
        assert longest_run(["agree", "agree", "disagree", "agree"], False, 0.1) == 2

    def test_empty(self):
        assert longest_run([], True, 0.1) == 0

    def test_per_column_flags(self):
        values = [3.0, 4.0, 3.0, 4.0, "fine"]
        assert longest_run(values, [True, True, True, True, False], 0.5) == 4

    def test_type_switch_breaks_run(self):
        values = [3.0, 3.0, "agree", "agree", "agree", 3.0]
        assert longest_run(values, [True, True, False, False, False, True], 0.1) == 3


# ═════════════════════════════════════════════════════════════════════════════
# Straight-liners
# ═════════════════════════════════════════════════════════════════════════════

class TestStraightLiners:

    def test_removes_rows_at_threshold(self):
        ds = make_survey([
            [1, 4, 4, 4, 4, 4, 4, 4, 300],
            [2, 1, 5, 2, 4, 3, 5, 1, 300],
            [3, 2, 3, 3, 3, 3, 3, 1, 300],
            [4, 2, 3, 3, 3, 3, 1, 1, 300],
        ])
        cleaned, result = detect_straight_liners(ds, StraightLinerConfig())
        assert cleaned.positions == [1, 3]
        assert result.removed_rows == (0, 2)
        assert result.details["longest_runs"] == {0: 7, 2: 5}
        assert result.method == "variance"

    def test_configured_columns(self):
        ds = make_survey([[1, 4, 4, 4, 1, 2, 3, 4, 300]])
        cleaned, _ = detect_straight_liners(
            ds, StraightLinerConfig(columns=["q1", "q2", "q3"], consecutive_threshold=3)
        )
        assert cleaned.row_count == 0

    def test_text_answers(self):
        ds = Dataset.from_rows(
            ["a", "b", "c"],
            [["Agree", "agree ", "AGREE"], ["Agree", "Disagree", "Agree"]],
        )
        cleaned, result = detect_straight_liners(ds, StraightLinerConfig(consecutive_threshold=3))
        assert cleaned.positions == [1]
        assert result.method == "exact"
        assert result.log[0].action == "remove_straight_liner"

    def test_text_column_does_not_mask_likert_run(self):
        header = ["id", "q1", "q2", "q3", "q4", "q5", "comment"]
        types = {q: "likert" for q in header[1:6]}
        rows = [[1, 3, 4, 3, 4, 3, "fine"], [2, 1, 5, 1, 5, 1, "ok"]]
        config = StraightLinerConfig(variance_threshold=0.5, consecutive_threshold=5)

        likert_only = Dataset.from_rows(header[:6], [r[:6] for r in rows], types=types, roles={"id": "identifier"})
        with_comment = Dataset.from_rows(header, rows, types=types, roles={"id": "identifier"})

        _, plain = detect_straight_liners(likert_only, config)
        cleaned, mixed = detect_straight_liners(with_comment, config)
        assert plain.removed_rows == (0,)
        assert mixed.removed_rows == (0,)
        assert cleaned.positions == [1]
        assert mixed.method == "variance"


# ═════════════════════════════════════════════════════════════════════════════
# Speeders
# ═════════════════════════════════════════════════════════════════════════════

class TestSpeeders:

    def test_default_bounds(self):
        ds = make_survey([
            [1, 1, 2, 3, 4, 5, 1, 2, 10],
            [2, 1, 2, 3, 4, 5, 1, 2, 245],
            [3, 1, 2, 3, 4, 5, 1, 2, 4000],
        ])
        cleaned, result = detect_speeders(ds, SpeederConfig())
        assert cleaned.positions == [1]
        assert result.details["too_fast"] == 1
        assert result.details["too_slow"] == 1
        assert result.details["speeders_removed"] == 2

    def test_boundaries_are_inclusive(self):
        ds = make_survey([
            [1, 1, 2, 3, 4, 5, 1, 2, 30],
            [2, 1, 2, 3, 4, 5, 1, 2, 3600],
        ])
        cleaned, _ = detect_speeders(ds, SpeederConfig())
        assert cleaned.row_count == 2

    def test_clock_format_times(self):
        ds = make_survey([
            [1, 1, 2, 3, 4, 5, 1, 2, "00:00:12"],
            [2, 1, 2, 3, 4, 5, 1, 2, "04:05"],
        ])
        cleaned, _ = detect_speeders(ds, SpeederConfig())
        assert cleaned.positions == [1]

    def test_missing_time_is_kept(self):
        ds = make_survey([[1, 1, 2, 3, 4, 5, 1, 2, None]])
        cleaned, result = detect_speeders(ds, SpeederConfig())
        assert cleaned.row_count == 1
        assert result.details["missing_times"] == 1

    def test_absent_time_column(self):
        ds = make_survey([[1, 1, 2, 3, 4, 5, 1, 2, 300]])
        with pytest.raises(MissingTimeColumn) as exc_info:
            detect_speeders(ds, SpeederConfig(time_column="duration"))
        assert exc_info.value.column == "duration"

    def test_max_must_exceed_min(self):
        with pytest.raises(ValueError):
            SpeederConfig(min_time_seconds=100, max_time_seconds=50)
