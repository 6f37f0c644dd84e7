"""
Tests for weight redistribution and the WeightEngine.

Run with:
    pytest tests/test_weights.py -v
"""

from __future__ import annotations

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import itertools

import pytest

from surveyclean.errors import (
    ColumnLocked,
    ColumnSetMismatch,
    InvalidWeightTotal,
    InvalidWeightValue,
    NoHistory,
    UnknownColumn,
)
from surveyclean.services.weights import (
    WeightEngine,
    equal_split,
    normalize,
    redistribute,
    total_is_valid,
)


COLUMNS = ["q1", "q2", "q3", "q4"]


def make_engine(**kwargs) -> WeightEngine:
    return WeightEngine(COLUMNS, **kwargs)


# ═════════════════════════════════════════════════════════════════════════════
# Pure helpers
# ═════════════════════════════════════════════════════════════════════════════

class TestRedistribute:

    def test_even_split_of_delta(self):
        weights = equal_split(COLUMNS)
        result = redistribute(weights, set(), "q1", 40)
        assert result == pytest.approx({"q1": 40, "q2": 20, "q3": 20, "q4": 20})

    def test_input_not_mutated(self):
        weights = equal_split(COLUMNS)
        redistribute(weights, set(), "q1", 40)
        assert weights == {c: 25.0 for c in COLUMNS}

    def test_locked_columns_do_not_absorb_delta(self):
        weights = equal_split(COLUMNS)
        result = redistribute(weights, {"q2"}, "q1", 45)
        assert result == pytest.approx({"q1": 45, "q2": 25, "q3": 15, "q4": 15})

    def test_clamp_then_renormalize_including_locked(self):
        weights = {"q1": 10.0, "q2": 80.0, "q3": 5.0, "q4": 5.0}
        result = redistribute(weights, {"q2"}, "q1", 40)
        # q3/q4 would go to -10 and clamp at 0; total 120 rescales all, q2 drifts
        assert result["q3"] == 0
        assert result["q4"] == 0
        assert result["q1"] == pytest.approx(40 / 120 * 100)
        assert result["q2"] == pytest.approx(80 / 120 * 100)
        assert sum(result.values()) == pytest.approx(100)

    def test_value_clamped_to_range(self):
        result = redistribute(equal_split(COLUMNS), set(), "q1", 150)
        assert result["q1"] == pytest.approx(100)
        assert all(result[c] == 0 for c in ["q2", "q3", "q4"])

    def test_no_unlocked_others_is_noop(self):
        weights = equal_split(COLUMNS)
        assert redistribute(weights, {"q2", "q3", "q4"}, "q1", 60) == weights

    def test_locked_target_rejected(self):
        with pytest.raises(ColumnLocked):
            redistribute(equal_split(COLUMNS), {"q1"}, "q1", 60)

    def test_unknown_column(self):
        with pytest.raises(UnknownColumn):
            redistribute(equal_split(COLUMNS), set(), "q9", 60)

    def test_non_numeric_value(self):
        with pytest.raises(InvalidWeightValue):
            redistribute(equal_split(COLUMNS), set(), "q1", "lots")

    def test_normalize_zero_total(self):
        with pytest.raises(InvalidWeightTotal):
            normalize({"a": 0.0, "b": 0.0})

    def test_total_is_valid_tolerance(self):
        assert total_is_valid({"a": 50.05, "b": 50.0}, 0.1)
        assert not total_is_valid({"a": 50.2, "b": 50.0}, 0.1)


# ═════════════════════════════════════════════════════════════════════════════
# WeightEngine
# ═════════════════════════════════════════════════════════════════════════════

class TestWeightEngine:

    def test_initial_equal_split(self):
        engine = make_engine()
        assert engine.snapshot() == {c: 25.0 for c in COLUMNS}
        assert engine.check_total()

    @pytest.mark.parametrize(
        "edits",
        [
            [("q1", 70), ("q2", 5), ("q3", 99.9)],
            [("q4", 0), ("q1", 0), ("q2", 0)],
            [("q1", 33.3), ("q2", 33.3), ("q3", 33.3), ("q4", 12.5)],
        ],
    )
    def test_total_stays_at_100(self, edits):
        engine = make_engine()
        engine.lock("q4")
        for column, value in edits:
            if column in engine.locked:
                continue
            engine.set_weight(column, value)
            assert abs(engine.total - 100) <= 0.1

    def test_total_stays_at_100_for_edit_grid(self):
        for column, value in itertools.product(COLUMNS, [0, 1, 12.5, 50, 99, 100]):
            engine = make_engine()
            engine.lock("q3")
            if column == "q3":
                continue
            engine.set_weight(column, value)
            assert abs(engine.total - 100) <= 0.1

    def test_same_value_is_idempotent(self):
        engine = make_engine()
        engine.set_weight("q1", 25.0)
        assert engine.snapshot() == {c: 25.0 for c in COLUMNS}
        assert len(engine.history) == 0

    def test_locked_column_rejected_and_unchanged(self):
        engine = make_engine()
        engine.set_weight("q2", 40)
        engine.lock("q2")
        before = engine.snapshot()
        with pytest.raises(ColumnLocked):
            engine.set_weight("q2", 10)
        assert engine.snapshot() == before

    def test_unlock(self):
        engine = make_engine()
        engine.lock("q1")
        engine.unlock("q1")
        engine.set_weight("q1", 10)
        assert engine.snapshot()["q1"] == pytest.approx(10)

    def test_toggle_lock(self):
        engine = make_engine()
        assert engine.toggle_lock("q1") is True
        assert engine.toggle_lock("q1") is False

    def test_undo_restores_exact_vector(self):
        engine = make_engine()
        engine.set_weight("q1", 37.3)
        before = engine.snapshot()
        engine.set_weight("q2", 11.1)
        assert engine.undo() == before
        assert engine.snapshot() == before

    def test_undo_without_history(self):
        engine = make_engine()
        with pytest.raises(NoHistory):
            engine.undo()
        assert engine.snapshot() == {c: 25.0 for c in COLUMNS}

    def test_history_is_bounded(self):
        engine = make_engine(history_size=3)
        for value in [10, 20, 30, 40, 50]:
            engine.set_weight("q1", value)
        assert len(engine.history) == 3
        for _ in range(3):
            engine.undo()
        assert engine.snapshot()["q1"] == pytest.approx(20)
        with pytest.raises(NoHistory):
            engine.undo()

    def test_reset(self):
        engine = make_engine()
        engine.set_weight("q1", 70)
        engine.lock("q2")
        assert engine.reset() == {c: 25.0 for c in COLUMNS}
        assert engine.locked == set()
        engine.undo()
        assert engine.snapshot()["q1"] == pytest.approx(70)


class TestApplySuggestion:

    def test_replaces_vector_and_keeps_rationale(self):
        engine = make_engine()
        vector = {"q1": 40.0, "q2": 30.0, "q3": 20.0, "q4": 10.0}
        result = engine.apply_suggestion(vector, {"q1": "High variance"})
        assert result == vector
        assert engine.state()["rationale"] == {"q1": "High variance"}
        assert engine.undo() == {c: 25.0 for c in COLUMNS}

    def test_off_total_is_renormalised(self):
        engine = make_engine()
        result = engine.apply_suggestion({"q1": 2, "q2": 1, "q3": 1, "q4": 0})
        assert result == pytest.approx({"q1": 50, "q2": 25, "q3": 25, "q4": 0})
        assert engine.check_total()

    def test_column_set_mismatch(self):
        engine = make_engine()
        with pytest.raises(ColumnSetMismatch):
            engine.apply_suggestion({"q1": 50, "q2": 50})
        with pytest.raises(ColumnSetMismatch):
            engine.apply_suggestion({"q1": 20, "q2": 20, "q3": 20, "q4": 20, "q5": 20})

    def test_negative_value_rejected(self):
        engine = make_engine()
        with pytest.raises(InvalidWeightValue):
            engine.apply_suggestion({"q1": -10, "q2": 60, "q3": 25, "q4": 25})
        assert engine.snapshot() == {c: 25.0 for c in COLUMNS}

    def test_locks_survive(self):
        engine = make_engine()
        engine.lock("q1")
        engine.apply_suggestion({"q1": 10, "q2": 30, "q3": 30, "q4": 30})
        assert engine.locked == {"q1"}
