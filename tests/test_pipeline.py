"""
Tests for PipelineSession: stage ordering, stale marking, weighting guard and
collaborator outputs.

Run with:
    pytest tests/test_pipeline.py -v
"""

from __future__ import annotations

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio

import pytest

from surveyclean.errors import InvalidWeightTotal, StageOrderError, UnknownColumn
from surveyclean.models.dataset import Dataset
from surveyclean.schemas.cleaning import CleaningConfig
from surveyclean.services.cleaning import CancellationToken
from surveyclean.services.pipeline import PipelineSession, Stage


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

SCHEMA = {
    "respondent_id": {"role": "identifier"},
    "q1": {"type": "likert"},
    "q2": {"type": "likert"},
    "q3": {"type": "likert"},
    "completion_time": {"type": "duration", "role": "metadata"},
}


def make_session() -> PipelineSession:
    rows = [
        [f"R{i}", 1 + i % 5, 1 + (i * 2) % 5, 1 + (i * 3) % 5, 120 + i * 7]
        for i in range(30)
    ]
    rows.append(["R30", 1, 3, 5, 10])          # speeder
    rows.append(["R31"] + rows[4][1:])       # duplicate of R4
    dataset = Dataset.from_rows(["respondent_id", "q1", "q2", "q3", "completion_time"], rows)
    return PipelineSession(dataset)


def light_config() -> CleaningConfig:
    return CleaningConfig.model_validate({
        "deduplication": {"method": "exact", "threshold": 1.0},
        "missing_values": {"method": "mean"},
        "outliers": {"enabled": False},
    })


def cleaned_session() -> PipelineSession:
    session = make_session()
    session.configure_schema(SCHEMA)
    session.run_cleaning(light_config())
    return session


def weighted_session() -> PipelineSession:
    session = cleaned_session()
    session.enter_weighting()
    session.complete_weighting()
    return session


# ═════════════════════════════════════════════════════════════════════════════
# Stage ordering
# ═════════════════════════════════════════════════════════════════════════════

class TestStageOrdering:

    def test_starts_uploaded(self):
        session = make_session()
        assert session.stage == Stage.UPLOADED
        assert session.snapshot()["completed"] == ["uploaded"]

    def test_cleaning_requires_schema(self):
        with pytest.raises(StageOrderError):
            make_session().run_cleaning(light_config())

    def test_weighting_requires_cleaning(self):
        session = make_session()
        session.configure_schema(SCHEMA)
        with pytest.raises(StageOrderError):
            session.enter_weighting()

    def test_visualization_requires_weighting(self):
        session = cleaned_session()
        with pytest.raises(StageOrderError):
            session.record_visualization({"charts": []})

    def test_report_requires_visualization(self):
        with pytest.raises(StageOrderError):
            weighted_session().record_report({"title": "x"})

    def test_schema_unknown_column(self):
        with pytest.raises(UnknownColumn):
            make_session().configure_schema({"nope": {"role": "exclude"}})

    def test_full_walk(self):
        session = weighted_session()
        session.record_visualization({"charts": ["bar"]})
        session.record_report({"title": "Q3 survey"})
        assert session.stage == Stage.REPORTED
        assert session.snapshot()["completed"] == [s.value for s in Stage]


# ═════════════════════════════════════════════════════════════════════════════
# Cleaning inside the session
# ═════════════════════════════════════════════════════════════════════════════

class TestSessionCleaning:

    def test_run_removes_planted_rows(self):
        session = cleaned_session()
        run = session.cleaning_run
        assert run.status == "completed"
        assert 31 in run.result("deduplication").removed_rows
        assert 30 in run.result("speeders").removed_rows
        assert session.stage == Stage.CLEANED
        assert session.processed_dataset.row_count == 30

    def test_module_error_still_completes_stage(self):
        session = make_session()
        session.configure_schema(SCHEMA)
        config = CleaningConfig.model_validate({"speeders": {"time_column": "elapsed"}})
        run = session.run_cleaning(config)
        assert run.status == "completed_with_errors"
        assert [e.kind for e in run.errors] == ["MissingTimeColumn"]
        assert session.stage == Stage.CLEANED
        assert session.enter_weighting().response_columns == ["q1", "q2", "q3"]

    def test_cancelled_run_does_not_complete_stage(self):
        session = make_session()
        session.configure_schema(SCHEMA)
        token = CancellationToken()
        token.cancel()
        run = session.run_cleaning(light_config(), token)
        assert run.status == "cancelled"
        assert session.stage == Stage.SCHEMA_CONFIGURED
        assert not session.is_complete(Stage.CLEANED)

    def test_second_run_refused_while_active(self):
        session = make_session()
        session.configure_schema(SCHEMA)
        active = session.start_cleaning()
        with pytest.raises(StageOrderError):
            asyncio.run(session.run_cleaning_async(light_config()))
        with pytest.raises(StageOrderError):
            session.run_cleaning(light_config())
        assert session.cleaning_active

        assert session.cancel_cleaning() is True
        assert active.cancelled
        run = asyncio.run(session.finish_cleaning_async(light_config()))
        assert run.status == "cancelled"
        assert not session.cleaning_active

    def test_async_run(self):
        session = make_session()
        session.configure_schema(SCHEMA)
        run = asyncio.run(session.run_cleaning_async(light_config()))
        assert run.status == "completed"
        assert session.is_complete(Stage.CLEANED)
        assert session.cancel_cleaning() is False

    def test_audit_log(self):
        session = cleaned_session()
        actions = {e.action for e in session.audit_log()}
        assert {"remove_duplicate", "remove_speeder"} <= actions


# ═════════════════════════════════════════════════════════════════════════════
# Navigation and stale marking
# ═════════════════════════════════════════════════════════════════════════════

class TestNavigationAndStale:

    def test_navigate_back_keeps_outputs(self):
        session = weighted_session()
        session.navigate(Stage.SCHEMA_CONFIGURED)
        assert session.stage == Stage.SCHEMA_CONFIGURED
        assert session.is_complete(Stage.WEIGHTED)
        session.navigate("weighted")
        assert session.stage == Stage.WEIGHTED

    def test_cannot_navigate_to_unreached_stage(self):
        with pytest.raises(StageOrderError):
            cleaned_session().navigate(Stage.VISUALIZED)

    def test_rerunning_schema_marks_downstream_stale(self):
        session = weighted_session()
        session.navigate(Stage.UPLOADED)
        session.configure_schema(SCHEMA)
        assert session.stale == {Stage.CLEANED, Stage.WEIGHTED}
        assert session.cleaning_run is not None
        with pytest.raises(StageOrderError):
            session.navigate(Stage.CLEANED)

    def test_recomputing_clears_stale(self):
        session = weighted_session()
        session.navigate(Stage.SCHEMA_CONFIGURED)
        session.run_cleaning(light_config())
        assert Stage.CLEANED not in session.stale
        assert Stage.WEIGHTED in session.stale
        session.enter_weighting()
        session.complete_weighting()
        assert session.stale == set()

    def test_forward_transition_from_earlier_stage_rejected(self):
        session = weighted_session()
        session.navigate(Stage.UPLOADED)
        with pytest.raises(StageOrderError):
            session.run_cleaning(light_config())

    def test_weight_edit_marks_weighted_stale(self):
        session = weighted_session()
        session.record_visualization({"charts": []})
        session.set_weight("q1", 50)
        assert Stage.WEIGHTED in session.stale
        assert Stage.VISUALIZED in session.stale
        assert session.stage == Stage.CLEANED

    def test_collaborator_payload_is_copied(self):
        session = weighted_session()
        payload = {"charts": ["bar"]}
        session.record_visualization(payload)
        payload["charts"].append("pie")
        assert session.visualization == {"charts": ["bar"]}


# ═════════════════════════════════════════════════════════════════════════════
# Weighting
# ═════════════════════════════════════════════════════════════════════════════

class TestSessionWeighting:

    def test_enter_weighting_equal_split(self):
        session = cleaned_session()
        engine = session.enter_weighting()
        assert engine.snapshot() == pytest.approx({"q1": 100 / 3, "q2": 100 / 3, "q3": 100 / 3})

    def test_reentering_keeps_vector(self):
        session = cleaned_session()
        session.enter_weighting()
        session.set_weight("q1", 50)
        session.navigate(Stage.SCHEMA_CONFIGURED)
        session.run_cleaning(light_config())
        assert session.enter_weighting().snapshot()["q1"] == pytest.approx(50)

    def test_changed_columns_reset_vector(self):
        session = cleaned_session()
        session.enter_weighting()
        session.set_weight("q1", 50)
        session.navigate(Stage.UPLOADED)
        session.configure_schema({**SCHEMA, "q3": {"type": "likert", "role": "exclude"}})
        session.run_cleaning(light_config())
        assert session.enter_weighting().snapshot() == {"q1": 50.0, "q2": 50.0}

    def test_complete_guarded_by_total(self):
        session = cleaned_session()
        engine = session.enter_weighting()
        engine.weights = {"q1": 50.0, "q2": 30.0, "q3": 10.0}
        with pytest.raises(InvalidWeightTotal):
            session.complete_weighting()
        assert not session.is_complete(Stage.WEIGHTED)
        assert engine.snapshot() == {"q1": 50.0, "q2": 30.0, "q3": 10.0}

    def test_weighted_summary(self):
        summary = weighted_session().weighted_summary()
        assert summary["rows"] == 30
        assert [c["column"] for c in summary["columns"]] == ["q1", "q2", "q3"]

    def test_suggestions_applied_through_session(self):
        session = cleaned_session()
        session.enter_weighting()
        suggestions = session.compute_weight_suggestions()
        session.apply_suggestion({c: s["weight"] for c, s in suggestions.items()})
        session.complete_weighting()
        assert session.stage == Stage.WEIGHTED
