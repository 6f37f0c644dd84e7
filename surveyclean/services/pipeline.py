"""
PipelineSession: the explicit context object for one survey dataset.

Stages run strictly forward:

    uploaded → schema_configured → cleaned → weighted → visualized → reported

Every stage's output is kept. The caller may navigate back to any completed
stage; re-running a stage marks every later stage's output stale (kept, not
deleted) until the caller recomputes it. A stage cannot be entered before its
predecessor is complete and current.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional
from uuid import uuid4

from surveyclean.errors import InvalidWeightTotal, StageOrderError
from surveyclean.models.cleaning_log import CleaningLogEntry
from surveyclean.models.dataset import ColumnRole, Dataset
from surveyclean.schemas.cleaning import CleaningConfig
from surveyclean.services.cleaning import (
    CancellationToken,
    CleaningRun,
    run_cleaning,
)
from surveyclean.services.weight_suggestions import suggest_weights, weighted_summary
from surveyclean.services.weights import WeightEngine

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    UPLOADED = "uploaded"
    SCHEMA_CONFIGURED = "schema_configured"
    CLEANED = "cleaned"
    WEIGHTED = "weighted"
    VISUALIZED = "visualized"
    REPORTED = "reported"


STAGE_ORDER = list(Stage)


def _index(stage: Stage) -> int:
    return STAGE_ORDER.index(stage)


class PipelineSession:
    def __init__(self, dataset: Dataset, session_id: Optional[str] = None):
        self.id = session_id or uuid4().hex
        self.created_at = datetime.utcnow()
        self.uploaded = dataset
        self.stage = Stage.UPLOADED
        self.stale: set[Stage] = set()

        self.dataset: Optional[Dataset] = None
        self.cleaning_config: Optional[CleaningConfig] = None
        self.cleaning_run: Optional[CleaningRun] = None
        self.cleaning_active = False
        self.cleaning_progress: dict[str, Any] = {"module": None, "done": 0, "total": 0}
        self._token: Optional[CancellationToken] = None
        self._cleaning_lock = threading.Lock()

        self.weights: Optional[WeightEngine] = None
        self.weight_suggestions: dict[str, dict] = {}
        self._weighted = False

        self.visualization: Optional[dict] = None
        self.report: Optional[dict] = None

    # ─────────────────────────────────────────────────────────────────
    # Stage bookkeeping
    # ─────────────────────────────────────────────────────────────────

    def _has_output(self, stage: Stage) -> bool:
        if stage == Stage.UPLOADED:
            return True
        if stage == Stage.SCHEMA_CONFIGURED:
            return self.dataset is not None
        if stage == Stage.CLEANED:
            return self.cleaning_run is not None and self.cleaning_run.finished
        if stage == Stage.WEIGHTED:
            return self._weighted
        if stage == Stage.VISUALIZED:
            return self.visualization is not None
        return self.report is not None

    def is_complete(self, stage: Stage) -> bool:
        return self._has_output(stage) and stage not in self.stale

    def require(self, stage: Stage) -> None:
        """Entering the stage after ``stage`` needs ``stage`` complete and current."""
        if not self.is_complete(stage) or _index(self.stage) < _index(stage):
            raise StageOrderError(
                f"Stage '{stage.value}' must be completed first (current stage: '{self.stage.value}')",
                value=stage.value,
            )

    def _invalidate_after(self, stage: Stage) -> None:
        for later in STAGE_ORDER[_index(stage) + 1:]:
            if self._has_output(later):
                self.stale.add(later)

    def _advance(self, stage: Stage) -> None:
        self.stale.discard(stage)
        self._invalidate_after(stage)
        self.stage = stage
        logger.info("session %s reached stage %s", self.id, stage.value)

    def navigate(self, stage: Stage | str) -> Stage:
        """Move to any stage whose output, and every earlier one, is current."""
        stage = Stage(stage)
        for earlier in STAGE_ORDER[: _index(stage) + 1]:
            if not self.is_complete(earlier):
                raise StageOrderError(
                    f"Cannot navigate to '{stage.value}': '{earlier.value}' is not complete",
                    value=stage.value,
                )
        self.stage = stage
        return self.stage

    # ─────────────────────────────────────────────────────────────────
    # Schema configuration
    # ─────────────────────────────────────────────────────────────────

    def configure_schema(self, assignment: Mapping[str, Mapping[str, str]]) -> Dataset:
        """Apply ``{column: {"type": ..., "role": ...}}``; omitted columns keep their defaults."""
        self.require(Stage.UPLOADED)
        self.uploaded.require_columns(list(assignment))
        types = {c: spec["type"] for c, spec in assignment.items() if spec.get("type")}
        roles = {c: spec["role"] for c, spec in assignment.items() if spec.get("role")}
        self.dataset = self.uploaded.with_schema(types=types, roles=roles)
        self._advance(Stage.SCHEMA_CONFIGURED)
        return self.dataset

    # ─────────────────────────────────────────────────────────────────
    # Cleaning
    # ─────────────────────────────────────────────────────────────────

    def _on_progress(self, module: str, done: int, total: int) -> None:
        self.cleaning_progress = {"module": module, "done": done, "total": total}

    def start_cleaning(self, token: Optional[CancellationToken] = None) -> CancellationToken:
        """Claim the session for one cleaning run; refused while another run is active."""
        with self._cleaning_lock:
            self.require(Stage.SCHEMA_CONFIGURED)
            if self.cleaning_active:
                raise StageOrderError("A cleaning run is already in progress")
            self.cleaning_active = True
            self._token = token or CancellationToken()
            return self._token

    def _run_claimed(self, config: Optional[CleaningConfig]) -> CleaningRun:
        config = config or CleaningConfig()
        try:
            run = run_cleaning(self.dataset, config, token=self._token, on_progress=self._on_progress)
        finally:
            with self._cleaning_lock:
                self.cleaning_active = False
                self._token = None

        self.cleaning_config = config
        self.cleaning_run = run
        if run.finished:
            self._advance(Stage.CLEANED)
            if run.errors:
                logger.warning(
                    "session %s cleaning finished with %d module error(s)", self.id, len(run.errors)
                )
        else:
            self._invalidate_after(Stage.SCHEMA_CONFIGURED)
            self.stage = Stage.SCHEMA_CONFIGURED
            logger.warning("session %s cleaning ended with status %s", self.id, run.status)
        return run

    def run_cleaning(
        self,
        config: Optional[CleaningConfig] = None,
        token: Optional[CancellationToken] = None,
    ) -> CleaningRun:
        self.start_cleaning(token)
        return self._run_claimed(config)

    async def finish_cleaning_async(self, config: Optional[CleaningConfig] = None) -> CleaningRun:
        """Run an already-claimed cleaning on a worker thread."""
        return await asyncio.to_thread(self._run_claimed, config)

    async def run_cleaning_async(self, config: Optional[CleaningConfig] = None) -> CleaningRun:
        self.start_cleaning()
        return await self.finish_cleaning_async(config)

    def cancel_cleaning(self) -> bool:
        with self._cleaning_lock:
            if self._token is None:
                return False
            self._token.cancel()
            return True

    @property
    def processed_dataset(self) -> Optional[Dataset]:
        if self.cleaning_run is None:
            return None
        return self.cleaning_run.dataset

    def audit_log(self) -> list[CleaningLogEntry]:
        return [] if self.cleaning_run is None else self.cleaning_run.audit_log

    # ─────────────────────────────────────────────────────────────────
    # Weighting
    # ─────────────────────────────────────────────────────────────────

    def enter_weighting(self) -> WeightEngine:
        self.require(Stage.CLEANED)
        columns = self.processed_dataset.columns_with_role(ColumnRole.RESPONSE)
        if self.weights is None or self.weights.response_columns != columns:
            self.weights = WeightEngine(columns)
            self.weight_suggestions = {}
        return self.weights

    def weight_engine(self) -> WeightEngine:
        if self.weights is None or not self.is_complete(Stage.CLEANED):
            raise StageOrderError("Weighting has not been entered for the current cleaning run")
        return self.weights

    def _weights_changed(self) -> None:
        if self._weighted:
            self.stale.add(Stage.WEIGHTED)
            self._invalidate_after(Stage.WEIGHTED)
        if _index(self.stage) > _index(Stage.CLEANED):
            self.stage = Stage.CLEANED

    def set_weight(self, column: str, value: float) -> dict[str, float]:
        engine = self.weight_engine()
        before = engine.snapshot()
        result = engine.set_weight(column, value)
        if result != before:
            self._weights_changed()
        return result

    def lock(self, column: str) -> None:
        self.weight_engine().lock(column)

    def unlock(self, column: str) -> None:
        self.weight_engine().unlock(column)

    def compute_weight_suggestions(self) -> dict[str, dict]:
        engine = self.weight_engine()
        self.weight_suggestions = suggest_weights(self.processed_dataset, engine.response_columns)
        return self.weight_suggestions

    def apply_suggestion(
        self,
        vector: Mapping[str, float],
        rationale: Optional[Mapping[str, str]] = None,
    ) -> dict[str, float]:
        result = self.weight_engine().apply_suggestion(vector, rationale)
        self._weights_changed()
        return result

    def reset_weights(self) -> dict[str, float]:
        result = self.weight_engine().reset()
        self._weights_changed()
        return result

    def undo_weights(self) -> dict[str, float]:
        result = self.weight_engine().undo()
        self._weights_changed()
        return result

    def complete_weighting(self) -> dict[str, float]:
        self.require(Stage.CLEANED)
        engine = self.weight_engine()
        if not engine.check_total():
            raise InvalidWeightTotal(
                f"Weights total {engine.total:.3f}, expected 100 ± {engine.tolerance}",
                value=round(engine.total, 6),
            )
        self._weighted = True
        self._advance(Stage.WEIGHTED)
        return engine.snapshot()

    def weighted_summary(self) -> dict:
        self.require(Stage.WEIGHTED)
        return weighted_summary(self.processed_dataset, self.weights.snapshot())

    # ─────────────────────────────────────────────────────────────────
    # External collaborators (visualization / report)
    # ─────────────────────────────────────────────────────────────────

    def record_visualization(self, payload: Mapping[str, Any]) -> dict:
        self.require(Stage.WEIGHTED)
        self.visualization = copy.deepcopy(dict(payload))
        self._advance(Stage.VISUALIZED)
        return self.visualization

    def record_report(self, payload: Mapping[str, Any]) -> dict:
        self.require(Stage.VISUALIZED)
        self.report = copy.deepcopy(dict(payload))
        self._advance(Stage.REPORTED)
        return self.report

    # ─────────────────────────────────────────────────────────────────
    # Read-only view
    # ─────────────────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        processed = self.processed_dataset
        return {
            "session_id": self.id,
            "created_at": self.created_at,
            "stage": self.stage.value,
            "completed": [s.value for s in STAGE_ORDER if self.is_complete(s)],
            "stale": [s.value for s in STAGE_ORDER if s in self.stale],
            "columns": (self.dataset or self.uploaded).describe_columns(),
            "original_rows": self.uploaded.row_count,
            "processed_rows": None if processed is None else processed.row_count,
            "cleaning_status": (
                "running" if self.cleaning_active
                else None if self.cleaning_run is None
                else self.cleaning_run.status
            ),
        }
