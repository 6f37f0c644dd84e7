"""
DataCleaningPipeline: runs the enabled cleaning modules in canonical order.

    1. deduplication      (later detectors assume duplicates are gone)
    2. missing_values
    3. outliers
    4. invalid_data
    5. straight_liners
    6. speeders

Each module consumes the previous module's output Dataset. Modules run
strictly in sequence; a cancellation request is honoured only between
modules. A module that raises is recorded as failed and its input passes
through unchanged to the next module; the run finishes with status
``completed_with_errors``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from surveyclean.errors import SurveyCleanError
from surveyclean.models.cleaning_log import CleaningLogEntry
from surveyclean.models.cleaning_result import ModuleResult
from surveyclean.models.dataset import Dataset
from surveyclean.schemas.cleaning import CleaningConfig
from surveyclean.services.deduplication import deduplicate
from surveyclean.services.imputation import impute_missing
from surveyclean.services.outliers import detect_outliers
from surveyclean.services.quality import calculate_quality_score
from surveyclean.services.response_quality import detect_speeders, detect_straight_liners
from surveyclean.services.validation import validate_rows

logger = logging.getLogger(__name__)

CANONICAL_ORDER = (
    ("deduplication", deduplicate),
    ("missing_values", impute_missing),
    ("outliers", detect_outliers),
    ("invalid_data", validate_rows),
    ("straight_liners", detect_straight_liners),
    ("speeders", detect_speeders),
)

STATUS_COMPLETED = "completed"
STATUS_COMPLETED_WITH_ERRORS = "completed_with_errors"
STATUS_CANCELLED = "cancelled"

# Statuses whose dataset reflects every enabled module
FINISHED_STATUSES = (STATUS_COMPLETED, STATUS_COMPLETED_WITH_ERRORS)


class CancellationToken:
    """Set from another thread to stop a run at the next module boundary."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class ModuleFailure:
    module: str
    kind: str
    message: str
    column: Optional[str] = None
    value: Optional[str] = None


@dataclass(frozen=True)
class CleaningRun:
    status: str
    original: Dataset
    dataset: Dataset
    results: tuple[ModuleResult, ...]
    quality_score: float
    errors: tuple[ModuleFailure, ...] = ()

    @property
    def finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    @property
    def original_rows(self) -> int:
        return self.original.row_count

    @property
    def removed_rows(self) -> int:
        return sum(r.rows_removed for r in self.results)

    @property
    def processed_rows(self) -> int:
        return self.original_rows - self.removed_rows

    @property
    def modified_rows(self) -> int:
        return sum(r.details.get("rows_modified", 0) for r in self.results)

    def result(self, module: str) -> Optional[ModuleResult]:
        for r in self.results:
            if r.module == module:
                return r
        return None

    @property
    def audit_log(self) -> list[CleaningLogEntry]:
        return [entry for r in self.results for entry in r.log]

    def summary(self) -> dict:
        return {
            "status": self.status,
            "original_rows": self.original_rows,
            "processed_rows": self.processed_rows,
            "removed_rows": self.removed_rows,
            "modified_rows": self.modified_rows,
            "quality_score": self.quality_score,
            "modules": [r.to_dict() for r in self.results],
            "errors": [asdict(e) for e in self.errors],
            "fingerprint": self.dataset.fingerprint(),
        }


ProgressCallback = Callable[[str, int, int], None]


class DataCleaningPipeline:
    def __init__(self, config: CleaningConfig):
        self.config = config

    def enabled_modules(self) -> list[str]:
        return [name for name, _ in CANONICAL_ORDER if getattr(self.config, name).enabled]

    def run(
        self,
        dataset: Dataset,
        token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> CleaningRun:
        """Execute enabled modules in canonical order. Returns the run record."""
        steps = [(name, fn) for name, fn in CANONICAL_ORDER if getattr(self.config, name).enabled]
        current = dataset
        results: list[ModuleResult] = []
        status = STATUS_COMPLETED
        errors: list[ModuleFailure] = []

        for index, (name, module_fn) in enumerate(steps):
            if token is not None and token.cancelled:
                logger.info("cleaning cancelled before %s (%d/%d modules done)", name, index, len(steps))
                status = STATUS_CANCELLED
                break
            if on_progress is not None:
                on_progress(name, index, len(steps))
            try:
                current, result = module_fn(current, getattr(self.config, name))
            except SurveyCleanError as exc:
                logger.warning("cleaning module %s failed: %s (%s)", name, exc.message, exc.kind)
                errors.append(ModuleFailure(
                    module=name,
                    kind=exc.kind,
                    message=exc.message,
                    column=exc.column,
                    value=None if exc.value is None else str(exc.value),
                ))
                continue
            results.append(result)

        if status == STATUS_COMPLETED and errors:
            status = STATUS_COMPLETED_WITH_ERRORS
        if on_progress is not None and status != STATUS_CANCELLED:
            on_progress("done", len(steps), len(steps))

        run = CleaningRun(
            status=status,
            original=dataset,
            dataset=current,
            results=tuple(results),
            quality_score=calculate_quality_score(current, dataset.row_count),
            errors=tuple(errors),
        )
        if run.processed_rows != current.row_count:
            logger.error(
                "row accounting drifted: %d rows expected, %d present",
                run.processed_rows, current.row_count,
            )
        logger.info(
            "cleaning %s: %d -> %d rows (%d removed, %d modified)",
            status, run.original_rows, run.processed_rows, run.removed_rows, run.modified_rows,
        )
        return run


def run_cleaning(
    dataset: Dataset,
    config: CleaningConfig,
    token: Optional[CancellationToken] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> CleaningRun:
    return DataCleaningPipeline(config).run(dataset, token=token, on_progress=on_progress)
