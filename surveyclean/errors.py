"""
Error kinds raised by the cleaning and weighting core.

Every error carries the kind name plus the offending column and value so the
HTTP layer (and the audit trail) can report exactly what failed.
"""

from __future__ import annotations

from typing import Any, Optional


class SurveyCleanError(Exception):
    kind = "SurveyCleanError"

    def __init__(
        self,
        message: str,
        column: Optional[str] = None,
        value: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.column = column
        self.value = value

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "column": self.column,
            "value": None if self.value is None else str(self.value),
        }


class TypeMismatch(SurveyCleanError):
    """A cell does not coerce to its column's declared type."""
    kind = "TypeMismatch"


class UnsupportedColumnType(SurveyCleanError):
    """Numeric imputation was requested for a non-numeric column."""
    kind = "UnsupportedColumnType"


class MissingTimeColumn(SurveyCleanError):
    kind = "MissingTimeColumn"


class UnknownColumn(SurveyCleanError):
    kind = "UnknownColumn"


class ColumnLocked(SurveyCleanError):
    kind = "ColumnLocked"


class ColumnSetMismatch(SurveyCleanError):
    kind = "ColumnSetMismatch"


class InvalidWeightValue(SurveyCleanError):
    kind = "InvalidWeightValue"


class NoHistory(SurveyCleanError):
    kind = "NoHistory"


class InvalidWeightTotal(SurveyCleanError):
    """Weight vector total is outside 100 ± tolerance."""
    kind = "InvalidWeightTotal"


class StageOrderError(SurveyCleanError):
    """A pipeline stage was entered before its predecessor completed."""
    kind = "StageOrderError"


class SessionNotFound(SurveyCleanError):
    kind = "SessionNotFound"
