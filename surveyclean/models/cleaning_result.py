from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from surveyclean.models.cleaning_log import CleaningLogEntry
from surveyclean.models.dataset import Dataset


@dataclass(frozen=True)
class ModuleResult:
    """Outcome of one cleaning module run. Never mutated after creation."""
    module: str
    method: str
    dataset: Dataset
    rows_before: int
    rows_removed: int = 0
    cells_modified: int = 0
    removed_rows: tuple[int, ...] = ()
    flagged_rows: tuple[int, ...] = ()
    details: Mapping[str, Any] = field(default_factory=dict)
    log: tuple[CleaningLogEntry, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))
        object.__setattr__(self, "removed_rows", tuple(int(p) for p in self.removed_rows))
        object.__setattr__(self, "flagged_rows", tuple(int(p) for p in self.flagged_rows))
        object.__setattr__(self, "log", tuple(self.log))

    @property
    def rows_after(self) -> int:
        return self.dataset.row_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": self.module,
            "method": self.method,
            "rows_before": self.rows_before,
            "rows_after": self.rows_after,
            "rows_removed": self.rows_removed,
            "cells_modified": self.cells_modified,
            "removed_rows": list(self.removed_rows),
            "flagged_rows": list(self.flagged_rows),
            "details": dict(self.details),
        }
