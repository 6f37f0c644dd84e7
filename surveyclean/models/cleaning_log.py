from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class CleaningLogEntry:
    # Action types: remove_duplicate | fill_missing | skip_column | remove_outlier |
    #               flag_outlier | remove_invalid | remove_straight_liner |
    #               remove_speeder
    module: str
    action: str
    reason: str

    row_index: Optional[int] = None      # source row position (None = column-level)
    column_name: Optional[str] = None

    original_value: Optional[str] = None
    new_value: Optional[str] = None

    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return asdict(self)


def log_entry(
    module: str,
    action: str,
    reason: str,
    column_name: Optional[str] = None,
    row_index: Optional[int] = None,
    original_value=None,
    new_value=None,
) -> CleaningLogEntry:
    return CleaningLogEntry(
        module=module,
        action=action,
        reason=reason,
        column_name=column_name,
        row_index=int(row_index) if row_index is not None else None,
        original_value=str(original_value) if original_value is not None else None,
        new_value=str(new_value) if new_value is not None else None,
    )
