"""
Dataset: a typed, immutable in-memory survey table.

A Dataset is an ordered list of column definitions plus a pandas DataFrame of
raw cell values. Every row holds every column (missing cells are explicit
``None``), and every row keeps its original 0-based source position as the
DataFrame index so cleaning modules can report and tie-break by it.

No method mutates the Dataset; every operation returns a new one.
"""

from __future__ import annotations

import hashlib
import json
import math
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Iterator, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from surveyclean.errors import TypeMismatch, UnknownColumn


class ColumnType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    CATEGORICAL = "categorical"
    LIKERT = "likert"
    DURATION = "duration"


class ColumnRole(str, Enum):
    IDENTIFIER = "identifier"
    DEMOGRAPHIC = "demographic"
    RESPONSE = "response"
    METADATA = "metadata"
    WEIGHT = "weight"
    EXCLUDE = "exclude"


NUMERIC_TYPES = frozenset({ColumnType.NUMBER, ColumnType.LIKERT, ColumnType.DURATION})

TRUE_VALUES = {"true", "t", "yes", "y", "1"}
FALSE_VALUES = {"false", "f", "no", "n", "0"}


@dataclass(frozen=True)
class ColumnDef:
    name: str
    type: ColumnType = ColumnType.TEXT
    role: ColumnRole = ColumnRole.RESPONSE

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TYPES


# ─────────────────────────────────────────────────────────────────────────────
# Cell coercion
# ─────────────────────────────────────────────────────────────────────────────

def is_missing(value: Any) -> bool:
    if value is None or value is pd.NA or value is pd.NaT:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def normalize_value(value: Any) -> Optional[str]:
    """Canonical text for equality checks: 5, 5.0 and " 5 " all compare equal."""
    if is_missing(value):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, bool):
        number = float(value)
        if number.is_integer():
            return str(int(number))
        return repr(number)
    text = re.sub(r"\s+", " ", str(value).strip().lower())
    try:
        number = float(text)
    except ValueError:
        return text
    if math.isfinite(number) and number.is_integer():
        return str(int(number))
    return text


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, (int, float, np.integer, np.floating)):
        return float(value)
    return float(str(value).strip())


def parse_duration(value: Any) -> float:
    """Seconds from a number or an ``HH:MM:SS`` / ``MM:SS`` string."""
    try:
        return _to_float(value)
    except ValueError:
        pass
    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"not a duration: {value!r}")
    seconds = 0.0
    for part in parts:
        seconds = seconds * 60 + float(part)
    return seconds


def parse_boolean(value: Any) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    text = str(value).strip().lower()
    if text.endswith(".0"):
        text = text[:-2]
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def coerce_value(value: Any, column_type: ColumnType, column: str = None) -> Any:
    """Coerce a raw cell to ``column_type``; missing cells come back as None."""
    if is_missing(value):
        return None
    try:
        if column_type in (ColumnType.NUMBER, ColumnType.LIKERT):
            result = _to_float(value)
            if math.isnan(result):
                return None
            return result
        if column_type == ColumnType.DURATION:
            return parse_duration(value)
        if column_type == ColumnType.DATE:
            return pd.Timestamp(pd.to_datetime(value))
        if column_type == ColumnType.BOOLEAN:
            return parse_boolean(value)
    except (ValueError, TypeError, OverflowError) as exc:
        raise TypeMismatch(
            f"Value {value!r} in column '{column}' is not a valid {column_type.value}: {exc}",
            column=column,
            value=value,
        ) from exc
    return str(value).strip()


# ─────────────────────────────────────────────────────────────────────────────
# Dataset
# ─────────────────────────────────────────────────────────────────────────────

class Dataset:
    def __init__(self, columns: Sequence[ColumnDef], frame: pd.DataFrame):
        names = [c.name for c in columns]
        if list(frame.columns) != names:
            raise ValueError("frame columns do not match column definitions")
        self._columns = tuple(columns)
        self._by_name = {c.name: c for c in self._columns}
        self._frame = frame

    @classmethod
    def from_rows(
        cls,
        header: Sequence[str],
        rows: Sequence[Sequence[Any] | Mapping[str, Any]],
        types: Optional[Mapping[str, ColumnType | str]] = None,
        roles: Optional[Mapping[str, ColumnRole | str]] = None,
    ) -> "Dataset":
        """Build from a header and parsed rows (sequences or mappings)."""
        names = [str(h) for h in header]
        if len(set(names)) != len(names):
            raise ValueError("duplicate column names in header")

        records = []
        for position, row in enumerate(rows):
            if isinstance(row, Mapping):
                values = [row.get(name) for name in names]
            else:
                values = list(row)
                if len(values) > len(names):
                    raise ValueError(
                        f"row {position} has {len(values)} cells for {len(names)} columns"
                    )
                values += [None] * (len(names) - len(values))
            records.append([None if is_missing(v) else v for v in values])

        frame = pd.DataFrame(records, columns=names, dtype=object)
        frame.index = pd.Index(range(len(records)), dtype="int64")

        types = types or {}
        roles = roles or {}
        columns = [
            ColumnDef(
                name=name,
                type=ColumnType(types.get(name, ColumnType.TEXT)),
                role=ColumnRole(roles.get(name, ColumnRole.RESPONSE)),
            )
            for name in names
        ]
        return cls(columns, frame)

    # ── Introspection ────────────────────────────────────────────────

    @property
    def columns(self) -> tuple[ColumnDef, ...]:
        return self._columns

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self._columns]

    @property
    def row_count(self) -> int:
        return len(self._frame)

    def __len__(self) -> int:
        return self.row_count

    @property
    def positions(self) -> list[int]:
        """Original source positions of the remaining rows, in order."""
        return [int(i) for i in self._frame.index]

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame.copy()

    def column(self, name: str) -> ColumnDef:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownColumn(f"Column '{name}' not found", column=name) from None

    def has_column(self, name: str) -> bool:
        return name in self._by_name

    def require_columns(self, names: Sequence[str]) -> None:
        for name in names:
            self.column(name)

    def columns_with_role(self, *roles: ColumnRole) -> list[str]:
        return [c.name for c in self._columns if c.role in roles]

    # ── Cell access ──────────────────────────────────────────────────

    def raw(self, position: int, column: str) -> Any:
        self.column(column)
        return self._frame.at[position, column]

    def cell(self, position: int, column: str) -> Any:
        """Typed cell value; raises TypeMismatch if the raw value does not coerce."""
        col = self.column(column)
        return coerce_value(self._frame.at[position, column], col.type, column)

    def row(self, position: int) -> dict[str, Any]:
        return {name: self._frame.at[position, name] for name in self.column_names}

    def iter_rows(self) -> Iterator[tuple[int, dict[str, Any]]]:
        names = self.column_names
        for position, values in zip(self._frame.index, self._frame.itertuples(index=False, name=None)):
            yield int(position), dict(zip(names, values))

    def typed_values(self, column: str) -> list[Any]:
        col = self.column(column)
        return [coerce_value(v, col.type, column) for v in self._frame[column]]

    def numeric_series(self, column: str) -> pd.Series:
        """Column as floats indexed by source position (NaN for missing cells)."""
        col = self.column(column)
        target = col.type if col.is_numeric else ColumnType.NUMBER
        values = [coerce_value(v, target, column) for v in self._frame[column]]
        return pd.Series(
            [np.nan if v is None else v for v in values],
            index=self._frame.index,
            dtype="float64",
            name=column,
        )

    def missing_mask(self, column: str) -> pd.Series:
        self.column(column)
        return self._frame[column].map(is_missing).astype(bool)

    def missing_fraction(self, column: str) -> float:
        if self.row_count == 0:
            return 0.0
        return float(self.missing_mask(column).mean())

    # ── Derivation (always returns a new Dataset) ────────────────────

    def select(self, columns: Sequence[str]) -> "Dataset":
        self.require_columns(columns)
        defs = [self._by_name[name] for name in columns]
        return Dataset(defs, self._frame[list(columns)].copy())

    def filter(self, predicate: Callable[[dict[str, Any]], bool]) -> "Dataset":
        keep = [position for position, row in self.iter_rows() if predicate(row)]
        return Dataset(self._columns, self._frame.loc[keep].copy())

    def drop_positions(self, positions: Sequence[int]) -> "Dataset":
        if not positions:
            return Dataset(self._columns, self._frame.copy())
        return Dataset(self._columns, self._frame.drop(index=list(positions)).copy())

    def with_values(self, column: str, values: Mapping[int, Any]) -> "Dataset":
        self.column(column)
        frame = self._frame.copy()
        for position, value in values.items():
            frame.at[position, column] = value
        return Dataset(self._columns, frame)

    def with_schema(
        self,
        types: Optional[Mapping[str, ColumnType | str]] = None,
        roles: Optional[Mapping[str, ColumnRole | str]] = None,
    ) -> "Dataset":
        types = types or {}
        roles = roles or {}
        self.require_columns(list(types) + list(roles))
        defs = [
            replace(
                c,
                type=ColumnType(types.get(c.name, c.type)),
                role=ColumnRole(roles.get(c.name, c.role)),
            )
            for c in self._columns
        ]
        return Dataset(defs, self._frame.copy())

    # ── Export / comparison ──────────────────────────────────────────

    def to_records(self) -> list[dict[str, Any]]:
        return [
            {k: (None if is_missing(v) else v) for k, v in row.items()}
            for _, row in self.iter_rows()
        ]

    def describe_columns(self) -> list[dict[str, Any]]:
        return [
            {"name": c.name, "type": c.type.value, "role": c.role.value}
            for c in self._columns
        ]

    def fingerprint(self) -> str:
        payload = {
            "columns": self.describe_columns(),
            "positions": self.positions,
            "rows": self.to_records(),
        }
        text = json.dumps(payload, sort_keys=True, default=str)
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def equals(self, other: "Dataset") -> bool:
        return isinstance(other, Dataset) and self.fingerprint() == other.fingerprint()

    def __repr__(self) -> str:
        return f"Dataset(rows={self.row_count}, columns={self.column_names})"
