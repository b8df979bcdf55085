"""
Dataset Model

Canonical in-memory representation of a tabular dataset: ordered rows,
named columns and a declared type per column. A Dataset is never mutated
after construction; every transformation returns a new instance.
"""

import pandas as pd
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from dataclasses import dataclass
from enum import Enum
import logging

from .errors import InvalidConfiguration

logger = logging.getLogger(__name__)


class ColumnType(Enum):
    """Declared value type of a column"""
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"
    DATE = "date"


class ColumnRole(Enum):
    """Privacy role of a column"""
    QUASI_IDENTIFIER = "quasi_identifier"
    SENSITIVE = "sensitive"


TypeSpec = Union[ColumnType, str]


def _infer_type(series: pd.Series) -> ColumnType:
    """Infer the column type from the pandas dtype"""
    if pd.api.types.is_bool_dtype(series):
        return ColumnType.CATEGORICAL
    if pd.api.types.is_numeric_dtype(series):
        return ColumnType.NUMERIC
    if pd.api.types.is_datetime64_any_dtype(series):
        return ColumnType.DATE
    return ColumnType.CATEGORICAL


def _coerce(series: pd.Series, column_type: ColumnType, name: str) -> pd.Series:
    """Convert a column to the representation used for its declared type"""
    if column_type == ColumnType.NUMERIC:
        if pd.api.types.is_bool_dtype(series):
            raise InvalidConfiguration(f"Column '{name}' is boolean, not numeric")
        try:
            return pd.to_numeric(series, errors='raise')
        except (ValueError, TypeError) as e:
            raise InvalidConfiguration(f"Column '{name}' declared numeric: {e}") from e

    if column_type == ColumnType.DATE:
        try:
            return pd.to_datetime(series, errors='raise')
        except (ValueError, TypeError) as e:
            raise InvalidConfiguration(f"Column '{name}' declared date: {e}") from e

    if isinstance(series.dtype, pd.CategoricalDtype):
        return series.astype(object)
    return series


def _parse_type(value: TypeSpec) -> ColumnType:
    if isinstance(value, ColumnType):
        return value
    try:
        return ColumnType(str(value).lower())
    except ValueError:
        raise InvalidConfiguration(f"Unknown column type: {value}")


class Dataset:
    """
    Immutable tabular dataset

    Rows keep their load order (row index 0..n-1). Column types are fixed at
    construction; all rows share the same column set.
    """

    def __init__(self, frame: pd.DataFrame, column_types: Mapping[str, ColumnType]):
        if frame.columns.duplicated().any():
            raise InvalidConfiguration("Dataset columns must be unique")

        missing = [col for col in frame.columns if col not in column_types]
        if missing:
            raise InvalidConfiguration(f"No declared type for columns: {missing}")

        self._frame = frame.reset_index(drop=True).copy()
        self._column_types = {col: column_types[col] for col in frame.columns}

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame,
                       column_types: Optional[Mapping[str, TypeSpec]] = None) -> 'Dataset':
        """
        Build a dataset from a DataFrame

        Args:
            df: Source frame (copied, never referenced)
            column_types: Optional declared types; missing entries are inferred

        Returns:
            New Dataset
        """
        declared = dict(column_types or {})
        unknown = [col for col in declared if col not in df.columns]
        if unknown:
            raise InvalidConfiguration(f"Types declared for unknown columns: {unknown}")

        frame = df.reset_index(drop=True).copy()
        types: Dict[str, ColumnType] = {}

        for col in frame.columns:
            if col in declared:
                col_type = _parse_type(declared[col])
            else:
                col_type = _infer_type(frame[col])
            frame[col] = _coerce(frame[col], col_type, col)
            types[col] = col_type

        return cls(frame, types)

    @classmethod
    def from_records(cls, rows: Iterable[Mapping[str, Any]],
                     column_types: Optional[Mapping[str, TypeSpec]] = None) -> 'Dataset':
        """
        Build a dataset from an ordered sequence of row mappings

        All rows must carry the same column set.
        """
        rows = [dict(row) for row in rows]

        if not rows:
            columns = list(column_types or {})
            return cls.from_dataframe(pd.DataFrame(columns=columns), column_types)

        columns = list(rows[0].keys())
        expected = set(columns)
        for i, row in enumerate(rows):
            if set(row.keys()) != expected:
                raise InvalidConfiguration(
                    f"Row {i} has columns {sorted(map(str, row.keys()))}, "
                    f"expected {sorted(map(str, columns))}"
                )

        return cls.from_dataframe(pd.DataFrame.from_records(rows, columns=columns), column_types)

    @property
    def frame(self) -> pd.DataFrame:
        """Underlying frame; read-only by contract (use to_dataframe() for a copy)"""
        return self._frame

    @property
    def columns(self) -> List[str]:
        return list(self._frame.columns)

    @property
    def column_types(self) -> Dict[str, ColumnType]:
        return dict(self._column_types)

    def column_type(self, column: str) -> ColumnType:
        self.require_columns([column])
        return self._column_types[column]

    def __len__(self) -> int:
        return len(self._frame)

    def __repr__(self) -> str:
        return f"Dataset(rows={len(self)}, columns={self.columns})"

    def to_dataframe(self) -> pd.DataFrame:
        return self._frame.copy()

    def records(self) -> List[Dict[str, Any]]:
        return self._frame.to_dict(orient='records')

    def require_columns(self, columns: Sequence[str], purpose: str = "column"):
        """Fail with InvalidConfiguration if any column is missing"""
        missing = [col for col in columns if col not in self._column_types]
        if missing:
            raise InvalidConfiguration(f"Unknown {purpose}(s): {missing}")

    def replace_columns(self, values: Mapping[str, Any],
                        column_types: Optional[Mapping[str, TypeSpec]] = None) -> 'Dataset':
        """
        Return a new dataset with some columns replaced

        Args:
            values: Column name -> new values (same length as the dataset)
            column_types: Types of the replaced columns (default: unchanged)
        """
        self.require_columns(list(values))
        frame = self._frame.copy()
        types = dict(self._column_types)

        for col, new_values in values.items():
            if isinstance(new_values, pd.Series):
                new_values = new_values.set_axis(frame.index)
            frame[col] = new_values

        for col, col_type in (column_types or {}).items():
            types[col] = _parse_type(col_type)

        return Dataset(frame, types)

    def drop_rows(self, row_indices: Iterable[int]) -> 'Dataset':
        """Return a new dataset without the given rows (remaining rows keep their order)"""
        to_drop = sorted(set(row_indices))
        if not to_drop:
            return Dataset(self._frame, self._column_types)
        frame = self._frame.drop(index=to_drop)
        return Dataset(frame, self._column_types)


@dataclass(frozen=True)
class ColumnRoles:
    """
    Column role assignment for one dataset

    A column may be both a quasi-identifier and a sensitive attribute.
    """
    quasi_identifiers: Tuple[str, ...] = ()
    sensitive_attributes: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'quasi_identifiers', tuple(self.quasi_identifiers))
        object.__setattr__(self, 'sensitive_attributes', tuple(self.sensitive_attributes))

        for name, cols in (('quasi-identifier', self.quasi_identifiers),
                           ('sensitive attribute', self.sensitive_attributes)):
            if len(set(cols)) != len(cols):
                raise InvalidConfiguration(f"Duplicate {name} columns: {list(cols)}")

    def roles_of(self, column: str) -> FrozenSet[ColumnRole]:
        """All roles held by a column (empty if it is neither)"""
        roles = set()
        if column in self.quasi_identifiers:
            roles.add(ColumnRole.QUASI_IDENTIFIER)
        if column in self.sensitive_attributes:
            roles.add(ColumnRole.SENSITIVE)
        return frozenset(roles)

    @property
    def overlapping(self) -> Tuple[str, ...]:
        return tuple(c for c in self.quasi_identifiers if c in self.sensitive_attributes)

    def validate(self, dataset: Dataset,
                 require_quasi_identifiers: bool = True,
                 require_sensitive: bool = False):
        """Check the roles against a dataset"""
        if require_quasi_identifiers and not self.quasi_identifiers:
            raise InvalidConfiguration("At least one quasi-identifier is required")
        if require_sensitive and not self.sensitive_attributes:
            raise InvalidConfiguration("At least one sensitive attribute is required")

        dataset.require_columns(self.quasi_identifiers, "quasi-identifier")
        dataset.require_columns(self.sensitive_attributes, "sensitive attribute")

        if self.overlapping:
            logger.debug(f"Columns acting as both QI and SA: {list(self.overlapping)}")
