"""
Generalization Hierarchies for Quasi-Identifiers

Each quasi-identifier gets an explicit, ordered list of generalization
levels. Level 0 keeps the original value, the last level replaces every
value with SUPPRESSED. Builders cover numeric ranges, fixed-length codes
(e.g. postal codes), dates and user-supplied categorical taxonomies.
"""

import pandas as pd
import numpy as np
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set
from dataclasses import dataclass, field
import logging
import math

from ..core.dataset import Dataset, ColumnType
from ..core.errors import InvalidConfiguration

logger = logging.getLogger(__name__)

SUPPRESSED = "*"

LevelFunction = Callable[[Any], Any]


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _identity(value: Any) -> Any:
    return value


def _suppress(value: Any) -> Any:
    return SUPPRESSED


class GeneralizationHierarchy:
    """
    Ordered generalization levels for one column

    Level functions always receive the ORIGINAL value, so any level can be
    materialized directly without walking through the lower ones.
    """

    def __init__(self, column: str, levels: Sequence[LevelFunction],
                 level_names: Optional[Sequence[str]] = None,
                 top_suppression: bool = True):
        """
        Args:
            column: Column the hierarchy applies to
            levels: Generalization functions above level 0, finest first
            level_names: Optional labels for reporting (one per level incl. 0;
                the suppression label may be left out)
            top_suppression: Append a final level mapping every value to SUPPRESSED
        """
        self.column = column
        self.top_suppression = top_suppression
        self._levels: List[LevelFunction] = [_identity] + list(levels)
        if top_suppression and self._levels[-1] is not _suppress:
            self._levels.append(_suppress)

        names = list(level_names) if level_names else []
        if top_suppression and len(names) == len(self._levels) - 1:
            names.append('suppressed')
        if len(names) != len(self._levels):
            names = ['original'] + [f'level_{i}' for i in range(1, len(self._levels))]
            if top_suppression:
                names[-1] = 'suppressed'
        self.level_names = names

    @property
    def max_level(self) -> int:
        return len(self._levels) - 1

    def __repr__(self) -> str:
        return f"GeneralizationHierarchy({self.column!r}, levels={self.level_names})"

    def generalize_value(self, value: Any, level: int) -> Any:
        self._check_level(level)
        if self.top_suppression and level == self.max_level:
            return SUPPRESSED
        if level == 0 or _is_missing(value):
            return value
        return self._levels[level](value)

    def generalize(self, values: pd.Series, level: int) -> pd.Series:
        """
        Generalize a series to the given level

        Missing values stay missing below the suppression level.
        """
        self._check_level(level)
        if level == 0:
            return values.copy()
        if self.top_suppression and level == self.max_level:
            return pd.Series([SUPPRESSED] * len(values), index=values.index, dtype=object)

        func = self._levels[level]
        return values.astype(object).map(lambda v: v if _is_missing(v) else func(v))

    def _check_level(self, level: int):
        if not 0 <= level <= self.max_level:
            raise InvalidConfiguration(
                f"Level {level} out of range for '{self.column}' (max {self.max_level})"
            )


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def _format_bound(value: float) -> str:
    return f"{value:g}"


def _range_bucket(width: float) -> LevelFunction:
    def bucket(value):
        lower = math.floor(float(value) / width) * width
        return f"[{_format_bound(lower)}, {_format_bound(lower + width)})"
    return bucket


def nice_widths(span: float, integer: bool = False, max_buckets: int = 50) -> List[float]:
    """
    Increasing 1-2-5 bucket widths between span/max_buckets and span

    Args:
        span: max - min of the column
        integer: Keep only widths above 1, since width 1 leaves integers as they are
        max_buckets: Finest level produces at most this many buckets
    """
    if span <= 0 or not math.isfinite(span):
        return []

    smallest = span / max_buckets
    widths = []
    for exponent in range(math.floor(math.log10(smallest)), math.ceil(math.log10(span)) + 1):
        for mantissa in (1, 2, 5):
            width = mantissa * 10.0 ** exponent
            if width < smallest or width >= span * 2:
                continue
            if integer and width <= 1:
                continue
            widths.append(float(f"{width:.12g}"))

    return sorted(set(widths))


def numeric_hierarchy(column: str, values: Optional[pd.Series] = None,
                      widths: Optional[Sequence[float]] = None,
                      top_suppression: bool = True) -> GeneralizationHierarchy:
    """
    Range buckets of increasing width

    Args:
        column: Column name
        values: Column values used to derive widths when none are given
        widths: Explicit bucket widths, finest first
        top_suppression: End with a level that suppresses every value
    """
    if widths is None:
        if values is None:
            raise InvalidConfiguration(f"Numeric hierarchy for '{column}' needs values or widths")
        numeric = pd.to_numeric(values, errors='coerce').dropna()
        span = float(numeric.max() - numeric.min()) if len(numeric) else 0.0
        widths = nice_widths(span, integer=pd.api.types.is_integer_dtype(values))

    widths = [float(w) for w in widths]
    if any(w <= 0 for w in widths) or widths != sorted(widths):
        raise InvalidConfiguration(f"Bucket widths for '{column}' must be positive and increasing")

    return GeneralizationHierarchy(
        column,
        [_range_bucket(w) for w in widths],
        ['original'] + [f'width_{_format_bound(w)}' for w in widths],
        top_suppression
    )


def masking_hierarchy(column: str, length: int, mask_char: str = SUPPRESSED) -> GeneralizationHierarchy:
    """
    Mask trailing characters of fixed-length codes one at a time

    e.g. '12345' -> '1234*' -> '123**' -> ... -> '*'
    """
    if length < 2:
        raise InvalidConfiguration(f"Masking hierarchy for '{column}' needs codes of length >= 2")

    def mask(n_masked: int) -> LevelFunction:
        def apply(value):
            text = str(value)
            keep = max(len(text) - n_masked, 0)
            return text[:keep] + mask_char * (len(text) - keep)
        return apply

    return GeneralizationHierarchy(
        column,
        [mask(i) for i in range(1, length)],
        ['original'] + [f'mask_{i}' for i in range(1, length)]
    )


def date_hierarchy(column: str) -> GeneralizationHierarchy:
    """Day -> month -> year -> decade -> suppressed"""
    def month(value):
        ts = pd.Timestamp(value)
        return f"{ts.year:04d}-{ts.month:02d}"

    def year(value):
        return f"{pd.Timestamp(value).year:04d}"

    def decade(value):
        return f"{(pd.Timestamp(value).year // 10) * 10:04d}s"

    return GeneralizationHierarchy(
        column, [month, year, decade],
        ['original', 'month', 'year', 'decade']
    )


def taxonomy_hierarchy(column: str, mappings: Sequence[Mapping[Any, Any]],
                       top_suppression: bool = True) -> GeneralizationHierarchy:
    """
    User-supplied categorical taxonomy

    Args:
        column: Column name
        mappings: One mapping per level; level i maps the label of level i-1
                  to its parent. Values absent from a mapping are suppressed.
        top_suppression: End with a level that suppresses every value
    """
    mappings = [dict(m) for m in mappings]

    def lookup(depth: int) -> LevelFunction:
        def apply(value):
            label = value
            for mapping in mappings[:depth]:
                label = mapping.get(label, SUPPRESSED)
            return label
        return apply

    return GeneralizationHierarchy(column, [lookup(i) for i in range(1, len(mappings) + 1)],
                                   top_suppression=top_suppression)


def categorical_hierarchy(column: str) -> GeneralizationHierarchy:
    """Original value or fully suppressed"""
    return GeneralizationHierarchy(column, [])


def _fixed_code_length(values: pd.Series) -> Optional[int]:
    """Common length of string codes such as postal codes, if any"""
    present = values.dropna()
    if present.empty or not all(isinstance(v, str) for v in present):
        return None
    lengths = present.str.len().unique()
    if len(lengths) == 1 and lengths[0] >= 2:
        return int(lengths[0])
    return None


def default_hierarchy(column: str, values: pd.Series,
                      column_type: ColumnType) -> GeneralizationHierarchy:
    """Pick a hierarchy builder from the column type and contents"""
    if column_type == ColumnType.NUMERIC:
        return numeric_hierarchy(column, values)
    if column_type == ColumnType.DATE:
        return date_hierarchy(column)

    length = _fixed_code_length(values)
    if length is not None and values.nunique(dropna=True) > 1:
        return masking_hierarchy(column, length)
    return categorical_hierarchy(column)


def hierarchy_from_spec(column: str, spec: Mapping[str, Any],
                        values: Optional[pd.Series] = None) -> GeneralizationHierarchy:
    """
    Build a hierarchy from a plain configuration mapping

    Examples:
        {'type': 'numeric', 'widths': [5, 10, 20]}
        {'type': 'mask', 'length': 5}
        {'type': 'date'}
        {'type': 'taxonomy', 'levels': [{'flu': 'respiratory', ...}, ...]}

    Numeric and taxonomy specs accept 'top_suppression': False to stop
    short of replacing every value with SUPPRESSED.
    """
    kind = spec.get('type')
    if kind == 'numeric':
        return numeric_hierarchy(column, values, spec.get('widths'),
                                 spec.get('top_suppression', True))
    if kind == 'mask':
        length = spec.get('length')
        if length is None and values is not None:
            length = _fixed_code_length(values.astype(str))
        if length is None:
            raise InvalidConfiguration(f"Mask hierarchy for '{column}' needs a code length")
        return masking_hierarchy(column, int(length), spec.get('mask_char', SUPPRESSED))
    if kind == 'date':
        return date_hierarchy(column)
    if kind == 'taxonomy':
        return taxonomy_hierarchy(column, spec.get('levels', []),
                                  spec.get('top_suppression', True))
    if kind == 'categorical':
        return categorical_hierarchy(column)
    raise InvalidConfiguration(f"Unknown hierarchy type for '{column}': {kind}")


def build_hierarchies(dataset: Dataset, quasi_identifiers: Sequence[str],
                      overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, GeneralizationHierarchy]:
    """
    One hierarchy per QI column

    Args:
        dataset: Source dataset
        quasi_identifiers: QI columns
        overrides: Column -> GeneralizationHierarchy or spec mapping
    """
    overrides = dict(overrides or {})
    unknown = [col for col in overrides if col not in quasi_identifiers]
    if unknown:
        raise InvalidConfiguration(f"Hierarchies given for non quasi-identifier columns: {unknown}")

    hierarchies = {}
    for col in quasi_identifiers:
        override = overrides.get(col)
        if isinstance(override, GeneralizationHierarchy):
            hierarchies[col] = override
        elif override is not None:
            hierarchies[col] = hierarchy_from_spec(col, override, dataset.frame[col])
        else:
            hierarchies[col] = default_hierarchy(col, dataset.frame[col], dataset.column_type(col))
        logger.debug(f"Hierarchy for {col}: {hierarchies[col].level_names}")

    return hierarchies


def generalize_dataset(dataset: Dataset,
                       hierarchies: Mapping[str, GeneralizationHierarchy],
                       levels: Mapping[str, int]) -> Dataset:
    """Apply per-column levels to a dataset (new Dataset, original untouched)"""
    updates = {}
    types = {}
    for col, level in levels.items():
        if level == 0:
            continue
        updates[col] = hierarchies[col].generalize(dataset.frame[col], level)
        types[col] = ColumnType.CATEGORICAL

    if not updates:
        return dataset
    return dataset.replace_columns(updates, types)


@dataclass
class GeneralizationRecord:
    """
    Per-QI generalization level plus per-row suppression markers

    Owned by the k-anonymity transformer while it searches; used to
    materialize the output dataset and to measure information loss.
    """
    levels: Dict[str, int]
    max_levels: Dict[str, int]
    suppressed_rows: Set[int] = field(default_factory=set)

    @classmethod
    def initial(cls, hierarchies: Mapping[str, GeneralizationHierarchy]) -> 'GeneralizationRecord':
        return cls(
            levels={col: 0 for col in hierarchies},
            max_levels={col: h.max_level for col, h in hierarchies.items()},
        )

    def can_generalize(self, column: str) -> bool:
        return self.levels[column] < self.max_levels[column]

    def generalization_depth(self) -> float:
        """Mean of level / max_level over QI columns"""
        ratios = [
            self.levels[col] / self.max_levels[col] if self.max_levels[col] else 0.0
            for col in self.levels
        ]
        return float(np.mean(ratios)) if ratios else 0.0

    def information_loss(self, total_rows: int) -> float:
        """
        Normalized loss in [0, 1]

        Retained rows lose the mean generalization depth of their QI cells,
        suppressed rows lose everything.
        """
        if total_rows == 0:
            return 0.0
        suppressed = len(self.suppressed_rows) / total_rows
        return float(min(1.0, suppressed + (1 - suppressed) * self.generalization_depth()))

    def materialize(self, dataset: Dataset,
                    hierarchies: Mapping[str, GeneralizationHierarchy]) -> Dataset:
        generalized = generalize_dataset(dataset, hierarchies, self.levels)
        return generalized.drop_rows(self.suppressed_rows)
