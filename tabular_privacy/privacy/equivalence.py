"""
Equivalence Class Builder

Groups rows that share identical quasi-identifier values. Shared by
k-anonymity, l-diversity, t-closeness and the risk assessment engine.
"""

import pandas as pd
import numpy as np
from typing import Any, Dict, List, Sequence, Tuple

from ..core.dataset import Dataset
from ..core.errors import InvalidConfiguration

ClassKey = Tuple[Any, ...]
EquivalenceClasses = Dict[ClassKey, Tuple[int, ...]]


def _normalize(value: Any) -> Any:
    """Hashable, comparable form of a cell value (missing -> None)"""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, np.generic):
        return value.item()
    return value


def check_quasi_identifiers(dataset: Dataset, quasi_identifiers: Sequence[str]) -> List[str]:
    """Validate a QI list against a dataset and return it as a list"""
    qi = list(quasi_identifiers or [])
    if not qi:
        raise InvalidConfiguration("At least one quasi-identifier column is required")
    if len(set(qi)) != len(qi):
        raise InvalidConfiguration(f"Duplicate quasi-identifier columns: {qi}")
    dataset.require_columns(qi, "quasi-identifier")
    return qi


def build_equivalence_classes(dataset: Dataset,
                              quasi_identifiers: Sequence[str]) -> EquivalenceClasses:
    """
    Partition the rows of a dataset by their quasi-identifier values

    Args:
        dataset: Dataset to partition
        quasi_identifiers: Non-empty list of QI columns

    Returns:
        Mapping from QI value tuple to the ascending row indices of that class.
        Classes are ordered by the index of their first row, so repeated
        calls on the same input give identical results.
    """
    qi = check_quasi_identifiers(dataset, quasi_identifiers)

    if len(dataset) == 0:
        return {}

    frame = dataset.frame
    codes = frame.groupby(qi, sort=False, dropna=False).ngroup().to_numpy()

    order = np.argsort(codes, kind='stable')
    boundaries = np.flatnonzero(np.diff(codes[order])) + 1
    members = sorted(np.split(order, boundaries), key=lambda rows: rows[0])

    qi_positions = [frame.columns.get_loc(col) for col in qi]
    values = frame.iloc[:, qi_positions].to_numpy(dtype=object)

    classes: EquivalenceClasses = {}
    for rows in members:
        key = tuple(_normalize(v) for v in values[rows[0]])
        if key in classes:
            # Distinct missing-value markers collapse onto the same key
            classes[key] = tuple(sorted(classes[key] + tuple(int(r) for r in rows)))
        else:
            classes[key] = tuple(int(r) for r in rows)

    return classes


def class_sizes(classes: EquivalenceClasses) -> np.ndarray:
    return np.array([len(rows) for rows in classes.values()], dtype=int)


def row_class_sizes(classes: EquivalenceClasses, n_rows: int) -> np.ndarray:
    """Size of the class each row belongs to, indexed by row"""
    sizes = np.zeros(n_rows, dtype=int)
    for rows in classes.values():
        sizes[list(rows)] = len(rows)
    return sizes


def row_class_ids(classes: EquivalenceClasses, n_rows: int) -> np.ndarray:
    """Position of each row's class in the class ordering, indexed by row"""
    ids = np.full(n_rows, -1, dtype=int)
    for position, rows in enumerate(classes.values()):
        ids[list(rows)] = position
    return ids


def class_value_counts(classes: EquivalenceClasses, values: pd.Series,
                       dropna: bool = False, sort: bool = False) -> Tuple[np.ndarray, pd.Index]:
    """
    Count matrix of a column's values per class

    Args:
        classes: Equivalence classes of the dataset the column belongs to
        values: Column values, indexed by row position
        dropna: Ignore missing values instead of counting them as a value
        sort: Order the distinct values ascending (ordinal columns)

    Returns:
        (counts[class_position, value_position], distinct values)
    """
    codes, uniques = pd.factorize(values, sort=sort, use_na_sentinel=dropna)
    class_ids = row_class_ids(classes, len(values))

    matrix = np.zeros((len(classes), len(uniques)), dtype=float)
    mask = (codes >= 0) & (class_ids >= 0)
    np.add.at(matrix, (class_ids[mask], codes[mask]), 1)

    return matrix, pd.Index(uniques)


def size_histogram(classes: EquivalenceClasses) -> Dict[int, int]:
    """Class size -> number of classes of that size, ascending by size"""
    counts: Dict[int, int] = {}
    for rows in classes.values():
        counts[len(rows)] = counts.get(len(rows), 0) + 1
    return dict(sorted(counts.items()))
