"""
K-Anonymity Implementation

Validates and enforces k-anonymity over a set of quasi-identifiers,
generalizing before suppressing.
"""

import numpy as np
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from dataclasses import dataclass
import logging
import math

from ..core.dataset import Dataset
from ..core.errors import InvalidConfiguration, KAnonymityUnsatisfiable
from ..core.cancellation import CancellationToken
from ..core.logging import log_performance
from .equivalence import (
    build_equivalence_classes,
    check_quasi_identifiers,
    class_sizes,
    size_histogram,
)
from .generalization import (
    GeneralizationRecord,
    build_hierarchies,
    generalize_dataset,
)
from .results import AnonymizationResult, Technique

logger = logging.getLogger(__name__)


@dataclass
class KAnonymityResult:
    """Results from k-anonymity validation"""
    k_value: int
    min_group_size: int
    max_group_size: int
    mean_group_size: float
    num_groups: int
    num_violations: int
    violation_records: List[int]
    satisfied: bool
    groups_distribution: Dict[int, int]  # group_size -> count


def _check_k(k: Any):
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)) or k < 2:
        raise InvalidConfiguration(f"k must be an integer >= 2 (got {k})")


class KAnonymityValidator:
    """
    Validates k-anonymity for a dataset
    """

    def __init__(self, k_threshold: int = 5):
        """
        Initialize k-anonymity validator

        Args:
            k_threshold: Minimum k value required
        """
        _check_k(k_threshold)
        self.k_threshold = int(k_threshold)

    def validate(self, dataset: Dataset,
                 quasi_identifiers: Sequence[str]) -> KAnonymityResult:
        """
        Validate k-anonymity for given quasi-identifiers

        Args:
            dataset: Dataset to validate
            quasi_identifiers: List of quasi-identifier columns

        Returns:
            KAnonymityResult with validation details
        """
        classes = build_equivalence_classes(dataset, quasi_identifiers)

        if not classes:
            return KAnonymityResult(
                k_value=0, min_group_size=0, max_group_size=0, mean_group_size=0.0,
                num_groups=0, num_violations=0, violation_records=[],
                satisfied=True, groups_distribution={}
            )

        sizes = class_sizes(classes)
        violating = [rows for rows in classes.values() if len(rows) < self.k_threshold]
        violation_records = sorted(row for rows in violating for row in rows)

        result = KAnonymityResult(
            k_value=int(sizes.min()),
            min_group_size=int(sizes.min()),
            max_group_size=int(sizes.max()),
            mean_group_size=float(sizes.mean()),
            num_groups=len(classes),
            num_violations=len(violating),
            violation_records=violation_records,
            satisfied=not violating,
            groups_distribution=size_histogram(classes)
        )

        logger.info(f"K-anonymity validation: k={result.k_value}, satisfied={result.satisfied}")
        logger.debug(f"Groups: {result.num_groups}, Violations: {result.num_violations}")

        return result


class KAnonymityTransformer:
    """
    Enforces k-anonymity through generalization, then suppression

    Each iteration raises the generalization level of the quasi-identifier
    with the highest current cardinality (ties go to the column declared
    first) and rebuilds the equivalence classes. When every hierarchy is
    exhausted the remaining sub-k rows are suppressed, within the
    suppression limit.
    """

    def __init__(self, k: int = 5, suppression_limit: float = 0.1,
                 hierarchies: Optional[Mapping[str, Any]] = None):
        """
        Initialize k-anonymity transformer

        Args:
            k: Minimum equivalence class size
            suppression_limit: Maximum fraction of records that may be suppressed
            hierarchies: Optional per-column GeneralizationHierarchy or spec mapping
        """
        _check_k(k)
        if not 0 <= suppression_limit <= 1:
            raise InvalidConfiguration(
                f"suppression_limit must be within [0, 1] (got {suppression_limit})"
            )

        self.k = int(k)
        self.suppression_limit = float(suppression_limit)
        self.hierarchies = dict(hierarchies or {})

    def transform(self, dataset: Dataset, quasi_identifiers: Sequence[str],
                  cancellation: Optional[CancellationToken] = None) -> Tuple[Dataset, AnonymizationResult]:
        """
        Enforce k-anonymity on a dataset

        Args:
            dataset: Input dataset (left untouched)
            quasi_identifiers: QI columns, in declaration order
            cancellation: Optional token checked between iterations

        Returns:
            Tuple of (anonymized Dataset, AnonymizationResult)
        """
        qi = check_quasi_identifiers(dataset, quasi_identifiers)
        total = len(dataset)

        if self.k > total:
            raise InvalidConfiguration(f"k={self.k} exceeds the number of records ({total})")

        with log_performance(logger, f"k-anonymity (k={self.k})"):
            hierarchies = build_hierarchies(dataset, qi, self.hierarchies)
            record = self._search(dataset, qi, hierarchies, cancellation)
            output = record.materialize(dataset, hierarchies)

        result = self._summarize(output, qi, record, total)

        logger.info(f"K-anonymity complete: levels={record.levels}, "
                    f"suppressed={result.records_suppressed}/{total}, "
                    f"information_loss={result.information_loss:.3f}")

        return output, result

    def _search(self, dataset: Dataset, qi: List[str], hierarchies,
                cancellation: Optional[CancellationToken]) -> GeneralizationRecord:
        """Greedy generalization followed by bounded suppression"""
        record = GeneralizationRecord.initial(hierarchies)
        current = dataset
        classes = build_equivalence_classes(current, qi)

        # Each iteration raises one level, so this bounds the loop
        max_iterations = sum(record.max_levels.values())

        for iteration in range(max_iterations):
            if cancellation is not None:
                cancellation.raise_if_cancelled("k-anonymity")

            violating = sum(1 for rows in classes.values() if len(rows) < self.k)
            if not violating:
                break

            candidates = [col for col in qi if record.can_generalize(col)]
            if not candidates:
                break

            cardinality = {col: current.frame[col].nunique(dropna=False) for col in candidates}
            column = max(candidates, key=lambda col: cardinality[col])
            record.levels[column] += 1

            logger.debug(f"Iteration {iteration + 1}: {violating} sub-k classes, "
                         f"generalizing {column} to level {record.levels[column]}")

            current = generalize_dataset(dataset, hierarchies, record.levels)
            classes = build_equivalence_classes(current, qi)

        if cancellation is not None:
            cancellation.raise_if_cancelled("k-anonymity")

        residual = [row for rows in classes.values() if len(rows) < self.k for row in rows]
        if residual:
            total = len(dataset)
            allowed = math.floor(self.suppression_limit * total + 1e-9)
            if len(residual) > allowed:
                logger.warning(f"Cannot achieve k={self.k}: {len(residual)} rows need "
                               f"suppression, limit allows {allowed}")
                raise KAnonymityUnsatisfiable(len(residual), allowed, self.k)

            record.suppressed_rows.update(residual)
            logger.info(f"Suppressed {len(residual)} residual records")

        return record

    def _summarize(self, output: Dataset, qi: List[str],
                   record: GeneralizationRecord, total: int) -> AnonymizationResult:
        classes = build_equivalence_classes(output, qi)
        sizes = class_sizes(classes)
        unique_records = int((sizes == 1).sum()) if len(sizes) else 0

        return AnonymizationResult(
            technique=Technique.K_ANONYMITY,
            records_suppressed=len(record.suppressed_rows),
            total_records=total,
            information_loss=record.information_loss(total),
            equivalence_classes=len(classes),
            avg_group_size=float(sizes.mean()) if len(sizes) else 0.0,
            privacy_risk=unique_records / total if total else 0.0,
            generalization_levels=dict(record.levels),
        )


def apply_k_anonymity(dataset: Dataset, quasi_identifiers: Sequence[str], k: int,
                      suppression_limit: float = 0.1,
                      hierarchies: Optional[Mapping[str, Any]] = None,
                      cancellation: Optional[CancellationToken] = None) -> Tuple[Dataset, AnonymizationResult]:
    """Functional entry point for KAnonymityTransformer"""
    transformer = KAnonymityTransformer(k, suppression_limit, hierarchies)
    return transformer.transform(dataset, quasi_identifiers, cancellation)
