"""
T-Closeness Validation

Bounds the distance between each equivalence class's sensitive-attribute
distribution and the distribution over the whole dataset. Ordered
attributes (numeric, date) use the Earth Mover's Distance over value
ranks; categorical attributes use the variational distance.
"""

import numpy as np
from scipy.stats import wasserstein_distance
from typing import Dict, List, Sequence, Tuple
from dataclasses import dataclass, field
import logging

from ..core.dataset import Dataset, ColumnType
from ..core.errors import InvalidConfiguration
from .equivalence import ClassKey, EquivalenceClasses, build_equivalence_classes, class_value_counts
from .results import AnonymizationResult, Technique

logger = logging.getLogger(__name__)


def ordered_emd(global_counts: np.ndarray, class_counts: np.ndarray) -> float:
    """
    EMD between two distributions over the same m ordered values

    Ground distance between the i-th and j-th value is |i - j| / (m - 1),
    so the result lies in [0, 1].
    """
    m = len(global_counts)
    if m < 2 or class_counts.sum() == 0 or global_counts.sum() == 0:
        return 0.0
    positions = np.arange(m, dtype=float)
    distance = wasserstein_distance(positions, positions, global_counts, class_counts)
    return float(min(1.0, distance / (m - 1)))


def variational_distance(global_counts: np.ndarray, class_counts: np.ndarray) -> float:
    """Half the L1 distance between two categorical distributions"""
    if class_counts.sum() == 0 or global_counts.sum() == 0:
        return 0.0
    p = global_counts / global_counts.sum()
    q = class_counts / class_counts.sum()
    return float(min(1.0, 0.5 * np.abs(p - q).sum()))


@dataclass
class ClassDistance:
    """Distance of one equivalence class"""
    key: ClassKey
    size: int
    distance: float                  # largest over sensitive attributes
    per_attribute: Dict[str, float]
    satisfied: bool


@dataclass
class TClosenessResult:
    """Results from t-closeness validation"""
    t_value: float
    satisfying_classes: int
    violating_classes: int
    avg_distance: float
    max_distance: float
    violation_records: List[int]
    class_details: List[ClassDistance] = field(default_factory=list)

    @property
    def satisfied(self) -> bool:
        return self.violating_classes == 0


def _check_t(t) -> float:
    if isinstance(t, bool) or not isinstance(t, (int, float, np.floating)) or not 0 <= t <= 1:
        raise InvalidConfiguration(f"t must be within [0, 1] (got {t})")
    return float(t)


class TClosenessValidator:
    """
    Validates t-closeness for each equivalence class

    With several sensitive attributes a class's distance is the largest
    one across attributes.
    """

    def __init__(self, t: float = 0.5):
        self.t = _check_t(t)

    def validate(self, dataset: Dataset, quasi_identifiers: Sequence[str],
                 sensitive_attributes: Sequence[str]) -> TClosenessResult:
        """
        Measure every class against the global distribution

        Args:
            dataset: Dataset to validate
            quasi_identifiers: QI columns defining the classes
            sensitive_attributes: SA columns to compare

        Returns:
            TClosenessResult with per-class distances
        """
        sa = list(sensitive_attributes or [])
        if not sa:
            raise InvalidConfiguration("At least one sensitive attribute is required")
        dataset.require_columns(sa, "sensitive attribute")

        classes = build_equivalence_classes(dataset, quasi_identifiers)
        if not classes:
            return TClosenessResult(self.t, 0, 0, 0.0, 0.0, [])

        distances = {attr: self._distances(classes, dataset, attr) for attr in sa}

        details = []
        violation_records = []
        for position, (key, rows) in enumerate(classes.items()):
            per_attribute = {attr: float(distances[attr][position]) for attr in sa}
            distance = max(per_attribute.values())
            satisfied = distance <= self.t
            details.append(ClassDistance(key, len(rows), distance, per_attribute, satisfied))
            if not satisfied:
                violation_records.extend(rows)

        all_distances = np.array([d.distance for d in details])
        satisfying = sum(1 for d in details if d.satisfied)

        result = TClosenessResult(
            t_value=self.t,
            satisfying_classes=satisfying,
            violating_classes=len(details) - satisfying,
            avg_distance=float(all_distances.mean()),
            max_distance=float(all_distances.max()),
            violation_records=sorted(violation_records),
            class_details=details,
        )

        logger.info(f"T-closeness (t={self.t}): {result.satisfying_classes} satisfying, "
                    f"{result.violating_classes} violating, max distance {result.max_distance:.3f}")

        return result

    def _distances(self, classes: EquivalenceClasses, dataset: Dataset,
                   attribute: str) -> np.ndarray:
        ordered = dataset.column_type(attribute) in (ColumnType.NUMERIC, ColumnType.DATE)

        counts, _ = class_value_counts(
            classes, dataset.frame[attribute], dropna=ordered, sort=ordered
        )
        global_counts = counts.sum(axis=0)
        metric = ordered_emd if ordered else variational_distance

        return np.array([metric(global_counts, row) for row in counts])


class TClosenessTransformer:
    """
    Reports t-closeness as an anonymization step

    Violating classes are only reported by default; with
    suppress_violations=True their rows are removed from the output.
    """

    def __init__(self, t: float = 0.5, suppress_violations: bool = False):
        self.validator = TClosenessValidator(t)
        self.suppress_violations = suppress_violations

    def transform(self, dataset: Dataset, quasi_identifiers: Sequence[str],
                  sensitive_attributes: Sequence[str]) -> Tuple[Dataset, AnonymizationResult]:
        validation = self.validator.validate(dataset, quasi_identifiers, sensitive_attributes)
        total = len(dataset)

        output = dataset
        suppressed = 0
        if self.suppress_violations and validation.violation_records:
            output = dataset.drop_rows(validation.violation_records)
            suppressed = len(validation.violation_records)
            logger.info(f"Suppressed {suppressed} records in "
                        f"{validation.violating_classes} classes farther than t={self.validator.t}")

        result = AnonymizationResult(
            technique=Technique.T_CLOSENESS,
            records_suppressed=suppressed,
            total_records=total,
            information_loss=suppressed / total if total else 0.0,
            satisfying_classes=validation.satisfying_classes,
            violating_classes=validation.violating_classes,
            avg_distance=validation.avg_distance,
            max_distance=validation.max_distance,
        )
        return output, result


def apply_t_closeness(dataset: Dataset, quasi_identifiers: Sequence[str],
                      sensitive_attributes: Sequence[str], t: float,
                      suppress_violations: bool = False) -> Tuple[Dataset, AnonymizationResult]:
    """Functional entry point for TClosenessTransformer"""
    transformer = TClosenessTransformer(t, suppress_violations)
    return transformer.transform(dataset, quasi_identifiers, sensitive_attributes)
