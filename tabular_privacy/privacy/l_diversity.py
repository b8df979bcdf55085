"""
L-Diversity Validation

Checks that every equivalence class holds enough variety in its sensitive
attributes, either as a count of distinct values (distinct-l-diversity)
or as Shannon entropy of at least log(l) (entropy-l-diversity).
"""

import numpy as np
from scipy import stats
from typing import Dict, List, Sequence, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum
import logging
import math

from ..core.dataset import Dataset
from ..core.errors import InvalidConfiguration
from .equivalence import ClassKey, build_equivalence_classes, class_value_counts
from .results import AnonymizationResult, Technique

logger = logging.getLogger(__name__)


class LDiversityMode(Enum):
    """Diversity criterion"""
    DISTINCT = "distinct"
    ENTROPY = "entropy"


@dataclass
class ClassDiversity:
    """Diversity of one equivalence class"""
    key: ClassKey
    size: int
    diversity: float                 # weakest sensitive attribute
    per_attribute: Dict[str, float]
    diverse: bool


@dataclass
class LDiversityResult:
    """Results from l-diversity validation"""
    l_value: int
    mode: LDiversityMode
    diverse_classes: int
    violating_classes: int
    avg_diversity: float
    min_diversity: float
    violation_records: List[int]
    class_details: List[ClassDiversity] = field(default_factory=list)

    @property
    def satisfied(self) -> bool:
        return self.violating_classes == 0


def _check_sensitive(dataset: Dataset, sensitive_attributes: Sequence[str]) -> List[str]:
    sa = list(sensitive_attributes or [])
    if not sa:
        raise InvalidConfiguration("At least one sensitive attribute is required")
    dataset.require_columns(sa, "sensitive attribute")
    return sa


def _parse_mode(mode: Union[LDiversityMode, str]) -> LDiversityMode:
    if isinstance(mode, LDiversityMode):
        return mode
    try:
        return LDiversityMode(str(mode).lower())
    except ValueError:
        raise InvalidConfiguration(f"Unknown l-diversity mode: {mode}")


class LDiversityValidator:
    """
    Validates l-diversity for each equivalence class

    With several sensitive attributes a class is only as diverse as its
    weakest attribute.
    """

    def __init__(self, l: int = 3, mode: Union[LDiversityMode, str] = LDiversityMode.DISTINCT):
        """
        Args:
            l: Required diversity
            mode: 'distinct' or 'entropy'
        """
        if isinstance(l, bool) or not isinstance(l, (int, np.integer)) or l < 2:
            raise InvalidConfiguration(f"l must be an integer >= 2 (got {l})")
        self.l = int(l)
        self.mode = _parse_mode(mode)

    @property
    def threshold(self) -> float:
        """Per-class score a class must reach"""
        if self.mode == LDiversityMode.ENTROPY:
            return math.log(self.l)
        return float(self.l)

    def validate(self, dataset: Dataset, quasi_identifiers: Sequence[str],
                 sensitive_attributes: Sequence[str]) -> LDiversityResult:
        """
        Score every equivalence class

        Args:
            dataset: Dataset to validate (typically k-anonymized already)
            quasi_identifiers: QI columns defining the classes
            sensitive_attributes: SA columns to check

        Returns:
            LDiversityResult with per-class details
        """
        sa = _check_sensitive(dataset, sensitive_attributes)
        classes = build_equivalence_classes(dataset, quasi_identifiers)

        if not classes:
            return LDiversityResult(self.l, self.mode, 0, 0, 0.0, 0.0, [])

        scores = {attr: self._scores(classes, dataset, attr) for attr in sa}

        # Tolerance keeps a uniform class of exactly l values on the right side of log(l)
        threshold = self.threshold - 1e-9
        details = []
        violation_records = []
        for position, (key, rows) in enumerate(classes.items()):
            per_attribute = {attr: float(scores[attr][position]) for attr in sa}
            diversity = min(per_attribute.values())
            diverse = diversity >= threshold
            details.append(ClassDiversity(key, len(rows), diversity, per_attribute, diverse))
            if not diverse:
                violation_records.extend(rows)

        diversities = np.array([d.diversity for d in details])
        diverse_count = sum(1 for d in details if d.diverse)

        result = LDiversityResult(
            l_value=self.l,
            mode=self.mode,
            diverse_classes=diverse_count,
            violating_classes=len(details) - diverse_count,
            avg_diversity=float(diversities.mean()),
            min_diversity=float(diversities.min()),
            violation_records=sorted(violation_records),
            class_details=details,
        )

        logger.info(f"L-diversity ({self.mode.value}, l={self.l}): "
                    f"{result.diverse_classes} diverse, {result.violating_classes} violating")

        return result

    def _scores(self, classes, dataset: Dataset, attribute: str) -> np.ndarray:
        counts, _ = class_value_counts(classes, dataset.frame[attribute])
        if self.mode == LDiversityMode.ENTROPY:
            return stats.entropy(counts, axis=1)
        return (counts > 0).sum(axis=1).astype(float)


class LDiversityTransformer:
    """
    Reports l-diversity as an anonymization step

    Violating classes are only reported by default; with
    suppress_violations=True their rows are removed from the output.
    """

    def __init__(self, l: int = 3, mode: Union[LDiversityMode, str] = LDiversityMode.DISTINCT,
                 suppress_violations: bool = False):
        self.validator = LDiversityValidator(l, mode)
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
                        f"{validation.violating_classes} non-diverse classes")

        result = AnonymizationResult(
            technique=Technique.L_DIVERSITY,
            records_suppressed=suppressed,
            total_records=total,
            information_loss=suppressed / total if total else 0.0,
            diverse_classes=validation.diverse_classes,
            violating_classes=validation.violating_classes,
            avg_diversity=validation.avg_diversity,
        )
        return output, result


def apply_l_diversity(dataset: Dataset, quasi_identifiers: Sequence[str],
                      sensitive_attributes: Sequence[str], l: int,
                      mode: Union[LDiversityMode, str] = LDiversityMode.DISTINCT,
                      suppress_violations: bool = False) -> Tuple[Dataset, AnonymizationResult]:
    """Functional entry point for LDiversityTransformer"""
    transformer = LDiversityTransformer(l, mode, suppress_violations)
    return transformer.transform(dataset, quasi_identifiers, sensitive_attributes)
