"""
Risk Assessment Engine

Simulates re-identification attacks against the equivalence classes of a
dataset (original or anonymized) and reports risk scores, violation
counts and remediation guidance.

Attacker models:
- prosecutor: knows the target is in the data; per-row risk 1 / class size
- journalist: does not know presence; prosecutor risk scaled by
  class size / total records
- marketer: bulk re-identification; expected share of successful matches
  over the sampled classes
"""

import numpy as np
from scipy import stats
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum
import logging

from ..core.dataset import Dataset
from ..core.config import EngineSettings
from ..core.errors import InvalidConfiguration
from ..core.cancellation import CancellationToken
from ..core.logging import log_performance
from .equivalence import (
    EquivalenceClasses,
    build_equivalence_classes,
    check_quasi_identifiers,
    class_value_counts,
    row_class_ids,
    size_histogram,
)

logger = logging.getLogger(__name__)


class AssessmentState(Enum):
    CONFIGURED = "configured"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class AttackScenario(Enum):
    """Attacker models"""
    PROSECUTOR = "prosecutor"
    JOURNALIST = "journalist"
    MARKETER = "marketer"


class RiskLevel(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


@dataclass(frozen=True)
class RiskThresholds:
    """Risk below `low` is Low, above `high` is High, anything between is Medium"""
    low: float = 0.1
    high: float = 0.3

    def __post_init__(self):
        if not 0 <= self.low <= self.high <= 1:
            raise InvalidConfiguration(
                f"Risk thresholds must satisfy 0 <= low <= high <= 1 (got {self.low}, {self.high})"
            )

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> 'RiskThresholds':
        return cls(settings.risk_low_threshold, settings.risk_high_threshold)

    def level(self, risk: float) -> RiskLevel:
        if risk < self.low:
            return RiskLevel.LOW
        if risk > self.high:
            return RiskLevel.HIGH
        return RiskLevel.MEDIUM


@dataclass(frozen=True)
class RiskAssessmentResult:
    """Outcome of one assessment run; never mutated after creation"""
    overall_risk: float
    risk_level: RiskLevel
    violations: int                          # rows in classes smaller than k
    unique_records: int                      # rows in classes of size 1
    total_records: int
    k_threshold: int
    equivalence_classes: int
    class_size_histogram: Dict[int, int]     # class size -> number of classes
    recommendations: Tuple[str, ...]
    scenario_risks: Dict[str, float] = field(default_factory=dict)
    attribute_risks: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    sampled_records: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overall_risk': self.overall_risk,
            'risk_level': self.risk_level.value,
            'violations': self.violations,
            'unique_records': self.unique_records,
            'total_records': self.total_records,
            'k_threshold': self.k_threshold,
            'equivalence_classes': self.equivalence_classes,
            'class_size_histogram': dict(self.class_size_histogram),
            'recommendations': list(self.recommendations),
            'scenario_risks': dict(self.scenario_risks),
            'attribute_risks': {col: dict(risk) for col, risk in self.attribute_risks.items()},
            'sampled_records': self.sampled_records,
        }


def _parse_scenarios(scenarios: Iterable[Union[AttackScenario, str]]) -> List[AttackScenario]:
    parsed = []
    for scenario in scenarios or []:
        if not isinstance(scenario, AttackScenario):
            try:
                scenario = AttackScenario(str(scenario).lower())
            except ValueError:
                raise InvalidConfiguration(f"Unknown attack scenario: {scenario}")
        if scenario not in parsed:
            parsed.append(scenario)
    if not parsed:
        raise InvalidConfiguration("At least one attack scenario is required")
    return parsed


def prosecutor_risk(sampled_sizes: np.ndarray) -> float:
    """Mean of 1 / class size over the sampled rows"""
    if len(sampled_sizes) == 0:
        return 0.0
    return float(np.mean(1.0 / sampled_sizes))


def journalist_risk(sampled_sizes: np.ndarray, total_records: int) -> float:
    """Prosecutor risk of each sampled row scaled by its class's share of the data"""
    if len(sampled_sizes) == 0 or total_records == 0:
        return 0.0
    return float(np.mean((1.0 / sampled_sizes) * (sampled_sizes / total_records)))


def marketer_risk(sampled_class_ids: np.ndarray, sizes: np.ndarray) -> float:
    """
    Expected successful matches per attempted record

    Every class the attacker reaches yields one correct match out of its
    size, so the rate is the number of sampled classes over their total size.
    """
    if len(sampled_class_ids) == 0:
        return 0.0
    reached = np.unique(sampled_class_ids)
    return float(len(reached) / sizes[reached].sum())


class RiskAssessmentEngine:
    """
    One risk assessment run

    Configured -> Running -> Completed, or Configured -> Running -> Failed.
    An engine instance runs once; create a new one for the next assessment.
    """

    def __init__(self, quasi_identifiers: Sequence[str],
                 sensitive_attributes: Optional[Sequence[str]] = None,
                 k_threshold: int = 5,
                 sample_fraction: float = 1.0,
                 attack_scenarios: Iterable[Union[AttackScenario, str]] = (
                     AttackScenario.PROSECUTOR, AttackScenario.JOURNALIST, AttackScenario.MARKETER),
                 thresholds: Optional[RiskThresholds] = None,
                 high_cardinality_ratio: float = 0.5,
                 random_state: Optional[Union[int, np.random.Generator]] = None):
        """
        Args:
            quasi_identifiers: QI columns defining the equivalence classes
            sensitive_attributes: SA columns checked for homogeneous classes
            k_threshold: Classes smaller than this count as violations
            sample_fraction: Fraction of rows the attacker targets, in (0, 1]
            attack_scenarios: Non-empty subset of prosecutor/journalist/marketer
            thresholds: Risk level thresholds (defaults 0.1 / 0.3)
            high_cardinality_ratio: QI distinct ratio that triggers a
                generalization recommendation
            random_state: Seed or numpy Generator for row sampling
        """
        self.quasi_identifiers = list(quasi_identifiers or [])
        self.sensitive_attributes = list(sensitive_attributes or [])
        self.k_threshold = k_threshold
        self.sample_fraction = sample_fraction
        self.attack_scenarios = list(attack_scenarios or [])
        self.thresholds = thresholds or RiskThresholds()
        self.high_cardinality_ratio = high_cardinality_ratio
        self.random_state = random_state

        self.state = AssessmentState.CONFIGURED
        self.error: Optional[Exception] = None

    @classmethod
    def from_settings(cls, settings: EngineSettings, quasi_identifiers: Sequence[str],
                      **kwargs) -> 'RiskAssessmentEngine':
        """Engine using the thresholds of the engine-wide settings"""
        kwargs.setdefault('thresholds', RiskThresholds.from_settings(settings))
        kwargs.setdefault('high_cardinality_ratio', settings.high_cardinality_ratio)
        return cls(quasi_identifiers, **kwargs)

    def run(self, dataset: Dataset,
            cancellation: Optional[CancellationToken] = None) -> RiskAssessmentResult:
        """
        Run the assessment

        Args:
            dataset: Original or anonymized dataset
            cancellation: Optional token checked between attack scenarios

        Returns:
            RiskAssessmentResult
        """
        if self.state != AssessmentState.CONFIGURED:
            raise InvalidConfiguration(f"Assessment already {self.state.value}")

        self.state = AssessmentState.RUNNING
        try:
            with log_performance(logger, "risk assessment"):
                result = self._assess(dataset, cancellation)
        except Exception as e:
            self.state = AssessmentState.FAILED
            self.error = e
            raise

        self.state = AssessmentState.COMPLETED
        return result

    def _validate(self, dataset: Dataset) -> Tuple[List[str], List[AttackScenario]]:
        qi = check_quasi_identifiers(dataset, self.quasi_identifiers)
        dataset.require_columns(self.sensitive_attributes, "sensitive attribute")

        k = self.k_threshold
        if isinstance(k, bool) or not isinstance(k, (int, np.integer)) or k < 1:
            raise InvalidConfiguration(f"k_threshold must be a positive integer (got {k})")

        fraction = self.sample_fraction
        if (isinstance(fraction, bool) or not isinstance(fraction, (int, float, np.floating))
                or not 0 < fraction <= 1):
            raise InvalidConfiguration(f"sample_fraction must be within (0, 1] (got {fraction})")

        if not 0 < self.high_cardinality_ratio <= 1:
            raise InvalidConfiguration(
                f"high_cardinality_ratio must be within (0, 1] (got {self.high_cardinality_ratio})"
            )

        return qi, _parse_scenarios(self.attack_scenarios)

    def _sample_rows(self, total: int) -> np.ndarray:
        if total == 0:
            return np.array([], dtype=int)
        if self.sample_fraction >= 1:
            return np.arange(total)

        n = max(1, int(round(self.sample_fraction * total)))
        rng = (self.random_state if isinstance(self.random_state, np.random.Generator)
               else np.random.default_rng(self.random_state))
        return np.sort(rng.choice(total, size=n, replace=False))

    def _assess(self, dataset: Dataset,
                cancellation: Optional[CancellationToken]) -> RiskAssessmentResult:
        qi, scenarios = self._validate(dataset)
        total = len(dataset)
        k = int(self.k_threshold)

        logger.info(f"Assessing risk: {total} records, QI={qi}, k={k}, "
                    f"scenarios={[s.value for s in scenarios]}")

        classes = build_equivalence_classes(dataset, qi)
        sizes = np.array([len(rows) for rows in classes.values()], dtype=int)

        sampled = self._sample_rows(total)
        class_ids = row_class_ids(classes, total)[sampled]
        sampled_sizes = sizes[class_ids].astype(float) if len(sampled) else np.array([])

        scenario_risks: Dict[str, float] = {}
        for scenario in scenarios:
            if cancellation is not None:
                cancellation.raise_if_cancelled("risk assessment")

            if scenario == AttackScenario.PROSECUTOR:
                risk = prosecutor_risk(sampled_sizes)
            elif scenario == AttackScenario.JOURNALIST:
                risk = journalist_risk(sampled_sizes, total)
            else:
                risk = marketer_risk(class_ids, sizes)

            scenario_risks[scenario.value] = float(min(1.0, max(0.0, risk)))
            logger.debug(f"{scenario.value} risk: {scenario_risks[scenario.value]:.4f}")

        if cancellation is not None:
            cancellation.raise_if_cancelled("risk assessment")

        overall_risk = max(scenario_risks.values())
        risk_level = self.thresholds.level(overall_risk)

        violations = int(sizes[sizes < k].sum()) if len(sizes) else 0
        unique_records = int((sizes == 1).sum()) if len(sizes) else 0

        attribute_risks = self._analyze_attribute_risks(dataset, qi)
        recommendations = self._generate_recommendations(
            dataset, classes, k, violations, unique_records, risk_level, attribute_risks
        )

        result = RiskAssessmentResult(
            overall_risk=overall_risk,
            risk_level=risk_level,
            violations=violations,
            unique_records=unique_records,
            total_records=total,
            k_threshold=k,
            equivalence_classes=len(classes),
            class_size_histogram=size_histogram(classes),
            recommendations=tuple(recommendations),
            scenario_risks=dict(sorted(scenario_risks.items())),
            attribute_risks=attribute_risks,
            sampled_records=len(sampled),
        )

        logger.info(f"Risk assessment complete: risk={overall_risk:.4f} ({risk_level.value}), "
                    f"violations={violations}, unique={unique_records}")

        return result

    def _analyze_attribute_risks(self, dataset: Dataset,
                                 quasi_identifiers: List[str]) -> Dict[str, Dict[str, Any]]:
        """Analyze risk for each quasi-identifier"""
        risks = {}
        total = len(dataset)

        for col in quasi_identifiers:
            if total == 0:
                risks[col] = {
                    'distinct_values': 0,
                    'distinct_ratio': 0.0,
                    'entropy': 0.0,
                    'risk_level': RiskLevel.LOW.value,
                }
                continue

            value_counts = dataset.frame[col].value_counts(dropna=False)
            ratio = len(value_counts) / total

            if ratio > 0.8:
                level = RiskLevel.HIGH
            elif ratio > 0.5:
                level = RiskLevel.MEDIUM
            else:
                level = RiskLevel.LOW

            risks[col] = {
                'distinct_values': int(len(value_counts)),
                'distinct_ratio': float(ratio),
                'entropy': float(stats.entropy(value_counts.to_numpy(), base=2)),
                'risk_level': level.value,
            }

        return risks

    def _generate_recommendations(self, dataset: Dataset, classes: EquivalenceClasses, k: int,
                                  violations: int, unique_records: int, risk_level: RiskLevel,
                                  attribute_risks: Dict[str, Dict[str, Any]]) -> List[str]:
        """Remediation guidance in a fixed rule order"""
        recommendations = []

        if unique_records > 0:
            recommendations.append(
                f"Increase k: {unique_records} records are unique on their quasi-identifiers"
            )

        for col, risk in attribute_risks.items():
            if risk['distinct_ratio'] > self.high_cardinality_ratio:
                recommendations.append(
                    f"Generalize high-cardinality quasi-identifier '{col}' "
                    f"(distinct ratio {risk['distinct_ratio']:.2f})"
                )

        if violations > 0:
            # A QI with a single distinct value cannot merge classes any further
            headroom = any(risk['distinct_values'] > 1 for risk in attribute_risks.values())
            if headroom:
                recommendations.append(
                    f"Generalize quasi-identifiers to merge {violations} records "
                    f"in classes smaller than k={k}"
                )
            else:
                recommendations.append(
                    f"Suppress residual records: {violations} records remain in classes "
                    f"smaller than k={k} with no generalization headroom left"
                )

        for attr in self.sensitive_attributes:
            homogeneous = self._homogeneous_classes(classes, dataset, attr)
            if homogeneous:
                recommendations.append(
                    f"Apply l-diversity to '{attr}': {homogeneous} equivalence classes "
                    f"share a single sensitive value"
                )

        if risk_level == RiskLevel.HIGH:
            recommendations.append(
                "Consider applying differential privacy to numeric releases (risk level High)"
            )

        return recommendations

    @staticmethod
    def _homogeneous_classes(classes: EquivalenceClasses, dataset: Dataset, attribute: str) -> int:
        """Classes of two or more rows whose sensitive value never varies"""
        if not classes:
            return 0
        counts, _ = class_value_counts(classes, dataset.frame[attribute])
        distinct = (counts > 0).sum(axis=1)
        sizes = counts.sum(axis=1)
        return int(((distinct == 1) & (sizes >= 2)).sum())


def assess_risk(dataset: Dataset, quasi_identifiers: Sequence[str],
                sensitive_attributes: Optional[Sequence[str]] = None,
                k_threshold: int = 5, sample_fraction: float = 1.0,
                attack_scenarios: Iterable[Union[AttackScenario, str]] = (
                    AttackScenario.PROSECUTOR, AttackScenario.JOURNALIST, AttackScenario.MARKETER),
                thresholds: Optional[RiskThresholds] = None,
                high_cardinality_ratio: float = 0.5,
                random_state: Optional[Union[int, np.random.Generator]] = None,
                cancellation: Optional[CancellationToken] = None) -> RiskAssessmentResult:
    """Functional entry point: configure a RiskAssessmentEngine and run it once"""
    engine = RiskAssessmentEngine(
        quasi_identifiers,
        sensitive_attributes,
        k_threshold=k_threshold,
        sample_fraction=sample_fraction,
        attack_scenarios=attack_scenarios,
        thresholds=thresholds,
        high_cardinality_ratio=high_cardinality_ratio,
        random_state=random_state,
    )
    return engine.run(dataset, cancellation)
