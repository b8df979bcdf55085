"""
Technique dispatch

Every anonymization technique is described by a parameter record; the
record's type selects the implementation through a registry table, so all
techniques share one `transform(dataset, params) -> (Dataset, result)`
interface.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from dataclasses import dataclass, field
import logging

from ..core.config import PrivacyConfig
from ..core.dataset import Dataset, ColumnRoles
from ..core.errors import InvalidConfiguration
from ..core.cancellation import CancellationToken
from ..core.logging import get_logger
from .results import AnonymizationResult, Technique
from .k_anonymity import apply_k_anonymity
from .l_diversity import LDiversityMode, apply_l_diversity
from .t_closeness import apply_t_closeness
from .differential_privacy import NoiseType, PrivacyAccountant, apply_differential_privacy

logger = logging.getLogger(__name__)


def _as_tuple(values: Optional[Sequence[str]]) -> Tuple[str, ...]:
    return tuple(values or ())


@dataclass(frozen=True)
class KAnonymityParams:
    quasi_identifiers: Tuple[str, ...]
    k: int = 5
    suppression_limit: float = 0.1
    hierarchies: Mapping[str, Any] = field(default_factory=dict)

    technique = Technique.K_ANONYMITY

    def __post_init__(self):
        object.__setattr__(self, 'quasi_identifiers', _as_tuple(self.quasi_identifiers))


@dataclass(frozen=True)
class LDiversityParams:
    quasi_identifiers: Tuple[str, ...]
    sensitive_attributes: Tuple[str, ...]
    l: int = 3
    mode: Union[LDiversityMode, str] = LDiversityMode.DISTINCT
    suppress_violations: bool = False

    technique = Technique.L_DIVERSITY

    def __post_init__(self):
        object.__setattr__(self, 'quasi_identifiers', _as_tuple(self.quasi_identifiers))
        object.__setattr__(self, 'sensitive_attributes', _as_tuple(self.sensitive_attributes))


@dataclass(frozen=True)
class TClosenessParams:
    quasi_identifiers: Tuple[str, ...]
    sensitive_attributes: Tuple[str, ...]
    t: float = 0.5
    suppress_violations: bool = False

    technique = Technique.T_CLOSENESS

    def __post_init__(self):
        object.__setattr__(self, 'quasi_identifiers', _as_tuple(self.quasi_identifiers))
        object.__setattr__(self, 'sensitive_attributes', _as_tuple(self.sensitive_attributes))


@dataclass(frozen=True)
class DifferentialPrivacyParams:
    target_columns: Tuple[str, ...]
    epsilon: float = 1.0
    mechanism: Union[NoiseType, str] = NoiseType.LAPLACE
    delta: Optional[float] = None
    sensitivities: Mapping[str, float] = field(default_factory=dict)
    random_state: Any = None
    # Shared by every step built from one PrivacyConfig
    accountant: Optional[PrivacyAccountant] = field(default=None, compare=False, repr=False)

    technique = Technique.DIFFERENTIAL_PRIVACY

    def __post_init__(self):
        object.__setattr__(self, 'target_columns', _as_tuple(self.target_columns))


TechniqueParams = Union[KAnonymityParams, LDiversityParams, TClosenessParams,
                        DifferentialPrivacyParams]
TransformResult = Tuple[Dataset, AnonymizationResult]


def _run_k_anonymity(dataset: Dataset, params: KAnonymityParams,
                     cancellation: Optional[CancellationToken]) -> TransformResult:
    return apply_k_anonymity(dataset, params.quasi_identifiers, params.k,
                             params.suppression_limit, params.hierarchies, cancellation)


def _run_l_diversity(dataset: Dataset, params: LDiversityParams,
                     cancellation: Optional[CancellationToken]) -> TransformResult:
    return apply_l_diversity(dataset, params.quasi_identifiers, params.sensitive_attributes,
                             params.l, params.mode, params.suppress_violations)


def _run_t_closeness(dataset: Dataset, params: TClosenessParams,
                     cancellation: Optional[CancellationToken]) -> TransformResult:
    return apply_t_closeness(dataset, params.quasi_identifiers, params.sensitive_attributes,
                             params.t, params.suppress_violations)


def _run_differential_privacy(dataset: Dataset, params: DifferentialPrivacyParams,
                              cancellation: Optional[CancellationToken]) -> TransformResult:
    return apply_differential_privacy(dataset, params.target_columns, params.epsilon,
                                      params.mechanism, params.delta, params.sensitivities,
                                      params.random_state, params.accountant)


_REGISTRY: Dict[type, Callable[..., TransformResult]] = {
    KAnonymityParams: _run_k_anonymity,
    LDiversityParams: _run_l_diversity,
    TClosenessParams: _run_t_closeness,
    DifferentialPrivacyParams: _run_differential_privacy,
}


def transform(dataset: Dataset, params: TechniqueParams,
              cancellation: Optional[CancellationToken] = None) -> TransformResult:
    """
    Apply one technique

    Args:
        dataset: Input dataset (left untouched)
        params: Technique parameter record
        cancellation: Optional token; checked before the run and, for
            k-anonymity, between generalization iterations

    Returns:
        Tuple of (output Dataset, AnonymizationResult)
    """
    runner = _REGISTRY.get(type(params))
    if runner is None:
        raise InvalidConfiguration(f"Unsupported technique parameters: {type(params).__name__}")

    if cancellation is not None:
        cancellation.raise_if_cancelled(params.technique.value)

    logger.info(f"Running {params.technique.value} on {len(dataset)} records")
    return runner(dataset, params, cancellation)


def run_pipeline(dataset: Dataset, steps: Sequence[TechniqueParams],
                 cancellation: Optional[CancellationToken] = None,
                 run_id: Optional[str] = None) -> Tuple[Dataset, List[AnonymizationResult]]:
    """
    Apply techniques left to right, each on the previous step's output

    A failing step raises; no intermediate dataset is returned. Log records
    are tagged with run_id when one is given.
    """
    run_logger = get_logger(__name__, run_id)

    if not steps:
        raise InvalidConfiguration("A pipeline needs at least one step")

    current = dataset
    results = []
    for i, step in enumerate(steps, 1):
        run_logger.info(f"Step {i}/{len(steps)}: {type(step).__name__}")
        current, result = transform(current, step, cancellation)
        results.append(result)

    run_logger.info(f"Pipeline complete: {[r.technique.value for r in results]}, "
                    f"{len(current)}/{len(dataset)} records retained")

    return current, results


def params_from_config(config: PrivacyConfig, roles: ColumnRoles,
                       techniques: Sequence[Union[Technique, str]],
                       target_columns: Optional[Sequence[str]] = None) -> List[TechniqueParams]:
    """
    Build pipeline steps from a PrivacyConfig and a role assignment

    Args:
        config: Per-run privacy parameters
        roles: Quasi-identifier and sensitive attribute columns
        techniques: Techniques to run, in order
        target_columns: Numeric columns for differential privacy
            (defaults to the sensitive attributes)

    Differential privacy steps share one accountant holding config.epsilon,
    so a pipeline that releases more than the configured budget fails with
    BudgetExceeded at the step that would overspend.
    """
    steps: List[TechniqueParams] = []
    accountant: Optional[PrivacyAccountant] = None
    for technique in techniques:
        if not isinstance(technique, Technique):
            try:
                technique = Technique(str(technique).lower())
            except ValueError:
                raise InvalidConfiguration(f"Unknown technique: {technique}")

        if technique == Technique.K_ANONYMITY:
            steps.append(KAnonymityParams(roles.quasi_identifiers, config.k,
                                          config.suppression_limit))
        elif technique == Technique.L_DIVERSITY:
            steps.append(LDiversityParams(roles.quasi_identifiers,
                                          roles.sensitive_attributes, config.l))
        elif technique == Technique.T_CLOSENESS:
            steps.append(TClosenessParams(roles.quasi_identifiers,
                                          roles.sensitive_attributes, config.t))
        else:
            if accountant is None:
                accountant = PrivacyAccountant(config.epsilon)
            mechanism = NoiseType.GAUSSIAN if config.delta is not None else NoiseType.LAPLACE
            steps.append(DifferentialPrivacyParams(
                _as_tuple(target_columns) or roles.sensitive_attributes,
                config.epsilon, mechanism, config.delta, accountant=accountant,
            ))
    return steps
