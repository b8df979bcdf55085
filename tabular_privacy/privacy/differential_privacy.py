"""
Differential Privacy Implementation

Calibrated Laplace and Gaussian noise for numeric aggregates and columns,
with a privacy accountant enforcing naive sequential composition.
"""

import numpy as np
import pandas as pd
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from enum import Enum
import logging
import math
import os

from ..core.dataset import Dataset, ColumnType
from ..core.errors import BudgetExceeded, InvalidConfiguration
from ..core.logging import log_performance
from .results import AnonymizationResult, Technique

logger = logging.getLogger(__name__)

# Absorbs float rounding when epsilons are split and summed back up
_BUDGET_TOLERANCE = 1e-9


class NoiseType(Enum):
    """Types of noise mechanisms"""
    LAPLACE = "laplace"
    GAUSSIAN = "gaussian"


class SystemRandomSource:
    """
    Noise source backed by the operating system's entropy pool

    Exposes the subset of the numpy Generator interface used here, so
    either can be passed wherever a random source is accepted.
    """

    def _uniform_open(self, n: int) -> np.ndarray:
        # 52 random bits per draw, offset by half a step so values lie in (0, 1)
        bits = np.frombuffer(os.urandom(8 * n), dtype=np.uint64) >> np.uint64(12)
        return (bits.astype(float) + 0.5) * 2.0 ** -52

    @staticmethod
    def _shaped(samples: np.ndarray, size):
        return float(samples[0]) if size is None else samples.reshape(size)

    def laplace(self, loc: float = 0.0, scale: float = 1.0, size=None):
        n = 1 if size is None else int(np.prod(size))
        # Inverse CDF on u in (-0.5, 0.5)
        u = self._uniform_open(n) - 0.5
        return self._shaped(loc - scale * np.sign(u) * np.log1p(-2 * np.abs(u)), size)

    def normal(self, loc: float = 0.0, scale: float = 1.0, size=None):
        n = 1 if size is None else int(np.prod(size))
        # Box-Muller
        radius = np.sqrt(-2.0 * np.log(self._uniform_open(n)))
        angle = 2.0 * np.pi * self._uniform_open(n)
        return self._shaped(loc + scale * radius * np.cos(angle), size)


RandomState = Union[None, int, np.random.Generator, SystemRandomSource]


def resolve_random_state(random_state: RandomState):
    """None -> OS entropy, int -> seeded numpy Generator, else used as is"""
    if random_state is None:
        return SystemRandomSource()
    if isinstance(random_state, (np.random.Generator, SystemRandomSource)):
        return random_state
    if isinstance(random_state, (int, np.integer)) and not isinstance(random_state, bool):
        return np.random.default_rng(int(random_state))
    raise InvalidConfiguration(f"Unsupported random source: {type(random_state).__name__}")


def _check_epsilon(epsilon: Any) -> float:
    if (isinstance(epsilon, bool) or not isinstance(epsilon, (int, float, np.number))
            or not math.isfinite(epsilon) or epsilon <= 0):
        raise InvalidConfiguration(f"Epsilon must be a positive number (got {epsilon})")
    return float(epsilon)


def _check_delta(delta: Any) -> float:
    if (delta is None or isinstance(delta, bool)
            or not isinstance(delta, (int, float, np.number)) or not 0 < delta < 1):
        raise InvalidConfiguration(f"Delta must be within (0, 1) for Gaussian noise (got {delta})")
    return float(delta)


def _check_sensitivity(sensitivity: Any) -> float:
    if (isinstance(sensitivity, bool) or not isinstance(sensitivity, (int, float, np.number))
            or not math.isfinite(sensitivity) or sensitivity < 0):
        raise InvalidConfiguration(f"Sensitivity must be a non-negative number (got {sensitivity})")
    return float(sensitivity)


def _noise_shape(value):
    return np.shape(value) if isinstance(value, np.ndarray) else None


def laplace_mechanism(value: Union[float, np.ndarray], sensitivity: float, epsilon: float,
                      random_state: RandomState = None) -> Union[float, np.ndarray]:
    """
    Add Laplace noise with scale sensitivity / epsilon

    Stateless: no budget is tracked. Use DifferentialPrivacy.apply_laplace
    to spend from a budget.
    """
    scale = _check_sensitivity(sensitivity) / _check_epsilon(epsilon)
    rng = resolve_random_state(random_state)
    return value + rng.laplace(0.0, scale, _noise_shape(value))


def gaussian_sigma(sensitivity: float, epsilon: float, delta: float) -> float:
    """Standard deviation of the (epsilon, delta) Gaussian mechanism"""
    return sensitivity * math.sqrt(2 * math.log(1.25 / delta)) / epsilon


def gaussian_mechanism(value: Union[float, np.ndarray], sensitivity: float, epsilon: float,
                       delta: float, random_state: RandomState = None) -> Union[float, np.ndarray]:
    """Add Gaussian noise calibrated for (epsilon, delta)-differential privacy"""
    sigma = gaussian_sigma(_check_sensitivity(sensitivity), _check_epsilon(epsilon),
                           _check_delta(delta))
    rng = resolve_random_state(random_state)
    return value + rng.normal(0.0, sigma, _noise_shape(value))


class PrivacyAccountant:
    """
    Tracks and manages privacy budget across multiple operations

    Epsilons of successive releases add up; a release that would push the
    running total past the budget is refused.
    """

    def __init__(self, total_budget: float):
        """
        Initialize privacy accountant

        Args:
            total_budget: Total privacy budget available
        """
        self.total_budget = _check_epsilon(total_budget)
        self.consumed_budget = 0.0
        self.operations: List[Dict[str, Any]] = []

    def check(self, epsilon: float, operation: str = "unknown") -> float:
        """
        Raise BudgetExceeded unless epsilon still fits; nothing is consumed

        Returns:
            The validated epsilon
        """
        epsilon = _check_epsilon(epsilon)

        if self.consumed_budget + epsilon > self.total_budget + _BUDGET_TOLERANCE:
            logger.warning(f"Insufficient privacy budget for {operation}: "
                           f"requested ε={epsilon}, remaining ε={self.remaining_budget}")
            raise BudgetExceeded(epsilon, self.remaining_budget, self.total_budget)

        return epsilon

    def spend(self, epsilon: float, operation: str = "unknown") -> float:
        """
        Consume privacy budget

        Args:
            epsilon: Amount of budget to consume
            operation: Description of operation

        Returns:
            Remaining budget

        Raises:
            BudgetExceeded: if the running total would exceed the budget
        """
        epsilon = self.check(epsilon, operation)
        self.consumed_budget += epsilon
        self.operations.append({
            'operation': operation,
            'epsilon': epsilon,
            'cumulative': self.consumed_budget
        })

        logger.debug(f"Consumed ε={epsilon} for {operation}, "
                     f"total consumed: {self.consumed_budget}/{self.total_budget}")

        return self.remaining_budget

    @property
    def remaining_budget(self) -> float:
        return max(0.0, self.total_budget - self.consumed_budget)

    def get_operations_log(self) -> List[Dict[str, Any]]:
        """Get log of all operations"""
        return list(self.operations)

    def get_privacy_budget_status(self) -> Dict[str, float]:
        return {
            'total_budget': self.total_budget,
            'consumed_budget': self.consumed_budget,
            'remaining_budget': self.remaining_budget,
            'budget_exhausted': self.remaining_budget <= _BUDGET_TOLERANCE,
        }


class DifferentialPrivacy:
    """
    Implements differential privacy mechanisms under one privacy budget
    """

    def __init__(self, budget_epsilon: float = 1.0, delta: Optional[float] = None,
                 random_state: RandomState = None,
                 accountant: Optional[PrivacyAccountant] = None):
        """
        Initialize differential privacy mechanism

        Args:
            budget_epsilon: Total privacy budget (smaller = more privacy)
            delta: Delta parameter for (ε,δ)-differential privacy (Gaussian noise)
            random_state: numpy Generator or seed for reproducible noise;
                OS entropy when omitted
            accountant: Existing budget to draw from instead of a fresh one
                of budget_epsilon
        """
        self.accountant = accountant if accountant is not None else PrivacyAccountant(budget_epsilon)
        self.delta = _check_delta(delta) if delta is not None else None
        self.rng = resolve_random_state(random_state)

        logger.info(f"Initialized DP with ε={self.accountant.total_budget}, δ={delta}")

    @property
    def epsilon(self) -> float:
        return self.accountant.total_budget

    def _spend(self, epsilon: Optional[float], operation: str) -> float:
        epsilon = self.accountant.total_budget if epsilon is None else _check_epsilon(epsilon)
        self.accountant.spend(epsilon, operation)
        return epsilon

    def apply_laplace(self, value: Union[float, np.ndarray], sensitivity: float,
                      epsilon: Optional[float] = None,
                      operation: str = "laplace") -> Union[float, np.ndarray]:
        """
        Add Laplace noise for differential privacy

        Args:
            value: Original value or array
            sensitivity: L1 sensitivity of the query
            epsilon: Budget spent on this release (whole budget if omitted)

        Returns:
            Value with added Laplace noise
        """
        sensitivity = _check_sensitivity(sensitivity)
        epsilon = self._spend(epsilon, operation)
        return laplace_mechanism(value, sensitivity, epsilon, self.rng)

    def apply_gaussian(self, value: Union[float, np.ndarray], sensitivity: float,
                       epsilon: Optional[float] = None, delta: Optional[float] = None,
                       operation: str = "gaussian") -> Union[float, np.ndarray]:
        """
        Add Gaussian noise for (ε,δ)-differential privacy

        Args:
            value: Original value or array
            sensitivity: L2 sensitivity of the query
            epsilon: Budget spent on this release (whole budget if omitted)
            delta: Delta parameter (uses instance delta if not provided)

        Returns:
            Value with added Gaussian noise
        """
        sensitivity = _check_sensitivity(sensitivity)
        delta = _check_delta(delta if delta is not None else self.delta)
        epsilon = self._spend(epsilon, operation)
        return gaussian_mechanism(value, sensitivity, epsilon, delta, self.rng)

    def private_count(self, true_count: int, epsilon: Optional[float] = None,
                      sensitivity: int = 1) -> int:
        """Noisy, non-negative count"""
        noisy_count = self.apply_laplace(true_count, sensitivity, epsilon, "count")
        return max(0, int(np.round(noisy_count)))

    def private_sum(self, values: np.ndarray, lower_bound: float, upper_bound: float,
                    epsilon: Optional[float] = None) -> float:
        """
        Noisy sum of values clipped to [lower_bound, upper_bound]

        One record moves the sum by at most upper_bound - lower_bound.
        """
        if upper_bound < lower_bound:
            raise InvalidConfiguration("upper_bound must not be below lower_bound")
        true_sum = float(np.clip(np.asarray(values, dtype=float), lower_bound, upper_bound).sum())
        return float(self.apply_laplace(true_sum, upper_bound - lower_bound, epsilon, "sum"))

    def private_mean(self, values: np.ndarray, lower_bound: float, upper_bound: float,
                     epsilon: Optional[float] = None) -> float:
        """
        Differentially private mean as noisy sum / noisy count

        The epsilon is split evenly between the two releases.
        """
        epsilon = self.accountant.total_budget if epsilon is None else _check_epsilon(epsilon)

        noisy_sum = self.private_sum(values, lower_bound, upper_bound, epsilon / 2)
        noisy_count = self.private_count(len(values), epsilon / 2)

        if noisy_count > 0:
            return float(np.clip(noisy_sum / noisy_count, lower_bound, upper_bound))
        return (upper_bound + lower_bound) / 2

    def private_histogram(self, data: pd.Series, bins: Union[int, Sequence[float]] = 10,
                          epsilon: Optional[float] = None,
                          density: bool = False) -> Tuple[np.ndarray, np.ndarray]:
        """
        Differentially private histogram

        Bins are disjoint, so the whole histogram costs one epsilon.

        Returns:
            Tuple of (counts/density, bin_edges)
        """
        values = pd.Series(data).dropna().to_numpy(dtype=float)
        counts, bin_edges = np.histogram(values, bins=bins)

        noisy_counts = self.apply_laplace(counts.astype(float), 1, epsilon, "histogram")
        noisy_counts = np.maximum(0, noisy_counts)

        if density:
            width = bin_edges[1:] - bin_edges[:-1]
            total = np.sum(noisy_counts * width)
            if total > 0:
                noisy_counts = noisy_counts / total

        return noisy_counts, bin_edges

    def get_privacy_budget_status(self) -> Dict[str, float]:
        return self.accountant.get_privacy_budget_status()


def _parse_mechanism(mechanism: Union[NoiseType, str]) -> NoiseType:
    if isinstance(mechanism, NoiseType):
        return mechanism
    try:
        return NoiseType(str(mechanism).lower())
    except ValueError:
        raise InvalidConfiguration(f"Unknown noise mechanism: {mechanism}")


def _check_targets(dataset: Dataset, target_columns: Sequence[str]) -> List[str]:
    targets = list(target_columns or [])
    if not targets:
        raise InvalidConfiguration("At least one target column is required")
    if len(set(targets)) != len(targets):
        raise InvalidConfiguration(f"Duplicate target columns: {targets}")
    dataset.require_columns(targets, "target column")

    non_numeric = [col for col in targets if dataset.column_type(col) != ColumnType.NUMERIC]
    if non_numeric:
        raise InvalidConfiguration(f"Differential privacy needs numeric columns: {non_numeric}")
    return targets


def apply_differential_privacy(dataset: Dataset, target_columns: Sequence[str], epsilon: float,
                               mechanism: Union[NoiseType, str] = NoiseType.LAPLACE,
                               delta: Optional[float] = None,
                               sensitivities: Optional[Mapping[str, float]] = None,
                               random_state: RandomState = None,
                               accountant: Optional[PrivacyAccountant] = None
                               ) -> Tuple[Dataset, AnonymizationResult]:
    """
    Release numeric columns with calibrated noise

    Args:
        dataset: Input dataset (left untouched)
        target_columns: Numeric columns to perturb
        epsilon: Budget for this release, split evenly across the target columns
        mechanism: 'laplace' or 'gaussian'
        delta: Required for the Gaussian mechanism
        sensitivities: Per-column sensitivity; defaults to the column's value range
        random_state: numpy Generator or seed for reproducible noise
        accountant: Shared budget that earlier releases already drew from;
            the release is refused up front if epsilon no longer fits

    Returns:
        Tuple of (noised Dataset, AnonymizationResult)

    Raises:
        BudgetExceeded: if the shared budget cannot cover epsilon
    """
    targets = _check_targets(dataset, target_columns)
    noise_type = _parse_mechanism(mechanism)
    epsilon = _check_epsilon(epsilon)
    if noise_type == NoiseType.GAUSSIAN:
        delta = _check_delta(delta)

    sensitivities = dict(sensitivities or {})
    unknown = [col for col in sensitivities if col not in targets]
    if unknown:
        raise InvalidConfiguration(f"Sensitivities given for non-target columns: {unknown}")

    if accountant is not None:
        accountant.check(epsilon, f"differential privacy on {targets}")
    dp = DifferentialPrivacy(epsilon, delta, random_state, accountant)
    consumed_before = dp.accountant.consumed_budget
    column_epsilon = epsilon / len(targets)

    replaced: Dict[str, pd.Series] = {}
    losses = []

    with log_performance(logger, f"differential privacy ({noise_type.value}, ε={epsilon})"):
        for column in targets:
            series = dataset.frame[column]
            mask = series.notna().to_numpy()
            original = series.to_numpy(dtype=float, na_value=np.nan)

            if not mask.any():
                logger.info(f"Skipping column {column}: no values to perturb")
                losses.append(0.0)
                continue

            lower, upper = float(np.nanmin(original)), float(np.nanmax(original))
            value_range = upper - lower
            sensitivity = _check_sensitivity(sensitivities.get(column, value_range))
            if sensitivity == 0:
                logger.warning(f"Column {column} has zero sensitivity; values are released unchanged")

            operation = f"{noise_type.value}:{column}"
            if noise_type == NoiseType.LAPLACE:
                noisy = dp.apply_laplace(original[mask], sensitivity, column_epsilon, operation)
            else:
                noisy = dp.apply_gaussian(original[mask], sensitivity, column_epsilon, delta, operation)

            noisy = np.clip(noisy, lower, upper)

            released = original.copy()
            released[mask] = noisy
            result_series = pd.Series(released, name=column)
            if pd.api.types.is_integer_dtype(series):
                result_series = result_series.round().astype(series.dtype)

            replaced[column] = result_series

            perturbation = np.abs(result_series.to_numpy(dtype=float, na_value=np.nan)[mask]
                                  - original[mask])
            losses.append(float(perturbation.mean() / value_range) if value_range > 0 else 0.0)

            logger.debug(f"Column {column}: sensitivity={sensitivity}, ε={column_epsilon:.4f}")

    output = dataset.replace_columns(replaced) if replaced else dataset

    result = AnonymizationResult(
        technique=Technique.DIFFERENTIAL_PRIVACY,
        records_suppressed=0,
        total_records=len(dataset),
        information_loss=float(min(1.0, max(0.0, np.mean(losses)))),
        epsilon_spent=dp.accountant.consumed_budget - consumed_before,
    )

    logger.info(f"Differential privacy applied to {len(replaced)} columns, "
                f"ε spent {result.epsilon_spent:.4f}/{epsilon}")

    return output, result
