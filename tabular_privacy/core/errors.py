"""
Error taxonomy for the anonymization and risk-assessment engine.

Every failure is raised to the caller; a failed run never hands back a
partially transformed dataset.
"""

from typing import Optional


class PrivacyEngineError(Exception):
    """Base class for all engine errors"""


class InvalidConfiguration(PrivacyEngineError):
    """Out-of-range or missing parameters (caller error, not retried)"""


class KAnonymityUnsatisfiable(PrivacyEngineError):
    """
    Generalization levels are exhausted and the suppression limit is too
    small to remove the remaining sub-k rows.
    """

    def __init__(self, required_suppression: int, allowed_suppression: int,
                 k: int, message: Optional[str] = None):
        self.required_suppression = required_suppression
        self.allowed_suppression = allowed_suppression
        self.shortfall = required_suppression - allowed_suppression
        self.k = k
        super().__init__(
            message or
            f"k={k} cannot be reached: {required_suppression} rows need suppression "
            f"but only {allowed_suppression} are allowed (shortfall {self.shortfall})"
        )


class BudgetExceeded(PrivacyEngineError):
    """Composed epsilon would exceed the configured privacy budget"""

    def __init__(self, requested: float, remaining: float, total: float):
        self.requested = requested
        self.remaining = remaining
        self.total = total
        super().__init__(
            f"Privacy budget exceeded: requested ε={requested:g}, "
            f"remaining ε={remaining:g} of {total:g}"
        )


class Cancelled(PrivacyEngineError):
    """Cooperative cancellation was honored"""
