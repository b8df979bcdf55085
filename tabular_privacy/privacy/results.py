"""
Result records returned by the anonymization transformers
"""

from typing import Any, Dict, Optional
from dataclasses import dataclass, field, asdict
from enum import Enum


class Technique(Enum):
    """Anonymization techniques supported by the engine"""
    K_ANONYMITY = "k-anonymity"
    L_DIVERSITY = "l-diversity"
    T_CLOSENESS = "t-closeness"
    DIFFERENTIAL_PRIVACY = "differential-privacy"


@dataclass(frozen=True)
class AnonymizationResult:
    """Outcome of one anonymization run; never mutated after creation"""
    technique: Technique
    records_suppressed: int
    total_records: int
    information_loss: float

    # k-anonymity
    equivalence_classes: Optional[int] = None
    avg_group_size: Optional[float] = None
    privacy_risk: Optional[float] = None
    generalization_levels: Dict[str, int] = field(default_factory=dict)

    # l-diversity / t-closeness
    diverse_classes: Optional[int] = None
    violating_classes: Optional[int] = None
    avg_diversity: Optional[float] = None
    satisfying_classes: Optional[int] = None
    avg_distance: Optional[float] = None
    max_distance: Optional[float] = None

    # differential privacy
    epsilon_spent: Optional[float] = None

    @property
    def records_retained(self) -> int:
        return self.total_records - self.records_suppressed

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict without the metrics that do not apply to the technique"""
        data = asdict(self)
        data['technique'] = self.technique.value
        if not data['generalization_levels']:
            data.pop('generalization_levels')
        return {key: value for key, value in data.items() if value is not None}
