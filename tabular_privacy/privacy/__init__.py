"""
Privacy algorithms: equivalence classes, generalization, k-anonymity,
l-diversity, t-closeness, differential privacy and risk assessment.
"""

from .equivalence import build_equivalence_classes
from .generalization import (
    GeneralizationHierarchy,
    GeneralizationRecord,
    default_hierarchy,
    numeric_hierarchy,
    masking_hierarchy,
    date_hierarchy,
    taxonomy_hierarchy,
    categorical_hierarchy,
)
from .results import AnonymizationResult, Technique
from .k_anonymity import (
    KAnonymityValidator,
    KAnonymityTransformer,
    KAnonymityResult,
    apply_k_anonymity,
)
from .l_diversity import (
    LDiversityValidator,
    LDiversityTransformer,
    LDiversityResult,
    LDiversityMode,
    apply_l_diversity,
)
from .t_closeness import (
    TClosenessValidator,
    TClosenessTransformer,
    TClosenessResult,
    apply_t_closeness,
)
from .differential_privacy import (
    DifferentialPrivacy,
    PrivacyAccountant,
    NoiseType,
    SystemRandomSource,
    apply_differential_privacy,
)
from .risk_assessment import (
    RiskAssessmentEngine,
    RiskAssessmentResult,
    AssessmentState,
    AttackScenario,
    RiskLevel,
    RiskThresholds,
    assess_risk,
)
from .engine import (
    KAnonymityParams,
    LDiversityParams,
    TClosenessParams,
    DifferentialPrivacyParams,
    transform,
    run_pipeline,
    params_from_config,
)

__all__ = [
    'build_equivalence_classes',
    'GeneralizationHierarchy',
    'GeneralizationRecord',
    'default_hierarchy',
    'numeric_hierarchy',
    'masking_hierarchy',
    'date_hierarchy',
    'taxonomy_hierarchy',
    'categorical_hierarchy',
    'AnonymizationResult',
    'Technique',
    'KAnonymityValidator',
    'KAnonymityTransformer',
    'KAnonymityResult',
    'apply_k_anonymity',
    'LDiversityValidator',
    'LDiversityTransformer',
    'LDiversityResult',
    'LDiversityMode',
    'apply_l_diversity',
    'TClosenessValidator',
    'TClosenessTransformer',
    'TClosenessResult',
    'apply_t_closeness',
    'DifferentialPrivacy',
    'PrivacyAccountant',
    'NoiseType',
    'SystemRandomSource',
    'apply_differential_privacy',
    'RiskAssessmentEngine',
    'RiskAssessmentResult',
    'AssessmentState',
    'AttackScenario',
    'RiskLevel',
    'RiskThresholds',
    'assess_risk',
    'KAnonymityParams',
    'LDiversityParams',
    'TClosenessParams',
    'DifferentialPrivacyParams',
    'transform',
    'run_pipeline',
    'params_from_config',
]
