"""
Tabular Privacy Engine

Anonymizes structured tabular datasets (k-anonymity, l-diversity,
t-closeness, differential privacy) and quantifies the residual
re-identification risk.
"""

__version__ = "1.0.0"

from .core import (
    Dataset,
    ColumnType,
    ColumnRoles,
    PrivacyConfig,
    EngineSettings,
    ConfigManager,
    CancellationToken,
    PrivacyEngineError,
    InvalidConfiguration,
    KAnonymityUnsatisfiable,
    BudgetExceeded,
    Cancelled,
    setup_logging,
)
from .privacy import (
    AnonymizationResult,
    RiskAssessmentResult,
    Technique,
    AttackScenario,
    RiskLevel,
    LDiversityMode,
    NoiseType,
    assess_risk,
    apply_k_anonymity,
    apply_l_diversity,
    apply_t_closeness,
    apply_differential_privacy,
    transform,
    run_pipeline,
)

__all__ = [
    '__version__',
    'Dataset',
    'ColumnType',
    'ColumnRoles',
    'PrivacyConfig',
    'EngineSettings',
    'ConfigManager',
    'CancellationToken',
    'PrivacyEngineError',
    'InvalidConfiguration',
    'KAnonymityUnsatisfiable',
    'BudgetExceeded',
    'Cancelled',
    'setup_logging',
    'AnonymizationResult',
    'RiskAssessmentResult',
    'Technique',
    'AttackScenario',
    'RiskLevel',
    'LDiversityMode',
    'NoiseType',
    'assess_risk',
    'apply_k_anonymity',
    'apply_l_diversity',
    'apply_t_closeness',
    'apply_differential_privacy',
    'transform',
    'run_pipeline',
]
