"""
Core building blocks: dataset model, configuration, errors, cancellation
and logging setup.
"""

from .errors import (
    PrivacyEngineError,
    InvalidConfiguration,
    KAnonymityUnsatisfiable,
    BudgetExceeded,
    Cancelled,
)
from .dataset import Dataset, ColumnType, ColumnRole, ColumnRoles
from .config import PrivacyConfig, EngineSettings, ConfigManager, PRIVACY_PROFILES
from .cancellation import CancellationToken
from .logging import setup_logging, get_logger, log_performance

__all__ = [
    'PrivacyEngineError',
    'InvalidConfiguration',
    'KAnonymityUnsatisfiable',
    'BudgetExceeded',
    'Cancelled',
    'Dataset',
    'ColumnType',
    'ColumnRole',
    'ColumnRoles',
    'PrivacyConfig',
    'EngineSettings',
    'ConfigManager',
    'PRIVACY_PROFILES',
    'CancellationToken',
    'setup_logging',
    'get_logger',
    'log_performance',
]
