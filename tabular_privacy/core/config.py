"""
Configuration management

- PrivacyConfig: immutable per-run parameter bundle (k, l, t, epsilon,
  delta, suppression limit) plus the named profile catalogue
- EngineSettings / ConfigManager: engine-wide defaults loaded from YAML
  with environment variable overrides
"""

import os
import yaml
from typing import Any, Dict, Optional
from pathlib import Path
from dataclasses import dataclass, field, asdict, fields
import logging
import math

from .errors import InvalidConfiguration

logger = logging.getLogger(__name__)


# Named profiles offered to users when configuring a run
PRIVACY_PROFILES: Dict[str, Dict[str, Any]] = {
    'low': {
        'description': "Low Privacy / High Utility",
        'k': 2, 'l': 2, 't': 0.8, 'epsilon': 5.0, 'suppression_limit': 0.05,
    },
    'medium': {
        'description': "Medium Privacy / Balanced",
        'k': 5, 'l': 3, 't': 0.5, 'epsilon': 2.0, 'suppression_limit': 0.1,
    },
    'high': {
        'description': "High Privacy / Secure",
        'k': 10, 'l': 5, 't': 0.2, 'epsilon': 0.5, 'suppression_limit': 0.2,
    },
    'healthcare': {
        'description': "Healthcare Specialized",
        'k': 10, 'l': 4, 't': 0.3, 'epsilon': 1.0, 'suppression_limit': 0.15,
    },
    'financial': {
        'description': "Financial Regulatory",
        'k': 8, 'l': 4, 't': 0.25, 'epsilon': 1.5, 'suppression_limit': 0.12,
    },
    'education': {
        'description': "Education Research",
        'k': 5, 'l': 3, 't': 0.4, 'epsilon': 2.5, 'suppression_limit': 0.1,
    },
    'public': {
        'description': "Public Statistics",
        'k': 11, 'l': 5, 't': 0.15, 'epsilon': 0.8, 'suppression_limit': 0.2,
    },
    'synthetic': {
        'description': "Synthetic Data Generation",
        'k': 5, 'l': 3, 't': 0.5, 'epsilon': 3.0, 'suppression_limit': 0.0,
    },
}


@dataclass(frozen=True)
class PrivacyConfig:
    """Privacy parameters for one run; never mutated mid-run"""
    k: int = 5
    l: int = 3
    t: float = 0.5
    epsilon: float = 2.0
    delta: Optional[float] = None
    suppression_limit: float = 0.1

    def __post_init__(self):
        errors = self.validate()
        if errors:
            raise InvalidConfiguration("; ".join(errors))

    def validate(self):
        """Return a list of configuration errors"""
        errors = []

        if isinstance(self.k, bool) or not isinstance(self.k, int) or self.k < 2:
            errors.append(f"k must be an integer >= 2 (got {self.k})")

        if isinstance(self.l, bool) or not isinstance(self.l, int) or self.l < 2:
            errors.append(f"l must be an integer >= 2 (got {self.l})")

        if not _is_number(self.t) or not 0 <= self.t <= 1:
            errors.append(f"t must be within [0, 1] (got {self.t})")

        if not _is_number(self.epsilon) or self.epsilon <= 0:
            errors.append(f"epsilon must be positive (got {self.epsilon})")

        if self.delta is not None and (not _is_number(self.delta) or not 0 < self.delta < 1):
            errors.append(f"delta must be within (0, 1) (got {self.delta})")

        if not _is_number(self.suppression_limit) or not 0 <= self.suppression_limit <= 1:
            errors.append(f"suppression_limit must be within [0, 1] (got {self.suppression_limit})")

        return errors

    @classmethod
    def from_profile(cls, name: str, **overrides) -> 'PrivacyConfig':
        """Create a configuration from a named profile"""
        if name not in PRIVACY_PROFILES:
            raise InvalidConfiguration(
                f"Unknown privacy profile: {name} (available: {sorted(PRIVACY_PROFILES)})"
            )
        params = {k: v for k, v in PRIVACY_PROFILES[name].items() if k != 'description'}
        params.update(overrides)
        return cls.from_dict(params)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'PrivacyConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(config_dict) - known
        if unknown:
            raise InvalidConfiguration(f"Unknown privacy parameters: {sorted(unknown)}")
        return cls(**config_dict)

    @classmethod
    def from_yaml(cls, config_path: str) -> 'PrivacyConfig':
        """Load from a YAML file; a top-level 'profile' key selects a preset"""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_dict = yaml.safe_load(f) or {}

        profile = config_dict.pop('profile', None)
        if profile:
            return cls.from_profile(profile, **config_dict)
        return cls.from_dict(config_dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _is_number(value) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


@dataclass
class EngineSettings:
    """Engine-wide defaults (not per run)"""

    # Risk level thresholds: < low -> Low, > high -> High
    risk_low_threshold: float = 0.1
    risk_high_threshold: float = 0.3

    # QI distinct-value ratio above which generalization is recommended
    high_cardinality_ratio: float = 0.5

    logging: Dict[str, Any] = field(default_factory=lambda: {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'log_to_file': False,
        'log_dir': 'logs',
    })

    def validate(self):
        errors = []
        if not 0 <= self.risk_low_threshold <= self.risk_high_threshold <= 1:
            errors.append("risk thresholds must satisfy 0 <= low <= high <= 1")
        if not 0 < self.high_cardinality_ratio <= 1:
            errors.append("high_cardinality_ratio must be within (0, 1]")
        return errors

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'EngineSettings':
        settings = cls()
        for key, value in config_dict.items():
            if not hasattr(settings, key):
                logger.warning(f"Ignoring unknown engine setting: {key}")
                continue
            current = getattr(settings, key)
            if isinstance(current, dict) and isinstance(value, dict):
                current.update(value)
            else:
                setattr(settings, key, value)
        return settings

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigManager:
    """Loads EngineSettings from YAML and the environment"""

    ENV_PREFIX = 'TABULAR_PRIVACY_'

    def __init__(self, config_path: Optional[str] = "config/engine.yaml"):
        self.config_path = Path(config_path) if config_path else None
        self.settings = self._load_settings()

    def _load_settings(self) -> EngineSettings:
        config: Dict[str, Any] = {}

        if self.config_path and self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    config = yaml.safe_load(f) or {}
                logger.info(f"Configuration loaded from {self.config_path}")
            except yaml.YAMLError as e:
                logger.error(f"Invalid YAML in config file: {e}")
                raise InvalidConfiguration(f"Invalid YAML in {self.config_path}: {e}") from e
        elif self.config_path:
            logger.warning(f"Config file not found: {self.config_path}, using defaults")

        config = self._apply_env_overrides(config)
        settings = EngineSettings.from_dict(config)

        errors = settings.validate()
        if errors:
            raise InvalidConfiguration("; ".join(errors))

        return settings

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Override file values with environment variables"""
        level = os.getenv(f'{self.ENV_PREFIX}LOG_LEVEL')
        if level:
            config.setdefault('logging', {})['level'] = level

        for suffix, key in (('RISK_LOW', 'risk_low_threshold'),
                            ('RISK_HIGH', 'risk_high_threshold')):
            raw = os.getenv(f'{self.ENV_PREFIX}{suffix}')
            if raw:
                try:
                    config[key] = float(raw)
                except ValueError:
                    logger.warning(f"Invalid {self.ENV_PREFIX}{suffix} environment variable: {raw}")

        return config

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Look up a setting with dot notation

        Args:
            key_path: e.g. 'logging.level'
            default: Returned when the key does not exist
        """
        value: Any = self.settings.to_dict()
        try:
            for key in key_path.split('.'):
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default
