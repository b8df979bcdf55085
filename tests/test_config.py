"""
Tests for configuration, logging setup and cancellation
"""

import pytest
import logging
import json
import os
import sys

# Add parent directory to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tabular_privacy.core.config import PrivacyConfig, EngineSettings, ConfigManager, PRIVACY_PROFILES
from tabular_privacy.core.cancellation import CancellationToken
from tabular_privacy.core.errors import InvalidConfiguration, Cancelled, KAnonymityUnsatisfiable
from tabular_privacy.core.logging import JsonFormatter, get_logger, log_performance, setup_logging


class TestPrivacyConfig:
    """Test the per-run parameter bundle"""

    def test_defaults_are_valid(self):
        config = PrivacyConfig()
        assert config.k == 5
        assert config.validate() == []

    @pytest.mark.parametrize("params", [
        {'k': 1},
        {'k': 2.5},
        {'l': 1},
        {'t': 1.5},
        {'t': -0.1},
        {'epsilon': 0},
        {'delta': 1.0},
        {'suppression_limit': 1.2},
    ])
    def test_out_of_range_rejected(self, params):
        """Test that out-of-range parameters raise InvalidConfiguration"""
        with pytest.raises(InvalidConfiguration):
            PrivacyConfig(**params)

    def test_immutable(self):
        config = PrivacyConfig()
        with pytest.raises(Exception):
            config.k = 10

    def test_all_profiles_are_valid(self):
        """Test that every named profile builds a valid configuration"""
        for name in PRIVACY_PROFILES:
            config = PrivacyConfig.from_profile(name)
            assert config.k >= 2

    def test_profile_with_overrides(self):
        config = PrivacyConfig.from_profile('healthcare', k=20)
        assert config.k == 20
        assert config.l == PRIVACY_PROFILES['healthcare']['l']

    def test_unknown_profile(self):
        with pytest.raises(InvalidConfiguration):
            PrivacyConfig.from_profile('maximum')

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(InvalidConfiguration):
            PrivacyConfig.from_dict({'k': 5, 'kk': 3})

    def test_from_yaml(self, tmp_path):
        """Test loading a YAML file that selects a profile"""
        path = tmp_path / "privacy.yaml"
        path.write_text("profile: financial\nsuppression_limit: 0.05\n", encoding='utf-8')

        config = PrivacyConfig.from_yaml(str(path))
        assert config.k == PRIVACY_PROFILES['financial']['k']
        assert config.suppression_limit == 0.05


class TestConfigManager:
    """Test engine-wide settings loading"""

    def test_missing_file_uses_defaults(self, tmp_path):
        manager = ConfigManager(str(tmp_path / "absent.yaml"))
        assert manager.settings.risk_low_threshold == 0.1
        assert manager.get('logging.level') == 'INFO'

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("risk_low_threshold: 0.05\nlogging:\n  level: DEBUG\n", encoding='utf-8')

        manager = ConfigManager(str(path))
        assert manager.settings.risk_low_threshold == 0.05
        assert manager.get('logging.level') == 'DEBUG'
        assert manager.get('logging.log_dir') == 'logs'
        assert manager.get('does.not.exist', 'fallback') == 'fallback'

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv('TABULAR_PRIVACY_RISK_HIGH', '0.4')
        monkeypatch.setenv('TABULAR_PRIVACY_LOG_LEVEL', 'WARNING')

        manager = ConfigManager(str(tmp_path / "absent.yaml"))
        assert manager.settings.risk_high_threshold == 0.4
        assert manager.get('logging.level') == 'WARNING'

    def test_invalid_thresholds(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("risk_low_threshold: 0.5\nrisk_high_threshold: 0.2\n", encoding='utf-8')

        with pytest.raises(InvalidConfiguration):
            ConfigManager(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("risk_low_threshold: [0.1\n", encoding='utf-8')

        with pytest.raises(InvalidConfiguration):
            ConfigManager(str(path))

    def test_shipped_config_file(self):
        """Test that the repository's config/engine.yaml loads cleanly"""
        root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        manager = ConfigManager(os.path.join(root, 'config', 'engine.yaml'))
        assert isinstance(manager.settings, EngineSettings)
        assert manager.settings.validate() == []


class TestLogging:
    """Test logging helpers"""

    def test_json_formatter(self):
        record = logging.LogRecord('tabular_privacy.test', logging.INFO, __file__, 10,
                                   "hello %s", ('world',), None)
        record.run_id = 'run-1'

        entry = json.loads(JsonFormatter().format(record))
        assert entry['message'] == 'hello world'
        assert entry['level'] == 'INFO'
        assert entry['run_id'] == 'run-1'

    def test_setup_logging_with_files(self, tmp_path):
        logger = setup_logging('DEBUG', log_to_file=True, log_dir=str(tmp_path))
        logger.info("written")

        for handler in logger.handlers:
            handler.flush()

        assert (tmp_path / 'engine.log').exists()
        assert (tmp_path / 'engine_structured.json').exists()

        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    def test_run_logger_adapter(self, caplog):
        logger = get_logger('tabular_privacy.test', run_id='abc')
        with caplog.at_level(logging.INFO, logger='tabular_privacy.test'):
            logger.info("message")

        assert "[abc] message" in caplog.text

    def test_log_performance_reraises(self, caplog):
        logger = logging.getLogger('tabular_privacy.test')
        with caplog.at_level(logging.WARNING, logger='tabular_privacy.test'):
            with pytest.raises(ValueError):
                with log_performance(logger, "failing step"):
                    raise ValueError("boom")

        assert "failing step" in caplog.text


class TestErrorsAndCancellation:
    """Test error payloads and the cancellation token"""

    def test_unsatisfiable_shortfall(self):
        error = KAnonymityUnsatisfiable(required_suppression=30, allowed_suppression=10, k=5)
        assert error.shortfall == 20
        assert "shortfall 20" in str(error)

    def test_cancellation_token(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        assert not token.cancelled

        token.cancel()
        assert token.cancelled
        with pytest.raises(Cancelled):
            token.raise_if_cancelled("k-anonymity")
