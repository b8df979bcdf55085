"""
Tests for technique dispatch, pipelines and the package facade
"""

import pytest
import logging
import os
import sys

# Add parent directory to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import tabular_privacy
from tabular_privacy.core.config import PrivacyConfig
from tabular_privacy.core.dataset import ColumnRoles
from tabular_privacy.core.cancellation import CancellationToken
from tabular_privacy.core.errors import BudgetExceeded, Cancelled, InvalidConfiguration
from tabular_privacy.privacy.engine import (
    DifferentialPrivacyParams,
    KAnonymityParams,
    LDiversityParams,
    TClosenessParams,
    params_from_config,
    run_pipeline,
    transform,
)
from tabular_privacy.privacy.results import Technique


class TestTransform:
    """Test single-technique dispatch"""

    def test_dispatch_by_parameter_type(self, patients):
        _, k_result = transform(patients, KAnonymityParams(['age_group', 'zip'], k=3))
        _, l_result = transform(patients, LDiversityParams(['age_group', 'zip'], ['disease'], l=2))
        _, t_result = transform(patients, TClosenessParams(['age_group', 'zip'], ['disease'], t=0.5))
        _, dp_result = transform(patients, DifferentialPrivacyParams(['income'], epsilon=1.0,
                                                                     random_state=0))

        assert k_result.technique == Technique.K_ANONYMITY
        assert l_result.technique == Technique.L_DIVERSITY
        assert t_result.technique == Technique.T_CLOSENESS
        assert dp_result.technique == Technique.DIFFERENTIAL_PRIVACY

    def test_lists_become_tuples(self):
        params = LDiversityParams(['a'], ['b'])
        assert params.quasi_identifiers == ('a',)
        assert params.sensitive_attributes == ('b',)

    def test_unknown_parameters(self, patients):
        with pytest.raises(InvalidConfiguration):
            transform(patients, {'technique': 'k-anonymity'})

    def test_cancelled_before_start(self, patients):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(Cancelled):
            transform(patients, TClosenessParams(['zip'], ['disease']), token)


class TestPipeline:
    """Test composed techniques"""

    def test_k_anonymity_then_l_diversity(self, e2e_dataset):
        output, results = run_pipeline(e2e_dataset, [
            KAnonymityParams(['age', 'zip'], k=5),
            LDiversityParams(['age', 'zip'], ['diagnosis'], l=2),
        ])

        assert [r.technique for r in results] == [Technique.K_ANONYMITY, Technique.L_DIVERSITY]
        assert results[1].total_records == len(output)

    def test_failing_step_raises(self, patients):
        with pytest.raises(InvalidConfiguration):
            run_pipeline(patients, [
                KAnonymityParams(['age_group', 'zip'], k=3),
                DifferentialPrivacyParams(['disease'], epsilon=1.0),
            ])

    def test_run_id_tags_log_records(self, patients, caplog):
        with caplog.at_level(logging.INFO, logger='tabular_privacy.privacy.engine'):
            run_pipeline(patients, [KAnonymityParams(['age_group', 'zip'], k=3)], run_id='run-7')

        assert "[run-7] Pipeline complete" in caplog.text

    def test_empty_pipeline(self, patients):
        with pytest.raises(InvalidConfiguration):
            run_pipeline(patients, [])

    def test_params_from_config(self):
        config = PrivacyConfig.from_profile('healthcare')
        roles = ColumnRoles(['age', 'zip'], ['income'])
        steps = params_from_config(config, roles, ['k-anonymity', Technique.T_CLOSENESS,
                                                   'differential-privacy'])

        assert steps[0] == KAnonymityParams(('age', 'zip'), config.k, config.suppression_limit)
        assert steps[1].t == config.t
        assert steps[2].target_columns == ('income',)
        assert steps[2].epsilon == config.epsilon

        with pytest.raises(InvalidConfiguration):
            params_from_config(config, roles, ['suppression'])

    def test_config_budget_spans_pipeline_steps(self, numeric_dataset):
        """Test that DP steps from one config draw from a single budget"""
        config = PrivacyConfig(epsilon=1.0)
        roles = ColumnRoles(['city'], ['age'])
        steps = params_from_config(config, roles, ['differential-privacy',
                                                   'differential-privacy'])

        assert steps[0].accountant is steps[1].accountant
        _, results = run_pipeline(numeric_dataset, steps[:1])
        assert results[0].epsilon_spent == pytest.approx(1.0)

        with pytest.raises(BudgetExceeded):
            run_pipeline(numeric_dataset, steps[1:])

    def test_overspending_pipeline_raises(self, numeric_dataset):
        config = PrivacyConfig(epsilon=1.0)
        steps = params_from_config(config, ColumnRoles(['city'], ['age']),
                                   ['differential-privacy', 'differential-privacy'])

        with pytest.raises(BudgetExceeded):
            run_pipeline(numeric_dataset, steps)


class TestFacade:
    """Test the functions exported from the package root"""

    def test_exports(self, patients):
        assert tabular_privacy.__version__
        result = tabular_privacy.assess_risk(patients, ['age_group', 'zip'], k_threshold=3)
        assert result.violations == 0

        output, k_result = tabular_privacy.apply_k_anonymity(patients, ['age_group', 'zip'], k=3)
        assert isinstance(output, tabular_privacy.Dataset)
        assert isinstance(k_result, tabular_privacy.AnonymizationResult)
