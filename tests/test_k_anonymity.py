"""
Tests for k-anonymity validation and enforcement
"""

import pytest
import pandas as pd
import os
import sys

# Add parent directory to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tabular_privacy.core.dataset import Dataset
from tabular_privacy.core.cancellation import CancellationToken
from tabular_privacy.core.errors import Cancelled, InvalidConfiguration, KAnonymityUnsatisfiable
from tabular_privacy.privacy.equivalence import build_equivalence_classes
from tabular_privacy.privacy.k_anonymity import (
    KAnonymityTransformer,
    KAnonymityValidator,
    apply_k_anonymity,
)
from tabular_privacy.privacy.results import Technique


# Hierarchy without any generalization level, so only suppression can help
NO_GENERALIZATION = {'type': 'taxonomy', 'levels': [], 'top_suppression': False}


@pytest.fixture
def skewed():
    """Classes of sizes 5, 4 and 1 on a column that cannot be generalized"""
    return Dataset.from_dataframe(pd.DataFrame({
        'group': ['a'] * 5 + ['b'] * 4 + ['c'],
        'value': range(10),
    }))


class TestKAnonymityValidator:
    """Test k-anonymity validation"""

    def test_satisfied(self, patients):
        result = KAnonymityValidator(k_threshold=3).validate(patients, ['age_group', 'zip'])

        assert result.satisfied
        assert result.k_value == 3
        assert result.num_groups == 4
        assert result.groups_distribution == {3: 4}
        assert result.violation_records == []

    def test_violations(self, patients):
        result = KAnonymityValidator(k_threshold=4).validate(patients, ['age_group', 'zip'])

        assert not result.satisfied
        assert result.num_violations == 4
        assert result.violation_records == list(range(12))

    def test_invalid_k(self):
        with pytest.raises(InvalidConfiguration):
            KAnonymityValidator(k_threshold=1)

    def test_empty_dataset(self):
        empty = Dataset.from_dataframe(pd.DataFrame({'g': pd.Series([], dtype=object)}))
        result = KAnonymityValidator(2).validate(empty, ['g'])
        assert result.satisfied
        assert result.num_groups == 0


class TestKAnonymityTransformer:
    """Test k-anonymity enforcement"""

    def test_every_class_reaches_k(self, e2e_dataset):
        """Test that all output classes have at least k rows"""
        output, result = apply_k_anonymity(e2e_dataset, ['age', 'zip'], k=5)

        classes = build_equivalence_classes(output, ['age', 'zip'])
        assert all(len(rows) >= 5 for rows in classes.values())
        assert result.technique == Technique.K_ANONYMITY
        assert result.total_records == 1000
        assert result.records_retained == len(output)
        assert 0 <= result.information_loss <= 1

    def test_input_untouched(self, e2e_dataset):
        before = e2e_dataset.to_dataframe()
        apply_k_anonymity(e2e_dataset, ['age', 'zip'], k=5)
        pd.testing.assert_frame_equal(e2e_dataset.frame, before)

    def test_privacy_risk_does_not_increase(self, e2e_dataset):
        original_classes = build_equivalence_classes(e2e_dataset, ['age', 'zip'])
        original_risk = sum(1 for rows in original_classes.values() if len(rows) == 1) / 1000

        _, result = apply_k_anonymity(e2e_dataset, ['age', 'zip'], k=5)

        assert original_risk == pytest.approx(0.05)
        assert result.privacy_risk <= original_risk

    def test_idempotent(self, e2e_dataset):
        """Test that re-running on the output is a fixed point"""
        output, _ = apply_k_anonymity(e2e_dataset, ['age', 'zip'], k=5)
        again, result = apply_k_anonymity(output, ['age', 'zip'], k=5)

        assert result.records_suppressed == 0
        assert all(level == 0 for level in result.generalization_levels.values())
        assert result.information_loss == 0.0
        pd.testing.assert_frame_equal(again.frame, output.frame)

    def test_generalizes_highest_cardinality_first(self):
        """Test the greedy column choice (ties go to declaration order)"""
        dataset = Dataset.from_dataframe(pd.DataFrame({
            'sex': ['M', 'F'] * 4,
            'age': [21, 22, 23, 24, 25, 26, 27, 28],
        }))
        transformer = KAnonymityTransformer(k=2, hierarchies={
            'age': {'type': 'numeric', 'widths': [2, 4]},
        })
        _, result = transformer.transform(dataset, ['sex', 'age'])

        assert result.generalization_levels['sex'] == 0
        assert result.generalization_levels['age'] >= 1

    def test_residual_rows_suppressed_within_limit(self, skewed):
        """Test that sub-k rows are suppressed when the limit allows it"""
        output, result = apply_k_anonymity(skewed, ['group'], k=2, suppression_limit=0.1,
                                           hierarchies={'group': NO_GENERALIZATION})

        assert result.records_suppressed == 1
        assert len(output) == 9
        assert 'c' not in output.frame['group'].tolist()
        assert result.information_loss == pytest.approx(0.1)

    def test_unsatisfiable_reports_shortfall(self, skewed):
        with pytest.raises(KAnonymityUnsatisfiable) as exc_info:
            apply_k_anonymity(skewed, ['group'], k=5, suppression_limit=0.1,
                              hierarchies={'group': NO_GENERALIZATION})

        assert exc_info.value.required_suppression == 5
        assert exc_info.value.allowed_suppression == 1
        assert exc_info.value.shortfall == 4

    def test_k_larger_than_dataset(self, patients):
        with pytest.raises(InvalidConfiguration):
            apply_k_anonymity(patients, ['zip'], k=13)

    def test_empty_quasi_identifiers(self, patients):
        with pytest.raises(InvalidConfiguration):
            apply_k_anonymity(patients, [], k=2)

    def test_invalid_suppression_limit(self):
        with pytest.raises(InvalidConfiguration):
            KAnonymityTransformer(k=2, suppression_limit=1.5)

    def test_cancellation(self, e2e_dataset):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(Cancelled):
            apply_k_anonymity(e2e_dataset, ['age', 'zip'], k=5, cancellation=token)

    def test_result_to_dict(self, patients):
        _, result = apply_k_anonymity(patients, ['age_group', 'zip'], k=3)
        data = result.to_dict()

        assert data['technique'] == 'k-anonymity'
        assert data['equivalence_classes'] == 4
        assert data['avg_group_size'] == 3.0
        assert 'avg_distance' not in data


class TestEndToEnd:
    """1,000-row scenario: 950 rows in one class, 50 unique rows"""

    def test_violations_before_and_after(self, e2e_dataset):
        before = KAnonymityValidator(5).validate(e2e_dataset, ['age', 'zip'])
        assert len(before.violation_records) == 50
        assert before.groups_distribution == {1: 50, 950: 1}

        output, result = apply_k_anonymity(e2e_dataset, ['age', 'zip'], k=5)
        after = KAnonymityValidator(5).validate(output, ['age', 'zip'])

        assert after.satisfied
        assert len(after.violation_records) == 0
        assert result.records_suppressed <= 50
        assert len(output) >= 950
