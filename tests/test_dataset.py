"""
Tests for the dataset model and column roles
"""

import pytest
import pandas as pd
import os
import sys

# Add parent directory to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tabular_privacy.core.dataset import Dataset, ColumnType, ColumnRole, ColumnRoles
from tabular_privacy.core.errors import InvalidConfiguration


class TestDataset:
    """Test dataset construction and immutability"""

    def test_type_inference(self):
        """Test that column types are inferred from dtypes"""
        df = pd.DataFrame({
            'age': [30, 40],
            'name': ['a', 'b'],
            'visit': pd.to_datetime(['2024-01-01', '2024-02-01']),
            'flag': [True, False],
        })
        dataset = Dataset.from_dataframe(df)

        assert dataset.column_type('age') == ColumnType.NUMERIC
        assert dataset.column_type('name') == ColumnType.CATEGORICAL
        assert dataset.column_type('visit') == ColumnType.DATE
        assert dataset.column_type('flag') == ColumnType.CATEGORICAL

    def test_declared_types_are_coerced(self):
        """Test that declared numeric and date columns are converted"""
        df = pd.DataFrame({'age': ['30', '41'], 'visit': ['2024-01-01', '2023-05-17']})
        dataset = Dataset.from_dataframe(df, {'age': 'numeric', 'visit': ColumnType.DATE})

        assert pd.api.types.is_numeric_dtype(dataset.frame['age'])
        assert pd.api.types.is_datetime64_any_dtype(dataset.frame['visit'])

    def test_invalid_declared_numeric(self):
        """Test that non-numeric values in a numeric column are rejected"""
        df = pd.DataFrame({'age': ['30', 'unknown']})
        with pytest.raises(InvalidConfiguration):
            Dataset.from_dataframe(df, {'age': 'numeric'})

    def test_unknown_type_name(self):
        df = pd.DataFrame({'age': [1]})
        with pytest.raises(InvalidConfiguration):
            Dataset.from_dataframe(df, {'age': 'integer'})

    def test_from_records(self):
        """Test building from row mappings"""
        dataset = Dataset.from_records([
            {'age': 30, 'zip': '12345'},
            {'age': 40, 'zip': '54321'},
        ])
        assert len(dataset) == 2
        assert dataset.columns == ['age', 'zip']
        assert dataset.records()[1] == {'age': 40, 'zip': '54321'}

    def test_from_records_mismatched_columns(self):
        """Test that rows must share the same column set"""
        with pytest.raises(InvalidConfiguration):
            Dataset.from_records([{'age': 30, 'zip': '1'}, {'age': 40}])

    def test_source_frame_not_referenced(self):
        """Test that changing the source frame does not change the dataset"""
        df = pd.DataFrame({'age': [30, 40]})
        dataset = Dataset.from_dataframe(df)
        df.loc[0, 'age'] = 99

        assert dataset.frame['age'].tolist() == [30, 40]

    def test_to_dataframe_returns_copy(self):
        dataset = Dataset.from_dataframe(pd.DataFrame({'age': [30, 40]}))
        out = dataset.to_dataframe()
        out.loc[0, 'age'] = 99

        assert dataset.frame['age'].tolist() == [30, 40]

    def test_replace_columns_returns_new_dataset(self):
        """Test that derived datasets leave the original untouched"""
        dataset = Dataset.from_dataframe(pd.DataFrame({'age': [30, 40], 'zip': ['1', '2']}))
        derived = dataset.replace_columns({'age': ['30-39', '40-49']}, {'age': 'categorical'})

        assert dataset.frame['age'].tolist() == [30, 40]
        assert dataset.column_type('age') == ColumnType.NUMERIC
        assert derived.frame['age'].tolist() == ['30-39', '40-49']
        assert derived.column_type('age') == ColumnType.CATEGORICAL

    def test_drop_rows_keeps_order(self):
        dataset = Dataset.from_dataframe(pd.DataFrame({'v': [0, 1, 2, 3, 4]}))
        dropped = dataset.drop_rows([1, 3])

        assert dropped.frame['v'].tolist() == [0, 2, 4]
        assert list(dropped.frame.index) == [0, 1, 2]
        assert len(dataset) == 5

    def test_require_columns(self, patients):
        with pytest.raises(InvalidConfiguration):
            patients.require_columns(['age_group', 'missing'])


class TestColumnRoles:
    """Test column role assignment"""

    def test_overlap_is_allowed(self):
        """Test that a column can be both QI and SA"""
        roles = ColumnRoles(('age', 'zip'), ('zip', 'disease'))

        assert roles.roles_of('zip') == {ColumnRole.QUASI_IDENTIFIER, ColumnRole.SENSITIVE}
        assert roles.roles_of('age') == {ColumnRole.QUASI_IDENTIFIER}
        assert roles.roles_of('other') == frozenset()
        assert roles.overlapping == ('zip',)

    def test_duplicates_rejected(self):
        with pytest.raises(InvalidConfiguration):
            ColumnRoles(['age', 'age'], [])

    def test_validate_against_dataset(self, patients):
        ColumnRoles(['age_group', 'zip'], ['disease']).validate(patients)

        with pytest.raises(InvalidConfiguration):
            ColumnRoles(['age_group', 'unknown'], []).validate(patients)

        with pytest.raises(InvalidConfiguration):
            ColumnRoles([], ['disease']).validate(patients)
