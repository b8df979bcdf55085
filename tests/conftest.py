"""
Shared fixtures for the privacy engine tests
"""

import pytest
import pandas as pd
import numpy as np
import os
import sys

# Add parent directory to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tabular_privacy.core.dataset import Dataset


@pytest.fixture
def patients():
    """Small patient table: 12 rows, 4 classes of 3 on (age_group, zip)"""
    df = pd.DataFrame({
        'age_group': ['20-29'] * 3 + ['30-39'] * 3 + ['40-49'] * 3 + ['50-59'] * 3,
        'zip': ['12345'] * 3 + ['12346'] * 3 + ['23456'] * 3 + ['23457'] * 3,
        'disease': ['flu', 'cold', 'asthma',
                    'flu', 'flu', 'flu',
                    'cancer', 'flu', 'cold',
                    'diabetes', 'diabetes', 'cold'],
        'income': [30, 35, 40, 50, 52, 58, 60, 70, 80, 90, 95, 99],
    })
    return Dataset.from_dataframe(df)


@pytest.fixture
def e2e_dataset():
    """
    1,000 rows: 950 share (age, zip), the remaining 50 are each unique
    """
    ages = [30] * 950 + list(range(31, 81))
    zips = ['12345'] * 950 + [f"{20000 + i * 37:05d}" for i in range(50)]
    rng = np.random.default_rng(7)
    df = pd.DataFrame({
        'age': ages,
        'zip': zips,
        'diagnosis': rng.choice(['A', 'B', 'C', 'D'], size=1000),
    })
    return Dataset.from_dataframe(df)


@pytest.fixture
def numeric_dataset():
    """Seeded numeric table for differential privacy tests"""
    rng = np.random.default_rng(42)
    df = pd.DataFrame({
        'age': rng.integers(18, 90, size=500),
        'salary': rng.normal(50000, 12000, size=500).round(2),
        'city': rng.choice(['Seoul', 'Busan', 'Daegu'], size=500),
    })
    return Dataset.from_dataframe(df)
