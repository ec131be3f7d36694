"""
pytest configuration and shared fixtures.
"""

import matplotlib

matplotlib.use('Agg')

import warnings

import numpy as np
import pandas as pd
import pytest

from countglmm.core.exceptions import CountGLMMWarning
from countglmm.owls import fit_all, from_frame, prepare_owls


def simulate_owls_frame(
    seed: int = 7,
    n_nests: int = 12,
    visits_per_nest: int = 15,
    sigma_nest: float = 0.4,
    theta: float = 3.0,
    zero_prob: float = 0.15,
) -> pd.DataFrame:
    """Owls-shaped table with known structure.

    Counts are zero-inflated NB2 with a log(BroodSize) offset:
        log μ = 1.6 - 0.5 Satiated - 0.05 ArrivalTime + 0.1 Male + b_nest
    """
    rng = np.random.default_rng(seed)
    n = n_nests * visits_per_nest

    nest_labels = np.array([f"Nest{j:02d}" for j in range(n_nests)])
    nest_idx = np.repeat(np.arange(n_nests), visits_per_nest)
    brood = rng.integers(1, 8, size=n_nests)[nest_idx]
    satiated = rng.integers(0, 2, size=n)
    male = rng.integers(0, 2, size=n)
    arrival = rng.uniform(21.7, 29.3, size=n)
    b = rng.normal(0.0, sigma_nest, size=n_nests)

    eta = (1.6 - 0.5 * satiated - 0.05 * arrival + 0.1 * male
           + b[nest_idx] + np.log(brood))
    mu = np.exp(eta)
    counts = rng.negative_binomial(theta, theta / (theta + mu))
    counts[rng.uniform(size=n) < zero_prob] = 0

    return pd.DataFrame({
        'Nest': nest_labels[nest_idx],
        'FoodTreatment': np.where(satiated == 1, 'Satiated', 'Deprived'),
        'SexParent': np.where(male == 1, 'Male', 'Female'),
        'ArrivalTime': np.round(arrival, 2),
        'SiblingNegotiation': counts,
        'BroodSize': brood,
    })


def toy_owls_frame() -> pd.DataFrame:
    """3 nests x 4 visits, BroodSize 3 everywhere."""
    return pd.DataFrame({
        'Nest': np.repeat(['A', 'B', 'C'], 4),
        'FoodTreatment': ['Deprived', 'Deprived', 'Satiated', 'Satiated'] * 3,
        'SexParent': ['Female', 'Male', 'Female', 'Male'] * 3,
        'ArrivalTime': [22.5, 23.1, 24.0, 25.6,
                        22.9, 24.4, 26.2, 27.0,
                        23.3, 25.0, 27.8, 28.4],
        'SiblingNegotiation': [6, 9, 3, 2,
                               11, 7, 4, 0,
                               5, 8, 1, 3],
        'BroodSize': [3] * 12,
    })


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def owls_frame():
    """Simulated raw Owls-like table (180 visits to 12 nests)."""
    return simulate_owls_frame()


@pytest.fixture
def toy_frame():
    """Tiny Owls table: 3 nests x 4 visits."""
    return toy_owls_frame()


@pytest.fixture
def owls_csv(tmp_path, owls_frame):
    """The simulated table written as an Rdatasets-style CSV."""
    path = tmp_path / 'Owls.csv'
    df = owls_frame.copy()
    df.insert(0, 'rownames', np.arange(1, len(df) + 1))
    df['NegPerChick'] = df['SiblingNegotiation'] / df['BroodSize']
    df['logBroodSize'] = np.log(df['BroodSize'])
    df.to_csv(path, index=False)
    return path


@pytest.fixture(scope='session')
def prepared_owls():
    """Validated and transformed simulated Owls table."""
    return prepare_owls(from_frame(simulate_owls_frame()))


@pytest.fixture(scope='session')
def owls_outcomes(prepared_owls):
    """All eight fits of the Owls formula on the simulated table."""
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', CountGLMMWarning)
        return fit_all(prepared_owls)
