"""
Shared fixtures for count GLMM tests.

Provides simulated count datasets with known structure. Fits are
expensive enough that the fitted solutions are module-scoped.
"""

import warnings

import numpy as np
import pytest

from countglmm.core.exceptions import CountGLMMWarning
from countglmm.mixed import glmm


def make_counts(
    seed: int,
    n_groups: int = 25,
    n_per_group: int = 12,
    beta=(0.5, 0.4),
    sigma: float = 0.5,
    theta: float | None = None,
    zero_prob: float = 0.0,
) -> dict:
    """Counts from log μ = β0 + β1 x + offset + b_group.

    theta=None gives Poisson counts, otherwise NB2 with size theta.
    """
    rng = np.random.default_rng(seed)
    n = n_groups * n_per_group
    group = np.repeat(np.arange(n_groups), n_per_group)
    x = rng.normal(0.0, 1.0, size=n)
    exposure = rng.integers(1, 6, size=n).astype(float)
    b = rng.normal(0.0, sigma, size=n_groups)

    eta = beta[0] + beta[1] * x + np.log(exposure) + b[group]
    mu = np.exp(eta)
    if theta is None:
        y = rng.poisson(mu)
    else:
        y = rng.negative_binomial(theta, theta / (theta + mu))
    if zero_prob > 0:
        y[rng.uniform(size=n) < zero_prob] = 0

    X = np.column_stack([np.ones(n), x])
    return {
        'y': y.astype(float), 'X': X, 'group': group,
        'offset': np.log(exposure), 'beta': np.array(beta), 'sigma': sigma,
        'theta': theta, 'zero_prob': zero_prob, 'n_groups': n_groups,
    }


def fit_quietly(d, **kwargs):
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', CountGLMMWarning)
        return glmm(d['y'], d['X'], groups={'group': d['group']},
                    offset=d['offset'], **kwargs)


@pytest.fixture(scope='module')
def poisson_data():
    """Poisson counts, 25 groups x 12, β = (0.5, 0.4), σ = 0.5."""
    return make_counts(seed=11)


@pytest.fixture(scope='module')
def nb_data():
    """NB2 counts with θ = 2, plus 20% structural zeros."""
    return make_counts(seed=23, n_groups=30, theta=2.0, zero_prob=0.2)


@pytest.fixture(scope='module')
def poisson_fit(poisson_data):
    return fit_quietly(poisson_data, family='poisson')


@pytest.fixture
def quiet_fit():
    """glmm() on a make_counts() dict with diagnostics silenced."""
    return fit_quietly


@pytest.fixture
def make_count_data():
    return make_counts


@pytest.fixture(scope='module')
def nb2_fit(nb_data):
    return fit_quietly(nb_data, family='nbinom2')


@pytest.fixture(scope='module')
def zinb2_fit(nb_data):
    return fit_quietly(nb_data, family='nbinom2', zero_inflation=True)
