"""
Shared fixtures for the regression test suite.
"""

import sys
from pathlib import Path

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))


def make_ozone_like(n_samples: int = 150, noise: float = 0.3, seed: int = 42) -> pd.DataFrame:
    """
    Air-quality style data generated from the equation
    log(Ozone) = -0.262 + 0.003*Solar.R - 0.062*Wind + 0.049*Temp + e.
    """
    rng = np.random.default_rng(seed)
    df = pd.DataFrame({
        'Solar.R': rng.uniform(7, 334, n_samples),
        'Wind': np.clip(rng.normal(10, 3.5, n_samples), 2, 21),
        'Temp': np.clip(rng.normal(78, 9.5, n_samples), 56, 97),
        'Noise1': rng.normal(0, 1, n_samples),
        'Noise2': rng.normal(5, 2, n_samples)
    })
    df['Ozone'] = np.exp(
        -0.262 + 0.003 * df['Solar.R'] - 0.062 * df['Wind'] + 0.049 * df['Temp']
        + rng.normal(0, noise, n_samples)
    )
    return df


@pytest.fixture
def ozone_data():
    """Ozone-like data with two irrelevant predictors."""
    return make_ozone_like()


@pytest.fixture
def interaction_data():
    """y = 1 + x1 + x2 + 2*x1*x2 + e, plus an irrelevant predictor."""
    rng = np.random.default_rng(7)
    n_samples = 200
    df = pd.DataFrame({
        'x1': rng.normal(0, 1, n_samples),
        'x2': rng.normal(0, 1, n_samples),
        'noise': rng.normal(0, 1, n_samples)
    })
    df['y'] = 1.0 + df['x1'] + df['x2'] + 2.0 * df['x1'] * df['x2'] + rng.normal(0, 0.5, n_samples)
    return df


@pytest.fixture
def pure_interaction_data():
    """Only the x1:x2 product drives y; the main effects contribute nothing."""
    rng = np.random.default_rng(11)
    n_samples = 200
    df = pd.DataFrame({
        'x1': rng.normal(0, 1, n_samples),
        'x2': rng.normal(0, 1, n_samples)
    })
    df['y'] = 3.0 * df['x1'] * df['x2'] + rng.normal(0, 0.5, n_samples)
    return df
