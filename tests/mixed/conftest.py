"""
Shared fixtures for mixed model tests.

Provides datasets with known structure as ObservationTables.
"""

import numpy as np
import pandas as pd
import pytest

from pynested import ObservationTable


@pytest.fixture
def sleepstudy_like():
    """Sleepstudy-like dataset: reaction ~ days + (1 + days | subject).

    18 subjects, 10 days each = 180 observations.
    Random intercept SD ≈ 25, random slope SD ≈ 6, correlation ≈ 0.07.
    Residual SD ≈ 25.
    """
    rng = np.random.default_rng(2024)
    n_subjects = 18
    n_days = 10

    sigma_intercept = 25.0
    sigma_slope = 6.0
    rho = 0.07
    cov_matrix = np.array([
        [sigma_intercept**2, rho * sigma_intercept * sigma_slope],
        [rho * sigma_intercept * sigma_slope, sigma_slope**2],
    ])
    re = rng.multivariate_normal([0, 0], cov_matrix, size=n_subjects)

    subject = np.repeat(np.arange(n_subjects), n_days)
    days = np.tile(np.arange(n_days, dtype=float), n_subjects)
    reaction = (250.0 + re[subject, 0] + (10.0 + re[subject, 1]) * days
                + rng.normal(0, 25.0, len(days)))

    frame = pd.DataFrame({
        'subject': [f"S{s:02d}" for s in subject],
        'days': days,
        'reaction': reaction,
    })
    return ObservationTable(frame, hierarchy=('subject',))


@pytest.fixture
def one_way():
    """Balanced one-way layout: 8 groups x 6 replicates, covariate x.

    y = 5 + 2x + b_g + e with sd(b) = 2, sd(e) = 1.
    """
    rng = np.random.default_rng(11)
    n_groups, n_per = 8, 6
    group = np.repeat(np.arange(n_groups), n_per)
    x = rng.normal(0, 1, n_groups * n_per)
    b = rng.normal(0, 2.0, n_groups)
    y = 5.0 + 2.0 * x + b[group] + rng.normal(0, 1.0, len(x))
    frame = pd.DataFrame({
        'group': [f"g{g}" for g in group],
        'x': x,
        'y': y,
    })
    return ObservationTable(frame, hierarchy=('group',))
