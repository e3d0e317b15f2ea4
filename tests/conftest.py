"""
pytest configuration and shared fixtures.

The growth data mimic a rearing experiment: fish from several
populations of two origins (farm, wild), several individuals per
population, each measured repeatedly under two treatments (control,
heat). Origin varies between populations, treatment within individuals.
"""

import numpy as np
import pandas as pd
import pytest

from pynested import ObservationTable


def make_growth_frame(
    rng,
    n_pop=10,
    n_ind=5,
    n_rep=4,
    sd_pop=np.sqrt(2.0),
    sd_ind=1.0,
    sd_res=1.0,
    beta=(10.0, 1.5, -1.0, 0.5),
):
    """Simulate nested growth measurements.

    beta = (intercept, wild, heat, wild:heat). n_rep must be even:
    half of each individual's measurements are taken under heat.
    """
    rows = []
    pop_effects = rng.normal(0.0, sd_pop, n_pop)
    for p in range(n_pop):
        origin = 'farm' if p % 2 == 0 else 'wild'
        ind_effects = rng.normal(0.0, sd_ind, n_ind)
        for i in range(n_ind):
            for r in range(n_rep):
                treatment = 'control' if r % 2 == 0 else 'heat'
                wild = origin == 'wild'
                heat = treatment == 'heat'
                mean = (beta[0] + beta[1] * wild + beta[2] * heat
                        + beta[3] * (wild and heat))
                rows.append({
                    'population': f"P{p:02d}",
                    'individual': f"P{p:02d}-I{i}",
                    'origin': origin,
                    'treatment': treatment,
                    'length': mean + pop_effects[p] + ind_effects[i]
                              + rng.normal(0.0, sd_res),
                })
    return pd.DataFrame(rows)


def growth_table(frame):
    return ObservationTable(
        frame,
        hierarchy=('population', 'individual'),
        factors=('origin', 'treatment'),
    )


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def make_growth():
    """Factory: make_growth(rng, **kwargs) -> ObservationTable."""
    def factory(rng, **kwargs):
        return growth_table(make_growth_frame(rng, **kwargs))
    return factory


@pytest.fixture
def growth_frame(rng):
    return make_growth_frame(rng)


@pytest.fixture
def growth(growth_frame):
    """200-row nested growth table (10 populations x 5 individuals x 4)."""
    return growth_table(growth_frame)