"""
Fixed-effect inference for fitted mixed models.

Public API:
    test_fixed_effects()    - type II / III Wald F tests per term
    coefficient_tests()     - per-coefficient t tests
    likelihood_ratio_test() - nested-model chi-squared test
    cell_means()            - means and CIs keyed by factor combination
"""

from pynested.inference.solvers import (
    test_fixed_effects,
    coefficient_tests,
    likelihood_ratio_test,
    cell_means,
)
from pynested.inference.solution import (
    FixedEffectsTests,
    CoefficientTests,
    LikelihoodRatioTest,
    CellMeans,
)
from pynested.inference._common import TermTest, CoefficientTest, CellMean

__all__ = [
    "test_fixed_effects",
    "coefficient_tests",
    "likelihood_ratio_test",
    "cell_means",
    "FixedEffectsTests",
    "CoefficientTests",
    "LikelihoodRatioTest",
    "CellMeans",
    "TermTest",
    "CoefficientTest",
    "CellMean",
]
