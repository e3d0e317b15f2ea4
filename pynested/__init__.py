"""
PyNested: hierarchical mixed-effects modeling for grouped and nested data.

Fit linear mixed models by REML or ML, choose a random-effects structure
with information criteria, re-fit the winner by full likelihood and test
its fixed effects.

Submodules:
    core: Observation table, result envelope, exceptions
    variance: Nested variance decomposition (diagnostic)
    mixed: Model specification and fitting
    selection: Information-criterion comparison and selection
    inference: Wald tests, likelihood ratio tests, cell means
"""

__version__ = "0.1.0"

from pynested import core
from pynested import variance
from pynested import mixed
from pynested import selection
from pynested import inference

from pynested.core import (
    ObservationTable,
    PyNestedError,
    ValidationError,
    NumericalError,
    SingularFitError,
    ConvergenceError,
    IncomparableModelsError,
)
from pynested.variance import decompose
from pynested.mixed import Criterion, FixedTerm, RandomTerm, ModelSpec, fit, fit_many
from pynested.selection import compare, select_random_structure
from pynested.inference import (
    test_fixed_effects,
    coefficient_tests,
    likelihood_ratio_test,
    cell_means,
)

__all__ = [
    "__version__",
    "core",
    "variance",
    "mixed",
    "selection",
    "inference",
    "ObservationTable",
    "PyNestedError",
    "ValidationError",
    "NumericalError",
    "SingularFitError",
    "ConvergenceError",
    "IncomparableModelsError",
    "decompose",
    "Criterion",
    "FixedTerm",
    "RandomTerm",
    "ModelSpec",
    "fit",
    "fit_many",
    "compare",
    "select_random_structure",
    "test_fixed_effects",
    "coefficient_tests",
    "likelihood_ratio_test",
    "cell_means",
]
