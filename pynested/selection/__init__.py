"""
Model comparison: information-criterion ranking of fitted candidates.

Public API:
    compare()                 - rank fitted models (AIC, BIC, AICc, custom)
    select_random_structure() - REML candidates -> compare -> ML re-fit
    ComparisonTable           - ranked candidates with weights
    ComparisonRow             - one ranked candidate
    SelectionResult           - comparison, failures and ML re-fit
"""

from pynested.selection.solvers import compare, select_random_structure
from pynested.selection.solution import ComparisonTable, SelectionResult
from pynested.selection._common import ComparisonRow

__all__ = [
    "compare",
    "select_random_structure",
    "ComparisonTable",
    "ComparisonRow",
    "SelectionResult",
]
