"""
Nested variance decomposition.

Public API:
    decompose()             - per-level variance estimates by nested aggregation
    VarianceDecomposition   - result wrapper
"""

from pynested.variance.solvers import decompose
from pynested.variance.solution import VarianceDecomposition

__all__ = [
    "decompose",
    "VarianceDecomposition",
]
