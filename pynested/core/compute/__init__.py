"""
Shared compute infrastructure for PyNested.

Submodules:
    timing: Execution timing utilities
    tolerances: Numerical thresholds shared by the fitting routines
"""

from pynested.core.compute.timing import Timer

__all__ = [
    "Timer",
]
