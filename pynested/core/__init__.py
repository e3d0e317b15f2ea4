"""
Core infrastructure for PyNested.

Shared abstractions used by every domain sub-package.

Key components:
    table: ObservationTable, the immutable tabular input
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Timing and shared numerical thresholds
"""

from pynested.core.result import Result
from pynested.core.table import ObservationTable
from pynested.core.exceptions import (
    PyNestedError,
    ValidationError,
    NumericalError,
    SingularFitError,
    ConvergenceError,
    IncomparableModelsError,
)

__all__ = [
    # Data
    "ObservationTable",
    # Result
    "Result",
    # Exceptions
    "PyNestedError",
    "ValidationError",
    "NumericalError",
    "SingularFitError",
    "ConvergenceError",
    "IncomparableModelsError",
]
