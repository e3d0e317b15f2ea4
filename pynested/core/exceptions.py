"""
Exception hierarchy for PyNested.

All exceptions inherit from PyNestedError to allow catching any
library-specific error. Domain code raises the most specific class that
describes the failure.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Attributes survive pickling, so errors raised in worker processes
      reach the caller intact
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information

Recoverability:
    ValidationError           fatal for the attempted fit; fix the inputs
    ConvergenceError          recoverable; retry with other starting values
    SingularFitError          recoverable; simplify the random structure
    IncomparableModelsError   caller logic error; never worked around
"""


class PyNestedError(Exception):
    """Base exception for all PyNested errors."""
    pass


class ValidationError(PyNestedError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks: missing
    columns, violated nesting, malformed model specifications or
    unknown option values.
    """
    pass


class NumericalError(PyNestedError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class SingularFitError(NumericalError):
    """
    The fitted model is degenerate.

    Raised when a variance component collapses onto its boundary (zero),
    signalling an overparameterized random-effects structure, or when a
    design matrix is rank-deficient.

    Attributes:
        component: Grouping factor or matrix that degenerated
        value: Offending value (e.g. the relative standard deviation θ)
        rank: Numerical rank, for rank-deficient design matrices
        expected_rank: Expected rank, for rank-deficient design matrices
    """

    def __init__(
        self,
        message: str,
        component: str | None = None,
        value: float | None = None,
        rank: int | None = None,
        expected_rank: int | None = None,
    ):
        super().__init__(message)
        self.component = component
        self.value = value
        self.rank = rank
        self.expected_rank = expected_rank

    def __reduce__(self):
        return (
            self.__class__,
            (str(self), self.component, self.value, self.rank, self.expected_rank),
        )


class ConvergenceError(PyNestedError):
    """
    Iterative algorithm failed to converge.

    Raised when the variance-parameter optimizer fails to meet its
    convergence criteria within the iteration budget.

    Attributes:
        iterations: Number of iterations completed
        final_change: Change in the objective over the last iteration, if available
        reason: Why convergence failed (optimizer message)
        threshold: The convergence threshold that was not met
    """

    def __init__(
        self,
        message: str,
        iterations: int,
        final_change: float | None = None,
        reason: str | None = None,
        threshold: float | None = None,
    ):
        super().__init__(message)
        self.iterations = iterations
        self.final_change = final_change
        self.reason = reason
        self.threshold = threshold

    def __reduce__(self):
        return (
            self.__class__,
            (str(self), self.iterations, self.final_change, self.reason, self.threshold),
        )


class IncomparableModelsError(PyNestedError):
    """
    Models cannot be compared by likelihood-based criteria.

    Raised when fitted models differ in fixed-effect structure, estimation
    criterion, response or sample, so that their likelihoods are not on a
    common scale.

    Attributes:
        reason: Short machine-readable reason ('fixed_terms', 'criterion',
            'response', 'n_obs', 'empty', 'nesting')
        labels: Labels of the offending models, if known
    """

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        labels: tuple[str, ...] | None = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.labels = labels

    def __reduce__(self):
        return (self.__class__, (str(self), self.reason, self.labels))
