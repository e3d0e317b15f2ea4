"""
Tests for the PyNested exception hierarchy.

Validates:
    - Inheritance chain (all exceptions catchable via PyNestedError)
    - Diagnostic attributes on SingularFitError, ConvergenceError and
      IncomparableModelsError
    - Attributes survive pickling (errors cross worker processes)
"""

import pickle

import pytest

from pynested.core.exceptions import (
    ConvergenceError,
    IncomparableModelsError,
    NumericalError,
    PyNestedError,
    SingularFitError,
    ValidationError,
)


# ═══════════════════════════════════════════════════════════════════════
# Inheritance hierarchy
# ═══════════════════════════════════════════════════════════════════════


class TestInheritance:
    """Every exception is catchable via PyNestedError."""

    def test_singular_fit_is_numerical_error(self):
        with pytest.raises(NumericalError):
            raise SingularFitError("collapsed")

    @pytest.mark.parametrize("exc", [
        ValidationError("bad input"),
        NumericalError("failed"),
        SingularFitError("collapsed"),
        ConvergenceError("no convergence", iterations=3),
        IncomparableModelsError("differ"),
    ])
    def test_all_catchable_as_base(self, exc):
        with pytest.raises(PyNestedError):
            raise exc

    def test_convergence_is_not_numerical(self):
        """Callers tell optimizer failure and degeneracy apart."""
        assert not issubclass(ConvergenceError, NumericalError)


# ═══════════════════════════════════════════════════════════════════════
# Diagnostic attributes
# ═══════════════════════════════════════════════════════════════════════


class TestAttributes:

    def test_singular_fit_defaults(self):
        e = SingularFitError("collapsed")
        assert e.component is None
        assert e.value is None
        assert e.rank is None
        assert e.expected_rank is None
        assert str(e) == "collapsed"

    def test_singular_fit_rank(self):
        e = SingularFitError("rank deficient", component='X', rank=3, expected_rank=4)
        assert e.component == 'X'
        assert e.rank == 3
        assert e.expected_rank == 4

    def test_convergence_attributes(self):
        e = ConvergenceError(
            "stopped", iterations=200, final_change=12.5,
            reason='iteration budget exhausted', threshold=1e-8,
        )
        assert e.iterations == 200
        assert e.final_change == 12.5
        assert e.reason == 'iteration budget exhausted'
        assert e.threshold == 1e-8

    def test_incomparable_attributes(self):
        e = IncomparableModelsError("differ", reason='criterion', labels=('a', 'b'))
        assert e.reason == 'criterion'
        assert e.labels == ('a', 'b')


# ═══════════════════════════════════════════════════════════════════════
# Pickling
# ═══════════════════════════════════════════════════════════════════════


class TestPickle:

    def test_singular_fit_roundtrip(self):
        e = SingularFitError("collapsed", component='population', value=1e-6)
        out = pickle.loads(pickle.dumps(e))
        assert type(out) is SingularFitError
        assert str(out) == "collapsed"
        assert out.component == 'population'
        assert out.value == 1e-6

    def test_convergence_roundtrip(self):
        e = ConvergenceError("stopped", iterations=7, reason='abnormal')
        out = pickle.loads(pickle.dumps(e))
        assert out.iterations == 7
        assert out.reason == 'abnormal'

    def test_incomparable_roundtrip(self):
        e = IncomparableModelsError("differ", reason='n_obs', labels=('a', 'b'))
        out = pickle.loads(pickle.dumps(e))
        assert out.reason == 'n_obs'
        assert out.labels == ('a', 'b')
