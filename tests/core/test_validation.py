"""
Tests for input validators.

Each validator checks ONE thing and raises ValidationError with the
offending value in the message.
"""

import numpy as np
import pandas as pd
import pytest

from pynested.core.exceptions import ValidationError
from pynested.core.validation import (
    check_column_rank,
    check_columns,
    check_finite,
    check_in_open_interval,
    check_option,
    check_strict_nesting,
)


class TestCheckFinite:

    def test_passes_finite(self):
        check_finite(np.array([1.0, 2.0]), 'y')

    def test_counts_nan_and_inf(self):
        with pytest.raises(ValidationError, match=r"1 NaN, 1 Inf"):
            check_finite(np.array([1.0, np.nan, np.inf]), 'y')


class TestSmallChecks:

    def test_option(self):
        assert check_option('omit', ('omit', 'fail'), 'na_action') == 'omit'
        with pytest.raises(ValidationError, match="na_action"):
            check_option('drop', ('omit', 'fail'), 'na_action')

    def test_open_interval(self):
        check_in_open_interval(0.95, 0.0, 1.0, 'conf_level')
        with pytest.raises(ValidationError):
            check_in_open_interval(1.0, 0.0, 1.0, 'conf_level')

    def test_columns_lists_missing(self):
        with pytest.raises(ValidationError, match=r"\['z'\]"):
            check_columns(['x', 'y'], ['x', 'z'], 'table')

    def test_column_rank(self):
        X = np.column_stack([np.ones(5), np.arange(5.0), 2 * np.arange(5.0)])
        assert check_column_rank(X, 'X') == 2
        assert check_column_rank(np.empty((5, 0)), 'X') == 0


class TestStrictNesting:

    def test_nested_ok(self):
        frame = pd.DataFrame({
            'population': ['A', 'A', 'B', 'B'],
            'individual': ['a1', 'a2', 'b1', 'b2'],
        })
        check_strict_nesting(frame, ['population', 'individual'])

    def test_reused_identifier_rejected(self):
        frame = pd.DataFrame({
            'population': ['A', 'A', 'B', 'B'],
            'individual': ['i1', 'i2', 'i1', 'i2'],
        })
        with pytest.raises(ValidationError, match="Nesting violated"):
            check_strict_nesting(frame, ['population', 'individual'])

    def test_three_levels(self):
        frame = pd.DataFrame({
            'region': ['N', 'N', 'S', 'S'],
            'population': ['A', 'B', 'C', 'C'],
            'individual': ['a1', 'b1', 'c1', 'c2'],
        })
        check_strict_nesting(frame, ['region', 'population', 'individual'])
        bad = frame.assign(population=['A', 'B', 'A', 'C'])
        with pytest.raises(ValidationError, match="'population'"):
            check_strict_nesting(bad, ['region', 'population', 'individual'])
