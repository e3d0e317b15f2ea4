"""Tests for likelihood_ratio_test() on nested fixed and random structures."""

import pytest
from scipy import stats

from pynested import (
    IncomparableModelsError,
    ModelSpec,
    ObservationTable,
    fit,
    likelihood_ratio_test,
)


def _fit(table, fixed, random_terms=('population', 'individual'), criterion='ML', **kwargs):
    spec = ModelSpec('length', fixed_terms=fixed, random_terms=list(random_terms),
                     criterion=criterion)
    return fit(spec, table, **kwargs)


class TestFixedEffects:

    def test_drop_interaction(self, growth):
        reduced = _fit(growth, ['origin', 'treatment'])
        full = _fit(growth, ['origin', 'treatment', 'origin:treatment'])
        lrt = likelihood_ratio_test(reduced, full)
        assert lrt.df == 1
        assert lrt.statistic == pytest.approx(
            2 * (full.log_likelihood - reduced.log_likelihood))
        assert lrt.statistic >= 0.0
        assert lrt.p_value == pytest.approx(stats.chi2.sf(lrt.statistic, 1))
        assert not lrt.on_boundary
        assert lrt.warnings == ()

    def test_drop_treatment_is_significant(self, growth):
        reduced = _fit(growth, ['origin'])
        full = _fit(growth, ['origin', 'treatment'])
        lrt = likelihood_ratio_test(reduced, full)
        assert lrt.p_value < 1e-4

    def test_reml_with_different_fixed_effects(self, growth):
        reduced = _fit(growth, ['origin'], criterion='REML')
        full = _fit(growth, ['origin', 'treatment'], criterion='REML')
        with pytest.raises(IncomparableModelsError) as excinfo:
            likelihood_ratio_test(reduced, full)
        assert excinfo.value.reason == 'criterion'

    def test_mixed_criteria(self, growth):
        reduced = _fit(growth, ['origin'], criterion='REML')
        full = _fit(growth, ['origin', 'treatment'])
        with pytest.raises(IncomparableModelsError) as excinfo:
            likelihood_ratio_test(reduced, full)
        assert excinfo.value.reason == 'criterion'


class TestRandomEffects:

    def test_boundary_flagged(self, growth):
        reduced = _fit(growth, ['origin', 'treatment'], ['population'], criterion='REML')
        full = _fit(growth, ['origin', 'treatment'], criterion='REML')
        lrt = likelihood_ratio_test(reduced, full)
        assert lrt.df == 1
        assert lrt.on_boundary
        assert any('boundary' in w for w in lrt.warnings)
        assert 'boundary' in lrt.summary()
        assert lrt.p_value < 0.05

    def test_against_no_random_effects(self, growth):
        reduced = _fit(growth, ['origin'], [], criterion='REML')
        full = _fit(growth, ['origin'], ['population'], criterion='REML')
        lrt = likelihood_ratio_test(reduced, full)
        assert lrt.df == 1
        assert lrt.on_boundary


class TestComparability:

    def test_not_nested(self, growth):
        a = _fit(growth, ['origin'], ['population'])
        b = _fit(growth, ['origin'], ['individual'])
        with pytest.raises(IncomparableModelsError) as excinfo:
            likelihood_ratio_test(a, b)
        assert excinfo.value.reason == 'nesting'

    def test_reversed_order(self, growth):
        reduced = _fit(growth, ['origin'])
        full = _fit(growth, ['origin', 'treatment'])
        with pytest.raises(IncomparableModelsError) as excinfo:
            likelihood_ratio_test(full, reduced)
        assert excinfo.value.reason == 'nesting'

    def test_same_model(self, growth):
        model = _fit(growth, ['origin'])
        with pytest.raises(IncomparableModelsError) as excinfo:
            likelihood_ratio_test(model, model)
        assert excinfo.value.reason == 'nesting'

    def test_different_sample(self, growth, growth_frame):
        subset = ObservationTable(
            growth_frame.iloc[:120],
            hierarchy=('population', 'individual'),
            factors=('origin', 'treatment'),
        )
        reduced = _fit(subset, ['origin'])
        full = _fit(growth, ['origin', 'treatment'])
        with pytest.raises(IncomparableModelsError) as excinfo:
            likelihood_ratio_test(reduced, full)
        assert excinfo.value.reason == 'n_obs'
        assert excinfo.value.labels == ('reduced', 'full')

    def test_different_coding(self, growth):
        reduced = _fit(growth, ['origin'], ['population'], criterion='REML')
        full = _fit(growth, ['origin'], criterion='REML', coding='deviation')
        with pytest.raises(IncomparableModelsError) as excinfo:
            likelihood_ratio_test(reduced, full)
        assert excinfo.value.reason == 'coding'


class TestOutput:

    def test_summary_and_repr(self, growth):
        lrt = likelihood_ratio_test(
            _fit(growth, ['origin']), _fit(growth, ['origin', 'treatment']),
        )
        text = lrt.summary()
        assert 'Likelihood Ratio Test (ML fits)' in text
        assert 'on 1 df' in text
        assert repr(lrt).startswith('LikelihoodRatioTest(chisq=')
