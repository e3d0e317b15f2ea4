"""
Tests for marginal Wald F tests (type II / III) and coefficient t tests.
"""

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from pynested import (
    ModelSpec,
    ObservationTable,
    ValidationError,
    coefficient_tests,
    fit,
    test_fixed_effects,
)
from pynested.inference._marginal import hypothesis_matrices, type2_contrast


FULL = 'length ~ origin * treatment + (1 | population) + (1 | individual)'
ADDITIVE = 'length ~ origin + treatment + (1 | population) + (1 | individual)'


@pytest.fixture
def full_ml(growth):
    return fit(ModelSpec.from_formula(FULL, criterion='ML'), growth)


@pytest.fixture
def diet_table(growth_frame):
    """Adds a three-level factor varying within individuals."""
    rng = np.random.default_rng(8)
    diet = np.tile(['algae', 'krill', 'pellet'], len(growth_frame) // 3 + 1)[:len(growth_frame)]
    frame = growth_frame.assign(
        diet=diet,
        length=growth_frame['length'] + np.where(diet == 'krill', 0.8, 0.0)
        + rng.normal(0, 0.1, len(growth_frame)),
    )
    return ObservationTable(
        frame,
        hierarchy=('population', 'individual'),
        factors=('origin', 'treatment', 'diet'),
    )


# ═══════════════════════════════════════════════════════════════════════
# Type II
# ═══════════════════════════════════════════════════════════════════════


class TestTypeII:

    def test_terms_and_num_df(self, full_ml):
        tests = test_fixed_effects(full_ml)
        assert [r.term for r in tests] == ['origin', 'treatment', 'origin:treatment']
        assert all(r.num_df == 1 for r in tests)
        assert tests.ss_type == 2
        assert tests.df_method == 'satterthwaite'

    def test_highest_order_term_equals_t_squared(self, full_ml):
        tests = test_fixed_effects(full_ml)
        coef = coefficient_tests(full_ml)['originwild:treatmentheat']
        row = tests['origin:treatment']
        assert row.statistic == pytest.approx(coef.t_value ** 2, rel=1e-8)
        assert row.den_df == pytest.approx(coef.df, rel=1e-8)
        assert row.p_value == pytest.approx(coef.p_value, rel=1e-6)

    def test_additive_model_main_effects_are_t_tests(self, growth):
        model = fit(ModelSpec.from_formula(ADDITIVE, criterion='ML'), growth)
        tests = test_fixed_effects(model)
        coef = coefficient_tests(model)
        assert tests['treatment'].statistic == pytest.approx(
            coef['treatmentheat'].t_value ** 2, rel=1e-8)

    def test_invariant_to_coding(self, growth):
        spec = ModelSpec.from_formula(FULL, criterion='ML')
        treatment = test_fixed_effects(fit(spec, growth))
        deviation = test_fixed_effects(fit(spec, growth, coding='deviation'))
        for term in ('origin', 'treatment', 'origin:treatment'):
            assert treatment[term].statistic == pytest.approx(
                deviation[term].statistic, rel=1e-4)

    def test_detects_treatment_effect(self, full_ml):
        """Simulated heat effect of -1 on 200 rows is clearly significant."""
        assert test_fixed_effects(full_ml)['treatment'].p_value < 1e-4

    def test_contrast_orthogonal_to_containing_terms(self, full_ml):
        fixed = full_ml.params.design.fixed
        V = full_ml.vcov
        L = type2_contrast(fixed, 'origin', V)
        inter = np.eye(fixed.p)[fixed.term_slices['origin:treatment']]
        np.testing.assert_allclose(L @ V @ inter.T, 0.0, atol=1e-12)


# ═══════════════════════════════════════════════════════════════════════
# Type III
# ═══════════════════════════════════════════════════════════════════════


class TestTypeIII:

    def test_treatment_coding_with_interaction_rejected(self, full_ml):
        with pytest.raises(ValidationError, match="deviation"):
            test_fixed_effects(full_ml, ss_type=3)

    def test_deviation_coding(self, growth):
        model = fit(ModelSpec.from_formula(FULL, criterion='ML'), growth, coding='deviation')
        tests = test_fixed_effects(model, ss_type=3)
        assert tests.ss_type == 3
        assert tests.info['coding'] == 'deviation'
        type2 = test_fixed_effects(model, ss_type=2)
        assert tests['origin:treatment'].statistic == pytest.approx(
            type2['origin:treatment'].statistic, rel=1e-8)

    def test_no_interaction_any_coding(self, growth):
        model = fit(ModelSpec.from_formula(ADDITIVE, criterion='ML'), growth)
        assert len(test_fixed_effects(model, ss_type=3)) == 2

    def test_unknown_type(self, full_ml):
        with pytest.raises(ValidationError, match="ss_type"):
            test_fixed_effects(full_ml, ss_type=1)


# ═══════════════════════════════════════════════════════════════════════
# Denominator df and multi-df terms
# ═══════════════════════════════════════════════════════════════════════


class TestDenominatorDf:

    def test_asymptotic_is_chi_squared(self, full_ml):
        tests = test_fixed_effects(full_ml, df_method='asymptotic')
        for row in tests:
            assert np.isinf(row.den_df)
            assert row.p_value == pytest.approx(
                stats.chi2.sf(row.statistic * row.num_df, row.num_df))

    def test_residual(self, full_ml):
        tests = test_fixed_effects(full_ml, df_method='residual')
        assert all(r.den_df == 196.0 for r in tests)

    def test_unknown_method(self, full_ml):
        with pytest.raises(ValidationError, match="df_method"):
            test_fixed_effects(full_ml, df_method='containment')

    def test_three_level_factor(self, diet_table):
        spec = ModelSpec.from_formula(
            'length ~ origin + diet + (1 | population) + (1 | individual)', criterion='ML')
        model = fit(spec, diet_table)
        row = test_fixed_effects(model)['diet']
        assert row.num_df == 2
        assert 2.0 <= row.den_df <= model.n_obs - 4

        # Contained in nothing: the hypothesis is the diet columns themselves
        sl = model.params.design.fixed.term_slices['diet']
        b = model.coefficients[sl]
        V = model.vcov[sl, sl]
        assert row.statistic == pytest.approx(float(b @ np.linalg.solve(V, b)) / 2, rel=1e-8)
        assert row.p_value < 1e-4


# ═══════════════════════════════════════════════════════════════════════
# Edge cases and output
# ═══════════════════════════════════════════════════════════════════════


class TestOutput:

    def test_intercept_only_rejected(self, growth):
        model = fit(ModelSpec.from_formula('length ~ 1 + (1 | population)'), growth)
        with pytest.raises(ValidationError, match="no fixed terms"):
            test_fixed_effects(model)

    def test_no_random_effects_f_test(self, growth):
        """Without random effects the type II F test is the classical one."""
        model = fit(ModelSpec('length', fixed_terms=['origin', 'treatment']), growth)
        row = test_fixed_effects(model)['treatment']
        assert row.den_df == 197.0

    def test_frame_and_summary(self, full_ml):
        tests = test_fixed_effects(full_ml)
        frame = tests.to_frame()
        assert list(frame.columns) == ['F', 'NumDF', 'DenDF', 'p']
        assert list(frame.index) == ['origin', 'treatment', 'origin:treatment']
        text = tests.summary()
        assert 'Type II Analysis of Variance Table' in text
        assert '(satterthwaite df, ML fit)' in text
        with pytest.raises(KeyError):
            tests['diet']

    def test_hypothesis_matrix_shapes(self, full_ml):
        fixed = full_ml.params.design.fixed
        mats = hypothesis_matrices(fixed, full_ml.vcov, 2)
        assert set(mats) == {'origin', 'treatment', 'origin:treatment'}
        assert all(L.shape == (1, 4) for L in mats.values())


class TestCoefficientTests:

    def test_t_values(self, full_ml):
        tests = coefficient_tests(full_ml)
        for row, est, se in zip(tests, full_ml.coefficients, full_ml.se):
            assert row.t_value == pytest.approx(est / se)
            assert row.p_value == pytest.approx(2 * stats.t.sf(abs(row.t_value), row.df))

    def test_frame(self, full_ml):
        frame = coefficient_tests(full_ml, df_method='residual').to_frame()
        assert list(frame.index) == list(full_ml.coefficient_names)
        np.testing.assert_array_equal(frame['df'], np.full(4, 196.0))
        assert isinstance(frame, pd.DataFrame)
