"""Tests for the Penalized Least Squares solver and the profiled deviance."""

import numpy as np
import pytest
from scipy import stats

from pynested import ModelSpec
from pynested.mixed._deviance import deviance_from_pls, profiled_deviance
from pynested.mixed._pls import solve_pls
from pynested.mixed._random_effects import build_lambda, build_random_blocks, build_z_matrix


def _design(table):
    spec = ModelSpec('y', fixed_terms=['x'], random_terms=['group'])
    blocks = build_random_blocks(spec, table)
    n = table.n_obs
    X = np.column_stack([np.ones(n), table.column('x')])
    Z = build_z_matrix(blocks, n)
    return X, Z, table.column('y'), blocks


class TestSolvePLS:
    """Tests for the PLS inner solver."""

    def test_basic_random_intercept(self, one_way):
        """PLS produces reasonable estimates for a simple random intercept."""
        X, Z, y, blocks = _design(one_way)
        result = solve_pls(X, Z, y, build_lambda(np.array([1.0]), blocks), reml=True)

        np.testing.assert_allclose(result.beta, [5.0, 2.0], atol=2.0)
        np.testing.assert_allclose(result.fitted + result.residuals, y, atol=1e-10)
        assert result.pwrss > 0
        assert result.sigma_sq > 0

    def test_penalty_shrinks_b_to_zero(self, one_way):
        """When Λ → 0, random effects b → 0 (infinite penalty)."""
        X, Z, y, blocks = _design(one_way)
        result = solve_pls(X, Z, y, build_lambda(np.array([1e-6]), blocks))
        np.testing.assert_allclose(result.b, 0.0, atol=1e-4)

    def test_zero_theta_is_ols(self, one_way):
        """θ = 0 reproduces ordinary least squares."""
        X, Z, y, blocks = _design(one_way)
        result = solve_pls(X, Z, y, build_lambda(np.array([0.0]), blocks))
        beta_ols, *_ = np.linalg.lstsq(X, y, rcond=None)
        np.testing.assert_allclose(result.beta, beta_ols, rtol=1e-10)

    def test_sigma_divisor(self, one_way):
        X, Z, y, blocks = _design(one_way)
        Lambda = build_lambda(np.array([1.0]), blocks)
        reml = solve_pls(X, Z, y, Lambda, reml=True)
        ml = solve_pls(X, Z, y, Lambda, reml=False)
        n, p = X.shape
        assert reml.sigma_sq == pytest.approx(reml.pwrss / (n - p))
        assert ml.sigma_sq == pytest.approx(ml.pwrss / n)

    def test_no_random_effects(self, one_way):
        X = np.column_stack([np.ones(one_way.n_obs), one_way.column('x')])
        y = one_way.column('y')
        result = solve_pls(X, np.empty((len(y), 0)), y, np.empty((0, 0)))
        assert result.u.shape == (0,)
        assert result.log_det_L == 0.0
        beta_ols, *_ = np.linalg.lstsq(X, y, rcond=None)
        np.testing.assert_allclose(result.beta, beta_ols, rtol=1e-10)


class TestDeviance:

    def test_ml_deviance_without_random_effects(self, one_way):
        """q = 0: the ML deviance is -2 × Gaussian log-likelihood at the MLE."""
        X = np.column_stack([np.ones(one_way.n_obs), one_way.column('x')])
        y = one_way.column('y')
        n, p = X.shape
        pls = solve_pls(X, np.empty((n, 0)), y, np.empty((0, 0)), reml=False)
        sigma = np.sqrt(pls.pwrss / n)
        loglik = stats.norm.logpdf(y, loc=pls.fitted, scale=sigma).sum()
        assert deviance_from_pls(pls, n, p, reml=False) == pytest.approx(-2.0 * loglik)

    def test_profiled_deviance_minimum_interior(self, one_way):
        """With a strong grouping signal the deviance decreases away from θ = 0."""
        X, Z, y, blocks = _design(one_way)
        d0 = profiled_deviance(np.array([0.0]), X, Z, y, blocks)
        d1 = profiled_deviance(np.array([1.5]), X, Z, y, blocks)
        assert d1 < d0
