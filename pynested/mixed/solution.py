"""
Solution wrapper for fitted mixed models.

FittedModel wraps Result[FitParams] and provides R-style summary output,
property accessors for common quantities and the contrast-level
variance and df queries the hypothesis tester builds on.
"""

from __future__ import annotations

from functools import cached_property

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats

from pynested.core.result import Result
from pynested.core.validation import check_in_open_interval, check_option
from pynested.mixed._common import CoefficientEstimate, FitParams, VarCompSummary
from pynested.mixed._satterthwaite import (
    VarianceParameterDerivatives, variance_parameter_derivatives,
)
from pynested.mixed.spec import Criterion, ModelSpec

DF_METHODS = ('satterthwaite', 'residual', 'asymptotic')


def _significance_stars(p: float) -> str:
    """Return significance stars like R."""
    if p < 0.001:
        return '***'
    elif p < 0.01:
        return '**'
    elif p < 0.05:
        return '*'
    elif p < 0.1:
        return '.'
    else:
        return ' '


def _format_pvalue(p: float) -> str:
    """Format p-value like R."""
    if p < 2e-16:
        return '< 2e-16'
    elif p < 0.001:
        return f'{p:.2e}'
    else:
        return f'{p:.4f}'


class FittedModel:
    """A fitted linear mixed model.

    Immutable: every accessor returns stored estimates or values derived
    from them. Satterthwaite derivatives are computed on first use and
    cached.
    """

    def __init__(self, _result: Result[FitParams]):
        self._result = _result

    @property
    def params(self) -> FitParams:
        return self._result.params

    @property
    def result(self) -> Result[FitParams]:
        return self._result

    @property
    def spec(self) -> ModelSpec:
        return self.params.spec

    @property
    def criterion(self) -> Criterion:
        return self.params.spec.criterion

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    # --- Fixed effects ---

    @property
    def coefficients(self) -> NDArray:
        """Fixed effect estimates β̂."""
        return self.params.coefficients

    @property
    def coefficient_names(self) -> tuple[str, ...]:
        return self.params.coefficient_names

    @property
    def vcov(self) -> NDArray:
        """Var(β̂) = σ²(X'V*⁻¹X)⁻¹."""
        return self.params.vcov

    @property
    def se(self) -> NDArray:
        """Standard errors of fixed effects."""
        return np.sqrt(np.maximum(np.diag(self.params.vcov), 0.0))

    @property
    def fixed_coefficients(self) -> dict[str, CoefficientEstimate]:
        """Coefficient name -> CoefficientEstimate, in column order."""
        p = self.params
        return {
            name: CoefficientEstimate(
                name=name, term=term, estimate=float(est), se=float(se),
            )
            for name, term, est, se in zip(
                p.coefficient_names, p.coefficient_terms, p.coefficients, self.se,
            )
        }

    @property
    def fixef(self) -> dict[str, float]:
        """Fixed effects as name -> value dict."""
        return dict(zip(self.params.coefficient_names, self.params.coefficients))

    # --- Random effects ---

    @property
    def ranef(self) -> dict[str, NDArray]:
        """Conditional modes per grouping, (J, q) with rows in level order."""
        return self.params.random_effects

    @property
    def ranef_levels(self) -> dict[str, tuple[str, ...]]:
        """Level labels matching the rows of ranef."""
        return {b.group_name: b.levels for b in self.params.design.blocks}

    @property
    def var_components(self) -> tuple[VarCompSummary, ...]:
        """Variance component rows (one per random term)."""
        return self.params.var_components

    @property
    def variance_components(self) -> dict[str, float]:
        """Grouping -> random-intercept variance."""
        return {
            vc.group: vc.variance
            for vc in self.params.var_components
            if vc.name == '(Intercept)'
        }

    @property
    def residual_variance(self) -> float:
        return self.params.residual_variance

    @property
    def icc(self) -> dict[str, float]:
        """Intraclass correlation per grouping.

        ICC = σ²_group / (Σ σ²_groups + σ²_residual), intercept variances
        only; with one grouping this is the familiar σ²_b/(σ²_b + σ²).
        """
        comps = self.variance_components
        total = sum(comps.values()) + self.params.residual_variance
        return {group: var / total for group, var in comps.items()}

    @property
    def n_groups(self) -> dict[str, int]:
        return self.params.n_groups

    @property
    def random_groupings(self) -> tuple[str, ...]:
        return self.spec.random_groupings

    # --- Model fit ---

    @property
    def log_likelihood(self) -> float:
        """REML or ML log-likelihood, per the fit criterion."""
        return self.params.log_likelihood

    @property
    def effective_parameter_count(self) -> int:
        """k = p + n_θ + 1 (fixed effects, variance parameters, σ)."""
        return self.params.n_params

    @property
    def n_obs(self) -> int:
        return self.params.n_obs

    @property
    def aic(self) -> float:
        return self.params.aic

    @property
    def bic(self) -> float:
        return self.params.bic

    @property
    def fitted_values(self) -> NDArray:
        return self.params.fitted_values

    @property
    def residuals(self) -> NDArray:
        return self.params.residuals

    @property
    def converged(self) -> bool:
        return self.params.converged

    @property
    def n_iter(self) -> int:
        return self.params.n_iter

    @property
    def singular(self) -> bool:
        return self.params.singular

    # --- Contrast-level inference ---

    @cached_property
    def _derivatives(self) -> VarianceParameterDerivatives:
        d = self.params.design
        return variance_parameter_derivatives(
            self.params.theta, d.X, d.Z, d.y, list(d.blocks),
            reml=self.criterion is Criterion.RESTRICTED,
        )

    @property
    def residual_df(self) -> float:
        """n - p."""
        return float(self.params.n_obs - len(self.params.coefficients))

    def contrast_df(self, L: NDArray, df_method: str = 'satterthwaite') -> float:
        """Denominator df for the contrast(s) L β (one row per contrast).

        'satterthwaite' is exactly n - p when the model has no random
        effects; 'asymptotic' gives inf.
        """
        check_option(df_method, DF_METHODS, 'df_method')
        if df_method == 'asymptotic':
            return float('inf')
        if df_method == 'residual' or not self.spec.random_terms:
            return self.residual_df
        return self._derivatives.multi_df(np.atleast_2d(np.asarray(L, dtype=np.float64)))

    def coefficient_df(self, df_method: str = 'satterthwaite') -> NDArray:
        """Denominator df for each coefficient's t-test."""
        p = len(self.params.coefficients)
        return np.array([self.contrast_df(np.eye(p)[k], df_method) for k in range(p)])

    def confint(self, conf_level: float = 0.95, df_method: str = 'satterthwaite') -> pd.DataFrame:
        """Wald confidence intervals for the fixed effects.

        Returns:
            DataFrame indexed by coefficient name with columns estimate,
            se, df, lower, upper.
        """
        check_in_open_interval(conf_level, 0.0, 1.0, 'conf_level')
        df = self.coefficient_df(df_method)
        crit = _critical_value(conf_level, df)
        est = self.params.coefficients
        se = self.se
        return pd.DataFrame(
            {
                'estimate': est,
                'se': se,
                'df': df,
                'lower': est - crit * se,
                'upper': est + crit * se,
            },
            index=pd.Index(self.params.coefficient_names, name='coefficient'),
        )

    # --- Summary ---

    def summary(self) -> str:
        """R-style summary in the layout of lmerTest::summary(lmer(...))."""
        params = self.params
        method = self.criterion.value

        lines = []
        if self.spec.random_terms:
            lines.append(f"Linear mixed model fit by {method}")
        else:
            lines.append(f"Linear model fit by {method} (no random effects)")
        lines.append(f"Formula: {self.spec.formula}")
        lines.append("")

        if params.var_components:
            lines.append("Random effects:")
            lines.append(f" {'Groups':<12s} {'Name':<15s} {'Variance':>10s} "
                         f"{'Std.Dev.':>10s} {'Corr':>6s}")
            prev_group = None
            for vc in params.var_components:
                grp_label = vc.group if vc.group != prev_group else ''
                corr_str = f'{vc.corr:6.2f}' if vc.corr is not None else ''
                lines.append(
                    f" {grp_label:<12s} {vc.name:<15s} {vc.variance:10.4f} "
                    f"{vc.std_dev:10.4f} {corr_str}"
                )
                prev_group = vc.group
            lines.append(
                f" {'Residual':<12s} {'':<15s} {params.residual_variance:10.4f} "
                f"{np.sqrt(params.residual_variance):10.4f}"
            )
            lines.append("")
            group_parts = ', '.join(f'{name}, {n}' for name, n in params.n_groups.items())
            lines.append(f"Number of obs: {params.n_obs}, groups: {group_parts}")
        else:
            lines.append(
                f"Residual variance: {params.residual_variance:.4f} "
                f"(n = {params.n_obs})"
            )
        lines.append("")

        lines.append("Fixed effects:")
        lines.append(f" {'':>20s} {'Estimate':>10s} {'Std. Error':>10s} "
                     f"{'df':>10s} {'t value':>10s} {'Pr(>|t|)':>10s} {'':>4s}")
        df = self.coefficient_df()
        se = self.se
        for i, name in enumerate(params.coefficient_names):
            t_val = params.coefficients[i] / se[i]
            p_val = float(2.0 * stats.t.sf(abs(t_val), df[i]))
            lines.append(
                f" {name:>20s} {params.coefficients[i]:10.4f} "
                f"{se[i]:10.4f} {df[i]:10.2f} "
                f"{t_val:10.3f} {_format_pvalue(p_val):>10s} {_significance_stars(p_val)}"
            )
        lines.append("---")
        lines.append("Signif. codes:  0 '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 ' ' 1")
        lines.append("")

        lines.append(f"{method} criterion at convergence: "
                     f"{-2 * params.log_likelihood:.1f}")
        lines.append(f"logLik: {params.log_likelihood:.2f} "
                     f"(df = {params.n_params}), "
                     f"AIC: {params.aic:.1f}, BIC: {params.bic:.1f}")

        if params.singular:
            lines.append("")
            lines.append("WARNING: boundary (singular) fit")

        return '\n'.join(lines)

    def __repr__(self) -> str:
        return (
            f"FittedModel({self.criterion.value}, "
            f"{self.spec.formula!r}, "
            f"n={self.params.n_obs}, "
            f"logLik={self.params.log_likelihood:.3f})"
        )


def _critical_value(conf_level: float, df):
    """Two-sided critical value; df = inf gives the normal quantile."""
    return stats.t.ppf(1.0 - (1.0 - conf_level) / 2.0, df)
