"""
User-facing inference results.

Each solution wraps a Result[Params] and provides accessors, R-style
summary output and a DataFrame view for reporting.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pandas as pd

from pynested.core.result import Result
from pynested.inference._common import (
    CellMean,
    CellMeansParams,
    CoefficientTest,
    CoefficientTestsParams,
    FixedEffectsParams,
    LikelihoodRatioParams,
    TermTest,
)
from pynested.mixed.solution import _format_pvalue, _significance_stars


@dataclass
class FixedEffectsTests:
    """
    Marginal Wald F tests of the fixed terms.

    Produced by test_fixed_effects().
    """
    _result: Result[FixedEffectsParams]

    @property
    def rows(self) -> tuple[TermTest, ...]:
        return self._result.params.rows

    @property
    def ss_type(self) -> int:
        return self._result.params.ss_type

    @property
    def df_method(self) -> str:
        return self._result.params.df_method

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def __getitem__(self, term: str) -> TermTest:
        for row in self.rows:
            if row.term == term:
                return row
        raise KeyError(
            f"No test for term {term!r}. Available: {[r.term for r in self.rows]}"
        )

    def __iter__(self):
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                'F': [r.statistic for r in self.rows],
                'NumDF': [r.num_df for r in self.rows],
                'DenDF': [r.den_df for r in self.rows],
                'p': [r.p_value for r in self.rows],
            },
            index=pd.Index([r.term for r in self.rows], name='term'),
        )

    def summary(self) -> str:
        """R-style table in the layout of lmerTest's anova()."""
        params = self._result.params
        roman = {2: 'II', 3: 'III'}[params.ss_type]
        lines = [
            f"Type {roman} Analysis of Variance Table "
            f"({params.df_method} df, {params.criterion} fit)",
            "=" * 66,
            f"{'Term':<24} {'F value':>10} {'NumDF':>6} {'DenDF':>10} {'Pr(>F)':>12}",
            "-" * 66,
        ]
        for row in self.rows:
            lines.append(
                f"{row.term:<24} {row.statistic:>10.4f} {row.num_df:>6} "
                f"{row.den_df:>10.2f} {_format_pvalue(row.p_value):>12} "
                f"{_significance_stars(row.p_value)}"
            )
        lines.append("-" * 66)
        lines.append("Signif. codes:  0 '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 ' ' 1")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"FixedEffectsTests(type={self.ss_type}, df={self.df_method!r}, "
            f"terms={[r.term for r in self.rows]})"
        )


@dataclass
class CoefficientTests:
    """
    Per-coefficient t tests.

    Produced by coefficient_tests().
    """
    _result: Result[CoefficientTestsParams]

    @property
    def rows(self) -> tuple[CoefficientTest, ...]:
        return self._result.params.rows

    def __getitem__(self, name: str) -> CoefficientTest:
        for row in self.rows:
            if row.name == name:
                return row
        raise KeyError(
            f"No coefficient {name!r}. Available: {[r.name for r in self.rows]}"
        )

    def __iter__(self):
        return iter(self.rows)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                'Estimate': [r.estimate for r in self.rows],
                'Std. Error': [r.se for r in self.rows],
                'df': [r.df for r in self.rows],
                't value': [r.t_value for r in self.rows],
                'Pr(>|t|)': [r.p_value for r in self.rows],
            },
            index=pd.Index([r.name for r in self.rows], name='coefficient'),
        )

    def __repr__(self) -> str:
        return (
            f"CoefficientTests(df={self._result.params.df_method!r}, "
            f"n_coef={len(self.rows)})"
        )


@dataclass
class LikelihoodRatioTest:
    """
    Likelihood ratio test of two nested models.

    Produced by likelihood_ratio_test().
    """
    _result: Result[LikelihoodRatioParams]

    @property
    def statistic(self) -> float:
        return self._result.params.statistic

    @property
    def df(self) -> int:
        return self._result.params.df

    @property
    def p_value(self) -> float:
        return self._result.params.p_value

    @property
    def on_boundary(self) -> bool:
        return self._result.params.on_boundary

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def summary(self) -> str:
        params = self._result.params
        lines = [
            f"Likelihood Ratio Test ({params.criterion} fits)",
            "=" * 50,
            f"  Reduced model logLik: {params.log_likelihood_reduced:.4f}  "
            f"(df = {params.n_params_reduced})",
            f"  Full model logLik:    {params.log_likelihood_full:.4f}  "
            f"(df = {params.n_params_full})",
            f"  Chi-squared: {params.statistic:.4f}  on {params.df} df",
            f"  p-value: {_format_pvalue(params.p_value)}",
        ]
        if params.on_boundary:
            lines.append(
                "  Note: a variance component is tested on its boundary; "
                "the chi-squared p-value is conservative"
            )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"LikelihoodRatioTest(chisq={self.statistic:.4f}, df={self.df}, "
            f"p={self.p_value:.4g})"
        )


@dataclass
class CellMeans:
    """
    Estimated means and confidence intervals per factor combination.

    Produced by cell_means(). Keys are tuples of level labels in the
    order of `factors`.
    """
    _result: Result[CellMeansParams]

    @property
    def factors(self) -> tuple[str, ...]:
        return self._result.params.factors

    @property
    def cells(self) -> tuple[CellMean, ...]:
        return self._result.params.cells

    @property
    def conf_level(self) -> float:
        return self._result.params.conf_level

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    def as_dict(self) -> dict[tuple[str, ...], CellMean]:
        return {c.cell: c for c in self.cells}

    def intervals(self) -> dict[tuple[str, ...], tuple[float, float]]:
        """Cell -> (lower, upper)."""
        return {c.cell: (c.lower, c.upper) for c in self.cells}

    def __getitem__(self, cell: tuple[str, ...] | str) -> CellMean:
        key = (cell,) if isinstance(cell, str) else tuple(str(c) for c in cell)
        for c in self.cells:
            if c.cell == key:
                return c
        raise KeyError(
            f"No cell {key!r}. Available: {[c.cell for c in self.cells]}"
        )

    def __iter__(self):
        return iter(self.cells)

    def __len__(self) -> int:
        return len(self.cells)

    def to_frame(self) -> pd.DataFrame:
        """One row per cell; factor columns then estimate, se, df, bounds."""
        records = []
        for c in self.cells:
            record = dict(zip(self.factors, c.cell))
            record.update(
                estimate=c.estimate, se=c.se, df=c.df,
                lower=c.lower, upper=c.upper, n_obs=c.n_obs,
            )
            records.append(record)
        return pd.DataFrame.from_records(records)

    def summary(self) -> str:
        params = self._result.params
        pct = f"{100 * params.conf_level:g}%"
        header = ' x '.join(params.factors)
        width = max([len(', '.join(c.cell)) for c in self.cells] + [len(header)])
        lines = [
            f"Cell means ({params.criterion} fit, {params.df_method} df, {pct} CI)",
            "=" * (width + 56),
            f"{header:<{width}} {'Estimate':>10} {'SE':>10} {'df':>8} "
            f"{'Lower':>10} {'Upper':>10} {'n':>4}",
            "-" * (width + 56),
        ]
        for c in self.cells:
            lines.append(
                f"{', '.join(c.cell):<{width}} {c.estimate:>10.4f} {c.se:>10.4f} "
                f"{c.df:>8.2f} {c.lower:>10.4f} {c.upper:>10.4f} {c.n_obs:>4}"
            )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"CellMeans(factors={list(self.factors)}, n_cells={len(self.cells)})"
