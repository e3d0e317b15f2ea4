"""
Solver entry points for fixed-effect inference.

Public API:
    test_fixed_effects()    - marginal (type II / III) Wald F tests per term
    coefficient_tests()     - t tests per coefficient
    likelihood_ratio_test() - chi-squared test of two nested models
    cell_means()            - means and CIs per factor-level combination
"""

from __future__ import annotations

import numpy as np
from scipy import stats

from pynested.core.result import Result
from pynested.core.table import ObservationTable
from pynested.core.compute.timing import Timer
from pynested.core.exceptions import IncomparableModelsError, ValidationError
from pynested.core.validation import check_in_open_interval, check_option
from pynested.inference._common import (
    CellMean,
    CellMeansParams,
    CoefficientTest,
    CoefficientTestsParams,
    FixedEffectsParams,
    LikelihoodRatioParams,
    TermTest,
)
from pynested.inference._marginal import hypothesis_matrices
from pynested.inference.solution import (
    CellMeans, CoefficientTests, FixedEffectsTests, LikelihoodRatioTest,
)
from pynested.mixed.solution import DF_METHODS, FittedModel
from pynested.mixed.solvers import fit
from pynested.mixed.spec import Criterion


def test_fixed_effects(
    fitted_model: FittedModel,
    *,
    ss_type: int = 2,
    df_method: str = 'satterthwaite',
) -> FixedEffectsTests:
    """Marginal Wald F tests for every fixed term.

    F = (Lβ̂)'(L V L')⁻¹(Lβ̂) / q for the term's hypothesis matrix L
    (q rows), V = Var(β̂).

    Args:
        fitted_model: Model to test; normally the FULL re-fit of the
            selected structure.
        ss_type: 2 (default; marginal, respects containment) or 3 (each
            term last; needs deviation coding with interactions).
        df_method: 'satterthwaite', 'residual' (n - p) or 'asymptotic'
            (chi-squared, den_df = inf).

    Raises:
        ValidationError: Bad options, type III with treatment-coded
            interactions, or a model without fixed terms.
    """
    check_option(df_method, DF_METHODS, 'df_method')
    timer = Timer()
    timer.start()

    fixed = fitted_model.params.design.fixed
    beta = fitted_model.coefficients
    V = fitted_model.vcov

    with timer.section('contrasts'):
        matrices = hypothesis_matrices(fixed, V, ss_type)
    if not matrices:
        raise ValidationError(
            f"Model {fitted_model.spec.formula!r} has no fixed terms to test"
        )

    rows = []
    with timer.section('tests'):
        for term, L in matrices.items():
            q = L.shape[0]
            Lb = L @ beta
            f_value = float(Lb @ np.linalg.solve(L @ V @ L.T, Lb)) / q
            den_df = fitted_model.contrast_df(L, df_method)
            rows.append(TermTest(
                term=term,
                statistic=f_value,
                num_df=q,
                den_df=den_df,
                p_value=_f_pvalue(f_value, q, den_df),
            ))

    timer.stop()

    result = Result(
        params=FixedEffectsParams(
            rows=tuple(rows),
            ss_type=ss_type,
            df_method=df_method,
            criterion=fitted_model.criterion.value,
            n_obs=fitted_model.n_obs,
        ),
        info={'ss_type': ss_type, 'df_method': df_method, 'coding': fixed.coding},
        timing=timer.result(),
        backend_name='cpu_wald',
        warnings=fitted_model.warnings,
    )
    return FixedEffectsTests(_result=result)


# Not a pytest test, despite the name
test_fixed_effects.__test__ = False


def coefficient_tests(
    fitted_model: FittedModel,
    *,
    df_method: str = 'satterthwaite',
) -> CoefficientTests:
    """t test of each coefficient against zero."""
    check_option(df_method, DF_METHODS, 'df_method')
    df = fitted_model.coefficient_df(df_method)
    se = fitted_model.se
    rows = []
    for k, est in enumerate(fitted_model.fixed_coefficients.values()):
        t_value = est.estimate / se[k]
        rows.append(CoefficientTest(
            name=est.name,
            term=est.term,
            estimate=est.estimate,
            se=est.se,
            df=float(df[k]),
            t_value=float(t_value),
            p_value=float(2.0 * stats.t.sf(abs(t_value), df[k])),
        ))
    result = Result(
        params=CoefficientTestsParams(rows=tuple(rows), df_method=df_method),
        info={'df_method': df_method},
        timing=None,
        backend_name='cpu_wald',
    )
    return CoefficientTests(_result=result)


def likelihood_ratio_test(reduced: FittedModel, full: FittedModel) -> LikelihoodRatioTest:
    """Likelihood ratio test of `reduced` nested in `full`.

    Models differing in fixed effects must both be FULL fits; REML
    likelihoods are only comparable between identical fixed parts.

    Raises:
        IncomparableModelsError: Different response, sample or criterion;
            REML fits with different fixed effects; models not nested.
    """
    labels = ('reduced', 'full')
    for reason, key in (
        ('response', lambda m: m.spec.response),
        ('n_obs', lambda m: m.n_obs),
        ('criterion', lambda m: m.criterion),
    ):
        if key(reduced) != key(full):
            raise IncomparableModelsError(
                f"Models differ in {reason} ({key(reduced)!r} vs {key(full)!r})",
                reason=reason,
                labels=labels,
            )

    fixed_differs = reduced.spec.fixed_structure != full.spec.fixed_structure
    if fixed_differs and reduced.criterion is not Criterion.FULL:
        raise IncomparableModelsError(
            "Models with different fixed effects must be compared by full "
            "likelihood (criterion FULL); refit both with "
            "spec.with_criterion('ML')",
            reason='criterion',
            labels=labels,
        )
    if not fixed_differs and reduced.result.info['coding'] != full.result.info['coding']:
        raise IncomparableModelsError(
            "Models differ in factor coding",
            reason='coding',
            labels=labels,
        )
    if not _is_nested(reduced, full):
        raise IncomparableModelsError(
            f"{reduced.spec.formula!r} is not nested in {full.spec.formula!r}",
            reason='nesting',
            labels=labels,
        )

    df = full.effective_parameter_count - reduced.effective_parameter_count
    if df <= 0:
        raise IncomparableModelsError(
            f"Full model must have more parameters than the reduced model "
            f"(got {full.effective_parameter_count} vs "
            f"{reduced.effective_parameter_count})",
            reason='nesting',
            labels=labels,
        )

    statistic = max(2.0 * (full.log_likelihood - reduced.log_likelihood), 0.0)
    p_value = float(stats.chi2.sf(statistic, df))
    on_boundary = reduced.spec.random_structure != full.spec.random_structure

    warn_list = []
    if on_boundary:
        warn_list.append(
            "Variance components tested on the boundary of the parameter "
            "space; the chi-squared p-value is conservative"
        )

    result = Result(
        params=LikelihoodRatioParams(
            statistic=statistic,
            df=df,
            p_value=p_value,
            log_likelihood_reduced=reduced.log_likelihood,
            log_likelihood_full=full.log_likelihood,
            n_params_reduced=reduced.effective_parameter_count,
            n_params_full=full.effective_parameter_count,
            criterion=full.criterion.value,
            on_boundary=on_boundary,
        ),
        info={'reduced': reduced.spec.formula, 'full': full.spec.formula},
        timing=None,
        backend_name='cpu_lrt',
        warnings=tuple(warn_list),
    )
    return LikelihoodRatioTest(_result=result)


def cell_means(
    fitted_model: FittedModel,
    table: ObservationTable,
    *,
    conf_level: float = 0.95,
    df_method: str = 'satterthwaite',
) -> CellMeans:
    """Means and confidence intervals for every observed factor combination.

    The model is re-fitted with a cell-means parameterization: one
    coefficient per observed combination of the fixed factors, no
    intercept, the same random structure and estimation criterion. Each
    coefficient is then the mean of its cell. The refit is saturated in
    the fixed factors whatever the fitted model's fixed terms: for an
    additive model (A + B) the estimates are the model-based cell means
    of A:B, not predictions from the additive coefficients. The refit
    uses the fitted model's optimizer settings and factor coding.

    Args:
        fitted_model: A fitted model whose fixed terms are all categorical.
        table: The table the model was fitted to.
        conf_level: Confidence level of the intervals.
        df_method: 'satterthwaite', 'residual' or 'asymptotic'.

    Returns:
        CellMeans keyed by level tuples in the order of the model's
        fixed factors.

    Raises:
        ValidationError: No fixed factors, a continuous covariate among
            the fixed terms, or bad options.
    """
    check_in_open_interval(conf_level, 0.0, 1.0, 'conf_level')
    check_option(df_method, DF_METHODS, 'df_method')

    spec = fitted_model.spec
    factors = spec.fixed_fields
    if not factors:
        raise ValidationError(
            "Cell means need at least one categorical fixed effect; "
            f"{spec.formula!r} has none"
        )
    continuous = [f for f in factors if not table.is_factor(f)]
    if continuous:
        raise ValidationError(
            f"Cell means are defined for categorical fixed effects only; "
            f"{continuous} are continuous"
        )

    timer = Timer()
    timer.start()

    with timer.section('setup'):
        complete, _ = table.complete_rows(spec.fields)
        labels = [complete.labels(f) for f in factors]
        row_cells = list(zip(*labels))
        cells = sorted(set(row_cells))
        width = len(str(len(cells)))
        codes = {cell: f"c{i:0{width}d}" for i, cell in enumerate(cells)}

        cell_field = '_cell'
        while cell_field in complete:
            cell_field = '_' + cell_field
        cell_table = complete.with_column(cell_field, [codes[c] for c in row_cells])

    with timer.section('refit'):
        info = fitted_model.result.info
        refit = fit(
            spec.cell_means_spec(cell_field),
            cell_table,
            tol=info['tol'],
            max_iter=info['max_iter'],
            singular_tol=info['singular_tol'],
            coding=info['coding'],
            on_singular='warn' if fitted_model.singular else 'raise',
        )

    with timer.section('intervals'):
        names = refit.coefficient_names
        p = len(names)
        se = refit.se
        counts = {}
        for c in row_cells:
            counts[c] = counts.get(c, 0) + 1
        out = []
        for cell in cells:
            k = names.index(f"{cell_field}{codes[cell]}")
            df = refit.contrast_df(np.eye(p)[k], df_method)
            crit = float(stats.t.ppf(1.0 - (1.0 - conf_level) / 2.0, df))
            est = float(refit.coefficients[k])
            out.append(CellMean(
                cell=tuple(cell),
                estimate=est,
                se=float(se[k]),
                df=float(df),
                lower=est - crit * float(se[k]),
                upper=est + crit * float(se[k]),
                n_obs=counts[cell],
            ))

    timer.stop()

    result = Result(
        params=CellMeansParams(
            factors=tuple(factors),
            cells=tuple(out),
            conf_level=conf_level,
            df_method=df_method,
            criterion=refit.criterion.value,
        ),
        info={
            'refit_formula': refit.spec.formula,
            'n_cells': len(out),
            'coding': refit.result.info['coding'],
            'tol': refit.result.info['tol'],
            'max_iter': refit.result.info['max_iter'],
        },
        timing=timer.result(),
        backend_name='cpu_cell_means',
        warnings=refit.warnings,
    )
    return CellMeans(_result=result)


# =====================================================================
# Helpers
# =====================================================================

def _f_pvalue(f_value: float, num_df: int, den_df: float) -> float:
    """Upper-tail p-value of F; chi-squared on q·F when den_df is infinite."""
    if np.isinf(den_df):
        return float(stats.chi2.sf(f_value * num_df, num_df))
    return float(stats.f.sf(f_value, num_df, den_df))


def _is_nested(reduced: FittedModel, full: FittedModel) -> bool:
    """Whether every fixed and random component of `reduced` is in `full`."""
    r_icpt, r_terms = reduced.spec.fixed_structure
    f_icpt, f_terms = full.spec.fixed_structure
    if r_icpt and not f_icpt:
        return False
    if not r_terms <= f_terms:
        return False
    full_random = {g: slopes for g, slopes in full.spec.random_structure}
    for group, slopes in reduced.spec.random_structure:
        if group not in full_random or not slopes <= full_random[group]:
            return False
    return True
