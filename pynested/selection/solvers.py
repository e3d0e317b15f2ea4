"""
Solver entry points for model comparison and random-structure selection.

Public API:
    compare()                 - rank fitted models by an information criterion
    select_random_structure() - fit REML candidates, select, re-fit by ML
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import numpy as np

from pynested.core.result import Result
from pynested.core.table import ObservationTable
from pynested.core.compute.timing import Timer
from pynested.core.compute.tolerances import CRITERION_TIE_TOL
from pynested.core.exceptions import IncomparableModelsError, ValidationError
from pynested.mixed.solution import FittedModel
from pynested.mixed.solvers import fit, fit_many
from pynested.mixed.spec import Criterion, FixedTerm, ModelSpec, RandomTerm
from pynested.selection._common import ComparisonParams, ComparisonRow
from pynested.selection._criteria import Penalty, resolve_criterion
from pynested.selection.solution import ComparisonTable, SelectionResult


def compare(
    fitted_models: Iterable[FittedModel],
    criterion: str | Penalty = 'aic',
    *,
    tie_tol: float = CRITERION_TIE_TOL,
    labels: Sequence[str] | None = None,
) -> ComparisonTable:
    """Rank fitted models by an information criterion.

    IC = -2 logLik + penalty(k, n). Lower is better. Values within
    `tie_tol` of each other are ordered by fewer random groupings, then
    by input order.

    Args:
        fitted_models: Models fitted to the same data with the same fixed
            effects and estimation criterion.
        criterion: 'aic', 'bic', 'aicc' or a callable penalty(k, n).
        tie_tol: Tolerance under which criterion values are tied.
        labels: Display labels; default is each model's random structure.

    Returns:
        ComparisonTable, best first.

    Raises:
        IncomparableModelsError: Empty input, or models differing in
            response, fixed effects, coding, criterion or sample.
        ValidationError: Bad criterion, tie_tol or labels.
    """
    timer = Timer()
    timer.start()

    models = list(fitted_models)
    if not models:
        raise IncomparableModelsError("No models to compare", reason='empty')
    if tie_tol < 0:
        raise ValidationError(f"tie_tol must be >= 0, got {tie_tol}")
    name, penalty = resolve_criterion(criterion)
    labels = _labels(models, labels)

    with timer.section('checks'):
        _check_comparable(models, labels)

    with timer.section('ranking'):
        values = np.array([
            -2.0 * m.log_likelihood + penalty(m.effective_parameter_count, m.n_obs)
            for m in models
        ], dtype=np.float64)
        if not np.all(np.isfinite(values)):
            bad = [labels[i] for i in np.flatnonzero(~np.isfinite(values))]
            raise ValidationError(f"Non-finite {name} for model(s) {bad}")

        order = _rank_order(values, [len(m.random_groupings) for m in models], tie_tol)
        delta = values - values.min()
        raw = np.exp(-0.5 * delta)
        weights = raw / raw.sum()

        rows = tuple(
            ComparisonRow(
                model=models[i],
                label=labels[i],
                criterion_value=float(values[i]),
                delta=float(delta[i]),
                rank=rank,
                weight=float(weights[i]),
                n_random_groupings=len(models[i].random_groupings),
            )
            for rank, i in enumerate(order, start=1)
        )

    timer.stop()

    warn_list = []
    if len(rows) > 1 and abs(rows[1].criterion_value - rows[0].criterion_value) <= tie_tol:
        warn_list.append(
            f"Top candidates tied within {tie_tol}; the one with fewer random "
            f"groupings was ranked first"
        )

    first = models[0]
    result = Result(
        params=ComparisonParams(
            criterion=name,
            rows=rows,
            tie_tol=tie_tol,
            n_obs=first.n_obs,
            estimation=first.criterion.value,
        ),
        info={'criterion': name, 'n_models': len(rows)},
        timing=timer.result(),
        backend_name='cpu_compare',
        warnings=tuple(warn_list),
    )
    return ComparisonTable(_result=result)


def select_random_structure(
    table: ObservationTable,
    response: str,
    fixed_terms: Iterable[FixedTerm | str],
    candidates: Iterable[Iterable[RandomTerm | str]],
    criterion: str | Penalty = 'aic',
    *,
    intercept: bool = True,
    n_jobs: int = 1,
    tie_tol: float = CRITERION_TIE_TOL,
    **fit_kwargs,
) -> SelectionResult:
    """Choose among random-effects structures and re-fit the winner by ML.

    Every candidate shares `fixed_terms` and is fitted under RESTRICTED
    likelihood; candidates that fail with ConvergenceError or
    SingularFitError are dropped and reported. The survivors are compared
    and the best structure is re-fitted under FULL likelihood, ready for
    fixed-effect inference.

    Args:
        table: Observations.
        response: Response field.
        fixed_terms: Fixed terms shared by all candidates.
        candidates: One sequence of random terms per candidate; an empty
            sequence is the model without random effects.
        criterion: 'aic', 'bic', 'aicc' or a callable penalty(k, n).
        intercept: Whether the fixed part has an intercept.
        n_jobs: Worker processes for the candidate fits.
        tie_tol: Tie tolerance for the comparison.
        **fit_kwargs: Passed to fit().

    Raises:
        ValidationError: No candidates, or invalid specs or data.
        ConvergenceError, SingularFitError: Every candidate failed (the
            first failure is raised), or the FULL re-fit failed.
    """
    fixed_terms = tuple(fixed_terms)
    specs = [
        ModelSpec(
            response=response,
            fixed_terms=fixed_terms,
            random_terms=tuple(c),
            criterion=Criterion.RESTRICTED,
            intercept=intercept,
        )
        for c in candidates
    ]
    if not specs:
        raise ValidationError("No candidate random structures given")

    outcomes = fit_many(specs, table, n_jobs=n_jobs, **fit_kwargs)
    fitted = [o for o in outcomes if o.ok]
    failures = tuple(o for o in outcomes if not o.ok)
    if not fitted:
        raise failures[0].error

    comparison = compare(
        [o.model for o in fitted],
        criterion,
        tie_tol=tie_tol,
        labels=[o.spec.random_label for o in fitted],
    )
    winner = comparison.best.model.spec.with_criterion(Criterion.FULL)
    refit = fit(winner, table, **fit_kwargs)

    return SelectionResult(table=comparison, failures=failures, refit=refit)


# =====================================================================
# Helpers
# =====================================================================

def _labels(models: list[FittedModel], labels: Sequence[str] | None) -> list[str]:
    if labels is None:
        labels = [m.spec.random_label for m in models]
        if len(set(labels)) != len(labels):
            labels = [f"{i + 1}: {lab}" for i, lab in enumerate(labels)]
        return labels
    labels = [str(lab) for lab in labels]
    if len(labels) != len(models):
        raise ValidationError(
            f"Got {len(labels)} label(s) for {len(models)} model(s)"
        )
    if len(set(labels)) != len(labels):
        raise ValidationError(f"Labels must be unique, got {labels}")
    return labels


def _check_comparable(models: list[FittedModel], labels: list[str]) -> None:
    """Raise IncomparableModelsError unless all likelihoods share a scale.

    Fixed-effect differences are never compared by information criteria
    here: use likelihood_ratio_test() on FULL fits instead.
    """
    ref = models[0]
    checks = (
        ('response', lambda m: m.spec.response),
        ('criterion', lambda m: m.criterion),
        ('fixed_terms', lambda m: m.spec.fixed_structure),
        ('coding', lambda m: m.result.info['coding']),
        ('n_obs', lambda m: m.n_obs),
    )
    for reason, key in checks:
        for model, label in zip(models[1:], labels[1:]):
            if key(model) != key(ref):
                raise IncomparableModelsError(
                    f"Models {labels[0]!r} and {label!r} differ in {reason} "
                    f"({key(ref)!r} vs {key(model)!r}); their likelihoods "
                    f"are not comparable",
                    reason=reason,
                    labels=(labels[0], label),
                )


def _rank_order(values, n_random: list[int], tie_tol: float) -> list[int]:
    """Indices ordered by value; ties broken by fewer random groupings.

    A tie cluster is every candidate within `tie_tol` of the cluster's
    smallest value; remaining ties keep input order.
    """
    by_value = sorted(range(len(values)), key=lambda i: values[i])
    order: list[int] = []
    start = 0
    while start < len(by_value):
        anchor = values[by_value[start]]
        end = start
        while end < len(by_value) and values[by_value[end]] - anchor <= tie_tol:
            end += 1
        cluster = sorted(by_value[start:end], key=lambda i: (n_random[i], i))
        order.extend(cluster)
        start = end
    return order
