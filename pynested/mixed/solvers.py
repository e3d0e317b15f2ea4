"""
Solver entry points for linear mixed models.

Public API:
    fit()      - fit one ModelSpec to an ObservationTable (REML or ML)
    fit_many() - fit independent candidate specs, optionally in parallel
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
import warnings

import numpy as np
from numpy.typing import ArrayLike
from scipy.optimize import minimize
import scipy.linalg as sla

from pynested.core.result import Result
from pynested.core.table import ObservationTable
from pynested.core.compute.timing import Timer
from pynested.core.compute.tolerances import GRADIENT_TOL, SINGULAR_THETA_TOL
from pynested.core.exceptions import (
    ConvergenceError, NumericalError, SingularFitError, ValidationError,
)
from pynested.core.validation import check_option

from pynested.mixed._common import FitParams, VarCompSummary
from pynested.mixed._random_effects import (
    build_lambda, theta_bounds, theta_diagonal_mask, theta_labels,
    theta_start, theta_to_factor,
)
from pynested.mixed._pls import solve_pls
from pynested.mixed._deviance import deviance_from_pls, profiled_deviance
from pynested.mixed.design import MixedDesign
from pynested.mixed.solution import FittedModel
from pynested.mixed.spec import Criterion, ModelSpec

ON_SINGULAR = ('raise', 'warn')


@dataclass(frozen=True)
class CandidateOutcome:
    """Outcome of one candidate fit in fit_many().

    Exactly one of `model` and `error` is set.
    """
    spec: ModelSpec
    model: FittedModel | None = None
    error: NumericalError | ConvergenceError | None = None

    @property
    def ok(self) -> bool:
        return self.model is not None


def fit(
    spec: ModelSpec,
    table: ObservationTable,
    *,
    tol: float = 1e-8,
    max_iter: int = 200,
    start: ArrayLike | None = None,
    singular_tol: float = SINGULAR_THETA_TOL,
    on_singular: str = 'raise',
    coding: str = 'treatment',
    na_action: str = 'omit',
) -> FittedModel:
    """Fit a linear mixed model.

    Estimates fixed effects β, variance components and conditional modes
    (BLUPs) of the random effects by minimizing the profiled REML/ML
    deviance over θ (Bates et al., 2015). With no random groupings the
    model is an ordinary regression solved in closed form.

    Args:
        spec: Model specification; spec.criterion selects REML
            (RESTRICTED) or ML (FULL).
        table: Observations.
        tol: Optimizer tolerance (L-BFGS-B ftol; gtol = 10 × tol).
        max_iter: Optimizer iteration budget.
        start: Starting θ. Default: moment estimates of each grouping's
            relative standard deviation.
        singular_tol: A diagonal θ below this is a collapsed variance
            component.
        on_singular: 'raise' (SingularFitError) or 'warn' (return the
            fit with a RuntimeWarning and singular=True).
        coding: Factor coding, 'treatment' or 'deviation'.
        na_action: 'omit' drops incomplete rows, 'fail' raises.

    Returns:
        FittedModel.

    Raises:
        ValidationError: Invalid spec, data or options.
        ConvergenceError: The optimizer did not converge.
        SingularFitError: Degenerate random-effects structure or
            rank-deficient fixed design.

    Examples:
        >>> spec = ModelSpec.from_formula(
        ...     "length ~ origin * treatment + (1 | population) + (1 | individual)")
        >>> model = fit(spec, table)
        >>> model.fixed_coefficients['originwild'].estimate
    """
    check_option(on_singular, ON_SINGULAR, 'on_singular')
    if tol <= 0:
        raise ValidationError(f"tol must be positive, got {tol}")
    if max_iter < 1:
        raise ValidationError(f"max_iter must be >= 1, got {max_iter}")
    if singular_tol < 0:
        raise ValidationError(f"singular_tol must be >= 0, got {singular_tol}")

    timer = Timer()
    timer.start()

    with timer.section('setup'):
        design = MixedDesign.build(spec, table, coding=coding, na_action=na_action)
        blocks = list(design.blocks)
        reml = spec.criterion is Criterion.RESTRICTED
        n_theta = sum(b.theta_size for b in blocks)

    warn_list = []
    if design.n_dropped:
        warn_list.append(
            f"{design.n_dropped} row(s) with missing values omitted"
        )

    optimizer_message = 'closed form'
    n_iter = 0
    if n_theta == 0:
        theta_hat = np.empty(0, dtype=np.float64)
    else:
        with timer.section('optimization'):
            theta0 = _starting_theta(start, blocks, design)
            theta_hat, n_iter, optimizer_message = _optimize_theta(
                theta0, design, blocks, reml, tol, max_iter,
            )

    with timer.section('final_solve'):
        Lambda_hat = build_lambda(theta_hat, blocks)
        pls = solve_pls(design.X, design.Z, design.y, Lambda_hat, reml=reml)
        deviance = deviance_from_pls(pls, design.n, design.p, reml)

    # Variance components on the boundary
    singular = False
    diag = theta_diagonal_mask(blocks)
    for (group, term), value in zip(theta_labels(blocks), theta_hat[diag]):
        if value < singular_tol:
            singular = True
            message = (
                f"Variance component '{term}' of grouping '{group}' collapsed "
                f"to the boundary (relative sd {value:.3g} < {singular_tol}); "
                f"simplify the random-effects structure"
            )
            if on_singular == 'raise':
                raise SingularFitError(message, component=group, value=float(value))
            warnings.warn(message, RuntimeWarning, stacklevel=2)
            warn_list.append(message)

    with timer.section('variance_components'):
        var_comps = _extract_var_components(theta_hat, pls.sigma_sq, blocks)
        random_effs = _extract_blups(pls.b, blocks)
        if n_theta == 0:
            # Ordinary regression: standard errors use RSS/(n - p) under
            # either criterion; the ML σ² enters the likelihood only
            scale = float(pls.residuals @ pls.residuals) / (design.n - design.p)
        else:
            scale = pls.sigma_sq
        vcov = scale * sla.cho_solve((pls.RX, True), np.eye(design.p))

    ll = -0.5 * deviance
    n_params = design.p + n_theta + 1
    aic = -2.0 * ll + 2.0 * n_params
    bic = -2.0 * ll + np.log(design.n) * n_params

    timer.stop()

    fixed = design.fixed
    params = FitParams(
        spec=spec,
        coefficients=pls.beta,
        coefficient_names=fixed.column_names,
        coefficient_terms=fixed.column_term(),
        vcov=vcov,
        var_components=tuple(var_comps),
        residual_variance=float(pls.sigma_sq),
        theta=theta_hat,
        log_likelihood=float(ll),
        n_params=n_params,
        aic=float(aic),
        bic=float(bic),
        n_obs=design.n,
        n_groups={b.group_name: b.n_groups for b in blocks},
        converged=True,
        n_iter=n_iter,
        singular=singular,
        random_effects=random_effs,
        fitted_values=pls.fitted,
        residuals=pls.residuals,
        design=design,
    )

    result = Result(
        params=params,
        info={
            'method': spec.criterion.value,
            'optimizer': 'L-BFGS-B' if n_theta else 'closed form',
            'optimizer_message': optimizer_message,
            'converged': True,
            'n_iter': n_iter,
            'deviance': deviance,
            'coding': coding,
            'n_dropped': design.n_dropped,
            'tol': tol,
            'max_iter': max_iter,
            'singular_tol': singular_tol,
        },
        timing=timer.result(),
        backend_name='cpu_lmm',
        warnings=tuple(warn_list),
    )

    return FittedModel(_result=result)


def fit_many(
    specs: Iterable[ModelSpec],
    table: ObservationTable,
    *,
    n_jobs: int = 1,
    **fit_kwargs,
) -> list[CandidateOutcome]:
    """Fit independent candidate specs, in input order.

    Convergence and singularity failures are captured per candidate in
    CandidateOutcome.error; validation errors are fatal and propagate.

    Args:
        specs: Candidate specifications.
        table: Observations shared by every candidate.
        n_jobs: Worker processes (joblib, loky backend). 1 fits
            sequentially; -1 uses every core.
        **fit_kwargs: Passed to fit().
    """
    specs = list(specs)
    if n_jobs == 0:
        raise ValidationError("n_jobs must be non-zero")

    if n_jobs == 1 or len(specs) < 2:
        return [_fit_candidate(s, table, fit_kwargs) for s in specs]

    from joblib import Parallel, delayed

    return Parallel(n_jobs=n_jobs, backend='loky', verbose=0)(
        delayed(_fit_candidate)(s, table, fit_kwargs) for s in specs
    )


# =====================================================================
# Helpers
# =====================================================================

def _fit_candidate(spec: ModelSpec, table: ObservationTable, fit_kwargs: dict) -> CandidateOutcome:
    try:
        model = fit(spec, table, **fit_kwargs)
    except (ConvergenceError, NumericalError) as e:
        return CandidateOutcome(spec=spec, error=e)
    return CandidateOutcome(spec=spec, model=model)


def _starting_theta(start, blocks, design: MixedDesign) -> np.ndarray:
    """Validate a caller-supplied θ or derive moment-based starting values."""
    n_theta = sum(b.theta_size for b in blocks)
    if start is None:
        return theta_start(blocks, design.y)

    theta0 = np.asarray(start, dtype=np.float64).ravel()
    if theta0.shape[0] != n_theta:
        raise ValidationError(
            f"start has {theta0.shape[0]} element(s), expected {n_theta} "
            f"(one per θ parameter)"
        )
    if not np.all(np.isfinite(theta0)):
        raise ValidationError("start contains non-finite values")
    if np.any(theta0[theta_diagonal_mask(blocks)] < 0):
        raise ValidationError("start: diagonal θ elements must be >= 0")
    return theta0


def _optimize_theta(theta0, design: MixedDesign, blocks, reml: bool, tol: float, max_iter: int):
    """Minimize the profiled deviance over θ with L-BFGS-B.

    Models with random slopes also start from smaller slope scales (the
    profiled deviance can have local minima when q > 1); the best
    converged run wins.

    Returns:
        (θ̂, iterations, optimizer message)

    Raises:
        ConvergenceError: No run converged.
    """
    args = (design.X, design.Z, design.y, blocks, reml)
    bounds = theta_bounds(blocks)

    starts = [theta0]
    if any(b.n_terms > 1 for b in blocks):
        for scale in (0.2, 0.5):
            alt = theta0.copy()
            idx = 0
            for block in blocks:
                for row in range(block.n_terms):
                    for col in range(row + 1):
                        if row == col and row > 0:
                            alt[idx] = scale
                        idx += 1
            starts.append(alt)

    best = None
    last = None
    last_change = None
    for theta_init in starts:
        path = [profiled_deviance(theta_init, *args)]

        def record(theta_k):
            path.append(profiled_deviance(theta_k, *args))

        res = minimize(
            profiled_deviance,
            theta_init,
            args=args,
            method='L-BFGS-B',
            bounds=bounds,
            callback=record,
            options={'maxiter': max_iter, 'ftol': tol, 'gtol': tol * 10},
        )
        last = res
        last_change = abs(path[-1] - path[-2]) if len(path) > 1 else None
        if _accept(res, args, bounds, max_iter) and (best is None or res.fun < best.fun):
            best = res

    if best is None:
        exhausted = last.nit >= max_iter
        reason = 'iteration budget exhausted' if exhausted else str(last.message)
        raise ConvergenceError(
            f"Optimizer did not converge after {last.nit} iterations: {reason}",
            iterations=int(last.nit),
            final_change=last_change,
            reason=reason,
            threshold=tol,
        )

    return best.x, int(best.nit), str(best.message)


def _accept(res, args, bounds, max_iter: int) -> bool:
    """Whether an L-BFGS-B run ended at a usable optimum.

    L-BFGS-B reports line-search failures when the deviance is flat to
    machine precision; such a stop is accepted if the projected gradient
    is within GRADIENT_TOL.
    """
    if res.success:
        return True
    if res.nit >= max_iter or not np.all(np.isfinite(res.x)):
        return False
    return _projected_gradient_norm(res.x, args, bounds) < GRADIENT_TOL


def _projected_gradient_norm(theta, args, bounds, h: float = 1e-6) -> float:
    """Max-norm of the bound-projected central-difference gradient."""
    g = np.zeros_like(theta)
    for j in range(len(theta)):
        tp = theta.copy()
        tm = theta.copy()
        tp[j] += h
        lower = bounds[j][0]
        if lower is not None and tm[j] - h < lower:
            g[j] = (profiled_deviance(tp, *args) - profiled_deviance(theta, *args)) / h
            # At the bound, only descent into the interior counts
            if theta[j] - lower < h and g[j] > 0:
                g[j] = 0.0
        else:
            tm[j] -= h
            g[j] = (profiled_deviance(tp, *args) - profiled_deviance(tm, *args)) / (2 * h)
    return float(np.max(np.abs(g)))


def _extract_var_components(theta, sigma_sq: float, blocks) -> list[VarCompSummary]:
    """Variance components σ² T_k T_k' per grouping, with correlations.

    The correlation of a slope is reported against the grouping's
    intercept.
    """
    var_comps = []
    offset = 0
    for block in blocks:
        T = theta_to_factor(theta[offset:offset + block.theta_size], block.n_terms)
        offset += block.theta_size
        cov = sigma_sq * (T @ T.T)

        for i, term in enumerate(block.terms):
            var_i = cov[i, i]
            sd_i = np.sqrt(max(var_i, 0.0))
            corr = None
            if i > 0 and cov[0, 0] > 0 and var_i > 0:
                corr = float(np.clip(cov[i, 0] / (np.sqrt(cov[0, 0]) * sd_i), -1.0, 1.0))
            var_comps.append(VarCompSummary(
                group=block.group_name,
                name='(Intercept)' if term == '1' else term,
                variance=float(var_i),
                std_dev=float(sd_i),
                corr=corr,
            ))
    return var_comps


def _extract_blups(b, blocks) -> dict[str, np.ndarray]:
    """Conditional modes per grouping as (J, q) arrays (rows: levels)."""
    result = {}
    offset = 0
    for block in blocks:
        size = block.n_groups * block.n_terms
        # Term-major layout: reshape to (q, J) then transpose
        result[block.group_name] = b[offset:offset + size].reshape(
            block.n_terms, block.n_groups
        ).T.copy()
        offset += size
    return result
