"""
Profiled deviance for the linear mixed model.

The profiled deviance is the objective the outer optimizer minimizes over
θ; β and σ² are profiled out analytically by the PLS solve.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), Sections 2-3.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from pynested.mixed._random_effects import RandomEffectBlock, build_lambda
from pynested.mixed._pls import PLSResult, solve_pls


def deviance_from_pls(pls: PLSResult, n: int, p: int, reml: bool) -> float:
    """Profiled deviance (-2 log-likelihood) at a PLS solution.

    ML:   log|L|² + n [1 + log(2π pwrss/n)]
    REML: log|L|² + log|RX|² + (n-p) [1 + log(2π pwrss/(n-p))]
    """
    if reml:
        df = n - p
        return float(pls.log_det_L + pls.log_det_RX
                     + df * (1.0 + np.log(2.0 * np.pi * pls.pwrss / df)))
    return float(pls.log_det_L + n * (1.0 + np.log(2.0 * np.pi * pls.pwrss / n)))


def profiled_deviance(
    theta: NDArray,
    X: NDArray,
    Z: NDArray,
    y: NDArray,
    blocks: list[RandomEffectBlock],
    reml: bool = True,
) -> float:
    """Profiled REML (or ML) deviance for given θ."""
    n, p = X.shape
    pls = solve_pls(X, Z, y, build_lambda(theta, blocks), reml=reml)
    return deviance_from_pls(pls, n, p, reml)


def deviance_at_sigma(
    theta: NDArray,
    sigma: float,
    X: NDArray,
    Z: NDArray,
    y: NDArray,
    blocks: list[RandomEffectBlock],
    reml: bool,
) -> float:
    """Deviance as a function of (θ, σ), σ not profiled out.

    REML: log|L|² + log|RX|² + (n-p) log σ² + pwrss/σ²
    ML:   log|L|² + n log σ² + pwrss/σ²

    (constants in 2π dropped; only curvature is used.)
    """
    n, p = X.shape
    pls = solve_pls(X, Z, y, build_lambda(theta, blocks), reml=reml)
    sig_sq = sigma ** 2
    if reml:
        return (pls.log_det_L + pls.log_det_RX
                + (n - p) * np.log(sig_sq) + pls.pwrss / sig_sq)
    return pls.log_det_L + n * np.log(sig_sq) + pls.pwrss / sig_sq
