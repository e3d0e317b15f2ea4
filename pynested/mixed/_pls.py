"""
Penalized Least Squares (PLS) solver for linear mixed models.

For fixed θ (and hence fixed Λ_θ), this solves

    minimize ‖y - Xβ - ZΛu‖² + ‖u‖²

where u = Λ⁻¹b are the "spherical" random effects. σ² is profiled out
in closed form from the penalized RSS.

With no random effects (q = 0) the problem is ordinary least squares
and L is the empty factor, so every deviance formula below reduces to
the Gaussian regression log-likelihood.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), 1-48. Section 2.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray
import scipy.linalg as sla

from pynested.core.compute.tolerances import LOG_DET_FLOOR
from pynested.core.exceptions import SingularFitError


@dataclass(frozen=True)
class PLSResult:
    """Result from a penalized least squares solve.

    Attributes:
        beta: Fixed effects estimates (p,).
        u: Spherical random effects (q,).
        b: Conditional modes b = Λu (q,).
        sigma_sq: Profiled residual variance.
        pwrss: Penalized RSS = ‖y - Xβ - Zb‖² + ‖u‖².
        L: Lower Cholesky factor of (Λ'Z'ZΛ + I), shape (q, q).
        RX: Lower Cholesky factor of the Schur complement, shape (p, p).
        fitted: Xβ + Zb (n,).
        residuals: y - fitted (n,).
    """
    beta: NDArray
    u: NDArray
    b: NDArray
    sigma_sq: float
    pwrss: float
    L: NDArray
    RX: NDArray
    fitted: NDArray
    residuals: NDArray

    @property
    def log_det_L(self) -> float:
        """log|L|² (zero when there are no random effects)."""
        if self.L.shape[0] == 0:
            return 0.0
        return float(2.0 * np.sum(np.log(np.maximum(np.diag(self.L), LOG_DET_FLOOR))))

    @property
    def log_det_RX(self) -> float:
        """log|RX|²."""
        return float(2.0 * np.sum(np.log(np.maximum(np.abs(np.diag(self.RX)), LOG_DET_FLOOR))))


def solve_pls(
    X: NDArray,
    Z: NDArray,
    y: NDArray,
    Lambda: NDArray,
    reml: bool = True,
) -> PLSResult:
    """Solve the penalized least squares problem.

    The approach (following lme4):
    1. Form ZΛ and L = cholesky(Λ'Z'ZΛ + I)
    2. Eliminate u through L, leaving the Schur complement RX RX'
    3. Solve for β, then back-substitute for u

    Args:
        X: Fixed effects design matrix (n, p).
        Z: Random effects design matrix (n, q); q may be 0.
        y: Response vector (n,).
        Lambda: Relative covariance factor (q, q).
        reml: If True, σ² = pwrss/(n-p); else pwrss/n.

    Returns:
        PLSResult with all estimates.

    Raises:
        SingularFitError: If the Schur complement is not positive
            definite (X rank-deficient given the random effects).
    """
    n, p = X.shape
    q = Z.shape[1]

    ZLam = Z @ Lambda  # (n, q)
    L = np.linalg.cholesky(ZLam.T @ ZLam + np.eye(q)) if q else np.empty((0, 0))

    # Normal equations of the penalized system:
    #   [Λ'Z'ZΛ + I   Λ'Z'X ] [u]   [Λ'Z'y]
    #   [X'ZΛ         X'X   ] [β] = [X'y  ]
    ZLam_t_y = ZLam.T @ y
    ZLam_t_X = ZLam.T @ X

    if q:
        cu = sla.solve_triangular(L, ZLam_t_y, lower=True)
        CX = sla.solve_triangular(L, ZLam_t_X, lower=True)
    else:
        cu = np.empty(0)
        CX = np.empty((0, p))

    # RX RX' = X'X - CX'CX (Schur complement)
    RtR = X.T @ X - CX.T @ CX
    rhs_beta = X.T @ y - CX.T @ cu

    try:
        RX = np.linalg.cholesky(RtR)
    except np.linalg.LinAlgError as e:
        raise SingularFitError(
            "Fixed-effects cross-product is not positive definite given the "
            "random effects; the fixed design is rank-deficient",
            component='X',
        ) from e
    beta = sla.cho_solve((RX, True), rhs_beta)

    if q:
        cu_final = sla.solve_triangular(L, ZLam_t_y - ZLam_t_X @ beta, lower=True)
        u = sla.solve_triangular(L.T, cu_final, lower=False)
    else:
        u = np.empty(0)
    b = Lambda @ u

    fitted = X @ beta + Z @ b
    residuals = y - fitted
    pwrss = float(residuals @ residuals) + float(u @ u)
    sigma_sq = pwrss / (n - p) if reml else pwrss / n

    return PLSResult(
        beta=beta,
        u=u,
        b=b,
        sigma_sq=sigma_sq,
        pwrss=pwrss,
        L=L,
        RX=RX,
        fitted=fitted,
        residuals=residuals,
    )
