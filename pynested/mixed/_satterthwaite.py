"""
Satterthwaite denominator degrees of freedom for fixed-effect contrasts.

Follows lmerTest (Kuznetsova et al., 2017). For a contrast l'β:

    df = 2 × Var(l'β̂)² / [g' × A × g]

where:
    g_j = ∂Var(l'β̂)/∂φ_j   (gradient w.r.t. the variance parameters)
    A = Var(φ̂) = 2 H⁻¹      (H: Hessian of the deviance in φ)
    φ = (θ, σ)              (ALL variance parameters, σ included)

σ must be part of φ even though it is profiled out during fitting:
differentiating only w.r.t. θ misses its contribution to Var(β̂) and
inflates df for effects that barely depend on the random structure.

Multi-df contrasts L (q rows) are decomposed along the eigenvectors of
L Var(β̂) L'; each direction gets its own ν_i, combined into one
denominator df for the F statistic.

References:
    Kuznetsova, A., Brockhoff, P. B., & Christensen, R. H. B. (2017).
    lmerTest Package: Tests in Linear Mixed Effects Models.
    Journal of Statistical Software, 82(13), 1-26.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray
import scipy.linalg as sla

from pynested.core.compute.tolerances import FINITE_DIFF_EPS
from pynested.mixed._random_effects import (
    RandomEffectBlock, build_lambda, theta_diagonal_mask,
)
from pynested.mixed._pls import solve_pls
from pynested.mixed._deviance import deviance_at_sigma


@dataclass(frozen=True)
class VarianceParameterDerivatives:
    """Derivatives needed for Satterthwaite df at the fitted θ̂, σ̂.

    Attributes:
        C: Unscaled covariance (X'V*⁻¹X)⁻¹, so Var(β̂) = σ²C (p, p).
        dC: ∂C/∂θ_j stacked along axis 0 (n_theta, p, p).
        sigma: Residual standard deviation σ̂.
        A: Asymptotic covariance of φ̂ = (θ̂, σ̂) (n_theta+1, n_theta+1).
        residual_df: n - p, used when there are no random effects.
    """
    C: NDArray
    dC: NDArray
    sigma: float
    A: NDArray
    residual_df: float

    @property
    def has_variance_parameters(self) -> bool:
        return self.dC.shape[0] > 0

    def gradient(self, l: NDArray) -> NDArray:
        """∇_φ Var(l'β̂) = [σ² l'(∂C/∂θ_j)l ..., 2σ l'Cl]."""
        sigma_sq = self.sigma ** 2
        g_theta = sigma_sq * np.einsum('i,jik,k->j', l, self.dC, l)
        g_sigma = 2.0 * self.sigma * float(l @ self.C @ l)
        return np.append(g_theta, g_sigma)

    def contrast_df(self, l: NDArray) -> float:
        """Satterthwaite df of the single contrast l'β̂."""
        if not self.has_variance_parameters:
            return self.residual_df
        var_l = self.sigma ** 2 * float(l @ self.C @ l)
        g = self.gradient(l)
        denom = float(g @ self.A @ g)
        if denom <= 0 or var_l <= 0:
            return self.residual_df
        return max(2.0 * var_l ** 2 / denom, 1.0)

    def multi_df(self, L: NDArray, tol: float = 1e-8) -> float:
        """Denominator df for the F test of L β = 0 (rows of L: q contrasts).

        L Var(β̂) L' = P D P'; each row of P'L is an independent
        contrast with its own ν_i. With E = Σ ν_i/(ν_i - 2) the F
        denominator df is 2E/(E - q); any ν_i <= 2 gives 2.
        """
        L = np.atleast_2d(L)
        if L.shape[0] == 1:
            return self.contrast_df(L[0])
        if not self.has_variance_parameters:
            return self.residual_df

        VL = self.sigma ** 2 * (L @ self.C @ L.T)
        _, P = np.linalg.eigh(VL)
        directions = P.T @ L
        nu = np.array([self.contrast_df(d) for d in directions])

        if np.all(np.abs(nu - nu.mean()) < tol):
            return float(nu.mean())
        if np.any(nu <= 2.0):
            return 2.0
        E = float(np.sum(nu / (nu - 2.0)))
        q = len(nu)
        return 2.0 * E / (E - q)


def variance_parameter_derivatives(
    theta: NDArray,
    X: NDArray,
    Z: NDArray,
    y: NDArray,
    blocks: list[RandomEffectBlock],
    reml: bool = True,
    eps: float = FINITE_DIFF_EPS,
) -> VarianceParameterDerivatives:
    """Numerically differentiate C(θ) and the deviance at the fitted θ̂.

    Finite differences are central. A θ element on its lower bound
    cannot be stepped below it, so the stencil for that coordinate is
    centered one step inside the feasible region instead.

    Args:
        theta: Converged θ̂.
        X, Z, y: Model matrices.
        blocks: Random effect blocks.
        reml: REML or ML deviance.
        eps: Relative step size.
    """
    n, p = X.shape
    n_theta = len(theta)

    pls = solve_pls(X, Z, y, build_lambda(theta, blocks), reml=reml)
    sigma = float(np.sqrt(pls.sigma_sq))
    C = _unscaled_vcov(theta, X, Z, y, blocks)

    if n_theta == 0:
        return VarianceParameterDerivatives(
            C=C, dC=np.empty((0, p, p)), sigma=sigma,
            A=np.zeros((1, 1)), residual_df=float(n - p),
        )

    h = eps * np.maximum(np.abs(theta), 1.0)
    center = theta.copy()
    on_bound = theta_diagonal_mask(blocks) & (theta - h < 0.0)
    center[on_bound] = h[on_bound]

    # ∂C/∂θ_j by central differences
    dC = np.zeros((n_theta, p, p), dtype=np.float64)
    for j in range(n_theta):
        tp = center.copy()
        tm = center.copy()
        tp[j] += h[j]
        tm[j] -= h[j]
        dC[j] = (_unscaled_vcov(tp, X, Z, y, blocks)
                 - _unscaled_vcov(tm, X, Z, y, blocks)) / (2.0 * h[j])

    # Hessian of the deviance in φ = (θ, σ)
    phi = np.append(center, sigma)
    steps = np.append(h, eps * max(abs(sigma), 1.0))

    def deviance(phi_local: NDArray) -> float:
        return deviance_at_sigma(
            phi_local[:-1], phi_local[-1], X, Z, y, blocks, reml
        )

    H = _central_hessian(deviance, phi, steps)
    try:
        A = 2.0 * np.linalg.inv(H)
    except np.linalg.LinAlgError:
        A = 2.0 * np.linalg.pinv(H)

    return VarianceParameterDerivatives(
        C=C, dC=dC, sigma=sigma, A=A, residual_df=float(n - p),
    )


def _unscaled_vcov(
    theta: NDArray,
    X: NDArray,
    Z: NDArray,
    y: NDArray,
    blocks: list[RandomEffectBlock],
) -> NDArray:
    """C(θ) = (X'V*⁻¹X)⁻¹ with V* = ZΛΛ'Z' + I.

    X'V*⁻¹X equals the Schur complement RX RX' of the PLS system, so no
    n × n matrix is formed.
    """
    pls = solve_pls(X, Z, y, build_lambda(theta, blocks))
    return sla.cho_solve((pls.RX, True), np.eye(X.shape[1]))


def _central_hessian(f, x: NDArray, h: NDArray) -> NDArray:
    """Central-difference Hessian of scalar f at x with per-coordinate steps."""
    k = len(x)
    H = np.zeros((k, k), dtype=np.float64)
    f0 = f(x)

    for j in range(k):
        e = np.zeros(k)
        e[j] = h[j]
        H[j, j] = (f(x + e) - 2.0 * f0 + f(x - e)) / h[j] ** 2

    for j in range(k):
        for m in range(j + 1, k):
            ej = np.zeros(k)
            em = np.zeros(k)
            ej[j] = h[j]
            em[m] = h[m]
            H[j, m] = (f(x + ej + em) - f(x + ej - em)
                       - f(x - ej + em) + f(x - ej - em)) / (4.0 * h[j] * h[m])
            H[m, j] = H[j, m]

    return H
