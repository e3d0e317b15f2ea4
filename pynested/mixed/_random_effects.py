"""
Random-effects design matrix Z and the Λ_θ parameterization.

This module handles:
1. Turning each RandomTerm of a ModelSpec into a block of Z
2. Constructing the relative covariance factor Λ_θ from θ
3. θ bounds and moment-based starting values for the optimizer

The θ parameterization follows Bates et al. (2015): θ holds the elements
of the lower-triangular Cholesky factor of the *relative* covariance
matrix (the covariance divided by σ²), block by block.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray

from pynested.core.exceptions import SingularFitError
from pynested.variance._nested import moment_theta


@dataclass(frozen=True)
class RandomEffectBlock:
    """One grouping's random effects.

    Attributes:
        group_name: Grouping field (e.g. 'individual').
        group_ids: 0-indexed consecutive group index per observation (n,).
        levels: Level label per group index.
        terms: Term names ('1' for the intercept, then slope fields).
        Z_block: (n, J*q) design block, term-major columns.
        n_groups: J.
        n_terms: q.
        theta_size: q*(q+1)/2.
    """
    group_name: str
    group_ids: NDArray
    levels: tuple[str, ...]
    terms: tuple[str, ...]
    Z_block: NDArray
    n_groups: int
    n_terms: int
    theta_size: int


def build_random_blocks(spec, table) -> list[RandomEffectBlock]:
    """Build one RandomEffectBlock per random term of `spec`.

    Raises:
        SingularFitError: A grouping with fewer than 2 levels, or with as
            many levels as observations (its variance is not separable
            from the residual).
    """
    n = table.n_obs
    blocks = []
    for term in spec.random_terms:
        labels = table.labels(term.group)
        levels, group_ids = np.unique(labels, return_inverse=True)
        J = len(levels)

        if J < 2:
            raise SingularFitError(
                f"Grouping '{term.group}' has {J} level; at least 2 are "
                f"needed to estimate its variance",
                component=term.group,
            )
        if J >= n:
            raise SingularFitError(
                f"Grouping '{term.group}' has {J} levels for {n} observations; "
                f"its variance is confounded with the residual",
                component=term.group,
            )

        slope_data = {
            s: table.column(s).astype(np.float64) for s in term.slopes
        }
        Z_block = _build_z_block(group_ids, J, term.terms, slope_data)
        q = len(term.terms)
        blocks.append(RandomEffectBlock(
            group_name=term.group,
            group_ids=group_ids,
            levels=tuple(str(v) for v in levels),
            terms=term.terms,
            Z_block=Z_block,
            n_groups=J,
            n_terms=q,
            theta_size=q * (q + 1) // 2,
        ))
    return blocks


def _build_z_block(
    group_ids: NDArray,
    n_groups: int,
    terms: tuple[str, ...],
    slope_data: dict[str, NDArray],
) -> NDArray:
    """Z block for one grouping.

    Columns are term-major: [term0_group0, term0_group1, ...,
    term1_group0, ...]. The intercept column of group j is the indicator
    of membership; a slope column is the indicator times the covariate.
    """
    n = len(group_ids)
    Z = np.zeros((n, n_groups * len(terms)), dtype=np.float64)
    rows = np.arange(n)
    for t_idx, term in enumerate(terms):
        cols = t_idx * n_groups + group_ids
        Z[rows, cols] = 1.0 if term == '1' else slope_data[term]
    return Z


def build_z_matrix(blocks: list[RandomEffectBlock], n: int) -> NDArray:
    """Concatenate Z blocks; an (n, 0) matrix when there are none."""
    if not blocks:
        return np.empty((n, 0), dtype=np.float64)
    return np.hstack([b.Z_block for b in blocks])


def theta_to_factor(theta_k: NDArray, q: int) -> NDArray:
    """Unpack q*(q+1)/2 θ elements (row-major lower triangle) into T_k."""
    T = np.zeros((q, q), dtype=np.float64)
    T[np.tril_indices(q)] = theta_k
    return T


def build_lambda(theta: NDArray, blocks: list[RandomEffectBlock]) -> NDArray:
    """Block-diagonal Λ_θ with blocks T_k ⊗ I_Jk.

    The Kronecker order matches the term-major layout of Z.
    """
    total_q = sum(b.n_groups * b.n_terms for b in blocks)
    Lambda = np.zeros((total_q, total_q), dtype=np.float64)

    theta_offset = 0
    col_offset = 0
    for block in blocks:
        size = block.n_groups * block.n_terms
        T = theta_to_factor(
            theta[theta_offset:theta_offset + block.theta_size], block.n_terms
        )
        theta_offset += block.theta_size
        Lambda[col_offset:col_offset + size, col_offset:col_offset + size] = (
            np.kron(T, np.eye(block.n_groups))
        )
        col_offset += size

    return Lambda


def theta_diagonal_mask(blocks: list[RandomEffectBlock]) -> NDArray:
    """Boolean mask of θ elements on a Cholesky diagonal."""
    mask = []
    for block in blocks:
        for row in range(block.n_terms):
            for col in range(row + 1):
                mask.append(row == col)
    return np.array(mask, dtype=bool)


def theta_bounds(blocks: list[RandomEffectBlock]) -> list[tuple[float | None, None]]:
    """L-BFGS-B bounds: diagonal θ >= 0, off-diagonal unbounded."""
    return [(0.0, None) if d else (None, None) for d in theta_diagonal_mask(blocks)]


def theta_start(blocks: list[RandomEffectBlock], y: NDArray) -> NDArray:
    """Starting θ from moment estimates of each grouping's variance ratio.

    Intercept diagonals get the one-way ANOVA ratio σ_b/σ of the raw
    response by group; slope diagonals start at 1.0 and off-diagonals at
    0.0 (no initial correlation).
    """
    theta0 = []
    for block in blocks:
        ratio = moment_theta(y, block.group_ids)
        for row in range(block.n_terms):
            for col in range(row + 1):
                if row != col:
                    theta0.append(0.0)
                elif row == 0:
                    theta0.append(ratio)
                else:
                    theta0.append(1.0)
    return np.array(theta0, dtype=np.float64)


def theta_labels(blocks: list[RandomEffectBlock]) -> list[tuple[str, str]]:
    """(group, term) owning each diagonal θ element, in θ order."""
    labels = []
    for block in blocks:
        for row in range(block.n_terms):
            for col in range(row + 1):
                if row == col:
                    term = block.terms[row]
                    labels.append((block.group_name, '(Intercept)' if term == '1' else term))
    return labels
