"""
Marginal hypothesis matrices for fixed-effect terms.

Each term gets a contrast matrix L whose rows span the hypothesis that
the term has no effect; the Wald statistic then only depends on the row
space of L.

Type II (marginal, respects marginality):
    The hypothesis for term T adjusts for every term that does not
    contain T. Its rows are the conjugate complement, in the Var(β̂)
    inner product, of the columns of the terms containing T, taken
    within the span of T and those terms (as car::Anova does for mixed
    models). A term contained in nothing is tested on its own columns.

Type III (each term last):
    L selects the columns of T. Only meaningful under deviation coding
    once interactions are present.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
import scipy.linalg as sla

from pynested.core.exceptions import ValidationError
from pynested.mixed._model_matrix import FixedModelMatrix
from pynested.mixed.spec import FixedTerm

SS_TYPES = (2, 3)


def testable_terms(fixed: FixedModelMatrix) -> list[str]:
    """Fixed terms with a hypothesis to test (the intercept is excluded)."""
    return [t for t in fixed.term_names if t != '(Intercept)']


def term_columns(fixed: FixedModelMatrix, term: str) -> NDArray:
    sl = fixed.term_slices[term]
    return np.arange(sl.start, sl.stop)


def type3_contrast(fixed: FixedModelMatrix, term: str) -> NDArray:
    """Rows of the identity selecting the columns of `term`."""
    return np.eye(fixed.p)[term_columns(fixed, term)]


def type2_contrast(fixed: FixedModelMatrix, term: str, vcov: NDArray) -> NDArray:
    """Type II hypothesis matrix for `term`.

    With A the identity rows of the containing terms and B those of
    `term` plus its containing terms, the hypothesis rows are l = B'c
    with l' V A' = 0, i.e. c in the null space of (B V A')'.
    """
    target = FixedTerm.parse(term)
    relatives = [
        t for t in testable_terms(fixed)
        if FixedTerm.parse(t).contains(target)
    ]
    if not relatives:
        return type3_contrast(fixed, term)

    I_p = np.eye(fixed.p)
    rel_cols = np.concatenate([term_columns(fixed, t) for t in relatives])
    all_cols = np.concatenate([term_columns(fixed, term), rel_cols])
    A = I_p[rel_cols]
    B = I_p[all_cols]

    N = sla.null_space((B @ vcov @ A.T).T)
    L = N.T @ B
    if L.shape[0] != fixed.term_df[term]:
        raise ValidationError(
            f"Type II hypothesis for {term!r} has {L.shape[0]} rows, "
            f"expected {fixed.term_df[term]}; the fixed design is degenerate"
        )
    return L


def hypothesis_matrices(
    fixed: FixedModelMatrix,
    vcov: NDArray,
    ss_type: int,
) -> dict[str, NDArray]:
    """Term -> hypothesis matrix under the requested convention.

    Raises:
        ValidationError: Unknown ss_type, or type III with interactions
            under treatment coding.
    """
    if ss_type not in SS_TYPES:
        raise ValidationError(f"ss_type must be one of {SS_TYPES}, got {ss_type!r}")

    terms = testable_terms(fixed)
    if ss_type == 3:
        has_interaction = any(':' in t for t in terms)
        if has_interaction and fixed.coding != 'deviation':
            raise ValidationError(
                "Type III tests with interactions require deviation coding; "
                "refit with coding='deviation' or use ss_type=2"
            )
        return {t: type3_contrast(fixed, t) for t in terms}
    return {t: type2_contrast(fixed, t, vcov) for t in terms}
