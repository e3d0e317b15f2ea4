"""
Fixed-effects model matrix construction.

Translates the fixed terms of a ModelSpec into a numeric design matrix.
Factors are contrast-coded (treatment or deviation), covariates enter as
their numeric column, and an interaction is the column-wise product of
its components' columns.

Key concepts:
    - Treatment coding: k-1 indicator columns (baseline = first level)
    - Deviation coding: k-1 columns summing to zero across levels; the
      coding under which type III main-effect tests are meaningful
    - Without an intercept, the first factor main effect gets one
      indicator per level (cell-means style), as R does
    - FixedModelMatrix: matrix plus the term -> column mapping that the
      hypothesis tester needs to build contrasts
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pynested.core.exceptions import ValidationError

CODINGS = ('treatment', 'deviation')


@dataclass(frozen=True)
class FixedModelMatrix:
    """Encoded fixed-effects design matrix with term metadata.

    Attributes:
        X: (n, p) float64 design matrix.
        column_names: R-style column labels, e.g. '(Intercept)',
            'originwild', 'originwild:treatmentheat'.
        term_names: Ordered term names ('(Intercept)' first if present).
        term_slices: term name -> column slice in X.
        term_df: term name -> number of columns.
        factor_levels: factor name -> sorted level labels.
        coding: 'treatment' or 'deviation'.
        has_intercept: Whether column 0 is the intercept.
    """
    X: NDArray[np.floating[Any]]
    column_names: tuple[str, ...]
    term_names: tuple[str, ...]
    term_slices: dict[str, slice]
    term_df: dict[str, int]
    factor_levels: dict[str, list[str]]
    coding: str
    has_intercept: bool

    @property
    def n(self) -> int:
        return self.X.shape[0]

    @property
    def p(self) -> int:
        return self.X.shape[1]

    def column_term(self) -> tuple[str, ...]:
        """Term name owning each column."""
        owner = [''] * self.p
        for term, sl in self.term_slices.items():
            for j in range(sl.start, sl.stop):
                owner[j] = term
        return tuple(owner)


def encode_treatment(labels: NDArray, levels: list[str]) -> tuple[NDArray, list[str]]:
    """Treatment (dummy) coding: drop the first level (baseline).

    Returns:
        (X_coded (n, k-1), column suffixes = non-baseline level names)
    """
    contrasts = levels[1:]
    X = np.column_stack(
        [(labels == level).astype(np.float64) for level in contrasts]
    ) if contrasts else np.empty((len(labels), 0), dtype=np.float64)
    return X, contrasts


def encode_deviation(labels: NDArray, levels: list[str]) -> tuple[NDArray, list[str]]:
    """Deviation (sum-to-zero) coding: the last level gets -1 in every column.

    Returns:
        (X_coded (n, k-1), column suffixes '1'..'k-1' as in R's contr.sum)
    """
    reference = levels[-1]
    X = np.zeros((len(labels), len(levels) - 1), dtype=np.float64)
    for j, level in enumerate(levels[:-1]):
        X[labels == level, j] = 1.0
        X[labels == reference, j] = -1.0
    return X, [str(j + 1) for j in range(len(levels) - 1)]


def encode_indicators(labels: NDArray, levels: list[str]) -> tuple[NDArray, list[str]]:
    """Full indicator coding: one column per level."""
    X = np.column_stack([(labels == level).astype(np.float64) for level in levels])
    return X, list(levels)


def interaction_columns(
    X_a: NDArray, names_a: list[str],
    X_b: NDArray, names_b: list[str],
) -> tuple[NDArray, list[str]]:
    """Element-wise product of every column pair of two blocks."""
    cols = []
    names = []
    for i in range(X_a.shape[1]):
        for j in range(X_b.shape[1]):
            cols.append(X_a[:, i] * X_b[:, j])
            names.append(f"{names_a[i]}:{names_b[j]}")
    if not cols:
        return np.empty((X_a.shape[0], 0), dtype=np.float64), []
    return np.column_stack(cols), names


def build_fixed_matrix(spec, table, coding: str = 'treatment') -> FixedModelMatrix:
    """Build the fixed-effects design matrix of `spec` over `table`.

    Args:
        spec: ModelSpec.
        table: ObservationTable with complete rows for spec.fields.
        coding: 'treatment' or 'deviation' for factor main effects.

    Raises:
        ValidationError: Unknown coding, a factor with a single level, or a
            non-finite covariate.
    """
    if coding not in CODINGS:
        raise ValidationError(f"coding must be one of {CODINGS}, got {coding!r}")

    n = table.n_obs
    columns: list[NDArray] = []
    column_names: list[str] = []
    term_names: list[str] = []
    term_slices: dict[str, slice] = {}
    term_df: dict[str, int] = {}
    factor_levels: dict[str, list[str]] = {}
    offset = 0

    def add(term: str, X_term: NDArray, names: list[str]) -> None:
        nonlocal offset
        columns.append(X_term)
        column_names.extend(names)
        term_names.append(term)
        term_slices[term] = slice(offset, offset + X_term.shape[1])
        term_df[term] = X_term.shape[1]
        offset += X_term.shape[1]

    if spec.intercept:
        add('(Intercept)', np.ones((n, 1), dtype=np.float64), ['(Intercept)'])

    # Per-field column blocks; interactions always use contrast-coded blocks
    blocks: dict[str, tuple[NDArray, list[str]]] = {}
    inter_blocks: dict[str, tuple[NDArray, list[str]]] = {}
    full_coded = None if spec.intercept else _first_factor(spec, table)

    for name in spec.fixed_fields:
        if table.is_factor(name):
            labels = table.labels(name)
            levels = table.levels(name)
            if len(levels) < 2 and name != full_coded:
                raise ValidationError(
                    f"Factor {name!r} has a single level {levels}; it cannot "
                    f"enter the model"
                )
            factor_levels[name] = levels
            encode = encode_treatment if coding == 'treatment' else encode_deviation
            X_f, suffixes = encode(labels, levels)
            inter_blocks[name] = (X_f, [f"{name}{s}" for s in suffixes])
            if name == full_coded:
                X_f, suffixes = encode_indicators(labels, levels)
            blocks[name] = (X_f, [f"{name}{s}" for s in suffixes])
        else:
            values = table.column(name).astype(np.float64)
            if not np.all(np.isfinite(values)):
                raise ValidationError(
                    f"Covariate {name!r} contains non-finite values"
                )
            blocks[name] = (values.reshape(-1, 1), [name])
            inter_blocks[name] = blocks[name]

    for term in spec.fixed_terms:
        source = blocks if term.order == 1 else inter_blocks
        X_t, names_t = source[term.factors[0]]
        for f in term.factors[1:]:
            X_f, names_f = source[f]
            X_t, names_t = interaction_columns(X_t, names_t, X_f, names_f)
        add(term.name, X_t, list(names_t))

    X = np.hstack(columns) if columns else np.empty((n, 0), dtype=np.float64)

    return FixedModelMatrix(
        X=X,
        column_names=tuple(column_names),
        term_names=tuple(term_names),
        term_slices=term_slices,
        term_df=term_df,
        factor_levels=factor_levels,
        coding=coding,
        has_intercept=spec.intercept,
    )


def _first_factor(spec, table) -> str | None:
    """Factor main effect that takes full indicator coding without intercept."""
    for term in spec.fixed_terms:
        if term.order == 1 and table.is_factor(term.factors[0]):
            return term.factors[0]
    return None
