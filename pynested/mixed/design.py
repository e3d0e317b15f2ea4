"""
Design construction and validation for mixed models.

MixedDesign turns a ModelSpec and an ObservationTable into the numeric
pieces the fitter works on: the response y, the fixed-effects model
matrix X (with its term metadata) and the random-effects matrix Z (with
its per-grouping blocks). Every data-dependent check happens here, once,
before any optimization starts.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray

from pynested.core.exceptions import SingularFitError, ValidationError
from pynested.core.table import ObservationTable
from pynested.core.validation import check_column_rank, check_finite, check_option
from pynested.mixed._model_matrix import FixedModelMatrix, build_fixed_matrix
from pynested.mixed._random_effects import (
    RandomEffectBlock, build_random_blocks, build_z_matrix,
)
from pynested.mixed.spec import ModelSpec

NA_ACTIONS = ('omit', 'fail')


@dataclass(frozen=True)
class MixedDesign:
    """Validated numeric design for a linear mixed model.

    Attributes:
        y: Response vector (n,).
        X: Fixed effects design matrix (n, p).
        Z: Random effects design matrix (n, q); q = 0 without groupings.
        fixed: Fixed model matrix with term -> column metadata.
        blocks: One RandomEffectBlock per random term.
        n_dropped: Rows removed for missing values.
    """
    y: NDArray
    X: NDArray
    Z: NDArray
    fixed: FixedModelMatrix
    blocks: tuple[RandomEffectBlock, ...]
    n_dropped: int

    @property
    def n(self) -> int:
        return self.X.shape[0]

    @property
    def p(self) -> int:
        return self.X.shape[1]

    @staticmethod
    def build(
        spec: ModelSpec,
        table: ObservationTable,
        coding: str = 'treatment',
        na_action: str = 'omit',
    ) -> 'MixedDesign':
        """Validate `spec` against `table` and build the matrices.

        Raises:
            ValidationError: Unknown or mistyped fields, missing values
                under na_action='fail', too few observations.
            SingularFitError: Rank-deficient X, or a grouping with fewer
                than 2 levels or as many levels as observations.
        """
        check_option(na_action, NA_ACTIONS, 'na_action')
        spec.validate_against(table)

        n_missing = int(table.missing_mask(spec.fields).sum())
        if n_missing and na_action == 'fail':
            raise ValidationError(
                f"{n_missing} row(s) have missing values in {list(spec.fields)} "
                f"and na_action='fail'"
            )
        table, n_dropped = table.complete_rows(spec.fields)

        y = table.column(spec.response).astype(np.float64)
        check_finite(y, spec.response)

        fixed = build_fixed_matrix(spec, table, coding=coding)
        n, p = fixed.X.shape
        if n <= p:
            raise ValidationError(
                f"Need more observations than fixed-effect columns: "
                f"n={n}, p={p}"
            )

        rank = check_column_rank(fixed.X, 'X')
        if rank < p:
            raise SingularFitError(
                f"Fixed-effects design is rank-deficient (rank {rank} < {p} "
                f"columns); some terms are confounded",
                component='X',
                rank=rank,
                expected_rank=p,
            )

        blocks = build_random_blocks(spec, table)
        Z = build_z_matrix(blocks, n)

        return MixedDesign(
            y=y,
            X=fixed.X,
            Z=Z,
            fixed=fixed,
            blocks=tuple(blocks),
            n_dropped=n_dropped,
        )
