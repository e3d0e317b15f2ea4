"""
Common data types for nested variance decomposition.

Frozen parameter payloads that go inside Result[P] envelopes.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class VarianceLevel:
    """Variance estimate for one level of the hierarchy.

    Attributes:
        level: 'Residual' for the within-finest-group level, otherwise the
            grouping column whose group means vary at this level.
        variance: Averaged variance estimate.
        n_groups_used: Groups contributing an estimate (>= 2 values).
        n_groups_excluded: Groups with fewer than 2 values, left out of
            the average rather than counted as zero.
    """
    level: str
    variance: float
    n_groups_used: int
    n_groups_excluded: int


@dataclass(frozen=True)
class VarianceParams:
    """Parameter payload for a nested variance decomposition."""
    response: str
    levels: tuple[str, ...]                 # finest -> coarsest
    components: tuple[VarianceLevel, ...]   # residual first, then levels
    n_obs: int                              # non-missing responses
    n_missing: int
