"""
Nested aggregation kernels.

Level by level: per-group sample variances (ddof=1) are averaged over the
groups that have at least two values, and group means become the data of
the next coarser level.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from pynested.core.compute.tolerances import THETA_START_MIN, THETA_START_MAX
from pynested.core.exceptions import ValidationError
from pynested.variance._common import VarianceLevel


def level_variance(
    values: pd.Series,
    groups: pd.Series,
    label: str,
) -> tuple[VarianceLevel, pd.Series]:
    """Average within-group variance of `values` grouped by `groups`.

    Missing values are ignored. Groups with fewer than 2 non-missing
    values yield no estimate and are excluded from the denominator.

    Returns:
        (VarianceLevel, group means indexed by group id; all-missing
        groups dropped)

    Raises:
        ValidationError: If no group has at least 2 values.
    """
    grouped = values.groupby(groups, observed=True, sort=True)
    counts = grouped.count()
    variances = grouped.var(ddof=1)
    usable = counts >= 2

    n_used = int(usable.sum())
    if n_used == 0:
        raise ValidationError(
            f"Level '{label}': no group has at least 2 non-missing values, "
            f"variance cannot be estimated"
        )

    estimate = float(variances[usable].mean())
    means = grouped.mean().dropna()
    level = VarianceLevel(
        level=label,
        variance=max(estimate, 0.0),
        n_groups_used=n_used,
        n_groups_excluded=int((~usable).sum()),
    )
    return level, means


def nested_variances(
    frame: pd.DataFrame,
    response: str,
    levels: list[str],
) -> list[VarianceLevel]:
    """Run the nested decomposition over `levels` (finest -> coarsest).

    Returns:
        [Residual, levels[0], ..., levels[-1]]
    """
    y = frame[response].astype(np.float64)
    components = []

    # Residual: variance within the finest groups
    residual, means = level_variance(y, frame[levels[0]], 'Residual')
    components.append(residual)

    for k in range(len(levels)):
        finer = levels[k]
        if k + 1 < len(levels):
            coarser = levels[k + 1]
            parent = (
                frame[[finer, coarser]]
                .dropna()
                .drop_duplicates()
                .set_index(finer)[coarser]
            )
            parents = parent.reindex(means.index)
        else:
            # Top level: one group spanning the whole table
            parents = pd.Series(0, index=means.index)
        level, means = level_variance(means, parents, finer)
        components.append(level)

    return components


def moment_theta(y: NDArray, group_ids: NDArray) -> float:
    """Moment-based starting value for one random intercept's θ.

    θ = σ_b / σ, with σ² the pooled within-group variance and σ_b² the
    variance of group means corrected for the within-group noise they
    carry (one-way ANOVA estimator). Falls back to 1.0 when the groups
    carry no within-group replication.
    """
    values = pd.Series(np.asarray(y, dtype=np.float64))
    groups = pd.Series(np.asarray(group_ids))
    try:
        within, means = level_variance(values, groups, 'Residual')
    except ValidationError:
        return 1.0
    if len(means) < 2 or within.variance <= 0:
        return 1.0

    sizes = groups.value_counts()
    mean_size = float(sizes.mean())
    among = float(means.var(ddof=1)) - within.variance / mean_size
    ratio = max(among, 0.0) / within.variance
    return float(np.clip(np.sqrt(ratio), THETA_START_MIN, THETA_START_MAX))
