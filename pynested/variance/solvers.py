"""
Public API for nested variance decomposition.

    decompose(table, levels, response=...) -> VarianceDecomposition
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from pynested.core.exceptions import ValidationError
from pynested.core.result import Result
from pynested.core.table import ObservationTable
from pynested.core.compute.timing import Timer
from pynested.core.validation import check_strict_nesting
from pynested.variance._common import VarianceParams
from pynested.variance._nested import nested_variances
from pynested.variance.solution import VarianceDecomposition


def decompose(
    observations: ObservationTable,
    levels: Sequence[str],
    *,
    response: str,
) -> VarianceDecomposition:
    """Decompose response variance across a nesting hierarchy.

    For the finest level, the per-group variance of the response is
    averaged across groups (the residual, within-group variance). Group
    means are then aggregated and their variance within each next-coarser
    group is averaged, and so on up the hierarchy. The coarsest level
    reports the variance of its group means over the whole table.

    This is a descriptive diagnostic: the level estimates are variances
    of (means of) raw data, not REML variance components.

    Args:
        observations: The observation table.
        levels: Grouping columns ordered finest -> coarsest, e.g.
            ['individual', 'population'].
        response: Numeric response column.

    Returns:
        VarianceDecomposition with len(levels) + 1 components, ordered
        [Residual, levels[0], ..., levels[-1]].

    Raises:
        ValidationError: Missing columns, non-numeric response, violated
            nesting, or a level at which no group has 2+ values.

    Example:
        >>> vd = decompose(table, ['individual', 'population'],
        ...                response='length')
        >>> vd.values
        (0.93, 1.71, 4.02)
    """
    levels = list(levels)
    if not levels:
        raise ValidationError("levels: at least one grouping column required")
    if len(set(levels)) != len(levels):
        raise ValidationError(f"levels contains duplicates: {levels}")

    observations.require([response] + levels)
    if observations.is_factor(response):
        raise ValidationError(
            f"response '{response}' is categorical, expected numeric data"
        )

    timer = Timer()
    timer.start()

    frame = observations.frame[[response] + levels]
    # check_strict_nesting expects coarsest -> finest
    check_strict_nesting(frame, levels[::-1])

    y = frame[response].to_numpy(dtype=np.float64)
    n_missing = int(np.sum(np.isnan(y)))

    with timer.section('aggregation'):
        components = nested_variances(frame, response, levels)

    timer.stop()

    warn_list = []
    for comp in components:
        if comp.n_groups_excluded:
            warn_list.append(
                f"{comp.level}: {comp.n_groups_excluded} group(s) with fewer "
                f"than 2 values excluded"
            )

    params = VarianceParams(
        response=response,
        levels=tuple(levels),
        components=tuple(components),
        n_obs=int(len(y) - n_missing),
        n_missing=n_missing,
    )
    result = Result(
        params=params,
        info={'method': 'nested_moments', 'n_missing': n_missing},
        timing=timer.result(),
        backend_name='cpu_nested',
        warnings=tuple(warn_list),
    )
    return VarianceDecomposition(_result=result)
