"""
Input validation utilities for PyNested.

These validators follow the "fail fast, fail loud" principle. They raise
immediately with clear error messages rather than silently correcting
or making assumptions about user intent.

Design principles:
    - No silent type coercion (except np.asarray on array-likes)
    - Clear, actionable error messages with actual values
    - Each function validates ONE thing
    - Parameter names included in all error messages
"""

from collections.abc import Iterable, Sequence
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from pynested.core.exceptions import ValidationError


def check_finite(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify array contains no NaN or Inf values.

    Raises:
        ValidationError: If array contains non-finite values
    """
    if not np.all(np.isfinite(array)):
        n_nan = int(np.sum(np.isnan(array)))
        n_inf = int(np.sum(np.isinf(array)))
        raise ValidationError(
            f"{name}: contains non-finite values ({n_nan} NaN, {n_inf} Inf)"
        )


def check_option(value: str, allowed: Iterable[str], name: str) -> str:
    """
    Verify a string option is one of the allowed values.

    Raises:
        ValidationError: If value is not allowed
    """
    allowed = tuple(allowed)
    if value not in allowed:
        raise ValidationError(
            f"{name} must be one of {allowed}, got {value!r}"
        )
    return value


def check_in_open_interval(value: float, low: float, high: float, name: str) -> None:
    """
    Verify low < value < high.

    Raises:
        ValidationError: If value lies outside the open interval
    """
    if not (low < value < high):
        raise ValidationError(
            f"{name} must lie in ({low}, {high}), got {value}"
        )


def check_columns(available: Iterable[str], required: Iterable[str], name: str) -> None:
    """
    Verify every required column is present.

    Raises:
        ValidationError: Listing all missing columns and the available ones
    """
    available = list(available)
    missing = [c for c in required if c not in available]
    if missing:
        raise ValidationError(
            f"{name}: missing required column(s) {missing}. "
            f"Available: {available}"
        )


def check_strict_nesting(frame: pd.DataFrame, levels: Sequence[str]) -> None:
    """
    Verify strict nesting of grouping columns.

    Every identifier at a finer level must map to exactly one value at each
    coarser level. An identifier reused under two parents violates nesting:
    the data must carry globally unique identifiers (or the caller must
    build them) rather than rely on implicit nesting.

    Args:
        frame: Data containing the grouping columns
        levels: Grouping columns ordered coarsest -> finest

    Raises:
        ValidationError: Naming the first offending level and identifiers
    """
    for i in range(1, len(levels)):
        finer = levels[i]
        for coarser in levels[:i]:
            pairs = frame[[finer, coarser]].dropna().drop_duplicates()
            parents_per_id = pairs.groupby(finer, observed=True)[coarser].nunique()
            offenders = parents_per_id[parents_per_id > 1]
            if len(offenders) > 0:
                shown = [str(v) for v in offenders.index[:5]]
                raise ValidationError(
                    f"Nesting violated: {len(offenders)} '{finer}' identifier(s) "
                    f"map to more than one '{coarser}' (e.g. {shown}). "
                    f"Identifiers at a finer level must be unique across "
                    f"the coarser level."
                )


def check_column_rank(X: NDArray[np.floating[Any]], name: str) -> int:
    """
    Compute the numerical column rank of a matrix.

    Returns:
        The rank; callers decide whether deficiency is fatal.
    """
    if X.shape[1] == 0:
        return 0
    return int(np.linalg.matrix_rank(X))
