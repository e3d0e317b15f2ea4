"""
Information-criterion penalties.

IC = -2 logLik + penalty(k, n), with k the effective parameter count
(fixed effects + variance parameters + σ) and n the number of
observations.
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np

from pynested.core.exceptions import ValidationError

Penalty = Callable[[int, int], float]


def aic_penalty(k: int, n: int) -> float:
    return 2.0 * k


def bic_penalty(k: int, n: int) -> float:
    return k * np.log(n)


def aicc_penalty(k: int, n: int) -> float:
    """AIC with the small-sample correction 2k(k+1)/(n-k-1)."""
    if n - k - 1 <= 0:
        raise ValidationError(
            f"AICc undefined: n={n} observations for k={k} parameters "
            f"(needs n > k + 1)"
        )
    return 2.0 * k + 2.0 * k * (k + 1) / (n - k - 1)


PENALTIES: dict[str, Penalty] = {
    'aic': aic_penalty,
    'bic': bic_penalty,
    'aicc': aicc_penalty,
}


def resolve_criterion(criterion: str | Penalty) -> tuple[str, Penalty]:
    """Map a criterion name or penalty callable to (display name, penalty).

    Raises:
        ValidationError: Unknown name or a non-callable value.
    """
    if isinstance(criterion, str):
        key = criterion.lower()
        if key not in PENALTIES:
            raise ValidationError(
                f"criterion must be one of {tuple(PENALTIES)} or a callable "
                f"penalty(k, n), got {criterion!r}"
            )
        return key.upper().replace('AICC', 'AICc'), PENALTIES[key]
    if callable(criterion):
        return getattr(criterion, '__name__', 'custom'), criterion
    raise ValidationError(
        f"criterion must be a name or a callable penalty(k, n), got "
        f"{type(criterion).__name__}"
    )
