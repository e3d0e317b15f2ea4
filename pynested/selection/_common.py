"""
Common data types for model comparison.

Frozen payloads that go inside Result[P] envelopes.
"""

from dataclasses import dataclass

from pynested.mixed.solution import FittedModel


@dataclass(frozen=True)
class ComparisonRow:
    """One ranked candidate.

    Attributes:
        model: The fitted model.
        label: Display label (defaults to the random structure).
        criterion_value: -2 logLik + penalty(k, n).
        delta: criterion_value minus the best value (>= 0).
        rank: 1-based rank, 1 is best.
        weight: Akaike-type weight exp(-delta/2) / Σ exp(-delta_i/2).
        n_random_groupings: Number of random groupings in the model.
    """
    model: FittedModel
    label: str
    criterion_value: float
    delta: float
    rank: int
    weight: float
    n_random_groupings: int


@dataclass(frozen=True)
class ComparisonParams:
    """Parameter payload for a model comparison."""
    criterion: str
    rows: tuple[ComparisonRow, ...]      # ordered by rank
    tie_tol: float
    n_obs: int
    estimation: str                      # 'REML' or 'ML'
