"""
Common data types for fixed-effect inference.

Frozen payloads that go inside Result[P] envelopes.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TermTest:
    """Marginal Wald F test of one fixed term."""
    term: str
    statistic: float      # Wald F = (Lb)'(LVL')⁻¹(Lb) / q
    num_df: int           # q = rows of L
    den_df: float         # inf for asymptotic tests
    p_value: float


@dataclass(frozen=True)
class FixedEffectsParams:
    """Parameter payload for a table of marginal fixed-effect tests."""
    rows: tuple[TermTest, ...]
    ss_type: int
    df_method: str
    criterion: str        # estimation criterion of the tested model
    n_obs: int


@dataclass(frozen=True)
class CoefficientTest:
    """t test of one coefficient against zero."""
    name: str
    term: str
    estimate: float
    se: float
    df: float
    t_value: float
    p_value: float


@dataclass(frozen=True)
class CoefficientTestsParams:
    rows: tuple[CoefficientTest, ...]
    df_method: str


@dataclass(frozen=True)
class LikelihoodRatioParams:
    """Parameter payload for a likelihood ratio test of nested models."""
    statistic: float      # -2 (logLik_reduced - logLik_full)
    df: int               # difference in effective parameter counts
    p_value: float
    log_likelihood_reduced: float
    log_likelihood_full: float
    n_params_reduced: int
    n_params_full: int
    criterion: str
    on_boundary: bool     # a variance component is tested against zero


@dataclass(frozen=True)
class CellMean:
    """Estimated mean of one factor-level combination."""
    cell: tuple[str, ...]
    estimate: float
    se: float
    df: float
    lower: float
    upper: float
    n_obs: int


@dataclass(frozen=True)
class CellMeansParams:
    factors: tuple[str, ...]
    cells: tuple[CellMean, ...]
    conf_level: float
    df_method: str
    criterion: str
