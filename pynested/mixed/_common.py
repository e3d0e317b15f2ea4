"""
Common data types for fitted mixed models.

Contains the frozen parameter payloads that go inside Result[P] envelopes.
Each payload is a pure data container: no methods, no computation.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), 1-48.
"""

from dataclasses import dataclass

from numpy.typing import NDArray

from pynested.mixed.design import MixedDesign
from pynested.mixed.spec import ModelSpec


@dataclass(frozen=True)
class CoefficientEstimate:
    """One fixed-effect coefficient.

    Attributes:
        name: Column name (e.g. 'originwild').
        term: Owning fixed term (e.g. 'origin').
        estimate: β̂.
        se: Standard error.
    """
    name: str
    term: str
    estimate: float
    se: float


@dataclass(frozen=True)
class VarCompSummary:
    """Variance component summary for one random effect term.

    Attributes:
        group: Grouping factor name (e.g. 'individual').
        name: Term name within the group ('(Intercept)' or a slope field).
        variance: Estimated variance σ²_b for this component.
        std_dev: Standard deviation (sqrt of variance).
        corr: Correlation with the group's intercept, or None for the
            intercept itself.
    """
    group: str
    name: str
    variance: float
    std_dev: float
    corr: float | None = None


@dataclass(frozen=True)
class FitParams:
    """
    Parameter payload for a fitted linear mixed model.

    Contains all estimates needed to reconstruct the model summary,
    perform inference and extract random effects. The design is kept so
    that Satterthwaite df can be computed later, on demand.
    """
    spec: ModelSpec

    # Fixed effects
    coefficients: NDArray              # β̂ (p,)
    coefficient_names: tuple[str, ...]
    coefficient_terms: tuple[str, ...]
    vcov: NDArray                      # σ²(X'V*⁻¹X)⁻¹ (p, p)

    # Variance components
    var_components: tuple[VarCompSummary, ...]
    residual_variance: float           # σ²
    theta: NDArray                     # converged θ parameters

    # Model fit
    log_likelihood: float
    n_params: int                      # p + n_theta + 1
    aic: float
    bic: float
    n_obs: int
    n_groups: dict[str, int]           # grouping -> number of levels

    # Convergence
    converged: bool
    n_iter: int
    singular: bool

    # Conditional modes (BLUPs): grouping -> (J, q)
    random_effects: dict[str, NDArray]

    # Predictions
    fitted_values: NDArray             # Xβ̂ + Zb̂ (n,)
    residuals: NDArray                 # y - fitted (n,)

    design: MixedDesign
