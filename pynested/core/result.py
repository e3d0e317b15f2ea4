"""
Generic result container for all PyNested computations.

The Result class is the standardized envelope every domain result uses:
the domain payload, structured metadata, per-phase timings and the
non-fatal warnings raised while computing it.

Design decisions:
    - Generic over parameter payload P for type safety
    - info dict for flexible metadata (method, convergence, diagnostics)
    - timing is optional (don't burden unit tests)
    - Immutable (frozen=True): a fitted model is owned by its caller and
      never changes after it is produced
"""

from dataclasses import dataclass, field
from typing import TypeVar, Generic, Any

P = TypeVar('P')  # Parameter payload type


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable result envelope for statistical computations.

    Type Parameters:
        P: The domain-specific parameter payload type

    Attributes:
        params: Domain-specific parameters (coefficients, estimates, etc.)
        info: Structured metadata (method, convergence, diagnostics)
        timing: Execution timing breakdown, or None if not measured
        backend_name: Identifier of the routine that produced this result
        warnings: Non-fatal issues encountered during computation

    Examples:
        >>> Result(
        ...     params=FitParams(...),
        ...     info={'method': 'REML', 'converged': True, 'n_iter': 12},
        ...     timing={'total_seconds': 0.05, 'optimization': 0.04},
        ...     backend_name='cpu_lmm',
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def has_warning(self, substring: str) -> bool:
        """Check if any warning contains the given substring."""
        return any(substring in w for w in self.warnings)
