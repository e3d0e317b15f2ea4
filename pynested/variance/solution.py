"""
Solution wrapper for nested variance decomposition.
"""

from __future__ import annotations

from pynested.core.result import Result
from pynested.variance._common import VarianceParams, VarianceLevel


class VarianceDecomposition:
    """Variance estimates per hierarchy level, residual first."""

    def __init__(self, _result: Result[VarianceParams]):
        self._result = _result

    @property
    def params(self) -> VarianceParams:
        return self._result.params

    @property
    def components(self) -> tuple[VarianceLevel, ...]:
        return self.params.components

    @property
    def values(self) -> tuple[float, ...]:
        """Variance estimates ordered [Residual, finest level, ..., coarsest]."""
        return tuple(c.variance for c in self.params.components)

    @property
    def proportions(self) -> dict[str, float]:
        """Share of the summed variance attributed to each level."""
        total = sum(self.values)
        if total <= 0:
            return {c.level: 0.0 for c in self.params.components}
        return {c.level: c.variance / total for c in self.params.components}

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def __getitem__(self, level: str) -> float:
        for comp in self.params.components:
            if comp.level == level:
                return comp.variance
        raise KeyError(
            f"No level '{level}'. Available: "
            f"{[c.level for c in self.params.components]}"
        )

    def summary(self) -> str:
        params = self.params
        lines = [
            f"Nested variance decomposition of '{params.response}'",
            f"Number of obs: {params.n_obs} ({params.n_missing} missing)",
            "",
            f" {'Level':<16s} {'Variance':>10s} {'Share':>8s} "
            f"{'Groups':>8s} {'Excluded':>9s}",
        ]
        shares = self.proportions
        for comp in params.components:
            lines.append(
                f" {comp.level:<16s} {comp.variance:10.4f} "
                f"{shares[comp.level]:8.3f} {comp.n_groups_used:8d} "
                f"{comp.n_groups_excluded:9d}"
            )
        return '\n'.join(lines)

    def __repr__(self) -> str:
        return (
            f"VarianceDecomposition({self.params.response}, "
            f"levels={list(self.params.levels)})"
        )
