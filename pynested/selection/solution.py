"""
User-facing model comparison and selection results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pandas as pd

from pynested.core.result import Result
from pynested.mixed.solution import FittedModel
from pynested.mixed.solvers import CandidateOutcome
from pynested.selection._common import ComparisonParams, ComparisonRow


@dataclass
class ComparisonTable:
    """
    Candidates ranked by an information criterion.

    Produced by compare(). Rows are ordered best first.
    """
    _result: Result[ComparisonParams]

    @property
    def rows(self) -> tuple[ComparisonRow, ...]:
        return self._result.params.rows

    @property
    def criterion(self) -> str:
        return self._result.params.criterion

    @property
    def best(self) -> ComparisonRow:
        return self.rows[0]

    @property
    def weights(self) -> dict[str, float]:
        """Label -> weight, best first."""
        return {row.label: row.weight for row in self.rows}

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    def __getitem__(self, label: str) -> ComparisonRow:
        for row in self.rows:
            if row.label == label:
                return row
        raise KeyError(
            f"No candidate labelled {label!r}. "
            f"Available: {[row.label for row in self.rows]}"
        )

    def to_frame(self) -> pd.DataFrame:
        """Comparison as a DataFrame indexed by label."""
        return pd.DataFrame(
            {
                'rank': [r.rank for r in self.rows],
                'k': [r.model.effective_parameter_count for r in self.rows],
                'logLik': [r.model.log_likelihood for r in self.rows],
                self.criterion: [r.criterion_value for r in self.rows],
                'delta': [r.delta for r in self.rows],
                'weight': [r.weight for r in self.rows],
                'n_random': [r.n_random_groupings for r in self.rows],
            },
            index=pd.Index([r.label for r in self.rows], name='model'),
        )

    def summary(self) -> str:
        """Ranked comparison table."""
        params = self._result.params
        width = max([len(r.label) for r in self.rows] + [20])
        lines = [
            f"Model comparison by {params.criterion} "
            f"({params.estimation} fits, n = {params.n_obs})",
            "=" * (width + 58),
            f"{'Model':<{width}} {'k':>4} {'logLik':>12} {params.criterion:>12} "
            f"{'Delta':>10} {'Weight':>8} {'Rank':>5}",
            "-" * (width + 58),
        ]
        for row in self.rows:
            lines.append(
                f"{row.label:<{width}} {row.model.effective_parameter_count:>4} "
                f"{row.model.log_likelihood:>12.3f} {row.criterion_value:>12.3f} "
                f"{row.delta:>10.3f} {row.weight:>8.4f} {row.rank:>5}"
            )
        lines.append("-" * (width + 58))
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"ComparisonTable({self.criterion}, n_models={len(self.rows)}, "
            f"best={self.best.label!r})"
        )


@dataclass(frozen=True)
class SelectionResult:
    """
    Outcome of select_random_structure().

    Attributes:
        table: Comparison of the successfully fitted RESTRICTED candidates.
        failures: Candidates that failed to fit, with their errors.
        refit: The winning structure re-fitted under FULL likelihood.
    """
    table: ComparisonTable
    failures: tuple[CandidateOutcome, ...]
    refit: FittedModel

    @property
    def best(self) -> ComparisonRow:
        return self.table.best

    def summary(self) -> str:
        lines = [self.table.summary()]
        if self.failures:
            lines.append("")
            lines.append("Candidates that failed to fit:")
            for outcome in self.failures:
                lines.append(
                    f"  {outcome.spec.random_label}: "
                    f"{type(outcome.error).__name__}: {outcome.error}"
                )
        lines.append("")
        lines.append(f"Selected: {self.best.label} (re-fitted by ML)")
        return "\n".join(lines)
