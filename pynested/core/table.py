"""
Observation table: the immutable tabular input of every stage.

ObservationTable is the "I have data" abstraction. It owns a private copy
of the rows, knows which columns are categorical, and validates the
nesting hierarchy of its grouping columns once, at construction. Every
stage (variance decomposition, fitting, cell means) receives the table
explicitly; nothing is stored globally.

Usage:
    from pynested import ObservationTable

    table = ObservationTable.from_csv(
        "growth.csv",
        hierarchy=('population', 'individual'),
        factors=('origin', 'treatment'),
    )
    table.levels('origin')        # ['farm', 'wild']
    y = table.column('length')
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray

from pynested.core.exceptions import ValidationError
from pynested.core.validation import check_columns, check_strict_nesting


class ObservationTable:
    """
    Immutable table of measurements with grouping identifiers.

    Construct directly from a DataFrame or via the factory classmethods.

    Args:
        frame: Rows of measurements. Copied; later changes to the caller's
            DataFrame do not affect the table.
        hierarchy: Grouping columns ordered coarsest -> finest. Strict
            nesting is validated immediately.
        factors: Columns to treat as categorical even if numeric. Any
            non-numeric or pandas 'category' column is categorical anyway.

    Raises:
        ValidationError: Missing hierarchy/factor columns, empty table or
            violated nesting.
    """

    def __init__(
        self,
        frame: pd.DataFrame,
        *,
        hierarchy: Iterable[str] = (),
        factors: Iterable[str] = (),
    ):
        if not isinstance(frame, pd.DataFrame):
            raise ValidationError(
                f"frame must be a pandas DataFrame, got {type(frame).__name__}"
            )
        if len(frame) == 0:
            raise ValidationError("Observation table has no rows")

        hierarchy = tuple(hierarchy)
        factors = tuple(factors)
        check_columns(frame.columns, hierarchy, 'hierarchy')
        check_columns(frame.columns, factors, 'factors')
        if len(set(hierarchy)) != len(hierarchy):
            raise ValidationError(f"hierarchy contains duplicates: {hierarchy}")

        self._frame = frame.reset_index(drop=True).copy()
        self._hierarchy = hierarchy
        self._factors = frozenset(factors) | frozenset(hierarchy)

        check_strict_nesting(self._frame, hierarchy)

    # === Factory Methods ===

    @classmethod
    def from_csv(
        cls,
        path: str | Path,
        *,
        hierarchy: Iterable[str] = (),
        factors: Iterable[str] = (),
        **read_kwargs: Any,
    ) -> ObservationTable:
        """Construct from a delimited text file (passed to pandas.read_csv)."""
        path = Path(path)
        if path.suffix.lower() == '.tsv' and 'sep' not in read_kwargs:
            read_kwargs['sep'] = '\t'
        frame = pd.read_csv(path, **read_kwargs)
        return cls(frame, hierarchy=hierarchy, factors=factors)

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        *,
        hierarchy: Iterable[str] = (),
        factors: Iterable[str] = (),
    ) -> ObservationTable:
        """Construct from a mapping of column name -> array-like."""
        return cls(pd.DataFrame(dict(data)), hierarchy=hierarchy, factors=factors)

    # === Access ===

    @property
    def frame(self) -> pd.DataFrame:
        """A copy of the underlying rows."""
        return self._frame.copy()

    @property
    def columns(self) -> tuple[str, ...]:
        return tuple(str(c) for c in self._frame.columns)

    @property
    def hierarchy(self) -> tuple[str, ...]:
        return self._hierarchy

    @property
    def n_obs(self) -> int:
        return len(self._frame)

    def __len__(self) -> int:
        return len(self._frame)

    def __contains__(self, name: str) -> bool:
        return name in self._frame.columns

    def require(self, columns: Iterable[str]) -> None:
        """Raise ValidationError unless every column is present."""
        check_columns(self.columns, columns, 'observation table')

    def column(self, name: str) -> NDArray:
        """
        Return one column as a numpy array (a copy).

        Raises:
            KeyError: If the column does not exist, listing available ones
        """
        if name not in self._frame.columns:
            raise KeyError(
                f"ObservationTable has no column '{name}'. "
                f"Available: {list(self.columns)}"
            )
        return self._frame[name].to_numpy(copy=True)

    def is_factor(self, name: str) -> bool:
        """Whether the column is treated as categorical."""
        if name in self._factors:
            return True
        dtype = self._frame[name].dtype
        return isinstance(dtype, pd.CategoricalDtype) or not pd.api.types.is_numeric_dtype(dtype)

    def labels(self, name: str) -> NDArray:
        """Categorical column as an array of level strings."""
        return np.array([str(v) for v in self._frame[name].to_numpy()], dtype=object)

    def levels(self, name: str) -> list[str]:
        """Sorted unique level labels of a categorical column (missing excluded)."""
        values = self._frame[name].dropna().to_numpy()
        return sorted(set(str(v) for v in values))

    def missing_mask(self, columns: Iterable[str]) -> NDArray:
        """Boolean mask of rows with a missing value in any of the columns."""
        columns = list(columns)
        if not columns:
            return np.zeros(len(self._frame), dtype=bool)
        return self._frame[columns].isna().any(axis=1).to_numpy()

    def complete_rows(self, columns: Iterable[str]) -> tuple[ObservationTable, int]:
        """
        Listwise deletion over the given columns.

        Returns:
            (table, n_dropped): a new table without incomplete rows and the
            number of rows removed.
        """
        columns = list(columns)
        mask = self.missing_mask(columns)
        n_dropped = int(mask.sum())
        if n_dropped == 0:
            return self, 0
        kept = self._frame.loc[~mask]
        if len(kept) == 0:
            raise ValidationError(
                f"No complete rows remain over columns {columns}"
            )
        table = ObservationTable(
            kept,
            hierarchy=self._hierarchy,
            factors=self._factors - frozenset(self._hierarchy),
        )
        return table, n_dropped

    def with_column(self, name: str, values: ArrayLike) -> ObservationTable:
        """Return a new table with a column added or replaced."""
        frame = self._frame.copy()
        frame[name] = np.asarray(values)
        factors = self._factors - frozenset(self._hierarchy)
        return ObservationTable(frame, hierarchy=self._hierarchy, factors=factors)

    def __repr__(self) -> str:
        return (
            f"ObservationTable(n={self.n_obs}, columns={list(self.columns)}, "
            f"hierarchy={list(self._hierarchy)})"
        )
