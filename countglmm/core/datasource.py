"""
Immutable tabular DataSource for countglmm.

DataSource is the "I have data" handle. It doesn't know or care which
model consumes it. It is created once by a loader and passed explicitly
to every pipeline step; steps that derive columns return a new DataSource
instead of mutating the one they were given.

Usage:
    from countglmm.core.datasource import DataSource

    ds = DataSource.from_file("owls.csv")
    ds = DataSource.from_dataframe(df)

    ds.keys()            # frozenset({'Nest', 'BroodSize', ...})
    counts = ds['SiblingNegotiation']   # numpy copy
    df = ds.frame()      # defensive pandas copy
    ds2 = ds.with_columns(NCalls=counts)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from countglmm.core.exceptions import ValidationError


@dataclass(frozen=True, eq=False)
class DataSource:
    """
    Read-only table of observations. Domain-agnostic.

    Construct via factory classmethods, not directly. Every accessor
    returns a copy, so nothing a caller does can change what later
    steps see.
    """
    _frame: pd.DataFrame
    _metadata: dict[str, Any] = field(default_factory=dict)

    # === Column Access ===

    def keys(self) -> frozenset[str]:
        """
        Return the names of all available columns.

        Example:
            >>> ds = DataSource.from_dataframe(df)
            >>> ds.keys()
            frozenset({'Nest', 'NCalls'})
        """
        return frozenset(str(c) for c in self._frame.columns)

    def __getitem__(self, key: str) -> NDArray:
        """
        Access a named column as a numpy array (a copy).

        Raises:
            KeyError: If key not found, with helpful message listing available keys
        """
        if key not in self._frame.columns:
            available = sorted(self.keys())
            raise KeyError(
                f"DataSource has no column '{key}'. Available: {available}"
            )
        return self._frame[key].to_numpy(copy=True)

    def __contains__(self, key: str) -> bool:
        """Check if a column exists."""
        return key in self._frame.columns

    def __len__(self) -> int:
        return len(self._frame)

    def column(self, key: str) -> pd.Series:
        """Access a named column as a pandas Series (a copy).

        Unlike __getitem__, this keeps categorical dtype and level order.
        """
        if key not in self._frame.columns:
            available = sorted(self.keys())
            raise KeyError(
                f"DataSource has no column '{key}'. Available: {available}"
            )
        return self._frame[key].copy()

    def frame(self) -> pd.DataFrame:
        """Return a defensive copy of the whole table."""
        return self._frame.copy()

    # === Properties ===

    @property
    def n_observations(self) -> int:
        """Number of statistical units (rows)."""
        return len(self._frame)

    @property
    def metadata(self) -> dict[str, Any]:
        """Domain-agnostic metadata (source, source_path, ...)."""
        return self._metadata.copy()

    # === Derivation ===

    def with_columns(self, **columns: Any) -> DataSource:
        """Return a new DataSource with columns added or replaced.

        Args:
            **columns: name -> array-like or Series of length n_observations.

        Raises:
            ValidationError: If a column has the wrong length.
        """
        df = self._frame.copy()
        for name, values in columns.items():
            if len(values) != len(df):
                raise ValidationError(
                    f"Column '{name}' has {len(values)} values, "
                    f"expected {len(df)}"
                )
            if isinstance(values, pd.Series):
                # positional, keeps categorical dtype
                values = values.array
            df[name] = values
        metadata = self._metadata.copy()
        metadata['derived_columns'] = tuple(
            metadata.get('derived_columns', ())) + tuple(columns)
        return DataSource(_frame=df, _metadata=metadata)

    # === Factory Methods ===

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        *,
        source_path: str | None = None,
    ) -> DataSource:
        """Construct from a pandas DataFrame (copied, index reset)."""
        metadata: dict[str, Any] = {
            'source': 'dataframe',
            'columns': [str(c) for c in df.columns],
        }
        if source_path:
            metadata['source'] = 'file'
            metadata['source_path'] = source_path
        return cls(
            _frame=df.reset_index(drop=True).copy(),
            _metadata=metadata,
        )

    @classmethod
    def from_file(cls, path: str | Path) -> DataSource:
        """Construct from a CSV/TSV file."""
        path = Path(path)
        suffix = path.suffix.lower()

        if suffix == '.csv':
            df = pd.read_csv(path)
        elif suffix == '.tsv':
            df = pd.read_csv(path, sep='\t')
        else:
            raise ValidationError(f"Unknown file format: {suffix}")
        return cls.from_dataframe(df, source_path=str(path))

    def __repr__(self) -> str:
        return (
            f"DataSource(n={self.n_observations}, "
            f"columns={[str(c) for c in self._frame.columns]})"
        )
