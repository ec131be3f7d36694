"""
Design validation for count GLMMs.

MixedDesign validates and organizes the inputs for glmm(): the count
response y, fixed effects matrix X, the offset, and the single grouping
factor carrying the random intercept.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray

from countglmm.core.exceptions import ValidationError
from countglmm.core.validation import (
    check_array, check_finite, check_1d, check_2d,
    check_consistent_length, check_min_samples,
    check_nonnegative_integers, check_column_rank,
)


@dataclass(frozen=True)
class MixedDesign:
    """Validated design for a count GLMM.

    Attributes:
        y: Count response vector (n,).
        X: Fixed effects design matrix (n, p).
        offset: Offset on the linear-predictor scale (n,); zeros if none.
        groups: Dict with one grouping factor name → group labels (n,).
        coefficient_names: One name per column of X.
        n: Number of observations.
        p: Number of fixed effect columns.
    """
    y: NDArray
    X: NDArray
    offset: NDArray
    groups: dict[str, object]
    coefficient_names: tuple[str, ...]
    n: int
    p: int

    @staticmethod
    def validate(
        y,
        X,
        groups: dict[str, object],
        offset=None,
        coefficient_names=None,
    ) -> 'MixedDesign':
        """Validate inputs and create a MixedDesign.

        Args:
            y: Count response (non-negative whole numbers).
            X: Fixed effects design matrix. If 1-D, treated as single column.
               The intercept column must be included by the caller.
            groups: Dict mapping one grouping factor name to its labels.
            offset: Optional offset already on the log scale.
            coefficient_names: Optional names for the columns of X.

        Returns:
            Validated MixedDesign.

        Raises:
            ValidationError: On invalid inputs.
            DimensionError: On inconsistent shapes.
        """
        y = check_array(y, 'y').ravel()
        check_finite(y, 'y')
        check_nonnegative_integers(y, 'y')
        check_min_samples(y, 3, 'y')
        n = len(y)

        X = check_array(X, 'X')
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        check_2d(X, 'X')
        check_finite(X, 'X')
        check_consistent_length(y, X, names=('y', 'X'))
        check_column_rank(X, 'X')
        p = X.shape[1]

        if offset is None:
            offset = np.zeros(n, dtype=np.float64)
        else:
            offset = check_array(offset, 'offset')
            check_1d(offset, 'offset')
            check_finite(offset, 'offset')
            check_consistent_length(y, offset, names=('y', 'offset'))

        if not groups:
            raise ValidationError("A grouping factor is required")
        if len(groups) != 1:
            raise ValidationError(
                f"Exactly one grouping factor is supported, got "
                f"{len(groups)}: {list(groups.keys())}"
            )
        for name, g in groups.items():
            if len(g) != n:
                raise ValidationError(
                    f"Group '{name}' has {len(g)} elements, expected {n}"
                )
            labels = np.asarray(g, dtype=object)
            if any(v is None or (isinstance(v, float) and np.isnan(v))
                   for v in labels):
                raise ValidationError(f"Group '{name}' contains missing labels")
            n_levels = len(set(labels.tolist()))
            if n_levels < 2:
                raise ValidationError(
                    f"Group '{name}' has only {n_levels} level(s), "
                    f"need at least 2"
                )

        if coefficient_names is None:
            coefficient_names = _default_coef_names(p)
        coefficient_names = tuple(str(c) for c in coefficient_names)
        if len(coefficient_names) != p:
            raise ValidationError(
                f"coefficient_names has {len(coefficient_names)} entries, "
                f"expected {p} (columns of X)"
            )

        return MixedDesign(
            y=y,
            X=X,
            offset=offset,
            groups=dict(groups),
            coefficient_names=coefficient_names,
            n=n,
            p=p,
        )


def _default_coef_names(p: int) -> list[str]:
    """Generate default coefficient names."""
    names = ['(Intercept)']
    for i in range(1, p):
        names.append(f'X{i}')
    return names
