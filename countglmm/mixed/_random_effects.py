"""
Random-intercept specification and σ parameterisation.

The engine supports one grouping factor with a random intercept:

    b_j = σ u_j,    u_j ~ N(0, 1),    j = 1..J

so the marginal likelihood factorises into J one-dimensional integrals
over u_j. σ plays the role of the relative Cholesky factor θ in
Bates et al. (2015); like the diagonal of θ it is bounded below by 0,
and σ = 0 is the singular (boundary) fit.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
import pandas as pd
from numpy.typing import NDArray


@dataclass(frozen=True)
class RandomInterceptSpec:
    """Specification for one grouping factor's random intercept.

    Attributes:
        group_name: Name of the grouping factor (e.g. 'Nest').
        group_ids: Integer group labels for each observation, shape (n,).
            Values are 0-indexed consecutive integers.
        levels: Original level labels, in the order of the integer ids.
        n_groups: Number of unique groups (J).
    """
    group_name: str
    group_ids: NDArray
    levels: tuple
    n_groups: int

    def group_sum(self, values: NDArray) -> NDArray:
        """Sum per-observation values within each group.

        values may be (n,) or (n, K); the result is (J,) or (J, K).
        """
        if values.ndim == 1:
            return np.bincount(self.group_ids, weights=values,
                               minlength=self.n_groups)
        out = np.zeros((self.n_groups, values.shape[1]), dtype=np.float64)
        np.add.at(out, self.group_ids, values)
        return out


def parse_random_intercept(
    groups: dict[str, NDArray],
    n: int,
) -> RandomInterceptSpec:
    """Turn the single-entry groups mapping into a RandomInterceptSpec.

    Level order is first appearance for plain arrays and category order
    for pandas categoricals, so an ordered Nest factor keeps its order in
    reported conditional modes.

    Args:
        groups: Mapping of grouping factor name → group labels array (n,).
        n: Number of observations.

    Returns:
        RandomInterceptSpec.
    """
    if len(groups) != 1:
        raise ValueError(
            f"Exactly one grouping factor is supported, got {len(groups)}: "
            f"{list(groups.keys())}"
        )
    (group_name, group_raw), = groups.items()

    if len(group_raw) != n:
        raise ValueError(
            f"Group '{group_name}' has {len(group_raw)} elements, "
            f"expected {n}"
        )

    if isinstance(group_raw, pd.Series):
        group_raw = group_raw.array

    if isinstance(group_raw, pd.Categorical):
        codes = np.asarray(group_raw.codes)
        if np.any(codes < 0):
            raise ValueError(f"Group '{group_name}' contains missing labels")
        used = np.unique(codes)
        remap = np.full(len(group_raw.categories), -1, dtype=np.intp)
        remap[used] = np.arange(len(used))
        group_ids = remap[codes]
        levels = tuple(group_raw.categories[used].tolist())
    else:
        group_raw = np.asarray(group_raw)
        _, first_idx, inverse = np.unique(
            group_raw, return_index=True, return_inverse=True
        )
        # relabel by first appearance
        order = np.argsort(first_idx, kind='stable')
        rank = np.empty_like(order)
        rank[order] = np.arange(len(order))
        group_ids = rank[inverse.ravel()]
        levels = tuple(group_raw[np.sort(first_idx)].tolist())

    return RandomInterceptSpec(
        group_name=str(group_name),
        group_ids=group_ids.astype(np.intp),
        levels=levels,
        n_groups=len(levels),
    )


def sigma_start() -> float:
    """Starting value for σ (σ_b = 1 on the log scale)."""
    return 1.0


def sigma_bounds() -> tuple[float, None]:
    """L-BFGS-B bounds for σ: non-negative, unbounded above."""
    return (0.0, None)
