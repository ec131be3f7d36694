"""
Numerical Hessian of the approximated deviance.

Standard errors for a count GLMM come from the observed information at
the optimum: Var(θ̂) ≈ 2 H⁻¹ where H is the Hessian of the deviance
(-2 log L). The deviance is only available as a function value, so H is
built from central differences.
"""

from __future__ import annotations

from typing import Callable
import numpy as np
from numpy.typing import NDArray


def numerical_hessian(
    f: Callable[[NDArray], float],
    x: NDArray,
    rel_step: float = 1e-4,
) -> NDArray:
    """Central-difference Hessian of a scalar function.

    Diagonal:     (f(x+hᵢ) - 2f(x) + f(x-hᵢ)) / hᵢ²
    Off-diagonal: (f(x+hᵢ+hⱼ) - f(x+hᵢ-hⱼ) - f(x-hᵢ+hⱼ) + f(x-hᵢ-hⱼ)) / (4hᵢhⱼ)

    Args:
        f: Function to differentiate.
        x: Point of evaluation (k,).
        rel_step: Step relative to max(|xᵢ|, 1).

    Returns:
        Symmetric (k, k) Hessian.
    """
    x = np.asarray(x, dtype=np.float64)
    k = len(x)
    h = rel_step * np.maximum(np.abs(x), 1.0)
    f0 = f(x)
    H = np.zeros((k, k), dtype=np.float64)

    def shifted(i, si, j=None, sj=0.0):
        xs = x.copy()
        xs[i] += si * h[i]
        if j is not None:
            xs[j] += sj * h[j]
        return f(xs)

    for i in range(k):
        H[i, i] = (shifted(i, 1.0) - 2.0 * f0 + shifted(i, -1.0)) / h[i] ** 2
        for j in range(i):
            val = (shifted(i, 1.0, j, 1.0) - shifted(i, 1.0, j, -1.0)
                   - shifted(i, -1.0, j, 1.0) + shifted(i, -1.0, j, -1.0))
            H[i, j] = H[j, i] = val / (4.0 * h[i] * h[j])

    return H


def covariance_from_deviance_hessian(H: NDArray) -> tuple[NDArray, bool]:
    """Invert the deviance Hessian into a covariance matrix.

    Returns:
        (vcov, positive_definite). When H is not positive definite the
        pseudo-inverse is returned and the flag is False.
    """
    H_sym = 0.5 * (H + H.T)
    # observed information of log L = H / 2
    info = 0.5 * H_sym
    try:
        np.linalg.cholesky(info)
        return np.linalg.inv(info), True
    except np.linalg.LinAlgError:
        return np.linalg.pinv(info), False
