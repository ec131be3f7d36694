"""
Conditional modes of the random intercepts (inner loop).

For fixed (β, σ, extra), the log joint density of the data and the
standardised random effects splits into independent group terms

    h_j(u) = Σ_{i in j} log f(y_i | η_i + σ u) - u² / 2

Each h_j is maximised by a damped Newton iteration, vectorised across
groups. The maximiser û_j and the curvature -h_j''(û_j) are what the
Laplace and adaptive Gauss-Hermite approximations need.

This plays the part PIRLS plays in lme4: the inner loop of GLMM
estimation. The outer loop optimises the approximated deviance.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), Section 3.
    Pinheiro, J. C., & Bates, D. M. (1995). Approximations to the
    log-likelihood function in the nonlinear mixed-effects model.
    Journal of Computational and Graphical Statistics, 4(1), 12-35.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray

from countglmm.mixed._random_effects import RandomInterceptSpec


@dataclass(frozen=True)
class ModeResult:
    """Result from the conditional-mode iteration.

    Attributes:
        u: Conditional modes û_j of the standardised effects (J,).
        curvature: -h_j''(û_j), strictly positive (J,).
        h_value: h_j(û_j) (J,).
        converged: Whether every group met the gradient tolerance.
        n_iter: Number of Newton iterations.
    """
    u: NDArray
    curvature: NDArray
    h_value: NDArray
    converged: bool
    n_iter: int


def group_objective(
    u: NDArray,
    y: NDArray,
    eta_fixed: NDArray,
    sigma: float,
    spec: RandomInterceptSpec,
    family,
    extra: NDArray,
) -> NDArray:
    """h_j(u_j) for every group, shape (J,)."""
    eta = eta_fixed + sigma * u[spec.group_ids]
    ll = family.logpmf(y, eta, extra)
    return spec.group_sum(ll) - 0.5 * u ** 2


def solve_modes(
    y: NDArray,
    eta_fixed: NDArray,
    sigma: float,
    spec: RandomInterceptSpec,
    family,  # mixed.families.Family
    extra: NDArray,
    tol: float = 1e-8,
    max_iter: int = 50,
    max_halvings: int = 30,
) -> ModeResult:
    """Damped Newton for the per-group conditional modes.

    Each iteration:
    1. Gradient: σ Σ_i d1_i - u
    2. Hessian:  σ² Σ_i d2_i - 1
    3. Newton step where the Hessian is negative, gradient step elsewhere
    4. Halve the step, per group, until h_j does not decrease

    Args:
        y: Count response (n,).
        eta_fixed: Xβ + offset (n,).
        sigma: Random-intercept standard deviation σ (may be 0).
        spec: Random intercept specification.
        family: Family providing logpmf and derivatives.
        extra: Family extra parameters.
        tol: Convergence tolerance on max |gradient|.
        max_iter: Maximum Newton iterations.
        max_halvings: Maximum step halvings per iteration.

    Returns:
        ModeResult.
    """
    J = spec.n_groups
    u = np.zeros(J, dtype=np.float64)
    h_old = group_objective(u, y, eta_fixed, sigma, spec, family, extra)
    converged = False
    n_iter = 0

    for iteration in range(1, max_iter + 1):
        n_iter = iteration
        eta = eta_fixed + sigma * u[spec.group_ids]
        d1, d2 = family.derivatives(y, eta, extra)
        grad = sigma * spec.group_sum(d1) - u
        hess = sigma ** 2 * spec.group_sum(d2) - 1.0

        if np.max(np.abs(grad)) < tol:
            converged = True
            break

        step = np.where(hess < 0, -grad / np.where(hess < 0, hess, -1.0), grad)

        t = np.ones(J, dtype=np.float64)
        for _ in range(max_halvings):
            u_new = u + t * step
            h_new = group_objective(u_new, y, eta_fixed, sigma, spec, family, extra)
            # a NaN objective counts as worse
            worse = ~(h_new >= h_old - 1e-12 * np.abs(h_old))
            if not np.any(worse):
                break
            t = np.where(worse, 0.5 * t, t)
        else:
            # keep the old value for groups that never improved
            u_new = np.where(worse, u, u_new)
            h_new = np.where(worse, h_old, h_new)

        u = u_new
        h_old = h_new

    eta = eta_fixed + sigma * u[spec.group_ids]
    _, d2 = family.derivatives(y, eta, extra)
    curvature = 1.0 - sigma ** 2 * spec.group_sum(d2)
    curvature = np.maximum(curvature, 1e-10)

    return ModeResult(
        u=u,
        curvature=curvature,
        h_value=h_old,
        converged=converged,
        n_iter=n_iter,
    )
