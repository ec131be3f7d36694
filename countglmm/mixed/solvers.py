"""
Solver for count GLMMs with one random intercept.

Public API:
    glmm() — fit a Poisson / NB1 / NB2 mixed model, optionally
             zero-inflated, by Laplace approximation (n_agq=1) or
             adaptive Gauss-Hermite quadrature (n_agq>1)
"""

from __future__ import annotations

import warnings
import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.optimize import minimize
from scipy import stats

from countglmm.core.exceptions import (
    ConvergenceError, FitDidNotConverge, SingularFit, ValidationError,
)
from countglmm.core.result import Result
from countglmm.core.timing import Timer

from countglmm.mixed._common import (
    GLMMParams, VarCompSummary, ZeroInflationSummary,
)
from countglmm.mixed._random_effects import (
    parse_random_intercept, sigma_bounds, sigma_start,
)
from countglmm.mixed._deviance import (
    approximate_deviance, marginal_loglik_groups, split_theta,
)
from countglmm.mixed._hessian import (
    numerical_hessian, covariance_from_deviance_hessian,
)
from countglmm.mixed.design import MixedDesign
from countglmm.mixed.families import Family, ZeroInflated, resolve_family
from countglmm.mixed.solution import GLMMSolution


# Random-effect SD below this is reported as a singular fit (lme4's isSingular default)
SINGULAR_TOL = 1e-4

# Largest optimizer gradient accepted as converged when L-BFGS-B stops
# on a line-search failure
GRAD_TOL = 1e-3

# Quadrature nodes used by the alternate engine (GLMMadaptive default)
DEFAULT_N_AGQ = 11


def glmm(
    y: ArrayLike,
    X: ArrayLike,
    groups: dict[str, ArrayLike],
    *,
    family: 'str | Family' = 'poisson',
    offset: ArrayLike | None = None,
    zero_inflation: bool = False,
    n_agq: int = 1,
    coefficient_names: list[str] | tuple[str, ...] | None = None,
    formula: str | None = None,
    tol: float = 1e-10,
    max_iter: int = 500,
) -> GLMMSolution:
    """Fit a count generalized linear mixed model.

    Model:
        y_i | b ~ family(μ_i),  log μ_i = X_i β + offset_i + b_g(i)
        b_j ~ N(0, σ²)
        with zero_inflation: P(y=0) = π + (1-π) f(0), π = logistic(ψ)

    The marginal likelihood is approximated per group around the
    conditional mode (damped Newton inner loop) by adaptive Gauss-Hermite
    quadrature with n_agq nodes; n_agq=1 is the Laplace approximation.
    The outer optimisation runs L-BFGS-B over (β, σ ≥ 0, log dispersion, ψ)
    from deterministic starting values, so repeated calls on the same
    inputs return identical estimates.

    Args:
        y: Count response vector (n,).
        X: Fixed effects design matrix (n, p). Should include an
            intercept column if desired.
        groups: Dict with one grouping factor name → label array.
            Example: {'Nest': nest_labels}.
        family: 'poisson', 'nbinom1', 'nbinom2' ('negative_binomial' is
            an alias of 'nbinom2') or a Family instance.
        offset: Optional offset on the log scale, e.g. log(BroodSize).
        zero_inflation: If True, add a single zero-inflation intercept.
        n_agq: Number of adaptive quadrature nodes (1 = Laplace).
        coefficient_names: Names for the columns of X.
        formula: Optional formula text, shown in summary() only.
        tol: Relative tolerance on the deviance for the optimizer.
        max_iter: Maximum optimizer iterations.

    Returns:
        GLMMSolution with fixed effects, the random-intercept variance,
        dispersion / zero-inflation estimates and model fit.

    Warns:
        FitDidNotConverge: optimizer failed, or Hessian not positive definite.
        SingularFit: random-intercept SD estimated below SINGULAR_TOL.

    Raises:
        ValidationError: On invalid inputs.
        ConvergenceError: If the deviance is not finite at the start.

    Examples:
        >>> result = glmm(y, X, groups={'Nest': nest},
        ...               family='nbinom2', offset=np.log(brood),
        ...               zero_inflation=True)
        >>> print(result.summary())
    """
    timer = Timer()
    timer.start()

    if isinstance(n_agq, bool) or not isinstance(n_agq, (int, np.integer)) or n_agq < 1:
        raise ValidationError(f"n_agq must be a positive integer, got {n_agq!r}")
    n_agq = int(n_agq)

    base = resolve_family(family)
    if zero_inflation and not isinstance(base, ZeroInflated):
        response = ZeroInflated(base)
    else:
        response = base
    is_zi = isinstance(response, ZeroInflated)

    design = MixedDesign.validate(
        y, X, groups,
        offset=offset,
        coefficient_names=coefficient_names,
    )
    p = design.p

    with timer.section('setup'):
        spec = parse_random_intercept(design.groups, design.n)
        X_s, A = _standardize_columns(design.X)
        beta0 = _initial_beta(X_s, design.y, design.offset)
        theta0 = np.concatenate([
            beta0, [sigma_start()], response.extra_start(),
        ])
        bounds = ([(None, None)] * p + [sigma_bounds()]
                  + response.extra_bounds())

    def objective(theta):
        return approximate_deviance(
            theta, X_s, design.y, design.offset, spec, response, n_agq
        )

    dev0 = objective(theta0)
    if not np.isfinite(dev0):
        raise ConvergenceError(
            "Deviance is not finite at the starting values; check the "
            "response, offset and design for extreme values",
            iterations=0,
            reason='non_finite_start',
        )

    with timer.section('optimization'):
        opt_result = minimize(
            objective,
            theta0,
            method='L-BFGS-B',
            bounds=bounds,
            options={'maxiter': max_iter, 'ftol': tol, 'gtol': 1e-6},
        )

    theta_s = opt_result.x
    n_iter = int(opt_result.nit)
    max_grad = _max_projected_gradient(opt_result.jac, theta_s, bounds)
    converged = bool(opt_result.success) or max_grad < GRAD_TOL

    warn_list = []
    if not converged:
        msg = (
            f"GLMM optimizer did not converge after {n_iter} iterations "
            f"(max |gradient| = {max_grad:.3g}). Message: {opt_result.message}"
        )
        warnings.warn(msg, FitDidNotConverge, stacklevel=2)
        warn_list.append(msg)

    # Observed information at the optimum
    with timer.section('hessian'):
        H = numerical_hessian(objective, theta_s)
        vcov_s, hessian_pd = covariance_from_deviance_hessian(H)

    if not hessian_pd:
        msg = (
            "Non-positive-definite Hessian at the optimum; standard errors "
            "use a pseudo-inverse and may be unreliable"
        )
        warnings.warn(msg, FitDidNotConverge, stacklevel=2)
        warn_list.append(msg)

    # Back to the original column scale
    with timer.section('inference'):
        T = np.eye(len(theta_s))
        T[:p, :p] = A
        theta_hat = T @ theta_s
        vcov = T @ vcov_s @ T.T

        beta, sigma, extra = split_theta(theta_hat, p)
        sigma = abs(sigma)
        vcov_beta = vcov[:p, :p]
        se = np.sqrt(np.maximum(np.diag(vcov_beta), 0.0))
        with np.errstate(divide='ignore', invalid='ignore'):
            z_vals = beta / se
        p_vals = 2.0 * stats.norm.sf(np.abs(z_vals))

        zi_summary = None
        if is_zi:
            psi = float(extra[-1])
            psi_se = float(np.sqrt(max(vcov[-1, -1], 0.0)))
            psi_z = psi / psi_se if psi_se > 0 else np.nan
            zi_summary = ZeroInflationSummary(
                estimate=psi,
                se=psi_se,
                z_value=float(psi_z),
                p_value=float(2.0 * stats.norm.sf(abs(psi_z))),
                probability=response.zero_probability(extra),
            )

    if sigma < SINGULAR_TOL:
        msg = (
            f"Singular fit: random-intercept SD for '{spec.group_name}' "
            f"estimated at {sigma:.3g} (boundary)"
        )
        warnings.warn(msg, SingularFit, stacklevel=2)
        warn_list.append(msg)

    # Conditional modes, fit statistics and predictions at the optimum
    with timer.section('model_fit'):
        log_lik_groups, modes = marginal_loglik_groups(
            beta, sigma, extra, design.X, design.y, design.offset,
            spec, response, n_agq,
        )
        ll = float(np.sum(log_lik_groups))
        n_params = p + 1 + response.n_extra
        deviance = -2.0 * ll
        aic = deviance + 2.0 * n_params
        bic = deviance + np.log(design.n) * n_params

        b = sigma * modes.u
        eta = design.X @ beta + design.offset + b[spec.group_ids]
        fitted = response.mean(eta, extra)

    if not modes.converged:
        converged = False
        msg = f"Conditional modes did not converge after {modes.n_iter} iterations"
        warnings.warn(msg, FitDidNotConverge, stacklevel=2)
        warn_list.append(msg)

    timer.stop()

    params = GLMMParams(
        coefficients=beta,
        coefficient_names=design.coefficient_names,
        se=se,
        z_values=z_vals,
        p_values=p_vals,
        vcov=vcov_beta,
        var_components=(VarCompSummary(
            group=spec.group_name,
            name='(Intercept)',
            variance=sigma ** 2,
            std_dev=sigma,
        ),),
        family_name=response.name,
        link_name=response.link.name,
        dispersion_name=response.dispersion_name,
        dispersion=response.dispersion(extra),
        zero_inflation=zi_summary,
        log_likelihood=ll,
        deviance=deviance,
        aic=float(aic),
        bic=float(bic),
        n_params=n_params,
        df_resid=design.n - n_params,
        n_obs=design.n,
        n_groups={spec.group_name: spec.n_groups},
        method='Laplace' if n_agq == 1 else 'AGQ',
        n_agq=n_agq,
        converged=converged,
        n_iter=n_iter,
        random_effects={spec.group_name: b.reshape(-1, 1)},
        random_effect_levels={spec.group_name: spec.levels},
        fitted_values=fitted,
        linear_predictor=eta,
        residuals=design.y - fitted,
        theta=theta_hat,
    )

    result = Result(
        params=params,
        info={
            'method': params.method,
            'n_agq': n_agq,
            'family': response.name,
            'link': response.link.name,
            'zero_inflation': is_zi,
            'optimizer': 'L-BFGS-B',
            'converged': converged,
            'optimizer_message': str(opt_result.message),
            'max_gradient': max_grad,
            'n_iter': n_iter,
            'modes_converged': modes.converged,
            'hessian_positive_definite': hessian_pd,
            'deviance': deviance,
            'formula': formula,
        },
        timing=timer.result(),
        backend_name='cpu_laplace' if n_agq == 1 else 'cpu_agq',
        warnings=tuple(warn_list),
    )

    return GLMMSolution(_result=result)


# =====================================================================
# Helpers
# =====================================================================

def _standardize_columns(X: NDArray) -> tuple[NDArray, NDArray]:
    """Centre and scale the non-intercept columns of X.

    Returns (X_s, A) with X_s = X @ A, so β = A β_s maps estimates on the
    standardised columns back to the original ones. Centring only happens
    when an all-ones intercept column is present.
    """
    n, p = X.shape
    A = np.eye(p, dtype=np.float64)
    intercept = [j for j in range(p) if np.all(X[:, j] == 1.0)]
    ic = intercept[0] if intercept else None

    for j in range(p):
        if j == ic:
            continue
        col = X[:, j]
        center = float(np.mean(col)) if ic is not None else 0.0
        scale = float(np.std(col))
        if scale == 0.0:
            scale = max(abs(float(np.mean(col))), 1.0)
        A[j, j] = 1.0 / scale
        if ic is not None:
            A[ic, j] = -center / scale

    return X @ A, A


def _max_projected_gradient(jac, x: NDArray, bounds: list) -> float:
    """Largest gradient component that still points into the feasible box.

    A component at an active bound whose gradient pushes further out of
    the box does not count against convergence.
    """
    if jac is None:
        return np.inf
    g = np.array(jac, dtype=np.float64)
    for i, (lo, hi) in enumerate(bounds):
        if lo is not None and x[i] <= lo and g[i] > 0:
            g[i] = 0.0
        if hi is not None and x[i] >= hi and g[i] < 0:
            g[i] = 0.0
    return float(np.max(np.abs(g)))


def _initial_beta(
    X: NDArray,
    y: NDArray,
    offset: NDArray,
    tol: float = 1e-8,
    max_iter: int = 25,
) -> NDArray:
    """Fixed-effects Poisson IRLS fit used as the starting β.

    Same iteration as R's glm.fit: working response
    z = η - offset + (y - μ)/μ, working weights w = μ.
    """
    mu = np.maximum(y, 0.1)
    eta = np.log(mu)
    dev_old = np.inf
    beta = np.zeros(X.shape[1], dtype=np.float64)

    for _ in range(max_iter):
        z = eta - offset + (y - mu) / mu
        sw = np.sqrt(mu)
        beta, *_ = np.linalg.lstsq(X * sw[:, None], z * sw, rcond=None)
        eta = np.clip(X @ beta + offset, -30.0, 30.0)
        mu = np.exp(eta)
        with np.errstate(divide='ignore', invalid='ignore'):
            term = np.where(y > 0, y * np.log(y / mu), 0.0)
        dev = 2.0 * float(np.sum(term - (y - mu)))
        if abs(dev - dev_old) / (abs(dev) + 0.1) < tol:
            break
        dev_old = dev

    return beta
