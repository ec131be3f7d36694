"""
Common data types for count GLMMs.

Contains the frozen parameter payloads that go inside Result[P] envelopes.
Each payload is a pure data container — no methods, no computation.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), 1-48.
    Brooks, M. E., et al. (2017). glmmTMB balances speed and flexibility
    among packages for zero-inflated generalized linear mixed modeling.
    The R Journal, 9(2), 378-400.
"""

from dataclasses import dataclass

from numpy.typing import NDArray


@dataclass(frozen=True)
class VarCompSummary:
    """Variance component summary for one random effect term.

    Attributes:
        group: Grouping factor name (e.g. 'Nest').
        name: Term name within the group ('(Intercept)').
        variance: Estimated variance σ²_b for this component.
        std_dev: Standard deviation (sqrt of variance).
    """
    group: str
    name: str
    variance: float
    std_dev: float


@dataclass(frozen=True)
class ZeroInflationSummary:
    """Estimate of the single zero-inflation intercept.

    Attributes:
        estimate: ψ̂ on the logit scale.
        se: Standard error of ψ̂.
        z_value: ψ̂ / se.
        p_value: Two-sided normal p-value.
        probability: π̂ = logistic(ψ̂), the structural-zero probability.
    """
    estimate: float
    se: float
    z_value: float
    p_value: float
    probability: float


@dataclass(frozen=True)
class GLMMParams:
    """
    Parameter payload for a fitted count GLMM.

    Contains all estimates needed to reconstruct the model summary,
    perform inference, and extract conditional modes.
    """
    # Fixed effects
    coefficients: NDArray              # β̂ (p,)
    coefficient_names: tuple[str, ...]
    se: NDArray                        # standard errors of β̂ (p,)
    z_values: NDArray                  # Wald z = β̂ / se (p,)
    p_values: NDArray                  # from the normal distribution (p,)
    vcov: NDArray                      # Var(β̂) (p, p)

    # Random effects
    var_components: tuple[VarCompSummary, ...]

    # Distribution
    family_name: str
    link_name: str
    dispersion_name: str | None        # 'phi' (nbinom1), 'theta' (nbinom2)
    dispersion: float | None
    zero_inflation: ZeroInflationSummary | None

    # Model fit
    log_likelihood: float
    deviance: float                    # -2 logLik, as glmmTMB reports it
    aic: float
    bic: float
    n_params: int
    df_resid: int
    n_obs: int
    n_groups: dict[str, int]

    # Approximation
    method: str                        # 'Laplace' or 'AGQ'
    n_agq: int

    # Convergence
    converged: bool
    n_iter: int

    # Random effects conditional modes
    random_effects: dict[str, NDArray]  # group_name → (n_groups, 1)
    random_effect_levels: dict[str, tuple]

    # Predictions
    fitted_values: NDArray             # E[y | b̂] on the response scale (n,)
    linear_predictor: NDArray          # η̂ = Xβ̂ + offset + b̂ (n,)
    residuals: NDArray                 # y - fitted (n,)

    # Internal
    theta: NDArray                     # converged optimizer vector
