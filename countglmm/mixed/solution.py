"""
Solution wrapper for count GLMMs.

GLMMSolution wraps Result[GLMMParams] and provides glmmTMB-style summary
output, property accessors for common quantities, a coefficient table as
a DataFrame, and model comparison via likelihood ratio tests.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats

from countglmm.core.result import Result
from countglmm.mixed._common import GLMMParams, VarCompSummary, ZeroInflationSummary


def _significance_stars(p: float) -> str:
    """Return significance stars like R."""
    if not np.isfinite(p):
        return ' '
    if p < 0.001:
        return '***'
    elif p < 0.01:
        return '**'
    elif p < 0.05:
        return '*'
    elif p < 0.1:
        return '.'
    else:
        return ' '


def _format_pvalue(p: float) -> str:
    """Format p-value like R."""
    if not np.isfinite(p):
        return 'NA'
    if p < 2e-16:
        return '< 2e-16'
    elif p < 0.001:
        return f'{p:.2e}'
    else:
        return f'{p:.4f}'


class GLMMSolution:
    """Solution wrapper for a fitted count GLMM.

    Uses Wald z-statistics for inference on fixed effects and the
    zero-inflation intercept.
    """

    def __init__(self, _result: Result[GLMMParams]):
        self._result = _result

    @property
    def params(self) -> GLMMParams:
        return self._result.params

    @property
    def info(self) -> dict:
        return dict(self._result.info)

    @property
    def timing(self) -> dict[str, float] | None:
        return self._result.timing

    @property
    def warnings(self) -> tuple[str, ...]:
        """Non-fatal diagnostics recorded during the fit."""
        return self._result.warnings

    # --- Fixed effects ---

    @property
    def coefficients(self) -> NDArray:
        """Fixed effect estimates β̂."""
        return self.params.coefficients

    @property
    def coefficient_names(self) -> tuple[str, ...]:
        return self.params.coefficient_names

    @property
    def fixef(self) -> dict[str, float]:
        """Fixed effects as name → value dict."""
        return dict(zip(self.params.coefficient_names,
                        (float(c) for c in self.params.coefficients)))

    @property
    def se(self) -> NDArray:
        return self.params.se

    @property
    def z_values(self) -> NDArray:
        """Wald z-statistics for fixed effects."""
        return self.params.z_values

    @property
    def p_values(self) -> NDArray:
        return self.params.p_values

    @property
    def vcov(self) -> NDArray:
        """Covariance matrix of the fixed effects."""
        return self.params.vcov

    def coef_table(self) -> pd.DataFrame:
        """Conditional-model coefficient table, one row per fixed effect."""
        return pd.DataFrame(
            {
                'Estimate': self.params.coefficients,
                'Std. Error': self.params.se,
                'z value': self.params.z_values,
                'Pr(>|z|)': self.params.p_values,
            },
            index=pd.Index(self.params.coefficient_names, name='term'),
        )

    # --- Random effects ---

    @property
    def ranef(self) -> dict[str, NDArray]:
        """Conditional modes b̂ per grouping factor, shape (J, 1)."""
        return self.params.random_effects

    def ranef_frame(self) -> pd.DataFrame:
        """Conditional modes with their group levels as the index."""
        frames = []
        for group, values in self.params.random_effects.items():
            levels = self.params.random_effect_levels[group]
            frames.append(pd.DataFrame(
                {'group': group, '(Intercept)': values[:, 0]},
                index=pd.Index(levels, name='level'),
            ))
        return pd.concat(frames)

    @property
    def var_components(self) -> tuple[VarCompSummary, ...]:
        return self.params.var_components

    @property
    def random_effect_variance(self) -> float:
        """Variance of the random intercept."""
        return self.params.var_components[0].variance

    # --- Distribution parameters ---

    @property
    def family(self) -> str:
        return self.params.family_name

    @property
    def dispersion(self) -> float | None:
        """φ for nbinom1, θ for nbinom2, None for Poisson."""
        return self.params.dispersion

    @property
    def zero_inflation(self) -> ZeroInflationSummary | None:
        """Zero-inflation intercept estimate, or None when not zero-inflated."""
        return self.params.zero_inflation

    @property
    def is_zero_inflated(self) -> bool:
        return self.params.zero_inflation is not None

    @property
    def is_singular(self) -> bool:
        return self._result.has_warning('Singular fit')

    # --- Model fit ---

    @property
    def log_likelihood(self) -> float:
        return self.params.log_likelihood

    @property
    def deviance(self) -> float:
        return self.params.deviance

    @property
    def aic(self) -> float:
        return self.params.aic

    @property
    def bic(self) -> float:
        return self.params.bic

    @property
    def n_params(self) -> int:
        return self.params.n_params

    @property
    def fitted_values(self) -> NDArray:
        """Expected response given the conditional modes."""
        return self.params.fitted_values

    @property
    def linear_predictor(self) -> NDArray:
        """Linear predictor (η̂ = Xβ̂ + offset + b̂)."""
        return self.params.linear_predictor

    @property
    def residuals(self) -> NDArray:
        return self.params.residuals

    @property
    def converged(self) -> bool:
        return self.params.converged

    @property
    def convergence_warnings(self) -> tuple[str, ...]:
        """Optimizer and conditional-mode non-convergence messages."""
        return self._result.warnings_matching('converge')

    @property
    def fit_seconds(self) -> float | None:
        return self._result.total_seconds

    # --- Model comparison ---

    def compare(self, other: 'GLMMSolution') -> str:
        """Likelihood ratio test between two nested models.

        Args:
            other: The other model to compare against.

        Returns:
            Formatted LRT summary string.
        """
        if self.n_params >= other.n_params:
            full, reduced = self, other
        else:
            full, reduced = other, self

        chi_sq = -2.0 * (reduced.log_likelihood - full.log_likelihood)
        chi_sq = max(chi_sq, 0.0)
        df = full.n_params - reduced.n_params
        if df <= 0:
            df = 1
        p_value = float(stats.chi2.sf(chi_sq, df))

        lines = [
            "Likelihood Ratio Test",
            "=" * 50,
            f"  Reduced model logLik: {reduced.log_likelihood:.4f}  "
            f"(df = {reduced.n_params})",
            f"  Full model logLik:    {full.log_likelihood:.4f}  "
            f"(df = {full.n_params})",
            f"  Chi-squared: {chi_sq:.4f}  on {df} df",
            f"  p-value: {_format_pvalue(p_value)}",
        ]
        return '\n'.join(lines)

    # --- Summary ---

    def summary(self) -> str:
        """R-style summary modelled on summary(glmmTMB(...))."""
        params = self.params
        formula = self._result.info.get('formula')

        lines = []
        if params.method == 'Laplace':
            lines.append(
                "Generalized linear mixed model fit by ML "
                "(Laplace Approximation)"
            )
        else:
            lines.append(
                f"Generalized linear mixed model fit by ML "
                f"(Adaptive Gauss-Hermite Quadrature, nAGQ = {params.n_agq})"
            )
        lines.append(f" Family: {params.family_name}  ( {params.link_name} )")
        if formula:
            lines.append(f"Formula:          {formula}")
        if params.zero_inflation is not None:
            lines.append("Zero inflation:          ~1")
        lines.append("")

        lines.append(f"{'AIC':>10s} {'BIC':>10s} {'logLik':>10s} "
                     f"{'deviance':>10s} {'df.resid':>9s}")
        lines.append(f"{params.aic:10.1f} {params.bic:10.1f} "
                     f"{params.log_likelihood:10.1f} {params.deviance:10.1f} "
                     f"{params.df_resid:9d}")
        lines.append("")

        # Random effects
        lines.append("Random effects:")
        lines.append("")
        lines.append("Conditional model:")
        lines.append(f" {'Groups':<12s} {'Name':<15s} {'Variance':>10s} "
                     f"{'Std.Dev.':>10s}")
        prev_group = None
        for vc in params.var_components:
            grp_label = vc.group if vc.group != prev_group else ''
            lines.append(
                f" {grp_label:<12s} {vc.name:<15s} {vc.variance:10.4g} "
                f"{vc.std_dev:10.4g}"
            )
            prev_group = vc.group

        group_parts = ', '.join(
            f'{name}, {n}' for name, n in params.n_groups.items()
        )
        lines.append(
            f"Number of obs: {params.n_obs}, groups:  {group_parts}"
        )
        lines.append("")

        if params.dispersion is not None:
            lines.append(
                f"Dispersion parameter for {params.family_name} family (): "
                f"{params.dispersion:.3g}"
            )
            lines.append("")

        # Fixed effects (Wald z-test)
        lines.append("Conditional model:")
        lines.append(self._coef_lines(
            params.coefficient_names, params.coefficients, params.se,
            params.z_values, params.p_values,
        ))

        if params.zero_inflation is not None:
            zi = params.zero_inflation
            lines.append("")
            lines.append("Zero-inflation model:")
            lines.append(self._coef_lines(
                ('(Intercept)',), [zi.estimate], [zi.se],
                [zi.z_value], [zi.p_value],
            ))
            lines.append(f"Structural-zero probability: {zi.probability:.4f}")

        lines.append("---")
        lines.append("Signif. codes:  0 '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 ' ' 1")

        if not params.converged:
            lines.append("")
            lines.append("WARNING: Model did not converge")
        for w in self._result.warnings:
            lines.append(f"Warning: {w}")

        return '\n'.join(lines)

    @staticmethod
    def _coef_lines(names, estimates, ses, zs, ps) -> str:
        width = max(15, max(len(n) for n in names))
        rows = [
            f" {'':>{width}s} {'Estimate':>10s} {'Std. Error':>10s} "
            f"{'z value':>10s} {'Pr(>|z|)':>10s} {'':>4s}"
        ]
        for name, est, se, z, p in zip(names, estimates, ses, zs, ps):
            rows.append(
                f" {name:>{width}s} {est:10.4f} {se:10.4f} "
                f"{z:10.3f} {_format_pvalue(p):>10s} {_significance_stars(p)}"
            )
        return '\n'.join(rows)

    def __repr__(self) -> str:
        nfe = len(self.params.coefficients)
        zi = ', zi' if self.is_zero_inflated else ''
        return (
            f"GLMMSolution({self.params.family_name}({self.params.link_name}){zi}, "
            f"{self.params.method}, "
            f"n={self.params.n_obs}, "
            f"fixed={nfe}, "
            f"random={len(self.params.var_components)} var components)"
        )
