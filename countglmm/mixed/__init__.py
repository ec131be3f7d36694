"""
Count-data generalized linear mixed models with one random intercept.

Public API:
    glmm()          — fit a Poisson / NB1 / NB2 GLMM, optionally zero-inflated,
                      by Laplace approximation or adaptive Gauss-Hermite quadrature
    GLMMSolution    — result wrapper
    resolve_family  — family name → Family instance
"""

from countglmm.mixed.solvers import glmm, DEFAULT_N_AGQ, SINGULAR_TOL
from countglmm.mixed.solution import GLMMSolution
from countglmm.mixed.families import (
    Family,
    Poisson,
    NegativeBinomial1,
    NegativeBinomial2,
    ZeroInflated,
    resolve_family,
    FAMILY_NAMES,
)

__all__ = [
    "glmm",
    "GLMMSolution",
    "DEFAULT_N_AGQ",
    "SINGULAR_TOL",
    "Family",
    "Poisson",
    "NegativeBinomial1",
    "NegativeBinomial2",
    "ZeroInflated",
    "resolve_family",
    "FAMILY_NAMES",
]
