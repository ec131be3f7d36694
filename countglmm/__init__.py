"""
countglmm: count-data mixed models for the Owls sibling-negotiation data.

Fits Poisson, NB1 and NB2 generalized linear mixed models, with and
without zero inflation, by Laplace approximation or adaptive
Gauss-Hermite quadrature, and reports them side by side.

Submodules:
    core: DataSource, Result envelope, exceptions, validators, timing
    mixed: Count GLMM engine (glmm, GLMMSolution, families)
    owls: Owls loader, transform, formula, fits, report, pipeline
"""

__version__ = "0.1.0"

from countglmm import core
from countglmm import mixed
from countglmm import owls

__all__ = [
    "__version__",
    "core",
    "mixed",
    "owls",
]
