"""
Fit-variant catalogue and fit invocations for the Owls analysis.

Eight fits of the same formula:
    poisson, zipoisson       Poisson, without / with zero inflation
    nbinom1, zinbinom1       NB1 (Var = μ(1+φ)), without / with zero inflation
    nbinom2, zinbinom2       NB2 (Var = μ(1+μ/θ)), without / with zero inflation
    poisson_agq, negbin_agq  Poisson and NB2 by adaptive Gauss-Hermite
                             quadrature instead of the Laplace approximation
"""

from __future__ import annotations

from dataclasses import dataclass
import warnings

from countglmm.core.datasource import DataSource
from countglmm.core.exceptions import CountGLMMError, ValidationError
from countglmm.core.timing import timed
from countglmm.mixed import glmm, GLMMSolution, DEFAULT_N_AGQ, FAMILY_NAMES
from countglmm.owls.formula import ModelFormula, ModelMatrices, OWLS_FORMULA, build_design


ENGINES = ('laplace', 'quadrature')


@dataclass(frozen=True)
class FitSpec:
    """One requested fit: family, zero inflation and integration engine."""
    name: str
    family: str
    zero_inflation: bool = False
    engine: str = 'laplace'
    n_agq: int = 1

    def __post_init__(self):
        if self.family.lower() not in FAMILY_NAMES:
            raise ValidationError(
                f"Unknown family '{self.family}' for fit '{self.name}'; "
                f"expected one of {FAMILY_NAMES}"
            )
        if self.engine not in ENGINES:
            raise ValidationError(
                f"Unknown engine '{self.engine}' for fit '{self.name}'; "
                f"expected one of {ENGINES}"
            )
        if self.engine == 'laplace' and self.n_agq != 1:
            raise ValidationError(
                f"Fit '{self.name}': the laplace engine uses n_agq=1, "
                f"got {self.n_agq}"
            )


OWLS_FITS = (
    FitSpec('poisson', 'poisson'),
    FitSpec('zipoisson', 'poisson', zero_inflation=True),
    FitSpec('nbinom1', 'nbinom1'),
    FitSpec('zinbinom1', 'nbinom1', zero_inflation=True),
    FitSpec('nbinom2', 'nbinom2'),
    FitSpec('zinbinom2', 'nbinom2', zero_inflation=True),
    FitSpec('poisson_agq', 'poisson', engine='quadrature', n_agq=DEFAULT_N_AGQ),
    FitSpec('negbin_agq', 'nbinom2', engine='quadrature', n_agq=DEFAULT_N_AGQ),
)


@dataclass(frozen=True)
class FitOutcome:
    """What happened to one FitSpec.

    Exactly one of solution / error is set.
    """
    spec: FitSpec
    solution: GLMMSolution | None = None
    warnings: tuple[str, ...] = ()
    error: CountGLMMError | None = None
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.solution is not None


def fit_model(
    source: DataSource,
    formula: ModelFormula,
    family: str,
    zero_inflation: bool = False,
    *,
    n_agq: int = 1,
) -> GLMMSolution:
    """Fit one count GLMM of formula to source.

    Args:
        source: Prepared Owls DataSource.
        formula: Structured model formula.
        family: 'poisson', 'nbinom1', 'nbinom2' or 'negative_binomial'.
        zero_inflation: Add a single zero-inflation intercept.
        n_agq: Quadrature nodes; 1 is the Laplace approximation.

    Returns:
        GLMMSolution.
    """
    design = build_design(formula, source)
    return _fit_design(design, formula, family, zero_inflation, n_agq)


def fit_all(
    source: DataSource,
    formula: ModelFormula = OWLS_FORMULA,
    specs: tuple[FitSpec, ...] = OWLS_FITS,
    *,
    verbose: bool = False,
) -> dict[str, FitOutcome]:
    """Run every FitSpec against the same design.

    Each fit is attempted regardless of how the others went. Warnings
    raised during a fit are recorded on its FitOutcome and re-issued; a
    CountGLMMError is recorded as the outcome's error.

    Returns:
        name → FitOutcome, in the order of specs.
    """
    names = [s.name for s in specs]
    if len(set(names)) != len(names):
        raise ValidationError(f"Fit names must be unique, got {names}")

    design = build_design(formula, source)
    if verbose:
        print(f"Design: n={len(design.y)}, p={design.X.shape[1]}, "
              f"{len(design.group_levels)} levels of {design.group_name}")

    outcomes: dict[str, FitOutcome] = {}
    for spec in specs:
        if verbose:
            print(f"Fitting {spec.name} ({spec.family}, "
                  f"zi={spec.zero_inflation}, {spec.engine})...")
        with timed() as timer, warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            try:
                solution = _fit_design(
                    design, formula, spec.family, spec.zero_inflation, spec.n_agq,
                )
                error = None
            except CountGLMMError as e:
                solution = None
                error = e
        elapsed = timer.total

        for w in caught:
            warnings.warn(w.message, w.category, stacklevel=2)

        outcomes[spec.name] = FitOutcome(
            spec=spec,
            solution=solution,
            warnings=tuple(str(w.message) for w in caught),
            error=error,
            elapsed_seconds=elapsed,
        )
        if verbose:
            if error is not None:
                print(f"  {spec.name} failed: {error}")
            else:
                print(f"  {spec.name}: logLik={solution.log_likelihood:.2f}, "
                      f"AIC={solution.aic:.2f} ({elapsed:.2f}s)")

    return outcomes


def _fit_design(
    design: ModelMatrices,
    formula: ModelFormula,
    family: str,
    zero_inflation: bool,
    n_agq: int,
) -> GLMMSolution:
    return glmm(
        design.y,
        design.X,
        groups=design.groups,
        family=family,
        offset=design.offset,
        zero_inflation=zero_inflation,
        n_agq=n_agq,
        coefficient_names=design.column_names,
        formula=formula.describe(),
    )
