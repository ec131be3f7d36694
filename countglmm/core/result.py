"""
Result envelope shared by the count-GLMM fits.

A fit returns Result[GLMMParams]: the estimates, a metadata dict
(method, n_agq, convergence flags, formula), per-section timings, the
engine name and the diagnostic messages issued while fitting.
"""

from dataclasses import dataclass, field
from typing import TypeVar, Generic, Any

P = TypeVar('P')  # Parameter payload type


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Frozen envelope around one fit's parameter payload.

    Attributes:
        params: Estimates (GLMMParams for glmm()).
        info: Metadata such as 'method', 'n_agq', 'converged', 'formula'.
        timing: Section timings from Timer.result(), or None.
        backend_name: 'cpu_laplace' or 'cpu_agq'.
        warnings: Messages of the FitDidNotConverge / SingularFit
            warnings issued during the fit, in order.

    Examples:
        >>> Result(
        ...     params=GLMMParams(...),
        ...     info={'method': 'Laplace', 'converged': True, 'n_iter': 41},
        ...     timing={'total_seconds': 0.5, 'optimization': 0.4},
        ...     backend_name='cpu_laplace',
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def warnings_matching(self, substring: str) -> tuple[str, ...]:
        """Recorded warnings containing substring."""
        return tuple(w for w in self.warnings if substring in w)

    def has_warning(self, substring: str) -> bool:
        return bool(self.warnings_matching(substring))

    @property
    def total_seconds(self) -> float | None:
        """Wall-clock time of the whole fit, if it was timed."""
        if self.timing is None:
            return None
        return self.timing.get('total_seconds')
