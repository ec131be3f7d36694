"""
Exception and warning hierarchy for countglmm.

All exceptions inherit from CountGLMMError to allow catching any
library-specific error. All diagnostic warnings inherit from
CountGLMMWarning so callers can filter or escalate them as a group.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information
    - Boundary conditions of a fit (singular variance, optimizer trouble)
      are warnings, not errors: the fit is still returned and reported
"""


class CountGLMMError(Exception):
    """Base exception for all countglmm errors."""
    pass


class ValidationError(CountGLMMError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.

    Raised when array shapes don't match expected dimensions or
    when multiple arrays have inconsistent shapes.
    """
    pass


class DataUnavailable(CountGLMMError):
    """
    The input table could not be located, read, or trusted.

    Raised by dataset loaders when the source is missing, unreadable,
    corrupt, or violates the observation-table invariants (for example
    a non-positive brood size that would later be log-transformed).

    Attributes:
        source: Path or URL that was being read, if known
        reason: Short machine-readable cause ('missing', 'unreadable',
                'invalid')
    """

    def __init__(
        self,
        message: str,
        source: str | None = None,
        reason: str | None = None,
    ):
        super().__init__(message)
        self.source = source
        self.reason = reason


class NumericalError(CountGLMMError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class ConvergenceError(NumericalError):
    """
    Iterative algorithm failed badly enough that no estimate exists.

    Ordinary non-convergence of the outer optimizer is reported through
    the FitDidNotConverge warning; this error is reserved for cases
    where the objective itself cannot be evaluated (non-finite deviance
    at the starting values).

    Attributes:
        iterations: Number of iterations completed
        reason: Why the computation failed (e.g. 'non_finite_start')
    """

    def __init__(
        self,
        message: str,
        iterations: int = 0,
        reason: str | None = None,
    ):
        super().__init__(message)
        self.iterations = iterations
        self.reason = reason


# =====================================================================
# Warnings
# =====================================================================

class CountGLMMWarning(UserWarning):
    """Base class for countglmm diagnostic warnings."""
    pass


class FitDidNotConverge(CountGLMMWarning):
    """The optimizer stopped without reaching a stable estimate.

    Also issued when the Hessian at the reported optimum is not positive
    definite, in which case standard errors come from a pseudo-inverse.
    """
    pass


class SingularFit(CountGLMMWarning):
    """The random-effect variance was estimated at or near zero.

    A boundary condition, not an error: the fit is valid but the grouping
    factor explains no detectable extra variation.
    """
    pass
