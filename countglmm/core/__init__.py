"""
Core infrastructure for countglmm.

This module provides shared abstractions and utilities used by the model
engine (mixed) and the analysis pipeline (owls).

Key components:
    datasource: immutable tabular DataSource handle
    result: Generic Result[P] envelope
    exceptions: Exception and warning hierarchy
    validation: Input validators
    timing: Per-section timer
"""

from countglmm.core.datasource import DataSource
from countglmm.core.result import Result
from countglmm.core.exceptions import (
    CountGLMMError,
    ValidationError,
    DimensionError,
    DataUnavailable,
    NumericalError,
    ConvergenceError,
    CountGLMMWarning,
    FitDidNotConverge,
    SingularFit,
)

__all__ = [
    # Data
    "DataSource",
    # Result
    "Result",
    # Exceptions
    "CountGLMMError",
    "ValidationError",
    "DimensionError",
    "DataUnavailable",
    "NumericalError",
    "ConvergenceError",
    # Warnings
    "CountGLMMWarning",
    "FitDidNotConverge",
    "SingularFit",
]
