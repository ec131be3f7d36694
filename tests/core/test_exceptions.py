"""
Tests for the countglmm exception and warning hierarchy.

Validates:
    - Inheritance chain (all exceptions catchable via CountGLMMError)
    - Diagnostic attributes on DataUnavailable and ConvergenceError
    - Warnings are UserWarnings catchable via CountGLMMWarning
"""

import warnings

import pytest

from countglmm.core.exceptions import (
    ConvergenceError,
    CountGLMMError,
    CountGLMMWarning,
    DataUnavailable,
    DimensionError,
    FitDidNotConverge,
    NumericalError,
    SingularFit,
    ValidationError,
)


# ═══════════════════════════════════════════════════════════════════════
# Inheritance hierarchy
# ═══════════════════════════════════════════════════════════════════════


class TestInheritance:
    """Every exception is catchable via CountGLMMError."""

    def test_validation_error_is_countglmm_error(self):
        with pytest.raises(CountGLMMError):
            raise ValidationError("bad input")

    def test_dimension_error_is_validation_error(self):
        with pytest.raises(ValidationError):
            raise DimensionError("wrong shape")

    def test_data_unavailable_is_countglmm_error(self):
        with pytest.raises(CountGLMMError):
            raise DataUnavailable("no file")

    def test_data_unavailable_is_not_validation_error(self):
        assert not isinstance(DataUnavailable("no file"), ValidationError)

    def test_convergence_error_is_numerical_error(self):
        with pytest.raises(NumericalError):
            raise ConvergenceError("deviance not finite")

    def test_numerical_error_is_countglmm_error(self):
        with pytest.raises(CountGLMMError):
            raise NumericalError("overflow")


# ═══════════════════════════════════════════════════════════════════════
# Attributes
# ═══════════════════════════════════════════════════════════════════════


class TestDataUnavailable:
    """DataUnavailable carries where the data was expected and why."""

    def test_all_attributes(self):
        err = DataUnavailable("missing", source="/tmp/owls.csv", reason="missing")
        assert str(err) == "missing"
        assert err.source == "/tmp/owls.csv"
        assert err.reason == "missing"

    def test_defaults_are_none(self):
        err = DataUnavailable("corrupt")
        assert err.source is None
        assert err.reason is None


class TestConvergenceError:
    """ConvergenceError carries iteration diagnostics."""

    def test_all_attributes(self):
        err = ConvergenceError(
            "deviance not finite", iterations=0, reason="non_finite_start",
        )
        assert str(err) == "deviance not finite"
        assert err.iterations == 0
        assert err.reason == "non_finite_start"

    def test_defaults(self):
        err = ConvergenceError("failed")
        assert err.iterations == 0
        assert err.reason is None


# ═══════════════════════════════════════════════════════════════════════
# Warnings
# ═══════════════════════════════════════════════════════════════════════


class TestWarnings:
    """Fit diagnostics are warnings, not errors."""

    @pytest.mark.parametrize("category", [FitDidNotConverge, SingularFit])
    def test_is_countglmm_warning(self, category):
        assert issubclass(category, CountGLMMWarning)
        assert issubclass(category, UserWarning)

    def test_warns_and_continues(self):
        with pytest.warns(SingularFit, match="boundary"):
            warnings.warn("variance at boundary", SingularFit)

    def test_group_filter(self):
        """Filtering CountGLMMWarning silences both diagnostics."""
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            warnings.filterwarnings("ignore", category=CountGLMMWarning)
            warnings.warn("a", FitDidNotConverge)
            warnings.warn("b", SingularFit)
        assert caught == []
