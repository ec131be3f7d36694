"""
Tests for the Result[P] envelope and the Timer.

Validates:
    - Generic type parameter works with arbitrary payload types
    - Frozen immutability
    - Default warnings tuple and has_warning()
    - Timer sections accumulate and appear in result()
"""

from dataclasses import FrozenInstanceError, dataclass

import pytest

from countglmm.core.result import Result
from countglmm.core.timing import Timer, timed


@dataclass(frozen=True)
class FakeParams:
    """Minimal payload for testing."""
    value: float


class TestResultConstruction:
    """Result can be created with any payload type."""

    def test_basic_creation(self):
        result = Result(
            params=FakeParams(value=42.0),
            info={"method": "Laplace"},
            timing={"total_seconds": 0.01},
            backend_name="cpu_laplace",
        )
        assert result.params.value == 42.0
        assert result.info["method"] == "Laplace"
        assert result.timing["total_seconds"] == 0.01
        assert result.backend_name == "cpu_laplace"

    def test_timing_none(self):
        result = Result(params=FakeParams(1.0), info={}, timing=None,
                        backend_name="cpu")
        assert result.timing is None

    def test_default_warnings_empty(self):
        result = Result(params=FakeParams(1.0), info={}, timing=None,
                        backend_name="cpu")
        assert result.warnings == ()


class TestResultImmutability:

    def test_cannot_reassign_params(self):
        result = Result(params=FakeParams(1.0), info={}, timing=None,
                        backend_name="cpu")
        with pytest.raises(FrozenInstanceError):
            result.params = FakeParams(2.0)

    def test_cannot_reassign_warnings(self):
        result = Result(params=FakeParams(1.0), info={}, timing=None,
                        backend_name="cpu")
        with pytest.raises(FrozenInstanceError):
            result.warnings = ("new",)


class TestHasWarning:

    def test_substring_match(self):
        result = Result(
            params=FakeParams(1.0), info={}, timing=None, backend_name="cpu",
            warnings=("Singular fit: random-intercept SD estimated at 0",),
        )
        assert result.has_warning("Singular fit")
        assert not result.has_warning("did not converge")

    def test_no_warnings(self):
        result = Result(params=FakeParams(1.0), info={}, timing=None,
                        backend_name="cpu")
        assert not result.has_warning("anything")

    def test_warnings_matching(self):
        result = Result(
            params=FakeParams(1.0), info={}, timing=None, backend_name="cpu",
            warnings=(
                "GLMM optimizer did not converge after 1 iterations",
                "Singular fit: random-intercept SD estimated at 0",
                "Conditional modes did not converge after 50 iterations",
            ),
        )
        assert len(result.warnings_matching("converge")) == 2
        assert result.warnings_matching("Hessian") == ()

    def test_total_seconds(self):
        timed_result = Result(params=FakeParams(1.0), info={},
                              timing={"total_seconds": 0.25}, backend_name="cpu")
        untimed = Result(params=FakeParams(1.0), info={}, timing=None,
                         backend_name="cpu")
        assert timed_result.total_seconds == 0.25
        assert untimed.total_seconds is None


class TestTimer:

    def test_sections_recorded(self):
        timer = Timer()
        timer.start()
        with timer.section("setup"):
            pass
        with timer.section("setup"):
            pass
        timer.stop()
        result = timer.result()
        assert set(result) == {"total_seconds", "setup"}
        assert result["total_seconds"] >= result["setup"] >= 0.0

    def test_result_before_stop_raises(self):
        timer = Timer()
        timer.start()
        with pytest.raises(RuntimeError):
            timer.result()

    def test_stop_before_start_raises(self):
        with pytest.raises(RuntimeError):
            Timer().stop()

    def test_timed_context(self):
        with timed() as timer:
            sum(range(100))
        assert timer.result()["total_seconds"] >= 0.0

    def test_total_and_report(self):
        timer = Timer()
        timer.start()
        with timer.section("load"):
            pass
        with timer.section("fit"):
            pass
        timer.stop()
        assert timer.total == timer.result()["total_seconds"]
        line = timer.report()
        assert line.startswith("load ")
        assert ", fit " in line
        assert line.endswith("s)")

    def test_total_before_stop_raises(self):
        timer = Timer()
        timer.start()
        with pytest.raises(RuntimeError):
            timer.total
