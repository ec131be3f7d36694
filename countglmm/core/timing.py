"""
Wall-clock timing of fit stages and pipeline steps.

glmm() times 'setup', 'optimization', 'hessian', 'inference' and
'model_fit'; run_pipeline() times 'load', 'transform', 'fit' and
'report'. Both end up as a dict with a 'total_seconds' key.
"""

import time
from contextlib import contextmanager
from typing import Iterator


class Timer:
    """
    Timer with named, accumulating sections.

    Usage:
        timer = Timer()
        timer.start()
        with timer.section('load'):
            raw = load_owls(path)
        with timer.section('fit'):
            outcomes = fit_all(prepare_owls(raw))
        timer.stop()
        timer.result()   # {'total_seconds': 4.1, 'load': 0.02, 'fit': 4.0}
    """

    def __init__(self):
        self._sections: dict[str, float] = {}
        self._start_time: float | None = None
        self._total: float | None = None

    def start(self) -> None:
        self._start_time = time.perf_counter()

    def stop(self) -> None:
        if self._start_time is None:
            raise RuntimeError("Timer.stop() called before start()")
        self._total = time.perf_counter() - self._start_time

    @property
    def total(self) -> float:
        """Seconds between start() and stop()."""
        if self._total is None:
            raise RuntimeError("Timer.total read before stop()")
        return self._total

    @contextmanager
    def section(self, name: str) -> Iterator[None]:
        """Add the time spent in the block to section name.

        Re-entering a name adds to its total.
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self._sections[name] = self._sections.get(name, 0.0) + elapsed

    def result(self) -> dict[str, float]:
        """'total_seconds' plus one entry per section, in first-use order."""
        result = {'total_seconds': self.total}
        result.update(self._sections)
        return result

    def report(self) -> str:
        """One line, e.g. 'load 0.02s, fit 4.00s (total 4.10s)'."""
        parts = [f"{name} {seconds:.2f}s" for name, seconds in self._sections.items()]
        return f"{', '.join(parts)} (total {self.total:.2f}s)"


@contextmanager
def timed() -> Iterator[Timer]:
    """Time the block; the Timer is stopped on exit.

    Usage:
        with timed() as timer:
            solution = fit_model(source, OWLS_FORMULA, 'nbinom2')
        timer.total
    """
    timer = Timer()
    timer.start()
    try:
        yield timer
    finally:
        timer.stop()
