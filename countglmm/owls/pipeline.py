"""
End-to-end Owls analysis: load, transform, fit, report.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from matplotlib.figure import Figure

from countglmm.core.datasource import DataSource
from countglmm.core.timing import Timer
from countglmm.owls.datasets import load_owls
from countglmm.owls.formula import ModelFormula, OWLS_FORMULA
from countglmm.owls.models import FitOutcome, FitSpec, OWLS_FITS, fit_all
from countglmm.owls.report import format_report, plot_count_histogram
from countglmm.owls.transform import prepare_owls


REPORT_FILENAME = 'report.txt'
HISTOGRAM_FILENAME = 'ncalls_histogram.png'


@dataclass(frozen=True)
class PipelineResult:
    """Everything one pipeline run produced."""
    data: DataSource
    formula: ModelFormula
    outcomes: dict[str, FitOutcome]
    report: str
    histogram: Figure
    timing: dict[str, float]
    report_path: Path | None = None
    histogram_path: Path | None = None

    @property
    def failed(self) -> tuple[str, ...]:
        """Names of fits that raised instead of returning a solution."""
        return tuple(name for name, o in self.outcomes.items() if not o.ok)


def run_pipeline(
    data_path: str | Path | None = None,
    output_dir: str | Path | None = None,
    *,
    specs: tuple[FitSpec, ...] = OWLS_FITS,
    formula: ModelFormula = OWLS_FORMULA,
    verbose: bool = False,
) -> PipelineResult:
    """Run the Owls analysis.

    Args:
        data_path: Owls CSV; None uses the cached / downloaded copy.
        output_dir: If given, report.txt and ncalls_histogram.png are
            written there.
        specs: Fits to run.
        formula: Model formula shared by every fit.
        verbose: Print progress.

    Raises:
        DataUnavailable: If the table cannot be loaded.
    """
    timer = Timer()
    timer.start()

    with timer.section('load'):
        raw = load_owls(data_path, verbose=verbose)
    with timer.section('transform'):
        data = prepare_owls(raw)
    with timer.section('fit'):
        outcomes = fit_all(data, formula, specs, verbose=verbose)

    out = Path(output_dir) if output_dir is not None else None
    if out is not None:
        out.mkdir(parents=True, exist_ok=True)

    with timer.section('report'):
        report = format_report(outcomes, formula)
        report_path = None
        if out is not None:
            report_path = out / REPORT_FILENAME
            report_path.write_text(report + '\n', encoding='utf-8')
        histogram_path = out / HISTOGRAM_FILENAME if out is not None else None
        histogram = plot_count_histogram(data, histogram_path)

    timer.stop()
    if verbose:
        if out is not None:
            print(f"Wrote {report_path} and {histogram_path}")
        print(f"Timing: {timer.report()}")

    return PipelineResult(
        data=data,
        formula=formula,
        outcomes=outcomes,
        report=report,
        histogram=histogram,
        timing=timer.result(),
        report_path=report_path,
        histogram_path=histogram_path,
    )
