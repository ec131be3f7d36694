"""
The Owls sibling-negotiation analysis.

Public API:
    load_owls()       — read and validate the Owls table (DataSource)
    prepare_owls()    — reorder Nest, add the NCalls / FT aliases
    OWLS_FORMULA      — NCalls ~ (FT + ArrivalTime) * SexParent
                        + offset(log(BroodSize)) + (1 | Nest)
    build_design()    — formula + DataSource → model matrices
    OWLS_FITS         — the eight requested fits
    fit_model()       — one fit
    fit_all()         — every fit, outcomes recorded per fit
    format_report()   — text report with one summary per fit
    plot_count_histogram() — histogram of the raw counts
    run_pipeline()    — load → transform → fit → report
"""

from countglmm.owls.datasets import (
    OWLS_URL,
    OWLS_FILENAME,
    load_owls,
    validate_owls,
    from_frame,
    default_cache_dir,
)
from countglmm.owls.transform import prepare_owls, nest_order
from countglmm.owls.formula import (
    FixedTerm,
    RandomTerm,
    ModelFormula,
    ModelMatrices,
    OWLS_FORMULA,
    build_design,
)
from countglmm.owls.models import (
    FitSpec,
    FitOutcome,
    OWLS_FITS,
    fit_model,
    fit_all,
)
from countglmm.owls.report import aic_table, format_report, plot_count_histogram
from countglmm.owls.pipeline import PipelineResult, run_pipeline

__all__ = [
    # Data
    "OWLS_URL",
    "OWLS_FILENAME",
    "load_owls",
    "validate_owls",
    "from_frame",
    "default_cache_dir",
    "prepare_owls",
    "nest_order",
    # Formula
    "FixedTerm",
    "RandomTerm",
    "ModelFormula",
    "ModelMatrices",
    "OWLS_FORMULA",
    "build_design",
    # Fits
    "FitSpec",
    "FitOutcome",
    "OWLS_FITS",
    "fit_model",
    "fit_all",
    # Reporting
    "aic_table",
    "format_report",
    "plot_count_histogram",
    "PipelineResult",
    "run_pipeline",
]
