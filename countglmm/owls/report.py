"""
Reporting for the Owls fits.

format_report() renders every fit's summary (or the error that stopped
it) with its warnings, followed by an AIC comparison table.
plot_count_histogram() draws the raw count distribution.
"""

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
from matplotlib.figure import Figure
import numpy as np
import pandas as pd

from countglmm.core.datasource import DataSource
from countglmm.owls.formula import ModelFormula
from countglmm.owls.models import FitOutcome


def aic_table(outcomes: dict[str, FitOutcome]) -> pd.DataFrame:
    """AIC comparison of the successful fits, best first.

    Columns: family, zero_inflation, method, df, logLik, AIC, dAIC, BIC.
    """
    rows = []
    for name, outcome in outcomes.items():
        if not outcome.ok:
            continue
        sol = outcome.solution
        rows.append({
            'model': name,
            'family': sol.family,
            'zero_inflation': sol.is_zero_inflated,
            'method': sol.params.method,
            'df': sol.n_params,
            'logLik': sol.log_likelihood,
            'AIC': sol.aic,
            'BIC': sol.bic,
        })

    columns = ['family', 'zero_inflation', 'method', 'df',
               'logLik', 'AIC', 'dAIC', 'BIC']
    if not rows:
        return pd.DataFrame(columns=columns, index=pd.Index([], name='model'))

    table = pd.DataFrame(rows).set_index('model')
    table = table.sort_values('AIC', kind='stable')
    table['dAIC'] = table['AIC'] - table['AIC'].min()
    return table[columns]


def format_report(outcomes: dict[str, FitOutcome], formula: ModelFormula) -> str:
    """Plain-text report with one section per fit."""
    rule = "=" * 72
    lines = [
        "Owls sibling negotiation: count GLMMs",
        rule,
        f"Formula: {formula.describe()}",
        f"Fits:    {', '.join(outcomes)}",
        "",
    ]

    for name, outcome in outcomes.items():
        spec = outcome.spec
        zi = "zi ~1" if spec.zero_inflation else "no zi"
        lines.append(rule)
        lines.append(f"[{name}]  family={spec.family}, {zi}, engine={spec.engine}"
                     + (f" (nAGQ={spec.n_agq})" if spec.engine == 'quadrature' else ""))
        lines.append(rule)
        if outcome.ok:
            lines.append(outcome.solution.summary())
            lines.append(f"Fit time: {outcome.elapsed_seconds:.2f}s")
            # summary() already lists warnings recorded on the result
            shown = set(outcome.solution.warnings)
        else:
            lines.append(f"FAILED: {type(outcome.error).__name__}: {outcome.error}")
            shown = set()
        for w in outcome.warnings:
            if w not in shown:
                lines.append(f"Warning: {w}")
        lines.append("")

    lines.append(rule)
    lines.append("Model comparison (AIC)")
    lines.append(rule)
    table = aic_table(outcomes)
    if table.empty:
        lines.append("No fit succeeded.")
    else:
        lines.append(table.to_string(float_format=lambda v: f"{v:.2f}"))
    return '\n'.join(lines)


def plot_count_histogram(
    source: DataSource,
    path: str | Path | None = None,
    *,
    column: str = 'NCalls',
    bins: int | None = None,
) -> Figure:
    """Histogram of the raw counts.

    Args:
        source: DataSource holding the count column.
        path: If given, the figure is written there as PNG.
        column: Count column to plot.
        bins: Number of bins; default is one bar per integer value.

    Returns:
        The matplotlib Figure.
    """
    counts = np.asarray(source[column], dtype=np.float64)
    if bins is None:
        edges = np.arange(0, counts.max() + 2) - 0.5
    else:
        edges = bins

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.hist(counts, bins=edges, color='steelblue', edgecolor='white')
    ax.set_xlabel(column)
    ax.set_ylabel('Frequency')
    n_zero = int(np.sum(counts == 0))
    ax.set_title(f"Histogram of {column} (n = {len(counts)}, "
                 f"{n_zero} zeros)")

    if path is not None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    return fig
