"""Tests for the text report, the AIC table and the count histogram."""

import numpy as np
import pytest

from countglmm.core.exceptions import ConvergenceError
from countglmm.owls import (
    OWLS_FORMULA, FitOutcome, FitSpec, aic_table, format_report, plot_count_histogram,
)


class TestAICTable:

    def test_sorted_with_zero_delta(self, owls_outcomes):
        table = aic_table(owls_outcomes)
        assert len(table) == 8
        assert table.index.name == 'model'
        assert list(table['AIC']) == sorted(table['AIC'])
        assert table['dAIC'].min() == 0.0
        assert table['dAIC'].iloc[0] == 0.0

    def test_columns(self, owls_outcomes):
        table = aic_table(owls_outcomes)
        assert list(table.columns) == [
            'family', 'zero_inflation', 'method', 'df', 'logLik', 'AIC', 'dAIC', 'BIC',
        ]
        assert table.loc['zinbinom2', 'zero_inflation']
        assert table.loc['negbin_agq', 'method'] == 'AGQ'
        # β (6) + σ, plus θ, plus ψ
        assert table.loc['zinbinom2', 'df'] == 9
        assert table.loc['poisson', 'df'] == 7

    def test_failed_fits_excluded(self, owls_outcomes):
        outcomes = dict(owls_outcomes)
        outcomes['broken'] = FitOutcome(
            spec=FitSpec('broken', 'poisson'),
            error=ConvergenceError("gave up", iterations=3, reason="test"),
        )
        assert 'broken' not in aic_table(outcomes).index

    def test_empty(self):
        outcomes = {
            'broken': FitOutcome(
                spec=FitSpec('broken', 'poisson'),
                error=ConvergenceError("gave up", iterations=3, reason="test"),
            ),
        }
        table = aic_table(outcomes)
        assert table.empty
        assert 'dAIC' in table.columns


class TestFormatReport:

    def test_sections(self, owls_outcomes):
        report = format_report(owls_outcomes, OWLS_FORMULA)
        assert report.startswith("Owls sibling negotiation: count GLMMs")
        assert OWLS_FORMULA.describe() in report
        for name in owls_outcomes:
            assert f"[{name}]" in report
        assert "Model comparison (AIC)" in report
        assert "(nAGQ=11)" in report
        assert "Zero-inflation model:" in report
        assert "Fit time:" in report

    def test_failed_fit_reported(self, owls_outcomes):
        outcomes = {
            'poisson': owls_outcomes['poisson'],
            'broken': FitOutcome(
                spec=FitSpec('broken', 'nbinom1'),
                warnings=('something odd',),
                error=ConvergenceError("gave up", iterations=3, reason="test"),
            ),
        }
        report = format_report(outcomes, OWLS_FORMULA)
        assert "FAILED: ConvergenceError: gave up" in report
        assert "Warning: something odd" in report
        assert "No fit succeeded." not in report

    def test_nothing_succeeded(self):
        outcomes = {
            'broken': FitOutcome(
                spec=FitSpec('broken', 'poisson'),
                error=ConvergenceError("gave up", iterations=3, reason="test"),
            ),
        }
        assert "No fit succeeded." in format_report(outcomes, OWLS_FORMULA)


class TestHistogram:

    def test_one_bar_per_count(self, prepared_owls):
        fig = plot_count_histogram(prepared_owls)
        ax = fig.axes[0]
        max_count = int(np.max(prepared_owls['NCalls']))
        assert len(ax.patches) == max_count + 1
        heights = [p.get_height() for p in ax.patches]
        assert sum(heights) == prepared_owls.n_observations
        assert heights[0] == np.sum(prepared_owls['NCalls'] == 0)
        assert ax.get_xlabel() == 'NCalls'

    def test_explicit_bins(self, prepared_owls):
        fig = plot_count_histogram(prepared_owls, bins=5)
        assert len(fig.axes[0].patches) == 5

    def test_title_counts_zeros(self, toy_frame):
        from countglmm.owls import from_frame, prepare_owls
        source = prepare_owls(from_frame(toy_frame))
        fig = plot_count_histogram(source)
        assert fig.axes[0].get_title() == "Histogram of NCalls (n = 12, 1 zeros)"

    def test_writes_png(self, prepared_owls, tmp_path):
        path = tmp_path / 'plots' / 'hist.png'
        plot_count_histogram(prepared_owls, path)
        assert path.is_file()
        assert path.read_bytes()[:8] == b'\x89PNG\r\n\x1a\n'

    def test_unknown_column(self, prepared_owls):
        with pytest.raises(KeyError):
            plot_count_histogram(prepared_owls, column='Calls')
