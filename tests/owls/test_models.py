"""Tests for the fit catalogue and fit invocations."""

import warnings

import numpy as np
import pandas as pd
import pytest

from countglmm.core.exceptions import CountGLMMWarning, SingularFit, ValidationError
from countglmm.owls import (
    OWLS_FITS, OWLS_FORMULA, FitSpec, FixedTerm, ModelFormula, RandomTerm,
    build_design, fit_all, fit_model, from_frame, prepare_owls,
)


TOY_FORMULA = ModelFormula(
    response='NCalls',
    fixed=(
        FixedTerm('FT', ('SexParent',)),
        FixedTerm('ArrivalTime'),
        FixedTerm('SexParent'),
    ),
    offset='BroodSize',
    random=(RandomTerm('Nest'),),
)


class TestCatalogue:

    def test_eight_variants(self):
        assert [s.name for s in OWLS_FITS] == [
            'poisson', 'zipoisson', 'nbinom1', 'zinbinom1',
            'nbinom2', 'zinbinom2', 'poisson_agq', 'negbin_agq',
        ]

    def test_quadrature_specs(self):
        agq = [s for s in OWLS_FITS if s.engine == 'quadrature']
        assert [(s.family, s.n_agq) for s in agq] == [('poisson', 11), ('nbinom2', 11)]
        assert not any(s.zero_inflation for s in agq)

    def test_invalid_engine(self):
        with pytest.raises(ValidationError, match="engine"):
            FitSpec('x', 'poisson', engine='mcmc')

    def test_unknown_family(self):
        with pytest.raises(ValidationError, match="Unknown family 'nbinom'"):
            FitSpec('typo', 'nbinom')

    def test_family_alias_accepted(self):
        assert FitSpec('nb', 'negative_binomial').family == 'negative_binomial'

    def test_laplace_uses_one_node(self):
        with pytest.raises(ValidationError, match="n_agq=1"):
            FitSpec('x', 'poisson', n_agq=5)


class TestFitAll:

    def test_every_variant_fitted(self, owls_outcomes):
        assert list(owls_outcomes) == [s.name for s in OWLS_FITS]
        for name, outcome in owls_outcomes.items():
            assert outcome.ok, f"{name}: {outcome.error}"
            assert outcome.error is None
            assert outcome.elapsed_seconds > 0

    def test_coefficient_names(self, owls_outcomes, prepared_owls):
        expected = build_design(OWLS_FORMULA, prepared_owls).column_names
        for outcome in owls_outcomes.values():
            assert outcome.solution.coefficient_names == expected
            assert len(outcome.solution.coefficients) == 6

    def test_one_variance_component(self, owls_outcomes):
        for outcome in owls_outcomes.values():
            (vc,) = outcome.solution.var_components
            assert vc.group == 'Nest'
            assert np.isfinite(vc.variance) and vc.variance >= 0

    def test_zero_inflation_only_when_requested(self, owls_outcomes):
        for outcome in owls_outcomes.values():
            zi = outcome.solution.zero_inflation
            if outcome.spec.zero_inflation:
                assert zi is not None and 0 < zi.probability < 1
            else:
                assert zi is None

    def test_dispersion_for_nb_only(self, owls_outcomes):
        for outcome in owls_outcomes.values():
            if outcome.spec.family == 'poisson':
                assert outcome.solution.dispersion is None
            else:
                assert np.isfinite(outcome.solution.dispersion)

    def test_engine_recorded(self, owls_outcomes):
        assert owls_outcomes['poisson'].solution.params.method == 'Laplace'
        assert owls_outcomes['poisson_agq'].solution.params.method == 'AGQ'
        assert owls_outcomes['negbin_agq'].solution.family == 'nbinom2'

    def test_engines_agree(self, owls_outcomes):
        np.testing.assert_allclose(
            owls_outcomes['poisson_agq'].solution.coefficients,
            owls_outcomes['poisson'].solution.coefficients,
            atol=0.05,
        )

    def test_negative_binomial_beats_poisson(self, owls_outcomes):
        assert (owls_outcomes['nbinom2'].solution.log_likelihood
                > owls_outcomes['poisson'].solution.log_likelihood)

    def test_error_recorded_and_others_continue(self, prepared_owls):
        specs = (
            FitSpec('broken', 'poisson', engine='quadrature', n_agq=0),
            FitSpec('poisson', 'poisson'),
        )
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', CountGLMMWarning)
            outcomes = fit_all(prepared_owls, OWLS_FORMULA, specs)
        assert isinstance(outcomes['broken'].error, ValidationError)
        assert outcomes['broken'].solution is None
        assert outcomes['poisson'].ok

    def test_duplicate_names(self, prepared_owls):
        specs = (FitSpec('a', 'poisson'), FitSpec('a', 'nbinom2'))
        with pytest.raises(ValidationError, match="unique"):
            fit_all(prepared_owls, OWLS_FORMULA, specs)

    def test_warnings_recorded_and_reissued(self):
        # identical nests: no between-nest variance
        visits = pd.DataFrame({
            'FoodTreatment': ['Deprived', 'Satiated'] * 4,
            'SexParent': ['Female', 'Female', 'Male', 'Male'] * 2,
            'ArrivalTime': [22.0, 23.0, 24.0, 25.0, 26.0, 27.0, 28.0, 29.0],
            'SiblingNegotiation': [4, 1, 6, 2, 3, 0, 5, 2],
            'BroodSize': [3] * 8,
        })
        frame = pd.concat(
            [visits.assign(Nest=label) for label in ('n1', 'n2', 'n3', 'n4')],
            ignore_index=True,
        )
        source = prepare_owls(from_frame(frame))

        with pytest.warns(SingularFit):
            outcomes = fit_all(source, TOY_FORMULA, (FitSpec('poisson', 'poisson'),))
        outcome = outcomes['poisson']
        assert any('Singular fit' in w for w in outcome.warnings)
        assert outcome.solution.is_singular

    def test_verbose(self, prepared_owls, capsys):
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', CountGLMMWarning)
            fit_all(prepared_owls, OWLS_FORMULA, (FitSpec('poisson', 'poisson'),), verbose=True)
        out = capsys.readouterr().out
        assert 'Fitting poisson' in out
        assert 'AIC=' in out


class TestFitModel:

    @pytest.mark.parametrize("spec", OWLS_FITS, ids=lambda s: s.name)
    def test_repeat_fit_identical(self, prepared_owls, owls_outcomes, spec):
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', CountGLMMWarning)
            again = fit_model(prepared_owls, OWLS_FORMULA, spec.family,
                              spec.zero_inflation, n_agq=spec.n_agq)
        first = owls_outcomes[spec.name].solution
        np.testing.assert_array_equal(again.coefficients, first.coefficients)
        assert again.random_effect_variance == first.random_effect_variance
        assert again.dispersion == first.dispersion

    def test_formula_in_summary(self, owls_outcomes):
        assert OWLS_FORMULA.describe() in owls_outcomes['nbinom1'].solution.summary()

    def test_toy_scenario(self, toy_frame):
        source = prepare_owls(from_frame(toy_frame))
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', CountGLMMWarning)
            result = fit_model(source, TOY_FORMULA, 'poisson')
        assert len(result.var_components) == 1
        assert len(result.coefficients) == 5
        assert result.coefficient_names[-1] == 'FTSatiated:SexParentMale'

    def test_brood_size_zero_rejected_at_design(self, prepared_owls):
        from countglmm.core.datasource import DataSource
        frame = prepared_owls.frame()
        frame.loc[0, 'BroodSize'] = 0
        with pytest.raises(ValidationError):
            fit_model(DataSource.from_dataframe(frame), OWLS_FORMULA, 'poisson')
