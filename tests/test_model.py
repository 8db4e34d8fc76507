"""
Test Suite for Model Fitting
============================

Tests for the design matrix, OLSModel and fit_model.
"""

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stepreg.model import OLSModel, build_design_matrix, fit_model, save_coefficient_table
from stepreg.terms import Term, TermSet
from stepreg.transforms import ResponseTransformer


class TestDesignMatrix:
    """Tests for build_design_matrix."""

    def test_numeric_and_interaction_columns(self):
        df = pd.DataFrame({'a': [1.0, 2.0, 3.0], 'b': [2.0, 0.5, -1.0]})
        terms = [Term('a'), Term('b'), Term.parse('a:b')]
        design, by_term, _ = build_design_matrix(df, terms)

        assert list(design.columns) == ['Intercept', 'a', 'b', 'a:b']
        np.testing.assert_allclose(design['a:b'], [2.0, 1.0, -3.0])
        assert by_term[Term.parse('a:b')] == ['a:b']

    def test_dotted_names_are_quoted(self):
        df = pd.DataFrame({'Solar.R': [190.0, 118.0, 149.0], 'Wind': [7.4, 8.0, 12.6]})
        design, by_term, _ = build_design_matrix(df, [Term('Solar.R'), Term('Wind')])

        assert list(design.columns) == ['Intercept', 'Solar.R', 'Wind']
        np.testing.assert_allclose(design['Solar.R'], df['Solar.R'])

    def test_categorical_dummies(self):
        df = pd.DataFrame({'x': [1.0, 2.0, 3.0, 4.0], 'g': ['lo', 'mid', 'hi', 'mid']})
        design, by_term, _ = build_design_matrix(
            df, [Term('x'), Term('g'), Term.parse('x:g')]
        )

        assert by_term[Term('g')] == ['g[T.lo]', 'g[T.mid]']
        assert by_term[Term.parse('x:g')] == ['x:g[T.lo]', 'x:g[T.mid]']
        np.testing.assert_allclose(design['g[T.mid]'], [0.0, 1.0, 0.0, 1.0])
        np.testing.assert_allclose(design['x:g[T.mid]'], [0.0, 2.0, 0.0, 4.0])

    def test_single_level_categorical(self):
        df = pd.DataFrame({'x': [1.0, 2.0, 3.0], 'g': ['a', 'a', 'a']})
        with pytest.raises(ValueError, match="single level"):
            build_design_matrix(df, [Term('x'), Term('g')])

    def test_missing_column(self):
        with pytest.raises(ValueError, match="not found"):
            build_design_matrix(pd.DataFrame({'a': [1.0]}), [Term('b')])


class TestOLSModel:
    """Tests for the OLSModel class."""

    @pytest.fixture
    def log_model(self, ozone_data):
        return OLSModel(
            'Ozone',
            terms=['Solar.R', 'Wind', 'Temp'],
            transformer=ResponseTransformer('log')
        ).fit(ozone_data)

    def test_recovers_documented_equation(self, log_model):
        """log(Ozone) ~ Solar.R + Wind + Temp: negative Wind, positive Temp."""
        params = log_model.params

        assert params['Wind'] < 0
        assert params['Temp'] > 0
        assert params['Intercept'] == pytest.approx(-0.262, abs=1.5)
        assert params['Solar.R'] == pytest.approx(0.003, abs=0.002)
        assert params['Wind'] == pytest.approx(-0.062, abs=0.03)
        assert params['Temp'] == pytest.approx(0.049, abs=0.015)

    def test_coefficient_table(self, log_model):
        table = log_model.coefficient_table()

        assert list(table.columns) == ['term', 'estimate', 'std_error', 'statistic', 'p_value']
        assert list(table['term']) == ['Intercept', 'Solar.R', 'Wind', 'Temp']
        np.testing.assert_allclose(table['statistic'], table['estimate'] / table['std_error'])

    def test_residuals_are_observed_minus_fitted(self, log_model, ozone_data):
        observed = np.log(ozone_data['Ozone'])
        np.testing.assert_allclose(
            log_model.residuals.values,
            observed.values - log_model.fitted_values.values,
            atol=1e-10
        )
        assert len(log_model.residuals) == len(ozone_data)

    def test_predict_matches_fitted(self, log_model, ozone_data):
        np.testing.assert_allclose(
            log_model.predict(ozone_data).values, log_model.fitted_values.values, atol=1e-10
        )
        np.testing.assert_allclose(
            log_model.predict(ozone_data, scale='response').values,
            np.exp(log_model.fitted_values.values)
        )

    def test_predict_unknown_scale(self, log_model, ozone_data):
        with pytest.raises(ValueError, match="Unknown scale"):
            log_model.predict(ozone_data, scale='link')

    def test_equation(self, log_model):
        equation = log_model.equation()
        assert equation.startswith('log(Ozone) = ')
        assert '- ' in equation and '*Wind' in equation

    def test_intercept_only(self, ozone_data):
        model = OLSModel('Ozone', terms=[], universe=TermSet(['Wind'])).fit(ozone_data)
        assert model.adj_r2 == pytest.approx(0.0, abs=1e-10)
        assert model.params['Intercept'] == pytest.approx(ozone_data['Ozone'].mean())
        assert model.formula == 'Ozone ~ 1'

    def test_refit_on_fitted_model_rejected(self, log_model, ozone_data):
        with pytest.raises(RuntimeError, match="already fitted"):
            log_model.fit(ozone_data)

    def test_refit_builds_new_model(self, log_model):
        reduced = log_model.refit(['Wind', 'Temp'])
        assert reduced is not log_model
        assert reduced.term_labels == ['Wind', 'Temp']
        assert log_model.term_labels == ['Solar.R', 'Wind', 'Temp']
        assert reduced.nobs == log_model.nobs

    def test_not_fitted(self):
        model = OLSModel('y', terms=['x'])
        with pytest.raises(ValueError, match="must be fitted"):
            model.coefficient_table()

    def test_non_hierarchical_terms_rejected(self):
        universe = TermSet(['a', 'b', 'a:b'])
        with pytest.raises(ValueError, match="without its main effects"):
            OLSModel('y', terms=['a', 'a:b'], universe=universe)

    def test_missing_rows_dropped(self, ozone_data):
        ozone_data.loc[[0, 5], 'Wind'] = np.nan
        ozone_data.loc[9, 'Ozone'] = np.nan
        model = OLSModel('Ozone', terms=['Wind', 'Temp']).fit(ozone_data)
        assert model.nobs == len(ozone_data) - 3

    def test_categorical_term_pvalue_uses_joint_test(self):
        rng = np.random.default_rng(5)
        df = pd.DataFrame({
            'x': rng.normal(0, 1, 90),
            'g': np.repeat(['a', 'b', 'c'], 30)
        })
        df['y'] = df['x'] + (df['g'] == 'c') * 2.0 + rng.normal(0, 0.5, 90)
        model = OLSModel('y', terms=['x', 'g']).fit(df)

        assert model.columns_by_term[Term('g')] == ['g[T.b]', 'g[T.c]']
        assert 0.0 <= model.term_pvalue('g') < 1e-6
        assert model.term_pvalue('x') == pytest.approx(model.results.pvalues['x'])

    def test_predict_categorical_levels(self):
        rng = np.random.default_rng(9)
        df = pd.DataFrame({
            'x': rng.normal(0, 1, 60),
            'g': np.tile(['a', 'b', 'c'], 20)
        })
        df['y'] = df['x'] + (df['g'] == 'b') * 3.0 + rng.normal(0, 0.1, 60)
        model = OLSModel('y', terms=['x', 'g']).fit(df)

        new = pd.DataFrame({'x': [0.0, 0.0], 'g': ['a', 'b']})
        predicted = model.predict(new)
        assert predicted[1] - predicted[0] == pytest.approx(model.params['g[T.b]'])

        with pytest.raises(ValueError, match="design matrix for prediction"):
            model.predict(pd.DataFrame({'x': [0.0, 0.0], 'g': ['a', 'zzz']}))

    def test_save_load(self, log_model, tmp_path):
        path = tmp_path / 'model.joblib'
        log_model.save(str(path))
        loaded = OLSModel.load(str(path))

        assert loaded.term_labels == log_model.term_labels
        assert loaded.transformer.method == 'log'
        np.testing.assert_allclose(loaded.params.values, log_model.params.values)


class TestFitModel:
    """Tests for fit_model and coefficient export."""

    def test_fit_from_config(self, ozone_data, tmp_path):
        config = {
            'data': {
                'response': 'Ozone',
                'predictors': ['Solar.R', 'Wind', 'Temp'],
                'interactions': ['Wind:Temp']
            },
            'transform': {'method': 'log'}
        }
        model = fit_model(ozone_data, config, save_path=str(tmp_path / 'm.joblib'))

        assert model.term_labels == ['Solar.R', 'Wind', 'Temp', 'Wind:Temp']
        assert model.response_label == 'log(Ozone)'
        assert (tmp_path / 'm.joblib').exists()

    def test_auto_transform(self, ozone_data):
        config = {'data': {'response': 'Ozone', 'predictors': ['Wind']},
                  'transform': {'method': 'auto'}}
        model = fit_model(ozone_data, config)
        assert model.transformer is not None

    def test_default_predictors(self, ozone_data):
        model = fit_model(ozone_data, {'data': {'response': 'Ozone'}})
        assert set(model.term_labels) == {'Solar.R', 'Wind', 'Temp', 'Noise1', 'Noise2'}
        assert model.transformer is None

    def test_missing_response(self, ozone_data):
        with pytest.raises(ValueError, match="not found"):
            fit_model(ozone_data, {'data': {'response': 'Humidity'}})

    def test_save_coefficient_table(self, ozone_data, tmp_path):
        model = OLSModel('Ozone', terms=['Wind']).fit(ozone_data)
        path = save_coefficient_table(model, str(tmp_path / 'tables' / 'coef.csv'))
        table = pd.read_csv(path)
        assert list(table['term']) == ['Intercept', 'Wind']


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
