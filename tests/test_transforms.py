"""
Test Suite for Response Transforms
==================================

Tests for ResponseTransformer, suggest_transform and multiplicative effects.
"""

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stepreg.model import OLSModel
from stepreg.transforms import ResponseTransformer, suggest_transform, multiplicative_effects


class TestResponseTransformer:
    """Tests for the ResponseTransformer class."""

    def test_init(self):
        transformer = ResponseTransformer()
        assert transformer.method == 'log'
        assert transformer.offset == 1e-7
        assert transformer._is_fitted == False

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown transform"):
            ResponseTransformer(method='boxcox')

    def test_transform_before_fit(self):
        with pytest.raises(ValueError, match="must be fitted"):
            ResponseTransformer().transform([1.0, 2.0])

    def test_log_round_trip(self):
        y = np.array([1.0, 2.5, 10.0, 100.0])
        transformer = ResponseTransformer('log')
        z = transformer.fit_transform(y)

        np.testing.assert_allclose(z, np.log(y))
        np.testing.assert_allclose(transformer.inverse_transform(z), y)
        assert transformer.shift_ == 0.0

    def test_zero_adds_offset(self):
        y = np.array([0.0, 1.0, 4.0])
        transformer = ResponseTransformer('log', offset=1e-7)
        z = transformer.fit_transform(y)

        assert transformer.shift_ == 1e-7
        assert np.all(np.isfinite(z))
        assert z[0] == pytest.approx(np.log(1e-7))
        np.testing.assert_allclose(transformer.inverse_transform(z), y, atol=1e-12)

    def test_negative_response_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            ResponseTransformer('log').fit([-1.0, 2.0])

    def test_sqrt(self):
        y = np.array([0.0, 4.0, 9.0])
        transformer = ResponseTransformer('sqrt')
        z = transformer.fit_transform(y)
        np.testing.assert_allclose(transformer.inverse_transform(z), y, atol=1e-12)

    def test_none_accepts_negative(self):
        y = np.array([-3.0, 0.0, 2.0])
        transformer = ResponseTransformer('none')
        np.testing.assert_array_equal(transformer.fit_transform(y), y)

    def test_series_keeps_index(self):
        y = pd.Series([1.0, 2.0, 3.0], index=[10, 20, 30], name='Ozone')
        z = ResponseTransformer('log').fit_transform(y)
        assert isinstance(z, pd.Series)
        assert list(z.index) == [10, 20, 30]

    def test_label(self):
        assert ResponseTransformer('log').label('Ozone') == 'log(Ozone)'
        assert ResponseTransformer('none').label('Ozone') == 'Ozone'


class TestSuggestTransform:
    """Tests for suggest_transform."""

    def test_right_skewed_gets_log(self):
        rng = np.random.default_rng(0)
        assert suggest_transform(rng.lognormal(3.0, 1.0, 500)) == 'log'

    def test_count_data_gets_sqrt(self):
        rng = np.random.default_rng(0)
        counts = rng.poisson(rng.lognormal(1.0, 1.0, 500))
        assert suggest_transform(counts, count_data=True) == 'sqrt'

    def test_integer_values_without_count_flag_get_log(self):
        rng = np.random.default_rng(0)
        ppb = np.round(rng.lognormal(3.0, 1.0, 500)) + 1.0
        assert suggest_transform(ppb) == 'log'

    def test_symmetric_untouched(self):
        rng = np.random.default_rng(0)
        assert suggest_transform(rng.normal(50, 5, 500)) == 'none'

    def test_negative_values_untouched(self):
        rng = np.random.default_rng(0)
        assert suggest_transform(rng.lognormal(3.0, 1.0, 500) - 50.0) == 'none'


class TestMultiplicativeEffects:
    """exp(b) must match the ratio of back-transformed predictions at x and x+1."""

    @pytest.fixture
    def log_model(self):
        rng = np.random.default_rng(3)
        df = pd.DataFrame({'x': rng.uniform(0, 10, 120), 'z': rng.normal(0, 1, 120)})
        df['y'] = np.exp(0.5 + 0.2 * df['x'] - 0.1 * df['z'] + rng.normal(0, 0.2, 120))
        return OLSModel('y', terms=['x', 'z'], transformer=ResponseTransformer('log')).fit(df)

    def test_exp_slope_matches_prediction_ratio(self, log_model):
        b = log_model.params['x']
        new = pd.DataFrame({'x': [2.0, 3.0], 'z': [0.4, 0.4]})
        pred = log_model.predict(new, scale='response')

        assert pred.iloc[1] / pred.iloc[0] == pytest.approx(np.exp(b), rel=1e-10)

    def test_table(self, log_model):
        table = multiplicative_effects(log_model)
        row = table.set_index('term').loc['x']

        assert list(table.columns) == ['term', 'estimate', 'multiplier', 'percent_change']
        assert row['multiplier'] == pytest.approx(np.exp(row['estimate']))
        assert row['percent_change'] == pytest.approx((np.exp(row['estimate']) - 1) * 100)

    def test_requires_log_model(self):
        df = pd.DataFrame({'x': [1.0, 2.0, 3.0, 4.0], 'y': [2.0, 4.1, 5.9, 8.2]})
        model = OLSModel('y', terms=['x']).fit(df)
        with pytest.raises(ValueError, match="log-transformed"):
            multiplicative_effects(model)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
