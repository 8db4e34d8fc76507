"""
Test Suite for Diagnostics Module
=================================

Tests for residual frames, fit metrics, cross-validation and report output.
"""

import json

import pytest
import numpy as np
import matplotlib.pyplot as plt

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stepreg.diagnostics import (
    residual_frame, calculate_fit_metrics, assumption_statistics,
    cross_validated_rmse, compare_models, generate_diagnostics_report,
    plot_diagnostics, plot_residual_distribution
)
from stepreg.model import OLSModel
from stepreg.transforms import ResponseTransformer


@pytest.fixture
def model(ozone_data):
    return OLSModel(
        'Ozone', terms=['Solar.R', 'Wind', 'Temp'], transformer=ResponseTransformer('log')
    ).fit(ozone_data)


class TestResidualFrame:
    """Tests for residual_frame."""

    def test_columns_and_order(self, model):
        frame = residual_frame(model)

        assert list(frame.columns) == ['order', 'fitted', 'residual', 'studentized']
        assert list(frame['order']) == list(range(1, model.nobs + 1))

    def test_residuals_sum_to_zero(self, model):
        frame = residual_frame(model)
        assert frame['residual'].sum() == pytest.approx(0.0, abs=1e-8)
        np.testing.assert_allclose(frame['fitted'] + frame['residual'], model.endog)


class TestMetrics:
    """Tests for fit metrics and assumption statistics."""

    def test_fit_metrics(self, model):
        metrics = calculate_fit_metrics(model)

        assert metrics['r2'] == pytest.approx(model.r2)
        assert metrics['rmse'] == pytest.approx(np.sqrt(np.mean(model.residuals ** 2)))
        assert metrics['n_terms'] == 3
        assert metrics['n_parameters'] == 4
        assert metrics['adj_r2'] < metrics['r2']

    def test_assumption_statistics(self, model):
        stats = assumption_statistics(model)

        assert 0.0 <= stats['shapiro_wilk']['p_value'] <= 1.0
        assert 0.0 < stats['durbin_watson'] < 4.0
        assert 0.0 <= stats['breusch_pagan']['lm_p_value'] <= 1.0

    def test_intercept_only_skips_breusch_pagan(self, model):
        stats = assumption_statistics(model.refit([]))
        assert stats['breusch_pagan'] is None


class TestCrossValidation:
    """Tests for cross-validated RMSE and model comparison."""

    def test_fold_count(self, model):
        cv = cross_validated_rmse(model, n_splits=5, random_state=0)
        assert len(cv['fold_rmse']) == 5
        assert cv['mean_rmse'] == pytest.approx(np.mean(cv['fold_rmse']))

    def test_deterministic(self, model):
        assert cross_validated_rmse(model)['fold_rmse'] == cross_validated_rmse(model)['fold_rmse']

    def test_real_model_beats_intercept_only(self, model):
        empty = model.refit([])
        assert cross_validated_rmse(model)['mean_rmse'] < cross_validated_rmse(empty)['mean_rmse']

    def test_compare_models(self, model):
        table = compare_models({'full': model, 'empty': model.refit([])})

        assert list(table['model']) == ['full', 'empty']
        assert table.loc[1, 'terms'] == '1'
        assert table.loc[0, 'adj_r2'] > table.loc[1, 'adj_r2']


class TestReport:
    """Tests for plots and the diagnostics report."""

    def test_plots_return_figures(self, model):
        fig = plot_diagnostics(model)
        assert len(fig.axes) == 4
        fig = plot_residual_distribution(model)
        assert len(fig.axes) == 2
        plt.close('all')

    def test_generate_report(self, model, tmp_path):
        result = generate_diagnostics_report(model, output_dir=str(tmp_path), prefix='test', cv_folds=3)

        assert len(result['figures']) == 5
        for name in result['figures']:
            assert (tmp_path / 'figures' / name).exists()

        with open(result['metrics_file']) as f:
            metrics = json.load(f)
        assert metrics['formula'] == model.formula
        assert metrics['cross_validation']['n_splits'] == 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
