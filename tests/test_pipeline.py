"""
Test Suite for EDA and the Main Pipeline
========================================

End-to-end runs of the phases on generated data.
"""

import json

import pytest
import pandas as pd
import yaml

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import main
from stepreg.eda import generate_eda_report, strong_correlations


class TestEDA:
    """Tests for the exploration report."""

    def test_generate_eda_report(self, ozone_data, tmp_path):
        report = generate_eda_report(
            ozone_data, 'Ozone', ['Solar.R', 'Wind', 'Temp'], output_dir=str(tmp_path)
        )

        assert len(report['figures']) == 3
        for name in report['figures']:
            assert (tmp_path / name).exists()
        assert report['statistics']['Ozone']['skew'] > 1.0

    def test_strong_correlations(self):
        corr = pd.DataFrame(
            [[1.0, 0.8, -0.1], [0.8, 1.0, -0.6], [-0.1, -0.6, 1.0]],
            columns=['a', 'b', 'c'], index=['a', 'b', 'c']
        )
        pairs = strong_correlations(corr, threshold=0.5)
        assert [(p['col1'], p['col2']) for p in pairs] == [('a', 'b'), ('b', 'c')]


class TestPipeline:
    """Tests for the phase runners in main.py."""

    @pytest.fixture
    def workspace(self, ozone_data, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        data_path = tmp_path / 'ozone.csv'
        ozone_data.to_csv(data_path, index=False)

        config = {
            'data': {
                'response': 'Ozone',
                'predictors': ['Solar.R', 'Wind', 'Temp', 'Noise1'],
                'interactions': ['Wind:Temp']
            },
            'transform': {'method': 'log'},
            'selection': {'direction': 'both', 'criterion': 'adjr2'},
            'diagnostics': {'cv_folds': 3},
            'output': {
                'reports_path': str(tmp_path / 'reports'),
                'figures_path': str(tmp_path / 'reports' / 'figures'),
                'tables_path': str(tmp_path / 'reports' / 'tables'),
                'model_path': str(tmp_path / 'models' / 'full.joblib')
            },
            'logging': {'level': 'WARNING'}
        }
        config_path = tmp_path / 'config.yaml'
        config_path.write_text(yaml.safe_dump(config))
        return tmp_path, str(data_path), str(config_path)

    def test_full_pipeline(self, workspace):
        root, data_path, config_path = workspace
        results = main.run_full_pipeline(data_path, config_path)

        tables = root / 'reports' / 'tables'
        assert (tables / 'coefficients_full.csv').exists()
        assert (tables / 'multiplicative_effects_full.csv').exists()
        assert (tables / 'model_comparison.csv').exists()
        assert (root / 'models' / 'full.joblib').exists()

        with open(tables / 'selection_backward.json') as f:
            trace = json.load(f)
        assert trace['direction'] == 'backward'

        comparison = results['selection']['comparison']
        assert list(comparison['model']) == ['full', 'backward', 'forward']

    def test_select_phase(self, workspace):
        root, data_path, config_path = workspace
        result = main.run_single_phase('select', data_path, config_path)
        assert set(result['selection']) == {'backward', 'forward'}

    def test_unknown_phase(self, workspace):
        _, data_path, config_path = workspace
        with pytest.raises(ValueError, match="Unknown phase"):
            main.run_single_phase('predict', data_path, config_path)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
