#!/usr/bin/env python3
"""
Multiple Linear Regression - Main Pipeline
==========================================

Orchestrates the regression walkthrough from raw CSV to a selected model.

Phases:
    1. Explore - Response distribution and correlations
    2. Fit - OLS over all candidate terms (optionally on a transformed response)
    3. Diagnose - Residual plots for the four model assumptions
    4. Select - Backward elimination and/or forward selection

Usage:
    # Run complete pipeline
    python main.py --data data/raw/airquality.csv

    # Run specific phase
    python main.py --data data/raw/airquality.csv --phase select

    # Run with custom config
    python main.py --data data/raw/airquality.csv --config config/config.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional

import pandas as pd

# Add package root to path
sys.path.insert(0, str(Path(__file__).parent))

from stepreg.data_loader import (
    load_config, load_data, validate_data, print_data_summary, resolve_predictors
)
from stepreg.eda import generate_eda_report, print_correlation_insights
from stepreg.model import fit_model, print_model_summary, save_coefficient_table, OLSModel
from stepreg.diagnostics import (
    generate_diagnostics_report, print_diagnostics_report, compare_models
)
from stepreg.selection import run_selection, save_trace, print_selection_report
from stepreg.transforms import multiplicative_effects, print_transform_summary


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        ]
    )


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Let command-line flags take precedence over the configuration file."""
    if args.response:
        config.setdefault('data', {})['response'] = args.response
    if args.transform:
        config.setdefault('transform', {})['method'] = args.transform
    if args.direction:
        config.setdefault('selection', {})['direction'] = args.direction
    if args.criterion:
        config.setdefault('selection', {})['criterion'] = args.criterion
    if args.verbose:
        config.setdefault('logging', {})['level'] = 'DEBUG'
    return config


def run_exploration(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 1: Exploratory Data Analysis.

    Args:
        df: Raw data
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 1: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    data_config = config.get('data', {})
    response = data_config.get('response')
    if not response:
        raise ValueError("Configuration must name the response under data.response")
    predictors = resolve_predictors(df, response, data_config.get('predictors'))
    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')

    report = generate_eda_report(df, response, predictors, output_dir=output_dir, show_plots=False)

    corr_df = pd.DataFrame(report["correlation_matrix"])
    print_correlation_insights(corr_df, response=response)

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_fitting(df: pd.DataFrame, config: Dict[str, Any]) -> OLSModel:
    """
    Execute Phase 2: Fit the full model.

    Args:
        df: Raw data
        config: Configuration dictionary

    Returns:
        Fitted full model
    """
    print("\n" + "=" * 70)
    print("PHASE 2: MODEL FITTING")
    print("=" * 70)

    output = config.get('output', {})
    model = fit_model(df, config, save_path=output.get('model_path', 'models/full_model.joblib'))

    if model.transformer is not None:
        print_transform_summary(model.transformer, model.response)

    print_model_summary(model)

    tables_path = Path(output.get('tables_path', 'reports/tables/'))
    save_coefficient_table(model, str(tables_path / 'coefficients_full.csv'))

    if model.transformer is not None and model.transformer.is_log:
        effects = multiplicative_effects(model)
        effects.to_csv(tables_path / 'multiplicative_effects_full.csv', index=False)
        print("Multiplicative effects (exp(b)):")
        print(effects.round(4).to_string(index=False))

    return model


def run_diagnostics(
    model: OLSModel,
    config: Dict[str, Any],
    prefix: str = 'full'
) -> Dict[str, Any]:
    """
    Execute Phase 3: Residual diagnostics.

    Args:
        model: Fitted model
        config: Configuration dictionary
        prefix: File name prefix for this model's outputs

    Returns:
        Diagnostics result dictionary
    """
    print("\n" + "=" * 70)
    print(f"PHASE 3: RESIDUAL DIAGNOSTICS ({prefix})")
    print("=" * 70)

    diag_config = config.get('diagnostics', {})
    output_dir = config.get('output', {}).get('reports_path', 'reports/')

    result = generate_diagnostics_report(
        model,
        output_dir=output_dir,
        prefix=prefix,
        cv_folds=diag_config.get('cv_folds', 5),
        random_state=diag_config.get('random_state', 42),
        show_plots=False
    )

    print_diagnostics_report(result['metrics'])

    return result


def run_model_selection(model: OLSModel, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 4: Stepwise model selection.

    Args:
        model: Fitted full model
        config: Configuration dictionary

    Returns:
        Dictionary with the selection results and the model comparison table
    """
    print("\n" + "=" * 70)
    print("PHASE 4: STEPWISE MODEL SELECTION")
    print("=" * 70)

    sel_config = config.get('selection', {})
    diag_config = config.get('diagnostics', {})
    tables_path = Path(config.get('output', {}).get('tables_path', 'reports/tables/'))

    results = run_selection(
        model,
        direction=sel_config.get('direction', 'both'),
        criterion=sel_config.get('criterion', 'adjr2'),
        alpha=sel_config.get('alpha', 0.10),
        penter=sel_config.get('penter', 0.10),
        threshold=sel_config.get('threshold', 0.0)
    )

    models = {'full': model}
    for direction, result in results.items():
        print_selection_report(result)
        save_trace(result, str(tables_path / f'selection_{direction}.json'))
        save_coefficient_table(result.model, str(tables_path / f'coefficients_{direction}.csv'))
        models[direction] = result.model

    comparison = compare_models(
        models,
        cv_folds=diag_config.get('cv_folds', 5),
        random_state=diag_config.get('random_state', 42)
    )
    comparison.to_csv(tables_path / 'model_comparison.csv', index=False)

    print("Model comparison (cv_rmse = out-of-sample error on the fitting scale):")
    print(comparison.round(4).to_string(index=False))

    return {'selection': results, 'comparison': comparison}


def run_full_pipeline(
    data_path: str,
    config_path: str = "config/config.yaml",
    args: Optional[argparse.Namespace] = None
) -> Dict[str, Any]:
    """
    Execute the complete pipeline.

    Args:
        data_path: Path to input CSV file
        config_path: Path to configuration file
        args: Parsed command-line arguments with overrides (optional)

    Returns:
        Dictionary containing all phase results
    """
    print("\n" + "=" * 70)
    print("MULTIPLE LINEAR REGRESSION PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    config = load_config(config_path)
    if args is not None:
        config = apply_overrides(config, args)
    setup_logging(config.get('logging', {}).get('level', 'INFO'))

    print("\n📊 Loading data...")
    df = load_data(data_path)
    print_data_summary(df)

    response = config.get('data', {}).get('response')
    is_valid, validation_report = validate_data(
        df, response=response, predictors=config.get('data', {}).get('predictors'), strict=False
    )
    if not is_valid:
        print("⚠️  Data validation warnings detected. Proceeding anyway...")

    results = {
        'config': config,
        'data_shape': df.shape,
        'validation': validation_report
    }

    results['eda'] = run_exploration(df, config)
    results['model'] = run_fitting(df, config)
    results['diagnostics'] = run_diagnostics(results['model'], config, prefix='full')
    results['selection'] = run_model_selection(results['model'], config)

    for direction, result in results['selection']['selection'].items():
        run_diagnostics(result.model, config, prefix=direction)

    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Input data: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"  • Full model: {results['model'].formula} (adj R² {results['model'].adj_r2:.4f})")
    for direction, result in results['selection']['selection'].items():
        print(f"  • {direction.capitalize()}: {result.model.formula} (adj R² {result.model.adj_r2:.4f})")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    data_path: str,
    config_path: str = "config/config.yaml",
    args: Optional[argparse.Namespace] = None
) -> Dict[str, Any]:
    """
    Execute a single phase of the pipeline.

    Args:
        phase: Phase to run ('explore', 'fit', 'diagnose', 'select')
        data_path: Path to input CSV file
        config_path: Path to configuration file
        args: Parsed command-line arguments with overrides (optional)

    Returns:
        Phase result dictionary
    """
    config = load_config(config_path)
    if args is not None:
        config = apply_overrides(config, args)
    setup_logging(config.get('logging', {}).get('level', 'INFO'))

    df = load_data(data_path)

    if phase == 'explore':
        return run_exploration(df, config)

    elif phase == 'fit':
        return {'model': run_fitting(df, config)}

    elif phase == 'diagnose':
        model = run_fitting(df, config)
        return run_diagnostics(model, config, prefix='full')

    elif phase == 'select':
        model = run_fitting(df, config)
        return run_model_selection(model, config)

    else:
        raise ValueError(f"Unknown phase: {phase}. Choose from: explore, fit, diagnose, select")


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Multiple linear regression: fit, diagnose, transform and select",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --data data/raw/airquality.csv
  python main.py --data data/raw/airquality.csv --phase select --direction backward
  python main.py --data data/raw/airquality.csv --response Ozone --transform log
        """
    )

    parser.add_argument(
        '--data', '-d',
        type=str,
        help='Path to the input CSV file (default: data.path from the config)'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=['explore', 'fit', 'diagnose', 'select', 'all'],
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--response', '-r',
        type=str,
        help='Response column (overrides data.response)'
    )

    parser.add_argument(
        '--transform', '-t',
        type=str,
        choices=['auto', 'log', 'sqrt', 'none'],
        help='Response transform (overrides transform.method)'
    )

    parser.add_argument(
        '--direction',
        type=str,
        choices=['backward', 'forward', 'both'],
        help='Stepwise direction (overrides selection.direction)'
    )

    parser.add_argument(
        '--criterion',
        type=str,
        choices=['adjr2', 'p'],
        help='Stepwise criterion (overrides selection.criterion)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        sys.exit(1)

    if args.data is None:
        args.data = load_config(args.config).get('data', {}).get('path', 'data/raw/airquality.csv')

    if not Path(args.data).exists():
        print(f"Error: Data file not found: {args.data}")
        print("\nExpected format: CSV with one row per observation and named columns")
        sys.exit(1)

    try:
        if args.phase == 'all':
            run_full_pipeline(args.data, args.config, args)
        else:
            run_single_phase(args.phase, args.data, args.config, args)

        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
