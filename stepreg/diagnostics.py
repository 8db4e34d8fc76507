"""
Model Diagnostics Module
========================

Residual diagnostics and fit metrics for fitted OLS models.

Features:
    - Residuals and fitted values per training row
    - Linearity, independence, normality and equal-variance plots
    - In-sample fit metrics (RMSE, MAE, R², adjusted R², AIC, BIC)
    - Informational assumption statistics (Shapiro-Wilk, Durbin-Watson, Breusch-Pagan)
    - K-fold cross-validated RMSE to compare full and selected models
    - Diagnostics report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
import statsmodels.api as sm
from scipy import stats
from sklearn.metrics import mean_squared_error, mean_absolute_error, r2_score
from sklearn.model_selection import KFold
from statsmodels.nonparametric.smoothers_lowess import lowess
from statsmodels.stats.diagnostic import het_breuschpagan
from statsmodels.stats.stattools import durbin_watson

from .model import OLSModel

logger = logging.getLogger(__name__)


def residual_frame(model: OLSModel) -> pd.DataFrame:
    """
    Collect fitted values and residuals in observation order.

    Args:
        model: Fitted model

    Returns:
        DataFrame with order, fitted, residual and studentized columns
    """
    influence = model.results.get_influence()
    return pd.DataFrame({
        'order': np.arange(1, model.nobs + 1),
        'fitted': model.fitted_values.values,
        'residual': model.residuals.values,
        'studentized': influence.resid_studentized_internal
    }, index=model.data.index)


def _add_lowess(ax: plt.Axes, x: np.ndarray, y: np.ndarray) -> None:
    if len(x) < 3:
        return
    smoothed = lowess(y, x, frac=2 / 3)
    ax.plot(smoothed[:, 0], smoothed[:, 1], color='red', linewidth=1.5, label='LOWESS')


def plot_residuals_vs_fitted(
    model: OLSModel,
    figsize: Tuple[int, int] = (7, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Residuals against fitted values. A patternless band around zero supports linearity.

    Args:
        model: Fitted model
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    frame = residual_frame(model)

    fig, ax = plt.subplots(figsize=figsize)
    sns.scatterplot(x=frame['fitted'], y=frame['residual'], ax=ax, alpha=0.7)
    ax.axhline(0, color='gray', linestyle='--', linewidth=1)
    _add_lowess(ax, frame['fitted'].to_numpy(), frame['residual'].to_numpy())

    ax.set_xlabel('Fitted values')
    ax.set_ylabel('Residuals')
    ax.set_title('Residuals vs Fitted (linearity)', fontsize=12, fontweight='bold')
    ax.legend(fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Residuals vs fitted plot saved to {save_path}")

    return fig


def plot_residuals_vs_order(
    model: OLSModel,
    figsize: Tuple[int, int] = (7, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Residuals in observation order. Runs or trends suggest dependent errors.
    """
    frame = residual_frame(model)

    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(frame['order'], frame['residual'], marker='o', markersize=3,
            linewidth=0.6, alpha=0.8)
    ax.axhline(0, color='gray', linestyle='--', linewidth=1)

    ax.set_xlabel('Observation order')
    ax.set_ylabel('Residuals')
    ax.set_title('Residuals vs Order (independence)', fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Residuals vs order plot saved to {save_path}")

    return fig


def plot_residual_distribution(
    model: OLSModel,
    figsize: Tuple[int, int] = (12, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Histogram and normal Q-Q plot of the residuals (normality).
    """
    frame = residual_frame(model)
    residuals = frame['residual']

    fig, axes = plt.subplots(1, 2, figsize=figsize)

    sns.histplot(residuals, kde=True, ax=axes[0], bins=20, alpha=0.7)
    axes[0].axvline(0, color='red', linestyle='--', linewidth=1.5)
    axes[0].set_xlabel('Residual (Observed - Predicted)')
    axes[0].set_ylabel('Frequency')
    axes[0].set_title(f'Residual Distribution (Std: {residuals.std():.4f})',
                      fontsize=11, fontweight='bold')

    sm.qqplot(frame['studentized'], line='45', ax=axes[1])
    axes[1].set_title('Normal Q-Q (studentized residuals)', fontsize=11, fontweight='bold')

    plt.suptitle('Normality of Residuals', fontsize=13, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Residual distribution plot saved to {save_path}")

    return fig


def plot_scale_location(
    model: OLSModel,
    figsize: Tuple[int, int] = (7, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Square root of |studentized residuals| against fitted values (equal variance).
    """
    frame = residual_frame(model)
    spread = np.sqrt(np.abs(frame['studentized']))

    fig, ax = plt.subplots(figsize=figsize)
    sns.scatterplot(x=frame['fitted'], y=spread, ax=ax, alpha=0.7, color='tab:orange')
    _add_lowess(ax, frame['fitted'].to_numpy(), spread.to_numpy())

    ax.set_xlabel('Fitted values')
    ax.set_ylabel('sqrt(|studentized residuals|)')
    ax.set_title('Scale-Location (equal variance)', fontsize=12, fontweight='bold')
    ax.legend(fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Scale-location plot saved to {save_path}")

    return fig


def plot_diagnostics(
    model: OLSModel,
    figsize: Tuple[int, int] = (12, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    2x2 grid with the four assumption checks.

    Args:
        model: Fitted model
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    frame = residual_frame(model)
    fitted = frame['fitted'].to_numpy()
    residuals = frame['residual'].to_numpy()

    fig, axes = plt.subplots(2, 2, figsize=figsize)

    ax = axes[0, 0]
    ax.scatter(fitted, residuals, alpha=0.6, s=20)
    ax.axhline(0, color='gray', linestyle='--', linewidth=1)
    _add_lowess(ax, fitted, residuals)
    ax.set_xlabel('Fitted values')
    ax.set_ylabel('Residuals')
    ax.set_title('Linearity: Residuals vs Fitted', fontsize=10, fontweight='bold')

    ax = axes[0, 1]
    ax.plot(frame['order'], residuals, marker='o', markersize=2, linewidth=0.5)
    ax.axhline(0, color='gray', linestyle='--', linewidth=1)
    ax.set_xlabel('Observation order')
    ax.set_ylabel('Residuals')
    ax.set_title('Independence: Residuals vs Order', fontsize=10, fontweight='bold')

    sm.qqplot(frame['studentized'], line='45', ax=axes[1, 0])
    axes[1, 0].set_title('Normality: Q-Q Plot', fontsize=10, fontweight='bold')

    ax = axes[1, 1]
    spread = np.sqrt(np.abs(frame['studentized'].to_numpy()))
    ax.scatter(fitted, spread, alpha=0.6, s=20, color='tab:orange')
    _add_lowess(ax, fitted, spread)
    ax.set_xlabel('Fitted values')
    ax.set_ylabel('sqrt(|studentized residuals|)')
    ax.set_title('Equal Variance: Scale-Location', fontsize=10, fontweight='bold')

    plt.suptitle(f'Residual Diagnostics - {model.formula}', fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Diagnostics grid saved to {save_path}")

    return fig


def calculate_fit_metrics(model: OLSModel) -> Dict[str, Any]:
    """
    In-sample fit metrics on the fitting scale.

    Args:
        model: Fitted model

    Returns:
        Dictionary of metrics
    """
    y_true = model.endog.to_numpy()
    y_pred = model.fitted_values.to_numpy()

    return {
        'rmse': float(np.sqrt(mean_squared_error(y_true, y_pred))),
        'mae': float(mean_absolute_error(y_true, y_pred)),
        'r2': float(r2_score(y_true, y_pred)),
        'adj_r2': model.adj_r2,
        'aic': model.aic,
        'bic': model.bic,
        'n_samples': model.nobs,
        'n_terms': len(model.terms),
        'n_parameters': int(model.design_matrix.shape[1])
    }


def assumption_statistics(model: OLSModel) -> Dict[str, Any]:
    """
    Numeric companions to the diagnostic plots.

    These are reported for reference only; the assumption checks remain
    visual.

    Returns:
        Dictionary with Shapiro-Wilk, Durbin-Watson and Breusch-Pagan results
    """
    residuals = model.residuals.to_numpy()
    result: Dict[str, Any] = {}

    if len(residuals) >= 3:
        statistic, p_value = stats.shapiro(residuals)
        result['shapiro_wilk'] = {'statistic': float(statistic), 'p_value': float(p_value)}
    else:
        result['shapiro_wilk'] = None

    result['durbin_watson'] = float(durbin_watson(residuals))

    exog = model.design_matrix.to_numpy()
    if exog.shape[1] >= 2:
        lm, lm_p, f_value, f_p = het_breuschpagan(residuals, exog)
        result['breusch_pagan'] = {
            'lm_statistic': float(lm),
            'lm_p_value': float(lm_p),
            'f_statistic': float(f_value),
            'f_p_value': float(f_p)
        }
    else:
        result['breusch_pagan'] = None

    return result


def cross_validated_rmse(
    model: OLSModel,
    n_splits: int = 5,
    random_state: int = 42
) -> Dict[str, Any]:
    """
    Out-of-sample RMSE of the model's term set by K-fold cross-validation.

    A selected model that generalises at least as well as the full model
    while using fewer terms is the point of stepwise selection.

    Args:
        model: Fitted model (its design matrix and response are reused)
        n_splits: Number of folds
        random_state: Shuffle seed

    Returns:
        Dictionary with per-fold and mean RMSE on the fitting scale
    """
    X = model.design_matrix.to_numpy()
    y = model.endog.to_numpy()

    splitter = KFold(n_splits=n_splits, shuffle=True, random_state=random_state)
    fold_rmse = []
    for train_idx, test_idx in splitter.split(X):
        fold_fit = sm.OLS(y[train_idx], X[train_idx]).fit()
        y_pred = fold_fit.predict(X[test_idx])
        fold_rmse.append(float(np.sqrt(mean_squared_error(y[test_idx], y_pred))))

    return {
        'fold_rmse': fold_rmse,
        'mean_rmse': float(np.mean(fold_rmse)),
        'std_rmse': float(np.std(fold_rmse)),
        'n_splits': n_splits
    }


def compare_models(
    models: Dict[str, OLSModel],
    cv_folds: int = 5,
    random_state: int = 42
) -> pd.DataFrame:
    """
    Side-by-side fit and cross-validation comparison.

    Args:
        models: Mapping of display name to fitted model
        cv_folds: Number of folds for cross-validated RMSE
        random_state: Shuffle seed

    Returns:
        DataFrame with one row per model
    """
    rows = []
    for name, model in models.items():
        cv = cross_validated_rmse(model, n_splits=cv_folds, random_state=random_state)
        rows.append({
            'model': name,
            'n_terms': len(model.terms),
            'terms': ' + '.join(model.term_labels) or '1',
            'r2': model.r2,
            'adj_r2': model.adj_r2,
            'aic': model.aic,
            'cv_rmse': cv['mean_rmse']
        })
    return pd.DataFrame(rows)


def generate_diagnostics_report(
    model: OLSModel,
    output_dir: str = "reports/",
    prefix: str = "full",
    cv_folds: int = 5,
    random_state: int = 42,
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Run all diagnostics for a model and write the figures and metrics.

    Args:
        model: Fitted model
        output_dir: Directory for output files
        prefix: File name prefix (e.g. 'full', 'backward')
        cv_folds: Number of cross-validation folds
        random_state: Shuffle seed for cross-validation
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing metrics and file paths
    """
    output_dir = Path(output_dir)
    figures_dir = output_dir / "figures"
    metrics_dir = output_dir / "metrics"

    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info(f"RESIDUAL DIAGNOSTICS ({prefix})")
    logger.info("=" * 60)

    metrics = {
        'formula': model.formula,
        'fit': calculate_fit_metrics(model),
        'assumptions': assumption_statistics(model),
        'cross_validation': cross_validated_rmse(model, n_splits=cv_folds, random_state=random_state)
    }

    metrics_file = metrics_dir / f"{prefix}_diagnostics.json"
    with open(metrics_file, 'w') as f:
        json.dump(metrics, f, indent=2)
    logger.info(f"Metrics saved to {metrics_file}")

    figures = []
    plots = [
        ('diagnostics', plot_diagnostics),
        ('residuals_vs_fitted', plot_residuals_vs_fitted),
        ('residuals_vs_order', plot_residuals_vs_order),
        ('residual_distribution', plot_residual_distribution),
        ('scale_location', plot_scale_location),
    ]
    for name, plot in plots:
        filename = f"{prefix}_{name}.png"
        logger.info(f"Generating {name.replace('_', ' ')} plot...")
        plot(model, save_path=str(figures_dir / filename))
        figures.append(filename)

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info(f"  RMSE: {metrics['fit']['rmse']:.6f}")
    logger.info(f"  Adjusted R²: {metrics['fit']['adj_r2']:.6f}")
    logger.info(f"  CV RMSE: {metrics['cross_validation']['mean_rmse']:.6f}")

    return {
        'metrics': metrics,
        'figures': figures,
        'metrics_file': str(metrics_file)
    }


def print_diagnostics_report(metrics: Dict[str, Any]) -> None:
    """
    Print a formatted diagnostics report to console.

    Args:
        metrics: Metrics dictionary from generate_diagnostics_report
    """
    fit = metrics['fit']
    assumptions = metrics['assumptions']

    print("\n" + "=" * 70)
    print("RESIDUAL DIAGNOSTICS")
    print("=" * 70)
    print(f"Model: {metrics['formula']}")
    print(f"  • RMSE: {fit['rmse']:.6f}")
    print(f"  • MAE: {fit['mae']:.6f}")
    print(f"  • R²: {fit['r2']:.4f} (adjusted {fit['adj_r2']:.4f})")
    print(f"  • AIC: {fit['aic']:.2f} | BIC: {fit['bic']:.2f}")
    print(f"  • CV RMSE ({metrics['cross_validation']['n_splits']}-fold): "
          f"{metrics['cross_validation']['mean_rmse']:.6f}")

    print("\nAssumption statistics (for reference; read the plots):")
    if assumptions['shapiro_wilk']:
        print(f"  • Shapiro-Wilk p = {assumptions['shapiro_wilk']['p_value']:.4f} (normality)")
    print(f"  • Durbin-Watson = {assumptions['durbin_watson']:.3f} (independence, ~2 is good)")
    if assumptions['breusch_pagan']:
        print(f"  • Breusch-Pagan p = {assumptions['breusch_pagan']['lm_p_value']:.4f} (equal variance)")

    print("\nWhat to look for:")
    print("  - Residuals vs Fitted: no curve (linearity)")
    print("  - Residuals vs Order: no runs or trend (independence)")
    print("  - Q-Q plot: points near the line (normality)")
    print("  - Scale-Location: flat band (equal variance)")
    print("=" * 70 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    np.random.seed(42)
    n_samples = 120
    sample_df = pd.DataFrame({'x1': np.random.randn(n_samples), 'x2': np.random.randn(n_samples)})
    sample_df['y'] = 1.5 + 2.0 * sample_df['x1'] - sample_df['x2'] + np.random.randn(n_samples) * 0.5

    sample_model = OLSModel('y', terms=['x1', 'x2']).fit(sample_df)
    report = generate_diagnostics_report(sample_model, output_dir="reports/", prefix="sample")
    print_diagnostics_report(report['metrics'])
