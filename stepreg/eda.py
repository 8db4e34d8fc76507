"""
Exploratory Data Analysis (EDA) Module
======================================

Looks at the response and candidate predictors before any model is fitted.

Functions:
    - plot_response_distribution: Raw vs log-scale histograms of the response
    - plot_correlation_matrix: Correlation heatmap
    - plot_pairwise_scatter: Response against each predictor with a fitted line
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Sequence, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

logger = logging.getLogger(__name__)

plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def plot_response_distribution(
    df: pd.DataFrame,
    response: str,
    offset: float = 1e-7,
    figsize: Tuple[int, int] = (12, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Histogram of the response on the raw and the log scale.

    A long right tail on the raw scale that becomes roughly symmetric after
    the log is the usual sign that the response should be transformed.

    Args:
        df: Data containing the response
        response: Response column name
        offset: Added before the log when the response contains zeros
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Matplotlib Figure object
    """
    values = df[response].dropna()

    fig, axes = plt.subplots(1, 2, figsize=figsize)

    sns.histplot(values, kde=True, ax=axes[0], bins=30, alpha=0.7)
    axes[0].set_title(f'{response} (skew={stats.skew(values):.2f})', fontsize=11, fontweight='bold')

    if (values >= 0).all():
        shifted = values + (offset if (values == 0).any() else 0.0)
        logged = np.log(shifted)
        sns.histplot(logged, kde=True, ax=axes[1], bins=30, alpha=0.7, color='tab:green')
        axes[1].set_title(f'log({response}) (skew={stats.skew(logged):.2f})',
                          fontsize=11, fontweight='bold')
    else:
        axes[1].set_visible(False)

    plt.suptitle('Response Distribution', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Response distribution saved to {save_path}")

    return fig


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (8, 7),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for all numerical columns.

    Args:
        df: DataFrame with numerical data
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    corr_matrix = df.select_dtypes(include=[np.number]).corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        annot=True,
        fmt='.2f',
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.5,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def plot_pairwise_scatter(
    df: pd.DataFrame,
    response: str,
    predictors: Sequence[str],
    figsize: Optional[Tuple[int, int]] = None,
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Scatter the response against each numeric predictor with a least-squares line.

    Args:
        df: Input data
        response: Response column name
        predictors: Predictor column names
        figsize: Figure size (default scales with the number of predictors)
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    columns = [p for p in predictors if pd.api.types.is_numeric_dtype(df[p])]
    n_cols = max(len(columns), 1)
    n_rows = (n_cols + 2) // 3
    if figsize is None:
        figsize = (14, 4 * n_rows)

    fig, axes = plt.subplots(n_rows, 3, figsize=figsize)
    axes = np.atleast_1d(axes).flatten()

    for idx, col in enumerate(columns):
        ax = axes[idx]
        sns.regplot(x=df[col], y=df[response], ax=ax, scatter_kws={'alpha': 0.5, 's': 15},
                    line_kws={'color': 'red'})
        r = df[[col, response]].dropna().corr().iloc[0, 1]
        ax.set_title(f'{response} vs {col} (r={r:.2f})', fontsize=10, fontweight='bold')

    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Response vs Predictors', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Pairwise scatter plots saved to {save_path}")

    return fig


def generate_eda_report(
    df: pd.DataFrame,
    response: str,
    predictors: Sequence[str],
    output_dir: str = "reports/figures/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate the exploration figures and summary statistics.

    Args:
        df: DataFrame to analyze
        response: Response column name
        predictors: Candidate predictor names
        output_dir: Directory to save figures
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report = {
        "data_shape": df.shape,
        "response": response,
        "predictors": list(predictors),
        "figures": [],
        "correlation_matrix": None,
        "statistics": {}
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS")
    logger.info("=" * 60)

    logger.info("Plotting response distribution...")
    plot_response_distribution(
        df, response,
        save_path=str(output_dir / "01_response_distribution.png")
    )
    report["figures"].append("01_response_distribution.png")

    logger.info("Computing correlation matrix...")
    _, corr_matrix = plot_correlation_matrix(
        df[[response] + list(predictors)],
        save_path=str(output_dir / "02_correlation_matrix.png")
    )
    report["figures"].append("02_correlation_matrix.png")
    report["correlation_matrix"] = corr_matrix.to_dict()

    logger.info("Plotting response against predictors...")
    plot_pairwise_scatter(
        df, response, predictors,
        save_path=str(output_dir / "03_response_vs_predictors.png")
    )
    report["figures"].append("03_response_vs_predictors.png")

    for col in [response] + list(predictors):
        if not pd.api.types.is_numeric_dtype(df[col]):
            continue
        report["statistics"][col] = {
            "mean": float(df[col].mean()),
            "std": float(df[col].std()),
            "min": float(df[col].min()),
            "max": float(df[col].max()),
            "skew": float(df[col].skew()),
            "missing": int(df[col].isnull().sum())
        }

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def strong_correlations(corr_matrix: pd.DataFrame, threshold: float = 0.5) -> List[Dict[str, Any]]:
    """Pairs of distinct columns with |r| >= threshold, strongest first."""
    pairs = []
    columns = list(corr_matrix.columns)
    for i in range(len(columns)):
        for j in range(i + 1, len(columns)):
            value = corr_matrix.iloc[i, j]
            if abs(value) >= threshold:
                pairs.append({"col1": columns[i], "col2": columns[j], "correlation": float(value)})
    return sorted(pairs, key=lambda x: abs(x["correlation"]), reverse=True)


def print_correlation_insights(
    corr_matrix: pd.DataFrame,
    response: Optional[str] = None,
    threshold: float = 0.5
) -> None:
    """
    Print strongly correlated pairs, separating response and predictor pairs.

    Args:
        corr_matrix: Correlation matrix DataFrame
        response: Response column name (optional)
        threshold: Correlation threshold for "strong" correlation
    """
    print("\n" + "=" * 50)
    print("CORRELATION INSIGHTS")
    print("=" * 50)

    pairs = strong_correlations(corr_matrix, threshold)

    if pairs:
        print(f"\nStrong correlations (|r| >= {threshold}):")
        for item in pairs:
            direction = "positive" if item["correlation"] > 0 else "negative"
            print(f"  • {item['col1']} ↔ {item['col2']}: {item['correlation']:.3f} ({direction})")

        collinear = [p for p in pairs if response not in (p["col1"], p["col2"])]
        if collinear:
            print("\nInterpretation:")
            print("  - Correlated predictors inflate standard errors (multicollinearity)")
            print("  - Stepwise selection may keep only one of each correlated pair")
    else:
        print(f"\nNo strong correlations found (|r| >= {threshold})")

    print("=" * 50 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    np.random.seed(42)
    n_samples = 150

    sample_df = pd.DataFrame({
        'Solar.R': np.random.uniform(7, 334, n_samples),
        'Wind': np.random.normal(10, 3.5, n_samples),
        'Temp': np.random.normal(78, 9.5, n_samples)
    })
    sample_df['Ozone'] = np.exp(-0.262 + 0.003 * sample_df['Solar.R'] - 0.062 * sample_df['Wind']
                                + 0.049 * sample_df['Temp'] + np.random.normal(0, 0.5, n_samples))

    print("Running EDA on sample data...")
    report = generate_eda_report(sample_df, 'Ozone', ['Solar.R', 'Wind', 'Temp'])
    print_correlation_insights(pd.DataFrame(report["correlation_matrix"]), response='Ozone')
    print(f"Generated {len(report['figures'])} figures")
