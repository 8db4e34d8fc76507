"""
Data Loader Module
==================

Handles configuration, CSV ingestion and data quality checks for regression.

Functions:
    - load_config: Load YAML configuration file
    - load_data: Load CSV data (R-style NA markers become missing values)
    - validate_data: Check the response and predictors are usable
    - complete_cases: Drop rows with missing values in the modelled columns
    - get_data_summary: Generate basic statistics
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Sequence, Tuple

import pandas as pd
import numpy as np
import yaml

logger = logging.getLogger(__name__)

NA_VALUES = ['NA', 'N/A', 'NaN', '']


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def load_data(
    file_path: str,
    expected_columns: Optional[int] = None,
    index_col: Optional[int] = None
) -> pd.DataFrame:
    """
    Load a CSV file with one row per observation and named variable columns.

    Args:
        file_path: Path to the CSV file
        expected_columns: Expected number of columns (optional validation)
        index_col: Column to use as index (optional)

    Returns:
        DataFrame containing the loaded data

    Raises:
        FileNotFoundError: If data file doesn't exist
        ValueError: If the column count does not match
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    df = pd.read_csv(file_path, index_col=index_col, na_values=NA_VALUES)
    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")

    if expected_columns is not None and df.shape[1] != expected_columns:
        raise ValueError(
            f"Expected {expected_columns} columns, but found {df.shape[1]}. "
            f"Columns: {list(df.columns)}"
        )

    return df


def resolve_predictors(
    df: pd.DataFrame,
    response: str,
    predictors: Optional[Sequence[str]] = None
) -> List[str]:
    """Use every non-response column when no predictor list is given."""
    if predictors:
        return list(predictors)
    return [col for col in df.columns if col != response]


def validate_data(
    df: pd.DataFrame,
    response: Optional[str] = None,
    predictors: Optional[Sequence[str]] = None,
    strict: bool = True
) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate data quality constraints for a regression fit.

    Checks:
        - Response and predictor columns exist
        - Response is numerical
        - Missing values (reported; incomplete rows are dropped at fit time)
        - Constant columns, which carry no information

    Args:
        df: DataFrame to validate
        response: Name of the response column
        predictors: Candidate predictor names (default: all other columns)
        strict: If True, raise errors on validation failure

    Returns:
        Tuple of (is_valid, validation_report)
    """
    report = {
        "total_rows": len(df),
        "total_columns": len(df.columns),
        "column_names": list(df.columns),
        "issues": []
    }

    columns = list(df.columns)
    if response is not None:
        predictors = resolve_predictors(df, response, predictors)
        columns = [response] + list(predictors)

        # Check 1: Requested columns exist
        missing_cols = [col for col in columns if col not in df.columns]
        if missing_cols:
            issue = f"Columns not found in data: {missing_cols}"
            report["issues"].append(issue)
            logger.warning(issue)
            columns = [col for col in columns if col in df.columns]

        # Check 2: Response must be numerical
        if response in df.columns and not pd.api.types.is_numeric_dtype(df[response]):
            issue = f"Response '{response}' is not numeric (dtype {df[response].dtype})"
            report["issues"].append(issue)
            logger.warning(issue)

    # Check 3: Missing values
    missing_counts = df[columns].isnull().sum()
    total_missing = int(missing_counts.sum())
    if total_missing > 0:
        incomplete_rows = int(df[columns].isnull().any(axis=1).sum())
        issue = f"Missing values: {total_missing} in {incomplete_rows} row(s)"
        report["issues"].append(issue)
        report["missing_by_column"] = {
            col: int(n) for col, n in missing_counts[missing_counts > 0].items()
        }
        logger.warning(issue)

    # Check 4: Constant columns
    for col in columns:
        if df[col].nunique(dropna=True) <= 1:
            issue = f"Column '{col}' is constant"
            report["issues"].append(issue)
            logger.warning(issue)

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise ValueError(f"Data validation failed: {report['issues']}")

    return is_valid, report


def complete_cases(df: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """
    Keep only rows with a value in every one of ``columns``.

    Args:
        df: Input data
        columns: Columns that must be present

    Returns:
        Filtered copy of the data

    Raises:
        ValueError: If a column is missing or no complete row remains
    """
    missing_cols = [col for col in columns if col not in df.columns]
    if missing_cols:
        raise ValueError(f"Columns not found in data: {missing_cols}")

    mask = df[list(columns)].notnull().all(axis=1)
    dropped = int((~mask).sum())
    if dropped:
        logger.warning(f"Dropping {dropped} of {len(df)} rows with missing values")

    data = df.loc[mask, list(columns)].copy()
    if data.empty:
        raise ValueError("No complete rows left after dropping missing values")

    return data


def get_data_summary(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Generate summary statistics for the dataset.

    Args:
        df: DataFrame to summarize

    Returns:
        Dictionary containing summary statistics
    """
    summary = {
        "shape": df.shape,
        "columns": list(df.columns),
        "dtypes": df.dtypes.astype(str).to_dict(),
        "missing": {col: int(n) for col, n in df.isnull().sum().items()},
        "statistics": {}
    }

    for col in df.select_dtypes(include=[np.number]).columns:
        summary["statistics"][col] = {
            "count": int(df[col].count()),
            "mean": float(df[col].mean()),
            "std": float(df[col].std()),
            "min": float(df[col].min()),
            "50%": float(df[col].quantile(0.50)),
            "max": float(df[col].max()),
            "skew": float(df[col].skew())
        }

    return summary


def print_data_summary(df: pd.DataFrame) -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        df: DataFrame to summarize
    """
    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Shape: {df.shape[0]} rows × {df.shape[1]} columns")
    print("\nColumn Information:")
    print("-" * 40)

    for col in df.columns:
        dtype = df[col].dtype
        non_null = df[col].count()
        null_pct = (1 - non_null / len(df)) * 100
        print(f"  {col}: {dtype} | {non_null} non-null ({null_pct:.1f}% missing)")

    print("\nBasic Statistics:")
    print("-" * 40)
    print(df.describe().round(4).to_string())
    print("=" * 60 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    try:
        config = load_config()
        print("Configuration loaded successfully!")
        print(f"Response: {config['data']['response']}")
    except FileNotFoundError as e:
        print(f"Config not found: {e}")

    data_path = "data/raw/airquality.csv"
    if os.path.exists(data_path):
        df = load_data(data_path)
        print_data_summary(df)
        is_valid, report = validate_data(df, response="Ozone", strict=False)
        print(f"Validation passed: {is_valid}")
    else:
        print(f"No data file found at {data_path}")
        print("Place your CSV file there to test the data loader.")
