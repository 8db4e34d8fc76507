"""
Stepwise Multiple Linear Regression
===================================

A small pipeline for fitting, diagnosing and selecting multiple linear
regression models.

Modules:
    - data_loader: Configuration, CSV ingestion and validation
    - eda: Exploratory Data Analysis of response and predictors
    - terms: Main effects, interactions and the term hierarchy
    - transforms: Log / square-root response transforms
    - model: OLS fitting with statsmodels
    - diagnostics: Residual plots, fit metrics and cross-validation
    - selection: Backward elimination and forward selection
"""

__version__ = "1.0.0"
__author__ = "Predictive Analytics Team"
