"""
Model Fitting Module
====================

Ordinary least squares over an explicit term set using statsmodels.

Features:
    - Patsy design matrix from main effects, categorical dummies and interactions
    - Tidy coefficient table (term, estimate, std_error, statistic, p_value)
    - Per-term p-values (t-test, or joint F-test for multi-column terms)
    - Optional response transform with predictions on either scale
    - Model persistence (save/load)
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import joblib
import statsmodels.api as sm
from patsy import DesignInfo, EvalFactor, PatsyError, build_design_matrices, dmatrix

from .data_loader import complete_cases, resolve_predictors
from .terms import INTERACTION_SEP, Term, TermLike, TermSet, as_term, factor_code
from .transforms import ResponseTransformer, suggest_transform

logger = logging.getLogger(__name__)

INTERCEPT = 'Intercept'


def is_categorical(series: pd.Series) -> bool:
    return not pd.api.types.is_numeric_dtype(series) or pd.api.types.is_bool_dtype(series)


def categorical_variables(df: pd.DataFrame, variables: Sequence[str]) -> List[str]:
    """Variables coded with treatment dummies; each needs at least two levels."""
    categorical = [name for name in variables if is_categorical(df[name])]
    for name in categorical:
        if df[name].nunique(dropna=True) < 2:
            raise ValueError(f"Categorical variable '{name}' has a single level")
    return categorical


def _column_labels(
    design_info: DesignInfo,
    variables: Sequence[str],
    categorical: Sequence[str]
) -> Tuple[List[str], Dict[Term, List[str]]]:
    """
    Readable column names and the columns owned by each term.

    Patsy names columns after the quoted factor code (``Q('Wind')``,
    ``C(Q('g'))[T.b]``); these are rewritten to ``Wind`` and ``g[T.b]``.
    """
    factors = {
        EvalFactor(factor_code(name, name in categorical)): name for name in variables
    }

    labels = list(design_info.column_names)
    columns_by_term: Dict[Term, List[str]] = {}

    for patsy_term, term_slice in design_info.term_slices.items():
        if not patsy_term.factors:
            continue
        names = [factors[f] for f in patsy_term.factors]
        prefixes = [f.name() for f in patsy_term.factors]
        for i in range(term_slice.start, term_slice.stop):
            pieces = labels[i].split(INTERACTION_SEP)
            labels[i] = INTERACTION_SEP.join(
                name + piece[len(prefix):]
                for name, prefix, piece in zip(names, prefixes, pieces)
            )
        columns_by_term[Term(names)] = labels[term_slice]

    return labels, columns_by_term


def build_design_matrix(
    df: pd.DataFrame,
    terms: Sequence[Term],
    universe: Optional[TermSet] = None
) -> Tuple[pd.DataFrame, Dict[Term, List[str]], DesignInfo]:
    """
    Build the OLS design matrix for ``terms`` with patsy.

    Args:
        df: Data containing every variable the terms use
        terms: Terms to include
        universe: Term universe rendering the formula (default: ``terms`` itself)

    Returns:
        Tuple of (design matrix with an Intercept column, columns per term,
        patsy design info for building matrices on new data)
    """
    if universe is None:
        universe = TermSet(terms)

    variables = []
    for term in terms:
        variables.extend(v for v in term.variables if v not in variables)

    missing = [v for v in variables if v not in df.columns]
    if missing:
        raise ValueError(f"Columns not found in data: {missing}")

    categorical = categorical_variables(df, variables)
    formula = universe.design_formula(terms, categorical)

    design = dmatrix(formula, df, NA_action='raise', return_type='dataframe')
    design_info = design.design_info
    labels, columns_by_term = _column_labels(design_info, variables, categorical)
    design.columns = labels

    return design, columns_by_term, design_info


class OLSModel:
    """
    Multiple linear regression fitted by ordinary least squares.

    A model is fitted once and never changes afterwards; ``refit`` builds a
    new model over a different subset of the same term universe.
    """

    def __init__(
        self,
        response: str,
        terms: Optional[Sequence[TermLike]] = None,
        universe: Optional[TermSet] = None,
        transformer: Optional[ResponseTransformer] = None
    ):
        """
        Initialize the model specification.

        Args:
            response: Name of the response column
            terms: Terms to include (default: the whole universe)
            universe: Candidate term universe (default: built from ``terms``)
            transformer: Optional response transform
        """
        if universe is None:
            if terms is None:
                raise ValueError("Either terms or a universe is required")
            universe = TermSet(terms)
        if terms is None:
            terms = list(universe)

        terms = [as_term(t) for t in terms]
        unknown = [t.label for t in terms if t not in universe]
        if unknown:
            raise ValueError(f"Terms {unknown} are not in the term universe")
        if not universe.is_hierarchical(terms):
            raise ValueError(
                f"Term set {[t.label for t in terms]} keeps an interaction without its main effects"
            )

        self.response = response
        self.universe = universe
        self.terms: Tuple[Term, ...] = tuple(universe.order(terms))
        self.transformer = transformer

        self.results = None
        self.data: Optional[pd.DataFrame] = None
        self.design_matrix: Optional[pd.DataFrame] = None
        self.columns_by_term: Dict[Term, List[str]] = {}
        self.design_info: Optional[DesignInfo] = None
        self._is_fitted = False

    def fit(self, df: pd.DataFrame) -> 'OLSModel':
        """
        Fit the model by ordinary least squares.

        Rows with a missing value in the response or in any variable of the
        term universe are dropped first, so every model built from the same
        universe sees the same rows.

        Args:
            df: Data containing the response and all universe variables

        Returns:
            Self for method chaining
        """
        if self._is_fitted:
            raise RuntimeError("Model is already fitted; use refit() to fit a different term set")

        columns = [self.response] + [v for v in self.universe.variables if v != self.response]
        data = complete_cases(df, columns)

        y = data[self.response].astype(float)
        if self.transformer is not None:
            if self.transformer._is_fitted:
                y = self.transformer.transform(y)
            else:
                y = self.transformer.fit_transform(y)

        self.design_matrix, self.columns_by_term, self.design_info = build_design_matrix(
            data, self.terms, self.universe
        )

        self.results = sm.OLS(y, self.design_matrix).fit()
        self.data = data
        self._is_fitted = True

        logger.debug(
            f"Fitted {self.formula} on {int(self.results.nobs)} rows: "
            f"adj R²={self.results.rsquared_adj:.4f}"
        )
        return self

    def _check_fitted(self) -> None:
        if not self._is_fitted:
            raise ValueError("Model must be fitted first. Call fit() first.")

    def refit(self, terms: Sequence[TermLike]) -> 'OLSModel':
        """
        Fit a new model over ``terms`` with the same data, universe and transform.

        Args:
            terms: Subset of the universe

        Returns:
            New fitted OLSModel
        """
        self._check_fitted()
        model = OLSModel(
            self.response,
            terms=terms,
            universe=self.universe,
            transformer=self.transformer
        )
        return model.fit(self.data)

    @property
    def response_label(self) -> str:
        if self.transformer is None:
            return self.response
        return self.transformer.label(self.response)

    @property
    def formula(self) -> str:
        return self.universe.formula(self.response_label, self.terms)

    @property
    def term_labels(self) -> List[str]:
        return [t.label for t in self.terms]

    @property
    def params(self) -> pd.Series:
        self._check_fitted()
        return self.results.params

    @property
    def r2(self) -> float:
        self._check_fitted()
        return float(self.results.rsquared)

    @property
    def adj_r2(self) -> float:
        self._check_fitted()
        return float(self.results.rsquared_adj)

    @property
    def aic(self) -> float:
        self._check_fitted()
        return float(self.results.aic)

    @property
    def bic(self) -> float:
        self._check_fitted()
        return float(self.results.bic)

    @property
    def nobs(self) -> int:
        self._check_fitted()
        return int(self.results.nobs)

    @property
    def df_resid(self) -> float:
        self._check_fitted()
        return float(self.results.df_resid)

    @property
    def endog(self) -> pd.Series:
        """Response on the fitting scale."""
        self._check_fitted()
        return pd.Series(self.results.model.endog, index=self.data.index, name=self.response_label)

    @property
    def fitted_values(self) -> pd.Series:
        self._check_fitted()
        return pd.Series(np.asarray(self.results.fittedvalues), index=self.data.index, name='fitted')

    @property
    def residuals(self) -> pd.Series:
        """Observed minus predicted, on the fitting scale."""
        self._check_fitted()
        return pd.Series(np.asarray(self.results.resid), index=self.data.index, name='residual')

    def coefficient_table(self) -> pd.DataFrame:
        """
        Tidy coefficient summary.

        Returns:
            DataFrame with columns term, estimate, std_error, statistic, p_value
        """
        self._check_fitted()
        return pd.DataFrame({
            'term': self.results.params.index,
            'estimate': self.results.params.values,
            'std_error': self.results.bse.values,
            'statistic': self.results.tvalues.values,
            'p_value': self.results.pvalues.values
        })

    def term_pvalue(self, term: TermLike) -> float:
        """
        P-value of a whole term.

        Single-column terms use the coefficient t-test. Terms spanning several
        columns (categorical variables and their interactions) use a joint
        F-test that all their coefficients are zero.
        """
        self._check_fitted()
        term = as_term(term)
        if term not in self.columns_by_term:
            raise ValueError(f"Term {term.label} is not in the model")

        columns = self.columns_by_term[term]
        if len(columns) == 1:
            return float(self.results.pvalues[columns[0]])

        exog_names = list(self.design_matrix.columns)
        restriction = np.zeros((len(columns), len(exog_names)))
        for row, name in enumerate(columns):
            restriction[row, exog_names.index(name)] = 1.0
        return float(np.squeeze(self.results.f_test(restriction).pvalue))

    def predict(self, df: pd.DataFrame, scale: str = 'fit') -> pd.Series:
        """
        Predict the response for new rows.

        Args:
            df: Data containing the variables of the model terms
            scale: 'fit' for the (transformed) fitting scale, 'response' for
                the original response scale

        Returns:
            Series of predictions indexed like ``df``
        """
        self._check_fitted()
        if scale not in ('fit', 'response'):
            raise ValueError(f"Unknown scale: {scale}. Choose from: fit, response")

        try:
            (design,) = build_design_matrices(
                [self.design_info], df, NA_action='raise', return_type='dataframe'
            )
        except PatsyError as e:
            raise ValueError(f"Cannot build the design matrix for prediction: {e}") from e
        predictions = design.to_numpy() @ self.results.params.to_numpy()

        if scale == 'response' and self.transformer is not None:
            predictions = self.transformer.inverse_transform(predictions)

        return pd.Series(predictions, index=df.index, name='predicted')

    def equation(self, decimals: int = 3) -> str:
        """Fitted equation such as ``log(Ozone) = -0.262 + 0.003*Solar.R``."""
        self._check_fitted()
        params = self.results.params
        parts = [f"{params[INTERCEPT]:.{decimals}f}"]
        for name, value in params.items():
            if name == INTERCEPT:
                continue
            sign = '-' if value < 0 else '+'
            parts.append(f"{sign} {abs(value):.{decimals}f}*{name}")
        return f"{self.response_label} = {' '.join(parts)}"

    def summary(self):
        """Full statsmodels summary."""
        self._check_fitted()
        return self.results.summary()

    def save(self, filepath: str) -> None:
        """
        Save the fitted model to disk.

        Args:
            filepath: Path to save the model
        """
        if not self._is_fitted:
            raise ValueError("Cannot save unfitted model.")

        state = {
            'response': self.response,
            'universe': [t.variables for t in self.universe],
            'terms': [t.variables for t in self.terms],
            'transformer': self.transformer,
            'data': self.data
        }

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'OLSModel':
        """
        Load a model from disk and refit it on its stored data.

        Args:
            filepath: Path to the saved model

        Returns:
            Fitted OLSModel
        """
        state = joblib.load(filepath)

        model = cls(
            state['response'],
            terms=[Term(v) for v in state['terms']],
            universe=TermSet(Term(v) for v in state['universe']),
            transformer=state['transformer']
        )
        model.fit(state['data'])

        logger.info(f"Model loaded from {filepath}")
        return model

    def __repr__(self) -> str:
        status = f"adj_r2={self.adj_r2:.4f}" if self._is_fitted else "unfitted"
        return f"OLSModel({self.formula!r}, {status})"


def build_transformer(
    df: pd.DataFrame,
    response: str,
    config: Dict[str, Any]
) -> Optional[ResponseTransformer]:
    """
    Create the response transformer described by the ``transform`` config section.

    ``method: auto`` picks log, sqrt or nothing from the response skewness.
    """
    transform_config = config.get('transform', {})
    method = transform_config.get('method', 'none')

    if method == 'auto':
        method = suggest_transform(
            df[response],
            skew_threshold=transform_config.get('skew_threshold', 1.0),
            count_data=transform_config.get('count_data', False)
        )

    if method == 'none':
        return None

    return ResponseTransformer(method=method, offset=transform_config.get('offset', 1e-7))


def fit_model(
    df: pd.DataFrame,
    config: Dict[str, Any],
    save_path: Optional[str] = None
) -> OLSModel:
    """
    Fit the full model described by the configuration.

    Args:
        df: Input data
        config: Configuration dictionary (``data`` and ``transform`` sections)
        save_path: Path to save the fitted model (optional)

    Returns:
        Fitted OLSModel over the whole candidate universe
    """
    data_config = config.get('data', {})
    response = data_config.get('response')
    if not response:
        raise ValueError("Configuration must name the response under data.response")
    if response not in df.columns:
        raise ValueError(f"Response '{response}' not found in data columns {list(df.columns)}")

    predictors = resolve_predictors(df, response, data_config.get('predictors'))
    universe = TermSet.from_predictors(predictors, data_config.get('interactions'))

    logger.info("=" * 60)
    logger.info("FITTING FULL MODEL")
    logger.info("=" * 60)

    transformer = build_transformer(df, response, config)
    model = OLSModel(response, universe=universe, transformer=transformer).fit(df)

    logger.info(f"Formula: {model.formula}")
    logger.info(f"Observations: {model.nobs}")
    logger.info(f"R²: {model.r2:.4f} | adjusted R²: {model.adj_r2:.4f}")

    if save_path:
        model.save(save_path)

    return model


def save_coefficient_table(model: OLSModel, filepath: str) -> str:
    """Write the coefficient table to CSV and return the path."""
    Path(filepath).parent.mkdir(parents=True, exist_ok=True)
    model.coefficient_table().to_csv(filepath, index=False)
    logger.info(f"Coefficient table saved to {filepath}")
    return str(filepath)


def print_model_summary(model: OLSModel) -> None:
    """
    Print the coefficient table and fit statistics.

    Args:
        model: Fitted model
    """
    table = model.coefficient_table()

    print("\n" + "=" * 70)
    print("MODEL SUMMARY")
    print("=" * 70)
    print(f"Formula: {model.formula}")
    print(f"Observations: {model.nobs}")
    print("-" * 70)
    print(f"{'Term':<20} {'Estimate':>12} {'Std. Error':>12} {'t value':>10} {'Pr(>|t|)':>12}")
    print("-" * 70)

    for row in table.itertuples(index=False):
        print(f"{row.term:<20} {row.estimate:>12.5f} {row.std_error:>12.5f} "
              f"{row.statistic:>10.3f} {row.p_value:>12.4g}")

    print("-" * 70)
    print(f"R²: {model.r2:.4f} | adjusted R²: {model.adj_r2:.4f} | AIC: {model.aic:.2f}")
    print(f"Fitted equation: {model.equation()}")
    print("=" * 70 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    np.random.seed(42)
    n_samples = 150

    sample_df = pd.DataFrame({
        'Solar.R': np.random.uniform(7, 334, n_samples),
        'Wind': np.clip(np.random.normal(10, 3.5, n_samples), 2, 21),
        'Temp': np.clip(np.random.normal(78, 9.5, n_samples), 56, 97)
    })
    sample_df['Ozone'] = np.exp(
        -0.262 + 0.003 * sample_df['Solar.R'] - 0.062 * sample_df['Wind']
        + 0.049 * sample_df['Temp'] + np.random.normal(0, 0.3, n_samples)
    )

    config = {
        'data': {'response': 'Ozone', 'predictors': ['Solar.R', 'Wind', 'Temp']},
        'transform': {'method': 'log'}
    }

    model = fit_model(sample_df, config)
    print_model_summary(model)
