"""
Response Transformation Module
==============================

Handles variance-stabilising transforms of a right-skewed response.

Functions:
    - ResponseTransformer: log / sqrt / identity transform with zero offset
    - suggest_transform: Pick a transform from the response skewness
    - multiplicative_effects: Interpret log-response coefficients as exp(b)
"""

import logging
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd
from scipy import stats

logger = logging.getLogger(__name__)

METHODS = ('log', 'sqrt', 'none')

ArrayLike = Union[np.ndarray, pd.Series, list]


class ResponseTransformer:
    """
    Transform applied to the response before fitting.

    A true zero has no logarithm, so when the data seen by ``fit`` contains a
    zero the ``offset`` is added to every value before transforming (and
    subtracted again by ``inverse_transform``).
    """

    def __init__(self, method: str = 'log', offset: float = 1e-7):
        """
        Initialize the transformer.

        Args:
            method: One of 'log', 'sqrt' or 'none'
            offset: Positive shift used when the response contains zeros
        """
        if method not in METHODS:
            raise ValueError(f"Unknown transform '{method}'. Choose from: {', '.join(METHODS)}")
        if offset <= 0:
            raise ValueError(f"Offset must be positive, got {offset}")

        self.method = method
        self.offset = offset

        self.shift_: float = 0.0
        self._is_fitted = False

    @property
    def is_log(self) -> bool:
        return self.method == 'log'

    def fit(self, y: ArrayLike) -> 'ResponseTransformer':
        """
        Decide whether the offset is needed for this response.

        Args:
            y: Response values on the original scale

        Returns:
            Self for method chaining
        """
        values = np.asarray(y, dtype=float)

        if self.method != 'none':
            if np.any(values < 0):
                raise ValueError(
                    f"Cannot apply {self.method} transform: response has "
                    f"{int(np.sum(values < 0))} negative value(s)"
                )
            if np.any(values == 0):
                self.shift_ = self.offset
                logger.warning(
                    f"Response contains {int(np.sum(values == 0))} zero(s); "
                    f"adding offset {self.offset:g} before {self.method} transform"
                )

        self._is_fitted = True
        return self

    def transform(self, y: ArrayLike) -> ArrayLike:
        """
        Map the response onto the fitting scale.

        Args:
            y: Response values on the original scale

        Returns:
            Transformed values (a Series when given a Series)
        """
        if not self._is_fitted:
            raise ValueError("Transformer must be fitted before transform. Call fit() first.")

        values = np.asarray(y, dtype=float) + self.shift_

        if self.method == 'log':
            if np.any(values <= 0):
                raise ValueError("Cannot take the logarithm of a non-positive response value")
            out = np.log(values)
        elif self.method == 'sqrt':
            if np.any(values < 0):
                raise ValueError("Cannot take the square root of a negative response value")
            out = np.sqrt(values)
        else:
            out = values

        if isinstance(y, pd.Series):
            return pd.Series(out, index=y.index, name=y.name)
        return out

    def fit_transform(self, y: ArrayLike) -> ArrayLike:
        self.fit(y)
        return self.transform(y)

    def inverse_transform(self, z: ArrayLike) -> ArrayLike:
        """
        Convert fitting-scale values back to the original response scale.

        Args:
            z: Values on the transformed scale

        Returns:
            Values on the original scale
        """
        if not self._is_fitted:
            raise ValueError("Transformer must be fitted before inverse_transform.")

        values = np.asarray(z, dtype=float)

        if self.method == 'log':
            out = np.exp(values) - self.shift_
        elif self.method == 'sqrt':
            out = np.square(values) - self.shift_
        else:
            out = values

        if isinstance(z, pd.Series):
            return pd.Series(out, index=z.index, name=z.name)
        return out

    def label(self, response: str) -> str:
        """Display name of the transformed response, e.g. ``log(Ozone)``."""
        if self.method == 'none':
            return response
        return f"{self.method}({response})"

    def get_params(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'offset': self.offset,
            'shift': self.shift_,
        }

    def __repr__(self) -> str:
        return f"ResponseTransformer(method={self.method!r}, offset={self.offset!r})"


def suggest_transform(
    y: ArrayLike,
    skew_threshold: float = 1.0,
    count_data: bool = False
) -> str:
    """
    Suggest a response transform from its skewness.

    Args:
        y: Response values
        skew_threshold: Skewness above which the response counts as right-skewed
        count_data: Whether the response is a count (square root instead of log);
            integer values alone are not taken as counts

    Returns:
        'log', 'sqrt' or 'none'
    """
    values = pd.Series(np.asarray(y, dtype=float)).dropna()

    if len(values) < 3:
        logger.warning("Too few observations to judge skewness; leaving response untransformed")
        return 'none'

    skewness = float(stats.skew(values))

    if skewness <= skew_threshold:
        logger.info(f"Response skewness {skewness:.3f} <= {skew_threshold}; no transform")
        return 'none'

    if (values < 0).any():
        logger.warning(
            f"Response is right-skewed ({skewness:.3f}) but has negative values; "
            f"log/sqrt do not apply"
        )
        return 'none'

    method = 'sqrt' if count_data else 'log'
    logger.info(f"Response skewness {skewness:.3f} > {skew_threshold}; suggesting {method}")
    return method


def multiplicative_effects(model) -> pd.DataFrame:
    """
    Express the coefficients of a log-response model multiplicatively.

    A one-unit increase in predictor x_k multiplies the expected response by
    exp(b_k).

    Args:
        model: Fitted OLSModel whose transformer is a log transform

    Returns:
        DataFrame with term, estimate, multiplier and percent_change
    """
    transformer: Optional[ResponseTransformer] = getattr(model, 'transformer', None)
    if transformer is None or not transformer.is_log:
        raise ValueError("Multiplicative effects only apply to a log-transformed response")

    table = model.coefficient_table()[['term', 'estimate']].copy()
    table['multiplier'] = np.exp(table['estimate'])
    table['percent_change'] = (table['multiplier'] - 1.0) * 100.0
    return table


def print_transform_summary(transformer: ResponseTransformer, response: str) -> None:
    """
    Print how the response is transformed.

    Args:
        transformer: Fitted transformer
        response: Original response name
    """
    print("\n" + "=" * 50)
    print("RESPONSE TRANSFORMATION")
    print("=" * 50)
    print(f"Response: {response}")
    print(f"Method: {transformer.method}")
    print(f"Modelled as: {transformer.label(response)}")
    if transformer.shift_:
        print(f"Zero offset applied: {transformer.shift_:g}")
    if transformer.is_log:
        print("\nInterpretation:")
        print("  - A one-unit increase in x_k multiplies the expected response by exp(b_k)")
    print("=" * 50 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    np.random.seed(42)
    sample = np.random.lognormal(mean=3.0, sigma=0.8, size=200)
    sample[:3] = 0.0

    method = suggest_transform(sample)
    transformer = ResponseTransformer(method=method)
    z = transformer.fit_transform(sample)
    print_transform_summary(transformer, 'y')
    print(f"Round trip max error: {np.max(np.abs(transformer.inverse_transform(z) - sample)):.2e}")
