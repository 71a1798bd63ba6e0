"""
Log and Logit Transforms with Delta-Method Standard Errors

Maps measurements and their standard errors between linear space and the
transform space in which definitions are compared.

Formulas:
    logit(p) = log(p / (1 - p)),   d logit / dp = 1 / (p (1 - p))
    log(v),                        d log / dv   = 1 / v

Standard errors move between spaces with the first-order delta method:
    se_t = se * |d f / d x|   evaluated at the linear value x
"""

import numpy as np
from scipy.special import expit, logit
from typing import Tuple, Union

from .models.params import TransformKind

ArrayLike = Union[float, np.ndarray]


def _kind(kind) -> TransformKind:
    try:
        return TransformKind(kind)
    except ValueError:
        raise ValueError(
            f"Unknown transform '{kind}'. Valid transforms: "
            f"{[k.value for k in TransformKind]}"
        ) from None


def to_transformed(values: ArrayLike, kind) -> np.ndarray:
    """
    Map linear-space values into transform space.

    Args:
        values: Probabilities (logit) or positive values (log)
        kind: 'logit' or 'log'

    Returns:
        Transformed values (infinite at the domain boundary)
    """
    values = np.asarray(values, dtype=float)
    if _kind(kind) == TransformKind.LOGIT:
        with np.errstate(divide='ignore'):
            return logit(values)
    with np.errstate(divide='ignore'):
        return np.log(values)


def to_linear(values: ArrayLike, kind) -> np.ndarray:
    """Inverse of :func:`to_transformed`."""
    values = np.asarray(values, dtype=float)
    if _kind(kind) == TransformKind.LOGIT:
        return expit(values)
    return np.exp(values)


def inverse_derivative(linear_values: ArrayLike, kind) -> np.ndarray:
    """
    Derivative of the inverse transform, expressed at the linear value.

    For logit this is p (1 - p); for log it is v.
    """
    linear_values = np.asarray(linear_values, dtype=float)
    if _kind(kind) == TransformKind.LOGIT:
        return linear_values * (1.0 - linear_values)
    return linear_values


def se_to_transformed(values: ArrayLike, se: ArrayLike, kind) -> np.ndarray:
    """
    Delta-method standard error in transform space.

    Args:
        values: Linear-space values strictly inside the domain
        se: Linear-space standard errors
        kind: 'logit' or 'log'

    Returns:
        Transform-space standard errors
    """
    return np.asarray(se, dtype=float) / inverse_derivative(values, kind)


def se_to_linear(linear_values: ArrayLike, se_transformed: ArrayLike, kind) -> np.ndarray:
    """
    Delta-method standard error in linear space.

    Args:
        linear_values: Linear-space values at which the inverse transform's
            derivative is evaluated
        se_transformed: Transform-space standard errors
        kind: 'logit' or 'log'
    """
    return np.asarray(se_transformed, dtype=float) * inverse_derivative(linear_values, kind)


def domain_violations(values: ArrayLike, kind) -> Tuple[np.ndarray, np.ndarray]:
    """
    Locate values the transform cannot map.

    Args:
        values: Linear-space values
        kind: 'logit' or 'log'

    Returns:
        Tuple of (indices exactly at a boundary, indices outside the domain)
    """
    values = np.asarray(values, dtype=float)
    if _kind(kind) == TransformKind.LOGIT:
        at_boundary = (values == 0.0) | (values == 1.0)
        outside = (values < 0.0) | (values > 1.0)
    else:
        at_boundary = values == 0.0
        outside = values < 0.0
    outside |= np.isnan(values)
    return np.flatnonzero(at_boundary), np.flatnonzero(outside)


def linear_diff_to_transformed(
    alt_mean: ArrayLike,
    alt_se: ArrayLike,
    ref_mean: ArrayLike,
    ref_se: ArrayLike,
    kind
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build transform-space differences from matched linear-space measurements.

    The alternative and reference measurements are assumed independent, so
    their transform-space variances add.

    Args:
        alt_mean: Alternative-definition means
        alt_se: Alternative-definition standard errors
        ref_mean: Reference-definition means
        ref_se: Reference-definition standard errors
        kind: 'logit' or 'log'

    Returns:
        Tuple of (diff_value, diff_se) with diff = f(alt) - f(ref)

    Example:
        >>> diff, diff_se = linear_diff_to_transformed(0.3, 0.02, 0.4, 0.03, 'logit')
    """
    alt_t = to_transformed(alt_mean, kind)
    ref_t = to_transformed(ref_mean, kind)
    alt_se_t = se_to_transformed(alt_mean, alt_se, kind)
    ref_se_t = se_to_transformed(ref_mean, ref_se, kind)
    return alt_t - ref_t, np.sqrt(alt_se_t ** 2 + ref_se_t ** 2)
