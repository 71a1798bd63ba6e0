"""
Pydantic Models for the Crosswalk Engine

This module provides type-safe, validated data models:
- Fit parameters, covariate terms, spline shapes and order priors
- Column-role mappings for tabular inputs
- Comparison, raw and adjusted rows
- Fitted model results

All models use Pydantic for validation and serialization.
"""

from .params import (
    INTERCEPT,
    TransformKind,
    SplineSpec,
    CovariateTerm,
    OrderPrior,
    ColumnRoles,
    AdjustRoles,
    FitParams,
)
from .records import ComparisonRecord, RawObservation, AdjustedObservation
from .results import FixedEffect, FittedModel

__all__ = [
    # Parameters
    'INTERCEPT',
    'TransformKind',
    'SplineSpec',
    'CovariateTerm',
    'OrderPrior',
    'ColumnRoles',
    'AdjustRoles',
    'FitParams',

    # Rows
    'ComparisonRecord',
    'RawObservation',
    'AdjustedObservation',

    # Results
    'FixedEffect',
    'FittedModel',
]
