"""
Input Validation Module for the Crosswalk Engine

This module provides:
- The crosswalk error hierarchy
- Array checks (finite values, positive standard errors)
- pandas DataFrame schema and data quality checks

All validators provide actionable error messages with specific guidance
on how to fix validation issues.
"""

from .input_validator import (
    CrosswalkError,
    MalformedInputError,
    InvalidKnotError,
    UnidentifiableModelError,
    DomainBoundaryError,
    UnknownDefinitionError,
    validate_positive,
    validate_finite,
    validate_numeric,
)

from .data_validator import (
    validate_dataframe,
    check_data_quality,
    DataQualityReport,
)

__all__ = [
    # Errors
    'CrosswalkError',
    'MalformedInputError',
    'InvalidKnotError',
    'UnidentifiableModelError',
    'DomainBoundaryError',
    'UnknownDefinitionError',

    # Array validation
    'validate_positive',
    'validate_finite',
    'validate_numeric',

    # Data validation
    'validate_dataframe',
    'check_data_quality',
    'DataQualityReport',
]
