"""
Input Validation and Error Types for the Crosswalk Engine

Defines the error hierarchy raised by the observation store, the model
fitter and the adjuster, plus array-level checks shared by all three:
- Strictly positive standard errors
- Finite numeric values
- Transform domain membership

All errors include actionable guidance for fixing the input.
"""

import numpy as np
from typing import Iterable, List, Optional, Sequence
from ..logger import get_logger

logger = get_logger(__name__)


def _format_rows(rows: Sequence[int], limit: int = 10) -> str:
    rows = list(rows)
    shown = ", ".join(str(r) for r in rows[:limit])
    if len(rows) > limit:
        shown += f", ... ({len(rows) - limit} more)"
    return f"[{shown}]"


class CrosswalkError(Exception):
    """
    Base exception for crosswalk errors with actionable messages.

    Attributes:
        message: Human-readable error description
        field: Field or parameter that failed validation
        expected: Expected value or condition
        actual: Actual value that caused the error
        fix: Suggested fix for the issue
    """

    label = "CROSSWALK ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        fix: Optional[str] = None
    ):
        self.message = message
        self.field = field
        self.expected = expected
        self.actual = actual
        self.fix = fix

        parts = [f"[{self.label}] {message}"]
        if field:
            parts.append(f"  Field: {field}")
        if expected:
            parts.append(f"  Expected: {expected}")
        if actual:
            parts.append(f"  Actual: {actual}")
        if fix:
            parts.append(f"  Fix: {fix}")

        super().__init__("\n".join(parts))


class MalformedInputError(CrosswalkError):
    """
    Structural or schema violation in input data.

    Attributes:
        rows: Positional indices of the offending rows (empty for
            column-level problems)
    """

    label = "MALFORMED INPUT"

    def __init__(self, message: str, rows: Optional[Iterable[int]] = None, **kwargs):
        self.rows: List[int] = [int(r) for r in rows] if rows is not None else []
        if self.rows and 'actual' not in kwargs:
            kwargs['actual'] = f"{len(self.rows)} offending rows: {_format_rows(self.rows)}"
        super().__init__(message, **kwargs)


class InvalidKnotError(CrosswalkError):
    """Spline knots that do not bracket the covariate's observed range."""

    label = "INVALID KNOTS"


class UnidentifiableModelError(CrosswalkError):
    """
    Term specification cannot be estimated from the data.

    Attributes:
        coefficients: Names of the coefficients that are not identified
    """

    label = "UNIDENTIFIABLE MODEL"

    def __init__(self, message: str, coefficients: Optional[Iterable[str]] = None, **kwargs):
        self.coefficients: List[str] = list(coefficients) if coefficients is not None else []
        if self.coefficients and 'actual' not in kwargs:
            kwargs['actual'] = f"Unidentified coefficients: {', '.join(self.coefficients)}"
        super().__init__(message, **kwargs)


class DomainBoundaryError(CrosswalkError):
    """
    Raw value sitting exactly on a transform boundary.

    Attributes:
        rows: Positional indices of the rows at the boundary
    """

    label = "DOMAIN BOUNDARY"

    def __init__(self, message: str, rows: Optional[Iterable[int]] = None, **kwargs):
        self.rows: List[int] = [int(r) for r in rows] if rows is not None else []
        if self.rows and 'actual' not in kwargs:
            kwargs['actual'] = f"{len(self.rows)} rows at the boundary: {_format_rows(self.rows)}"
        super().__init__(message, **kwargs)


class UnknownDefinitionError(CrosswalkError):
    """
    Adjustment row referencing a definition unseen at fit time.

    Attributes:
        rows: Positional indices of the rows with unknown definitions
        labels: The unknown atomic labels
    """

    label = "UNKNOWN DEFINITION"

    def __init__(
        self,
        message: str,
        rows: Optional[Iterable[int]] = None,
        labels: Optional[Iterable[str]] = None,
        **kwargs
    ):
        self.rows: List[int] = [int(r) for r in rows] if rows is not None else []
        self.labels: List[str] = sorted(set(labels)) if labels is not None else []
        if 'actual' not in kwargs:
            kwargs['actual'] = (
                f"labels {self.labels} in rows {_format_rows(self.rows)}"
            )
        super().__init__(message, **kwargs)


def validate_positive(values: np.ndarray, name: str) -> None:
    """
    Check that every value is strictly positive.

    Args:
        values: 1D array of values (typically standard errors)
        name: Column or field name for error messages

    Raises:
        MalformedInputError: Listing the rows with non-positive values
    """
    values = np.asarray(values, dtype=float)
    bad = np.flatnonzero(~(values > 0))
    if bad.size:
        raise MalformedInputError(
            f"{name} must be strictly positive",
            rows=bad,
            field=name,
            expected="All values > 0",
            fix=f"Drop or correct rows with zero, negative or missing {name}"
        )


def validate_finite(values: np.ndarray, name: str) -> None:
    """
    Check that an array holds no NaN or infinity values.

    Args:
        values: 1D or 2D numeric array
        name: Column or field name for error messages

    Raises:
        MalformedInputError: Listing the rows holding non-finite values
    """
    values = np.asarray(values, dtype=float)
    finite = np.isfinite(values)
    if values.ndim > 1:
        finite = finite.all(axis=1)
    bad = np.flatnonzero(~finite)
    if bad.size:
        raise MalformedInputError(
            f"{name} contains NaN or infinity values",
            rows=bad,
            field=name,
            expected="Finite numeric values",
            fix="Impute or drop rows with missing values before building the crosswalk"
        )


def validate_numeric(values, name: str) -> np.ndarray:
    """
    Coerce values to a float array.

    Raises:
        MalformedInputError: If the values cannot be read as numbers
    """
    try:
        return np.asarray(values, dtype=float)
    except (TypeError, ValueError) as e:
        raise MalformedInputError(
            f"{name} must be numeric",
            field=name,
            expected="Numeric column",
            actual=str(e),
            fix=f"Convert {name} with pd.to_numeric before passing it in"
        ) from e
