"""
Unit Tests for Input Validation and Error Types

Tests cover:
- Error message formatting and attributes
- Array-level checks (positive, finite, numeric)
- DataFrame schema checks and quality reports
"""

import pytest
import numpy as np
import pandas as pd

from crosswalk.validators import (
    CrosswalkError,
    DataQualityReport,
    DomainBoundaryError,
    InvalidKnotError,
    MalformedInputError,
    UnidentifiableModelError,
    UnknownDefinitionError,
    check_data_quality,
    validate_dataframe,
    validate_finite,
    validate_numeric,
    validate_positive,
)


@pytest.mark.unit
class TestErrorTypes:
    """Test the crosswalk error hierarchy."""

    def test_all_errors_are_crosswalk_errors(self):
        for error_type in (
            MalformedInputError, InvalidKnotError, UnidentifiableModelError,
            DomainBoundaryError, UnknownDefinitionError
        ):
            assert issubclass(error_type, CrosswalkError)

    def test_message_includes_guidance(self):
        error = CrosswalkError(
            "Bad input", field="diff_se", expected="> 0", actual="-1", fix="Drop the row"
        )
        text = str(error)

        assert text.startswith("[CROSSWALK ERROR] Bad input")
        assert "Field: diff_se" in text
        assert "Expected: > 0" in text
        assert "Actual: -1" in text
        assert "Fix: Drop the row" in text

    def test_malformed_input_carries_rows(self):
        error = MalformedInputError("Bad rows", rows=np.array([3, 7]))

        assert error.rows == [3, 7]
        assert "2 offending rows: [3, 7]" in str(error)
        assert str(error).startswith("[MALFORMED INPUT]")

    def test_long_row_lists_are_truncated(self):
        error = MalformedInputError("Bad rows", rows=range(25))
        assert "(15 more)" in str(error)

    def test_unidentifiable_lists_coefficients(self):
        error = UnidentifiableModelError("No support", coefficients=['intercept:B'])

        assert error.coefficients == ['intercept:B']
        assert "intercept:B" in str(error)

    def test_unknown_definition_sorts_labels(self):
        error = UnknownDefinitionError("Unseen", rows=[0, 2], labels=['Z', 'X', 'Z'])

        assert error.rows == [0, 2]
        assert error.labels == ['X', 'Z']

    def test_domain_boundary_rows(self):
        error = DomainBoundaryError("Boundary", rows=[1])
        assert error.rows == [1]
        assert "rows at the boundary" in str(error)


@pytest.mark.unit
class TestArrayChecks:
    """Test the shared array-level checks."""

    def test_validate_positive_passes(self):
        validate_positive(np.array([0.1, 2.0]), 'se')

    def test_validate_positive_reports_rows(self):
        with pytest.raises(MalformedInputError) as exc_info:
            validate_positive(np.array([0.1, 0.0, -1.0, np.nan]), 'se')

        assert exc_info.value.rows == [1, 2, 3]
        assert exc_info.value.field == 'se'

    def test_validate_finite_1d(self):
        with pytest.raises(MalformedInputError) as exc_info:
            validate_finite(np.array([1.0, np.inf, 2.0, np.nan]), 'value')
        assert exc_info.value.rows == [1, 3]

    def test_validate_finite_2d_reports_rows(self):
        values = np.array([[1.0, 2.0], [np.nan, 1.0], [3.0, 4.0]])
        with pytest.raises(MalformedInputError) as exc_info:
            validate_finite(values, 'covariates')
        assert exc_info.value.rows == [1]

    def test_validate_numeric_converts(self):
        result = validate_numeric(pd.Series([1, 2, 3]), 'x')
        assert result.dtype == float

    def test_validate_numeric_rejects_text(self):
        with pytest.raises(MalformedInputError, match="must be numeric"):
            validate_numeric(pd.Series(['a', 'b']), 'x')


@pytest.mark.unit
class TestDataFrameChecks:
    """Test DataFrame schema checks."""

    def test_requires_dataframe(self):
        with pytest.raises(MalformedInputError, match="must be a pandas DataFrame"):
            validate_dataframe([1, 2, 3], ['a'])

    def test_requires_rows(self):
        with pytest.raises(MalformedInputError, match="too few rows"):
            validate_dataframe(pd.DataFrame({'a': []}), ['a'])

    def test_missing_columns(self):
        df = pd.DataFrame({'a': [1]})
        with pytest.raises(MalformedInputError) as exc_info:
            validate_dataframe(df, ['a', 'b', 'c'])
        assert exc_info.value.field == 'b, c'

    def test_quality_report(self):
        df = pd.DataFrame({
            'x': [1.0, 1.0, np.nan],
            'y': [2.0, 2.0, 3.0],
        })
        report = check_data_quality(df, ['x', 'y'])

        assert isinstance(report, DataQualityReport)
        assert report.missing_values == {'x': 1}
        assert report.duplicated_rows == 1
        assert not report.passed
        assert "DATA QUALITY REPORT" in str(report)

    def test_clean_report_passes(self):
        report = check_data_quality(pd.DataFrame({'x': [1.0, 2.0]}))
        assert report.passed
        assert report.warnings == []
