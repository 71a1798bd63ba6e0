"""
DataFrame Validation for Crosswalk Inputs

Provides schema checks for the tabular inputs of the observation store and
the adjuster: column presence and a short quality report logged before
fitting.
"""

import pandas as pd
import numpy as np
from typing import List, Optional, Dict
from dataclasses import dataclass, field
from ..logger import get_logger
from .input_validator import MalformedInputError

logger = get_logger(__name__)


@dataclass
class DataQualityReport:
    """
    Quality summary of a crosswalk input table.

    Attributes:
        n_rows: Total number of rows
        n_cols: Total number of columns
        missing_values: Dict mapping role columns to missing value counts
        duplicated_rows: Number of duplicated rows
        warnings: List of warning messages
    """

    n_rows: int
    n_cols: int
    missing_values: Dict[str, int] = field(default_factory=dict)
    duplicated_rows: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.missing_values

    def __str__(self) -> str:
        lines = [
            "=" * 70,
            "DATA QUALITY REPORT",
            "=" * 70,
            f"Dataset Shape: {self.n_rows:,} rows x {self.n_cols} columns",
        ]
        if self.missing_values:
            lines.append("")
            lines.append("Missing Values:")
            for col, count in self.missing_values.items():
                lines.append(f"  {col}: {count:,}")
        if self.duplicated_rows:
            lines.append("")
            lines.append(f"Duplicated Rows: {self.duplicated_rows:,}")
        if self.warnings:
            lines.append("")
            lines.append(f"Warnings ({len(self.warnings)}):")
            for warning in self.warnings:
                lines.append(f"  - {warning}")
        lines.append("=" * 70)
        return "\n".join(lines)


def validate_dataframe(
    df: pd.DataFrame,
    required_columns: List[str],
    name: str = "df",
    min_rows: int = 1
) -> None:
    """
    Validate that a DataFrame holds the columns a role mapping refers to.

    Args:
        df: DataFrame to validate
        required_columns: Column names that must be present
        name: Name of the table (for error messages)
        min_rows: Minimum number of rows

    Raises:
        MalformedInputError: If the input is not a DataFrame, is too short
            or lacks required columns
    """
    if not isinstance(df, pd.DataFrame):
        raise MalformedInputError(
            f"{name} must be a pandas DataFrame",
            field=name,
            expected="pandas.DataFrame",
            actual=type(df).__name__,
            fix=f"Convert to DataFrame: {name} = pd.DataFrame({name})"
        )

    if len(df) < min_rows:
        raise MalformedInputError(
            f"{name} has too few rows",
            field=name,
            expected=f"At least {min_rows} rows",
            actual=f"{len(df)} rows",
            fix="Provide matched observations before building the crosswalk"
        )

    missing = [col for col in required_columns if col not in df.columns]
    if missing:
        raise MalformedInputError(
            f"{name} is missing required columns",
            field=", ".join(missing),
            expected=f"Columns {required_columns}",
            actual=f"Available columns {list(df.columns)}",
            fix="Check the column-role mapping against the table header"
        )


def check_data_quality(df: pd.DataFrame, columns: Optional[List[str]] = None) -> DataQualityReport:
    """
    Summarize missing values and duplicates in the role columns.

    Args:
        df: Input table
        columns: Columns to inspect (defaults to all)

    Returns:
        DataQualityReport
    """
    columns = list(df.columns) if columns is None else columns
    report = DataQualityReport(n_rows=len(df), n_cols=len(df.columns))

    for col in columns:
        n_missing = int(df[col].isna().sum())
        if n_missing:
            report.missing_values[col] = n_missing

    report.duplicated_rows = int(df.duplicated().sum())
    if report.duplicated_rows:
        report.warnings.append(
            f"{report.duplicated_rows} duplicated rows; matched pairs may be double counted"
        )

    numeric = df[columns].select_dtypes(include=[np.number])
    for col in numeric.columns:
        if numeric[col].nunique(dropna=True) == 1 and len(df) > 1:
            report.warnings.append(f"Column '{col}' is constant")

    logger.debug(str(report))
    return report
