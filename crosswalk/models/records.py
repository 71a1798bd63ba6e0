"""
Pydantic Models for Crosswalk Rows

Row-level models for the record-based entry points of the observation store
and the adjuster. Tabular inputs (DataFrames) use the same field names when
read with the default column roles.
"""

from pydantic import BaseModel, Field
from typing import Dict, Optional, Union


class ComparisonRecord(BaseModel):
    """
    One matched alternative-vs-reference observation.

    ``diff_value`` is the alternative minus reference difference in the
    transform space of the fit (log or logit).

    Example:
        >>> record = ComparisonRecord(
        ...     alt_definition='selfreport',
        ...     ref_definition='measured',
        ...     diff_value=-0.25,
        ...     diff_se=0.1,
        ...     covariates={'age': 40.0},
        ...     group_id='study_1'
        ... )
    """
    alt_definition: str = Field(min_length=1)
    ref_definition: str = Field(min_length=1)
    diff_value: float
    diff_se: float
    covariates: Dict[str, float] = Field(default_factory=dict)
    group_id: Optional[Union[str, int]] = None

    class Config:
        frozen = True


class RawObservation(BaseModel):
    """A measurement to be adjusted to the gold-standard definition."""
    value: float
    value_se: float
    definition: str = Field(min_length=1)
    covariates: Dict[str, float] = Field(default_factory=dict)
    row_id: Optional[Union[str, int]] = None

    class Config:
        frozen = True


class AdjustedObservation(BaseModel):
    """
    Adjusted measurement.

    ``adjustment`` is the predicted alternative-minus-gold difference in
    transform space; gold rows carry ``adjustment == 0``.
    """
    row_id: Optional[Union[str, int]] = None
    adjusted_value: float
    adjusted_se: float = Field(ge=0.0)
    adjustment: float
    adjustment_se: float = Field(ge=0.0)

    class Config:
        frozen = True

    @property
    def adjustment_logit_or_log(self) -> float:
        return self.adjustment
