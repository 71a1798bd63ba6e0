"""
Pydantic Models for Crosswalk Fit Parameters

Type-safe, validated configuration of the covariate terms, spline shapes,
order priors, column roles and fitting controls.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional, Literal, Union
from enum import Enum
import warnings


INTERCEPT = "intercept"


class TransformKind(str, Enum):
    """Space in which alternative and reference definitions are compared."""
    LOGIT = "logit"
    LOG = "log"


class SplineSpec(BaseModel):
    """
    B-spline parameterization of a covariate term.

    Knots are absolute covariate values and must bracket the observed range
    of the covariate (checked against the data when the model is built).

    Example:
        >>> spec = SplineSpec(knots=[0, 40, 80, 100], degree=2,
        ...                   monotonicity='increasing', r_linear=True)
    """

    knots: List[float] = Field(
        min_length=2,
        description="Strictly increasing knot locations, boundary knots included"
    )

    degree: int = Field(
        default=3,
        ge=1,
        le=3,
        description="Polynomial degree of each spline piece"
    )

    l_linear: bool = Field(
        default=False,
        description="Force the spline to be linear in the first knot interval"
    )

    r_linear: bool = Field(
        default=False,
        description="Force the spline to be linear in the last knot interval"
    )

    monotonicity: Optional[Literal['increasing', 'decreasing']] = Field(
        default=None,
        description="Shape constraint on the first derivative"
    )

    convexity: Optional[Literal['convex', 'concave']] = Field(
        default=None,
        description="Shape constraint on the second derivative"
    )

    class Config:
        frozen = True

    @field_validator('knots')
    @classmethod
    def validate_knots_increasing(cls, v):
        """Knots must be strictly increasing."""
        if any(b <= a for a, b in zip(v[:-1], v[1:])):
            raise ValueError(f"Spline knots must be strictly increasing, got {v}")
        return [float(k) for k in v]

    @model_validator(mode='after')
    def validate_tail_linearity(self):
        """Linear tails need an interior knot to leave room for curvature."""
        if (self.l_linear or self.r_linear) and len(self.knots) < 3:
            warnings.warn(
                "Linear tails with only boundary knots reduce the spline to a line",
                UserWarning
            )
        if self.convexity is not None and self.degree < 2:
            raise ValueError("Convexity constraints need degree >= 2")
        return self

    @property
    def n_intervals(self) -> int:
        return len(self.knots) - 1


class CovariateTerm(BaseModel):
    """
    One term of the linear predictor.

    ``name == "intercept"`` yields one coefficient per non-gold atomic
    definition. Any other name refers to a covariate column and yields one
    coefficient, or one coefficient per spline basis function.
    """

    name: str = Field(min_length=1, description="'intercept' or a covariate name")
    spline: Optional[SplineSpec] = Field(default=None, description="Optional spline basis")

    class Config:
        frozen = True

    @model_validator(mode='after')
    def validate_intercept_has_no_spline(self):
        if self.name == INTERCEPT and self.spline is not None:
            raise ValueError("The intercept term cannot be parameterized as a spline")
        return self

    @property
    def is_intercept(self) -> bool:
        return self.name == INTERCEPT


class OrderPrior(BaseModel):
    """
    Ordering constraint between two atomic definitions.

    The fitted intercept coefficient of ``lower`` must not exceed that of
    ``upper``. The gold definition may appear on either side; its
    coefficient is the constant 0.
    """

    lower: str = Field(min_length=1)
    upper: str = Field(min_length=1)

    class Config:
        frozen = True

    @model_validator(mode='after')
    def validate_distinct(self):
        if self.lower == self.upper:
            raise ValueError(f"Order prior compares '{self.lower}' with itself")
        return self

    @classmethod
    def from_pair(cls, pair: Union['OrderPrior', List[str], tuple]) -> 'OrderPrior':
        if isinstance(pair, OrderPrior):
            return pair
        lower, upper = pair
        return cls(lower=lower, upper=upper)


class ColumnRoles(BaseModel):
    """
    Column-role mapping for matched comparison tables.

    Example:
        >>> roles = ColumnRoles(
        ...     observation='logit_diff',
        ...     standard_error='logit_diff_se',
        ...     alt_definition='alt_dorm',
        ...     ref_definition='ref_dorm',
        ...     covariates=['age'],
        ...     group_id='study_id'
        ... )
    """

    observation: str = Field(default='diff_value', description="Transformed alt-minus-ref difference")
    standard_error: str = Field(default='diff_se', description="Standard error of the difference")
    alt_definition: str = Field(default='alt_definition', description="Alternative definition label")
    ref_definition: str = Field(default='ref_definition', description="Reference definition label")
    covariates: List[str] = Field(default_factory=list, description="Covariate columns")
    group_id: Optional[str] = Field(default=None, description="Heterogeneity grouping column")

    class Config:
        frozen = True

    @model_validator(mode='after')
    def validate_distinct_columns(self):
        roles = [self.observation, self.standard_error, self.alt_definition, self.ref_definition]
        if len(set(roles)) != len(roles):
            raise ValueError(f"Column roles must refer to distinct columns, got {roles}")
        if len(set(self.covariates)) != len(self.covariates):
            raise ValueError(f"Duplicate covariate columns: {self.covariates}")
        return self

    def required_columns(self) -> List[str]:
        columns = [self.observation, self.standard_error, self.alt_definition, self.ref_definition]
        columns.extend(self.covariates)
        if self.group_id is not None:
            columns.append(self.group_id)
        return columns


class AdjustRoles(BaseModel):
    """Column-role mapping for raw observations to be adjusted."""

    observation: str = Field(default='value', description="Raw (possibly biased) value")
    standard_error: str = Field(default='value_se', description="Standard error of the raw value")
    definition: str = Field(default='definition', description="Definition label of the row")
    covariates: List[str] = Field(default_factory=list, description="Covariate columns")
    row_id: Optional[str] = Field(default=None, description="Identifier carried to the output")

    class Config:
        frozen = True

    def required_columns(self) -> List[str]:
        columns = [self.observation, self.standard_error, self.definition]
        columns.extend(self.covariates)
        if self.row_id is not None:
            columns.append(self.row_id)
        return columns


class FitParams(BaseModel):
    """
    Type-safe configuration of a crosswalk fit.

    This model provides:
    - Validation of all fitting controls
    - Cross-field validation (duplicate terms, priors needing an intercept)
    - Immutability after creation

    Example:
        >>> params = FitParams(
        ...     gold_definition='measured',
        ...     transform='logit',
        ...     terms=[CovariateTerm(name='intercept')],
        ...     order_priors=[OrderPrior(lower='selfreport', upper='survey')],
        ...     inlier_pct=0.9
        ... )
    """

    gold_definition: str = Field(min_length=1, description="Atomic definition treated as bias-free")

    transform: TransformKind = Field(
        default=TransformKind.LOGIT,
        description="Transform of the compared measurements"
    )

    terms: List[CovariateTerm] = Field(
        default_factory=lambda: [CovariateTerm(name=INTERCEPT)],
        description="Ordered covariate terms of the linear predictor"
    )

    order_priors: List[OrderPrior] = Field(
        default_factory=list,
        description="Inequality constraints between definition coefficients"
    )

    inlier_pct: float = Field(
        default=1.0,
        gt=0.0,
        le=1.0,
        description="Share of lowest-residual rows retained by robust trimming"
    )

    max_iter: int = Field(default=100, ge=1, description="Optimizer iteration cap")
    max_trim_iter: int = Field(default=10, ge=1, description="Trimming refit cap")
    tol: float = Field(default=1e-8, gt=0.0, description="Optimizer tolerance")

    class Config:
        frozen = True
        use_enum_values = True

    @field_validator('terms')
    @classmethod
    def validate_unique_terms(cls, v):
        names = [term.name for term in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate covariate terms: {duplicates}")
        if not v:
            raise ValueError("At least one covariate term is required")
        return v

    @field_validator('inlier_pct')
    @classmethod
    def validate_inlier_pct(cls, v):
        if v < 0.5:
            warnings.warn(
                f"inlier_pct={v} discards more than half of the matched pairs",
                UserWarning
            )
        return v

    @model_validator(mode='after')
    def validate_priors_need_intercept(self):
        if self.order_priors and not self.has_intercept:
            raise ValueError("Order priors constrain intercept coefficients; add an 'intercept' term")
        return self

    @property
    def has_intercept(self) -> bool:
        return any(term.is_intercept for term in self.terms)

    @property
    def covariate_terms(self) -> List[CovariateTerm]:
        return [term for term in self.terms if not term.is_intercept]

    def get_summary(self) -> str:
        """
        Get a human-readable summary of the fit configuration.

        Returns:
            Formatted string describing the configuration
        """
        transform = self.transform.value if isinstance(self.transform, Enum) else self.transform
        term_names = []
        for term in self.terms:
            if term.spline is not None:
                term_names.append(f"{term.name} (spline, {len(term.spline.knots)} knots)")
            else:
                term_names.append(term.name)

        lines = [
            "Crosswalk Fit Parameters",
            "=" * 50,
            f"  gold_definition: {self.gold_definition}",
            f"  transform: {transform}",
            f"  terms: {', '.join(term_names)}",
            f"  order_priors: {[(p.lower, p.upper) for p in self.order_priors] or 'None'}",
            f"  inlier_pct: {self.inlier_pct:.1%}",
            f"  max_iter: {self.max_iter}",
        ]
        return "\n".join(lines)
