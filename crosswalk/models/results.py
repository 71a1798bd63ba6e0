"""
Pydantic Models for Crosswalk Fit Results

Type-safe, immutable result models. A FittedModel is a plain value: it can
be shared between adjustments, exported as a table and serialized to JSON.
"""

from pydantic import BaseModel, Field, model_validator
from typing import Dict, List, Optional, Tuple
from datetime import datetime
from enum import Enum
from pathlib import Path
import json
import pandas as pd

from .params import CovariateTerm, TransformKind, INTERCEPT


class FixedEffect(BaseModel):
    """
    One fitted coefficient.

    Intercept coefficients carry the atomic ``definition`` they adjust;
    covariate coefficients leave it empty.

    Example:
        >>> effect = FixedEffect(
        ...     name='intercept:selfreport',
        ...     term='intercept',
        ...     definition='selfreport',
        ...     estimate=-0.25,
        ...     standard_error=0.02
        ... )
    """
    name: str = Field(description="Unique coefficient name")
    term: str = Field(description="Covariate term the coefficient belongs to")
    definition: Optional[str] = Field(default=None, description="Atomic definition (intercept only)")
    estimate: float = Field(description="Point estimate in transform space")
    standard_error: float = Field(ge=0.0, description="Standard error of the estimate")

    class Config:
        frozen = True


class FittedModel(BaseModel):
    """
    Result of a crosswalk fit.

    Holds everything the adjuster needs: coefficients, the heterogeneity
    variance, the gold definition, the definition registry, the transform and
    the covariate term specifications.
    """
    fixed_effects: List[FixedEffect] = Field(description="Fitted coefficients in term order")

    heterogeneity_variance: float = Field(
        ge=0.0,
        description="Between-group variance component (gamma)"
    )

    gold_definition: str = Field(description="Atomic definition treated as bias-free")

    definition_registry: List[str] = Field(description="Known atomic definitions, gold included")

    transform_kind: TransformKind = Field(description="Transform of the comparison")

    delimiter: Optional[str] = Field(default='_', description="Separator of composite labels")

    terms: List[CovariateTerm] = Field(description="Covariate terms of the linear predictor")

    covariate_ranges: Dict[str, Tuple[float, float]] = Field(
        default_factory=dict,
        description="Observed (min, max) of each covariate term at fit time"
    )

    inlier_mask: List[bool] = Field(
        default_factory=list,
        description="Rows retained by robust trimming, in input order"
    )

    n_observations: int = Field(ge=1, description="Number of matched pairs used to fit")

    converged: bool = Field(default=True, description="Whether the optimizer converged")

    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        frozen = True
        use_enum_values = True

    @model_validator(mode='after')
    def validate_gold_in_registry(self):
        if self.gold_definition not in self.definition_registry:
            raise ValueError(
                f"gold_definition '{self.gold_definition}' missing from definition_registry"
            )
        return self

    @model_validator(mode='after')
    def validate_unique_names(self):
        names = [effect.name for effect in self.fixed_effects]
        if len(set(names)) != len(names):
            raise ValueError("Fixed effect names must be unique")
        return self

    # ===== Lookup =====

    def effect(self, name: str) -> FixedEffect:
        """Return the fixed effect with the given coefficient name."""
        for effect in self.fixed_effects:
            if effect.name == name:
                return effect
        raise KeyError(f"No fixed effect named '{name}'")

    def term_effects(self, term: str) -> List[FixedEffect]:
        """Fixed effects of one covariate term, in design order."""
        return [effect for effect in self.fixed_effects if effect.term == term]

    def definition_effects(self) -> Dict[str, FixedEffect]:
        """Intercept fixed effects keyed by atomic definition."""
        return {
            effect.definition: effect
            for effect in self.fixed_effects
            if effect.term == INTERCEPT and effect.definition is not None
        }

    def intercept(self, definition: str) -> float:
        """
        Fitted adjustment of one atomic definition relative to gold.

        The gold definition returns 0.
        """
        if definition == self.gold_definition:
            return 0.0
        effects = self.definition_effects()
        if definition not in effects:
            raise KeyError(f"No intercept coefficient for definition '{definition}'")
        return effects[definition].estimate

    # ===== Export =====

    def fixed_effects_table(self) -> pd.DataFrame:
        """
        Tabular view of the fitted coefficients.

        Returns:
            DataFrame with columns name, term, definition, estimate,
            standard_error
        """
        return pd.DataFrame(
            [effect.model_dump() for effect in self.fixed_effects],
            columns=['name', 'term', 'definition', 'estimate', 'standard_error']
        )

    def to_dict(self) -> Dict:
        """Convert to a JSON-compatible dictionary."""
        return self.model_dump(mode='json')

    @classmethod
    def from_dict(cls, data: Dict) -> 'FittedModel':
        """Create from a dictionary produced by to_dict."""
        return cls.model_validate(data)

    def to_json(self, filepath: str) -> None:
        """
        Save the fitted model as JSON.

        Args:
            filepath: Path of the JSON file
        """
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_json(cls, filepath: str) -> 'FittedModel':
        """Load a fitted model saved with to_json."""
        with open(filepath, 'r') as f:
            return cls.from_dict(json.load(f))

    def get_summary(self) -> str:
        """Human-readable summary of the fit."""
        transform = self.transform_kind.value if isinstance(self.transform_kind, Enum) else self.transform_kind
        lines = [
            "=" * 70,
            f"CROSSWALK FIT ({transform} transform, gold = '{self.gold_definition}')",
            "=" * 70,
            "",
            "Fixed effects:",
        ]
        for effect in self.fixed_effects:
            lines.append(
                f"  {effect.name:30s}: {effect.estimate:12.6f}  (se {effect.standard_error:.6f})"
            )
        n_inliers = sum(self.inlier_mask) if self.inlier_mask else self.n_observations
        lines.extend([
            "",
            f"Heterogeneity (gamma): {self.heterogeneity_variance:.6g}",
            f"Observations: {self.n_observations:,} ({n_inliers:,} inliers)",
            f"Convergence:  {'SUCCESS' if self.converged else 'FAILED'}",
            "=" * 70,
        ])
        return "\n".join(lines)
