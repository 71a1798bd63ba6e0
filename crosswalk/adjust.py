"""
Adjustment of Biased Observations

Applies a fitted crosswalk to raw measurements taken under alternative
definitions, moving them to the gold-standard definition.

For a row with definition D (atomic labels D_1..D_m) and covariates z:

    adjustment    = sum_j beta_{D_j} + sum_t f_t(z_t)
    adjustment_se = sqrt( sum_j se_{D_j}^2 + sum_t sum_k (x_tk se_tk)^2 )
    adjusted      = f^-1( f(value) - adjustment )
    adjusted_se_t = sqrt( se_t(value)^2 + adjustment_se^2 + gamma )
    adjusted_se   = adjusted_se_t * (f^-1)'(adjusted)

where f is the logit or log transform and x_tk the design value of
coefficient k of covariate term t. Rows already at the gold definition pass
through unchanged.
"""

import numpy as np
import pandas as pd
from typing import List, Optional, Sequence, Union

from .data import split_definition
from .logger import get_logger
from .model import term_coefficient_names, term_design
from .models.params import AdjustRoles
from .models.records import AdjustedObservation, RawObservation
from .models.results import FittedModel
from .transforms import (
    domain_violations,
    se_to_linear,
    se_to_transformed,
    to_linear,
    to_transformed,
)
from .validators import (
    DomainBoundaryError,
    MalformedInputError,
    UnknownDefinitionError,
    validate_dataframe,
    validate_finite,
    validate_numeric,
    validate_positive,
)

logger = get_logger(__name__)

OUTPUT_COLUMNS = ['row_id', 'adjusted_value', 'adjusted_se', 'adjustment', 'adjustment_se']


class Adjuster:
    """
    Adjusts raw observations with a fitted crosswalk.

    The fitted model is read-only; one Adjuster (or many) can share it.

    Example:
        >>> adjuster = Adjuster(fitted)
        >>> adjusted = adjuster.adjust(raw_df, AdjustRoles(
        ...     observation='mean', standard_error='se',
        ...     definition='dorm', covariates=['age'], row_id='row'
        ... ))
        >>> adjusted[['adjusted_value', 'adjusted_se']]
    """

    def __init__(self, fitted: FittedModel):
        self.fitted = fitted
        self.kind = fitted.transform_kind
        self._intercepts = {
            definition: (effect.estimate, effect.standard_error)
            for definition, effect in fitted.definition_effects().items()
        }
        self._registry = set(fitted.definition_registry)
        self._covariate_terms = [term for term in fitted.terms if not term.is_intercept]
        self._has_intercept = any(term.is_intercept for term in fitted.terms)

    # ===== Validation =====

    def _read_table(self, df: pd.DataFrame, roles: AdjustRoles):
        required = roles.required_columns()
        term_names = [term.name for term in self._covariate_terms]
        missing_terms = [name for name in term_names if name not in roles.covariates]
        if missing_terms:
            raise MalformedInputError(
                "Raw observations lack covariates used by the fitted model",
                field=", ".join(missing_terms),
                expected=f"Covariates {term_names}",
                fix="Add the columns to AdjustRoles.covariates"
            )
        validate_dataframe(df, required, name="raw observations", min_rows=0)
        df = df.reset_index(drop=True)

        values = validate_numeric(df[roles.observation], roles.observation)
        value_se = validate_numeric(df[roles.standard_error], roles.standard_error)
        validate_finite(values, roles.observation)
        validate_finite(value_se, roles.standard_error)
        validate_positive(value_se, roles.standard_error)

        at_boundary, outside = domain_violations(values, self.kind)
        if at_boundary.size:
            raise DomainBoundaryError(
                f"Values at the boundary of the {self.kind} transform cannot be adjusted",
                rows=at_boundary,
                field=roles.observation,
                expected="0 < value < 1" if self.kind == 'logit' else "value > 0",
                fix="Offset or drop boundary values before adjusting"
            )
        if outside.size:
            raise MalformedInputError(
                f"Values outside the domain of the {self.kind} transform",
                rows=outside,
                field=roles.observation,
                expected="0 < value < 1" if self.kind == 'logit' else "value > 0",
                fix="Check that the values are on the scale used at fit time"
            )

        covariates = {}
        for name in term_names:
            column = validate_numeric(df[name], name)
            validate_finite(column, name)
            covariates[name] = column

        atoms = [split_definition(label, self.fitted.delimiter) for label in df[roles.definition]]
        row_ids = df[roles.row_id].tolist() if roles.row_id is not None else list(range(len(df)))
        return values, value_se, atoms, covariates, row_ids

    def _check_definitions(self, atoms) -> None:
        unknown_rows = []
        unknown_labels = []
        for i, labels in enumerate(atoms):
            unseen = [label for label in labels if label not in self._registry]
            if unseen or not labels:
                unknown_rows.append(i)
                unknown_labels.extend(unseen or [''])
        if unknown_rows:
            raise UnknownDefinitionError(
                "Raw observations use definitions unseen at fit time",
                rows=unknown_rows,
                labels=unknown_labels,
                field="definition",
                expected=f"Atomic labels from {sorted(self._registry)}",
                fix="Refit with comparisons for these definitions or drop the rows"
            )

    # ===== Prediction =====

    def predict_adjustment(self, atoms, covariates) -> tuple:
        """
        Predicted alternative-minus-gold difference and its standard error.

        Args:
            atoms: Atomic label sets, one per row
            covariates: Mapping of covariate term name to values

        Returns:
            Tuple of (adjustment, adjustment_se, is_gold) arrays
        """
        gold = self.fitted.gold_definition
        n = len(atoms)
        adjustment = np.zeros(n)
        variance = np.zeros(n)
        is_gold = np.array([labels == frozenset([gold]) for labels in atoms], dtype=bool)

        if self._has_intercept:
            for i, labels in enumerate(atoms):
                for label in labels:
                    if label == gold:
                        continue
                    estimate, se = self._intercepts[label]
                    adjustment[i] += estimate
                    variance[i] += se ** 2

        for term in self._covariate_terms:
            design = term_design(term, covariates[term.name])
            effects = [self.fitted.effect(name) for name in term_coefficient_names(term)]
            estimates = np.array([effect.estimate for effect in effects])
            ses = np.array([effect.standard_error for effect in effects])
            adjustment += design @ estimates
            variance += (design ** 2) @ (ses ** 2)
            self._warn_extrapolation(term.name, covariates[term.name], is_gold)

        adjustment[is_gold] = 0.0
        variance[is_gold] = 0.0
        return adjustment, np.sqrt(variance), is_gold

    def _warn_extrapolation(self, name: str, values: np.ndarray, is_gold: np.ndarray) -> None:
        if name not in self.fitted.covariate_ranges:
            return
        lo, hi = self.fitted.covariate_ranges[name]
        outside = (~is_gold) & ((values < lo) | (values > hi))
        if outside.any():
            logger.warning(
                f"{int(outside.sum())} rows have '{name}' outside the fitted range "
                f"[{lo:g}, {hi:g}]; the covariate effect is extrapolated"
            )

    # ===== Adjustment =====

    def adjust(
        self,
        data: Union[pd.DataFrame, Sequence[RawObservation]],
        roles: Optional[AdjustRoles] = None
    ) -> pd.DataFrame:
        """
        Adjust raw observations to the gold-standard definition.

        Args:
            data: Raw observation table, or a sequence of RawObservation
            roles: Column-role mapping for a table (defaults to AdjustRoles())

        Returns:
            DataFrame with columns row_id, adjusted_value, adjusted_se,
            adjustment, adjustment_se in input row order

        Raises:
            DomainBoundaryError: If a value sits on a transform boundary
            UnknownDefinitionError: If a definition has atomic labels unseen
                at fit time
            MalformedInputError: On missing columns or invalid values
        """
        if not isinstance(data, pd.DataFrame):
            data, roles = self._records_to_table(data)
        roles = roles if roles is not None else AdjustRoles()

        values, value_se, atoms, covariates, row_ids = self._read_table(data, roles)
        if not len(values):
            logger.info("No raw observations to adjust")
            return pd.DataFrame(columns=OUTPUT_COLUMNS)
        self._check_definitions(atoms)

        adjustment, adjustment_se, is_gold = self.predict_adjustment(atoms, covariates)

        value_t = to_transformed(values, self.kind)
        value_se_t = se_to_transformed(values, value_se, self.kind)
        adjusted = to_linear(value_t - adjustment, self.kind)

        gamma = self.fitted.heterogeneity_variance
        adjusted_se_t = np.sqrt(value_se_t ** 2 + adjustment_se ** 2 + gamma)
        adjusted_se = se_to_linear(adjusted, adjusted_se_t, self.kind)

        adjusted = np.where(is_gold, values, adjusted)
        adjusted_se = np.where(is_gold, value_se, adjusted_se)

        logger.info(
            f"Adjusted {len(values):,} observations "
            f"({int(is_gold.sum()):,} already at gold definition '{self.fitted.gold_definition}')"
        )
        return pd.DataFrame({
            'row_id': row_ids,
            'adjusted_value': adjusted,
            'adjusted_se': adjusted_se,
            'adjustment': adjustment,
            'adjustment_se': adjustment_se,
        }, columns=OUTPUT_COLUMNS)

    def adjust_records(self, records: Sequence[RawObservation]) -> List[AdjustedObservation]:
        """Record-based variant of :meth:`adjust`."""
        table = self.adjust(records)
        return [
            AdjustedObservation(**row)
            for row in table.to_dict(orient='records')
        ]

    def _records_to_table(self, records: Sequence[RawObservation]):
        records = [r if isinstance(r, RawObservation) else RawObservation(**r) for r in records]
        names: List[str] = []
        for record in records:
            for name in record.covariates:
                if name not in names:
                    names.append(name)
        rows = []
        for i, record in enumerate(records):
            row = {
                'value': record.value,
                'value_se': record.value_se,
                'definition': record.definition,
                'row_id': record.row_id if record.row_id is not None else i,
            }
            for name in names:
                row[name] = record.covariates.get(name, np.nan)
            rows.append(row)
        roles = AdjustRoles(covariates=names, row_id='row_id')
        return pd.DataFrame(rows, columns=roles.required_columns()), roles


def adjust_orig_vals(
    fitted: FittedModel,
    df: pd.DataFrame,
    roles: Optional[AdjustRoles] = None
) -> pd.DataFrame:
    """
    Adjust a table of raw observations with a fitted crosswalk.

    Example:
        >>> adjusted = adjust_orig_vals(fitted, raw_df, AdjustRoles(
        ...     observation='mean', standard_error='se', definition='dorm'
        ... ))
    """
    return Adjuster(fitted).adjust(df, roles)
