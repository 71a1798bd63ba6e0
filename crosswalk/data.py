"""
Observation Store for Matched Comparisons

Holds matched alternative-vs-reference observations with their standard
errors, covariates and heterogeneity groups, validates them, and builds the
definition registry used by the model fitter.
"""

import numpy as np
import pandas as pd
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .logger import get_logger
from .models.params import ColumnRoles
from .models.records import ComparisonRecord
from .validators import (
    MalformedInputError,
    validate_dataframe,
    validate_finite,
    validate_numeric,
    validate_positive,
    check_data_quality,
)

logger = get_logger(__name__)


def split_definition(label, delimiter: Optional[str]) -> FrozenSet[str]:
    """
    Decompose a composite definition label into its atomic labels.

    Args:
        label: Definition label, e.g. ``"B_C"``
        delimiter: Separator between atomic labels; None disables splitting

    Returns:
        Frozen set of atomic labels (empty parts are dropped)

    Example:
        >>> sorted(split_definition("B_C", "_"))
        ['B', 'C']
    """
    text = str(label).strip()
    if delimiter is None:
        parts = [text]
    else:
        parts = [part.strip() for part in text.split(delimiter)]
    return frozenset(part for part in parts if part)


class CWData:
    """
    Matched comparison records and their definition registry.

    Each row compares an alternative definition against a reference
    definition. ``observation`` is the alternative-minus-reference difference
    in transform space and ``standard_error`` its standard error.

    Example:
        >>> roles = ColumnRoles(
        ...     observation='logit_diff', standard_error='logit_diff_se',
        ...     alt_definition='alt', ref_definition='ref',
        ...     covariates=['age'], group_id='study'
        ... )
        >>> data = CWData(df, roles, delimiter='_')
        >>> data.definition_registry
        ('measured', 'selfreport', 'survey')
    """

    def __init__(
        self,
        df: pd.DataFrame,
        roles: Optional[ColumnRoles] = None,
        delimiter: Optional[str] = '_',
        definitions: Optional[Iterable[str]] = None
    ):
        """
        Build and validate the observation store.

        Args:
            df: Matched comparison table
            roles: Column-role mapping (defaults to ColumnRoles())
            delimiter: Separator of composite definition labels
            definitions: Extra atomic labels to register even if they never
                appear in the table

        Raises:
            MalformedInputError: On missing columns, non-numeric or missing
                values, non-positive standard errors, or rows comparing a
                definition with itself
        """
        self.roles = roles if roles is not None else ColumnRoles()
        self.delimiter = delimiter

        validate_dataframe(df, self.roles.required_columns(), name="comparison data")
        self.df = df.reset_index(drop=True).copy()

        self.obs = validate_numeric(self.df[self.roles.observation], self.roles.observation)
        self.obs_se = validate_numeric(self.df[self.roles.standard_error], self.roles.standard_error)
        self.covs = validate_numeric(
            self.df[self.roles.covariates].to_numpy() if self.roles.covariates
            else np.empty((len(self.df), 0)),
            "covariates"
        )

        validate_finite(self.obs, self.roles.observation)
        validate_finite(self.obs_se, self.roles.standard_error)
        validate_positive(self.obs_se, self.roles.standard_error)
        if self.roles.covariates:
            validate_finite(self.covs, ", ".join(self.roles.covariates))

        self.alt_atoms: List[FrozenSet[str]] = [
            split_definition(label, delimiter) for label in self.df[self.roles.alt_definition]
        ]
        self.ref_atoms: List[FrozenSet[str]] = [
            split_definition(label, delimiter) for label in self.df[self.roles.ref_definition]
        ]
        self._validate_definitions()

        if self.roles.group_id is not None:
            codes, uniques = pd.factorize(self.df[self.roles.group_id])
            if (codes < 0).any():
                raise MalformedInputError(
                    "Group identifiers must not be missing",
                    rows=np.flatnonzero(codes < 0),
                    field=self.roles.group_id,
                    fix="Fill missing group ids, e.g. with one id per study"
                )
            self.group_index = codes
            self.groups = list(uniques)
        else:
            self.group_index = np.arange(len(self.df))
            self.groups = list(range(len(self.df)))

        registry = set().union(*self.alt_atoms, *self.ref_atoms)
        if definitions is not None:
            registry.update(str(d) for d in definitions)
        self.definition_registry: Tuple[str, ...] = tuple(sorted(registry))

        self.quality_report = check_data_quality(self.df, self.roles.required_columns())
        for warning in self.quality_report.warnings:
            logger.warning(warning)
        logger.info(
            f"Comparison data: {self.n_obs:,} matched pairs, {len(self.groups):,} groups, "
            f"{len(self.definition_registry)} atomic definitions"
        )

    @classmethod
    def from_records(
        cls,
        records: Sequence[ComparisonRecord],
        delimiter: Optional[str] = '_',
        definitions: Optional[Iterable[str]] = None
    ) -> 'CWData':
        """
        Build the store from a sequence of ComparisonRecord rows.

        Covariates missing from some records are reported as malformed rows.
        """
        records = [r if isinstance(r, ComparisonRecord) else ComparisonRecord(**r) for r in records]
        covariate_names: List[str] = []
        for record in records:
            for name in record.covariates:
                if name not in covariate_names:
                    covariate_names.append(name)

        has_groups = any(record.group_id is not None for record in records)
        rows = []
        for record in records:
            row: Dict = {
                'alt_definition': record.alt_definition,
                'ref_definition': record.ref_definition,
                'diff_value': record.diff_value,
                'diff_se': record.diff_se,
            }
            for name in covariate_names:
                row[name] = record.covariates.get(name, np.nan)
            if has_groups:
                row['group_id'] = record.group_id
            rows.append(row)

        roles = ColumnRoles(
            covariates=covariate_names,
            group_id='group_id' if has_groups else None
        )
        df = pd.DataFrame(rows, columns=roles.required_columns())
        return cls(df, roles, delimiter=delimiter, definitions=definitions)

    def _validate_definitions(self) -> None:
        empty = [
            i for i, (alt, ref) in enumerate(zip(self.alt_atoms, self.ref_atoms))
            if not alt or not ref
        ]
        if empty:
            raise MalformedInputError(
                "Definition labels must not be empty",
                rows=empty,
                field=f"{self.roles.alt_definition}, {self.roles.ref_definition}",
                fix="Label every alternative and reference measurement"
            )

        same = [i for i, (alt, ref) in enumerate(zip(self.alt_atoms, self.ref_atoms)) if alt == ref]
        if same:
            raise MalformedInputError(
                "Alternative and reference definitions must differ",
                rows=same,
                field=f"{self.roles.alt_definition}, {self.roles.ref_definition}",
                expected="alt_definition != ref_definition",
                fix="Drop self-comparisons; they carry no crosswalk information"
            )

    @property
    def n_obs(self) -> int:
        return len(self.df)

    def definition_slots(self, gold_definition: str) -> List[str]:
        """Atomic labels that receive an intercept coefficient."""
        return [label for label in self.definition_registry if label != gold_definition]

    def dorm_design(self, labels: Sequence[str]) -> np.ndarray:
        """
        Signed incidence of atomic labels: +1 in the alternative, -1 in the
        reference, 0 when absent or present on both sides.

        Args:
            labels: Atomic labels, one column each

        Returns:
            Array of shape (n_obs, len(labels))
        """
        column = {label: j for j, label in enumerate(labels)}
        design = np.zeros((self.n_obs, len(labels)))
        for i, (alt, ref) in enumerate(zip(self.alt_atoms, self.ref_atoms)):
            for label in alt:
                if label in column:
                    design[i, column[label]] += 1.0
            for label in ref:
                if label in column:
                    design[i, column[label]] -= 1.0
        return design

    def covariate(self, name: str) -> np.ndarray:
        """Values of one covariate column."""
        if name not in self.roles.covariates:
            raise MalformedInputError(
                f"Covariate '{name}' is not part of the comparison data",
                field=name,
                expected=f"One of {self.roles.covariates}",
                fix="Add the column to ColumnRoles.covariates"
            )
        return self.covs[:, self.roles.covariates.index(name)]

    def summary(self) -> str:
        """Human-readable summary of the stored comparisons."""
        pairs = pd.Series(
            [
                f"{self.df[self.roles.alt_definition].iloc[i]} vs {self.df[self.roles.ref_definition].iloc[i]}"
                for i in range(self.n_obs)
            ]
        ).value_counts()
        lines = [
            "Comparison Data",
            "=" * 50,
            f"  Matched pairs: {self.n_obs:,}",
            f"  Groups: {len(self.groups):,}",
            f"  Atomic definitions: {', '.join(self.definition_registry)}",
            f"  Covariates: {', '.join(self.roles.covariates) or 'None'}",
            f"  Quality warnings: {len(self.quality_report.warnings)}",
            "",
            "Comparisons:",
        ]
        for pair, count in pairs.items():
            lines.append(f"  {pair}: {count:,}")
        return "\n".join(lines)
