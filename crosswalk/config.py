"""
Crosswalk Configuration Management

Unified configuration for the fit-and-adjust workflow.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional
from pathlib import Path
import json
import logging
import yaml

from .models.params import AdjustRoles, ColumnRoles, FitParams

OUTPUT_FORMATS = ["csv", "json", "excel"]


@dataclass
class DataConfig:
    """Configuration of the matched comparison table."""

    source: str  # Path to the matched-pair CSV
    roles: ColumnRoles = field(default_factory=ColumnRoles)
    delimiter: Optional[str] = '_'  # Separator of composite definition labels
    definitions: Optional[List[str]] = None  # Extra atomic labels to register

    def validate(self) -> List[str]:
        """Validate data configuration."""
        issues = []
        if not Path(self.source).exists():
            issues.append(f"Comparison data not found: {self.source}")
        if self.delimiter == '':
            issues.append("delimiter must be a non-empty string or None")
        return issues

    def to_dict(self) -> Dict:
        return {
            'source': self.source,
            'roles': self.roles.model_dump(),
            'delimiter': self.delimiter,
            'definitions': self.definitions,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'DataConfig':
        return cls(
            source=data['source'],
            roles=ColumnRoles(**data.get('roles', {})),
            delimiter=data.get('delimiter', '_'),
            definitions=data.get('definitions'),
        )


@dataclass
class AdjustDataConfig:
    """Configuration of the raw observations to adjust."""

    source: str  # Path to the raw observation CSV
    roles: AdjustRoles = field(default_factory=AdjustRoles)

    def validate(self) -> List[str]:
        issues = []
        if not Path(self.source).exists():
            issues.append(f"Raw observation data not found: {self.source}")
        return issues

    def to_dict(self) -> Dict:
        return {'source': self.source, 'roles': self.roles.model_dump()}

    @classmethod
    def from_dict(cls, data: Dict) -> 'AdjustDataConfig':
        return cls(source=data['source'], roles=AdjustRoles(**data.get('roles', {})))


@dataclass
class OutputConfig:
    """Configuration for output files."""

    output_dir: str = "./output"
    output_formats: List[str] = field(default_factory=lambda: ["csv", "json"])

    fixed_effects_name: str = "fixed_effects.csv"
    adjusted_name: str = "adjusted_observations.csv"
    model_name: str = "fitted_model.json"
    report_name: str = "crosswalk_report.xlsx"

    def validate(self) -> List[str]:
        issues = []
        unknown = [fmt for fmt in self.output_formats if fmt not in OUTPUT_FORMATS]
        if unknown:
            issues.append(f"Unknown output formats {unknown}; valid formats: {OUTPUT_FORMATS}")
        if not self.report_name.endswith('.xlsx'):
            issues.append(f"Excel report '{self.report_name}' must be a .xlsx file")
        for name in (self.fixed_effects_name, self.adjusted_name):
            if not name.endswith('.csv'):
                issues.append(f"Tabular output '{name}' must be a .csv file")
        if not self.model_name.endswith('.json'):
            issues.append(f"Model output '{self.model_name}' must be a .json file")
        return issues


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    log_file: Optional[str] = None

    def validate(self) -> List[str]:
        if not isinstance(getattr(logging, self.level.upper(), None), int):
            return [f"Invalid logging level '{self.level}'"]
        return []


@dataclass
class CrosswalkConfig:
    """
    Master configuration for the crosswalk workflow.

    Example:
        >>> config = CrosswalkConfig(
        ...     data=DataConfig(
        ...         source='data/matched_pairs.csv',
        ...         roles=ColumnRoles(observation='logit_diff', standard_error='logit_diff_se')
        ...     ),
        ...     fit_params=FitParams(gold_definition='measured', inlier_pct=0.9),
        ...     adjust=AdjustDataConfig(source='data/raw.csv'),
        ...     output=OutputConfig(output_dir='./results')
        ... )
        >>> config.to_yaml('crosswalk.yaml')
    """

    data: DataConfig
    fit_params: FitParams
    adjust: Optional[AdjustDataConfig] = None
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    verbose: bool = True

    name: Optional[str] = None
    description: Optional[str] = None

    def validate(self) -> List[str]:
        """
        Validate entire configuration.

        Returns:
            List of validation error messages (empty if all valid)
        """
        issues = []
        issues.extend(self.data.validate())
        if self.adjust is not None:
            issues.extend(self.adjust.validate())
        issues.extend(self.output.validate())
        issues.extend(self.logging.validate())

        # Cross-validation checks
        covariates = set(self.data.roles.covariates)
        for term in self.fit_params.covariate_terms:
            if term.name not in covariates:
                issues.append(f"Covariate term '{term.name}' is not a comparison data covariate")
            if self.adjust is not None and term.name not in self.adjust.roles.covariates:
                issues.append(f"Covariate term '{term.name}' is not a raw observation covariate")

        return issues

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            'data': self.data.to_dict(),
            'fit_params': self.fit_params.model_dump(mode='json'),
            'adjust': self.adjust.to_dict() if self.adjust is not None else None,
            'output': asdict(self.output),
            'logging': asdict(self.logging),
            'verbose': self.verbose,
            'name': self.name,
            'description': self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'CrosswalkConfig':
        """Create from dictionary."""
        return cls(
            data=DataConfig.from_dict(data['data']),
            fit_params=FitParams(**data['fit_params']),
            adjust=AdjustDataConfig.from_dict(data['adjust']) if data.get('adjust') else None,
            output=OutputConfig(**data.get('output', {})),
            logging=LoggingConfig(**data.get('logging', {})),
            verbose=data.get('verbose', True),
            name=data.get('name'),
            description=data.get('description'),
        )

    def to_json(self, filepath: str) -> None:
        """
        Export configuration to JSON file.

        Args:
            filepath: Path to save JSON file
        """
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_json(cls, filepath: str) -> 'CrosswalkConfig':
        """Load configuration from JSON file."""
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    def to_yaml(self, filepath: str) -> None:
        """
        Export configuration to YAML file.

        Args:
            filepath: Path to save YAML file
        """
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, filepath: str) -> 'CrosswalkConfig':
        """Load configuration from YAML file."""
        with open(filepath, 'r') as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data)

    def summary(self) -> str:
        """
        Get human-readable summary of configuration.

        Returns:
            Formatted string describing the configuration
        """
        lines = [
            "=" * 70,
            "CROSSWALK CONFIGURATION SUMMARY",
            "=" * 70,
        ]
        if self.name:
            lines.extend(["", f"Name: {self.name}"])
        if self.description:
            lines.extend(["", f"Description: {self.description}"])

        roles = self.data.roles
        lines.extend([
            "",
            "DATA CONFIGURATION:",
            f"  Source: {self.data.source}",
            f"  Difference column: {roles.observation} (se: {roles.standard_error})",
            f"  Definitions: {roles.alt_definition} vs {roles.ref_definition}",
            f"  Covariates: {', '.join(roles.covariates) or 'None'}",
            f"  Group column: {roles.group_id or 'one group per row'}",
            f"  Delimiter: {self.data.delimiter!r}",
            "",
            self.fit_params.get_summary(),
            "",
            "ADJUSTMENT:",
            f"  Source: {self.adjust.source if self.adjust else 'None'}",
            "",
            "OUTPUT CONFIGURATION:",
            f"  Output directory: {self.output.output_dir}",
            f"  Output formats: {', '.join(self.output.output_formats)}",
            f"  Verbose output: {self.verbose}",
            "=" * 70,
        ])
        return "\n".join(lines)


def create_default_config(
    data_source: str,
    gold_definition: str,
    adjust_source: Optional[str] = None,
    output_dir: str = './output'
) -> CrosswalkConfig:
    """
    Create a configuration with default column roles and fit parameters.

    Args:
        data_source: Path to the matched comparison CSV
        gold_definition: Gold-standard atomic definition
        adjust_source: Optional path to raw observations to adjust
        output_dir: Directory for output files

    Returns:
        CrosswalkConfig with default parameters
    """
    return CrosswalkConfig(
        data=DataConfig(source=data_source),
        fit_params=FitParams(gold_definition=gold_definition),
        adjust=AdjustDataConfig(source=adjust_source) if adjust_source else None,
        output=OutputConfig(output_dir=output_dir),
    )
