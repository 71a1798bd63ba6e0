"""
Crosswalk Adjustment Engine

Network meta-regression for adjusting epidemiological measurements taken
under alternative case definitions or measurement methods to a gold-standard
definition.
"""

from .models import (
    TransformKind,
    SplineSpec,
    CovariateTerm,
    OrderPrior,
    ColumnRoles,
    AdjustRoles,
    FitParams,
    ComparisonRecord,
    RawObservation,
    AdjustedObservation,
    FixedEffect,
    FittedModel,
)
from .validators import (
    CrosswalkError,
    MalformedInputError,
    InvalidKnotError,
    UnidentifiableModelError,
    DomainBoundaryError,
    UnknownDefinitionError,
)
from .data import CWData, split_definition
from .model import CWModel, fit_crosswalk
from .adjust import Adjuster, adjust_orig_vals
from .config import (
    CrosswalkConfig,
    DataConfig,
    AdjustDataConfig,
    OutputConfig,
    LoggingConfig,
    create_default_config,
)
from .pipeline import CrosswalkPipeline

__version__ = "0.1.0"
__all__ = [
    "TransformKind",
    "SplineSpec",
    "CovariateTerm",
    "OrderPrior",
    "ColumnRoles",
    "AdjustRoles",
    "FitParams",
    "ComparisonRecord",
    "RawObservation",
    "AdjustedObservation",
    "FixedEffect",
    "FittedModel",
    "CrosswalkError",
    "MalformedInputError",
    "InvalidKnotError",
    "UnidentifiableModelError",
    "DomainBoundaryError",
    "UnknownDefinitionError",
    "CWData",
    "split_definition",
    "CWModel",
    "fit_crosswalk",
    "Adjuster",
    "adjust_orig_vals",
    "CrosswalkConfig",
    "DataConfig",
    "AdjustDataConfig",
    "OutputConfig",
    "LoggingConfig",
    "create_default_config",
    "CrosswalkPipeline",
]
