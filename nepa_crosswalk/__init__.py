"""
NEPA Crosswalk Reconciler

A contract-driven toolkit that reconciles the relational database layout,
the OpenAPI contracts and the tabular exports of NEPA environmental-review
records against the canonical NEPA JSON Schema.
"""

__version__ = "1.0.0"
__author__ = "NEPA Crosswalk Team"

# Import core models and interfaces for easy access
from .models import (
    TableBinding,
    CoverageOverride,
    CrosswalkColumn,
    CoverageResult,
    TransformResult,
    ReconciliationReport,
    ReconciliationOutcome,
    FileResult,
)

from .interfaces import (
    SourceReaderInterface,
    DocumentValidatorInterface,
    ConfigurationManagerInterface,
    PerformanceMonitorInterface,
)

from .exceptions import (
    NepaCrosswalkError,
    SchemaLoadError,
    SourceFileError,
    MappingTableError,
    DataTransformationError,
    ConfigurationError,
)

__all__ = [
    # Core models
    "TableBinding",
    "CoverageOverride",
    "CrosswalkColumn",
    "CoverageResult",
    "TransformResult",
    "ReconciliationReport",
    "ReconciliationOutcome",
    "FileResult",

    # Interfaces
    "SourceReaderInterface",
    "DocumentValidatorInterface",
    "ConfigurationManagerInterface",
    "PerformanceMonitorInterface",

    # Exceptions
    "NepaCrosswalkError",
    "SchemaLoadError",
    "SourceFileError",
    "MappingTableError",
    "DataTransformationError",
    "ConfigurationError",
]
