"""
Validation components: coverage analysis, schema validation and OpenAPI reconciliation.

NOTE: CoverageAnalyzer, SchemaValidator and OpenApiReconciler depend on the
mapping package, which itself imports the shared validation models. Import
them from their modules, not from this __init__.py.
"""

# Shared validation data structures (safe to import here)
from .validation_models import (
    ValidationSeverity, IssueCategory, ValidationIssue,
    SchemaErrorDetail, SchemaValidationOutcome,
)

__all__ = [
    'ValidationSeverity',
    'IssueCategory',
    'ValidationIssue',
    'SchemaErrorDetail',
    'SchemaValidationOutcome',
]
