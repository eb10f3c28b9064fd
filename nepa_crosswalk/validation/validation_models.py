"""
Validation Data Models and Structures

This module defines the data structures the reconciliation components use to
report findings: individual issues found by the coverage analyzer, the OpenAPI
reconciler and the orchestrator, and the structured errors returned by the
schema validator.

Key Data Structures:
- ValidationIssue: A single finding with severity, category and location
- SchemaErrorDetail: One structured error from the JSON Schema validator
- SchemaValidationOutcome: Pass/fail plus the filtered error stream
- Enums: Standardized severity levels and issue categories

Severity semantics:
- CRITICAL / ERROR are hard errors and invalidate the table, file or run
- WARNING / INFO are soft findings and never gate validity
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional
from enum import Enum


class ValidationSeverity(Enum):
    """Severity levels for validation issues."""
    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class IssueCategory(Enum):
    """Categories of reconciliation findings."""
    MISSING_REQUIRED = "missing_required"
    UNMATCHED_PROPERTY = "unmatched_property"
    UNMATCHED_SOURCE_FIELD = "unmatched_source_field"
    DATABASE_ALIGNMENT = "database_alignment"
    SCHEMA_VIOLATION = "schema_violation"
    STRUCTURAL = "structural"
    OPENAPI_STRUCTURE = "openapi_structure"
    CROSSWALK_MISMATCH = "crosswalk_mismatch"
    META_SCHEMA = "meta_schema"


HARD_SEVERITIES = (ValidationSeverity.CRITICAL, ValidationSeverity.ERROR)


@dataclass
class ValidationIssue:
    """
    Represents a single reconciliation finding with its location context.

    Location Context:
    - table_name: Source table, OpenAPI definition or file the finding belongs to
    - field_name: Canonical property or source field concerned
    - path: JSON pointer into a canonical document, for schema violations

    Usage:
    - Collected by CoverageAnalyzer, OpenApiReconciler and the orchestrator
    - Hard errors (CRITICAL/ERROR) gate validity, everything else is reported only
    """
    category: IssueCategory
    severity: ValidationSeverity
    message: str
    table_name: Optional[str] = None
    field_name: Optional[str] = None
    path: Optional[str] = None
    additional_context: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_hard_error(self) -> bool:
        """True when this issue invalidates its table or file."""
        return self.severity in HARD_SEVERITIES

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON reports."""
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "table_name": self.table_name,
            "field_name": self.field_name,
            "path": self.path,
        }

    def __str__(self) -> str:
        """String representation of the issue."""
        location = ""
        if self.table_name:
            location = f" in {self.table_name}"
            if self.field_name:
                location += f".{self.field_name}"
        elif self.path:
            location = f" at {self.path}"

        return f"[{self.severity.value.upper()}] {self.category.value}{location}: {self.message}"


@dataclass
class SchemaErrorDetail:
    """
    One structured error from the validating function.

    Attributes:
        path: JSON pointer of the offending instance ("" is the document root)
        keyword: JSON Schema keyword that failed (required, enum, type, ...)
        message: Validator message
        params: Keyword specific details (missing_property, additional_properties, allowed_values)
    """
    path: str
    keyword: str
    message: str
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "keyword": self.keyword, "message": self.message, "params": self.params}

    def __str__(self) -> str:
        return f"{self.path or '(root)'}: {self.message} ({self.keyword})"


@dataclass
class SchemaValidationOutcome:
    """
    Result of validating a canonical document against the canonical schema.

    Attributes:
        valid: True when no relevant errors remain after false-positive filtering
        errors: Relevant errors in validator order
        suppressed: Errors dropped because they match a known false positive
    """
    valid: bool
    errors: List[SchemaErrorDetail] = field(default_factory=list)
    suppressed: List[SchemaErrorDetail] = field(default_factory=list)

    def errors_by_path(self) -> Dict[str, List[SchemaErrorDetail]]:
        """Group errors by instance path, keeping first-seen order."""
        grouped: Dict[str, List[SchemaErrorDetail]] = {}
        for error in self.errors:
            grouped.setdefault(error.path or "(root)", []).append(error)
        return grouped

    def missing_properties(self) -> List[str]:
        """Distinct properties reported missing by 'required' errors."""
        seen = []
        for error in self.errors:
            name = error.params.get("missing_property")
            if error.keyword == "required" and name and name not in seen:
                seen.append(name)
        return seen
