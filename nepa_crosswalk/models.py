"""
Core data models for the NEPA crosswalk reconciliation system.

This module defines the primary data structures passed between the mapping
table, the coverage analyzer, the entity transformer and the orchestrator:
table bindings, crosswalk columns, coverage results, transform results and
the aggregate reconciliation report.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

from .validation.validation_models import (
    ValidationIssue,
    ValidationSeverity,
    SchemaValidationOutcome,
)


@dataclass(frozen=True)
class TableBinding:
    """
    Binds a source table (or OpenAPI definition) to a canonical entity.

    Attributes:
        table_name: Source table or definition name
        entity_name: Canonical entity definition name in the NEPA schema
        id_field: Canonical identifier property of the entity
    """
    table_name: str
    entity_name: str
    id_field: str

    def __post_init__(self):
        """Validate binding."""
        if not self.table_name:
            raise ValueError("table_name cannot be empty")
        if not self.entity_name:
            raise ValueError("entity_name cannot be empty")
        if not self.id_field:
            raise ValueError("id_field cannot be empty")


@dataclass(frozen=True)
class CoverageOverride:
    """A curated (table, source field, canonical field) equivalence used by coverage analysis."""
    table_name: str
    source_field: str
    canonical_field: str


@dataclass
class CrosswalkColumn:
    """
    One row of the database crosswalk CSV.

    Attributes:
        table: Database table name
        column: Column name
        data_type: Declared database type
        nullable: Raw nullability marker from the crosswalk (YES/NO/true/false)
        default_value: Column default, if listed
        description: Free-text description
        constraints: Free-text constraint notes
    """
    table: str
    column: str
    data_type: Optional[str] = None
    nullable: Optional[str] = None
    default_value: Optional[str] = None
    description: str = ""
    constraints: str = ""

    def __post_init__(self):
        if not self.table:
            raise ValueError("table cannot be empty")
        if not self.column:
            raise ValueError("column cannot be empty")


@dataclass
class DatabaseCoverage:
    """Coverage of a database.schema.json table definition by crosswalk columns."""
    found: int = 0
    total: int = 0
    missing_required: List[str] = field(default_factory=list)
    unmatched_database_fields: List[str] = field(default_factory=list)


@dataclass
class CoverageResult:
    """
    Coverage of a canonical entity by one source table or definition.

    Attributes:
        table_name: Source table or definition analysed
        entity_name: Canonical entity it was compared against
        found: Distinct non-ignored canonical properties satisfied by the source
        total: Number of non-ignored canonical properties of the entity
        missing_required: Required properties with no source counterpart (hard errors)
        unmatched_properties: Optional properties with no source counterpart
        unmatched_source_fields: Source fields with no canonical counterpart
        issues: Every finding, in the order it was recorded
        database_coverage: Optional comparison with database.schema.json
    """
    table_name: str
    entity_name: str
    found: int = 0
    total: int = 0
    missing_required: List[str] = field(default_factory=list)
    unmatched_properties: List[str] = field(default_factory=list)
    unmatched_source_fields: List[str] = field(default_factory=list)
    issues: List[ValidationIssue] = field(default_factory=list)
    database_coverage: Optional[DatabaseCoverage] = None

    def __post_init__(self):
        """Enforce the coverage bound."""
        if self.found < 0 or self.total < 0:
            raise ValueError("coverage counts cannot be negative")
        if self.found > self.total:
            raise ValueError(f"found ({self.found}) cannot exceed total ({self.total})")

    def add_issue(self, issue: ValidationIssue) -> None:
        """Add a finding to the result."""
        self.issues.append(issue)

    @property
    def errors(self) -> List[ValidationIssue]:
        """Hard errors only."""
        return [issue for issue in self.issues if issue.is_hard_error]

    @property
    def warnings(self) -> List[ValidationIssue]:
        """Soft warnings only."""
        return [issue for issue in self.issues if issue.severity == ValidationSeverity.WARNING]

    @property
    def is_valid(self) -> bool:
        """Only hard errors gate validity; the coverage ratio never does."""
        return len(self.errors) == 0

    @property
    def coverage_percent(self) -> float:
        if self.total == 0:
            return 0.0
        return (self.found / self.total) * 100.0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON reports."""
        result = {
            "table_name": self.table_name,
            "entity_name": self.entity_name,
            "found": self.found,
            "total": self.total,
            "valid": self.is_valid,
            "missing_required": list(self.missing_required),
            "unmatched_properties": list(self.unmatched_properties),
            "unmatched_source_fields": list(self.unmatched_source_fields),
            "issues": [issue.to_dict() for issue in self.issues],
        }
        if self.database_coverage is not None:
            result["database_coverage"] = {
                "found": self.database_coverage.found,
                "total": self.database_coverage.total,
                "missing_required": list(self.database_coverage.missing_required),
                "unmatched_database_fields": list(self.database_coverage.unmatched_database_fields),
            }
        return result


@dataclass
class TransformResult:
    """
    Output of a single entity transformation: the canonical record plus the
    ordered list of corrections applied to produce it.

    Attributes:
        record: New canonical record (the source record is never mutated)
        fixes: Human-readable descriptions of every automatic correction
        incomplete_properties: Required properties still absent after transformation
    """
    record: Dict[str, Any]
    fixes: List[str] = field(default_factory=list)
    incomplete_properties: List[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.incomplete_properties


@dataclass
class ReconciliationReport:
    """
    Aggregate report for one reconciliation (a document, a tabular set, a
    crosswalk or an OpenAPI file).

    Attributes:
        source_name: What was reconciled (file path or logical name)
        fixes: Ordered fix log across every record and pass
        coverage_results: Per table/definition coverage, in processing order
        issues: Findings not tied to a coverage analysis (structural, OpenAPI, crosswalk)
        schema_outcome: Result of the validating function, when one ran
        records_transformed: Number of records produced by the transformer
        record_counts: Records per canonical collection in the output document
        schema_statistics: Property statistics of a checked schema file
        summary: Last text rendering from generate_summary()
    """
    source_name: str
    fixes: List[str] = field(default_factory=list)
    coverage_results: List[CoverageResult] = field(default_factory=list)
    issues: List[ValidationIssue] = field(default_factory=list)
    schema_outcome: Optional[SchemaValidationOutcome] = None
    records_transformed: int = 0
    record_counts: Dict[str, int] = field(default_factory=dict)
    schema_statistics: Dict[str, int] = field(default_factory=dict)
    summary: str = ""

    def add_fixes(self, fixes: List[str]) -> None:
        self.fixes.extend(fixes)

    def add_coverage(self, result: CoverageResult) -> None:
        self.coverage_results.append(result)

    def add_issue(self, issue: ValidationIssue) -> None:
        self.issues.append(issue)

    @property
    def total_fix_count(self) -> int:
        return len(self.fixes)

    @property
    def total_records(self) -> int:
        return sum(self.record_counts.values())

    @property
    def total_found(self) -> int:
        return sum(result.found for result in self.coverage_results)

    @property
    def total_possible(self) -> int:
        return sum(result.total for result in self.coverage_results)

    @property
    def overall_coverage_percent(self) -> float:
        """Reporting statistic only; never used to decide validity."""
        if self.total_possible == 0:
            return 0.0
        return (self.total_found / self.total_possible) * 100.0

    @property
    def hard_errors(self) -> List[ValidationIssue]:
        """Every hard error from coverage results and report-level issues."""
        errors = [issue for issue in self.issues if issue.is_hard_error]
        for result in self.coverage_results:
            errors.extend(result.errors)
        return errors

    @property
    def warnings(self) -> List[ValidationIssue]:
        warnings = [issue for issue in self.issues if issue.severity == ValidationSeverity.WARNING]
        for result in self.coverage_results:
            warnings.extend(result.warnings)
        return warnings

    @property
    def is_valid(self) -> bool:
        """Valid when there are no hard errors and the schema validator (if run) passed."""
        if self.hard_errors:
            return False
        if self.schema_outcome is not None and not self.schema_outcome.valid:
            return False
        return True

    def generate_summary(self, max_errors_per_path: int = 3) -> str:
        """Generate a human-readable summary of the reconciliation."""
        summary_lines = [
            f"Reconciliation Summary: {self.source_name}",
            f"Records Transformed: {self.records_transformed}",
            f"Total Records: {self.total_records}",
            f"Automatic Fixes: {self.total_fix_count}",
            f"Coverage: {self.total_found}/{self.total_possible} properties ({self.overall_coverage_percent:.1f}%)",
            f"Hard Errors: {len(self.hard_errors)}",
            f"Warnings: {len(self.warnings)}",
            f"Valid: {'Yes' if self.is_valid else 'No'}",
            ""
        ]

        if self.coverage_results:
            summary_lines.append("Tables:")
            for result in self.coverage_results:
                status = "VALID" if result.is_valid else "INVALID"
                summary_lines.append(
                    f"  - {result.table_name} -> {result.entity_name}: {status} "
                    f"({result.found}/{result.total} properties)"
                )
                if result.missing_required:
                    summary_lines.append(f"      Missing Required: {', '.join(result.missing_required)}")
                if result.database_coverage is not None:
                    db = result.database_coverage
                    summary_lines.append(f"      Database Coverage: {db.found}/{db.total} fields")
            summary_lines.append("")

        if self.record_counts:
            summary_lines.append("Records by type:")
            for collection, count in self.record_counts.items():
                summary_lines.append(f"  {collection}: {count}")
            summary_lines.append("")

        if self.schema_statistics:
            summary_lines.append("Schema Statistics:")
            for name, count in self.schema_statistics.items():
                summary_lines.append(f"  {name.replace('_', ' ').title()}: {count}")
            summary_lines.append("")

        hard_errors = self.hard_errors
        if hard_errors:
            summary_lines.append("Errors:")
            for error in hard_errors:
                summary_lines.append(f"  - {error}")
            summary_lines.append("")

        if self.schema_outcome is not None:
            if self.schema_outcome.valid:
                note = " (after filtering known false positives)" if self.schema_outcome.suppressed else ""
                summary_lines.append(f"Schema Validation: PASSED{note}")
            else:
                summary_lines.append("Schema Validation: FAILED")
                for path, errors in self.schema_outcome.errors_by_path().items():
                    summary_lines.append(f"  Path: {path}")
                    for error in errors[:max_errors_per_path]:
                        summary_lines.append(f"    - {error.message} ({error.keyword})")
                    if len(errors) > max_errors_per_path:
                        summary_lines.append(f"    ... and {len(errors) - max_errors_per_path} more errors in this path")
            summary_lines.append("")

        if self.fixes:
            summary_lines.append(f"Applied {len(self.fixes)} automatic fix(es):")
            for fix in self.fixes:
                summary_lines.append(f"  - {fix}")

        self.summary = "\n".join(summary_lines).rstrip()
        return self.summary

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON reports."""
        return {
            "source_name": self.source_name,
            "valid": self.is_valid,
            "records_transformed": self.records_transformed,
            "fix_count": self.total_fix_count,
            "record_counts": dict(self.record_counts),
            "fixes": list(self.fixes),
            "coverage": {
                "found": self.total_found,
                "total": self.total_possible,
                "percent": round(self.overall_coverage_percent, 2),
            },
            "tables": [result.to_dict() for result in self.coverage_results],
            "issues": [issue.to_dict() for issue in self.issues],
            "schema_errors": [error.to_dict() for error in self.schema_outcome.errors] if self.schema_outcome else [],
            "suppressed_schema_errors": len(self.schema_outcome.suppressed) if self.schema_outcome else 0,
            "schema_statistics": dict(self.schema_statistics),
        }


@dataclass
class ReconciliationOutcome:
    """Canonical document produced by the orchestrator plus its report."""
    document: Dict[str, Any]
    report: ReconciliationReport


@dataclass
class FileResult:
    """
    Outcome of reading and reconciling one source file.

    Attributes:
        file_path: Source file
        success: False when the file was missing or malformed and was excluded
        error_message: Structural error description when success is False
        report: Reconciliation report when the file was reconciled on its own
        records_read: Rows or records read from the file
    """
    file_path: str
    success: bool
    error_message: Optional[str] = None
    report: Optional[ReconciliationReport] = None
    records_read: int = 0


@dataclass(frozen=True)
class FalsePositiveRule:
    """
    A known false-positive schema error pattern.

    An error matches when its path contains every substring in path_contains
    and its keyword equals keyword.
    """
    path_contains: tuple
    keyword: str
    reason: str = ""

    def matches(self, path: str, keyword: str) -> bool:
        if keyword != self.keyword:
            return False
        return all(fragment in (path or "") for fragment in self.path_contains)
