"""
Reconciliation Orchestrator - drives mapping, coverage, transformation and
validation across a whole source artifact.

Entry points:
    - reconcile_document: a root document holding legacy table-keyed and/or
      canonical collections -> canonical document + report
    - reconcile_tables: named per-table tabular inputs merged into one
      canonical document
    - reconcile_crosswalk: database crosswalk coverage (no transformation)
    - reconcile_openapi: OpenAPI structure, crosswalk and definition checks
    - reconcile_schema: meta-schema check and property statistics of a schema file

Per-record and per-table problems are recorded in the report as data. The
only exceptions that escape are configuration level ones raised while the
collaborators are built.
"""

import copy
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..exceptions import DataTransformationError
from ..interfaces import DocumentValidatorInterface
from ..mapping.canonical_schema import CanonicalSchema
from ..mapping.entity_transformer import EntityTransformer
from ..mapping.field_mapping_table import FieldMappingTable
from ..models import CrosswalkColumn, ReconciliationOutcome, ReconciliationReport
from ..parsing.source_readers import TabularData
from ..validation.coverage_analyzer import CoverageAnalyzer
from ..validation.openapi_reconciler import OpenApiReconciler
from ..validation.schema_validator import check_schema_document, gather_schema_statistics
from ..validation.validation_models import IssueCategory, ValidationIssue, ValidationSeverity


TableInput = Union[TabularData, Sequence[Mapping[str, Any]]]


def _structural_issue(message: str, table_name: Optional[str] = None,
                      severity: ValidationSeverity = ValidationSeverity.ERROR) -> ValidationIssue:
    return ValidationIssue(
        category=IssueCategory.STRUCTURAL,
        severity=severity,
        message=message,
        table_name=table_name,
    )


class ReconciliationOrchestrator:
    """
    Aggregates coverage, transformation and validation into reconciliation reports.

    Usage:
        orchestrator = ReconciliationOrchestrator(mapping_table, schema, validator)
        outcome = orchestrator.reconcile_document(document, "examples/project.yaml")
        print(outcome.report.generate_summary())
    """

    def __init__(self, mapping_table: FieldMappingTable, schema: Optional[CanonicalSchema] = None,
                 validator: Optional[DocumentValidatorInterface] = None,
                 transformer: Optional[EntityTransformer] = None,
                 analyzer: Optional[CoverageAnalyzer] = None):
        """
        Initialize the orchestrator.

        Args:
            mapping_table: Field mapping table
            schema: Canonical schema index (types, required sets)
            validator: Validating function run on every canonical document; skipped when None
            transformer: Entity transformer (built from mapping_table and schema when None)
            analyzer: Coverage analyzer (built from mapping_table and schema when None)
        """
        self.logger = logging.getLogger(__name__)
        self.mapping_table = mapping_table
        self.schema = schema
        self.validator = validator
        self.transformer = transformer or EntityTransformer(mapping_table, schema)
        self.analyzer = analyzer or CoverageAnalyzer(mapping_table, schema)
        self.openapi = OpenApiReconciler(mapping_table, self.analyzer)

    # ------------------------------------------------------------------
    # Documents and tabular inputs
    # ------------------------------------------------------------------

    def reconcile_document(self, document: Any, source_name: str = "document") -> ReconciliationOutcome:
        """
        Produce a canonical document from a root source document.

        Steps: migrate legacy table-keyed collections record by record,
        analyze their coverage, synthesize missing required collections,
        normalize every canonical collection and run the validator.

        Args:
            document: Parsed root document (not modified)
            source_name: Name used in the report

        Returns:
            ReconciliationOutcome with the canonical document and its report
        """
        return self._reconcile(document, source_name)

    def reconcile_tables(self, tables: Mapping[str, TableInput],
                         source_name: str = "tabular inputs") -> ReconciliationOutcome:
        """
        Merge per-table tabular inputs into one canonical document.

        Rows are converted from strings to JSON values, then migrated as
        legacy collections. Coverage is computed from the headers, so a table
        without rows is still analyzed.

        Args:
            tables: {source table: TabularData or sequence of row mappings}
            source_name: Name used in the report
        """
        document: Dict[str, Any] = {}
        declared_fields: Dict[str, List[str]] = {}
        coercion_fixes: List[str] = []

        for table_name, data in tables.items():
            if isinstance(data, TabularData):
                headers, rows = list(data.headers), list(data.rows)
            else:
                rows = list(data)
                headers = list(dict.fromkeys(key for row in rows for key in row))
            document[table_name] = [self.transformer.coerce_tabular_row(row, table_name, coercion_fixes) for row in rows]
            declared_fields[table_name] = headers
            self.logger.debug(f"Prepared {len(rows)} row(s) of table {table_name}")

        return self._reconcile(document, source_name, declared_fields, coercion_fixes)

    def _reconcile(self, document: Any, source_name: str,
                   declared_fields: Optional[Mapping[str, Sequence[str]]] = None,
                   initial_fixes: Sequence[str] = ()) -> ReconciliationOutcome:
        report = ReconciliationReport(source_name=source_name)
        report.add_fixes(initial_fixes)

        if document is None:
            report.add_issue(_structural_issue(f"Document {source_name} is empty",
                                               severity=ValidationSeverity.WARNING))
            canonical: Dict[str, Any] = {}
        elif not isinstance(document, Mapping):
            report.add_issue(_structural_issue(
                f"Root of {source_name} is not an object: {type(document).__name__}"))
            canonical = {}
        else:
            canonical = copy.deepcopy(dict(document))

        legacy_tables = [key for key in list(canonical) if self.mapping_table.is_bound_table(key)]
        for table_name in legacy_tables:
            self._migrate_table(canonical, table_name, report, declared_fields)

        # Only collections still absent after migration
        for collection in self.mapping_table.required_collections:
            if collection not in canonical:
                canonical[collection] = []
                report.add_fixes([f"Added missing required {collection} array to root level"])

        self._normalize_collections(canonical, report)
        self._count_records(canonical, report)

        if self.validator is not None:
            report.schema_outcome = self.validator.validate(canonical)

        self.logger.info(f"Reconciled {source_name}: {report.records_transformed} record(s), "
                         f"{report.total_fix_count} fix(es), valid={report.is_valid}")
        return ReconciliationOutcome(document=canonical, report=report)

    def _migrate_table(self, canonical: Dict[str, Any], table_name: str, report: ReconciliationReport,
                       declared_fields: Optional[Mapping[str, Sequence[str]]]) -> None:
        """Transform one legacy table-keyed collection into its canonical collection."""
        binding = self.mapping_table.get_table_binding(table_name)
        collection = self.mapping_table.collection_key(binding.entity_name) or table_name
        value = canonical[table_name]

        if isinstance(value, Mapping):
            records = [value]
        elif isinstance(value, list):
            records = value
        elif value is None:
            records = []
        else:
            report.add_issue(_structural_issue(
                f"Legacy collection '{table_name}' is neither an object nor an array: {type(value).__name__}",
                table_name,
            ))
            return

        migrated = []
        fields: Dict[str, None] = {}
        for index, record in enumerate(records):
            try:
                result = self.transformer.transform(record, table_name, binding.entity_name)
            except DataTransformationError as e:
                report.add_issue(_structural_issue(f"{table_name}[{index}]: {e}", table_name))
                continue
            fields.update((key, None) for key in record)
            migrated.append(result.record)
            report.add_fixes(result.fixes)
            report.records_transformed += 1

        if declared_fields is not None and table_name in declared_fields:
            source_fields = list(declared_fields[table_name])
        else:
            source_fields = list(fields)
        report.add_coverage(self.analyzer.analyze(table_name, source_fields, binding=binding))

        if collection == table_name:
            canonical[table_name] = migrated
        else:
            del canonical[table_name]
            existing = canonical.get(collection)
            if existing is not None and not isinstance(existing, list):
                report.add_issue(_structural_issue(
                    f"Collection '{collection}' is not an array; replaced by records migrated from '{table_name}'",
                    table_name,
                ))
                existing = None
            canonical[collection] = (existing or []) + migrated
        report.add_fixes([f"Transformed {table_name} data to NEPA {collection} format"])

        self.logger.debug(f"Migrated {len(migrated)} record(s) from '{table_name}' to '{collection}'")

    def _count_records(self, canonical: Dict[str, Any], report: ReconciliationReport) -> None:
        for collection in self.mapping_table.collection_keys:
            records = canonical.get(collection)
            if isinstance(records, list):
                report.record_counts[collection] = len(records)

    def _normalize_collections(self, canonical: Dict[str, Any], report: ReconciliationReport) -> None:
        """Second pass: null-to-default normalization over every canonical collection."""
        for key in list(canonical):
            entity_name = self.mapping_table.entity_for_collection(key)
            records = canonical[key]
            if entity_name is None or not isinstance(records, list):
                continue
            normalized = []
            for index, record in enumerate(records):
                location = f"{key}[{index}]"
                try:
                    result = self.transformer.normalize(record, entity_name, location)
                except DataTransformationError as e:
                    report.add_issue(_structural_issue(str(e), key))
                    normalized.append(record)
                    continue
                normalized.append(result.record)
                report.add_fixes(result.fixes)
            canonical[key] = normalized

    # ------------------------------------------------------------------
    # Crosswalk and OpenAPI
    # ------------------------------------------------------------------

    def reconcile_crosswalk(self, crosswalk: Mapping[str, Sequence[CrosswalkColumn]],
                            database_schema: Optional[Dict[str, Any]] = None,
                            source_name: str = "database crosswalk") -> ReconciliationReport:
        """
        Coverage of every canonical entity by the database crosswalk.

        Args:
            crosswalk: {table: crosswalk columns}
            database_schema: Parsed database.schema.json, compared when given
            source_name: Name used in the report
        """
        report = ReconciliationReport(source_name=source_name)
        for table_name, columns in crosswalk.items():
            report.add_coverage(self.analyzer.analyze_crosswalk_table(table_name, columns, database_schema))
        self.logger.info(f"Reconciled crosswalk {source_name}: {len(crosswalk)} table(s), "
                         f"{len(report.hard_errors)} hard error(s)")
        return report

    def suggest_crosswalk_mappings(self, crosswalk: Mapping[str, Sequence[CrosswalkColumn]]) -> Dict[str, List[str]]:
        """Rename suggestions for crosswalk columns that resolve to no canonical property."""
        suggestions = {}
        for table_name, columns in crosswalk.items():
            entity_name = self.mapping_table.get_table_binding(table_name).entity_name
            known = self.schema.property_names(entity_name) if self.schema is not None else ()
            lines = self.mapping_table.suggest_mappings(table_name, columns, known)
            if lines:
                suggestions[table_name] = lines
        return suggestions

    def reconcile_openapi(self, openapi_doc: Any, source_name: str = "openapi",
                          crosswalk: Optional[Mapping[str, Sequence[CrosswalkColumn]]] = None) -> ReconciliationReport:
        """
        Reconcile one OpenAPI document.

        Args:
            openapi_doc: Parsed OpenAPI document
            source_name: Name used in the report
            crosswalk: Database crosswalk; table paths are compared with it when given
        """
        report = ReconciliationReport(source_name=source_name)
        if not isinstance(openapi_doc, Mapping):
            report.add_issue(_structural_issue(
                f"Root of {source_name} is not an object: {type(openapi_doc).__name__}"))
            return report

        for issue in self.openapi.validate_structure(openapi_doc):
            report.add_issue(issue)

        if crosswalk is not None:
            for table_name, api_fields in self.openapi.extract_tables(openapi_doc).items():
                for issue in self.openapi.compare_with_crosswalk(table_name, api_fields, crosswalk.get(table_name)):
                    report.add_issue(issue)

        for result in self.openapi.analyze_definitions(openapi_doc):
            report.add_coverage(result)

        self.logger.info(f"Reconciled OpenAPI {source_name}: {len(report.coverage_results)} definition(s), "
                         f"valid={report.is_valid}")
        return report

    # ------------------------------------------------------------------
    # Schema files
    # ------------------------------------------------------------------

    def reconcile_schema(self, schema: Any, source_name: str = "schema") -> ReconciliationReport:
        """
        Check one JSON Schema file against its meta-schema.

        A valid schema also gets its property statistics (totals, required,
        enums and counts per type) in the report.
        """
        report = ReconciliationReport(source_name=source_name)
        for issue in check_schema_document(schema):
            report.add_issue(issue)

        if report.is_valid:
            report.schema_statistics = gather_schema_statistics(schema)
            self.logger.info(f"{source_name} is a valid JSON Schema "
                             f"({report.schema_statistics['total_properties']} properties)")
        else:
            self.logger.warning(f"{source_name} is not a valid JSON Schema")
        return report
