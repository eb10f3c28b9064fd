"""
Coverage & Compatibility Analyzer - read-only diagnostic pass.

Compares the fields of one source table (database crosswalk columns, CSV
headers, OpenAPI definition properties or the keys of legacy records) with the
canonical entity it is bound to, and reports:

    - found/total: non-ignored canonical properties satisfied by the source
    - hard errors: required canonical properties with no source counterpart
    - soft warnings: optional canonical properties with no source counterpart
    - soft warnings: source fields whose mapped name matches no canonical property

A canonical property is satisfied, in order, by a direct name match, by a
curated coverage override for the table, or by any source field that resolves
to it through the field mapping table. Fields on the ignore-list take no part
in any of this. The source data is never modified.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..mapping.canonical_schema import CanonicalSchema
from ..mapping.field_mapping_table import FieldMappingTable
from ..models import CoverageResult, CrosswalkColumn, DatabaseCoverage, TableBinding
from .validation_models import IssueCategory, ValidationIssue, ValidationSeverity


class CoverageAnalyzer:
    """
    Computes coverage of canonical entities by source tables.

    Usage:
        analyzer = CoverageAnalyzer(mapping_table, canonical_schema)
        result = analyzer.analyze("comment", ["id", "commenter_entity", "content_text"])
        if not result.is_valid:
            for error in result.errors:
                print(error)
    """

    def __init__(self, mapping_table: FieldMappingTable, schema: Optional[CanonicalSchema] = None):
        """
        Initialize the analyzer.

        Args:
            mapping_table: Field mapping table used for bindings, renames and the ignore-list
            schema: Canonical schema used to look up entity definitions when none is passed
        """
        self.logger = logging.getLogger(__name__)
        self.mapping_table = mapping_table
        self.schema = schema

    def analyze(self, source_table: str, source_fields: Iterable[str],
                entity_definition: Optional[Mapping[str, Any]] = None,
                binding: Optional[TableBinding] = None) -> CoverageResult:
        """
        Analyze coverage of a canonical entity by one source table.

        Args:
            source_table: Source table or definition name (drives field resolution)
            source_fields: Source field names (duplicates are ignored)
            entity_definition: Canonical entity definition; looked up in the schema when None
            binding: Entity binding; defaults to the table binding of source_table

        Returns:
            CoverageResult with found <= total guaranteed
        """
        binding = binding or self.mapping_table.get_table_binding(source_table)
        entity_name = binding.entity_name

        if entity_definition is None and self.schema is not None:
            entity_definition = self.schema.entity_definition(entity_name)

        if entity_definition is None:
            result = CoverageResult(table_name=source_table, entity_name=entity_name)
            result.add_issue(ValidationIssue(
                category=IssueCategory.UNMATCHED_PROPERTY,
                severity=ValidationSeverity.WARNING,
                message=f"Schema definition not found for: {entity_name} (table: {source_table})",
                table_name=source_table,
            ))
            self.logger.warning(f"No canonical definition for entity '{entity_name}' (table '{source_table}')")
            return result

        properties = entity_definition.get("properties") or {}
        required = set(entity_definition.get("required") or [])

        relevant_properties = [name for name in properties if not self.mapping_table.is_ignored(name)]
        fields = [name for name in dict.fromkeys(source_fields) if not self.mapping_table.is_ignored(name)]
        field_set = set(fields)
        mapped_fields = {name: self.mapping_table.resolve_field(source_table, name) for name in fields}
        mapped_targets = set(mapped_fields.values())
        overrides = self.mapping_table.coverage_overrides_for(source_table)

        covered = set()
        for prop in relevant_properties:
            if prop in field_set:
                covered.add(prop)
            elif any(o.canonical_field == prop and o.source_field in field_set for o in overrides):
                covered.add(prop)
            elif prop in mapped_targets:
                covered.add(prop)

        issues: List[ValidationIssue] = []
        missing_required: List[str] = []
        unmatched_properties: List[str] = []

        for prop in relevant_properties:
            if prop in covered:
                continue
            if prop in required and not self.mapping_table.can_ignore_required(source_table, prop):
                missing_required.append(prop)
                issues.append(ValidationIssue(
                    category=IssueCategory.MISSING_REQUIRED,
                    severity=ValidationSeverity.ERROR,
                    message=f"Required property '{prop}' missing in '{source_table}'",
                    table_name=source_table,
                    field_name=prop,
                ))
            else:
                unmatched_properties.append(prop)
                qualifier = "Required (ignorable)" if prop in required else "Optional"
                issues.append(ValidationIssue(
                    category=IssueCategory.UNMATCHED_PROPERTY,
                    severity=ValidationSeverity.WARNING,
                    message=f"{qualifier} property '{prop}' of '{entity_name}' has no counterpart in '{source_table}'",
                    table_name=source_table,
                    field_name=prop,
                ))

        unmatched_source_fields: List[str] = []
        for name in fields:
            mapped = mapped_fields[name]
            if mapped in properties or name in properties:
                continue
            if any(o.source_field == name and o.canonical_field in properties for o in overrides):
                continue
            unmatched_source_fields.append(name)
            issues.append(ValidationIssue(
                category=IssueCategory.UNMATCHED_SOURCE_FIELD,
                severity=ValidationSeverity.WARNING,
                message=(f"Unmatched source field '{source_table}.{name}' (mapped to '{mapped}') "
                         f"does not match any property in schema '{entity_name}'"),
                table_name=source_table,
                field_name=name,
                additional_context={"mapped_to": mapped},
            ))

        total = len(relevant_properties)
        found = len(covered)
        if found > total:
            # covered is drawn from relevant_properties, so this only fires on a regression
            self.logger.warning(f"Coverage over-count for '{source_table}': {found} > {total}, clamping")
            found = total

        result = CoverageResult(
            table_name=source_table,
            entity_name=entity_name,
            found=found,
            total=total,
            missing_required=missing_required,
            unmatched_properties=unmatched_properties,
            unmatched_source_fields=unmatched_source_fields,
            issues=issues,
        )

        self.logger.debug(f"Coverage {source_table} -> {entity_name}: {found}/{total}, "
                          f"{len(missing_required)} missing required, "
                          f"{len(unmatched_source_fields)} unmatched source fields")
        return result

    def analyze_all(self, tables: Mapping[str, Iterable[str]]) -> List[CoverageResult]:
        """Analyze every table of a {table: fields} mapping, in mapping order."""
        return [self.analyze(table, fields) for table, fields in tables.items()]

    def analyze_crosswalk_table(self, table_name: str, columns: Sequence[CrosswalkColumn],
                                database_schema: Optional[Dict[str, Any]] = None) -> CoverageResult:
        """
        Analyze one database crosswalk table, optionally also against database.schema.json.

        Args:
            table_name: Database table name
            columns: Crosswalk rows for the table
            database_schema: Parsed database.schema.json, or None to skip the database comparison
        """
        column_names = [column.column for column in columns]
        result = self.analyze(table_name, column_names)
        if database_schema is not None:
            self.analyze_database_alignment(table_name, column_names, database_schema, result)
        return result

    def analyze_database_alignment(self, table_name: str, column_names: Sequence[str],
                                   database_schema: Dict[str, Any],
                                   result: CoverageResult) -> Optional[DatabaseCoverage]:
        """
        Compare crosswalk columns with the table's Row definition in database.schema.json.

        Required database fields missing from the crosswalk are hard errors on
        the given result. Tables the database schema does not describe are skipped.

        Returns:
            DatabaseCoverage attached to the result, or None when the table is not described
        """
        row = self._database_row_definition(database_schema, table_name)
        if row is None:
            self.logger.debug(f"Database schema does not describe table '{table_name}'")
            return None

        row_properties = [name for name in (row.get("properties") or {}) if not self.mapping_table.is_ignored(name)]
        row_required = [name for name in row.get("required", []) if not self.mapping_table.is_ignored(name)]
        present = set(column_names)

        coverage = DatabaseCoverage(
            found=len([name for name in row_properties if name in present]),
            total=len(row_properties),
            missing_required=[name for name in row_required if name not in present],
            unmatched_database_fields=[name for name in row_properties if name not in present],
        )

        for name in coverage.missing_required:
            result.add_issue(ValidationIssue(
                category=IssueCategory.DATABASE_ALIGNMENT,
                severity=ValidationSeverity.ERROR,
                message=f"Required database field '{name}' missing in crosswalk for table '{table_name}'",
                table_name=table_name,
                field_name=name,
            ))

        result.database_coverage = coverage
        return coverage

    @staticmethod
    def _database_row_definition(database_schema: Dict[str, Any], table_name: str) -> Optional[Dict[str, Any]]:
        node: Any = database_schema
        for key in ("definitions", "Database", "properties", "public", "properties", "Tables", "properties", table_name):
            if not isinstance(node, dict) or key not in node:
                return None
            node = node[key]
        row = (node.get("properties") or {}).get("Row") if isinstance(node, dict) else None
        return row if isinstance(row, dict) else None
