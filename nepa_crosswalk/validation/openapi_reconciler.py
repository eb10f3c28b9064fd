"""
OpenAPI Reconciler - aligns PostgREST-style OpenAPI documents with the
database crosswalk and the canonical NEPA schema.

Three checks are offered:
    - validate_structure: top-level OpenAPI 3 shape
    - extract_tables + compare_with_crosswalk: fields exposed per table path
      against the crosswalk columns of the same table
    - analyze_definitions: component schemas (or Swagger 2 definitions)
      against their canonical entity, through the coverage analyzer and the
      OpenAPI bindings of the field mapping table
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..mapping.field_mapping_table import FieldMappingTable
from ..models import CoverageResult, CrosswalkColumn
from .coverage_analyzer import CoverageAnalyzer
from .validation_models import IssueCategory, ValidationIssue, ValidationSeverity


REQUIRED_OPENAPI_FIELDS = ("openapi", "info", "paths")
SWAGGER2_FIELDS = ("host", "basePath", "schemes", "consumes", "produces")
HTTP_METHODS = ("get", "post", "patch", "put", "delete")

# Query parameters every PostgREST endpoint exposes; they are not table columns.
POSTGREST_PARAMETERS = frozenset({
    "select", "order", "limit", "offset", "on_conflict", "columns",
    "Range", "Range-Unit", "Prefer",
})


def _structure_issue(severity: ValidationSeverity, message: str, field_name: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        category=IssueCategory.OPENAPI_STRUCTURE,
        severity=severity,
        message=message,
        field_name=field_name,
    )


class OpenApiReconciler:
    """
    Reconciles OpenAPI documents against the crosswalk and the canonical schema.

    Usage:
        reconciler = OpenApiReconciler(mapping_table, analyzer)
        issues = reconciler.validate_structure(openapi_doc)
        tables = reconciler.extract_tables(openapi_doc)
        results = reconciler.analyze_definitions(openapi_doc)
    """

    def __init__(self, mapping_table: FieldMappingTable, analyzer: CoverageAnalyzer):
        self.logger = logging.getLogger(__name__)
        self.mapping_table = mapping_table
        self.analyzer = analyzer

    def validate_structure(self, openapi_doc: Mapping[str, Any]) -> List[ValidationIssue]:
        """
        Check the top-level shape of an OpenAPI document.

        Missing 'openapi', 'info' or 'paths' is an error. A version other than
        3.x and any Swagger 2 field ('host', 'basePath', ...) are warnings.
        """
        issues = []
        for name in REQUIRED_OPENAPI_FIELDS:
            if not openapi_doc.get(name):
                issues.append(_structure_issue(ValidationSeverity.ERROR,
                                               f"Missing required OpenAPI field: {name}", name))

        version = openapi_doc.get("openapi")
        if version and not str(version).startswith("3."):
            issues.append(_structure_issue(ValidationSeverity.WARNING,
                                           f"OpenAPI version {version} - consider upgrading to 3.x", "openapi"))

        for name in SWAGGER2_FIELDS:
            if openapi_doc.get(name):
                issues.append(_structure_issue(
                    ValidationSeverity.WARNING,
                    f"Deprecated OpenAPI 2.0 field found: {name} - should be updated for OpenAPI 3.x",
                    name,
                ))
        return issues

    def extract_tables(self, openapi_doc: Mapping[str, Any]) -> Dict[str, List[str]]:
        """
        Collect the fields each table path exposes.

        The root path and '/rpc/...' functions are skipped. Fields come from
        '#/components/parameters/rowFilter.<table>.<field>' references, inline
        parameter names and the item properties of 200 responses.

        Returns:
            {table name: [field names]} in first-seen order
        """
        tables: Dict[str, Dict[str, None]] = {}
        paths = openapi_doc.get("paths") or {}
        if not isinstance(paths, Mapping):
            return {}

        for path, methods in paths.items():
            if path == "/" or path.startswith("/rpc/"):
                continue
            table_name = path.strip("/")
            fields = tables.setdefault(table_name, {})
            if not isinstance(methods, Mapping):
                continue

            for method, operation in methods.items():
                if method not in HTTP_METHODS or not isinstance(operation, Mapping):
                    continue
                for parameter in operation.get("parameters") or []:
                    name = self._parameter_field(table_name, parameter)
                    if name:
                        fields[name] = None
                for name in self._response_fields(operation):
                    fields[name] = None

        return {table: list(fields) for table, fields in tables.items()}

    @staticmethod
    def _parameter_field(table_name: str, parameter: Any) -> Optional[str]:
        if not isinstance(parameter, Mapping):
            return None
        ref = parameter.get("$ref")
        if ref:
            marker = f"rowFilter.{table_name}."
            if marker in ref:
                return ref.split(".")[-1]
            return None
        return parameter.get("name")

    @staticmethod
    def _response_fields(operation: Mapping[str, Any]) -> List[str]:
        response = (operation.get("responses") or {}).get("200") or (operation.get("responses") or {}).get(200)
        if not isinstance(response, Mapping):
            return []
        schemas = [response.get("schema")]
        for media in (response.get("content") or {}).values():
            if isinstance(media, Mapping):
                schemas.append(media.get("schema"))

        fields = []
        for schema in schemas:
            if not isinstance(schema, Mapping):
                continue
            items = schema.get("items")
            if isinstance(items, Mapping) and isinstance(items.get("properties"), Mapping):
                fields.extend(items["properties"])
        return fields

    def compare_with_crosswalk(self, table_name: str, api_fields: Sequence[str],
                               crosswalk_columns: Optional[Sequence[CrosswalkColumn]]) -> List[ValidationIssue]:
        """
        Compare the fields an API table exposes with its crosswalk columns.

        Args:
            table_name: Table name taken from the API path
            api_fields: Fields found by extract_tables
            crosswalk_columns: Crosswalk rows of the table, or None when the crosswalk lacks it

        Returns:
            Soft warnings for every divergence (ignored fields take no part)
        """
        if not crosswalk_columns:
            return [ValidationIssue(
                category=IssueCategory.CROSSWALK_MISMATCH,
                severity=ValidationSeverity.WARNING,
                message=f"Table '{table_name}' found in OpenAPI but not in database crosswalk",
                table_name=table_name,
            )]

        issues = []
        api_set = set(api_fields)
        column_names = [column.column for column in crosswalk_columns]
        column_set = set(column_names)

        relevant_columns = [name for name in column_names if not self.mapping_table.is_ignored(name)]
        for name in relevant_columns:
            if name not in api_set:
                issues.append(ValidationIssue(
                    category=IssueCategory.CROSSWALK_MISMATCH,
                    severity=ValidationSeverity.WARNING,
                    message=f"Database column '{name}' not found in OpenAPI parameters",
                    table_name=table_name,
                    field_name=name,
                ))

        for name in api_fields:
            if name in column_set or name in POSTGREST_PARAMETERS or self.mapping_table.is_ignored(name):
                continue
            issues.append(ValidationIssue(
                category=IssueCategory.CROSSWALK_MISMATCH,
                severity=ValidationSeverity.WARNING,
                message=f"OpenAPI parameter '{name}' not found in database schema",
                table_name=table_name,
                field_name=name,
            ))

        found = len([name for name in relevant_columns if name in api_set])
        self.logger.debug(f"Table {table_name}: {found}/{len(relevant_columns)} crosswalk columns exposed by the API")
        return issues

    @staticmethod
    def definitions_of(openapi_doc: Mapping[str, Any]) -> Mapping[str, Any]:
        """Component schemas of an OpenAPI 3 document, or Swagger 2 definitions."""
        components = openapi_doc.get("components")
        if isinstance(components, Mapping) and isinstance(components.get("schemas"), Mapping):
            return components["schemas"]
        definitions = openapi_doc.get("definitions")
        return definitions if isinstance(definitions, Mapping) else {}

    def analyze_definitions(self, openapi_doc: Mapping[str, Any]) -> List[CoverageResult]:
        """Coverage of each bound canonical entity by the OpenAPI definition of the same table."""
        results = []
        for name, definition in self.definitions_of(openapi_doc).items():
            properties = definition.get("properties") if isinstance(definition, Mapping) else None
            binding = self.mapping_table.get_openapi_binding(name)
            results.append(self.analyzer.analyze(name, list(properties or {}), binding=binding))
        return results
