"""
Schema Validator - the validating function over canonical documents.

Wraps the jsonschema library: the canonical schema is checked once, compiled
into a validator (draft taken from its $schema, Draft 7 when absent) and used
to collect every error of a document as SchemaErrorDetail records
(JSON pointer path, keyword, message, params).

Two policies are applied uniformly here and nowhere else:
    - additionalProperties: permissive by default (every
      "additionalProperties": false is relaxed on an in-memory copy of the
      schema); strict mode validates against the schema as written
    - known false positives: errors matching a (path substrings, keyword)
      rule from the mapping contract are removed from the error stream and
      counted as suppressed

check_schema_document and gather_schema_statistics serve the schema file
check: every schema is checked against its meta-schema and summarized.
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional

from jsonschema import Draft7Validator, FormatChecker
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for

from ..exceptions import SchemaLoadError
from ..interfaces import DocumentValidatorInterface
from ..models import FalsePositiveRule
from .validation_models import (
    IssueCategory, SchemaErrorDetail, SchemaValidationOutcome, ValidationIssue, ValidationSeverity,
)


STATISTIC_TYPES = {
    "object": "object_properties",
    "array": "array_properties",
    "string": "string_properties",
    "number": "number_properties",
    "integer": "number_properties",
    "boolean": "boolean_properties",
}


def relax_additional_properties(schema: Any) -> Any:
    """Return a copy of the schema with every 'additionalProperties: false' removed."""
    if isinstance(schema, dict):
        return {
            key: relax_additional_properties(value)
            for key, value in schema.items()
            if not (key == "additionalProperties" and value is False)
        }
    if isinstance(schema, list):
        return [relax_additional_properties(item) for item in schema]
    return schema


def _json_pointer(parts: Iterable[Any]) -> str:
    escaped = [str(part).replace("~", "~0").replace("/", "~1") for part in parts]
    return "".join(f"/{part}" for part in escaped)


class SchemaValidator(DocumentValidatorInterface):
    """
    Validates canonical documents against the canonical schema.

    Usage:
        validator = SchemaValidator(schema_dict, false_positive_rules=mapping_table.known_false_positives)
        outcome = validator.validate(document)
        if not outcome.valid:
            for error in outcome.errors:
                print(error)
    """

    def __init__(self, schema: Dict[str, Any], strict_additional_properties: bool = False,
                 false_positive_rules: Iterable[FalsePositiveRule] = ()):
        """
        Initialize the validator.

        Args:
            schema: Canonical JSON Schema (never modified)
            strict_additional_properties: Reject unknown properties where the schema says so
            false_positive_rules: Known false-positive error patterns to suppress

        Raises:
            SchemaLoadError: If the schema itself is not a valid JSON Schema
        """
        self.logger = logging.getLogger(__name__)
        self.strict_additional_properties = strict_additional_properties
        self.false_positive_rules = tuple(false_positive_rules)

        effective_schema = copy.deepcopy(schema) if strict_additional_properties else relax_additional_properties(schema)
        validator_cls = validator_for(effective_schema, default=Draft7Validator)
        try:
            validator_cls.check_schema(effective_schema)
        except SchemaError as e:
            raise SchemaLoadError(f"Canonical schema is not a valid JSON Schema: {e.message}")

        self._validator = validator_cls(effective_schema, format_checker=FormatChecker())
        mode = "strict" if strict_additional_properties else "permissive"
        self.logger.debug(f"Schema validator ready ({validator_cls.__name__}, {mode} additionalProperties)")

    def validate(self, document: Any) -> SchemaValidationOutcome:
        """
        Validate a document and return every relevant error.

        Args:
            document: Canonical document

        Returns:
            SchemaValidationOutcome; valid is True when no error survives false-positive filtering
        """
        relevant: List[SchemaErrorDetail] = []
        suppressed: List[SchemaErrorDetail] = []

        for error in self._validator.iter_errors(document):
            detail = SchemaErrorDetail(
                path=_json_pointer(error.absolute_path),
                keyword=str(error.validator),
                message=error.message,
                params=self._error_params(error),
            )
            if self._is_known_false_positive(detail):
                suppressed.append(detail)
            else:
                relevant.append(detail)

        if suppressed:
            self.logger.info(f"Suppressed {len(suppressed)} known false-positive schema error(s)")
        if relevant:
            self.logger.debug(f"Schema validation found {len(relevant)} error(s)")

        return SchemaValidationOutcome(valid=not relevant, errors=relevant, suppressed=suppressed)

    def _is_known_false_positive(self, detail: SchemaErrorDetail) -> bool:
        return any(rule.matches(detail.path, detail.keyword) for rule in self.false_positive_rules)

    @staticmethod
    def _error_params(error) -> Dict[str, Any]:
        """Keyword specific details, in the shape reports expect."""
        keyword = error.validator
        instance = error.instance
        if keyword == "required" and isinstance(instance, dict):
            missing = [name for name in error.validator_value if name not in instance]
            named = [name for name in missing if error.message.startswith(repr(name))]
            chosen: Optional[str] = named[0] if named else (missing[0] if missing else None)
            return {"missing_property": chosen}
        if keyword == "additionalProperties" and isinstance(instance, dict):
            declared = set((error.schema or {}).get("properties", {}))
            return {"additional_properties": [name for name in instance if name not in declared]}
        if keyword == "enum":
            return {"allowed_values": list(error.validator_value)}
        if keyword == "type":
            return {"expected_type": error.validator_value}
        if isinstance(error.validator_value, (str, int, float, bool)):
            return {"limit": error.validator_value}
        return {}


def check_schema_document(schema: Any) -> List[ValidationIssue]:
    """
    Check a schema document against the meta-schema of its draft.

    Args:
        schema: Parsed schema file

    Returns:
        ERROR issues; empty when the schema is valid
    """
    if not isinstance(schema, dict):
        return [ValidationIssue(
            category=IssueCategory.META_SCHEMA,
            severity=ValidationSeverity.ERROR,
            message=f"Schema root is not an object: {type(schema).__name__}",
        )]

    validator_cls = validator_for(schema, default=Draft7Validator)
    try:
        validator_cls.check_schema(schema)
    except SchemaError as e:
        location = _json_pointer(e.absolute_path) or "/"
        return [ValidationIssue(
            category=IssueCategory.META_SCHEMA,
            severity=ValidationSeverity.ERROR,
            message=f"Invalid schema structure at {location}: {e.message}",
            field_name=str(e.absolute_path[-1]) if e.absolute_path else None,
        )]
    return []


def _statistic_type(definition: Dict[str, Any]) -> Optional[str]:
    raw_type = definition.get("type")
    if raw_type is None:
        variants = definition.get("anyOf") or definition.get("oneOf") or []
        raw_type = variants[0].get("type") if variants and isinstance(variants[0], dict) else None
    if isinstance(raw_type, list):
        raw_type = next((name for name in raw_type if name != "null"), None)
    return raw_type


def gather_schema_statistics(schema: Dict[str, Any]) -> Dict[str, int]:
    """
    Count the properties a schema declares, by kind.

    Root properties and every definition (definitions or $defs) are walked;
    nested object properties and array item properties are counted too.
    """
    stats = {
        "definitions": 0,
        "total_properties": 0,
        "required_properties": 0,
        "enum_properties": 0,
        "object_properties": 0,
        "array_properties": 0,
        "string_properties": 0,
        "number_properties": 0,
        "boolean_properties": 0,
    }

    def count(properties: Any, required: Iterable[str]) -> None:
        if not isinstance(properties, dict):
            return
        required = set(required or ())
        for name, definition in properties.items():
            if not isinstance(definition, dict):
                continue
            stats["total_properties"] += 1
            if name in required:
                stats["required_properties"] += 1
            if "enum" in definition:
                stats["enum_properties"] += 1
            type_name = _statistic_type(definition)
            if type_name in STATISTIC_TYPES:
                stats[STATISTIC_TYPES[type_name]] += 1
            if type_name == "object":
                count(definition.get("properties"), definition.get("required", ()))
            elif type_name == "array" and isinstance(definition.get("items"), dict):
                items = definition["items"]
                count(items.get("properties"), items.get("required", ()))

    count(schema.get("properties"), schema.get("required", ()))
    for key in ("definitions", "$defs"):
        definitions = schema.get(key)
        if not isinstance(definitions, dict):
            continue
        for definition in definitions.values():
            if isinstance(definition, dict):
                stats["definitions"] += 1
                count(definition.get("properties"), definition.get("required", ()))
    return stats
