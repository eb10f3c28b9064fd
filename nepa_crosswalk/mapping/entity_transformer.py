"""
Entity Transformer - converts one source record into a canonical record.

For each source field the transformer:

    1. resolves the canonical property name through the field mapping table
    2. rewrites enumerated values (status, document type, engagement type, event status)
    3. replaces null with a type-appropriate default when the canonical type is known
    4. converts numeric identifiers (*_id) to strings
    5. walks nested objects and arrays alongside their schema fragment
    6. applies structural repairs (container_inventory arrays, gis_data defaults,
       plain strings where the schema expects an object)

Every automatic correction is appended to the fix log returned with the
record (TransformResult), so callers can audit what was repaired. Missing or
malformed values never raise; only a record that is not a mapping does.
The source record is never modified.
"""

import copy
import math
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..exceptions import DataTransformationError
from ..models import TransformResult
from .canonical_schema import CanonicalSchema, NodeKind, PropertySpec, UNTYPED, node_kind_of
from .field_mapping_table import FieldMappingTable


CONTAINER_INVENTORY = "container_inventory"


def _timestamp_id(prefix: str) -> str:
    """Timestamp-derived identifier, e.g. 'gis-1718049600000'."""
    return f"{prefix}{int(time.time() * 1000)}"


def _is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _numeric_to_string(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


class EntityTransformer:
    """
    Contract-driven transformer from source records to canonical records.

    Usage:
        transformer = EntityTransformer(mapping_table, canonical_schema)
        result = transformer.transform({"id": 42, "title": "Dam"}, "project")
        result.record   # {'project_id': '42', 'project_title': 'Dam'}
        result.fixes    # ["Converted numeric ID project.id (mapped to project_id) to string: 42 -> 42"]
    """

    def __init__(self, mapping_table: FieldMappingTable, schema: Optional[CanonicalSchema] = None,
                 id_factory: Optional[Callable[[str], str]] = None):
        """
        Initialize the transformer.

        Args:
            mapping_table: Field mapping table (renames, enum translations, repairs)
            schema: Canonical schema; without it no property types are known and
                    null-to-default substitution is skipped
            id_factory: Builds synthesized identifiers from a prefix (timestamp based by default)
        """
        self.logger = logging.getLogger(__name__)
        self.mapping_table = mapping_table
        self.schema = schema
        self.id_factory = id_factory or _timestamp_id

        self._transformation_stats = {
            'records_transformed': 0,
            'records_normalized': 0,
            'fixes_applied': 0,
            'incomplete_records': 0,
        }

    def get_transformation_stats(self) -> Dict[str, int]:
        """Counters accumulated across calls."""
        return dict(self._transformation_stats)

    def _entity_spec(self, entity_name: str) -> PropertySpec:
        if self.schema is None:
            return PropertySpec(kind=NodeKind.OBJECT, type_name="object")
        return self.schema.entity_spec(entity_name)

    def transform(self, source_record: Mapping[str, Any], source_table: str,
                  target_entity: Optional[str] = None) -> TransformResult:
        """
        Transform one source record into a canonical record.

        Args:
            source_record: Source field -> value mapping (not modified)
            source_table: Originating table or definition name
            target_entity: Canonical entity; defaults to the table's binding

        Returns:
            TransformResult with the new record and the ordered fix log

        Raises:
            DataTransformationError: If source_record is not a mapping
        """
        if not isinstance(source_record, Mapping):
            raise DataTransformationError(
                f"Record from '{source_table}' is not an object: {type(source_record).__name__}",
                source_value=source_record,
                target_type="object",
                source_name=source_table,
            )

        binding = self.mapping_table.get_table_binding(source_table)
        entity_name = target_entity or binding.entity_name
        if entity_name == binding.entity_name:
            id_field = binding.id_field
        else:
            id_field = self.mapping_table.id_field_for_entity(entity_name)
        spec = self._entity_spec(entity_name)

        record: Dict[str, Any] = {}
        origins: Dict[str, str] = {}
        fixes: List[str] = []

        for key, value in source_record.items():
            canonical = self.mapping_table.resolve_field(source_table, key)
            label = f"{source_table}.{key}"

            translation = self.mapping_table.enum_translator_for(entity_name, canonical)
            if translation is not None:
                translated = translation.translate(value)
                if translated != value:
                    self.logger.debug(f"Translated {label} ({canonical}): {value!r} -> {translated!r}")
                value = translated

            value = self._apply_field(value, spec.child(canonical), label, canonical, fixes)

            if canonical in record:
                fixes.append(f"Overwrote {canonical} from {source_table}.{origins[canonical]} "
                             f"with value of {label}")
            record[canonical] = value
            origins[canonical] = key

        self._apply_entity_repairs(record, entity_name, fixes)
        self._ensure_identifier(record, entity_name, id_field, fixes)

        incomplete = []
        if self.schema is not None:
            for prop in self.schema.required_properties(entity_name):
                if prop not in record:
                    incomplete.append(prop)
                    fixes.append(f"Record for {entity_name} is incomplete: required property '{prop}' is missing")

        self._transformation_stats['records_transformed'] += 1
        self._transformation_stats['fixes_applied'] += len(fixes)
        if incomplete:
            self._transformation_stats['incomplete_records'] += 1

        return TransformResult(record=record, fixes=fixes, incomplete_properties=incomplete)

    def normalize(self, record: Mapping[str, Any], entity_name: str,
                  location: Optional[str] = None) -> TransformResult:
        """
        Apply only null-to-default normalization to an already canonical record.

        Args:
            record: Canonical record (not modified)
            entity_name: Canonical entity of the record
            location: Label used in fix messages (e.g. 'projects[0]')

        Raises:
            DataTransformationError: If record is not a mapping
        """
        if not isinstance(record, Mapping):
            raise DataTransformationError(
                f"Record at '{location or entity_name}' is not an object: {type(record).__name__}",
                source_value=record,
                target_type="object",
                source_name=entity_name,
            )

        fixes: List[str] = []
        normalized = self._walk_object(record, self._entity_spec(entity_name), location or entity_name,
                                       fixes, defaults_only=True)
        self._transformation_stats['records_normalized'] += 1
        self._transformation_stats['fixes_applied'] += len(fixes)
        return TransformResult(record=normalized, fixes=fixes)

    def coerce_tabular_row(self, row: Mapping[str, Any], source_table: str,
                           fixes: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Convert the string cells of a CSV row to JSON values.

        Null tokens become None, boolean tokens become booleans, configured
        numeric columns are parsed, and datetime strings in date fields are
        cut to their date part. Column names are left unchanged.

        A numeric cell that is not a finite number, or a fraction in an
        integer column, keeps its text; schema validation then reports it.
        When a fixes list is given, each kept cell is noted there.
        """
        conversion = self.mapping_table.tabular_conversion
        null_tokens = set(conversion.get("null_tokens", ("", "null")))
        true_tokens = set(conversion.get("true_tokens", ("true",)))
        false_tokens = set(conversion.get("false_tokens", ("false",)))
        integer_columns = set(conversion.get("integer_columns", ()))
        number_columns = set(conversion.get("number_columns", ()))
        date_fields = set(conversion.get("date_fields", ()))

        converted: Dict[str, Any] = {}
        for key, value in row.items():
            if not isinstance(value, str):
                converted[key] = value
                continue
            text = value.strip()
            if text in null_tokens:
                converted[key] = None
            elif text in true_tokens:
                converted[key] = True
            elif text in false_tokens:
                converted[key] = False
            elif key in integer_columns or key in number_columns:
                as_integer = key in integer_columns
                number = self._parse_number(text, as_integer)
                if number is None:
                    expected = "integer" if as_integer else "number"
                    self.logger.warning(f"Kept value '{text}' of {source_table}.{key} as text (expected {expected})")
                    if fixes is not None:
                        fixes.append(f"Kept unconvertible value '{text}' for {source_table}.{key} "
                                     f"as text (expected {expected})")
                    converted[key] = value
                else:
                    converted[key] = number
            elif " " in text and self.mapping_table.resolve_field(source_table, key) in date_fields:
                converted[key] = text.split(" ")[0]
            else:
                converted[key] = value
        return converted

    @staticmethod
    def _parse_number(text: str, as_integer: bool) -> Any:
        """Parse a numeric cell; None when it is not finite or not integral for an integer column."""
        try:
            number = float(text)
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        if as_integer:
            return int(number) if number.is_integer() else None
        return number

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------

    def _apply_field(self, value: Any, spec: PropertySpec, label: str, canonical: str,
                     fixes: List[str], defaults_only: bool = False) -> Any:
        """Normalize one field value against its schema fragment."""
        if not defaults_only and canonical == CONTAINER_INVENTORY and isinstance(value, list):
            if value:
                fixes.append(f"Fixed container_inventory structure to object for {label} "
                             f"(kept first of {len(value)} array elements)")
                value = value[0]
            else:
                fixes.append(f"Set empty container_inventory to object for {label}")
                value = {}

        if value is None:
            if spec.has_known_type and not spec.nullable:
                default = spec.default_value()
                fixes.append(f"Replaced null with default {default!r} for {label} "
                             f"(mapped to {canonical}, expected {spec.type_name})")
                return default
            return None

        if not defaults_only:
            if canonical.endswith("_id") and _is_numeric(value):
                converted = _numeric_to_string(value)
                fixes.append(f"Converted numeric ID {label} (mapped to {canonical}) to string: "
                             f"{value} -> {converted}")
                return converted

            wrap_key = self.mapping_table.object_wrapping_key(canonical)
            if wrap_key and isinstance(value, str) and spec.type_name == "object":
                fixes.append(f"Wrapped string value of {label} (mapped to {canonical}) into object key '{wrap_key}'")
                return {wrap_key: value}

        kind = node_kind_of(value)
        if kind == NodeKind.OBJECT:
            return self._walk_object(value, spec if spec.kind == NodeKind.OBJECT else UNTYPED, label,
                                     fixes, defaults_only)
        if kind == NodeKind.ARRAY:
            return self._walk_array(value, spec, label, fixes, defaults_only)
        return value

    def _walk_object(self, value: Mapping[str, Any], spec: PropertySpec, label: str,
                     fixes: List[str], defaults_only: bool) -> Dict[str, Any]:
        return {
            key: self._apply_field(child, spec.child(key), f"{label}.{key}", key, fixes, defaults_only)
            for key, child in value.items()
        }

    def _walk_array(self, value: List[Any], spec: PropertySpec, label: str,
                    fixes: List[str], defaults_only: bool) -> List[Any]:
        item_spec = spec.items if spec.kind == NodeKind.ARRAY else None
        if item_spec is None or item_spec.kind != NodeKind.OBJECT:
            return copy.deepcopy(value)
        return [
            self._walk_object(item, item_spec, f"{label}[{index}]", fixes, defaults_only)
            if isinstance(item, Mapping) else copy.deepcopy(item)
            for index, item in enumerate(value)
        ]

    # ------------------------------------------------------------------
    # Entity level repairs
    # ------------------------------------------------------------------

    def _apply_entity_repairs(self, record: Dict[str, Any], entity_name: str, fixes: List[str]) -> None:
        """Synthesize configured defaults (gis_id, data_type, coordinate_system on gis_data)."""
        for key, default in self.mapping_table.structural_repairs_for(entity_name).items():
            if key.endswith("_prefix"):
                field_name = key[:-len("_prefix")]
                if _is_missing(record.get(field_name)):
                    record[field_name] = self.id_factory(default)
                    fixes.append(f"Added missing required {field_name} for {entity_name}: '{record[field_name]}'")
            elif _is_missing(record.get(key)):
                record[key] = default
                fixes.append(f"Added missing required {key} for {entity_name}: '{default}'")

    def _ensure_identifier(self, record: Dict[str, Any], entity_name: str, id_field: str,
                           fixes: List[str]) -> None:
        """Guarantee the identifier property is present and a string."""
        value = record.get(id_field)
        if value is None:
            record[id_field] = ""
            fixes.append(f"Added missing ID field '{id_field}' with default '' for {entity_name}")
        elif not isinstance(value, str):
            converted = _numeric_to_string(value) if _is_numeric(value) else str(value)
            record[id_field] = converted
            fixes.append(f"Converted ID field '{id_field}' of {entity_name} to string: {value!r} -> '{converted}'")
