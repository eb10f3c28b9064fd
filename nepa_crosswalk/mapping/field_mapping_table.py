"""
Field Mapping Table - static lookup data between legacy sources and the NEPA schema.

The mapping table is loaded once per run from the field mapping contract
(config/field_mapping_contract.json, or an override path) and is read-only
afterwards: every map is exposed through MappingProxyType, tuples or frozensets.

Responsibilities:
    - Resolve (source table, source field) -> canonical field
      (table-specific rename, then global rename, then identity; 'id' always
      resolves to the table's canonical identifier field)
    - Bind a source table or OpenAPI definition to its canonical entity and id field
    - Decide ignore-list membership for metadata/system fields
    - Hold the curated coverage overrides, ignorable required properties,
      enum translation tables, structural repair defaults, CSV file bindings
      and the known false-positive schema error patterns
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..exceptions import MappingTableError
from ..models import TableBinding, CoverageOverride, CrosswalkColumn, FalsePositiveRule
from .value_translators import EnumTranslation


DEFAULT_CONTRACT_PATH = Path(__file__).resolve().parent.parent / "config" / "field_mapping_contract.json"

REQUIRED_SECTIONS = (
    "table_bindings",
    "collection_keys",
    "field_renames",
    "global_renames",
    "ignore_rules",
    "enum_translations",
)


def _freeze(value: Any) -> Any:
    """Recursively convert dicts to MappingProxyType and lists to tuples."""
    if isinstance(value, dict):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    return value


class FieldMappingTable:
    """
    Read-only field mapping table built from a mapping contract dictionary.

    Usage:
        table = FieldMappingTable.from_file()  # packaged contract
        table.resolve_field("project", "title")          # 'project_title'
        table.get_table_binding("comment").entity_name   # 'public_comment'
        table.is_ignored("created_at")                    # True
    """

    def __init__(self, contract: Dict[str, Any], source_name: Optional[str] = None):
        """
        Initialize the mapping table from a contract dictionary.

        Args:
            contract: Parsed field mapping contract
            source_name: Where the contract came from (for error messages)

        Raises:
            MappingTableError: If the contract is missing sections or is inconsistent
        """
        self.logger = logging.getLogger(__name__)
        self.source_name = source_name or "<in-memory>"

        self._validate_contract(contract)

        self._table_bindings = self._build_bindings(contract["table_bindings"])
        self._openapi_bindings = self._build_bindings(contract.get("openapi_bindings") or contract["table_bindings"])
        self._collection_keys = _freeze(contract["collection_keys"])
        self._entities_by_collection = MappingProxyType(
            {collection: entity for entity, collection in contract["collection_keys"].items()}
        )
        self._field_renames = _freeze(contract["field_renames"])
        self._global_renames = _freeze(contract["global_renames"])

        overrides = [
            CoverageOverride(item["table"], item["source_field"], item["canonical_field"])
            for item in contract.get("coverage_overrides", [])
        ]
        self._coverage_overrides = tuple(overrides)

        self._ignorable_required = MappingProxyType({
            table: frozenset(fields) for table, fields in contract.get("ignorable_required", {}).items()
        })

        rules = contract["ignore_rules"]
        self._allow_list = frozenset(rules.get("allow_list", []))
        self._explicit_ignored = frozenset(rules.get("explicit_fields", []))
        self._ignored_prefixes = tuple(rules.get("prefixes", []))
        self._ignored_suffixes = tuple(rules.get("suffixes", []))
        self._parent_prefix = rules.get("parent_identifier_prefix", "parent_")
        self._parent_suffix = rules.get("parent_identifier_suffix", "_id")

        self._translations = MappingProxyType({
            name: EnumTranslation(name=name, values=spec.get("values", {}), fallback=spec.get("fallback", "passthrough"),
                                 ignore_case=bool(spec.get("ignore_case", False)))
            for name, spec in contract["enum_translations"].items()
        })
        self._enum_fields = tuple(
            (item["field"], item["translator"], frozenset(item.get("entities", [])))
            for item in contract.get("enum_fields", [])
        )

        self._structural_repairs = _freeze(contract.get("structural_repairs", {}))
        self._object_wrapping = _freeze(contract.get("object_wrapping", {}))
        self._required_collections = tuple(contract.get("required_collections", []))
        self._tabular_files = _freeze(contract.get("tabular_files", {}))
        self._tabular_conversion = _freeze(contract.get("tabular_conversion", {}))
        self._false_positives = tuple(
            FalsePositiveRule(tuple(item["path_contains"]), item["keyword"], item.get("reason", ""))
            for item in contract.get("known_false_positives", [])
        )

        self.logger.debug(f"Loaded field mapping table from {self.source_name}: "
                          f"{len(self._table_bindings)} table bindings, "
                          f"{len(self._coverage_overrides)} coverage overrides")

    @classmethod
    def from_file(cls, contract_path: Optional[Union[str, Path]] = None) -> 'FieldMappingTable':
        """
        Load a mapping table from a JSON contract file.

        Args:
            contract_path: Path to the contract. If None, uses the packaged contract.
        """
        path = Path(contract_path) if contract_path else DEFAULT_CONTRACT_PATH
        if not path.exists():
            raise MappingTableError(f"Field mapping contract not found: {path}", str(path))
        try:
            with open(path, 'r', encoding='utf-8') as file:
                contract = json.load(file)
        except json.JSONDecodeError as e:
            raise MappingTableError(f"Failed to parse field mapping contract {path}: {e}", str(path))
        except OSError as e:
            raise MappingTableError(f"Failed to read field mapping contract {path}: {e}", str(path))
        return cls(contract, source_name=str(path))

    def _validate_contract(self, contract: Dict[str, Any]) -> None:
        """Collect every structural problem in the contract and raise once."""
        if not isinstance(contract, dict):
            raise MappingTableError("Field mapping contract must be a JSON object", self.source_name)

        errors: List[str] = []
        for section in REQUIRED_SECTIONS:
            if section not in contract:
                errors.append(f"missing required section '{section}'")
        if errors:
            raise MappingTableError(
                f"Invalid field mapping contract {self.source_name}: {'; '.join(errors)}", self.source_name
            )

        bindings = contract["table_bindings"]
        collections = contract["collection_keys"]
        for table, binding in bindings.items():
            if "entity" not in binding or "id_field" not in binding:
                errors.append(f"table binding '{table}' needs 'entity' and 'id_field'")
            elif binding["entity"] not in collections:
                errors.append(f"entity '{binding['entity']}' of table '{table}' has no collection key")

        for item in contract.get("coverage_overrides", []):
            if item.get("table") not in bindings:
                errors.append(f"coverage override references unbound table '{item.get('table')}'")

        translations = contract["enum_translations"]
        for item in contract.get("enum_fields", []):
            if item.get("translator") not in translations:
                errors.append(f"enum field '{item.get('field')}' uses unknown translator '{item.get('translator')}'")

        for filename, table in contract.get("tabular_files", {}).items():
            if table not in bindings:
                errors.append(f"tabular file '{filename}' is bound to unknown table '{table}'")

        if errors:
            raise MappingTableError(
                f"Invalid field mapping contract {self.source_name}: {'; '.join(errors)}", self.source_name
            )

    @staticmethod
    def _build_bindings(raw: Dict[str, Dict[str, str]]) -> Mapping[str, TableBinding]:
        return MappingProxyType({
            table: TableBinding(table_name=table, entity_name=spec["entity"], id_field=spec["id_field"])
            for table, spec in raw.items()
        })

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    @property
    def table_names(self) -> Tuple[str, ...]:
        """Bound source table names, in contract order."""
        return tuple(self._table_bindings.keys())

    def is_bound_table(self, table_name: str) -> bool:
        return table_name in self._table_bindings

    def get_table_binding(self, table_name: str) -> TableBinding:
        """
        Get the canonical entity binding for a source table.

        Unknown tables bind to an entity of the same name with '<table>_id' as identifier.
        """
        binding = self._table_bindings.get(table_name)
        if binding is not None:
            return binding
        return TableBinding(table_name=table_name, entity_name=table_name, id_field=f"{table_name}_id")

    def get_openapi_binding(self, definition_name: str) -> TableBinding:
        """Get the canonical entity binding for an OpenAPI definition."""
        binding = self._openapi_bindings.get(definition_name)
        if binding is not None:
            return binding
        return TableBinding(table_name=definition_name, entity_name=definition_name, id_field=f"{definition_name}_id")

    def id_field_for_entity(self, entity_name: str) -> str:
        """Canonical identifier property of an entity, from the first table bound to it."""
        for binding in self._table_bindings.values():
            if binding.entity_name == entity_name:
                return binding.id_field
        return f"{entity_name}_id"

    def collection_key(self, entity_name: str) -> Optional[str]:
        """Top-level canonical array key for an entity (None when unknown)."""
        return self._collection_keys.get(entity_name)

    def entity_for_collection(self, collection_key: str) -> Optional[str]:
        """Entity stored under a top-level canonical array key (None when unknown)."""
        return self._entities_by_collection.get(collection_key)

    @property
    def collection_keys(self) -> Tuple[str, ...]:
        return tuple(self._collection_keys.values())

    # ------------------------------------------------------------------
    # Field resolution
    # ------------------------------------------------------------------

    def resolve_field(self, table_name: str, field_name: str) -> str:
        """
        Resolve a source field to its canonical property name.

        Resolution order: 'id' special case, table-specific rename map,
        global rename map, identity.
        """
        if field_name == "id":
            return self.get_table_binding(table_name).id_field

        table_renames = self._field_renames.get(table_name)
        if table_renames is not None and field_name in table_renames:
            return table_renames[field_name]

        return self._global_renames.get(field_name, field_name)

    def is_ignored(self, field_name: str) -> bool:
        """
        Check whether a field is system/metadata and invisible to reconciliation.

        The parentage allow-list is checked before any other rule.
        """
        if field_name in self._allow_list:
            return False
        if field_name in self._explicit_ignored:
            return True
        if any(field_name.startswith(prefix) for prefix in self._ignored_prefixes):
            return True
        if any(field_name.endswith(suffix) for suffix in self._ignored_suffixes):
            return True
        if field_name.startswith(self._parent_prefix) and field_name.endswith(self._parent_suffix):
            return True
        return False

    def can_ignore_required(self, table_name: str, canonical_field: str) -> bool:
        """True when a required canonical property may legitimately be absent for this table."""
        return canonical_field in self._ignorable_required.get(table_name, frozenset())

    def coverage_overrides_for(self, table_name: str) -> Tuple[CoverageOverride, ...]:
        """Curated (table, source field, canonical field) equivalences for one table."""
        return tuple(override for override in self._coverage_overrides if override.table_name == table_name)

    # ------------------------------------------------------------------
    # Enumerated values
    # ------------------------------------------------------------------

    def get_translation(self, name: str) -> EnumTranslation:
        """Get an enum translation table by name."""
        try:
            return self._translations[name]
        except KeyError:
            raise MappingTableError(f"Unknown enum translator '{name}'", self.source_name)

    def enum_translator_for(self, entity_name: str, canonical_field: str) -> Optional[EnumTranslation]:
        """Translation to apply to a canonical field of an entity, if any."""
        for field_name, translator, entities in self._enum_fields:
            if field_name != canonical_field:
                continue
            if entities and entity_name not in entities:
                continue
            return self._translations[translator]
        return None

    # ------------------------------------------------------------------
    # Repairs, tabular inputs, false positives
    # ------------------------------------------------------------------

    def structural_repairs_for(self, entity_name: str) -> Mapping[str, Any]:
        return self._structural_repairs.get(entity_name, MappingProxyType({}))

    def object_wrapping_key(self, canonical_field: str) -> Optional[str]:
        """Key under which a plain string is wrapped when the canonical property is an object."""
        return self._object_wrapping.get(canonical_field)

    @property
    def required_collections(self) -> Tuple[str, ...]:
        """Top-level arrays every canonical document must carry."""
        return self._required_collections

    def tabular_table_for(self, filename: str) -> Optional[str]:
        """Source table bound to a CSV file name (case-insensitive), or None."""
        return self._tabular_files.get(Path(filename).name.lower())

    @property
    def tabular_files(self) -> Mapping[str, str]:
        return self._tabular_files

    @property
    def tabular_conversion(self) -> Mapping[str, Any]:
        return self._tabular_conversion

    @property
    def known_false_positives(self) -> Tuple[FalsePositiveRule, ...]:
        return self._false_positives

    def suggest_mappings(self, table_name: str, columns: Iterable[Union[CrosswalkColumn, str]],
                         known_properties: Iterable[str] = ()) -> List[str]:
        """
        Suggest rename entries for columns that resolve to no known canonical property.

        Args:
            table_name: Source table
            columns: Crosswalk columns or plain column names
            known_properties: Canonical property names of the bound entity

        Returns:
            Suggested contract lines ("'column': 'column',  # description")
        """
        known = set(known_properties)
        suggestions = []
        for column in columns:
            name = column.column if isinstance(column, CrosswalkColumn) else column
            description = column.description if isinstance(column, CrosswalkColumn) else ""
            if self.is_ignored(name):
                continue
            if self.resolve_field(table_name, name) in known:
                continue
            suggestions.append(f"'{name}': '{name}',  # {description or 'No description'}")
        return suggestions


# Default mapping table instance
_default_mapping_table: Optional[FieldMappingTable] = None


def get_default_mapping_table() -> FieldMappingTable:
    """
    Get the mapping table built from the packaged contract.

    Returns:
        Shared FieldMappingTable instance
    """
    global _default_mapping_table

    if _default_mapping_table is None:
        _default_mapping_table = FieldMappingTable.from_file()

    return _default_mapping_table


def reset_default_mapping_table() -> None:
    """Reset the shared mapping table instance."""
    global _default_mapping_table
    _default_mapping_table = None
