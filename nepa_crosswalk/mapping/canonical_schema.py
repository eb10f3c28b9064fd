"""
Read-only index over the canonical NEPA JSON Schema.

The schema is external data loaded once per run. This module only answers the
questions the reconciliation engine asks of it: which entities exist, which
properties are required, and what shape (scalar, object, array) and type each
property has. Nested structure is exposed as a closed tree of PropertySpec
nodes so the transformer can walk source values and schema fragments side by
side instead of guessing shapes at runtime.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple


class NodeKind(Enum):
    """Shape of a value or schema fragment."""
    SCALAR = "scalar"
    OBJECT = "object"
    ARRAY = "array"


TYPE_DEFAULTS = MappingProxyType({
    "string": "",
    "integer": 0,
    "number": 0,
    "boolean": False,
})


def node_kind_of(value: Any) -> NodeKind:
    """Classify a runtime value."""
    if isinstance(value, dict):
        return NodeKind.OBJECT
    if isinstance(value, list):
        return NodeKind.ARRAY
    return NodeKind.SCALAR


@dataclass(frozen=True)
class PropertySpec:
    """
    Typed schema fragment for one property.

    Attributes:
        kind: SCALAR, OBJECT or ARRAY
        type_name: JSON Schema type, or None when the type is unknown or ambiguous
        nullable: True when the schema explicitly allows null
        properties: Child specs for objects
        items: Item spec for arrays (None when unknown)
        required: Required child properties for objects
    """
    kind: NodeKind = NodeKind.SCALAR
    type_name: Optional[str] = None
    nullable: bool = False
    properties: Mapping[str, 'PropertySpec'] = field(default_factory=lambda: MappingProxyType({}))
    items: Optional['PropertySpec'] = None
    required: Tuple[str, ...] = ()

    @property
    def has_known_type(self) -> bool:
        return self.type_name is not None

    def child(self, name: str) -> 'PropertySpec':
        """Spec of a child property; untyped when unknown."""
        return self.properties.get(name, UNTYPED)

    def default_value(self) -> Any:
        """Type-appropriate default for a null value (fresh containers each call)."""
        if self.type_name == "object":
            return {}
        if self.type_name == "array":
            return []
        return TYPE_DEFAULTS.get(self.type_name)


UNTYPED = PropertySpec()


class CanonicalSchema:
    """
    Index over the entity definitions of the canonical schema.

    Usage:
        schema = CanonicalSchema(schema_dict)
        schema.required_properties("project")       # ('project_id', 'project_title', ...)
        schema.entity_spec("gis_data").child("container_inventory").kind   # NodeKind.OBJECT
    """

    def __init__(self, schema: Dict[str, Any], source_name: Optional[str] = None):
        """
        Initialize the schema index.

        Args:
            schema: Parsed canonical JSON Schema (never modified)
            source_name: Where the schema came from, for logging
        """
        self.logger = logging.getLogger(__name__)
        if not isinstance(schema, dict):
            raise ValueError("Canonical schema must be a JSON object")
        self._schema = schema
        self.source_name = source_name or "<in-memory>"
        self._definitions: Dict[str, Any] = schema.get("definitions") or schema.get("$defs") or {}
        self._spec_cache: Dict[str, PropertySpec] = {}
        self.logger.debug(f"Indexed canonical schema {self.source_name}: {len(self._definitions)} definitions")

    @property
    def raw(self) -> Dict[str, Any]:
        """The underlying schema document."""
        return self._schema

    def entity_definition(self, entity_name: str) -> Optional[Dict[str, Any]]:
        """Raw definition of an entity with a top-level $ref resolved, or None."""
        definition = self._definitions.get(entity_name)
        if definition is None:
            return None
        return self._dereference(definition, frozenset())

    def required_properties(self, entity_name: str) -> Tuple[str, ...]:
        definition = self.entity_definition(entity_name) or {}
        return tuple(definition.get("required", []))

    def property_names(self, entity_name: str) -> Tuple[str, ...]:
        definition = self.entity_definition(entity_name) or {}
        return tuple((definition.get("properties") or {}).keys())

    def entity_spec(self, entity_name: str) -> PropertySpec:
        """Typed spec of an entity; untyped object when the entity is unknown."""
        if entity_name not in self._spec_cache:
            definition = self._definitions.get(entity_name)
            if definition is None:
                self._spec_cache[entity_name] = PropertySpec(kind=NodeKind.OBJECT, type_name="object")
            else:
                ref = f"#/definitions/{entity_name}"
                self._spec_cache[entity_name] = self._build_spec(definition, frozenset([ref]))
        return self._spec_cache[entity_name]

    def property_spec(self, entity_name: str, property_name: str) -> PropertySpec:
        return self.entity_spec(entity_name).child(property_name)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_ref(self, ref: str) -> Dict[str, Any]:
        """Resolve a local JSON pointer reference ('#/definitions/x')."""
        if not ref.startswith("#"):
            self.logger.debug(f"External reference not resolved: {ref}")
            return {}
        node: Any = self._schema
        for part in ref.lstrip("#").strip("/").split("/"):
            if not part:
                continue
            part = part.replace("~1", "/").replace("~0", "~")
            if not isinstance(node, dict) or part not in node:
                self.logger.debug(f"Unresolvable reference: {ref}")
                return {}
            node = node[part]
        return node if isinstance(node, dict) else {}

    def _dereference(self, fragment: Dict[str, Any], seen: FrozenSet[str]) -> Dict[str, Any]:
        while isinstance(fragment, dict) and "$ref" in fragment and fragment["$ref"] not in seen:
            seen = seen | {fragment["$ref"]}
            fragment = self._resolve_ref(fragment["$ref"])
        return fragment if isinstance(fragment, dict) else {}

    def _build_spec(self, fragment: Any, seen: FrozenSet[str]) -> PropertySpec:
        if not isinstance(fragment, dict):
            return UNTYPED

        if "$ref" in fragment:
            ref = fragment["$ref"]
            if ref in seen:
                # Recursive structure: stop descending
                return UNTYPED
            return self._build_spec(self._resolve_ref(ref), seen | {ref})

        for combinator in ("anyOf", "oneOf"):
            if combinator in fragment:
                return self._build_variant_spec(fragment[combinator], seen)

        if "allOf" in fragment:
            return self._build_merged_spec(fragment, seen)

        type_name, nullable = self._parse_type(fragment.get("type"))
        if type_name is None and "properties" in fragment:
            type_name = "object"
        if type_name is None and "items" in fragment:
            type_name = "array"

        if type_name == "object":
            children = {
                name: self._build_spec(child, seen)
                for name, child in (fragment.get("properties") or {}).items()
            }
            return PropertySpec(
                kind=NodeKind.OBJECT,
                type_name="object",
                nullable=nullable,
                properties=MappingProxyType(children),
                required=tuple(fragment.get("required", [])),
            )

        if type_name == "array":
            items = fragment.get("items")
            item_spec = self._build_spec(items, seen) if isinstance(items, dict) and items else None
            return PropertySpec(kind=NodeKind.ARRAY, type_name="array", nullable=nullable, items=item_spec)

        return PropertySpec(kind=NodeKind.SCALAR, type_name=type_name, nullable=nullable)

    @staticmethod
    def _parse_type(raw_type: Any) -> Tuple[Optional[str], bool]:
        if isinstance(raw_type, str):
            return (None, True) if raw_type == "null" else (raw_type, False)
        if isinstance(raw_type, list):
            nullable = "null" in raw_type
            concrete = [item for item in raw_type if item != "null"]
            return (concrete[0] if len(concrete) == 1 else None), nullable
        return None, False

    def _build_variant_spec(self, variants: Any, seen: FrozenSet[str]) -> PropertySpec:
        if not isinstance(variants, list):
            return UNTYPED
        nullable = False
        concrete = []
        for variant in variants:
            if isinstance(variant, dict) and variant.get("type") == "null":
                nullable = True
            else:
                concrete.append(variant)
        if len(concrete) != 1:
            return PropertySpec(nullable=nullable)
        spec = self._build_spec(concrete[0], seen)
        if nullable and not spec.nullable:
            spec = PropertySpec(kind=spec.kind, type_name=spec.type_name, nullable=True,
                                properties=spec.properties, items=spec.items, required=spec.required)
        return spec

    def _build_merged_spec(self, fragment: Dict[str, Any], seen: FrozenSet[str]) -> PropertySpec:
        properties: Dict[str, Any] = dict(fragment.get("properties") or {})
        required = list(fragment.get("required", []))
        type_name = fragment.get("type")
        for part in fragment["allOf"]:
            resolved = self._dereference(part, seen) if isinstance(part, dict) else {}
            properties.update(resolved.get("properties") or {})
            required.extend(name for name in resolved.get("required", []) if name not in required)
            type_name = type_name or resolved.get("type")
        merged = {"properties": properties, "required": required}
        if type_name:
            merged["type"] = type_name
        return self._build_spec(merged, seen)
