"""Test helpers for building reconciliation components over the fixture schema.

Every test gets fresh components: the mapping table comes from the packaged
contract, the canonical schema from tests/fixtures/nepa.schema.json, and
synthesized identifiers are fixed so fix messages can be compared exactly.
"""
import copy
import json
from pathlib import Path
from typing import Any, Dict

from nepa_crosswalk.mapping.canonical_schema import CanonicalSchema
from nepa_crosswalk.mapping.entity_transformer import EntityTransformer
from nepa_crosswalk.mapping.field_mapping_table import DEFAULT_CONTRACT_PATH, FieldMappingTable
from nepa_crosswalk.processing.reconciliation_orchestrator import ReconciliationOrchestrator
from nepa_crosswalk.validation.schema_validator import SchemaValidator

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"
FIXTURE_SCHEMA_PATH = FIXTURES_DIR / "nepa.schema.json"


def load_fixture_schema() -> Dict[str, Any]:
    """Fresh copy of the fixture canonical schema."""
    with open(FIXTURE_SCHEMA_PATH, "r", encoding="utf-8") as f:
        return json.load(f)


def load_contract() -> Dict[str, Any]:
    """Fresh copy of the packaged field mapping contract."""
    with open(DEFAULT_CONTRACT_PATH, "r", encoding="utf-8") as f:
        return copy.deepcopy(json.load(f))


def fixed_id_factory(prefix: str) -> str:
    return f"{prefix}0001"


def build_transformer(mapping_table: FieldMappingTable = None, schema: CanonicalSchema = None) -> EntityTransformer:
    mapping_table = mapping_table or FieldMappingTable.from_file()
    schema = schema or CanonicalSchema(load_fixture_schema())
    return EntityTransformer(mapping_table, schema, id_factory=fixed_id_factory)


def build_orchestrator(strict: bool = False) -> ReconciliationOrchestrator:
    """Orchestrator wired like the CLI builds it, with deterministic ids."""
    mapping_table = FieldMappingTable.from_file()
    schema_dict = load_fixture_schema()
    schema = CanonicalSchema(schema_dict)
    validator = SchemaValidator(schema_dict, strict_additional_properties=strict,
                                false_positive_rules=mapping_table.known_false_positives)
    return ReconciliationOrchestrator(mapping_table, schema, validator,
                                      transformer=build_transformer(mapping_table, schema))
