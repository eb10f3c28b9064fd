import os
import sys
import json
import tempfile
import unittest

base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '../../'))
if base_dir not in sys.path:
    sys.path.insert(0, base_dir)

from nepa_crosswalk.exceptions import MappingTableError
from nepa_crosswalk.mapping.field_mapping_table import FieldMappingTable
from nepa_crosswalk.models import CrosswalkColumn
from tests.helpers import load_contract


class TestFieldResolution(unittest.TestCase):
    def setUp(self):
        self.table = FieldMappingTable.from_file()

    def test_table_specific_rename(self):
        self.assertEqual(self.table.resolve_field("project", "title"), "project_title")
        self.assertEqual(self.table.resolve_field("process_instance", "status"), "process_status")
        self.assertEqual(self.table.resolve_field("comment", "commenter_entity"), "commenter_name")

    def test_global_rename_applies_when_table_has_no_entry(self):
        self.assertEqual(self.table.resolve_field("project", "location_text"), "location")
        self.assertEqual(self.table.resolve_field("case_event", "related_process_id"), "process_id")

    def test_table_rename_wins_over_global_rename(self):
        # engagement keeps related_process_id even though the global map renames it
        self.assertEqual(self.table.resolve_field("engagement", "related_process_id"), "related_process_id")
        self.assertEqual(self.table.resolve_field("comment", "content_text"), "content")

    def test_identity_fallback(self):
        self.assertEqual(self.table.resolve_field("project", "lead_agency"), "lead_agency")
        self.assertEqual(self.table.resolve_field("unknown_table", "whatever"), "whatever")

    def test_id_resolves_to_table_identifier(self):
        self.assertEqual(self.table.resolve_field("project", "id"), "project_id")
        self.assertEqual(self.table.resolve_field("comment", "id"), "comment_id")
        self.assertEqual(self.table.resolve_field("process_decision_payload", "id"), "decision_payload_id")

    def test_unknown_table_binds_to_itself(self):
        binding = self.table.get_table_binding("permit")
        self.assertEqual(binding.entity_name, "permit")
        self.assertEqual(binding.id_field, "permit_id")
        self.assertEqual(self.table.resolve_field("permit", "id"), "permit_id")
        self.assertFalse(self.table.is_bound_table("permit"))

    def test_bindings_and_collections(self):
        binding = self.table.get_table_binding("comment")
        self.assertEqual(binding.entity_name, "public_comment")
        self.assertEqual(self.table.collection_key("public_comment"), "public_comments")
        self.assertEqual(self.table.entity_for_collection("processes"), "process")
        self.assertIsNone(self.table.entity_for_collection("not_a_collection"))
        self.assertEqual(self.table.get_openapi_binding("gis_data_element").entity_name, "gis_data")
        self.assertEqual(self.table.id_field_for_entity("public_engagement_event"), "event_id")


class TestIgnoreRules(unittest.TestCase):
    def setUp(self):
        self.table = FieldMappingTable.from_file()

    def test_metadata_fields_are_ignored(self):
        for name in ("created_at", "updated_at", "_id", "other", "notes", "_internal_flag", "geometry_json"):
            with self.subTest(field=name):
                self.assertTrue(self.table.is_ignored(name))

    def test_parent_identifier_pattern_is_ignored(self):
        self.assertTrue(self.table.is_ignored("parent_comment_id"))
        self.assertTrue(self.table.is_ignored("parent_permit_id"))

    def test_allow_list_wins_over_every_rule(self):
        for name in ("parent_project_id", "parent_process_id", "parent_document_id"):
            with self.subTest(field=name):
                self.assertFalse(self.table.is_ignored(name))

    def test_business_fields_are_not_ignored(self):
        self.assertFalse(self.table.is_ignored("project_title"))
        self.assertFalse(self.table.is_ignored("public_access"))

    def test_ignorable_required(self):
        self.assertTrue(self.table.can_ignore_required("gis_data", "data_type"))
        self.assertFalse(self.table.can_ignore_required("gis_data", "gis_id"))
        self.assertFalse(self.table.can_ignore_required("project", "data_type"))


class TestContractData(unittest.TestCase):
    def setUp(self):
        self.table = FieldMappingTable.from_file()

    def test_coverage_overrides_are_per_table(self):
        overrides = self.table.coverage_overrides_for("comment")
        pairs = {(o.source_field, o.canonical_field) for o in overrides}
        self.assertIn(("commenter_entity", "commenter_name"), pairs)
        self.assertIn(("parent_document_id", "related_document_id"), pairs)
        self.assertEqual(self.table.coverage_overrides_for("project"), ())

    def test_enum_translator_scoped_to_entities(self):
        self.assertEqual(self.table.enum_translator_for("process", "process_status").name, "status")
        self.assertEqual(self.table.enum_translator_for("public_engagement_event", "event_type").name,
                         "engagement_type")
        self.assertIsNone(self.table.enum_translator_for("case_event", "event_type"))
        self.assertIsNone(self.table.enum_translator_for("project", "project_title"))

    def test_unknown_translator_raises(self):
        with self.assertRaises(MappingTableError):
            self.table.get_translation("no_such_translator")

    def test_tabular_file_binding_is_case_insensitive(self):
        self.assertEqual(self.table.tabular_table_for("Comment.CSV"), "comment")
        self.assertEqual(self.table.tabular_table_for("/exports/public_comment.csv"), "comment")
        self.assertIsNone(self.table.tabular_table_for("readme.csv"))

    def test_required_collections(self):
        self.assertEqual(self.table.required_collections, ("projects",))

    def test_mapping_table_is_read_only(self):
        with self.assertRaises(TypeError):
            self.table.structural_repairs_for("gis_data")["data_type"] = "polygon"
        with self.assertRaises(TypeError):
            self.table.tabular_files["extra.csv"] = "project"
        with self.assertRaises(TypeError):
            self.table.get_translation("status").values["Done"] = "completed"

    def test_suggest_mappings_skips_resolved_and_ignored_columns(self):
        columns = [
            CrosswalkColumn(table="project", column="id"),
            CrosswalkColumn(table="project", column="title"),
            CrosswalkColumn(table="project", column="created_at"),
            CrosswalkColumn(table="project", column="legacy_flag", description="Old migration flag"),
        ]
        suggestions = self.table.suggest_mappings("project", columns, ["project_id", "project_title"])
        self.assertEqual(suggestions, ["'legacy_flag': 'legacy_flag',  # Old migration flag"])

    def test_suggest_mappings_accepts_plain_names(self):
        suggestions = self.table.suggest_mappings("project", ["mystery"], [])
        self.assertEqual(suggestions, ["'mystery': 'mystery',  # No description"])


class TestContractLoading(unittest.TestCase):
    def test_missing_sections_are_reported_together(self):
        contract = load_contract()
        del contract["field_renames"]
        del contract["ignore_rules"]
        with self.assertRaises(MappingTableError) as ctx:
            FieldMappingTable(contract)
        self.assertIn("field_renames", str(ctx.exception))
        self.assertIn("ignore_rules", str(ctx.exception))

    def test_entity_without_collection_key_is_rejected(self):
        contract = load_contract()
        contract["table_bindings"]["permit"] = {"entity": "permit", "id_field": "permit_id"}
        with self.assertRaises(MappingTableError) as ctx:
            FieldMappingTable(contract)
        self.assertIn("permit", str(ctx.exception))

    def test_unknown_translator_reference_is_rejected(self):
        contract = load_contract()
        contract["enum_fields"].append({"field": "stage", "translator": "stage"})
        with self.assertRaises(MappingTableError):
            FieldMappingTable(contract)

    def test_non_object_contract_is_rejected(self):
        with self.assertRaises(MappingTableError):
            FieldMappingTable(["not", "a", "contract"])

    def test_from_file_missing(self):
        with self.assertRaises(MappingTableError):
            FieldMappingTable.from_file("/nonexistent/contract.json")

    def test_from_file_invalid_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "contract.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("{not json")
            with self.assertRaises(MappingTableError) as ctx:
                FieldMappingTable.from_file(path)
            self.assertEqual(ctx.exception.source_name, path)

    def test_from_file_round_trip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "contract.json")
            contract = load_contract()
            contract["global_renames"]["headline"] = "project_title"
            with open(path, "w", encoding="utf-8") as f:
                json.dump(contract, f)
            table = FieldMappingTable.from_file(path)
            self.assertEqual(table.resolve_field("project", "headline"), "project_title")
            self.assertEqual(table.source_name, path)


if __name__ == "__main__":
    unittest.main()
