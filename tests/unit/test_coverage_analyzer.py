import os
import sys
import unittest

base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '../../'))
if base_dir not in sys.path:
    sys.path.insert(0, base_dir)

from nepa_crosswalk.mapping.canonical_schema import CanonicalSchema
from nepa_crosswalk.mapping.field_mapping_table import FieldMappingTable
from nepa_crosswalk.models import CoverageResult, CrosswalkColumn
from nepa_crosswalk.validation.coverage_analyzer import CoverageAnalyzer
from nepa_crosswalk.validation.validation_models import IssueCategory, ValidationSeverity
from tests.helpers import load_fixture_schema


def _database_schema(table_name, properties, required):
    row = {"properties": {name: {"type": "string"} for name in properties}, "required": required}
    return {
        "definitions": {"Database": {"properties": {"public": {"properties": {"Tables": {"properties": {
            table_name: {"properties": {"Row": row}}
        }}}}}}}
    }


class TestCoverageAnalyzer(unittest.TestCase):
    def setUp(self):
        self.mapping_table = FieldMappingTable.from_file()
        self.analyzer = CoverageAnalyzer(self.mapping_table, CanonicalSchema(load_fixture_schema()))

    def test_renamed_required_field_is_satisfied(self):
        result = self.analyzer.analyze("comment", ["id", "commenter_entity", "content_text"])
        self.assertEqual(result.entity_name, "public_comment")
        self.assertNotIn("commenter_name", result.missing_required)
        self.assertNotIn("commenter_name", result.unmatched_properties)
        self.assertTrue(result.is_valid)
        self.assertEqual(result.found, 3)

    def test_typo_column_is_unmatched_not_guessed(self):
        result = self.analyzer.analyze("comment", ["id", "commenter_entity", "content_text", "public_acess"])
        self.assertEqual(result.unmatched_source_fields, ["public_acess"])
        self.assertIn("public_access", result.unmatched_properties)
        messages = [issue.message for issue in result.warnings]
        self.assertIn("Unmatched source field 'comment.public_acess' (mapped to 'public_acess') "
                      "does not match any property in schema 'public_comment'", messages)
        self.assertTrue(result.is_valid)

    def test_missing_required_is_hard_error(self):
        result = self.analyzer.analyze("comment", ["id", "content_text"])
        self.assertEqual(result.missing_required, ["commenter_name"])
        self.assertFalse(result.is_valid)
        self.assertEqual(len(result.errors), 1)
        error = result.errors[0]
        self.assertEqual(error.category, IssueCategory.MISSING_REQUIRED)
        self.assertEqual(error.message, "Required property 'commenter_name' missing in 'comment'")

    def test_ignorable_required_is_a_warning(self):
        result = self.analyzer.analyze("gis_data", ["id", "coordinate_system"])
        self.assertNotIn("data_type", result.missing_required)
        self.assertIn("data_type", result.unmatched_properties)
        self.assertTrue(result.is_valid)

    def test_ignored_fields_take_no_part(self):
        fields = ["id", "title", "created_at", "_internal", "shape_json", "parent_comment_id", "notes"]
        result = self.analyzer.analyze("project", fields)
        self.assertEqual(result.unmatched_source_fields, [])
        self.assertEqual(result.found, 2)

    def test_allow_listed_parent_field_satisfies_property(self):
        result = self.analyzer.analyze("engagement", ["id", "event_type", "parent_process_id"])
        self.assertNotIn("related_process_id", result.unmatched_properties)
        self.assertEqual(result.unmatched_source_fields, [])

    def test_coverage_override(self):
        result = self.analyzer.analyze("process_instance", ["id", "status", "parent_project_id"])
        self.assertNotIn("project_id", result.unmatched_properties)
        self.assertTrue(result.is_valid)

    def test_duplicate_fields_count_once(self):
        result = self.analyzer.analyze("project", ["title", "title", "id", "project_title"])
        self.assertEqual(result.found, 2)

    def test_found_never_exceeds_total(self):
        schema = load_fixture_schema()
        for table_name in self.mapping_table.table_names:
            entity = self.mapping_table.get_table_binding(table_name).entity_name
            fields = list(schema["definitions"][entity]["properties"]) + ["id", "extra"]
            with self.subTest(table=table_name):
                result = self.analyzer.analyze(table_name, fields)
                self.assertLessEqual(result.found, result.total)

    def test_missing_definition_is_a_warning(self):
        result = self.analyzer.analyze("permit", ["id", "status"])
        self.assertEqual((result.found, result.total), (0, 0))
        self.assertTrue(result.is_valid)
        self.assertEqual(result.warnings[0].message, "Schema definition not found for: permit (table: permit)")

    def test_explicit_definition(self):
        definition = {"required": ["code"], "properties": {"code": {}, "label": {}}}
        result = self.analyzer.analyze("permit", ["code"], entity_definition=definition)
        self.assertEqual((result.found, result.total), (1, 2))
        self.assertEqual(result.unmatched_properties, ["label"])

    def test_source_is_not_modified(self):
        fields = ["id", "commenter_entity"]
        self.analyzer.analyze("comment", fields)
        self.assertEqual(fields, ["id", "commenter_entity"])

    def test_analyze_all(self):
        results = self.analyzer.analyze_all({"project": ["id", "title"], "comment": ["id"]})
        self.assertEqual([r.table_name for r in results], ["project", "comment"])
        self.assertTrue(results[0].is_valid)
        self.assertFalse(results[1].is_valid)

    def test_coverage_bound_is_enforced_by_result(self):
        with self.assertRaises(ValueError):
            CoverageResult(table_name="t", entity_name="e", found=3, total=2)


class TestDatabaseAlignment(unittest.TestCase):
    def setUp(self):
        self.analyzer = CoverageAnalyzer(FieldMappingTable.from_file(), CanonicalSchema(load_fixture_schema()))

    def test_required_database_field_missing_from_crosswalk(self):
        columns = [CrosswalkColumn(table="project", column="id"), CrosswalkColumn(table="project", column="title")]
        database_schema = _database_schema("project", ["id", "title", "sector", "created_at"],
                                           ["id", "title", "sector"])
        result = self.analyzer.analyze_crosswalk_table("project", columns, database_schema)

        coverage = result.database_coverage
        self.assertEqual((coverage.found, coverage.total), (2, 3))
        self.assertEqual(coverage.missing_required, ["sector"])
        alignment = [issue for issue in result.errors if issue.category == IssueCategory.DATABASE_ALIGNMENT]
        self.assertEqual(len(alignment), 1)
        self.assertEqual(alignment[0].severity, ValidationSeverity.ERROR)
        self.assertFalse(result.is_valid)

    def test_table_not_described_is_skipped(self):
        columns = [CrosswalkColumn(table="project", column="id"), CrosswalkColumn(table="project", column="title")]
        result = self.analyzer.analyze_crosswalk_table("project", columns, _database_schema("other", ["id"], ["id"]))
        self.assertIsNone(result.database_coverage)
        self.assertTrue(result.is_valid)

    def test_without_database_schema(self):
        columns = [CrosswalkColumn(table="project", column="id")]
        result = self.analyzer.analyze_crosswalk_table("project", columns)
        self.assertIsNone(result.database_coverage)
        self.assertEqual(result.missing_required, ["project_title"])


if __name__ == "__main__":
    unittest.main()
