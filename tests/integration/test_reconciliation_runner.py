import os
import sys
import json
import tempfile
import unittest
from pathlib import Path

base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '../../'))
if base_dir not in sys.path:
    sys.path.insert(0, base_dir)

from nepa_crosswalk.exceptions import SourceFileError
from nepa_crosswalk.processing.reconciliation_runner import ReconciliationRunner
from tests.helpers import build_orchestrator, load_fixture_schema


OPENAPI_YAML = """\
openapi: 3.0.0
info:
  title: NEPA API
  version: "1.0"
paths:
  /comment:
    get:
      parameters:
        - $ref: '#/components/parameters/rowFilter.comment.id'
        - $ref: '#/components/parameters/rowFilter.comment.commenter_entity'
        - $ref: '#/components/parameters/rowFilter.comment.content_text'
components:
  schemas:
    comment:
      properties:
        id: {}
        commenter_entity: {}
        content_text: {}
"""


class RunnerTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.base = Path(self.tmpdir.name)
        self.runner = ReconciliationRunner(build_orchestrator(), workers=3)

    def tearDown(self):
        self.tmpdir.cleanup()

    def write(self, name, content):
        path = self.base / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path


class TestTabularDirectory(RunnerTestCase):
    def test_malformed_file_is_excluded(self):
        self.write("csv/project.csv", "id,title\np1,Lower Dam\np2,Bridge Replacement\n")
        self.write("csv/comment.csv", "id,commenter_entity,content_text\nc1,Jane,Support,extra\n")
        self.write("csv/notes.csv", "anything\n1\n")

        run = self.runner.run_tabular_directory(self.base / "csv")

        self.assertFalse(run.is_valid)
        self.assertEqual(len(run.failed_files), 1)
        self.assertTrue(run.failed_files[0].file_path.endswith("comment.csv"))
        self.assertEqual(len(run.reports), 1)
        self.assertTrue(run.reports[0].is_valid)

        document = run.documents[str(self.base / "csv")]
        self.assertEqual([p["project_id"] for p in document["projects"]], ["p1", "p2"])
        self.assertNotIn("public_comments", document)
        self.assertEqual(run.metrics["files_read"], 1)
        self.assertEqual(run.metrics["files_failed"], 1)
        self.assertEqual(run.metrics["custom_metrics"]["read_workers"], 2)

    def test_files_bound_to_same_table_are_concatenated(self):
        self.write("csv/comment.csv", "id,commenter_entity,content_text\nc1,Jane,Support\n")
        self.write("csv/public_comment.csv", "id,commenter_entity,content_text,public_access\nc2,Ray,Oppose,true\n")
        self.write("csv/project.csv", "id,title\np1,Dam\n")

        run = self.runner.run_tabular_directory(self.base / "csv")

        self.assertTrue(run.is_valid, run.reports[0].generate_summary())
        comments = run.documents[str(self.base / "csv")]["public_comments"]
        self.assertEqual([c["comment_id"] for c in comments], ["c1", "c2"])
        self.assertIs(comments[1]["public_access"], True)

    def test_missing_directory_raises(self):
        with self.assertRaises(SourceFileError):
            self.runner.run_tabular_directory(self.base / "absent")
        self.assertFalse(self.runner.monitor.is_monitoring)


class TestDocuments(RunnerTestCase):
    def test_documents_are_reconciled_in_input_order(self):
        first = self.write("b_project.yaml", "project:\n  - id: 42\n    title: Lower Dam\n")
        second = self.write("a_empty.json", "{}")
        missing = self.base / "missing.yaml"

        run = self.runner.run_documents([first, second, missing])

        self.assertEqual([r.source_name for r in run.reports], [str(first), str(second)])
        self.assertEqual(run.documents[str(first)]["projects"][0]["project_id"], "42")
        self.assertEqual(run.documents[str(second)], {"projects": []})
        self.assertEqual(len(run.failed_files), 1)
        self.assertFalse(run.is_valid)

    def test_all_valid(self):
        path = self.write("project.json", json.dumps({"projects": [{"project_id": "p1", "project_title": "Dam"}]}))
        run = self.runner.run_documents([path])
        self.assertTrue(run.is_valid)
        self.assertEqual(run.file_results[0].records_read, 0)

    def test_record_counts_per_collection(self):
        legacy = self.write("legacy.yaml", "project:\n  - id: 42\n    title: Lower Dam\n"
                                           "engagement:\n  - id: e1\n    event_type: hearing\n")
        canonical = self.write("canonical.json", json.dumps({"projects": [
            {"project_id": "p1", "project_title": "Dam"},
            {"project_id": "p2", "project_title": "Bridge"},
        ]}))

        run = self.runner.run_documents([legacy, canonical])

        self.assertEqual(run.reports[0].record_counts, {"projects": 1, "public_engagement_events": 1})
        self.assertEqual(run.record_counts, {"projects": 3, "public_engagement_events": 1})
        self.assertEqual(run.total_records, 4)
        self.assertIn("Records by type:\n  projects: 1\n  public_engagement_events: 1",
                      run.reports[0].generate_summary())


class TestCrosswalk(RunnerTestCase):
    def test_crosswalk_with_suggestions(self):
        path = self.write("crosswalk.csv",
                          "table_name,column_name,data_type,description\n"
                          "comment,id,uuid,\n"
                          "comment,commenter_entity,text,\n"
                          "comment,content_text,text,\n"
                          "comment,moderation_flag,bool,Hidden from the public\n")
        run = self.runner.run_crosswalk(path, include_suggestions=True)
        self.assertTrue(run.is_valid)
        self.assertEqual(run.file_results[0].records_read, 4)
        self.assertEqual(run.suggestions,
                         {"comment": ["'moderation_flag': 'moderation_flag',  # Hidden from the public"]})

    def test_unreadable_crosswalk(self):
        run = self.runner.run_crosswalk(self.base / "absent.csv")
        self.assertFalse(run.is_valid)
        self.assertEqual(run.reports, [])


class TestOpenApiDirectory(RunnerTestCase):
    def test_openapi_directory(self):
        self.write("openapi/nepa.yaml", OPENAPI_YAML)
        self.write("openapi/broken.json", "{not json")
        self.write("openapi/readme.md", "# ignored")
        crosswalk = self.write("crosswalk.csv",
                               "table_name,column_name\ncomment,id\ncomment,commenter_entity\ncomment,content_text\n")

        run = self.runner.run_openapi_directory(self.base / "openapi", crosswalk)

        self.assertEqual(len(run.reports), 1)
        self.assertTrue(run.reports[0].is_valid, run.reports[0].generate_summary())
        self.assertEqual(len(run.failed_files), 1)
        self.assertTrue(run.failed_files[0].file_path.endswith("broken.json"))
        self.assertFalse(run.is_valid)

    def test_unreadable_crosswalk_is_reported_and_run_continues(self):
        self.write("openapi/nepa.yaml", OPENAPI_YAML)

        run = self.runner.run_openapi_directory(self.base / "openapi", self.base / "absent.csv")

        self.assertEqual(len(run.reports), 1)
        self.assertEqual(run.failed_files[0].file_path, str(self.base / "absent.csv"))
        self.assertFalse(run.is_valid)


class TestSchemaDirectory(RunnerTestCase):
    def test_valid_and_malformed_schemas(self):
        self.write("jsonschema/nepa.schema.json", json.dumps(load_fixture_schema()))
        self.write("jsonschema/broken.schema.json", json.dumps({"type": "objekt"}))
        self.write("jsonschema/unparsable.json", "{not json")

        run = self.runner.run_schema_directory(self.base / "jsonschema")

        self.assertFalse(run.is_valid)
        self.assertEqual([Path(r.source_name).name for r in run.reports],
                         ["broken.schema.json", "nepa.schema.json"])
        broken, nepa = run.reports
        self.assertFalse(broken.is_valid)
        self.assertEqual(broken.schema_statistics, {})
        self.assertTrue(nepa.is_valid)
        self.assertEqual(nepa.schema_statistics["definitions"], len(load_fixture_schema()["definitions"]))
        self.assertGreater(nepa.schema_statistics["required_properties"], 0)
        self.assertIn("Schema Statistics:", nepa.generate_summary())
        self.assertTrue(run.failed_files[0].file_path.endswith("unparsable.json"))

    def test_missing_directory_raises(self):
        with self.assertRaises(SourceFileError):
            self.runner.run_schema_directory(self.base / "absent")


if __name__ == "__main__":
    unittest.main()
