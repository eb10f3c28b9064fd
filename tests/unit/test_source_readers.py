import os
import sys
import tempfile
import unittest

base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '../../'))
if base_dir not in sys.path:
    sys.path.insert(0, base_dir)

from nepa_crosswalk.exceptions import SourceFileError
from nepa_crosswalk.parsing.source_readers import SourceReader


class SourceReaderTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.reader = SourceReader()

    def tearDown(self):
        self.tmpdir.cleanup()

    def write(self, name, content, encoding="utf-8"):
        path = os.path.join(self.tmpdir.name, name)
        with open(path, "w", encoding=encoding, newline="") as f:
            f.write(content)
        return path


class TestReadRows(SourceReaderTestCase):
    def test_rows_are_strings(self):
        path = self.write("project.csv", "id,title,sector\n1,Lower Dam,energy\n2,Bridge,\n")
        data = self.reader.read_rows(path)
        self.assertEqual(data.headers, ["id", "title", "sector"])
        self.assertEqual(data.rows, [
            {"id": "1", "title": "Lower Dam", "sector": "energy"},
            {"id": "2", "title": "Bridge", "sector": ""},
        ])

    def test_bom_and_padded_headers(self):
        path = self.write("comment.csv", "\ufeffid , commenter_entity\n7,Jane\n")
        data = self.reader.read_rows(path)
        self.assertEqual(data.headers, ["id", "commenter_entity"])
        self.assertEqual(data.rows[0]["commenter_entity"], "Jane")

    def test_blank_rows_are_dropped(self):
        path = self.write("project.csv", "id,title\n1,A\n,\n\n2,B\n")
        data = self.reader.read_rows(path)
        self.assertEqual([row["id"] for row in data.rows], ["1", "2"])

    def test_short_rows_read_as_empty(self):
        path = self.write("project.csv", "id,title,sector\n1,A\n")
        data = self.reader.read_rows(path)
        self.assertEqual(data.rows[0]["sector"], "")

    def test_headers_only(self):
        path = self.write("project.csv", "id,title\n")
        data = self.reader.read_rows(path)
        self.assertEqual(data.headers, ["id", "title"])
        self.assertEqual(data.rows, [])

    def test_extra_cells_are_malformed(self):
        path = self.write("comment.csv", "id,content_text\n1,hello,unexpected\n")
        with self.assertRaises(SourceFileError) as ctx:
            self.reader.read_rows(path)
        self.assertEqual(ctx.exception.file_path, path)

    def test_missing_file(self):
        with self.assertRaises(SourceFileError):
            self.reader.read_rows(os.path.join(self.tmpdir.name, "absent.csv"))

    def test_undecodable_file(self):
        path = os.path.join(self.tmpdir.name, "project.csv")
        with open(path, "wb") as f:
            f.write(b"id,title\n1,\xff\xfe\xfa\n")
        with self.assertRaises(SourceFileError):
            self.reader.read_rows(path)


class TestReadDocument(SourceReaderTestCase):
    def test_yaml_document(self):
        path = self.write("project.yaml", "projects:\n  - project_id: p1\n    project_title: Dam\n")
        self.assertEqual(self.reader.read_document(path),
                         {"projects": [{"project_id": "p1", "project_title": "Dam"}]})

    def test_yaml_dates_stay_strings(self):
        path = self.write("engagement.yaml",
                          "engagement:\n  - id: 7\n    start_datetime: 2024-05-01\n"
                          "    updated: 2024-05-01 18:00:00\n    virtual: true\n")
        record = self.reader.read_document(path)["engagement"][0]
        self.assertEqual(record, {"id": 7, "start_datetime": "2024-05-01",
                                  "updated": "2024-05-01 18:00:00", "virtual": True})

    def test_json_document(self):
        path = self.write("project.json", '{"project": [{"id": 42}]}')
        self.assertEqual(self.reader.read_document(path), {"project": [{"id": 42}]})

    def test_empty_yaml_is_none(self):
        path = self.write("empty.yml", "")
        self.assertIsNone(self.reader.read_document(path))

    def test_invalid_yaml(self):
        path = self.write("broken.yaml", "projects: [unclosed\n")
        with self.assertRaises(SourceFileError):
            self.reader.read_document(path)

    def test_invalid_json(self):
        path = self.write("broken.json", "{not json")
        with self.assertRaises(SourceFileError):
            self.reader.read_document(path)

    def test_unsupported_suffix(self):
        path = self.write("notes.txt", "projects: []")
        with self.assertRaises(SourceFileError):
            self.reader.read_document(path)


class TestLoadDatabaseCrosswalk(SourceReaderTestCase):
    def test_standard_headers(self):
        path = self.write("crosswalk.csv",
                          "table_name,column_name,data_type,is_nullable,column_default,description\n"
                          "project,id,uuid,NO,,Primary key\n"
                          "project,title,text,YES,,Project title\n"
                          "comment,id,uuid,NO,,\n")
        crosswalk = self.reader.load_database_crosswalk(path)
        self.assertEqual(list(crosswalk), ["project", "comment"])
        first = crosswalk["project"][0]
        self.assertEqual((first.table, first.column, first.data_type, first.nullable), ("project", "id", "uuid", "NO"))
        self.assertEqual(first.description, "Primary key")
        self.assertIsNone(first.default_value)

    def test_header_aliases(self):
        path = self.write("crosswalk.csv", "Table,Column,DataType,Nullable,Description\nengagement,attendance,int,YES,Count\n")
        crosswalk = self.reader.load_database_crosswalk(path)
        column = crosswalk["engagement"][0]
        self.assertEqual(column.column, "attendance")
        self.assertEqual(column.data_type, "int")
        self.assertEqual(column.description, "Count")

    def test_rows_without_table_or_column_are_skipped(self):
        path = self.write("crosswalk.csv", "table_name,column_name\nproject,id\n,orphan\nproject,\n")
        crosswalk = self.reader.load_database_crosswalk(path)
        self.assertEqual([c.column for c in crosswalk["project"]], ["id"])


if __name__ == "__main__":
    unittest.main()
