import os
import sys
import unittest

base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '../../'))
if base_dir not in sys.path:
    sys.path.insert(0, base_dir)

from nepa_crosswalk.models import CoverageResult, DatabaseCoverage, ReconciliationReport, TableBinding
from nepa_crosswalk.validation.validation_models import (
    IssueCategory, SchemaErrorDetail, SchemaValidationOutcome, ValidationIssue, ValidationSeverity,
)


def _issue(severity, message="finding", table_name="comment", field_name=None):
    return ValidationIssue(category=IssueCategory.MISSING_REQUIRED, severity=severity, message=message,
                           table_name=table_name, field_name=field_name)


class TestValidationIssue(unittest.TestCase):
    def test_hard_error_severities(self):
        self.assertTrue(_issue(ValidationSeverity.CRITICAL).is_hard_error)
        self.assertTrue(_issue(ValidationSeverity.ERROR).is_hard_error)
        self.assertFalse(_issue(ValidationSeverity.WARNING).is_hard_error)
        self.assertFalse(_issue(ValidationSeverity.INFO).is_hard_error)

    def test_string_representation(self):
        issue = _issue(ValidationSeverity.ERROR, "Required property 'commenter_name' missing in 'comment'",
                       field_name="commenter_name")
        self.assertEqual(str(issue), "[ERROR] missing_required in comment.commenter_name: "
                                     "Required property 'commenter_name' missing in 'comment'")

    def test_to_dict(self):
        data = _issue(ValidationSeverity.WARNING).to_dict()
        self.assertEqual(data["severity"], "warning")
        self.assertEqual(data["category"], "missing_required")


class TestCoverageResult(unittest.TestCase):
    def test_only_hard_errors_gate_validity(self):
        result = CoverageResult(table_name="comment", entity_name="public_comment", found=1, total=9)
        result.add_issue(_issue(ValidationSeverity.WARNING))
        self.assertTrue(result.is_valid)
        self.assertAlmostEqual(result.coverage_percent, 100.0 / 9)

        result.add_issue(_issue(ValidationSeverity.ERROR))
        self.assertFalse(result.is_valid)

    def test_zero_total(self):
        self.assertEqual(CoverageResult(table_name="t", entity_name="e").coverage_percent, 0.0)

    def test_negative_counts(self):
        with self.assertRaises(ValueError):
            CoverageResult(table_name="t", entity_name="e", found=-1, total=2)

    def test_database_coverage_in_dict(self):
        result = CoverageResult(table_name="project", entity_name="project", found=1, total=2,
                                database_coverage=DatabaseCoverage(found=2, total=3, missing_required=["sector"]))
        self.assertEqual(result.to_dict()["database_coverage"]["missing_required"], ["sector"])


class TestTableBinding(unittest.TestCase):
    def test_empty_values_rejected(self):
        with self.assertRaises(ValueError):
            TableBinding(table_name="", entity_name="project", id_field="project_id")
        with self.assertRaises(ValueError):
            TableBinding(table_name="project", entity_name="project", id_field="")


class TestReconciliationReport(unittest.TestCase):
    def _report(self):
        report = ReconciliationReport(source_name="src/csv")
        good = CoverageResult(table_name="project", entity_name="project", found=2, total=4)
        bad = CoverageResult(table_name="comment", entity_name="public_comment", found=1, total=4,
                             missing_required=["commenter_name"])
        bad.add_issue(_issue(ValidationSeverity.ERROR, "Required property 'commenter_name' missing in 'comment'"))
        report.add_coverage(good)
        report.add_coverage(bad)
        report.add_fixes(["Added missing required projects array to root level"])
        report.records_transformed = 3
        return report

    def test_aggregates(self):
        report = self._report()
        self.assertEqual(report.total_found, 3)
        self.assertEqual(report.total_possible, 8)
        self.assertAlmostEqual(report.overall_coverage_percent, 37.5)
        self.assertEqual(len(report.hard_errors), 1)
        self.assertFalse(report.is_valid)

    def test_schema_outcome_gates_validity(self):
        report = ReconciliationReport(source_name="doc.yaml")
        self.assertTrue(report.is_valid)
        report.schema_outcome = SchemaValidationOutcome(
            valid=False, errors=[SchemaErrorDetail(path="", keyword="required", message="'projects' is a required property")])
        self.assertFalse(report.is_valid)

    def test_summary(self):
        summary = self._report().generate_summary()
        self.assertIn("Reconciliation Summary: src/csv", summary)
        self.assertIn("Coverage: 3/8 properties (37.5%)", summary)
        self.assertIn("  - comment -> public_comment: INVALID (1/4 properties)", summary)
        self.assertIn("      Missing Required: commenter_name", summary)
        self.assertIn("Applied 1 automatic fix(es):", summary)
        self.assertIn("Valid: No", summary)

    def test_summary_limits_errors_per_path(self):
        errors = [SchemaErrorDetail(path="/projects/0", keyword="type", message=f"error {i}") for i in range(5)]
        report = ReconciliationReport(source_name="doc.yaml",
                                      schema_outcome=SchemaValidationOutcome(valid=False, errors=errors))
        summary = report.generate_summary(max_errors_per_path=2)
        self.assertIn("Schema Validation: FAILED", summary)
        self.assertIn("    - error 1 (type)", summary)
        self.assertNotIn("    - error 2 (type)", summary)
        self.assertIn("... and 3 more errors in this path", summary)
        self.assertEqual(report.summary, summary)

    def test_summary_notes_suppressed_false_positives(self):
        suppressed = [SchemaErrorDetail(path="/gis_data/0/container_inventory/purpose", keyword="enum", message="x")]
        report = ReconciliationReport(source_name="doc.yaml",
                                      schema_outcome=SchemaValidationOutcome(valid=True, suppressed=suppressed))
        self.assertIn("Schema Validation: PASSED (after filtering known false positives)", report.generate_summary())

    def test_record_counts(self):
        report = ReconciliationReport(source_name="doc.yaml",
                                      record_counts={"projects": 2, "public_engagement_events": 1})
        self.assertEqual(report.total_records, 3)
        summary = report.generate_summary()
        self.assertIn("Total Records: 3", summary)
        self.assertIn("Records by type:\n  projects: 2\n  public_engagement_events: 1", summary)
        self.assertEqual(report.to_dict()["record_counts"], {"projects": 2, "public_engagement_events": 1})

    def test_schema_statistics(self):
        report = ReconciliationReport(source_name="nepa.schema.json",
                                      schema_statistics={"definitions": 4, "required_properties": 7})
        summary = report.generate_summary()
        self.assertIn("Schema Statistics:\n  Definitions: 4\n  Required Properties: 7", summary)
        self.assertEqual(report.to_dict()["schema_statistics"]["definitions"], 4)
        self.assertNotIn("Records by type:", summary)

    def test_to_dict(self):
        data = self._report().to_dict()
        self.assertFalse(data["valid"])
        self.assertEqual(data["fix_count"], 1)
        self.assertEqual(data["coverage"], {"found": 3, "total": 8, "percent": 37.5})
        self.assertEqual([t["table_name"] for t in data["tables"]], ["project", "comment"])
        self.assertEqual(data["schema_errors"], [])


if __name__ == "__main__":
    unittest.main()
