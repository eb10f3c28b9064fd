"""
Command-line interface for the NEPA crosswalk reconciler.

Subcommands:
    documents PATH...        reconcile YAML/JSON documents into canonical documents
    csv [DIR]                merge CSV exports into one canonical document
    crosswalk [CSV]          coverage of the canonical schema by the database crosswalk
    openapi [DIR]            OpenAPI structure, crosswalk and definition coverage
    schemas [DIR]            check JSON Schema files against their meta-schema

Exit codes: 0 when every source is valid, 1 when any is not, 2 when the run
cannot start (configuration, schema or mapping contract failure, missing
input directory).
"""

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import Any, Dict, Optional

from .config.config_manager import LOG_LEVELS, get_config_manager
from .config.processing_defaults import ProcessingDefaults
from .exceptions import ConfigurationError, SchemaLoadError, SourceFileError
from .mapping.canonical_schema import CanonicalSchema
from .processing.reconciliation_orchestrator import ReconciliationOrchestrator
from .processing.reconciliation_runner import ReconciliationRunner, RunResult
from .validation.schema_validator import SchemaValidator


EXIT_VALID = 0
EXIT_INVALID = 1
EXIT_HALTED = 2


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--schema", help="Canonical JSON Schema (default: NEPA_CROSSWALK_SCHEMA_PATH "
                                         "or src/jsonschema/nepa.schema.json)")
    common.add_argument("--contract", help="Field mapping contract (default: packaged contract)")
    common.add_argument("--workers", type=int, help="Thread pool size for file reads")
    common.add_argument("--strict", action="store_true", default=None,
                        help="Reject properties the schema does not declare (additionalProperties)")
    common.add_argument("--log-level", choices=LOG_LEVELS, help="Logging level")
    common.add_argument("--report", help="Write the JSON report to this file")
    common.add_argument("--output", help="Write the canonical document to this file (documents, csv)")

    parser = argparse.ArgumentParser(
        prog="nepa_crosswalk",
        description="Reconcile NEPA database, OpenAPI and tabular representations with the canonical schema",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    documents = subparsers.add_parser("documents", parents=[common], help="Reconcile YAML/JSON documents")
    documents.add_argument("paths", nargs="+", help="Document files")

    csv_parser = subparsers.add_parser("csv", parents=[common], help="Reconcile a directory of CSV exports")
    csv_parser.add_argument("directory", nargs="?", help="CSV directory (default: NEPA_CROSSWALK_CSV_DIR)")

    crosswalk = subparsers.add_parser("crosswalk", parents=[common], help="Reconcile the database crosswalk")
    crosswalk.add_argument("crosswalk_path", nargs="?", help="Crosswalk CSV (default: NEPA_CROSSWALK_CROSSWALK_PATH)")
    crosswalk.add_argument("--database-schema", help="database.schema.json to compare with")
    crosswalk.add_argument("--suggestions", action="store_true", help="Suggest renames for unmapped columns")

    openapi = subparsers.add_parser("openapi", parents=[common], help="Reconcile OpenAPI documents")
    openapi.add_argument("directory", nargs="?", help="OpenAPI directory (default: NEPA_CROSSWALK_OPENAPI_DIR)")
    openapi.add_argument("--crosswalk", dest="crosswalk_path", help="Crosswalk CSV to compare table paths with")

    schemas = subparsers.add_parser("schemas", parents=[common], help="Check JSON Schema files")
    schemas.add_argument("directory", nargs="?", help="Schema directory (default: NEPA_CROSSWALK_SCHEMA_DIR)")

    return parser


def _configure_logging(level: str) -> None:
    # Set up logging without reconfiguring root if already configured
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.WARNING))


def _write_json(path: str, payload: Any) -> None:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as file:
        json.dump(payload, file, indent=2, ensure_ascii=False)
        file.write("\n")


def _report_payload(run: RunResult) -> Dict[str, Any]:
    return {
        "valid": run.is_valid,
        "reports": [report.to_dict() for report in run.reports],
        "files": [
            {
                "file_path": result.file_path,
                "success": result.success,
                "error_message": result.error_message,
                "records_read": result.records_read,
            }
            for result in run.file_results
        ],
        "record_counts": run.record_counts,
        "suggestions": run.suggestions,
        "metrics": run.metrics,
    }


def _print_run(run: RunResult, max_errors_per_path: int) -> None:
    for result in run.failed_files:
        print(f"ERROR: {result.file_path}: {result.error_message}")

    for report in run.reports:
        print()
        print(report.generate_summary(max_errors_per_path))

    if run.suggestions:
        print("\nMapping suggestions:")
        for table_name, lines in run.suggestions.items():
            print(f"  {table_name}:")
            for line in lines:
                print(f"    {line}")

    if run.record_counts:
        print(f"\nTotal records: {run.total_records}")
        print("Records by type:")
        for collection, count in run.record_counts.items():
            print(f"  {collection}: {count}")

    print()
    if run.is_valid:
        print("All sources are valid.")
    else:
        print("Some errors were found.")


def main(args: Optional[list] = None) -> int:
    """
    Main entry point for the CLI application.

    Args:
        args: Optional command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 valid, 1 invalid, 2 run halted)
    """
    if args is None:
        args = sys.argv[1:]

    parsed = _build_parser().parse_args(args)

    try:
        config_manager = get_config_manager()
        params = config_manager.processing_params
        _configure_logging(parsed.log_level or params.log_level)
        logger = logging.getLogger(__name__)

        config_manager.validate_configuration()
        strict = params.strict_additional_properties if parsed.strict is None else parsed.strict
        workers = parsed.workers or params.workers
        effective = dict(config_manager.get_configuration_summary()['processing'],
                         workers=workers, strict_additional_properties=strict,
                         log_level=(parsed.log_level or params.log_level).upper())
        ProcessingDefaults.log_summary(logger, effective)

        mapping_table = config_manager.load_mapping_table(parsed.contract)
        schema_dict = None
        validator = None
        if parsed.command != "schemas":
            schema_dict = config_manager.load_schema(parsed.schema)
            validator = SchemaValidator(schema_dict, strict_additional_properties=strict,
                                        false_positive_rules=mapping_table.known_false_positives)
        database_schema = None
        if parsed.command == "crosswalk":
            database_schema = config_manager.load_database_schema(parsed.database_schema)
    except (ConfigurationError, SchemaLoadError) as e:
        logging.getLogger(__name__).error(f"Configuration initialization failed: {e}")
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_HALTED

    canonical_schema = CanonicalSchema(schema_dict) if schema_dict is not None else None
    orchestrator = ReconciliationOrchestrator(mapping_table, canonical_schema, validator)
    runner = ReconciliationRunner(orchestrator, workers=workers)
    paths = config_manager.paths

    try:
        if parsed.command == "documents":
            run = runner.run_documents(parsed.paths)
        elif parsed.command == "csv":
            run = runner.run_tabular_directory(parsed.directory or paths.resolve(paths.csv_dir))
        elif parsed.command == "crosswalk":
            run = runner.run_crosswalk(parsed.crosswalk_path or paths.resolve(paths.crosswalk_path),
                                       database_schema, include_suggestions=parsed.suggestions)
        elif parsed.command == "schemas":
            run = runner.run_schema_directory(parsed.directory or paths.resolve(paths.schema_dir))
        else:
            run = runner.run_openapi_directory(parsed.directory or paths.resolve(paths.openapi_dir),
                                               parsed.crosswalk_path)
    except SourceFileError as e:
        logger.error(f"Run halted: {e}")
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_HALTED

    _print_run(run, params.max_errors_per_path)

    if parsed.report:
        _write_json(parsed.report, _report_payload(run))
        logger.info(f"Wrote report to {parsed.report}")

    if parsed.output:
        if not run.documents:
            logger.warning(f"No canonical document produced by '{parsed.command}'; --output ignored")
        else:
            documents = list(run.documents.values())
            _write_json(parsed.output, documents[0] if len(documents) == 1 else run.documents)
            logger.info(f"Wrote canonical document to {parsed.output}")

    return EXIT_VALID if run.is_valid else EXIT_INVALID


if __name__ == "__main__":
    sys.exit(main())
