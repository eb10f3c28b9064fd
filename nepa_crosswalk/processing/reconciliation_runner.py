"""
Reconciliation Runner - file level driver for reconciliation runs.

Reads source files concurrently through a thread pool and feeds them, in
submission order, to the ReconciliationOrchestrator. Reading is the only
concurrent step: every read returns a WorkResult and a single accumulator in
the calling thread builds the reports, so output order never depends on
which worker finished first.

A missing or malformed source file becomes an invalid FileResult and is
excluded from the run; it is never retried. Errors loading the schema or the
mapping contract happen before the runner is built and halt the run.
"""

import logging
import time
from dataclasses import dataclass, field
from multiprocessing.pool import ThreadPool
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..config.processing_defaults import ProcessingDefaults
from ..exceptions import SourceFileError
from ..interfaces import SourceReaderInterface
from ..models import CrosswalkColumn, FileResult, ReconciliationReport
from ..monitoring.performance_monitor import PerformanceMonitor
from ..parsing.source_readers import SourceReader, TabularData
from .reconciliation_orchestrator import ReconciliationOrchestrator


DOCUMENT_SUFFIXES = (".yaml", ".yml", ".json")


@dataclass
class WorkItem:
    """A source file queued for reading."""
    sequence: int
    path: Path


@dataclass
class WorkResult:
    """Result of reading one work item."""
    sequence: int
    path: Path
    success: bool
    payload: Any = None
    error_message: Optional[str] = None
    read_time: float = 0.0


@dataclass
class RunResult:
    """
    Outcome of a reconciliation run.

    Attributes:
        reports: Reconciliation reports, in input order
        file_results: One entry per source file read (or skipped as invalid)
        is_valid: True when every file was read and every report is valid
        metrics: Performance summary from the PerformanceMonitor
        documents: Canonical documents keyed by source name (documents and CSV runs)
        suggestions: Rename suggestions per table (crosswalk runs on request)
        record_counts: Canonical records per collection summed over every report
    """
    reports: List[ReconciliationReport] = field(default_factory=list)
    file_results: List[FileResult] = field(default_factory=list)
    is_valid: bool = True
    metrics: Dict[str, Any] = field(default_factory=dict)
    documents: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    suggestions: Dict[str, List[str]] = field(default_factory=dict)
    record_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def total_records(self) -> int:
        return sum(self.record_counts.values())

    @property
    def failed_files(self) -> List[FileResult]:
        return [result for result in self.file_results if not result.success]


class ReconciliationRunner:
    """
    Drives the orchestrator over files and directories.

    Usage:
        runner = ReconciliationRunner(orchestrator, workers=4)
        result = runner.run_tabular_directory("src/csv")
        for report in result.reports:
            print(report.generate_summary())
    """

    def __init__(self, orchestrator: ReconciliationOrchestrator,
                 reader: Optional[SourceReaderInterface] = None,
                 workers: Optional[int] = None,
                 monitor: Optional[PerformanceMonitor] = None):
        """
        Initialize the runner.

        Args:
            orchestrator: Reconciliation orchestrator
            reader: Source reader (SourceReader by default)
            workers: Thread pool size for file reads (ProcessingDefaults.WORKERS by default)
            monitor: Performance monitor (a new one by default)
        """
        self.logger = logging.getLogger(__name__)
        self.orchestrator = orchestrator
        self.reader = reader or SourceReader()
        self.workers = max(1, workers or ProcessingDefaults.WORKERS)
        self.monitor = monitor or PerformanceMonitor()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _read_all(self, paths: Sequence[Path], read: Callable[[Path], Any]) -> List[WorkResult]:
        """Read every path through the thread pool; results come back in submission order."""
        work_items = [WorkItem(sequence=i, path=Path(path)) for i, path in enumerate(paths, 1)]
        if not work_items:
            return []

        self.monitor.start_stage('reading')
        with ThreadPool(processes=min(self.workers, len(work_items))) as pool:
            async_results = [pool.apply_async(_read_work_item, (read, item)) for item in work_items]
            results = [async_result.get() for async_result in async_results]
        self.monitor.end_stage('reading')
        self.monitor.record_metric('read_workers', min(self.workers, len(work_items)))
        self.monitor.record_metric('file_read_seconds', sum(result.read_time for result in results))

        failed = [result for result in results if not result.success]
        self.logger.info(f"Read {len(results) - len(failed)}/{len(results)} file(s) with {self.workers} worker(s)")
        return results

    def _failed_file(self, result: WorkResult) -> FileResult:
        self.logger.warning(f"Excluded {result.path}: {result.error_message}")
        self.monitor.record_file(success=False)
        return FileResult(file_path=str(result.path), success=False, error_message=result.error_message)

    @staticmethod
    def _list_directory(directory: Union[str, Path], suffixes: Sequence[str]) -> List[Path]:
        directory = Path(directory)
        if not directory.is_dir():
            raise SourceFileError(f"Directory not found: {directory}", str(directory))
        return sorted(path for path in directory.iterdir()
                      if path.is_file() and path.suffix.lower() in suffixes)

    def _finish(self, run: RunResult) -> RunResult:
        run.is_valid = all(result.success for result in run.file_results) and all(
            report.is_valid for report in run.reports)
        for report in run.reports:
            for collection, count in report.record_counts.items():
                run.record_counts[collection] = run.record_counts.get(collection, 0) + count
        run.metrics = self.monitor.stop_monitoring()
        return run

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def run_documents(self, paths: Sequence[Union[str, Path]]) -> RunResult:
        """
        Reconcile each YAML/JSON document on its own.

        Args:
            paths: Document files

        Returns:
            RunResult with one report and one canonical document per readable file
        """
        self.monitor.start_monitoring()
        run = RunResult()

        for result in self._read_all([Path(path) for path in paths], self.reader.read_document):
            if not result.success:
                run.file_results.append(self._failed_file(result))
                continue

            self.monitor.start_stage('reconciling')
            outcome = self.orchestrator.reconcile_document(result.payload, str(result.path))
            self.monitor.end_stage('reconciling')

            run.reports.append(outcome.report)
            run.documents[str(result.path)] = outcome.document
            run.file_results.append(FileResult(file_path=str(result.path), success=True, report=outcome.report,
                                               records_read=outcome.report.records_transformed))
            self.monitor.record_file(success=True, records=outcome.report.records_transformed)

        return self._finish(run)

    def run_tabular_directory(self, directory: Union[str, Path]) -> RunResult:
        """
        Merge every known CSV file of a directory into one canonical document.

        Files whose name is not bound to a source table are skipped with a
        warning. Several files bound to the same table are concatenated in
        file name order.

        Raises:
            SourceFileError: If the directory does not exist
        """
        mapping_table = self.orchestrator.mapping_table
        listed = self._list_directory(directory, (".csv",))
        self.monitor.start_monitoring()
        run = RunResult()

        csv_files = []
        for path in listed:
            if mapping_table.tabular_table_for(path.name) is None:
                self.logger.warning(f"Skipping unknown CSV file: {path.name}")
                continue
            csv_files.append(path)

        tables: Dict[str, TabularData] = {}
        for result in self._read_all(csv_files, self.reader.read_rows):
            if not result.success:
                run.file_results.append(self._failed_file(result))
                continue

            data: TabularData = result.payload
            table_name = mapping_table.tabular_table_for(result.path.name)
            merged = tables.setdefault(table_name, TabularData(path=data.path))
            merged.headers.extend(header for header in data.headers if header not in merged.headers)
            merged.rows.extend(data.rows)

            run.file_results.append(FileResult(file_path=str(result.path), success=True, records_read=len(data.rows)))
            self.monitor.record_file(success=True, records=len(data.rows))

        self.monitor.start_stage('reconciling')
        outcome = self.orchestrator.reconcile_tables(tables, str(directory))
        self.monitor.end_stage('reconciling')

        run.reports.append(outcome.report)
        run.documents[str(directory)] = outcome.document
        return self._finish(run)

    def run_crosswalk(self, path: Union[str, Path], database_schema: Optional[Dict[str, Any]] = None,
                      include_suggestions: bool = False) -> RunResult:
        """
        Reconcile the database crosswalk CSV.

        Args:
            path: Crosswalk CSV
            database_schema: Parsed database.schema.json, compared when given
            include_suggestions: Also collect rename suggestions for unmapped columns
        """
        self.monitor.start_monitoring()
        run = RunResult()

        for result in self._read_all([Path(path)], self.reader.load_database_crosswalk):
            if not result.success:
                run.file_results.append(self._failed_file(result))
                continue

            crosswalk: Dict[str, List[CrosswalkColumn]] = result.payload
            self.monitor.start_stage('reconciling')
            report = self.orchestrator.reconcile_crosswalk(crosswalk, database_schema, str(result.path))
            self.monitor.end_stage('reconciling')

            if include_suggestions:
                run.suggestions = self.orchestrator.suggest_crosswalk_mappings(crosswalk)

            rows = sum(len(columns) for columns in crosswalk.values())
            run.reports.append(report)
            run.file_results.append(FileResult(file_path=str(result.path), success=True, report=report,
                                               records_read=rows))
            self.monitor.record_file(success=True, records=rows)

        return self._finish(run)

    def run_openapi_directory(self, directory: Union[str, Path],
                              crosswalk_path: Optional[Union[str, Path]] = None) -> RunResult:
        """
        Reconcile every OpenAPI document (YAML or JSON) of a directory.

        Args:
            directory: Directory holding OpenAPI files
            crosswalk_path: Database crosswalk CSV; table paths are compared with it when readable

        Raises:
            SourceFileError: If the directory does not exist
        """
        paths = self._list_directory(directory, DOCUMENT_SUFFIXES)
        self.monitor.start_monitoring()
        run = RunResult()

        crosswalk = None
        if crosswalk_path is not None:
            try:
                crosswalk = self.reader.load_database_crosswalk(crosswalk_path)
            except SourceFileError as e:
                self.logger.warning(f"Crosswalk unavailable, skipping table comparison: {e}")
                run.file_results.append(FileResult(file_path=str(crosswalk_path), success=False,
                                                   error_message=str(e)))

        for result in self._read_all(paths, self.reader.read_document):
            if not result.success:
                run.file_results.append(self._failed_file(result))
                continue

            self.monitor.start_stage('reconciling')
            report = self.orchestrator.reconcile_openapi(result.payload, str(result.path), crosswalk)
            self.monitor.end_stage('reconciling')

            run.reports.append(report)
            run.file_results.append(FileResult(file_path=str(result.path), success=True, report=report))
            self.monitor.record_file(success=True)

        return self._finish(run)

    def run_schema_directory(self, directory: Union[str, Path]) -> RunResult:
        """
        Check every JSON Schema file (JSON or YAML) of a directory against its meta-schema.

        Raises:
            SourceFileError: If the directory does not exist
        """
        paths = self._list_directory(directory, DOCUMENT_SUFFIXES)
        self.monitor.start_monitoring()
        run = RunResult()

        for result in self._read_all(paths, self.reader.read_document):
            if not result.success:
                run.file_results.append(self._failed_file(result))
                continue

            self.monitor.start_stage('checking')
            report = self.orchestrator.reconcile_schema(result.payload, str(result.path))
            self.monitor.end_stage('checking')

            run.reports.append(report)
            run.file_results.append(FileResult(file_path=str(result.path), success=True, report=report))
            self.monitor.record_file(success=True)

        return self._finish(run)


def _read_work_item(read: Callable[[Path], Any], work_item: WorkItem) -> WorkResult:
    """Read one file in a pool thread; SourceFileError becomes a failed WorkResult."""
    start = time.time()
    try:
        payload = read(work_item.path)
    except SourceFileError as e:
        return WorkResult(sequence=work_item.sequence, path=work_item.path, success=False,
                          error_message=str(e), read_time=time.time() - start)
    return WorkResult(sequence=work_item.sequence, path=work_item.path, success=True,
                      payload=payload, read_time=time.time() - start)
