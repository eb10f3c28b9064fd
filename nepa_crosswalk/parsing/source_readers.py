"""
Source readers for tabular and document inputs.

Implements the tabular-reader collaborator of the reconciliation engine:
    - read_rows: CSV file -> header list + rows of {column: string}
    - read_document: YAML or JSON file -> nested value (YAML dates stay strings)
    - load_database_crosswalk: database crosswalk CSV -> {table: [CrosswalkColumn]}

Every failure to open, decode or parse a file is raised as SourceFileError so
callers can report the file as invalid and carry on with the rest of the run.
"""

import csv
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from ..exceptions import SourceFileError
from ..interfaces import SourceReaderInterface
from ..models import CrosswalkColumn


CROSSWALK_HEADER_ALIASES = {
    "table": ("table_name", "Table", "table"),
    "column": ("column_name", "Column", "column"),
    "data_type": ("data_type", "DataType", "type"),
    "nullable": ("is_nullable", "Nullable", "nullable"),
    "default_value": ("column_default", "Default", "default"),
    "description": ("description", "Description"),
    "constraints": ("constraints", "Constraints"),
}

YAML_SUFFIXES = (".yaml", ".yml")
JSON_SUFFIXES = (".json",)

YAML_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class StringDateLoader(yaml.SafeLoader):
    """SafeLoader that leaves unquoted dates and timestamps as strings, as JSON would."""


StringDateLoader.yaml_implicit_resolvers = {
    first_char: [(tag, pattern) for tag, pattern in resolvers if tag != YAML_TIMESTAMP_TAG]
    for first_char, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_yaml(stream) -> Any:
    """Parse YAML with the safe loader, keeping dates as strings."""
    return yaml.load(stream, Loader=StringDateLoader)



@dataclass
class TabularData:
    """Rows read from one CSV file."""
    path: str
    headers: List[str] = field(default_factory=list)
    rows: List[Dict[str, str]] = field(default_factory=list)


def _first_value(row: Dict[str, Any], aliases) -> Any:
    for alias in aliases:
        value = row.get(alias)
        if value not in (None, ""):
            return value
    return None


class SourceReader(SourceReaderInterface):
    """
    Reads CSV, YAML and JSON source files.

    Usage:
        reader = SourceReader()
        data = reader.read_rows("src/csv/project.csv")
        document = reader.read_document("examples/project.yaml")
    """

    def __init__(self, encoding: str = "utf-8-sig"):
        """
        Initialize the reader.

        Args:
            encoding: Text encoding for every file (utf-8-sig strips a BOM from CSV exports)
        """
        self.logger = logging.getLogger(__name__)
        self.encoding = encoding

    def read_rows(self, path: Union[str, Path]) -> TabularData:
        """
        Read a CSV file into string rows.

        Blank rows are dropped; missing trailing cells read as empty strings.

        Raises:
            SourceFileError: If the file is missing, undecodable or not CSV
        """
        path = Path(path)
        try:
            with open(path, "r", encoding=self.encoding, newline="") as file:
                reader = csv.DictReader(file)
                headers = [name.strip() for name in (reader.fieldnames or [])]
                rows = []
                for raw in reader:
                    if None in raw:
                        raise SourceFileError(
                            f"Row {reader.line_num} of {path.name} has more cells than the header", str(path)
                        )
                    row = {key.strip(): (value if value is not None else "") for key, value in raw.items()}
                    if all(not value.strip() for value in row.values()):
                        continue
                    rows.append(row)
        except FileNotFoundError:
            raise SourceFileError(f"File not found: {path}", str(path))
        except (UnicodeDecodeError, csv.Error) as e:
            raise SourceFileError(f"Failed to parse CSV file {path}: {e}", str(path))
        except OSError as e:
            raise SourceFileError(f"Failed to read CSV file {path}: {e}", str(path))

        self.logger.info(f"Parsed {path.name}: {len(rows)} rows, {len(headers)} columns")
        return TabularData(path=str(path), headers=headers, rows=rows)

    def read_document(self, path: Union[str, Path]) -> Any:
        """
        Read a YAML or JSON document.

        Raises:
            SourceFileError: If the file is missing, has an unsupported suffix or cannot be parsed
        """
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix not in YAML_SUFFIXES + JSON_SUFFIXES:
            raise SourceFileError(f"Unsupported document format: {suffix or '(none)'}", str(path))

        try:
            with open(path, "r", encoding=self.encoding) as file:
                if suffix in YAML_SUFFIXES:
                    document = load_yaml(file)
                else:
                    document = json.load(file)
        except FileNotFoundError:
            raise SourceFileError(f"File not found: {path}", str(path))
        except yaml.YAMLError as e:
            raise SourceFileError(f"Failed to parse YAML file {path}: {e}", str(path))
        except json.JSONDecodeError as e:
            raise SourceFileError(f"Failed to parse JSON file {path}: {e}", str(path))
        except (UnicodeDecodeError, OSError) as e:
            raise SourceFileError(f"Failed to read document {path}: {e}", str(path))

        self.logger.debug(f"Loaded document {path.name}")
        return document

    def load_database_crosswalk(self, path: Union[str, Path]) -> Dict[str, List[CrosswalkColumn]]:
        """
        Parse the database crosswalk CSV into columns grouped by table.

        Header aliases (table_name/Table/table, column_name/Column/column, ...)
        are accepted; rows without a table or column name are skipped.

        Raises:
            SourceFileError: If the file cannot be read
        """
        data = self.read_rows(path)
        crosswalk: Dict[str, List[CrosswalkColumn]] = {}
        skipped = 0

        for row in data.rows:
            table = _first_value(row, CROSSWALK_HEADER_ALIASES["table"])
            column = _first_value(row, CROSSWALK_HEADER_ALIASES["column"])
            if not table or not column:
                skipped += 1
                continue
            crosswalk.setdefault(table, []).append(CrosswalkColumn(
                table=table,
                column=column,
                data_type=_first_value(row, CROSSWALK_HEADER_ALIASES["data_type"]),
                nullable=_first_value(row, CROSSWALK_HEADER_ALIASES["nullable"]),
                default_value=_first_value(row, CROSSWALK_HEADER_ALIASES["default_value"]),
                description=_first_value(row, CROSSWALK_HEADER_ALIASES["description"]) or "",
                constraints=_first_value(row, CROSSWALK_HEADER_ALIASES["constraints"]) or "",
            ))

        if skipped:
            self.logger.warning(f"Skipped {skipped} malformed crosswalk row(s) in {Path(path).name}")
        self.logger.info(f"Loaded {len(crosswalk)} tables from crosswalk {Path(path).name}")
        return crosswalk
