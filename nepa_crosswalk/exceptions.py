"""
Custom exceptions for the NEPA crosswalk reconciliation system.

This module defines specific exception types for the conditions that halt a
reconciliation run or a single file. Per-record and per-table findings are
never raised; they are collected as ValidationIssue data (see
validation.validation_models).
"""


class NepaCrosswalkError(Exception):
    """Base exception for all NEPA crosswalk related errors."""

    def __init__(self, message: str, source_name: str = None):
        """
        Initialize NEPA crosswalk error.

        Args:
            message: Error description
            source_name: Optional name of the source table, definition or file that caused the error
        """
        super().__init__(message)
        self.source_name = source_name


class SchemaLoadError(NepaCrosswalkError):
    """Exception raised when the canonical (or database) schema cannot be loaded."""

    def __init__(self, message: str, schema_path: str = None):
        """
        Initialize schema load error.

        Args:
            message: Error description
            schema_path: Path of the schema file that failed to load
        """
        super().__init__(message, schema_path)
        self.schema_path = schema_path


class SourceFileError(NepaCrosswalkError):
    """Exception raised when a source file (CSV, YAML, JSON) is missing or unparsable."""

    def __init__(self, message: str, file_path: str = None):
        """
        Initialize source file error.

        Args:
            message: Error description
            file_path: Path of the source file that failed
        """
        super().__init__(message, file_path)
        self.file_path = file_path


class MappingTableError(NepaCrosswalkError):
    """Exception raised when the field mapping contract is invalid or cannot be applied."""
    pass


class DataTransformationError(NepaCrosswalkError):
    """Exception raised when a source record is structurally unusable."""

    def __init__(self, message: str, field_name: str = None, source_value=None,
                 target_type: str = None, source_name: str = None):
        """
        Initialize data transformation error.

        Args:
            message: Error description
            field_name: Name of the field that failed transformation
            source_value: Original value that failed transformation
            target_type: Expected type of the value
            source_name: Optional source table of the record
        """
        super().__init__(message, source_name)
        self.field_name = field_name
        # Keep a short repr for logging
        text = repr(source_value)
        self.source_value = text[:200] + "..." if len(text) > 200 else text
        self.target_type = target_type


class ConfigurationError(NepaCrosswalkError):
    """Exception raised when configuration is invalid or missing."""
    pass

