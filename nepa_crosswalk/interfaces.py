"""
Abstract interfaces for the NEPA crosswalk reconciliation system.

This module defines the contracts of the collaborators the reconciliation
engine consumes (source reader, document validator, configuration manager,
performance monitor) so they can be swapped in tests or injected.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .validation.validation_models import SchemaValidationOutcome


class SourceReaderInterface(ABC):
    """Abstract interface for tabular and document readers."""

    @abstractmethod
    def read_rows(self, path: Union[str, Path]) -> Any:
        """
        Read a tabular (CSV) file.

        Args:
            path: File to read

        Returns:
            Headers and rows of {column name: string}

        Raises:
            SourceFileError: If the file is missing or malformed
        """
        pass

    @abstractmethod
    def read_document(self, path: Union[str, Path]) -> Any:
        """
        Read a YAML or JSON document.

        Args:
            path: File to read

        Returns:
            Parsed nested value

        Raises:
            SourceFileError: If the file is missing or malformed
        """
        pass

    @abstractmethod
    def load_database_crosswalk(self, path: Union[str, Path]) -> Dict[str, Any]:
        """
        Read the database crosswalk CSV.

        Args:
            path: Crosswalk file

        Returns:
            {table name: crosswalk columns}

        Raises:
            SourceFileError: If the file is missing or malformed
        """
        pass


class DocumentValidatorInterface(ABC):
    """Abstract interface for the validating function over canonical documents."""

    @abstractmethod
    def validate(self, document: Any) -> SchemaValidationOutcome:
        """
        Validate a canonical document.

        Args:
            document: Canonical document

        Returns:
            Pass/fail plus structured errors
        """
        pass


class ConfigurationManagerInterface(ABC):
    """Abstract interface for configuration management."""

    @abstractmethod
    def load_schema(self, schema_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Load the canonical JSON Schema.

        Args:
            schema_path: Path to the schema. If None, uses the configured default.

        Returns:
            Parsed schema document

        Raises:
            SchemaLoadError: If the schema cannot be read or parsed
        """
        pass

    @abstractmethod
    def load_mapping_table(self, contract_path: Optional[str] = None) -> Any:
        """
        Load the field mapping table.

        Args:
            contract_path: Path to a mapping contract. If None, uses the packaged contract.

        Returns:
            FieldMappingTable instance
        """
        pass


class PerformanceMonitorInterface(ABC):
    """Abstract interface for performance monitoring."""

    @abstractmethod
    def start_monitoring(self) -> None:
        """Start performance monitoring."""
        pass

    @abstractmethod
    def stop_monitoring(self) -> Dict[str, Any]:
        """
        Stop monitoring and return the collected metrics.

        Returns:
            Dictionary of performance metrics
        """
        pass

    @abstractmethod
    def record_metric(self, metric_name: str, value: Any) -> None:
        """
        Record a custom metric.

        Args:
            metric_name: Name of the metric
            value: Metric value
        """
        pass
