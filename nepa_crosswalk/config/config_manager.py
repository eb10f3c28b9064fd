"""
Centralized configuration management for the NEPA crosswalk reconciler.

This module provides the ConfigManager class that serves as the single source
of truth for file locations (canonical schema, database schema, crosswalk,
OpenAPI and CSV directories, mapping contract), processing parameters and
environment variable handling. Loaded schemas and mapping tables are cached
for the lifetime of the manager.
"""

import os
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..exceptions import ConfigurationError, MappingTableError, SchemaLoadError
from ..interfaces import ConfigurationManagerInterface
from ..mapping.field_mapping_table import DEFAULT_CONTRACT_PATH, FieldMappingTable
from ..parsing.source_readers import load_yaml
from .processing_defaults import ProcessingDefaults


LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _env_flag(name: str, default: bool) -> bool:
    return os.environ.get(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ProcessingParameters:
    """Processing parameters with environment variable support."""
    workers: int = ProcessingDefaults.WORKERS
    strict_additional_properties: bool = ProcessingDefaults.STRICT_ADDITIONAL_PROPERTIES
    log_level: str = ProcessingDefaults.LOG_LEVEL
    max_errors_per_path: int = ProcessingDefaults.MAX_ERRORS_PER_PATH

    @classmethod
    def from_environment(cls) -> 'ProcessingParameters':
        """
        Create processing parameters from environment variables.

        Raises:
            ConfigurationError: If a numeric variable is not an integer
        """
        try:
            workers = int(os.environ.get('NEPA_CROSSWALK_WORKERS', cls.workers))
        except ValueError:
            raise ConfigurationError(
                f"NEPA_CROSSWALK_WORKERS must be an integer, got {os.environ.get('NEPA_CROSSWALK_WORKERS')!r}"
            )
        return cls(
            workers=workers,
            strict_additional_properties=_env_flag('NEPA_CROSSWALK_STRICT_ADDITIONAL_PROPERTIES',
                                                   cls.strict_additional_properties),
            log_level=os.environ.get('NEPA_CROSSWALK_LOG_LEVEL', cls.log_level).upper(),
        )


@dataclass
class ConfigPaths:
    """Configuration file paths with environment variable support."""
    base_config_path: Path = field(default_factory=lambda: Path.cwd())
    schema_path: str = "src/jsonschema/nepa.schema.json"
    database_schema_path: str = "src/jsonschema/database.schema.json"
    crosswalk_path: str = "src/crosswalk/database_crosswalk.csv"
    openapi_dir: str = "src/openapi"
    csv_dir: str = "src/csv"
    schema_dir: str = "src/jsonschema"
    mapping_contract_path: Optional[str] = None

    @classmethod
    def from_environment(cls, base_path: Optional[Union[str, Path]] = None) -> 'ConfigPaths':
        """Create configuration paths from environment variables."""
        if base_path:
            base_config_path = Path(base_path)
        else:
            base_config_path = Path(os.environ.get('NEPA_CROSSWALK_CONFIG_PATH', Path.cwd()))

        return cls(
            base_config_path=base_config_path,
            schema_path=os.environ.get('NEPA_CROSSWALK_SCHEMA_PATH', cls.schema_path),
            database_schema_path=os.environ.get('NEPA_CROSSWALK_DATABASE_SCHEMA_PATH', cls.database_schema_path),
            crosswalk_path=os.environ.get('NEPA_CROSSWALK_CROSSWALK_PATH', cls.crosswalk_path),
            openapi_dir=os.environ.get('NEPA_CROSSWALK_OPENAPI_DIR', cls.openapi_dir),
            csv_dir=os.environ.get('NEPA_CROSSWALK_CSV_DIR', cls.csv_dir),
            schema_dir=os.environ.get('NEPA_CROSSWALK_SCHEMA_DIR', cls.schema_dir),
            mapping_contract_path=os.environ.get('NEPA_CROSSWALK_MAPPING_CONTRACT_PATH', cls.mapping_contract_path),
        )

    def resolve(self, path: Union[str, Path]) -> Path:
        """Resolve a configured path against the base path (absolute paths are kept)."""
        return self.base_config_path / Path(path)


class ConfigManager(ConfigurationManagerInterface):
    """
    Centralized configuration manager serving as single source of truth.

    Usage:
        config = get_config_manager()
        schema = config.load_schema()
        mapping_table = config.load_mapping_table()
    """

    def __init__(self, base_config_path: Optional[Union[str, Path]] = None):
        """
        Initialize the configuration manager.

        Args:
            base_config_path: Base path for configuration files. If None, uses
                              NEPA_CROSSWALK_CONFIG_PATH or the current directory.
        """
        self.logger = logging.getLogger(__name__)

        self.paths = ConfigPaths.from_environment(base_config_path)
        self.processing_params = ProcessingParameters.from_environment()

        self._schema_cache: Dict[str, Dict[str, Any]] = {}
        self._mapping_table_cache: Dict[str, FieldMappingTable] = {}

        self.logger.debug(f"ConfigManager initialized with base path: {self.paths.base_config_path}")

    def load_schema(self, schema_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Load the canonical JSON Schema with caching.

        Args:
            schema_path: Optional path to the schema. If None, uses the configured default.

        Returns:
            Parsed schema document

        Raises:
            SchemaLoadError: If the file is missing, unreadable or not a JSON/YAML object
        """
        full_path = self.paths.resolve(schema_path or self.paths.schema_path)
        return self._load_schema_file(full_path)

    def load_database_schema(self, schema_path: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Load database.schema.json when it exists.

        Returns:
            Parsed database schema, or None when the file is absent

        Raises:
            SchemaLoadError: If the file exists but cannot be parsed
        """
        full_path = self.paths.resolve(schema_path or self.paths.database_schema_path)
        if not full_path.exists():
            self.logger.info(f"Database schema not found, skipping database comparison: {full_path}")
            return None
        return self._load_schema_file(full_path)

    def _load_schema_file(self, full_path: Path) -> Dict[str, Any]:
        cache_key = str(full_path)
        if cache_key in self._schema_cache:
            self.logger.debug(f"Returning cached schema for {full_path}")
            return self._schema_cache[cache_key]

        if not full_path.exists():
            raise SchemaLoadError(f"Schema file not found: {full_path}", str(full_path))

        try:
            with open(full_path, 'r', encoding='utf-8') as file:
                if full_path.suffix.lower() in ['.yaml', '.yml']:
                    schema = load_yaml(file)
                else:
                    schema = json.load(file)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise SchemaLoadError(f"Failed to parse schema file {full_path}: {e}", str(full_path))
        except (OSError, UnicodeDecodeError) as e:
            raise SchemaLoadError(f"Failed to read schema file {full_path}: {e}", str(full_path))

        if not isinstance(schema, dict):
            raise SchemaLoadError(f"Schema file {full_path} does not contain an object", str(full_path))

        self._schema_cache[cache_key] = schema
        self.logger.info(f"Loaded schema from {full_path}")
        return schema

    def load_mapping_table(self, contract_path: Optional[str] = None) -> FieldMappingTable:
        """
        Load the field mapping table with caching.

        Args:
            contract_path: Optional contract path. If None, uses NEPA_CROSSWALK_MAPPING_CONTRACT_PATH
                           or the contract packaged with nepa_crosswalk.

        Raises:
            ConfigurationError: If the contract cannot be loaded or is inconsistent
        """
        contract_path = contract_path or self.paths.mapping_contract_path
        full_path = self.paths.resolve(contract_path) if contract_path else DEFAULT_CONTRACT_PATH
        cache_key = str(full_path)

        if cache_key in self._mapping_table_cache:
            self.logger.debug(f"Returning cached mapping table for {full_path}")
            return self._mapping_table_cache[cache_key]

        try:
            mapping_table = FieldMappingTable.from_file(full_path)
        except MappingTableError as e:
            raise ConfigurationError(f"Failed to load field mapping contract {full_path}: {e}", str(full_path))

        self._mapping_table_cache[cache_key] = mapping_table
        self.logger.info(f"Loaded field mapping contract from {full_path}")
        return mapping_table

    def validate_configuration(self) -> bool:
        """
        Validate processing parameters.

        Raises:
            ConfigurationError: If any parameter is invalid
        """
        errors = []
        if self.processing_params.workers <= 0:
            errors.append("Workers must be greater than 0")
        if self.processing_params.log_level not in LOG_LEVELS:
            errors.append(f"Log level must be one of {', '.join(LOG_LEVELS)}")
        if self.processing_params.max_errors_per_path <= 0:
            errors.append("Max errors per path must be greater than 0")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

        self.logger.debug("Configuration validation passed")
        return True

    def get_configuration_summary(self) -> Dict[str, Any]:
        """
        Get a summary of all configuration settings.

        Returns:
            Dictionary containing configuration summary
        """
        return {
            'processing': {
                'workers': self.processing_params.workers,
                'strict_additional_properties': self.processing_params.strict_additional_properties,
                'log_level': self.processing_params.log_level,
                'max_errors_per_path': self.processing_params.max_errors_per_path,
            },
            'paths': {
                'base_config_path': str(self.paths.base_config_path),
                'schema_path': self.paths.schema_path,
                'database_schema_path': self.paths.database_schema_path,
                'crosswalk_path': self.paths.crosswalk_path,
                'openapi_dir': self.paths.openapi_dir,
                'csv_dir': self.paths.csv_dir,
                'schema_dir': self.paths.schema_dir,
                'mapping_contract_path': self.paths.mapping_contract_path or str(DEFAULT_CONTRACT_PATH),
            }
        }


# Global configuration manager instance
_global_config_manager: Optional[ConfigManager] = None


def get_config_manager(base_config_path: Optional[Union[str, Path]] = None) -> ConfigManager:
    """
    Get the global configuration manager instance.

    Args:
        base_config_path: Base path for configuration files. Only used on first call.

    Returns:
        Global ConfigManager instance
    """
    global _global_config_manager

    if _global_config_manager is None:
        _global_config_manager = ConfigManager(base_config_path)

    return _global_config_manager


def reset_config_manager() -> None:
    """Reset the global configuration manager instance."""
    global _global_config_manager
    _global_config_manager = None
