"""
Centralized configuration defaults for reconciliation runs.

This module defines operational configuration constants used throughout the
system. Domain data (renames, enum translations, structural repair defaults)
lives in the field mapping contract, not here. CLI arguments and environment
variables can override these defaults at runtime.
"""

from typing import Optional


class ProcessingDefaults:
    """
    Centralized operational configuration for reconciliation.

    All values are defaults that can be overridden:
    - nepa_crosswalk csv src/csv --workers 8
    - nepa_crosswalk documents examples/*.yaml --strict --log-level DEBUG
    """

    # Parallelization (thread pool used for source file reads)
    WORKERS = 4

    # Schema validation
    STRICT_ADDITIONAL_PROPERTIES = False  # True rejects properties the schema does not declare

    # Reporting
    MAX_ERRORS_PER_PATH = 3  # Schema errors listed per JSON path in text summaries

    # Logging
    LOG_LEVEL = "WARNING"  # Default logging level (CRITICAL, ERROR, WARNING, INFO, DEBUG)

    @classmethod
    def to_dict(cls) -> dict:
        """Defaults keyed by the lower-case parameter names ProcessingParameters uses."""
        return {
            key.lower(): getattr(cls, key)
            for key in dir(cls)
            if not key.startswith('_') and key.isupper()
        }

    @classmethod
    def log_summary(cls, logger, effective: Optional[dict] = None) -> None:
        """
        Log the processing settings of a run at DEBUG level.

        Args:
            logger: Logger to write to
            effective: Settings in force for the run; values that differ from
                       the default are marked as overridden
        """
        effective = effective or {}
        lines = []
        for name, default in sorted(cls.to_dict().items()):
            value = effective.get(name, default)
            note = f" (default {default})" if value != default else ""
            lines.append(f"  {name}: {value}{note}")
        logger.debug("Processing settings:\n" + "\n".join(lines))
