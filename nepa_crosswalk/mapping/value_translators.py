"""
Enumerated value translators.

Each translator is a pure function from an arbitrary source value to the
canonical enum value. Unknown inputs are preserved (lower-cased for statuses,
unchanged for document and engagement types) so that unrecognized values show
up in coverage and schema validation instead of failing the transform.

The translation tables themselves live in the field mapping contract; the
module-level helpers below use the packaged default contract.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

FALLBACK_LOWERCASE = "lowercase"
FALLBACK_PASSTHROUGH = "passthrough"


@dataclass(frozen=True)
class EnumTranslation:
    """
    One enumerated value translation table.

    Attributes:
        name: Translator name (status, document_type, engagement_type, event_status)
        values: Source value -> canonical value
        fallback: 'lowercase' or 'passthrough' for values not in the table
        ignore_case: Match source values regardless of letter case
    """
    name: str
    values: Mapping[str, str]
    fallback: str = FALLBACK_PASSTHROUGH
    ignore_case: bool = False

    def __post_init__(self):
        if self.fallback not in (FALLBACK_LOWERCASE, FALLBACK_PASSTHROUGH):
            raise ValueError(f"Unsupported fallback '{self.fallback}' for translator '{self.name}'")
        # Freeze the table even when a plain dict was passed in
        if not isinstance(self.values, MappingProxyType):
            object.__setattr__(self, "values", MappingProxyType(dict(self.values)))
        object.__setattr__(self, "_folded", MappingProxyType(
            {key.casefold(): canonical for key, canonical in self.values.items()} if self.ignore_case else {}
        ))

    def translate(self, value: Any) -> Any:
        """
        Translate a source value to its canonical enum value.

        None and non-string values are returned untouched; null handling is
        the transformer's job.
        """
        if not isinstance(value, str):
            return value
        if value in self.values:
            return self.values[value]
        if self.ignore_case and value.strip().casefold() in self._folded:
            return self._folded[value.strip().casefold()]
        if self.fallback == FALLBACK_LOWERCASE:
            return value.lower()
        return value


def _default_translation(name: str) -> EnumTranslation:
    from .field_mapping_table import get_default_mapping_table
    return get_default_mapping_table().get_translation(name)


def map_status(value: Any) -> Any:
    """Map a project/process status ('In Progress' -> 'in-progress')."""
    return _default_translation("status").translate(value)


def map_document_type(value: Any) -> Any:
    """Map a document type abbreviation ('FEIS' -> 'Final EIS')."""
    return _default_translation("document_type").translate(value)


def map_engagement_type(value: Any) -> Any:
    """Map an engagement type ('Hearing' -> 'public hearing', any letter case)."""
    return _default_translation("engagement_type").translate(value)


def map_event_status(value: Any) -> Any:
    """Map an engagement event status ('Scheduled' -> 'scheduled')."""
    return _default_translation("event_status").translate(value)
