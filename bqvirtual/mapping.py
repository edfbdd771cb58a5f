"""
Field mapping registry: host attribute names <-> BigQuery column names.

The registry is built once (from code or from the field_mappings section of
config.yaml) and never mutated afterwards. Lookups by source (BigQuery
column) are case-insensitive; lookups by destination (host attribute) are a
linear scan, which is fine for a table of a few dozen columns.

At most one entry may be the primary key. Its column is the WHERE key for
retrieve/update/delete, and its value becomes the host record's id.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Optional

from bqvirtual.errors import MappingNotFoundError, ValidationError


class FieldType(str, Enum):
    STRING = "String"
    INTEGER = "Integer"
    GUID = "Guid"
    DATETIME = "DateTime"

    @classmethod
    def parse(cls, name: str) -> "FieldType":
        """Case-insensitive lookup by value or member name."""
        for member in cls:
            if name.lower() in (member.value.lower(), member.name.lower()):
                return member
        raise ValidationError(f"Unknown field type: {name}")


@dataclass(frozen=True)
class FieldMapping:
    """One column <-> attribute pair."""
    source_name: str
    destination_name: str
    data_type: FieldType = FieldType.STRING
    is_primary_key: bool = False


class FieldMappingRegistry:
    """Immutable, case-insensitive set of FieldMapping entries."""

    def __init__(self, mappings: Iterable[FieldMapping]):
        by_source: Dict[str, FieldMapping] = {}
        primary_keys: List[FieldMapping] = []

        for mapping in mappings:
            key = mapping.source_name.lower()
            if key in by_source:
                raise ValidationError(f"Duplicate field mapping for column: {mapping.source_name}")
            by_source[key] = mapping
            if mapping.is_primary_key:
                primary_keys.append(mapping)

        if len(primary_keys) > 1:
            names = [m.source_name for m in primary_keys]
            raise ValidationError(f"Only one primary key mapping is allowed, found: {names}")

        self._by_source = MappingProxyType(by_source)
        self._mappings = tuple(by_source.values())
        self._primary_key = primary_keys[0] if primary_keys else None

    @classmethod
    def from_config(cls, entries: Iterable[Dict[str, Any]]) -> "FieldMappingRegistry":
        """
        Build from config.yaml field_mappings entries.

        Each entry: {source: str, destination: str, type: str = "String",
        primary_key: bool = False}
        """
        mappings = []
        for i, entry in enumerate(entries):
            try:
                source = entry["source"]
                destination = entry["destination"]
            except (KeyError, TypeError):
                raise ValidationError(f"field_mappings[{i}] needs 'source' and 'destination'")
            mappings.append(FieldMapping(
                source_name=str(source),
                destination_name=str(destination),
                data_type=FieldType.parse(str(entry.get("type", "String"))),
                is_primary_key=bool(entry.get("primary_key", False)),
            ))
        return cls(mappings)

    def lookup_by_source(self, name: str) -> Optional[FieldMapping]:
        return self._by_source.get(name.lower())

    def get_by_source(self, name: str) -> FieldMapping:
        """Like lookup_by_source, but raises MappingNotFoundError."""
        mapping = self.lookup_by_source(name)
        if mapping is None:
            raise MappingNotFoundError(name)
        return mapping

    def lookup_by_destination(self, name: str) -> Optional[str]:
        """Return the source column for a host attribute, or None."""
        mapping = self.mapping_for_destination(name)
        return mapping.source_name if mapping else None

    def mapping_for_destination(self, name: str) -> Optional[FieldMapping]:
        lowered = name.lower()
        for mapping in self._mappings:
            if mapping.destination_name.lower() == lowered:
                return mapping
        return None

    def primary_key_mapping(self) -> Optional[FieldMapping]:
        return self._primary_key

    def __iter__(self) -> Iterator[FieldMapping]:
        return iter(self._mappings)

    def __len__(self) -> int:
        return len(self._mappings)

    def __contains__(self, source_name: object) -> bool:
        return isinstance(source_name, str) and source_name.lower() in self._by_source

    def __repr__(self) -> str:
        pk = self._primary_key.source_name if self._primary_key else None
        return f"FieldMappingRegistry(fields={len(self)}, primary_key={pk})"


def schedule_registry() -> FieldMappingRegistry:
    """Mappings for the baseball schedule table the adapter was first deployed on."""
    return FieldMappingRegistry([
        FieldMapping("row_id", "new_bqscheduleid", FieldType.GUID, is_primary_key=True),
        FieldMapping("bq_name", "new_name", FieldType.STRING),
        FieldMapping("attendance", "new_attendance", FieldType.INTEGER),
        FieldMapping("awayTeamId", "new_awayteamid", FieldType.STRING),
        FieldMapping("awayTeamName", "new_awayteamname", FieldType.STRING),
        FieldMapping("created", "new_created", FieldType.DATETIME),
        FieldMapping("dayNight", "new_daynight", FieldType.STRING),
        FieldMapping("duration", "new_gameduration", FieldType.STRING),
        FieldMapping("duration_minutes", "new_gamedurationminutes", FieldType.INTEGER),
        FieldMapping("gameId", "new_gameid", FieldType.STRING),
        FieldMapping("gameNumber", "new_gamenumber", FieldType.INTEGER),
        FieldMapping("startTime", "new_gamestarttime", FieldType.DATETIME),
        FieldMapping("status", "new_gamestatus", FieldType.STRING),
        FieldMapping("homeTeamId", "new_hometeamid", FieldType.STRING),
        FieldMapping("homeTeamName", "new_hometeamname", FieldType.STRING),
        FieldMapping("seasonId", "new_seasonid", FieldType.STRING),
        FieldMapping("type", "new_type", FieldType.STRING),
        FieldMapping("year", "new_year", FieldType.INTEGER),
    ])
