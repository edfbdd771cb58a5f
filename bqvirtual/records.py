"""Host-side records and the row <-> record translation through the registry."""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from bqvirtual.codec import coerce, to_row_value
from bqvirtual.errors import MappingNotFoundError
from bqvirtual.mapping import FieldMappingRegistry


@dataclass
class EntityReference:
    """Pointer to a host record: entity name + id."""
    logical_name: str
    id: Any = None


@dataclass
class HostRecord:
    """One record on the host side: entity name, identity, attribute values."""
    entity_name: str
    id: Optional[uuid.UUID] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, name: str) -> Any:
        return self.attributes[name]

    def __contains__(self, name: object) -> bool:
        return name in self.attributes

    def get(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)

    def to_reference(self) -> EntityReference:
        return EntityReference(logical_name=self.entity_name, id=self.id)


def record_from_row(
    row: Mapping[str, Any],
    registry: FieldMappingRegistry,
    entity_name: str,
    logger: logging.Logger,
) -> HostRecord:
    """
    Map one BigQuery row (column -> cell) to a HostRecord.

    Unmapped columns and cells that do not coerce are skipped with a log
    line. A primary-key cell that coerces to a UUID also sets record.id.
    """
    record = HostRecord(entity_name=entity_name)

    for column, cell in row.items():
        try:
            mapping = registry.get_by_source(column)
        except MappingNotFoundError as e:
            logger.debug(str(e))
            continue

        value = coerce(cell, mapping.data_type, from_remote=True)
        if value is None:
            if cell is not None:
                logger.warning(
                    f"Could not convert '{cell}' to {mapping.data_type.value} for field '{column}'"
                )
            continue

        if mapping.is_primary_key and isinstance(value, uuid.UUID):
            record.id = value
            logger.debug(f"Set record id to {value} (from primary key field: {column})")

        record.attributes[mapping.destination_name] = value

    return record


def row_from_attributes(
    attributes: Mapping[str, Any],
    registry: FieldMappingRegistry,
    logger: logging.Logger,
) -> Dict[str, Any]:
    """
    Map host attributes to an insertAll row (column -> JSON value).

    Attributes with no mapping, or whose value does not coerce to the
    column's type, are left out.
    """
    row: Dict[str, Any] = {}

    for name, raw in attributes.items():
        mapping = registry.mapping_for_destination(name)
        if mapping is None:
            logger.debug(f"No mapping found for host attribute: {name}")
            continue

        value = coerce(raw, mapping.data_type)
        if value is None:
            if raw is not None:
                logger.warning(
                    f"Dropping '{name}': '{raw}' is not a valid {mapping.data_type.value}"
                )
            continue

        row[mapping.source_name] = to_row_value(value, mapping.data_type)
        logger.debug(f"Mapped field: {name} -> {mapping.source_name}")

    return row
