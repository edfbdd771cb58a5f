"""
CRUD adapters: host operations -> BigQuery REST calls.

VirtualTableAdapter holds no state of its own beyond its collaborators:
- RemoteQueryExecutor (which owns the TokenManager)
- FieldMappingRegistry
- a logger as the tracing sink

Every operation logs a start marker, an end marker, and the failure message
before re-raising. Nothing is retried and nothing is rolled back.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional, Tuple

from bqvirtual.codec import format_for_query
from bqvirtual.config import Configuration
from bqvirtual.errors import ValidationError
from bqvirtual.executor import RemoteQueryExecutor
from bqvirtual.mapping import FieldMapping, FieldMappingRegistry, FieldType
from bqvirtual.query_builder import (
    build_assignments,
    build_delete,
    build_select_all,
    build_select_by_key,
    build_update,
)
from bqvirtual.records import HostRecord, record_from_row, row_from_attributes


DEFAULT_ENTITY_NAME = "new_bqschedule"


class VirtualTableAdapter:
    """Create / Retrieve / RetrieveMultiple / Update / Delete for one remote table."""

    def __init__(
        self,
        executor: RemoteQueryExecutor,
        registry: FieldMappingRegistry,
        entity_name: str = DEFAULT_ENTITY_NAME,
        logger: Optional[logging.Logger] = None,
    ):
        self.executor = executor
        self.registry = registry
        self.entity_name = entity_name
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(
        cls,
        config: Configuration,
        registry: FieldMappingRegistry,
        entity_name: str = DEFAULT_ENTITY_NAME,
        session=None,
        token_cache=None,
        logger: Optional[logging.Logger] = None,
    ) -> "VirtualTableAdapter":
        executor = RemoteQueryExecutor(config, session=session, token_cache=token_cache, logger=logger)
        return cls(executor, registry, entity_name=entity_name, logger=logger)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @contextmanager
    def _trace(self, operation: str, entity_name: str, record_id: Any = None) -> Iterator[None]:
        target = f"entity '{entity_name}'"
        if record_id is not None:
            target += f" with Id '{record_id}'"
        extra = {"operation": operation}
        self.logger.info(f"{operation} started.", extra=extra)
        try:
            yield
        except Exception as e:
            self.logger.error(f"{operation} operation failed for {target}: {e}", extra=extra)
            raise
        self.logger.info(f"{operation} operation succeeded for {target}.", extra=extra)

    def _primary_key(self) -> FieldMapping:
        mapping = self.registry.primary_key_mapping()
        if mapping is None:
            raise ValidationError("No primary key field mapping found")
        return mapping

    def _key_literal(self, record_id: Any) -> Tuple[FieldMapping, str]:
        if record_id is None or str(record_id).strip() == "":
            raise ValidationError("A record identifier is required for this operation")
        pk = self._primary_key()
        return pk, format_for_query(record_id, pk.data_type)

    # -------------------------------------------------------------------------
    # Statement builders (no I/O)
    # -------------------------------------------------------------------------

    def select_query(self, record_id: Any) -> str:
        pk, literal = self._key_literal(record_id)
        return build_select_by_key(self.executor.table_reference, pk.source_name, literal)

    def select_all_query(self) -> str:
        return build_select_all(self.executor.table_reference)

    def update_query(self, record_id: Any, attributes: Mapping[str, Any]) -> Optional[str]:
        """UPDATE statement, or None when no attribute maps to a column."""
        pk, literal = self._key_literal(record_id)
        assignments = build_assignments(attributes, self.registry, self.logger)
        if not assignments:
            return None
        return build_update(self.executor.table_reference, assignments, pk.source_name, literal)

    def delete_query(self, record_id: Any) -> str:
        pk, literal = self._key_literal(record_id)
        return build_delete(self.executor.table_reference, pk.source_name, literal)

    def insert_payload(self, attributes: Mapping[str, Any]) -> Tuple[dict, uuid.UUID]:
        """insertAll row for attributes plus a freshly generated primary key."""
        pk = self._primary_key()
        if pk.data_type not in (FieldType.GUID, FieldType.STRING):
            raise ValidationError(
                f"Cannot generate an identifier for {pk.data_type.value} primary key '{pk.source_name}'"
            )
        row = row_from_attributes(attributes, self.registry, self.logger)
        new_id = uuid.uuid4()
        row[pk.source_name] = str(new_id)
        self.logger.info(f"Generated new {pk.source_name}: {new_id}")
        return row, new_id

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def create(self, attributes: Mapping[str, Any], entity_name: Optional[str] = None) -> HostRecord:
        """
        Insert a new row.

        Args:
            attributes: Host attributes to map onto columns
            entity_name: Logical name for the returned record (default: self.entity_name)

        Returns:
            HostRecord whose id is the generated primary key

        Raises:
            ValidationError: If the registry has no primary key mapping
            RemoteApiError: If the insert fails
        """
        entity_name = entity_name or self.entity_name
        with self._trace("Create", entity_name):
            row, new_id = self.insert_payload(attributes)
            self.logger.info(f"Inserting row with {len(row)} fields into BigQuery")
            self.executor.insert_row(self.executor.config.table_id, row)

            record = HostRecord(entity_name=entity_name, id=new_id, attributes=dict(attributes))
            record.attributes[self._primary_key().destination_name] = new_id
            return record

    def retrieve(self, record_id: Any, entity_name: Optional[str] = None) -> Optional[HostRecord]:
        """Fetch one record by id; None if the row does not exist."""
        entity_name = entity_name or self.entity_name
        with self._trace("Retrieve", entity_name, record_id):
            result = self.executor.execute_query(self.select_query(record_id))
            rows = result.to_dicts()
            if not rows:
                self.logger.info(f"No row found for id '{record_id}'")
                return None
            return record_from_row(rows[0], self.registry, entity_name, self.logger)

    def retrieve_multiple(self, entity_name: Optional[str] = None) -> List[HostRecord]:
        """Fetch every row of the table."""
        entity_name = entity_name or self.entity_name
        with self._trace("RetrieveMultiple", entity_name):
            result = self.executor.execute_query(self.select_all_query())
            records = [
                record_from_row(row, self.registry, entity_name, self.logger)
                for row in result.to_dicts()
            ]
            self.logger.info(f"Total records retrieved: {len(records)}")
            return records

    def update(self, record_id: Any, attributes: Mapping[str, Any], entity_name: Optional[str] = None) -> None:
        """
        Update mapped attributes of one row.

        When no attribute maps to a column there is nothing to SET, and no
        statement is sent.
        """
        with self._trace("Update", entity_name or self.entity_name, record_id):
            query = self.update_query(record_id, attributes)
            if query is None:
                self.logger.info("No mapped attributes to update; skipping UPDATE")
                return
            self.executor.execute_query(query)

    def delete(self, record_id: Any, entity_name: Optional[str] = None) -> None:
        with self._trace("Delete", entity_name or self.entity_name, record_id):
            self.executor.execute_query(self.delete_query(record_id))
