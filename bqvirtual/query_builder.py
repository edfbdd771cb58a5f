"""
Query Builder - GoogleSQL statements for the virtual-table operations.

The jobs.query REST call takes one query string and no bound parameters, so
these builders interpolate. Inputs must already be safe:
- table_ref comes from codec.table_reference()
- key_literal comes from codec.format_for_query()
- column names are validated here with codec.validate_identifier()

Supports:
- SELECT by primary key (LIMIT 1)
- SELECT all rows (no filter pushdown)
- UPDATE ... SET col = literal, ... WHERE pk = literal
- DELETE ... WHERE pk = literal
"""

import logging
from typing import Any, List, Mapping

from bqvirtual.codec import format_for_query, validate_identifier
from bqvirtual.errors import ValidationError
from bqvirtual.mapping import FieldMappingRegistry


def build_select_by_key(table_ref: str, key_column: str, key_literal: str) -> str:
    column = validate_identifier(key_column)
    return f"SELECT * FROM {table_ref} WHERE {column} = {key_literal} LIMIT 1"


def build_select_all(table_ref: str) -> str:
    return f"SELECT * FROM {table_ref}"


def build_assignments(
    attributes: Mapping[str, Any],
    registry: FieldMappingRegistry,
    logger: logging.Logger,
) -> List[str]:
    """Build "column = literal" pairs for the mapped, non-key attributes.

    Args:
        attributes: Host attribute -> new value.
        registry: Field mappings (supplies column name and type).
        logger: Receives a line for each skipped attribute.

    Returns:
        List of assignment strings, in attribute order.

    Raises:
        ValidationError: If a column name or value is not valid.
    """
    assignments: List[str] = []

    for name, value in attributes.items():
        mapping = registry.mapping_for_destination(name)
        if mapping is None:
            logger.debug(f"No mapping found for host attribute: {name}")
            continue
        if mapping.is_primary_key:
            logger.debug(f"Skipping primary key attribute in SET clause: {name}")
            continue

        column = validate_identifier(mapping.source_name)
        literal = format_for_query(value, mapping.data_type)
        assignments.append(f"{column} = {literal}")

    return assignments


def build_set_clause(assignments: List[str]) -> str:
    """Comma-join assignments. Empty input gives an empty string."""
    return ", ".join(assignments)


def build_update(table_ref: str, assignments: List[str], key_column: str, key_literal: str) -> str:
    if not assignments:
        raise ValidationError("UPDATE needs at least one mapped attribute")
    column = validate_identifier(key_column)
    return (
        f"UPDATE {table_ref} SET {build_set_clause(assignments)} "
        f"WHERE {column} = {key_literal}"
    )


def build_delete(table_ref: str, key_column: str, key_literal: str) -> str:
    column = validate_identifier(key_column)
    return f"DELETE FROM {table_ref} WHERE {column} = {key_literal}"
