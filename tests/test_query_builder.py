"""Tests for query_builder.

Tests cover:
- SELECT by key and SELECT all
- SET assignments skip unmapped attributes and the primary key
- Empty SET clause is rejected by build_update
- Invalid identifiers never reach query text
"""

from unittest.mock import MagicMock

import pytest

from bqvirtual.errors import ValidationError
from bqvirtual.query_builder import (
    build_assignments,
    build_delete,
    build_select_all,
    build_select_by_key,
    build_set_clause,
    build_update,
)


TABLE = "`myproject-469115.my_baseball_data.schedule`"
KEY = "'3f2504e0-4f89-11d3-9a0c-0305e82c3301'"


class TestSelect:

    def test_by_key(self):
        assert (
            build_select_by_key(TABLE, "row_id", KEY)
            == f"SELECT * FROM {TABLE} WHERE row_id = {KEY} LIMIT 1"
        )

    def test_all(self):
        assert build_select_all(TABLE) == f"SELECT * FROM {TABLE}"

    def test_bad_key_column(self):
        with pytest.raises(ValidationError):
            build_select_by_key(TABLE, "row_id = 1 OR 1", KEY)


class TestAssignments:

    def test_mapped_attributes(self, registry):
        assignments = build_assignments(
            {"new_name": "O'Brien Night", "new_attendance": 35000},
            registry,
            MagicMock(),
        )
        assert assignments == ["bq_name = 'O\\'Brien Night'", "attendance = 35000"]

    def test_skips_unmapped_and_primary_key(self, registry):
        logger = MagicMock()
        assignments = build_assignments(
            {"new_bqscheduleid": KEY, "new_unknown": 1, "new_year": "2024"},
            registry,
            logger,
        )
        assert assignments == ["year = 2024"]
        assert logger.debug.call_count == 2

    def test_null_value(self, registry):
        assert build_assignments({"new_gamestatus": None}, registry, MagicMock()) == ["status = NULL"]

    def test_bad_value_raises(self, registry):
        with pytest.raises(ValidationError):
            build_assignments({"new_attendance": "many"}, registry, MagicMock())

    def test_set_clause(self):
        assert build_set_clause(["a = 1", "b = 'x'"]) == "a = 1, b = 'x'"

    def test_empty_set_clause(self):
        assert build_set_clause([]) == ""


class TestUpdateDelete:

    def test_update(self):
        sql = build_update(TABLE, ["attendance = 35000", "status = 'Final'"], "row_id", KEY)
        assert sql == f"UPDATE {TABLE} SET attendance = 35000, status = 'Final' WHERE row_id = {KEY}"

    def test_update_without_assignments(self):
        with pytest.raises(ValidationError) as exc_info:
            build_update(TABLE, [], "row_id", KEY)
        assert "at least one mapped attribute" in str(exc_info.value)

    def test_delete(self):
        assert build_delete(TABLE, "row_id", KEY) == f"DELETE FROM {TABLE} WHERE row_id = {KEY}"
