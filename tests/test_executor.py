"""Tests for RemoteQueryExecutor and ResultTable.

Tests cover:
- Query and insertAll URLs, payloads and bearer header
- Positional row decoding
- Non-2xx, non-JSON and insertErrors responses
"""

from unittest.mock import patch

import pytest

from bqvirtual.errors import RemoteApiError, ValidationError
from bqvirtual.executor import RemoteQueryExecutor, ResultTable
from conftest import BASE_URL, PROJECT_ID, FakeResponse, FakeSession, query_response


class TestResultTable:

    def test_positional_rows(self):
        table = ResultTable.from_response(query_response(["gameId", "attendance"], [["G1", "42"], ["G2", None]]))
        assert table.field_names == ["gameId", "attendance"]
        assert len(table) == 2
        assert table.total_rows == 2
        assert table.to_dicts() == [
            {"gameId": "G1", "attendance": "42"},
            {"gameId": "G2", "attendance": None},
        ]

    def test_no_rows_key(self):
        table = ResultTable.from_response({"schema": {"fields": [{"name": "a"}]}, "totalRows": "0"})
        assert table.to_dicts() == []

    def test_dml_response(self):
        table = ResultTable.from_response({"numDmlAffectedRows": "1", "jobComplete": True})
        assert table.num_dml_affected_rows == 1
        assert table.field_names == []


class TestExecuteQuery:

    def test_posts_query(self, config, token_manager):
        session = FakeSession([FakeResponse(200, query_response(["gameId"], [["G1"]]))])
        executor = RemoteQueryExecutor(config, session=session, token_manager=token_manager)

        result = executor.execute_query("SELECT 1")

        call = session.calls[0]
        assert call["url"] == f"{BASE_URL}/projects/{PROJECT_ID}/queries"
        assert call["json"] == {"query": "SELECT 1", "useLegacySql": False}
        assert call["headers"]["Authorization"] == "Bearer ya29.test-token"
        assert result.to_dicts() == [{"gameId": "G1"}]

    def test_token_requested_per_call(self, config, token_manager):
        session = FakeSession([FakeResponse(200, {}), FakeResponse(200, {})])
        executor = RemoteQueryExecutor(config, session=session, token_manager=token_manager)

        executor.execute_query("SELECT 1")
        executor.execute_query("SELECT 2")
        assert token_manager.get_access_token.call_count == 2

    def test_error_status(self, config, token_manager):
        session = FakeSession([FakeResponse(403, text='{"error": {"message": "Access Denied"}}')])
        executor = RemoteQueryExecutor(config, session=session, token_manager=token_manager)

        with pytest.raises(RemoteApiError) as exc_info:
            executor.execute_query("SELECT 1")
        assert exc_info.value.status_code == 403
        assert "Access Denied" in exc_info.value.body

    def test_non_json_body(self, config, token_manager):
        session = FakeSession([FakeResponse(200, text="not json")])
        executor = RemoteQueryExecutor(config, session=session, token_manager=token_manager)

        with pytest.raises(RemoteApiError):
            executor.execute_query("SELECT 1")

    def test_real_token_manager_used_once(self, config, clock):
        session = FakeSession([FakeResponse(200, {}), FakeResponse(200, {})])
        executor = RemoteQueryExecutor(config, session=session)
        executor.token_manager._clock = clock

        executor.execute_query("SELECT 1")
        executor.execute_query("SELECT 2")

        assert len(session.token_calls) == 1
        assert len(session.api_calls) == 2


class TestInsertRow:

    def test_posts_insert_all(self, config, token_manager):
        session = FakeSession([FakeResponse(200, {"kind": "bigquery#tableDataInsertAllResponse"})])
        executor = RemoteQueryExecutor(config, session=session, token_manager=token_manager)

        executor.insert_row("schedule", {"gameId": "G1"})

        call = session.calls[0]
        assert call["url"] == (
            f"{BASE_URL}/projects/{PROJECT_ID}/datasets/my_baseball_data/tables/schedule/insertAll"
        )
        assert call["json"] == {"rows": [{"json": {"gameId": "G1"}}]}

    def test_insert_errors(self, config, token_manager):
        body = {"insertErrors": [{"index": 0, "errors": [{"reason": "invalid"}]}]}
        session = FakeSession([FakeResponse(200, body)])
        executor = RemoteQueryExecutor(config, session=session, token_manager=token_manager)

        with pytest.raises(RemoteApiError) as exc_info:
            executor.insert_row("schedule", {"gameId": "G1"})
        assert exc_info.value.status_code == 200

    def test_invalid_table_name(self, config, token_manager):
        session = FakeSession()
        executor = RemoteQueryExecutor(config, session=session, token_manager=token_manager)

        with pytest.raises(ValidationError):
            executor.insert_row("schedule/../other", {})
        assert session.calls == []


class TestLifecycle:

    def test_table_reference(self, config, token_manager):
        executor = RemoteQueryExecutor(config, session=FakeSession(), token_manager=token_manager)
        assert executor.table_reference == "`myproject-469115.my_baseball_data.schedule`"

    def test_borrowed_session_not_closed(self, config, token_manager):
        session = FakeSession()
        with RemoteQueryExecutor(config, session=session, token_manager=token_manager):
            pass
        assert not session.closed

    def test_owned_session_closed(self, config, token_manager):
        with patch("bqvirtual.executor.requests.Session") as session_cls:
            with RemoteQueryExecutor(config, token_manager=token_manager):
                pass
        session_cls.return_value.close.assert_called_once()
