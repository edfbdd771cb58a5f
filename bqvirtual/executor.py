"""
Remote query executor for the BigQuery REST API (v2).

Two calls, both synchronous and fully buffered:
- execute_query: POST {query, useLegacySql: false} to /projects/{p}/queries
- insert_row:    POST {rows: [{json: row}]} to
                 /projects/{p}/datasets/{d}/tables/{t}/insertAll

A bearer token is fetched from the TokenManager before every call; the
manager decides whether that needs a token exchange. No pagination,
batching or retries.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from bqvirtual.auth import TokenCache, TokenManager
from bqvirtual.codec import table_reference, validate_identifier
from bqvirtual.config import Configuration
from bqvirtual.errors import RemoteApiError


@dataclass
class ResultTable:
    """
    Parsed jobs.query response.

    BigQuery encodes rows positionally: schema.fields[i].name names the
    value at rows[j].f[i].v.
    """
    field_names: List[str] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)
    total_rows: Optional[int] = None
    job_complete: bool = True
    num_dml_affected_rows: Optional[int] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "ResultTable":
        schema = data.get("schema") or {}
        field_names = [f.get("name") for f in schema.get("fields") or []]

        rows = []
        for row in data.get("rows") or []:
            cells = row.get("f") or []
            rows.append([c.get("v") if isinstance(c, dict) else None for c in cells])

        total_rows = data.get("totalRows")
        affected = data.get("numDmlAffectedRows")
        return cls(
            field_names=field_names,
            rows=rows,
            total_rows=int(total_rows) if total_rows is not None else None,
            job_complete=bool(data.get("jobComplete", True)),
            num_dml_affected_rows=int(affected) if affected is not None else None,
        )

    def to_dicts(self) -> List[Dict[str, Any]]:
        """Rows as column -> value dicts (extra cells or names are ignored)."""
        return [dict(zip(self.field_names, row)) for row in self.rows]

    def __len__(self) -> int:
        return len(self.rows)


class RemoteQueryExecutor:
    """Authenticated BigQuery REST calls for one Configuration."""

    def __init__(
        self,
        config: Configuration,
        session: Optional[requests.Session] = None,
        token_manager: Optional[TokenManager] = None,
        token_cache: Optional[TokenCache] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            config: Connection configuration
            session: HTTP session; one is created (and owned) when omitted
            token_manager: Token source; built from config when omitted
            token_cache: Shared token cache passed to the built TokenManager
            logger: Tracing sink
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self._owns_session = session is None
        self.session = session if session is not None else requests.Session()
        self.token_manager = token_manager or TokenManager(
            config, self.session, cache=token_cache, logger=self.logger
        )

    @property
    def table_reference(self) -> str:
        return table_reference(self.config.project_id, self.config.dataset_id, self.config.table_id)

    @property
    def _project_url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/projects/{self.config.project_id}"

    def _post(self, url: str, payload: Dict[str, Any], action: str) -> Dict[str, Any]:
        token = self.token_manager.get_access_token()
        response = self.session.post(
            url,
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )
        status = response.status_code
        body = response.text

        if not 200 <= status < 300:
            self.logger.error(f"{action} failed: {status} - {body}")
            raise RemoteApiError(f"BigQuery API error during {action}", status_code=status, body=body)

        try:
            return response.json()
        except ValueError as e:
            raise RemoteApiError(
                f"BigQuery API returned non-JSON body during {action}", status_code=status, body=body
            ) from e

    def execute_query(self, query_text: str) -> ResultTable:
        """
        Run a GoogleSQL statement.

        Raises:
            RemoteApiError: Non-2xx response or non-JSON body
            AuthenticationError: Token could not be obtained
        """
        self.logger.info(f"Executing query: {query_text}")
        data = self._post(
            f"{self._project_url}/queries",
            {"query": query_text, "useLegacySql": False},
            "query",
        )
        result = ResultTable.from_response(data)
        if not result.job_complete:
            self.logger.warning("Query job did not complete within the request; result rows may be missing")
        self.logger.info(f"Query executed successfully ({len(result)} rows).")
        return result

    def insert_row(self, table_name: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """
        Stream one row into table_name via insertAll.

        Returns:
            Parsed insertAll response

        Raises:
            RemoteApiError: Non-2xx response, or insertErrors in a 200 response
        """
        validate_identifier(table_name)
        self.logger.info(f"Inserting row into table: {table_name}")
        url = (
            f"{self._project_url}/datasets/{self.config.dataset_id}"
            f"/tables/{table_name}/insertAll"
        )
        data = self._post(url, {"rows": [{"json": row}]}, "insert")

        if data.get("insertErrors"):
            self.logger.error(f"Insert reported row errors: {data['insertErrors']}")
            raise RemoteApiError("BigQuery insertAll reported row errors", status_code=200, body=str(data))

        self.logger.info("Row inserted successfully.")
        return data

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "RemoteQueryExecutor":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
