import json
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa as crypto_rsa

from bqvirtual.config import Configuration
from bqvirtual.mapping import schedule_registry


PROJECT_ID = "myproject-469115"
DATASET_ID = "my_baseball_data"
TABLE_ID = "schedule"
CLIENT_EMAIL = "bq-reader@myproject-469115.iam.gserviceaccount.com"
TOKEN_URL = "https://oauth2.googleapis.com/token"
BASE_URL = "https://bigquery.googleapis.com/bigquery/v2"


class FakeResponse:
    """Just enough of requests.Response: status_code, text, json()."""

    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        if text is None:
            text = json.dumps(body if body is not None else {})
        self.text = text

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """Records post() calls and answers from a queue (token URL answered separately)."""

    def __init__(self, responses=None, token_response=None):
        self.responses = list(responses or [])
        self.token_response = token_response or FakeResponse(
            200, {"access_token": "ya29.test-token", "expires_in": 3600, "token_type": "Bearer"}
        )
        self.calls = []
        self.closed = False

    def post(self, url, data=None, json=None, headers=None):
        self.calls.append({"url": url, "data": data, "json": json, "headers": headers})
        if url == TOKEN_URL:
            return self.token_response
        return self.responses.pop(0)

    def close(self):
        self.closed = True

    @property
    def token_calls(self):
        return [c for c in self.calls if c["url"] == TOKEN_URL]

    @property
    def api_calls(self):
        return [c for c in self.calls if c["url"] != TOKEN_URL]


class FakeClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def query_response(field_names, rows):
    """Build a jobs.query response body in BigQuery's positional row format."""
    return {
        "kind": "bigquery#queryResponse",
        "schema": {"fields": [{"name": n, "type": "STRING"} for n in field_names]},
        "rows": [{"f": [{"v": v} for v in row]} for row in rows],
        "totalRows": str(len(rows)),
        "jobComplete": True,
    }


@pytest.fixture(autouse=True)
def reset_bqvirtual_logger():
    # CLI tests call setup_logging(), which replaces handlers on the package logger
    logger = logging.getLogger("bqvirtual")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers = handlers
    logger.setLevel(level)


@pytest.fixture(scope="session")
def private_key():
    return crypto_rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(private_key):
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture(scope="session")
def service_account_json(private_key_pem):
    return json.dumps({
        "type": "service_account",
        "project_id": PROJECT_ID,
        "client_email": CLIENT_EMAIL,
        "private_key": private_key_pem,
    })


@pytest.fixture
def config(service_account_json):
    return Configuration(
        project_id=PROJECT_ID,
        dataset_id=DATASET_ID,
        table_id=TABLE_ID,
        service_account_json=service_account_json,
        base_url=BASE_URL,
        token_url=TOKEN_URL,
    )


@pytest.fixture
def registry():
    return schedule_registry()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 4, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def token_manager():
    manager = MagicMock()
    manager.get_access_token.return_value = "ya29.test-token"
    return manager
