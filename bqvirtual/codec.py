"""
Value codec and query-text safety for BigQuery statements.

The BigQuery queries endpoint takes a single query string, so identifiers and
values are interpolated into text. Two rules keep that safe:

- every identifier goes through validate_identifier() first
- every value goes through format_for_query() with its mapped FieldType,
  which either emits a well-formed literal or raises ValidationError

coerce() is the opposite direction (remote cell / host input -> typed value)
and is lossy on purpose: a value that does not parse becomes None and the
caller drops the field instead of failing the operation. Numeric DATETIME
text is read as epoch seconds only for remote cells (from_remote=True).
"""

import re
import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

from bqvirtual.errors import ValidationError
from bqvirtual.mapping import FieldType


IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# GCP project ids allow hyphens, and domain-scoped ids carry "." and ":".
PROJECT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]*$")

_INTEGER_TEXT = re.compile(r"^[+-]?\d+$")
_NUMERIC_TEXT = re.compile(r"^[+-]?\d+(\.\d+)?([eE][+-]?\d+)?$")

# BigQuery INT64
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

DATETIME_LITERAL_FORMAT = "%Y-%m-%d %H:%M:%S"


def validate_identifier(name: str) -> str:
    """Return name unchanged if it is a plain identifier, else raise ValidationError."""
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise ValidationError(f"Invalid field name: {name}")
    return name


def validate_project_id(project_id: str) -> str:
    if not isinstance(project_id, str) or not PROJECT_ID_PATTERN.match(project_id):
        raise ValidationError(f"Invalid project id: {project_id}")
    return project_id


def table_reference(project_id: str, dataset_id: str, table_id: str) -> str:
    """Backtick-quoted `project.dataset.table` with every part validated."""
    validate_project_id(project_id)
    validate_identifier(dataset_id)
    validate_identifier(table_id)
    return f"`{project_id}.{dataset_id}.{table_id}`"


def validate_guid(value: Any, parameter_name: str = "guid") -> str:
    """Parse value as a GUID and return its canonical lower-case form."""
    if isinstance(value, uuid.UUID):
        return str(value)
    try:
        return str(uuid.UUID(str(value).strip()))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(f"Invalid GUID format for {parameter_name}")


def escape_string(value: Optional[str]) -> str:
    """Single-quote a string literal, escaping backslashes and quotes."""
    if value is None or value == "":
        return "NULL"
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _parse_guid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (ValueError, TypeError, AttributeError):
        return None


def _parse_integer(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        result = int(value)
    else:
        text = str(value).strip()
        if not _INTEGER_TEXT.match(text):
            return None
        result = int(text)

    if not INT64_MIN <= result <= INT64_MAX:
        return None
    return result


def _from_epoch(seconds: float) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_datetime(value: Any, from_remote: bool = False) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _from_epoch(value) if from_remote else None

    text = str(value).strip()
    if not text:
        return None

    # BigQuery returns TIMESTAMP cells as epoch seconds ("1.7051...E9").
    # Host input made only of digits ("20240115", "2024") is not a date-time.
    if _NUMERIC_TEXT.match(text):
        return _from_epoch(float(text)) if from_remote else None

    if text.endswith(" UTC"):
        text = text[:-4] + "+00:00"
    elif text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    try:
        d = date.fromisoformat(text)
    except ValueError:
        return None
    return datetime(d.year, d.month, d.day)


def coerce(raw: Any, data_type: FieldType, from_remote: bool = False) -> Any:
    """
    Convert a raw value to the Python type for data_type.

    Args:
        raw: Remote cell or host input
        data_type: Mapped column type
        from_remote: raw is a BigQuery result cell, so numeric DATETIME text
            is epoch seconds

    Returns:
        uuid.UUID, int, datetime or str; None when raw is None or does not parse
    """
    if raw is None:
        return None
    if data_type is FieldType.GUID:
        return _parse_guid(raw)
    if data_type is FieldType.INTEGER:
        return _parse_integer(raw)
    if data_type is FieldType.DATETIME:
        return _parse_datetime(raw, from_remote)
    return raw if isinstance(raw, str) else str(raw)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def format_for_query(value: Any, data_type: FieldType) -> str:
    """
    Render value as a BigQuery literal for data_type.

    - STRING:   'text' with \\ and ' escaped
    - INTEGER:  decimal text
    - GUID:     canonical GUID, single-quoted
    - DATETIME: DATETIME('yyyy-MM-dd HH:mm:ss')
    - None:     NULL

    Raises:
        ValidationError: If value is not valid for data_type
    """
    if value is None:
        return "NULL"

    if data_type is FieldType.INTEGER:
        parsed = _parse_integer(value)
        if parsed is None:
            raise ValidationError(f"Invalid integer value: {value}")
        return str(parsed)

    if data_type is FieldType.GUID:
        return escape_string(validate_guid(value, "guid"))

    if data_type is FieldType.DATETIME:
        parsed = _parse_datetime(value)
        if parsed is None:
            raise ValidationError(f"Invalid datetime value: {value}")
        return f"DATETIME('{_naive_utc(parsed).strftime(DATETIME_LITERAL_FORMAT)}')"

    return escape_string(value if isinstance(value, str) else str(value))


def to_row_value(value: Any, data_type: FieldType) -> Any:
    """JSON-serializable form of a coerced value for insertAll payloads."""
    if value is None:
        return None
    if data_type is FieldType.GUID:
        return str(value)
    if data_type is FieldType.DATETIME:
        return _naive_utc(value).strftime(DATETIME_LITERAL_FORMAT)
    return value
