"""
Row accessors and timestamp handling.

Rows are plain mappings. The replica only looks at three keys:
- id: opaque identity (str or int)
- created_at: creation timestamp, required
- updated_at: last modification timestamp, optional

Everything else in a row is carried through untouched.

Invariants:
    - Effective timestamp is updated_at when present, else created_at
    - All timestamps compare as aware UTC datetimes
    - Numeric timestamps are Unix epoch milliseconds
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, TypeVar, Union

from ..errors import InvalidRecordError

RowId = Union[str, int]
RowT = TypeVar("RowT", bound=Mapping[str, Any])

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_SHORT_OFFSET = re.compile(r"(\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)([+-]\d{2})$")
_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(value: Any) -> datetime:
    """Normalise a timestamp to an aware UTC datetime.

    Accepts datetimes (naive values are taken as UTC), ISO-8601 strings as
    returned by PostgREST (``Z`` suffix, ``+00`` offsets, 1-9 fractional
    digits) and numbers of milliseconds since the Unix epoch.

    Raises:
        InvalidRecordError: If the value cannot be interpreted
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, bool):
        raise InvalidRecordError(f"Unparseable timestamp: {value!r}")

    if isinstance(value, (int, float)):
        return EPOCH + timedelta(milliseconds=value)

    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = _SHORT_OFFSET.sub(r"\1\2:00", text)
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise InvalidRecordError(f"Unparseable timestamp: {value!r}") from e
        return parse_timestamp(parsed)

    raise InvalidRecordError(f"Unparseable timestamp: {value!r}")


def row_id(row: Mapping[str, Any]) -> RowId | None:
    """Return the row's id, or None when the row carries none."""
    value = row.get("id")
    if value is None or value == "":
        return None
    return value


def require_id(row: Mapping[str, Any]) -> RowId:
    """Return the row's id.

    Raises:
        InvalidRecordError: If the row has no id
    """
    value = row_id(row)
    if value is None:
        raise InvalidRecordError("Record has no id", record=row)
    return value


def effective_timestamp(row: Mapping[str, Any]) -> datetime:
    """Return updated_at if present, else created_at.

    Raises:
        InvalidRecordError: If the row has neither timestamp
    """
    updated_at = row.get("updated_at")
    if updated_at is not None:
        return parse_timestamp(updated_at)

    created_at = row.get("created_at")
    if created_at is None:
        raise InvalidRecordError(
            f"Record {row.get('id')!r} has no created_at", record=row
        )
    return parse_timestamp(created_at)


def validate_row(row: Mapping[str, Any]) -> RowId:
    """Check a full row (insert, update or snapshot) and return its id.

    Raises:
        InvalidRecordError: If id or created_at is missing, or a timestamp
            cannot be parsed
    """
    record_id = require_id(row)
    if row.get("created_at") is None:
        raise InvalidRecordError(f"Record {record_id!r} has no created_at", record=row)
    effective_timestamp(row)
    return record_id


def snapshot_watermark(rows: Iterable[Mapping[str, Any]]) -> datetime:
    """Maximum effective timestamp across rows, the epoch when empty."""
    return max((effective_timestamp(row) for row in rows), default=EPOCH)
