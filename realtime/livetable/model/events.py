"""
Change events delivered by the realtime stream.

A ChangeEvent is one row-level notification: INSERT, UPDATE or DELETE, the
affected record and the commit timestamp assigned by the database.

Wire shape (postgres_changes payload):
    {
        "schema": "public",
        "table": "thing",
        "commit_timestamp": "2024-01-01T10:00:00.123Z",
        "eventType": "UPDATE",
        "new": {"id": 1, "name": "Bike", "created_at": "...", "updated_at": "..."},
        "old": {"id": 1}
    }

For DELETE the record is taken from "old", which may be partial.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, Mapping, Optional

from ..errors import InvalidRecordError
from .row import RowId, RowT, effective_timestamp, parse_timestamp, row_id


class ChangeKind(str, Enum):
    """Row-level operation kinds."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent(Generic[RowT]):
    """A change notification for one row.

    Attributes:
        kind: INSERT, UPDATE or DELETE
        record: Full row for INSERT/UPDATE, partial row (at least id) for DELETE
        timestamp: Commit time of the change (aware UTC)
        old: Previous row image when the source provides one
    """

    kind: ChangeKind
    record: RowT
    timestamp: datetime
    old: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", ChangeKind(self.kind))
        object.__setattr__(self, "timestamp", parse_timestamp(self.timestamp))

    @property
    def record_id(self) -> RowId | None:
        return row_id(self.record)

    @classmethod
    def insert(cls, record: RowT, timestamp: Any = None) -> ChangeEvent[RowT]:
        """Build an INSERT; the timestamp defaults to the row's own."""
        if timestamp is None:
            timestamp = effective_timestamp(record)
        return cls(ChangeKind.INSERT, record, timestamp)

    @classmethod
    def update(
        cls,
        record: RowT,
        timestamp: Any = None,
        old: Optional[Mapping[str, Any]] = None,
    ) -> ChangeEvent[RowT]:
        """Build an UPDATE; the timestamp defaults to the row's own."""
        if timestamp is None:
            timestamp = effective_timestamp(record)
        return cls(ChangeKind.UPDATE, record, timestamp, old)

    @classmethod
    def delete(cls, record: RowT, timestamp: Any) -> ChangeEvent[RowT]:
        return cls(ChangeKind.DELETE, record, timestamp, record)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ChangeEvent:
        """Create from a postgres_changes payload.

        Raises:
            InvalidRecordError: If the event type or commit timestamp is
                missing or unknown
        """
        event_type = payload.get("eventType")
        try:
            kind = ChangeKind(event_type)
        except ValueError:
            raise InvalidRecordError(f"Unknown event type: {event_type!r}") from None

        commit_timestamp = payload.get("commit_timestamp")
        if commit_timestamp is None:
            raise InvalidRecordError(f"{kind.value} payload has no commit_timestamp")

        new = dict(payload.get("new") or {})
        old = dict(payload.get("old") or {})

        if kind == ChangeKind.DELETE:
            return cls(kind, old, commit_timestamp, old)
        return cls(kind, new, commit_timestamp, old or None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to the postgres_changes payload shape."""
        is_delete = self.kind == ChangeKind.DELETE
        return {
            "eventType": self.kind.value,
            "commit_timestamp": self.timestamp.isoformat(),
            "new": {} if is_delete else dict(self.record),
            "old": dict(self.old or {}),
        }

    def __str__(self) -> str:
        return f"ChangeEvent({self.kind.value} id={self.record_id!r} ts={self.timestamp.isoformat()})"
