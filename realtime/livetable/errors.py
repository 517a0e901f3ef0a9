"""
Error types for livetable.

This module defines all exception types raised by the package:
- LiveTableError: Base exception
- ReconcileError: A single event or snapshot could not be applied
- FeedError: A snapshot source or change source failed

Invariants:
    - All errors inherit from LiveTableError
    - Reconcile errors never leave the replica partially mutated
    - Errors include the rows involved for debugging
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class LiveTableError(Exception):
    """Base exception for all livetable errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "LIVETABLE_ERROR"
        self.details = details or {}


class ReconcileError(LiveTableError):
    """An input could not be applied to the replica.

    Terminal for the operation that raised it only. The reconciler stays
    usable and the replica keeps its previous value for the affected row.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "RECONCILE_ERROR", details=details)


class ConflictingInsertError(ReconcileError):
    """An INSERT collided with an existing row of a different version.

    Raised when:
    - The id is already in the replica
    - The stored and incoming rows have different effective timestamps

    Under a correct upstream this cannot happen, so it is surfaced rather
    than resolved by last-writer-wins.
    """

    def __init__(self, existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> None:
        record_id = incoming.get("id")
        super().__init__(
            f"Conflicting insert for id {record_id!r}: "
            f"stored row differs from incoming row",
            code="CONFLICTING_INSERT",
            details={"id": record_id, "existing": dict(existing), "incoming": dict(incoming)},
        )
        self.existing = existing
        self.incoming = incoming


class MissingRecordError(ReconcileError):
    """An UPDATE referenced an id the replica has never seen."""

    def __init__(self, record_id: Any) -> None:
        super().__init__(
            f"Update for unknown id {record_id!r}",
            code="MISSING_RECORD",
            details={"id": record_id},
        )
        self.record_id = record_id


class MalformedDeleteError(ReconcileError):
    """A DELETE payload carried no id."""

    def __init__(self, record: Mapping[str, Any]) -> None:
        super().__init__(
            "Deleted record has no id",
            code="MALFORMED_DELETE",
            details={"record": dict(record)},
        )
        self.record = record


class InvalidRecordError(ReconcileError):
    """A row or payload does not have the shape the replica requires.

    Raised when:
    - A row has no id
    - A row has no created_at
    - A timestamp cannot be parsed
    - A change payload has an unknown event type
    """

    def __init__(self, message: str, record: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(
            message,
            code="INVALID_RECORD",
            details={"record": dict(record) if record is not None else None},
        )
        self.record = record


class FeedError(LiveTableError):
    """Base exception for snapshot and change source failures."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "FEED_ERROR", details=details)


class SnapshotError(FeedError):
    """The point-in-time select failed.

    The replica is not mutated when this is raised.
    """

    def __init__(self, message: str, table: Optional[str] = None) -> None:
        super().__init__(message, code="SNAPSHOT_ERROR", details={"table": table})
        self.table = table


class SnapshotTimeoutError(SnapshotError):
    """The point-in-time select did not complete in time."""

    pass


class SubscriptionError(FeedError):
    """The change subscription failed terminally."""

    def __init__(self, message: str, channel: Optional[str] = None) -> None:
        super().__init__(message, code="SUBSCRIPTION_ERROR", details={"channel": channel})
        self.channel = channel


class SubscriptionTimeoutError(SubscriptionError):
    """The change subscription timed out."""

    pass


class ChannelError(SubscriptionError):
    """The realtime channel reported an error."""

    pass
