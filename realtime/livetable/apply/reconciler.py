"""
Reconciler for livetable.

The Reconciler merges a point-in-time snapshot with a realtime change stream
into one replica. The two inputs are issued independently, so change events
may arrive before, during or after the snapshot that already reflects them.
It ensures:
- Events received before the first snapshot are buffered, never applied
- The first snapshot is stored, then the buffer is replayed in arrival order
- Each row converges to its most recent version (last writer wins on the
  effective timestamp) and never regresses

State machine:
    BUFFERING ──submit_snapshot()──▶ LIVE
    (one transition, never back)

Apply rules (identical for live and replayed events):
    INSERT  absent id -> insert
            same effective timestamp -> duplicate, ignored
            different effective timestamp -> ConflictingInsertError
    UPDATE  absent id -> MissingRecordError
            older than stored -> stale, ignored
            otherwise -> replace (equal timestamps re-apply)
    DELETE  no id -> MalformedDeleteError
            absent id -> no-op
            event older than stored row -> stale, ignored
            otherwise -> remove

Invariants:
    - A failed operation leaves the replica unchanged
    - A later snapshot never replaces a newer stored row
    - The reconciler stays usable after any ReconcileError
    - Single writer: callers serialise submit_event/submit_snapshot

How to change safely:
    - Keep live and replay paths going through _apply()
    - Test each new rule with a buffered-then-snapshot scenario
    - Never let the replay cutoff be the only guard against regression
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, Iterable, List, Optional

from ..errors import (
    ConflictingInsertError,
    InvalidRecordError,
    MalformedDeleteError,
    MissingRecordError,
    ReconcileError,
)
from ..model.events import ChangeEvent, ChangeKind
from ..model.row import (
    RowId,
    RowT,
    effective_timestamp,
    row_id,
    snapshot_watermark,
    validate_row,
)
from .buffer import EventBuffer
from .store import ReplicaStore

logger = logging.getLogger(__name__)


class ReconcilerState(Enum):
    """Lifecycle of a reconciler."""

    BUFFERING = "buffering"
    LIVE = "live"


class ReplayCutoff(str, Enum):
    """How buffered events are pre-filtered when the first snapshot lands.

    WATERMARK: discard events older than the snapshot's newest row.
    PER_ROW: discard events older than the snapshot's version of the same
        row; ids missing from the snapshot fall back to the watermark.
    """

    WATERMARK = "watermark"
    PER_ROW = "per_row"


class ApplyOutcome(Enum):
    """What happened to a submitted event."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    STALE = "stale"
    NOOP = "noop"
    BUFFERED = "buffered"


@dataclass
class ApplyResult(Generic[RowT]):
    """Result of submitting one change event.

    Attributes:
        event: The submitted event
        outcome: Whether it was applied, buffered or ignored
        error: The error raised while replaying it, if any
    """

    event: ChangeEvent[RowT]
    outcome: Optional[ApplyOutcome]
    error: Optional[ReconcileError] = None

    @property
    def changed(self) -> bool:
        """Whether the replica was mutated."""
        return self.outcome == ApplyOutcome.APPLIED


@dataclass
class SnapshotResult(Generic[RowT]):
    """Result of submitting a snapshot.

    Attributes:
        row_count: Number of rows stored from the snapshot
        watermark: Maximum effective timestamp of the snapshot
        replayed: Results for buffered events, in arrival order
    """

    row_count: int
    watermark: datetime
    replayed: List[ApplyResult[RowT]] = field(default_factory=list)

    @property
    def errors(self) -> List[ReconcileError]:
        return [r.error for r in self.replayed if r.error is not None]


class ReplicaListener(Generic[RowT]):
    """Receives the mutations a reconciler actually performs.

    Subclass and override what you need. Ignored events (duplicate, stale,
    no-op, buffered) and failed events produce no notification.
    """

    def initial(self, rows: List[RowT]) -> None:
        """Called after a snapshot has been stored, before replay."""

    def inserted(self, row: RowT) -> None:
        pass

    def updated(self, old: RowT, new: RowT) -> None:
        pass

    def deleted(self, old: RowT) -> None:
        pass


class Reconciler(Generic[RowT]):
    """Keeps a replica of a filtered table from a snapshot and change events.

    Thread safety:
        None. Designed for one logical caller, typically an event loop that
        delivers realtime callbacks and the snapshot query completion.

    Example:
        >>> reconciler = Reconciler()
        >>> reconciler.submit_event(ChangeEvent.update(row_v2))   # buffered
        >>> reconciler.submit_snapshot([row_v1])                  # replays
        >>> reconciler.records
        [row_v2]
    """

    def __init__(
        self,
        replay_cutoff: ReplayCutoff = ReplayCutoff.WATERMARK,
        listener: ReplicaListener[RowT] | None = None,
    ) -> None:
        """Initialize an empty reconciler in the BUFFERING state.

        Args:
            replay_cutoff: Pre-filter applied to buffered events on replay
            listener: Optional receiver of effective mutations
        """
        self.replay_cutoff = ReplayCutoff(replay_cutoff)
        self.listener: ReplicaListener[RowT] = listener or ReplicaListener()

        self._state = ReconcilerState.BUFFERING
        self._store: ReplicaStore[RowT] = ReplicaStore()
        self._buffer: EventBuffer[RowT] = EventBuffer()
        self._watermark: datetime | None = None
        self._counts: Counter[str] = Counter()

    @property
    def state(self) -> ReconcilerState:
        return self._state

    @property
    def is_live(self) -> bool:
        return self._state == ReconcilerState.LIVE

    @property
    def watermark(self) -> datetime | None:
        """Watermark of the last applied snapshot, None before the first."""
        return self._watermark

    @property
    def pending(self) -> int:
        """Number of buffered events awaiting the first snapshot."""
        return len(self._buffer)

    @property
    def records(self) -> List[RowT]:
        """Current rows, unordered. A fresh list on every access."""
        return self._store.values()

    def get(self, record_id: RowId) -> RowT | None:
        return self._store.get(record_id)

    def submit_event(self, event: ChangeEvent[RowT]) -> ApplyResult[RowT]:
        """Submit one change event.

        While BUFFERING the event is queued and the replica is untouched.
        While LIVE it is applied immediately.

        Returns:
            ApplyResult with the outcome

        Raises:
            ConflictingInsertError: INSERT over a different version of the row
            MissingRecordError: UPDATE for an id not in the replica
            MalformedDeleteError: DELETE without an id
            InvalidRecordError: Row without id/created_at
        """
        if self._state == ReconcilerState.BUFFERING:
            self._buffer.append(event)
            self._counts[ApplyOutcome.BUFFERED.value] += 1
            logger.debug(
                "Buffered event before snapshot",
                extra={
                    "kind": event.kind.value,
                    "record_id": event.record_id,
                    "pending": len(self._buffer),
                },
            )
            return ApplyResult(event=event, outcome=ApplyOutcome.BUFFERED)

        return ApplyResult(event=event, outcome=self._apply(event))

    def submit_snapshot(self, rows: Iterable[RowT]) -> SnapshotResult[RowT]:
        """Store a snapshot and, the first time, replay buffered events.

        Every snapshot row replaces the replica entry with the same id unless
        the stored row has a newer effective timestamp. Rows in the replica
        but not in the snapshot are kept: only DELETE events remove rows.

        Buffered events older than the replay cutoff are discarded; the rest
        go through the normal apply rules. Replay always runs to the end and
        empties the buffer; the first replay error is raised afterwards. Each
        rejected event is logged once, by _apply().

        Returns:
            SnapshotResult with the watermark and replay outcomes

        Raises:
            InvalidRecordError: A snapshot row is malformed (nothing applied)
            ReconcileError: The first error raised by a replayed event
        """
        rows = list(rows)
        try:
            ids = [validate_row(row) for row in rows]
        except InvalidRecordError as e:
            logger.warning("Rejected snapshot", extra={"code": e.code, "error": e.message})
            raise
        watermark = snapshot_watermark(rows)

        for record_id, row in zip(ids, rows):
            existing = self._store.get(record_id)
            if existing is not None and effective_timestamp(row) < effective_timestamp(existing):
                logger.debug("Kept newer row over snapshot row", extra={"record_id": record_id})
                continue
            self._store.set(record_id, row)

        first = self._state == ReconcilerState.BUFFERING
        self._state = ReconcilerState.LIVE
        self._watermark = watermark
        self._counts["snapshots"] += 1

        logger.info(
            "Applied snapshot",
            extra={
                "rows": len(rows),
                "watermark": watermark.isoformat(),
                "buffered": len(self._buffer),
                "first": first,
            },
        )
        self.listener.initial(rows)

        result: SnapshotResult[RowT] = SnapshotResult(row_count=len(rows), watermark=watermark)
        if first:
            cutoffs = self._row_cutoffs(rows) if self.replay_cutoff == ReplayCutoff.PER_ROW else {}
            result.replayed = self._replay(watermark, cutoffs)

        errors = result.errors
        if errors:
            raise errors[0]
        return result

    def _replay(
        self,
        watermark: datetime,
        cutoffs: Dict[RowId, datetime],
    ) -> List[ApplyResult[RowT]]:
        results: List[ApplyResult[RowT]] = []

        for event in self._buffer.drain():
            record_id = event.record_id
            cutoff = cutoffs.get(record_id, watermark)

            if event.timestamp < cutoff:
                self._counts[ApplyOutcome.STALE.value] += 1
                logger.debug(
                    "Discarded buffered event older than snapshot",
                    extra={
                        "kind": event.kind.value,
                        "record_id": record_id,
                        "event_ts": event.timestamp.isoformat(),
                        "cutoff": cutoff.isoformat(),
                    },
                )
                results.append(ApplyResult(event=event, outcome=ApplyOutcome.STALE))
                continue

            try:
                outcome = self._apply(event)
            except ReconcileError as e:
                results.append(ApplyResult(event=event, outcome=None, error=e))
            else:
                results.append(ApplyResult(event=event, outcome=outcome))

        return results

    def _row_cutoffs(self, rows: List[RowT]) -> Dict[RowId, datetime]:
        return {validate_row(row): effective_timestamp(row) for row in rows}

    def _apply(self, event: ChangeEvent[RowT]) -> ApplyOutcome:
        """Apply one event to the store and count the outcome."""
        try:
            if event.kind == ChangeKind.INSERT:
                outcome = self._apply_insert(event)
            elif event.kind == ChangeKind.UPDATE:
                outcome = self._apply_update(event)
            else:
                outcome = self._apply_delete(event)
        except ReconcileError as e:
            self._counts["errors"] += 1
            logger.warning(
                "Rejected change event",
                extra={
                    "kind": event.kind.value,
                    "record_id": event.record_id,
                    "code": e.code,
                    "error": e.message,
                },
            )
            raise

        self._counts[outcome.value] += 1
        return outcome

    def _apply_insert(self, event: ChangeEvent[RowT]) -> ApplyOutcome:
        record = event.record
        record_id = validate_row(record)

        existing = self._store.get(record_id)
        if existing is None:
            self._store.set(record_id, record)
            self.listener.inserted(record)
            return ApplyOutcome.APPLIED

        if effective_timestamp(existing) == effective_timestamp(record):
            logger.debug("Ignored duplicate insert", extra={"record_id": record_id})
            return ApplyOutcome.DUPLICATE

        raise ConflictingInsertError(existing, record)

    def _apply_update(self, event: ChangeEvent[RowT]) -> ApplyOutcome:
        record = event.record
        record_id = validate_row(record)

        existing = self._store.get(record_id)
        if existing is None:
            raise MissingRecordError(record_id)

        if effective_timestamp(record) < effective_timestamp(existing):
            logger.debug("Ignored stale update", extra={"record_id": record_id})
            return ApplyOutcome.STALE

        self._store.set(record_id, record)
        self.listener.updated(existing, record)
        return ApplyOutcome.APPLIED

    def _apply_delete(self, event: ChangeEvent[RowT]) -> ApplyOutcome:
        record_id = row_id(event.record)
        if record_id is None:
            raise MalformedDeleteError(event.record)

        existing = self._store.get(record_id)
        if existing is None:
            return ApplyOutcome.NOOP

        if event.timestamp < effective_timestamp(existing):
            logger.debug("Ignored stale delete", extra={"record_id": record_id})
            return ApplyOutcome.STALE

        self._store.remove(record_id)
        self.listener.deleted(existing)
        return ApplyOutcome.APPLIED

    @property
    def stats(self) -> Dict[str, Any]:
        """Get reconciler statistics."""
        return {
            "state": self._state.value,
            "rows": len(self._store),
            "pending": len(self._buffer),
            "snapshots": self._counts["snapshots"],
            "buffered": self._counts[ApplyOutcome.BUFFERED.value],
            "applied": self._counts[ApplyOutcome.APPLIED.value],
            "duplicates": self._counts[ApplyOutcome.DUPLICATE.value],
            "stale": self._counts[ApplyOutcome.STALE.value],
            "noops": self._counts[ApplyOutcome.NOOP.value],
            "errors": self._counts["errors"],
            "watermark": self._watermark.isoformat() if self._watermark else None,
        }
