"""
livetable - live, in-memory replicas of filtered database tables.

This package keeps an eventually-accurate copy of the rows of one table that
match a column filter, built from two independent inputs:
- a point-in-time snapshot (a full select of the matching rows)
- a realtime change stream (INSERT/UPDATE/DELETE notifications)

Architecture:
    ┌──────────────┐   select()    ┌─────────────────────────────────┐
    │  Snapshot    │──────────────▶│                                 │
    │  Source      │               │           LiveTable             │
    └──────────────┘               │   (host: start/stop/report)     │
    ┌──────────────┐   on_event()  │                                 │
    │  Change      │──────────────▶│                                 │
    │  Source      │               └────────────────┬────────────────┘
    └──────────────┘                                │
                                                    ▼
                        ┌─────────────────────────────────────────┐
                        │               Reconciler                │
                        │   BUFFERING ──first snapshot──▶ LIVE    │
                        └──────────┬───────────────────┬──────────┘
                                   │                   │
                                   ▼                   ▼
                            ┌────────────┐      ┌────────────┐
                            │   Event    │      │  Replica   │
                            │   Buffer   │      │   Store    │
                            └────────────┘      └────────────┘

Invariants:
    - Events received before the first snapshot never touch the replica
    - A row never regresses to an older effective timestamp
    - Conflicting inserts are surfaced as errors, never merged silently
    - The replica lives in process memory only and is rebuilt on restart

How to change safely:
    - Keep the per-kind apply rules identical for live and replayed events
    - Add new error kinds under ReconcileError or FeedError
    - Cover every new race with a buffered-then-snapshot test
"""

from ._version import __version__
from .apply import (
    ApplyOutcome,
    ApplyResult,
    EventBuffer,
    Reconciler,
    ReconcilerState,
    ReplayCutoff,
    ReplicaListener,
    ReplicaStore,
    SnapshotResult,
)
from .config import LiveTableSettings
from .errors import (
    ChannelError,
    ConflictingInsertError,
    FeedError,
    InvalidRecordError,
    LiveTableError,
    MalformedDeleteError,
    MissingRecordError,
    ReconcileError,
    SnapshotError,
    SnapshotTimeoutError,
    SubscriptionError,
    SubscriptionTimeoutError,
)
from .feed import ChangeSource, InMemoryTable, SnapshotSource, Subscription, TableFilter
from .live import LiveTable, live_table
from .model import ChangeEvent, ChangeKind, effective_timestamp, snapshot_watermark

__all__ = [
    "__version__",
    # Model
    "ChangeEvent",
    "ChangeKind",
    "effective_timestamp",
    "snapshot_watermark",
    # Core
    "ApplyOutcome",
    "ApplyResult",
    "EventBuffer",
    "Reconciler",
    "ReconcilerState",
    "ReplayCutoff",
    "ReplicaListener",
    "ReplicaStore",
    "SnapshotResult",
    # Feeds
    "ChangeSource",
    "InMemoryTable",
    "SnapshotSource",
    "Subscription",
    "TableFilter",
    # Host
    "LiveTable",
    "LiveTableSettings",
    "live_table",
    # Errors
    "LiveTableError",
    "ReconcileError",
    "ConflictingInsertError",
    "MissingRecordError",
    "MalformedDeleteError",
    "InvalidRecordError",
    "FeedError",
    "SnapshotError",
    "SnapshotTimeoutError",
    "SubscriptionError",
    "SubscriptionTimeoutError",
    "ChannelError",
]
