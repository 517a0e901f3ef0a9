"""
Apply module for livetable - reconciling snapshots with change events.

This module handles:
- The replica store (id -> row)
- The pre-snapshot event buffer
- The reconciler state machine and its apply rules

The replica is a derived view: it can always be rebuilt from a fresh
snapshot plus the change stream.

Invariants:
    - Live and replayed events follow the same apply rules
    - A rejected event never mutates the replica
    - Rows never regress to an older effective timestamp
"""

from .buffer import EventBuffer
from .reconciler import (
    ApplyOutcome,
    ApplyResult,
    Reconciler,
    ReconcilerState,
    ReplayCutoff,
    ReplicaListener,
    SnapshotResult,
)
from .store import ReplicaStore

__all__ = [
    "ApplyOutcome",
    "ApplyResult",
    "EventBuffer",
    "Reconciler",
    "ReconcilerState",
    "ReplayCutoff",
    "ReplicaListener",
    "ReplicaStore",
    "SnapshotResult",
]
