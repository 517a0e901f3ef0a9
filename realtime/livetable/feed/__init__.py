"""
Feed abstractions for livetable.

This module provides the interfaces of the two inputs a live table merges:
- SnapshotSource: point-in-time select of the filtered rows
- ChangeSource: realtime subscription to row-level changes

plus an in-memory implementation of both for tests and local development.

Invariants:
    - Snapshot and subscription share one TableFilter
    - Per-row change order is preserved; nothing else is promised
"""

from .base import (
    ChangeSource,
    ErrorHandler,
    EventHandler,
    SnapshotSource,
    Subscription,
    TableFilter,
)
from .memory import InMemorySubscription, InMemoryTable

__all__ = [
    # Protocols and types
    "ChangeSource",
    "SnapshotSource",
    "Subscription",
    "TableFilter",
    "EventHandler",
    "ErrorHandler",
    # Implementations
    "InMemoryTable",
    "InMemorySubscription",
]
