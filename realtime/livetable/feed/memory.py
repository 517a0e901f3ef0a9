"""
In-memory table implementing both feed protocols, for testing.

This module provides a table that can be mutated directly and that serves:
- Snapshot reads (select)
- Realtime change notifications (subscribe)

It is meant for:
- Unit and integration tests
- Local development without a database

Races between the snapshot and the change stream can be staged:
- hold_snapshots() keeps select() waiting until release_snapshots()
- auto_deliver=False queues notifications until flush()

Invariants:
    - All data is lost on process exit
    - Notifications for the same row are delivered in mutation order
    - Timestamps come from the injected clock
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple

from ..errors import ChannelError, SnapshotError, SubscriptionError
from ..model.events import ChangeEvent, ChangeKind
from ..model.row import RowId
from .base import ErrorHandler, EventHandler, TableFilter

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemorySubscription:
    """Subscription handle returned by InMemoryTable.subscribe()."""

    def __init__(
        self,
        table: InMemoryTable,
        table_filter: TableFilter,
        channel_name: str,
        on_event: EventHandler,
        on_error: ErrorHandler,
    ) -> None:
        self.table = table
        self.table_filter = table_filter
        self.channel_name = channel_name
        self.on_event = on_event
        self.on_error = on_error
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    async def unsubscribe(self) -> None:
        self._deactivate()
        logger.debug("In-memory subscription closed", extra={"channel": self.channel_name})

    def _deactivate(self) -> None:
        self._active = False
        self.table._detach(self)


class InMemoryTable:
    """In-memory table acting as SnapshotSource and ChangeSource.

    Attributes:
        name: Table name; filters for other tables are rejected
        auto_deliver: Deliver notifications as mutations happen

    Thread safety:
        None. Use from one event loop.

    Example:
        >>> table = InMemoryTable("thing")
        >>> table.insert(type="vehicle", name="bicycle")
        >>> rows = await table.select(TableFilter("thing", "type", "vehicle"))
    """

    def __init__(
        self,
        name: str = "thing",
        clock: Optional[Clock] = None,
        auto_deliver: bool = True,
    ) -> None:
        """Initialize an empty table.

        Args:
            name: Table name
            clock: Source of created_at/updated_at/commit timestamps
            auto_deliver: If False, notifications wait for flush()
        """
        self.name = name
        self.auto_deliver = auto_deliver
        self._clock = clock or utc_now
        self._rows: Dict[RowId, Dict[str, Any]] = {}
        self._next_id = 1
        self._subscriptions: List[InMemorySubscription] = []
        self._pending: Deque[Tuple[InMemorySubscription, ChangeEvent]] = deque()
        self._snapshot_gate = asyncio.Event()
        self._snapshot_gate.set()
        self._select_failure: Optional[Exception] = None

    # Mutations

    def insert(self, row: Optional[Mapping[str, Any]] = None, **fields: Any) -> Dict[str, Any]:
        """Insert a row and notify subscribers.

        An id is assigned when the row has none; created_at is stamped from
        the clock when missing.

        Returns:
            Copy of the stored row

        Raises:
            KeyError: If the id already exists
        """
        now = self._clock()
        data = {**(row or {}), **fields}
        if data.get("id") is None:
            data["id"] = self._next_id
        if isinstance(data["id"], int):
            self._next_id = max(self._next_id, data["id"] + 1)
        if data["id"] in self._rows:
            raise KeyError(f"Duplicate id {data['id']!r} in table {self.name}")

        data.setdefault("created_at", now.isoformat())
        data.setdefault("updated_at", None)
        self._rows[data["id"]] = data

        self._notify(ChangeEvent(ChangeKind.INSERT, dict(data), now), data)
        return dict(data)

    def update(self, record_id: RowId, **changes: Any) -> Dict[str, Any]:
        """Update a row, stamp updated_at and notify subscribers.

        Raises:
            KeyError: If the id does not exist
        """
        old = self._rows[record_id]
        now = self._clock()
        new = {**old, **changes, "id": record_id, "updated_at": now.isoformat()}
        self._rows[record_id] = new

        self._notify(ChangeEvent(ChangeKind.UPDATE, dict(new), now, {"id": record_id}), new)
        return dict(new)

    def delete(self, record_id: RowId) -> Dict[str, Any]:
        """Delete a row and notify subscribers with its id only.

        Raises:
            KeyError: If the id does not exist
        """
        old = self._rows.pop(record_id)
        now = self._clock()
        key = {"id": record_id}

        self._notify(ChangeEvent(ChangeKind.DELETE, key, now, key), old)
        return dict(old)

    def rows(self) -> List[Dict[str, Any]]:
        """Copies of all rows, ignoring filters (testing helper)."""
        return [dict(row) for row in self._rows.values()]

    # SnapshotSource

    async def select(self, table_filter: TableFilter) -> List[Dict[str, Any]]:
        """Read the rows matching the filter.

        Waits while snapshots are held. Rows are copied at the moment the
        read completes, so mutations made while held are included.

        Raises:
            SnapshotError: If the table name does not match or a failure
                was injected
        """
        if table_filter.table != self.name:
            raise SnapshotError(f"Unknown table: {table_filter.table}", table=table_filter.table)

        await self._snapshot_gate.wait()

        if self._select_failure is not None:
            error, self._select_failure = self._select_failure, None
            raise error

        return [dict(row) for row in self._rows.values() if table_filter.matches(row)]

    def hold_snapshots(self) -> None:
        """Make select() wait until release_snapshots() (testing helper)."""
        self._snapshot_gate.clear()

    def release_snapshots(self) -> None:
        self._snapshot_gate.set()

    def fail_next_select(self, error: Optional[Exception] = None) -> None:
        """Make the next select() raise (testing helper)."""
        self._select_failure = error or SnapshotError("Injected select failure", table=self.name)

    # ChangeSource

    async def subscribe(
        self,
        table_filter: TableFilter,
        channel_name: str,
        on_event: EventHandler,
        on_error: ErrorHandler,
    ) -> InMemorySubscription:
        """Subscribe to changes of rows matching the filter.

        Raises:
            SubscriptionError: If the table name does not match
        """
        if table_filter.table != self.name:
            raise ChannelError(f"Unknown table: {table_filter.table}", channel=channel_name)

        subscription = InMemorySubscription(self, table_filter, channel_name, on_event, on_error)
        self._subscriptions.append(subscription)
        logger.debug(
            "In-memory subscription opened",
            extra={"channel": channel_name, "filter": str(table_filter)},
        )
        return subscription

    def flush(self) -> int:
        """Deliver queued notifications in order (testing helper).

        Returns:
            Number of notifications delivered
        """
        delivered = 0
        while self._pending:
            subscription, event = self._pending.popleft()
            if subscription.is_active:
                subscription.on_event(event)
                delivered += 1
        return delivered

    def fail_subscriptions(self, error: Optional[SubscriptionError] = None) -> None:
        """Report a terminal failure to every subscriber (testing helper)."""
        for subscription in list(self._subscriptions):
            failure = error or ChannelError("Injected channel error", channel=subscription.channel_name)
            subscription._deactivate()
            subscription.on_error(failure)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    @property
    def pending_notifications(self) -> int:
        return len(self._pending)

    def _notify(self, event: ChangeEvent, row: Mapping[str, Any]) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.table_filter.matches(row):
                continue
            if self.auto_deliver:
                subscription.on_event(event)
            else:
                self._pending.append((subscription, event))

    def _detach(self, subscription: InMemorySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
