"""
Live table host - wires the feeds to a Reconciler.

A LiveTable subscribes to the change source, then reads the snapshot, and
reports the replica to a callback after every effective change:

    callback(error, records)

Startup sequence:
    1. subscribe(filter)        events start flowing, reconciler buffers them
    2. select(filter)           may race with any number of events
    3. submit_snapshot(rows)    buffered events replayed, reconciler goes live
    4. report(None, records)

Error policy:
    - Snapshot failures are reported and stop the live table
    - Other exceptions from the snapshot source stop the table and propagate
    - Reconcile errors are reported with the current records
    - Subscription failures are reported and end the live table
    - With stop_on_error, the first reported error stops the table

Invariants:
    - Subscribe happens before select, so no change can fall in between
    - Events and a snapshot arriving after stop() are ignored
    - Every report carries an independent copy of the records

How to change safely:
    - Keep all reconciler calls on the event loop thread
    - Test shutdown with a snapshot still in flight
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Generic, List, Optional

from .apply.reconciler import Reconciler, ReplicaListener
from .config import LiveTableSettings
from .errors import (
    LiveTableError,
    ReconcileError,
    SnapshotError,
    SnapshotTimeoutError,
    SubscriptionError,
)
from .feed.base import ChangeSource, SnapshotSource, Subscription, TableFilter
from .model.events import ChangeEvent
from .model.row import RowT

logger = logging.getLogger(__name__)

LiveTableCallback = Callable[[Optional[LiveTableError], List[RowT]], None]


class LiveTable(Generic[RowT]):
    """Keeps an in-memory replica of a filtered table up to date.

    Attributes:
        snapshots: Source of the point-in-time select
        changes: Source of realtime change events
        table_filter: Rows to replicate
        callback: Receives (error, records) after every report
        settings: Live table settings
        channel_name: Realtime channel name
        reconciler: The reconciler owning the replica

    Example:
        >>> def on_change(err, records):
        ...     print(err, sorted(r["name"] for r in records))
        >>> table = InMemoryTable("thing")
        >>> live = LiveTable(table, table, TableFilter("thing", "type", "vehicle"), on_change)
        >>> await live.start()
        >>> table.insert(type="vehicle", name="bicycle")
        None ['bicycle']
        >>> await live.stop()
    """

    def __init__(
        self,
        snapshots: SnapshotSource,
        changes: ChangeSource,
        table_filter: TableFilter,
        callback: LiveTableCallback,
        settings: LiveTableSettings | None = None,
        channel_name: str | None = None,
        listener: ReplicaListener[RowT] | None = None,
    ) -> None:
        """Initialize the live table. Nothing happens until start().

        Args:
            snapshots: Snapshot source
            changes: Change source
            table_filter: Table, column and value to replicate
            callback: Called with (error, records)
            settings: Optional settings (loaded from env if not provided)
            channel_name: Optional channel name (derived from the filter if not provided)
            listener: Optional receiver of individual replica mutations
        """
        self.snapshots = snapshots
        self.changes = changes
        self.table_filter = table_filter
        self.callback = callback
        self.settings = settings or LiveTableSettings()
        self.channel_name = channel_name or table_filter.channel_name(self.settings.channel_prefix)
        self.reconciler: Reconciler[RowT] = Reconciler(
            replay_cutoff=self.settings.replay_cutoff,
            listener=listener,
        )

        self._subscription: Subscription | None = None
        self._unsubscribe_task: asyncio.Task | None = None
        self._running = False
        self._stopped = False
        self._report_count = 0
        self._error_count = 0

    @property
    def records(self) -> List[RowT]:
        return self.reconciler.records

    @property
    def is_live(self) -> bool:
        """Whether the snapshot has been applied."""
        return self.reconciler.is_live

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Subscribe, load the snapshot and report the initial records.

        Returns once the snapshot has been applied or has failed. Feed and
        reconcile failures are reported through the callback, not raised. A
        failed or rejected snapshot stops the live table.

        Raises:
            RuntimeError: If the live table was already stopped
            Exception: Anything else raised by the snapshot source, after
                the live table has been stopped
        """
        if self._stopped:
            raise RuntimeError("LiveTable was stopped; create a new one")
        if self._running:
            logger.warning("Live table already running", extra={"channel": self.channel_name})
            return

        self._running = True
        logger.info(
            "Starting live table",
            extra={"channel": self.channel_name, "filter": str(self.table_filter)},
        )

        try:
            self._subscription = await self.changes.subscribe(
                self.table_filter,
                self.channel_name,
                self._on_event,
                self._on_subscription_error,
            )
        except SubscriptionError as e:
            self._running = False
            self._stopped = True
            self._report(e)
            return

        try:
            await self._load_snapshot()
        except Exception:
            await self.stop()
            raise

    async def stop(self) -> None:
        """Unsubscribe and ignore anything that arrives afterwards."""
        self._running = False
        self._stopped = True

        subscription, self._subscription = self._subscription, None
        if subscription is not None and subscription.is_active:
            await subscription.unsubscribe()

        if self._unsubscribe_task is not None:
            await self._unsubscribe_task
            self._unsubscribe_task = None

        logger.info("Stopped live table", extra={"channel": self.channel_name})

    async def __aenter__(self) -> LiveTable[RowT]:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def _load_snapshot(self) -> None:
        try:
            rows = await self._select()
        except SnapshotError as e:
            if self._running:
                self._report(e)
                await self.stop()
            return

        if not self._running:
            logger.info(
                "Dropped snapshot for stopped live table",
                extra={"channel": self.channel_name, "rows": len(rows)},
            )
            return

        try:
            self.reconciler.submit_snapshot(rows)
        except ReconcileError as e:
            self._report(e)
            # A rejected snapshot leaves the reconciler buffering
            if not self.reconciler.is_live:
                await self.stop()
            return

        self._report(None)

    async def _select(self) -> List[Any]:
        timeout = self.settings.snapshot_timeout
        if not timeout:
            return await self.snapshots.select(self.table_filter)

        try:
            return await asyncio.wait_for(self.snapshots.select(self.table_filter), timeout)
        except asyncio.TimeoutError:
            raise SnapshotTimeoutError(
                f"Snapshot of {self.table_filter} timed out after {timeout}s",
                table=self.table_filter.table,
            ) from None

    def _on_event(self, event: ChangeEvent[RowT]) -> None:
        if not self._running:
            return

        try:
            result = self.reconciler.submit_event(event)
        except ReconcileError as e:
            self._report(e)
            return

        if result.changed:
            self._report(None)

    def _on_subscription_error(self, error: SubscriptionError) -> None:
        if not self._running:
            return

        self._subscription = None
        self._report(error)
        self._running = False
        self._stopped = True

    def _report(self, error: LiveTableError | None) -> None:
        records = self.reconciler.records
        self._report_count += 1

        if error is not None:
            self._error_count += 1
        # The reconciler logs its own rejections
        if error is not None and not isinstance(error, ReconcileError):
            logger.error(
                "Live table error",
                extra={"channel": self.channel_name, "code": error.code, "error": error.message},
            )

        self.callback(error, records)

        if error is not None and self.settings.stop_on_error and self._running:
            self._halt()

    def _halt(self) -> None:
        self._running = False
        self._stopped = True
        subscription, self._subscription = self._subscription, None
        if subscription is not None and subscription.is_active:
            self._unsubscribe_task = asyncio.ensure_future(subscription.unsubscribe())
        logger.info("Halted live table after error", extra={"channel": self.channel_name})

    @property
    def stats(self) -> Dict[str, Any]:
        """Get live table statistics."""
        return {
            "channel": self.channel_name,
            "running": self._running,
            "reports": self._report_count,
            "report_errors": self._error_count,
            **self.reconciler.stats,
        }


async def live_table(
    snapshots: SnapshotSource,
    changes: ChangeSource,
    table_filter: TableFilter,
    callback: LiveTableCallback,
    **kwargs: Any,
) -> LiveTable:
    """Create and start a LiveTable.

    Keyword arguments are passed to LiveTable.

    Returns:
        The started LiveTable; call stop() to unsubscribe
    """
    table: LiveTable = LiveTable(snapshots, changes, table_filter, callback, **kwargs)
    await table.start()
    return table
