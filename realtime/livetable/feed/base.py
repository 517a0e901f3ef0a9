"""
Base protocols and types for the snapshot and change sources.

A live table is fed by two collaborators scoped by the same TableFilter:
- SnapshotSource: a point-in-time select of the matching rows
- ChangeSource: a realtime subscription to row-level changes

Invariants:
    - Both sources use the same table/column/value filter
    - Change callbacks are invoked on the event loop, one at a time
    - Terminal subscription failures go to on_error, never to on_event

How to change safely:
    - Protocol changes require updating all implementations
    - Add new methods as optional with default implementations
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    List,
    Mapping,
    Protocol,
    runtime_checkable,
)

from ..errors import SubscriptionError
from ..model.events import ChangeEvent

EventHandler = Callable[[ChangeEvent], None]
ErrorHandler = Callable[[SubscriptionError], None]


@dataclass(frozen=True)
class TableFilter:
    """Scope of a live table: rows of `table` where `column` equals `value`.

    Attributes:
        table: Table name
        column: Filter column name
        value: Value the column must equal
        schema: Database schema
    """

    table: str
    column: str
    value: Any
    schema: str = "public"

    def matches(self, row: Mapping[str, Any]) -> bool:
        """Whether a row falls inside this filter."""
        return self.column in row and row[self.column] == self.value

    @property
    def postgrest_filter(self) -> str:
        """Filter in PostgREST/realtime syntax, e.g. ``type=eq.vehicle``."""
        return f"{self.column}=eq.{self.value}"

    def channel_name(self, prefix: str = "") -> str:
        """Default realtime channel name for this filter."""
        return f"{prefix}{self.table}:{self.value}"

    def __str__(self) -> str:
        return f"{self.schema}.{self.table}?{self.postgrest_filter}"


@runtime_checkable
class Subscription(Protocol):
    """Handle on an active change subscription."""

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Stop delivering events. Safe to call more than once."""
        ...

    @property
    @abstractmethod
    def is_active(self) -> bool:
        ...


@runtime_checkable
class SnapshotSource(Protocol):
    """Protocol for point-in-time readers.

    Example:
        >>> rows = await source.select(TableFilter("thing", "type", "vehicle"))
    """

    @abstractmethod
    async def select(self, table_filter: TableFilter) -> List[Mapping[str, Any]]:
        """Read every row currently matching the filter.

        Returns:
            Full rows, each with id, created_at and optional updated_at

        Raises:
            SnapshotError: If the read fails
        """
        ...


@runtime_checkable
class ChangeSource(Protocol):
    """Protocol for realtime change subscriptions.

    Ordering contract:
        - Events for the same row are delivered in commit order
        - No ordering is promised across rows, or relative to a snapshot
    """

    @abstractmethod
    async def subscribe(
        self,
        table_filter: TableFilter,
        channel_name: str,
        on_event: EventHandler,
        on_error: ErrorHandler,
    ) -> Subscription:
        """Subscribe to changes of rows matching the filter.

        Args:
            table_filter: Rows to watch
            channel_name: Realtime channel name
            on_event: Called once per change
            on_error: Called on terminal failure (timeout, channel error)

        Returns:
            Subscription handle

        Raises:
            SubscriptionError: If the subscription cannot be established
        """
        ...
