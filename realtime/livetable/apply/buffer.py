"""
FIFO buffer for change events that arrive before the first snapshot.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Generic, Iterator, List

from ..model.events import ChangeEvent
from ..model.row import RowT


class EventBuffer(Generic[RowT]):
    """Append/drain queue of change events in arrival order.

    Unbounded and never deduplicated: the reconciler's apply rules decide
    which buffered events take effect during replay.
    """

    def __init__(self) -> None:
        self._events: Deque[ChangeEvent[RowT]] = deque()

    def append(self, event: ChangeEvent[RowT]) -> None:
        self._events.append(event)

    def drain(self) -> List[ChangeEvent[RowT]]:
        """Remove and return every buffered event, oldest arrival first."""
        events = list(self._events)
        self._events.clear()
        return events

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[ChangeEvent[RowT]]:
        return iter(list(self._events))

    def __bool__(self) -> bool:
        return bool(self._events)
