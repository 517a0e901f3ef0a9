"""
Replica store: the id -> row mapping a reconciler exposes.

The store itself has no rules. It never fails, never validates and never
compares timestamps; the Reconciler decides what gets written.
"""

from __future__ import annotations

from typing import Dict, Generic, Iterator, List, Optional

from ..model.row import RowId, RowT


class ReplicaStore(Generic[RowT]):
    """In-memory mapping from row id to the row currently believed correct.

    Example:
        >>> store = ReplicaStore()
        >>> store.set(1, {"id": 1, "name": "Bike"})
        >>> store.values()
        [{'id': 1, 'name': 'Bike'}]
    """

    def __init__(self) -> None:
        self._rows: Dict[RowId, RowT] = {}

    def set(self, record_id: RowId, row: RowT) -> None:
        """Insert or overwrite the row at record_id."""
        self._rows[record_id] = row

    def remove(self, record_id: RowId) -> Optional[RowT]:
        """Delete the row at record_id; absent ids are ignored.

        Returns:
            The removed row, or None
        """
        return self._rows.pop(record_id, None)

    def get(self, record_id: RowId) -> Optional[RowT]:
        return self._rows.get(record_id)

    def values(self) -> List[RowT]:
        """Copy of all current rows, in no particular order.

        Each call returns a new list, so callers may keep or iterate it while
        the store keeps changing.
        """
        return list(self._rows.values())

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._rows

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[RowId]:
        return iter(list(self._rows))
