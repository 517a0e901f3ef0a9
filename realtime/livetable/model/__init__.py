"""
Row and event model for livetable.

Rows are mappings with an id, a created_at and an optional updated_at; the
effective timestamp of a row orders competing versions of it. Change events
wrap one row-level INSERT, UPDATE or DELETE with its commit timestamp.
"""

from .events import ChangeEvent, ChangeKind
from .row import (
    EPOCH,
    RowId,
    RowT,
    effective_timestamp,
    parse_timestamp,
    require_id,
    row_id,
    snapshot_watermark,
    validate_row,
)

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "EPOCH",
    "RowId",
    "RowT",
    "effective_timestamp",
    "parse_timestamp",
    "require_id",
    "row_id",
    "snapshot_watermark",
    "validate_row",
]
