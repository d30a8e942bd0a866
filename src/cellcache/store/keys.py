"""
Watch keys and change payloads.

Store keys are a small tagged union: the three table-wide keys are members of
:class:`RecordStoreKey`; the per-field key is the frozen dataclass
:class:`CellValuesInField`. Consumers match on them structurally::

    match key:
        case RecordStoreKey.RECORDS:
            ...
        case CellValuesInField(field_id=field_id):
            ...

Row keys follow the same shape (:class:`RowKey`, :class:`CellValueInField`).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

__all__ = [
    "RecordStoreKey",
    "CellValuesInField",
    "WatchKey",
    "RowKey",
    "CellValueInField",
    "RowWatchKey",
    "RecordsChange",
    "CellValuesChange",
    "CellValuesInFieldChange",
]


class RecordStoreKey(Enum):
    """Table-wide watch keys."""

    RECORDS = "records"
    RECORD_IDS = "record_ids"
    CELL_VALUES = "cell_values"


@dataclass(frozen=True)
class CellValuesInField:
    """Cell values of every record in one field."""

    field_id: str


WatchKey = RecordStoreKey | CellValuesInField


class RowKey(Enum):
    """Per-row watch keys."""

    CELL_VALUES = "cell_values"
    COMMENT_COUNT = "comment_count"


@dataclass(frozen=True)
class CellValueInField:
    """The cell value of one row in one field."""

    field_id: str


RowWatchKey = RowKey | CellValueInField


@dataclass(frozen=True)
class RecordsChange:
    """Payload of ``RECORDS`` / ``RECORD_IDS`` notifications."""

    added_record_ids: tuple[str, ...] = ()
    removed_record_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class CellValuesChange:
    """Payload of ``CELL_VALUES`` notifications."""

    record_ids: tuple[str, ...]
    field_ids: tuple[str, ...]


@dataclass(frozen=True)
class CellValuesInFieldChange:
    """Payload of ``CellValuesInField`` notifications."""

    record_ids: tuple[str, ...]
    field_id: str
