"""Plain data held by the cache and exchanged with the data backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

__all__ = [
    "RecordData",
    "ViewData",
    "TableData",
    "BaseData",
    "RecordsSnapshot",
    "RecordChanges",
]


@dataclass
class RecordData:
    """One record as cached locally.

    ``cell_values_by_field_id`` only holds fields whose values were loaded.
    A missing entry and a ``None`` entry both read as "no value"; whether a
    field is loaded at all is tracked by the store, not here.
    """

    created_time: datetime
    comment_count: int = 0
    cell_values_by_field_id: dict[str, Any] = field(default_factory=dict)

    def copy(self, field_ids: list[str] | None = None) -> RecordData:
        """Copy this record, keeping only ``field_ids`` when given."""
        if field_ids is None:
            cell_values = dict(self.cell_values_by_field_id)
        else:
            cell_values = {
                field_id: self.cell_values_by_field_id[field_id]
                for field_id in field_ids
                if field_id in self.cell_values_by_field_id
            }
        return RecordData(
            created_time=self.created_time,
            comment_count=self.comment_count,
            cell_values_by_field_id=cell_values,
        )


@dataclass
class ViewData:
    """Schema entry for a view; ``visible_record_ids`` is its row order."""

    view_id: str
    name: str = ""
    visible_record_ids: list[str] = field(default_factory=list)


@dataclass
class TableData:
    """Schema plus cached values for one table.

    ``records_by_id is None`` means record metadata is not loaded.
    """

    table_id: str
    primary_field_id: str
    field_ids: list[str] = field(default_factory=list)
    views_by_id: dict[str, ViewData] = field(default_factory=dict)
    records_by_id: dict[str, RecordData] | None = None


@dataclass
class BaseData:
    """All tables of a base. A table missing from ``tables_by_id`` is deleted."""

    tables_by_id: dict[str, TableData] = field(default_factory=dict)

    def add_table(self, table: TableData) -> TableData:
        self.tables_by_id[table.table_id] = table
        return table

    def delete_table(self, table_id: str) -> None:
        self.tables_by_id.pop(table_id, None)


@dataclass
class RecordsSnapshot:
    """Result of a backend fetch."""

    records_by_id: dict[str, RecordData] = field(default_factory=dict)


@dataclass
class RecordChanges:
    """A mutation pushed by the backend after the initial fetch.

    Attributes:
        created: New records with their full cell values
        updated_cell_values: ``{record_id: {field_id: value}}`` for existing records
        comment_counts: New comment counts for existing records
        removed: Ids of deleted records
    """

    created: dict[str, RecordData] = field(default_factory=dict)
    updated_cell_values: dict[str, dict[str, Any]] = field(default_factory=dict)
    comment_counts: dict[str, int] = field(default_factory=dict)
    removed: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.created or self.updated_cell_values or self.comment_counts or self.removed
        )
