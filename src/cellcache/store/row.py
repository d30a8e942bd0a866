"""Row wrapper: the long-lived object handed out for one record."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from cellcache.core.errors import FieldNotLoadedError, RecordNotFoundError
from cellcache.core.watchable import Watchable, WatchCallback
from cellcache.models import RecordData
from cellcache.store.dirty_paths import RecordDirtyPath
from cellcache.store.keys import CellValueInField, RowKey, RowWatchKey
from cellcache.store.loading import require_running_loop

if TYPE_CHECKING:
    from cellcache.store.record_store import RecordStore

__all__ = ["Row"]


class Row(Watchable[RowWatchKey]):
    """One record of a table.

    Rows are memoised by the record store: the same object is returned for a
    record id until the record is deleted. Reads go through the store, so a
    row always reflects the current cache contents.

    Watching ``CellValueInField(field_id)`` on a row retains that field on
    the store, the same way watching ``CellValuesInField`` on the store does.
    """

    _class_name = "Row"

    def __init__(self, store: RecordStore, record_id: str) -> None:
        super().__init__(f"{store.table_id}-{record_id}-Row")
        self._store = store
        self._record_id = record_id

    @classmethod
    def _is_watchable_key(cls, key: Any) -> bool:
        return isinstance(key, RowKey) or (
            isinstance(key, CellValueInField) and isinstance(key.field_id, str)
        )

    def __repr__(self) -> str:
        return f"Row({self._record_id!r}, table={self._store.table_id!r})"

    @property
    def id(self) -> str:
        return self._record_id

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def is_deleted(self) -> bool:
        return self._store.get_record_data(self._record_id) is None

    @property
    def _data(self) -> RecordData:
        data = self._store.get_record_data(self._record_id)
        if data is None:
            raise RecordNotFoundError("Record has been deleted").with_context(
                table_id=self._store.table_id, record_id=self._record_id
            )
        return data

    @property
    def created_time(self) -> datetime:
        return self._data.created_time

    @property
    def comment_count(self) -> int:
        return self._data.comment_count

    def get_cell_value(self, field_id: str) -> Any:
        """Return the cell value in ``field_id``, ``None`` when empty.

        Raises:
            FieldNotLoadedError: If values for ``field_id`` are not loaded.
        """
        if not self._store.are_field_values_loaded(field_id):
            raise FieldNotLoadedError("Cell values for field are not loaded").with_context(
                table_id=self._store.table_id, record_id=self._record_id, field_id=field_id
            )
        return self._data.cell_values_by_field_id.get(field_id)

    def watch(
        self, keys: RowWatchKey | Iterable[RowWatchKey], callback: WatchCallback
    ) -> list[RowWatchKey]:
        if _field_ids(self._validate_watch(keys, callback)):
            require_running_loop("Row.watch")
        valid_keys = super().watch(keys, callback)
        field_ids = _field_ids(valid_keys)
        if field_ids:
            self._store.load_fields_in_background(field_ids)
        return valid_keys

    def unwatch(
        self, keys: RowWatchKey | Iterable[RowWatchKey], callback: WatchCallback
    ) -> list[RowWatchKey]:
        valid_keys = super().unwatch(keys, callback)
        field_ids = _field_ids(valid_keys)
        if field_ids:
            self._store.unload_fields(field_ids)
        return valid_keys

    def trigger_on_change_for_dirty_paths(self, record_paths: RecordDirtyPath) -> None:
        field_ids = list(record_paths.cell_values_by_field_id)
        if field_ids:
            self._on_change(RowKey.CELL_VALUES, tuple(field_ids))
            for field_id in field_ids:
                self._on_change(CellValueInField(field_id))
        if record_paths.comment_count:
            self._on_change(RowKey.COMMENT_COUNT)


def _field_ids(keys: Iterable[RowWatchKey]) -> list[str]:
    return [key.field_id for key in keys if isinstance(key, CellValueInField)]
