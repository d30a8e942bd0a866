"""
Record store: the per-table cache of record and cell data.

One :class:`RecordStore` exists per table for the table's lifetime. Schema
(field list, primary field, views) is read from the shared :class:`BaseData`;
this store only manages record *values*.

Manifesto:
    Consumers say what they want to observe and the store makes sure the
    data is resident while they observe it, fetched once, and released a
    little after the last observer leaves.

    - **Field-granular:** cell values load per field, on demand
    - **Reference-counted:** N watchers need N releases
    - **Deduplicated:** one backend fetch per field in flight
    - **Debounced:** unload waits out watch/unwatch churn
    - **Precise:** pushed diffs become per-key notifications

Architecture:
    ::

        watch(keys) ──▶ Watchable registry
             │
             ├─ CellValuesInField(F) ─────▶ retain F ─▶ LoadCoordinator(fields)
             ├─ RECORDS / RECORD_IDS ─────▶ retain primary field (metadata)
             └─ CELL_VALUES ──────────────▶ retain table ─▶ LoadCoordinator(table)

        unwatch(keys) ─▶ UnloadScheduler.release ─▶ (debounce) ─▶ unsubscribe,
                                                     clear values, drop rows

        backend push ─▶ apply_changes ─▶ DirtyPathTranslator ─▶ _on_change(...)

Examples:
    >>> store = RecordStore(base_data, backend, "tbl1")
    >>> await store.load_fields_async(["fld1"])
    >>> store.get_row_by_id("rec1").get_cell_value("fld1")
    'hello'
    >>> store.unload_fields(["fld1"])   # released after the debounce window

Guardrails:
    ❌ DON'T: Mutate lists or records returned by the accessors
    ✅ DO: Go through load/unload and watch/unwatch

    ❌ DON'T: Read ``record_ids`` before metadata is loaded
    ✅ DO: ``await store.load_metadata_async()`` or watch ``RECORD_IDS``

Tags:
    cellcache, record-store, cache, retain-count, debounce, asyncio

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterable
from typing import Any

from cellcache.backend import DataBackend
from cellcache.core.errors import (
    InvalidIdError,
    MetadataNotLoadedError,
    RecordNotFoundError,
    RecordOutOfSyncError,
    UnknownViewError,
    invariant,
)
from cellcache.core.logging import LogContext, get_logger
from cellcache.core.settings import CacheSettings, get_settings
from cellcache.core.watchable import Watchable, WatchCallback
from cellcache.models import BaseData, RecordChanges, RecordData, TableData
from cellcache.store.dirty_paths import DirtyPaths, DirtyPathTranslator, RecordDirtyPath
from cellcache.store.keys import CellValuesInField, RecordStoreKey, WatchKey
from cellcache.store.loading import LoadCoordinator, require_running_loop
from cellcache.store.retention import FieldRetentionTracker
from cellcache.store.row import Row
from cellcache.store.unloading import RetentionState, UnloadScheduler
from cellcache.store.view_index import ViewIndex

__all__ = ["RecordStore"]

logger = get_logger(__name__)

_TABLE_DATA_KEY = "__table__"


class RecordStore(Watchable[WatchKey]):
    """Per-table cache of records and cell values.

    Parameters
    ----------
    base_data : BaseData
        Shared schema and cache data. The store reads and writes
        ``base_data.tables_by_id[table_id].records_by_id``.
    backend : DataBackend
        Source of snapshots and pushed changes.
    table_id : str
        Table this store caches.
    settings : CacheSettings, optional
        Defaults to :func:`~cellcache.core.settings.get_settings`.
    """

    _class_name = "RecordStore"

    def __init__(
        self,
        base_data: BaseData,
        backend: DataBackend,
        table_id: str,
        *,
        settings: CacheSettings | None = None,
    ) -> None:
        invariant(isinstance(table_id, str), "table_id must be a string", InvalidIdError)
        super().__init__(f"{table_id}-RecordStore")
        self.table_id = table_id
        self._base_data = base_data
        self._backend = backend
        self._settings = settings or get_settings()

        table = self.table_data
        self._primary_field_id = table.primary_field_id
        self._rows_by_id: dict[str, Row] = {}
        self._view_indexes_by_id: dict[str, ViewIndex] = {}
        self._background_tasks: set[asyncio.Task[None]] = set()
        self._translator = DirtyPathTranslator()

        delay = self._settings.unload_delay_seconds
        self._field_loader = LoadCoordinator(
            self._fetch_field_values, self._broadcast, name=f"{table_id}.fields"
        )
        self._field_unloader = UnloadScheduler(
            FieldRetentionTracker(name=f"{table_id}.fields"),
            delay_seconds=delay,
            unload=self._unload_field_values,
            is_loaded=self._field_loader.is_loaded,
            is_loading=self._field_loader.is_loading,
            name=f"{table_id}.fields",
        )
        self._table_loader = LoadCoordinator(
            self._fetch_table_data, self._broadcast, name=f"{table_id}.table"
        )
        self._table_unloader = UnloadScheduler(
            FieldRetentionTracker(name=f"{table_id}.table"),
            delay_seconds=delay,
            unload=self._unload_table_data,
            is_loaded=self._table_loader.is_loaded,
            is_loading=self._table_loader.is_loading,
            name=f"{table_id}.table",
        )

        backend.add_change_listener(table_id, self.apply_changes)

    def __repr__(self) -> str:
        return f"RecordStore({self.table_id!r})"

    @classmethod
    def _is_watchable_key(cls, key: Any) -> bool:
        return isinstance(key, RecordStoreKey) or (
            isinstance(key, CellValuesInField) and isinstance(key.field_id, str)
        )

    # ── Schema ───────────────────────────────────────────────────────

    @property
    def _data_or_none(self) -> TableData | None:
        return self._base_data.tables_by_id.get(self.table_id)

    @property
    def table_data(self) -> TableData:
        data = self._data_or_none
        invariant(data is not None, f"Table {self.table_id} has been deleted")
        return data

    @property
    def is_deleted(self) -> bool:
        return self._data_or_none is None

    @property
    def primary_field_id(self) -> str:
        return self._primary_field_id

    def get_view_index(self, view_id: str) -> ViewIndex:
        """Return the memoised :class:`ViewIndex` for ``view_id``.

        Raises:
            UnknownViewError: If the view is not in the table schema.
        """
        invariant(isinstance(view_id, str), "get_view_index expects a string", InvalidIdError)
        view_index = self._view_indexes_by_id.get(view_id)
        if view_index is not None:
            return view_index
        if view_id not in self.table_data.views_by_id:
            raise UnknownViewError("View must exist").with_context(
                table_id=self.table_id, view_id=view_id
            )
        view_index = ViewIndex(self, view_id)
        self._view_indexes_by_id[view_id] = view_index
        return view_index

    # ── Watching ─────────────────────────────────────────────────────

    def watch(self, keys: WatchKey | Iterable[WatchKey], callback: WatchCallback) -> list[WatchKey]:
        """Register ``callback`` and start loading whatever the keys need.

        Loads are fire-and-forget: ``watch`` returns before data arrives and
        the callback fires when it does.

        Raises:
            InvariantError: Outside a running event loop. Nothing is
                registered or retained in that case.
        """
        self._validate_watch(keys, callback)
        require_running_loop("RecordStore.watch")
        valid_keys = super().watch(keys, callback)
        field_ids = self._field_ids_for_keys(valid_keys)
        if field_ids:
            self.load_fields_in_background(field_ids)
        for key in valid_keys:
            if key is RecordStoreKey.CELL_VALUES:
                self._spawn(self._retain_and_load_table())
        return valid_keys

    def unwatch(self, keys: WatchKey | Iterable[WatchKey], callback: WatchCallback) -> list[WatchKey]:
        valid_keys = super().unwatch(keys, callback)
        field_ids = self._field_ids_for_keys(valid_keys)
        if field_ids:
            self.unload_fields(field_ids)
        for key in valid_keys:
            if key is RecordStoreKey.CELL_VALUES:
                self.unload_data()
        return valid_keys

    def _field_ids_for_keys(self, keys: Iterable[WatchKey]) -> list[str]:
        field_ids: list[str] = []
        for key in keys:
            match key:
                case CellValuesInField(field_id=field_id):
                    field_ids.append(field_id)
                case RecordStoreKey.RECORDS | RecordStoreKey.RECORD_IDS:
                    field_ids.append(self._metadata_field_id)
        return field_ids

    @property
    def _metadata_field_id(self) -> str:
        # Loading any field loads record ids; the primary field always exists.
        return self._primary_field_id

    def _broadcast(self, changed_keys: list[WatchKey]) -> None:
        for key in dict.fromkeys(changed_keys):
            self._on_change(key)

    def _spawn(self, awaitable: Awaitable[None]) -> None:
        task = asyncio.ensure_future(awaitable)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_background_load_done)

    def _on_background_load_done(self, task: asyncio.Task[None]) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(
                "watch.background_load_failed",
                table_id=self.table_id,
                error_type=type(error).__name__,
                error=str(error),
            )

    # ── Record metadata ──────────────────────────────────────────────

    @property
    def is_metadata_loaded(self) -> bool:
        """Record ids, created times and comment counts are loaded."""
        data = self._data_or_none
        return data is not None and data.records_by_id is not None

    async def load_metadata_async(self) -> None:
        await self.load_fields_async([self._metadata_field_id])

    def unload_metadata(self) -> None:
        self.unload_fields([self._metadata_field_id])

    def _records_by_id(self) -> dict[str, RecordData]:
        records_by_id = self.table_data.records_by_id
        if records_by_id is None:
            raise MetadataNotLoadedError("Record metadata is not loaded").with_context(
                table_id=self.table_id
            )
        return records_by_id

    @property
    def record_ids(self) -> list[str]:
        """Record ids in arbitrary order; records are only ordered within a view."""
        return list(self._records_by_id())

    @property
    def rows(self) -> list[Row]:
        """Row wrappers in arbitrary order."""
        return [self._get_or_create_row(record_id) for record_id in self._records_by_id()]

    def get_row_by_id(self, record_id: str) -> Row | None:
        records_by_id = self._records_by_id()
        invariant(isinstance(record_id, str), "get_row_by_id expects a string", InvalidIdError)
        if record_id not in records_by_id:
            return None
        return self._get_or_create_row(record_id)

    def get_row_by_id_or_raise(self, record_id: str) -> Row:
        row = self.get_row_by_id(record_id)
        if row is None:
            raise RecordNotFoundError("No record with that id in this table").with_context(
                table_id=self.table_id, record_id=record_id
            )
        return row

    def get_record_data(self, record_id: str) -> RecordData | None:
        """Cached data for ``record_id``; callers must not mutate it."""
        return self._records_by_id().get(record_id)

    def _get_or_create_row(self, record_id: str) -> Row:
        row = self._rows_by_id.get(record_id)
        if row is None:
            row = Row(self, record_id)
            self._rows_by_id[record_id] = row
        return row

    # ── Field values ─────────────────────────────────────────────────

    @property
    def is_data_loaded(self) -> bool:
        """Every field of the table is loaded through a full-table load."""
        return self._table_loader.is_loaded(_TABLE_DATA_KEY)

    def are_field_values_loaded(self, field_id: str) -> bool:
        return self.is_data_loaded or self._field_loader.is_loaded(field_id)

    def field_retention_state(self, field_id: str) -> RetentionState:
        return self._field_unloader.state(field_id)

    async def load_fields_async(self, field_ids: Iterable[str]) -> None:
        """Retain ``field_ids`` and return once their values are loaded.

        The retain is kept even if the load fails; pair every call with
        :meth:`unload_fields`.
        """
        await self._retain_and_load_fields(list(field_ids))

    def load_fields_in_background(self, field_ids: Iterable[str]) -> None:
        """Retain ``field_ids`` now and load them without waiting."""
        require_running_loop("RecordStore.load_fields_in_background")
        self._spawn(self._retain_and_load_fields(list(field_ids)))

    def _retain_and_load_fields(self, field_ids: list[str]) -> Awaitable[None]:
        for field_id in field_ids:
            invariant(isinstance(field_id, str), "field ids must be strings", InvalidIdError)
        self._field_unloader.retain(field_ids)
        return self._field_loader.ensure_loaded(field_ids)

    def unload_fields(self, field_ids: Iterable[str]) -> None:
        """Release one retain per field; data goes after the debounce window."""
        self._field_unloader.release(list(field_ids))

    async def _fetch_field_values(self, field_ids: list[str]) -> list[WatchKey]:
        async with LogContext(table_id=self.table_id):
            snapshot = await self._backend.fetch_and_subscribe_fields(self.table_id, field_ids)
            data = self._data_or_none
            if data is None:
                logger.info("load.table_deleted_during_load", field_ids=field_ids)
                return []

            existing_records = data.records_by_id or {}
            # Check every record before writing any, so a failed merge changes nothing.
            for record_id, new_record in snapshot.records_by_id.items():
                existing = existing_records.get(record_id)
                if existing is None:
                    continue
                if existing.comment_count != new_record.comment_count:
                    raise RecordOutOfSyncError("comment count out of sync").with_context(
                        table_id=self.table_id, record_id=record_id
                    )
                if existing.created_time != new_record.created_time:
                    raise RecordOutOfSyncError("created time out of sync").with_context(
                        table_id=self.table_id, record_id=record_id
                    )

            data.records_by_id = existing_records
            for record_id, new_record in snapshot.records_by_id.items():
                existing = existing_records.get(record_id)
                if existing is None:
                    existing_records[record_id] = new_record
                    continue
                for field_id in field_ids:
                    existing.cell_values_by_field_id[field_id] = (
                        new_record.cell_values_by_field_id.get(field_id)
                    )

            logger.debug(
                "load.fields_merged",
                field_ids=field_ids,
                record_count=len(snapshot.records_by_id),
            )

        changed_keys: list[WatchKey] = [CellValuesInField(field_id) for field_id in field_ids]
        changed_keys += [
            RecordStoreKey.RECORDS,
            RecordStoreKey.RECORD_IDS,
            RecordStoreKey.CELL_VALUES,
        ]
        return changed_keys

    def _unload_field_values(self, field_ids: list[str]) -> None:
        self._backend.unsubscribe_fields(self.table_id, field_ids)
        self._field_loader.mark_unloaded(field_ids)
        self._after_unload(field_ids)

    # ── Full table data ──────────────────────────────────────────────

    async def load_data_async(self) -> None:
        """Retain and load every field of the table in one fetch."""
        await self._retain_and_load_table()

    def _retain_and_load_table(self) -> Awaitable[None]:
        self._table_unloader.retain([_TABLE_DATA_KEY])
        return self._table_loader.ensure_loaded([_TABLE_DATA_KEY])

    def unload_data(self) -> None:
        self._table_unloader.release([_TABLE_DATA_KEY])

    async def _fetch_table_data(self, keys: list[str]) -> list[WatchKey]:
        async with LogContext(table_id=self.table_id):
            snapshot = await self._backend.fetch_and_subscribe_table(self.table_id)
            data = self._data_or_none
            if data is None:
                logger.info("load.table_deleted_during_load")
                return []
            data.records_by_id = snapshot.records_by_id
            for record_id in [r for r in self._rows_by_id if r not in snapshot.records_by_id]:
                del self._rows_by_id[record_id]
            logger.debug("load.table_replaced", record_count=len(snapshot.records_by_id))

        changed_keys: list[WatchKey] = [
            RecordStoreKey.RECORDS,
            RecordStoreKey.RECORD_IDS,
            RecordStoreKey.CELL_VALUES,
        ]
        changed_keys += [CellValuesInField(field_id) for field_id in data.field_ids]
        return changed_keys

    def _unload_table_data(self, keys: list[str]) -> None:
        self._backend.unsubscribe_table(self.table_id)
        self._table_loader.mark_unloaded(keys)
        self._after_unload(None)

    def _after_unload(self, unloaded_field_ids: list[str] | None) -> None:
        any_loaded = self.is_data_loaded or self._field_loader.any_loaded
        data = self._data_or_none
        if data is not None:
            if not any_loaded:
                data.records_by_id = None
            elif not self.is_data_loaded:
                if unloaded_field_ids is not None:
                    field_ids_to_clear = unloaded_field_ids
                else:
                    field_ids_to_clear = [
                        field_id
                        for field_id in data.field_ids
                        if not self._field_loader.is_loaded(field_id)
                    ]
                for record in (data.records_by_id or {}).values():
                    for field_id in field_ids_to_clear:
                        record.cell_values_by_field_id.pop(field_id, None)
        if not any_loaded:
            self._rows_by_id.clear()
            logger.info("unload.records_dropped", table_id=self.table_id)

    # ── Pushed changes ───────────────────────────────────────────────

    def apply_changes(self, changes: RecordChanges) -> None:
        """Apply a backend push to the cache and fire the resulting notifications.

        Only values of loaded fields are kept. Nothing is applied while record
        metadata is not loaded: there is no state to diff against.
        """
        if not self.is_metadata_loaded or changes.is_empty:
            return
        records_by_id = self._records_by_id()
        dirty_records: dict[str, RecordDirtyPath] = {}

        for record_id, record in changes.created.items():
            field_ids = [f for f in record.cell_values_by_field_id if self.are_field_values_loaded(f)]
            records_by_id[record_id] = record.copy(field_ids)
            dirty_records[record_id] = RecordDirtyPath(
                is_dirty=True,
                cell_values_by_field_id={field_id: True for field_id in field_ids},
            )

        for record_id, cell_values in changes.updated_cell_values.items():
            record = records_by_id.get(record_id)
            if record is None:
                continue
            for field_id, value in cell_values.items():
                if not self.are_field_values_loaded(field_id):
                    continue
                record.cell_values_by_field_id[field_id] = value
                paths = dirty_records.setdefault(record_id, RecordDirtyPath())
                paths.cell_values_by_field_id[field_id] = True

        for record_id, comment_count in changes.comment_counts.items():
            record = records_by_id.get(record_id)
            if record is None:
                continue
            record.comment_count = comment_count
            dirty_records.setdefault(record_id, RecordDirtyPath()).comment_count = True

        for record_id in changes.removed:
            if records_by_id.pop(record_id, None) is not None:
                dirty_records[record_id] = RecordDirtyPath(is_dirty=True)

        self.trigger_on_change_for_dirty_paths(DirtyPaths(records_by_id=dirty_records))

    def trigger_on_change_for_dirty_paths(self, dirty_paths: DirtyPaths) -> None:
        """Fire notifications for a diff that has already been applied to the cache."""
        known_record_ids = self.table_data.records_by_id if self.is_metadata_loaded else None
        translation = self._translator.translate(dirty_paths, known_record_ids)

        for record_id in translation.removed_record_ids:
            self._rows_by_id.pop(record_id, None)
        for record_id, record_paths in translation.in_place.items():
            row = self._rows_by_id.get(record_id)
            if row is not None:
                row.trigger_on_change_for_dirty_paths(record_paths)

        for notification in translation.notifications:
            self._on_change(notification.key, notification.payload)

    # ── Lifecycle ────────────────────────────────────────────────────

    def close(self) -> None:
        """Stop listening for pushes and settle every pending unload now."""
        self._backend.remove_change_listener(self.table_id, self.apply_changes)
        self._field_unloader.flush()
        self._table_unloader.flush()
