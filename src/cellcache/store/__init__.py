"""Record store and its building blocks.

Modules
-------
record_store    RecordStore -- per-table cache, watch routing, row cache
keys            Watch keys and change payloads
retention       FieldRetentionTracker -- retain counts
loading         LoadCoordinator -- deduplicated async loads
unloading       UnloadScheduler -- debounced release
dirty_paths     DirtyPathTranslator -- diffs to notifications
row             Row -- per-record wrapper
view_index      ViewIndex -- per-view row order
"""

from cellcache.store.dirty_paths import DirtyPaths, DirtyPathTranslator, RecordDirtyPath
from cellcache.store.keys import (
    CellValueInField,
    CellValuesChange,
    CellValuesInField,
    CellValuesInFieldChange,
    RecordsChange,
    RecordStoreKey,
    RowKey,
)
from cellcache.store.loading import LoadCoordinator
from cellcache.store.record_store import RecordStore
from cellcache.store.retention import FieldRetentionTracker
from cellcache.store.row import Row
from cellcache.store.unloading import RetentionState, UnloadScheduler
from cellcache.store.view_index import ViewIndex

__all__ = [
    "CellValueInField",
    "CellValuesChange",
    "CellValuesInField",
    "CellValuesInFieldChange",
    "DirtyPaths",
    "DirtyPathTranslator",
    "FieldRetentionTracker",
    "LoadCoordinator",
    "RecordDirtyPath",
    "RecordsChange",
    "RecordStore",
    "RecordStoreKey",
    "RetentionState",
    "Row",
    "RowKey",
    "UnloadScheduler",
    "ViewIndex",
]
