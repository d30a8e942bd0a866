"""
cellcache - field-granular, reference-counted cache of remote table data.

Quick start::

    from cellcache import BaseData, RecordStore, TableData
    from cellcache.backend.memory import InMemoryDataBackend
    from cellcache.store import CellValuesInField

    base = BaseData()
    base.add_table(TableData(table_id="tbl1", primary_field_id="fld1", field_ids=["fld1"]))
    store = RecordStore(base, backend, "tbl1")
    store.watch(CellValuesInField("fld1"), on_change)
"""

from cellcache.core.errors import CellCacheError
from cellcache.models import BaseData, RecordChanges, RecordData, TableData, ViewData
from cellcache.store.record_store import RecordStore

__version__ = "0.1.0"

__all__ = [
    "BaseData",
    "CellCacheError",
    "RecordChanges",
    "RecordData",
    "RecordStore",
    "TableData",
    "ViewData",
    "__version__",
]
