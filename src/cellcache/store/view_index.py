"""Per-view ordering of a table's rows."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cellcache.core.errors import UnknownViewError
from cellcache.models import ViewData

if TYPE_CHECKING:
    from cellcache.store.record_store import RecordStore
    from cellcache.store.row import Row

__all__ = ["ViewIndex"]


class ViewIndex:
    """Reads a view's row order from the schema and resolves it against the store.

    Owns no loading logic: record ids the store does not know (deleted, or not
    yet pushed) are skipped.
    """

    def __init__(self, store: RecordStore, view_id: str) -> None:
        self._store = store
        self._view_id = view_id

    def __repr__(self) -> str:
        return f"ViewIndex({self._view_id!r}, table={self._store.table_id!r})"

    @property
    def view_id(self) -> str:
        return self._view_id

    @property
    def _view(self) -> ViewData:
        view = self._store.table_data.views_by_id.get(self._view_id)
        if view is None:
            raise UnknownViewError("View has been deleted").with_context(
                table_id=self._store.table_id, view_id=self._view_id
            )
        return view

    @property
    def record_ids(self) -> list[str]:
        known = set(self._store.record_ids)
        return [record_id for record_id in self._view.visible_record_ids if record_id in known]

    @property
    def rows(self) -> list[Row]:
        rows = []
        for record_id in self.record_ids:
            row = self._store.get_row_by_id(record_id)
            if row is not None:
                rows.append(row)
        return rows
