"""Data backend contract.

Why This Package Exists
-----------------------
The record store never talks to a transport directly. It consumes a
``DataBackend``: something that can hand back a snapshot of a table (or of
some of its fields) and keep pushing changes afterwards, until told to stop.

Usage::

    from cellcache.backend.memory import InMemoryDataBackend

    backend = InMemoryDataBackend()
    backend.add_table("tbl1", records_by_id)
    snapshot = await backend.fetch_and_subscribe_fields("tbl1", ["fld1"])

Modules
-------
memory      InMemoryDataBackend -- authoritative in-process tables, for tests and dev
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from cellcache.models import RecordChanges, RecordsSnapshot

__all__ = ["DataBackend", "ChangeListener"]

ChangeListener = Callable[[RecordChanges], None]


@runtime_checkable
class DataBackend(Protocol):
    """Protocol for remote sources of record data.

    Implementations:
        - :class:`~cellcache.backend.memory.InMemoryDataBackend`
    """

    async def fetch_and_subscribe_fields(
        self, table_id: str, field_ids: list[str]
    ) -> RecordsSnapshot:
        """Return every record with cell values for ``field_ids`` only.

        Also subscribes to future changes of those fields.

        Raises:
            BackendError: If the fetch fails.
        """
        ...

    async def fetch_and_subscribe_table(self, table_id: str) -> RecordsSnapshot:
        """Return every record with all cell values and subscribe to the table."""
        ...

    def unsubscribe_fields(self, table_id: str, field_ids: list[str]) -> None:
        """Release a subscription made by :meth:`fetch_and_subscribe_fields`."""
        ...

    def unsubscribe_table(self, table_id: str) -> None:
        """Release a subscription made by :meth:`fetch_and_subscribe_table`."""
        ...

    def add_change_listener(self, table_id: str, listener: ChangeListener) -> None:
        """Deliver pushed changes for ``table_id`` to ``listener``."""
        ...

    def remove_change_listener(self, table_id: str, listener: ChangeListener) -> None:
        ...
