"""
In-memory data backend implementation.

Manifesto:
    The store's guarantees (one fetch per field, one unsubscribe per settled
    release) are statements about backend traffic. An in-process backend that
    records that traffic makes them testable without a server.

Holds the authoritative records for each table, serves copies of them,
counts subscriptions and records every call. Fetches can be paused (to
hold a load in flight) or made to fail once.

Tags:
    cellcache, backend, in-memory, testing

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
from collections import Counter

from cellcache.backend import ChangeListener
from cellcache.core.errors import BackendError, BackendUnavailableError
from cellcache.core.logging import get_logger
from cellcache.models import RecordChanges, RecordData, RecordsSnapshot

__all__ = ["InMemoryDataBackend"]

logger = get_logger(__name__)


class InMemoryDataBackend:
    """In-process data backend for tests and single-process use.

    Example::

        backend = InMemoryDataBackend()
        backend.add_table("tbl1", {"rec1": RecordData(created_time=now)})

        backend.pause()
        task = asyncio.create_task(store.load_fields_async(["fld1"]))
        ...                      # load is in flight
        backend.resume()
        await task
    """

    def __init__(self, *, latency_seconds: float = 0.0) -> None:
        self._latency = latency_seconds
        self._tables: dict[str, dict[str, RecordData]] = {}
        self._listeners: dict[str, list[ChangeListener]] = {}
        self._gate: asyncio.Event | None = None
        self._failures: list[Exception] = []
        self._field_subscriptions: Counter[tuple[str, str]] = Counter()
        self._table_subscriptions: Counter[str] = Counter()

        self.field_fetch_calls: list[tuple[str, tuple[str, ...]]] = []
        self.table_fetch_calls: list[str] = []
        self.field_unsubscribe_calls: list[tuple[str, tuple[str, ...]]] = []
        self.table_unsubscribe_calls: list[str] = []

    # ── Setup ────────────────────────────────────────────────────────

    def add_table(self, table_id: str, records_by_id: dict[str, RecordData] | None = None) -> None:
        self._tables[table_id] = {
            record_id: record.copy() for record_id, record in (records_by_id or {}).items()
        }

    def records(self, table_id: str) -> dict[str, RecordData]:
        """The authoritative records of ``table_id`` (not a copy)."""
        return self._tables[table_id]

    def fail_next_fetch(self, error: Exception | None = None) -> None:
        """Make the next fetch raise ``error`` (a transient error by default)."""
        self._failures.append(error or BackendUnavailableError("Backend unavailable"))

    def pause(self) -> None:
        """Hold every fetch until :meth:`resume`."""
        if self._gate is None:
            self._gate = asyncio.Event()

    def resume(self) -> None:
        if self._gate is not None:
            self._gate.set()
            self._gate = None

    # ── DataBackend protocol ─────────────────────────────────────────

    async def fetch_and_subscribe_fields(
        self, table_id: str, field_ids: list[str]
    ) -> RecordsSnapshot:
        self.field_fetch_calls.append((table_id, tuple(field_ids)))
        await self._before_fetch(table_id)
        for field_id in field_ids:
            self._field_subscriptions[(table_id, field_id)] += 1
        return RecordsSnapshot(
            records_by_id={
                record_id: record.copy(list(field_ids))
                for record_id, record in self._tables[table_id].items()
            }
        )

    async def fetch_and_subscribe_table(self, table_id: str) -> RecordsSnapshot:
        self.table_fetch_calls.append(table_id)
        await self._before_fetch(table_id)
        self._table_subscriptions[table_id] += 1
        return RecordsSnapshot(
            records_by_id={
                record_id: record.copy() for record_id, record in self._tables[table_id].items()
            }
        )

    def unsubscribe_fields(self, table_id: str, field_ids: list[str]) -> None:
        self.field_unsubscribe_calls.append((table_id, tuple(field_ids)))
        for field_id in field_ids:
            key = (table_id, field_id)
            if self._field_subscriptions[key] <= 0:
                logger.warning("backend.unsubscribe_without_subscription", table_id=table_id, field_id=field_id)
                continue
            self._field_subscriptions[key] -= 1

    def unsubscribe_table(self, table_id: str) -> None:
        self.table_unsubscribe_calls.append(table_id)
        if self._table_subscriptions[table_id] <= 0:
            logger.warning("backend.unsubscribe_without_subscription", table_id=table_id)
            return
        self._table_subscriptions[table_id] -= 1

    def add_change_listener(self, table_id: str, listener: ChangeListener) -> None:
        self._listeners.setdefault(table_id, []).append(listener)

    def remove_change_listener(self, table_id: str, listener: ChangeListener) -> None:
        listeners = self._listeners.get(table_id, [])
        if listener in listeners:
            listeners.remove(listener)

    # ── Inspection ───────────────────────────────────────────────────

    def is_field_subscribed(self, table_id: str, field_id: str) -> bool:
        return self._field_subscriptions[(table_id, field_id)] > 0

    def is_table_subscribed(self, table_id: str) -> bool:
        return self._table_subscriptions[table_id] > 0

    def field_fetch_count(self, table_id: str, field_id: str) -> int:
        """Number of fetches that included ``field_id``."""
        return sum(
            1
            for fetched_table_id, field_ids in self.field_fetch_calls
            if fetched_table_id == table_id and field_id in field_ids
        )

    def field_unsubscribe_count(self, table_id: str, field_id: str) -> int:
        return sum(
            1
            for unsubscribed_table_id, field_ids in self.field_unsubscribe_calls
            if unsubscribed_table_id == table_id and field_id in field_ids
        )

    # ── Push ─────────────────────────────────────────────────────────

    def push_changes(self, table_id: str, changes: RecordChanges) -> None:
        """Apply ``changes`` to the authoritative records and notify listeners."""
        records = self._tables[table_id]
        for record_id, record in changes.created.items():
            records[record_id] = record.copy()
        for record_id, cell_values in changes.updated_cell_values.items():
            if record_id in records:
                records[record_id].cell_values_by_field_id.update(cell_values)
        for record_id, comment_count in changes.comment_counts.items():
            if record_id in records:
                records[record_id].comment_count = comment_count
        for record_id in changes.removed:
            records.pop(record_id, None)

        for listener in list(self._listeners.get(table_id, [])):
            listener(changes)

    async def _before_fetch(self, table_id: str) -> None:
        gate = self._gate
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(self._latency)

        if self._failures:
            raise self._failures.pop(0)
        if table_id not in self._tables:
            raise BackendError(f"Unknown table: {table_id}").with_context(table_id=table_id)
