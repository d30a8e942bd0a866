"""
Shared pytest fixtures for cellcache tests.

This module provides:
- A short-debounce ``CacheSettings``
- An ``InMemoryDataBackend`` seeded with a two-record table
- Matching ``BaseData`` schema and a ``RecordStore`` over both
- ``Recorder`` callbacks that capture watch notifications

Usage:
    Fixtures are auto-discovered by pytest::

        @pytest.mark.asyncio
        async def test_something(store, backend, recorder):
            store.watch(CellValuesInField("fldName"), recorder)
"""

import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

# Ensure cellcache package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cellcache import BaseData, RecordData, RecordStore, TableData, ViewData
from cellcache.backend.memory import InMemoryDataBackend
from cellcache.core.settings import CacheSettings, reset_settings

TABLE_ID = "tbl1"
CREATED_TIME = datetime(2024, 1, 1, tzinfo=UTC)
UNLOAD_DELAY_SECONDS = 0.01


class Recorder:
    """Watch callback that records ``(key, args)`` for every notification."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, tuple[Any, ...]]] = []
        self.models: list[Any] = []

    def __call__(self, model: Any, key: Any, *args: Any) -> None:
        self.models.append(model)
        self.calls.append((key, args))

    @property
    def keys(self) -> list[Any]:
        return [key for key, _ in self.calls]

    def clear(self) -> None:
        self.calls.clear()
        self.models.clear()


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_cached_settings():
    """Keep the process-wide settings cache from leaking between tests."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings() -> CacheSettings:
    return CacheSettings(unload_delay_seconds=UNLOAD_DELAY_SECONDS)


# =============================================================================
# Data
# =============================================================================


def make_records() -> dict[str, RecordData]:
    return {
        "rec1": RecordData(
            created_time=CREATED_TIME,
            comment_count=0,
            cell_values_by_field_id={"fldName": "Alice", "fldAge": 30, "fldNotes": None},
        ),
        "rec2": RecordData(
            created_time=CREATED_TIME,
            comment_count=2,
            cell_values_by_field_id={"fldName": "Bob", "fldAge": 41},
        ),
    }


@pytest.fixture
def backend() -> InMemoryDataBackend:
    backend = InMemoryDataBackend()
    backend.add_table(TABLE_ID, make_records())
    return backend


@pytest.fixture
def base_data() -> BaseData:
    base = BaseData()
    base.add_table(
        TableData(
            table_id=TABLE_ID,
            primary_field_id="fldName",
            field_ids=["fldName", "fldAge", "fldNotes"],
            views_by_id={
                "viwGrid": ViewData(
                    view_id="viwGrid", name="Grid", visible_record_ids=["rec2", "rec1"]
                ),
            },
        )
    )
    return base


@pytest.fixture
def store(base_data, backend, settings) -> RecordStore:
    return RecordStore(base_data, backend, TABLE_ID, settings=settings)


# =============================================================================
# Callbacks
# =============================================================================


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_recorder():
    return Recorder
