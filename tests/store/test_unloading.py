"""Tests for cellcache.store.unloading — debounced release."""

import asyncio

import pytest
from structlog.testing import capture_logs

from cellcache.store.retention import FieldRetentionTracker
from cellcache.store.unloading import RetentionState, UnloadScheduler

DELAY = 0.01
SETTLE = 0.05


class Harness:
    """Loaded/loading sets and an unload log wired into a scheduler."""

    def __init__(self, delay: float = DELAY) -> None:
        self.loaded: set[str] = set()
        self.loading: set[str] = set()
        self.unloads: list[list[str]] = []
        self.scheduler = UnloadScheduler(
            FieldRetentionTracker(),
            delay_seconds=delay,
            unload=self._unload,
            is_loaded=lambda key: key in self.loaded,
            is_loading=lambda key: key in self.loading,
        )

    def _unload(self, keys):
        self.unloads.append(list(keys))
        self.loaded.difference_update(keys)


@pytest.fixture
def harness():
    return Harness()


class TestStateMachine:
    @pytest.mark.asyncio
    async def test_transitions(self, harness):
        scheduler = harness.scheduler
        harness.loaded.add("fld1")
        assert scheduler.state("fld1") is RetentionState.UNWATCHED

        scheduler.retain(["fld1"])
        assert scheduler.state("fld1") is RetentionState.RETAINED

        scheduler.release(["fld1"])
        assert scheduler.state("fld1") is RetentionState.PENDING_RELEASE
        assert harness.unloads == []

        await asyncio.sleep(SETTLE)
        assert scheduler.state("fld1") is RetentionState.UNWATCHED
        assert harness.unloads == [["fld1"]]

    @pytest.mark.asyncio
    async def test_retain_during_window_cancels_release(self, harness):
        scheduler = harness.scheduler
        harness.loaded.add("fld1")
        scheduler.retain(["fld1"])
        scheduler.release(["fld1"])
        scheduler.retain(["fld1"])
        assert scheduler.pending_keys == []

        await asyncio.sleep(SETTLE)
        assert harness.unloads == []
        assert scheduler.state("fld1") is RetentionState.RETAINED


class TestChurn:
    @pytest.mark.asyncio
    async def test_churn_within_window_unloads_once(self, harness):
        scheduler = harness.scheduler
        harness.loaded.add("fld1")
        for _ in range(5):
            scheduler.retain(["fld1"])
            scheduler.release(["fld1"])

        await asyncio.sleep(SETTLE)
        assert harness.unloads == [["fld1"]]

    @pytest.mark.asyncio
    async def test_keys_released_together_unload_together(self, harness):
        scheduler = harness.scheduler
        harness.loaded.update({"fld1", "fld2"})
        scheduler.retain(["fld1", "fld2"])
        scheduler.release(["fld1", "fld2"])

        await asyncio.sleep(SETTLE)
        assert harness.unloads == [["fld1", "fld2"]]

    @pytest.mark.asyncio
    async def test_rewatching_one_key_keeps_the_other_pending(self, harness):
        scheduler = harness.scheduler
        harness.loaded.update({"fld1", "fld2"})
        scheduler.retain(["fld1", "fld2"])
        scheduler.release(["fld1", "fld2"])
        scheduler.retain(["fld1"])

        await asyncio.sleep(SETTLE)
        assert harness.unloads == [["fld2"]]


class TestExpiryChecks:
    @pytest.mark.asyncio
    async def test_not_loaded_is_skipped(self, harness):
        harness.scheduler.release(["fld1"])
        await asyncio.sleep(SETTLE)
        assert harness.unloads == []

    @pytest.mark.asyncio
    async def test_still_loading_is_deferred(self, harness):
        scheduler = harness.scheduler
        harness.loading.add("fld1")
        scheduler.retain(["fld1"])
        scheduler.release(["fld1"])

        await asyncio.sleep(SETTLE)
        assert harness.unloads == []
        assert scheduler.state("fld1") is RetentionState.PENDING_RELEASE

        harness.loading.discard("fld1")
        harness.loaded.add("fld1")
        await asyncio.sleep(SETTLE)
        assert harness.unloads == [["fld1"]]


class TestFlush:
    @pytest.mark.asyncio
    async def test_flush_unloads_immediately(self):
        harness = Harness(delay=60)
        harness.loaded.add("fld1")
        harness.scheduler.retain(["fld1"])
        harness.scheduler.release(["fld1"])

        harness.scheduler.flush()
        assert harness.unloads == [["fld1"]]
        assert harness.scheduler.pending_keys == []


class TestWithoutEventLoop:
    def test_release_outside_loop_unloads_immediately(self, harness):
        harness.loaded.add("fld1")
        harness.scheduler.retain(["fld1"])
        harness.scheduler.release(["fld1"])
        assert harness.unloads == [["fld1"]]

    def test_loading_key_released_outside_loop_is_logged(self, harness):
        harness.loading.add("fld1")
        harness.scheduler.retain(["fld1"])
        with capture_logs() as logs:
            harness.scheduler.release(["fld1"])

        assert harness.unloads == []
        assert harness.scheduler.pending_keys == []
        assert {
            "event": "unload.abandoned_while_loading",
            "log_level": "warning",
            "scheduler": "fields",
            "keys": ["fld1"],
        } in logs
