"""
Debounced release of retained data.

When a key's retain count reaches zero the data is not dropped at once.
The scheduler starts a timer for the debounce window and only unloads if
the count is still zero when it fires, so a quick unwatch/watch pair (a UI
remount) costs no backend unsubscribe/resubscribe.

Each key moves through an explicit state machine::

    UNWATCHED ──retain──▶ RETAINED ──release to 0──▶ PENDING_RELEASE
        ▲                    ▲                            │
        │                    └──────────retain────────────┤
        └──────────────────timer fires, count 0───────────┘

Keys still loading when their timer fires get another full window; keys
that are neither loaded nor loading are skipped, which makes a repeated
unload of already-unloaded data a logged no-op.

Tags:
    cellcache, retention, debounce, unload

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

from cellcache.core.logging import get_logger
from cellcache.store.retention import FieldRetentionTracker

__all__ = ["RetentionState", "UnloadScheduler"]

logger = get_logger(__name__)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class RetentionState(str, Enum):
    UNWATCHED = "unwatched"
    RETAINED = "retained"
    PENDING_RELEASE = "pending_release"


@dataclass(eq=False)
class _PendingRelease:
    """Keys that reached zero together and share one timer."""

    keys: list[str]
    handle: asyncio.TimerHandle | None = None
    live_keys: set[str] = field(default_factory=set)


class UnloadScheduler:
    """Wraps a :class:`FieldRetentionTracker` with debounced unloading.

    Parameters
    ----------
    tracker : FieldRetentionTracker
        Retain counts for the keys this scheduler manages.
    delay_seconds : float
        Debounce window. Outside a running event loop releases happen
        immediately.
    unload : Callable[[list[str]], None]
        Releases the data for keys that settled at zero.
    is_loaded, is_loading : Callable[[str], bool]
        Queried at expiry to decide what to do with each key.
    """

    def __init__(
        self,
        tracker: FieldRetentionTracker,
        *,
        delay_seconds: float,
        unload: Callable[[list[str]], None],
        is_loaded: Callable[[str], bool],
        is_loading: Callable[[str], bool],
        name: str = "fields",
    ) -> None:
        self._tracker = tracker
        self._delay = delay_seconds
        self._unload = unload
        self._is_loaded = is_loaded
        self._is_loading = is_loading
        self._name = name
        self._pending: dict[str, _PendingRelease] = {}

    @property
    def tracker(self) -> FieldRetentionTracker:
        return self._tracker

    def state(self, key: str) -> RetentionState:
        if self._tracker.is_retained(key):
            return RetentionState.RETAINED
        if key in self._pending:
            return RetentionState.PENDING_RELEASE
        return RetentionState.UNWATCHED

    def retain(self, keys: Iterable[str]) -> None:
        """Add one unit per key and cancel any pending release of those keys."""
        key_list = list(keys)
        self._tracker.retain(key_list)
        for key in key_list:
            pending = self._pending.pop(key, None)
            if pending is None:
                continue
            pending.live_keys.discard(key)
            logger.debug("unload.cancelled", scheduler=self._name, key=key)
            if not pending.live_keys and pending.handle is not None:
                pending.handle.cancel()

    def release(self, keys: Iterable[str]) -> list[str]:
        """Remove one unit per key and schedule unloads for keys now at zero."""
        zeroed = self._tracker.release(keys)
        if zeroed:
            self._schedule(zeroed)
        return zeroed

    def flush(self) -> None:
        """Expire every pending release now instead of waiting for its timer."""
        batches = list({id(p): p for p in self._pending.values()}.values())
        for pending in batches:
            if pending.handle is not None:
                pending.handle.cancel()
            self._expire(pending)

    @property
    def pending_keys(self) -> list[str]:
        return list(self._pending)

    def _schedule(self, keys: list[str]) -> None:
        pending = _PendingRelease(keys=list(keys), live_keys=set(keys))
        for key in keys:
            previous = self._pending.get(key)
            if previous is not None:
                previous.live_keys.discard(key)
                if not previous.live_keys and previous.handle is not None:
                    previous.handle.cancel()
            self._pending[key] = pending

        loop = _running_loop()
        if loop is None:
            # No event loop to wait on; release right away.
            self._expire(pending)
            return

        pending.handle = loop.call_later(self._delay, self._expire, pending)
        logger.debug(
            "unload.scheduled",
            scheduler=self._name,
            keys=keys,
            delay_seconds=self._delay,
        )

    def _expire(self, pending: _PendingRelease) -> None:
        keys = [key for key in pending.keys if self._pending.get(key) is pending]
        for key in keys:
            del self._pending[key]
        pending.live_keys.clear()

        settled = [key for key in keys if self._tracker.count(key) == 0]
        still_loading = [key for key in settled if self._is_loading(key)]
        to_unload = [
            key for key in settled if key not in still_loading and self._is_loaded(key)
        ]
        skipped = [key for key in settled if key not in still_loading and key not in to_unload]

        if skipped:
            logger.debug("unload.skipped_not_loaded", scheduler=self._name, keys=skipped)
        if still_loading:
            if _running_loop() is not None:
                logger.debug(
                    "unload.deferred_while_loading", scheduler=self._name, keys=still_loading
                )
                self._schedule(still_loading)
            else:
                # The in-flight load will still mark these keys loaded.
                logger.warning(
                    "unload.abandoned_while_loading", scheduler=self._name, keys=still_loading
                )
        if to_unload:
            logger.info("unload.releasing", scheduler=self._name, keys=to_unload)
            self._unload(to_unload)
