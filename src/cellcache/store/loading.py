"""
Deduplicated asynchronous loading.

WHY
───
Many watchers mount at once and each asks for the fields it renders. Without
coordination, two components showing the same column would each trigger a
backend fetch. :class:`LoadCoordinator` keeps at most one fetch in flight per
key and lets every later requester join it.

ARCHITECTURE
────────────
::

    ensure_loaded([F1, F2, F3])
      ├── F1 loaded         → nothing to wait for
      ├── F2 in flight      → join the shared batch task for F2
      └── F3 cold           → new batch task fetch([F3])
                                 └── on success: mark loaded, clear
                                     in-flight markers, on_loaded(changed keys)
      await gather(shield(F2 batch), shield(F3 batch))

A failed batch raises to every caller joined on it. Its in-flight markers
are cleared in a ``finally`` block, so the next ``ensure_loaded`` retries.
Callers are joined through ``asyncio.shield``: cancelling one waiter never
cancels the batch the others share.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from cellcache.core.errors import InvariantError
from cellcache.core.logging import get_logger

__all__ = ["LoadCoordinator", "require_running_loop"]

logger = get_logger(__name__)


def require_running_loop(operation: str) -> None:
    """Fail before any state changes when there is no loop to run a load on.

    Raises:
        InvariantError: If called outside a running event loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError as e:
        raise InvariantError(
            f"{operation} needs a running event loop; call it from async code"
        ) from e


class LoadCoordinator:
    """One shared in-flight load per key.

    Parameters
    ----------
    fetch : Callable[[list[str]], Awaitable[Iterable[Any]]]
        Loads a batch of cold keys, merges the result into the cache and
        returns the watch keys that changed.
    on_loaded : Callable[[list[Any]], None]
        Broadcasts the changed watch keys once the batch is marked loaded.
    """

    def __init__(
        self,
        fetch: Callable[[list[str]], Awaitable[Iterable[Any]]],
        on_loaded: Callable[[list[Any]], None],
        *,
        name: str = "fields",
    ) -> None:
        self._fetch = fetch
        self._on_loaded = on_loaded
        self._name = name
        self._loaded: set[str] = set()
        self._pending: dict[str, asyncio.Task[None]] = {}

    # ── State ────────────────────────────────────────────────────────

    def is_loaded(self, key: str) -> bool:
        return key in self._loaded

    def is_loading(self, key: str) -> bool:
        return key in self._pending

    @property
    def loaded_keys(self) -> list[str]:
        return sorted(self._loaded)

    @property
    def any_loaded(self) -> bool:
        return bool(self._loaded)

    def mark_unloaded(self, keys: Iterable[str]) -> None:
        self._loaded.difference_update(keys)

    # ── Loading ──────────────────────────────────────────────────────

    async def ensure_loaded(self, keys: Iterable[str]) -> None:
        """Return once every key in ``keys`` is loaded.

        Raises:
            Exception: Whatever the fetch of a joined batch raised.
        """
        waiting: list[asyncio.Task[None]] = []
        cold: list[str] = []
        for key in dict.fromkeys(keys):
            if key in self._loaded:
                continue
            pending = self._pending.get(key)
            if pending is None:
                cold.append(key)
            elif pending not in waiting:
                waiting.append(pending)

        if cold:
            batch = asyncio.ensure_future(self._load_batch(cold))
            batch.add_done_callback(self._observe_batch)
            for key in cold:
                self._pending[key] = batch
            waiting.append(batch)

        if waiting:
            await asyncio.gather(*(asyncio.shield(task) for task in waiting))

    async def _load_batch(self, keys: list[str]) -> None:
        logger.debug("load.batch_started", loader=self._name, keys=keys)
        try:
            changed = list(await self._fetch(keys))
        except Exception as e:
            logger.warning("load.batch_failed", loader=self._name, keys=keys, error=str(e))
            raise
        finally:
            for key in keys:
                self._pending.pop(key, None)

        self._loaded.update(keys)
        logger.debug("load.batch_completed", loader=self._name, keys=keys)
        self._on_loaded(changed)

    @staticmethod
    def _observe_batch(task: asyncio.Task[None]) -> None:
        # Retrieve the exception so a batch whose waiters all went away does
        # not log "exception was never retrieved".
        if not task.cancelled():
            task.exception()
