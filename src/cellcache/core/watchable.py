"""
Watch/unwatch/notify substrate shared by every observable model.

A :class:`Watchable` maps watch keys to the callbacks interested in them.
Subclasses decide which keys are valid (``_is_watchable_key``) and fire
``_on_change(key, *args)`` when the data behind a key changes. Callbacks are
called synchronously as ``callback(model, key, *args)``.

Each ``watch`` call is one unit of interest: watching the same key with the
same callback twice needs two ``unwatch`` calls.

Tags:
    cellcache, watch, notifications, observer

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from cellcache.core.errors import InvalidWatchKeyError, invariant
from cellcache.core.logging import get_logger

__all__ = ["Watchable", "WatchCallback", "as_key_list"]

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)

WatchCallback = Callable[..., None]


@dataclass
class _Subscription:
    """Internal subscription record."""

    key: Hashable
    callback: WatchCallback


def as_key_list(keys: Any) -> list[Any]:
    """Normalise a single key or a collection of keys to a list."""
    if isinstance(keys, (list, tuple, set, frozenset)):
        return list(keys)
    return [keys]


class Watchable(Generic[K]):
    """Base class for models whose data can be watched by key.

    Example::

        class Counter(Watchable[str]):
            @classmethod
            def _is_watchable_key(cls, key):
                return key == "value"

        counter = Counter("counter")
        counter.watch("value", lambda model, key, *args: print(key))
        counter._on_change("value")
    """

    _class_name = "Watchable"

    def __init__(self, watchable_id: str) -> None:
        self._watchable_id = watchable_id
        self._subscriptions: list[_Subscription] = []

    @classmethod
    def _is_watchable_key(cls, key: Any) -> bool:
        return False

    @property
    def watchable_id(self) -> str:
        return self._watchable_id

    def watch(self, keys: K | Iterable[K], callback: WatchCallback) -> list[K]:
        """Register ``callback`` for each key.

        Returns:
            The keys that were registered.

        Raises:
            InvalidWatchKeyError: If any key is not valid for this model.
        """
        key_list = self._validate_watch(keys, callback)
        for key in key_list:
            self._subscriptions.append(_Subscription(key=key, callback=callback))
        return key_list

    def _validate_watch(self, keys: K | Iterable[K], callback: WatchCallback) -> list[K]:
        """Check a watch request without registering anything."""
        key_list = as_key_list(keys)
        invariant(callable(callback), "watch callback must be callable")
        for key in key_list:
            if not self._is_watchable_key(key):
                raise InvalidWatchKeyError(
                    f"Invalid key to watch for {self._class_name}: {key!r}"
                )
        return key_list

    def unwatch(self, keys: K | Iterable[K], callback: WatchCallback) -> list[K]:
        """Remove one registration of ``callback`` per key.

        Returns:
            The keys that actually had ``callback`` registered. Keys without a
            matching registration are logged and skipped.
        """
        removed: list[K] = []
        for key in as_key_list(keys):
            for index, subscription in enumerate(self._subscriptions):
                if subscription.key == key and subscription.callback == callback:
                    del self._subscriptions[index]
                    removed.append(key)
                    break
            else:
                logger.warning(
                    "watchable.unwatch_without_watch",
                    watchable=self._watchable_id,
                    key=repr(key),
                )
        return removed

    @property
    def watched_keys(self) -> list[K]:
        """Keys with at least one registered callback, in registration order."""
        return list(dict.fromkeys(sub.key for sub in self._subscriptions))

    def is_watched(self, key: K) -> bool:
        return any(sub.key == key for sub in self._subscriptions)

    def _on_change(self, key: K, *args: Any) -> None:
        """Fire every callback registered for ``key``.

        A failing callback is logged and does not stop delivery to the others.
        """
        callbacks = [sub.callback for sub in self._subscriptions if sub.key == key]
        for callback in callbacks:
            try:
                callback(self, key, *args)
            except Exception as e:
                logger.warning(
                    "watchable.callback_error",
                    watchable=self._watchable_id,
                    key=repr(key),
                    error=str(e),
                )
