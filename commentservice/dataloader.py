"""Per-request batch loading of comment replies, wired in as WSGI middleware."""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from commentservice.models import Comment
from commentservice.storage import Storage

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

LOADERS_ENVIRON_KEY = "commentservice.loaders"

BatchFn = Callable[[list[K]], Sequence[Any]]


class _Slot:
    __slots__ = ("done", "value", "error")

    def __init__(self) -> None:
        self.done = False
        self.value: Any = None
        self.error: Exception | None = None


class BatchLoader(Generic[K, V]):
    """Collects keys and fetches them together, caching each key's result.

    ``batch_fn`` receives the queued keys and returns one item per key, in the
    same order; an item that is an exception is raised for that key alone.
    """

    def __init__(self, batch_fn: Callable[[list[K]], Sequence[Any]]) -> None:
        self._batch_fn = batch_fn
        self._lock = threading.Lock()
        self._dispatch_lock = threading.Lock()
        self._cache: dict[K, _Slot] = {}
        self._queue: list[tuple[K, _Slot]] = []

    def load(self, key: K) -> Callable[[], V]:
        """Queue a key; calling the returned thunk runs the pending batch and gives its value."""
        with self._lock:
            slot = self._cache.get(key)
            if slot is None:
                slot = _Slot()
                self._cache[key] = slot
                self._queue.append((key, slot))
        return lambda: self._resolve(slot)

    def load_many(self, keys: Iterable[K]) -> Callable[[], list[V]]:
        """Queue several keys; the thunk returns their values in order."""
        thunks = [self.load(key) for key in keys]
        return lambda: [thunk() for thunk in thunks]

    def clear(self) -> None:
        """Forget every cached result."""
        with self._lock:
            self._cache.clear()

    def _resolve(self, slot: _Slot) -> V:
        with self._dispatch_lock:
            if not slot.done:
                self._dispatch()
        if slot.error is not None:
            raise slot.error
        return slot.value

    def _dispatch(self) -> None:
        with self._lock:
            batch, self._queue = self._queue, []
        if not batch:
            return
        keys = [key for key, _ in batch]
        try:
            results = list(self._batch_fn(keys))
        except Exception as exc:
            results = [exc] * len(keys)
        if len(results) != len(keys):
            mismatch = ValueError(
                f"batch function returned {len(results)} results for {len(keys)} keys"
            )
            results = [mismatch] * len(keys)
        for (_, slot), result in zip(batch, results):
            if isinstance(result, Exception):
                slot.error = result
            else:
                slot.value = result
            slot.done = True


@dataclass
class Loaders:
    """All batch loaders available to one request."""

    children_by_comment_id: BatchLoader[str, list[Comment]]


def make_loaders(store: Storage) -> Loaders:
    """Build a fresh set of loaders backed by ``store``."""

    def load_children(parent_ids: list[str]) -> list[Any]:
        try:
            grouped = store.children_by_parent_ids(parent_ids)
        except Exception as exc:
            return [exc] * len(parent_ids)
        return [grouped.get(parent_id, []) for parent_id in parent_ids]

    return Loaders(children_by_comment_id=BatchLoader(load_children))


def middleware(store: Storage, app: Callable[..., Any]) -> Callable[..., Any]:
    """Wrap a WSGI app so that each request carries its own loaders."""

    def wrapped(environ: dict[str, Any], start_response: Callable[..., Any]) -> Any:
        environ[LOADERS_ENVIRON_KEY] = make_loaders(store)
        return app(environ, start_response)

    return wrapped


def loaders_for(environ: dict[str, Any]) -> Loaders:
    """Return the loaders placed in a request's environment by the middleware."""
    try:
        return environ[LOADERS_ENVIRON_KEY]
    except KeyError:
        raise LookupError("no loaders in request environment") from None