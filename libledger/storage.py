"""Persistence adapter for the ledger.

Every logical record set (catalog, issue records, return requests, user
lists) is stored as one JSON blob under a string key in a key-value store.
Two stores are provided: ``MemoryStore`` keeps blobs in a dict that several
viewers in the same process can share, and ``FileStore`` keeps one JSON file
per key in a directory.

Reading a key that holds malformed JSON never fails: the adapter logs a
warning and hands back the caller's default.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, ContextManager, Dict, Iterator, List, Optional, Tuple
from urllib.parse import quote, unquote

from .errors import StorageCorruptionError

logger = logging.getLogger(__name__)


class StorageKeys:
    BOOKS = "library_books"
    ISSUED_BOOKS = "issued_books"
    RETURN_REQUESTS = "return_requests"
    RECENTLY_VIEWED = "recently_viewed"
    FAVORITES = "favorites"
    RECENTLY_PLAYED = "recently_played"


def user_key(prefix: str, user_id: Optional[str] = None) -> str:
    """Key for a per-user record set, e.g. ``favorites_u1``. Global without a user."""
    if user_id is None or str(user_id) == "":
        return prefix
    return f"{prefix}_{user_id}"


@dataclass(frozen=True)
class StorageEvent:
    """Notification that ``key`` was written by the viewer identified by ``origin``."""

    key: str
    origin: Optional[str] = None


Listener = Callable[[StorageEvent], None]


@contextmanager
def locked_write(adapter: "PersistenceAdapter", lock: Any) -> Iterator[None]:
    """
    Hold ``lock`` for a write and deliver the resulting change notifications
    only after it is released, so listeners never run under the writer's lock.
    """
    with adapter.deferred_events():
        with lock:
            yield


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[str]: ...

    @abstractmethod
    def set(self, key: str, raw: str, origin: Optional[str] = None) -> None: ...

    @abstractmethod
    def remove(self, key: str, origin: Optional[str] = None) -> None: ...

    @abstractmethod
    def keys(self) -> List[str]: ...

    @contextmanager
    def deferred_events(self) -> Iterator[None]:
        """Hold back change notifications raised by this thread until the block exits."""
        yield


class MemoryStore(KeyValueStore):
    """
    In-process store shared by several viewers.

    Writes are broadcast to every subscriber except the one that made them,
    the way a browser fires storage events only in the *other* tabs.

    Inside ``deferred_events`` a thread's notifications are queued and
    delivered when its outermost block exits, so a viewer can write while
    holding its own lock and still notify the others after letting go of it.
    """

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._listeners: List[Tuple[Optional[str], Listener]] = []
        self._lock = threading.Lock()
        self._local = threading.local()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, raw: str, origin: Optional[str] = None) -> None:
        with self._lock:
            self._data[key] = raw
        self._notify(StorageEvent(key, origin))

    def remove(self, key: str, origin: Optional[str] = None) -> None:
        with self._lock:
            removed = self._data.pop(key, None) is not None
        if removed:
            self._notify(StorageEvent(key, origin))

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)

    def subscribe(self, origin: Optional[str], listener: Listener) -> Callable[[], None]:
        entry = (origin, listener)
        with self._lock:
            self._listeners.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)

        return unsubscribe

    @contextmanager
    def deferred_events(self) -> Iterator[None]:
        local = self._local
        local.depth = getattr(local, "depth", 0) + 1
        if local.depth == 1:
            local.pending = []
        try:
            yield
        finally:
            local.depth -= 1
            if local.depth == 0:
                pending, local.pending = local.pending, []
                for event in pending:
                    self._deliver(event)

    def _notify(self, event: StorageEvent) -> None:
        if getattr(self._local, "depth", 0) > 0:
            self._local.pending.append(event)
        else:
            self._deliver(event)

    def _deliver(self, event: StorageEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for origin, listener in listeners:
            if origin is not None and origin == event.origin:
                continue
            listener(event)


class FileStore(KeyValueStore):
    """
    One ``<key>.json`` file per key inside ``directory``. Characters that are
    not safe in a file name are percent-encoded, so distinct keys never share
    a file.

    Other processes writing the same directory are detected by comparing file
    modification times against the last ones this store saw; see ``changed_keys``.
    """

    def __init__(self, directory: os.PathLike | str) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._seen: Dict[str, int] = {}

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def _mtime(self, path: Path) -> Optional[int]:
        try:
            return path.stat().st_mtime_ns
        except FileNotFoundError:
            return None

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        mtime = self._mtime(path)
        if mtime is not None:
            self._seen[key] = mtime
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StorageCorruptionError(key, str(e)) from e

    def set(self, key: str, raw: str, origin: Optional[str] = None) -> None:
        # write to a temp file and swap it in so readers never see half a blob
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(raw)
        os.replace(tmp_path, path)
        mtime = self._mtime(path)
        if mtime is not None:
            self._seen[key] = mtime

    def remove(self, key: str, origin: Optional[str] = None) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        self._seen.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(unquote(p.stem) for p in self.directory.glob("*.json"))

    def changed_keys(self, tracked: List[str]) -> List[str]:
        """Tracked keys whose files changed since this store last read or wrote them."""
        changed = []
        for key in tracked:
            mtime = self._mtime(self._path(key))
            if mtime != self._seen.get(key):
                changed.append(key)
        return changed


class PersistenceAdapter:
    """
    Reads and writes named JSON values on top of a ``KeyValueStore``.

    ``origin`` identifies the viewer this adapter belongs to, so the store can
    keep a viewer's own writes from echoing back to it.
    """

    def __init__(self, store: KeyValueStore, origin: Optional[str] = None) -> None:
        self.store = store
        self.origin = origin or uuid.uuid4().hex

    def load(self, key: str, default: Any = None) -> Any:
        try:
            raw = self.store.get(key)
            if raw is None or raw == "":
                return default
            return self._decode(key, raw, default)
        except StorageCorruptionError as e:
            logger.warning("[storage] %s; using default", e)
            return default

    def save(self, key: str, value: Any) -> None:
        self.store.set(key, json.dumps(value, ensure_ascii=False), origin=self.origin)

    def remove(self, key: str) -> None:
        self.store.remove(key, origin=self.origin)

    def deferred_events(self) -> ContextManager[None]:
        return self.store.deferred_events()

    def subscribe(self, listener: Listener) -> Optional[Callable[[], None]]:
        """Register for writes made by other viewers. None when the store cannot notify."""
        if isinstance(self.store, MemoryStore):
            return self.store.subscribe(self.origin, listener)
        return None

    def changed_keys(self, tracked: List[str]) -> List[str]:
        if isinstance(self.store, FileStore):
            return self.store.changed_keys(tracked)
        return []

    @staticmethod
    def _decode(key: str, raw: str, default: Any) -> Any:
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageCorruptionError(key, str(e)) from e
        if default is not None and not isinstance(value, type(default)):
            raise StorageCorruptionError(
                key, f"expected {type(default).__name__}, found {type(value).__name__}"
            )
        return value
