"""
Keeps one viewer's in-memory ledger in step with writes made by other viewers
sharing the same store.

On a change to a tracked key the whole slice is reloaded from storage and
replaces what is held in memory; concurrent edits are not merged, the last
writer wins.
"""

from __future__ import annotations
import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence

from .repositories import CatalogStore, IssueRepo, RecentItemsRepo, ReturnRequestRepo
from .storage import PersistenceAdapter, StorageEvent

logger = logging.getLogger(__name__)


class MultiViewerSync:
    def __init__(
        self,
        adapter: PersistenceAdapter,
        catalog: CatalogStore,
        issues: IssueRepo,
        requests: ReturnRequestRepo,
        user_lists: Sequence[RecentItemsRepo] = (),
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self.adapter = adapter
        self.user_lists = list(user_lists)
        self._lock = lock or threading.RLock()
        self._reloaders: Dict[str, Callable[[], None]] = {
            catalog.key: catalog.reload,
            issues.key: issues.reload,
            requests.key: requests.reload,
        }
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def tracked_keys(self) -> List[str]:
        return list(self._reloaders)

    def start(self) -> bool:
        """Listen for other viewers' writes. False when the store cannot push events."""
        if self._unsubscribe is None:
            self._unsubscribe = self.adapter.subscribe(self.handle)
        return self._unsubscribe is not None

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle(self, event: StorageEvent) -> bool:
        """Reload the slice behind ``event.key``; returns whether it was tracked."""
        if event.origin is not None and event.origin == self.adapter.origin:
            return False

        reload = self._reloaders.get(event.key)
        if reload is not None:
            with self._lock:
                reload()
            logger.debug("[sync] reloaded %s after external change", event.key)
            return True

        for repo in self.user_lists:
            if repo.owns(event.key):
                repo.invalidate(event.key)
                return True
        return False

    def poll(self) -> List[str]:
        """Check a polling store for external writes and handle each changed key."""
        tracked = self.tracked_keys
        for repo in self.user_lists:
            tracked.extend(repo.cached_keys())
        changed = self.adapter.changed_keys(tracked)
        for key in changed:
            self.handle(StorageEvent(key))
        return changed
