from __future__ import annotations
from datetime import datetime
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional

from .config import LedgerConfig
from .domain import Book, IssueRecord, IssueView, ReturnReceipt, ReturnRequest
from .repositories import (
    CatalogStore,
    FavoritesRepo,
    IssueRepo,
    RecentItemsRepo,
    ReturnRequestRepo,
)
from .seed import seed_catalog
from .services import CirculationLedger, ReturnDesk
from .stats import LibraryStatistics, compute_statistics
from .storage import (
    FileStore,
    KeyValueStore,
    MemoryStore,
    PersistenceAdapter,
    StorageKeys,
    locked_write,
)
from .sync import MultiViewerSync

logger = logging.getLogger(__name__)

_LIBRARY_DATA_KEYS = (
    StorageKeys.BOOKS,
    StorageKeys.ISSUED_BOOKS,
    StorageKeys.RETURN_REQUESTS,
    StorageKeys.RECENTLY_VIEWED,
)


class LibrarySystem:
    """
    A facade that wires storage, repos and services for one viewer.

    Each instance is an explicit handle: several systems built over the same
    store behave like several open sessions of the same library.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        config: Optional[LedgerConfig] = None,
        origin: Optional[str] = None,
        seed: bool = True,
    ) -> None:
        self.config = config or LedgerConfig()
        if store is None:
            store = FileStore(self.config.data_dir) if self.config.data_dir else MemoryStore()
        self.adapter = PersistenceAdapter(store, origin)
        self._lock = threading.RLock()

        # repos
        self.issues = IssueRepo(self.adapter)
        self.requests = ReturnRequestRepo(self.adapter)
        self.catalog = CatalogStore(self.adapter, self.issues, self._lock)
        self.recently_viewed = RecentItemsRepo(
            self.adapter, StorageKeys.RECENTLY_VIEWED, self.config.recently_viewed_limit
        )
        self.recently_played = RecentItemsRepo(
            self.adapter, StorageKeys.RECENTLY_PLAYED, self.config.recently_played_limit
        )
        self.favorites = FavoritesRepo(self.adapter)

        # services
        self.ledger = CirculationLedger(
            self.catalog, self.issues, self.requests, self.config, self._lock
        )
        self.desk = ReturnDesk(self.ledger)
        self.sync = MultiViewerSync(
            self.adapter,
            self.catalog,
            self.issues,
            self.requests,
            user_lists=[self.recently_viewed, self.recently_played],
            lock=self._lock,
        )

        self.load(seed=seed)

    def load(self, seed: bool = True) -> None:
        with locked_write(self.adapter, self._lock):
            self.catalog.reload()
            self.issues.reload()
            self.requests.reload()
            if seed:
                seed_catalog(self.catalog)

    def clear_library_data(self, seed: bool = True) -> None:
        """
        Wipe the catalog, the circulation ledger and the global recently-viewed
        list from storage, then reload (reseeding the default catalog if asked).
        Favourites and per-user lists are left alone.
        """
        with locked_write(self.adapter, self._lock):
            for key in _LIBRARY_DATA_KEYS:
                self.adapter.remove(key)
            self.recently_viewed.invalidate(StorageKeys.RECENTLY_VIEWED)
            self.load(seed=seed)
        logger.info("[reset] library data cleared")

    # ---- catalog module
    def add_book(self, data: Mapping[str, Any]) -> Book:
        return self.catalog.add_book(data)

    def update_book(self, book_id: int, updates: Mapping[str, Any]) -> bool:
        return self.catalog.update_book(book_id, updates)

    def delete_book(self, book_id: int) -> bool:
        return self.catalog.delete_book(book_id)

    def list_books(self) -> List[Book]:
        return self.catalog.list_books()

    def search_books(self, text: str) -> List[Book]:
        return self.catalog.search(text)

    def filter_by_category(self, category: str) -> List[Book]:
        return self.catalog.filter_by_category(category)

    def get_book(self, book_id: int, user_id: Optional[str] = None) -> Optional[Book]:
        """Look up a book and remember it as recently viewed."""
        book = self.catalog.get_book(book_id)
        if book is not None:
            self.recently_viewed.push(book.to_dict(), user_id)
        return book

    def recently_viewed_books(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.recently_viewed.items(user_id)

    # ---- circulation module
    def issue_book(
        self,
        book_id: int,
        user_id: str,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[IssueRecord]:
        return self.ledger.issue_book(book_id, user_id, days, now)

    def request_return(self, issue_id: str, user_id: str, now: Optional[datetime] = None) -> bool:
        return self.ledger.request_return(issue_id, user_id, now)

    def return_book(self, issue_id: str, now: Optional[datetime] = None) -> Optional[ReturnReceipt]:
        return self.ledger.return_book(issue_id, now)

    def complete_return(self, issue_id: str, now: Optional[datetime] = None) -> ReturnReceipt:
        return self.desk.complete_return(issue_id, now)

    def clear_return_request(self, issue_id: str) -> bool:
        return self.desk.dismiss_request(issue_id)

    def return_requests(self) -> List[ReturnRequest]:
        return self.ledger.pending_requests()

    def student_books(self, user_id: str) -> List[IssueView]:
        return self.ledger.student_issues(user_id)

    def all_issued_books(self) -> List[IssueView]:
        return self.ledger.active_issues()

    # ---- per-user lists
    def toggle_favorite(self, user_id: str, item_id: Any) -> bool:
        return self.favorites.toggle(user_id, item_id)

    def favorite_ids(self, user_id: str) -> List[Any]:
        return self.favorites.list_for(user_id)

    def is_favorite(self, user_id: str, item_id: Any) -> bool:
        return self.favorites.contains(user_id, item_id)

    def record_play(self, user_id: str, item: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self.recently_played.push(item, user_id)

    # ---- reporting
    def statistics(self, now: Optional[datetime] = None) -> LibraryStatistics:
        return compute_statistics(
            self.catalog.list_books(), self.issues.list_all(), now, self.config.daily_fine
        )
