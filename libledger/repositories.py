from __future__ import annotations
from dataclasses import replace
import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar

from .domain import Book, IssueRecord, ReturnRequest, coerce_int
from .errors import LibraryError, ValidationError
from .storage import PersistenceAdapter, StorageKeys, locked_write, user_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EDITABLE_FIELDS = (
    "title",
    "author",
    "category",
    "isbn",
    "published_year",
    "description",
    "image",
)


def _load_records(
    adapter: PersistenceAdapter, key: str, parse: Callable[[Dict[str, Any]], T]
) -> List[T]:
    records: List[T] = []
    for item in adapter.load(key, default=[]):
        if not isinstance(item, dict):
            logger.warning("[storage] skipping non-object record in %s: %r", key, item)
            continue
        try:
            records.append(parse(item))
        except (AttributeError, KeyError, TypeError, ValueError, LibraryError) as e:
            logger.warning("[storage] skipping unreadable record in %s: %s", key, e)
    return records


class IssueRepo:
    def __init__(self, adapter: PersistenceAdapter, key: str = StorageKeys.ISSUED_BOOKS) -> None:
        self.adapter = adapter
        self.key = key
        self._records: Dict[str, IssueRecord] = {}

    def reload(self) -> None:
        self._records = {r.id: r for r in _load_records(self.adapter, self.key, IssueRecord.from_dict)}

    def flush(self) -> None:
        self.adapter.save(self.key, [r.to_dict() for r in self._records.values()])

    def add(self, record: IssueRecord) -> None:
        self._records[record.id] = record

    def get(self, issue_id: str) -> Optional[IssueRecord]:
        return self._records.get(issue_id)

    def list_all(self) -> List[IssueRecord]:
        return list(self._records.values())

    def list_active(self) -> List[IssueRecord]:
        return [r for r in self._records.values() if r.is_active]

    def list_by_user(self, user_id: str) -> List[IssueRecord]:
        return [r for r in self._records.values() if r.user_id == user_id]

    def has_active_for_book(self, book_id: int) -> bool:
        return any(r.is_active and r.book_id == book_id for r in self._records.values())


class ReturnRequestRepo:
    def __init__(
        self, adapter: PersistenceAdapter, key: str = StorageKeys.RETURN_REQUESTS
    ) -> None:
        self.adapter = adapter
        self.key = key
        self._requests: List[ReturnRequest] = []

    def reload(self) -> None:
        self._requests = _load_records(self.adapter, self.key, ReturnRequest.from_dict)

    def flush(self) -> None:
        self.adapter.save(self.key, [r.to_dict() for r in self._requests])

    def add(self, request: ReturnRequest) -> None:
        # newest first
        self._requests.insert(0, request)

    def pending_for(self, issue_id: str) -> Optional[ReturnRequest]:
        return next(
            (r for r in self._requests if r.issue_id == issue_id and r.is_pending), None
        )

    def remove_by_issue(self, issue_id: str) -> int:
        before = len(self._requests)
        self._requests = [r for r in self._requests if r.issue_id != issue_id]
        return before - len(self._requests)

    def list_all(self) -> List[ReturnRequest]:
        return list(self._requests)


class CatalogStore:
    """
    Owns the book records and their available-copy counters.

    Availability is changed by the circulation ledger through
    ``decrement_available``/``increment_available``; both clamp into
    ``0..total_copies`` instead of raising.
    """

    def __init__(
        self,
        adapter: PersistenceAdapter,
        issues: IssueRepo,
        lock: Optional[threading.RLock] = None,
        key: str = StorageKeys.BOOKS,
    ) -> None:
        self.adapter = adapter
        self.issues = issues
        self.key = key
        self._lock = lock or threading.RLock()
        self._books: Dict[int, Book] = {}

    def reload(self) -> None:
        with self._lock:
            self._books = {b.id: b for b in _load_records(self.adapter, self.key, Book.from_dict)}

    def flush(self) -> None:
        self.adapter.save(self.key, [b.to_dict() for b in self._books.values()])

    def is_empty(self) -> bool:
        return not self._books

    # reads
    def get_book(self, book_id: int) -> Optional[Book]:
        return self._books.get(coerce_int(book_id, -1))

    def list_books(self) -> List[Book]:
        return list(self._books.values())

    def search(self, text: str) -> List[Book]:
        t = (text or "").lower().strip()
        if not t:
            return self.list_books()
        return [b for b in self._books.values() if t in b.title.lower() or t in b.author.lower()]

    def filter_by_category(self, category: str) -> List[Book]:
        if category == "All":
            return self.list_books()
        return [b for b in self._books.values() if b.category == category]

    def categories(self) -> List[str]:
        seen: List[str] = []
        for b in self._books.values():
            if b.category not in seen:
                seen.append(b.category)
        return seen

    # admin edits
    def add_book(self, data: Mapping[str, Any]) -> Book:
        title = (data.get("title") or "").strip()
        author = (data.get("author") or "").strip()
        if not title or not author:
            raise ValidationError("title and author are required")

        raw_total = data.get("total_copies")
        if raw_total in (None, "", 0, "0"):
            total = 1
        else:
            total = coerce_int(raw_total, -1)
            if total < 0:
                raise ValidationError(f"total_copies must be a non-negative integer, got {raw_total!r}")

        with locked_write(self.adapter, self._lock):
            book = Book(
                id=max(self._books, default=0) + 1,
                title=title,
                author=author,
                category=data.get("category") or "",
                total_copies=total,
                available_copies=total,
                isbn=data.get("isbn") or "",
                published_year=coerce_int(data.get("published_year"), 0) or None,
                description=data.get("description") or "",
                image=data.get("image") or "📖",
            )
            self._books[book.id] = book
            self.flush()
        logger.info("[catalog] added book %s %r (%d copies)", book.id, book.title, total)
        return book

    def add_existing(self, book: Book) -> None:
        """Insert a fully formed record, keeping its id. Used for seeding."""
        with self._lock:
            self._books[book.id] = book

    def update_book(self, book_id: int, updates: Mapping[str, Any]) -> bool:
        with locked_write(self.adapter, self._lock):
            book = self.get_book(book_id)
            if book is None:
                logger.info("[catalog] update skipped, book %s not found", book_id)
                return False

            changes = {k: updates[k] for k in _EDITABLE_FIELDS if k in updates}
            if "published_year" in changes:
                changes["published_year"] = coerce_int(changes["published_year"], 0) or None

            total = book.total_copies
            if "total_copies" in updates:
                total = max(0, coerce_int(updates["total_copies"], 0))
            available = book.available_copies
            if "available_copies" in updates:
                available = coerce_int(updates["available_copies"], book.available_copies)
            available = min(max(available, 0), total)

            self._books[book.id] = replace(
                book, total_copies=total, available_copies=available, **changes
            )
            self.flush()
        return True

    def delete_book(self, book_id: int) -> bool:
        with locked_write(self.adapter, self._lock):
            book = self.get_book(book_id)
            if book is None:
                return False
            if self.issues.has_active_for_book(book.id):
                logger.info("[catalog] refusing to delete book %s, copies are issued", book.id)
                return False
            del self._books[book.id]
            self.flush()
        logger.info("[catalog] deleted book %s", book.id)
        return True

    # circulation counters
    def decrement_available(self, book_id: int) -> None:
        book = self.get_book(book_id)
        if book is not None:
            book.available_copies = min(max(book.available_copies - 1, 0), book.total_copies)

    def increment_available(self, book_id: int) -> None:
        book = self.get_book(book_id)
        if book is not None:
            book.available_copies = min(max(book.available_copies + 1, 0), book.total_copies)


class RecentItemsRepo:
    """
    Most-recent-first, de-duplicated list of dicts, bounded to ``limit`` items.

    Stored under ``prefix`` or, when a user id is given, ``prefix_<user>``.
    """

    def __init__(self, adapter: PersistenceAdapter, prefix: str, limit: int) -> None:
        self.adapter = adapter
        self.prefix = prefix
        self.limit = limit
        self._cache: Dict[str, List[Dict[str, Any]]] = {}

    def owns(self, key: str) -> bool:
        return key == self.prefix or key.startswith(self.prefix + "_")

    def invalidate(self, key: str) -> None:
        self._cache.pop(key, None)

    def cached_keys(self) -> List[str]:
        return list(self._cache)

    def items(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        key = user_key(self.prefix, user_id)
        if key not in self._cache:
            loaded = self.adapter.load(key, default=[])
            self._cache[key] = [i for i in loaded if isinstance(i, dict)]
        return list(self._cache[key])

    def push(self, item: Dict[str, Any], user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        key = user_key(self.prefix, user_id)
        current = [i for i in self.items(user_id) if i.get("id") != item.get("id")]
        current.insert(0, item)
        current = current[: self.limit]
        self._cache[key] = current
        self.adapter.save(key, current)
        return list(current)


class FavoritesRepo:
    """Per-user set of favourite ids, stored as a JSON list."""

    def __init__(self, adapter: PersistenceAdapter, prefix: str = StorageKeys.FAVORITES) -> None:
        self.adapter = adapter
        self.prefix = prefix

    def list_for(self, user_id: str) -> List[Any]:
        return self.adapter.load(user_key(self.prefix, user_id), default=[])

    def contains(self, user_id: str, item_id: Any) -> bool:
        return item_id in self.list_for(user_id)

    def toggle(self, user_id: str, item_id: Any) -> bool:
        """Flip membership of ``item_id``; returns True when it is now a favourite."""
        favorites = self.list_for(user_id)
        if item_id in favorites:
            favorites.remove(item_id)
            added = False
        else:
            favorites.append(item_id)
            added = True
        self.adapter.save(user_key(self.prefix, user_id), favorites)
        return added
