from __future__ import annotations
from dataclasses import replace
from datetime import datetime, timedelta
import logging
from typing import TYPE_CHECKING, Optional

from .dates import as_utc, utcnow
from .domain import Book
from .repositories import CatalogStore

if TYPE_CHECKING:
    from .api import LibrarySystem

logger = logging.getLogger(__name__)


DEFAULT_CATALOG = [
    Book(1, "The Great Gatsby", "F. Scott Fitzgerald", "Fiction", 3, 3, "978-0-7432-7356-5", 1925,
         "A classic American novel about wealth, love, and the American Dream.", "📖"),
    Book(2, "To Kill a Mockingbird", "Harper Lee", "Fiction", 4, 4, "978-0-06-112008-4", 1960,
         "A gripping tale of racial injustice and childhood innocence.", "📚"),
    Book(3, "A Brief History of Time", "Stephen Hawking", "Science", 2, 2, "978-0-553-38016-3", 1988,
         "An exploration of time, space, and the universe.", "🔬"),
    Book(4, "Python Crash Course", "Eric Matthes", "Technology", 5, 5, "978-1-59327-928-8", 2019,
         "Learn Python programming from basics to advanced concepts.", "💻"),
    Book(5, "1984", "George Orwell", "Fiction", 3, 3, "978-0-452-26423-9", 1949,
         "A dystopian novel exploring themes of totalitarianism.", "📖"),
    Book(6, "Atomic Habits", "James Clear", "Self-Help", 6, 6, "978-0735211292", 2018,
         "Build good habits and break bad ones with tiny changes.", "⭐"),
    Book(7, "The Catcher in the Rye", "J.D. Salinger", "Fiction", 2, 2, "978-0-316-76948-0", 1951,
         "A controversial coming-of-age story.", "📖"),
    Book(8, "Design Patterns", "Gang of Four", "Technology", 3, 3, "978-0-201-63361-0", 1994,
         "Essential patterns for building scalable software.", "💻"),
]


def seed_catalog(catalog: CatalogStore) -> int:
    """Fill an empty catalog with the default books, every copy on the shelf."""
    if not catalog.is_empty():
        return 0
    for book in DEFAULT_CATALOG:
        catalog.add_existing(replace(book, available_copies=book.total_copies))
    catalog.flush()
    logger.info("[seed] catalog seeded with %d books", len(DEFAULT_CATALOG))
    return len(DEFAULT_CATALOG)


def seed_demo_data(sys: "LibrarySystem", now: Optional[datetime] = None) -> None:
    now = as_utc(now or utcnow())

    # issues
    gatsby = sys.issue_book(1, "alice", days=7, now=now - timedelta(days=10))  # 3 days late
    sys.issue_book(4, "alice", days=14, now=now)
    hawking = sys.issue_book(3, "bob", days=7, now=now - timedelta(days=2))

    # return requests
    if gatsby:
        sys.request_return(gatsby.id, "alice", now=now)
    if hawking:
        sys.request_return(hawking.id, "bob", now=now)

    # browsing
    sys.get_book(2, user_id="alice")
    sys.get_book(6, user_id="alice")

    logger.info("[seed] books: %s", [b.title for b in sys.catalog.list_books()])
    logger.info("[seed] open issues: %s", [v.record.id for v in sys.all_issued_books()])
