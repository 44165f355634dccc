from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .dates import as_utc, calculate_fine, utcnow
from .domain import Book, IssueRecord


def _rate(part: float, whole: float) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


@dataclass(frozen=True)
class LibraryStatistics:
    total_books: int = 0
    total_copies: int = 0
    available_copies: int = 0
    issued_copies: int = 0
    active_issues: int = 0
    overdue_books: int = 0
    outstanding_fines: int = 0
    categories: List[str] = field(default_factory=list)
    category_count: Dict[str, int] = field(default_factory=dict)

    # percentages, 0.0 whenever the denominator is empty
    @property
    def availability_rate(self) -> float:
        return _rate(self.available_copies, self.total_copies)

    @property
    def occupancy_rate(self) -> float:
        return _rate(self.issued_copies, self.total_copies)

    @property
    def overdue_rate(self) -> float:
        return _rate(self.overdue_books, self.active_issues)

    @property
    def on_time_rate(self) -> float:
        return _rate(self.active_issues - self.overdue_books, self.active_issues)

    def category_share(self, category: str) -> float:
        return _rate(self.category_count.get(category, 0), self.total_books)


def compute_statistics(
    books: Iterable[Book],
    issues: Iterable[IssueRecord],
    now: Optional[datetime] = None,
    daily_fine: int = 10,
) -> LibraryStatistics:
    """Summarize catalog and ledger snapshots. Nothing is cached or mutated."""
    now = as_utc(now or utcnow())
    books = list(books)
    active = [r for r in issues if r.is_active]

    total_copies = sum(b.total_copies for b in books)
    available_copies = sum(b.available_copies for b in books)

    category_count: Dict[str, int] = {}
    for b in books:
        category_count[b.category] = category_count.get(b.category, 0) + 1

    return LibraryStatistics(
        total_books=len(books),
        total_copies=total_copies,
        available_copies=available_copies,
        issued_copies=total_copies - available_copies,
        active_issues=len(active),
        overdue_books=sum(1 for r in active if as_utc(r.due_date) < now),
        outstanding_fines=sum(calculate_fine(r.due_date, now, daily_fine) for r in active),
        categories=list(category_count),
        category_count=category_count,
    )
