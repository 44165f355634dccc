from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .dates import format_timestamp, is_overdue, parse_timestamp
from .errors import ValidationError


def coerce_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class Book:
    id: int
    title: str
    author: str
    category: str = ""
    total_copies: int = 1
    available_copies: int = 1
    isbn: str = ""
    published_year: Optional[int] = None
    description: str = ""
    image: str = "📖"

    def __post_init__(self) -> None:
        if not isinstance(self.title, str) or not isinstance(self.author, str):
            raise ValidationError("title and author must be strings")
        if not self.title.strip() or not self.author.strip():
            raise ValidationError("book requires a title and an author")
        if self.total_copies < 0:
            raise ValidationError(f"total_copies must be >= 0, got {self.total_copies}")
        if not 0 <= self.available_copies <= self.total_copies:
            raise ValidationError(
                f"available_copies must be within 0..{self.total_copies}, got {self.available_copies}"
            )

    @property
    def available(self) -> bool:
        return self.available_copies > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "category": self.category,
            "totalCopies": self.total_copies,
            "availableCopies": self.available_copies,
            "isbn": self.isbn,
            "publishedYear": self.published_year,
            "description": self.description,
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Book":
        """
        Normalizes stored data: ids and counters become ints, a missing
        availability falls back to the total, and out-of-range availability
        is clamped.
        """
        total = max(0, coerce_int(data.get("totalCopies"), 0))
        available = coerce_int(data.get("availableCopies"), total)
        available = min(max(available, 0), total)
        return cls(
            id=int(data["id"]),
            title=data.get("title") or "",
            author=data.get("author") or "",
            category=data.get("category") or "",
            total_copies=total,
            available_copies=available,
            isbn=data.get("isbn") or "",
            published_year=coerce_int(data.get("publishedYear"), 0) or None,
            description=data.get("description") or "",
            image=data.get("image") or "📖",
        )


class IssueStatus(str, Enum):
    ISSUED = "issued"
    RETURNED = "returned"


@dataclass
class IssueRecord:
    id: str
    book_id: int
    user_id: str
    issue_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    fine: int = 0
    status: IssueStatus = IssueStatus.ISSUED

    def __post_init__(self) -> None:
        if self.due_date < self.issue_date:
            raise ValidationError("due_date cannot precede issue_date")
        if self.fine < 0:
            raise ValidationError("fine cannot be negative")

    @property
    def is_active(self) -> bool:
        return self.status == IssueStatus.ISSUED

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        return self.is_active and is_overdue(self.due_date, now)

    def mark_returned(self, when: datetime, fine: int) -> None:
        self.return_date = when
        self.fine = fine
        self.status = IssueStatus.RETURNED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "bookId": self.book_id,
            "userId": self.user_id,
            "issueDate": format_timestamp(self.issue_date),
            "dueDate": format_timestamp(self.due_date),
            "returnDate": format_timestamp(self.return_date),
            "fine": self.fine,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IssueRecord":
        return cls(
            id=str(data["id"]),
            book_id=int(data["bookId"]),
            user_id=str(data["userId"]),
            issue_date=parse_timestamp(data["issueDate"]),
            due_date=parse_timestamp(data["dueDate"]),
            return_date=parse_timestamp(data.get("returnDate")),
            fine=coerce_int(data.get("fine"), 0),
            status=IssueStatus(data.get("status", IssueStatus.ISSUED.value)),
        )


class RequestStatus(str, Enum):
    PENDING = "pending"


@dataclass
class ReturnRequest:
    id: str
    issue_id: str
    user_id: str
    requested_at: datetime
    status: RequestStatus = RequestStatus.PENDING

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "issueId": self.issue_id,
            "userId": self.user_id,
            "status": self.status.value,
            "requestedAt": format_timestamp(self.requested_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReturnRequest":
        return cls(
            id=str(data["id"]),
            issue_id=str(data["issueId"]),
            user_id=str(data["userId"]),
            requested_at=parse_timestamp(data["requestedAt"]),
            status=RequestStatus(data.get("status", RequestStatus.PENDING.value)),
        )


@dataclass(frozen=True)
class ReturnReceipt:
    fine: int
    overdue: bool


@dataclass
class IssueView:
    """An active issue record joined with the book it references."""

    record: IssueRecord
    book: Book
