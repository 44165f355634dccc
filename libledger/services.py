from __future__ import annotations
from datetime import datetime
import logging
import threading
from typing import List, Optional
import uuid

from .config import LedgerConfig
from .dates import as_utc, calculate_due_date, calculate_fine, utcnow
from .domain import IssueRecord, IssueStatus, IssueView, ReturnReceipt, ReturnRequest
from .errors import ConflictError, NotFoundError
from .repositories import CatalogStore, IssueRepo, ReturnRequestRepo
from .storage import locked_write

logger = logging.getLogger(__name__)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class CirculationLedger:
    """
    Low-level issue/return primitives.

    Expected refusals (missing book, no copies, duplicate request) are
    reported as ``None``/``False``, never raised. Every mutation updates the
    catalog and the ledger under one lock and then flushes both.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        issues: IssueRepo,
        requests: ReturnRequestRepo,
        config: Optional[LedgerConfig] = None,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self.catalog = catalog
        self.issues = issues
        self.requests = requests
        self.config = config or LedgerConfig()
        self._lock = lock or threading.RLock()

    def issue_book(
        self,
        book_id: int,
        user_id: str,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[IssueRecord]:
        days = self.config.default_loan_days if days is None else days
        if days not in self.config.loan_periods:
            logger.info("[issue] unsupported loan period %s days", days)
            return None

        now = as_utc(now or utcnow())
        with locked_write(self.catalog.adapter, self._lock):
            book = self.catalog.get_book(book_id)
            if book is None:
                logger.info("[issue] book %s not found", book_id)
                return None
            if book.available_copies <= 0:
                logger.info("[issue] no copies of book %s available", book.id)
                return None

            record = IssueRecord(
                id=_new_id("iss"),
                book_id=book.id,
                user_id=user_id,
                issue_date=now,
                due_date=calculate_due_date(now, days),
            )
            self.issues.add(record)
            self.catalog.decrement_available(book.id)
            self._flush_circulation()

        logger.info("[issue] book %s issued to %s until %s", book.id, user_id, record.due_date.date())
        return record

    def request_return(
        self, issue_id: str, user_id: str, now: Optional[datetime] = None
    ) -> bool:
        now = as_utc(now or utcnow())
        with locked_write(self.catalog.adapter, self._lock):
            if self.requests.pending_for(issue_id) is not None:
                logger.info("[request] return already pending for %s", issue_id)
                return False
            self.requests.add(
                ReturnRequest(
                    id=_new_id("req"),
                    issue_id=issue_id,
                    user_id=user_id,
                    requested_at=now,
                )
            )
            self.requests.flush()
        logger.info("[request] %s asked to return %s", user_id, issue_id)
        return True

    def return_book(
        self, issue_id: str, now: Optional[datetime] = None
    ) -> Optional[ReturnReceipt]:
        """
        Close an issue record and put the copy back on the shelf.

        The fine is ``daily_fine`` per started day past the due date. Pending
        return requests for the record are left alone; clearing them is the
        caller's job (see ``ReturnDesk``).
        """
        now = as_utc(now or utcnow())
        with locked_write(self.catalog.adapter, self._lock):
            record = self.issues.get(issue_id)
            if record is None or not record.is_active:
                logger.info("[return] no open issue record %s", issue_id)
                return None

            fine = calculate_fine(record.due_date, now, self.config.daily_fine)
            record.mark_returned(now, fine)
            self.catalog.increment_available(record.book_id)
            self._flush_circulation()

        if fine:
            logger.info("[return] %s returned late, fine assessed: %d", issue_id, fine)
        return ReturnReceipt(fine=fine, overdue=fine > 0)

    def clear_return_request(self, issue_id: str) -> int:
        with locked_write(self.catalog.adapter, self._lock):
            removed = self.requests.remove_by_issue(issue_id)
            self.requests.flush()
        return removed

    def dismiss_orphaned_requests(self) -> int:
        """Drop requests whose issue record is gone or already closed."""
        with locked_write(self.catalog.adapter, self._lock):
            orphaned = []
            for r in self.requests.list_all():
                record = self.issues.get(r.issue_id)
                if record is None or not record.is_active:
                    orphaned.append(r.issue_id)
            for issue_id in orphaned:
                self.requests.remove_by_issue(issue_id)
            if orphaned:
                self.requests.flush()
        return len(orphaned)

    def _flush_circulation(self) -> None:
        self.catalog.flush()
        self.issues.flush()

    # reads
    def get_issue(self, issue_id: str) -> Optional[IssueRecord]:
        return self.issues.get(issue_id)

    def has_pending_request(self, issue_id: str) -> bool:
        return self.requests.pending_for(issue_id) is not None

    def pending_requests(self) -> List[ReturnRequest]:
        return [r for r in self.requests.list_all() if r.is_pending]

    def has_active_issue(self, book_id: int) -> bool:
        return self.issues.has_active_for_book(book_id)

    def active_issues(self) -> List[IssueView]:
        return self._join(self.issues.list_active())

    def student_issues(self, user_id: str) -> List[IssueView]:
        return self._join(
            r for r in self.issues.list_by_user(user_id) if r.status == IssueStatus.ISSUED
        )

    def outstanding_fine(self, now: Optional[datetime] = None) -> int:
        """What the open records would owe if all were returned at ``now``."""
        return sum(
            calculate_fine(r.due_date, now, self.config.daily_fine)
            for r in self.issues.list_active()
        )

    def _join(self, records) -> List[IssueView]:
        views = []
        for record in records:
            book = self.catalog.get_book(record.book_id)
            if book is None:
                continue
            views.append(IssueView(record=record, book=book))
        return views


class ReturnDesk:
    """
    Librarian-facing return policy layered on the ledger: a copy comes back
    only after its borrower has filed a return request.
    """

    def __init__(self, ledger: CirculationLedger) -> None:
        self.ledger = ledger

    def complete_return(
        self, issue_id: str, now: Optional[datetime] = None
    ) -> ReturnReceipt:
        record = self.ledger.get_issue(issue_id)
        if record is None:
            raise NotFoundError(f"issue record {issue_id} not found")
        if not record.is_active:
            raise ConflictError(f"issue record {issue_id} was already returned")
        if not self.ledger.has_pending_request(issue_id):
            logger.warning("[desk] return of %s blocked, no request from borrower", issue_id)
            raise ConflictError(f"no return request found for {issue_id}")

        receipt = self.ledger.return_book(issue_id, now)
        if receipt is None:
            # closed by another viewer between the checks and the return
            raise ConflictError(f"issue record {issue_id} was already returned")
        self.ledger.clear_return_request(issue_id)
        return receipt

    def dismiss_request(self, issue_id: str) -> bool:
        return self.ledger.clear_return_request(issue_id) > 0
