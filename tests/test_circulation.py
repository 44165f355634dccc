from datetime import timedelta
import threading

import pytest

from libledger import ConflictError, IssueStatus, LedgerConfig, LibrarySystem, NotFoundError


def _available(sys, book_id=1):
    return sys.catalog.get_book(book_id).available_copies


def test_issue_request_return_scenario(system, now):
    record = system.issue_book(1, "u1", days=7, now=now)
    assert record is not None
    assert _available(system) == 2
    assert record.status == IssueStatus.ISSUED
    assert record.due_date == now + timedelta(days=7)
    assert [v.record.id for v in system.all_issued_books()] == [record.id]

    assert system.request_return(record.id, "u1", now=now)
    assert [r.issue_id for r in system.return_requests()] == [record.id]

    receipt = system.complete_return(record.id, now=now)
    assert receipt.fine == 0
    assert receipt.overdue is False
    assert _available(system) == 3
    assert system.ledger.get_issue(record.id).status == IssueStatus.RETURNED
    assert system.ledger.get_issue(record.id).return_date == now
    assert system.return_requests() == []


def test_issue_fails_without_copies_and_leaves_state_alone(system, now):
    system.update_book(1, {"available_copies": 0})
    before = [r.to_dict() for r in system.issues.list_all()]

    assert system.issue_book(1, "u1", now=now) is None
    assert _available(system) == 0
    assert [r.to_dict() for r in system.issues.list_all()] == before


def test_issue_fails_for_missing_book(system, now):
    assert system.issue_book(42, "u1", now=now) is None
    assert system.issues.list_all() == []


def test_issue_rejects_unsupported_loan_period(system, now):
    assert system.issue_book(1, "u1", days=30, now=now) is None
    assert _available(system) == 3
    record = system.issue_book(1, "u1", days=14, now=now)
    assert record.due_date == now + timedelta(days=14)


def test_issuing_every_copy(system, now):
    records = [system.issue_book(1, f"u{i}", now=now) for i in range(3)]
    assert all(records)
    assert _available(system) == 0
    assert system.issue_book(1, "u9", now=now) is None


def test_issue_then_return_restores_availability(system, now):
    for _ in range(5):
        record = system.issue_book(1, "u1", now=now)
        system.return_book(record.id, now=now)
        book = system.catalog.get_book(1)
        assert 0 <= book.available_copies <= book.total_copies
    assert _available(system) == 3


@pytest.mark.parametrize("late_days, fine", [(0, 0), (1, 10), (10, 100)])
def test_fines(system, now, late_days, fine):
    record = system.issue_book(1, "u1", days=7, now=now)
    receipt = system.return_book(record.id, now=record.due_date + timedelta(days=late_days))
    assert receipt.fine == fine
    assert receipt.overdue is (fine > 0)
    assert system.ledger.get_issue(record.id).fine == fine


def test_fine_counts_started_days(system, now):
    record = system.issue_book(1, "u1", now=now)
    receipt = system.return_book(record.id, now=record.due_date + timedelta(minutes=5))
    assert receipt.fine == 10


def test_fine_rate_comes_from_config(store, now):
    sys = LibrarySystem(store, LedgerConfig(daily_fine=5), seed=False)
    sys.add_book({"title": "Dune", "author": "Frank Herbert"})
    record = sys.issue_book(1, "u1", now=now)
    assert sys.return_book(record.id, now=record.due_date + timedelta(days=3)).fine == 15


def test_return_unknown_or_closed_record(system, now):
    assert system.return_book("iss_missing", now=now) is None
    record = system.issue_book(1, "u1", now=now)
    assert system.return_book(record.id, now=now) is not None
    assert system.return_book(record.id, now=now) is None
    assert _available(system) == 3


def test_return_primitive_leaves_requests_in_place(system, now):
    record = system.issue_book(1, "u1", now=now)
    system.request_return(record.id, "u1", now=now)
    system.return_book(record.id, now=now)
    assert system.ledger.has_pending_request(record.id)
    assert system.ledger.dismiss_orphaned_requests() == 1
    assert not system.ledger.has_pending_request(record.id)


def test_duplicate_return_request(system, now):
    record = system.issue_book(1, "u1", now=now)
    assert system.request_return(record.id, "u1", now=now) is True
    assert system.request_return(record.id, "u1", now=now) is False
    assert len(system.return_requests()) == 1


def test_requests_are_newest_first(system, now):
    first = system.issue_book(1, "u1", now=now)
    second = system.issue_book(1, "u2", now=now)
    system.request_return(first.id, "u1", now=now)
    system.request_return(second.id, "u2", now=now + timedelta(hours=1))
    assert [r.issue_id for r in system.return_requests()] == [second.id, first.id]


def test_desk_requires_a_pending_request(system, now):
    record = system.issue_book(1, "u1", now=now)
    with pytest.raises(ConflictError):
        system.complete_return(record.id, now=now)
    assert system.ledger.get_issue(record.id).is_active
    assert _available(system) == 2


def test_desk_rejects_unknown_and_closed_records(system, now):
    with pytest.raises(NotFoundError):
        system.complete_return("iss_missing", now=now)

    record = system.issue_book(1, "u1", now=now)
    system.request_return(record.id, "u1", now=now)
    system.complete_return(record.id, now=now)
    system.request_return(record.id, "u1", now=now)
    with pytest.raises(ConflictError):
        system.complete_return(record.id, now=now)


def test_dismissing_a_request(system, now):
    record = system.issue_book(1, "u1", now=now)
    system.request_return(record.id, "u1", now=now)
    assert system.clear_return_request(record.id) is True
    assert system.clear_return_request(record.id) is False
    assert system.request_return(record.id, "u1", now=now) is True


def test_student_books_only_lists_open_records(system, now):
    system.add_book({"title": "Emma", "author": "Jane Austen"})
    kept = system.issue_book(1, "u1", now=now)
    returned = system.issue_book(2, "u1", now=now)
    system.issue_book(1, "u2", now=now)
    system.return_book(returned.id, now=now)

    views = system.student_books("u1")
    assert [v.record.id for v in views] == [kept.id]
    assert views[0].book.title == "Dune"


def test_outstanding_fine(system, now):
    system.issue_book(1, "u1", now=now)
    system.issue_book(1, "u2", now=now - timedelta(days=9))
    assert system.ledger.outstanding_fine(now) == 20


def test_ledger_is_persisted(store, system, now):
    record = system.issue_book(1, "u1", now=now)
    system.request_return(record.id, "u1", now=now)

    reopened = LibrarySystem(store, seed=False)
    assert reopened.ledger.get_issue(record.id).due_date == record.due_date
    assert reopened.ledger.has_pending_request(record.id)
    assert reopened.catalog.get_book(1).available_copies == 2


def test_concurrent_issues_never_oversell(store, now):
    sys = LibrarySystem(store, seed=False)
    sys.add_book({"title": "Dune", "author": "Frank Herbert", "total_copies": 5})
    results = []

    def borrow(user):
        results.append(sys.issue_book(1, user, now=now))

    threads = [threading.Thread(target=borrow, args=(f"u{i}",)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(1 for r in results if r is not None) == 5
    assert _available(sys) == 0
    assert len(sys.issues.list_active()) == 5
