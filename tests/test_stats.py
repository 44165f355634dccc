from datetime import timedelta

from libledger import LibrarySystem, compute_statistics


def test_empty_catalog_has_zero_rates(now):
    stats = compute_statistics([], [], now)
    assert stats.total_books == 0
    assert stats.availability_rate == 0.0
    assert stats.occupancy_rate == 0.0
    assert stats.overdue_rate == 0.0
    assert stats.on_time_rate == 0.0
    assert stats.category_share("Fiction") == 0.0
    assert stats.categories == []


def test_counts_over_catalog_and_ledger(store, now):
    sys = LibrarySystem(store, seed=False)
    sys.add_book({"title": "Dune", "author": "Frank Herbert", "category": "Fiction", "total_copies": 3})
    sys.add_book({"title": "Cosmos", "author": "Carl Sagan", "category": "Science", "total_copies": 1})
    sys.add_book({"title": "Emma", "author": "Jane Austen", "category": "Fiction", "total_copies": 4})

    sys.issue_book(1, "u1", now=now - timedelta(days=10))  # three days late
    sys.issue_book(2, "u2", now=now)
    returned = sys.issue_book(3, "u3", now=now - timedelta(days=30))
    sys.return_book(returned.id, now=now)

    stats = sys.statistics(now)
    assert stats.total_books == 3
    assert stats.total_copies == 8
    assert stats.available_copies == 6
    assert stats.issued_copies == 2
    assert stats.active_issues == 2
    assert stats.overdue_books == 1
    assert stats.outstanding_fines == 30
    assert stats.categories == ["Fiction", "Science"]
    assert stats.category_count == {"Fiction": 2, "Science": 1}
    assert stats.availability_rate == 75.0
    assert stats.occupancy_rate == 25.0
    assert stats.overdue_rate == 50.0
    assert stats.on_time_rate == 50.0
    assert round(stats.category_share("Fiction"), 1) == 66.7


def test_statistics_are_recomputed_each_call(system, now):
    assert system.statistics(now).active_issues == 0
    system.issue_book(1, "u1", now=now)
    assert system.statistics(now).active_issues == 1
    assert system.statistics(now + timedelta(days=8)).overdue_books == 1
