from datetime import timedelta

from libledger import FileStore, LedgerConfig, LibrarySystem, MemoryStore, seed_demo_data


def test_recently_viewed_is_deduplicated_and_bounded(store):
    sys = LibrarySystem(store)
    for book_id in (1, 2, 3, 1, 4, 5, 6):
        sys.get_book(book_id)
    assert [b["id"] for b in sys.recently_viewed_books()] == [6, 5, 4, 1, 3]


def test_recently_viewed_per_user(store):
    sys = LibrarySystem(store)
    sys.get_book(1, user_id="u1")
    sys.get_book(2, user_id="u2")
    assert [b["id"] for b in sys.recently_viewed_books("u1")] == [1]
    assert [b["id"] for b in sys.recently_viewed_books("u2")] == [2]
    assert sys.recently_viewed_books() == []
    assert store.get("recently_viewed_u1") is not None


def test_get_missing_book_is_not_recorded(store):
    sys = LibrarySystem(store)
    assert sys.get_book(404) is None
    assert sys.recently_viewed_books() == []


def test_favorites_toggle_per_user(store):
    sys = LibrarySystem(store, seed=False)
    assert sys.toggle_favorite("u1", "song-1") is True
    assert sys.toggle_favorite("u1", "song-2") is True
    assert sys.toggle_favorite("u1", "song-1") is False
    assert sys.favorite_ids("u1") == ["song-2"]
    assert sys.is_favorite("u1", "song-2")
    assert not sys.is_favorite("u1", "song-1")
    assert sys.favorite_ids("u2") == []
    assert store.get("favorites_u1") == '["song-2"]'


def test_recently_played_is_bounded(store):
    sys = LibrarySystem(store, LedgerConfig(recently_played_limit=3), seed=False)
    for i in range(5):
        sys.record_play("u1", {"id": i, "title": f"track {i}"})
    assert [t["id"] for t in sys.record_play("u1", {"id": 2, "title": "track 2"})] == [2, 4, 3]


def test_config_from_env():
    config = LedgerConfig.from_env(
        {
            "LIBLEDGER_LOAN_PERIODS": "7, 14, 21",
            "LIBLEDGER_DAILY_FINE": "5",
            "LIBLEDGER_DATA_DIR": "/tmp/ledger",
        }
    )
    assert config.loan_periods == (7, 14, 21)
    assert config.daily_fine == 5
    assert config.default_loan_days == 7
    assert config.data_dir == "/tmp/ledger"
    assert LedgerConfig.from_env({}) == LedgerConfig()


def test_data_dir_selects_file_store(tmp_path):
    sys = LibrarySystem(config=LedgerConfig(data_dir=str(tmp_path)))
    assert isinstance(sys.adapter.store, FileStore)
    assert (tmp_path / "library_books.json").exists()
    assert isinstance(LibrarySystem().adapter.store, MemoryStore)


def test_demo_seed(store, now):
    sys = LibrarySystem(store)
    seed_demo_data(sys, now=now)

    assert len(sys.all_issued_books()) == 3
    assert [v.book.title for v in sys.student_books("alice")] == ["The Great Gatsby", "Python Crash Course"]
    assert len(sys.return_requests()) == 2

    stats = sys.statistics(now)
    assert stats.overdue_books == 1
    assert stats.outstanding_fines == 30

    receipts = [sys.complete_return(r.issue_id, now=now) for r in sys.return_requests()]
    assert sorted(r.fine for r in receipts) == [0, 30]
    assert sys.statistics(now + timedelta(days=1)).active_issues == 1


def test_clear_library_data_resets_to_default_catalog(store, now):
    sys = LibrarySystem(store)
    other = LibrarySystem(store)
    other.sync.start()
    sys.delete_book(8)
    record = sys.issue_book(1, "u1", now=now)
    sys.request_return(record.id, "u1", now=now)
    sys.get_book(2)
    sys.toggle_favorite("u1", 1)

    sys.clear_library_data()

    assert len(sys.list_books()) == 8
    assert all(b.available_copies == b.total_copies for b in sys.list_books())
    assert sys.all_issued_books() == []
    assert sys.return_requests() == []
    assert sys.recently_viewed_books() == []
    assert sys.favorite_ids("u1") == [1]
    assert len(other.list_books()) == 8
    assert other.all_issued_books() == []


def test_clear_library_data_without_reseeding(store, now):
    sys = LibrarySystem(store)
    sys.issue_book(1, "u1", now=now)
    sys.clear_library_data(seed=False)

    assert sys.list_books() == []
    assert store.get("library_books") is None
    assert store.get("issued_books") is None
