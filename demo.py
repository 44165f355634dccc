from __future__ import annotations

import logging

from libledger import ConflictError, LedgerConfig, LibrarySystem, MemoryStore, seed_demo_data


def demo_flow() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    store = MemoryStore()
    config = LedgerConfig.from_env()
    librarian = LibrarySystem(store, config)
    student = LibrarySystem(store, config)
    librarian.sync.start()
    student.sync.start()
    seed_demo_data(librarian)

    # Search
    print("\n[demo] search 'python':", [b.title for b in student.search_books("python")])

    # Statistics
    stats = librarian.statistics()
    print(
        f"\n[demo] copies={stats.total_copies} issued={stats.issued_copies} "
        f"overdue={stats.overdue_books} occupancy={stats.occupancy_rate:.1f}%"
    )

    # The student's view picked up the librarian's issues through sync
    alice_books = student.student_books("alice")
    print("\n[demo] alice has:", [v.book.title for v in alice_books])

    # Return without a request is blocked by the desk
    unrequested = next(v for v in alice_books if not student.ledger.has_pending_request(v.record.id))
    try:
        librarian.complete_return(unrequested.record.id)
    except ConflictError as e:
        print(f"\n[demo] desk refused: {e}")

    # Return with a request (overdue -> fine)
    for request in librarian.return_requests():
        receipt = librarian.complete_return(request.issue_id)
        print(f"[demo] returned {request.issue_id}: fine={receipt.fine} overdue={receipt.overdue}")

    print("\n[demo] pending requests:", [r.issue_id for r in student.return_requests()])
    print("[demo] alice recently viewed:", [b["title"] for b in student.recently_viewed_books("alice")])


if __name__ == "__main__":
    demo_flow()
