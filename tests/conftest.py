from __future__ import annotations
from datetime import datetime, timezone

import pytest

from libledger import LibrarySystem, MemoryStore

NOW = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def system(store):
    """A library with a single three-copy book, id 1."""
    sys = LibrarySystem(store, seed=False)
    sys.add_book({"title": "Dune", "author": "Frank Herbert", "category": "Fiction", "total_copies": 3})
    return sys
