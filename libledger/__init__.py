"""
Library inventory and circulation ledger.

Exports key modules for convenient imports.
"""

from .domain import (
    Book,
    IssueStatus,
    IssueRecord,
    RequestStatus,
    ReturnRequest,
    ReturnReceipt,
    IssueView,
)

from .errors import (
    LibraryError,
    ValidationError,
    NotFoundError,
    ConflictError,
    StorageCorruptionError,
)

from .config import LedgerConfig

from .storage import (
    StorageKeys,
    StorageEvent,
    KeyValueStore,
    MemoryStore,
    FileStore,
    PersistenceAdapter,
)

from .repositories import (
    CatalogStore,
    IssueRepo,
    ReturnRequestRepo,
    RecentItemsRepo,
    FavoritesRepo,
)

from .services import CirculationLedger, ReturnDesk
from .stats import LibraryStatistics, compute_statistics
from .sync import MultiViewerSync

from .api import LibrarySystem
from .seed import seed_catalog, seed_demo_data

__all__ = [
    # domain
    "Book",
    "IssueStatus",
    "IssueRecord",
    "RequestStatus",
    "ReturnRequest",
    "ReturnReceipt",
    "IssueView",
    # errors
    "LibraryError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "StorageCorruptionError",
    # config
    "LedgerConfig",
    # storage
    "StorageKeys",
    "StorageEvent",
    "KeyValueStore",
    "MemoryStore",
    "FileStore",
    "PersistenceAdapter",
    # repos
    "CatalogStore",
    "IssueRepo",
    "ReturnRequestRepo",
    "RecentItemsRepo",
    "FavoritesRepo",
    # services
    "CirculationLedger",
    "ReturnDesk",
    "LibraryStatistics",
    "compute_statistics",
    "MultiViewerSync",
    # api
    "LibrarySystem",
    # seed
    "seed_catalog",
    "seed_demo_data",
]
