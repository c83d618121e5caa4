"""
Service Layer - SyncEngine, LibraryService, WatchService, and ServicesContainer.
"""

from tabshelf.services.container import ServicesContainer, create_services
from tabshelf.services.library_service import (
    CategoryCycleError,
    DuplicateTabTitleError,
    LibraryService,
    LibraryServiceError,
    TabNotFoundError,
)
from tabshelf.services.sync_service import SyncEngine, SyncResult
from tabshelf.services.watch_service import (
    WatchService,
    WatchServiceError,
    WatchStats,
)

__all__ = [
    # Container and factory
    "ServicesContainer",
    "create_services",
    # Sync
    "SyncEngine",
    "SyncResult",
    # Library
    "LibraryService",
    "LibraryServiceError",
    "TabNotFoundError",
    "DuplicateTabTitleError",
    "CategoryCycleError",
    # Watch service
    "WatchService",
    "WatchServiceError",
    "WatchStats",
]
