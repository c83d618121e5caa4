"""
Infrastructure Layer - Entity store, directory watcher, cover pool and resolver.
"""

from tabshelf.infrastructure.cover_pool import CoverFetchPool, CoverJob, CoverPoolStats
from tabshelf.infrastructure.cover_resolver import (
    CoverNotFoundError,
    CoverResolverError,
    ItunesCoverResolver,
)
from tabshelf.infrastructure.entity_store import (
    DuplicateTabError,
    EntityStore,
    EntityStoreError,
    MalformedQueryError,
    create_entity_store,
    import_legacy_json,
)
from tabshelf.infrastructure.fakes import (
    FakeCoverResolver,
    FakeDirectoryWatcher,
    FakeMetadataExtractor,
    RecordingEmitter,
)
from tabshelf.infrastructure.file_watcher import (
    DirectoryWatcher,
    DirectoryWatcherError,
    DirectoryWatcherInterface,
)

__all__ = [
    # Entity store
    "EntityStore",
    "EntityStoreError",
    "DuplicateTabError",
    "MalformedQueryError",
    "create_entity_store",
    "import_legacy_json",
    # Covers
    "CoverFetchPool",
    "CoverJob",
    "CoverPoolStats",
    "ItunesCoverResolver",
    "CoverResolverError",
    "CoverNotFoundError",
    # Watching
    "DirectoryWatcher",
    "DirectoryWatcherError",
    "DirectoryWatcherInterface",
    # Fakes
    "FakeCoverResolver",
    "FakeDirectoryWatcher",
    "FakeMetadataExtractor",
    "RecordingEmitter",
]
