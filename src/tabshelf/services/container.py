"""
Centralized services container module for tabshelf.

Builds the entity store, cover pool, sync engine and services from
configuration so every entry point wires them the same way.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from tabshelf.core.config import TabshelfConfig, load_config
from tabshelf.core.interfaces import (
    CoverResolver,
    FilenameMetadataExtractor,
    LoggingEmitter,
    MetadataExtractor,
    NotificationEmitter,
)
from tabshelf.infrastructure import (
    CoverFetchPool,
    DirectoryWatcher,
    DirectoryWatcherInterface,
    EntityStore,
    EntityStoreError,
    ItunesCoverResolver,
    create_entity_store,
    import_legacy_json,
)
from tabshelf.services.library_service import LibraryService
from tabshelf.services.sync_service import SyncEngine
from tabshelf.services.watch_service import WatchService

logger = logging.getLogger(__name__)


@dataclass
class ServicesContainer:
    """
    Container holding all shared service instances.

    Attributes:
        config: Application configuration
        store: SQLite catalog
        cover_pool: Started cover download pool
        sync_engine: Directory reconciliation
        library: Catalog operations
        watch_service: Watcher and auto-sync orchestration
        emitter: Notification sink shared by every component
        resolver: Cover resolver used by the pool
    """

    config: TabshelfConfig
    store: EntityStore
    cover_pool: CoverFetchPool
    sync_engine: SyncEngine
    library: LibraryService
    watch_service: WatchService
    emitter: NotificationEmitter
    resolver: CoverResolver

    def close(self) -> None:
        """
        Shut down in dependency order: watcher and background sync first,
        then the cover pool (its callbacks write to the store), then the store.
        """
        self.watch_service.stop()
        self.cover_pool.stop()
        if isinstance(self.resolver, ItunesCoverResolver):
            self.resolver.close()
        self.store.close()


def create_services(
    config_path: Optional[Path | str] = None,
    config: Optional[TabshelfConfig] = None,
    emitter: Optional[NotificationEmitter] = None,
    resolver: Optional[CoverResolver] = None,
    extractor: Optional[MetadataExtractor] = None,
    watcher: Optional[DirectoryWatcherInterface] = None,
) -> ServicesContainer:
    """
    Create and initialize all services.

    Args:
        config_path: Optional path to configuration file, ignored when
                     config is given.
        config: Preloaded configuration
        emitter: Notification sink, defaults to logging every event
        resolver: Cover resolver, defaults to the iTunes resolver
        extractor: Metadata extractor, defaults to filename parsing
        watcher: Directory watcher, defaults to the watchdog watcher

    Returns:
        ServicesContainer with all initialized services.

    Raises:
        EntityStoreError: If the database cannot be opened or migrated
    """
    config = config or load_config(config_path)
    storage = config.storage

    for directory in (storage.database_path.parent, storage.files_dir, storage.covers_dir):
        directory.mkdir(parents=True, exist_ok=True)

    store = create_entity_store(storage.database_path)
    try:
        imported = import_legacy_json(store, storage.legacy_json_path)
    except EntityStoreError as e:
        logger.error(f"Legacy catalog import failed: {e}")
        imported = None
    if imported is not None:
        logger.info(f"Imported {imported.tabs} tabs from legacy catalog")

    emitter = emitter or LoggingEmitter()
    resolver = resolver or ItunesCoverResolver(
        search_url=config.covers.search_url,
        artwork_size=config.covers.artwork_size,
        timeout=config.covers.timeout,
        country=config.covers.country,
        language=config.covers.language,
    )

    cover_pool = CoverFetchPool(
        resolver,
        workers=config.covers.workers,
        queue_size=config.covers.queue_size,
    )
    cover_pool.start()

    sync_engine = SyncEngine(
        store=store,
        cover_pool=cover_pool,
        emitter=emitter,
        extractor=extractor or FilenameMetadataExtractor(),
        covers_dir=storage.covers_dir,
        extensions=config.sync.extensions,
        copy_attempts=config.sync.copy_attempts,
    )

    library = LibraryService(
        store=store,
        sync_engine=sync_engine,
        emitter=emitter,
        files_dir=storage.files_dir,
    )

    watcher = watcher or DirectoryWatcher(
        extensions=config.watch.extensions,
        debounce_ms=config.watch.debounce_ms,
    )
    watch_service = WatchService(
        store=store,
        sync_engine=sync_engine,
        watcher=watcher,
        emitter=emitter,
        sync_on_change=config.watch.sync_on_change,
    )

    return ServicesContainer(
        config=config,
        store=store,
        cover_pool=cover_pool,
        sync_engine=sync_engine,
        library=library,
        watch_service=watch_service,
        emitter=emitter,
        resolver=resolver,
    )
