"""
Watch Service for keeping the library in step with its sync paths.

Wires the directory watcher to the sync engine: debounced changes are
announced and, when enabled, trigger a background sync. Also runs the
auto-sync schedule at startup and applies settings changes to the watcher.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from tabshelf.core.file_events import ChangeSet
from tabshelf.core.interfaces import NotificationEmitter
from tabshelf.core.models import Settings
from tabshelf.core.schedule import should_auto_sync
from tabshelf.infrastructure.entity_store import EntityStore
from tabshelf.infrastructure.file_watcher import DirectoryWatcherError, DirectoryWatcherInterface
from tabshelf.services.sync_service import SyncEngine, SyncResult

logger = logging.getLogger(__name__)


@dataclass
class WatchStats:
    """Counters for the watch service."""

    started_at: datetime = field(default_factory=datetime.now)
    changes_detected: int = 0
    syncs_triggered: int = 0
    last_sync_at: datetime | None = None
    last_sync_duration_ms: float = 0.0
    errors: int = 0

    def to_dict(self) -> dict:
        """Serialize stats to dictionary for JSON reporting."""
        return {
            "started_at": self.started_at.isoformat(),
            "changes_detected": self.changes_detected,
            "syncs_triggered": self.syncs_triggered,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "last_sync_duration_ms": self.last_sync_duration_ms,
            "errors": self.errors,
        }


class WatchServiceError(Exception):
    """Base exception for watch service errors."""

    pass


class WatchService:
    """
    Orchestrates the directory watcher, the auto-sync schedule and
    background syncs.

    At most one background sync runs at a time. Changes arriving while it
    runs collapse into exactly one follow-up run.
    """

    def __init__(
        self,
        store: EntityStore,
        sync_engine: SyncEngine,
        watcher: DirectoryWatcherInterface,
        emitter: NotificationEmitter,
        sync_on_change: bool = True,
    ):
        """
        Initialize the watch service.

        Args:
            store: Catalog storage, source of the settings
            sync_engine: Engine run on startup and on changes
            watcher: Directory watcher; its callback is replaced on start()
            emitter: Receives file-changes-detected notifications
            sync_on_change: Run a sync after each debounced change
        """
        self._store = store
        self._sync_engine = sync_engine
        self._watcher = watcher
        self._emitter = emitter
        self._sync_on_change = sync_on_change
        self._stats = WatchStats()
        self._running = False
        self._lock = threading.Lock()
        self._sync_in_progress = False
        self._pending_sync = False
        self._sync_thread: Optional[threading.Thread] = None
        self._last_result: Optional[SyncResult] = None

    @property
    def last_result(self) -> Optional[SyncResult]:
        return self._last_result

    def get_stats(self) -> WatchStats:
        return self._stats

    def is_running(self) -> bool:
        return self._running

    def is_syncing(self) -> bool:
        with self._lock:
            return self._sync_in_progress

    def start(self) -> None:
        """
        Start watching the configured sync paths and run the startup
        auto-sync check in the background.

        Raises:
            WatchServiceError: If the service is already running
        """
        if self._running:
            raise WatchServiceError("Watch service is already running")

        settings = self._store.settings
        self._stats = WatchStats()
        self._watcher.set_callback(self._on_changes)
        self._running = True
        self._configure_watcher(settings)

        logger.info(
            "Watch service started",
            extra={
                "paths": list(settings.sync_paths),
                "auto_sync": settings.auto_sync_enabled,
                "frequency": settings.auto_sync_frequency.value,
            },
        )

        if settings.sync_paths and should_auto_sync(settings):
            logger.info("Auto-sync is due, starting background sync")
            self.request_sync()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop watching and wait for a running background sync to finish."""
        if not self._running:
            logger.debug("Watch service is not running, nothing to stop")
            return

        logger.info("Stopping watch service...")
        with self._lock:
            self._running = False
            self._pending_sync = False
            thread = self._sync_thread

        self._watcher.stop()
        if thread is not None:
            thread.join(timeout)

        logger.info("Watch service stopped", extra={"stats": self._stats.to_dict()})

    def update_settings(self, settings: Settings) -> Settings:
        """
        Persist settings and, while running, point the watcher at the new
        sync paths.

        Returns:
            The stored settings snapshot
        """
        previous = self._store.settings
        stored = self._store.update_settings(settings)
        if self._running:
            self._configure_watcher(stored)
            if stored.sync_paths and stored.sync_paths != previous.sync_paths:
                logger.info(f"Directory watcher updated with {len(stored.sync_paths)} paths")
        return stored

    def _configure_watcher(self, settings: Settings) -> None:
        if not settings.sync_paths:
            self._watcher.stop()
            return
        try:
            if not self._watcher.is_running():
                self._watcher.start()
            self._watcher.set_paths(settings.sync_paths)
        except DirectoryWatcherError as e:
            logger.error(f"Failed to update watcher paths: {e}")

    def request_sync(self) -> bool:
        """
        Run a sync on a background thread.

        Returns:
            True if a new run started, False if one was already running (a
            single follow-up run is scheduled instead)
        """
        with self._lock:
            if self._sync_in_progress:
                self._pending_sync = True
                logger.debug("Sync in progress, scheduling a follow-up run")
                return False
            self._sync_in_progress = True
            self._sync_thread = threading.Thread(
                target=self._run_syncs, name="tabshelf-sync", daemon=True
            )
            self._sync_thread.start()
            return True

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        """Wait for the background sync, including follow-ups. True if idle."""
        with self._lock:
            thread = self._sync_thread
        if thread is not None:
            thread.join(timeout)
        return not self.is_syncing()

    def _run_syncs(self) -> None:
        while True:
            self._run_one_sync()
            with self._lock:
                if self._pending_sync and self._running:
                    self._pending_sync = False
                    continue
                self._pending_sync = False
                self._sync_in_progress = False
                return

    def _run_one_sync(self) -> None:
        start_time = time.time()
        try:
            result = self._sync_engine.sync()
        except Exception as e:
            self._stats.errors += 1
            logger.error(
                f"Background sync failed: {e}",
                exc_info=True,
                extra={"error_type": type(e).__name__},
            )
            return

        self._last_result = result
        self._stats.syncs_triggered += 1
        self._stats.last_sync_at = datetime.now()
        self._stats.last_sync_duration_ms = (time.time() - start_time) * 1000
        logger.info(result.message, extra=result.to_dict())

    def _on_changes(self, changes: ChangeSet) -> None:
        if not self._running or changes.is_empty():
            return

        self._stats.changes_detected += changes.event_count
        logger.info(
            "File changes detected in sync directories",
            extra={"events": changes.event_count, "paths": len(changes.changes)},
        )
        self._emitter.emit(
            "file-changes-detected",
            {
                "message": "Files have changed in sync directories",
                "changes": changes.to_dict(),
            },
        )
        if self._sync_on_change:
            self.request_sync()
