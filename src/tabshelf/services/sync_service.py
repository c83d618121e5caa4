"""
Sync Service for reconciling watched directories with the entity store.

Walks every configured root, adds untracked tab documents, resolves title
collisions according to the library's sync strategy and schedules cover
downloads for new tabs.
"""

import logging
import os
import threading
import time
import uuid
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from tabshelf.core.filename_parser import parse_filename
from tabshelf.core.interfaces import MetadataExtractor, NotificationEmitter
from tabshelf.core.models import SyncStrategy, Tab, TabType
from tabshelf.infrastructure.cover_pool import CoverFetchPool, CoverJob
from tabshelf.infrastructure.entity_store import EntityStore, EntityStoreError

logger = logging.getLogger(__name__)

DEFAULT_SYNC_EXTENSIONS = frozenset({".pdf", ".gp", ".gp3", ".gp4", ".gp5", ".gpx"})


@dataclass
class SyncResult:
    """
    Counters for one sync run.

    updated is reported for compatibility; a sync never modifies an
    existing tab, so it stays zero.
    """

    added: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    total: int = 0
    cancelled: bool = False

    def to_dict(self) -> dict:
        return {
            "added": self.added,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "total": self.total,
        }

    @property
    def message(self) -> str:
        prefix = "Sync cancelled" if self.cancelled else "Sync complete"
        return (
            f"{prefix}. Added: {self.added}, Updated: {self.updated}, "
            f"Skipped: {self.skipped}, Errors: {self.errors}"
        )


class SyncEngine:
    """
    Reconciles the file system with the entity store.

    sync() runs synchronously on the calling thread; callers that must not
    block run it on a background thread. Runs are serialized.
    """

    def __init__(
        self,
        store: EntityStore,
        cover_pool: CoverFetchPool,
        emitter: NotificationEmitter,
        extractor: MetadataExtractor,
        covers_dir: Path | str,
        extensions: Iterable[str] = DEFAULT_SYNC_EXTENSIONS,
        copy_attempts: int = 1000,
    ):
        """
        Initialize the sync engine.

        Args:
            store: Catalog storage
            cover_pool: Pool receiving cover jobs for new tabs
            emitter: Receives sync-* and tab-updated notifications
            extractor: Derives title/artist/album from documents
            covers_dir: Directory where covers are saved as <tab id>.jpg
            extensions: File extensions picked up by the walk
            copy_attempts: _copyN suffixes probed before a timestamp is used
        """
        self._store = store
        self._cover_pool = cover_pool
        self._emitter = emitter
        self._extractor = extractor
        self._covers_dir = Path(covers_dir)
        self._extensions = {ext.lower() for ext in extensions}
        self._copy_attempts = copy_attempts
        self._run_lock = threading.Lock()
        self._cancel = threading.Event()

    @property
    def covers_dir(self) -> Path:
        return self._covers_dir

    def is_syncing(self) -> bool:
        return self._run_lock.locked()

    def cancel(self) -> None:
        """Ask a running sync to stop after the file it is processing."""
        if self.is_syncing():
            logger.info("Sync cancellation requested")
            self._cancel.set()

    def sync(self) -> SyncResult:
        """
        Scan every sync path and add untracked documents.

        Returns:
            Counters for the run; an empty result when no paths are set
        """
        with self._run_lock:
            self._cancel.clear()
            return self._sync()

    def _sync(self) -> SyncResult:
        settings = self._store.settings
        result = SyncResult()
        if not settings.sync_paths:
            logger.info("No sync paths configured")
            return result

        start_time = time.time()
        logger.info(
            "Starting sync",
            extra={
                "paths": list(settings.sync_paths),
                "strategy": settings.sync_strategy.value,
            },
        )
        self._emitter.emit("sync-started", None)

        for root in settings.sync_paths:
            logger.info(f"Scanning path: {root}")
            for path in self._candidate_files(Path(root)):
                if self._cancel.is_set():
                    result.cancelled = True
                    break
                result.total += 1
                self._emitter.emit(
                    "sync-progress",
                    {
                        "message": f"Processing: {path.name}",
                        "count": result.total,
                        "filePath": str(path),
                    },
                )
                self._reconcile(path, settings.sync_strategy, result)
            if result.cancelled:
                break

        duration_ms = (time.time() - start_time) * 1000
        if result.cancelled:
            logger.info(
                f"Sync cancelled after {result.total} files",
                extra={**result.to_dict(), "duration_ms": duration_ms},
            )
            self._emitter.emit("sync-cancelled", result.to_dict())
            return result

        self._emitter.emit("sync-completed", result.to_dict())
        try:
            self._store.update_settings(
                self._store.settings.with_changes(last_sync_time=int(time.time()))
            )
        except EntityStoreError as e:
            logger.error(f"Failed to record last sync time: {e}")
        logger.info(
            f"Sync completed in {duration_ms:.2f}ms",
            extra={**result.to_dict(), "duration_ms": duration_ms},
        )
        return result

    def _reconcile(self, path: Path, strategy: SyncStrategy, result: SyncResult) -> None:
        try:
            if self._store.get_tab_by_path(str(path)) is not None:
                return

            tab = self.process_file(path)
            if self._store.get_tab_by_title(tab.title) is not None:
                if strategy == SyncStrategy.SKIP:
                    result.skipped += 1
                    return
                # Keep the existing tab; add this file under a derived title.
                tab.title = self.generate_unique_title(tab.title)

            self._store.add_tab(tab)
        except EntityStoreError as e:
            logger.error(f"Failed to sync {path}: {e}", extra={"file_path": str(path)})
            result.errors += 1
            return

        result.added += 1
        self.fetch_cover_async(tab)

    def _candidate_files(self, root: Path) -> Iterator[Path]:
        """Supported files under root, depth first in lexical order."""
        if root.is_file():
            if root.suffix.lower() in self._extensions:
                yield root
            return
        try:
            with os.scandir(root) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            logger.error(f"Error accessing path {root}: {e}")
            return

        for entry in entries:
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError as e:
                logger.error(f"Error accessing path {entry.path}: {e}")
                continue
            if is_dir:
                yield from self._candidate_files(Path(entry.path))
            elif Path(entry.name).suffix.lower() in self._extensions:
                yield Path(entry.path)

    def process_file(self, path: Path | str) -> Tab:
        """
        Build an unsaved Tab for a document.

        Extractor failures fall back to metadata parsed from the file name.
        """
        path = Path(path)
        try:
            metadata = self._extractor.extract(path)
        except Exception as e:
            logger.warning(f"Error reading metadata for {path}: {e}")
            metadata = parse_filename(path)

        return Tab(
            id=uuid.uuid4().hex,
            title=metadata.title or path.stem,
            artist=metadata.artist,
            album=metadata.album,
            file_path=str(path),
            type=TabType.from_path(path),
            added_at=int(time.time()),
        )

    def generate_unique_title(self, base_title: str) -> str:
        """First free "<base>_copyN", or a timestamped title once attempts run out."""
        for number in range(1, self._copy_attempts + 1):
            candidate = f"{base_title}_copy{number}"
            if self._store.get_tab_by_title(candidate) is None:
                return candidate
        return f"{base_title}_copy_{time.time_ns()}"

    def fetch_cover_async(self, tab: Tab) -> bool:
        """
        Queue a cover download for a tab.

        Needs an artist plus an album or title. Blocks while the pool's
        queue is full.

        Returns:
            True if a job was queued
        """
        if not tab.artist or not (tab.album or tab.title):
            return False

        job = CoverJob(
            tab_id=tab.id,
            artist=tab.artist,
            album=tab.album,
            title=tab.title,
            country=tab.country,
            language=tab.language,
            cover_path=self._covers_dir / f"{tab.id}.jpg",
            on_complete=self._on_cover_complete,
        )
        if not self._cover_pool.submit(job):
            logger.warning(f"Cover pool is shut down, no cover for tab {tab.id}")
            return False
        return True

    def _on_cover_complete(self, tab_id: str, cover_path: str, error: Exception | None) -> None:
        if error is not None:
            logger.info(f"No cover for tab {tab_id}: {error}")
            self._emitter.emit("cover-fetch-failed", {"tabId": tab_id, "error": str(error)})
            return

        try:
            current = self._store.get_tab(tab_id)
            if current is None:
                logger.warning(f"Tab {tab_id} was deleted before its cover arrived")
                return
            current.cover_path = cover_path
            self._store.update_tab(current)
        except EntityStoreError as e:
            logger.error(f"Failed to store cover for tab {tab_id}: {e}")
            return

        logger.info(f"Cover downloaded to {cover_path}", extra={"tab_id": tab_id})
        self._emitter.emit("tab-updated", {"tab": current.to_dict()})
