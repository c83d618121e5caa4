"""
Directory watcher infrastructure component.

Provides debounced file system monitoring of a mutable set of roots using
the watchdog library:
- Recursive watches that can be added, removed or replaced at runtime
- Extension filtering for tab documents
- Created/modified/deleted/moved events only
- A single change callback per quiet period
"""

import logging
import threading
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from tabshelf.core.debouncer import Debouncer
from tabshelf.core.file_events import ChangeSet, FileEvent, FileEventType

logger = logging.getLogger(__name__)

DEFAULT_WATCH_EXTENSIONS = frozenset({".pdf", ".gp", ".gp5", ".gpx"})


class DirectoryWatcherError(Exception):
    """Raised when a watch cannot be added or the watcher is not running."""
    pass


class DirectoryWatcherInterface(Protocol):
    """Protocol for directory watcher implementations."""

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def is_running(self) -> bool:
        ...

    def add_path(self, path: Path | str) -> None:
        ...

    def remove_path(self, path: Path | str) -> None:
        ...

    def set_paths(self, paths: Iterable[Path | str]) -> None:
        ...

    def get_paths(self) -> list[str]:
        ...


def _normalize(path: Path | str) -> str:
    return str(Path(path).expanduser().resolve())


class DirectoryWatcher(DirectoryWatcherInterface):
    """
    Debounced watcher over several directory trees.

    Relevant events re-arm a single-shot timer; on_change runs once on the
    timer thread after debounce_ms without further relevant events. It must
    not block for long, since the next burst waits on it.
    """

    def __init__(
        self,
        on_change: Callable[[ChangeSet], None] | None = None,
        extensions: Iterable[str] = DEFAULT_WATCH_EXTENSIONS,
        debounce_ms: int = 1000,
    ):
        """
        Initialize the directory watcher.

        Args:
            on_change: Called with the coalesced changes after each quiet period
            extensions: File extensions that count as relevant (e.g. {'.pdf'})
            debounce_ms: Quiet period in milliseconds
        """
        self._on_change = on_change
        self._extensions = {ext.lower() for ext in extensions}
        self._debouncer = Debouncer(delay_ms=debounce_ms, on_batch_ready=self._emit)
        self._handler = _TabEventHandler(self._extensions, self._on_event)
        self._observer: Observer | None = None
        self._watches: dict[str, ObservedWatch] = {}
        self._lock = threading.Lock()
        # Guards event intake only. Never held while calling into the
        # observer, which dispatches to the handler under its own lock.
        self._dispatch_lock = threading.Lock()
        self._accepting = False

    @property
    def debounce_ms(self) -> int:
        return self._debouncer.delay_ms

    def set_callback(self, on_change: Callable[[ChangeSet], None] | None) -> None:
        self._on_change = on_change

    def start(self) -> None:
        """Start the observer thread. Does nothing if already running."""
        with self._lock:
            if self._observer is not None:
                return
            self._observer = Observer()
            self._observer.start()
            with self._dispatch_lock:
                self._accepting = True
            logger.info("Directory watcher started")

    def stop(self) -> None:
        """Stop watching, drop every watch and discard a pending callback."""
        with self._lock:
            observer = self._observer
            if observer is None:
                return
            self._observer = None
            paths = list(self._watches)
            self._watches.clear()
            with self._dispatch_lock:
                self._accepting = False
                self._debouncer.cancel()

        observer.unschedule_all()
        observer.stop()
        observer.join(timeout=5.0)
        logger.info("Directory watcher stopped", extra={"paths": paths})

    def is_running(self) -> bool:
        with self._lock:
            return self._observer is not None

    def add_path(self, path: Path | str) -> None:
        """
        Watch a directory tree.

        Raises:
            DirectoryWatcherError: If the watcher is stopped or the path
                is not a readable directory
        """
        with self._lock:
            self._add_locked(path)

    def remove_path(self, path: Path | str) -> None:
        """Stop watching a directory tree. Unknown paths are ignored."""
        key = _normalize(path)
        with self._lock:
            watch = self._watches.pop(key, None)
            if watch is None or self._observer is None:
                return
            self._observer.unschedule(watch)
            logger.info(f"Stopped watching path: {key}")

    def set_paths(self, paths: Iterable[Path | str]) -> None:
        """
        Replace the watched set.

        Paths that cannot be watched are logged and skipped.

        Raises:
            DirectoryWatcherError: If the watcher is not running
        """
        with self._lock:
            if self._observer is None:
                raise DirectoryWatcherError("Directory watcher is not running")
            self._observer.unschedule_all()
            self._watches.clear()
            for path in paths:
                try:
                    self._add_locked(path)
                except DirectoryWatcherError as e:
                    logger.error(f"Failed to watch path {path}: {e}")

    def get_paths(self) -> list[str]:
        with self._lock:
            return list(self._watches)

    def _add_locked(self, path: Path | str) -> None:
        if self._observer is None:
            raise DirectoryWatcherError("Directory watcher is not running")
        key = _normalize(path)
        if key in self._watches:
            return
        if not Path(key).is_dir():
            raise DirectoryWatcherError(f"Not a directory: {key}")
        try:
            self._watches[key] = self._observer.schedule(self._handler, key, recursive=True)
        except OSError as e:
            raise DirectoryWatcherError(f"Failed to watch {key}: {e}") from e
        logger.info(f"Watching path: {key}")

    def _on_event(self, event: FileEvent) -> None:
        # Events still in flight from a stopping observer must not re-arm the timer.
        with self._dispatch_lock:
            if not self._accepting:
                return
            self._debouncer.add_event(event)

    def _emit(self, changes: ChangeSet) -> None:
        logger.debug(
            "Debounced file changes",
            extra={"events": changes.event_count, "paths": [str(p) for p in changes.paths[:10]]},
        )
        if self._on_change is not None:
            self._on_change(changes)


class _TabEventHandler(FileSystemEventHandler):
    """Converts watchdog events on relevant files into FileEvents."""

    def __init__(self, extensions: set[str], sink: Callable[[FileEvent], None]):
        super().__init__()
        self._extensions = extensions
        self._sink = sink

    def _is_relevant(self, path: str) -> bool:
        return Path(path).suffix.lower() in self._extensions

    def _forward(self, event_type: FileEventType, path: str, old_path: str | None = None) -> None:
        logger.debug(f"File event: {event_type.value} - {path}")
        self._sink(FileEvent(event_type=event_type, file_path=Path(path),
                             old_path=Path(old_path) if old_path else None))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._is_relevant(event.src_path):
            self._forward(FileEventType.CREATED, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._is_relevant(event.src_path):
            self._forward(FileEventType.MODIFIED, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._is_relevant(event.src_path):
            self._forward(FileEventType.DELETED, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        src_relevant = self._is_relevant(event.src_path)
        if self._is_relevant(event.dest_path):
            self._forward(
                FileEventType.MOVED, event.dest_path, event.src_path if src_relevant else None
            )
        elif src_relevant:
            # Renamed to an unwatched extension: gone as far as we care.
            self._forward(FileEventType.DELETED, event.src_path)
