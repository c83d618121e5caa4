"""
Fake implementations for testing.

Provides in-memory implementations of the collaborator interfaces for use
in unit and integration tests without network or file system watching.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from tabshelf.core.file_events import ChangeSet, FileEvent, FileEventType
from tabshelf.core.filename_parser import parse_filename
from tabshelf.core.models import Metadata
from tabshelf.infrastructure.file_watcher import DirectoryWatcherError


class RecordingEmitter:
    """NotificationEmitter that keeps every emitted event in order."""

    def __init__(self):
        self._events: list[tuple[str, Any]] = []
        self._lock = threading.Lock()

    def emit(self, event_name: str, payload: Any = None) -> None:
        with self._lock:
            self._events.append((event_name, payload))

    @property
    def events(self) -> list[tuple[str, Any]]:
        with self._lock:
            return list(self._events)

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def payloads(self, event_name: str) -> list[Any]:
        return [payload for name, payload in self.events if name == event_name]


class FakeCoverResolver:
    """
    CoverResolver that writes a small placeholder image.

    Artists listed in fail_for raise instead. An optional gate blocks every
    call until it is set, so tests can hold workers busy.
    """

    def __init__(
        self,
        fail_for: Iterable[str] = (),
        gate: threading.Event | None = None,
    ):
        self._fail_for = set(fail_for)
        self._gate = gate
        self._calls: list[dict] = []
        self._lock = threading.Lock()

    def resolve(
        self,
        artist: str,
        album: str,
        title: str,
        country: str,
        language: str,
        destination: Path,
    ) -> None:
        with self._lock:
            self._calls.append(
                {
                    "artist": artist,
                    "album": album,
                    "title": title,
                    "country": country,
                    "language": language,
                    "destination": Path(destination),
                }
            )
        if self._gate is not None:
            self._gate.wait(timeout=10)
        if artist in self._fail_for:
            raise LookupError(f"No cover for {artist}")
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")

    @property
    def calls(self) -> list[dict]:
        with self._lock:
            return list(self._calls)


class FakeMetadataExtractor:
    """
    MetadataExtractor with canned results per file name.

    Unknown files fall back to filename parsing; names in failing raise.
    """

    def __init__(
        self,
        results: dict[str, Metadata] | None = None,
        failing: Iterable[str] = (),
    ):
        self._results = results or {}
        self._failing = set(failing)

    def extract(self, path: Path) -> Metadata:
        name = Path(path).name
        if name in self._failing:
            raise ValueError(f"Cannot read {name}")
        if name in self._results:
            return self._results[name]
        return parse_filename(path)


class FakeDirectoryWatcher:
    """
    Fake directory watcher for testing.

    Tracks the watched set without touching the file system and lets tests
    fire a debounced change directly with trigger_change().
    """

    def __init__(self, on_change: Callable[[ChangeSet], None] | None = None):
        self._on_change = on_change
        self._paths: list[str] = []
        self._running = False
        self.start_calls = 0
        self.stop_calls = 0

    def set_callback(self, on_change: Callable[[ChangeSet], None] | None) -> None:
        self._on_change = on_change

    def start(self) -> None:
        self.start_calls += 1
        self._running = True

    def stop(self) -> None:
        self.stop_calls += 1
        self._running = False
        self._paths = []

    def is_running(self) -> bool:
        return self._running

    def add_path(self, path: Path | str) -> None:
        if not self._running:
            raise DirectoryWatcherError("Directory watcher is not running")
        if str(path) not in self._paths:
            self._paths.append(str(path))

    def remove_path(self, path: Path | str) -> None:
        if str(path) in self._paths:
            self._paths.remove(str(path))

    def set_paths(self, paths: Iterable[Path | str]) -> None:
        if not self._running:
            raise DirectoryWatcherError("Directory watcher is not running")
        self._paths = []
        for path in paths:
            self.add_path(path)

    def get_paths(self) -> list[str]:
        return list(self._paths)

    def trigger_change(self, *paths: Path | str) -> None:
        """Invoke the change callback as if a quiet period had just ended."""
        if not self._running or self._on_change is None:
            return
        changes = ChangeSet()
        for path in paths:
            changes.add(FileEvent(event_type=FileEventType.MODIFIED, file_path=Path(path)))
        self._on_change(changes)
