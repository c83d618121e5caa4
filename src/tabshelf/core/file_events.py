"""
File event models for the directory watcher.

Provides the event passed from watchdog handlers to the debouncer and the
coalesced change set handed to the watcher callback.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class FileEventType(Enum):
    """Types of file system events the watcher reacts to."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    MOVED = "moved"


@dataclass
class FileEvent:
    """
    A single relevant file system event.

    Attributes:
        event_type: Type of the file event
        file_path: Path to the affected file (destination for MOVED)
        old_path: Previous path for MOVED events, None otherwise
        timestamp: Unix timestamp when the event was observed
    """

    event_type: FileEventType
    file_path: Path
    old_path: Path | None = None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if isinstance(self.file_path, str):
            self.file_path = Path(self.file_path)
        if isinstance(self.old_path, str):
            self.old_path = Path(self.old_path)


@dataclass
class ChangeSet:
    """
    Events coalesced over one debounce window.

    Only the latest event per path is kept; a move also records its source
    path as deleted.
    """

    changes: dict[Path, FileEventType] = field(default_factory=dict)
    event_count: int = 0

    def add(self, event: FileEvent) -> None:
        self.event_count += 1
        if event.event_type == FileEventType.MOVED and event.old_path is not None:
            self.changes.pop(event.old_path, None)
            self.changes[event.old_path] = FileEventType.DELETED
        # Dict order follows the most recent touch of a path.
        self.changes.pop(event.file_path, None)
        self.changes[event.file_path] = event.event_type

    @property
    def paths(self) -> list[Path]:
        return list(self.changes)

    def is_empty(self) -> bool:
        return not self.changes

    def to_dict(self) -> dict:
        return {
            "paths": [str(p) for p in self.changes],
            "events": self.event_count,
        }
