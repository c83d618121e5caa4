"""
Collaborator interfaces consumed by the sync engine and services.

Concrete implementations live in the infrastructure layer; in-memory
fakes for tests live in tabshelf.infrastructure.fakes.
"""

import logging
from pathlib import Path
from typing import Any, Protocol

from tabshelf.core.filename_parser import parse_filename
from tabshelf.core.models import Metadata

logger = logging.getLogger(__name__)


class MetadataExtractor(Protocol):
    """Derives descriptive metadata from a document."""

    def extract(self, path: Path) -> Metadata:
        """
        Extract metadata from a file.

        Raises:
            Exception: Any failure; callers fall back to filename parsing
        """
        ...


class CoverResolver(Protocol):
    """Looks up cover art and writes it to a destination file."""

    def resolve(
        self,
        artist: str,
        album: str,
        title: str,
        country: str,
        language: str,
        destination: Path,
    ) -> None:
        """
        Download cover art for the given track to destination.

        Raises:
            Exception: Any failure means no cover is available
        """
        ...


class NotificationEmitter(Protocol):
    """Fire-and-forget event sink for the presentation layer."""

    def emit(self, event_name: str, payload: Any = None) -> None:
        ...


class FilenameMetadataExtractor:
    """MetadataExtractor that only looks at the file name."""

    def extract(self, path: Path) -> Metadata:
        return parse_filename(path)


class LoggingEmitter:
    """NotificationEmitter that writes every event to the log."""

    def emit(self, event_name: str, payload: Any = None) -> None:
        logger.debug(f"Event {event_name}", extra={"event": event_name, "payload": payload})
