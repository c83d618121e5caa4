"""
Core Layer - Domain models, configuration, filename parsing and debouncing.
"""

from tabshelf.core.config import (
    CoversConfig,
    LoggingConfig,
    StorageConfig,
    SyncConfig,
    TabshelfConfig,
    WatchConfig,
    configure_logging,
    load_config,
)
from tabshelf.core.debouncer import Debouncer
from tabshelf.core.file_events import ChangeSet, FileEvent, FileEventType
from tabshelf.core.filename_parser import parse_filename
from tabshelf.core.interfaces import (
    CoverResolver,
    FilenameMetadataExtractor,
    LoggingEmitter,
    MetadataExtractor,
    NotificationEmitter,
)
from tabshelf.core.models import (
    AutoSyncFrequency,
    Category,
    Metadata,
    Settings,
    SyncStrategy,
    Tab,
    TabPage,
    TabType,
)
from tabshelf.core.schedule import should_auto_sync

__all__ = [
    # Config
    "TabshelfConfig",
    "StorageConfig",
    "SyncConfig",
    "CoversConfig",
    "WatchConfig",
    "LoggingConfig",
    "load_config",
    "configure_logging",
    # Models
    "Tab",
    "TabType",
    "TabPage",
    "Category",
    "Settings",
    "SyncStrategy",
    "AutoSyncFrequency",
    "Metadata",
    # Events
    "FileEvent",
    "FileEventType",
    "ChangeSet",
    "Debouncer",
    # Collaborators
    "MetadataExtractor",
    "CoverResolver",
    "NotificationEmitter",
    "FilenameMetadataExtractor",
    "LoggingEmitter",
    # Helpers
    "parse_filename",
    "should_auto_sync",
]
