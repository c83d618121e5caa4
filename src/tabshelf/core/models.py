"""
Domain models for the tab library.

Tabs, categories and the library settings snapshot shared by the
entity store, the sync engine and the services layer.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path


class TabType(Enum):
    """Kind of document a tab points at."""

    DOCUMENT = "document"
    TABLATURE = "tablature"
    UNKNOWN = "unknown"

    @classmethod
    def from_path(cls, path: Path | str) -> "TabType":
        """Infer the tab type from a file extension."""
        ext = Path(path).suffix.lower()
        if ext == ".pdf":
            return cls.DOCUMENT
        if ext in GUITAR_PRO_EXTENSIONS:
            return cls.TABLATURE
        return cls.UNKNOWN

    @classmethod
    def parse(cls, value: str) -> "TabType":
        """Parse a stored type, accepting the legacy "pdf"/"gp" values."""
        legacy = {"pdf": cls.DOCUMENT, "gp": cls.TABLATURE}
        if value in legacy:
            return legacy[value]
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


GUITAR_PRO_EXTENSIONS = frozenset({".gp", ".gp3", ".gp4", ".gp5", ".gpx"})


class SyncStrategy(Enum):
    """What a sync does when a scanned file's title is already taken."""

    SKIP = "skip"
    # Never replaces the existing tab: the new file is added under a
    # "<title>_copyN" title instead.
    OVERWRITE = "overwrite"


class AutoSyncFrequency(Enum):
    """How often a sync runs automatically at startup."""

    STARTUP = "startup"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass
class Tab:
    """
    A tracked sheet-music or tablature document.

    Attributes:
        id: Stable unique identifier, immutable after creation
        file_path: Absolute path of the document
        is_managed: True if the library owns the file (deletes it with the tab)
        category_ids: Ordered, duplicate-free list of category ids
        added_at: Unix seconds when the tab entered the library
        last_opened: Unix seconds of the last open, 0 if never opened
    """

    id: str
    title: str
    file_path: str
    artist: str = ""
    album: str = ""
    type: TabType = TabType.UNKNOWN
    is_managed: bool = False
    cover_path: str = ""
    category_ids: list[str] = field(default_factory=list)
    country: str = ""
    language: str = ""
    tag: str = ""
    added_at: int = 0
    last_opened: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.type, str):
            self.type = TabType.parse(self.type)
        self.category_ids = list(dict.fromkeys(self.category_ids))

    @property
    def primary_category_id(self) -> str:
        """First category of the tab, or an empty string."""
        return self.category_ids[0] if self.category_ids else ""

    def copy(self, **changes) -> "Tab":
        """Return a copy with the given fields replaced."""
        changes.setdefault("category_ids", list(self.category_ids))
        return replace(self, **changes)

    def to_dict(self) -> dict:
        """Serialize to a JSON-friendly dict for notification payloads."""
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "filePath": self.file_path,
            "type": self.type.value,
            "isManaged": self.is_managed,
            "coverPath": self.cover_path,
            "categoryIds": list(self.category_ids),
            "country": self.country,
            "language": self.language,
            "tag": self.tag,
            "addedAt": self.added_at,
            "lastOpened": self.last_opened,
        }


@dataclass
class Category:
    """A user-defined node in the category tree. Empty parent_id means root."""

    id: str
    name: str
    parent_id: str = ""
    cover_path: str = ""
    effective_cover_path: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "parentId": self.parent_id,
            "coverPath": self.cover_path,
            "effectiveCoverPath": self.effective_cover_path,
        }


@dataclass(frozen=True)
class Settings:
    """
    Immutable snapshot of the library settings.

    Owned by the entity store; collaborators receive it by reference and
    ask the store for a new snapshot after an update.
    """

    sync_paths: tuple[str, ...] = ()
    sync_strategy: SyncStrategy = SyncStrategy.SKIP
    auto_sync_enabled: bool = True
    auto_sync_frequency: AutoSyncFrequency = AutoSyncFrequency.STARTUP
    last_sync_time: int = 0

    def with_changes(self, **changes) -> "Settings":
        if "sync_paths" in changes:
            changes["sync_paths"] = tuple(changes["sync_paths"])
        return replace(self, **changes)


@dataclass
class TabPage:
    """One page of tabs together with the unpaginated match count."""

    tabs: list[Tab]
    total: int
    has_more: bool


@dataclass
class Metadata:
    """Descriptive fields extracted from a document or its filename."""

    title: str
    artist: str = ""
    album: str = ""
