"""
Library Service for catalog operations.

Wraps the entity store with the operations a front end performs on the
library: saving and importing tabs, metadata refreshes, deletions that
clean up managed files, category assignment and guarded category moves.
"""

import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import Optional

from tabshelf.core.interfaces import NotificationEmitter
from tabshelf.core.models import Category, Tab
from tabshelf.infrastructure.entity_store import EntityStore
from tabshelf.services.sync_service import SyncEngine

logger = logging.getLogger(__name__)

_PLACEHOLDER_VALUES = {"untitled", "unknown", "no title"}


class LibraryServiceError(Exception):
    """Base exception for library service errors."""

    pass


class TabNotFoundError(LibraryServiceError):
    """Raised when an operation names a tab that does not exist."""

    pass


class DuplicateTabTitleError(LibraryServiceError):
    """Raised when a saved tab would duplicate a file path or title."""

    pass


class CategoryCycleError(LibraryServiceError):
    """Raised when a category move would create a cycle."""

    pass


def _is_placeholder(value: str) -> bool:
    trimmed = value.strip()
    return not trimmed or trimmed.lower() == "unknown"


def _is_meaningful(value: str) -> bool:
    trimmed = value.strip()
    return bool(trimmed) and trimmed.lower() not in _PLACEHOLDER_VALUES


def _differs(old: str, new: str) -> bool:
    return old.strip().lower() != new.strip().lower()


class LibraryService:
    """
    Catalog operations on top of the entity store.

    Storage errors propagate as EntityStoreError; missing tabs raise
    TabNotFoundError. Batch operations skip ids they cannot process and
    report how many succeeded.
    """

    def __init__(
        self,
        store: EntityStore,
        sync_engine: SyncEngine,
        emitter: NotificationEmitter,
        files_dir: Path | str,
    ):
        """
        Initialize the library service.

        Args:
            store: Catalog storage
            sync_engine: Used to schedule cover downloads
            emitter: Receives tab-updated notifications
            files_dir: Managed storage directory for copied documents
        """
        self._store = store
        self._sync_engine = sync_engine
        self._emitter = emitter
        self._files_dir = Path(files_dir)

    @property
    def store(self) -> EntityStore:
        return self._store

    def _require_tab(self, tab_id: str) -> Tab:
        tab = self._store.get_tab(tab_id)
        if tab is None:
            raise TabNotFoundError(f"Tab not found: {tab_id}")
        return tab

    # ─────────────────────────────────────────────────────────────────
    # Tabs
    # ─────────────────────────────────────────────────────────────────

    def save_tab(self, tab: Tab, copy_file: bool = False) -> Tab:
        """
        Add a tab picked by the user.

        Args:
            tab: Tab with user-confirmed metadata
            copy_file: Copy the document into managed storage as <id><ext>

        Returns:
            The stored tab

        Raises:
            DuplicateTabTitleError: If the path or title is already in the library
            LibraryServiceError: If the document cannot be copied
        """
        existing = self._store.get_tab_by_path(tab.file_path)
        if existing is not None:
            raise DuplicateTabTitleError(f"A tab with this file already exists: {existing.title}")
        existing = self._store.get_tab_by_title(tab.title)
        if existing is not None:
            raise DuplicateTabTitleError(f"A tab with title '{existing.title}' already exists")

        tab = tab.copy()
        if copy_file:
            source = Path(tab.file_path)
            destination = self._files_dir / f"{tab.id}{source.suffix}"
            try:
                self._files_dir.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(source, destination)
            except OSError as e:
                raise LibraryServiceError(f"Failed to copy {source}: {e}") from e
            tab.file_path = str(destination)
            tab.is_managed = True
        else:
            tab.is_managed = False

        if not tab.added_at:
            tab.added_at = int(time.time())

        self._store.add_tab(tab)
        logger.info(
            f"Saved tab: {tab.title}",
            extra={"tab_id": tab.id, "managed": tab.is_managed},
        )
        self._sync_engine.fetch_cover_async(tab)
        return tab

    def update_tab(self, tab: Tab) -> None:
        """Overwrite a tab and request a fresh cover for it."""
        self._store.update_tab(tab)
        self._sync_engine.fetch_cover_async(tab)

    def update_tab_metadata(self, tab_id: str, title: str, artist: str, album: str) -> bool:
        """
        Merge metadata read from inside the document.

        While the tab has no cover the new values win whenever they are
        meaningful; once a cover exists only placeholder fields are filled.

        Returns:
            True if the tab changed
        """
        tab = self._require_tab(tab_id)
        no_cover_yet = not tab.cover_path
        changed = False

        for name, value in (("title", title), ("artist", artist), ("album", album)):
            if not _is_meaningful(value):
                continue
            current = getattr(tab, name)
            if (no_cover_yet and _differs(current, value)) or _is_placeholder(current):
                setattr(tab, name, value.strip())
                changed = True
                logger.info(f"Updating {name} for tab {tab_id}: {value.strip()}")

        if not changed:
            return False

        self._store.update_tab(tab)
        self._emitter.emit("tab-updated", {"tab": tab.to_dict()})
        if tab.artist and not tab.cover_path:
            self._sync_engine.fetch_cover_async(tab)
        return True

    def delete_tab(self, tab_id: str) -> None:
        """Delete a tab, removing its file and cover if the library owns them."""
        tab = self._require_tab(tab_id)
        self._remove_managed_files(tab)
        self._store.delete_tab(tab_id)

    def batch_delete_tabs(self, tab_ids: list[str]) -> int:
        deleted = 0
        for tab_id in tab_ids:
            tab = self._store.get_tab(tab_id)
            if tab is None:
                continue
            self._remove_managed_files(tab)
            if self._store.delete_tab(tab_id):
                deleted += 1
        return deleted

    def _remove_managed_files(self, tab: Tab) -> None:
        if not tab.is_managed:
            return
        for path in (tab.file_path, tab.cover_path):
            if not path:
                continue
            try:
                Path(path).unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error(f"Failed to delete managed file {path}: {e}")

    def mark_as_opened(self, tab_id: str) -> None:
        if not self._store.mark_opened(tab_id):
            raise TabNotFoundError(f"Tab not found: {tab_id}")

    def export_tab(self, tab_id: str, dest_folder: Path | str) -> Path:
        """
        Copy a tab's document into dest_folder under its current file name.

        Returns:
            Path of the exported copy
        """
        tab = self._require_tab(tab_id)
        source = Path(tab.file_path)
        destination = Path(dest_folder) / source.name
        try:
            shutil.copyfile(source, destination)
        except OSError as e:
            raise LibraryServiceError(f"Failed to export {source}: {e}") from e
        return destination

    # ─────────────────────────────────────────────────────────────────
    # Tab categories
    # ─────────────────────────────────────────────────────────────────

    def move_tab(self, tab_id: str, category_id: str) -> None:
        """Replace a tab's categories with category_id (or none if empty)."""
        self._require_tab(tab_id)
        self._store.set_tab_categories(tab_id, [category_id] if category_id else [])

    def update_tab_categories(self, tab_id: str, category_ids: list[str]) -> None:
        self._require_tab(tab_id)
        self._store.set_tab_categories(tab_id, category_ids)

    def add_tab_to_category(self, tab_id: str, category_id: str) -> None:
        tab = self._require_tab(tab_id)
        if category_id in tab.category_ids:
            return
        self._store.set_tab_categories(tab_id, tab.category_ids + [category_id])

    def remove_tab_from_category(self, tab_id: str, category_id: str) -> None:
        tab = self._require_tab(tab_id)
        if category_id not in tab.category_ids:
            return
        remaining = [c for c in tab.category_ids if c != category_id]
        self._store.set_tab_categories(tab_id, remaining)

    def batch_move_tabs(self, tab_ids: list[str], category_id: str) -> int:
        """
        Move several tabs into one category.

        Association timestamps increase by one second per tab so the batch
        keeps its order.
        """
        base_time = int(time.time())
        categories = [category_id] if category_id else []
        moved = 0
        for offset, tab_id in enumerate(tab_ids):
            if self._store.get_tab(tab_id) is None:
                continue
            self._store.set_tab_categories(tab_id, categories, base_time + offset)
            moved += 1
        return moved

    def batch_add_tabs_to_category(self, tab_ids: list[str], category_id: str) -> int:
        base_time = int(time.time())
        added = 0
        for offset, tab_id in enumerate(tab_ids):
            tab = self._store.get_tab(tab_id)
            if tab is None or category_id in tab.category_ids:
                continue
            self._store.set_tab_categories(
                tab_id, tab.category_ids + [category_id], base_time + offset
            )
            added += 1
        return added

    # ─────────────────────────────────────────────────────────────────
    # Categories
    # ─────────────────────────────────────────────────────────────────

    def add_category(self, name: str, parent_id: str = "", category_id: Optional[str] = None) -> Category:
        """Create or update a category; a new id is generated when none is given."""
        category = Category(
            id=category_id or f"cat_{uuid.uuid4().hex}",
            name=name,
            parent_id=parent_id,
        )
        self._store.add_category(category)
        return category

    def delete_category(self, category_id: str) -> bool:
        return self._store.delete_category(category_id)

    def move_category(self, category_id: str, new_parent_id: str) -> None:
        """
        Re-parent a category.

        Raises:
            CategoryCycleError: If the category would become its own ancestor
            LibraryServiceError: If the category does not exist
        """
        if category_id == new_parent_id:
            raise CategoryCycleError("Cannot move category into itself")

        categories = {c.id: c for c in self._store.get_categories()}
        if category_id not in categories:
            raise LibraryServiceError(f"Category not found: {category_id}")

        ancestor = new_parent_id
        seen: set[str] = set()
        while ancestor and ancestor not in seen:
            if ancestor == category_id:
                raise CategoryCycleError(
                    f"Cannot move category {category_id} under its own descendant"
                )
            seen.add(ancestor)
            parent = categories.get(ancestor)
            ancestor = parent.parent_id if parent else ""

        self._store.move_category(category_id, new_parent_id)
