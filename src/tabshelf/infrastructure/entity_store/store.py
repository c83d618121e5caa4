"""
Entity Store implementation.

SQLite-based storage for tabs, categories and library settings with a
trigger-maintained FTS5 index.

Every public method takes the same re-entrant lock, so a store instance can
be shared by the sync walk, cover pool workers and the watcher thread.
"""

import json
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from tabshelf.core.models import (
    AutoSyncFrequency,
    Category,
    Settings,
    SyncStrategy,
    Tab,
    TabPage,
)

from .models import SEARCH_FIELDS, DuplicateTabError, EntityStoreError, SearchRequest
from .queries import TAB_COLUMNS, EntityQueryExecutor
from .schema import initialize_schema, migrate_schema
from .search import PlainListing, SearchChain, default_search_chain

logger = logging.getLogger(__name__)

DEFAULT_RECENT_TABS = 20
DEFAULT_RECENT_CATEGORIES = 10


class EntityStore:
    """
    SQLite-backed catalog of tabs and categories.

    Owns the library Settings: the current snapshot is cached in memory and
    replaced whenever update_settings commits.
    """

    def __init__(self, db_path: Path | str, search_chain: Optional[SearchChain] = None):
        self._db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._query: Optional[EntityQueryExecutor] = None
        self._search_chain = search_chain or default_search_chain()
        self._listing = PlainListing()
        self._settings = Settings()
        self._lock = threading.RLock()
        self._initialized = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
            self._conn.execute("PRAGMA cache_size=-64000;")
            self._conn.execute("PRAGMA temp_store=MEMORY;")
            self._conn.execute("PRAGMA foreign_keys=ON;")
            self._query = EntityQueryExecutor(self._conn)
        return self._conn

    def initialize(self) -> None:
        """
        Open the database, create or migrate the schema and load settings.

        Raises:
            EntityStoreError: If the database cannot be prepared
        """
        with self._lock:
            if self._initialized:
                return
            try:
                conn = self._get_connection()
                initialize_schema(conn)
                migrate_schema(conn)
                self._settings = self._load_settings()
                self._initialized = True
                logger.info(f"Initialized entity store: {self._db_path}")
            except (sqlite3.Error, OSError) as e:
                raise EntityStoreError(f"Failed to initialize entity store: {e}") from e

    def _ensure_query(self) -> EntityQueryExecutor:
        """Ensure query executor is available."""
        self.initialize()
        assert self._query is not None
        return self._query

    @contextmanager
    def _transaction(self) -> Iterator[EntityQueryExecutor]:
        """Hold the lock for one unit of work; commit on success, roll back otherwise."""
        with self._lock:
            query = self._ensure_query()
            assert self._conn is not None
            try:
                yield query
                self._conn.commit()
            except BaseException:
                self._conn.rollback()
                raise

    # ─────────────────────────────────────────────────────────────────
    # Tab Operations
    # ─────────────────────────────────────────────────────────────────

    def get_tab(self, tab_id: str) -> Optional[Tab]:
        """Get a tab by id, or None."""
        with self._lock:
            try:
                return self._ensure_query().find_tab("id", tab_id)
            except sqlite3.Error as e:
                raise EntityStoreError(f"Failed to get tab: {e}") from e

    def get_tab_by_path(self, file_path: str) -> Optional[Tab]:
        """Get the tab tracking file_path, or None."""
        with self._lock:
            try:
                return self._ensure_query().find_tab("file_path", file_path)
            except sqlite3.Error as e:
                raise EntityStoreError(f"Failed to get tab by path: {e}") from e

    def get_tab_by_title(self, title: str) -> Optional[Tab]:
        """Get the first tab with exactly this title, or None."""
        with self._lock:
            try:
                return self._ensure_query().find_tab("title", title)
            except sqlite3.Error as e:
                raise EntityStoreError(f"Failed to get tab by title: {e}") from e

    def get_tabs(self) -> list[Tab]:
        """Get every tab ordered by title."""
        with self._lock:
            try:
                return self._ensure_query().select_tabs(
                    f"SELECT {TAB_COLUMNS} FROM tabs ORDER BY tabs.title, tabs.id"
                )
            except sqlite3.Error as e:
                raise EntityStoreError(f"Failed to get tabs: {e}") from e

    def get_recent_tabs(self, limit: int = DEFAULT_RECENT_TABS) -> list[Tab]:
        """Get opened tabs, most recently opened first."""
        if limit <= 0:
            limit = DEFAULT_RECENT_TABS
        with self._lock:
            try:
                return self._ensure_query().select_tabs(
                    f"SELECT {TAB_COLUMNS} FROM tabs WHERE tabs.last_opened > 0 "
                    "ORDER BY tabs.last_opened DESC, tabs.id LIMIT ?",
                    (limit,),
                )
            except sqlite3.Error as e:
                raise EntityStoreError(f"Failed to get recent tabs: {e}") from e

    def get_tabs_paginated(
        self,
        category_id: str = "",
        page: int = 1,
        page_size: int = 50,
        search_query: str = "",
        search_fields: Optional[list[str]] = None,
        is_global: bool = True,
        sort_by: Optional[str] = None,
        sort_desc: bool = False,
    ) -> TabPage:
        """
        Get one page of tabs.

        Args:
            category_id: Category to restrict to when is_global is False
            page: 1-based page number
            page_size: Tabs per page
            search_query: Text to prefix-match; empty lists everything
            search_fields: Subset of title/artist/album/tag; empty means all
            is_global: Ignore category_id when True
            sort_by: "title", "added_at", "last_opened"; None or "relevance"
                ranks search results by bm25 and lists by title otherwise
            sort_desc: Reverse an explicit sort

        Returns:
            TabPage with the page, the total match count and has_more

        Raises:
            EntityStoreError: If the query fails for a reason other than a
                malformed search expression
        """
        page = max(page, 1)
        page_size = max(page_size, 1)
        fields = [f for f in (search_fields or []) if f in SEARCH_FIELDS] or list(SEARCH_FIELDS)
        request = SearchRequest(
            query=search_query.strip(),
            fields=fields,
            category_id=category_id,
            is_global=is_global,
            sort_by=sort_by,
            sort_desc=sort_desc,
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        strategy = self._search_chain if request.query else self._listing

        with self._lock:
            try:
                tabs, total = strategy.fetch(self._ensure_query(), self._conn, request)
            except sqlite3.Error as e:
                raise EntityStoreError(f"Failed to query tabs: {e}") from e
        return TabPage(tabs=tabs, total=total, has_more=request.offset + len(tabs) < total)

    def add_tab(self, tab: Tab) -> None:
        """
        Insert or update a tab and replace its category associations.

        Each association is stamped with the tab's added_at.

        Raises:
            DuplicateTabError: If another tab already tracks tab.file_path
            EntityStoreError: On any other storage failure
        """
        try:
            with self._transaction() as query:
                owner = query.path_owner(tab.file_path, tab.id)
                if owner is not None:
                    raise DuplicateTabError(
                        f"File already tracked by tab {owner}: {tab.file_path}"
                    )
                query.upsert_tab(tab)
                query.replace_tab_categories(tab.id, tab.category_ids, tab.added_at)
        except sqlite3.Error as e:
            raise EntityStoreError(f"Failed to save tab {tab.id}: {e}") from e

    def update_tab(self, tab: Tab) -> None:
        """Same upsert as add_tab."""
        self.add_tab(tab)

    def delete_tab(self, tab_id: str) -> bool:
        """Delete a tab; its associations cascade. Returns True if deleted."""
        try:
            with self._transaction() as query:
                return query.delete_tab(tab_id) > 0
        except sqlite3.Error as e:
            raise EntityStoreError(f"Failed to delete tab: {e}") from e

    def set_tab_categories(
        self, tab_id: str, category_ids: list[str], timestamp: Optional[int] = None
    ) -> None:
        """Atomically replace a tab's categories, stamping each with timestamp."""
        timestamp = int(time.time()) if timestamp is None else timestamp
        try:
            with self._transaction() as query:
                query.replace_tab_categories(tab_id, category_ids, timestamp)
        except sqlite3.Error as e:
            raise EntityStoreError(f"Failed to set tab categories: {e}") from e

    def mark_opened(self, tab_id: str, timestamp: Optional[int] = None) -> bool:
        """Bump last_opened. Returns False if the tab does not exist."""
        timestamp = int(time.time()) if timestamp is None else timestamp
        try:
            with self._transaction() as query:
                return query.set_last_opened(tab_id, timestamp) > 0
        except sqlite3.Error as e:
            raise EntityStoreError(f"Failed to mark tab opened: {e}") from e

    def has_data(self) -> bool:
        """True if at least one tab exists."""
        with self._lock:
            try:
                return self._ensure_query().count_tabs() > 0
            except sqlite3.Error as e:
                raise EntityStoreError(f"Failed to count tabs: {e}") from e

    # ─────────────────────────────────────────────────────────────────
    # Category Operations
    # ─────────────────────────────────────────────────────────────────

    def get_categories(self) -> list[Category]:
        with self._lock:
            try:
                return self._ensure_query().get_categories()
            except sqlite3.Error as e:
                raise EntityStoreError(f"Failed to get categories: {e}") from e

    def get_category(self, category_id: str) -> Optional[Category]:
        with self._lock:
            try:
                return self._ensure_query().get_category(category_id)
            except sqlite3.Error as e:
                raise EntityStoreError(f"Failed to get category: {e}") from e

    def get_recent_categories(self, limit: int = DEFAULT_RECENT_CATEGORIES) -> list[Category]:
        """Categories ordered by the most recent open of any of their tabs."""
        if limit <= 0:
            limit = DEFAULT_RECENT_CATEGORIES
        with self._lock:
            try:
                return self._ensure_query().get_recent_categories(limit)
            except sqlite3.Error as e:
                raise EntityStoreError(f"Failed to get recent categories: {e}") from e

    def add_category(self, category: Category) -> None:
        """Insert or update a category."""
        try:
            with self._transaction() as query:
                query.upsert_category(category)
        except sqlite3.Error as e:
            raise EntityStoreError(f"Failed to save category: {e}") from e

    def delete_category(self, category_id: str) -> bool:
        """Delete a category, promoting its children to root. Tabs are kept."""
        try:
            with self._transaction() as query:
                return query.delete_category(category_id) > 0
        except sqlite3.Error as e:
            raise EntityStoreError(f"Failed to delete category: {e}") from e

    def move_category(self, category_id: str, new_parent_id: str) -> bool:
        """Re-parent a category. No cycle check is made here."""
        try:
            with self._transaction() as query:
                return query.move_category(category_id, new_parent_id) > 0
        except sqlite3.Error as e:
            raise EntityStoreError(f"Failed to move category: {e}") from e

    # ─────────────────────────────────────────────────────────────────
    # Settings Operations
    # ─────────────────────────────────────────────────────────────────

    @property
    def settings(self) -> Settings:
        """Current settings snapshot."""
        self.initialize()
        return self._settings

    def update_settings(self, settings: Settings) -> Settings:
        """Persist the full settings set and reload the cached snapshot."""
        try:
            with self._transaction() as query:
                query.put_settings(_settings_to_rows(settings))
            with self._lock:
                self._settings = self._load_settings()
                return self._settings
        except sqlite3.Error as e:
            raise EntityStoreError(f"Failed to update settings: {e}") from e

    def _load_settings(self) -> Settings:
        assert self._query is not None
        return _settings_from_rows(self._query.get_settings())

    # ─────────────────────────────────────────────────────────────────
    # Bulk Import
    # ─────────────────────────────────────────────────────────────────

    def import_catalog(
        self,
        categories: list[Category],
        tabs: list[Tab],
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Write a whole catalog in one transaction: all of it or none of it.

        Raises:
            DuplicateTabError: If two tabs share a file_path
            EntityStoreError: On any other storage failure
        """
        try:
            with self._transaction() as query:
                for category in categories:
                    query.upsert_category(category)
                for tab in tabs:
                    owner = query.path_owner(tab.file_path, tab.id)
                    if owner is not None:
                        raise DuplicateTabError(
                            f"File already tracked by tab {owner}: {tab.file_path}"
                        )
                    query.upsert_tab(tab)
                    query.replace_tab_categories(tab.id, tab.category_ids, tab.added_at)
                if settings is not None:
                    query.put_settings(_settings_to_rows(settings))
            with self._lock:
                self._settings = self._load_settings()
        except sqlite3.Error as e:
            raise EntityStoreError(f"Failed to import catalog: {e}") from e

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self._query = None
                self._initialized = False


def _settings_to_rows(settings: Settings) -> dict[str, str]:
    return {
        "syncPaths": json.dumps(list(settings.sync_paths)),
        "syncStrategy": settings.sync_strategy.value,
        "autoSyncEnabled": "true" if settings.auto_sync_enabled else "false",
        "autoSyncFrequency": settings.auto_sync_frequency.value,
        "lastSyncTime": str(int(settings.last_sync_time)),
    }


def _settings_from_rows(rows: dict[str, str]) -> Settings:
    settings = Settings()
    changes: dict = {}

    if rows.get("syncPaths"):
        changes["sync_paths"] = _parse_sync_paths(rows["syncPaths"])
    if "syncStrategy" in rows:
        try:
            changes["sync_strategy"] = SyncStrategy(rows["syncStrategy"])
        except ValueError:
            logger.warning(f"Ignoring unknown sync strategy: {rows['syncStrategy']}")
    if "autoSyncEnabled" in rows:
        changes["auto_sync_enabled"] = rows["autoSyncEnabled"] == "true"
    if "autoSyncFrequency" in rows:
        try:
            changes["auto_sync_frequency"] = AutoSyncFrequency(rows["autoSyncFrequency"])
        except ValueError:
            logger.warning(f"Ignoring unknown auto-sync frequency: {rows['autoSyncFrequency']}")
    if rows.get("lastSyncTime"):
        try:
            changes["last_sync_time"] = int(rows["lastSyncTime"])
        except ValueError:
            logger.warning(f"Ignoring invalid last sync time: {rows['lastSyncTime']}")

    return settings.with_changes(**changes)


def _parse_sync_paths(value: str) -> list[str]:
    """Decode the stored path list; older databases joined paths with '|'."""
    try:
        paths = json.loads(value)
    except json.JSONDecodeError:
        paths = None
    if not isinstance(paths, list):
        return [p for p in value.split("|") if p]
    return [str(p) for p in paths if p]


def create_entity_store(db_path: Path | str) -> EntityStore:
    """Factory function to create and initialize an entity store."""
    store = EntityStore(db_path)
    store.initialize()
    return store
