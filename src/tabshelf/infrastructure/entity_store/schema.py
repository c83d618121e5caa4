"""
Entity store schema definitions and migrations.
"""

import logging
import sqlite3

logger = logging.getLogger(__name__)

SCHEMA = """
-- Catalog entries. category_id is the legacy primary category, kept
-- equal to the first row of tab_categories.
CREATE TABLE IF NOT EXISTS tabs (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    artist TEXT DEFAULT '',
    album TEXT DEFAULT '',
    file_path TEXT NOT NULL,
    type TEXT NOT NULL,
    is_managed INTEGER DEFAULT 0,
    cover_path TEXT DEFAULT '',
    category_id TEXT DEFAULT '',
    country TEXT DEFAULT '',
    language TEXT DEFAULT '',
    tag TEXT DEFAULT '',
    added_at INTEGER DEFAULT 0,
    last_opened INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    parent_id TEXT DEFAULT '',
    cover_path TEXT DEFAULT ''
);

CREATE TABLE IF NOT EXISTS tab_categories (
    tab_id TEXT,
    category_id TEXT,
    added_at INTEGER DEFAULT 0,
    PRIMARY KEY (tab_id, category_id),
    FOREIGN KEY (tab_id) REFERENCES tabs(id) ON DELETE CASCADE,
    FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE INDEX IF NOT EXISTS idx_tabs_file_path ON tabs(file_path);
CREATE INDEX IF NOT EXISTS idx_tabs_title ON tabs(title);
CREATE INDEX IF NOT EXISTS idx_categories_parent ON categories(parent_id);
CREATE INDEX IF NOT EXISTS idx_tab_categories_tab ON tab_categories(tab_id);
CREATE INDEX IF NOT EXISTS idx_tab_categories_cat ON tab_categories(category_id);
"""

# External content FTS5 table mirrored from tabs by triggers, so every
# write to tabs updates the index inside the same transaction.
FTS_SCHEMA = """
CREATE VIRTUAL TABLE IF NOT EXISTS tabs_fts USING fts5(
    title, artist, album, tag,
    content='tabs',
    content_rowid='rowid'
);

CREATE TRIGGER IF NOT EXISTS tabs_ai AFTER INSERT ON tabs BEGIN
    INSERT INTO tabs_fts(rowid, title, artist, album, tag)
    VALUES (NEW.rowid, NEW.title, NEW.artist, NEW.album, NEW.tag);
END;

CREATE TRIGGER IF NOT EXISTS tabs_ad AFTER DELETE ON tabs BEGIN
    INSERT INTO tabs_fts(tabs_fts, rowid, title, artist, album, tag)
    VALUES ('delete', OLD.rowid, OLD.title, OLD.artist, OLD.album, OLD.tag);
END;

CREATE TRIGGER IF NOT EXISTS tabs_au AFTER UPDATE ON tabs BEGIN
    INSERT INTO tabs_fts(tabs_fts, rowid, title, artist, album, tag)
    VALUES ('delete', OLD.rowid, OLD.title, OLD.artist, OLD.album, OLD.tag);
    INSERT INTO tabs_fts(rowid, title, artist, album, tag)
    VALUES (NEW.rowid, NEW.title, NEW.artist, NEW.album, NEW.tag);
END;
"""

# Columns added after the first release: table -> [(column, definition)]
_ADDED_COLUMNS = {
    "tabs": [
        ("is_managed", "INTEGER DEFAULT 0"),
        ("cover_path", "TEXT DEFAULT ''"),
        ("category_id", "TEXT DEFAULT ''"),
        ("country", "TEXT DEFAULT ''"),
        ("language", "TEXT DEFAULT ''"),
        ("tag", "TEXT DEFAULT ''"),
        ("added_at", "INTEGER DEFAULT 0"),
        ("last_opened", "INTEGER DEFAULT 0"),
    ],
    "categories": [
        ("cover_path", "TEXT DEFAULT ''"),
    ],
}


def initialize_schema(conn: sqlite3.Connection) -> None:
    """Create tables, the full-text index and its triggers if absent."""
    conn.executescript(SCHEMA)
    conn.executescript(FTS_SCHEMA)
    conn.commit()


def _columns(conn: sqlite3.Connection, table: str) -> set[str]:
    cursor = conn.execute(f"PRAGMA table_info({table})")
    return {row[1] for row in cursor.fetchall()}


def migrate_schema(conn: sqlite3.Connection) -> None:
    """
    Run idempotent migrations for databases created by older versions.

    Adds missing columns, rebuilds the full-text index from the tabs table
    and copies legacy single-category assignments into tab_categories.
    """
    for table, additions in _ADDED_COLUMNS.items():
        existing = _columns(conn, table)
        for column, definition in additions:
            if column not in existing:
                logger.info(f"Migrating database: adding {column} column to {table}")
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    conn.execute("INSERT INTO tabs_fts(tabs_fts) VALUES('rebuild')")

    cursor = conn.execute(
        """
        INSERT INTO tab_categories (tab_id, category_id, added_at)
        SELECT tabs.id, tabs.category_id, tabs.added_at FROM tabs
        JOIN categories ON categories.id = tabs.category_id
        WHERE tabs.category_id != ''
        AND NOT EXISTS (
            SELECT 1 FROM tab_categories tc
            WHERE tc.tab_id = tabs.id AND tc.category_id = tabs.category_id
        )
        """
    )
    if cursor.rowcount > 0:
        logger.info(
            f"Migrating database: moved {cursor.rowcount} legacy category assignments"
        )
    conn.commit()
