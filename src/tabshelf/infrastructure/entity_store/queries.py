"""
Low-level SQL query executor for the entity store.

Callers hold the store lock and own the transaction; nothing here commits.
"""

import sqlite3
from typing import Iterable, Optional

from tabshelf.core.models import Category, Tab, TabType

TAB_COLUMNS = """
    tabs.id, tabs.title, tabs.artist, tabs.album, tabs.file_path, tabs.type,
    tabs.is_managed, tabs.cover_path, tabs.country, tabs.language,
    COALESCE(tabs.tag, '') AS tag, tabs.added_at, tabs.last_opened
"""

# Explicit override, else the cover of the tab that entered the
# category first, else ''.
CATEGORY_COLUMNS = """
    c.id, c.name, c.parent_id, c.cover_path,
    COALESCE(
        NULLIF(c.cover_path, ''),
        (SELECT t.cover_path FROM tabs t
         JOIN tab_categories tc ON tc.tab_id = t.id
         WHERE tc.category_id = c.id
         ORDER BY t.added_at ASC, t.rowid ASC LIMIT 1),
        ''
    ) AS effective_cover_path
"""


def row_to_tab(row: sqlite3.Row, category_ids: Optional[list[str]] = None) -> Tab:
    """Build a Tab from a row selected with TAB_COLUMNS."""
    return Tab(
        id=row["id"],
        title=row["title"],
        artist=row["artist"] or "",
        album=row["album"] or "",
        file_path=row["file_path"],
        type=TabType.parse(row["type"]),
        is_managed=bool(row["is_managed"]),
        cover_path=row["cover_path"] or "",
        category_ids=category_ids or [],
        country=row["country"] or "",
        language=row["language"] or "",
        tag=row["tag"] or "",
        added_at=row["added_at"] or 0,
        last_opened=row["last_opened"] or 0,
    )


def row_to_category(row: sqlite3.Row) -> Category:
    return Category(
        id=row["id"],
        name=row["name"],
        parent_id=row["parent_id"] or "",
        cover_path=row["cover_path"] or "",
        effective_cover_path=row["effective_cover_path"] or "",
    )


class EntityQueryExecutor:
    """Executes SQL queries for the entity store."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    # ─────────────────────────────────────────────────────────────────
    # Tab Reads
    # ─────────────────────────────────────────────────────────────────

    def find_tab(self, column: str, value: str) -> Optional[Tab]:
        """Fetch the first tab whose id, file_path or title equals value."""
        if column not in ("id", "file_path", "title"):
            raise ValueError(f"Unsupported lookup column: {column}")
        row = self._conn.execute(
            f"SELECT {TAB_COLUMNS} FROM tabs WHERE tabs.{column} = ? "
            "ORDER BY tabs.rowid LIMIT 1",
            (value,),
        ).fetchone()
        if row is None:
            return None
        return row_to_tab(row, self.category_ids_for([row["id"]]).get(row["id"]))

    def select_tabs(self, sql: str, params: Iterable = ()) -> list[Tab]:
        """Run a SELECT producing TAB_COLUMNS rows and attach categories."""
        rows = self._conn.execute(sql, tuple(params)).fetchall()
        categories = self.category_ids_for([row["id"] for row in rows])
        return [row_to_tab(row, categories.get(row["id"])) for row in rows]

    def category_ids_for(self, tab_ids: list[str]) -> dict[str, list[str]]:
        """Map tab id -> category ids in assignment order."""
        result: dict[str, list[str]] = {}
        # Stay well below SQLite's bound parameter limit.
        for start in range(0, len(tab_ids), 500):
            chunk = tab_ids[start:start + 500]
            placeholders = ",".join("?" * len(chunk))
            cursor = self._conn.execute(
                f"SELECT tab_id, category_id FROM tab_categories "
                f"WHERE tab_id IN ({placeholders}) ORDER BY rowid",
                chunk,
            )
            for tab_id, category_id in cursor.fetchall():
                result.setdefault(tab_id, []).append(category_id)
        return result

    def path_owner(self, file_path: str, excluding_id: str) -> Optional[str]:
        """Id of another tab tracking file_path, if any."""
        row = self._conn.execute(
            "SELECT id FROM tabs WHERE file_path = ? AND id != ? LIMIT 1",
            (file_path, excluding_id),
        ).fetchone()
        return row[0] if row else None

    def count_tabs(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM tabs").fetchone()[0]

    # ─────────────────────────────────────────────────────────────────
    # Tab Writes
    # ─────────────────────────────────────────────────────────────────

    def upsert_tab(self, tab: Tab) -> None:
        """
        Insert or update a tab row in place.

        ON CONFLICT keeps the rowid, so the update trigger replaces the
        index entry; INSERT OR REPLACE would skip the delete trigger.
        """
        self._conn.execute(
            """
            INSERT INTO tabs (id, title, artist, album, file_path, type, is_managed,
                              cover_path, category_id, country, language, tag,
                              added_at, last_opened)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                artist = excluded.artist,
                album = excluded.album,
                file_path = excluded.file_path,
                type = excluded.type,
                is_managed = excluded.is_managed,
                cover_path = excluded.cover_path,
                category_id = excluded.category_id,
                country = excluded.country,
                language = excluded.language,
                tag = excluded.tag,
                added_at = excluded.added_at,
                last_opened = excluded.last_opened
            """,
            (
                tab.id, tab.title, tab.artist, tab.album, tab.file_path,
                tab.type.value, int(tab.is_managed), tab.cover_path,
                tab.primary_category_id, tab.country, tab.language, tab.tag,
                tab.added_at, tab.last_opened,
            ),
        )

    def replace_tab_categories(
        self, tab_id: str, category_ids: list[str], added_at: int
    ) -> None:
        """Delete-then-insert the association set and sync the legacy column."""
        category_ids = list(dict.fromkeys(category_ids))
        self._conn.execute(
            "UPDATE tabs SET category_id = ? WHERE id = ?",
            (category_ids[0] if category_ids else "", tab_id),
        )
        self._conn.execute("DELETE FROM tab_categories WHERE tab_id = ?", (tab_id,))
        self._conn.executemany(
            "INSERT INTO tab_categories (tab_id, category_id, added_at) VALUES (?, ?, ?)",
            [(tab_id, category_id, added_at) for category_id in category_ids],
        )

    def delete_tab(self, tab_id: str) -> int:
        cursor = self._conn.execute("DELETE FROM tabs WHERE id = ?", (tab_id,))
        return cursor.rowcount

    def set_last_opened(self, tab_id: str, timestamp: int) -> int:
        cursor = self._conn.execute(
            "UPDATE tabs SET last_opened = ? WHERE id = ?", (timestamp, tab_id)
        )
        return cursor.rowcount

    # ─────────────────────────────────────────────────────────────────
    # Category Operations
    # ─────────────────────────────────────────────────────────────────

    def get_categories(self) -> list[Category]:
        cursor = self._conn.execute(
            f"SELECT {CATEGORY_COLUMNS} FROM categories c ORDER BY c.name, c.id"
        )
        return [row_to_category(row) for row in cursor.fetchall()]

    def get_category(self, category_id: str) -> Optional[Category]:
        row = self._conn.execute(
            f"SELECT {CATEGORY_COLUMNS} FROM categories c WHERE c.id = ?",
            (category_id,),
        ).fetchone()
        return row_to_category(row) if row else None

    def get_recent_categories(self, limit: int) -> list[Category]:
        cursor = self._conn.execute(
            f"""
            SELECT {CATEGORY_COLUMNS}, MAX(t.last_opened) AS max_opened
            FROM categories c
            JOIN tab_categories tc ON tc.category_id = c.id
            JOIN tabs t ON t.id = tc.tab_id
            WHERE t.last_opened > 0
            GROUP BY c.id
            ORDER BY max_opened DESC
            LIMIT ?
            """,
            (limit,),
        )
        return [row_to_category(row) for row in cursor.fetchall()]

    def upsert_category(self, category: Category) -> None:
        self._conn.execute(
            """
            INSERT INTO categories (id, name, parent_id, cover_path)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                parent_id = excluded.parent_id,
                cover_path = excluded.cover_path
            """,
            (category.id, category.name, category.parent_id, category.cover_path),
        )

    def delete_category(self, category_id: str) -> int:
        """Promote children to root, then delete; associations cascade."""
        self._conn.execute(
            "UPDATE categories SET parent_id = '' WHERE parent_id = ?", (category_id,)
        )
        cursor = self._conn.execute("DELETE FROM categories WHERE id = ?", (category_id,))
        # Keep the legacy column pointing at the new first association.
        self._conn.execute(
            """
            UPDATE tabs SET category_id = COALESCE(
                (SELECT tc.category_id FROM tab_categories tc
                 WHERE tc.tab_id = tabs.id ORDER BY tc.rowid LIMIT 1), '')
            WHERE category_id = ?
            """,
            (category_id,),
        )
        return cursor.rowcount

    def move_category(self, category_id: str, new_parent_id: str) -> int:
        cursor = self._conn.execute(
            "UPDATE categories SET parent_id = ? WHERE id = ?",
            (new_parent_id, category_id),
        )
        return cursor.rowcount

    # ─────────────────────────────────────────────────────────────────
    # Settings Operations
    # ─────────────────────────────────────────────────────────────────

    def get_settings(self) -> dict[str, str]:
        cursor = self._conn.execute("SELECT key, value FROM settings")
        return {key: value for key, value in cursor.fetchall()}

    def put_settings(self, values: dict[str, str]) -> None:
        self._conn.executemany(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            list(values.items()),
        )
