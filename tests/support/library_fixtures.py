"""
Shared builders for library tests.
"""

import time
import uuid
from pathlib import Path

from tabshelf.core.models import Category, Tab, TabType
from tabshelf.infrastructure.entity_store import EntityStore


def make_tab(title: str = "Song", **fields) -> Tab:
    """Build a Tab with a unique id and file path unless given."""
    tab_id = fields.pop("id", uuid.uuid4().hex)
    fields.setdefault("file_path", f"/music/{tab_id}.pdf")
    fields.setdefault("type", TabType.DOCUMENT)
    fields.setdefault("added_at", int(time.time()))
    return Tab(id=tab_id, title=title, **fields)


def open_store(directory: Path | str) -> EntityStore:
    """Create and initialize a store inside directory."""
    store = EntityStore(Path(directory) / "library.db")
    store.initialize()
    return store


def add_category(store: EntityStore, category_id: str, name: str = "", parent_id: str = "") -> Category:
    category = Category(id=category_id, name=name or category_id, parent_id=parent_id)
    store.add_category(category)
    return category


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll predicate until it returns truthy or timeout expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())
