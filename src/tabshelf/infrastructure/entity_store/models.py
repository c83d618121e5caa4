"""
Exceptions and helpers shared by the entity store modules.
"""

from dataclasses import dataclass, field


class EntityStoreError(Exception):
    """Base exception for entity store errors."""
    pass


class MalformedQueryError(EntityStoreError):
    """Raised when the full-text index rejects a search expression."""
    pass


class DuplicateTabError(EntityStoreError):
    """Raised when another tab already tracks the same file path."""
    pass


SEARCH_FIELDS = ("title", "artist", "album", "tag")

SORT_COLUMNS = {
    "title": "tabs.title",
    "added_at": "tabs.added_at",
    "last_opened": "tabs.last_opened",
}


@dataclass
class SearchRequest:
    """Normalized arguments of a paginated tab query."""
    query: str = ""
    fields: list[str] = field(default_factory=lambda: list(SEARCH_FIELDS))
    category_id: str = ""
    is_global: bool = True
    sort_by: str | None = None
    sort_desc: bool = False
    limit: int = 50
    offset: int = 0

    @property
    def scoped(self) -> bool:
        """True when results are restricted to one category."""
        return not self.is_global and bool(self.category_id)
