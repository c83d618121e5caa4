"""
Entity Store module for tabshelf.

SQLite-based storage for tabs, categories and library settings with
full-text search.
"""

from .legacy_import import LegacyImportResult, import_legacy_json
from .models import (
    SEARCH_FIELDS,
    DuplicateTabError,
    EntityStoreError,
    MalformedQueryError,
    SearchRequest,
)
from .queries import EntityQueryExecutor
from .schema import initialize_schema, migrate_schema
from .search import (
    FullTextSearch,
    PlainListing,
    SearchChain,
    SubstringSearch,
    default_search_chain,
)
from .store import EntityStore, create_entity_store

__all__ = [
    # Main classes
    "EntityStore",
    "EntityStoreError",
    "DuplicateTabError",
    "MalformedQueryError",
    # Search
    "SearchRequest",
    "SEARCH_FIELDS",
    "SearchChain",
    "FullTextSearch",
    "SubstringSearch",
    "PlainListing",
    "default_search_chain",
    # Query executor
    "EntityQueryExecutor",
    # Schema
    "initialize_schema",
    "migrate_schema",
    # Legacy data
    "import_legacy_json",
    "LegacyImportResult",
    # Factory
    "create_entity_store",
]
