"""
Paginated tab queries.

A search runs through a chain of strategies: the FTS5 index first, then a
LIKE scan when the index rejects the expression or it has no indexable
terms. Listing without a query uses a plain ordered SELECT.
"""

import logging
import re
import sqlite3
from typing import Protocol

from tabshelf.core.models import Tab

from .models import SORT_COLUMNS, MalformedQueryError, SearchRequest
from .queries import TAB_COLUMNS, EntityQueryExecutor

logger = logging.getLogger(__name__)

# Characters the unicode61 tokenizer keeps; anything else separates tokens.
_TOKEN_CHAR = re.compile(r"[^\W_]")


class TabQueryStrategy(Protocol):
    """One way of answering a paginated tab query."""

    name: str

    def fetch(
        self, executor: EntityQueryExecutor, conn: sqlite3.Connection, request: SearchRequest
    ) -> tuple[list[Tab], int]:
        """Return the requested page and the total number of matches."""
        ...


def _scope(request: SearchRequest) -> tuple[str, str, list]:
    """Join, WHERE fragment and parameters restricting to one category."""
    if request.scoped:
        return (
            "JOIN tab_categories tc ON tc.tab_id = tabs.id",
            "tc.category_id = ?",
            [request.category_id],
        )
    return "", "", []


def _order_by(request: SearchRequest, relevance: str | None = None) -> str:
    if request.sort_by in SORT_COLUMNS:
        direction = "DESC" if request.sort_desc else "ASC"
        return f"{SORT_COLUMNS[request.sort_by]} {direction}, tabs.id"
    if relevance is not None:
        return f"{relevance}, tabs.title ASC, tabs.id"
    direction = "DESC" if request.sort_desc else "ASC"
    return f"tabs.title {direction}, tabs.id"


def _page(
    executor: EntityQueryExecutor,
    conn: sqlite3.Connection,
    request: SearchRequest,
    joins: list[str],
    conditions: list[str],
    params: list,
    order_by: str,
) -> tuple[list[Tab], int]:
    join_sql = " ".join(j for j in joins if j)
    where_sql = ("WHERE " + " AND ".join(c for c in conditions if c)) if any(conditions) else ""

    total = conn.execute(
        f"SELECT COUNT(DISTINCT tabs.id) FROM tabs {join_sql} {where_sql}", params
    ).fetchone()[0]
    tabs = executor.select_tabs(
        f"SELECT {TAB_COLUMNS} FROM tabs {join_sql} {where_sql} "
        f"ORDER BY {order_by} LIMIT ? OFFSET ?",
        [*params, request.limit, request.offset],
    )
    return tabs, total


class PlainListing:
    """Ordered listing with optional category scope and no text filter."""

    name = "listing"

    def fetch(self, executor, conn, request):
        join, condition, params = _scope(request)
        return _page(executor, conn, request, [join], [condition], params, _order_by(request))


class FullTextSearch:
    """
    Prefix match against the FTS5 index, one column filter per field,
    ranked by bm25 unless an explicit sort is requested.
    """

    name = "fts"

    def match_expression(self, request: SearchRequest) -> str:
        escaped = request.query.replace('"', '""')
        return " OR ".join(f'{field}:"{escaped}"*' for field in request.fields)

    def fetch(self, executor, conn, request):
        if not _TOKEN_CHAR.search(request.query):
            raise MalformedQueryError(f"No indexable terms in {request.query!r}")
        join, condition, params = _scope(request)
        try:
            return _page(
                executor,
                conn,
                request,
                ["JOIN tabs_fts ON tabs_fts.rowid = tabs.rowid", join],
                ["tabs_fts MATCH ?", condition],
                [self.match_expression(request), *params],
                _order_by(request, relevance="bm25(tabs_fts)"),
            )
        except sqlite3.OperationalError as e:
            raise MalformedQueryError(f"Full-text query rejected: {e}") from e


class SubstringSearch:
    """Case-insensitive LIKE scan over the requested fields."""

    name = "substring"

    def fetch(self, executor, conn, request):
        join, condition, params = _scope(request)
        pattern = "%" + _escape_like(request.query) + "%"
        matches = " OR ".join(f"tabs.{field} LIKE ? ESCAPE '\\'" for field in request.fields)
        return _page(
            executor,
            conn,
            request,
            [join],
            [condition, f"({matches})"],
            [*params, *([pattern] * len(request.fields))],
            _order_by(request),
        )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SearchChain:
    """Try each strategy in turn, moving on when one reports a malformed query."""

    def __init__(self, strategies: list[TabQueryStrategy]):
        self._strategies = strategies

    def fetch(self, executor, conn, request):
        for strategy in self._strategies[:-1]:
            try:
                return strategy.fetch(executor, conn, request)
            except MalformedQueryError as e:
                logger.debug(
                    f"Search strategy {strategy.name} failed, falling back: {e}",
                    extra={"query": request.query, "fields": request.fields},
                )
        return self._strategies[-1].fetch(executor, conn, request)


def default_search_chain() -> SearchChain:
    return SearchChain([FullTextSearch(), SubstringSearch()])
