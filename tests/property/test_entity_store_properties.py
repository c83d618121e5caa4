"""
Property-based tests for EntityStore pagination, search and categories.
"""

import tempfile

from hypothesis import given, settings
from hypothesis import strategies as st

from tabshelf.infrastructure.entity_store import EntityStoreError
from tests.support.library_fixtures import add_category, make_tab, open_store

WORDS = ["alpha", "bravo", "charlie", "delta", "echo", "foxtrot", "golf"]

word = st.sampled_from(WORDS)
title_strategy = st.lists(word, min_size=1, max_size=3).map(" ".join)

# Arbitrary user input, including FTS5 syntax characters.
query_strategy = st.text(
    alphabet=st.sampled_from(list('abc "*:-^()+%_\\\'NEAR OR AND')),
    min_size=1,
    max_size=20,
)


@given(
    titles=st.lists(title_strategy, min_size=0, max_size=25),
    page_size=st.integers(min_value=1, max_value=10),
)
@settings(max_examples=50, deadline=None)
def test_pages_cover_listing_exactly_once(titles: list[str], page_size: int):
    """
    *For any* library and page size, walking the pages yields every tab once
    and has_more is true on every page but the last.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        store = open_store(tmpdir)
        try:
            ids = set()
            for title in titles:
                tab = make_tab(title)
                store.add_tab(tab)
                ids.add(tab.id)

            seen = []
            page = 1
            while True:
                result = store.get_tabs_paginated(page=page, page_size=page_size)
                assert result.total == len(titles)
                assert len(result.tabs) <= page_size
                seen.extend(t.id for t in result.tabs)
                if not result.has_more:
                    break
                page += 1

            assert len(seen) == len(set(seen))
            assert set(seen) == ids
        finally:
            store.close()


@given(titles=st.lists(title_strategy, min_size=1, max_size=15), prefix=word)
@settings(max_examples=50, deadline=None)
def test_title_search_matches_word_prefixes(titles: list[str], prefix: str):
    """
    *For any* library, a title search for a word prefix returns exactly the
    tabs with a title word starting with it.
    """
    prefix = prefix[:3]
    with tempfile.TemporaryDirectory() as tmpdir:
        store = open_store(tmpdir)
        try:
            expected = set()
            for title in titles:
                tab = make_tab(title)
                store.add_tab(tab)
                if any(w.startswith(prefix) for w in title.split()):
                    expected.add(tab.id)

            result = store.get_tabs_paginated(
                search_query=prefix, search_fields=["title"], page_size=100
            )
            assert {t.id for t in result.tabs} == expected
            assert result.total == len(expected)
        finally:
            store.close()


@given(query=query_strategy)
@settings(max_examples=100, deadline=None)
def test_search_never_fails_on_user_input(query: str):
    """
    *For any* query text, searching returns a page rather than raising.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        store = open_store(tmpdir)
        try:
            store.add_tab(make_tab("alpha (bravo)", artist="AC/DC", tag="100%"))
            result = store.get_tabs_paginated(search_query=query)
            assert result.total in (0, 1)
            assert result.has_more is False
        finally:
            store.close()


@given(
    assignments=st.lists(
        st.lists(st.sampled_from(["c1", "c2", "c3", "c4"]), max_size=6),
        min_size=1,
        max_size=5,
    )
)
@settings(max_examples=50, deadline=None)
def test_last_category_assignment_wins(assignments: list[list[str]]):
    """
    *For any* sequence of category assignments, the tab ends up with the
    last one, deduplicated in first-seen order.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        store = open_store(tmpdir)
        try:
            for category_id in ("c1", "c2", "c3", "c4"):
                add_category(store, category_id)
            tab = make_tab()
            store.add_tab(tab)

            for category_ids in assignments:
                store.set_tab_categories(tab.id, category_ids)

            expected = list(dict.fromkeys(assignments[-1]))
            assert store.get_tab(tab.id).category_ids == expected
        finally:
            store.close()


@given(
    valid=st.lists(st.sampled_from(["c1", "c2"]), max_size=3),
    position=st.integers(min_value=0, max_value=3),
)
@settings(max_examples=30, deadline=None)
def test_failed_assignment_leaves_previous_set(valid: list[str], position: int):
    """
    *For any* assignment containing an unknown category, the call fails and
    the previous association set is untouched.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        store = open_store(tmpdir)
        try:
            add_category(store, "c1")
            add_category(store, "c2")
            tab = make_tab(category_ids=["c2"])
            store.add_tab(tab)

            bad = list(valid)
            bad.insert(min(position, len(bad)), "missing")
            try:
                store.set_tab_categories(tab.id, bad)
            except EntityStoreError:
                pass
            else:
                raise AssertionError("assignment with an unknown category succeeded")

            assert store.get_tab(tab.id).category_ids == ["c2"]
        finally:
            store.close()
