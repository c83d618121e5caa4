"""
Tests for SyncEngine directory reconciliation.
"""

import tempfile
import threading
from pathlib import Path

import pytest

from tabshelf.core.models import Metadata, SyncStrategy, TabType
from tabshelf.infrastructure.cover_pool import CoverFetchPool
from tabshelf.infrastructure.entity_store import EntityStoreError
from tabshelf.infrastructure.fakes import FakeCoverResolver, FakeMetadataExtractor, RecordingEmitter
from tabshelf.services.sync_service import SyncEngine
from tests.support.library_fixtures import make_tab, open_store, wait_until


class SyncHarness:
    """Store, pool and engine wired over a temporary directory."""

    def __init__(self, root: Path, extractor=None, resolver=None, copy_attempts: int = 1000):
        self.root = root
        self.music = root / "music"
        self.music.mkdir()
        self.store = open_store(root)
        self.emitter = RecordingEmitter()
        self.resolver = resolver or FakeCoverResolver()
        self.pool = CoverFetchPool(self.resolver, workers=2, queue_size=10)
        self.pool.start()
        self.engine = SyncEngine(
            store=self.store,
            cover_pool=self.pool,
            emitter=self.emitter,
            extractor=extractor or FakeMetadataExtractor(),
            covers_dir=root / "covers",
            copy_attempts=copy_attempts,
        )

    def set_paths(self, *paths: Path, strategy: SyncStrategy = SyncStrategy.SKIP) -> None:
        self.store.update_settings(
            self.store.settings.with_changes(
                sync_paths=[str(p) for p in paths], sync_strategy=strategy
            )
        )

    def write(self, relative: str, content: bytes = b"%PDF-1.4") -> Path:
        path = self.music / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    def close(self) -> None:
        self.pool.stop()
        self.store.close()


@pytest.fixture
def harness():
    with tempfile.TemporaryDirectory() as tmpdir:
        harness = SyncHarness(Path(tmpdir))
        try:
            yield harness
        finally:
            harness.close()


class TestSync:
    def test_no_sync_paths_returns_empty_result(self, harness):
        result = harness.engine.sync()

        assert result.to_dict() == {"added": 0, "updated": 0, "skipped": 0, "errors": 0, "total": 0}
        assert harness.emitter.events == []
        assert harness.store.settings.last_sync_time == 0

    def test_adds_supported_files_recursively(self, harness):
        harness.write("Metallica - One.pdf")
        harness.write("nested/deeper/Queen - Bohemian Rhapsody.gp5")
        harness.write("notes.txt")
        harness.write("cover.jpg")
        harness.set_paths(harness.music)

        result = harness.engine.sync()

        assert result.added == 2
        assert result.total == 2
        titles = {t.title: t for t in harness.store.get_tabs()}
        assert set(titles) == {"One", "Bohemian Rhapsody"}
        assert titles["One"].artist == "Metallica"
        assert titles["One"].type == TabType.DOCUMENT
        assert titles["Bohemian Rhapsody"].type == TabType.TABLATURE
        assert titles["One"].added_at > 0

    def test_events_and_last_sync_time(self, harness):
        first = harness.write("a/Artist - First.pdf")
        second = harness.write("b/Artist - Second.pdf")
        harness.set_paths(harness.music)

        harness.engine.sync()

        names = harness.emitter.names()
        assert names[0] == "sync-started"
        progress = harness.emitter.payloads("sync-progress")
        assert [p["filePath"] for p in progress] == [str(first), str(second)]
        assert [p["count"] for p in progress] == [1, 2]
        assert progress[0]["message"] == "Processing: Artist - First.pdf"
        completed = harness.emitter.payloads("sync-completed")
        assert completed == [{"added": 2, "updated": 0, "skipped": 0, "errors": 0, "total": 2}]
        assert harness.store.settings.last_sync_time > 0

    def test_roots_processed_in_order(self, harness):
        zeta = harness.write("zeta/Band - Z.pdf")
        alpha = harness.write("alpha/Band - A.pdf")
        harness.set_paths(harness.music / "zeta", harness.music / "alpha")

        harness.engine.sync()

        progress = harness.emitter.payloads("sync-progress")
        assert [p["filePath"] for p in progress] == [str(zeta), str(alpha)]

    def test_tracked_files_are_skipped_silently(self, harness):
        harness.write("Band - Song.pdf")
        harness.set_paths(harness.music)

        first = harness.engine.sync()
        second = harness.engine.sync()

        assert first.added == 1
        assert second.added == 0
        assert second.skipped == 0
        assert second.total == 1
        assert len(harness.store.get_tabs()) == 1

    def test_missing_root_is_logged_and_skipped(self, harness):
        harness.write("Band - Song.pdf")
        harness.set_paths(harness.root / "gone", harness.music)

        result = harness.engine.sync()

        assert result.added == 1
        assert result.errors == 0

    def test_title_conflict_skip_strategy(self, harness):
        harness.write("one/Band - Song.pdf")
        harness.write("two/Other - Song.pdf")
        harness.set_paths(harness.music, strategy=SyncStrategy.SKIP)

        result = harness.engine.sync()

        assert result.added == 1
        assert result.skipped == 1
        assert [t.artist for t in harness.store.get_tabs()] == ["Band"]

    def test_title_conflict_overwrite_strategy_adds_copy(self, harness):
        harness.write("one/Band - Song.pdf")
        harness.write("two/Other - Song.pdf")
        harness.write("three/Third - Song.pdf")
        harness.set_paths(harness.music, strategy=SyncStrategy.OVERWRITE)

        result = harness.engine.sync()

        assert result.added == 3
        assert result.skipped == 0
        by_artist = {t.artist: t.title for t in harness.store.get_tabs()}
        # Walk order is one, three, two.
        assert by_artist == {"Band": "Song", "Third": "Song_copy1", "Other": "Song_copy2"}

    def test_store_errors_are_counted(self, harness):
        harness.write("Band - Song.pdf")
        harness.set_paths(harness.music)

        def failing_add(tab):
            raise EntityStoreError("disk full")

        harness.store.add_tab = failing_add
        result = harness.engine.sync()

        assert result.errors == 1
        assert result.added == 0

    def test_extractor_failure_falls_back_to_filename(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            extractor = FakeMetadataExtractor(
                results={"custom.gp": Metadata(title="Real Title", artist="Real Artist")},
                failing=["Band - Broken.pdf"],
            )
            harness = SyncHarness(Path(tmpdir), extractor=extractor)
            try:
                harness.write("custom.gp")
                harness.write("Band - Broken.pdf")
                harness.set_paths(harness.music)

                result = harness.engine.sync()

                assert result.added == 2
                titles = {t.title: t.artist for t in harness.store.get_tabs()}
                assert titles == {"Real Title": "Real Artist", "Broken": "Band"}
            finally:
                harness.close()

    def test_cancel_stops_walk_without_recording_sync(self, harness):
        for n in range(5):
            harness.write(f"Band - Song {n}.pdf")
        harness.set_paths(harness.music)

        original_add = harness.store.add_tab

        def add_then_cancel(tab):
            original_add(tab)
            harness.engine.cancel()

        harness.store.add_tab = add_then_cancel
        result = harness.engine.sync()

        assert result.cancelled is True
        assert result.added == 1
        assert "sync-completed" not in harness.emitter.names()
        assert harness.emitter.payloads("sync-cancelled")[0]["added"] == 1
        assert harness.store.settings.last_sync_time == 0


class TestUniqueTitles:
    def test_first_free_suffix(self, harness):
        harness.store.add_tab(make_tab("Song"))
        harness.store.add_tab(make_tab("Song_copy1"))

        assert harness.engine.generate_unique_title("Song") == "Song_copy2"

    def test_falls_back_to_timestamp(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            harness = SyncHarness(Path(tmpdir), copy_attempts=2)
            try:
                harness.store.add_tab(make_tab("Song_copy1"))
                harness.store.add_tab(make_tab("Song_copy2"))

                title = harness.engine.generate_unique_title("Song")

                assert title.startswith("Song_copy_")
                assert title[len("Song_copy_"):].isdigit()
            finally:
                harness.close()


class TestProcessFile:
    def test_builds_unsaved_tab(self, harness):
        path = harness.write("Band - Album - Song (Am).gpx")

        tab = harness.engine.process_file(path)

        assert tab.title == "Song"
        assert tab.artist == "Band"
        assert tab.album == "Album"
        assert tab.file_path == str(path)
        assert tab.type == TabType.TABLATURE
        assert tab.id
        assert harness.store.get_tab(tab.id) is None

    def test_ids_are_unique(self, harness):
        path = harness.write("Song.pdf")
        assert harness.engine.process_file(path).id != harness.engine.process_file(path).id


class TestCovers:
    def test_cover_fetched_for_new_tab(self, harness):
        harness.write("Band - Album - Song.pdf")
        harness.set_paths(harness.music)

        harness.engine.sync()
        tab = harness.store.get_tabs()[0]

        assert wait_until(lambda: harness.emitter.payloads("tab-updated"))
        stored = harness.store.get_tab(tab.id)
        expected = harness.root / "covers" / f"{tab.id}.jpg"
        assert stored.cover_path == str(expected)
        assert expected.exists()
        payload = harness.emitter.payloads("tab-updated")[0]
        assert payload["tab"]["id"] == tab.id
        assert payload["tab"]["coverPath"] == str(expected)
        call = harness.resolver.calls[0]
        assert (call["artist"], call["album"], call["title"]) == ("Band", "Album", "Song")

    def test_no_cover_job_without_artist(self, harness):
        assert harness.engine.fetch_cover_async(make_tab("Lonely")) is False
        assert harness.resolver.calls == []

    def test_cover_failure_emits_event(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            harness = SyncHarness(Path(tmpdir), resolver=FakeCoverResolver(fail_for=["Nobody"]))
            try:
                tab = make_tab("Song", artist="Nobody")
                harness.store.add_tab(tab)

                assert harness.engine.fetch_cover_async(tab) is True
                assert wait_until(lambda: harness.emitter.payloads("cover-fetch-failed"))

                failure = harness.emitter.payloads("cover-fetch-failed")[0]
                assert failure["tabId"] == tab.id
                assert "Nobody" in failure["error"]
                assert harness.store.get_tab(tab.id).cover_path == ""
            finally:
                harness.close()

    def test_fetch_after_pool_stop_is_rejected(self, harness):
        harness.pool.stop()
        assert harness.engine.fetch_cover_async(make_tab("Song", artist="Band")) is False

    def test_cover_for_deleted_tab_is_ignored(self):
        gate = threading.Event()
        with tempfile.TemporaryDirectory() as tmpdir:
            harness = SyncHarness(Path(tmpdir), resolver=FakeCoverResolver(gate=gate))
            try:
                tab = make_tab("Song", artist="Band")
                harness.store.add_tab(tab)
                harness.engine.fetch_cover_async(tab)
                harness.store.delete_tab(tab.id)
                gate.set()
                harness.pool.stop()

                assert harness.store.get_tab(tab.id) is None
                assert harness.emitter.payloads("tab-updated") == []
            finally:
                harness.close()
