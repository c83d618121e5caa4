"""
Tests for DirectoryWatcher over real watchdog observers.
"""

import tempfile
import threading
import time
from pathlib import Path

import pytest

from tabshelf.core.file_events import ChangeSet, FileEventType
from tabshelf.infrastructure.fakes import FakeDirectoryWatcher
from tabshelf.infrastructure.file_watcher import DirectoryWatcher, DirectoryWatcherError
from tests.support.library_fixtures import wait_until


class Batches:
    def __init__(self):
        self.items: list[ChangeSet] = []
        self._lock = threading.Lock()

    def __call__(self, changes: ChangeSet) -> None:
        with self._lock:
            self.items.append(changes)

    def all_paths(self) -> set[Path]:
        with self._lock:
            return {p for batch in self.items for p in batch.paths}


@pytest.fixture
def watched_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def watcher():
    batches = Batches()
    watcher = DirectoryWatcher(on_change=batches, debounce_ms=100)
    watcher.batches = batches
    watcher.start()
    try:
        yield watcher
    finally:
        watcher.stop()


def test_reports_relevant_files_only(watcher, watched_dir):
    watcher.add_path(watched_dir)

    (watched_dir / "Band - Song.pdf").write_bytes(b"%PDF")
    (watched_dir / "notes.txt").write_text("ignore me")
    (watched_dir / "sub").mkdir()
    (watched_dir / "sub" / "Riff.GP5").write_bytes(b"gp")

    assert wait_until(
        lambda: {watched_dir / "Band - Song.pdf", watched_dir / "sub" / "Riff.GP5"}
        <= watcher.batches.all_paths()
    )
    assert not any(p.suffix == ".txt" for p in watcher.batches.all_paths())


def test_burst_is_coalesced(watcher, watched_dir):
    watcher.add_path(watched_dir)

    for n in range(10):
        (watched_dir / f"song{n}.pdf").write_bytes(b"%PDF")

    assert wait_until(lambda: len(watcher.batches.all_paths()) == 10)
    time.sleep(0.3)
    assert len(watcher.batches.items) <= 2


def test_rename_to_unwatched_extension_is_a_delete(watcher, watched_dir):
    source = watched_dir / "draft.pdf"
    source.write_bytes(b"%PDF")
    watcher.add_path(watched_dir)

    source.rename(watched_dir / "draft.bak")

    def deleted() -> bool:
        return any(
            batch.changes.get(source) == FileEventType.DELETED
            for batch in list(watcher.batches.items)
        )

    assert wait_until(deleted)


def test_removed_path_is_no_longer_reported(watcher, watched_dir):
    first = watched_dir / "first"
    second = watched_dir / "second"
    first.mkdir()
    second.mkdir()
    watcher.set_paths([first, second])
    watcher.remove_path(first)

    assert watcher.get_paths() == [str(second)]

    (first / "a.pdf").write_bytes(b"%PDF")
    (second / "b.pdf").write_bytes(b"%PDF")

    assert wait_until(lambda: second / "b.pdf" in watcher.batches.all_paths())
    time.sleep(0.2)
    assert first / "a.pdf" not in watcher.batches.all_paths()


def test_set_paths_skips_unwatchable_entries(watcher, watched_dir):
    watcher.set_paths([watched_dir, watched_dir / "missing"])

    assert watcher.get_paths() == [str(watched_dir)]


def test_add_path_rejects_files_and_missing_dirs(watcher, watched_dir):
    a_file = watched_dir / "a.pdf"
    a_file.write_bytes(b"%PDF")

    with pytest.raises(DirectoryWatcherError):
        watcher.add_path(a_file)
    with pytest.raises(DirectoryWatcherError):
        watcher.add_path(watched_dir / "nope")


def test_add_path_is_idempotent(watcher, watched_dir):
    watcher.add_path(watched_dir)
    watcher.add_path(str(watched_dir) + "/")

    assert watcher.get_paths() == [str(watched_dir)]


def test_stopped_watcher_rejects_paths(watched_dir):
    watcher = DirectoryWatcher()

    with pytest.raises(DirectoryWatcherError):
        watcher.add_path(watched_dir)
    with pytest.raises(DirectoryWatcherError):
        watcher.set_paths([watched_dir])
    watcher.remove_path(watched_dir)


def test_stop_discards_pending_callback(watched_dir):
    batches = Batches()
    watcher = DirectoryWatcher(on_change=batches, debounce_ms=300)
    watcher.start()
    watcher.add_path(watched_dir)

    (watched_dir / "a.pdf").write_bytes(b"%PDF")
    time.sleep(0.15)
    watcher.stop()
    time.sleep(0.4)

    assert batches.items == []
    assert not watcher.is_running()
    assert watcher.get_paths() == []


def test_restart_after_stop(watched_dir):
    batches = Batches()
    watcher = DirectoryWatcher(on_change=batches, debounce_ms=50)
    watcher.start()
    watcher.stop()
    watcher.start()
    try:
        watcher.add_path(watched_dir)
        (watched_dir / "again.pdf").write_bytes(b"%PDF")
        assert wait_until(lambda: watched_dir / "again.pdf" in batches.all_paths())
    finally:
        watcher.stop()


class TestFakeDirectoryWatcher:
    def test_trigger_change_reaches_callback(self):
        received: list[ChangeSet] = []
        fake = FakeDirectoryWatcher(on_change=received.append)
        fake.start()
        fake.set_paths(["/music"])

        fake.trigger_change("/music/a.pdf", "/music/b.pdf")

        assert received[0].paths == [Path("/music/a.pdf"), Path("/music/b.pdf")]
        assert fake.get_paths() == ["/music"]

    def test_stopped_fake_is_silent(self):
        received: list[ChangeSet] = []
        fake = FakeDirectoryWatcher(on_change=received.append)

        fake.trigger_change("/music/a.pdf")

        assert received == []
        with pytest.raises(DirectoryWatcherError):
            fake.add_path("/music")
