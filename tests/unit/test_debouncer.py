"""
Unit tests for the threading.Timer based Debouncer.
"""

import threading
import time
from pathlib import Path

from tabshelf.core.debouncer import Debouncer
from tabshelf.core.file_events import ChangeSet, FileEvent, FileEventType


def _event(name: str, event_type: FileEventType = FileEventType.MODIFIED) -> FileEvent:
    return FileEvent(event_type=event_type, file_path=Path(f"/tabs/{name}"))


def test_timer_is_rearmed_by_each_event():
    fired_at: list[float] = []
    debouncer = Debouncer(delay_ms=150, on_batch_ready=lambda batch: fired_at.append(time.time()))

    start = time.time()
    for n in range(4):
        debouncer.add_event(_event(f"song{n}.pdf"))
        time.sleep(0.05)
    last_event = time.time()

    time.sleep(0.4)
    assert len(fired_at) == 1
    assert fired_at[0] - last_event >= 0.05
    assert fired_at[0] - start >= 0.25


def test_cancel_discards_pending_batch():
    batches: list[ChangeSet] = []
    debouncer = Debouncer(delay_ms=50, on_batch_ready=batches.append)

    debouncer.add_event(_event("a.pdf"))
    assert debouncer.has_pending()
    debouncer.cancel()
    time.sleep(0.15)

    assert batches == []
    assert not debouncer.has_pending()


def test_events_after_firing_start_a_new_batch():
    batches: list[ChangeSet] = []
    done = threading.Event()

    def on_batch(batch: ChangeSet) -> None:
        batches.append(batch)
        if len(batches) == 2:
            done.set()

    debouncer = Debouncer(delay_ms=30, on_batch_ready=on_batch)
    debouncer.add_event(_event("a.pdf"))
    time.sleep(0.15)
    debouncer.add_event(_event("b.pdf", FileEventType.CREATED))

    assert done.wait(timeout=5)
    assert batches[0].paths == [Path("/tabs/a.pdf")]
    assert batches[1].changes == {Path("/tabs/b.pdf"): FileEventType.CREATED}


def test_callback_exception_is_contained():
    calls: list[int] = []
    done = threading.Event()

    def on_batch(batch: ChangeSet) -> None:
        calls.append(batch.event_count)
        if len(calls) == 1:
            raise RuntimeError("boom")
        done.set()

    debouncer = Debouncer(delay_ms=20, on_batch_ready=on_batch)
    debouncer.add_event(_event("a.pdf"))
    time.sleep(0.12)
    debouncer.add_event(_event("b.pdf"))

    assert done.wait(timeout=5)
    assert calls == [1, 1]


def test_move_marks_source_deleted():
    changes = ChangeSet()
    changes.add(FileEvent(FileEventType.MOVED, Path("/tabs/new.pdf"), Path("/tabs/old.pdf")))

    assert changes.changes == {
        Path("/tabs/old.pdf"): FileEventType.DELETED,
        Path("/tabs/new.pdf"): FileEventType.MOVED,
    }
    assert changes.to_dict() == {"paths": ["/tabs/old.pdf", "/tabs/new.pdf"], "events": 1}
