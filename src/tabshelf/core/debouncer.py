"""
Debouncer component for coalescing bursts of file system events.

A single-shot timer is re-armed on every event; the callback fires once
after the quiet period with every event collected since the last firing.
"""

import logging
import threading
from collections.abc import Callable

from tabshelf.core.file_events import ChangeSet, FileEvent

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Thread-based debouncer built on threading.Timer.

    The callback runs on the timer thread. A generation counter makes a
    timer that was superseded or cancelled while already firing a no-op.

    Attributes:
        delay_ms: Debounce delay in milliseconds
        on_batch_ready: Callback invoked with the coalesced ChangeSet
    """

    def __init__(
        self,
        delay_ms: int = 1000,
        on_batch_ready: Callable[[ChangeSet], None] | None = None,
    ):
        self._delay_ms = delay_ms
        self._on_batch_ready = on_batch_ready
        self._pending = ChangeSet()
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def delay_ms(self) -> int:
        """Get the debounce delay in milliseconds."""
        return self._delay_ms

    def add_event(self, event: FileEvent) -> None:
        """
        Record an event and restart the quiet-period timer.

        Args:
            event: The file event to add
        """
        with self._lock:
            self._pending.add(event)
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._timer = threading.Timer(
                self._delay_ms / 1000.0, self._fire, args=(self._generation,)
            )
            self._timer.daemon = True
            self._timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._pending.is_empty():
                return
            batch = self._pending
            self._pending = ChangeSet()
            self._timer = None

        if self._on_batch_ready is not None:
            try:
                self._on_batch_ready(batch)
            except Exception as e:
                logger.error(f"Error in debounced change callback: {e}")

    def cancel(self) -> None:
        """Discard the pending timer and any collected events."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1
            self._pending = ChangeSet()

    def has_pending(self) -> bool:
        """Check if events are waiting for the timer to fire."""
        with self._lock:
            return not self._pending.is_empty()
