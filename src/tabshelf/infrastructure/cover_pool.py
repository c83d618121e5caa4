"""
Bounded worker pool for cover art downloads.

Jobs wait in a bounded FIFO; a fixed set of worker threads hands them to a
CoverResolver and reports the outcome through the job's callback, on the
worker thread. Stopping the pool drains it: queued jobs still run, and no
callback fires once stop() has returned.
"""

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from tabshelf.core.interfaces import CoverResolver

logger = logging.getLogger(__name__)

CoverCallback = Callable[[str, str, Exception | None], None]

# Marks the end of the queue; each worker exits on the first one it takes.
_STOP = object()

# How long a blocked submit waits before re-checking for shutdown.
_PUT_POLL_SECONDS = 0.05


@dataclass
class CoverJob:
    """
    One cover lookup.

    Attributes:
        tab_id: Tab the cover belongs to
        cover_path: Destination image file
        on_complete: Called as (tab_id, cover_path, error); cover_path is
            empty and error set when the lookup failed
    """

    tab_id: str
    artist: str
    album: str
    title: str
    cover_path: Path
    country: str = ""
    language: str = ""
    on_complete: CoverCallback | None = None


@dataclass
class CoverPoolStats:
    """Counters for submitted and finished jobs."""

    submitted: int = 0
    dropped: int = 0
    succeeded: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {
            "submitted": self.submitted,
            "dropped": self.dropped,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }


class CoverFetchPool:
    """
    Fixed-size pool of cover download workers over one bounded queue.

    No retries: a failed job is reported once and forgotten.
    """

    def __init__(self, resolver: CoverResolver, workers: int = 3, queue_size: int = 100):
        """
        Initialize the pool. Workers start on start().

        Args:
            resolver: Performs the actual lookup and download
            workers: Number of worker threads
            queue_size: Maximum number of jobs waiting for a worker
        """
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self._resolver = resolver
        self._worker_count = workers
        self._capacity = queue_size
        self._jobs: queue.Queue = queue.Queue(maxsize=queue_size)
        # Serializes enqueueing against shutdown so no job lands behind _STOP.
        self._submit_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._closing = False
        self._threads: list[threading.Thread] = []
        self._stats = CoverPoolStats()

    @property
    def queue_size(self) -> int:
        """Number of jobs waiting for a worker."""
        return self._jobs.qsize()

    @property
    def stats(self) -> CoverPoolStats:
        return self._stats

    def is_running(self) -> bool:
        with self._submit_lock:
            return bool(self._threads) and not self._closing

    def start(self) -> None:
        """Spawn the worker threads. Does nothing if already started."""
        with self._submit_lock:
            if self._threads or self._closing:
                return
            for index in range(self._worker_count):
                thread = threading.Thread(
                    target=self._work, name=f"cover-worker-{index}", daemon=True
                )
                self._threads.append(thread)
                thread.start()
        logger.info(
            f"Cover fetch pool started with {self._worker_count} workers",
            extra={"workers": self._worker_count, "queue_size": self._capacity},
        )

    def submit(self, job: CoverJob) -> bool:
        """
        Queue a job, waiting while the queue is full.

        Returns:
            False if the pool is shutting down, True once queued
        """
        while True:
            with self._submit_lock:
                if self._closing:
                    return False
                try:
                    self._jobs.put(job, timeout=_PUT_POLL_SECONDS)
                except queue.Full:
                    continue
                self._count("submitted")
                return True

    def submit_async(self, job: CoverJob) -> bool:
        """
        Queue a job without waiting.

        Returns:
            False if the queue is full or the pool is shutting down; the
            job is dropped and will not be retried
        """
        with self._submit_lock:
            if not self._closing:
                try:
                    self._jobs.put_nowait(job)
                except queue.Full:
                    pass
                else:
                    self._count("submitted")
                    return True
        self._count("dropped")
        logger.debug(f"Dropped cover job for tab {job.tab_id}")
        return False

    def _count(self, name: str) -> None:
        with self._stats_lock:
            setattr(self._stats, name, getattr(self._stats, name) + 1)

    def stop(self) -> None:
        """
        Reject new jobs, finish every queued and running job, then return.

        Jobs queued on a pool that was never started are discarded.
        """
        with self._submit_lock:
            if self._closing and not self._threads:
                return
            self._closing = True
            threads = list(self._threads)

        for _ in threads:
            self._jobs.put(_STOP)
        for thread in threads:
            thread.join()

        leftover = 0
        while True:
            try:
                self._jobs.get_nowait()
            except queue.Empty:
                break
            leftover += 1
        with self._submit_lock:
            self._threads.clear()
        if leftover:
            logger.warning(f"Discarded {leftover} cover jobs on a pool that never started")
        logger.info("Cover fetch pool stopped", extra={"stats": self._stats.to_dict()})

    def _work(self) -> None:
        while True:
            job = self._jobs.get()
            if job is _STOP:
                return
            self._run(job)

    def _run(self, job: CoverJob) -> None:
        error: Exception | None = None
        try:
            self._resolver.resolve(
                job.artist, job.album, job.title, job.country, job.language, job.cover_path
            )
        except Exception as e:
            error = e

        self._count("succeeded" if error is None else "failed")

        if error is not None:
            logger.debug(f"Cover lookup failed for tab {job.tab_id}: {error}")
        if job.on_complete is None:
            return
        try:
            job.on_complete(job.tab_id, "" if error else str(job.cover_path), error)
        except Exception:
            logger.exception(f"Cover callback failed for tab {job.tab_id}")
