"""
writer.py — FIFO background persistence for emitted route points.

One daemon thread drains a queue into the store, so the ingestion path never
waits on the database and never sees a write failure.
"""

from __future__ import annotations

import logging
import queue
import threading

from routefence.errors import PersistenceWriteError
from routefence.models import StoredLocationPoint

logger = logging.getLogger(__name__)

_STOP = object()


class SerializedWriter:
    """
    Writes points to a store on one background thread, in submission order.

    Failed writes are logged and counted, then the next point is written
    (at-most-once delivery, no retry).

    Args:
        store: Object with ``insert(point)`` that raises PersistenceWriteError
               when the row cannot be stored.
        name:  Thread name, useful when several sessions run side by side.
    """

    def __init__(self, store, name: str = "LocationWriter") -> None:
        self._store = store
        self._name = name
        self._queue: queue.Queue = queue.Queue()
        self._thread: threading.Thread | None = None
        self._stop_requested = False
        self.written = 0
        self.failed_writes = 0

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background writer thread (no-op if already running)."""
        if self.running:
            return
        self._thread = threading.Thread(target=self._run, daemon=True, name=self._name)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """
        Write everything already submitted, then stop the thread. Idempotent.

        If the thread is still writing when ``timeout`` expires it keeps its
        slot, so a later ``start()`` does not add a second consumer.
        """
        if self._thread is None:
            return
        if self._thread.is_alive():
            if not self._stop_requested:
                self._queue.put(_STOP)
                self._stop_requested = True
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning(
                    "Writer %s still busy after %.1fs; %d points pending",
                    self._name, timeout, self.pending(),
                )
                return
        self._thread = None
        self._stop_requested = False

    def submit(self, point: StoredLocationPoint) -> None:
        """Queue ``point`` for writing. Usable directly as a state-machine sink."""
        self._queue.put(point)

    def flush(self) -> None:
        """Block until every submitted point has been handled."""
        if not self.running:
            self._drain()
            return
        self._queue.join()

    def pending(self) -> int:
        """Return the number of points not yet written."""
        return self._queue.qsize()

    # ── Internal ──────────────────────────────────────────────────────────────

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._write(item)
            except Exception:
                self.failed_writes += 1
                logger.exception("Unexpected error writing %r; continuing", item)
            finally:
                self._queue.task_done()

    def _drain(self) -> None:
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            try:
                if item is not _STOP:
                    self._write(item)
            finally:
                self._queue.task_done()

    def _write(self, point: StoredLocationPoint) -> None:
        try:
            self._store.insert(point)
        except PersistenceWriteError:
            self.failed_writes += 1
            logger.exception("Dropping point for user %s at %d", point.user_id, point.timestamp_ms)
        else:
            self.written += 1
