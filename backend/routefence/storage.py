"""
storage.py — Append-only SQLite history of recorded route points.

Rows are only ever inserted or bulk-deleted per user; reads always come back
ordered by ``timestamp_ms`` (then insertion order), never by insertion order
alone, because snap points are stamped earlier than the fix that caused them
and writes may arrive out of order.

Observers registered with ``LocationStore.subscribe`` receive the user's
full ordered history after every change, so a map view stays current
without polling.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections import defaultdict
from typing import Callable

from routefence.errors import PersistenceWriteError
from routefence.models import StoredLocationPoint

logger = logging.getLogger(__name__)

_DDL = """
PRAGMA journal_mode = WAL;
PRAGMA synchronous  = NORMAL;

CREATE TABLE IF NOT EXISTS locations (
    id           INTEGER PRIMARY KEY,
    user_id      INTEGER NOT NULL,
    latitude     REAL    NOT NULL,
    longitude    REAL    NOT NULL,
    timestamp_ms INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_locations_user_time
    ON locations (user_id, timestamp_ms);
"""

_INSERT_LOCATION = """
INSERT INTO locations (user_id, latitude, longitude, timestamp_ms)
VALUES (?, ?, ?, ?)
"""

_SELECT_USER_LOCATIONS = """
SELECT user_id, latitude, longitude, timestamp_ms
FROM   locations
WHERE  user_id = ?
ORDER  BY timestamp_ms, id
"""

_DELETE_USER_LOCATIONS = "DELETE FROM locations WHERE user_id = ?"

Listener = Callable[[list[StoredLocationPoint]], None]


class LocationStore:
    """
    Stores and retrieves recorded route points from a SQLite database.

    Safe to share between the background writer and request handlers; all
    statements run under one lock.

    Args:
        db_path: Path to the SQLite file, or ``":memory:"`` for in-process use.
    """

    def __init__(self, db_path: str = "routefence.db") -> None:
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        for stmt in _DDL.strip().split(";"):
            stmt = stmt.strip()
            if stmt:
                self._conn.execute(stmt)
        self._conn.commit()
        self._lock = threading.Lock()
        self._listeners: dict[int, list[Listener]] = defaultdict(list)

    # ── Public API ────────────────────────────────────────────────────────────

    def insert(self, point: StoredLocationPoint) -> None:
        """
        Append one point.

        Raises:
            PersistenceWriteError: If the database rejects the row, or a value
                                   does not fit its column.
        """
        try:
            with self._lock:
                self._conn.execute(_INSERT_LOCATION, (
                    point.user_id,
                    point.latitude,
                    point.longitude,
                    point.timestamp_ms,
                ))
                self._conn.commit()
        except (sqlite3.Error, OverflowError) as exc:
            raise PersistenceWriteError(f"Could not store point for user {point.user_id}: {exc}") from exc
        self._notify(point.user_id)

    def get_user_locations(self, user_id: int) -> list[StoredLocationPoint]:
        """Return every point for ``user_id``, ascending by timestamp."""
        with self._lock:
            rows = self._conn.execute(_SELECT_USER_LOCATIONS, (user_id,)).fetchall()
        return [
            StoredLocationPoint(
                user_id=int(row["user_id"]),
                latitude=float(row["latitude"]),
                longitude=float(row["longitude"]),
                timestamp_ms=int(row["timestamp_ms"]),
            )
            for row in rows
        ]

    def clear_user_locations(self, user_id: int) -> int:
        """Delete the whole history of ``user_id`` and return the number of rows removed."""
        with self._lock:
            cursor = self._conn.execute(_DELETE_USER_LOCATIONS, (user_id,))
            self._conn.commit()
            removed = cursor.rowcount
        self._notify(user_id)
        return removed

    def subscribe(self, user_id: int, listener: Listener) -> Callable[[], None]:
        """
        Register ``listener`` for changes to ``user_id``'s history.

        The listener is called once immediately with the current history and
        again after every insert or clear.

        Returns:
            A function that removes the registration.
        """
        with self._lock:
            self._listeners[user_id].append(listener)
        listener(self.get_user_locations(user_id))

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners[user_id]:
                    self._listeners[user_id].remove(listener)

        return unsubscribe

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _notify(self, user_id: int) -> None:
        with self._lock:
            listeners = list(self._listeners.get(user_id, ()))
        if not listeners:
            return
        history = self.get_user_locations(user_id)
        for listener in listeners:
            try:
                listener(history)
            except Exception:
                logger.exception("Location listener for user %s failed", user_id)
