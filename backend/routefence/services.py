"""
services.py — Tracking session host for the routefence pipeline.

Responsibilities:
    - Gating a session on the location permission before any fix is requested.
    - Wiring the location provider to one IngestionStateMachine per session.
    - Handing emitted points to a SerializedWriter so storage writes stay in
      emission order without blocking ingestion.
    - Reading the stored history back and splitting it into path segments.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Optional, Protocol

from routefence.config import Settings
from routefence.errors import MissingPermissionError
from routefence.loader import BoundaryLoader
from routefence.models import BoundaryRing, Fix, PathSegment, StoredLocationPoint
from routefence.segmenter import segment
from routefence.storage import LocationStore
from routefence.tracking import IngestionStateMachine, IngestionStats
from routefence.writer import SerializedWriter

logger = logging.getLogger(__name__)

FixCallback = Callable[[Fix], list[StoredLocationPoint]]


# ── Host capabilities ─────────────────────────────────────────────────────────

class LocationProvider(Protocol):
    """Source of resolved position fixes."""

    def has_permission(self) -> bool: ...

    def request_updates(
        self, callback: FixCallback, interval_ms: int, min_displacement_m: float
    ) -> None: ...

    def remove_updates(self) -> None: ...


class ForegroundHost(Protocol):
    """Keeps the host process prioritised with a visible indicator while tracking."""

    def enter_foreground(self, title: str, text: str) -> None: ...

    def exit_foreground(self) -> None: ...


class LoggingForegroundHost:
    """ForegroundHost for headless hosts: records the indicator in the log only."""

    def __init__(self) -> None:
        self.active = False

    def enter_foreground(self, title: str, text: str) -> None:
        self.active = True
        logger.info("Foreground indicator on: %s (%s)", title, text)

    def exit_foreground(self) -> None:
        if self.active:
            logger.info("Foreground indicator off.")
        self.active = False


class PushLocationProvider:
    """
    LocationProvider fed by the caller, one fix or one batch at a time.

    The HTTP layer pushes fixes into it. The cadence hints are recorded but
    not enforced; the device producing the fixes owns the cadence.

    Args:
        permission_granted: What ``has_permission`` reports.
    """

    def __init__(self, permission_granted: bool = True) -> None:
        self.permission_granted = permission_granted
        self.interval_ms: Optional[int] = None
        self.min_displacement_m: Optional[float] = None
        self._callback: Optional[FixCallback] = None

    @property
    def active(self) -> bool:
        return self._callback is not None

    def has_permission(self) -> bool:
        return self.permission_granted

    def request_updates(
        self, callback: FixCallback, interval_ms: int, min_displacement_m: float
    ) -> None:
        self._callback = callback
        self.interval_ms = interval_ms
        self.min_displacement_m = min_displacement_m

    def remove_updates(self) -> None:
        self._callback = None

    def push(self, fix: Fix) -> list[StoredLocationPoint]:
        """
        Deliver one fix to the subscribed session.

        Raises:
            RuntimeError: If no session has requested updates.
        """
        if self._callback is None:
            raise RuntimeError("No tracking session is receiving location updates.")
        return self._callback(fix)

    def push_batch(self, fixes: Iterable[Fix]) -> list[StoredLocationPoint]:
        """Deliver a batch of fixes; only the most recent one is used."""
        batch = list(fixes)
        if not batch:
            return []
        return self.push(batch[-1])


# ── Tracking service ──────────────────────────────────────────────────────────

class TrackingService:
    """
    Owns the boundary, the store and at most one active tracking session.

    Args:
        boundary_loader: Loader for the boundary ring (loaded on first start).
        store:           History store written by the session's writer.
        provider:        Location provider to subscribe to.
        settings:        Snap offset, cadence hints and segment gap.
        foreground:      Foreground indicator capability of the host.
    """

    def __init__(
        self,
        boundary_loader: BoundaryLoader,
        store: LocationStore,
        provider: LocationProvider,
        settings: Optional[Settings] = None,
        foreground: Optional[ForegroundHost] = None,
    ) -> None:
        self.boundary_loader = boundary_loader
        self.store = store
        self.provider = provider
        self.settings = settings or Settings()
        self.foreground = foreground or LoggingForegroundHost()
        self.writer = SerializedWriter(store)
        self._machine: Optional[IngestionStateMachine] = None
        self._lock = threading.RLock()

    # ── Session lifecycle ─────────────────────────────────────────────────────

    @property
    def is_tracking(self) -> bool:
        return self._machine is not None

    @property
    def active_user_id(self) -> Optional[int]:
        return self._machine.user_id if self._machine is not None else None

    @property
    def stats(self) -> Optional[IngestionStats]:
        return self._machine.stats if self._machine is not None else None

    @property
    def boundary(self) -> BoundaryRing:
        return self.boundary_loader.load()

    def start(self, user_id: int) -> None:
        """
        Start recording fixes for ``user_id``.

        Starting while already tracking ends the running session first, so
        the new session begins from a clean Outside state.

        Raises:
            MissingPermissionError: If the provider has no location permission.
        """
        with self._lock:
            if self._machine is not None:
                logger.info("Restarting tracking (was user %s).", self._machine.user_id)
                self.stop()

            if not self.provider.has_permission():
                logger.error("Cannot start tracking for user %s: permission denied.", user_id)
                raise MissingPermissionError()

            self._machine = IngestionStateMachine(
                user_id=user_id,
                boundary=self.boundary_loader.load(),
                sink=self.writer.submit,
                snap_offset_ms=self.settings.snap_offset_ms,
            )
            self.writer.start()
            self.foreground.enter_foreground("RouteFence GPS", "Tracking location in background...")
            self.provider.request_updates(
                self._on_fix,
                self.settings.update_interval_ms,
                self.settings.min_displacement_m,
            )
            logger.info("Tracking started for user %s.", user_id)

    def stop(self) -> None:
        """Stop recording. Safe to call when nothing is running."""
        with self._lock:
            if self._machine is None:
                return
            user_id = self._machine.user_id
            self.provider.remove_updates()
            self.foreground.exit_foreground()
            self.writer.stop()
            self._machine = None
            logger.info("Tracking stopped for user %s.", user_id)

    def _on_fix(self, fix: Fix) -> list[StoredLocationPoint]:
        with self._lock:
            if self._machine is None:
                logger.debug("Fix delivered after stop; ignoring.")
                return []
            return self._machine.ingest(fix)

    # ── History ───────────────────────────────────────────────────────────────

    def history(self, user_id: int) -> list[StoredLocationPoint]:
        """Return ``user_id``'s stored points, ascending by timestamp."""
        self.writer.flush()
        return self.store.get_user_locations(user_id)

    def segments(self, user_id: int, gap_threshold_ms: Optional[int] = None) -> list[PathSegment]:
        """Return ``user_id``'s history split into drawable runs."""
        gap = self.settings.gap_threshold_ms if gap_threshold_ms is None else gap_threshold_ms
        return segment(self.history(user_id), gap)

    def clear_history(self, user_id: int) -> int:
        """Delete ``user_id``'s history; returns the number of rows removed."""
        self.writer.flush()
        return self.store.clear_user_locations(user_id)

    def close(self) -> None:
        """Stop any session and release the store."""
        self.stop()
        self.store.close()
