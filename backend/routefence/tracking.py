"""
tracking.py — The geofenced ingestion state machine.

Each incoming fix is classified against the boundary ring and produces
zero, one or two output points:

    boundary empty          → nothing, state unchanged
    fix outside             → nothing, state becomes Outside
    fix inside, was Outside → snap point on the boundary, then the fix
    fix inside, was Inside  → the fix
    fix inside, was Unknown → the fix (a session that starts inside has no
                              crossing to bridge)

Leaving the zone records nothing; the next entry is bridged by a synthetic
snap point stamped just before the entering fix.

A session starts in Unknown, not Outside. A session whose first fix is
inside records exactly that one fix, so "no previous fix" never snaps; only
an observed Outside state does.

``transition`` is the pure transition table. ``IngestionStateMachine``
wraps it with per-session state, counters and a downstream sink.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from routefence.errors import MalformedFixError
from routefence.models import BoundaryRing, Fix, StoredLocationPoint
from routefence.nearest import haversine_m, nearest_point
from routefence.raycast import contains

logger = logging.getLogger(__name__)

DEFAULT_SNAP_OFFSET_MS = 1_000

# Storage keeps timestamps as signed 64-bit integers.
MIN_TIMESTAMP_MS = -(2 ** 63)
MAX_TIMESTAMP_MS = 2 ** 63 - 1


# ── States ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Unknown:
    """No fix has been classified since the session started."""


@dataclass(frozen=True)
class Outside:
    """Last fix was outside the zone."""


@dataclass(frozen=True)
class Inside:
    """Last fix was inside the zone."""
    fix: Fix


TrackState = Union[Unknown, Outside, Inside]

UNKNOWN = Unknown()
OUTSIDE = Outside()


class Outcome(str, enum.Enum):
    NO_BOUNDARY = "no_boundary"
    OUTSIDE     = "outside"
    ENTERED     = "entered"
    INSIDE      = "inside"


@dataclass(frozen=True)
class Transition:
    """
    Result of feeding one fix to the state machine.

    Attributes:
        state:    State after the fix.
        emitted:  Points to record, in chronological order.
        outcome:  Which row of the transition table applied.
    """
    state:   TrackState
    emitted: tuple[Fix, ...]
    outcome: Outcome


# ── Pure transition ──────────────────────────────────────────────────────────

def validate_fix(fix: Fix, snap_offset_ms: int = DEFAULT_SNAP_OFFSET_MS) -> None:
    """
    Reject fixes whose values cannot be placed on the map or stored.

    Args:
        fix:            Fix to check.
        snap_offset_ms: Snap offset in use; a snap point stamped this much
                        earlier must still fit the stored timestamp range.

    Raises:
        MalformedFixError: For non-finite or out-of-range coordinates, or a
                           timestamp that is not an integer or does not fit
                           a signed 64-bit column.
    """
    lat, lon = fix.point.latitude, fix.point.longitude
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise MalformedFixError(f"Non-finite coordinates ({lat}, {lon})")
    if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lon <= 180.0):
        raise MalformedFixError(f"Coordinates out of range ({lat}, {lon})")
    if isinstance(fix.timestamp_ms, bool) or not isinstance(fix.timestamp_ms, int):
        raise MalformedFixError(f"Timestamp is not an integer: {fix.timestamp_ms!r}")
    if not (MIN_TIMESTAMP_MS + snap_offset_ms <= fix.timestamp_ms <= MAX_TIMESTAMP_MS):
        raise MalformedFixError(f"Timestamp out of range: {fix.timestamp_ms}")


def transition(
    state: TrackState,
    fix: Fix,
    ring: BoundaryRing,
    snap_offset_ms: int = DEFAULT_SNAP_OFFSET_MS,
) -> Transition:
    """
    Apply one fix to a state.

    Args:
        state:           Current state.
        fix:             Incoming fix, assumed well formed.
        ring:            Boundary ring.
        snap_offset_ms:  How far before ``fix`` the snap point is stamped.

    Returns:
        The new state and the points to emit.
    """
    if ring.is_empty:
        return Transition(state, (), Outcome.NO_BOUNDARY)

    if not contains(fix.point, ring, include_boundary=True):
        return Transition(OUTSIDE, (), Outcome.OUTSIDE)

    if not isinstance(state, Outside):
        return Transition(Inside(fix), (fix,), Outcome.INSIDE)

    edge = Fix(
        point=nearest_point(fix.point, ring),
        timestamp_ms=fix.timestamp_ms - snap_offset_ms,
    )
    return Transition(Inside(fix), (edge, fix), Outcome.ENTERED)


# ── Session state machine ────────────────────────────────────────────────────

@dataclass
class IngestionStats:
    """Running counters for one tracking session."""
    received:            int = 0
    emitted:             int = 0
    snaps:               int = 0
    dropped_no_boundary: int = 0
    dropped_outside:     int = 0
    dropped_malformed:   int = 0
    out_of_order:        int = 0

    def as_dict(self) -> dict[str, int]:
        return dict(self.__dict__)


Sink = Callable[[StoredLocationPoint], None]


@dataclass
class IngestionStateMachine:
    """
    Per-session wrapper around ``transition``.

    Not thread-safe: a session feeds it from a single producer. Emitted
    points are tagged with ``user_id`` and handed to ``sink`` in order.

    Attributes:
        user_id:         Identifier stamped on every stored point.
        boundary:        Boundary ring; may be replaced once loading finishes.
        sink:            Receives each emitted point, or None to only return them.
        snap_offset_ms:  Offset of the synthetic snap point.
    """
    user_id:        int
    boundary:       BoundaryRing = field(default_factory=BoundaryRing)
    sink:           Optional[Sink] = None
    snap_offset_ms: int = DEFAULT_SNAP_OFFSET_MS
    state:          TrackState = field(default=UNKNOWN, init=False)
    stats:          IngestionStats = field(default_factory=IngestionStats, init=False)
    _last_timestamp_ms: Optional[int] = field(default=None, init=False, repr=False)

    def reset(self) -> None:
        """Forget the last inside fix and zero the counters."""
        self.state = UNKNOWN
        self.stats = IngestionStats()
        self._last_timestamp_ms = None

    def ingest(self, fix: Fix) -> list[StoredLocationPoint]:
        """
        Feed one fix through the state machine.

        Args:
            fix: Raw fix from the location provider.

        Returns:
            The points emitted for this fix (also forwarded to the sink).
        """
        self.stats.received += 1

        try:
            validate_fix(fix, self.snap_offset_ms)
        except MalformedFixError as exc:
            self.stats.dropped_malformed += 1
            logger.warning("Dropping malformed fix for user %s: %s", self.user_id, exc)
            return []

        if self._last_timestamp_ms is not None and fix.timestamp_ms < self._last_timestamp_ms:
            self.stats.out_of_order += 1
            logger.debug("Fix at %d arrived after %d", fix.timestamp_ms, self._last_timestamp_ms)
        self._last_timestamp_ms = fix.timestamp_ms

        result = transition(self.state, fix, self.boundary, self.snap_offset_ms)
        self.state = result.state

        if result.outcome is Outcome.NO_BOUNDARY:
            if self.stats.dropped_no_boundary == 0:
                logger.warning("Boundary not loaded; dropping fixes until it is available")
            else:
                logger.debug("Boundary not loaded; dropped fix at %d", fix.timestamp_ms)
            self.stats.dropped_no_boundary += 1
        elif result.outcome is Outcome.OUTSIDE:
            self.stats.dropped_outside += 1
            logger.debug("Outside boundary, ignoring (%.6f, %.6f)", fix.latitude, fix.longitude)
        elif result.outcome is Outcome.ENTERED:
            self.stats.snaps += 1
            edge = result.emitted[0]
            logger.info(
                "Entered boundary; snap point (%.6f, %.6f) is %.1f m from the fix",
                edge.latitude, edge.longitude, haversine_m(edge.point, fix.point),
            )

        points = [StoredLocationPoint.from_fix(self.user_id, f) for f in result.emitted]
        self.stats.emitted += len(points)
        if self.sink is not None:
            for point in points:
                self.sink(point)
        return points
