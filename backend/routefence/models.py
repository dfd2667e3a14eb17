"""
models.py — Value types shared by every stage of the ingestion pipeline.

Coordinates are WGS84 degrees. Internally a point is always (latitude,
longitude); the reversed GeoJSON order is converted in exactly one place,
``loader.geojson_to_point``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional


# ── Points and fixes ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GeoPoint:
    """A position in degrees."""
    latitude:  float
    longitude: float


@dataclass(frozen=True)
class Fix:
    """
    One raw sample from the location provider.

    Attributes:
        point:           Resolved position.
        timestamp_ms:    Epoch milliseconds at which the sample was taken.
    """
    point:        GeoPoint
    timestamp_ms: int

    @property
    def latitude(self) -> float:
        return self.point.latitude

    @property
    def longitude(self) -> float:
        return self.point.longitude


# ── Boundary ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BoundaryRing:
    """
    Closed, immutable vertex ring describing the allowed tracking zone.

    The first and last points are equal once a ring has been built by the
    loader. An empty ring is a valid value: it means the boundary could not
    be loaded and nothing is ever considered inside.
    """
    points: tuple[GeoPoint, ...] = ()
    _bounds: Optional[tuple[float, float, float, float]] = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.points:
            lats = [p.latitude for p in self.points]
            lons = [p.longitude for p in self.points]
            object.__setattr__(
                self, "_bounds", (min(lats), min(lons), max(lats), max(lons))
            )

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[GeoPoint]:
        return iter(self.points)

    def __getitem__(self, index: int) -> GeoPoint:
        return self.points[index]

    @property
    def is_empty(self) -> bool:
        return not self.points

    @property
    def vertex_count(self) -> int:
        """Number of distinct vertices, not counting a repeated closing point."""
        n = len(self.points)
        if n > 1 and self.points[0] == self.points[-1]:
            return n - 1
        return n

    @property
    def is_degenerate(self) -> bool:
        """True when fewer than three usable vertices are available."""
        return self.vertex_count < 3

    @property
    def bounds(self) -> Optional[tuple[float, float, float, float]]:
        """(min_lat, min_lon, max_lat, max_lon), or None for an empty ring."""
        return self._bounds

    def edges(self) -> Iterator[tuple[GeoPoint, GeoPoint]]:
        """
        Yield every edge of the ring, including the implicit closing edge.

        If the ring is already explicitly closed the closing edge has zero
        length and is skipped.
        """
        n = len(self.points)
        for i in range(n):
            a = self.points[i - 1]
            b = self.points[i]
            if a != b:
                yield a, b


# ── Persistence and rendering ────────────────────────────────────────────────

@dataclass(frozen=True)
class StoredLocationPoint:
    """A persisted history row. Rows are only ever inserted or bulk-deleted."""
    user_id:      int
    latitude:     float
    longitude:    float
    timestamp_ms: int

    @classmethod
    def from_fix(cls, user_id: int, fix: Fix) -> "StoredLocationPoint":
        return cls(
            user_id=user_id,
            latitude=fix.point.latitude,
            longitude=fix.point.longitude,
            timestamp_ms=fix.timestamp_ms,
        )

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)


@dataclass(frozen=True)
class PathSegment:
    """
    One continuous drawable run of the stored history.

    Attributes:
        points:         Ordered positions of the run.
        start_ms:       Timestamp of the first point.
        end_ms:         Timestamp of the last point.
    """
    points:   tuple[GeoPoint, ...]
    start_ms: int
    end_ms:   int

    def __len__(self) -> int:
        return len(self.points)
