"""
loader.py — Boundary loading for the routefence ingestion pipeline.

Responsible for:
    - Reading the boundary GeoJSON FeatureCollection (a file path, an open
      text stream, or an already-decoded dict).
    - Turning its Point features into a closed BoundaryRing, keeping only
      every Nth feature so very large sources stay small in memory.
    - Caching the ring for the lifetime of the owning BoundaryLoader.

Loading never raises: any failure is logged, remembered on the loader and
replaced by an empty ring, which the evaluator treats as "nothing inside".
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import IO, Any, Optional, Union

from routefence.errors import BoundaryLoadError
from routefence.models import BoundaryRing, GeoPoint

logger = logging.getLogger(__name__)

BoundarySource = Union[str, Path, IO[str], dict]


# ── Coordinate conversion ────────────────────────────────────────────────────

def geojson_to_point(coordinates: Any) -> GeoPoint:
    """
    Convert a GeoJSON position into a GeoPoint.

    GeoJSON orders positions as [longitude, latitude, (altitude...)]; the
    pipeline orders them (latitude, longitude). Extra elements are ignored.

    Args:
        coordinates: A GeoJSON position array.

    Returns:
        GeoPoint with the two leading values swapped into place.

    Raises:
        BoundaryLoadError: If the position has fewer than two numeric values.
    """
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) < 2:
        raise BoundaryLoadError(f"Invalid GeoJSON position: {coordinates!r}")

    lon, lat = coordinates[0], coordinates[1]
    if isinstance(lon, bool) or isinstance(lat, bool) \
            or not isinstance(lon, (int, float)) or not isinstance(lat, (int, float)):
        raise BoundaryLoadError(f"Non-numeric GeoJSON position: {coordinates!r}")
    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise BoundaryLoadError(f"Non-finite GeoJSON position: {coordinates!r}")

    return GeoPoint(latitude=float(lat), longitude=float(lon))


def point_to_geojson(point: GeoPoint) -> list[float]:
    """Inverse of ``geojson_to_point``: a [longitude, latitude] position."""
    return [point.longitude, point.latitude]


def ring_to_feature(ring: BoundaryRing) -> dict:
    """Render a ring as a GeoJSON LineString Feature."""
    return {
        "type": "Feature",
        "properties": {"points": len(ring)},
        "geometry": {
            "type": "LineString",
            "coordinates": [point_to_geojson(p) for p in ring],
        },
    }


# ── Parsing ──────────────────────────────────────────────────────────────────

def parse_feature_collection(collection: Any, stride: int = 10) -> BoundaryRing:
    """
    Build a BoundaryRing from a decoded FeatureCollection.

    Features are walked in emission order. The stride counts every feature;
    a Point feature is retained when its index is a multiple of ``stride``,
    so the first feature is always a candidate. Non-Point features are
    skipped. The ring is closed by appending the first point when the last
    retained point differs from it.

    Args:
        collection: Decoded GeoJSON object with a "features" array.
        stride:     Keep one feature in every ``stride`` (>= 1).

    Returns:
        The closed ring, or an empty ring if no Point feature was retained.

    Raises:
        BoundaryLoadError: If the document does not have the expected shape.
        ValueError:        If ``stride`` is less than 1.
    """
    if stride < 1:
        raise ValueError(f"stride must be >= 1, got {stride}")

    if not isinstance(collection, dict):
        raise BoundaryLoadError("Boundary document is not a JSON object")
    features = collection.get("features")
    if not isinstance(features, list):
        raise BoundaryLoadError("Boundary document has no 'features' array")

    points: list[GeoPoint] = []
    for index, feature in enumerate(features):
        if index % stride != 0:
            continue
        if not isinstance(feature, dict):
            raise BoundaryLoadError(f"Feature #{index} is not an object")

        geometry = feature.get("geometry")
        if not isinstance(geometry, dict) or geometry.get("type") != "Point":
            continue

        points.append(geojson_to_point(geometry.get("coordinates")))

    if points and points[0] != points[-1]:
        points.append(points[0])

    return BoundaryRing(tuple(points))


def _read_source(source: BoundarySource) -> Any:
    """Decode the boundary document from any supported source."""
    if isinstance(source, dict):
        return source
    if isinstance(source, (str, Path)):
        with Path(source).open(encoding="utf-8") as fh:
            return json.load(fh)
    return json.load(source)


def load_boundary(source: BoundarySource, stride: int = 10) -> BoundaryRing:
    """
    Load a boundary ring, degrading to an empty ring on any failure.

    Args:
        source: GeoJSON file path, text stream, or decoded dict.
        stride: Downsampling stride passed to ``parse_feature_collection``.

    Returns:
        The parsed ring, or an empty ring if reading or parsing failed.
    """
    return BoundaryLoader(source, stride=stride).load()


# ── Loader ───────────────────────────────────────────────────────────────────

class BoundaryLoader:
    """
    Owns one boundary source and the ring parsed from it.

    The first ``load()`` parses the source; later calls return the cached
    ring. Concurrent first calls may both parse, which is harmless because
    the result is identical immutable data.

    Args:
        source: GeoJSON file path, text stream, or decoded dict.
        stride: Keep one feature in every ``stride``.
    """

    def __init__(self, source: BoundarySource, stride: int = 10) -> None:
        if stride < 1:
            raise ValueError(f"stride must be >= 1, got {stride}")
        self.source = source
        self.stride = stride
        self.last_error: Optional[Exception] = None
        self._ring: Optional[BoundaryRing] = None

    @property
    def is_loaded(self) -> bool:
        return self._ring is not None

    def load(self) -> BoundaryRing:
        """
        Return the cached ring, parsing the source on first use.

        Returns:
            The boundary ring; empty if the source could not be used.
        """
        if self._ring is not None:
            return self._ring

        try:
            ring = parse_feature_collection(_read_source(self.source), self.stride)
        except (OSError, ValueError, RecursionError, BoundaryLoadError) as exc:
            # json.JSONDecodeError is a ValueError; very deep nesting is a RecursionError
            logger.error("Failed to load boundary from %s: %s", self._describe(), exc)
            self.last_error = exc
            ring = BoundaryRing()
        else:
            self.last_error = None
            if ring.is_empty:
                logger.warning("Boundary source %s contained no Point features", self._describe())
            else:
                logger.info("Loaded boundary with %d points from %s", len(ring), self._describe())

        self._ring = ring
        return ring

    def _describe(self) -> str:
        if isinstance(self.source, (str, Path)):
            return Path(self.source).name
        if isinstance(self.source, dict):
            return "<dict>"
        return getattr(self.source, "name", "<stream>")
