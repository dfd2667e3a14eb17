"""
raycast.py — Point-in-polygon test for the tracking boundary.

Uses the ray-casting method: cast a horizontal ray from the test point
eastward to infinity, counting boundary crossings. An odd count means the
point is inside the polygon. Longitude is the x-axis and latitude the
y-axis; the ring is treated as planar, which is also the geometry the
nearest-point solver uses.

Points lying on an edge are decided separately, before the crossing count,
so the caller can choose whether the boundary itself counts as inside.

Reference:
    W. Randolph Franklin, "PNPOLY – Point Inclusion in Polygon Test"
    https://wrfranklin.org/Research/Short_Notes/pnpoly.html
"""

from __future__ import annotations

import math

from routefence.models import BoundaryRing, GeoPoint

# Perpendicular distance (degrees, ~0.1 mm) under which a point is on an edge.
EDGE_TOLERANCE = 1e-9


def _is_point_on_edge(lon: float, lat: float, a: GeoPoint, b: GeoPoint) -> bool:
    """
    Check whether (lon, lat) lies on the segment a–b, within EDGE_TOLERANCE.

    Args:
        lon: Longitude (x-axis) of the test point.
        lat: Latitude  (y-axis) of the test point.
        a:   First endpoint of the edge.
        b:   Second endpoint of the edge.

    Returns:
        True if the point is on the closed segment.
    """
    ax, ay = a.longitude, a.latitude
    bx, by = b.longitude, b.latitude

    if not (min(ax, bx) - EDGE_TOLERANCE <= lon <= max(ax, bx) + EDGE_TOLERANCE):
        return False
    if not (min(ay, by) - EDGE_TOLERANCE <= lat <= max(ay, by) + EDGE_TOLERANCE):
        return False

    length = math.hypot(bx - ax, by - ay)
    if length == 0.0:
        return math.hypot(lon - ax, lat - ay) <= EDGE_TOLERANCE

    cross = (bx - ax) * (lat - ay) - (by - ay) * (lon - ax)
    return abs(cross) / length <= EDGE_TOLERANCE


def _is_point_in_ring(lon: float, lat: float, ring: BoundaryRing) -> bool:
    """
    Run the crossing-number test for a ring.

    The closing edge (last vertex back to the first) is part of the walk
    whether or not the ring repeats its first point.

    Args:
        lon:  Longitude of the test point.
        lat:  Latitude  of the test point.
        ring: Boundary ring.

    Returns:
        True if the crossing count is odd.
    """
    inside = False
    for a, b in ring.edges():
        xi, yi = b.longitude, b.latitude
        xj, yj = a.longitude, a.latitude

        # Check whether the ray crosses this edge
        if ((yi > lat) != (yj > lat)) and (lon < (xj - xi) * (lat - yi) / (yj - yi) + xi):
            inside = not inside

    return inside


def is_on_boundary(point: GeoPoint, ring: BoundaryRing) -> bool:
    """Return True if ``point`` lies on any edge of ``ring``."""
    return any(
        _is_point_on_edge(point.longitude, point.latitude, a, b)
        for a, b in ring.edges()
    )


def contains(point: GeoPoint, ring: BoundaryRing, include_boundary: bool = True) -> bool:
    """
    Test whether a point falls inside the boundary ring.

    A ring with fewer than three distinct vertices (including the empty ring
    produced by a failed load) contains nothing, boundary points included.

    Args:
        point:            Point to classify.
        ring:             Closed boundary ring.
        include_boundary: Whether a point exactly on an edge counts as inside.

    Returns:
        True if the point is inside (or on the boundary, when included).
    """
    if ring.is_degenerate:
        return False

    lon, lat = point.longitude, point.latitude
    min_lat, min_lon, max_lat, max_lon = ring.bounds
    if not (min_lon - EDGE_TOLERANCE <= lon <= max_lon + EDGE_TOLERANCE
            and min_lat - EDGE_TOLERANCE <= lat <= max_lat + EDGE_TOLERANCE):
        return False

    if is_on_boundary(point, ring):
        return include_boundary

    return _is_point_in_ring(lon, lat, ring)
