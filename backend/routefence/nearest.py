"""
nearest.py — Closest point on the boundary ring to a given position.

Used once per outside → inside transition to place the synthetic "snap"
point on the boundary, so a recorded route never draws a straight line
through terrain outside the zone.

Edges are treated as straight lines in longitude/latitude, the same planar
model the ray-casting evaluator uses, so every returned point lies on an
edge the evaluator recognises. Distances are compared after scaling
longitude by cos(latitude) of the query point, which makes "closest" mean
closest on the ground rather than closest in raw degrees.
"""

from __future__ import annotations

import math

from routefence.models import BoundaryRing, GeoPoint
from routefence.raycast import is_on_boundary

_EARTH_RADIUS_M = 6_371_000.0  # mean Earth radius in meters


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """
    Compute the great-circle distance in meters between two points.

    Args:
        a: First point.
        b: Second point.

    Returns:
        Distance in meters.
    """
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    return _EARTH_RADIUS_M * 2.0 * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))


def _closest_on_segment(
    point: GeoPoint, a: GeoPoint, b: GeoPoint, x_scale: float
) -> tuple[GeoPoint, float]:
    """
    Project ``point`` onto segment a–b, clamped to the endpoints.

    Returns:
        The closest point on the segment and its squared scaled distance
        to ``point``.
    """
    px, py = point.longitude * x_scale, point.latitude
    ax, ay = a.longitude * x_scale, a.latitude
    bx, by = b.longitude * x_scale, b.latitude

    dx, dy = bx - ax, by - ay
    length_sq = dx * dx + dy * dy

    t = 0.0 if length_sq == 0.0 else ((px - ax) * dx + (py - ay) * dy) / length_sq

    if t <= 0.0:
        closest, cx, cy = a, ax, ay
    elif t >= 1.0:
        closest, cx, cy = b, bx, by
    else:
        closest = GeoPoint(
            latitude=a.latitude + t * (b.latitude - a.latitude),
            longitude=a.longitude + t * (b.longitude - a.longitude),
        )
        cx, cy = ax + t * dx, ay + t * dy

    return closest, (px - cx) ** 2 + (py - cy) ** 2


def nearest_point(point: GeoPoint, ring: BoundaryRing) -> GeoPoint:
    """
    Find the point on the ring's edges closest to ``point``.

    Ties are broken in favour of the earliest edge, so the result depends
    only on the inputs. A point already on an edge is returned unchanged,
    so feeding a result back in gives exactly the same point.

    Args:
        point: Query position, normally a fix that has just entered the zone.
        ring:  Boundary ring.

    Returns:
        The closest boundary point. For a ring with a single vertex, that vertex.

    Raises:
        ValueError: If the ring is empty.
    """
    if ring.is_empty:
        raise ValueError("Cannot snap to an empty boundary ring")

    if is_on_boundary(point, ring):
        return point

    x_scale = math.cos(math.radians(point.latitude))

    best = ring[0]
    best_dist = math.inf
    for a, b in ring.edges():
        candidate, dist = _closest_on_segment(point, a, b, x_scale)
        if dist < best_dist:
            best, best_dist = candidate, dist

    return best
