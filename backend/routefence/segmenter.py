"""
segmenter.py — Split a stored route into separately drawable runs.

Leaving the zone records nothing, so the only trace of an exit in the
history is a jump in time. Splitting on those jumps keeps the map from
drawing a straight line between the exit and the next entry.
"""

from __future__ import annotations

from typing import Iterable

from routefence.models import PathSegment, StoredLocationPoint

DEFAULT_GAP_THRESHOLD_MS = 30_000


def segment(
    points: Iterable[StoredLocationPoint],
    gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS,
) -> list[PathSegment]:
    """
    Partition points into runs with no time gap larger than the threshold.

    Points are sorted by timestamp first (stable, so equal timestamps keep
    their input order); the caller's ordering is not relied on.

    Args:
        points:            Stored history, in any order.
        gap_threshold_ms:  A gap strictly greater than this starts a new run.

    Returns:
        Segments in chronological order; empty for empty input.
    """
    ordered = sorted(points, key=lambda p: p.timestamp_ms)
    if not ordered:
        return []

    segments: list[PathSegment] = []
    run = [ordered[0]]
    for prev, cur in zip(ordered, ordered[1:]):
        if cur.timestamp_ms - prev.timestamp_ms > gap_threshold_ms:
            segments.append(_to_segment(run))
            run = []
        run.append(cur)
    segments.append(_to_segment(run))

    return segments


def _to_segment(run: list[StoredLocationPoint]) -> PathSegment:
    return PathSegment(
        points=tuple(p.point for p in run),
        start_ms=run[0].timestamp_ms,
        end_ms=run[-1].timestamp_ms,
    )
