"""Pydantic request/response schemas for the routefence HTTP API."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from routefence.models import Fix, GeoPoint, PathSegment, StoredLocationPoint


class FixIn(BaseModel):
    latitude: float
    longitude: float
    timestamp_ms: int

    def to_fix(self) -> Fix:
        return Fix(GeoPoint(self.latitude, self.longitude), self.timestamp_ms)


class FixBatchIn(BaseModel):
    fixes: list[FixIn] = Field(..., min_length=1)


class StartRequest(BaseModel):
    user_id: int


class LocationOut(BaseModel):
    user_id: int
    latitude: float
    longitude: float
    timestamp_ms: int

    @classmethod
    def from_point(cls, point: StoredLocationPoint) -> "LocationOut":
        return cls(
            user_id=point.user_id,
            latitude=point.latitude,
            longitude=point.longitude,
            timestamp_ms=point.timestamp_ms,
        )


class SegmentOut(BaseModel):
    start_ms: int
    end_ms: int
    points: list[tuple[float, float]]
    """(latitude, longitude) pairs in drawing order."""

    @classmethod
    def from_segment(cls, seg: PathSegment) -> "SegmentOut":
        return cls(
            start_ms=seg.start_ms,
            end_ms=seg.end_ms,
            points=[(p.latitude, p.longitude) for p in seg.points],
        )


class EmittedResponse(BaseModel):
    emitted: list[LocationOut]


class LocationsResponse(BaseModel):
    user_id: int
    locations: list[LocationOut]


class SegmentsResponse(BaseModel):
    user_id: int
    gap_threshold_ms: int
    segments: list[SegmentOut]


class DeleteResponse(BaseModel):
    user_id: int
    deleted: int


class TrackingStatus(BaseModel):
    tracking: bool
    user_id: Optional[int] = None
