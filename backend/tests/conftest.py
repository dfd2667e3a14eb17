"""
conftest.py — Shared pytest fixtures for the routefence test suite.

Provides:
    - Small boundary rings (unit square, triangle, a city-sized rectangle).
    - Helpers for building fixes and Point-feature GeoJSON documents.
    - A LocationStore backed by a temporary SQLite file.
    - A TrackingService wired to a push provider and a recording foreground host.
"""

from __future__ import annotations

import pytest

from routefence.config import Settings
from routefence.loader import BoundaryLoader
from routefence.models import BoundaryRing, Fix, GeoPoint
from routefence.services import PushLocationProvider, TrackingService
from routefence.storage import LocationStore


# ── Builders ──────────────────────────────────────────────────────────────────

def make_fix(lat: float, lon: float, t: int) -> Fix:
    """Fix at (lat, lon) stamped ``t`` milliseconds."""
    return Fix(GeoPoint(lat, lon), t)


def make_ring(*latlons: tuple[float, float]) -> BoundaryRing:
    """Closed ring from (lat, lon) pairs; the closing point is added here."""
    points = [GeoPoint(lat, lon) for lat, lon in latlons]
    return BoundaryRing(tuple(points + points[:1]))


def point_collection(lonlats: list[tuple[float, float]]) -> dict:
    """FeatureCollection with one Point feature per [lon, lat] pair."""
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"idx": i},
                "geometry": {"type": "Point", "coordinates": [lon, lat]},
            }
            for i, (lon, lat) in enumerate(lonlats)
        ],
    }


class RecordingForegroundHost:
    """ForegroundHost that remembers every call."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def enter_foreground(self, title: str, text: str) -> None:
        self.calls.append("enter")

    def exit_foreground(self) -> None:
        self.calls.append("exit")


# ── Ring fixtures ─────────────────────────────────────────────────────────────

@pytest.fixture
def square_ring() -> BoundaryRing:
    """
    Square with corners (0,0) and (4,4) in (lat, lon).
    Interior point: (2, 2). Edge point: (0, 2). Exterior: (5, 5).
    """
    return make_ring((0, 0), (0, 4), (4, 4), (4, 0))


@pytest.fixture
def triangle_ring() -> BoundaryRing:
    """Right-angled triangle (0,0), (0,4), (4,0) in (lat, lon)."""
    return make_ring((0, 0), (0, 4), (4, 0))


@pytest.fixture
def city_ring() -> BoundaryRing:
    """
    Rectangle lat 35.70–35.80, lon 51.30–51.45.
    Interior point: (35.75, 51.375). Exterior point: (35.90, 51.375).
    """
    return make_ring((35.70, 51.30), (35.70, 51.45), (35.80, 51.45), (35.80, 51.30))


# ── Storage and service fixtures ──────────────────────────────────────────────

@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "routefence_test.db")


@pytest.fixture
def store(db_path):
    s = LocationStore(db_path)
    yield s
    s.close()


@pytest.fixture
def city_collection() -> dict:
    """Point-feature GeoJSON tracing the city_ring rectangle, one vertex per corner."""
    return point_collection([(51.30, 35.70), (51.45, 35.70), (51.45, 35.80), (51.30, 35.80)])


@pytest.fixture
def foreground() -> RecordingForegroundHost:
    return RecordingForegroundHost()


@pytest.fixture
def provider() -> PushLocationProvider:
    return PushLocationProvider(permission_granted=True)


@pytest.fixture
def tracking_service(city_collection, store, provider, foreground):
    """TrackingService over the city rectangle with stride 1."""
    svc = TrackingService(
        boundary_loader=BoundaryLoader(city_collection, stride=1),
        store=store,
        provider=provider,
        settings=Settings(db_path=":memory:", boundary_stride=1),
        foreground=foreground,
    )
    yield svc
    svc.stop()
