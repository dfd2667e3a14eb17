"""
test_loader.py — Tests for boundary loading, downsampling and caching.

Coverage:
    - [lon, lat] → GeoPoint(lat, lon) conversion
    - Stride downsampling and ring closing
    - Non-Point features and stride counting
    - File, stream and dict sources
    - Failure degrades to an empty ring with the error recorded
    - Caching across repeated loads
"""

from __future__ import annotations

import io
import json

import pytest

from routefence.errors import BoundaryLoadError
from routefence.loader import (
    BoundaryLoader,
    geojson_to_point,
    load_boundary,
    parse_feature_collection,
    point_to_geojson,
    ring_to_feature,
)
from routefence.models import GeoPoint

from conftest import point_collection


def _distinct_lonlats(n: int) -> list[tuple[float, float]]:
    """``n`` distinct [lon, lat] pairs along a diagonal."""
    return [(10.0 + i * 0.01, 50.0 + i * 0.01) for i in range(n)]


# ════════════════════════════════════════════════════════════════
#  Coordinate conversion
# ════════════════════════════════════════════════════════════════

class TestGeojsonToPoint:

    def test_swaps_longitude_and_latitude(self):
        p = geojson_to_point([51.375, 35.75])
        assert p == GeoPoint(latitude=35.75, longitude=51.375)

    def test_ignores_altitude(self):
        assert geojson_to_point([1.0, 2.0, 300.0]) == GeoPoint(2.0, 1.0)

    def test_integers_become_floats(self):
        p = geojson_to_point([3, 4])
        assert isinstance(p.latitude, float) and p.latitude == 4.0

    @pytest.mark.parametrize("bad", [None, [], [1.0], ["a", 2.0], [1.0, None], "1,2", [True, 1.0]])
    def test_invalid_positions_raise(self, bad):
        with pytest.raises(BoundaryLoadError):
            geojson_to_point(bad)

    def test_non_finite_position_raises(self):
        with pytest.raises(BoundaryLoadError):
            geojson_to_point([float("nan"), 1.0])

    def test_round_trip_back_to_geojson(self):
        assert point_to_geojson(geojson_to_point([51.3, 35.7])) == [51.3, 35.7]


# ════════════════════════════════════════════════════════════════
#  parse_feature_collection
# ════════════════════════════════════════════════════════════════

class TestParseFeatureCollection:

    def test_hundred_points_stride_ten_closes_ring(self):
        ring = parse_feature_collection(point_collection(_distinct_lonlats(100)), stride=10)
        assert len(ring) == 11
        assert ring[0] == ring[-1]
        assert ring[1].latitude == pytest.approx(50.10)
        assert ring[1].longitude == pytest.approx(10.10)

    def test_already_closed_after_downsampling_is_not_closed_again(self):
        lonlats = _distinct_lonlats(100)
        lonlats[90] = lonlats[0]  # last retained feature repeats the first
        ring = parse_feature_collection(point_collection(lonlats), stride=10)
        assert len(ring) == 10
        assert ring[0] == ring[-1]

    def test_stride_one_keeps_everything(self):
        ring = parse_feature_collection(point_collection(_distinct_lonlats(5)), stride=1)
        assert len(ring) == 6

    def test_first_point_always_retained(self):
        ring = parse_feature_collection(point_collection(_distinct_lonlats(3)), stride=10)
        assert ring.points == (GeoPoint(50.0, 10.0),)

    def test_non_point_features_skipped_but_counted(self):
        collection = point_collection(_distinct_lonlats(4))
        collection["features"][0]["geometry"] = {
            "type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]],
        }
        ring = parse_feature_collection(collection, stride=2)
        # index 0 is a Polygon, index 2 is the only retained Point
        assert len(ring) == 1
        assert ring[0].latitude == pytest.approx(50.02)
        assert ring[0].longitude == pytest.approx(10.02)

    def test_null_geometry_skipped(self):
        collection = point_collection(_distinct_lonlats(3))
        collection["features"][1]["geometry"] = None
        ring = parse_feature_collection(collection, stride=1)
        assert len(ring) == 3  # two points plus closing point

    def test_empty_features_gives_empty_ring(self):
        ring = parse_feature_collection({"type": "FeatureCollection", "features": []})
        assert ring.is_empty

    def test_missing_features_raises(self):
        with pytest.raises(BoundaryLoadError):
            parse_feature_collection({"type": "FeatureCollection"})

    def test_non_object_document_raises(self):
        with pytest.raises(BoundaryLoadError):
            parse_feature_collection([1, 2, 3])

    def test_zero_stride_rejected(self):
        with pytest.raises(ValueError):
            parse_feature_collection(point_collection(_distinct_lonlats(3)), stride=0)


# ════════════════════════════════════════════════════════════════
#  BoundaryLoader
# ════════════════════════════════════════════════════════════════

class TestBoundaryLoader:

    def test_loads_from_file(self, tmp_path, city_collection):
        path = tmp_path / "polygon.geojson"
        path.write_text(json.dumps(city_collection), encoding="utf-8")
        ring = BoundaryLoader(path, stride=1).load()
        assert len(ring) == 5
        assert ring[0] == GeoPoint(35.70, 51.30)

    def test_loads_from_string_path(self, tmp_path, city_collection):
        path = tmp_path / "polygon.geojson"
        path.write_text(json.dumps(city_collection), encoding="utf-8")
        assert len(load_boundary(str(path), stride=1)) == 5

    def test_loads_from_stream(self, city_collection):
        stream = io.StringIO(json.dumps(city_collection))
        assert len(BoundaryLoader(stream, stride=1).load()) == 5

    def test_missing_file_gives_empty_ring(self, tmp_path):
        loader = BoundaryLoader(tmp_path / "absent.geojson")
        ring = loader.load()
        assert ring.is_empty
        assert isinstance(loader.last_error, OSError)

    def test_invalid_json_gives_empty_ring(self, tmp_path):
        path = tmp_path / "broken.geojson"
        path.write_text("{not json", encoding="utf-8")
        loader = BoundaryLoader(path)
        assert loader.load().is_empty
        assert isinstance(loader.last_error, json.JSONDecodeError)

    def test_deeply_nested_json_gives_empty_ring(self, tmp_path):
        path = tmp_path / "nested.geojson"
        path.write_text("[" * 200_000 + "]" * 200_000, encoding="utf-8")
        loader = BoundaryLoader(path)
        assert loader.load().is_empty
        assert isinstance(loader.last_error, RecursionError)

    def test_malformed_feature_gives_empty_ring(self, city_collection):
        city_collection["features"][2]["geometry"]["coordinates"] = ["x"]
        loader = BoundaryLoader(city_collection, stride=1)
        assert loader.load().is_empty
        assert isinstance(loader.last_error, BoundaryLoadError)

    def test_failure_is_logged(self, tmp_path, caplog):
        with caplog.at_level("ERROR", logger="routefence.loader"):
            BoundaryLoader(tmp_path / "absent.geojson").load()
        assert "Failed to load boundary" in caplog.text

    def test_result_is_cached(self, tmp_path, city_collection):
        path = tmp_path / "polygon.geojson"
        path.write_text(json.dumps(city_collection), encoding="utf-8")
        loader = BoundaryLoader(path, stride=1)
        first = loader.load()
        path.unlink()
        assert loader.load() is first
        assert loader.is_loaded

    def test_failed_load_is_cached_too(self, tmp_path):
        loader = BoundaryLoader(tmp_path / "absent.geojson")
        first = loader.load()
        assert loader.load() is first

    def test_zero_stride_rejected(self, city_collection):
        with pytest.raises(ValueError):
            BoundaryLoader(city_collection, stride=0)

    def test_bundled_sample_boundary(self):
        from routefence.config import DEFAULT_BOUNDARY_PATH
        ring = BoundaryLoader(DEFAULT_BOUNDARY_PATH, stride=10).load()
        assert len(ring) == 9
        assert not ring.is_degenerate


class TestRingToFeature:

    def test_coordinates_back_in_lon_lat_order(self, city_ring):
        feature = ring_to_feature(city_ring)
        assert feature["geometry"]["type"] == "LineString"
        assert feature["geometry"]["coordinates"][0] == [51.30, 35.70]
        assert feature["properties"]["points"] == 5
