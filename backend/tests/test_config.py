"""Tests for environment-driven settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from routefence.config import DEFAULT_BOUNDARY_PATH, Settings, load_settings

_VARS = (
    "BOUNDARY_PATH", "BOUNDARY_STRIDE", "DB_PATH", "GAP_THRESHOLD_MS", "SNAP_OFFSET_MS",
    "UPDATE_INTERVAL_MS", "MIN_DISPLACEMENT_M", "LOCATION_PERMISSION",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in _VARS:
        # setenv first so teardown also removes anything a .env file adds
        monkeypatch.setenv("ROUTEFENCE_" + name, "")
        monkeypatch.delenv("ROUTEFENCE_" + name)
    # keep any developer .env out of the picture
    monkeypatch.chdir(tmp_path)


def test_defaults():
    settings = load_settings()
    assert settings == Settings()
    assert settings.boundary_path == DEFAULT_BOUNDARY_PATH
    assert settings.boundary_stride == 10
    assert settings.gap_threshold_ms == 30_000
    assert settings.snap_offset_ms == 1_000
    assert settings.location_permission is True


def test_values_from_environment(monkeypatch):
    monkeypatch.setenv("ROUTEFENCE_BOUNDARY_PATH", "/data/zone.geojson")
    monkeypatch.setenv("ROUTEFENCE_BOUNDARY_STRIDE", "25")
    monkeypatch.setenv("ROUTEFENCE_DB_PATH", ":memory:")
    monkeypatch.setenv("ROUTEFENCE_GAP_THRESHOLD_MS", "60000")
    monkeypatch.setenv("ROUTEFENCE_MIN_DISPLACEMENT_M", "2.5")
    monkeypatch.setenv("ROUTEFENCE_LOCATION_PERMISSION", "denied")
    settings = load_settings()
    assert settings.boundary_path == Path("/data/zone.geojson")
    assert settings.boundary_stride == 25
    assert settings.db_path == ":memory:"
    assert settings.gap_threshold_ms == 60_000
    assert settings.min_displacement_m == 2.5
    assert settings.location_permission is False


def test_dotenv_file_is_read(tmp_path):
    (tmp_path / ".env").write_text("ROUTEFENCE_SNAP_OFFSET_MS=750\n", encoding="utf-8")
    assert load_settings().snap_offset_ms == 750


def test_blank_value_uses_default(monkeypatch):
    monkeypatch.setenv("ROUTEFENCE_BOUNDARY_STRIDE", "  ")
    assert load_settings().boundary_stride == 10


@pytest.mark.parametrize("name,value", [
    ("BOUNDARY_STRIDE", "ten"),
    ("BOUNDARY_STRIDE", "0"),
    ("GAP_THRESHOLD_MS", "-1"),
    ("MIN_DISPLACEMENT_M", "far"),
    ("LOCATION_PERMISSION", "maybe"),
])
def test_invalid_values_name_the_variable(monkeypatch, name, value):
    monkeypatch.setenv("ROUTEFENCE_" + name, value)
    with pytest.raises(ValueError, match="ROUTEFENCE_" + name):
        load_settings()
