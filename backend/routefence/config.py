"""
config.py — Runtime settings for the routefence service.

Values come from the process environment, after an optional ``.env`` file in
the working directory has been merged in. All variables share the
``ROUTEFENCE_`` prefix.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

_PREFIX = "ROUTEFENCE_"

# ── Defaults ──────────────────────────────────────────────────────────────────
DEFAULT_BOUNDARY_PATH = Path(__file__).resolve().parent.parent / "data" / "polygon.geojson"
DEFAULT_STRIDE        = 10
DEFAULT_GAP_MS        = 30_000
DEFAULT_SNAP_OFFSET   = 1_000
DEFAULT_INTERVAL_MS   = 5_000
DEFAULT_MIN_DISTANCE  = 10.0


@dataclass(frozen=True)
class Settings:
    """
    Immutable service configuration.

    Attributes:
        boundary_path:        GeoJSON file holding the boundary vertices.
        boundary_stride:      Keep every Nth boundary feature (>= 1).
        db_path:              SQLite database file, or ":memory:".
        gap_threshold_ms:     Default time gap that splits path segments.
        snap_offset_ms:       How far before the entering fix the snap point is stamped.
        update_interval_ms:   Desired fix cadence hint for the provider.
        min_displacement_m:   Minimum displacement hint for the provider.
        location_permission:  Whether the HTTP-fed provider reports permission.
    """
    boundary_path:       Path  = DEFAULT_BOUNDARY_PATH
    boundary_stride:     int   = DEFAULT_STRIDE
    db_path:             str   = "routefence.db"
    gap_threshold_ms:    int   = DEFAULT_GAP_MS
    snap_offset_ms:      int   = DEFAULT_SNAP_OFFSET
    update_interval_ms:  int   = DEFAULT_INTERVAL_MS
    min_displacement_m:  float = DEFAULT_MIN_DISTANCE
    location_permission: bool  = True


def _env(name: str) -> str | None:
    value = os.environ.get(_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{_PREFIX}{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{_PREFIX}{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{_PREFIX}{name} must be a number, got {raw!r}") from None


def _env_permission(name: str) -> bool:
    raw = _env(name)
    if raw is None:
        return True
    lowered = raw.lower()
    if lowered in ("granted", "true", "1", "yes"):
        return True
    if lowered in ("denied", "false", "0", "no"):
        return False
    raise ValueError(f"{_PREFIX}{name} must be 'granted' or 'denied', got {raw!r}")


def load_settings() -> Settings:
    """
    Build a Settings instance from the environment.

    Returns:
        Settings populated from ``ROUTEFENCE_*`` variables, falling back to
        the module defaults.

    Raises:
        ValueError: If a variable is present but cannot be parsed.
    """
    load_dotenv(find_dotenv(usecwd=True))  # must run before any variable is read

    boundary = _env("BOUNDARY_PATH")
    return Settings(
        boundary_path=Path(boundary) if boundary else DEFAULT_BOUNDARY_PATH,
        boundary_stride=_env_int("BOUNDARY_STRIDE", DEFAULT_STRIDE, minimum=1),
        db_path=_env("DB_PATH") or "routefence.db",
        gap_threshold_ms=_env_int("GAP_THRESHOLD_MS", DEFAULT_GAP_MS),
        snap_offset_ms=_env_int("SNAP_OFFSET_MS", DEFAULT_SNAP_OFFSET),
        update_interval_ms=_env_int("UPDATE_INTERVAL_MS", DEFAULT_INTERVAL_MS, minimum=1),
        min_displacement_m=_env_float("MIN_DISPLACEMENT_M", DEFAULT_MIN_DISTANCE),
        location_permission=_env_permission("LOCATION_PERMISSION"),
    )
