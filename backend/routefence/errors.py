"""
errors.py — Named failure conditions of the ingestion pipeline.

Only ``MissingPermissionError`` ever reaches the caller of a session; the
others are raised at a component's edge and absorbed there.
"""

from __future__ import annotations


class RouteFenceError(Exception):
    """Base class for all pipeline failures."""


class BoundaryLoadError(RouteFenceError):
    """The boundary source could not be read or parsed."""


class MissingPermissionError(RouteFenceError):
    """The host platform denied access to location updates."""

    def __init__(self, message: str = "Location permission has not been granted.") -> None:
        super().__init__(message)


class PersistenceWriteError(RouteFenceError):
    """An emitted point could not be written to the location store."""


class MalformedFixError(RouteFenceError):
    """A fix carries coordinates or a timestamp that cannot be interpreted."""
