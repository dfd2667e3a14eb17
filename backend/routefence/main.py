"""
main.py — FastAPI application entry point for routefence.

Exposes:
    GET    /                                   — health check (root)
    GET    /health                             — boundary, session and counter status
    POST   /api/v1/tracking/start              — start a tracking session for a user
    POST   /api/v1/tracking/stop               — stop the session (idempotent)
    POST   /api/v1/fixes                       — deliver one location fix
    POST   /api/v1/fixes/batch                 — deliver a provider batch (latest fix used)
    GET    /api/v1/users/{user_id}/locations   — stored route history
    GET    /api/v1/users/{user_id}/segments    — history split into drawable runs
    DELETE /api/v1/users/{user_id}/locations   — delete a user's history
    GET    /api/v1/boundary                    — loaded boundary as GeoJSON
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from routefence.config import load_settings
from routefence.errors import MissingPermissionError
from routefence.loader import BoundaryLoader, ring_to_feature
from routefence.schemas import (
    DeleteResponse,
    EmittedResponse,
    FixBatchIn,
    FixIn,
    LocationOut,
    LocationsResponse,
    SegmentOut,
    SegmentsResponse,
    StartRequest,
    TrackingStatus,
)
from routefence.services import PushLocationProvider, TrackingService
from routefence.storage import LocationStore

# ── Logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

# ── Application-level service (built once at startup) ─────────────────────────
service: TrackingService | None = None


def build_service() -> TrackingService:
    """Assemble the tracking service from environment settings."""
    settings = load_settings()
    loader = BoundaryLoader(settings.boundary_path, stride=settings.boundary_stride)
    loader.load()
    return TrackingService(
        boundary_loader=loader,
        store=LocationStore(settings.db_path),
        provider=PushLocationProvider(permission_granted=settings.location_permission),
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the boundary and open the store before accepting requests."""
    global service
    service = build_service()
    logger.info("Boundary ready with %d points", len(service.boundary))
    yield
    logger.info("Shutting down — stopping tracking and closing the store.")
    if service is not None:
        service.close()


# ── FastAPI app ───────────────────────────────────────────────────────────────
app = FastAPI(
    title="RouteFence API",
    description=(
        "Records location fixes that fall inside a single boundary polygon, "
        "snapping re-entries onto the boundary edge."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)


def _require_service() -> TrackingService:
    if service is None:
        raise HTTPException(status_code=503, detail="Service not initialised.")
    return service


def _require_provider(svc: TrackingService) -> PushLocationProvider:
    if not svc.is_tracking or not isinstance(svc.provider, PushLocationProvider):
        raise HTTPException(
            status_code=409,
            detail="Tracking is not active. Start a session before sending fixes.",
        )
    return svc.provider


# ── Routes ────────────────────────────────────────────────────────────────────

@app.get("/", tags=["health"])
def root():
    """Root health-check endpoint."""
    return {"status": "ok", "message": "RouteFence API is running."}


@app.get("/health", tags=["health"])
def health():
    """Detailed health check: boundary size, session state and counters."""
    svc = _require_service()
    error = svc.boundary_loader.last_error
    stats = svc.stats
    return {
        "status": "ok",
        "boundary_points": len(svc.boundary),
        "boundary_error": str(error) if error is not None else None,
        "tracking": svc.is_tracking,
        "active_user_id": svc.active_user_id,
        "ingestion": stats.as_dict() if stats is not None else None,
        "pending_writes": svc.writer.pending(),
        "failed_writes": svc.writer.failed_writes,
    }


@app.post("/api/v1/tracking/start", tags=["tracking"], response_model=TrackingStatus)
def start_tracking(req: StartRequest) -> TrackingStatus:
    """
    Start a tracking session for ``user_id``.

    Raises:
        HTTPException 403: If location permission is missing.
        HTTPException 503: If the service has not been initialised.
    """
    svc = _require_service()
    try:
        svc.start(req.user_id)
    except MissingPermissionError as exc:
        raise HTTPException(status_code=403, detail=f"MissingPermission: {exc}") from exc
    return TrackingStatus(tracking=True, user_id=req.user_id)


@app.post("/api/v1/tracking/stop", tags=["tracking"], response_model=TrackingStatus)
def stop_tracking() -> TrackingStatus:
    """Stop the active session; succeeds when nothing is running."""
    svc = _require_service()
    svc.stop()
    return TrackingStatus(tracking=False)


@app.post("/api/v1/fixes", tags=["tracking"], response_model=EmittedResponse)
def post_fix(fix: FixIn) -> EmittedResponse:
    """
    Deliver one location fix to the active session.

    Returns:
        The points recorded because of this fix (zero, one or two).

    Raises:
        HTTPException 409: If no session is active.
    """
    provider = _require_provider(_require_service())
    emitted = provider.push(fix.to_fix())
    return EmittedResponse(emitted=[LocationOut.from_point(p) for p in emitted])


@app.post("/api/v1/fixes/batch", tags=["tracking"], response_model=EmittedResponse)
def post_fix_batch(batch: FixBatchIn) -> EmittedResponse:
    """Deliver a batch of fixes; only the most recent one is ingested."""
    provider = _require_provider(_require_service())
    emitted = provider.push_batch(f.to_fix() for f in batch.fixes)
    return EmittedResponse(emitted=[LocationOut.from_point(p) for p in emitted])


@app.get("/api/v1/users/{user_id}/locations", tags=["history"], response_model=LocationsResponse)
def get_locations(user_id: int) -> LocationsResponse:
    """Return the stored history for ``user_id``, ascending by timestamp."""
    svc = _require_service()
    points = svc.history(user_id)
    return LocationsResponse(
        user_id=user_id,
        locations=[LocationOut.from_point(p) for p in points],
    )


@app.get("/api/v1/users/{user_id}/segments", tags=["history"], response_model=SegmentsResponse)
def get_segments(
    user_id: int,
    gap_ms: Optional[int] = Query(None, ge=0, description="Gap (ms) that starts a new segment"),
) -> SegmentsResponse:
    """Return ``user_id``'s history split wherever the time gap exceeds ``gap_ms``."""
    svc = _require_service()
    gap = svc.settings.gap_threshold_ms if gap_ms is None else gap_ms
    segments = svc.segments(user_id, gap)
    return SegmentsResponse(
        user_id=user_id,
        gap_threshold_ms=gap,
        segments=[SegmentOut.from_segment(s) for s in segments],
    )


@app.delete("/api/v1/users/{user_id}/locations", tags=["history"], response_model=DeleteResponse)
def delete_locations(user_id: int) -> DeleteResponse:
    """Delete the whole stored history of ``user_id``."""
    svc = _require_service()
    return DeleteResponse(user_id=user_id, deleted=svc.clear_history(user_id))


@app.get("/api/v1/boundary", tags=["metadata"])
def get_boundary():
    """
    Return the loaded boundary ring as a GeoJSON FeatureCollection.

    Raises:
        HTTPException 404: If no boundary is loaded.
    """
    svc = _require_service()
    ring = svc.boundary
    if ring.is_empty:
        raise HTTPException(status_code=404, detail="No boundary is loaded.")
    return {"type": "FeatureCollection", "features": [ring_to_feature(ring)]}
