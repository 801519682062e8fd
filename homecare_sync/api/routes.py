"""
FastAPI routes for operating the sync and storing generated nurse routes.

Store and source construction go through dependencies so they can be
swapped out (``app.dependency_overrides``) without touching the handlers.
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from homecare_sync.config import settings
from homecare_sync.errors import RouteNotFoundError, SyncAbortedError
from homecare_sync.etl.pipeline import list_sync_runs, run_sync
from homecare_sync.models.database import engine, get_db
from homecare_sync.schemas.api import (
    HealthResponse,
    RouteCreate,
    RouteResponse,
    SyncReport,
    SyncRequest,
    SyncRunResponse,
)
from homecare_sync.services.routes import RouteRecord, RouteRepository
from homecare_sync.services.store import SchedulingStore
from homecare_sync.sources.base import SchedulingSource
from homecare_sync.sources.registry import build_source

logger = logging.getLogger(__name__)

router = APIRouter()


def get_store() -> SchedulingStore:
    return SchedulingStore(engine)


def get_routes(store: SchedulingStore = Depends(get_store)) -> RouteRepository:
    return RouteRepository(store)


def get_source_factory() -> Callable[[str | None], SchedulingSource]:
    return build_source


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
def health_check(db: Session = Depends(get_db)):
    """Basic health endpoint – verifies DB connectivity."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError as exc:
        logger.error("Database health check failed: %s", exc)
        db_status = "disconnected"
    return HealthResponse(
        status="healthy",
        environment=settings.ENVIRONMENT,
        database=db_status,
        data_source=settings.DATA_SOURCE,
    )


# ---------------------------------------------------------------------------
# Sync trigger
# ---------------------------------------------------------------------------

@router.post("/sync", response_model=SyncReport)
def trigger_sync(
    request: SyncRequest | None = None,
    store: SchedulingStore = Depends(get_store),
    source_factory: Callable[[str | None], SchedulingSource] = Depends(get_source_factory),
):
    """Run one sync cycle for the current week and return its report."""
    source = source_factory(request.source if request else None)
    try:
        return run_sync(source, store)
    except SyncAbortedError as exc:
        logger.error("%s", exc)
        raise HTTPException(status_code=502, detail=str(exc))
    finally:
        source.close()


@router.get("/sync/runs", response_model=list[SyncRunResponse])
def sync_runs(limit: int = 20, store: SchedulingStore = Depends(get_store)):
    """Most recent sync cycles first."""
    return [
        SyncRunResponse(
            id=run.id,
            pipeline_name=run.pipeline_name,
            status=run.status,
            started_at=run.started_at,
            completed_at=run.completed_at,
            window_start=run.window_start,
            window_end=run.window_end,
            counts=run.counts,
            failures=run.failures,
            error=run.error,
        )
        for run in list_sync_runs(store, limit=limit)
    ]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("/routes", response_model=RouteResponse, status_code=201)
def create_route(
    payload: RouteCreate,
    store: SchedulingStore = Depends(get_store),
    routes: RouteRepository = Depends(get_routes),
):
    """Persist a generated route for a synced nurse."""
    if store.get_nurse(payload.nurse_id) is None:
        raise HTTPException(status_code=404, detail=f"Nurse {payload.nurse_id} not found")
    return routes.create(**payload.model_dump())


@router.get("/routes", response_model=list[RouteResponse])
def list_routes(
    date: str | None = None,
    nurse_id: str | None = None,
    routes: RouteRepository = Depends(get_routes),
):
    return routes.list(date=date, nurse_id=nurse_id)


def _route_or_404(action: Callable[[str], RouteRecord], route_id: str) -> RouteRecord:
    try:
        return action(route_id)
    except RouteNotFoundError:
        raise HTTPException(status_code=404, detail=f"Route {route_id} not found")


@router.get("/routes/{route_id}", response_model=RouteResponse)
def get_route(route_id: str, routes: RouteRepository = Depends(get_routes)):
    return _route_or_404(routes.get, route_id)


@router.post("/routes/{route_id}/start", response_model=RouteResponse)
def start_route(route_id: str, routes: RouteRepository = Depends(get_routes)):
    return _route_or_404(routes.start, route_id)


@router.post("/routes/{route_id}/complete", response_model=RouteResponse)
def complete_route(route_id: str, routes: RouteRepository = Depends(get_routes)):
    return _route_or_404(routes.complete, route_id)
