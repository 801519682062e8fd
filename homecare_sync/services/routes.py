"""
Durable storage for generated nurse routes.

Routes are produced by the route-optimization side of the scheduler; this
repository only persists them and moves them through their lifecycle:
PLANNED -> IN_PROGRESS -> COMPLETED.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select

from homecare_sync.errors import RouteNotFoundError
from homecare_sync.models.scheduling import Route
from homecare_sync.services.store import SchedulingStore

logger = logging.getLogger(__name__)

ROUTE_STATUSES = ("PLANNED", "IN_PROGRESS", "COMPLETED")


@dataclass
class RouteRecord:
    id: str
    nurse_id: str
    date: str
    appointment_ids: list[str]
    route_points: list[dict[str, Any]] = field(default_factory=list)
    total_distance: float = 0.0
    total_time: float = 0.0
    status: str = "PLANNED"
    created_at: datetime | None = None
    updated_at: datetime | None = None


def _record(row: Route) -> RouteRecord:
    return RouteRecord(
        id=row.id,
        nurse_id=row.nurse_id,
        date=row.date,
        appointment_ids=list(row.appointment_ids or []),
        route_points=list(row.route_points or []),
        total_distance=row.total_distance or 0.0,
        total_time=row.total_time or 0.0,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class RouteRepository:
    """Routes live in the same database as the synced scheduling data."""

    def __init__(self, store: SchedulingStore):
        self.store = store

    def create(
        self,
        nurse_id: str,
        date: str,
        appointment_ids: list[str],
        route_points: list[dict[str, Any]] | None = None,
        total_distance: float = 0.0,
        total_time: float = 0.0,
    ) -> RouteRecord:
        row = Route(
            nurse_id=nurse_id,
            date=date,
            appointment_ids=list(appointment_ids),
            route_points=list(route_points or []),
            total_distance=total_distance,
            total_time=total_time,
            status="PLANNED",
        )
        with self.store.session() as session, session.begin():
            session.add(row)
            session.flush()
            record = _record(row)
        logger.info("Created route %s for nurse %s on %s", record.id, nurse_id, date)
        return record

    def get(self, route_id: str) -> RouteRecord:
        with self.store.session() as session:
            row = session.get(Route, route_id)
            if row is None:
                raise RouteNotFoundError(route_id)
            return _record(row)

    def list(self, date: str | None = None, nurse_id: str | None = None) -> list[RouteRecord]:
        query = select(Route).order_by(Route.date, Route.created_at)
        if date:
            query = query.where(Route.date == date)
        if nurse_id:
            query = query.where(Route.nurse_id == nurse_id)
        with self.store.session() as session:
            return [_record(r) for r in session.scalars(query)]

    def update(self, route_id: str, **changes: Any) -> RouteRecord:
        """Replace any of appointment_ids, route_points, total_distance, total_time."""
        allowed = {"appointment_ids", "route_points", "total_distance", "total_time"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Cannot update route fields: {', '.join(sorted(unknown))}")
        with self.store.session() as session, session.begin():
            row = session.get(Route, route_id)
            if row is None:
                raise RouteNotFoundError(route_id)
            for key, value in changes.items():
                setattr(row, key, value)
            session.flush()
            return _record(row)

    def update_status(self, route_id: str, status: str) -> RouteRecord:
        if status not in ROUTE_STATUSES:
            raise ValueError(f"Unknown route status: {status}")
        with self.store.session() as session, session.begin():
            row = session.get(Route, route_id)
            if row is None:
                raise RouteNotFoundError(route_id)
            row.status = status
            session.flush()
            record = _record(row)
        logger.info("Route %s is now %s", route_id, status)
        return record

    def start(self, route_id: str) -> RouteRecord:
        return self.update_status(route_id, "IN_PROGRESS")

    def complete(self, route_id: str) -> RouteRecord:
        return self.update_status(route_id, "COMPLETED")
