"""Pydantic models for sync reports and API responses."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Sync cycle
# ---------------------------------------------------------------------------

class TaskSummary(BaseModel):
    status: str
    duration_ms: float | None = None
    error: str | None = None


class FailedRecord(BaseModel):
    """A record the sync skipped, with the reason."""
    id: str
    error: str


class FailedAppointment(BaseModel):
    appointment_id: str
    error: str


class SyncReport(BaseModel):
    pipeline: str
    status: str
    window_start: str
    window_end: str
    nurses: int = 0
    patients: int = 0
    appointments: int = 0
    fetched: dict[str, int] = Field(default_factory=dict)
    failed_appointments: list[FailedAppointment] = Field(default_factory=list)
    failed_nurses: list[FailedRecord] = Field(default_factory=list)
    failed_patients: list[FailedRecord] = Field(default_factory=list)
    tasks: dict[str, TaskSummary] = Field(default_factory=dict)


class SyncRequest(BaseModel):
    """Optional overrides for an API-triggered sync."""
    source: str | None = Field(default=None, pattern="^(fhir|mock)$")


class SyncRunResponse(BaseModel):
    id: str
    pipeline_name: str
    status: str
    started_at: datetime
    completed_at: datetime | None
    window_start: str | None
    window_end: str | None
    counts: dict[str, int] | None
    failures: list[dict] | None
    error: str | None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

class RouteCreate(BaseModel):
    nurse_id: str
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    appointment_ids: list[str] = Field(default_factory=list)
    route_points: list[dict] = Field(default_factory=list)
    total_distance: float = Field(default=0.0, ge=0)
    total_time: float = Field(default=0.0, ge=0)


class RouteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    nurse_id: str
    date: str
    appointment_ids: list[str]
    route_points: list[dict]
    total_distance: float
    total_time: float
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = "healthy"
    environment: str
    database: str = "connected"
    data_source: str
