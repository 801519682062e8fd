"""
Relational model for the scheduling store.

Nurses, patients and appointments are keyed by their upstream FHIR ids and
are only ever written by full-record upsert. Sync runs and generated routes
live in the same database.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
)

from homecare_sync.models.database import Base
from homecare_sync.schemas.records import AppointmentStatus


def _utcnow():
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Nurse – FHIR Practitioner
# ---------------------------------------------------------------------------
class Nurse(Base):
    __tablename__ = "nurses"

    id = Column(String(128), primary_key=True, comment="Upstream Practitioner id")
    name = Column(String(256), nullable=False)
    title = Column(String(256))
    specialty = Column(String(256))
    phone_number = Column(String(64))
    email = Column(String(256))
    address = Column(Text)
    lat = Column(Float)
    lng = Column(Float)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (Index("ix_nurses_specialty", "specialty"),)


# ---------------------------------------------------------------------------
# Patient – FHIR Patient
# ---------------------------------------------------------------------------
class Patient(Base):
    __tablename__ = "patients"

    id = Column(String(128), primary_key=True, comment="Upstream Patient id")
    name = Column(String(256), nullable=False)
    phone_number = Column(String(64))
    email = Column(String(256))
    care_needs = Column(JSON, nullable=False, default=list)
    medical_notes = Column(Text)
    address = Column(Text)
    lat = Column(Float)
    lng = Column(Float)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


# ---------------------------------------------------------------------------
# Appointment – FHIR Appointment
# ---------------------------------------------------------------------------
class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(128), primary_key=True, comment="Upstream Appointment id")
    patient_id = Column(String(128), ForeignKey("patients.id"), nullable=False)
    nurse_id = Column(String(128), ForeignKey("nurses.id"), nullable=False)
    start_time = Column(String(64), nullable=False, comment="ISO 8601 timestamp")
    end_time = Column(String(64), nullable=False, comment="ISO 8601 timestamp")
    status = Column(
        Enum(
            *(s.value for s in AppointmentStatus),
            name="appointment_status_enum",
        ),
        nullable=False,
        default=AppointmentStatus.SCHEDULED.value,
    )
    notes = Column(Text)
    care_services = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_appointments_start", "start_time"),
        Index("ix_appointments_nurse", "nurse_id"),
        Index("ix_appointments_patient", "patient_id"),
    )


# ---------------------------------------------------------------------------
# Sync Run – history of sync cycles
# ---------------------------------------------------------------------------
class SyncRun(Base):
    __tablename__ = "sync_runs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    pipeline_name = Column(String(128), nullable=False)
    status = Column(
        Enum("completed", "failed", name="sync_status_enum"),
        nullable=False,
    )
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)
    window_start = Column(String(10))
    window_end = Column(String(10))
    counts = Column(JSON, default=dict, comment="Synced/fetched counts per entity")
    failures = Column(JSON, default=list, comment="Per-record failure entries")
    error = Column(Text, comment="Abort reason for failed runs")
    dag_definition = Column(JSON, comment="Snapshot of the DAG that was executed")

    __table_args__ = (Index("ix_sync_runs_started", "started_at"),)


# ---------------------------------------------------------------------------
# Route – optimized visit order for one nurse on one day
# ---------------------------------------------------------------------------
class Route(Base):
    __tablename__ = "routes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    nurse_id = Column(String(128), ForeignKey("nurses.id"), nullable=False)
    date = Column(String(10), nullable=False, comment="YYYY-MM-DD")
    appointment_ids = Column(JSON, nullable=False, default=list)
    route_points = Column(JSON, nullable=False, default=list)
    total_distance = Column(Float, default=0.0)
    total_time = Column(Float, default=0.0)
    status = Column(
        Enum("PLANNED", "IN_PROGRESS", "COMPLETED", name="route_status_enum"),
        nullable=False,
        default="PLANNED",
    )
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (Index("ix_routes_nurse_date", "nurse_id", "date"),)
