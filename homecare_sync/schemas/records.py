"""Flat record shapes produced by the FHIR transformers and stored by sync."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    MISSED = "MISSED"


class NurseRecord(BaseModel):
    """A FHIR Practitioner flattened for scheduling."""
    id: str
    name: str = "Unknown"
    title: str = "Healthcare Professional"
    specialty: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str = ""
    lat: float | None = None
    lng: float | None = None


class PatientRecord(BaseModel):
    id: str
    name: str = "Unknown"
    phone: str | None = None
    email: str | None = None
    care_needs: list[str] = Field(default_factory=list)
    medical_notes: str | None = None
    address: str = ""
    lat: float | None = None
    lng: float | None = None


class AppointmentRecord(BaseModel):
    id: str
    patient_id: str | None = None
    nurse_id: str | None = None
    start_time: str
    end_time: str
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: str | None = None
    care_services: list[str] = Field(default_factory=lambda: ["General Care"])
