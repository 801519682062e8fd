"""The one interface every scheduling data source implements."""

from __future__ import annotations

from datetime import date
from typing import Iterable, Protocol, runtime_checkable

from homecare_sync.schemas.records import AppointmentRecord, NurseRecord, PatientRecord


@runtime_checkable
class SchedulingSource(Protocol):
    """Upstream scheduling data, already transformed into flat records.

    The FHIR-backed and mock sources both implement this, so the sync
    pipeline never needs to know which one it was given.
    """

    def fetch_appointments(self, start: date, end: date) -> list[AppointmentRecord]:
        """Appointments dated within ``start``..``end`` inclusive."""
        ...

    def fetch_patients(self, ids: Iterable[str]) -> list[PatientRecord]:
        """Only the patients with the given ids."""
        ...

    def fetch_nurses(self, ids: Iterable[str]) -> list[NurseRecord]:
        """Only the nurses with the given ids."""
        ...

    def get_appointment(self, appointment_id: str) -> AppointmentRecord:
        ...

    def get_patient(self, patient_id: str) -> PatientRecord:
        ...

    def get_nurse(self, nurse_id: str) -> NurseRecord:
        ...

    def close(self) -> None:
        ...
