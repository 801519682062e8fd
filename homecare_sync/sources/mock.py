"""
Development data source.

Serves a small set of FHIR-shaped Practitioner, Patient and Appointment
resources through the same transformers the live source uses, with
appointment dates laid out around an anchor day so the current-week sync
always finds something.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Iterable

from homecare_sync.errors import FhirRequestError
from homecare_sync.etl.transformers import (
    APPOINTMENT_DATE_TIME_URL,
    SUBJECT_URL,
    transform_appointment,
    transform_patient,
    transform_practitioner,
)
from homecare_sync.schemas.records import AppointmentRecord, NurseRecord, PatientRecord


def _practitioner(pid: str, given: str, family: str, qualification: str, phone: str) -> dict:
    return {
        "resourceType": "Practitioner",
        "id": pid,
        "active": True,
        "name": [{"use": "official", "family": family, "given": [given]}],
        "telecom": [
            {"system": "phone", "value": phone, "use": "work"},
            {"system": "email", "value": f"{given}.{family}@example.com".lower(), "use": "work"},
        ],
        "qualification": [{"code": {"text": qualification}}],
    }


def _patient(pid: str, given: str, family: str, diagnosis: str, notes: str) -> dict:
    return {
        "resourceType": "Patient",
        "id": pid,
        "name": [{"use": "official", "family": family, "given": [given]}],
        "telecom": [{"system": "phone", "value": "512-555-0000", "use": "home"}],
        "address": [
            {"line": ["100 Congress Ave"], "city": "Austin", "state": "TX", "postalCode": "78701"}
        ],
        "extension": [
            {"url": "diagnosis", "valueString": diagnosis},
            {"url": "information", "valueString": notes},
        ],
    }


def _appointment(aid: str, day: date, start: str, end: str, patient: str, nurse: str,
                 service: str, status: str = "booked") -> dict:
    return {
        "resourceType": "Appointment",
        "id": aid,
        "status": status,
        "extension": [
            {
                "url": APPOINTMENT_DATE_TIME_URL,
                "extension": [
                    {"url": "AppointmentDate", "valueString": day.isoformat()},
                    {"url": "AppointmentStartTime", "valueString": f"1900-01-01T{start}.000+00:00"},
                    {"url": "AppointmentEndTime", "valueString": f"1900-01-01T{end}.000+00:00"},
                ],
            },
            {"url": SUBJECT_URL, "valueReference": {"reference": f"Patient/{patient}"}},
        ],
        "participant": [{"actor": {"reference": f"Practitioner/{nurse}"}}],
        "serviceType": [{"coding": [{"display": service}]}],
    }


def sample_resources(anchor: date) -> dict[str, list[dict[str, Any]]]:
    """Mock FHIR resources with appointments on ``anchor`` and the day after."""
    next_day = anchor + timedelta(days=1)
    return {
        "Practitioner": [
            _practitioner("nurse-1", "Jane", "Smith", "Registered Nurse", "512-555-1234"),
            _practitioner("nurse-2", "John", "Doe", "Licensed Vocational Nurse", "512-555-5678"),
            _practitioner("nurse-3", "Sarah", "Johnson", "Physical Therapist", "512-555-9012"),
        ],
        "Patient": [
            _patient("patient-1", "Robert", "Johnson", "Hypertension",
                     "Requires regular BP monitoring."),
            _patient("patient-2", "Sarah", "Miller", "Hip replacement",
                     "Recovering from surgery, needs wound care."),
            _patient("patient-3", "David", "Wilson", "Type 1 diabetes",
                     "Insulin administration and glucose monitoring."),
        ],
        "Appointment": [
            _appointment("appointment-1", anchor, "09:00:00", "09:30:00",
                         "patient-1", "nurse-1", "Medication Administration"),
            _appointment("appointment-2", anchor, "10:30:00", "11:15:00",
                         "patient-2", "nurse-1", "Wound Care"),
            _appointment("appointment-3", anchor, "13:00:00", "14:00:00",
                         "patient-3", "nurse-2", "Diabetes Management"),
            _appointment("appointment-4", next_day, "09:00:00", "10:00:00",
                         "patient-2", "nurse-3", "Physical Therapy", status="pending"),
        ],
    }


class MockSource:
    def __init__(self, anchor: date | None = None):
        self.resources = sample_resources(anchor or date.today())

    def _by_id(self, resource_type: str, resource_id: str) -> dict[str, Any]:
        for resource in self.resources[resource_type]:
            if resource["id"] == resource_id:
                return resource
        raise FhirRequestError(f"{resource_type}/{resource_id} not found", status_code=404)

    def fetch_appointments(self, start: date, end: date) -> list[AppointmentRecord]:
        records = [transform_appointment(r) for r in self.resources["Appointment"]]
        return [
            r for r in records if start.isoformat() <= r.start_time[:10] <= end.isoformat()
        ]

    def fetch_patients(self, ids: Iterable[str]) -> list[PatientRecord]:
        wanted = set(ids)
        return [transform_patient(r) for r in self.resources["Patient"] if r["id"] in wanted]

    def fetch_nurses(self, ids: Iterable[str]) -> list[NurseRecord]:
        wanted = set(ids)
        return [
            transform_practitioner(r) for r in self.resources["Practitioner"] if r["id"] in wanted
        ]

    def get_appointment(self, appointment_id: str) -> AppointmentRecord:
        return transform_appointment(self._by_id("Appointment", appointment_id))

    def get_patient(self, patient_id: str) -> PatientRecord:
        return transform_patient(self._by_id("Patient", patient_id))

    def get_nurse(self, nurse_id: str) -> NurseRecord:
        return transform_practitioner(self._by_id("Practitioner", nurse_id))

    def close(self) -> None:
        pass
