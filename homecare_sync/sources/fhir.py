"""Scheduling source backed by the HCHB FHIR R4 API."""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from homecare_sync.etl.transformers import (
    transform_appointment,
    transform_patient,
    transform_practitioner,
)
from homecare_sync.schemas.records import AppointmentRecord, NurseRecord, PatientRecord
from homecare_sync.services.fhir_client import FhirClient

logger = logging.getLogger(__name__)


class FhirSource:
    def __init__(self, client: FhirClient):
        self.client = client

    def fetch_appointments(self, start: date, end: date) -> list[AppointmentRecord]:
        logger.info("Fetching appointments from %s to %s", start, end)
        return self.client.search(
            "Appointment",
            transform_appointment,
            params={
                "_sort": "date",
                "date": [f"ge{start.isoformat()}", f"le{end.isoformat()}"],
            },
        )

    def fetch_patients(self, ids: Iterable[str]) -> list[PatientRecord]:
        ids = list(ids)
        if not ids:
            return []
        logger.info("Fetching %d specific patients", len(ids))
        return self.client.search_by_ids("Patient", ids, transform_patient)

    def fetch_nurses(self, ids: Iterable[str]) -> list[NurseRecord]:
        ids = list(ids)
        if not ids:
            return []
        logger.info("Fetching %d specific nurses", len(ids))
        return self.client.search_by_ids("Practitioner", ids, transform_practitioner)

    def get_appointment(self, appointment_id: str) -> AppointmentRecord:
        return self.client.read("Appointment", appointment_id, transform_appointment)

    def get_patient(self, patient_id: str) -> PatientRecord:
        return self.client.read("Patient", patient_id, transform_patient)

    def get_nurse(self, nurse_id: str) -> NurseRecord:
        return self.client.read("Practitioner", nurse_id, transform_practitioner)

    def close(self) -> None:
        self.client.close()
