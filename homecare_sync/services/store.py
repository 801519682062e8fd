"""
Persistence for synced scheduling records.

Each ``upsert_*`` call is one transaction over one entity type. Records are
written with full-replace semantics keyed by upstream id; a record that
fails on its own is rolled back to a savepoint and reported, the rest of the
batch still commits. Anything that breaks the batch as a whole propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from homecare_sync.models.scheduling import Appointment, Nurse, Patient
from homecare_sync.schemas.records import (
    AppointmentRecord,
    NurseRecord,
    PatientRecord,
)

logger = logging.getLogger(__name__)


@dataclass
class UpsertResult:
    """Outcome of one entity batch: rows written and per-record failures."""

    synced: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def failed_ids(self) -> set[str]:
        return {f["id"] for f in self.failures}

    def fail(self, record_id: str, error: str) -> None:
        self.failures.append({"id": record_id, "error": error})


def _db_error(exc: SQLAlchemyError) -> str:
    return str(getattr(exc, "orig", None) or exc)


def _nurse_row(record: NurseRecord) -> Nurse:
    return Nurse(
        id=record.id,
        name=record.name,
        title=record.title,
        specialty=record.specialty,
        phone_number=record.phone,
        email=record.email,
        address=record.address,
        lat=record.lat,
        lng=record.lng,
    )


def _patient_row(record: PatientRecord) -> Patient:
    return Patient(
        id=record.id,
        name=record.name,
        phone_number=record.phone,
        email=record.email,
        care_needs=list(record.care_needs),
        medical_notes=record.medical_notes,
        address=record.address,
        lat=record.lat,
        lng=record.lng,
    )


def _appointment_row(record: AppointmentRecord) -> Appointment:
    return Appointment(
        id=record.id,
        patient_id=record.patient_id,
        nurse_id=record.nurse_id,
        start_time=record.start_time,
        end_time=record.end_time,
        status=record.status.value,
        notes=record.notes,
        care_services=list(record.care_services),
    )


def nurse_record(row: Nurse) -> NurseRecord:
    return NurseRecord(
        id=row.id,
        name=row.name,
        title=row.title,
        specialty=row.specialty,
        phone=row.phone_number,
        email=row.email,
        address=row.address or "",
        lat=row.lat,
        lng=row.lng,
    )


def patient_record(row: Patient) -> PatientRecord:
    return PatientRecord(
        id=row.id,
        name=row.name,
        phone=row.phone_number,
        email=row.email,
        care_needs=row.care_needs or [],
        medical_notes=row.medical_notes,
        address=row.address or "",
        lat=row.lat,
        lng=row.lng,
    )


def appointment_record(row: Appointment) -> AppointmentRecord:
    return AppointmentRecord(
        id=row.id,
        patient_id=row.patient_id,
        nurse_id=row.nurse_id,
        start_time=row.start_time,
        end_time=row.end_time,
        status=row.status,
        notes=row.notes,
        care_services=row.care_services or [],
    )


class SchedulingStore:
    """SQLAlchemy-backed store the sync cycle writes into."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def session(self) -> Session:
        return self._sessions()

    # ------------------------------------------------------------------
    # Upserts
    # ------------------------------------------------------------------

    def _upsert(self, kind: str, records: Iterable, to_row) -> UpsertResult:
        result = UpsertResult()
        with self.session() as session, session.begin():
            for record in records:
                try:
                    with session.begin_nested():
                        session.merge(to_row(record))
                except SQLAlchemyError as exc:
                    logger.error("Error syncing %s %s: %s", kind, record.id, exc)
                    result.fail(record.id, _db_error(exc))
                    continue
                result.synced += 1
        logger.info("Upserted %d %ss (%d failed)", result.synced, kind, len(result.failures))
        return result

    def upsert_nurses(self, records: Iterable[NurseRecord]) -> UpsertResult:
        return self._upsert("nurse", records, _nurse_row)

    def upsert_patients(self, records: Iterable[PatientRecord]) -> UpsertResult:
        return self._upsert("patient", records, _patient_row)

    def upsert_appointments(
        self,
        records: Iterable[AppointmentRecord],
        exclude_patient_ids: Iterable[str] = (),
        exclude_nurse_ids: Iterable[str] = (),
    ) -> UpsertResult:
        """
        Upsert appointments whose patient and nurse are already stored.

        ``exclude_*`` ids are treated as missing even if a row exists, so a
        patient or nurse whose own upsert failed this cycle does not count.
        """
        result = UpsertResult()
        with self.session() as session, session.begin():
            valid_patient_ids = self._ids(session, Patient) - set(exclude_patient_ids)
            valid_nurse_ids = self._ids(session, Nurse) - set(exclude_nurse_ids)

            for record in records:
                if record.patient_id not in valid_patient_ids:
                    error = f"Patient ID {record.patient_id} not found"
                elif record.nurse_id not in valid_nurse_ids:
                    error = f"Nurse ID {record.nurse_id} not found"
                else:
                    error = None

                if error:
                    logger.error("Skipping appointment %s: %s", record.id, error)
                    result.fail(record.id, error)
                    continue

                try:
                    with session.begin_nested():
                        session.merge(_appointment_row(record))
                except SQLAlchemyError as exc:
                    logger.error("Failed to insert appointment %s: %s", record.id, exc)
                    result.fail(record.id, _db_error(exc))
                    continue
                result.synced += 1

        if result.failures:
            logger.warning(
                "Synced %d appointments, %d failed", result.synced, len(result.failures)
            )
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def _ids(session: Session, model) -> set[str]:
        return set(session.scalars(select(model.id)))

    def existing_patient_ids(self) -> set[str]:
        with self.session() as session:
            return self._ids(session, Patient)

    def existing_nurse_ids(self) -> set[str]:
        with self.session() as session:
            return self._ids(session, Nurse)

    def get_nurse(self, nurse_id: str) -> NurseRecord | None:
        with self.session() as session:
            row = session.get(Nurse, nurse_id)
            return nurse_record(row) if row else None

    def get_patient(self, patient_id: str) -> PatientRecord | None:
        with self.session() as session:
            row = session.get(Patient, patient_id)
            return patient_record(row) if row else None

    def get_appointment(self, appointment_id: str) -> AppointmentRecord | None:
        with self.session() as session:
            row = session.get(Appointment, appointment_id)
            return appointment_record(row) if row else None

    def list_nurses(self) -> list[NurseRecord]:
        with self.session() as session:
            return [nurse_record(r) for r in session.scalars(select(Nurse).order_by(Nurse.name))]

    def list_patients(self) -> list[PatientRecord]:
        with self.session() as session:
            return [
                patient_record(r) for r in session.scalars(select(Patient).order_by(Patient.name))
            ]

    def list_appointments(
        self,
        date: str | None = None,
        nurse_id: str | None = None,
        patient_id: str | None = None,
    ) -> list[AppointmentRecord]:
        """Appointments ordered by start time; ``date`` is ``YYYY-MM-DD``."""
        query = select(Appointment).order_by(Appointment.start_time)
        if date:
            query = query.where(Appointment.start_time.like(f"{date}%"))
        if nurse_id:
            query = query.where(Appointment.nurse_id == nurse_id)
        if patient_id:
            query = query.where(Appointment.patient_id == patient_id)
        with self.session() as session:
            return [appointment_record(r) for r in session.scalars(query)]
