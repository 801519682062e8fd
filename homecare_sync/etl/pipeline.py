"""
The sync cycle: upstream FHIR scheduling data -> local store.

    fetch_appointments -> resolve_references -> fetch_patients, fetch_nurses
        -> upsert_nurses -> upsert_patients -> upsert_appointments

Each step receives and returns a context dict and runs on the DAG engine
with ``stop_on_failure``, so any exception in a step aborts the cycle.
Per-record problems (a missing patient or nurse, a rejected row) never
raise; they are collected into the report.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from homecare_sync.errors import SyncAbortedError
from homecare_sync.etl.dag import DAG, TaskFailedError
from homecare_sync.etl.references import resolve_references
from homecare_sync.models.scheduling import SyncRun
from homecare_sync.schemas.api import (
    FailedAppointment,
    FailedRecord,
    SyncReport,
    TaskSummary,
)
from homecare_sync.services.store import SchedulingStore, UpsertResult
from homecare_sync.sources.base import SchedulingSource

logger = logging.getLogger(__name__)

PIPELINE_NAME = "fhir_scheduling_sync"


def current_week(today: date | None = None) -> tuple[date, date]:
    """Sunday..Saturday of the week containing ``today`` (UTC by default)."""
    today = today or datetime.now(timezone.utc).date()
    sunday = today - timedelta(days=(today.weekday() + 1) % 7)
    return sunday, sunday + timedelta(days=6)


# ---------------------------------------------------------------------------
# Pipeline steps
# ---------------------------------------------------------------------------


def fetch_appointments(context: dict[str, Any]) -> dict[str, Any]:
    source: SchedulingSource = context["source"]
    start, end = context["window"]
    appointments = source.fetch_appointments(start, end)
    logger.info("Fetched %d appointments for %s..%s", len(appointments), start, end)
    return {"appointments": appointments, "appointment_fetch_count": len(appointments)}


def resolve(context: dict[str, Any]) -> dict[str, Any]:
    refs = resolve_references(context.get("appointments", []))
    logger.info(
        "Appointments reference %d patients and %d nurses",
        len(refs.patient_ids),
        len(refs.nurse_ids),
    )
    return {"patient_ids": refs.patient_ids, "nurse_ids": refs.nurse_ids}


def fetch_patients(context: dict[str, Any]) -> dict[str, Any]:
    patients = context["source"].fetch_patients(context.get("patient_ids", []))
    logger.info("Fetched %d patients", len(patients))
    return {"patients": patients, "patient_fetch_count": len(patients)}


def fetch_nurses(context: dict[str, Any]) -> dict[str, Any]:
    nurses = context["source"].fetch_nurses(context.get("nurse_ids", []))
    logger.info("Fetched %d nurses", len(nurses))
    return {"nurses": nurses, "nurse_fetch_count": len(nurses)}


def upsert_nurses(context: dict[str, Any]) -> dict[str, Any]:
    store: SchedulingStore = context["store"]
    result = store.upsert_nurses(context.get("nurses", []))
    return {"nurse_result": result}


def upsert_patients(context: dict[str, Any]) -> dict[str, Any]:
    store: SchedulingStore = context["store"]
    result = store.upsert_patients(context.get("patients", []))
    return {"patient_result": result}


def upsert_appointments(context: dict[str, Any]) -> dict[str, Any]:
    """
    Appointments go last; the store checks each one against the patients
    and nurses present now, minus any whose own upsert failed this cycle.
    """
    store: SchedulingStore = context["store"]
    result = store.upsert_appointments(
        context.get("appointments", []),
        exclude_patient_ids=context["patient_result"].failed_ids,
        exclude_nurse_ids=context["nurse_result"].failed_ids,
    )
    return {"appointment_result": result}


# ---------------------------------------------------------------------------
# Pipeline factory
# ---------------------------------------------------------------------------

def build_sync_pipeline() -> DAG:
    """Construct the sync cycle DAG."""
    dag = DAG(PIPELINE_NAME, stop_on_failure=True)
    dag.add_task("fetch_appointments", fetch_appointments)
    dag.add_task("resolve_references", resolve, depends_on=["fetch_appointments"])
    dag.add_task("fetch_patients", fetch_patients, depends_on=["resolve_references"])
    dag.add_task("fetch_nurses", fetch_nurses, depends_on=["resolve_references"])
    dag.add_task("upsert_nurses", upsert_nurses, depends_on=["fetch_patients", "fetch_nurses"])
    dag.add_task("upsert_patients", upsert_patients, depends_on=["upsert_nurses"])
    dag.add_task("upsert_appointments", upsert_appointments, depends_on=["upsert_patients"])
    return dag


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _failures(result: UpsertResult | None) -> list[FailedRecord]:
    return [FailedRecord(**f) for f in result.failures] if result else []


def _build_report(dag: DAG, summary: dict[str, Any], window: tuple[date, date]) -> SyncReport:
    results: dict[str, Any] = {}
    for task in dag.tasks.values():
        results.update(task.result)

    nurse_result = results.get("nurse_result")
    patient_result = results.get("patient_result")
    appointment_result = results.get("appointment_result")
    return SyncReport(
        pipeline=summary["pipeline"],
        status=summary["status"],
        window_start=window[0].isoformat(),
        window_end=window[1].isoformat(),
        nurses=nurse_result.synced if nurse_result else 0,
        patients=patient_result.synced if patient_result else 0,
        appointments=appointment_result.synced if appointment_result else 0,
        fetched={
            "appointments": results.get("appointment_fetch_count", 0),
            "patients": results.get("patient_fetch_count", 0),
            "nurses": results.get("nurse_fetch_count", 0),
        },
        failed_appointments=[
            FailedAppointment(appointment_id=f["id"], error=f["error"])
            for f in (appointment_result.failures if appointment_result else [])
        ],
        failed_nurses=_failures(nurse_result),
        failed_patients=_failures(patient_result),
        tasks={name: TaskSummary(**info) for name, info in summary["tasks"].items()},
    )


def record_sync_run(
    store: SchedulingStore,
    dag: DAG,
    report: SyncReport,
    started_at: datetime,
    error: str | None = None,
) -> None:
    """Persist one row of sync history."""
    failures = [
        {"entity": "appointment", "id": f.appointment_id, "error": f.error}
        for f in report.failed_appointments
    ]
    failures += [
        {"entity": entity, "id": f.id, "error": f.error}
        for entity, items in (("nurse", report.failed_nurses), ("patient", report.failed_patients))
        for f in items
    ]
    with store.session() as session, session.begin():
        session.add(
            SyncRun(
                pipeline_name=dag.name,
                status=report.status,
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
                window_start=report.window_start,
                window_end=report.window_end,
                counts={
                    "nurses": report.nurses,
                    "patients": report.patients,
                    "appointments": report.appointments,
                    **{f"fetched_{k}": v for k, v in report.fetched.items()},
                },
                failures=failures,
                error=error,
                dag_definition=dag.to_dict(),
            )
        )


def list_sync_runs(store: SchedulingStore, limit: int = 20) -> list[SyncRun]:
    with store.session() as session:
        return list(
            session.scalars(select(SyncRun).order_by(SyncRun.started_at.desc()).limit(limit))
        )


def run_sync(
    source: SchedulingSource,
    store: SchedulingStore,
    window: tuple[date, date] | None = None,
    record_run: bool = True,
) -> SyncReport:
    """
    Run one sync cycle and return its report.

    Raises SyncAbortedError when a fetch or a whole-batch upsert fails;
    entity batches committed before the failure stay committed.
    """
    window = window or current_week()
    dag = build_sync_pipeline()
    started_at = datetime.now(timezone.utc)
    logger.info("=== Starting sync for week %s..%s ===", window[0], window[1])

    try:
        summary = dag.run(initial_context={"source": source, "store": store, "window": window})
    except TaskFailedError as exc:
        if record_run:
            report = _build_report(dag, exc.summary, window)
            try:
                record_sync_run(store, dag, report, started_at, error=exc.error)
            except SQLAlchemyError as record_exc:
                logger.error("Could not record failed sync run: %s", record_exc)
        raise SyncAbortedError(exc.task_name, exc.error, exc.summary) from exc

    report = _build_report(dag, summary, window)
    if record_run:
        record_sync_run(store, dag, report, started_at)

    logger.info(
        "Sync completed: %d nurses, %d patients, %d appointments (%d appointments failed)",
        report.nurses,
        report.patients,
        report.appointments,
        len(report.failed_appointments),
    )
    return report
