"""
Command-line entry point.

    homecare-sync init-db
    homecare-sync sync [--source fhir|mock] [--date YYYY-MM-DD]
    homecare-sync status [--date YYYY-MM-DD]
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date

from homecare_sync.config import settings
from homecare_sync.errors import SyncAbortedError
from homecare_sync.etl.pipeline import current_week, run_sync
from homecare_sync.models.database import create_db_engine, init_db
from homecare_sync.services.store import SchedulingStore
from homecare_sync.sources.registry import build_source

logger = logging.getLogger(__name__)


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="homecare-sync",
        description="Sync the week's HCHB appointments, patients and nurses into the local store.",
    )
    p.add_argument("--database-url", default=None, help="SQLAlchemy URL (defaults to DATABASE_URL).")
    p.add_argument("--verbose", action="store_true", help="Enable DEBUG logs")
    sub = p.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Run one sync cycle")
    sync.add_argument(
        "--source",
        choices=["fhir", "mock"],
        default=None,
        help="Data source (defaults to DATA_SOURCE).",
    )
    sync.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Any day in the week to sync, YYYY-MM-DD (defaults to today).",
    )

    sub.add_parser("init-db", help="Create the database tables")

    status = sub.add_parser("status", help="Show stored counts and one day's appointments")
    status.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Day to list, YYYY-MM-DD (defaults to today).",
    )
    return p


def _print_status(store: SchedulingStore, day: date) -> None:
    print(f"Nurses:       {len(store.list_nurses())}")
    print(f"Patients:     {len(store.list_patients())}")
    print(f"Appointments: {len(store.list_appointments())}")

    appointments = store.list_appointments(date=day.isoformat())
    print(f"\n{len(appointments)} appointment(s) on {day.isoformat()}")
    for appt in appointments:
        patient = store.get_patient(appt.patient_id) if appt.patient_id else None
        nurse = store.get_nurse(appt.nurse_id) if appt.nurse_id else None
        print(
            f"  {appt.start_time[11:16]}-{appt.end_time[11:16]}  {appt.status.value:<11}  "
            f"{patient.name if patient else appt.patient_id}"
            f" with {nurse.name if nurse else 'unassigned'}  [{appt.id}]"
        )


def main(argv: list[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.LOG_LEVEL,
        format="%(levelname)s | %(name)s | %(message)s",
    )

    engine = create_db_engine(args.database_url)
    init_db(engine)
    if args.command == "init-db":
        logger.info("Database tables ready at %s", engine.url)
        return 0
    if args.command == "status":
        _print_status(SchedulingStore(engine), args.date or date.today())
        return 0

    source = build_source(args.source)
    try:
        report = run_sync(source, SchedulingStore(engine), window=current_week(args.date))
    except SyncAbortedError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        source.close()

    print(report.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
