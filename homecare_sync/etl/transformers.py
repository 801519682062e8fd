"""
FHIR R4 resource -> flat record transformers.

Every transformer is total: missing or malformed nested fields degrade to a
default value, they never raise. Fields that upstream encodes in several
historical ways are read through an ordered tuple of extractor functions;
the first one that returns a value wins.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable

from homecare_sync.schemas.records import (
    AppointmentRecord,
    AppointmentStatus,
    NurseRecord,
    PatientRecord,
)

logger = logging.getLogger(__name__)

HCHB_STRUCTURE = "https://api.hchb.com/fhir/r4/StructureDefinition"
APPOINTMENT_DATE_TIME_URL = f"{HCHB_STRUCTURE}/appointment-date-time"
SUBJECT_URL = f"{HCHB_STRUCTURE}/subject"
SUPPORTING_INFORMATION_URL = (
    "http://api.hchb.com/fhir/r4/StructureDefinition/supporting-information"
)
GEOLOCATION_URL = "http://hl7.org/fhir/StructureDefinition/geolocation"

DEFAULT_NAME = "Unknown"
DEFAULT_TITLE = "Healthcare Professional"
DEFAULT_CARE_SERVICE = "General Care"

STATUS_MAP: dict[str, AppointmentStatus] = {
    "proposed": AppointmentStatus.SCHEDULED,
    "pending": AppointmentStatus.SCHEDULED,
    "booked": AppointmentStatus.SCHEDULED,
    "arrived": AppointmentStatus.IN_PROGRESS,
    "fulfilled": AppointmentStatus.COMPLETED,
    "cancelled": AppointmentStatus.CANCELLED,
    "entered-in-error": AppointmentStatus.CANCELLED,
    "noshow": AppointmentStatus.MISSED,
}

_TIME_OF_DAY = re.compile(r"T(\d{2}:\d{2}:\d{2})")

Extractor = Callable[[dict[str, Any]], Any]


# ---------------------------------------------------------------------------
# Generic helpers
# ---------------------------------------------------------------------------

def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def first_present(resource: dict[str, Any], extractors: Iterable[Extractor]) -> Any:
    """Return the first non-empty value produced by ``extractors``."""
    for extract in extractors:
        value = extract(resource)
        if value:
            return value
    return None


def find_extension(extensions: Any, url: str) -> dict[str, Any]:
    """Find an extension by exact url or by its last path segment."""
    for ext in _as_list(extensions):
        ext = _as_dict(ext)
        ext_url = ext.get("url")
        if isinstance(ext_url, str) and (
            ext_url == url or ext_url.rsplit("/", 1)[-1] == url.rsplit("/", 1)[-1]
        ):
            return ext
    return {}


def strip_reference(reference: Any, resource_type: str) -> str | None:
    """``"Patient/123"`` (or a full URL ending in it) -> ``"123"``."""
    reference = _text(reference)
    if reference is None:
        return None
    prefix = f"{resource_type}/"
    if prefix not in reference:
        return None
    return _text(reference.split(prefix, 1)[1])


def resource_id(resource: dict[str, Any]) -> str:
    """The resource id, else an identifier value, else a synthetic id."""
    rid = _text(resource.get("id"))
    if rid:
        return rid
    for identifier in _as_list(resource.get("identifier")):
        value = _text(_as_dict(identifier).get("value"))
        if value:
            return value
    synthetic = f"unknown-{int(time.time() * 1000)}"
    logger.warning(
        "%s resource has no id or identifier, using %s",
        resource.get("resourceType", "Unknown"),
        synthetic,
    )
    return synthetic


def extract_name(resource: dict[str, Any], preferred_uses: tuple[str, ...]) -> str:
    names = [_as_dict(n) for n in _as_list(resource.get("name"))]
    if not names:
        return DEFAULT_NAME
    chosen = next((n for n in names if n.get("use") in preferred_uses), names[0])
    parts = [p for p in _as_list(chosen.get("given")) if _text(p)]
    if _text(chosen.get("family")):
        parts.append(chosen["family"])
    return " ".join(parts) or _text(chosen.get("text")) or DEFAULT_NAME


def extract_telecom(resource: dict[str, Any], system: str) -> str | None:
    matches = [
        t
        for t in (_as_dict(t) for t in _as_list(resource.get("telecom")))
        if t.get("system") == system and _text(t.get("value"))
    ]
    for use in ("mobile", "work", "home"):
        for contact in matches:
            if contact.get("use") == use:
                return contact["value"]
    return matches[0]["value"] if matches else None


def extract_address(resource: dict[str, Any]) -> str:
    """Format the first address as ``"street, city, state zip"``."""
    addresses = _as_list(resource.get("address"))
    if not addresses:
        return ""
    address = _as_dict(addresses[0])
    lines = _as_list(address.get("line"))
    street = lines[0] if lines and _text(lines[0]) else ""
    parts = ", ".join(
        p for p in (street, _text(address.get("city")), _text(address.get("state"))) if p
    )
    postal_code = _text(address.get("postalCode"))
    return f"{parts} {postal_code}" if postal_code else parts


def extract_coordinates(resource: dict[str, Any]) -> tuple[float | None, float | None]:
    geo = find_extension(resource.get("extension"), GEOLOCATION_URL)
    lat = _as_dict(find_extension(geo.get("extension"), "latitude")).get("valueDecimal")
    lng = _as_dict(find_extension(geo.get("extension"), "longitude")).get("valueDecimal")
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None, None
    return float(lat), float(lng)


# ---------------------------------------------------------------------------
# Practitioner -> Nurse
# ---------------------------------------------------------------------------

def transform_practitioner(resource: dict[str, Any]) -> NurseRecord:
    resource = _as_dict(resource)
    qualifications = _as_list(resource.get("qualification"))
    qualification = _as_dict(qualifications[0]) if qualifications else {}
    qualification_text = _text(_as_dict(qualification.get("code")).get("text"))
    lat, lng = extract_coordinates(resource)

    return NurseRecord(
        id=resource_id(resource),
        name=extract_name(resource, ("usual", "official")),
        title=qualification_text or DEFAULT_TITLE,
        specialty=qualification_text,
        phone=extract_telecom(resource, "phone"),
        email=extract_telecom(resource, "email"),
        address=extract_address(resource),
        lat=lat,
        lng=lng,
    )


# ---------------------------------------------------------------------------
# Patient -> Patient
# ---------------------------------------------------------------------------

CARE_NEED_EXTENSIONS: tuple[tuple[str, str], ...] = (
    ("diagnosis", ""),
    ("serviceCode", "Service: "),
    ("diet", "Diet: "),
)


def transform_patient(resource: dict[str, Any]) -> PatientRecord:
    resource = _as_dict(resource)
    extensions = resource.get("extension")

    care_needs = []
    for url, prefix in CARE_NEED_EXTENSIONS:
        value = _text(find_extension(extensions, url).get("valueString"))
        if value:
            care_needs.append(f"{prefix}{value}")

    lat, lng = extract_coordinates(resource)
    return PatientRecord(
        id=resource_id(resource),
        name=extract_name(resource, ("official", "usual")),
        phone=extract_telecom(resource, "phone"),
        email=extract_telecom(resource, "email"),
        care_needs=care_needs,
        medical_notes=_text(find_extension(extensions, "information").get("valueString")),
        address=extract_address(resource),
        lat=lat,
        lng=lng,
    )


# ---------------------------------------------------------------------------
# Appointment -> Appointment
# ---------------------------------------------------------------------------

def _parse_iso(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def shift_timestamp(value: str, hours: int) -> str:
    """Add ``hours`` to an ISO timestamp, keeping a ``Z`` suffix for UTC."""
    parsed = _parse_iso(value)
    if parsed is None:
        return value
    shifted = (parsed + timedelta(hours=hours)).isoformat()
    if value.endswith("Z") and shifted.endswith("+00:00"):
        shifted = shifted[: -len("+00:00")] + "Z"
    return shifted


def _times_from_date_time_extension(resource: dict) -> tuple[str, str | None] | None:
    ext = find_extension(resource.get("extension"), APPOINTMENT_DATE_TIME_URL)
    parts = ext.get("extension")
    date = _text(find_extension(parts, "AppointmentDate").get("valueString"))
    if not date:
        return None

    def combine(sub_url: str) -> str | None:
        raw = _text(find_extension(parts, sub_url).get("valueString"))
        match = _TIME_OF_DAY.search(raw) if raw else None
        return f"{date[:10]}T{match.group(1)}Z" if match else None

    start = combine("AppointmentStartTime")
    if not start:
        return None
    return start, combine("AppointmentEndTime")


def _times_from_requested_period(resource: dict) -> tuple[str, str | None] | None:
    periods = _as_list(resource.get("requestedPeriod"))
    period = _as_dict(periods[0]) if periods else {}
    start = _text(period.get("start"))
    return (start, _text(period.get("end"))) if start else None


def _times_from_start_end(resource: dict) -> tuple[str, str | None] | None:
    start = _text(resource.get("start"))
    return (start, _text(resource.get("end"))) if start else None


def _times_from_created(resource: dict) -> tuple[str, str | None] | None:
    created = _text(resource.get("created"))
    return (created, shift_timestamp(created, hours=1)) if created else None


TIME_EXTRACTORS: tuple[Extractor, ...] = (
    _times_from_date_time_extension,
    _times_from_requested_period,
    _times_from_start_end,
    _times_from_created,
)


def _patient_from_subject_extension(resource: dict) -> str | None:
    ext = find_extension(resource.get("extension"), SUBJECT_URL)
    return strip_reference(_as_dict(ext.get("valueReference")).get("reference"), "Patient")


def _patient_from_supporting_information(resource: dict) -> str | None:
    ext = find_extension(resource.get("extension"), SUPPORTING_INFORMATION_URL)
    ref = find_extension(ext.get("extension"), "PatientReference")
    return strip_reference(_as_dict(ref.get("valueReference")).get("reference"), "Patient")


def _patient_from_subject(resource: dict) -> str | None:
    return strip_reference(_as_dict(resource.get("subject")).get("reference"), "Patient")


PATIENT_REFERENCE_EXTRACTORS: tuple[Extractor, ...] = (
    _patient_from_subject_extension,
    _patient_from_supporting_information,
    _patient_from_subject,
)


def _nurse_reference(resource: dict) -> str | None:
    for participant in _as_list(resource.get("participant")):
        reference = _as_dict(_as_dict(participant).get("actor")).get("reference")
        if not (isinstance(reference, str) and reference.startswith("Practitioner/")):
            continue
        nurse_id = strip_reference(reference, "Practitioner")
        if nurse_id:
            return nurse_id
    return None


def map_status(fhir_status: Any) -> AppointmentStatus:
    if not isinstance(fhir_status, str):
        return AppointmentStatus.SCHEDULED
    return STATUS_MAP.get(fhir_status, AppointmentStatus.SCHEDULED)


def _concept_display(concept: Any) -> str | None:
    concept = _as_dict(concept)
    codings = _as_list(concept.get("coding"))
    if codings:
        coding = _as_dict(codings[0])
        value = _text(coding.get("display")) or _text(coding.get("code"))
        if value:
            return value
    return _text(concept.get("text"))


def extract_care_services(resource: dict[str, Any]) -> list[str]:
    services = [
        s for s in map(_concept_display, _as_list(resource.get("serviceType"))) if s
    ]
    if not services:
        appointment_type = _concept_display(resource.get("appointmentType"))
        if appointment_type:
            services.append(appointment_type)
    return services or [DEFAULT_CARE_SERVICE]


def transform_appointment(resource: dict[str, Any]) -> AppointmentRecord:
    resource = _as_dict(resource)
    times = first_present(resource, TIME_EXTRACTORS)
    if times is None:
        now = datetime.now(timezone.utc).isoformat()
        logger.warning("Appointment %s has no usable time, using now", resource.get("id"))
        times = (now, now)
    start_time, end_time = times

    return AppointmentRecord(
        id=resource_id(resource),
        patient_id=first_present(resource, PATIENT_REFERENCE_EXTRACTORS),
        nurse_id=_nurse_reference(resource),
        start_time=start_time,
        end_time=end_time or start_time,
        status=map_status(resource.get("status")),
        notes=_text(resource.get("comment")) or _text(resource.get("description")),
        care_services=extract_care_services(resource),
    )
