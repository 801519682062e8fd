"""
Minimal JSON schemas for the FHIR R4 resources the sync consumes.

Only the resource type is checked: search bundles can carry entries that
are not the expected resource at all (``OperationOutcome`` for instance).
Field shapes are left to the transformers, which degrade malformed fields
to defaults instead of dropping the record.
"""


def _resource_schema(resource_type: str) -> dict:
    return {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "title": f"FHIR {resource_type} (sync subset)",
        "type": "object",
        "required": ["resourceType"],
        "properties": {
            "resourceType": {"type": "string", "const": resource_type},
        },
    }


FHIR_PRACTITIONER_SCHEMA: dict = _resource_schema("Practitioner")
FHIR_PATIENT_SCHEMA: dict = _resource_schema("Patient")
FHIR_APPOINTMENT_SCHEMA: dict = _resource_schema("Appointment")

RESOURCE_SCHEMAS: dict[str, dict] = {
    "Practitioner": FHIR_PRACTITIONER_SCHEMA,
    "Patient": FHIR_PATIENT_SCHEMA,
    "Appointment": FHIR_APPOINTMENT_SCHEMA,
}
