"""
JSON Schema checks for resources pulled out of FHIR search bundles.

All errors are collected rather than stopping at the first, so a skipped
entry can be logged with the full reason.
"""

from functools import lru_cache
from typing import Any

import jsonschema

from homecare_sync.schemas.fhir import RESOURCE_SCHEMAS


@lru_cache(maxsize=None)
def _validator_for(resource_type: str) -> jsonschema.Draft7Validator:
    return jsonschema.Draft7Validator(RESOURCE_SCHEMAS[resource_type])


def validate_resource(resource: Any, resource_type: str) -> list[str]:
    """
    Check ``resource`` against the schema registered for ``resource_type``.
    Returns a list of error messages (empty list = usable).
    """
    if resource_type not in RESOURCE_SCHEMAS:
        raise ValueError(f"No schema registered for {resource_type}")
    return [error.message for error in _validator_for(resource_type).iter_errors(resource)]
