"""Scheduling data sources, chosen once at startup from ``DATA_SOURCE``."""

from __future__ import annotations

from homecare_sync.config import settings
from homecare_sync.services.auth import TokenProvider
from homecare_sync.services.fhir_client import FhirClient
from homecare_sync.sources.base import SchedulingSource
from homecare_sync.sources.fhir import FhirSource
from homecare_sync.sources.mock import MockSource


def build_source(kind: str | None = None) -> SchedulingSource:
    kind = (kind or settings.DATA_SOURCE).lower()
    if kind == "fhir":
        return FhirSource(FhirClient(TokenProvider()))
    if kind == "mock":
        return MockSource()
    raise ValueError(f"Unknown data source '{kind}' (expected 'fhir' or 'mock')")
