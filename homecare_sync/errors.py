"""Exception hierarchy shared by the sync pipeline and its entry points."""

from __future__ import annotations


class HomecareSyncError(Exception):
    """Base class for errors raised by this package."""


class TokenAcquisitionError(HomecareSyncError):
    """The bearer token could not be obtained from the token service."""


class FhirRequestError(HomecareSyncError):
    """A single-resource FHIR request failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SyncAbortedError(HomecareSyncError):
    """A sync cycle stopped because one of its steps raised."""

    def __init__(self, step: str, cause: str, summary: dict | None = None):
        super().__init__(f"Sync aborted at step '{step}': {cause}")
        self.step = step
        self.cause = cause
        self.summary = summary or {}


class RouteNotFoundError(HomecareSyncError):
    """No stored route has the requested id."""
