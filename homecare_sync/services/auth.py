"""Bearer tokens for the HCHB FHIR API (``agency_auth`` grant)."""

from __future__ import annotations

import logging
import time

import httpx

from homecare_sync.config import settings
from homecare_sync.errors import TokenAcquisitionError

logger = logging.getLogger(__name__)

# Refresh this many seconds before the token actually expires
EXPIRY_MARGIN_SECONDS = 60


class TokenProvider:
    """Fetches and caches the bearer token used on every FHIR request."""

    def __init__(
        self,
        token_url: str | None = None,
        client_id: str | None = None,
        resource_security_id: str | None = None,
        agency_secret: str | None = None,
        scope: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.token_url = token_url or settings.TOKEN_URL
        self.client_id = client_id or settings.CLIENT_ID
        self.resource_security_id = resource_security_id or settings.RESOURCE_SECURITY_ID
        self.agency_secret = agency_secret or settings.AGENCY_SECRET
        self.scope = scope or settings.TOKEN_SCOPE
        self.timeout = timeout or settings.TOKEN_TIMEOUT_SECONDS
        self._transport = transport
        self._token: str | None = None
        self._expires_at: float = 0.0

    def _missing_settings(self) -> list[str]:
        required = {
            "TOKEN_URL": self.token_url,
            "CLIENT_ID": self.client_id,
            "RESOURCE_SECURITY_ID": self.resource_security_id,
            "AGENCY_SECRET": self.agency_secret,
        }
        return [name for name, value in required.items() if not value]

    def get_token(self) -> str:
        """Return a valid token, requesting a new one when the cached one is stale."""
        if self._token and time.time() < self._expires_at - EXPIRY_MARGIN_SECONDS:
            return self._token

        missing = self._missing_settings()
        if missing:
            raise TokenAcquisitionError(
                f"Missing required settings: {', '.join(missing)}"
            )

        logger.info("Requesting a new HCHB API token")
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    self.token_url,
                    data={
                        "grant_type": "agency_auth",
                        "client_id": self.client_id,
                        "scope": self.scope,
                        "resource_security_id": self.resource_security_id,
                        "agency_secret": self.agency_secret,
                    },
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Failed to obtain token: %s", exc)
            raise TokenAcquisitionError(f"Failed to obtain token: {exc}") from exc

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise TokenAcquisitionError("Token response did not contain access_token")

        self._token = token
        self._expires_at = time.time() + float(data.get("expires_in", 3600))
        logger.info("Obtained HCHB API token")
        return token
