"""
HTTP client for the upstream FHIR R4 API.

Bulk searches follow ``link[relation=next]`` pagination up to a record cap
and are best-effort: a failed page is logged and ends the walk, returning
what was collected so far. Single-resource reads raise ``FhirRequestError``.
Token errors are never swallowed; they surface as ``TokenAcquisitionError``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable, Protocol, TypeVar

import httpx

from homecare_sync.config import settings
from homecare_sync.errors import FhirRequestError
from homecare_sync.etl.references import chunked
from homecare_sync.services.validation import validate_resource

logger = logging.getLogger(__name__)

T = TypeVar("T")

FHIR_JSON = "application/fhir+json"


class TokenSource(Protocol):
    def get_token(self) -> str: ...


def parse_body(response: httpx.Response) -> Any:
    """Decode a FHIR response body, unwrapping bodies delivered as a JSON string."""
    data = response.json()
    if isinstance(data, str):
        data = json.loads(data)
    return data


def next_link(bundle: dict[str, Any]) -> str | None:
    links = bundle.get("link")
    for link in links if isinstance(links, list) else []:
        if isinstance(link, dict) and link.get("relation") == "next" and link.get("url"):
            return link["url"]
    return None


class FhirClient:
    """Thin synchronous wrapper around ``httpx.Client`` for FHIR searches and reads."""

    def __init__(
        self,
        token_source: TokenSource,
        base_url: str | None = None,
        page_size: int | None = None,
        cap: int | None = None,
        id_batch_size: int | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.token_source = token_source
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.page_size = page_size or settings.PAGE_SIZE
        self.cap = cap or settings.FETCH_CAP
        self.id_batch_size = id_batch_size or settings.ID_BATCH_SIZE
        self._client = httpx.Client(
            timeout=timeout or settings.REQUEST_TIMEOUT_SECONDS, transport=transport
        )

    def __enter__(self) -> FhirClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token_source.get_token()}",
            "Accept": FHIR_JSON,
        }

    # ------------------------------------------------------------------
    # Bulk search
    # ------------------------------------------------------------------

    def search(
        self,
        resource_type: str,
        transform: Callable[[dict[str, Any]], T],
        params: dict[str, Any] | None = None,
        cap: int | None = None,
    ) -> list[T]:
        """
        Walk every page of ``GET /<resource_type>?<params>``, transforming
        each matching entry, until there is no next link or ``cap`` records
        have been collected.
        """
        cap = cap or self.cap
        next_url: str | None = f"{self.base_url}/{resource_type}"
        page_params: dict[str, Any] | None = {"_count": self.page_size, **(params or {})}
        results: list[T] = []
        page = 0

        while next_url and len(results) < cap:
            headers = self._headers()
            page += 1
            try:
                response = self._client.get(next_url, params=page_params, headers=headers)
                response.raise_for_status()
                bundle = parse_body(response)
            except (httpx.HTTPError, ValueError) as exc:
                logger.error(
                    "Error fetching %s page %d, stopping pagination: %s",
                    resource_type,
                    page,
                    exc,
                )
                break

            entries = (bundle.get("entry") or []) if isinstance(bundle, dict) else None
            if not isinstance(entries, list):
                logger.error(
                    "Unexpected %s response body on page %d, stopping pagination",
                    resource_type,
                    page,
                )
                break

            batch = self._transform_entries(entries, resource_type, transform)
            results.extend(batch)
            logger.info(
                "Fetched %d %s records on page %d (total: %d)",
                len(batch),
                resource_type,
                page,
                len(results),
            )

            # the next link already embeds the original filters
            next_url = next_link(bundle)
            page_params = None

        if len(results) > cap:
            logger.warning("Truncating %s results to cap of %d", resource_type, cap)
            results = results[:cap]
        return results

    def search_by_ids(
        self,
        resource_type: str,
        ids: Iterable[str],
        transform: Callable[[dict[str, Any]], T],
    ) -> list[T]:
        """Fetch specific resources with ``_id`` searches, one batch at a time."""
        results: list[T] = []
        for batch in chunked(list(ids), self.id_batch_size):
            results.extend(
                self.search(
                    resource_type,
                    transform,
                    params={"_id": ",".join(batch), "_count": len(batch)},
                )
            )
        return results

    def _transform_entries(
        self,
        entries: list[Any],
        resource_type: str,
        transform: Callable[[dict[str, Any]], T],
    ) -> list[T]:
        records = []
        for entry in entries:
            resource = entry.get("resource") if isinstance(entry, dict) else None
            errors = validate_resource(resource, resource_type)
            if errors:
                logger.warning("Skipping %s bundle entry: %s", resource_type, "; ".join(errors))
                continue
            records.append(transform(resource))
        return records

    # ------------------------------------------------------------------
    # Single read
    # ------------------------------------------------------------------

    def read(
        self,
        resource_type: str,
        resource_id: str,
        transform: Callable[[dict[str, Any]], T],
    ) -> T:
        """``GET /<resource_type>/<id>``; any failure is raised to the caller."""
        url = f"{self.base_url}/{resource_type}/{resource_id}"
        headers = self._headers()
        try:
            response = self._client.get(url, headers=headers)
            response.raise_for_status()
            resource = parse_body(response)
        except httpx.HTTPStatusError as exc:
            raise FhirRequestError(
                f"{resource_type}/{resource_id} request failed: {exc}",
                status_code=exc.response.status_code,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise FhirRequestError(f"{resource_type}/{resource_id} request failed: {exc}") from exc

        errors = validate_resource(resource, resource_type)
        if errors:
            raise FhirRequestError(
                f"{resource_type}/{resource_id} returned an unexpected body: {'; '.join(errors)}"
            )
        return transform(resource)
