"""Tests for the FHIR client – all HTTP goes through httpx.MockTransport."""

import json

import httpx
import pytest

from homecare_sync.errors import FhirRequestError, TokenAcquisitionError
from homecare_sync.etl.transformers import (
    transform_appointment,
    transform_patient,
    transform_practitioner,
)
from homecare_sync.schemas.records import AppointmentStatus
from homecare_sync.services.fhir_client import FhirClient, next_link, parse_body

BASE_URL = "https://fhir.test/r4"


class StaticToken:
    def __init__(self, token="test-token"):
        self.token = token
        self.calls = 0

    def get_token(self):
        self.calls += 1
        return self.token


class FailingToken:
    def get_token(self):
        raise TokenAcquisitionError("token service down")


def _make_bundle(ids, next_url=None):
    bundle = {
        "resourceType": "Bundle",
        "entry": [{"resource": {"resourceType": "Practitioner", "id": i}} for i in ids],
        "link": [{"relation": "self", "url": f"{BASE_URL}/Practitioner"}],
    }
    if next_url:
        bundle["link"].append({"relation": "next", "url": next_url})
    return bundle


def _make_paged_handler(pages, requests, page_size=2):
    """Serve ``pages`` bundles, each linking to the next via ``?page=N``."""

    def handler(request):
        requests.append(request)
        page = int(request.url.params.get("page", "1"))
        ids = [f"n{(page - 1) * page_size + i}" for i in range(page_size)]
        next_url = f"{BASE_URL}/Practitioner?page={page + 1}" if page < pages else None
        return httpx.Response(200, json=_make_bundle(ids, next_url))

    return handler


def _make_client(handler, token=None, **kwargs):
    return FhirClient(
        token or StaticToken(),
        base_url=BASE_URL,
        page_size=kwargs.pop("page_size", 2),
        cap=kwargs.pop("cap", 500),
        id_batch_size=kwargs.pop("id_batch_size", 50),
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

def test_search_follows_next_links_and_stops_on_last_page():
    """N pages are fetched exactly once each; no request after the last page."""
    requests = []
    client = _make_client(_make_paged_handler(pages=3, requests=requests))

    nurses = client.search("Practitioner", transform_practitioner)

    assert len(requests) == 3
    assert [n.id for n in nurses] == ["n0", "n1", "n2", "n3", "n4", "n5"]


def test_search_stops_early_at_cap():
    """Once the cap is reached no further pages are requested."""
    requests = []
    client = _make_client(_make_paged_handler(pages=10, requests=requests), cap=3)

    nurses = client.search("Practitioner", transform_practitioner)

    assert len(requests) == 2
    assert len(nurses) == 3


def test_first_page_carries_params_and_auth_headers():
    requests = []
    token = StaticToken("abc123")
    client = _make_client(_make_paged_handler(pages=2, requests=requests), token=token)

    client.search(
        "Practitioner",
        transform_practitioner,
        params={"_sort": "date", "date": ["ge2024-01-07", "le2024-01-13"]},
    )

    first, second = requests
    assert first.url.path == "/r4/Practitioner"
    assert first.url.params["_count"] == "2"
    assert first.url.params.get_list("date") == ["ge2024-01-07", "le2024-01-13"]
    assert first.headers["Authorization"] == "Bearer abc123"
    assert first.headers["Accept"] == "application/fhir+json"
    # the next link is followed verbatim
    assert dict(second.url.params) == {"page": "2"}
    assert token.calls == 2


def test_search_accepts_bundle_delivered_as_json_string():
    def handler(request):
        return httpx.Response(200, json=json.dumps(_make_bundle(["n1", "n2"])))

    nurses = _make_client(handler).search("Practitioner", transform_practitioner)
    assert [n.id for n in nurses] == ["n1", "n2"]


def test_search_returns_partial_results_when_a_page_fails():
    requests = []

    def handler(request):
        requests.append(request)
        if request.url.params.get("page") == "2":
            return httpx.Response(500, text="upstream exploded")
        return httpx.Response(200, json=_make_bundle(["n1"], f"{BASE_URL}/Practitioner?page=2"))

    nurses = _make_client(handler).search("Practitioner", transform_practitioner)

    assert [n.id for n in nurses] == ["n1"]
    assert len(requests) == 2


def test_search_returns_empty_list_on_connection_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert _make_client(handler).search("Practitioner", transform_practitioner) == []


def test_search_returns_empty_list_on_invalid_json():
    def handler(request):
        return httpx.Response(200, content=b"<html>maintenance</html>")

    assert _make_client(handler).search("Practitioner", transform_practitioner) == []


def test_search_skips_entries_that_fail_validation():
    def handler(request):
        bundle = _make_bundle(["n1"])
        bundle["entry"].append({"resource": {"resourceType": "OperationOutcome", "issue": []}})
        bundle["entry"].append({"search": {"mode": "match"}})
        return httpx.Response(200, json=bundle)

    nurses = _make_client(handler).search("Practitioner", transform_practitioner)
    assert [n.id for n in nurses] == ["n1"]


def test_malformed_fields_degrade_instead_of_dropping_the_entry():
    """Field shapes are the transformer's job; the entry is still returned."""

    def handler(request):
        appointment = {
            "resourceType": "Appointment",
            "id": "a1",
            "status": None,
            "start": "2024-01-10T09:00:00Z",
            "participant": {"actor": "Practitioner/n1"},
            "extension": "oops",
        }
        return httpx.Response(200, json={"resourceType": "Bundle", "entry": [{"resource": appointment}]})

    appointments = _make_client(handler).search("Appointment", transform_appointment)

    assert [a.id for a in appointments] == ["a1"]
    assert appointments[0].status == AppointmentStatus.SCHEDULED
    assert appointments[0].nurse_id is None


def test_patient_with_non_list_name_is_kept():
    def handler(request):
        patient = {"resourceType": "Patient", "id": "p1", "name": {"text": "Sarah"}, "address": {}}
        return httpx.Response(200, json={"resourceType": "Bundle", "entry": [{"resource": patient}]})

    patients = _make_client(handler).search("Patient", transform_patient)

    assert [(p.id, p.name) for p in patients] == [("p1", "Unknown")]


@pytest.mark.parametrize("entries", [5, "entries", {"resource": {}}])
def test_malformed_bundle_entries_end_pagination_with_partial_results(entries):
    requests = []

    def handler(request):
        requests.append(request)
        if request.url.params.get("page") == "2":
            return httpx.Response(200, json={"resourceType": "Bundle", "entry": entries})
        return httpx.Response(200, json=_make_bundle(["n1"], f"{BASE_URL}/Practitioner?page=2"))

    nurses = _make_client(handler).search("Practitioner", transform_practitioner)

    assert [n.id for n in nurses] == ["n1"]
    assert len(requests) == 2


def test_malformed_link_list_is_treated_as_last_page():
    def handler(request):
        bundle = _make_bundle(["n1"])
        bundle["link"] = "next"
        return httpx.Response(200, json=bundle)

    nurses = _make_client(handler).search("Practitioner", transform_practitioner)
    assert [n.id for n in nurses] == ["n1"]


def test_token_failure_is_not_swallowed():
    def handler(request):
        pytest.fail("No request should be sent without a token")

    client = _make_client(handler, token=FailingToken())
    with pytest.raises(TokenAcquisitionError):
        client.search("Practitioner", transform_practitioner)


# ---------------------------------------------------------------------------
# Batched id search
# ---------------------------------------------------------------------------

def test_search_by_ids_batches_id_lists():
    seen = []

    def handler(request):
        ids = request.url.params["_id"].split(",")
        seen.append((ids, request.url.params["_count"]))
        return httpx.Response(200, json=_make_bundle(ids))

    client = _make_client(handler, id_batch_size=2)
    nurses = client.search_by_ids("Practitioner", ["a", "b", "c", "d", "e"], transform_practitioner)

    assert seen == [(["a", "b"], "2"), (["c", "d"], "2"), (["e"], "1")]
    assert [n.id for n in nurses] == ["a", "b", "c", "d", "e"]


def test_search_by_ids_with_no_ids_sends_nothing():
    def handler(request):
        pytest.fail("unexpected request")

    assert _make_client(handler).search_by_ids("Practitioner", [], transform_practitioner) == []


# ---------------------------------------------------------------------------
# Single read
# ---------------------------------------------------------------------------

def test_read_returns_transformed_resource():
    def handler(request):
        assert request.url.path == "/r4/Practitioner/n7"
        return httpx.Response(200, json={"resourceType": "Practitioner", "id": "n7"})

    nurse = _make_client(handler).read("Practitioner", "n7", transform_practitioner)
    assert nurse.id == "n7"


def test_read_raises_with_status_code():
    def handler(request):
        return httpx.Response(404, json={"resourceType": "OperationOutcome"})

    with pytest.raises(FhirRequestError) as exc_info:
        _make_client(handler).read("Practitioner", "missing", transform_practitioner)
    assert exc_info.value.status_code == 404


def test_read_raises_on_wrong_resource_type():
    def handler(request):
        return httpx.Response(200, json={"resourceType": "Patient", "id": "n7"})

    with pytest.raises(FhirRequestError, match="unexpected body"):
        _make_client(handler).read("Practitioner", "n7", transform_practitioner)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def test_next_link():
    assert next_link(_make_bundle([], "https://x/next")) == "https://x/next"
    assert next_link(_make_bundle([])) is None
    assert next_link({}) is None


def test_parse_body_unwraps_string_payload():
    response = httpx.Response(200, json=json.dumps({"resourceType": "Bundle"}))
    assert parse_body(response) == {"resourceType": "Bundle"}
