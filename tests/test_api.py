"""Tests for the FastAPI surface – dependencies point at an in-memory store."""

import pytest
from fastapi.testclient import TestClient

from homecare_sync.api.routes import get_source_factory, get_store
from homecare_sync.errors import TokenAcquisitionError
from homecare_sync.etl.pipeline import current_week
from homecare_sync.main import app
from homecare_sync.models.database import get_db
from homecare_sync.sources.mock import MockSource


class UnreachableSource(MockSource):
    def fetch_appointments(self, start, end):
        raise TokenAcquisitionError("Failed to obtain token: 401")


@pytest.fixture
def client(store):
    requested_kinds = []

    def source_factory(kind):
        requested_kinds.append(kind)
        # anchor on Sunday so every mock appointment falls inside the current week
        return MockSource(anchor=current_week()[0])

    def test_db():
        with store.session() as session:
            yield session

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_source_factory] = lambda: source_factory
    app.dependency_overrides[get_db] = test_db
    test_client = TestClient(app)
    test_client.requested_kinds = requested_kinds
    yield test_client
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"


def test_trigger_sync_returns_report(client, store):
    response = client.post("/api/v1/sync")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert (body["nurses"], body["patients"], body["appointments"]) == (3, 3, 4)
    assert body["tasks"]["upsert_appointments"]["status"] == "success"
    assert len(store.list_appointments()) == 4


def test_trigger_sync_passes_requested_source(client):
    client.post("/api/v1/sync", json={"source": "mock"})
    assert client.requested_kinds == ["mock"]


def test_trigger_sync_rejects_unknown_source(client):
    response = client.post("/api/v1/sync", json={"source": "ftp"})
    assert response.status_code == 422


def test_aborted_sync_returns_502(client):
    app.dependency_overrides[get_source_factory] = lambda: (lambda kind: UnreachableSource())

    response = client.post("/api/v1/sync")

    assert response.status_code == 502
    assert "fetch_appointments" in response.json()["detail"]


def test_sync_runs_history(client):
    client.post("/api/v1/sync")
    client.post("/api/v1/sync")

    response = client.get("/api/v1/sync/runs", params={"limit": 1})

    assert response.status_code == 200
    runs = response.json()
    assert len(runs) == 1
    assert runs[0]["status"] == "completed"
    assert runs[0]["counts"]["appointments"] == 4


def _make_route(client, **fields):
    payload = {
        "nurse_id": "nurse-1",
        "date": "2024-01-10",
        "appointment_ids": ["appointment-1", "appointment-2"],
        "route_points": [{"lat": 30.27, "lng": -97.74}],
        "total_distance": 12.5,
        "total_time": 95.0,
    }
    payload.update(fields)
    return client.post("/api/v1/routes", json=payload)


def test_route_lifecycle(client):
    client.post("/api/v1/sync")

    created = _make_route(client)
    assert created.status_code == 201
    route = created.json()
    assert route["status"] == "PLANNED"
    assert route["appointment_ids"] == ["appointment-1", "appointment-2"]

    started = client.post(f"/api/v1/routes/{route['id']}/start")
    assert started.json()["status"] == "IN_PROGRESS"
    completed = client.post(f"/api/v1/routes/{route['id']}/complete")
    assert completed.json()["status"] == "COMPLETED"

    fetched = client.get(f"/api/v1/routes/{route['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["total_distance"] == 12.5


def test_list_routes_filters_by_date_and_nurse(client):
    client.post("/api/v1/sync")
    _make_route(client)
    _make_route(client, date="2024-01-11")
    _make_route(client, nurse_id="nurse-2", appointment_ids=["appointment-3"])

    on_day = client.get("/api/v1/routes", params={"date": "2024-01-10"}).json()
    for_nurse = client.get("/api/v1/routes", params={"nurse_id": "nurse-2"}).json()

    assert sorted(r["nurse_id"] for r in on_day) == ["nurse-1", "nurse-2"]
    assert [r["appointment_ids"] for r in for_nurse] == [["appointment-3"]]


def test_route_for_unknown_nurse_is_404(client):
    response = _make_route(client, nurse_id="nobody")
    assert response.status_code == 404


def test_route_with_bad_date_is_rejected(client):
    client.post("/api/v1/sync")
    assert _make_route(client, date="Jan 10").status_code == 422


def test_missing_route_is_404(client):
    assert client.get("/api/v1/routes/does-not-exist").status_code == 404
    assert client.post("/api/v1/routes/does-not-exist/start").status_code == 404
