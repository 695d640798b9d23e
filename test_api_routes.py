"""
HTTP surface: scan flow, public registry reads, admin registry edits and sync.
"""

import pytest
from fastapi.testclient import TestClient

from core.config import Settings
from core.deps import require_admin_role
from main import create_app
from models.officer import Officer
from services.remote_store import RemoteSnapshot

GATE_READING = {"checkpoint_id": "cp-001", "latitude": 13.7563, "longitude": 100.5018, "accuracy": 12}
ADMIN_USER = {"uid": "admin-1", "email": "admin@example.com", "role": "ADMIN"}


class FakeRemote:
    def __init__(self, snapshot):
        self.snapshot = snapshot
        self.submitted = []

    async def fetch_snapshot(self):
        return self.snapshot

    async def submit(self, action):
        self.submitted.append(action)

    async def check_connection(self):
        return True, f"Connected. Found {len(self.snapshot.scan_records)} logs."


def build_client(db_engine, clock, remote=None, **overrides):
    settings = Settings(**{"allowed_origins": ["http://localhost:5173"], **overrides})
    app = create_app(settings=settings, engine=db_engine, remote=remote, clock=clock)
    app.dependency_overrides[require_admin_role] = lambda: ADMIN_USER
    return app


@pytest.fixture
def client(db_engine, morning_clock):
    with TestClient(build_client(db_engine, morning_clock)) as client:
        yield client


# --- Scans ---


def test_scan_confirm_flow(client):
    response = client.post("/scans/verify", json=GATE_READING, headers={"X-Device-Id": "tablet-1"})
    assert response.status_code == 201
    draft = response.json()
    assert draft["status"] == "VALID"
    assert draft["note"] == "Routine Check: OK"
    assert draft["state"] == "AWAITING_CONFIRMATION"
    assert draft["device_id"] == "tablet-1"

    assert client.get(f"/scans/drafts/{draft['draft_id']}").json()["checkpoint_id"] == "cp-001"

    # No officer picked yet: refused, nothing stored
    response = client.post(f"/scans/drafts/{draft['draft_id']}/confirm", json={"officer_id": ""})
    assert response.status_code == 422
    assert response.json()["detail"] == "Please select your name/ID from the list."
    assert client.get("/scans").json() == []

    response = client.post(f"/scans/drafts/{draft['draft_id']}/confirm", json={"officer_id": "OFF-001"})
    assert response.status_code == 201
    record = response.json()
    assert record["officer_id"] == "Somsak Jaidee (OFF-001)"
    assert record["origin"] == "LOCAL"
    assert record["recorded_at"].endswith("Z")

    scans = client.get("/scans").json()
    assert [s["id"] for s in scans] == [record["id"]]
    assert client.get("/scans/summary").json()["VALID"] == 1
    assert client.get(f"/scans/drafts/{draft['draft_id']}").status_code == 404


def test_scan_far_from_checkpoint(client):
    response = client.post("/scans/verify", json={**GATE_READING, "latitude": 13.7573})
    assert response.json()["status"] == "INVALID_LOCATION"
    assert response.json()["note"] == "Location Mismatch. Dist: 111m"


def test_unknown_checkpoint_is_404(client):
    response = client.post("/scans/verify", json={**GATE_READING, "checkpoint_id": "cp-404"})
    assert response.status_code == 404
    assert "cp-404" in response.json()["detail"]


@pytest.mark.parametrize(
    "sensor_error,status_code",
    [("PERMISSION_DENIED", 403), ("POSITION_UNAVAILABLE", 503), ("TIMEOUT", 504)],
)
def test_sensor_errors(client, sensor_error, status_code):
    response = client.post("/scans/verify", json={"checkpoint_id": "cp-001", "sensor_error": sensor_error})
    assert response.status_code == status_code


def test_device_timeout_names_configured_wait(db_engine, morning_clock):
    app = build_client(db_engine, morning_clock, location_timeout_seconds=15)
    with TestClient(app) as client:
        response = client.post("/scans/verify", json={"checkpoint_id": "cp-001", "sensor_error": "TIMEOUT"})

    assert response.status_code == 504
    assert "after 15s" in response.json()["detail"]



def test_scan_without_any_position_source(client):
    response = client.post("/scans/verify", json={"checkpoint_id": "cp-001"})
    assert response.status_code == 503


def test_half_a_position_is_rejected(client):
    response = client.post("/scans/verify", json={"checkpoint_id": "cp-001", "latitude": 13.7563})
    assert response.status_code == 422


def test_abandon_draft(client):
    draft = client.post("/scans/verify", json=GATE_READING).json()

    assert client.delete(f"/scans/drafts/{draft['draft_id']}").status_code == 204
    assert client.delete(f"/scans/drafts/{draft['draft_id']}").status_code == 404
    assert client.get("/scans").json() == []


def test_scan_list_filters(client):
    for latitude, officer in ((13.7563, "OFF-001"), (13.7573, "OFF-002")):
        draft = client.post("/scans/verify", json={**GATE_READING, "latitude": latitude}).json()
        client.post(f"/scans/drafts/{draft['draft_id']}/confirm", json={"officer_id": officer})

    invalid = client.get("/scans", params={"status": "INVALID_LOCATION"}).json()
    assert [s["officer_id"] for s in invalid] == ["Mana Meemark (OFF-002)"]
    assert len(client.get("/scans", params={"origin": "LOCAL"}).json()) == 2
    assert len(client.get("/scans", params={"limit": 1}).json()) == 1


# --- Public registry ---


def test_list_checkpoints(client):
    checkpoints = client.get("/checkpoints").json()

    assert [c["checkpoint_id"] for c in checkpoints] == ["cp-001", "cp-002"]
    assert checkpoints[0]["schedule"]["fixedTimes"] == ["08:00", "12:00", "16:00", "20:00"]
    assert checkpoints[1]["schedule"]["intervalMinutes"] == 60
    assert checkpoints[0]["utm"].startswith("Zone 47")


def test_get_checkpoint(client):
    assert client.get("/checkpoints/cp-002").json()["allowed_radius_meters"] == 50
    assert client.get("/checkpoints/cp-404").status_code == 404


def test_list_officers(client):
    officers = client.get("/officers").json()
    assert [o["display_label"] for o in officers] == ["Somsak Jaidee (OFF-001)", "Mana Meemark (OFF-002)"]
    assert client.get("/officers", params={"role": "ADMIN"}).json() == []


# --- Admin ---


def test_admin_routes_require_a_token(db_engine, morning_clock):
    app = create_app(settings=Settings(), engine=db_engine, clock=morning_clock)
    with TestClient(app) as client:
        response = client.post("/admin/officers", json={"id": "OFF-003", "name": "Niran Sukjai"})
    assert response.status_code == 401


def test_admin_create_checkpoint(client):
    response = client.post(
        "/admin/checkpoints",
        json={
            "name": "Loading Dock",
            "latitude": 13.757,
            "longitude": 100.502,
            "schedule": {"type": "FIXED_TIME", "fixedTimes": ["22:00"]},
        },
    )
    assert response.status_code == 201
    created = response.json()
    assert created["checkpoint_id"].startswith("cp-")
    assert created["allowed_radius_meters"] == 50
    assert created["schedule"]["toleranceMinutes"] == 15

    assert len(client.get("/checkpoints").json()) == 3

    duplicate = client.post(
        "/admin/checkpoints",
        json={"id": created["checkpoint_id"], "name": "Again", "latitude": 1, "longitude": 1},
    )
    assert duplicate.status_code == 409


def test_admin_create_checkpoint_rejects_bad_schedule(client):
    response = client.post(
        "/admin/checkpoints",
        json={"name": "Roof", "latitude": 13.7, "longitude": 100.5, "schedule": {"type": "FIXED_TIME"}},
    )
    assert response.status_code == 422


def test_admin_update_checkpoint(client):
    response = client.patch(
        "/admin/checkpoints/cp-001",
        json={"allowed_radius_meters": 150, "schedule": {"type": "NONE"}},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["allowed_radius_meters"] == 150
    assert body["schedule"]["type"] == "NONE"
    assert body["name"] == "Main Entrance Gate"

    assert client.patch("/admin/checkpoints/cp-404", json={"allowed_radius_meters": 10}).status_code == 404
    assert client.patch("/admin/checkpoints/cp-001", json={"allowed_radius_meters": 0}).status_code == 422


def test_admin_export_import(client):
    exported = client.get("/admin/checkpoints/export").json()
    assert [c["id"] for c in exported] == ["cp-001", "cp-002"]

    assert client.post("/admin/checkpoints/import", json={"checkpoints": []}).status_code == 422

    response = client.post("/admin/checkpoints/import", json={"checkpoints": exported[1:]})
    assert response.json() == {"status": "success", "imported": 1}
    assert [c["checkpoint_id"] for c in client.get("/checkpoints").json()] == ["cp-002"]

    client.post("/admin/reset-defaults")
    assert len(client.get("/checkpoints").json()) == 2


def test_admin_officers(client):
    response = client.post("/admin/officers", json={"id": " OFF-003 ", "name": "Niran Sukjai"})
    assert response.status_code == 201
    assert response.json()["display_label"] == "Niran Sukjai (OFF-003)"

    assert client.post("/admin/officers", json={"id": "OFF-003", "name": "Again"}).status_code == 409
    assert client.delete("/admin/officers/OFF-003").status_code == 204
    assert client.delete("/admin/officers/OFF-003").status_code == 404


# --- Sync ---


def test_sync_disabled(client):
    assert client.get("/sync/status").json()["enabled"] is False
    assert client.post("/sync/pull").status_code == 409
    assert client.get("/sync/connection").json() == {
        "connected": False,
        "message": "No sheet URL configured.",
    }


def test_sync_pull_and_push(db_engine, morning_clock):
    remote = FakeRemote(RemoteSnapshot(officers=[Officer(id="OFF-007", name="Chai Supervisor")]))
    app = build_client(db_engine, morning_clock, remote=remote, sync_settle_seconds=30)

    with TestClient(app) as client:
        report = client.post("/sync/pull").json()
        assert report["officers"] == 1
        assert report["checkpoints"] == 0
        assert [o["id"] for o in client.get("/officers").json()] == ["OFF-007"]

        status = client.get("/sync/status").json()
        assert status["enabled"] is True
        assert status["last_report"]["officers"] == 1
        assert client.get("/sync/connection").json()["connected"] is True

        client.post("/admin/officers", json={"id": "OFF-008", "name": "Dao Rungruang"})
        # Any later request gives the background push a turn on the loop
        client.get("/sync/status")
        assert [action.type.value for action in remote.submitted] == ["ADD_OFFICER"]
