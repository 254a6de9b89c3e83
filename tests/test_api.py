# tests/test_api.py
from datetime import datetime, timezone

import pytest

from worksmart.clock import FixedClock, get_clock
from worksmart.main import app

COUNSELOR = "Professional Counselor"


def _parse_ts(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.fixture
def facility_id(api, headers):
    response = api.post("/api/v1/facilities", json={"name": "Kabwata Clinic"}, headers=headers("Hub Coordinator"))
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def create_client(api, headers, facility_id):
    def _create(**fields):
        fields.setdefault("name", "Mary Banda")
        response = api.post(f"/api/v1/facilities/{facility_id}/clients", json=fields, headers=headers(COUNSELOR))
        assert response.status_code == 201, response.text
        return response.json()
    return _create


def test_health(api):
    response = api.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["today"] == "2024-06-01"


# ==================== ACCESS CONTROL ====================

def test_missing_role_is_unauthorized(api):
    assert api.get("/api/v1/facilities").status_code == 401


def test_unknown_role_is_unauthorized(api, headers):
    assert api.get("/api/v1/facilities", headers=headers("Janitor")).status_code == 401


def test_role_without_permission_is_forbidden(api, headers):
    response = api.post("/api/v1/facilities", json={"name": "Nowhere"}, headers=headers("Lay Counsellor"))
    assert response.status_code == 403
    assert "manage facilities" in response.json()["detail"]


def test_admin_cannot_register_clients(api, headers, facility_id):
    response = api.post(
        f"/api/v1/facilities/{facility_id}/clients",
        json={"name": "Blocked"},
        headers=headers("Admin"),
    )
    assert response.status_code == 403


# ==================== FACILITIES ====================

def test_facility_crud(api, headers, facility_id):
    coordinator = headers("Hub Coordinator")
    assert api.get(f"/api/v1/facilities/{facility_id}", headers=coordinator).json()["name"] == "Kabwata Clinic"

    renamed = api.put(f"/api/v1/facilities/{facility_id}", json={"name": "Kabwata HC"}, headers=coordinator)
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Kabwata HC"

    assert [f["id"] for f in api.get("/api/v1/facilities", headers=coordinator).json()] == [facility_id]
    assert api.get("/api/v1/facilities/999", headers=coordinator).status_code == 404


def test_deleting_facility_removes_its_clients(api, headers, facility_id, create_client):
    client = create_client()
    response = api.delete(f"/api/v1/facilities/{facility_id}", headers=headers("Admin"))
    assert response.status_code == 204
    assert api.get(f"/api/v1/facilities/{facility_id}/clients/{client['id']}", headers=headers()).status_code == 404


# ==================== CLIENTS ====================

def test_create_client_derives_due_dates(create_client):
    client = create_client(art_number="ART-001", last_drug_pickup="2024-03-10", last_vl_collection="2024-01-01")
    assert client["next_pharmacy_due_date"] == "2024-06-08"
    assert client["next_vl_due_date"] == "2024-06-29"
    assert client["status"] == "Active"
    assert client["is_active"] is True
    assert client["tracking_history"] == []


def test_create_client_keeps_explicit_due_date(create_client):
    client = create_client(last_drug_pickup="2024-03-10", next_pharmacy_due_date="2024-07-01")
    assert client["next_pharmacy_due_date"] == "2024-07-01"


def test_create_client_in_unknown_facility(api, headers):
    response = api.post("/api/v1/facilities/404/clients", json={"name": "Lost"}, headers=headers())
    assert response.status_code == 404


def test_update_client_recomputes_due_date(api, headers, facility_id, create_client):
    client = create_client(last_drug_pickup="2024-03-10")
    response = api.put(
        f"/api/v1/facilities/{facility_id}/clients/{client['id']}",
        json={"last_drug_pickup": "2024-05-01", "coordinates": {"latitude": -15.4, "longitude": 28.3}},
        headers=headers(),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["next_pharmacy_due_date"] == "2024-07-30"
    assert data["coordinates"] == {"latitude": -15.4, "longitude": 28.3}


def test_update_client_rejects_empty_name(api, headers, facility_id, create_client):
    client = create_client()
    response = api.put(
        f"/api/v1/facilities/{facility_id}/clients/{client['id']}",
        json={"name": None},
        headers=headers(),
    )
    assert response.status_code == 422


def test_search_clients(api, headers, facility_id, create_client):
    create_client(name="Mary Banda", art_number="ART-001")
    create_client(name="John Phiri", art_number="ART-002", address="Chilenje")
    url = f"/api/v1/facilities/{facility_id}/clients"

    assert [c["name"] for c in api.get(url, headers=headers()).json()] == ["Mary Banda", "John Phiri"]
    assert [c["name"] for c in api.get(url, params={"search": "chilenje"}, headers=headers()).json()] == ["John Phiri"]
    assert api.get(url, params={"search": ""}, headers=headers()).json()[0]["name"] == "Mary Banda"


def test_delete_client_requires_admin(api, headers, facility_id, create_client):
    client = create_client()
    url = f"/api/v1/facilities/{facility_id}/clients/{client['id']}"
    assert api.delete(url, headers=headers(COUNSELOR)).status_code == 403
    assert api.delete(url, headers=headers("Admin")).status_code == 204
    assert api.get(url, headers=headers()).status_code == 404


# ==================== STATUS ====================

def test_status_dead_requires_details(api, headers, facility_id, create_client, now):
    client = create_client()
    url = f"/api/v1/facilities/{facility_id}/clients/{client['id']}/status"

    rejected = api.post(url, json={"status": "Dead", "details": ""}, headers=headers())
    assert rejected.status_code == 422
    assert rejected.json()["field"] == "details"

    accepted = api.post(url, json={"status": "Dead", "details": "passed away per family"}, headers=headers())
    assert accepted.status_code == 200
    data = accepted.json()
    assert data["status"] == "Dead"
    assert data["is_active"] is False
    assert data["status_details"] == "passed away per family"
    assert _parse_ts(data["status_date"]) == now


def test_rejected_transition_leaves_client_unchanged(api, headers, facility_id, create_client):
    client = create_client()
    url = f"/api/v1/facilities/{facility_id}/clients/{client['id']}"
    assert api.post(f"{url}/status", json={"status": "Lost"}, headers=headers()).status_code == 422
    stored = api.get(url, headers=headers()).json()
    assert stored["status"] == "Active"
    assert stored["status_date"] is None


def test_terminal_statuses_enforced_by_setting(api, headers, facility_id, create_client, override_settings):
    override_settings(enforce_terminal_statuses=True)
    client = create_client()
    url = f"/api/v1/facilities/{facility_id}/clients/{client['id']}/status"
    assert api.post(url, json={"status": "Transfer Out", "details": "to Matero"}, headers=headers()).status_code == 200
    assert api.post(url, json={"status": "Active"}, headers=headers()).status_code == 422


def test_lay_counsellor_cannot_change_status(api, headers, facility_id, create_client):
    client = create_client()
    url = f"/api/v1/facilities/{facility_id}/clients/{client['id']}/status"
    assert api.post(url, json={"status": "IIT"}, headers=headers("Lay Counsellor")).status_code == 403


# ==================== OUTREACH ====================

def test_outreach_is_appended(api, headers, facility_id, create_client, now):
    client = create_client()
    url = f"/api/v1/facilities/{facility_id}/clients/{client['id']}/tracking"
    tracker = headers("Lay Counsellor", identity="lay-07")

    first = api.post(url, json={"intervention": "Phone call", "finding": "No answer"}, headers=tracker)
    assert first.status_code == 201
    second = api.post(url, json={"intervention": "Home visit", "finding": "Relocated"}, headers=tracker)
    history = second.json()["tracking_history"]

    assert [e["intervention"] for e in history] == ["Phone call", "Home visit"]
    assert history[0] == first.json()["tracking_history"][0]
    assert history[1]["tracker"] == "lay-07"
    assert _parse_ts(history[1]["recorded_at"]) == now
    assert second.json()["status"] == "Active"

    listed = api.get(url, headers=tracker).json()
    assert [e["finding"] for e in listed] == ["No answer", "Relocated"]
    assert len(api.get(url, params={"skip": 1}, headers=tracker).json()) == 1


def test_outreach_requires_intervention(api, headers, facility_id, create_client):
    client = create_client()
    url = f"/api/v1/facilities/{facility_id}/clients/{client['id']}/tracking"
    response = api.post(url, json={"intervention": " ", "finding": "No answer"}, headers=headers())
    assert response.status_code == 422
    assert api.get(url, headers=headers()).json() == []


def test_escalation(api, headers, facility_id, create_client):
    client = create_client(last_drug_pickup="2024-05-10")
    response = api.get(f"/api/v1/facilities/{facility_id}/clients/{client['id']}/escalation", headers=headers())
    assert response.status_code == 200
    assert response.json() == {
        "client_id": client["id"],
        "last_drug_pickup": "2024-05-10",
        "days_since_pickup": 22,
        "step": 3,
        "tracking_day": 21,
    }


# ==================== REPORTS ====================

def test_due_report_windows(api, headers, facility_id, create_client):
    this_week = create_client(name="This Week", last_drug_pickup="2024-03-10")
    next_week = create_client(name="Next Week", last_drug_pickup="2024-03-11")
    url = f"/api/v1/facilities/{facility_id}/reports/due"

    assert [c["id"] for c in api.get(url, params={"window": "thisWeek"}, headers=headers()).json()] == [this_week["id"]]
    assert [c["id"] for c in api.get(url, params={"window": "nextWeek"}, headers=headers()).json()] == [next_week["id"]]
    assert api.get(url, headers=headers()).json() == []
    assert api.get(url, params={"window": "fortnight"}, headers=headers()).status_code == 422


def test_notifications_and_dashboard(api, headers, facility_id, create_client):
    later = create_client(name="Later", last_drug_pickup="2024-03-11")
    sooner = create_client(name="Sooner", last_drug_pickup="2024-03-05")
    create_client(name="Late", last_drug_pickup="2024-02-01")
    dead = create_client(name="Dead", last_drug_pickup="2024-03-05")
    api.post(
        f"/api/v1/facilities/{facility_id}/clients/{dead['id']}/status",
        json={"status": "Dead", "details": "confirmed by family"},
        headers=headers(),
    )

    notified = api.get(f"/api/v1/facilities/{facility_id}/notifications", headers=headers()).json()
    assert [c["id"] for c in notified] == [sooner["id"], later["id"]]

    dashboard = api.get(f"/api/v1/facilities/{facility_id}/dashboard", headers=headers()).json()
    assert dashboard == {
        "total_clients": 4,
        "active_clients": 3,
        "inactive_clients": 1,
        "average_age": None,
        "late_pharmacy_pickups": 1,
        "notifications": 2,
    }

    tx_curr = api.get(f"/api/v1/facilities/{facility_id}/reports/tx-curr", headers=headers()).json()
    assert tx_curr["counts"] == {"Active": 3, "Dead": 1}
    assert tx_curr["inactive"] == 1


# ==================== IMPORT ====================

def test_json_import_warns_about_incomplete_rows(api, headers, facility_id):
    response = api.post(
        f"/api/v1/facilities/{facility_id}/clients/import",
        json={"rows": [
            {"Name": "J", "Last Drug Pickup": "2024-01-01"},
            {"ART Number": "ART-9", "Name": "K", "Age": "31 yrs", "Last Drug Pickup": "03/01/2024"},
        ]},
        headers=headers("Clinician"),
    )
    assert response.status_code == 200
    report = response.json()
    assert report["imported"] == 2
    assert report["rejected"] == 0
    assert report["warnings"] == [{
        "row_number": 1,
        "missing_fields": ["art_number"],
        "message": "Incomplete client record: missing ART Number",
    }]

    first = api.get(f"/api/v1/facilities/{facility_id}/clients/{report['client_ids'][0]}", headers=headers()).json()
    assert first["next_pharmacy_due_date"] == "2024-03-31"
    second = api.get(f"/api/v1/facilities/{facility_id}/clients/{report['client_ids'][1]}", headers=headers()).json()
    assert second["age"] == 31
    assert second["next_pharmacy_due_date"] == "2024-05-30"


def test_strict_import_rejects_incomplete_rows(api, headers, facility_id, override_settings):
    override_settings(strict_import=True)
    response = api.post(
        f"/api/v1/facilities/{facility_id}/clients/import",
        json={"rows": [{"Name": "J", "Last Drug Pickup": "2024-01-01"}]},
        headers=headers(),
    )
    report = response.json()
    assert report["imported"] == 0
    assert report["rejected"] == 1
    assert api.get(f"/api/v1/facilities/{facility_id}/clients", headers=headers()).json() == []


def test_csv_import(api, headers, facility_id):
    content = (
        "ART Number,Name,Age,Last Drug Pickup,Last VL Collection\n"
        "ART-1,Mary,34,2024-03-10,2024-01-01\n"
        ",Unnamed Row,,,\n"
    )
    response = api.post(
        f"/api/v1/facilities/{facility_id}/clients/import/csv",
        files={"upload_file": ("register.csv", content.encode("utf-8"), "text/csv")},
        headers=headers(),
    )
    assert response.status_code == 200
    report = response.json()
    assert report["imported"] == 2
    assert report["warnings"][0]["row_number"] == 3
    assert report["warnings"][0]["missing_fields"] == ["art_number", "last_drug_pickup"]

    clients = api.get(f"/api/v1/facilities/{facility_id}/clients", headers=headers()).json()
    assert clients[0]["next_pharmacy_due_date"] == "2024-06-08"


def test_import_into_unknown_facility(api, headers):
    response = api.post("/api/v1/facilities/77/clients/import", json={"rows": [{"Name": "J"}]}, headers=headers())
    assert response.status_code == 404


# ==================== INVARIANTS ====================

def test_clearing_due_date_rederives_it_from_last_pickup(api, headers, facility_id, create_client):
    client = create_client(last_drug_pickup="2024-03-01", next_pharmacy_due_date="2024-04-15")
    assert client["next_pharmacy_due_date"] == "2024-04-15"
    url = f"/api/v1/facilities/{facility_id}/clients/{client['id']}"

    response = api.put(url, json={"next_pharmacy_due_date": None}, headers=headers())
    assert response.status_code == 200
    assert response.json()["next_pharmacy_due_date"] == "2024-05-30"
    assert api.get(url, headers=headers()).json()["next_pharmacy_due_date"] == "2024-05-30"


def test_clearing_due_date_without_event_stays_empty(api, headers, facility_id, create_client):
    client = create_client(next_vl_due_date="2024-09-01")
    response = api.put(
        f"/api/v1/facilities/{facility_id}/clients/{client['id']}",
        json={"next_vl_due_date": None},
        headers=headers(),
    )
    assert response.json()["next_vl_due_date"] is None


def test_outreach_keeps_append_order_when_clock_moves_back(api, headers, facility_id, create_client):
    client = create_client()
    url = f"/api/v1/facilities/{facility_id}/clients/{client['id']}/tracking"

    api.post(url, json={"intervention": "Phone call", "finding": "first"}, headers=headers())
    earlier = FixedClock(datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc))
    app.dependency_overrides[get_clock] = lambda: earlier
    appended = api.post(url, json={"intervention": "Home visit", "finding": "second"}, headers=headers())

    assert [e["finding"] for e in appended.json()["tracking_history"]] == ["first", "second"]
    assert [e["finding"] for e in api.get(url, headers=headers()).json()] == ["first", "second"]
