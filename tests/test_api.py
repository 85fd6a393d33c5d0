"""
Tests for the Flask REST API using the test client.
"""

import pytest

from clinic.api.app import create_app
from clinic.errors import Unavailable
from clinic.models import Role


@pytest.fixture
def client(services):
    app = create_app(services)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def login(client, make_account):
    """Create a verified account and return its Authorization header."""
    def _login(email, role):
        make_account(email=email, role=role)
        resp = client.post("/api/auth/login", json={"email": email, "password": "secret123"})
        assert resp.status_code == 200
        return {"Authorization": f"Bearer {resp.get_json()['token']}"}
    return _login


@pytest.fixture
def doctor(login):
    return login("doc@clinic.test", Role.DOCTOR)


@pytest.fixture
def receptionist(login):
    return login("rec@clinic.test", Role.RECEPTIONIST)


JOHN = {"name": "John Doe", "age": 35, "gender": "Male",
        "contact": "+1234567890", "symptoms": "Fever"}


# ── Tests: info ──────────────────────────────────────────────────────

def test_index_lists_portals(client):
    body = client.get("/").get_json()
    assert body["portals"]["doctor"]["redirect_to"] == "/doctor-dashboard"
    assert body["portals"]["receptionist"]["title"] == "Receptionist Portal"


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["checks"]["database"] is True


# ── Tests: auth ──────────────────────────────────────────────────────

def test_signup_then_duplicate(client):
    payload = {"email": "doc@clinic.test", "password": "secret123",
               "full_name": "Dr A", "role": "doctor"}
    resp = client.post("/api/auth/signup", json=payload)
    assert resp.status_code == 201
    assert resp.get_json()["account"]["verification"] == "pending"

    again = client.post("/api/auth/signup", json=payload)
    assert again.status_code == 409
    assert again.get_json()["resend"] == "/api/auth/resend"


def test_signup_requires_json(client):
    resp = client.post("/api/auth/signup", data="email=x")
    assert resp.status_code == 400


def test_login_unverified_then_confirm(client, transport):
    client.post("/api/auth/signup", json={"email": "rec@clinic.test", "password": "secret123",
                                          "full_name": "Rita", "role": "receptionist"})
    resp = client.post("/api/auth/login", json={"email": "rec@clinic.test", "password": "secret123"})
    assert resp.status_code == 403

    token = transport.verification_token("rec@clinic.test")
    confirmed = client.get(f"/api/auth/confirm?token={token}")
    assert confirmed.status_code == 200
    assert confirmed.get_json()["redirect_to"] == "/receptionist-dashboard"

    session = client.get("/api/auth/session",
                         headers={"Authorization": f"Bearer {confirmed.get_json()['token']}"})
    assert session.status_code == 200
    assert session.get_json()["user"]["role"] == "receptionist"


def test_login_bad_password(client, make_account):
    make_account()
    resp = client.post("/api/auth/login", json={"email": "doc@clinic.test", "password": "nope-nope"})
    assert resp.status_code == 401


def test_missing_and_malformed_tokens(client):
    assert client.get("/api/patients").status_code == 401
    resp = client.get("/api/patients", headers={"Authorization": "Bearer"})
    assert resp.status_code == 401
    assert "format" in resp.get_json()["error"]


def test_logout_is_idempotent(client, doctor):
    assert client.post("/api/auth/logout", headers=doctor).status_code == 200
    assert client.post("/api/auth/logout", headers=doctor).status_code == 200
    assert client.get("/api/auth/session", headers=doctor).status_code == 401


def test_resend_requires_email(client):
    resp = client.post("/api/auth/resend", json={"email": "", "role": "doctor"})
    assert resp.status_code == 400


def test_resend_for_unknown_email_is_accepted_but_sends_nothing(client, transport):
    resp = client.post("/api/auth/resend", json={"email": "nobody@clinic.test", "role": "doctor"})
    assert resp.status_code == 202
    assert transport.to("nobody@clinic.test") == []


@pytest.mark.parametrize("body", [[], ["doc@clinic.test"], "text", 42])
def test_non_object_json_body_is_rejected(client, body):
    resp = client.post("/api/auth/login", json=body)
    assert resp.status_code == 400
    assert "JSON object" in resp.get_json()["error"]


# ── Tests: patients / visits ─────────────────────────────────────────

def test_register_is_receptionist_only(client, doctor, receptionist):
    assert client.post("/api/patients", json=JOHN, headers=doctor).status_code == 403
    resp = client.post("/api/patients", json=JOHN, headers=receptionist)
    assert resp.status_code == 201
    patient = resp.get_json()["patient"]
    assert (patient["token"], patient["status"], patient["charges"]) == ("T001", "Waiting", 0)


def test_register_validation_error(client, receptionist):
    resp = client.post("/api/patients", json=dict(JOHN, age=0), headers=receptionist)
    assert resp.status_code == 400


def test_full_visit_over_http(client, doctor, receptionist):
    pid = client.post("/api/patients", json=JOHN, headers=receptionist).get_json()["patient"]["id"]
    resp = client.put(f"/api/patients/{pid}/charges", json={"charges": 50}, headers=receptionist)
    assert resp.get_json()["patient"]["charges"] == 50

    assert client.post(f"/api/patients/{pid}/consultation", headers=receptionist).status_code == 403
    started = client.post(f"/api/patients/{pid}/consultation", headers=doctor)
    assert started.get_json()["patient"]["status"] == "In Consultation"

    done = client.post(f"/api/patients/{pid}/prescriptions",
                       json={"prescription": "Paracetamol 500mg twice daily"}, headers=doctor)
    assert done.status_code == 201
    assert done.get_json()["patient"]["status"] == "Completed"

    history = client.get(f"/api/patients/{pid}/history", headers=receptionist).get_json()["history"]
    assert [(h["symptoms"], h["charges"]) for h in history] == [("Fever", 50)]

    record = client.get(f"/api/patients/{pid}", headers=doctor).get_json()
    assert record["prescriptions"][0]["prescription"] == "Paracetamol 500mg twice daily"

    again = client.post(f"/api/patients/{pid}/consultation", headers=doctor)
    assert again.status_code == 409


def test_partial_completion_is_reported(client, services, doctor, receptionist, monkeypatch):
    pid = client.post("/api/patients", json=JOHN, headers=receptionist).get_json()["patient"]["id"]
    client.post(f"/api/patients/{pid}/consultation", headers=doctor)

    def history_down(*args, **kwargs):
        raise Unavailable("history table unreachable")

    monkeypatch.setattr(services.store, "insert_history", history_down)
    resp = client.post(f"/api/patients/{pid}/prescriptions",
                       json={"prescription": "Rest"}, headers=doctor)

    assert resp.status_code == 500
    body = resp.get_json()
    assert body["stage"] == "history"
    assert body["prescription_id"] is not None
    monkeypatch.undo()
    patient = client.get(f"/api/patients/{pid}", headers=doctor).get_json()["patient"]
    assert patient["status"] == "In Consultation"


def test_unavailable_store_is_503(client, services, doctor, monkeypatch):
    def down(*args, **kwargs):
        raise Unavailable("store unreachable")

    monkeypatch.setattr(services.store, "page_patients", down)
    assert client.get("/api/patients", headers=doctor).status_code == 503


def test_unknown_patient_is_404(client, doctor):
    assert client.get("/api/patients/999", headers=doctor).status_code == 404


def test_dashboard_stats(client, doctor, receptionist):
    for _ in range(2):
        client.post("/api/patients", json=JOHN, headers=receptionist)
    pid = client.get("/api/patients", headers=doctor).get_json()["patients"][0]["id"]
    client.put(f"/api/patients/{pid}/charges", json={"charges": 40}, headers=receptionist)
    client.post(f"/api/patients/{pid}/consultation", headers=doctor)

    body = client.get("/api/dashboard", headers=receptionist).get_json()
    assert body["role"] == "receptionist"
    assert body["stats"]["waiting"] == 1
    assert body["stats"]["total_charges"] == 40
    assert body["stats"]["by_status"]["In Consultation"] == 1
    assert "needs_reconciliation" not in body

    assert client.get("/api/dashboard", headers=doctor).get_json()["needs_reconciliation"] == []
