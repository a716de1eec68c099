import time
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from siteforms.main import app
from siteforms.sessions import SessionNotFoundError, SessionRegistry, get_registry


@pytest.fixture
def registry():
    reg = SessionRegistry(submit_delay=0.2, redirect_delay=0.1)
    app.dependency_overrides[get_registry] = lambda: reg
    yield reg
    reg.close_all()
    app.dependency_overrides.clear()


@pytest.fixture
def client(registry):
    with TestClient(app) as c:
        yield c


def wait_for(client, session_id, predicate, timeout=3.0):
    """Poll the session until predicate(response) holds; returns the last response."""
    deadline = time.monotonic() + timeout
    while True:
        r = client.get(f"/api/sessions/{session_id}")
        if predicate(r) or time.monotonic() > deadline:
            return r
        time.sleep(0.02)


def open_session(client, form_id):
    r = client.post(f"/api/forms/{form_id}/sessions")
    assert r.status_code == 201
    return r.json()["sessionId"]


def set_field(client, session_id, name, value):
    return client.put(f"/api/sessions/{session_id}/fields/{name}", json={"value": value})


def fill(client, session_id, values):
    for name, value in values.items():
        r = set_field(client, session_id, name, value)
        assert r.status_code == 200, r.text


BOOKING = {
    "name": "Jane Doe",
    "email": "jane@acme.io",
    "company": "Acme",
    "date": date.today().isoformat(),
    "time": "09:00",
    "additionalNotes": "Interested in invoice automation",
}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_list_and_describe_forms(client):
    r = client.get("/api/forms")
    assert r.status_code == 200
    assert {f["id"] for f in r.json()} == {"book-demo", "contact"}

    r = client.get("/api/forms/book-demo")
    body = r.json()
    assert [f["name"] for f in body["fields"]] == [
        "name", "email", "company", "phone", "date", "time", "additionalNotes",
    ]
    assert len(body["timeSlots"]) == 9

    r = client.get("/api/forms/contact")
    assert r.json()["timeSlots"] is None
    company = next(f for f in r.json()["fields"] if f["name"] == "company")
    assert company["required"] is False

    assert client.get("/api/forms/newsletter").status_code == 404


def test_slots_endpoint(client):
    slots = client.get("/api/forms/book-demo/slots").json()
    assert slots[0] == {"value": "09:00", "label": "9:00 AM"}
    assert slots[-1] == {"value": "17:00", "label": "5:00 PM"}


def test_new_session_is_empty_and_idle(client):
    r = client.post("/api/forms/contact/sessions")
    state = r.json()

    assert state["phase"] == "idle"
    assert state["values"] == {"name": "", "email": "", "company": "", "message": ""}
    assert state["errors"] == {}
    assert state["valid"] is False
    assert state["inputsDisabled"] is False

    assert client.post("/api/forms/newsletter/sessions").status_code == 404


def test_field_errors_surface_on_change(client):
    sid = open_session(client, "contact")

    state = set_field(client, sid, "name", "J").json()
    assert state["errors"] == {"name": "Name must be at least 2 characters"}

    state = set_field(client, sid, "name", "Jo").json()
    assert state["errors"] == {}

    assert set_field(client, sid, "phone", "555").status_code == 404


def test_invalid_submit_is_not_accepted(client):
    sid = open_session(client, "book-demo")
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    fill(client, sid, {**BOOKING, "date": yesterday})

    r = client.post(f"/api/sessions/{sid}/submit")
    assert r.status_code == 202
    body = r.json()
    assert body["accepted"] is False
    assert body["phase"] == "idle"
    assert body["errors"] == {"date": "Date must be today or in the future"}


def test_booking_lifecycle(client, registry):
    registry.redirect_delay = 0.5
    sid = open_session(client, "book-demo")
    fill(client, sid, BOOKING)

    first = client.post(f"/api/sessions/{sid}/submit").json()
    assert first["accepted"] is True
    assert first["phase"] == "submitting"
    assert first["inputsDisabled"] is True

    second = client.post(f"/api/sessions/{sid}/submit").json()
    assert second["accepted"] is False

    r = set_field(client, sid, "name", "Someone Else")
    assert r.status_code == 409
    assert client.post(f"/api/sessions/{sid}/reset").status_code == 409

    state = wait_for(client, sid, lambda r: r.json()["phase"] == "succeeded").json()
    assert state["phase"] == "succeeded"
    assert state["values"]["name"] == ""
    assert state["values"]["date"] is None
    assert state["redirectTo"] is None

    # the redirect ends the session
    r = wait_for(client, sid, lambda r: r.status_code == 404)
    assert r.status_code == 404
    assert len(registry) == 0


def test_reset_after_success_keeps_session(client, registry):
    registry.redirect_delay = 0.5
    sid = open_session(client, "contact")
    fill(client, sid, {"name": "Jane", "email": "jane@acme.io", "message": "Call me back, please."})
    assert client.post(f"/api/sessions/{sid}/submit").json()["accepted"] is True
    wait_for(client, sid, lambda r: r.json()["phase"] == "succeeded")

    state = client.post(f"/api/sessions/{sid}/reset").json()
    assert state["phase"] == "idle"
    assert state["redirectTo"] is None

    time.sleep(0.7)
    assert client.get(f"/api/sessions/{sid}").json()["phase"] == "idle"
    assert len(registry) == 1


def test_back_to_home_after_success(client, registry):
    registry.redirect_delay = 5.0
    sid = open_session(client, "contact")
    assert client.post(f"/api/sessions/{sid}/home").status_code == 409

    fill(client, sid, {"name": "Jane", "email": "jane@acme.io", "message": "Call me back, please."})
    client.post(f"/api/sessions/{sid}/submit")
    wait_for(client, sid, lambda r: r.json()["phase"] == "succeeded")

    r = client.post(f"/api/sessions/{sid}/home")
    assert r.json() == {"status": "ok", "sessionId": sid, "redirectTo": "/"}
    assert client.get(f"/api/sessions/{sid}").status_code == 404


def test_redirected_sessions_are_released(client, registry):
    registry.submit_delay = 0
    registry.redirect_delay = 0
    sids = [open_session(client, "contact") for _ in range(50)]
    for sid in sids:
        fill(client, sid, {"name": "Jane", "email": "jane@acme.io", "message": "Call me back, please."})
        assert client.post(f"/api/sessions/{sid}/submit").json()["accepted"] is True

    deadline = time.monotonic() + 3.0
    while len(registry) and time.monotonic() < deadline:
        time.sleep(0.02)
    assert len(registry) == 0


def test_idle_sessions_expire():
    now = [0.0]
    reg = SessionRegistry(session_ttl=60, clock=lambda: now[0])
    stale, _ = reg.create("contact")
    now[0] = 30.0
    fresh, _ = reg.create("book-demo")

    now[0] = 70.0
    with pytest.raises(SessionNotFoundError):
        reg.get(stale)
    assert reg.get(fresh).schema.id == "book-demo"
    assert len(reg) == 1


def test_session_limit_drops_least_recently_used():
    reg = SessionRegistry(max_sessions=2)
    first, _ = reg.create("contact")
    second, _ = reg.create("contact")
    reg.get(first)

    third, _ = reg.create("book-demo")

    assert len(reg) == 2
    with pytest.raises(SessionNotFoundError):
        reg.get(second)
    reg.get(first)
    reg.get(third)


def test_close_session(client, registry):
    sid = open_session(client, "contact")
    assert len(registry) == 1

    r = client.delete(f"/api/sessions/{sid}")
    assert r.json() == {"status": "ok", "sessionId": sid}
    assert len(registry) == 0

    assert client.get(f"/api/sessions/{sid}").status_code == 404
    assert client.delete(f"/api/sessions/{sid}").status_code == 404
