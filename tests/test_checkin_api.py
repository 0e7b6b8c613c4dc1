from __future__ import annotations

import json
import threading
import sys
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from event_checkin.main import app
from event_checkin.config import get_settings
from event_checkin.credentials import encode_credential
from event_checkin.database import Base, engine, SessionLocal
from event_checkin.models import CredentialDelivery, Event, Registration
from event_checkin.rate_limit import _window_counts as _rate_counts


ADMIN_TOKEN = "dev-token"
SCANNER_TOKEN = "dev-scanner-token"


def _auth_headers(token: str = SCANNER_TOKEN) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    # Keep RL enabled but high to avoid interference
    monkeypatch.setenv("CHECKIN_RATE_LIMIT_ENABLED", "true")
    monkeypatch.setenv("CHECKIN_RATE_LIMIT_PER_MINUTE", "500")
    get_settings.cache_clear()  # type: ignore[attr-defined]
    _rate_counts.clear()
    Base.metadata.create_all(bind=engine)
    yield TestClient(app)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    _rate_counts.clear()


def _create_event(seats=100, is_registration_open: bool = True, event_id=None) -> str:
    db = SessionLocal()
    try:
        event = Event(
            id=event_id or f"evt_{uuid.uuid4().hex[:8]}",
            title="TEDx Main Stage",
            location="Hall A",
            seats=seats,
            checkins=0,
            is_registration_open=is_registration_open,
        )
        db.add(event)
        db.commit()
        return event.id
    finally:
        db.close()


def _register(client: TestClient, event_id: str, email: str, full_name: str = "Alice Example"):
    return client.post(
        "/api/registrations/attendee",
        json={"fullName": full_name, "email": email, "eventId": event_id, "phoneNumber": "+213 555 0100"},
        headers=_auth_headers(),
    )


def _issued_credential(registration_id: str) -> str:
    db = SessionLocal()
    try:
        delivery = db.execute(
            select(CredentialDelivery)
            .where(CredentialDelivery.registration_id == registration_id)
            .order_by(CredentialDelivery.created_at)
        ).scalars().first()
        assert delivery is not None
        assert delivery.status == "queued"
        return delivery.payload
    finally:
        db.close()


def _checkins(client: TestClient, event_id: str) -> int:
    r = client.get(f"/api/events/{event_id}/checkins", headers=_auth_headers())
    assert r.status_code == 200, r.text
    return r.json()["checkins"]


def test_register_validate_confirm_scenario(client: TestClient) -> None:
    event_id = _create_event(seats=100)

    r = _register(client, event_id, "alice@example.com")
    assert r.status_code == 201, r.text
    registration_id = r.json()["registration"]["id"]
    qr_data = _issued_credential(registration_id)
    assert json.loads(qr_data)["eventId"] == event_id

    r = client.post(
        "/api/events/registrations/validate",
        json={"qrCodeData": qr_data, "eventId": event_id},
        headers=_auth_headers(),
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["valid"] is True
    assert body["checkedIn"] is False
    assert body["registrationId"] == registration_id
    assert body["attendee"]["email"] == "alice@example.com"

    r = client.post(
        "/api/events/registrations/confirm-checkin",
        json={"registrationId": registration_id, "eventId": event_id},
        headers=_auth_headers(),
    )
    assert r.status_code == 200, r.text
    assert r.json()["checkedIn"] is True
    assert r.json()["message"] == "Attendee checked in successfully"
    assert _checkins(client, event_id) == 1

    r = client.post(
        "/api/events/registrations/validate",
        json={"qrCodeData": qr_data, "eventId": event_id},
        headers=_auth_headers(),
    )
    body = r.json()
    assert body["valid"] is True
    assert body["checkedIn"] is True
    assert "registrationId" not in body
    assert body["attendee"]["checkInTime"]

    r = client.post(
        "/api/events/registrations/confirm-checkin",
        json={"registrationId": registration_id, "eventId": event_id},
        headers=_auth_headers(),
    )
    assert r.status_code == 200
    assert r.json()["checkedIn"] is True
    assert r.json()["message"] == "Attendee already checked in"
    assert _checkins(client, event_id) == 1


def test_validate_rejects_other_event(client: TestClient) -> None:
    event_a = _create_event()
    event_b = _create_event()
    r = _register(client, event_a, f"a_{uuid.uuid4().hex[:8]}@example.com")
    qr_data = _issued_credential(r.json()["registration"]["id"])

    r = client.post(
        "/api/events/registrations/validate",
        json={"qrCodeData": qr_data, "eventId": event_b},
        headers=_auth_headers(),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["valid"] is False
    assert body["reason"] == "event_mismatch"
    assert "attendee" not in body
    assert "registrationId" not in body


@pytest.mark.parametrize("noise", ["", "hello world", "{\"attendeeId\":", "[1,2]", "ÿþ"])
def test_validate_noise_is_invalid_not_error(client: TestClient, noise: str) -> None:
    event_id = _create_event()
    r = client.post(
        "/api/events/registrations/validate",
        json={"qrCodeData": noise, "eventId": event_id},
        headers=_auth_headers(),
    )
    assert r.status_code == 200
    assert r.json()["valid"] is False
    assert r.json()["reason"] == "malformed"


def test_validate_not_registered(client: TestClient) -> None:
    event_id = _create_event()
    qr_data = encode_credential(str(uuid.uuid4()), "Ghost", "ghost@example.com", event_id, "TEDx")
    r = client.post(
        "/api/events/registrations/validate",
        json={"qrCodeData": qr_data, "eventId": event_id},
        headers=_auth_headers(),
    )
    assert r.json()["valid"] is False
    assert r.json()["reason"] == "not_registered"


def test_confirm_errors(client: TestClient) -> None:
    event_id = _create_event()
    other_id = _create_event()
    r = _register(client, event_id, f"c_{uuid.uuid4().hex[:8]}@example.com")
    registration_id = r.json()["registration"]["id"]

    r = client.post(
        "/api/events/registrations/confirm-checkin",
        json={"registrationId": registration_id, "eventId": other_id},
        headers=_auth_headers(),
    )
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "event_mismatch"

    r = client.post(
        "/api/events/registrations/confirm-checkin",
        json={"registrationId": "missing", "eventId": event_id},
        headers=_auth_headers(),
    )
    assert r.status_code == 404
    assert r.json()["ok"] is False
    assert _checkins(client, event_id) == 0


def test_toggle_is_symmetric_and_admin_only(client: TestClient) -> None:
    event_id = _create_event()
    r = _register(client, event_id, f"t_{uuid.uuid4().hex[:8]}@example.com")
    registration_id = r.json()["registration"]["id"]

    r = client.patch(
        f"/api/registrations/{registration_id}/checkin",
        json={"checkedIn": True},
        headers=_auth_headers(SCANNER_TOKEN),
    )
    assert r.status_code == 403

    r = client.patch(
        f"/api/registrations/{registration_id}/checkin",
        json={"checkedIn": True},
        headers=_auth_headers(ADMIN_TOKEN),
    )
    assert r.status_code == 200, r.text
    assert r.json()["checkedIn"] is True
    assert r.json()["validationTime"]
    assert _checkins(client, event_id) == 1

    r = client.patch(
        f"/api/registrations/{registration_id}/checkin",
        json={"checkedIn": False},
        headers=_auth_headers(ADMIN_TOKEN),
    )
    assert r.status_code == 200
    assert r.json()["checkedIn"] is False
    assert r.json()["validationTime"] is None
    assert _checkins(client, event_id) == 0


def test_registration_rules(client: TestClient) -> None:
    event_id = _create_event(seats=1)
    email = f"dup_{uuid.uuid4().hex[:8]}@example.com"
    assert _register(client, event_id, email).status_code == 201

    dup = _register(client, event_id, email.upper())
    assert dup.status_code == 400
    assert dup.json()["error"]["code"] == "already_registered"

    full = _register(client, event_id, f"late_{uuid.uuid4().hex[:8]}@example.com")
    assert full.status_code == 400
    assert full.json()["error"]["code"] == "event_full"

    closed_id = _create_event(is_registration_open=False)
    closed = _register(client, closed_id, email)
    assert closed.status_code == 400
    assert closed.json()["error"]["code"] == "registration_closed"

    missing = _register(client, "no-such-event", email)
    assert missing.status_code == 404


def test_attendee_identity_reused_across_events(client: TestClient) -> None:
    email = f"reuse_{uuid.uuid4().hex[:8]}@example.com"
    first = _register(client, _create_event(), email).json()["registration"]
    second = _register(client, _create_event(), email).json()["registration"]
    assert first["attendeeId"] == second["attendeeId"]

    third_event = _create_event()
    r = client.post(
        "/api/registrations",
        json={"attendeeId": first["attendeeId"], "eventId": third_event, "status": "registered"},
        headers=_auth_headers(),
    )
    assert r.status_code == 201, r.text
    assert r.json()["registration"]["status"] == "registered"

    r = client.post(
        "/api/registrations",
        json={"attendeeId": "missing", "eventId": third_event},
        headers=_auth_headers(),
    )
    assert r.status_code == 404


def test_list_qr_and_send_emails(client: TestClient) -> None:
    event_id = _create_event()
    ids = [
        _register(client, event_id, f"l{i}_{uuid.uuid4().hex[:8]}@example.com", full_name=f"Person {i}").json()["registration"]["id"]
        for i in range(3)
    ]
    client.post(
        "/api/events/registrations/confirm-checkin",
        json={"registrationId": ids[0], "eventId": event_id},
        headers=_auth_headers(),
    )

    r = client.get("/api/events/registrations", params={"eventId": event_id}, headers=_auth_headers())
    assert r.status_code == 200
    assert r.json()["total"] == 3
    r = client.get(
        "/api/events/registrations", params={"eventId": event_id, "checkedIn": True}, headers=_auth_headers()
    )
    assert [item["id"] for item in r.json()["items"]] == [ids[0]]

    png = client.get(f"/api/registrations/{ids[1]}/qr.png", headers=_auth_headers())
    assert png.status_code == 200
    assert png.headers["content-type"] == "image/png"
    assert png.content.startswith(b"\x89PNG")

    r = client.post(
        "/api/registrations/send-emails",
        json={"registrationIds": ids[1:], "eventId": event_id},
        headers=_auth_headers(ADMIN_TOKEN),
    )
    assert r.status_code == 200, r.text
    assert r.json()["queued"] == 2

    stats = client.get(f"/api/events/{event_id}/checkins", headers=_auth_headers()).json()
    assert stats["totalRegistrations"] == 3
    assert stats["notCheckedIn"] == 2


def test_recount_endpoint(client: TestClient) -> None:
    event_id = _create_event()
    db = SessionLocal()
    try:
        db.get(Event, event_id).checkins = 5
        db.commit()
    finally:
        db.close()
    r = client.post(f"/api/events/{event_id}/checkins.recount", headers=_auth_headers(ADMIN_TOKEN))
    assert r.status_code == 200, r.text
    assert r.json()["checkins"] == 0
    r = client.post(f"/api/events/{event_id}/checkins.recount", headers=_auth_headers(SCANNER_TOKEN))
    assert r.status_code == 403


def test_concurrent_registrations_respect_seats(client: TestClient) -> None:
    event_id = _create_event(seats=1)
    barrier = threading.Barrier(8)

    def _attempt(i: int) -> int:
        barrier.wait()
        return _register(client, event_id, f"rush{i}_{uuid.uuid4().hex[:8]}@example.com").status_code

    with ThreadPoolExecutor(max_workers=8) as pool:
        codes = list(pool.map(_attempt, range(8)))

    assert codes.count(201) == 1
    assert codes.count(400) == 7
    db = SessionLocal()
    try:
        assert db.get(Event, event_id).registered == 1
        held = db.execute(select(func.count()).select_from(Registration).where(Registration.event_id == event_id)).scalar_one()
        assert held == 1
    finally:
        db.close()


def test_unlimited_event_counts_seats(client: TestClient) -> None:
    event_id = _create_event(seats=None)
    for i in range(3):
        assert _register(client, event_id, f"open{i}_{uuid.uuid4().hex[:8]}@example.com").status_code == 201
    db = SessionLocal()
    try:
        assert db.get(Event, event_id).registered == 3
    finally:
        db.close()
