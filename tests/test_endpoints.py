from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Dict

import pytest
from fastapi.testclient import TestClient

# Ensure project root on path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from event_checkin.main import app
from event_checkin.config import get_settings
from event_checkin.rate_limit import _window_counts as _rate_counts
from event_checkin.database import Base, engine


SCANNER_TOKEN = os.getenv("CHECKIN_SCANNER_TOKEN", "dev-scanner-token")
VALIDATE = "/api/events/registrations/validate"


@pytest.fixture(scope="module")
def client() -> TestClient:
    # Ensure schema exists when tests run standalone
    Base.metadata.create_all(bind=engine)
    return TestClient(app)


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    _rate_counts.clear()
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]
    _rate_counts.clear()


def _auth_headers(token: str = SCANNER_TOKEN) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_health_open(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json().get("status") == "ok"
    assert "X-Process-Time-Ms" in r.headers


@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Bearer bad-token"}, {"Authorization": "Token dev-token"}],
)
def test_auth_required_on_api(client: TestClient, headers) -> None:
    r = client.post(VALIDATE, json={"qrCodeData": "{}", "eventId": "E1"}, headers=headers)
    assert r.status_code == 401
    data = r.json()
    assert data.get("ok") is False
    assert data["error"]["status"] == 401
    assert data["error"]["path"] == VALIDATE


def test_unknown_event_stats_404(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="request"):
        r = client.get("/api/events/missing/checkins", headers=_auth_headers())
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "event_not_found"
    assert r.headers["X-Error-Code"] == "event_not_found"
    assert any("code=event_not_found" in rec.getMessage() for rec in caplog.records if rec.name == "request")


def test_rate_limit_toggle(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    # Disabled by default
    r = client.get("/api/events/missing/checkins", headers=_auth_headers())
    assert r.status_code == 404

    monkeypatch.setenv("CHECKIN_RATE_LIMIT_ENABLED", "true")
    monkeypatch.setenv("CHECKIN_RATE_LIMIT_PER_MINUTE", "3")
    get_settings.cache_clear()  # type: ignore[attr-defined]
    _rate_counts.clear()

    for _ in range(3):
        ok = client.post(VALIDATE, json={"qrCodeData": "noise", "eventId": "E1"}, headers=_auth_headers())
        assert ok.status_code == 200
    blocked = client.post(VALIDATE, json={"qrCodeData": "noise", "eventId": "E1"}, headers=_auth_headers())
    assert blocked.status_code == 429
    assert blocked.json()["error"]["message"] == "Rate limit exceeded"
    assert 1 <= int(blocked.headers["Retry-After"]) <= 60


def test_seed_defaults_idempotent(client: TestClient) -> None:
    from event_checkin.seed import upsert_defaults

    upsert_defaults()
    upsert_defaults()
    r = client.get("/api/events/demo-main-stage/checkins", headers=_auth_headers())
    assert r.status_code == 200
    assert r.json()["seats"] == 100
