from __future__ import annotations

"""
EMBED_SUMMARY: HTTP client used by door scanners to validate credentials and confirm check-ins.
EMBED_TAGS: client, httpx, scanner, checkin

Validate and confirm are never retried automatically. Confirm is idempotent
on the server, so an operator can safely press it again after a failure.
"""

from dataclasses import dataclass
from typing import Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .schemas import ConfirmCheckinResponse, ValidateResponse


VALIDATE_PATH = "/api/events/registrations/validate"
CONFIRM_PATH = "/api/events/registrations/confirm-checkin"

ResponseT = TypeVar("ResponseT", bound=BaseModel)


def _parse(resp: httpx.Response, model: Type[ResponseT]) -> ResponseT:
    """Raise for error statuses and read the body as `model`.

    A 2xx body that is not the expected JSON (a captive portal page, a proxy
    error) becomes `httpx.DecodingError` so callers handle one error family.
    """
    resp.raise_for_status()
    try:
        return model.model_validate(resp.json())
    except (ValueError, ValidationError) as exc:
        raise httpx.DecodingError("Unexpected response from check-in server", request=resp.request) from exc


@dataclass(frozen=True)
class AuthContext:
    """Bearer credential for one operator, passed into every call."""

    token: str

    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"}


class CheckinClient:
    def __init__(self, base_url: str = "", http: Optional[httpx.Client] = None, timeout: float = 10.0) -> None:
        self._owns_http = http is None
        self.http = http if http is not None else httpx.Client(base_url=base_url, timeout=timeout)

    def validate(self, auth: AuthContext, qr_code_data: str, event_id: str) -> ValidateResponse:
        resp = self.http.post(
            VALIDATE_PATH,
            json={"qrCodeData": qr_code_data, "eventId": event_id},
            headers=auth.headers(),
        )
        return _parse(resp, ValidateResponse)

    def confirm(self, auth: AuthContext, registration_id: str, event_id: str) -> ConfirmCheckinResponse:
        resp = self.http.post(
            CONFIRM_PATH,
            json={"registrationId": registration_id, "eventId": event_id},
            headers=auth.headers(),
        )
        return _parse(resp, ConfirmCheckinResponse)

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    def __enter__(self) -> "CheckinClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def error_message(exc: httpx.HTTPError, default: str) -> str:
    """Best-effort operator-facing text for a failed call."""
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            body = exc.response.json()
        except ValueError:
            return default
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return default
    return str(exc) or default
