from __future__ import annotations

"""
EMBED_SUMMARY: QR credential codec. Field-tagged JSON payload binding an attendee to an event, plus PNG rendering.
EMBED_TAGS: qr, credentials, codec, json

The payload is a snapshot taken at issuance time. Name and email are never
re-checked against the attendee row at scan time; the QR code acts as a
capability token, not a live reference.
"""

import io
from typing import Optional

import qrcode
from pydantic import BaseModel, Field, ValidationError
from qrcode.image.pil import PilImage

from .config import get_settings
from .errors import MalformedCredential
from .models import Attendee, Event


class Credential(BaseModel):
    attendee_id: Optional[str] = Field(default=None, alias="attendeeId")
    full_name: Optional[str] = Field(default=None, alias="fullName")
    email: Optional[str] = None
    # Older credentials carry no event binding
    event_id: Optional[str] = Field(default=None, alias="eventId")
    event_title: Optional[str] = Field(default=None, alias="eventTitle")

    model_config = dict(populate_by_name=True, frozen=True, extra="ignore")

    @property
    def has_identity(self) -> bool:
        return bool(self.attendee_id or self.email)


def encode_credential(
    attendee_id: Optional[str],
    full_name: Optional[str],
    email: Optional[str],
    event_id: Optional[str],
    event_title: Optional[str],
) -> str:
    credential = Credential(
        attendee_id=attendee_id,
        full_name=full_name,
        email=email,
        event_id=event_id,
        event_title=event_title,
    )
    return dump_credential(credential)


def dump_credential(credential: Credential) -> str:
    return credential.model_dump_json(by_alias=True, exclude_none=True)


def decode_credential(raw: object) -> Credential:
    """Parse scanner text into a Credential.

    Anything that is not a JSON object with string fields raises
    MalformedCredential; no other exception escapes.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedCredential()
    try:
        return Credential.model_validate_json(raw.strip())
    except ValidationError as exc:
        raise MalformedCredential() from exc


def credential_for(attendee: Attendee, event: Event) -> Credential:
    return Credential(
        attendee_id=attendee.id,
        full_name=attendee.full_name,
        email=attendee.email,
        event_id=event.id,
        event_title=event.title,
    )


def render_qr_png(payload: str) -> bytes:
    settings = get_settings()
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=settings.qr_box_size,
        border=settings.qr_border,
        image_factory=PilImage,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
