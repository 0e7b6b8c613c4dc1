from __future__ import annotations

"""
EMBED_SUMMARY: Read-only validation of scanned credentials against an event's registrations.
EMBED_TAGS: validation, qr, checkin, registrations

Nothing in this module writes to the session. Confirming a check-in is a
separate, explicit step (see checkin.py) so a duplicate scan can never toggle
state on its own.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from .credentials import Credential, decode_credential
from .errors import MalformedCredential
from .models import Attendee, Event, Registration
from .schemas import AttendeeSnapshot, ValidateResponse


logger = logging.getLogger("checkin.validation")

REASON_MALFORMED = "malformed"
REASON_MISSING_IDENTITY = "missing_identity"
REASON_EVENT_MISMATCH = "event_mismatch"
REASON_EVENT_NOT_FOUND = "event_not_found"
REASON_NOT_REGISTERED = "not_registered"


@dataclass(frozen=True)
class Invalid:
    reason: str
    message: str


@dataclass(frozen=True)
class NotFound:
    message: str = "Attendee is not registered for this event"


@dataclass(frozen=True)
class ValidNotCheckedIn:
    registration_id: str
    attendee: AttendeeSnapshot


@dataclass(frozen=True)
class ValidAlreadyCheckedIn:
    attendee: AttendeeSnapshot
    check_in_time: Optional[datetime]


ValidationResult = Union[Invalid, NotFound, ValidNotCheckedIn, ValidAlreadyCheckedIn]


def attendee_snapshot(registration: Registration) -> AttendeeSnapshot:
    attendee = registration.attendee
    return AttendeeSnapshot(
        id=attendee.id,
        full_name=attendee.full_name,
        email=attendee.email,
        phone_number=attendee.phone_number,
        checked_in=registration.checked_in,
        check_in_time=registration.validation_time,
    )


def _lookup(db: Session, credential: Credential, event_id: str) -> Optional[Registration]:
    # attendeeId wins; email only covers credentials issued without an id
    if credential.attendee_id:
        stmt = select(Registration).where(
            and_(Registration.attendee_id == credential.attendee_id, Registration.event_id == event_id)
        )
    else:
        stmt = (
            select(Registration)
            .join(Attendee, Attendee.id == Registration.attendee_id)
            .where(
                and_(
                    func.lower(Attendee.email) == (credential.email or "").strip().lower(),
                    Registration.event_id == event_id,
                )
            )
        )
    return db.execute(stmt).scalar_one_or_none()


def validate_credential(db: Session, credential: Credential, target_event_id: str) -> ValidationResult:
    if not credential.has_identity:
        return Invalid(REASON_MISSING_IDENTITY, "Invalid QR code: missing attendee identity")
    if credential.event_id is not None and credential.event_id != target_event_id:
        return Invalid(REASON_EVENT_MISMATCH, "QR code was issued for a different event")
    if db.get(Event, target_event_id) is None:
        return Invalid(REASON_EVENT_NOT_FOUND, "Invalid QR code: Event not found")

    registration = _lookup(db, credential, target_event_id)
    if registration is None:
        return NotFound()
    snapshot = attendee_snapshot(registration)
    if registration.checked_in:
        return ValidAlreadyCheckedIn(attendee=snapshot, check_in_time=registration.validation_time)
    return ValidNotCheckedIn(registration_id=registration.id, attendee=snapshot)


def validate_scan(db: Session, raw: object, target_event_id: str) -> ValidationResult:
    """Decode raw scanner text and validate it; never raises on bad input."""
    try:
        credential = decode_credential(raw)
    except MalformedCredential as exc:
        return Invalid(REASON_MALFORMED, exc.message)
    result = validate_credential(db, credential, target_event_id)
    logger.info("validated event=%s result=%s", target_event_id, type(result).__name__)
    return result


def validation_response(result: ValidationResult) -> ValidateResponse:
    if isinstance(result, ValidNotCheckedIn):
        return ValidateResponse(
            valid=True,
            checked_in=False,
            message="QR code is valid. Confirm check-in.",
            attendee=result.attendee,
            registration_id=result.registration_id,
        )
    if isinstance(result, ValidAlreadyCheckedIn):
        return ValidateResponse(
            valid=True,
            checked_in=True,
            message="Attendee already checked in",
            attendee=result.attendee,
        )
    if isinstance(result, NotFound):
        return ValidateResponse(valid=False, message=result.message, reason=REASON_NOT_REGISTERED)
    return ValidateResponse(valid=False, message=result.message, reason=result.reason)
