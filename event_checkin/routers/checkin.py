from __future__ import annotations

"""
EMBED_SUMMARY: Scanner endpoints (validate, confirm-checkin) and the registrations-list check-in toggle.
EMBED_TAGS: checkin, qr, validation, api
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..checkin import confirm_check_in, set_checked_in
from ..deps import Caller, get_db, require_admin, require_token
from ..schemas import (
    CheckinToggle,
    ConfirmCheckinRequest,
    ConfirmCheckinResponse,
    RegistrationOut,
    ValidateRequest,
    ValidateResponse,
)
from ..validation import validate_scan, validation_response


router = APIRouter(prefix="/api", tags=["checkin"], dependencies=[Depends(require_token)])


@router.post(
    "/events/registrations/validate",
    response_model=ValidateResponse,
    response_model_exclude_none=True,
)
def registrations_validate(payload: ValidateRequest, db: Session = Depends(get_db)):
    # credential problems come back as valid=false, never as an HTTP error
    result = validate_scan(db, payload.qr_code_data, payload.event_id)
    return validation_response(result)


@router.post("/events/registrations/confirm-checkin", response_model=ConfirmCheckinResponse)
def registrations_confirm_checkin(
    payload: ConfirmCheckinRequest,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_token),
):
    outcome = confirm_check_in(db, payload.registration_id, payload.event_id, caller)
    message = "Attendee checked in successfully" if outcome.changed else "Attendee already checked in"
    return ConfirmCheckinResponse(valid=True, checked_in=True, message=message, attendee=outcome.attendee)


@router.patch("/registrations/{registration_id}/checkin", response_model=RegistrationOut)
def registrations_toggle_checkin(
    registration_id: str,
    payload: CheckinToggle,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_admin),
):
    outcome = set_checked_in(db, registration_id, payload.checked_in, caller)
    return RegistrationOut.model_validate(outcome.registration)
