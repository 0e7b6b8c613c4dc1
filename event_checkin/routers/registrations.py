from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..credentials import credential_for, dump_credential, render_qr_png
from ..deps import get_db, require_admin, require_token
from ..errors import RegistrationNotFound
from ..models import Registration
from ..registrations import list_registrations, register_attendee, register_existing, requeue_credentials
from ..schemas import (
    AttendeeRegistrationCreate,
    RegistrationCreate,
    RegistrationCreated,
    RegistrationListItem,
    RegistrationOut,
    RegistrationsListResponse,
    SendEmailsRequest,
    SendEmailsResponse,
)


router = APIRouter(prefix="/api", tags=["registrations"], dependencies=[Depends(require_token)])


@router.post("/registrations", response_model=RegistrationCreated, status_code=201)
def registrations_create(payload: RegistrationCreate, db: Session = Depends(get_db)):
    registration = register_existing(db, payload.attendee_id, payload.event_id, payload.status)
    return {"message": "Registration created successfully", "registration": RegistrationOut.model_validate(registration)}


@router.post("/registrations/attendee", response_model=RegistrationCreated, status_code=201)
def registrations_create_with_attendee(payload: AttendeeRegistrationCreate, db: Session = Depends(get_db)):
    registration = register_attendee(db, payload)
    return {
        "message": "Registration successful! Please check your email for your QR code.",
        "registration": RegistrationOut.model_validate(registration),
    }


@router.post("/registrations/send-emails", response_model=SendEmailsResponse, dependencies=[Depends(require_admin)])
def registrations_send_emails(payload: SendEmailsRequest, db: Session = Depends(get_db)):
    queued = requeue_credentials(db, payload.registration_ids, payload.event_id)
    return {"message": f"Emails queued for {queued} attendees", "queued": queued}


@router.get("/registrations/{registration_id}/qr.png")
def registrations_qr_png(registration_id: str, db: Session = Depends(get_db)):
    registration: Optional[Registration] = db.get(Registration, registration_id)
    if not registration:
        raise RegistrationNotFound(registration_id)
    payload = dump_credential(credential_for(registration.attendee, registration.event))
    return Response(content=render_qr_png(payload), media_type="image/png")


@router.get("/events/registrations", response_model=RegistrationsListResponse)
def events_registrations_list(
    event_id: str = Query(alias="eventId"),
    checked_in: Optional[bool] = Query(default=None, alias="checkedIn"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500, alias="pageSize"),
    db: Session = Depends(get_db),
):
    rows, total = list_registrations(db, event_id, page=page, page_size=page_size, checked_in=checked_in)
    items = [
        RegistrationListItem(
            id=r.id,
            attendee_id=r.attendee_id,
            full_name=r.attendee.full_name,
            email=r.attendee.email,
            phone_number=r.attendee.phone_number,
            status=r.status,
            checked_in=r.checked_in,
            validation_time=r.validation_time,
        )
        for r in rows
    ]
    return {"items": items, "total": total}
