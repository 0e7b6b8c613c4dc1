from __future__ import annotations

"""
EMBED_SUMMARY: Registration store operations. Attendee reuse by email, one registration per attendee/event, capacity and open-flag checks.
EMBED_TAGS: registrations, attendees, capacity, uniqueness
"""

import logging
import uuid
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import AlreadyRegistered, AttendeeNotFound, EventFull, EventNotFound, RegistrationClosed
from .models import Attendee, Event, Registration
from .notifications import enqueue_credential
from .schemas import AttendeeRegistrationCreate


logger = logging.getLogger("checkin.registrations")

ATTENDEE_PROFILE_FIELDS = ("phone_number", "city_country", "occupation", "company_university", "receive_updates")


def get_event(db: Session, event_id: str) -> Event:
    event = db.get(Event, event_id)
    if not event:
        raise EventNotFound(event_id)
    return event


def find_registration(db: Session, attendee_id: str, event_id: str) -> Optional[Registration]:
    return db.execute(
        select(Registration).where(
            and_(Registration.attendee_id == attendee_id, Registration.event_id == event_id)
        )
    ).scalar_one_or_none()


def _reserve_seat(db: Session, event: Event) -> None:
    """Take one seat inside the caller's transaction, or raise EventFull.

    The check and the increment are a single conditional UPDATE, so the row
    lock it takes orders concurrent registrations for the same event.
    """
    result = db.execute(
        update(Event)
        .where(
            and_(
                Event.id == event.id,
                or_(Event.seats.is_(None), Event.registered < Event.seats),
            )
        )
        .values(registered=Event.registered + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise EventFull()


def _create(db: Session, attendee: Attendee, event: Event, status: str) -> Registration:
    if find_registration(db, attendee.id, event.id):
        raise AlreadyRegistered()
    try:
        _reserve_seat(db, event)
        registration = Registration(
            id=str(uuid.uuid4()),
            attendee_id=attendee.id,
            event_id=event.id,
            status=status,
            checked_in=False,
        )
        db.add(registration)
        enqueue_credential(db, registration, attendee, event)
        db.commit()
    except IntegrityError:
        # a concurrent request registered the same pair first; the seat goes back with the rollback
        db.rollback()
        if find_registration(db, attendee.id, event.id):
            raise AlreadyRegistered()
        raise
    except (EventFull, SQLAlchemyError):
        db.rollback()
        raise
    db.refresh(registration)
    logger.info("registered attendee=%s event=%s registration=%s", attendee.id, event.id, registration.id)
    return registration


def register_attendee(db: Session, payload: AttendeeRegistrationCreate) -> Registration:
    """Self-service registration: reuse the attendee identity for a known email, else create it."""
    event = get_event(db, payload.event_id)
    if not event.is_registration_open:
        raise RegistrationClosed()

    attendee = db.execute(
        select(Attendee).where(func.lower(Attendee.email) == payload.email)
    ).scalar_one_or_none()
    if not attendee:
        attendee = Attendee(id=str(uuid.uuid4()), full_name=payload.full_name, email=payload.email)
        for field in ATTENDEE_PROFILE_FIELDS:
            value = getattr(payload, field)
            if value is not None:
                setattr(attendee, field, value)
        db.add(attendee)
    return _create(db, attendee, event, "pending")


def register_existing(db: Session, attendee_id: str, event_id: str, status: Optional[str] = None) -> Registration:
    attendee = db.get(Attendee, attendee_id)
    if not attendee:
        raise AttendeeNotFound(attendee_id)
    event = get_event(db, event_id)
    return _create(db, attendee, event, status or "pending")


def requeue_credentials(db: Session, registration_ids: Sequence[str], event_id: str) -> int:
    event = get_event(db, event_id)
    rows = db.execute(
        select(Registration).where(
            and_(Registration.id.in_(list(registration_ids)), Registration.event_id == event.id)
        )
    ).scalars().all()
    for registration in rows:
        enqueue_credential(db, registration, registration.attendee, event)
    db.commit()
    return len(rows)


def list_registrations(
    db: Session,
    event_id: str,
    page: int = 1,
    page_size: int = 50,
    checked_in: Optional[bool] = None,
) -> Tuple[List[Registration], int]:
    get_event(db, event_id)
    stmt = select(Registration).join(Registration.attendee).where(Registration.event_id == event_id)
    if checked_in is not None:
        stmt = stmt.where(Registration.checked_in == checked_in)
    total = db.execute(stmt.order_by(Attendee.full_name)).scalars().all()
    items = total[(page - 1) * page_size : page * page_size]
    return list(items), len(total)


def event_checkin_stats(db: Session, event_id: str) -> dict:
    event = get_event(db, event_id)
    total = db.execute(
        select(func.count()).select_from(Registration).where(Registration.event_id == event.id)
    ).scalar_one()
    return {
        "event_id": event.id,
        "title": event.title,
        "seats": event.seats,
        "checkins": event.checkins,
        "total_registrations": total,
        "not_checked_in": max(total - event.checkins, 0),
    }
