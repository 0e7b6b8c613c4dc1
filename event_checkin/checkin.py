from __future__ import annotations

"""
EMBED_SUMMARY: Check-in transaction manager. Atomic, idempotent check-in/undo transitions with the event counter.
EMBED_TAGS: checkin, transactions, concurrency, counters

A transition is a conditional UPDATE on the registration row
(``WHERE checked_in = <old>``). Only when it reports exactly one affected
row does the event counter move, and both statements commit together. Two
scanners confirming the same registration therefore produce one increment:
the loser's UPDATE matches nothing and falls through to the idempotent path.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from .deps import Caller
from .errors import EventMismatch, RegistrationNotFound, TransactionConflict
from .models import Event, Registration, SystemLog
from .registrations import get_event
from .schemas import AttendeeSnapshot
from .validation import attendee_snapshot


logger = logging.getLogger("checkin")


@dataclass(frozen=True)
class CheckinOutcome:
    registration: Registration
    attendee: AttendeeSnapshot
    # False when the registration was already in the requested state
    changed: bool


def _load(db: Session, registration_id: str) -> Optional[Registration]:
    return db.execute(
        select(Registration)
        .where(Registration.id == registration_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _apply(db: Session, registration_id: str, event_id: str, checked_in: bool) -> bool:
    """Flip the registration and move the counter; returns False when nothing matched."""
    result = db.execute(
        update(Registration)
        .where(
            and_(
                Registration.id == registration_id,
                Registration.event_id == event_id,
                Registration.checked_in.is_(not checked_in),
            )
        )
        .values(checked_in=checked_in, validation_time=datetime.utcnow() if checked_in else None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    if checked_in:
        new_count = Event.checkins + 1
    else:
        new_count = case((Event.checkins > 0, Event.checkins - 1), else_=0)
    db.execute(
        update(Event)
        .where(Event.id == event_id)
        .values(checkins=new_count)
        .execution_options(synchronize_session=False)
    )
    return True


def _audit(db: Session, caller: Caller, action: str, registration_id: str, changed: bool) -> None:
    db.add(
        SystemLog(
            actor=caller.actor,
            action=action,
            entity="registration",
            entity_id=registration_id,
            status="ok" if changed else "noop",
        )
    )


def _transition(
    db: Session,
    registration_id: str,
    event_id: str,
    checked_in: bool,
    caller: Caller,
) -> CheckinOutcome:
    action = "checkin" if checked_in else "checkin_undo"
    try:
        changed = _apply(db, registration_id, event_id, checked_in)
        registration = _load(db, registration_id)
        if registration is None:
            raise RegistrationNotFound(registration_id)
        if registration.event_id != event_id:
            raise EventMismatch(event_id, registration.event_id)
        if registration.checked_in != checked_in:
            # a concurrent opposite transition won between our UPDATE and SELECT
            raise TransactionConflict(registration_id)
        _audit(db, caller, action, registration_id, changed)
        db.commit()
    except OperationalError as exc:
        db.rollback()
        registration = _load(db, registration_id)
        if registration is not None and registration.event_id == event_id and registration.checked_in == checked_in:
            logger.info("%s resolved after conflict registration=%s", action, registration_id)
            return CheckinOutcome(registration, attendee_snapshot(registration), changed=False)
        logger.warning("%s conflict registration=%s: %s", action, registration_id, exc)
        raise TransactionConflict(registration_id) from exc
    except (SQLAlchemyError, RegistrationNotFound, EventMismatch, TransactionConflict):
        db.rollback()
        raise

    logger.info(
        "%s registration=%s event=%s changed=%s actor=%s",
        action,
        registration_id,
        event_id,
        changed,
        caller.actor,
    )
    return CheckinOutcome(registration, attendee_snapshot(registration), changed=changed)


def confirm_check_in(db: Session, registration_id: str, event_id: str, caller: Caller) -> CheckinOutcome:
    """Mark the registration checked in for ``event_id``; a repeat confirm is a no-op success."""
    return _transition(db, registration_id, event_id, True, caller)


def undo_check_in(db: Session, registration_id: str, caller: Caller) -> CheckinOutcome:
    registration = _load(db, registration_id)
    if registration is None:
        raise RegistrationNotFound(registration_id)
    return _transition(db, registration_id, registration.event_id, False, caller)


def set_checked_in(db: Session, registration_id: str, checked_in: bool, caller: Caller) -> CheckinOutcome:
    """Toggle used by the registrations list; no event guard beyond the row's own event."""
    if not checked_in:
        return undo_check_in(db, registration_id, caller)
    registration = _load(db, registration_id)
    if registration is None:
        raise RegistrationNotFound(registration_id)
    return _transition(db, registration_id, registration.event_id, True, caller)


def recount_checkins(db: Session, event_id: str, caller: Caller) -> int:
    """Recompute the denormalized check-in and seat counters from the registration rows."""
    event = get_event(db, event_id)
    checked = (
        select(func.count())
        .select_from(Registration)
        .where(and_(Registration.event_id == event.id, Registration.checked_in.is_(True)))
        .scalar_subquery()
    )
    held = select(func.count()).select_from(Registration).where(Registration.event_id == event.id).scalar_subquery()
    previous = event.checkins
    try:
        db.execute(
            update(Event)
            .where(Event.id == event.id)
            .values(checkins=checked, registered=held)
            .execution_options(synchronize_session=False)
        )
        db.add(
            SystemLog(
                actor=caller.actor,
                action="checkin_recount",
                entity="event",
                entity_id=event.id,
                status="ok",
                message=f"previous={previous}",
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(event)
    logger.info("recounted event=%s previous=%s current=%s", event.id, previous, event.checkins)
    return event.checkins
