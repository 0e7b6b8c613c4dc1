from __future__ import annotations

"""
EMBED_SUMMARY: Credential delivery outbox. Queues attendee+QR payload for the external mail dispatcher.
EMBED_TAGS: notifications, email, outbox, qr
"""

import html
import logging
import uuid

from sqlalchemy.orm import Session

from .config import get_settings
from .credentials import credential_for, dump_credential
from .models import Attendee, CredentialDelivery, Event, Registration, SystemLog


logger = logging.getLogger("checkin.notifications")


def _render_body(attendee: Attendee, event: Event) -> str:
    title = html.escape(event.title)
    name = html.escape(attendee.full_name)
    lines = [
        f"<h1>Thank you for registering for {title}!</h1>",
        f"<p>Dear {name},</p>",
        f"<p>Your registration for {title} has been received. "
        "Your QR code is attached; show it at the entrance to check in.</p>",
        "<ul>",
        f"<li>Event: {title}</li>",
    ]
    if event.date:
        lines.append(f"<li>Date: {event.date.strftime('%d/%m/%Y')}</li>")
    if event.location:
        lines.append(f"<li>Location: {html.escape(event.location)}</li>")
    lines.append("</ul>")
    return "\n".join(lines)


def enqueue_credential(db: Session, registration: Registration, attendee: Attendee, event: Event) -> CredentialDelivery:
    """Add an outbox row for the registration's credential. The caller commits."""
    settings = get_settings()
    payload = dump_credential(credential_for(attendee, event))
    delivery = CredentialDelivery(
        id=str(uuid.uuid4()),
        registration_id=registration.id,
        from_email=settings.mail_from,
        to_email=attendee.email,
        subject=f"{settings.mail_subject_prefix} for {event.title}",
        body=_render_body(attendee, event),
        payload=payload,
        status="queued",
    )
    db.add(delivery)
    db.add(
        SystemLog(
            actor="registration",
            action="credential_enqueue",
            entity="registration",
            entity_id=registration.id,
            status="queued",
        )
    )
    logger.info("credential queued registration=%s event=%s", registration.id, event.id)
    return delivery
