from __future__ import annotations

"""
EMBED_SUMMARY: Core data models for events, attendees, registrations, audit log and credential outbox.
EMBED_TAGS: models, events, registrations, checkin, schema
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class Event(Base):
    __tablename__ = "events"
    """
    EMBED_SUMMARY: Events with optional seat capacity and a denormalized check-in counter.
    EMBED_TAGS: events, capacity, checkins
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # NULL means unlimited
    seats: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # registrations holding a seat; moved only by the conditional reservation UPDATE
    registered: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    checkins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_registration_open: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("checkins >= 0", name="ck_event_checkins_non_negative"),
        CheckConstraint("registered >= 0", name="ck_event_registered_non_negative"),
    )


class Attendee(Base):
    __tablename__ = "attendees"
    """
    EMBED_SUMMARY: Attendee identity keyed by email, reused across events.
    EMBED_TAGS: attendees, identity
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    city_country: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    occupation: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    company_university: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    receive_updates: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class Registration(Base):
    __tablename__ = "registrations"
    """
    EMBED_SUMMARY: One attendee's enrollment in one event; carries check-in state.
    EMBED_TAGS: registrations, checkin, attendance
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    attendee_id: Mapped[str] = mapped_column(String(36), ForeignKey("attendees.id", ondelete="CASCADE"), index=True)
    event_id: Mapped[str] = mapped_column(String(36), ForeignKey("events.id", ondelete="CASCADE"), index=True)
    status: Mapped[str] = mapped_column(String(32), default="pending", nullable=False)
    checked_in: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    validation_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    attendee: Mapped[Attendee] = relationship(Attendee, lazy="joined")
    event: Mapped[Event] = relationship(Event, lazy="joined")

    __table_args__ = (
        UniqueConstraint("attendee_id", "event_id", name="uq_registration_attendee_event"),
        CheckConstraint(
            "(checked_in AND validation_time IS NOT NULL) OR (NOT checked_in AND validation_time IS NULL)",
            name="ck_registration_checkin_time",
        ),
        Index("ix_registrations_event_checked_in", "event_id", "checked_in"),
    )


class SystemLog(Base):
    __tablename__ = "system_log"
    """
    EMBED_SUMMARY: Append-only audit log for check-in transitions and credential issuance.
    EMBED_TAGS: logs, audit
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ts: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    actor: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class CredentialDelivery(Base):
    __tablename__ = "credential_deliveries"
    """
    EMBED_SUMMARY: Outbox of QR credentials waiting for the mail dispatcher.
    EMBED_TAGS: notifications, outbox, email, qr
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    registration_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("registrations.id", ondelete="CASCADE"), index=True
    )
    from_email: Mapped[str] = mapped_column(String(255), nullable=False)
    to_email: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="queued", nullable=False, index=True)

    __table_args__ = (
        Index("ix_credential_deliveries_created_at", "created_at"),
    )
