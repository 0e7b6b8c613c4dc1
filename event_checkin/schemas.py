from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


class APIModel(BaseModel):
    """snake_case in Python, camelCase on the wire."""

    model_config = dict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Attendees
class AttendeeSnapshot(APIModel):
    id: str
    full_name: str
    email: str
    phone_number: Optional[str] = None
    checked_in: bool = False
    check_in_time: Optional[datetime] = None


# Validation / check-in
class ValidateRequest(APIModel):
    qr_code_data: str
    event_id: str


class ValidateResponse(APIModel):
    valid: bool
    checked_in: bool = False
    message: str
    reason: Optional[str] = None
    attendee: Optional[AttendeeSnapshot] = None
    registration_id: Optional[str] = None


class ConfirmCheckinRequest(APIModel):
    registration_id: str
    event_id: str


class ConfirmCheckinResponse(APIModel):
    valid: bool = True
    checked_in: bool
    message: str
    attendee: AttendeeSnapshot


class CheckinToggle(APIModel):
    checked_in: bool


# Registrations
class RegistrationCreate(APIModel):
    attendee_id: str
    event_id: str
    status: Optional[str] = None


class AttendeeRegistrationCreate(APIModel):
    full_name: str = Field(min_length=1)
    email: str
    event_id: str
    phone_number: Optional[str] = None
    city_country: Optional[str] = None
    occupation: Optional[str] = None
    company_university: Optional[str] = None
    receive_updates: bool = False

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Invalid email address")
        return v


class RegistrationOut(APIModel):
    id: str
    attendee_id: str
    event_id: str
    status: str
    checked_in: bool
    validation_time: Optional[datetime] = None
    created_at: datetime


class RegistrationCreated(APIModel):
    message: str
    registration: RegistrationOut


class RegistrationListItem(APIModel):
    id: str
    attendee_id: str
    full_name: str
    email: str
    phone_number: Optional[str] = None
    status: str
    checked_in: bool
    validation_time: Optional[datetime] = None


class RegistrationsListResponse(APIModel):
    items: List[RegistrationListItem]
    total: int


class SendEmailsRequest(APIModel):
    registration_ids: List[str] = Field(min_length=1)
    event_id: str


class SendEmailsResponse(APIModel):
    message: str
    queued: int


# Events
class EventCheckinStats(APIModel):
    event_id: str
    title: str
    seats: Optional[int] = None
    checkins: int
    total_registrations: int
    not_checked_in: int
