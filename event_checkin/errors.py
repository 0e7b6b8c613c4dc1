from __future__ import annotations

"""
EMBED_SUMMARY: Error taxonomy for credential decoding, registration lookup, check-in transactions and scanner devices.
EMBED_TAGS: errors, exceptions, checkin, scanner
"""

from typing import Optional


class CheckinError(Exception):
    """Base class for service errors; carries the HTTP status used by the API layer."""

    status_code: int = 400
    error_code: str = "checkin_error"

    def __init__(self, message: str, error_code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class MalformedCredential(CheckinError):
    """Scanned payload is not a credential at all (camera noise, foreign QR codes)."""

    status_code = 400
    error_code = "malformed"

    def __init__(self, message: str = "Invalid QR code format") -> None:
        super().__init__(message)


class EventMismatch(CheckinError):
    status_code = 409
    error_code = "event_mismatch"

    def __init__(self, expected_event_id: str, actual_event_id: Optional[str]) -> None:
        super().__init__("Registration belongs to a different event")
        self.expected_event_id = expected_event_id
        self.actual_event_id = actual_event_id


class RegistrationNotFound(CheckinError):
    status_code = 404
    error_code = "registration_not_found"

    def __init__(self, registration_id: Optional[str] = None) -> None:
        super().__init__("Registration not found")
        self.registration_id = registration_id


class EventNotFound(CheckinError):
    status_code = 404
    error_code = "event_not_found"

    def __init__(self, event_id: str) -> None:
        super().__init__("Event not found")
        self.event_id = event_id


class AttendeeNotFound(CheckinError):
    status_code = 404
    error_code = "attendee_not_found"

    def __init__(self, attendee_id: str) -> None:
        super().__init__("Attendee not found")
        self.attendee_id = attendee_id


class AlreadyRegistered(CheckinError):
    status_code = 400
    error_code = "already_registered"

    def __init__(self) -> None:
        super().__init__("Attendee is already registered for this event")


class RegistrationClosed(CheckinError):
    status_code = 400
    error_code = "registration_closed"

    def __init__(self) -> None:
        super().__init__("Registration is closed for this event")


class EventFull(CheckinError):
    status_code = 400
    error_code = "event_full"

    def __init__(self) -> None:
        super().__init__("Event at capacity")


class TransactionConflict(CheckinError):
    """A concurrent writer held the registration; the caller may retry the confirm."""

    status_code = 409
    error_code = "transaction_conflict"

    def __init__(self, registration_id: str) -> None:
        super().__init__("Check-in is being processed by another scanner, try again")
        self.registration_id = registration_id


class DeviceUnavailable(CheckinError):
    error_code = "device_unavailable"

    def __init__(self, message: str = "Failed to start scanner. Please check camera permissions.") -> None:
        super().__init__(message)


class IllegalTransition(CheckinError):
    error_code = "illegal_transition"

    def __init__(self, state: str, action: str) -> None:
        super().__init__(f"Cannot {action} while {state}")
        self.state = state
        self.action = action
