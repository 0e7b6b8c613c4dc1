from __future__ import annotations

"""
EMBED_SUMMARY: Door-side scan session. Explicit state machine driving a camera device, validation and operator confirmation.
EMBED_TAGS: scanner, qr, camera, state-machine, checkin

States: IDLE -> SCANNING -> DECODING -> AWAITING_CONFIRMATION -> (CONFIRMING | SCANNING), any -> CLOSED.
Decode callbacks are only acted upon in SCANNING, so a second frame arriving
while a result is pending is dropped instead of re-entering validation.
"""

import logging
from enum import Enum
from typing import Any, Callable, Optional, Protocol

import httpx

from .client import AuthContext, CheckinClient, error_message
from .errors import DeviceUnavailable, IllegalTransition
from .schemas import ConfirmCheckinResponse, ValidateResponse


logger = logging.getLogger("checkin.scanner")

DecodeCallback = Callable[[str], Any]


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    DECODING = "decoding"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMING = "confirming"
    CLOSED = "closed"


class ScannerDevice(Protocol):
    def start(self, on_decoded: DecodeCallback) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def stop(self) -> None: ...


class ScanView(Protocol):
    def show_result(self, result: ValidateResponse) -> None: ...

    def show_confirmed(self, response: ConfirmCheckinResponse) -> None: ...

    def show_error(self, message: str) -> None: ...

    def clear(self) -> None: ...


class LoggingScanView:
    """Headless view; renders everything to the log."""

    def show_result(self, result: ValidateResponse) -> None:
        logger.info("scan result valid=%s checked_in=%s message=%s", result.valid, result.checked_in, result.message)

    def show_confirmed(self, response: ConfirmCheckinResponse) -> None:
        logger.info("check-in confirmed attendee=%s", response.attendee.email)

    def show_error(self, message: str) -> None:
        logger.warning("scanner error: %s", message)

    def clear(self) -> None:
        pass


class ScanSession:
    def __init__(
        self,
        device: ScannerDevice,
        client: CheckinClient,
        auth: AuthContext,
        event_id: str,
        view: Optional[ScanView] = None,
        resume_after_confirm: bool = True,
    ) -> None:
        self.device = device
        self.client = client
        self.auth = auth
        self.event_id = event_id
        self.view = view or LoggingScanView()
        self.resume_after_confirm = resume_after_confirm
        self.state = ScanState.IDLE
        self.result: Optional[ValidateResponse] = None
        self._device_open = False

    # lifecycle

    def start(self) -> bool:
        """Acquire the device and begin scanning. Returns False when the camera is unavailable."""
        if self.state is not ScanState.IDLE:
            raise IllegalTransition(self.state.value, "start")
        self._device_open = True
        try:
            self.device.start(self.on_decoded)
        except DeviceUnavailable as exc:
            self._release_device()
            logger.warning("device unavailable event=%s: %s", self.event_id, exc.message)
            self.view.show_error(exc.message)
            return False
        except BaseException:
            self._release_device()
            raise
        self.state = ScanState.SCANNING
        return True

    def close(self) -> None:
        if self.state is ScanState.CLOSED:
            return
        self._release_device()
        self.result = None
        self.state = ScanState.CLOSED
        self.view.clear()

    def __enter__(self) -> "ScanSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _release_device(self) -> None:
        if not self._device_open:
            return
        self._device_open = False
        try:
            self.device.stop()
        except Exception:
            logger.exception("error stopping scanner device")

    # device callback

    def on_decoded(self, raw: str) -> bool:
        """Handle one decoded frame; returns False when the frame was ignored."""
        if self.state is not ScanState.SCANNING or not raw:
            return False
        self.state = ScanState.DECODING
        self.device.pause()
        try:
            result = self.client.validate(self.auth, raw, self.event_id)
        except httpx.HTTPError as exc:
            message = error_message(exc, "Error validating QR code")
            logger.warning("validate failed event=%s: %s", self.event_id, message)
            result = ValidateResponse(valid=False, message=message, reason="transport_error")
            self.view.show_error(message)
        self.result = result
        self.state = ScanState.AWAITING_CONFIRMATION
        self.view.show_result(result)
        return True

    # operator actions

    @property
    def can_confirm(self) -> bool:
        r = self.result
        return (
            self.state is ScanState.AWAITING_CONFIRMATION
            and r is not None
            and r.valid
            and not r.checked_in
            and bool(r.registration_id)
        )

    def confirm(self) -> Optional[ConfirmCheckinResponse]:
        if not self.can_confirm:
            raise IllegalTransition(self.state.value, "confirm")
        registration_id = self.result.registration_id  # type: ignore[union-attr]
        self.state = ScanState.CONFIRMING
        try:
            response = self.client.confirm(self.auth, registration_id, self.event_id)
        except httpx.HTTPError as exc:
            message = error_message(exc, "Error confirming check-in")
            logger.warning("confirm failed registration=%s: %s", registration_id, message)
            self.view.show_error(message)
            # result kept so the operator can press confirm again
            self.state = ScanState.AWAITING_CONFIRMATION
            return None

        self.view.show_confirmed(response)
        if self.resume_after_confirm:
            self._resume()
        else:
            self.result = ValidateResponse(
                valid=True,
                checked_in=True,
                message="Attendee checked in successfully",
                attendee=response.attendee,
            )
            self.state = ScanState.AWAITING_CONFIRMATION
            self.view.show_result(self.result)
        return response

    def scan_again(self) -> None:
        if self.state is not ScanState.AWAITING_CONFIRMATION:
            raise IllegalTransition(self.state.value, "scan again")
        self._resume()

    def _resume(self) -> None:
        self.result = None
        self.view.clear()
        self.device.resume()
        self.state = ScanState.SCANNING


def _cv2():
    import cv2

    return cv2


class OpenCVCameraDevice:
    """Camera device over OpenCV's VideoCapture and QRCodeDetector.

    Frames are pulled by calling ``poll()`` from the UI loop; nothing runs on
    a background thread.
    """

    def __init__(self, camera_index: int = 0, capture_factory: Optional[Callable[[int], Any]] = None, detector: Any = None) -> None:
        self.camera_index = camera_index
        self._capture_factory = capture_factory
        self._detector = detector
        self._capture: Any = None
        self._on_decoded: Optional[DecodeCallback] = None
        self._paused = False

    def start(self, on_decoded: DecodeCallback) -> None:
        factory = self._capture_factory or _cv2().VideoCapture
        self._capture = factory(self.camera_index)
        if not self._capture.isOpened():
            raise DeviceUnavailable()
        if self._detector is None:
            self._detector = _cv2().QRCodeDetector()
        self._on_decoded = on_decoded
        self._paused = False

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def stop(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
        self._on_decoded = None

    def poll(self) -> bool:
        """Read one frame; returns True when a code was decoded and delivered."""
        if self._capture is None or self._paused or self._on_decoded is None:
            return False
        ok, frame = self._capture.read()
        if not ok:
            return False
        data, _points, _straight = self._detector.detectAndDecode(frame)
        if not data:
            return False
        self._on_decoded(data)
        return True
