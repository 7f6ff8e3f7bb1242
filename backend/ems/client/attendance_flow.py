"""
Check-in / check-out orchestration.

One action at a time moves through::

    IDLE -> CAMERA_OPEN -> PHOTO_CAPTURED -> LOCATION_ACQUIRING
         -> (LOCATION_RETRY) -> SUBMITTING -> DONE | FAILED

Check-in tolerates a missing location (submits ``{}`` with a warning);
check-out refuses to submit without one. After a successful submission the
day's record is always refetched from the server, never merged locally.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

from ems.client.api_client import EmsApiClient
from ems.client.capabilities import (
    Camera,
    CameraStream,
    Location,
    LocationProvider,
    LoggingNotifier,
    Notifier,
)
from ems.client.photo import encode_photo
from ems.core.config import settings
from ems.core.errors import (
    ActionInProgressError,
    ApiError,
    CameraPermissionError,
    InvalidInputError,
    LocationPermissionError,
    LocationTimeoutError,
    LocationUnavailableError,
)
from ems.schemas.attendance import AttendanceResponse

logger = logging.getLogger(__name__)

_LOCATION_ERRORS = (LocationPermissionError, LocationTimeoutError, LocationUnavailableError)
# A fix without an accuracy reading is treated as poor
_UNKNOWN_ACCURACY_M = 999.0


class FlowState(str, Enum):
    IDLE = "idle"
    CAMERA_OPEN = "camera_open"
    PHOTO_CAPTURED = "photo_captured"
    LOCATION_ACQUIRING = "location_acquiring"
    LOCATION_RETRY = "location_retry"
    SUBMITTING = "submitting"
    DONE = "done"
    FAILED = "failed"


class AttendanceAction(str, Enum):
    CHECK_IN = "check-in"
    CHECK_OUT = "check-out"


class AttendanceFlow:
    def __init__(
        self,
        api: EmsApiClient,
        camera: Camera,
        location_provider: LocationProvider,
        employee_email: str,
        employee_name: str | None = None,
        notifier: Notifier | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        accuracy_threshold_m: float | None = None,
        retry_delay_sec: float | None = None,
    ) -> None:
        self.api = api
        self.camera = camera
        self.location_provider = location_provider
        self.employee_email = employee_email.strip().lower()
        self.employee_name = employee_name
        self.notifier = notifier or LoggingNotifier()
        self._sleep = sleep
        self.accuracy_threshold_m = (
            settings.LOCATION_ACCURACY_THRESHOLD_M if accuracy_threshold_m is None else accuracy_threshold_m
        )
        self.retry_delay_sec = (
            settings.LOCATION_RETRY_DELAY_SEC if retry_delay_sec is None else retry_delay_sec
        )

        self.state = FlowState.IDLE
        self.action: AttendanceAction | None = None
        self.camera_error: str | None = None
        self.last_error: str | None = None
        self.photo: str | None = None
        self.today: AttendanceResponse | None = None
        self.warnings: list[str] = []
        self.checking_in = False
        self.checking_out = False
        self._stream: CameraStream | None = None

    @property
    def busy(self) -> bool:
        return self.checking_in or self.checking_out

    async def load_today(self) -> AttendanceResponse | None:
        try:
            self.today = await self.api.get_today_attendance(self.employee_email)
        except ApiError as exc:
            logger.warning("Failed to load today's attendance: %s", exc.message)
            self.notifier.error("Failed to load attendance data")
            self.today = None
        return self.today

    async def start(self, action: AttendanceAction) -> None:
        """Open the camera for ``action``; raises while an action is already running."""
        action = AttendanceAction(action)
        if self.busy:
            raise ActionInProgressError(f"{self.action.value if self.action else 'An action'} is already in progress")

        if action is AttendanceAction.CHECK_IN and self.today is not None and self.today.checkIn:
            raise InvalidInputError("Already checked in today")
        if action is AttendanceAction.CHECK_OUT:
            if self.today is None or not self.today.checkIn:
                raise InvalidInputError("Check-in first")
            if self.today.checkOut:
                raise InvalidInputError("Already checked out")

        self.action = action
        self.checking_in = action is AttendanceAction.CHECK_IN
        self.checking_out = action is AttendanceAction.CHECK_OUT
        self.warnings = []
        self.last_error = None
        self.photo = None
        await self._open_camera()

    async def retry_camera(self) -> None:
        if self.state is not FlowState.CAMERA_OPEN or self.action is None:
            raise InvalidInputError("No action waiting for the camera")
        await self._open_camera()

    async def _open_camera(self) -> None:
        self.state = FlowState.CAMERA_OPEN
        self.camera_error = None
        self._release_camera()
        try:
            self._stream = await self.camera.open(facing="user")
        except CameraPermissionError as exc:
            self.camera_error = exc.message or "Camera permission denied"
            logger.warning("Camera unavailable: %s", self.camera_error)
            self.notifier.error(self.camera_error)

    async def capture(self) -> str:
        """Grab a frame, encode it and release the camera."""
        if self.state is not FlowState.CAMERA_OPEN or self._stream is None:
            raise InvalidInputError(self.camera_error or "Camera is not open")
        try:
            frame = await self._stream.capture()
        finally:
            self._release_camera()
        self.photo = encode_photo(frame)
        self.state = FlowState.PHOTO_CAPTURED
        return self.photo

    async def submit(self) -> AttendanceResponse | None:
        if self.state is not FlowState.PHOTO_CAPTURED or self.photo is None or self.action is None:
            raise InvalidInputError("Capture a photo first")

        action = self.action
        try:
            location = await self._acquire_location(action)
            if location is None:
                self._fail("Location is required to check out. Please enable location access and try again.")
                return None

            self.state = FlowState.SUBMITTING
            try:
                if action is AttendanceAction.CHECK_IN:
                    await self.api.check_in(location, self.employee_email, self.photo, name=self.employee_name)
                else:
                    await self.api.check_out(location, self.employee_email, self.photo)
            except ApiError as exc:
                self._fail(exc.message or f"Failed to {action.value}")
                return None

            self.state = FlowState.DONE
            suffix = "" if location else " (Location not available)"
            verb = "Checked in" if action is AttendanceAction.CHECK_IN else "Checked out"
            self.notifier.success(f"{verb} successfully{suffix}!")
            logger.info("%s submitted for %s", action.value, self.employee_email)
            await self.load_today()
            return self.today
        finally:
            self.photo = None
            self.checking_in = False
            self.checking_out = False

    async def run(self, action: AttendanceAction) -> AttendanceResponse | None:
        """Whole action in one call: open camera, capture, submit."""
        await self.start(action)
        if self.camera_error:
            self.cancel()
            return None
        await self.capture()
        return await self.submit()

    def cancel(self) -> None:
        self._release_camera()
        self.photo = None
        self.camera_error = None
        self.checking_in = False
        self.checking_out = False
        self.action = None
        self.state = FlowState.IDLE

    def close(self) -> None:
        self.cancel()

    def _release_camera(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop()
            finally:
                self._stream = None

    def _fail(self, message: str) -> None:
        self.state = FlowState.FAILED
        self.last_error = message
        logger.warning("%s failed for %s: %s", self.action.value if self.action else "action", self.employee_email, message)
        self.notifier.error(message)

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        self.notifier.warning(message)

    async def _acquire_location(self, action: AttendanceAction) -> dict[str, Any] | None:
        """Location payload; ``{}`` for a check-in without location, None to abort."""
        self.state = FlowState.LOCATION_ACQUIRING
        try:
            location = await self.location_provider.get_location(high_accuracy=True)
        except _LOCATION_ERRORS as exc:
            logger.warning("Location failed during %s: %s", action.value, exc.message)
            if action is AttendanceAction.CHECK_OUT:
                return None
            self._warn(f"Location not available ({exc.message or type(exc).__name__}); checking in without it.")
            return {}

        accuracy = self._accuracy(location)
        if accuracy > self.accuracy_threshold_m:
            self._warn(f"Location accuracy is {round(accuracy)}m. Retrying with high accuracy GPS...")
            self.state = FlowState.LOCATION_RETRY
            await self._sleep(self.retry_delay_sec)
            try:
                location = await self.location_provider.get_location(high_accuracy=True)
            except _LOCATION_ERRORS as exc:
                logger.warning("Location retry failed, keeping first fix: %s", exc.message)
            accuracy = self._accuracy(location)
            if accuracy > self.accuracy_threshold_m:
                self._warn(
                    f"Location accuracy is still {round(accuracy)}m. "
                    f"Proceeding, but please move to an open area for accurate tracking."
                )
        return location.as_payload()

    @staticmethod
    def _accuracy(location: Location) -> float:
        return _UNKNOWN_ACCURACY_M if location.accuracy is None else location.accuracy
