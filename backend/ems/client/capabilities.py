"""
Host capabilities the client flows depend on.

A browser offered these as globals (camera, geolocation, window events,
toasts); here they are injected so flows run headless and tests can
substitute fakes.
"""

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Any, Callable, Protocol

from PIL import Image

logger = logging.getLogger(__name__)

NOTIFICATION_UPDATED = "notification-updated"


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    accuracy: float | None = None
    address: str | None = None

    def as_payload(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class CameraStream(Protocol):
    async def capture(self) -> Image.Image: ...

    def stop(self) -> None: ...


class Camera(Protocol):
    async def open(self, facing: str = "user") -> CameraStream:
        """Raises ``CameraPermissionError`` when access is denied."""
        ...


class LocationProvider(Protocol):
    async def get_location(self, high_accuracy: bool = True) -> Location:
        """Raises ``LocationPermissionError``, ``LocationTimeoutError`` or
        ``LocationUnavailableError``."""
        ...


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LoggingNotifier:
    """Toasts routed to the log; default when no UI is attached."""

    def success(self, message: str) -> None:
        logger.info("toast[success] %s", message)

    def info(self, message: str) -> None:
        logger.info("toast[info] %s", message)

    def warning(self, message: str) -> None:
        logger.warning("toast[warning] %s", message)

    def error(self, message: str) -> None:
        logger.error("toast[error] %s", message)


Handler = Callable[[dict[str, Any]], None]


class EventBus(Protocol):
    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]: ...

    def publish(self, event: str, payload: dict[str, Any] | None = None) -> None: ...


class InMemoryEventBus:
    """Synchronous in-process pub/sub keyed by event name."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: str, payload: dict[str, Any] | None = None) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(dict(payload or {}))
            except Exception:
                # One faulty subscriber must not break the publisher
                logger.exception("Handler for '%s' failed", event)

    def subscriber_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))
