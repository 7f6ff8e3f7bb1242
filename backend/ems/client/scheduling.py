"""Timers used by the client: notification polling and input debouncing."""

import asyncio
import contextlib
import inspect
import logging
from typing import Any, Callable

from ems.client.api_client import EmsApiClient
from ems.client.capabilities import NOTIFICATION_UPDATED, EventBus
from ems.core.config import settings
from ems.core.errors import ApiError
from ems.services.notification_feed import NotificationFeed, process_notifications

logger = logging.getLogger(__name__)


class NotificationPoller:
    """Keeps a processed notification feed fresh.

    Refreshes every ``interval`` seconds and immediately whenever a
    ``notification-updated`` event is published on the bus.
    """

    def __init__(
        self,
        api: EmsApiClient,
        event_bus: EventBus | None = None,
        interval: float | None = None,
        limit: int = 50,
        on_update: Callable[[NotificationFeed], Any] | None = None,
    ) -> None:
        self.api = api
        self.event_bus = event_bus
        self.interval = settings.NOTIFICATION_POLL_INTERVAL_SEC if interval is None else interval
        self.limit = limit
        self.on_update = on_update
        self.feed = NotificationFeed()
        self.refresh_count = 0
        self._wake = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        if self.event_bus is not None:
            self._unsubscribe = self.event_bus.subscribe(NOTIFICATION_UPDATED, self._on_event)
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug("Notification poller started (every %.1fs)", self.interval)

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    def _on_event(self, payload: dict) -> None:
        logger.debug("notification-updated %s, refreshing", payload)
        self._wake.set()

    async def refresh(self) -> NotificationFeed:
        try:
            raw = await self.api.get_notifications(limit=self.limit)
            self.feed = process_notifications([n.model_dump() for n in raw])
        except ApiError as exc:
            logger.warning("Notification refresh failed: %s", exc.message)
            self.feed = NotificationFeed()
        self.refresh_count += 1
        if self.on_update is not None:
            self.on_update(self.feed)
        return self.feed

    async def _run(self) -> None:
        while True:
            self._wake.clear()
            try:
                await self.refresh()
            except Exception:
                logger.exception("Notification poll failed; retrying on the next tick")
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)


class Debouncer:
    """Runs ``func`` only after ``delay`` seconds without a newer call."""

    def __init__(self, func: Callable[..., Any], delay: float | None = None) -> None:
        self.func = func
        self.delay = settings.SEARCH_DEBOUNCE_SEC if delay is None else delay
        self._pending: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        self.cancel()
        self._pending = asyncio.get_running_loop().create_task(self._fire(args, kwargs))

    def cancel(self) -> None:
        if self.pending:
            self._pending.cancel()
        self._pending = None

    async def wait(self) -> None:
        """Wait for the scheduled call, if any, to finish."""
        if self._pending is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._pending

    async def _fire(self, args: tuple, kwargs: dict) -> None:
        await asyncio.sleep(self.delay)
        result = self.func(*args, **kwargs)
        if inspect.isawaitable(result):
            await result
