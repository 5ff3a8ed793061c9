"""logind PrepareForSleep listener."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from dbus_fast import BusType
from dbus_fast.aio import MessageBus

logger = logging.getLogger(__name__)

LOGIN1_BUS_NAME = "org.freedesktop.login1"
LOGIN1_PATH = "/org/freedesktop/login1"
LOGIN1_MANAGER_INTERFACE = "org.freedesktop.login1.Manager"

SleepCallback = Callable[[], Awaitable[None]]


class SleepMonitor:
    """Forwards system suspend/resume to async callbacks."""

    def __init__(self, *, on_suspend: SleepCallback, on_resume: SleepCallback) -> None:
        self._on_suspend = on_suspend
        self._on_resume = on_resume
        self._bus: Optional[MessageBus] = None
        self._manager: Any = None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def active(self) -> bool:
        return self._manager is not None

    async def start(self) -> None:
        if self._manager is not None:
            return
        try:
            self._bus = await MessageBus(bus_type=BusType.SYSTEM).connect()
            introspection = await self._bus.introspect(LOGIN1_BUS_NAME, LOGIN1_PATH)
            proxy = self._bus.get_proxy_object(LOGIN1_BUS_NAME, LOGIN1_PATH, introspection)
            self._manager = proxy.get_interface(LOGIN1_MANAGER_INTERFACE)
            self._manager.on_prepare_for_sleep(self.handle_prepare_for_sleep)
            logger.info("Listening for logind PrepareForSleep")
        except Exception as exc:
            logger.warning("Sleep monitor unavailable, suspend/resume will not be tracked: %s", exc)
            await self.stop()

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self._manager is not None:
            try:
                self._manager.off_prepare_for_sleep(self.handle_prepare_for_sleep)
            except Exception as exc:
                logger.debug("Error dropping PrepareForSleep handler: %s", exc)
            self._manager = None
        if self._bus is not None:
            self._bus.disconnect()
            self._bus = None

    def handle_prepare_for_sleep(self, going_to_sleep: bool) -> None:
        if going_to_sleep:
            logger.debug("System going to sleep, stopping fingerprint verification.")
            callback = self._on_suspend
        else:
            logger.debug("System resumed, restarting fingerprint verification.")
            callback = self._on_resume
        previous = self._task
        self._task = asyncio.create_task(self._dispatch(previous, callback), name="sleep-transition")

    @staticmethod
    async def _dispatch(previous: Optional[asyncio.Task[None]], callback: SleepCallback) -> None:
        # Transitions run in signal order
        if previous is not None and not previous.done():
            try:
                await previous
            except asyncio.CancelledError:
                pass
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Sleep transition handler failed: %s", exc)


__all__ = ["SleepMonitor"]
