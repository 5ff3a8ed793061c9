"""fprintd client helpers on top of dbus-fast."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Optional

from dbus_fast import BusType
from dbus_fast.aio import MessageBus
from dbus_fast.errors import DBusError

from ..config import Settings

logger = logging.getLogger(__name__)

MANAGER_INTERFACE = "net.reactivated.Fprint.Manager"
DEVICE_INTERFACE = "net.reactivated.Fprint.Device"

VerifyStatusHandler = Callable[[str, bool], None]


class FprintdError(RuntimeError):
    """Raised when a call to fprintd (or the bus itself) fails."""

    def __init__(self, message: str, *, error_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.error_name = error_name

    @classmethod
    def from_dbus(cls, exc: DBusError) -> "FprintdError":
        return cls(exc.text or exc.type, error_name=exc.type)


class FprintdDevice:
    """Proxy for one fprintd device object."""

    def __init__(self, path: str, interface: Any) -> None:
        self.path = path
        self._iface = interface
        self._handler: Optional[VerifyStatusHandler] = None

    async def claim(self, username: str = "") -> None:
        await self._call("claim", username)

    async def release(self) -> None:
        await self._call("release")

    async def verify_start(self, finger: str = "any") -> None:
        await self._call("verify_start", finger)

    async def verify_stop(self) -> None:
        await self._call("verify_stop")

    def subscribe(self, handler: VerifyStatusHandler) -> None:
        """Route VerifyStatus signals to ``handler``; replaces any previous one."""
        self.unsubscribe()
        self._handler = handler
        self._iface.on_verify_status(handler)

    def unsubscribe(self) -> None:
        if self._handler is None:
            return
        try:
            self._iface.off_verify_status(self._handler)
        except Exception as exc:
            logger.warning("fprintd: failed to drop VerifyStatus handler on %s: %s", self.path, exc)
        self._handler = None

    async def _call(self, method: str, *args: Any) -> Any:
        try:
            return await getattr(self._iface, f"call_{method}")(*args)
        except DBusError as exc:
            logger.debug("fprintd.%s on %s failed: %s (%s)", method, self.path, exc.text, exc.type)
            raise FprintdError.from_dbus(exc) from exc
        except (OSError, EOFError) as exc:
            raise FprintdError(f"bus error during {method}: {exc}") from exc


class FprintdConnection:
    """System bus connection plus the fprintd manager handle."""

    def __init__(self, bus: MessageBus, manager: Any, settings: Settings) -> None:
        self._bus = bus
        self._manager = manager
        self._settings = settings

    @property
    def connected(self) -> bool:
        return self._bus.connected

    async def get_default_device(self) -> str:
        try:
            return str(await self._manager.call_get_default_device())
        except DBusError as exc:
            raise FprintdError.from_dbus(exc) from exc
        except (OSError, EOFError) as exc:
            raise FprintdError(f"bus error during GetDefaultDevice: {exc}") from exc

    async def open_device(self, path: str) -> FprintdDevice:
        bus_name = self._settings.fprintd.bus_name
        try:
            introspection = await self._bus.introspect(bus_name, path)
            proxy = self._bus.get_proxy_object(bus_name, path, introspection)
            return FprintdDevice(path, proxy.get_interface(DEVICE_INTERFACE))
        except DBusError as exc:
            raise FprintdError.from_dbus(exc) from exc
        except Exception as exc:
            raise FprintdError(f"cannot open device {path}: {exc}") from exc

    def disconnect(self) -> None:
        try:
            self._bus.disconnect()
        except Exception as e:
            logger.warning("Error disconnecting system bus: %s", e)


class FprintdClient:
    """Creates connections to fprintd over the system bus."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def connect(self) -> FprintdConnection:
        fprintd = self.settings.fprintd
        bus: Optional[MessageBus] = None
        try:
            bus = await MessageBus(bus_type=BusType.SYSTEM).connect()
            introspection = await bus.introspect(fprintd.bus_name, fprintd.manager_path)
            proxy = bus.get_proxy_object(fprintd.bus_name, fprintd.manager_path, introspection)
            manager = proxy.get_interface(MANAGER_INTERFACE)
        except DBusError as exc:
            _drop_bus(bus)
            logger.error("fprintd.connect: manager unavailable - %s", exc.text)
            raise FprintdError.from_dbus(exc) from exc
        except Exception as exc:
            _drop_bus(bus)
            logger.error("fprintd.connect: system bus unavailable - %s", exc)
            raise FprintdError(f"Failed to connect to system bus: {exc}") from exc
        logger.debug("FPrint manager created")
        return FprintdConnection(bus, manager, self.settings)


def _drop_bus(bus: Optional[MessageBus]) -> None:
    if bus is None:
        return
    try:
        bus.disconnect()
    except Exception:
        logger.debug("Ignoring error while dropping half-open bus", exc_info=True)


__all__ = [
    "FprintdClient",
    "FprintdConnection",
    "FprintdDevice",
    "FprintdError",
    "VerifyStatusHandler",
]
