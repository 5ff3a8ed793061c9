from __future__ import annotations

import pytest
from dbus_fast.errors import DBusError

from fakes import make_settings
from fpunlock.backend import fprintd
from fpunlock.backend.fprintd import FprintdClient, FprintdConnection, FprintdDevice, FprintdError


class StubDeviceInterface:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls = []
        self.handlers = []

    def _record(self, *call):
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    async def call_claim(self, username):
        self._record("claim", username)

    async def call_release(self):
        self._record("release")

    async def call_verify_start(self, finger):
        self._record("verify_start", finger)

    async def call_verify_stop(self):
        self._record("verify_stop")

    def on_verify_status(self, handler):
        self.handlers.append(handler)

    def off_verify_status(self, handler):
        self.handlers.remove(handler)


class StubManagerInterface:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error

    async def call_get_default_device(self):
        if self.error is not None:
            raise self.error
        return "/net/reactivated/Fprint/Device/0"


class StubBus:
    def __init__(self) -> None:
        self.connected = True

    def disconnect(self):
        self.connected = False


@pytest.mark.asyncio
async def test_device_calls_map_to_dbus_methods():
    iface = StubDeviceInterface()
    device = FprintdDevice("/dev/0", iface)

    await device.claim("")
    await device.verify_start("any")
    await device.verify_stop()
    await device.release()

    assert iface.calls == [("claim", ""), ("verify_start", "any"), ("verify_stop",), ("release",)]


@pytest.mark.asyncio
async def test_dbus_error_becomes_fprintd_error():
    iface = StubDeviceInterface(DBusError("net.reactivated.Fprint.Error.AlreadyInUse", "Device was already claimed"))
    device = FprintdDevice("/dev/0", iface)

    with pytest.raises(FprintdError) as excinfo:
        await device.claim()

    assert excinfo.value.error_name == "net.reactivated.Fprint.Error.AlreadyInUse"
    assert str(excinfo.value) == "Device was already claimed"


@pytest.mark.asyncio
async def test_bus_failure_becomes_fprintd_error():
    device = FprintdDevice("/dev/0", StubDeviceInterface(EOFError("bus closed")))

    with pytest.raises(FprintdError):
        await device.verify_stop()


def test_subscribe_replaces_previous_handler():
    iface = StubDeviceInterface()
    device = FprintdDevice("/dev/0", iface)

    def first(result, done):
        pass

    def second(result, done):
        pass

    device.subscribe(first)
    device.subscribe(second)
    assert iface.handlers == [second]

    device.unsubscribe()
    device.unsubscribe()
    assert iface.handlers == []


@pytest.mark.asyncio
async def test_connection_default_device_and_disconnect():
    bus = StubBus()
    connection = FprintdConnection(bus, StubManagerInterface(), make_settings())

    assert await connection.get_default_device() == "/net/reactivated/Fprint/Device/0"
    assert connection.connected
    connection.disconnect()
    assert not connection.connected


@pytest.mark.asyncio
async def test_connection_without_device():
    error = DBusError("net.reactivated.Fprint.Error.NoSuchDevice", "No devices available")
    connection = FprintdConnection(StubBus(), StubManagerInterface(error), make_settings())

    with pytest.raises(FprintdError) as excinfo:
        await connection.get_default_device()

    assert excinfo.value.error_name == "net.reactivated.Fprint.Error.NoSuchDevice"


@pytest.mark.asyncio
async def test_client_reports_missing_system_bus(monkeypatch):
    class NoBus:
        def __init__(self, *args, **kwargs):
            pass

        async def connect(self):
            raise FileNotFoundError("/run/dbus/system_bus_socket")

    monkeypatch.setattr(fprintd, "MessageBus", NoBus)

    with pytest.raises(FprintdError, match="Failed to connect to system bus"):
        await FprintdClient(make_settings()).connect()
