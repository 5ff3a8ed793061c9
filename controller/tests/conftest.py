from __future__ import annotations

import pytest

from fakes import FakeClient, FakeClock, FakeDevice, RecordingRestarter, make_settings
from fpunlock.session_manager import SessionManager


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def client(device: FakeDevice) -> FakeClient:
    return FakeClient(device)


@pytest.fixture
def restarter(clock: FakeClock) -> RecordingRestarter:
    return RecordingRestarter(clock)


@pytest.fixture
def manager(settings, client, restarter, clock) -> SessionManager:
    return SessionManager(settings=settings, client=client, restarter=restarter, clock=clock)
