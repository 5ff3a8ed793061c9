from __future__ import annotations

import asyncio

import pytest

from fakes import bring_up, drain, fprintd_error, make_settings, settle
from fpunlock.session_manager import SessionManager
from fpunlock.state import IdleRestartRequest, SessionPhase


@pytest.mark.asyncio
async def test_stuck_verification_is_torn_down(manager, device, client, clock):
    await bring_up(manager)
    clock.advance(61)

    assert await manager.poll() is False

    assert manager.phase is SessionPhase.IDLE
    assert manager.driver_status == "Press any key to reenable fingerprint"
    await settle()
    assert "release" in device.calls
    assert client.connections[0].disconnected


@pytest.mark.asyncio
async def test_stalled_round_is_torn_down_after_idle(manager, device, clock):
    device.verify_start_errors = [fprintd_error("Already verifying")]
    await bring_up(manager)
    assert manager.phase is SessionPhase.STALLED

    clock.advance(61)
    await manager.poll()

    assert manager.phase is SessionPhase.IDLE


@pytest.mark.asyncio
async def test_activity_reinitializes_after_teardown(manager, client, clock):
    await bring_up(manager)
    clock.advance(61)
    await manager.poll()
    assert manager.phase is SessionPhase.IDLE

    manager.notify_activity()
    assert manager.idle_restart_request is IdleRestartRequest.REQUESTED
    await manager.poll()

    assert manager.idle_restart_request is IdleRestartRequest.NONE
    assert manager.phase is SessionPhase.CONNECTED
    await manager.poll()
    await settle()
    assert manager.phase is SessionPhase.AWAITING_RESULT
    assert len(client.connections) == 2


@pytest.mark.asyncio
async def test_forced_activity_restarts_session(manager, client, restarter, clock):
    await bring_up(manager)
    clock.advance(4)
    manager.notify_activity(force=True)

    assert await manager.poll() is False
    assert manager.phase is SessionPhase.RESTARTING
    await settle()

    assert manager.counters.restart_count == 1
    assert restarter.requests == []
    assert len(client.connections) == 2
    assert manager.phase is SessionPhase.AWAITING_RESULT


@pytest.mark.asyncio
async def test_forced_activity_right_after_start_is_ignored(manager):
    await bring_up(manager)
    manager.notify_activity(force=True)

    assert await manager.poll() is False
    await settle()

    assert manager.counters.restart_count == 0
    assert manager.phase is SessionPhase.AWAITING_RESULT


@pytest.mark.asyncio
async def test_request_never_downgrades_forced(manager):
    manager.notify_activity(force=True)
    manager.notify_activity()

    assert manager.idle_restart_request is IdleRestartRequest.FORCED


@pytest.mark.asyncio
async def test_idle_activity_reissues_verify_start(manager, device, clock):
    await bring_up(manager)
    clock.advance(61)
    manager.notify_activity()

    await manager.poll()

    assert device.calls.count("verify_start") == 2
    assert manager.phase is SessionPhase.AWAITING_RESULT
    assert manager.counters.restart_count == 0


@pytest.mark.asyncio
async def test_silent_daemon_restarts_on_activity(manager, clock):
    await bring_up(manager)
    clock.advance(61)
    manager.notify_activity()
    await manager.poll()

    clock.advance(10)
    manager.notify_activity()
    await manager.poll()
    assert manager.phase is SessionPhase.RESTARTING

    await settle()
    assert manager.counters.restart_count == 1
    assert manager.phase is SessionPhase.AWAITING_RESULT


@pytest.mark.asyncio
async def test_activity_after_match_changes_nothing(manager, device, clock):
    await bring_up(manager)
    device.emit("verify-match")
    await settle()

    clock.advance(120)
    manager.notify_activity(force=True)

    assert await manager.poll() is True
    assert manager.counters.restart_count == 0


@pytest.mark.asyncio
async def test_three_restart_cycles_disable_session(manager, client, clock):
    await bring_up(manager)
    for _ in range(3):
        clock.advance(4)
        manager.notify_activity(force=True)
        await manager.poll()
        await settle()

    assert manager.counters.restart_count == 3
    assert manager.is_disabled
    assert manager.phase is SessionPhase.DISABLED
    assert len(client.connections) == 3
    assert await manager.poll() is False


@pytest.mark.asyncio
async def test_resume_reinitializes_and_drops_stale_signals(manager, device, client, restarter):
    await bring_up(manager)
    stale_handler = device.handler
    old_epoch = manager.epoch

    await manager.on_system_resume()
    await settle()

    assert restarter.requests == [(False, True)]
    assert manager.epoch > old_epoch
    assert manager.phase is SessionPhase.CONNECTED
    assert "release" in device.calls
    assert client.connections[0].disconnected
    assert len(client.connections) == 2

    stale_handler("verify-no-match", True)
    assert manager.counters.fail_count == 0

    await manager.poll()
    await settle()
    assert manager.phase is SessionPhase.AWAITING_RESULT

    stale_handler("verify-match", True)
    assert manager.phase is SessionPhase.AWAITING_RESULT


@pytest.mark.asyncio
async def test_suspend_tears_down(manager, device):
    await bring_up(manager)

    await manager.on_system_suspend()
    await settle()

    assert manager.phase is SessionPhase.IDLE
    assert manager.device is None
    assert "release" in device.calls


@pytest.mark.asyncio
async def test_reenable_clears_disabled_state(manager, device):
    await bring_up(manager)
    for _ in range(10):
        device.emit("verify-no-match")
        await settle()
        await manager.poll()
        await settle()
    assert manager.phase is SessionPhase.DISABLED

    assert await manager.reenable() is True

    assert manager.counters.fail_count == 0
    assert manager.status == ""
    assert manager.phase is SessionPhase.CONNECTED
    await manager.poll()
    await settle()
    assert manager.phase is SessionPhase.AWAITING_RESULT


@pytest.mark.asyncio
async def test_snapshot_reports_session(manager, device):
    await bring_up(manager)
    snapshot = manager.snapshot()

    assert snapshot["phase"] == "awaiting_result"
    assert snapshot["device"] == device.path
    assert snapshot["disabled"] is False
    assert snapshot["idle_restart"] == "none"
    assert snapshot["counters"]["fail_count"] == 0


@pytest.mark.asyncio
async def test_background_poller_drives_session(client, device, restarter, clock):
    manager = SessionManager(
        settings=make_settings(auto_poll=True, poll_interval_seconds=0.01),
        client=client,
        restarter=restarter,
        clock=clock,
    )
    queue = manager.register_ui()

    await manager.start()
    await asyncio.sleep(0.1)
    assert manager.phase is SessionPhase.AWAITING_RESULT

    device.emit("verify-match")
    await asyncio.sleep(0.1)
    assert any(event.type == "authenticated" for event in drain(queue))

    await manager.stop()
    assert manager.device is None
    assert "release" in device.calls
    manager.unregister_ui(queue)


@pytest.mark.asyncio
async def test_activity_retries_bootstrap_after_it_gave_up(manager, client, clock):
    client.connect_errors = [fprintd_error("Failed to connect to system bus")] * 5
    assert await manager.initialize() is False
    assert manager.phase is SessionPhase.UNAVAILABLE
    assert not manager.initialized

    clock.advance(61)
    manager.notify_activity()
    await manager.poll()

    assert manager.phase is SessionPhase.CONNECTED
    assert len(client.connections) == 1
    assert manager.counters.restart_count == 0
    await manager.poll()
    await settle()
    assert manager.phase is SessionPhase.AWAITING_RESULT


@pytest.mark.asyncio
async def test_unavailable_session_waits_for_activity(manager, client, clock):
    client.connect_errors = [fprintd_error("Failed to connect to system bus")] * 5
    await manager.initialize()

    clock.advance(61)
    assert await manager.poll() is False

    assert manager.phase is SessionPhase.UNAVAILABLE
    assert client.connections == []
