"""Fingerprint session orchestration against fprintd for the screen locker."""
from __future__ import annotations

import asyncio
from asyncio import QueueEmpty
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Set

from .backend.fprintd import FprintdClient, FprintdConnection, FprintdDevice, FprintdError
from .backend.login1 import SleepMonitor
from .config import Settings, get_settings
from .epoch import Epoch
from .hardware.usb_reset import HardwareRestarter
from .state import VERIFYING_PHASES, IdleRestartRequest, SessionPhase, StatusEvent
from .verify import TRANSIENT_MESSAGES, ResultKind, classify, format_round_message

logger = logging.getLogger(__name__)

_MAX_STATUS_LEN = 127


@dataclass
class SessionCounters:
    fail_count: int = 0
    continuous_unknown_error_count: int = 0
    restart_count: int = 0
    open_device_fail_count: int = 0
    claim_device_fail_count: int = 0


@dataclass
class SessionContext:
    """Counters and timestamps that survive restart cycles but not a re-enable."""

    counters: SessionCounters = field(default_factory=SessionCounters)
    last_signal_time: float = 0.0
    last_start_verify_time: float = 0.0
    last_activity_time: float = 0.0
    last_early_result: Optional[str] = None


class SessionManager:
    """Coordinates fprintd, the reader's power-cycle command and the lock UI status lines.

    The lock UI calls :meth:`poll` on every tick; it returns True once the
    current session has matched a finger. Everything else (bootstrap, device
    acquisition, verification rounds, restarts) is advanced from there or
    from fprintd's VerifyStatus signals.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        client: Optional[FprintdClient] = None,
        restarter: Optional[HardwareRestarter] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or get_settings()
        self._clock = clock
        self._client = client or FprintdClient(self.settings)
        hardware = self.settings.hardware
        self._restarter = restarter or HardwareRestarter(
            command=hardware.restart_command,
            full_argument=hardware.full_argument,
            cooldown_seconds=hardware.cooldown_seconds,
            wait_timeout_seconds=hardware.wait_timeout_seconds,
            clock=clock,
        )

        self._epoch = Epoch()
        self._phase: SessionPhase = SessionPhase.IDLE
        self._ctx = SessionContext()
        self._status = ""
        self._driver_status = ""

        self._connection: Optional[FprintdConnection] = None
        self._device: Optional[FprintdDevice] = None
        self._device_signal_subscribed = False
        self._rebind_usb_on_restart = False
        self._idle_restart = IdleRestartRequest.NONE

        self._acquire_task: Optional[asyncio.Task[Any]] = None
        self._stop_task: Optional[asyncio.Task[Any]] = None
        self._restart_task: Optional[asyncio.Task[None]] = None
        self._tick_task: Optional[asyncio.Task[None]] = None
        self._cleanup_tasks: Set[asyncio.Task[None]] = set()
        self._ui_subscribers: List[asyncio.Queue[StatusEvent]] = []
        self._sleep_monitor: Optional[SleepMonitor] = None

    # ============================================================
    # STATE ACCESSORS
    # ============================================================

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def epoch(self) -> int:
        return self._epoch.value

    @property
    def status(self) -> str:
        return self._status

    @property
    def driver_status(self) -> str:
        return self._driver_status

    @property
    def counters(self) -> SessionCounters:
        return self._ctx.counters

    @property
    def context(self) -> SessionContext:
        return self._ctx

    @property
    def device(self) -> Optional[FprintdDevice]:
        return self._device

    @property
    def connection(self) -> Optional[FprintdConnection]:
        return self._connection

    @property
    def idle_restart_request(self) -> IdleRestartRequest:
        return self._idle_restart

    @property
    def initialized(self) -> bool:
        # UNAVAILABLE counts as uninitialized so activity re-runs the bootstrap
        return self._phase not in (SessionPhase.IDLE, SessionPhase.UNAVAILABLE, SessionPhase.DISABLED)

    @property
    def verifying(self) -> bool:
        return self._phase in VERIFYING_PHASES

    @property
    def is_disabled(self) -> bool:
        counters = self._ctx.counters
        limits = self.settings.limits
        return counters.fail_count >= limits.max_fail_count or counters.restart_count >= limits.max_restart_count

    def snapshot(self) -> Dict[str, Any]:
        return {
            "phase": self._phase.value,
            "epoch": self._epoch.value,
            "status": self._status,
            "driver_status": self._driver_status,
            "initialized": self.initialized,
            "disabled": self.is_disabled,
            "device": self._device.path if self._device else None,
            "idle_restart": self._idle_restart.name.lower(),
            "counters": asdict(self._ctx.counters),
        }

    # ============================================================
    # LIFECYCLE
    # ============================================================

    async def start(self) -> None:
        logger.info("Starting fingerprint session manager")
        if self.settings.watch_sleep and self._sleep_monitor is None:
            self._sleep_monitor = SleepMonitor(on_suspend=self.on_system_suspend, on_resume=self.on_system_resume)
            await self._sleep_monitor.start()

        await self.initialize()

        if self.settings.auto_poll and (not self._tick_task or self._tick_task.done()):
            self._tick_task = asyncio.create_task(self._tick_loop(), name="fingerprint-poller")
        logger.info("Fingerprint session manager started in %s", self._phase.value)

    async def stop(self) -> None:
        logger.info("Stopping fingerprint session manager")
        if self._tick_task and not self._tick_task.done():
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
        self._tick_task = None

        if self._sleep_monitor is not None:
            await self._sleep_monitor.stop()
            self._sleep_monitor = None

        await self._cancel_restart()
        self._teardown(reason="shutdown")
        if self._cleanup_tasks:
            await asyncio.wait(set(self._cleanup_tasks), timeout=self.settings.timeouts.connect_seconds)
        logger.info("Fingerprint session manager stopped")

    async def initialize(self) -> bool:
        """First bootstrap at process start; the poller drives the rest."""
        return await self._bootstrap()

    async def _tick_loop(self) -> None:
        """Stand-in for the lock UI tick when no UI drives :meth:`poll`."""
        logger.info("Poll loop started (every %.2fs)", self.settings.poll_interval_seconds)
        authenticated = False
        try:
            while True:
                await asyncio.sleep(self.settings.poll_interval_seconds)
                try:
                    result = await self.poll()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.exception("Poll tick error: %s", exc)
                    continue
                if result and not authenticated:
                    self._publish("authenticated", {"device": self._device.path if self._device else None})
                authenticated = result
        except asyncio.CancelledError:
            logger.info("Poll loop cancelled")
            raise

    # ============================================================
    # UI OUTPUT
    # ============================================================

    def register_ui(self) -> asyncio.Queue[StatusEvent]:
        queue: asyncio.Queue[StatusEvent] = asyncio.Queue(maxsize=self.settings.ui_event_queue_size)
        self._ui_subscribers.append(queue)
        return queue

    def unregister_ui(self, queue: asyncio.Queue[StatusEvent]) -> None:
        if queue in self._ui_subscribers:
            self._ui_subscribers.remove(queue)

    def _publish(self, event_type: str, data: Dict[str, Any]) -> None:
        event = StatusEvent(type=event_type, data=data, phase=self._phase)
        for queue in list(self._ui_subscribers):
            try:
                if queue.full():
                    try:
                        queue.get_nowait()
                    except QueueEmpty:
                        pass
                queue.put_nowait(event)
            except Exception as e:
                logger.warning("Failed to publish status event to subscriber: %s", e)

    def _display_message(self, text: str) -> None:
        self._status = text[:_MAX_STATUS_LEN]
        self._publish("status", {"status": self._status, "driver_status": self._driver_status})

    def _display_driver_message(self, text: str) -> None:
        self._driver_status = text[:_MAX_STATUS_LEN]
        self._publish("status", {"status": self._status, "driver_status": self._driver_status})

    # ============================================================
    # EXTERNAL EVENTS
    # ============================================================

    def notify_activity(self, force: bool = False) -> None:
        """User input seen by the lock; the next poll may (re)start the session."""
        requested = IdleRestartRequest.FORCED if force else IdleRestartRequest.REQUESTED
        self._idle_restart = max(self._idle_restart, requested)
        self._ctx.last_activity_time = self._clock()

    async def on_system_suspend(self) -> None:
        logger.info("System going to sleep, stopping fingerprint verification")
        await self._cancel_restart()
        self._teardown(reason="system suspend")

    async def on_system_resume(self) -> None:
        logger.info("System resumed, restarting fingerprint verification")
        await self._cancel_restart()
        self._teardown(reason="system resume")
        if self.is_disabled:
            self._phase = SessionPhase.DISABLED
            return
        await self._restarter.restart(full=False, wait=True)
        await self._bootstrap()

    async def reenable(self) -> bool:
        """Explicit reset out of any state, including DISABLED."""
        logger.info("Re-enabling fingerprint session")
        await self._cancel_restart()
        self._teardown(reason="re-enable")
        self._ctx = SessionContext(last_activity_time=self._clock())
        self._idle_restart = IdleRestartRequest.NONE
        self._phase = SessionPhase.IDLE
        self._display_message("")
        return await self._bootstrap()

    # ============================================================
    # WATCHDOG POLLER
    # ============================================================

    async def poll(self) -> bool:
        """Advance the session one step; True once a finger matched."""
        generation = self._epoch.value
        # Let VerifyStatus signals and finished calls run, do not wait for more
        await asyncio.sleep(0)
        if not self._epoch.is_current(generation):
            return False
        if self._phase is SessionPhase.RESTARTING or self.is_disabled:
            return False

        timeouts = self.settings.timeouts
        ctx = self._ctx
        now = self._clock()
        request = self._idle_restart
        if request is not IdleRestartRequest.NONE:
            self._idle_restart = IdleRestartRequest.NONE
            if self._phase is not SessionPhase.MATCHED:
                if not self.initialized:
                    await self._bootstrap()
                    return False
                if request is IdleRestartRequest.FORCED and now - ctx.last_start_verify_time > timeouts.force_restart_seconds:
                    self._schedule_restart(rebind_usb=False, delay=0.0, reason="forced by activity")
                    return False
                if now - ctx.last_start_verify_time > timeouts.idle_verify_seconds:
                    logger.debug("run startVerify again due to idle")
                    if self.verifying:
                        self._phase = SessionPhase.READY
                    await self._start_verify()
                    return False
                if now - ctx.last_signal_time > timeouts.idle_signal_seconds:
                    logger.debug("Restarting verification due to idle")
                    self._schedule_restart(rebind_usb=False, delay=0.0, reason="daemon idle")
                    return False
        elif self.verifying and now - ctx.last_start_verify_time > timeouts.idle_verify_seconds:
            logger.debug("Idle verification timeout, disabling fingerprint")
            self._teardown(reason="verification idle")
            return False

        if self._connection is None:
            return False

        if self._device is None:
            self._trigger_acquisition()
            return False

        if self._phase not in (SessionPhase.COMPLETED, SessionPhase.MATCHED):
            return False

        if self._phase is SessionPhase.COMPLETED:
            await self._start_verify()
            return False

        return True

    # ============================================================
    # CONNECTION MANAGER
    # ============================================================

    async def _connect(self) -> Optional[FprintdConnection]:
        try:
            return await asyncio.wait_for(self._client.connect(), timeout=self.settings.timeouts.connect_seconds)
        except asyncio.TimeoutError:
            logger.error("Timed out connecting to fprintd")
            self._display_driver_message("Failed to get Fprintd manager: timeout")
        except FprintdError as exc:
            logger.error("Failed to get Fprintd manager: %s", exc)
            self._display_driver_message(f"Failed to get Fprintd manager: {exc}")
        return None

    async def _bootstrap(self) -> bool:
        """Connect to fprintd with bounded retries; True once the manager is reachable."""
        if self._connection is not None or self._device is not None:
            self._release_session_resources()
        generation = self._epoch.bump()
        timeouts = self.settings.timeouts
        limits = self.settings.limits

        self._phase = SessionPhase.BOOTSTRAPPING
        self._ctx.last_signal_time = self._clock()
        self._ctx.counters.continuous_unknown_error_count = 0
        self._display_driver_message("Initializing...")

        started_at = self._clock()
        attempt = 1
        while True:
            connection = await self._connect()
            if not self._epoch.is_current(generation):
                if connection is not None:
                    connection.disconnect()
                return False
            if connection is not None:
                self._connection = connection
                self._phase = SessionPhase.CONNECTED
                logger.info("Connected to fprintd after %d attempt(s)", attempt)
                return True
            if attempt >= limits.bootstrap_attempts or self._clock() - started_at > timeouts.bootstrap_seconds:
                logger.error("Failed to initialize fingerprint")
                self._display_driver_message("Failed to initialize fingerprint")
                self._phase = SessionPhase.UNAVAILABLE
                return False

            await asyncio.sleep(timeouts.bootstrap_retry_seconds)
            if not self._epoch.is_current(generation):
                return False
            attempt += 1
            if attempt % 2 == 0:
                await self._restarter.restart(full=False, wait=False)
                if not self._epoch.is_current(generation):
                    return False
            self._ctx.last_signal_time = self._clock()

    # ============================================================
    # DEVICE ACQUISITION PIPELINE
    # ============================================================

    def _trigger_acquisition(self) -> None:
        if self.is_disabled or self._connection is None:
            return
        if self._acquire_task is not None and not self._acquire_task.done():
            return
        counters = self._ctx.counters
        counters.open_device_fail_count = 0
        counters.claim_device_fail_count = 0
        self._device_signal_subscribed = False
        self._phase = SessionPhase.ACQUIRING
        self._display_driver_message("Getting default device...")
        self._acquire_task = self._epoch.spawn(self._acquire_device(self._connection), name="fingerprint-acquire")

    async def _acquire_device(self, connection: FprintdConnection) -> None:
        path = await self._resolve_default_device(connection)
        if path is None:
            self._phase = SessionPhase.CONNECTED
            return

        self._display_driver_message("FP Proxying")
        try:
            device = await connection.open_device(path)
        except FprintdError as exc:
            logger.error("failed to connect to device %s: %s", path, exc)
            self._display_driver_message(f"Failed to connect to device: {exc}")
            self._phase = SessionPhase.CONNECTED
            return

        self._display_driver_message("FP Claiming")
        if not await self._claim_device(device):
            return

        logger.debug("FPrint device opened %s", path)
        self._adopt_device(device)
        await self._start_verify()

    async def _resolve_default_device(self, connection: FprintdConnection) -> Optional[str]:
        counters = self._ctx.counters
        limits = self.settings.limits
        while True:
            try:
                path = await connection.get_default_device()
            except FprintdError as exc:
                logger.error("GetDefaultDevice failed: %s", exc)
                self._display_driver_message("Failed to get default device")
                counters.open_device_fail_count += 1
                attempt = counters.open_device_fail_count
                if 2 <= attempt <= 3:
                    await self._restarter.restart(full=attempt == 3, wait=False)
                    await asyncio.sleep(self.settings.timeouts.default_device_settle_seconds)
                if attempt >= limits.default_device_attempts:
                    logger.error("No default fingerprint device after %d attempts", attempt)
                    return None
                continue

            logger.debug("Fingerprint: using device %s after %d failed queries", path, counters.open_device_fail_count)
            counters.open_device_fail_count = 0
            return path

    async def _claim_device(self, device: FprintdDevice) -> bool:
        counters = self._ctx.counters
        limits = self.settings.limits
        try:
            while True:
                try:
                    await device.claim(self.settings.fprintd.username)
                    return True
                except FprintdError as exc:
                    logger.error("failed to claim the device: %s (%s)", exc, exc.error_name)
                    self._display_driver_message(f"Failed to claim the device: {exc}")
                    counters.claim_device_fail_count += 1
                    if counters.claim_device_fail_count >= limits.claim_attempts:
                        break
        except asyncio.CancelledError:
            # The claim may have gone through on the daemon side
            self._release_later(device, None)
            raise

        self._phase = SessionPhase.CONNECTED
        await self._restarter.restart(full=True, wait=True)
        self._schedule_restart(
            rebind_usb=False,
            delay=self.settings.timeouts.restart_delay_seconds,
            reason=f"claim failed {counters.claim_device_fail_count} times",
        )
        return False

    def _adopt_device(self, device: FprintdDevice) -> None:
        counters = self._ctx.counters
        counters.open_device_fail_count = 0
        counters.claim_device_fail_count = 0
        self._device = device
        self._phase = SessionPhase.READY
        self._connect_signal()

    def _connect_signal(self) -> None:
        if self._device_signal_subscribed or self._device is None:
            return
        generation = self._epoch.value
        self._device_signal_subscribed = True
        self._device.subscribe(lambda result, done: self._on_verify_status(generation, result, done))

    # ============================================================
    # VERIFICATION STATE MACHINE
    # ============================================================

    async def _start_verify(self) -> None:
        if self.is_disabled:
            return
        if self.verifying or self._phase is SessionPhase.RESTARTING or self._device is None:
            return
        if self._stop_task is not None and not self._stop_task.done():
            return

        device = self._device
        generation = self._epoch.value
        timeouts = self.settings.timeouts
        self._ctx.last_start_verify_time = self._clock()
        self._ctx.last_early_result = None
        logger.debug("Starting verification")
        self._phase = SessionPhase.STARTING
        # Subscribed before VerifyStart: fprintd may emit results for its own
        # internal checks while the call is in flight, those are ignored below.
        self._connect_signal()
        try:
            await asyncio.wait_for(device.verify_start(self.settings.fprintd.finger), timeout=timeouts.verify_start_seconds)
        except asyncio.TimeoutError:
            if not self._epoch.is_current(generation):
                return
            logger.error("VerifyStart timeout")
            self._display_driver_message("Failed to start verification (timeout)")
            self._schedule_restart(rebind_usb=False, delay=timeouts.restart_delay_seconds, reason="VerifyStart timeout")
            return
        except FprintdError as exc:
            if not self._epoch.is_current(generation):
                return
            logger.error("VerifyStart failed: %s", exc)
            self._display_driver_message(f"Failed to start verification: {exc}")
            self._phase = SessionPhase.STALLED
            return

        if not self._epoch.is_current(generation) or self._phase is not SessionPhase.STARTING:
            return
        logger.debug("Verify started!")
        self._phase = SessionPhase.AWAITING_RESULT
        self._display_driver_message("Scan your finger")
        if not self._status:
            self._display_message("...")

    def _on_verify_status(self, generation: int, result: str, done: bool) -> None:
        if not self._epoch.is_current(generation):
            logger.debug("Dropping VerifyStatus %s from epoch %d", result, generation)
            return
        if self._phase in (SessionPhase.STARTING, SessionPhase.STALLED):
            logger.debug("Ignoring VerifyStatus %s received before VerifyStart returned", result)
            self._ctx.last_early_result = result
            return
        if self._phase is not SessionPhase.AWAITING_RESULT:
            logger.debug("Ignoring VerifyStatus %s in phase %s", result, self._phase.value)
            return
        logger.info("Verify result: %s (%s)", result, "done" if done else "not done")
        # fprintd's done flag is not needed: every non-transient result ends the round here
        self._verify_result(result)

    def _verify_result(self, result: str) -> None:
        counters = self._ctx.counters
        self._ctx.last_signal_time = self._clock()

        kind = classify(result)
        if kind is ResultKind.TRANSIENT:
            counters.continuous_unknown_error_count = 0
            self._display_message(TRANSIENT_MESSAGES[result])
            return

        match = kind is ResultKind.MATCH
        status: Optional[str] = None
        escalate = False
        if kind is ResultKind.UNKNOWN_ERROR:
            counters.continuous_unknown_error_count += 1
            escalate = counters.continuous_unknown_error_count > self.settings.limits.unknown_error_streak
            status = "Unknown error"
        elif kind is ResultKind.DISCONNECTED:
            escalate = True
            status = "Device disconnected"
        elif kind is ResultKind.MATCH:
            counters.continuous_unknown_error_count = 0
        elif kind is ResultKind.NO_MATCH:
            # A no-match alone never restarts, it only counts towards disabling
            counters.continuous_unknown_error_count = 0
            counters.fail_count += 1
        else:
            status = result

        disable = self.is_disabled
        if disable:
            status = "FP Disabled"
            escalate = False

        self._display_message(
            format_round_message(
                match=match,
                status=status,
                fail_count=counters.fail_count,
                unknown_streak=counters.continuous_unknown_error_count,
                unknown=kind is ResultKind.UNKNOWN_ERROR,
            )
        )
        if disable:
            self._phase = SessionPhase.DISABLED
        elif match:
            self._phase = SessionPhase.MATCHED
            self._display_driver_message("Fingerprint matched")
        else:
            self._phase = SessionPhase.COMPLETED
        self._stop_task = self._epoch.spawn(
            self._finish_round(disable=disable, escalate=escalate and not match),
            name="fingerprint-verify-stop",
        )

    async def _finish_round(self, *, disable: bool, escalate: bool) -> None:
        device = self._device
        if device is None:
            return
        try:
            await device.verify_stop()
        except FprintdError as exc:
            logger.error("VerifyStop failed: %s", exc)
            self._display_driver_message(f"Failed to stop verification: {exc}")
            return

        if disable:
            logger.warning(
                "Fingerprint disabled (fail_count=%d, restart_count=%d)",
                self._ctx.counters.fail_count,
                self._ctx.counters.restart_count,
            )
            self._teardown(reason="disable threshold reached")
            return
        if not escalate:
            return
        if self._clock() - self._ctx.last_activity_time > self.settings.timeouts.activity_seconds:
            self._teardown(reason="fault with no recent user activity")
            return
        logger.debug("Restarting verification")
        self._schedule_restart(
            rebind_usb=True,
            delay=self.settings.timeouts.restart_delay_seconds,
            reason="verification fault",
        )

    # ============================================================
    # RESTART ORCHESTRATOR
    # ============================================================

    def _schedule_restart(self, *, rebind_usb: bool, delay: float, reason: str) -> None:
        if self._restart_task is not None and not self._restart_task.done():
            logger.debug("Restart already pending, ignoring request (%s)", reason)
            return
        logger.info("🔄 Scheduling fingerprint restart in %.1fs: %s", delay, reason)
        self._phase = SessionPhase.RESTARTING
        self._rebind_usb_on_restart = rebind_usb
        self._restart_task = asyncio.create_task(self._run_restart(delay), name="fingerprint-restart")

    async def _run_restart(self, delay: float) -> None:
        try:
            if delay > 0:
                await asyncio.sleep(delay)
            await self._restart_step_one()
            await asyncio.sleep(self.settings.timeouts.restart_delay_seconds)
            await self._restart_step_two()
        except asyncio.CancelledError:
            logger.info("Fingerprint restart cancelled")
            raise
        except Exception as exc:
            logger.exception("Fingerprint restart failed: %s", exc)
            if self._phase is SessionPhase.RESTARTING:
                self._phase = SessionPhase.IDLE

    async def _restart_step_one(self) -> None:
        logger.debug("Restarting verification step 1")
        self._ctx.last_signal_time = self._clock()
        self._teardown(reason="restart")
        if self._rebind_usb_on_restart:
            self._rebind_usb_on_restart = False
            await self._restarter.restart(full=False, wait=False)

    async def _restart_step_two(self) -> None:
        logger.debug("Restarting verification step 2")
        counters = self._ctx.counters
        self._ctx.last_signal_time = self._clock()
        counters.restart_count += 1
        if self.is_disabled:
            logger.warning("Fingerprint disabled after %d restart cycles", counters.restart_count)
            self._phase = SessionPhase.DISABLED
            if not self._status:
                self._display_driver_message("Disabled")
            return
        self._phase = SessionPhase.IDLE
        await self._bootstrap()
        self._display_message("")
        await self.poll()

    async def _cancel_restart(self) -> None:
        task = self._restart_task
        self._restart_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._phase is SessionPhase.RESTARTING:
            self._phase = SessionPhase.IDLE

    # ============================================================
    # TEARDOWN
    # ============================================================

    def _teardown(self, *, reason: str) -> None:
        logger.info("Tearing down fingerprint session: %s", reason)
        if self._phase is not SessionPhase.MATCHED:
            self._display_driver_message("Press any key to reenable fingerprint")
        self._epoch.bump()
        if self._phase not in (SessionPhase.RESTARTING, SessionPhase.DISABLED):
            self._phase = SessionPhase.IDLE
        self._acquire_task = None
        self._stop_task = None
        self._release_session_resources()

    def _release_session_resources(self) -> None:
        device, connection = self._device, self._connection
        self._device = None
        self._device_signal_subscribed = False
        self._connection = None
        if device is not None:
            device.unsubscribe()
        self._release_later(device, connection)

    def _release_later(self, device: Optional[FprintdDevice], connection: Optional[FprintdConnection]) -> None:
        if device is None and connection is None:
            return
        task = asyncio.create_task(self._release(device, connection), name="fingerprint-release")
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def _release(self, device: Optional[FprintdDevice], connection: Optional[FprintdConnection]) -> None:
        try:
            if device is not None:
                try:
                    await asyncio.wait_for(device.release(), timeout=self.settings.timeouts.connect_seconds)
                except (FprintdError, asyncio.TimeoutError) as exc:
                    logger.debug("Release of %s failed: %s", device.path, exc)
        finally:
            if connection is not None:
                connection.disconnect()


__all__ = ["SessionContext", "SessionCounters", "SessionManager"]
