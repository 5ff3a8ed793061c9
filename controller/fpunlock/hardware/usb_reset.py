"""Fingerprint reader power-cycle with restart debounce."""
from __future__ import annotations

import asyncio
import logging
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class RestartDebounce:
    """Restart bookkeeping shared for the whole process lifetime.

    One instance is created at startup and handed to the restarter; it is not
    part of the session and survives every teardown and re-initialization.
    """

    restart_count: int = 0
    last_restart_at: Optional[float] = None
    last_full_restart_at: Optional[float] = None


class HardwareRestarter:
    """Runs the external power-cycle command for the fingerprint reader.

    ``restart(full, wait)`` applies two 3-second cooldowns. Requests inside the
    full-restart cooldown are dropped. Minimal requests are upgraded to full
    when they come inside the any-restart cooldown or after a restart has
    already been executed, so a repeating fault is not papered over by shallow
    resets.
    """

    def __init__(
        self,
        *,
        command: Sequence[str],
        full_argument: str = "full",
        cooldown_seconds: float = 3.0,
        wait_timeout_seconds: float = 5.0,
        debounce: Optional[RestartDebounce] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.command: List[str] = list(command)
        self.full_argument = full_argument
        self.cooldown_seconds = cooldown_seconds
        self.wait_timeout_seconds = wait_timeout_seconds
        self.debounce = debounce if debounce is not None else RestartDebounce()
        self._clock = clock

    def admit(self, full: bool) -> Optional[bool]:
        """Apply the debounce rules; returns the effective severity or None if suppressed."""
        now = self._clock()
        state = self.debounce
        if state.last_full_restart_at is not None and now - state.last_full_restart_at < self.cooldown_seconds:
            return None
        recent = state.last_restart_at is not None and now - state.last_restart_at < self.cooldown_seconds
        if not full and (recent or state.restart_count >= 1):
            full = True
        state.last_restart_at = now
        if full:
            state.last_full_restart_at = now
        state.restart_count += 1
        return full

    def argv(self, full: bool) -> List[str]:
        return self.command + [self.full_argument] if full else list(self.command)

    async def restart(self, full: bool, wait: bool) -> bool:
        """Power-cycle the reader; returns False when the request was debounced."""
        logger.debug("Restarting fingerprint device full=%s wait=%s", full, wait)
        effective = self.admit(full)
        if effective is None:
            logger.debug("Skipping fingerprint device restart")
            return False
        argv = self.argv(effective)
        if wait:
            await self._run_blocking(argv)
        else:
            await self._run_detached(argv)
        return True

    async def _run_blocking(self, argv: List[str]) -> None:
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, self._execute, argv)
        except subprocess.TimeoutExpired:
            logger.error("Fingerprint restart command timed out after %.1fs", self.wait_timeout_seconds)
            return
        except OSError as exc:
            logger.error("Fingerprint restart command failed to run: %s", exc)
            return
        if result.returncode != 0:
            logger.warning("Fingerprint restart command exited with %d", result.returncode)

    def _execute(self, argv: List[str]) -> subprocess.CompletedProcess:
        return subprocess.run(
            argv,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=self.wait_timeout_seconds,
            check=False,
        )

    async def _run_detached(self, argv: List[str]) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            logger.warning("Cannot detach fingerprint restart (%s), running inline", exc)
            await self._run_blocking(argv)
            return
        try:
            returncode = await asyncio.wait_for(proc.wait(), timeout=self.wait_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Fingerprint restart still running after %.1fs, leaving it detached", self.wait_timeout_seconds)
            return
        if returncode != 0:
            logger.warning("Fingerprint restart command exited with %d", returncode)


__all__ = ["HardwareRestarter", "RestartDebounce"]
