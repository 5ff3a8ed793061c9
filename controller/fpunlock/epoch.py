"""Session generation counter that doubles as a cancellation scope."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, Optional, Set

logger = logging.getLogger(__name__)


class Epoch:
    """Monotonic generation number for the fingerprint session.

    Every background task started through :meth:`spawn` belongs to the
    generation that was current when it was spawned. :meth:`bump` moves to a
    new generation and cancels all tasks of the old one, so stale work never
    reaches shared session state. Code that awaits outside a spawned task
    captures :attr:`value` and checks :meth:`is_current` after each await.
    """

    def __init__(self) -> None:
        self._value = 0
        self._tasks: Set[asyncio.Task[Any]] = set()

    @property
    def value(self) -> int:
        return self._value

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def is_current(self, generation: int) -> bool:
        return generation == self._value

    def bump(self) -> int:
        self._value += 1
        current = _current_task()
        stale = [task for task in self._tasks if not task.done()]
        self._tasks.clear()
        for task in stale:
            # A task that bumps its own epoch finishes its current step
            if task is not current:
                task.cancel()
        if stale:
            logger.debug("Epoch %d: cancelled %d stale task(s)", self._value, len(stale))
        return self._value

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(self._guard(coro, name), name=f"{name}#{self._value}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guard(coro: Coroutine[Any, Any, Any], name: str) -> Any:
        try:
            return await coro
        except asyncio.CancelledError:
            logger.debug("Task %s cancelled", name)
            raise
        except Exception as exc:
            logger.exception("Task %s crashed: %s", name, exc)
            return None


def _current_task() -> Optional[asyncio.Task[Any]]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


__all__ = ["Epoch"]
