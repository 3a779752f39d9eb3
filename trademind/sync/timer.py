"""
Single-Slot Timer

A cancellable scheduled callback with room for exactly one pending call.
Scheduling always cancels whatever was pending first, so a component can
never leak timers across restarts.

Callbacks may be plain functions or return an awaitable; awaitables are
run as a task on the same loop and can be awaited through `wait()`.
"""

import asyncio
import inspect
from typing import Any, Callable, Optional


class SingleSlotTimer:
    """One pending callback at a time, driven by the running event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        """True while a callback is scheduled and has not fired."""
        return self._handle is not None

    def schedule(self, delay: float, callback: Callable[[], Any]) -> None:
        """Cancel any pending callback and schedule `callback` after `delay` seconds."""
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire, callback)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def wait(self) -> None:
        """Wait for the task started by the last fired callback, if any."""
        if self._task is not None and not self._task.done():
            await self._task

    def _fire(self, callback: Callable[[], Any]) -> None:
        self._handle = None
        result = callback()
        if inspect.isawaitable(result):
            self._task = asyncio.ensure_future(result)
