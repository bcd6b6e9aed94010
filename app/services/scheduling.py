"""Cancellable timers used by the search box and the featured carousel."""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import suppress
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class Debouncer:
    """Runs an action once input has been quiet for ``delay`` seconds.

    Only one timer is ever pending: scheduling again cancels the pending timer
    first. Once the delay has elapsed the action runs to completion; later
    calls to :meth:`schedule` no longer affect it.
    """

    def __init__(self, delay: float, *, sleep: SleepFn = asyncio.sleep):
        self._delay = delay
        self._sleep = sleep
        self._pending: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def schedule(self, action: Callable[[], Awaitable[None]]) -> asyncio.Task[None]:
        self.cancel()
        task = asyncio.create_task(self._fire(action))
        self._pending = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def _fire(self, action: Callable[[], Awaitable[None]]) -> None:
        await self._sleep(self._delay)
        if self._pending is asyncio.current_task():
            self._pending = None
        try:
            await action()
        except Exception:  # pragma: no cover - background safety net
            logger.exception("Debounced action failed")

    async def aclose(self) -> None:
        """Cancel the pending timer and wait for running actions to settle."""

        self.cancel()
        if self._tasks:
            for task in list(self._tasks):
                task.cancel()
            with suppress(asyncio.CancelledError):
                await asyncio.gather(*self._tasks, return_exceptions=True)


class PeriodicTask:
    """Calls ``callback`` every ``interval`` seconds between start and stop."""

    def __init__(
        self,
        interval: float,
        callback: Callable[[], object],
        *,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._interval = interval
        self._callback = callback
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await self._sleep(self._interval)
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:  # pragma: no cover - background safety net
                logger.exception("Periodic callback failed")
