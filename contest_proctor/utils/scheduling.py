"""Scheduled callbacks with cancellation tokens."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class ScheduledCallback:
    """Cancellation token returned for every scheduled callback."""

    def __init__(self, cancel_fn: Optional[Callable[[], None]] = None):
        self._cancel_fn = cancel_fn
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self._cancel_fn is not None:
            self._cancel_fn()


class Scheduler:
    """Timing capability shared by the clock, collectors and renderer."""

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callable[[], Any]) -> ScheduledCallback:
        raise NotImplementedError

    def call_every(self, interval: float, callback: Callable[[], Any]) -> ScheduledCallback:
        raise NotImplementedError

    def spawn(self, coro: Awaitable[Any]) -> "asyncio.Future[Any]":
        raise NotImplementedError


def run_callback(callback: Callable[[], Any]) -> None:
    """Run a scheduled callback, logging instead of propagating its errors."""
    try:
        callback()
    except Exception:
        logger.exception(f"[SCHEDULER] callback {getattr(callback, '__qualname__', callback)} failed")


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._tasks: Set["asyncio.Future[Any]"] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> ScheduledCallback:
        token = ScheduledCallback()

        def fire() -> None:
            if not token.cancelled:
                run_callback(callback)

        handle = self.loop.call_later(delay, fire)
        token._cancel_fn = handle.cancel
        return token

    def call_every(self, interval: float, callback: Callable[[], Any]) -> ScheduledCallback:
        if interval <= 0:
            raise ValueError("interval must be positive")
        token = ScheduledCallback()
        start = self.loop.time()
        state = {"n": 0, "handle": None}

        def fire() -> None:
            if token.cancelled:
                return
            run_callback(callback)
            schedule()

        def schedule() -> None:
            if token.cancelled:
                return
            # Anchor on the start time so late callbacks do not accumulate drift
            state["n"] += 1
            due = start + state["n"] * interval
            state["handle"] = self.loop.call_at(max(due, self.loop.time()), fire)

        def cancel() -> None:
            if state["handle"] is not None:
                state["handle"].cancel()

        token._cancel_fn = cancel
        schedule()
        return token

    def spawn(self, coro: Awaitable[Any]) -> "asyncio.Future[Any]":
        task = asyncio.ensure_future(coro, loop=self.loop)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: "asyncio.Future[Any]") -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[SCHEDULER] background task failed: {task.exception()!r}")
