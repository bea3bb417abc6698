"""
Timer and visibility capabilities injected into the sync loop.

The poller never touches asyncio timers or a UI toolkit directly, so tests
can drive it with fakes.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Coroutine, Protocol

log = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None]]
VisibilityCallback = Callable[[bool], None]


class PeriodicHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def every(self, interval: float, callback: TickCallback) -> PeriodicHandle: ...

    def spawn(self, coro: Coroutine[None, None, None]) -> None: ...


class VisibilitySource(Protocol):
    def is_visible(self) -> bool: ...

    def subscribe(self, callback: VisibilityCallback) -> Callable[[], None]:
        """Register for changes; returns the unsubscribe function."""
        ...


# ---- asyncio implementation ----
class _PeriodicTask:
    def __init__(self, interval: float, callback: TickCallback, spawn) -> None:
        self.interval = interval
        self._callback = callback
        self._spawn = spawn
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            # Each tick runs as its own task so a slow callback never delays the timer
            self._spawn(self._callback())

    def cancel(self) -> None:
        self._task.cancel()


class AsyncioScheduler:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def every(self, interval: float, callback: TickCallback) -> _PeriodicTask:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        return _PeriodicTask(interval, callback, self.spawn)

    def spawn(self, coro: Coroutine[None, None, None]) -> None:
        task = asyncio.ensure_future(coro)
        # Keep a reference until done, asyncio only holds weak ones
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("background task %s failed", task.get_name(), exc_info=exc)


# ---- visibility ----
class ManualVisibility:
    """Visibility flag set by the host (a window focus hook, a terminal, a test)."""

    def __init__(self, visible: bool = True) -> None:
        self._visible = visible
        self._subscribers: list[VisibilityCallback] = []

    def is_visible(self) -> bool:
        return self._visible

    def subscribe(self, callback: VisibilityCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def set_visible(self, visible: bool) -> None:
        if visible == self._visible:
            return
        self._visible = visible
        log.debug("visibility changed: %s", "visible" if visible else "hidden")
        for callback in list(self._subscribers):
            callback(visible)
