"""Cancellable delayed tasks for retry scheduling."""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Optional


class ScheduledTask(ABC):
    """Handle to a callback scheduled to run later."""

    @property
    @abstractmethod
    def deadline(self) -> float:
        """Scheduler time at which the callback fires."""

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running. Idempotent."""


class Scheduler(ABC):
    """Source of time and delayed callbacks."""

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds on this scheduler's clock."""

    @abstractmethod
    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        """Run ``callback`` once after ``delay`` seconds."""


class _AsyncioTask(ScheduledTask):
    def __init__(self, handle: asyncio.TimerHandle):
        self._handle = handle

    @property
    def deadline(self) -> float:
        return self._handle.when()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()

    def cancel(self) -> None:
        self._handle.cancel()


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        return _AsyncioTask(self.loop.call_later(delay, callback))
