"""Shared fixtures: deterministic clocks, schedulers and load surfaces."""

from typing import Callable, List, Optional, Tuple

import pytest

from relay.client.loader import GatewayErrorPayload, LoadSignalReceiver, LoadSurface
from relay.client.scheduler import ScheduledTask, Scheduler


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, ms: float) -> None:
        self.value += ms


class ManualTask(ScheduledTask):
    def __init__(self, deadline: float, callback: Callable[[], None]):
        self._deadline = deadline
        self.callback = callback
        self._cancelled = False
        self.fired = False

    @property
    def deadline(self) -> float:
        return self._deadline

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class ManualScheduler(Scheduler):
    """Scheduler whose time only moves when the test says so."""

    def __init__(self) -> None:
        self.time = 0.0
        self.tasks: List[ManualTask] = []

    def now(self) -> float:
        return self.time

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        task = ManualTask(self.time + delay, callback)
        self.tasks.append(task)
        return task

    @property
    def pending(self) -> List[ManualTask]:
        return [t for t in self.tasks if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        """Move time forward, firing due tasks in deadline order."""
        target = self.time + seconds
        while True:
            due = [t for t in self.pending if t.deadline <= target]
            if not due:
                break
            task = min(due, key=lambda t: t.deadline)
            self.time = task.deadline
            task.fired = True
            task.callback()
        self.time = target


class RecordingSurface(LoadSurface):
    """Records loads; the test delivers the signals."""

    def __init__(self) -> None:
        self.loads: List[Tuple[str, int]] = []
        self.receiver: Optional[LoadSignalReceiver] = None

    def load(self, proxy_url: str, token: int, receiver: LoadSignalReceiver) -> None:
        self.loads.append((proxy_url, token))
        self.receiver = receiver

    @property
    def last_token(self) -> int:
        return self.loads[-1][1]

    def succeed(self, error: Optional[GatewayErrorPayload] = None) -> None:
        self.receiver.handle_loaded(self.last_token, error)

    def fail(self, reason: str = "net::ERR_CONNECTION_RESET") -> None:
        self.receiver.handle_load_failed(self.last_token, reason)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def surface() -> RecordingSurface:
    return RecordingSurface()
