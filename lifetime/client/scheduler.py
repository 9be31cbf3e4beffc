"""
Clock and timer abstraction for the client controllers.

Controllers never touch the event loop directly: they ask a ``Scheduler``
for the current time and for one-shot or repeating timers, and they keep
every handle they get in a ``TimerSet`` so one ``cancel_all()`` stops the
whole chain.  Tests swap in a virtual scheduler and advance time by hand.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        ...


class Scheduler(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current wall-clock time, UTC-aware."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        ...

    @abstractmethod
    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        """Run *callback* every *interval* seconds, first run one interval from now."""


class _AsyncioOneShot(TimerHandle):
    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()


class _AsyncioRepeating(TimerHandle):
    """Repeating timer anchored to its start so ticks do not drift."""

    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, callback: Callback) -> None:
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._start = loop.time()
        self._ticks = 0
        self._cancelled = False
        self._handle = self._schedule_next()

    def _schedule_next(self) -> asyncio.TimerHandle:
        self._ticks += 1
        return self._loop.call_at(self._start + self._ticks * self._interval, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._handle = self._schedule_next()
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()


class AsyncioScheduler(Scheduler):
    """Real-time scheduler backed by the running asyncio loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        return _AsyncioOneShot(self.loop.call_later(delay, callback))

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        return _AsyncioRepeating(self.loop, interval, callback)


class TimerSet:
    """Owns every live timer of one controller."""

    def __init__(self, scheduler: Scheduler) -> None:
        self.scheduler = scheduler
        self._handles: dict[str, TimerHandle] = {}

    def start_timeout(self, name: str, delay: float, callback: Callback) -> None:
        self.cancel(name)

        def fire() -> None:
            self._handles.pop(name, None)
            callback()

        self._handles[name] = self.scheduler.call_later(delay, fire)

    def start_interval(self, name: str, interval: float, callback: Callback) -> None:
        self.cancel(name)
        self._handles[name] = self.scheduler.call_every(interval, callback)

    def cancel(self, name: str) -> None:
        handle = self._handles.pop(name, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        handles, self._handles = self._handles, {}
        for handle in handles.values():
            handle.cancel()

    def active(self) -> set[str]:
        return set(self._handles)

    def __contains__(self, name: str) -> bool:
        return name in self._handles
