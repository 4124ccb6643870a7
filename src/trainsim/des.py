"""Discrete event simulation primitives for the unloading dock model.

This module builds a small process-oriented layer on top of :mod:`simpy`:

* :class:`Scheduler` owns the virtual clock, the process table and the run
  loop. Pending resumptions live in simpy's event heap, which is ordered by
  ``(time, priority, insertion id)`` so simultaneous resumptions are always
  serviced in scheduling order.
* :class:`Process` is a suspendable unit of logic. Subclasses implement
  :meth:`Process.run` as a generator and suspend by yielding the result of
  :meth:`Process.hold`, :meth:`Process.timed_wait`,
  :meth:`Process.untimed_wait` or :meth:`Process.reserve`.
* :class:`Event` is a pulse: :meth:`Event.set` releases the processes waiting
  at that moment and keeps no signalled state.
* :class:`Facility` is a FCFS resource with ``capacity`` servers and
  busy/idle accounting.

Example
-------
>>> env = Scheduler()
>>> class Sleeper(Process):
...     def run(self):
...         yield self.hold(5)
>>> sleeper = Sleeper(env, "sleeper")
>>> _ = env.add(sleeper)
>>> env.run()
>>> env.now
5
"""
from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from enum import Enum
from heapq import heappop
from typing import Any, Generator, Union
from numpy import array, append
from pandas import DataFrame
import simpy
from simpy.events import NORMAL

from trainsim.log_cfg import logger

__all__ = [
    "EXPIRY_PRIORITY",
    "GRANTED",
    "Event",
    "Facility",
    "FacilityStats",
    "Process",
    "ProcessState",
    "Resumption",
    "Scheduler",
    "SchedulingError",
]

# Timeouts of timed waits sort after every ordinary resumption due at the
# same instant, so an event pulsed at that instant is delivered first.
EXPIRY_PRIORITY = NORMAL + 1


class SchedulingError(ValueError):
    """Raised when a primitive is used in a way that breaks scheduler invariants."""


class ProcessState(Enum):
    RUNNABLE = "runnable"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class Resumption:
    """What a suspended process is waiting for.

    ``time`` is the absolute resumption time of a hold or the deadline of a
    timed wait; ``waiting_on`` names the event or facility the process is
    blocked on. Either may be ``None``.
    """

    time: float | None = None
    waiting_on: str | None = None


class _Granted:
    """Marker yielded for requests satisfied without suspending."""

    def __repr__(self) -> str:
        return "GRANTED"


GRANTED = _Granted()


class _Expiry(simpy.events.Event):
    """A timeout scheduled behind ordinary resumptions of the same instant.

    A cancelled expiry is discarded by the scheduler without advancing the
    clock.
    """

    def __init__(self, env: simpy.Environment, delay: float):
        super().__init__(env)
        self._ok = True
        self._value = None
        self.cancelled = False
        env.schedule(self, EXPIRY_PRIORITY, delay)


class _Waiter:
    __slots__ = ("process", "wake", "resolved", "expiry")

    def __init__(self, process: "Process", wake: simpy.Event):
        self.process = process
        self.wake = wake
        self.resolved = False
        self.expiry: _Expiry | None = None


class Process:
    """A suspendable unit of sequential logic driven by a :class:`Scheduler`.

    Subclasses override :meth:`run` with a generator. Every suspension is a
    ``yield`` of one of the primitives below; the value sent back into the
    generator is the primitive's result (``True``/``False`` for
    :meth:`timed_wait`).
    """

    def __init__(self, env: "Scheduler", name: str):
        self.env = env
        self.name = name
        self.state = ProcessState.RUNNABLE
        self.pending: Resumption | None = None
        self._sim_process: simpy.events.Process | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.state.value})"

    def run(self) -> Generator[Any, Any, None]:
        """Body of the process; must be overridden with a generator."""
        raise NotImplementedError

    def _drive(self):
        body = self.run()
        value = None
        try:
            while True:
                try:
                    target = body.send(value)
                except StopIteration:
                    return
                if target is GRANTED:
                    value = True
                    continue
                self.state = ProcessState.SUSPENDED
                value = yield target
                self.state = ProcessState.RUNNABLE
                self.pending = None
        finally:
            self.state = ProcessState.TERMINATED
            self.pending = None
            self.env._retire(self)

    # suspension primitives
    def hold(self, duration: float) -> simpy.Event:
        """Suspend until ``now + duration``."""
        if duration < 0:
            raise SchedulingError(f"{self.name}: cannot hold for a negative duration ({duration})")
        self.pending = Resumption(time=self.env.now + duration)
        return self.env.timeout(duration)

    def untimed_wait(self, event: "Event") -> simpy.Event:
        """Suspend until ``event`` is pulsed."""
        waiter = event._register(self)
        self.pending = Resumption(waiting_on=event.name)
        return waiter.wake

    def timed_wait(self, event: "Event", timeout: float) -> simpy.Event:
        """Suspend until ``event`` is pulsed or ``timeout`` elapses.

        The process resumes with ``True`` when the event fired and ``False``
        when the timeout elapsed. If both are due at the same instant the
        event wins.
        """
        if timeout < 0:
            raise SchedulingError(f"{self.name}: cannot wait with a negative timeout ({timeout})")
        waiter = event._register(self)
        self.pending = Resumption(time=self.env.now + timeout, waiting_on=event.name)

        def _expire(_):
            if waiter.resolved:
                return
            waiter.resolved = True
            event._withdraw(waiter)
            waiter.wake.succeed(False)

        waiter.expiry = _Expiry(self.env, timeout)
        waiter.expiry.callbacks.append(_expire)
        return waiter.wake

    def reserve(self, facility: "Facility") -> Union[simpy.Event, _Granted]:
        """Acquire a server of ``facility``, queueing FCFS if none is free."""
        return facility.reserve(self)

    def release(self, facility: "Facility") -> None:
        facility.release(self)


class Event:
    """Broadcast pulse used for interrupt-style signalling.

    :meth:`set` releases exactly the processes waiting when it is called, in
    the order they started waiting, and the event returns to rest. A process
    that starts waiting afterwards waits for the next pulse.
    """

    def __init__(self, env: "Scheduler", name: str):
        self.env = env
        self.name = name
        self.fired = 0
        self._waiters: list[_Waiter] = []

    def __repr__(self) -> str:
        return f"Event({self.name!r}, waiters={self.waiters})"

    @property
    def waiters(self) -> int:
        """Number of processes currently blocked on the event."""
        return len(self._waiters)

    def _register(self, process: Process) -> _Waiter:
        waiter = _Waiter(process, self.env.event())
        self._waiters.append(waiter)
        return waiter

    def _withdraw(self, waiter: _Waiter) -> None:
        self._waiters.remove(waiter)

    def set(self) -> int:
        """Pulse the event and return how many waiters were released."""
        waiters, self._waiters = self._waiters, []
        self.fired += 1
        for waiter in waiters:
            waiter.resolved = True
            if waiter.expiry is not None:
                waiter.expiry.cancelled = True
            waiter.wake.succeed(True)
        if waiters:
            logger.debug("%.2f: %s released %d waiter(s)", self.env.now, self.name, len(waiters))
        return len(waiters)


@dataclass(frozen=True)
class FacilityStats:
    completions: int
    busy_time: float
    idle_time: float
    max_queue_length: int


class Facility:
    """FCFS resource with ``capacity`` servers.

    A process obtains a server with ``yield facility.reserve(process)`` and
    gives it back with :meth:`release`. When a server is released while
    processes are queued, it passes straight to the head of the queue so a
    later arrival can never overtake a waiting one.
    """

    def __init__(self, env: "Scheduler", name: str, capacity: int = 1, log: bool = True):
        if capacity < 1:
            raise ValueError("A facility needs at least one server.")
        self.env = env
        self.name = name
        self.capacity = capacity
        self.log = log
        self.completions = 0
        self.max_queue_length = 0
        self._holders: list[Process] = []
        self._queue: deque[tuple[Process, simpy.Event]] = deque()
        self._busy_time = 0.0
        self._idle_time = 0.0
        self._last_change = env.now
        # time, in-use, queue-length
        self._status_log = array([[env.now, 0, 0]])

    def __repr__(self) -> str:
        return f"Facility({self.name!r}, in_use={self.in_use()}, queue={self.queue_length()})"

    def _accumulate(self) -> None:
        elapsed = self.env.now - self._last_change
        if self._holders:
            self._busy_time += elapsed
        else:
            self._idle_time += elapsed
        self._last_change = self.env.now

    def _log_status(self) -> None:
        if self.log:
            self._status_log = append(self._status_log, [[self.env.now, len(self._holders), len(self._queue)]], axis=0)

    def reserve(self, process: Process) -> Union[simpy.Event, _Granted]:
        """Occupy a free server, or join the queue and return the event that grants it."""
        if process in self._holders:
            raise SchedulingError(f"{process.name} already holds {self.name}")
        if len(self._holders) < self.capacity and not self._queue:
            self._accumulate()
            self._holders.append(process)
            self._log_status()
            return GRANTED
        wake = self.env.event()
        self._queue.append((process, wake))
        self.max_queue_length = max(self.max_queue_length, len(self._queue))
        process.pending = Resumption(waiting_on=self.name)
        self._log_status()
        return wake

    def release(self, process: Process) -> None:
        """Free the server held by ``process`` and hand it to the queue head."""
        if process not in self._holders:
            raise SchedulingError(f"{process.name} does not hold {self.name}")
        self._accumulate()
        self._holders.remove(process)
        self.completions += 1
        if self._queue:
            successor, wake = self._queue.popleft()
            self._holders.append(successor)
            wake.succeed(True)
        self._log_status()

    def queue_length(self) -> int:
        return len(self._queue)

    def in_use(self) -> int:
        return len(self._holders)

    def stats(self) -> FacilityStats:
        """Cumulative counters since creation, including the interval still open at ``now``."""
        elapsed = self.env.now - self._last_change
        busy = self._busy_time + (elapsed if self._holders else 0.0)
        idle = self._idle_time + (0.0 if self._holders else elapsed)
        return FacilityStats(self.completions, busy, idle, self.max_queue_length)

    def average_utilization(self) -> float:
        """Fraction of elapsed time with at least one server occupied."""
        stats = self.stats()
        total = stats.busy_time + stats.idle_time
        if total <= 0:
            return 0.0
        return stats.busy_time / total

    def status_log(self) -> DataFrame:
        """
        Return a DataFrame of facility status over time.
        """
        return DataFrame(data=self._status_log[1:, :], columns=["time", "in_use", "queue_length"])


class Scheduler(simpy.Environment):
    """Virtual clock, process table and run loop.

    Processes are registered with :meth:`add` and looked up by name with
    :meth:`lookup`; the table holds the only owning reference to a running
    process, other processes keep its name.
    """

    def __init__(self, name: str = "Scheduler", initial_time: float = 0):
        super().__init__(initial_time)
        self.name = name
        self._processes: dict[str, Process] = {}

    def add(self, process: Process) -> Process:
        """Register ``process`` and schedule its first step at the current time."""
        if process.name in self._processes:
            raise SchedulingError(f"a process named {process.name!r} is already active")
        if process.state is ProcessState.TERMINATED or process._sim_process is not None:
            raise SchedulingError(f"{process.name} has already been started")
        self._processes[process.name] = process
        process._sim_process = self.process(process._drive())
        logger.debug("%.2f: %s started", self.now, process.name)
        return process

    def _retire(self, process: Process) -> None:
        if self._processes.get(process.name) is process:
            del self._processes[process.name]
        logger.debug("%.2f: %s terminated", self.now, process.name)

    def lookup(self, name: str) -> Process | None:
        """Return the active process called ``name``, or ``None`` once it has terminated."""
        return self._processes.get(name)

    def set(self, event: Event) -> int:
        """Pulse ``event``; same as :meth:`Event.set`."""
        return event.set()

    def peek(self) -> float:
        """Time of the next live resumption; cancelled timeouts are dropped first."""
        while self._queue and getattr(self._queue[0][3], "cancelled", False):
            heappop(self._queue)
        return super().peek()

    def step(self) -> None:
        self.peek()
        super().step()

    def run(self, until: float | Process | None = None) -> None:
        """Advance the clock from one pending resumption to the next.

        Parameters
        ----------
        until : float | Process | None
            ``None`` runs until nothing is pending. A number stops before the
            first resumption later than that time. A :class:`Process` stops
            as soon as that process has terminated.
        """
        watch = until if isinstance(until, Process) else None
        limit = float("inf") if until is None or watch is not None else float(until)
        if limit < self.now:
            raise SchedulingError(f"until ({limit}) must not be earlier than the current time ({self.now})")
        if watch is not None and watch._sim_process is None:
            raise SchedulingError(f"{watch.name} was never added to the scheduler")

        last = self.now
        while True:
            due = self.peek()
            if due == float("inf") or due > limit:
                break
            self.step()
            if self.now < last:
                raise SchedulingError("the clock moved backwards")
            last = self.now
            if watch is not None and watch._sim_process.processed:
                break
