import pytest

from trainsim.des import Event, Facility, Process, ProcessState, Scheduler, SchedulingError


class Sleeper(Process):
    def __init__(self, env, name, delays, log):
        super().__init__(env, name)
        self.delays = delays
        self.log = log

    def run(self):
        for delay in self.delays:
            yield self.hold(delay)
            self.log.append((self.name, self.env.now))


class Waiter(Process):
    def __init__(self, env, name, event, log, timeout=None):
        super().__init__(env, name)
        self.event = event
        self.log = log
        self.timeout = timeout

    def run(self):
        if self.timeout is None:
            yield self.untimed_wait(self.event)
            self.log.append((self.name, self.env.now, True))
        else:
            fired = yield self.timed_wait(self.event, self.timeout)
            self.log.append((self.name, self.env.now, fired))


class Setter(Process):
    def __init__(self, env, name, event, at, log=None):
        super().__init__(env, name)
        self.event = event
        self.at = at
        self.log = log

    def run(self):
        for t in self.at:
            yield self.hold(t - self.env.now)
            released = self.event.set()
            if self.log is not None:
                self.log.append(("set", self.env.now, released))


def test_hold_advances_clock_and_orders_ties_by_scheduling_order():
    env = Scheduler()
    log = []
    env.add(Sleeper(env, "a", [1, 2], log))
    env.add(Sleeper(env, "b", [1, 2], log))
    env.run()

    assert log == [("a", 1), ("b", 1), ("a", 3), ("b", 3)]
    assert env.now == 3


def test_negative_hold_is_rejected():
    env = Scheduler()
    env.add(Sleeper(env, "bad", [-1], []))

    with pytest.raises(SchedulingError):
        env.run()


def test_untimed_wait_resumes_on_set():
    env = Scheduler()
    event = Event(env, "go")
    log = []
    env.add(Waiter(env, "w", event, log))
    env.add(Setter(env, "s", event, [4]))
    env.run()

    assert log == [("w", 4, True)]
    assert event.waiters == 0


def test_timed_wait_times_out_and_leaves_no_waiter_behind():
    env = Scheduler()
    event = Event(env, "never")
    log = []
    env.add(Waiter(env, "w", event, log, timeout=5))
    env.run()

    assert log == [("w", 5, False)]
    assert event.waiters == 0
    assert event.set() == 0


def test_timed_wait_event_cancels_timeout():
    env = Scheduler()
    event = Event(env, "go")
    log = []
    env.add(Waiter(env, "w", event, log, timeout=5))
    env.add(Setter(env, "s", event, [2]))
    env.run()

    # resumed exactly once, by the event
    assert log == [("w", 2, True)]
    # the cancelled timeout neither resumes anything nor moves the clock
    assert env.now == 2
    assert env.peek() == float("inf")


def test_cancelled_timeout_leaves_no_idle_time_behind():
    env = Scheduler()
    event = Event(env, "go")
    dock = Facility(env, "dock")

    class Holder(Process):
        def run(self):
            yield self.reserve(dock)
            yield self.timed_wait(event, 10)
            self.release(dock)

    env.add(Holder(env, "holder"))
    env.add(Setter(env, "s", event, [3]))
    env.run()

    stats = dock.stats()
    assert env.now == 3
    assert stats.busy_time == 3
    assert stats.idle_time == 0


def test_event_wins_over_timeout_at_the_same_instant():
    env = Scheduler()
    event = Event(env, "go")
    log = []
    # the waiter schedules its timeout before the setter schedules its hold
    env.add(Waiter(env, "w", event, log, timeout=5))
    env.add(Setter(env, "s", event, [5]))
    env.run()

    assert log == [("w", 5, True)]
    assert env.now == 5


def test_set_is_a_pulse_without_memory():
    env = Scheduler()
    event = Event(env, "pulse")
    log = []
    setter_log = []
    env.add(Setter(env, "s", event, [1], setter_log))

    class LateWaiter(Waiter):
        def run(self):
            yield self.hold(2)
            yield from Waiter.run(self)

    env.add(LateWaiter(env, "late", event, log, timeout=3))
    env.run()

    assert setter_log == [("set", 1, 0)]
    assert log == [("late", 5, False)]


def test_set_releases_waiters_in_wait_order():
    env = Scheduler()
    event = Event(env, "go")
    log = []
    for name in ["first", "second", "third"]:
        env.add(Waiter(env, name, event, log))
    setter_log = []
    env.add(Setter(env, "s", event, [1], setter_log))
    env.run()

    assert [entry[0] for entry in log] == ["first", "second", "third"]
    assert all(entry[1] == 1 for entry in log)
    assert setter_log == [("set", 1, 3)]
    assert event.fired == 1


def test_event_reuse_across_cycles():
    env = Scheduler()
    event = Event(env, "cycle")
    results = []

    class Cycler(Process):
        def run(self):
            for timeout in (1, 1, 10):
                fired = yield self.timed_wait(event, timeout)
                results.append((self.env.now, fired, event.waiters))

    env.add(Cycler(env, "cycler"))
    env.add(Setter(env, "s", event, [5]))
    env.run()

    assert results == [(1, False, 0), (2, False, 0), (5, True, 0)]


def test_process_state_pending_and_lookup():
    env = Scheduler()
    sleeper = env.add(Sleeper(env, "sleeper", [5], []))

    env.run(until=1)
    assert sleeper.state is ProcessState.SUSPENDED
    assert sleeper.pending.time == 5
    assert env.lookup("sleeper") is sleeper

    env.run()
    assert sleeper.state is ProcessState.TERMINATED
    assert sleeper.pending is None
    assert env.lookup("sleeper") is None


def test_run_until_process_stops_when_it_terminates():
    env = Scheduler()
    log = []
    short = env.add(Sleeper(env, "short", [2], log))
    env.add(Sleeper(env, "long", [50], log))
    env.run(until=short)

    assert log == [("short", 2)]
    assert env.now == 2
    assert env.lookup("long") is not None


def test_duplicate_process_names_are_rejected():
    env = Scheduler()
    env.add(Sleeper(env, "twin", [1], []))

    with pytest.raises(SchedulingError):
        env.add(Sleeper(env, "twin", [1], []))


def test_run_until_in_the_past_is_rejected():
    env = Scheduler()
    env.add(Sleeper(env, "s", [3], []))
    env.run()

    with pytest.raises(SchedulingError):
        env.run(until=1)


def test_scheduler_set_pulses_the_event():
    env = Scheduler()
    event = Event(env, "go")
    log = []
    env.add(Waiter(env, "a", event, log))
    env.add(Waiter(env, "b", event, log, timeout=8))
    env.run(until=0)

    assert env.set(event) == 2
    env.run()

    assert log == [("a", 0, True), ("b", 0, True)]
    assert event.fired == 1
    assert env.now == 0
