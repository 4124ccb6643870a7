"""The unloading dock model: generator, trains, crews and the run controller.

One replication is described by a :class:`RunContext`, which owns everything
that is reset between replications (scheduler, dock facility, statistics
tables, histogram, end-of-arrivals flag). State that accumulates across the
replications of a batch lives in a :class:`BatchContext`.

Trace lines are emitted at ``INFO`` through the ``trainsim`` logger; enable
them with :class:`trainsim.log_cfg.LogConfig`.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum

from pandas import DataFrame

from trainsim.config import SimConfig
from trainsim.des import Event, Facility, FacilityStats, Process, Scheduler
from trainsim.errors import ConfigurationError, CrewDataExhausted
from trainsim.log_cfg import logger
from trainsim.stats import HogoutHistogram, StatTable
from trainsim.values import TrainValues, TrainValueSource


class CrewStatus(Enum):
    ON_CLOCK = "on clock"
    HOGGED = "hogged"


class TrainStatus(Enum):
    IN_QUEUE = "in queue"
    IN_DOCK = "in dock"


@dataclass(frozen=True)
class TrainRecord:
    """Timings of one completed train."""

    train: int
    arrival: float
    queue_exit: float
    departure: float
    unload: float
    hogouts: int
    dock_idle: float
    dock_hogged: float

    @property
    def time_in_system(self) -> float:
        return self.departure - self.arrival

    @property
    def time_in_queue(self) -> float:
        return self.queue_exit - self.arrival

    @property
    def time_in_dock(self) -> float:
        return self.departure - self.queue_exit


class BatchContext:
    """State shared by all replications of one batch.

    The confidence table is created once, here, and is permanent: every
    replication records its mean time-in-system into it.
    """

    def __init__(self, config: SimConfig):
        self.config = config
        self.confidence = StatTable("Confidence interval of the means of in system time", permanent=True)
        self.confidence.configure_confidence(config.confidence_accuracy, config.confidence_level,
                                             config.max_replications)
        self.histogram = HogoutHistogram()
        self.replications = 0


@dataclass
class RunContext:
    """Everything owned by a single replication."""

    config: SimConfig
    source: TrainValueSource
    batch: BatchContext
    replication: int = 0
    env: Scheduler = field(init=False)
    dock: Facility = field(init=False)
    last_train: Event = field(init=False)
    time_in_system: StatTable = field(init=False)
    time_in_queue: StatTable = field(init=False)
    dock_busy: StatTable = field(init=False)
    dock_idle: StatTable = field(init=False)
    dock_hogged: StatTable = field(init=False)
    histogram: HogoutHistogram = field(init=False)
    records: list[TrainRecord] = field(init=False)
    end_of_arrivals: bool = field(init=False, default=False)
    trains_in_system: int = field(init=False, default=0)
    ended_at: float | None = field(init=False, default=None)
    dock_stats: FacilityStats | None = field(init=False, default=None)

    def __post_init__(self):
        self.env = Scheduler(f"Sim {self.replication}")
        self.dock = Facility(self.env, "Unloading Dock", capacity=1)
        self.last_train = Event(self.env, "Last Train Event")
        self.time_in_system = StatTable("Time in system")
        self.time_in_queue = StatTable("Time in queue")
        self.dock_busy = StatTable("Dock busy table")
        self.dock_idle = StatTable("Dock idle table")
        self.dock_hogged = StatTable("Dock Hogged-out table")
        self.histogram = HogoutHistogram()
        self.records = []
        self._train_ids = 0
        self._crew_ids = 0

    def next_train_id(self) -> int:
        self._train_ids += 1
        return self._train_ids - 1

    def next_crew_id(self) -> int:
        self._crew_ids += 1
        return self._crew_ids - 1

    def end_arrivals(self) -> None:
        """Stop arrivals; the run ends once the system is empty."""
        self.end_of_arrivals = True
        self._check_last_train()

    def _check_last_train(self) -> None:
        if self.end_of_arrivals and self.trains_in_system == 0:
            self.last_train.set()

    def record_departure(self, record: TrainRecord) -> None:
        self.time_in_system.record(record.time_in_system)
        self.time_in_queue.record(record.time_in_queue)
        self.dock_busy.record(record.unload)
        self.dock_idle.record(record.dock_idle)
        self.dock_hogged.record(record.dock_hogged)
        self.histogram.add(record.hogouts)
        self.records.append(record)
        self.trains_in_system -= 1
        self._check_last_train()

    def finish(self) -> None:
        """Close the replication: freeze the dock counters and feed the batch."""
        self.ended_at = self.env.now
        self.dock_stats = self.dock.stats()
        if self.time_in_system.count():
            self.batch.confidence.record(self.time_in_system.mean())
        self.batch.histogram.update(self.histogram)
        self.batch.replications += 1

    def idle_time(self) -> float:
        """Dock idle time: no train in the dock, or the head train waiting for its crew."""
        stats = self.dock_stats or self.dock.stats()
        return stats.idle_time + self.dock_idle.sum()

    def train_frame(self) -> DataFrame:
        """Return a DataFrame with one row per completed train."""
        columns = ["train", "arrival", "queue_exit", "departure", "unload", "hogouts",
                   "dock_idle", "dock_hogged"]
        df = DataFrame([[getattr(r, c) for c in columns] for r in self.records], columns=columns)
        df["time_in_system"] = df["departure"] - df["arrival"]
        df["time_in_queue"] = df["queue_exit"] - df["arrival"]
        return df


class Generator(Process):
    """Spawns trains at the intervals supplied by the value source."""

    def __init__(self, ctx: RunContext):
        super().__init__(ctx.env, "Gen")
        self.ctx = ctx

    def run(self):
        ctx = self.ctx
        while True:
            values = ctx.source.next_train()
            if values is None or self.env.now > ctx.config.horizon:
                ctx.end_arrivals()
                return
            delay = values.arrival
            if ctx.source.absolute_arrivals:
                delay = values.arrival - self.env.now
                if delay < 0:
                    logger.warning("Time %.2f: scheduled arrival %.2f is in the past, train arrives now",
                                   self.env.now, values.arrival)
                    delay = 0.0
            yield self.hold(delay)
            train = Train(ctx, ctx.next_train_id(), values)
            ctx.trains_in_system += 1
            self.env.add(train)


class Train(Process):
    """A train: queue for the dock, unload, wait out crew hogouts, depart."""

    def __init__(self, ctx: RunContext, number: int, values: TrainValues):
        super().__init__(ctx.env, f"train {number}")
        self.ctx = ctx
        self.number = number
        self.unload_time = values.unload
        self.crew_hours = values.crew_hours
        self.status: TrainStatus | None = None
        self.hogout = Event(ctx.env, f"Crew Hogged Out ({number})")
        self.new_crew = Event(ctx.env, f"New Crew Arrived ({number})")
        self.crew_name: str | None = None
        self.arrival_time = 0.0
        self.queue_exit_time = 0.0

    @property
    def crew(self) -> Crew | None:
        return self.env.lookup(self.crew_name)

    def run(self):
        ctx = self.ctx
        env = self.env
        skip_hogout = False
        dock_idle = 0.0
        dock_hogged = 0.0

        self.arrival_time = env.now
        crew = Crew(ctx, self, self.crew_hours)
        self.crew_name = crew.name
        env.add(crew)
        logger.info("Time %.2f: train %d arrival for %.2fh of unloading, crew %d with %.2fh before hogout (Q=%d)",
                    env.now, self.number, self.unload_time, crew.number, crew.time_left, ctx.dock.queue_length())

        self.status = TrainStatus.IN_QUEUE
        yield self.reserve(ctx.dock)

        if self.crew.status is CrewStatus.HOGGED:
            start = env.now
            logger.info("Time %.2f: train %d crew %d hasn't arrived yet, cannot enter dock (SERVER HOGGED)",
                        env.now, self.number, self.crew.number)
            yield self.untimed_wait(self.new_crew)
            # the crew that just arrived cannot hog out before service starts
            skip_hogout = True
            dock_idle += env.now - start
        self.queue_exit_time = env.now

        logger.info("Time %.2f: train %d entering dock for %.2fh of unloading, crew %d with %.2fh before hogout",
                    env.now, self.number, self.unload_time, self.crew.number, self.crew.time_remaining())
        self.status = TrainStatus.IN_DOCK
        if skip_hogout:
            yield self.hold(self.unload_time)
        else:
            hogged = yield self.timed_wait(self.hogout, self.unload_time)
            if hogged:
                start = env.now
                # a hogout at the last instant of unloading can round below zero
                remaining = max(0.0, self.unload_time - (env.now - self.queue_exit_time))
                yield self.untimed_wait(self.new_crew)
                dock_hogged += env.now - start
                yield self.hold(remaining)

        self._depart(dock_idle, dock_hogged)

    def _depart(self, dock_idle: float, dock_hogged: float) -> None:
        ctx = self.ctx
        crew = self.crew
        crew.depart()
        ctx.dock.release(self)
        logger.info("Time %.2f: train %d departing (Q=%d)", self.env.now, self.number, ctx.dock.queue_length())
        ctx.record_departure(TrainRecord(
            train=self.number,
            arrival=self.arrival_time,
            queue_exit=self.queue_exit_time,
            departure=self.env.now,
            unload=self.unload_time,
            hogouts=crew.hogouts,
            dock_idle=dock_idle,
            dock_hogged=dock_hogged,
        ))


class Crew(Process):
    """The crew assigned to a train, replaced every time it hogs out.

    The crew refers to its train by name only; the scheduler's process table
    owns the train.
    """

    def __init__(self, ctx: RunContext, train: Train, time_left: float):
        super().__init__(ctx.env, f"crew of {train.name}")
        self.ctx = ctx
        self.train_name = train.name
        self.status = CrewStatus.ON_CLOCK
        self.time_left = time_left
        self.hogouts = 0
        self.departed = False
        self.number = ctx.next_crew_id()
        self._on_clock_since = ctx.env.now

    @property
    def train(self) -> Train | None:
        return self.env.lookup(self.train_name)

    def time_remaining(self) -> float:
        """Hours left before the current crew hogs out."""
        return self.time_left - (self.env.now - self._on_clock_since)

    def depart(self) -> None:
        self.departed = True

    def run(self):
        ctx = self.ctx
        while True:
            yield self.hold(self.time_left)
            if self.departed:
                return
            train = self.train
            if train.status is TrainStatus.IN_DOCK:
                logger.info("Time %.2f: train %d crew %d hogged out during service (SERVER HOGGED)",
                            self.env.now, train.number, self.number)
            else:
                logger.info("Time %.2f: train %d crew %d hogged out in queue",
                            self.env.now, train.number, self.number)

            travel = ctx.source.next_crew_arrival()
            if travel is None:
                raise CrewDataExhausted(train.name)
            if travel > ctx.config.shift_length:
                raise ConfigurationError(
                    f"crew travel time {travel:.2f}h exceeds the {ctx.config.shift_length:.2f}h shift")
            self.time_left = ctx.config.shift_length - travel
            self.status = CrewStatus.HOGGED
            self.hogouts += 1
            self.number = ctx.next_crew_id()
            train.hogout.set()

            yield self.hold(travel)
            if self.departed:
                return
            logger.info("Time %.2f: train %d replacement crew %d arrives (SERVER UNHOGGED)",
                        self.env.now, train.number, self.number)
            self._on_clock_since = self.env.now
            self.status = CrewStatus.ON_CLOCK
            train.new_crew.set()


class DockSimulation(Process):
    """Controller of one replication.

    Starts the generator, waits for the last train event, holds for the
    drain time and closes the replication's statistics.
    """

    def __init__(self, ctx: RunContext):
        super().__init__(ctx.env, f"Sim {ctx.replication}")
        self.ctx = ctx

    def run(self):
        ctx = self.ctx
        self.env.add(Generator(ctx))
        yield self.untimed_wait(ctx.last_train)
        yield self.hold(ctx.config.drain_time)
        ctx.finish()
        logger.info("Time %.2f: simulation ended", self.env.now)


def simulate(ctx: RunContext) -> RunContext:
    """Run the replication described by ``ctx`` to its end."""
    sim = DockSimulation(ctx)
    ctx.env.add(sim)
    ctx.env.run(until=sim)
    return ctx
