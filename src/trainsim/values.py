"""Sources of train and crew values.

A value source supplies, on demand, the ``(arrival, unload, crew hours)``
triple of the next train and the travel time of the next replacement crew.
:class:`GeneratedValues` draws them from distributions; :class:`RecordedValues`
reads them from a schedule file and a travel-time file. The model only sees
the :class:`TrainValueSource` protocol.

Schedule file: one train per line, three whitespace-separated numbers
(absolute arrival time, unload duration, crew hours remaining). Travel-time
file: one number per line.
"""
from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from typing import IO, Iterator, Protocol

import numpy as np

from trainsim import dist
from trainsim.config import SimConfig
from trainsim.errors import ConfigurationError, IOFailure, ResourceUnavailable
from trainsim.log_cfg import logger


@dataclass(frozen=True)
class TrainValues:
    """Values of one train.

    ``arrival`` is an inter-arrival time for generated values and an absolute
    time for pre-recorded ones (see :attr:`TrainValueSource.absolute_arrivals`).
    """

    arrival: float
    unload: float
    crew_hours: float


class TrainValueSource(Protocol):
    absolute_arrivals: bool

    def next_train(self) -> TrainValues | None:
        """Values of the next train, ``None`` once no train is left."""

    def next_crew_arrival(self) -> float | None:
        """Travel time of the next replacement crew, ``None`` once exhausted."""

    def close(self) -> None:
        ...


class GeneratedValues:
    """Random values: exponential inter-arrivals, uniform durations.

    Each quantity has its own stream spawned from ``seed``, so changing how
    often one quantity is drawn does not shift the others.
    """

    absolute_arrivals = False

    def __init__(self, arrival_mean: float, unload_range: tuple[float, float],
                 crew_hours_range: tuple[float, float], replacement_range: tuple[float, float],
                 seed: int | np.random.SeedSequence | None = None):
        sequence = seed if isinstance(seed, np.random.SeedSequence) else np.random.SeedSequence(seed)
        arrival, unload, crew, replacement = sequence.spawn(4)
        self.arrival = dist.make_expon(arrival_mean, arrival)
        self.unload = dist.make_uniform(*unload_range, random_state=unload)
        self.crew_hours = dist.make_uniform(*crew_hours_range, random_state=crew)
        self.replacement = dist.make_uniform(*replacement_range, random_state=replacement)

    @classmethod
    def from_config(cls, config: SimConfig, seed=None) -> GeneratedValues:
        return cls(config.arrival_mean, config.unload_range, config.crew_hours_range,
                   config.replacement_range, seed if seed is not None else config.seed)

    def next_train(self) -> TrainValues:
        return TrainValues(self.arrival.sample(), self.unload.sample(), self.crew_hours.sample())

    def next_crew_arrival(self) -> float:
        return self.replacement.sample()

    def close(self) -> None:
        return None


def _open(path: str) -> IO[str]:
    try:
        return open(path, "r", encoding="utf-8")
    except FileNotFoundError:
        raise ResourceUnavailable(f"could not find file {path}") from None
    except OSError as exc:
        raise ResourceUnavailable(f"could not open file {path}: {exc.strerror}") from exc


def _parse(path: str, line_no: int, line: str, fields: int) -> list[float]:
    tokens = line.split()
    if len(tokens) != fields:
        raise ConfigurationError(f"{path}:{line_no}: expected {fields} value(s), got {len(tokens)}")
    try:
        return [float(token) for token in tokens]
    except ValueError:
        raise ConfigurationError(f"{path}:{line_no}: not a number in {line.strip()!r}") from None


class RecordedValues:
    """Values read line by line from a schedule file and a travel-time file.

    Use as a context manager so both files are closed on every exit path.
    """

    absolute_arrivals = True

    def __init__(self, schedule_path: str, travel_path: str):
        self.schedule_path = schedule_path
        self.travel_path = travel_path
        self._schedule = _open(schedule_path)
        try:
            self._travel = _open(travel_path)
        except ResourceUnavailable:
            self._schedule.close()
            raise
        self._schedule_lines = enumerate(self._schedule, 1)
        self._travel_lines = enumerate(self._travel, 1)

    def __enter__(self) -> RecordedValues:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @staticmethod
    def _next_line(lines: Iterator[tuple[int, str]]) -> tuple[int, str] | None:
        for line_no, line in lines:
            if line.strip():
                return line_no, line
        return None

    def next_train(self) -> TrainValues | None:
        found = self._next_line(self._schedule_lines)
        if found is None:
            return None
        line_no, line = found
        arrival, unload, crew_hours = _parse(self.schedule_path, line_no, line, 3)
        if unload < 0 or crew_hours < 0:
            raise ConfigurationError(f"{self.schedule_path}:{line_no}: durations cannot be negative")
        return TrainValues(arrival, unload, crew_hours)

    def next_crew_arrival(self) -> float | None:
        found = self._next_line(self._travel_lines)
        if found is None:
            return None
        line_no, line = found
        (travel,) = _parse(self.travel_path, line_no, line, 1)
        if travel < 0:
            raise ConfigurationError(f"{self.travel_path}:{line_no}: travel time cannot be negative")
        return travel

    def close(self) -> None:
        errors = []
        for handle in (self._schedule, self._travel):
            try:
                handle.close()
            except OSError as exc:
                errors.append(exc)
        if errors:
            raise IOFailure(f"error closing files: {errors[0]}") from errors[0]
        logger.debug("closed %s and %s", self.schedule_path, self.travel_path)


@contextmanager
def open_value_source(config: SimConfig, seed=None) -> Iterator[TrainValueSource]:
    """Yield the value source selected by ``config`` and release it on exit."""
    if config.prerecorded:
        with RecordedValues(config.schedule_path, config.travel_path) as source:
            yield source
    else:
        source = GeneratedValues.from_config(config, seed)
        try:
            yield source
        finally:
            source.close()
