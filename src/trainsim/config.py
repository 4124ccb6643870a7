"""Simulation parameters and command-line mode selection.

The execution mode follows from the shape of the arguments::

    trainsim -s SCHEDULE TRAVEL      pre-recorded train and crew schedules
    trainsim RATE HOURS REPLICATIONS generated values, batch of replications
    trainsim RATE HOURS              generated values, single replication
    trainsim                         generated values with the defaults

Any other shape is a :class:`~trainsim.errors.ConfigurationError`.
"""
from __future__ import annotations
import argparse
from dataclasses import dataclass, replace
from typing import Sequence

from trainsim.errors import ConfigurationError


@dataclass(frozen=True)
class SimConfig:
    """All constants of the dock model.

    Times are in hours. The uniform ranges are ``(low, high)`` pairs used by
    the value generator; they are ignored when schedules are pre-recorded.
    """

    arrival_mean: float = 10.0
    horizon: float = 72000.0
    replications: int = 1
    unload_range: tuple[float, float] = (3.5, 4.5)
    crew_hours_range: tuple[float, float] = (6.0, 11.0)
    replacement_range: tuple[float, float] = (2.5, 3.5)
    # legal shift; a replacement crew starts with this minus its travel time
    shift_length: float = 12.0
    # hold after the last train event so the final departure is recorded
    drain_time: float = 10.0
    confidence_accuracy: float = 0.01
    confidence_level: float = 0.99
    max_replications: int = 10000
    seed: int | None = None
    schedule_path: str | None = None
    travel_path: str | None = None

    @property
    def prerecorded(self) -> bool:
        return self.schedule_path is not None

    def with_changes(self, **changes) -> SimConfig:
        return replace(self, **changes).validate()

    def validate(self) -> SimConfig:
        """Return ``self`` or raise :class:`ConfigurationError`."""
        if (self.schedule_path is None) != (self.travel_path is None):
            raise ConfigurationError("pre-recorded mode needs both a schedule file and a travel-time file")
        if self.arrival_mean <= 0:
            raise ConfigurationError(f"the inter-arrival rate must be positive, got {self.arrival_mean}")
        if self.horizon < 0:
            raise ConfigurationError(f"the simulation horizon cannot be negative, got {self.horizon}")
        if self.replications < 1:
            raise ConfigurationError(f"at least one replication is needed, got {self.replications}")
        for label, (low, high) in (("unload", self.unload_range),
                                   ("crew hours", self.crew_hours_range),
                                   ("replacement", self.replacement_range)):
            if not 0 <= low < high:
                raise ConfigurationError(f"invalid {label} range ({low}, {high})")
        if self.replacement_range[1] > self.shift_length:
            raise ConfigurationError("replacement travel times cannot exceed the shift length")
        if self.drain_time < 0:
            raise ConfigurationError("the drain time cannot be negative")
        if not 0 < self.confidence_level < 1 or self.confidence_accuracy <= 0:
            raise ConfigurationError("invalid confidence settings")
        if self.max_replications < 2:
            raise ConfigurationError("max_replications must be at least 2")
        return self


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trainsim",
        description="Train unloading dock simulation with crew hogouts.",
    )
    parser.add_argument("values", nargs="*", metavar="RATE HOURS [REPLICATIONS]",
                        help="mean inter-arrival time, simulated hours and optionally the number of replications")
    parser.add_argument("-s", "--schedule", nargs=2, metavar=("SCHEDULE", "TRAVEL"), default=None,
                        help="run from a train schedule file and a crew travel-time file")
    parser.add_argument("--seed", type=int, default=None, help="seed for generated values")
    parser.add_argument("--drain-time", type=float, default=SimConfig.drain_time)
    parser.add_argument("--shift-length", type=float, default=SimConfig.shift_length)
    parser.add_argument("--trace", action="store_true", help="print the event trace")
    parser.add_argument("--log-file", default=None, help="also write the trace to this file")
    return parser


def _number(text: str, kind, label: str):
    try:
        return kind(text)
    except ValueError:
        raise ConfigurationError(f"{label} must be a number, got {text!r}") from None


def config_from_args(args: argparse.Namespace) -> SimConfig:
    """Build a :class:`SimConfig` from parsed command-line arguments."""
    base = SimConfig(seed=args.seed, drain_time=args.drain_time, shift_length=args.shift_length)
    values = list(args.values)
    if args.schedule is not None:
        if values:
            raise ConfigurationError("pre-recorded mode takes no rate, hours or replication values")
        schedule_path, travel_path = args.schedule
        return replace(base, schedule_path=schedule_path, travel_path=travel_path).validate()
    if not values:
        return base.validate()
    if len(values) not in (2, 3):
        raise ConfigurationError(f"expected RATE HOURS [REPLICATIONS], got {len(values)} value(s)")
    config = replace(
        base,
        arrival_mean=_number(values[0], float, "RATE"),
        horizon=_number(values[1], float, "HOURS"),
    )
    if len(values) == 3:
        config = replace(config, replications=_number(values[2], int, "REPLICATIONS"))
    return config.validate()


def parse_args(argv: Sequence[str] | None = None) -> tuple[SimConfig, argparse.Namespace]:
    args = build_parser().parse_args(argv)
    return config_from_args(args), args
