from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Callable, List

import numpy as np
from pandas import DataFrame

from trainsim.config import SimConfig
from trainsim.model import BatchContext, RunContext, simulate
from trainsim.stats import ConfidenceInterval
from trainsim.values import open_value_source


@dataclass(frozen=True)
class ReplicationResult:
    """Figures reported at the end of one replication."""

    replication: int
    ended_at: float
    trains_served: int
    mean_time_in_system: float
    max_time_in_system: float
    idle_fraction: float
    busy_fraction: float
    hogged_fraction: float
    mean_trains_in_queue: float
    max_queue_length: int
    histogram: dict[int, int] = field(default_factory=dict)
    confidence: ConfidenceInterval | None = None

    @classmethod
    def from_context(cls, ctx: RunContext) -> ReplicationResult:
        elapsed = ctx.ended_at if ctx.ended_at is not None else ctx.env.now
        stats = ctx.dock_stats or ctx.dock.stats()
        served = stats.completions

        def fraction(value: float) -> float:
            return value / elapsed if elapsed > 0 else 0.0

        return cls(
            replication=ctx.replication,
            ended_at=elapsed,
            trains_served=served,
            mean_time_in_system=ctx.time_in_system.mean(),
            max_time_in_system=ctx.time_in_system.max(),
            idle_fraction=fraction(ctx.idle_time()),
            busy_fraction=fraction(ctx.dock_busy.sum()),
            hogged_fraction=fraction(ctx.dock_hogged.sum()),
            mean_trains_in_queue=ctx.time_in_queue.sum() / served if served else 0.0,
            max_queue_length=stats.max_queue_length,
            histogram=ctx.histogram.as_dict(),
            confidence=ctx.batch.confidence.confidence(),
        )


@dataclass
class BatchResult:
    config: SimConfig
    batch: BatchContext
    replications: List[ReplicationResult] = field(default_factory=list)

    @property
    def confidence(self) -> ConfidenceInterval | None:
        return self.batch.confidence.confidence()

    def summary_frame(self) -> DataFrame:
        return summary_frame(self.replications)


def summary_frame(results: List[ReplicationResult]) -> DataFrame:
    """Return a DataFrame with one row per replication (histograms and intervals left out)."""
    rows = []
    for result in results:
        row = asdict(result)
        row.pop("histogram")
        row.pop("confidence")
        rows.append(row)
    return DataFrame(rows).set_index("replication") if rows else DataFrame()


def run(
    config: SimConfig,
    *,
    batch: BatchContext | None = None,
    on_replication: Callable[[RunContext, ReplicationResult], None] | None = None,
) -> BatchResult:
    """Run ``config.replications`` independent replications of the dock model.

    Parameters
    ----------
    config:
        Model parameters and the execution mode. Pre-recorded schedules are
        reopened for every replication; generated values use an independent
        child seed per replication.

    batch:
        Batch state to continue (confidence table and batch histogram). A new
        one is created when omitted.

    on_replication:
        Called after each replication with its context and result, e.g. to
        print the per-replication report.

    Returns
    -------
    BatchResult
        The per-replication results and the batch state.

    Raises
    ------
    trainsim.errors.TrainSimError
        Any fatal condition aborts the remaining replications.
    """
    config.validate()
    batch = batch if batch is not None else BatchContext(config)
    seeds = np.random.SeedSequence(config.seed).spawn(config.replications)
    result = BatchResult(config, batch)

    for i in range(config.replications):
        with open_value_source(config, seeds[i]) as source:
            ctx = RunContext(config, source, batch, replication=batch.replications)
            simulate(ctx)
        replication = ReplicationResult.from_context(ctx)
        result.replications.append(replication)
        if on_replication is not None:
            on_replication(ctx, replication)

    return result
