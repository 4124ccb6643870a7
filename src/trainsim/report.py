"""Plain-text reports printed at the end of replications and batches."""
from __future__ import annotations

from trainsim.runner import BatchResult, ReplicationResult
from trainsim.stats import ConfidenceInterval


def format_confidence(ci: ConfidenceInterval | None, replications: int) -> str:
    if ci is None:
        return f"Confidence interval of mean time-in-system: insufficient data ({replications} replication(s))"
    state = "converged" if ci.converged else "not converged"
    return (f"Confidence interval of mean time-in-system ({ci.level:.0%}, {ci.count} replications): "
            f"{ci.mean:.3f}h +/- {ci.half_width:.3f}h [{ci.lower:.3f}, {ci.upper:.3f}], "
            f"relative error {ci.relative_error:.4f} ({state})")


def format_replication(result: ReplicationResult, show_confidence: bool = False) -> str:
    """Statistics block of one replication."""
    lines = [
        f"Time {result.ended_at:.2f}: simulation ended",
        "",
        "Statistics",
        "----------",
        f"Total number of trains served: {result.trains_served}",
        f"Average time-in-system per train: {result.mean_time_in_system:.2f}h",
        f"Maximum time-in-system per train: {result.max_time_in_system:.2f}h",
        f"Dock idle percentage: {result.idle_fraction * 100:.2f}%",
        f"Dock busy percentage: {result.busy_fraction * 100:.2f}%",
        f"Dock hogged-out percentage: {result.hogged_fraction * 100:.2f}%",
        f"Time average of trains in queue: {result.mean_trains_in_queue:.3f}",
        f"Maximum number of trains in queue: {result.max_queue_length}",
        "Histogram of hogout count per train:",
    ]
    lines.extend(f"[{hogouts}]: {trains}" for hogouts, trains in sorted(result.histogram.items()) if trains)
    if show_confidence:
        lines.append(format_confidence(result.confidence, result.replication + 1))
    return "\n".join(lines)


def format_batch(result: BatchResult) -> str:
    """Summary over all replications of a batch."""
    frame = result.summary_frame()
    lines = [
        "",
        f"Summary of {len(result.replications)} replications",
        "-" * 30,
    ]
    if not frame.empty:
        columns = ["trains_served", "mean_time_in_system", "max_time_in_system",
                   "idle_fraction", "busy_fraction", "hogged_fraction", "max_queue_length"]
        lines.append(frame[columns].describe().loc[["mean", "std", "min", "max"]].to_string(float_format="{:.3f}".format))
    lines.append("Histogram of hogout count per train (all replications):")
    lines.extend(f"[{hogouts}]: {trains}" for hogouts, trains in result.batch.histogram.buckets())
    lines.append(format_confidence(result.confidence, len(result.replications)))
    return "\n".join(lines)
