from trainsim.config import SimConfig
from trainsim.report import format_batch, format_confidence, format_replication
from trainsim.runner import ReplicationResult, run
from trainsim.stats import ConfidenceInterval


def _result(**changes) -> ReplicationResult:
    values = dict(replication=0, ended_at=18.0, trains_served=2, mean_time_in_system=6.0,
                  max_time_in_system=8.0, idle_fraction=11 / 18, busy_fraction=7 / 18,
                  hogged_fraction=0.0, mean_trains_in_queue=2.5, max_queue_length=1,
                  histogram={0: 1, 1: 1})
    values.update(changes)
    return ReplicationResult(**values)


def test_replication_report_lines():
    text = format_replication(_result())

    assert "Time 18.00: simulation ended" in text
    assert "Total number of trains served: 2" in text
    assert "Average time-in-system per train: 6.00h" in text
    assert "Dock idle percentage: 61.11%" in text
    assert "Maximum number of trains in queue: 1" in text
    assert text.endswith("[0]: 1\n[1]: 1")
    assert "Confidence interval" not in text


def test_confidence_line():
    assert "insufficient data (1 replication(s))" in format_confidence(None, 1)

    ci = ConfidenceInterval(count=3, mean=10.0, half_width=0.05, lower=9.95, upper=10.05,
                            level=0.99, relative_error=0.005, converged=True)
    line = format_confidence(ci, 3)
    assert "(99%, 3 replications)" in line
    assert "10.000h +/- 0.050h" in line
    assert line.endswith("(converged)")


def test_replication_report_with_confidence():
    text = format_replication(_result(replication=1), show_confidence=True)

    assert text.splitlines()[-1] == format_confidence(None, 2)


def test_batch_summary():
    result = run(SimConfig(horizon=200.0, replications=2, seed=5))
    text = format_batch(result)

    assert "Summary of 2 replications" in text
    assert "trains_served" in text
    assert "Histogram of hogout count per train (all replications):" in text
    assert "Confidence interval of mean time-in-system (99%, 2 replications)" in text
