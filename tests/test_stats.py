import math

import pytest
import scipy.stats as st

from trainsim.stats import HogoutHistogram, StatTable


def test_table_accumulates_observations():
    table = StatTable("time in system")
    for value in [2, 4, 9]:
        table.record(value)

    assert table.count() == 3
    assert table.sum() == pytest.approx(15)
    assert table.mean() == pytest.approx(5)
    assert table.max() == 9
    assert table.min() == 2
    assert table.var() == pytest.approx(13)
    assert table.std() == pytest.approx(math.sqrt(13))
    assert table.summary()["count"] == 3


def test_empty_table_reports_zero():
    table = StatTable("empty")

    assert table.count() == 0
    assert table.mean() == 0.0
    assert table.max() == 0.0
    assert table.var() == 0.0


def test_confidence_requires_configuration():
    with pytest.raises(ValueError):
        StatTable("plain").confidence()


def test_confidence_needs_two_samples():
    table = StatTable("conf")
    table.configure_confidence(0.01, 0.99, 100)
    assert table.confidence() is None

    table.record(4.0)
    assert table.confidence() is None


def test_confidence_interval_uses_student_t():
    table = StatTable("conf")
    table.configure_confidence(0.01, 0.99, 100)
    table.record(1.0)
    table.record(3.0)

    ci = table.confidence()
    expected = st.t.ppf(0.995, 1) * math.sqrt(2) / math.sqrt(2)
    assert ci.count == 2
    assert ci.mean == pytest.approx(2.0)
    assert ci.half_width == pytest.approx(expected)
    assert ci.lower == pytest.approx(2.0 - expected)
    assert ci.upper == pytest.approx(2.0 + expected)
    assert ci.level == 0.99
    assert not ci.converged


def test_half_width_shrinks_with_more_replications():
    table = StatTable("conf")
    table.configure_confidence(0.01, 0.95, 100)
    widths = []
    for value in [1.0, 3.0] * 4:
        table.record(value)
        if table.count() % 2 == 0:
            widths.append(table.confidence().half_width)

    assert widths == sorted(widths, reverse=True)


def test_identical_replications_converge():
    table = StatTable("conf")
    table.configure_confidence()
    for _ in range(3):
        table.record(5.0)

    ci = table.confidence()
    assert ci.half_width == pytest.approx(0.0)
    assert ci.converged


def test_samples_beyond_the_cap_are_ignored():
    table = StatTable("conf")
    table.configure_confidence(max_replications=2)
    for value in [1.0, 2.0, 100.0]:
        table.record(value)

    assert table.count() == 2
    assert table.max() == 2.0


def test_invalid_confidence_settings():
    table = StatTable("conf")
    with pytest.raises(ValueError):
        table.configure_confidence(level=1.5)
    with pytest.raises(ValueError):
        table.configure_confidence(accuracy=0)
    with pytest.raises(ValueError):
        table.configure_confidence(max_replications=1)


def test_permanent_table_cannot_be_reset():
    table = StatTable("conf", permanent=True)
    table.record(1.0)

    with pytest.raises(ValueError):
        table.reset()

    other = StatTable("per run")
    other.record(1.0)
    other.reset()
    assert other.count() == 0


def test_histogram_counts_trains_per_hogout_count():
    histogram = HogoutHistogram()
    for hogouts in [0, 0, 1, 3, 150]:
        histogram.add(hogouts)

    assert histogram.buckets() == [(0, 2), (1, 1), (3, 1), (150, 1)]
    assert histogram.total() == 5
    assert histogram[2] == 0
    assert histogram[150] == 1


def test_histogram_merge_and_validation():
    first = HogoutHistogram()
    first.add(1)
    second = HogoutHistogram()
    second.add(1)
    second.add(2)
    first.update(second)

    assert first.as_dict() == {1: 2, 2: 1}
    with pytest.raises(ValueError):
        first.add(-1)
