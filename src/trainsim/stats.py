"""Observation tables, batch-means confidence intervals and the hogout histogram.

A :class:`StatTable` accumulates scalar observations in constant time per
observation. Put in confidence mode with
:meth:`StatTable.configure_confidence`, each recorded value is treated as one
independent replication mean and :meth:`StatTable.confidence` estimates an
interval for the long-run mean with a Student-t approximation.
"""
from __future__ import annotations
from collections import Counter
from dataclasses import dataclass
from math import inf, sqrt
from typing import Iterator

import scipy.stats as st

from trainsim.log_cfg import logger


@dataclass(frozen=True)
class ConfidenceInterval:
    """Interval estimate of a mean computed from replication means.

    Attributes
    ----------
    count : int
        Number of replication means used.
    mean : float
        Sample mean of the replication means.
    half_width : float
        Half width of the interval at ``level``.
    lower, upper : float
        ``mean - half_width`` and ``mean + half_width``.
    level : float
        Confidence level, e.g. ``0.99``.
    relative_error : float
        ``half_width / |mean|`` (infinite when the mean is zero).
    converged : bool
        ``True`` when ``relative_error`` is within the configured accuracy.
    """

    count: int
    mean: float
    half_width: float
    lower: float
    upper: float
    level: float
    relative_error: float
    converged: bool


@dataclass(frozen=True)
class _ConfidenceSettings:
    accuracy: float
    level: float
    max_replications: int


class StatTable:
    """Running count, sum, mean, variance, minimum and maximum of observations."""

    MIN_CONFIDENCE_SAMPLES = 2

    def __init__(self, name: str, permanent: bool = False):
        self.name = name
        self.permanent = permanent
        self._confidence: _ConfidenceSettings | None = None
        self._clear()

    def __repr__(self) -> str:
        return f"StatTable({self.name!r}, count={self._count}, mean={self.mean():.4g})"

    def _clear(self) -> None:
        self._count = 0
        self._sum = 0.0
        self._mean = 0.0
        self._m2 = 0.0
        self._max = -inf
        self._min = inf

    def reset(self) -> None:
        """Discard every observation. Permanent tables cannot be reset."""
        if self.permanent:
            raise ValueError(f"table {self.name!r} is permanent and cannot be reset")
        self._clear()

    def record(self, value: float) -> None:
        """Add one observation."""
        value = float(value)
        settings = self._confidence
        if settings is not None and self._count >= settings.max_replications:
            logger.warning("%s: more than %d samples, observation %.4f ignored",
                           self.name, settings.max_replications, value)
            return
        self._count += 1
        self._sum += value
        # Welford update
        delta = value - self._mean
        self._mean += delta / self._count
        self._m2 += delta * (value - self._mean)
        self._max = max(self._max, value)
        self._min = min(self._min, value)

    def count(self) -> int:
        return self._count

    def sum(self) -> float:
        return self._sum

    def mean(self) -> float:
        """Mean of the observations, ``0.0`` for an empty table."""
        return self._mean if self._count else 0.0

    def max(self) -> float:
        return self._max if self._count else 0.0

    def min(self) -> float:
        return self._min if self._count else 0.0

    def var(self) -> float:
        """Sample variance (``n - 1`` denominator), ``0.0`` below two observations."""
        if self._count < 2:
            return 0.0
        return self._m2 / (self._count - 1)

    def std(self) -> float:
        return sqrt(self.var())

    def summary(self) -> dict[str, float]:
        return {
            "count": self._count,
            "sum": self.sum(),
            "mean": self.mean(),
            "min": self.min(),
            "max": self.max(),
            "std": self.std(),
        }

    def configure_confidence(self, accuracy: float = 0.01, level: float = 0.99,
                             max_replications: int = 10000) -> None:
        """Treat the table as a batch of replication means.

        Parameters
        ----------
        accuracy : float
            Relative half width at which the estimate counts as converged.
        level : float
            Confidence level in ``(0, 1)``.
        max_replications : int
            Samples beyond this cap are ignored.
        """
        if not 0 < level < 1:
            raise ValueError("Confidence level must lie strictly between 0 and 1.")
        if accuracy <= 0:
            raise ValueError("Accuracy must be positive.")
        if max_replications < self.MIN_CONFIDENCE_SAMPLES:
            raise ValueError(f"max_replications must be at least {self.MIN_CONFIDENCE_SAMPLES}.")
        self._confidence = _ConfidenceSettings(accuracy, level, int(max_replications))

    @property
    def confidence_enabled(self) -> bool:
        return self._confidence is not None

    def confidence(self) -> ConfidenceInterval | None:
        """Interval estimate of the mean, or ``None`` with fewer than two samples."""
        settings = self._confidence
        if settings is None:
            raise ValueError(f"table {self.name!r} is not in confidence mode")
        n = self._count
        if n < self.MIN_CONFIDENCE_SAMPLES:
            return None
        quantile = st.t.ppf((1 + settings.level) / 2, n - 1)
        half_width = float(quantile * self.std() / sqrt(n))
        mean = self.mean()
        relative_error = half_width / abs(mean) if mean != 0 else inf
        return ConfidenceInterval(
            count=n,
            mean=mean,
            half_width=half_width,
            lower=mean - half_width,
            upper=mean + half_width,
            level=settings.level,
            relative_error=relative_error,
            converged=relative_error <= settings.accuracy,
        )


class HogoutHistogram:
    """Number of trains per final hogout count.

    Buckets are created on demand, so there is no upper bound on the count.
    """

    def __init__(self):
        self._counts: Counter[int] = Counter()

    def __repr__(self) -> str:
        return f"HogoutHistogram({dict(sorted(self._counts.items()))})"

    def __getitem__(self, hogouts: int) -> int:
        return self._counts.get(hogouts, 0)

    def __iter__(self) -> Iterator[tuple[int, int]]:
        return iter(self.buckets())

    def __len__(self) -> int:
        return len(self._counts)

    def add(self, hogouts: int) -> None:
        if hogouts < 0:
            raise ValueError("A hogout count cannot be negative.")
        self._counts[int(hogouts)] += 1

    def update(self, other: HogoutHistogram) -> None:
        """Add the buckets of ``other`` into this histogram."""
        self._counts.update(other._counts)

    def buckets(self) -> list[tuple[int, int]]:
        """Non-empty ``(hogouts, trains)`` pairs in increasing hogout order."""
        return sorted((k, v) for k, v in self._counts.items() if v)

    def total(self) -> int:
        return sum(self._counts.values())

    def as_dict(self) -> dict[int, int]:
        return dict(self.buckets())
