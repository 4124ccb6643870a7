"""Probability distributions used to generate train and crew values.

The classes wrap frozen SciPy distributions with a small API for sampling
and summary statistics. Each instance draws from its own
:class:`numpy.random.Generator`, so a simulation seeded once reproduces
every stream.
"""
from typing import Optional, Union

import numpy as np
import scipy.stats as st

RandomState = Union[None, int, np.random.SeedSequence, np.random.Generator]


def _validate_positive(value: float, name: str) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be positive.")


class distribution:
    """Common API for the SciPy-backed distributions.

    All concrete distribution classes inherit from this base to expose
    sampling and summary statistics.
    """

    def __init__(self, random_state: RandomState = None):
        self.params = None
        self.dist_type = None
        self.dist = None
        self.rng = np.random.default_rng(random_state)

    def __str__(self):
        """Human-readable representation like 'dist.uniform(3.5, 4.5)'."""
        name = getattr(self, "dist_type", None) or self.__class__.__name__
        params = getattr(self, "params", None)

        if params is None:
            return f"dist.{name}"

        params_str = ", ".join(f"{p:g}" for p in params)
        return f"dist.{name}({params_str})"

    __repr__ = __str__

    def sample(self) -> float:
        """Draw a single random variate from the distribution."""

        return float(self.dist.rvs(random_state=self.rng))

    def samples(self, n: int) -> np.ndarray:
        """Draw ``n`` random variates from the distribution."""

        return self.dist.rvs(n, random_state=self.rng)

    def mean(self) -> float:
        """Mean of the distribution."""
        return float(self.dist.mean())


class uniform(distribution):
    """Uniform distribution defined by lower/upper bounds."""

    def __init__(self, a, b, random_state: RandomState = None):
        """Initialize the distribution with ``a`` (min) and ``b`` (max)."""
        super().__init__(random_state)
        if a >= b:
            raise ValueError("Lower bound must be less than upper bound.")
        self.dist_type = 'uniform'
        self.params = [a, b]
        self.dist = st.uniform(loc=a, scale=b - a)


def make_uniform(a: float, b: float, random_state: RandomState = None) -> "uniform":
    """Create a uniform distribution with validation."""
    if a < 0:
        raise ValueError("Durations cannot be negative.")
    return uniform(a, b, random_state)


class expon(distribution):
    """
    Defines an exponential distribution.
    """

    def __init__(self, mean, random_state: RandomState = None):
        """
        Initializes the exponential distribution.

        Parameters
        -----------
        mean : float
            The mean of the exponential distribution.
        random_state : int | numpy.random.SeedSequence | numpy.random.Generator, optional
            Seed material or generator for the sample stream.
        """
        super().__init__(random_state)
        self.dist_type = 'expon'
        self.params = [mean]
        self.dist = st.expon(scale=mean)


def make_expon(mean: float, random_state: Optional[RandomState] = None) -> "expon":
    """Create an exponential distribution with validation."""
    _validate_positive(mean, "Mean")
    return expon(mean, random_state)
