"""Exceptions raised by trainsim.

Every fatal condition aborts the whole batch of replications; the command
line turns these exceptions into a diagnostic and a non-zero exit status.
"""

__all__ = ["TrainSimError", "ConfigurationError", "ResourceUnavailable", "CrewDataExhausted", "IOFailure"]


class TrainSimError(Exception):
    """Base class of the errors raised by the dock model."""


class ConfigurationError(TrainSimError, ValueError):
    """Malformed or contradictory arguments, or malformed input data."""


class ResourceUnavailable(TrainSimError, OSError):
    """An input file does not exist or cannot be opened."""


class CrewDataExhausted(TrainSimError):
    """A crew hogged out and no replacement travel time is left.

    A hogged crew has no way to resolve without a replacement arrival, so the
    run cannot continue.
    """

    def __init__(self, train: str):
        super().__init__(train)
        self.train = train

    def __str__(self) -> str:
        return f"no crew travel time left for the hogged crew of {self.train}"


class IOFailure(TrainSimError, OSError):
    """Closing an input file failed."""
