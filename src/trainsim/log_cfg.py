"""Configure logging for trainsim.

The module exposes a shared :data:`logger` and the :class:`LogConfig` helper
to switch the simulation trace on and off and to route it to the console
and/or a file.

Messages emitted by the package
===============================
* ``logging.DEBUG``: scheduler internals (process start/stop, event pulses)
* ``logging.INFO``: the model trace (arrivals, hogouts, departures, run end)
* ``logging.WARNING``: data anomalies that were corrected on the fly
* ``logging.ERROR``: fatal conditions reported by the command line
"""
from __future__ import annotations
import logging
import colorlog


class LogConfig:
    """
    Route the ``trainsim`` trace. Only the most recently created instance is
    active: creating a new one detaches the handlers of the previous one.

    Parameters
    ----------
    enabled : bool
        Master switch, checked on every record so it can be flipped at any
        time. A file is only opened for an enabled trace.
    console : bool
        Install the colored console handler.
    level : int
        Threshold of the console handler.
    file_path : str, optional
        Also write the trace to this file.
    file_level : int
        Threshold of the file handler.
    """
    CONSOLE_FORMAT = '%(log_color)s%(message)s'
    FILE_FORMAT = '%(asctime)s:%(levelname)s:%(message)s'
    LOG_COLORS = {
        'DEBUG': 'cyan',
        'INFO': 'white',
        'WARNING': 'yellow',
        'ERROR': 'red',
        'CRITICAL': 'bold_red'
    }

    _last_instance = None

    def __init__(self, enabled=False, console=True, level=logging.INFO, file_path=None,
                 file_level=logging.DEBUG):
        self.enabled = enabled
        self.console = console
        self.level = level
        self.file_path = file_path
        self.file_level = file_level
        self.logger = logging.getLogger("trainsim")

        self.close()
        self.logger.setLevel(logging.DEBUG)
        # keep the trace out of the root logger's handlers
        self.logger.propagate = not enabled
        for handler in self._build_handlers():
            handler.addFilter(self._is_enabled)
            self.logger.addHandler(handler)
        LogConfig._last_instance = self

    def _is_enabled(self, record: logging.LogRecord) -> bool:
        return self.enabled

    def _build_handlers(self) -> list[logging.Handler]:
        handlers: list[logging.Handler] = []
        if self.console:
            console = colorlog.StreamHandler()
            console.setLevel(self.level)
            console.setFormatter(colorlog.ColoredFormatter(self.CONSOLE_FORMAT, log_colors=self.LOG_COLORS))
            handlers.append(console)
        if self.enabled and self.file_path:
            trace_file = logging.FileHandler(self.file_path)
            trace_file.setLevel(self.file_level)
            trace_file.setFormatter(logging.Formatter(self.FILE_FORMAT))
            handlers.append(trace_file)
        return handlers

    def close(self) -> None:
        """Detach and close every handler of the shared logger."""
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

    @classmethod
    def last_instance(cls) -> LogConfig:
        """Return the latest :class:`LogConfig` instance or create a disabled one."""
        if cls._last_instance is None:
            return LogConfig(enabled=False)
        return cls._last_instance


def log_config() -> LogConfig:
    """Return the current :class:`LogConfig` instance."""
    return LogConfig.last_instance()


logger = logging.getLogger("trainsim")
