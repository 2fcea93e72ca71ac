"""
Logging system using structlog.
Provides structured logging setup and the leveled logger used by watchers.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union
import structlog
from structlog.stdlib import LoggerFactory

from watcher.models import LogLevel


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging with configurable output formats.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path
        debug: Add call site information to every event
    """
    level = getattr(logging, log_level.upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter('%(message)s'))

        logging.getLogger().addHandler(file_handler)

    logger = structlog.get_logger(__name__)
    logger.info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class WatchLogger:
    """
    Leveled logger handed to a watcher.

    Events less severe than the configured minimum level are dropped before
    they reach structlog. The remaining ones are forwarded with the closest
    standard level and the original level name under ``watch_level``.
    """

    _METHODS = {
        logging.ERROR: "error",
        logging.WARNING: "warning",
        logging.INFO: "info",
        logging.DEBUG: "debug",
    }

    def __init__(
        self,
        level: Union[LogLevel, str] = LogLevel.ERROR,
        name: str = "watcher",
        logger=None
    ):
        self.level = LogLevel(level)
        self.logger = logger if logger is not None else structlog.get_logger(name)
        self.context = {}

    def bind_context(self, **kwargs) -> 'WatchLogger':
        """
        Bind context variables to every event.

        Args:
            **kwargs: Context variables to bind

        Returns:
            Self for method chaining
        """
        self.context.update(kwargs)
        return self

    def clear_context(self) -> 'WatchLogger':
        """Clear all context variables."""
        self.context.clear()
        return self

    def is_enabled_for(self, level: Union[LogLevel, str]) -> bool:
        """Check whether events at level would be emitted."""
        return LogLevel(level).severity <= self.level.severity

    def log(self, level: Union[LogLevel, str], event: str, **kwargs) -> None:
        """Emit event at level if it passes the minimum level."""
        level = LogLevel(level)
        if not self.is_enabled_for(level):
            return
        method = getattr(self.logger, self._METHODS[level.stdlib_level])
        method(event, watch_level=level.value, **{**self.context, **kwargs})

    def error(self, event: str, **kwargs) -> None:
        self.log(LogLevel.ERROR, event, **kwargs)

    def warn(self, event: str, **kwargs) -> None:
        self.log(LogLevel.WARN, event, **kwargs)

    def info(self, event: str, **kwargs) -> None:
        self.log(LogLevel.INFO, event, **kwargs)

    def http(self, event: str, **kwargs) -> None:
        self.log(LogLevel.HTTP, event, **kwargs)

    def verbose(self, event: str, **kwargs) -> None:
        self.log(LogLevel.VERBOSE, event, **kwargs)

    def debug(self, event: str, **kwargs) -> None:
        self.log(LogLevel.DEBUG, event, **kwargs)

    def silly(self, event: str, **kwargs) -> None:
        self.log(LogLevel.SILLY, event, **kwargs)
