"""
Exceptions raised by the watch loop and its timing resolver.
"""


class WatchError(Exception):
    """Base class for watcher errors."""


class ScheduleError(WatchError, ValueError):
    """Raised when a cron schedule or run slot cannot be used."""

    def __init__(self, schedule: str, reason: str):
        self.schedule = schedule
        self.reason = reason
        super().__init__(f"Invalid schedule {schedule!r}: {reason}")


class DitherError(WatchError, ValueError):
    """Raised when the dithering bound is negative or not a finite number."""

    def __init__(self, dithering):
        self.dithering = dithering
        super().__init__(
            f"dithering must be a finite number of milliseconds >= 0, got {dithering!r}"
        )
