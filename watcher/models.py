"""
Models for the watch loop.

This module defines:
- Log level table used by the leveled logger
- Watch options bundle
- Watch states
- Run timing and per-cycle report records
"""

import logging
import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, validator


class LogLevel(str, Enum):
    """Diagnostic levels, most severe first."""
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    HTTP = "http"
    VERBOSE = "verbose"
    DEBUG = "debug"
    SILLY = "silly"

    @property
    def severity(self) -> int:
        """Numeric severity, lower is more severe."""
        return LOG_LEVELS[self]

    @property
    def stdlib_level(self) -> int:
        """Closest standard library logging level."""
        return STDLIB_LEVELS[self]


LOG_LEVELS: Dict[LogLevel, int] = {
    LogLevel.ERROR: 0,
    LogLevel.WARN: 1,
    LogLevel.INFO: 2,
    LogLevel.HTTP: 3,
    LogLevel.VERBOSE: 4,
    LogLevel.DEBUG: 5,
    LogLevel.SILLY: 6,
}

STDLIB_LEVELS: Dict[LogLevel, int] = {
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARN: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.HTTP: logging.INFO,
    LogLevel.VERBOSE: logging.DEBUG,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.SILLY: logging.DEBUG,
}


class WatchState(str, Enum):
    """Lifecycle states of a watcher."""
    IDLE = "idle"
    RUNNING = "running"
    SCHEDULED = "scheduled"
    TERMINAL = "terminal"
    CANCELLED = "cancelled"
    FAILED = "failed"


class WatchOptions(BaseModel):
    """Immutable options for a single watch."""
    comparator: Optional[Any] = Field(
        default=None,
        description="Callable (a, b) -> bool or object with an equals(a, b) method"
    )
    dithering: float = Field(default=0.0, description="Max milliseconds of jitter on either side of a slot")
    log_level: LogLevel = Field(default=LogLevel.ERROR)
    push_changes_on_first_run: bool = Field(default=False)
    ignore_failures: bool = Field(default=False)

    # Schedule
    timezone: str = Field(default="UTC", description="Timezone the cron expression is evaluated in")
    stop_at: Optional[datetime] = Field(default=None, description="No runs are scheduled after this instant")

    @validator('comparator')
    def validate_comparator(cls, v):
        """Ensure comparator is usable as an equality test."""
        if v is None or callable(v) or callable(getattr(v, 'equals', None)):
            return v
        raise ValueError('comparator must be callable or expose an equals(a, b) method')

    @validator('dithering')
    def validate_dithering(cls, v):
        """Ensure dithering is a finite, non-negative number of milliseconds."""
        if math.isnan(v) or math.isinf(v) or v < 0:
            raise ValueError('dithering must be a finite number of milliseconds >= 0')
        return v

    @validator('stop_at')
    def validate_stop_at(cls, v):
        """Ensure stop_at carries a timezone."""
        if v is not None and v.tzinfo is None:
            raise ValueError('stop_at must be timezone-aware')
        return v

    class Config:
        """Pydantic configuration."""
        frozen = True
        arbitrary_types_allowed = True


class RunTiming(BaseModel):
    """Next logical slot and the dithered delay until it should fire."""
    next_slot: datetime = Field(..., description="Undithered slot the next run belongs to")
    delay_ms: float = Field(..., ge=0.0, description="Milliseconds to wait before running")

    class Config:
        """Pydantic configuration."""
        frozen = True
        json_encoders = {
            datetime: lambda v: v.isoformat()
        }


class CycleReport(BaseModel):
    """Summary of one completed cycle."""
    slot: datetime
    started_at: datetime
    items_fetched: int = Field(default=0)
    changes_detected: int = Field(default=0)
    producer_failed: bool = Field(default=False)
    duration_seconds: float = Field(default=0.0)
    next_slot: Optional[datetime] = Field(default=None)

    class Config:
        """Pydantic configuration."""
        json_encoders = {
            datetime: lambda v: v.isoformat()
        }
