"""
Pytest configuration and shared fixtures.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from utilities.logger import WatchLogger
from watcher.models import LogLevel


# Wednesday, so day-of-week tests have a known starting point
BASE_TIME = datetime(2024, 1, 3, 12, 0, 0, tzinfo=timezone.utc)


class FakeSleep:
    """Timer stand-in that records requested delays and returns at once."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def base_time():
    """Fixed wall clock instant used as the first slot."""
    return BASE_TIME


@pytest.fixture
def fixed_clock(base_time):
    """Clock that never advances."""
    return lambda: base_time


@pytest.fixture
def fake_sleep():
    """Recording timer for watch loop tests."""
    return FakeSleep()


@pytest.fixture
def stop_after(base_time):
    """Build a stop_at instant a number of minutes after the base time."""
    def _stop_after(minutes: int) -> datetime:
        return base_time + timedelta(minutes=minutes)
    return _stop_after


@pytest.fixture
def mock_structlog_logger():
    """Stand-in for a bound structlog logger."""
    return MagicMock()


@pytest.fixture
def watch_logger(mock_structlog_logger):
    """Leveled logger emitting everything into a mock."""
    return WatchLogger(LogLevel.SILLY, logger=mock_structlog_logger)
