"""
Test cases for schedule parsing and run timing.
"""

import math
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger

from watcher.exceptions import DitherError, ScheduleError
from watcher.models import RunTiming
from watcher.timing import _normalize_day_of_week, next_timing, parse_schedule


def fixed_rng(value: float) -> Mock:
    """Random source always returning value."""
    return Mock(random=Mock(return_value=value))


class TestParseSchedule:
    """Test cases for cron parsing."""

    def test_five_fields(self):
        trigger = parse_schedule("*/5 * * * *")
        assert trigger is not None

    def test_six_fields(self):
        trigger = parse_schedule("*/10 * * * * *")
        assert trigger is not None

    @pytest.mark.parametrize("schedule", ["", "   ", "* * *", "* * * * * * *"])
    def test_wrong_field_count(self, schedule):
        with pytest.raises(ScheduleError):
            parse_schedule(schedule)

    def test_out_of_range_value(self):
        with pytest.raises(ScheduleError) as exc_info:
            parse_schedule("61 * * * *")
        assert exc_info.value.schedule == "61 * * * *"

    def test_unknown_day_name(self):
        with pytest.raises(ScheduleError):
            parse_schedule("0 9 * * funday")

    def test_unknown_timezone(self):
        with pytest.raises(ScheduleError):
            parse_schedule("* * * * *", timezone="Mars/Phobos")

    def test_both_day_fields_restricted(self):
        assert isinstance(parse_schedule("0 0 13 * 5"), OrTrigger)
        assert isinstance(parse_schedule("0 0 13 * *"), CronTrigger)
        assert isinstance(parse_schedule("0 0 * * 5"), CronTrigger)

    def test_both_day_fields_invalid_day(self):
        with pytest.raises(ScheduleError):
            parse_schedule("0 0 32 * 5")

    def test_schedule_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_schedule("not a cron")


class TestDayOfWeek:
    """Test cases for cron day-of-week normalization."""

    def test_wildcard(self):
        assert _normalize_day_of_week("*", "") == "*"

    def test_single_numbers(self):
        assert _normalize_day_of_week("0", "") == "sun"
        assert _normalize_day_of_week("7", "") == "sun"
        assert _normalize_day_of_week("1", "") == "mon"

    def test_range(self):
        assert _normalize_day_of_week("1-5", "") == "mon,tue,wed,thu,fri"

    def test_range_ending_on_sunday(self):
        assert _normalize_day_of_week("fri-sun", "") == "sun,fri,sat"
        assert _normalize_day_of_week("5-7", "") == "sun,fri,sat"

    def test_full_week_collapses(self):
        assert _normalize_day_of_week("0-6", "") == "*"
        assert _normalize_day_of_week("1-7", "") == "*"

    def test_step(self):
        assert _normalize_day_of_week("*/2", "") == "sun,tue,thu,sat"
        assert _normalize_day_of_week("1/2", "") == "mon,wed,fri"

    def test_list_of_names(self):
        assert _normalize_day_of_week("MON,wed", "") == "mon,wed"

    def test_reversed_range(self):
        with pytest.raises(ScheduleError):
            _normalize_day_of_week("5-2", "")

    def test_zero_step(self):
        with pytest.raises(ScheduleError):
            _normalize_day_of_week("*/0", "")


class TestNextTiming:
    """Test cases for next slot and delay computation."""

    def test_next_slot_is_strictly_after_current(self, base_time):
        timing = next_timing("* * * * *", base_time, now=base_time)

        assert isinstance(timing, RunTiming)
        assert timing.next_slot == base_time + timedelta(minutes=1)
        assert timing.delay_ms == pytest.approx(60000)

    def test_mid_interval_slot(self, base_time):
        slot = base_time + timedelta(seconds=30, microseconds=250)
        timing = next_timing("* * * * *", slot, now=slot)

        assert timing.next_slot == base_time + timedelta(minutes=1)
        assert timing.delay_ms == pytest.approx(29999.75)

    def test_seconds_field(self, base_time):
        timing = next_timing("*/10 * * * * *", base_time, now=base_time)

        assert timing.next_slot == base_time + timedelta(seconds=10)

    def test_delay_is_measured_from_wall_clock(self, base_time):
        now = base_time + timedelta(seconds=45)
        timing = next_timing("* * * * *", base_time, now=now)

        assert timing.next_slot == base_time + timedelta(minutes=1)
        assert timing.delay_ms == pytest.approx(15000)

    def test_delay_never_negative(self, base_time):
        now = base_time + timedelta(minutes=10)
        timing = next_timing("* * * * *", base_time, 5000, now=now, rng=fixed_rng(0.5))

        assert timing.next_slot == base_time + timedelta(minutes=1)
        assert timing.delay_ms == 0

    def test_dither_is_capped_at_half_interval(self, base_time):
        """A 100s dither bound on a 60s interval behaves like 30s."""
        earliest = next_timing("* * * * *", base_time, 100000, now=base_time, rng=fixed_rng(1.0))
        latest = next_timing("* * * * *", base_time, 100000, now=base_time, rng=fixed_rng(0.0))

        assert earliest.delay_ms == pytest.approx(30000)
        assert latest.delay_ms == pytest.approx(90000)

    def test_dither_within_bound(self, base_time):
        timing = next_timing("* * * * *", base_time, 1000, now=base_time, rng=fixed_rng(0.25))

        # 1000 - 0.25 * 2000
        assert timing.delay_ms == pytest.approx(60500)

    def test_dither_does_not_move_slot(self, base_time):
        timing = next_timing("* * * * *", base_time, 20000, now=base_time, rng=fixed_rng(0.9))

        assert timing.next_slot == base_time + timedelta(minutes=1)

    def test_random_dither_stays_in_range(self, base_time):
        for _ in range(50):
            timing = next_timing("* * * * *", base_time, 100000, now=base_time)
            assert 30000 <= timing.delay_ms <= 90000

    def test_terminal_schedule(self, base_time):
        stop_at = base_time + timedelta(seconds=30)

        assert next_timing("* * * * *", base_time, stop_at=stop_at, now=base_time) is None

    def test_stop_at_is_inclusive(self, base_time):
        stop_at = base_time + timedelta(minutes=1)
        timing = next_timing("* * * * *", base_time, stop_at=stop_at, now=base_time)

        assert timing.next_slot == stop_at

    def test_day_of_week_uses_cron_numbering(self, base_time):
        # base_time is a wednesday, 0 is sunday
        timing = next_timing("0 9 * * 0", base_time, now=base_time)

        assert timing.next_slot == datetime(2024, 1, 7, 9, 0, tzinfo=timezone.utc)

    def test_weekday_range_skips_weekend(self):
        friday = datetime(2024, 1, 5, 10, 0, tzinfo=timezone.utc)
        timing = next_timing("0 9 * * 1-5", friday, now=friday)

        assert timing.next_slot == datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc)

    def test_day_of_month_or_day_of_week(self, base_time):
        """Every 13th and every friday, not only friday the 13th."""
        timing = next_timing("0 0 13 * 5", base_time, now=base_time)

        assert timing.next_slot == datetime(2024, 1, 5, 0, 0, tzinfo=timezone.utc)

        friday = datetime(2024, 1, 12, 0, 0, tzinfo=timezone.utc)
        timing = next_timing("0 0 13 * 5", friday, now=friday)

        # saturday the 13th
        assert timing.next_slot == datetime(2024, 1, 13, 0, 0, tzinfo=timezone.utc)

    def test_day_of_month_or_day_of_week_respects_stop_at(self, base_time):
        stop_at = datetime(2024, 1, 4, 0, 0, tzinfo=timezone.utc)

        assert next_timing("0 0 13 * 5", base_time, stop_at=stop_at, now=base_time) is None

    def test_nickname(self, base_time):
        timing = next_timing("@hourly", base_time, now=base_time)

        assert timing.next_slot == base_time + timedelta(hours=1)

    def test_timezone(self, base_time):
        # 09:00 in New York is 14:00 UTC in January
        timing = next_timing("0 9 * * *", base_time, timezone="America/New_York", now=base_time)

        assert timing.next_slot == datetime(2024, 1, 3, 14, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("dithering", [-1, math.nan, math.inf, "10", True])
    def test_invalid_dithering(self, base_time, dithering):
        with pytest.raises(DitherError):
            next_timing("* * * * *", base_time, dithering, now=base_time)

    def test_none_dithering_means_zero(self, base_time):
        timing = next_timing("* * * * *", base_time, None, now=base_time)

        assert timing.delay_ms == pytest.approx(60000)

    def test_naive_slot_rejected(self):
        with pytest.raises(ScheduleError):
            next_timing("* * * * *", datetime(2024, 1, 3, 12, 0))

    def test_invalid_schedule(self, base_time):
        with pytest.raises(ScheduleError):
            next_timing("* *", base_time)
