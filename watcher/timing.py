"""
Schedule timing for the watch loop.

This module provides:
- Cron expression parsing on top of APScheduler's CronTrigger
- Next slot lookup strictly after a given slot
- Dithered delay computation bounded by the slot interval
"""

import math
import random
from datetime import datetime, timezone as dt_timezone
from typing import List, Optional, Set

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger

from watcher.exceptions import DitherError, ScheduleError
from watcher.models import RunTiming

DAY_NAMES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]

NICKNAMES = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}


def _day_value(token: str, schedule: str) -> int:
    """Map a day-of-week token to cron numbering (0-7, sunday is 0 and 7)."""
    token = token.strip().lower()
    if token in DAY_NAMES:
        return DAY_NAMES.index(token)
    if token.isdigit() and 0 <= int(token) <= 7:
        return int(token)
    raise ScheduleError(schedule, f"unrecognized day of week {token!r}")


def _normalize_day_of_week(field: str, schedule: str) -> str:
    """
    Rewrite a cron day-of-week field as explicit day names.

    APScheduler numbers days from monday, while cron numbers them from
    sunday, so numeric fields cannot be passed through as they are.
    """
    if field in ("*", "?"):
        return "*"

    days: Set[int] = set()
    for part in field.split(","):
        base, _, step_text = part.partition("/")
        step = 1
        if step_text:
            if not step_text.isdigit() or int(step_text) == 0:
                raise ScheduleError(schedule, f"invalid day of week step {step_text!r}")
            step = int(step_text)

        if base in ("*", "?"):
            first, last = 0, 6
        elif "-" in base:
            start, _, end = base.partition("-")
            first = _day_value(start, schedule)
            last = _day_value(end, schedule)
            if last == 0 and first > 0:
                last = 7
            if last < first:
                raise ScheduleError(schedule, f"day of week range {base!r} is reversed")
        else:
            first = _day_value(base, schedule)
            last = 6 if step_text else first

        days.update(day % 7 for day in range(first, last + 1, step))

    if len(days) == 7:
        return "*"
    return ",".join(DAY_NAMES[day] for day in sorted(days))


def parse_schedule(
    schedule: str,
    timezone: str = "UTC",
    stop_at: Optional[datetime] = None
) -> BaseTrigger:
    """
    Parse a cron expression into a trigger.

    Accepts 5 fields (minute hour day month day_of_week), 6 fields with a
    leading seconds field, and the usual @-nicknames.

    Args:
        schedule: Cron expression
        timezone: Timezone the expression is evaluated in
        stop_at: Optional instant after which there are no more occurrences

    Returns:
        CronTrigger for the expression, or an OrTrigger of two CronTriggers
        when both day-of-month and day-of-week are restricted

    Raises:
        ScheduleError: If the expression cannot be parsed
    """
    if not isinstance(schedule, str) or not schedule.strip():
        raise ScheduleError(str(schedule), "expression is empty")

    expression = NICKNAMES.get(schedule.strip().lower(), schedule.strip())
    fields: List[str] = expression.split()

    if len(fields) == 5:
        second = "0"
        minute, hour, day, month, day_of_week = fields
    elif len(fields) == 6:
        second, minute, hour, day, month, day_of_week = fields
    else:
        raise ScheduleError(schedule, f"expected 5 or 6 fields, got {len(fields)}")

    if day == "?":
        day = "*"
    day_of_week = _normalize_day_of_week(day_of_week, schedule)

    common = {
        "second": second,
        "minute": minute,
        "hour": hour,
        "month": month,
        "end_date": stop_at,
        "timezone": timezone,
    }

    # cron fires when either restricted day field matches
    if day != "*" and day_of_week != "*":
        return OrTrigger([
            _cron_trigger(schedule, day=day, day_of_week="*", **common),
            _cron_trigger(schedule, day="*", day_of_week=day_of_week, **common),
        ])

    return _cron_trigger(schedule, day=day, day_of_week=day_of_week, **common)


def _cron_trigger(schedule: str, **fields) -> CronTrigger:
    try:
        return CronTrigger(**fields)
    except (ValueError, TypeError, LookupError) as e:
        raise ScheduleError(schedule, str(e)) from e


def next_timing(
    schedule: str,
    current_slot: datetime,
    max_dither_ms: float = 0,
    *,
    timezone: str = "UTC",
    stop_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None
) -> Optional[RunTiming]:
    """
    Compute the next slot after current_slot and a dithered delay until it.

    The dither is drawn uniformly from [-d, +d] where d is max_dither_ms
    capped at half the interval between the two slots. The delay is measured
    from the wall clock, never negative, and capped at the next slot's epoch
    milliseconds plus the interval.

    Args:
        schedule: Cron expression, parsed on every call
        current_slot: Logical slot of the run that just happened
        max_dither_ms: Requested jitter bound in milliseconds
        timezone: Timezone the expression is evaluated in
        stop_at: Optional end of the schedule
        now: Wall clock override
        rng: Random source override

    Returns:
        RunTiming, or None when the schedule has no further occurrence
    """
    if max_dither_ms is None:
        max_dither_ms = 0
    if (
        isinstance(max_dither_ms, bool)
        or not isinstance(max_dither_ms, (int, float))
        or math.isnan(max_dither_ms)
        or math.isinf(max_dither_ms)
        or max_dither_ms < 0
    ):
        raise DitherError(max_dither_ms)

    if current_slot.tzinfo is None:
        raise ScheduleError(schedule, "current slot must be timezone-aware")

    trigger = parse_schedule(schedule, timezone=timezone, stop_at=stop_at)
    next_slot = trigger.get_next_fire_time(current_slot, current_slot)
    if next_slot is None:
        return None

    interval_ms = (next_slot - current_slot).total_seconds() * 1000

    # never more than half an interval, so runs cannot overtake each other
    effective_dither = min(max_dither_ms, interval_ms / 2)
    dither = effective_dither - (rng or random).random() * (effective_dither * 2)

    if now is None:
        now = datetime.now(dt_timezone.utc)
    ms_until_slot = (next_slot - now).total_seconds() * 1000

    delay_ms = min(
        max(0.0, ms_until_slot + dither),
        next_slot.timestamp() * 1000 + interval_ms
    )

    return RunTiming(next_slot=next_slot, delay_ms=delay_ms)
