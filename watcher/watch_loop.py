"""
Watch loop: re-evaluates a producer on a cron schedule and reports new items.

This module provides:
- Watcher, a cancellable state machine driving one timer chain
- watch(), a shortcut that builds and starts a Watcher
"""

import asyncio
import inspect
import random
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar, Union

from utilities.logger import WatchLogger
from watcher.change_detector import compute_new, resolve_comparator
from watcher.exceptions import WatchError
from watcher.models import CycleReport, RunTiming, WatchOptions, WatchState
from watcher.timing import next_timing, parse_schedule

T = TypeVar("T")

Producer = Callable[[], Union[Sequence[T], Awaitable[Sequence[T]]]]
Callback = Callable[[List[T]], Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _call(fn: Callable, *args) -> Any:
    """Call fn and await the result if it is awaitable."""
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class Watcher(Generic[T]):
    """
    Polls a producer on a cron schedule and calls back with new items.

    After the first cycle, which runs inside start(), the remaining cycles
    run one after another in a single asyncio task. Each cycle waits for the
    callback before the next delay is computed, so cycles never overlap.
    """

    def __init__(
        self,
        schedule: str,
        producer: Producer,
        callback: Callback,
        options: Optional[WatchOptions] = None,
        *,
        logger: Optional[WatchLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize watcher.

        Args:
            schedule: Cron expression
            producer: Returns the current list of items, sync or async
            callback: Receives the list of new items, sync or async
            options: Watch options
            logger: Leveled logger, built from options.log_level if omitted
            clock: Wall clock returning timezone-aware datetimes
            sleep: Coroutine function used as the timer
            rng: Random source for dithering
        """
        self.schedule = schedule
        self.producer = producer
        self.callback = callback
        self.options = options or WatchOptions()
        self.logger = logger or WatchLogger(self.options.log_level)
        self.logger.bind_context(schedule=schedule)

        self._clock = clock or _utcnow
        self._sleep = sleep or asyncio.sleep
        self._rng = rng
        self._equals = resolve_comparator(self.options.comparator)

        # fail fast on a malformed schedule
        parse_schedule(schedule, timezone=self.options.timezone, stop_at=self.options.stop_at)

        self._state = WatchState.IDLE
        self._snapshot: List[T] = []
        self._next_run: Optional[RunTiming] = None
        self._last_report: Optional[CycleReport] = None
        self._task: Optional[asyncio.Task] = None
        self._cancel_requested = False

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def next_run(self) -> Optional[RunTiming]:
        """Pending timing while a cycle is scheduled."""
        return self._next_run

    @property
    def snapshot(self) -> List[T]:
        """Copy of the last known complete result."""
        return list(self._snapshot)

    @property
    def last_report(self) -> Optional[CycleReport]:
        return self._last_report

    async def start(self) -> None:
        """
        Run the first cycle and schedule the following ones.

        Errors from the first cycle propagate to the caller.
        """
        if self._state is not WatchState.IDLE:
            raise WatchError(f"Watcher already started (state: {self._state.value})")

        slot = self._clock()
        self.logger.info("Starting watcher", slot=slot.isoformat())

        baseline: Optional[List[T]] = None
        if not self.options.push_changes_on_first_run:
            self._state = WatchState.RUNNING
            try:
                baseline = list(await _call(self.producer))
            except Exception as e:
                self._fail("Baseline fetch failed", e)
                raise

        timing, latest = await self._run_cycle(baseline or [], slot, fetched=baseline)
        if timing is None:
            self._finish()
            return

        if self._cancel_requested:
            self._mark_cancelled()
            return

        self._state = WatchState.SCHEDULED
        self._next_run = timing
        self._task = asyncio.create_task(self._drive(latest, timing))
        self._task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        """Report a failed timer chain even if nobody awaits wait()."""
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(
                "Watch loop stopped, wait() re-raises the error",
                error=str(error),
                error_type=type(error).__name__
            )

    async def _drive(self, previous: List[T], timing: RunTiming) -> None:
        """Timer chain: sleep until the next slot, run it, repeat."""
        while True:
            try:
                await self._sleep(timing.delay_ms / 1000)
            except asyncio.CancelledError:
                if self._state is not WatchState.CANCELLED:
                    self._mark_cancelled()
                raise

            self._next_run = None
            next_run, previous = await self._run_cycle(previous, timing.next_slot)

            if next_run is None:
                self._finish()
                return

            if self._cancel_requested:
                self._mark_cancelled()
                return

            timing = next_run
            self._state = WatchState.SCHEDULED
            self._next_run = timing

    async def _run_cycle(
        self,
        previous: List[T],
        slot: datetime,
        fetched: Optional[List[T]] = None
    ):
        """
        Run one cycle against the previous snapshot.

        When fetched is given it is used as the latest result instead of
        calling the producer again.

        Returns:
            Tuple of (next RunTiming or None, latest snapshot)
        """
        self._state = WatchState.RUNNING
        started_at = self._clock()
        start_time = time.monotonic()
        self.logger.debug("Cycle started", slot=slot.isoformat(), started_at=started_at.isoformat())

        producer_failed = False
        try:
            latest = fetched if fetched is not None else list(await _call(self.producer))
        except Exception as e:
            if not self.options.ignore_failures:
                self._fail("Producer failed", e)
                raise
            producer_failed = True
            latest = previous
            self.logger.warn(
                "Producer failed, keeping previous snapshot",
                error=str(e),
                error_type=type(e).__name__
            )

        self._snapshot = latest

        try:
            changes = compute_new(previous, latest, self._equals)

            if changes:
                self.logger.verbose("Changes detected", changes=len(changes))
                await _call(self.callback, changes)
            else:
                self.logger.debug("No changes, skipped callback")

            timing = next_timing(
                self.schedule,
                slot,
                self.options.dithering,
                timezone=self.options.timezone,
                stop_at=self.options.stop_at,
                now=self._clock(),
                rng=self._rng
            )
        except Exception as e:
            self._fail("Cycle failed", e)
            raise

        self._last_report = CycleReport(
            slot=slot,
            started_at=started_at,
            items_fetched=len(latest),
            changes_detected=len(changes),
            producer_failed=producer_failed,
            duration_seconds=time.monotonic() - start_time,
            next_slot=timing.next_slot if timing else None
        )

        if timing is not None:
            self.logger.debug(
                "Next run scheduled",
                next_slot=timing.next_slot.isoformat(),
                delay_ms=round(timing.delay_ms, 3)
            )

        return timing, latest

    def cancel(self) -> None:
        """
        Stop the timer chain.

        A pending timer is revoked. A cycle that is already running completes
        and is not followed by another one.
        """
        if self._state in (WatchState.TERMINAL, WatchState.CANCELLED, WatchState.FAILED):
            return

        self._cancel_requested = True
        if self._state is WatchState.IDLE:
            self._mark_cancelled()
        elif self._state is WatchState.SCHEDULED and self._task is not None:
            self._task.cancel()
            self._mark_cancelled()

    async def wait(self) -> None:
        """
        Wait until the timer chain ends.

        Re-raises the error that stopped the watcher, returns normally when
        the schedule is exhausted or the watcher was cancelled.
        """
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise

    def _finish(self) -> None:
        self._state = WatchState.TERMINAL
        self._next_run = None
        self.logger.info("Schedule exhausted, watcher finished")

    def _mark_cancelled(self) -> None:
        self._state = WatchState.CANCELLED
        self._next_run = None
        self.logger.info("Watcher cancelled")

    def _fail(self, event: str, error: Exception) -> None:
        self._state = WatchState.FAILED
        self._next_run = None
        self.logger.error(event, error=str(error), error_type=type(error).__name__)


async def watch(
    schedule: str,
    producer: Producer,
    callback: Callback,
    options: Optional[WatchOptions] = None,
    **kwargs
) -> Watcher:
    """
    Build a Watcher, run its first cycle and return it.

    Errors from the first cycle are raised here. Later failures are logged
    when the timer chain stops and re-raised by wait().

    Args:
        schedule: Cron expression
        producer: Returns the current list of items, sync or async
        callback: Receives the list of new items, sync or async
        options: Watch options
        **kwargs: Passed to Watcher (logger, clock, sleep, rng)

    Returns:
        The started Watcher, usable to cancel() or wait()
    """
    watcher = Watcher(schedule, producer, callback, options, **kwargs)
    await watcher.start()
    return watcher
