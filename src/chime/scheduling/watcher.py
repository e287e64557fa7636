"""Reminder scheduler: polls pending reminders and fires the due ones.

The scheduler owns the timer loop and the tick guard. Due-ness is decided
by the evaluator, delivery by ReminderProcessor, and all data access is
delegated to the reminder repository.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime

from chime.scheduling.evaluator import filter_due
from chime.scheduling.handler import ReminderProcessor
from chime.scheduling.timezones import (
    ZoneProjector,
    ensure_utc,
    project_to_zone,
    utc_now,
)
from chime.scheduling.types import ReminderRepository, TickResult

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0

# Wake slightly after the boundary so an early timer never re-evaluates
# the previous minute.
ALIGN_SLACK_SECONDS = 0.5

# Heartbeat every 60 ticks (~1 hour at the default interval)
HEARTBEAT_INTERVAL = 60


class ReminderScheduler:
    """Runs a tick at startup and then once per interval.

    Ticks never overlap: a tick requested while another is in progress is
    skipped. Missed minutes (downtime, long ticks) are not backfilled.

    Example:
        scheduler = ReminderScheduler(store, processor)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        store: ReminderRepository,
        processor: ReminderProcessor,
        *,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        align_to_interval: bool = True,
        run_on_startup: bool = True,
        clock: Callable[[], datetime] = utc_now,
        project: ZoneProjector = project_to_zone,
    ):
        self._store = store
        self._processor = processor
        self._interval = interval
        self._align = align_to_interval
        self._run_on_startup = run_on_startup
        self._clock = clock
        self._project = project
        self._tick_lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None
        self._tick_count = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def tick_in_progress(self) -> bool:
        return self._tick_lock.locked()

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        logger.info(
            "reminder_scheduler_started",
            extra={"schedule.interval_s": self._interval},
        )
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("reminder_scheduler_stopped")

    async def run_forever(self) -> None:
        """Start and block until the loop is cancelled or stopped."""
        await self.start()
        assert self._task is not None
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def run_tick(self, now: datetime | None = None) -> TickResult:
        """Evaluate all pending reminders once and fire the due ones.

        Never raises: a failing store query aborts only this tick, and a
        failing reminder only affects itself.
        """
        if self._tick_lock.locked():
            logger.warning("reminder_tick_skipped_in_progress")
            return TickResult(started_at=ensure_utc(now or self._clock()), skipped=True)

        async with self._tick_lock:
            now = ensure_utc(now or self._clock())
            result = TickResult(started_at=now)

            try:
                pending = await self._store.list_pending()
            except Exception as e:
                logger.error(
                    "reminder_query_failed",
                    extra={"error.message": str(e)},
                    exc_info=True,
                )
                result.error = str(e)
                return result

            due = filter_due(pending, now, project=self._project)
            result.pending = len(pending)
            result.due = len(due)
            logger.debug(
                f"Reminder check at {now.isoformat()}: "
                f"{len(pending)} pending, {len(due)} due"
            )

            for reminder in due:
                try:
                    delivered = await self._processor.process(reminder, now)
                    if not delivered:
                        result.failed.append(reminder.id)
                        continue
                    applied = await self._store.mark_fired(reminder.id, now)
                    if not applied:
                        # Cancelled while it was being delivered
                        continue
                    result.fired.append(reminder.id)
                    logger.info(
                        "reminder_fired",
                        extra={
                            "reminder.id": reminder.id,
                            "reminder.recurring": reminder.is_recurring,
                            "messaging.chat_id": reminder.destination_id,
                        },
                    )
                except Exception as e:
                    logger.error(
                        "reminder_processing_error",
                        extra={"reminder.id": reminder.id, "error.message": str(e)},
                        exc_info=True,
                    )
                    result.failed.append(reminder.id)

            if due:
                logger.info(
                    "reminder_tick_completed",
                    extra={
                        "schedule.pending": result.pending,
                        "schedule.due": result.due,
                        "schedule.fired": len(result.fired),
                        "schedule.failed": len(result.failed),
                    },
                )
            return result

    def seconds_until_next_tick(self) -> float:
        """Delay before the next tick; aligned to interval boundaries by default."""
        if not self._align:
            return self._interval
        now = self._clock().timestamp()
        return self._interval - (now % self._interval) + ALIGN_SLACK_SECONDS

    async def _poll_loop(self) -> None:
        if self._run_on_startup:
            await self._tick()

        while self._running:
            await asyncio.sleep(self.seconds_until_next_tick())
            await self._tick()

    async def _tick(self) -> None:
        self._tick_count += 1
        if self._tick_count % HEARTBEAT_INTERVAL == 0:
            logger.info(
                "reminder_scheduler_heartbeat",
                extra={"schedule.tick_count": self._tick_count},
            )

        started = time.monotonic()
        try:
            await self.run_tick()
        except Exception as e:
            logger.error("reminder_tick_error", extra={"error.message": str(e)})

        elapsed = time.monotonic() - started
        if elapsed > self._interval:
            logger.warning(
                "reminder_tick_overran",
                extra={
                    "schedule.elapsed_s": round(elapsed, 1),
                    "schedule.interval_s": self._interval,
                },
            )
