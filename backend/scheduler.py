"""
Recurring schedules: creating definitions, attaching first runs to embedded
task repeats, and the periodic tick that materializes due items into tasks.

A failure on one due item is logged and skipped; it never stops the rest of
the scan or later ticks.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

import config
from database import (
    create_recurring_db,
    create_task_db,
    disable_recurring_db,
    get_due_recurring_db,
    get_due_repeats_db,
    get_repeats_missing_next_run_db,
    set_recurring_next_run_db,
    update_task_db,
)
from errors import SchedulerItemFailure
from models import RecurringDefinition, RepeatSpec, Task
from recurrence import ALL_DAYS, next_run_for_days, next_run_for_repeat
from utils import parse_instant, to_iso, utcnow

logger = logging.getLogger(__name__)

# Next runs are computed from just after `now` so the slot that fired is not reused
RESCHEDULE_OFFSET = timedelta(seconds=1)


def schedule_repeat(repeat: Optional[RepeatSpec], now: datetime) -> Optional[RepeatSpec]:
    """Return the repeat with its first next_run_at filled in when enabled."""
    if repeat is None:
        return None
    next_at = next_run_for_repeat(now, repeat)
    return repeat.model_copy(update={"next_run_at": to_iso(next_at) if next_at else None})


def create_recurring(
    user_id: str,
    title: str,
    hour: int,
    minute: int,
    days_of_week: Optional[list[int]] = None,
    description: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RecurringDefinition:
    days = sorted(set(days_of_week)) if days_of_week else list(ALL_DAYS)
    now = now or utcnow()
    start = parse_instant(start_date)
    first_run = next_run_for_days(max(now, start) if start is not None else now, days, hour, minute)
    return create_recurring_db(
        user_id=user_id,
        title=title,
        hour=hour,
        minute=minute,
        days_of_week=days,
        next_run_at=to_iso(first_run),
        description=description,
        start_date=start_date,
        end_date=end_date,
    )


def tick_recurring(now: Optional[datetime] = None) -> list[Task]:
    """Create one task per due recurring definition and reschedule it."""
    now = now or utcnow()
    created = []
    for definition in get_due_recurring_db(now):
        try:
            end = parse_instant(definition.end_date)
            if end is not None and end < now:
                disable_recurring_db(definition.id)
                logger.info(f"Recurring {definition.id} ended at {definition.end_date}; disabled")
                continue
            created.append(create_task_db(
                user_id=definition.user_id,
                title=definition.title,
                description=definition.description,
                due_date=to_iso(now),
                status="pending",
            ))
            next_at = next_run_for_days(now + RESCHEDULE_OFFSET, definition.days_of_week, definition.hour, definition.minute)
            set_recurring_next_run_db(definition.id, to_iso(next_at))
        except Exception as e:
            logger.exception(str(SchedulerItemFailure(definition.id, e)))
    if created:
        logger.info(f"Recurring tick created {len(created)} task(s)")
    return created


def tick_task_repeats(now: Optional[datetime] = None) -> list[Task]:
    """Schedule uninitialized task repeats, then materialize the due ones."""
    now = now or utcnow()

    for task in get_repeats_missing_next_run_db():
        try:
            next_at = to_iso(next_run_for_repeat(now, task.repeat))
            update_task_db(task.id, repeat_next_run_at=next_at, due_date=next_at)
        except Exception as e:
            logger.exception(str(SchedulerItemFailure(task.id, e)))

    created = []
    for task in get_due_repeats_db(now):
        try:
            created.append(create_task_db(
                user_id=task.user_id,
                title=task.title,
                description=task.description,
                due_date=task.repeat.next_run_at or to_iso(now),
                status="pending",
            ))
            next_at = to_iso(next_run_for_repeat(now + RESCHEDULE_OFFSET, task.repeat))
            # The template task mirrors its next occurrence in due_date
            update_task_db(task.id, repeat_next_run_at=next_at, due_date=next_at)
        except Exception as e:
            logger.exception(str(SchedulerItemFailure(task.id, e)))
    if created:
        logger.info(f"Repeat tick created {len(created)} task(s)")
    return created


class SchedulerLoop:
    """Background asyncio task running both ticks every `interval_seconds`."""

    def __init__(
        self,
        interval_seconds: float = config.SCHEDULER_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._loop(), name="task-scheduler")
        logger.info(f"Scheduler started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Scheduler stopped")

    def run_once(self) -> list[Task]:
        now = self._clock()
        return tick_recurring(now) + tick_task_repeats(now)

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception as e:
                logger.warning(f"Scheduler tick error (non-fatal): {e}")
            await asyncio.sleep(self.interval_seconds)
