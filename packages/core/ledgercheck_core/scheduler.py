"""Recurring report generation driven by an injectable clock."""

from __future__ import annotations

import calendar
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Sequence

from ledgercheck_schemas import ReportBundle, ReportFrequency, ReportJob, ReportSchedule

logger = logging.getLogger(__name__)

BundleProvider = Callable[[], ReportBundle]
ReportWriter = Callable[[ReportBundle], str]

JOB_HISTORY_LIMIT = 25

_FREQUENCY_MONTHS: dict[ReportFrequency, int] = {
    ReportFrequency.MONTHLY: 1,
    ReportFrequency.QUARTERLY: 3,
    ReportFrequency.HALF_YEARLY: 6,
}


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def add_months(moment: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's end."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def calculate_next_run(frequency: ReportFrequency, from_time: datetime) -> datetime:
    return add_months(from_time, _FREQUENCY_MONTHS[frequency])


def _short_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10].upper()}"


class ReportScheduler:
    """Run scheduled and manual reports one at a time.

    ``run_pending`` is meant to be polled (``start`` does so on a daemon
    thread); manual ``run_now`` calls may overlap with it, but writes go
    through a single lock so no two runs write an export concurrently.
    """

    def __init__(
        self,
        bundle_provider: BundleProvider,
        writer: ReportWriter,
        clock: Optional[Clock] = None,
    ) -> None:
        self._bundle_provider = bundle_provider
        self._writer = writer
        self._clock: Clock = clock or SystemClock()
        self._schedules: dict[str, ReportSchedule] = {}
        self._jobs: list[ReportJob] = []
        self._state_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def add_schedule(
        self, frequency: ReportFrequency, recipients: Sequence[str] = ()
    ) -> ReportSchedule:
        schedule = ReportSchedule(
            id=_short_id("SCH"),
            frequency=frequency,
            next_run=calculate_next_run(frequency, self._clock.now()),
            recipients=list(recipients),
        )
        with self._state_lock:
            self._schedules[schedule.id] = schedule
        logger.info("Scheduled %s report %s", frequency.value, schedule.id)
        return schedule

    def toggle_schedule(self, schedule_id: str) -> ReportSchedule:
        with self._state_lock:
            schedule = self._schedules[schedule_id]
            updated = schedule.model_copy(update={"active": not schedule.active})
            self._schedules[schedule_id] = updated
        return updated

    def remove_schedule(self, schedule_id: str) -> None:
        with self._state_lock:
            del self._schedules[schedule_id]

    def schedules(self) -> list[ReportSchedule]:
        with self._state_lock:
            return list(self._schedules.values())

    def jobs(self) -> list[ReportJob]:
        """Most recent first."""
        with self._state_lock:
            return list(self._jobs)

    def run_now(self, schedule_id: Optional[str] = None) -> ReportJob:
        with self._write_lock:
            generated_at = self._clock.now()
            try:
                name = self._writer(self._bundle_provider())
            except Exception as exc:  # a failed run is recorded, not raised
                logger.exception("Report generation failed")
                job = ReportJob(
                    id=_short_id("RPT"),
                    generated_at=generated_at,
                    report_name="Report generation failed",
                    status="Failed",
                    schedule_id=schedule_id,
                    notes=str(exc) or exc.__class__.__name__,
                )
            else:
                job = ReportJob(
                    id=_short_id("RPT"),
                    generated_at=generated_at,
                    report_name=name,
                    status="Success",
                    schedule_id=schedule_id,
                )
        with self._state_lock:
            self._jobs = [job, *self._jobs][:JOB_HISTORY_LIMIT]
        return job

    def run_pending(self) -> list[ReportJob]:
        """Run every active schedule whose next run is due, then reschedule it."""
        now = self._clock.now()
        with self._state_lock:
            due = [
                schedule
                for schedule in self._schedules.values()
                if schedule.active and schedule.next_run <= now
            ]
            for schedule in due:
                self._schedules[schedule.id] = schedule.model_copy(
                    update={
                        "last_run": now,
                        "next_run": calculate_next_run(schedule.frequency, now),
                    }
                )
        return [self.run_now(schedule.id) for schedule in due]

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, poll_seconds: float = 60.0) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop,
            args=(poll_seconds,),
            name="report-scheduler",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self, poll_seconds: float) -> None:
        while not self._stop.wait(poll_seconds):
            self.run_pending()


__all__ = [
    "Clock",
    "JOB_HISTORY_LIMIT",
    "ReportScheduler",
    "SystemClock",
    "add_months",
    "calculate_next_run",
]
