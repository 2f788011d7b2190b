"""APScheduler service for cron-triggered backfills and periodic draining."""

from __future__ import annotations

import logging
from threading import Lock
from zoneinfo import ZoneInfo

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from cairn.config import ScheduleSettings
from cairn.pipeline.service import IngestService
from cairn.pipeline.worker import QueueWorker

_LOGGER = logging.getLogger(__name__)

BACKFILL_JOB_ID = "cairn:backfill"
DRAIN_JOB_ID = "cairn:drain"


class BackfillScheduler:
    """Run ``start_bulk_ingest`` on a cron schedule and drain the queue in between."""

    def __init__(
        self,
        *,
        service: IngestService,
        worker: QueueWorker,
        settings: ScheduleSettings,
    ) -> None:
        """Create scheduler service (not started).

        Args:
            service: Trigger surface used for the cron backfill.
            worker: Worker drained on the interval job.
            settings: Cron expression, prefix and drain interval.
        """
        self._service = service
        self._worker = worker
        self._settings = settings
        self._scheduler = BackgroundScheduler(
            timezone=ZoneInfo("UTC"),
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": settings.misfire_grace_time,
            },
        )
        self._scheduler.add_listener(self._handle_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)
        self._lock = Lock()
        self._started = False

    def start(self) -> None:
        """Register jobs and start the background scheduler."""
        with self._lock:
            if self._started:
                return
            self._scheduler.add_job(
                self._run_backfill,
                CronTrigger.from_crontab(self._settings.cron, timezone=ZoneInfo("UTC")),
                id=BACKFILL_JOB_ID,
                replace_existing=True,
            )
            self._scheduler.add_job(
                self._worker.drain,
                IntervalTrigger(seconds=self._settings.drain_interval_seconds),
                id=DRAIN_JOB_ID,
                replace_existing=True,
            )
            self._scheduler.start(paused=False)
            self._started = True

    def shutdown(self) -> None:
        """Shutdown scheduler service if running."""
        with self._lock:
            if not self._started:
                return
            self._scheduler.shutdown(wait=True)
            self._started = False

    def job_ids(self) -> tuple[str, ...]:
        return tuple(sorted(job.id for job in self._scheduler.get_jobs()))

    def _run_backfill(self) -> dict[str, object]:
        response = self._service.start_bulk_ingest(self._settings.prefix)
        _LOGGER.info("Scheduled backfill started: %s", response)
        return response

    def _handle_event(self, event: JobExecutionEvent) -> None:
        if event.code == EVENT_JOB_MISSED:
            _LOGGER.warning("Scheduled job %s missed its run time", event.job_id)
            return
        _LOGGER.error("Scheduled job %s failed: %s", event.job_id, event.exception)
