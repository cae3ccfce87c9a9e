"""Scheduler service for periodic delivery runs."""

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from market_alerts.logging import get_logger

logger = get_logger(__name__, component="scheduler")

JOB_ID = "digest-delivery"


class SchedulerService:
    """
    Wraps APScheduler to trigger the delivery pipeline at configured intervals.

    Uses BackgroundScheduler to run jobs in a separate thread while
    allowing the main thread to handle signals and coordinate shutdown.
    """

    def __init__(
        self,
        pipeline_callable: Callable[[], Any],
        interval_seconds: int,
        shutdown_event: Optional[threading.Event] = None,
        report_callback: Optional[Callable[[Any], None]] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            pipeline_callable: Function to call on each scheduled run (e.g., pipeline.run_once)
            interval_seconds: Interval between runs in seconds
            shutdown_event: Optional event to set on shutdown for coordination
            report_callback: Optional function receiving each run's return value
        """
        self.pipeline_callable = pipeline_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event
        self.report_callback = report_callback

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,  # Prevent overlapping runs
                "coalesce": True,  # If run is delayed, only execute once
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """
        Start the scheduler and register the delivery job.

        The first run executes immediately after startup; subsequent runs
        follow the configured interval.
        """
        trigger = IntervalTrigger(
            seconds=self.interval_seconds,
            timezone=timezone.utc,
        )

        next_run = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self._run,
            trigger=trigger,
            id=JOB_ID,
            name="Market Alerts digest delivery",
            replace_existing=True,
            next_run_time=next_run,
        )

        self.scheduler.start()

        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat(),
            },
        )

    def _run(self) -> None:
        """Run the pipeline once and hand the result to the report callback."""
        try:
            result = self.pipeline_callable()
        except Exception as e:
            # A failed run must not kill the scheduler thread; the next interval retries
            logger.error(
                f"Scheduled run failed: {e}",
                exc_info=True,
                extra={"event": "scheduler.run.failed", "error_type": type(e).__name__},
            )
            return

        if self.report_callback is not None:
            self.report_callback(result)

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: If True, wait for running jobs to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={
                "event": "scheduler.stopping",
                "wait_for_jobs": wait,
            },
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> None:
        """
        Trigger an immediate run of the pipeline in the current thread.
        """
        logger.info("Triggering immediate pipeline run", extra={"event": "scheduler.trigger_now"})
        self._run()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        """
        Get the next scheduled run time.

        Returns:
            Next run time as a datetime, or None if not scheduled
        """
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
