"""Unit tests for the scheduler service.

Tests the SchedulerService including:
- Job registration with max_instances=1 and coalescing
- Immediate first run
- Report callback delivery
- Failed runs not stopping the scheduler
- Start/shutdown lifecycle
"""

import threading
import time
from datetime import datetime
from unittest.mock import Mock

from market_alerts.scheduler import SchedulerService


class TestSchedulerService:
    """Test suite for SchedulerService."""

    def test_scheduler_initialization(self):
        """Test that scheduler initializes with correct parameters."""
        mock_callable = Mock()
        shutdown_event = threading.Event()

        scheduler = SchedulerService(
            pipeline_callable=mock_callable,
            interval_seconds=900,
            shutdown_event=shutdown_event,
        )

        assert scheduler.interval_seconds == 900
        assert scheduler.pipeline_callable == mock_callable
        assert scheduler.report_callback is None
        assert not scheduler.is_running()

    def test_scheduler_registers_job_with_correct_config(self):
        """Test that overlapping runs are prevented and delayed runs coalesce."""
        scheduler = SchedulerService(pipeline_callable=Mock(), interval_seconds=60)

        assert scheduler.scheduler._job_defaults["max_instances"] == 1
        assert scheduler.scheduler._job_defaults["coalesce"] is True
        assert scheduler.scheduler._job_defaults["misfire_grace_time"] == 60

    def test_scheduler_start_and_shutdown(self):
        """Test scheduler start and shutdown lifecycle."""
        shutdown_event = threading.Event()
        scheduler = SchedulerService(
            pipeline_callable=Mock(),
            interval_seconds=300,
            shutdown_event=shutdown_event,
        )

        scheduler.start()
        assert scheduler.is_running()
        assert isinstance(scheduler.get_next_run_time(), datetime)

        scheduler.shutdown(wait=True)
        assert not scheduler.is_running()
        assert shutdown_event.is_set()

    def test_no_job_before_start(self):
        """Test that nothing is scheduled before start()."""
        scheduler = SchedulerService(pipeline_callable=Mock(), interval_seconds=60)
        assert scheduler.get_next_run_time() is None

    def test_scheduler_immediate_first_run(self):
        """Test that the first run happens right after start."""
        ran = threading.Event()

        scheduler = SchedulerService(pipeline_callable=ran.set, interval_seconds=3600)
        scheduler.start()
        try:
            assert ran.wait(timeout=5)
        finally:
            scheduler.shutdown(wait=True)

    def test_report_callback_receives_result(self):
        """Test that each run's return value is handed to the callback."""
        reports = []
        done = threading.Event()

        def callback(report):
            reports.append(report)
            done.set()

        scheduler = SchedulerService(
            pipeline_callable=lambda: "report-1",
            interval_seconds=3600,
            report_callback=callback,
        )
        scheduler.start()
        try:
            assert done.wait(timeout=5)
        finally:
            scheduler.shutdown(wait=True)

        assert reports == ["report-1"]

    def test_trigger_now_executes_immediately(self):
        """Test that trigger_now runs synchronously without starting."""
        mock_callable = Mock(return_value="report")
        callback = Mock()

        scheduler = SchedulerService(
            pipeline_callable=mock_callable,
            interval_seconds=3600,
            report_callback=callback,
        )
        scheduler.trigger_now()

        mock_callable.assert_called_once_with()
        callback.assert_called_once_with("report")

    def test_failed_run_is_contained(self):
        """Test that a raising run neither propagates nor reaches the callback."""
        callback = Mock()
        scheduler = SchedulerService(
            pipeline_callable=Mock(side_effect=RuntimeError("boom")),
            interval_seconds=3600,
            report_callback=callback,
        )

        scheduler.trigger_now()

        callback.assert_not_called()

    def test_scheduler_callable_exceptions_dont_stop_scheduler(self):
        """Test that exceptions in the callable don't stop later runs."""
        call_count = [0]

        def failing_callable():
            call_count[0] += 1
            if call_count[0] == 1:
                raise Exception("Intentional error")

        scheduler = SchedulerService(pipeline_callable=failing_callable, interval_seconds=1)

        scheduler.start()
        time.sleep(2.5)
        scheduler.shutdown(wait=True)

        assert call_count[0] >= 2

    def test_shutdown_when_not_started(self):
        """Test that shutdown is safe before start."""
        shutdown_event = threading.Event()
        scheduler = SchedulerService(
            pipeline_callable=Mock(),
            interval_seconds=60,
            shutdown_event=shutdown_event,
        )

        scheduler.shutdown()

        assert shutdown_event.is_set()
