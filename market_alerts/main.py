"""Main entry point for the Market Alerts digest service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import os
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Tuple

from market_alerts.config.environment import EnvironmentConfig
from market_alerts.config.exceptions import ConfigurationError
from market_alerts.config.loader import load_config
from market_alerts.config.models import AppConfig
from market_alerts.directory import SqlDirectoryStore
from market_alerts.logging import get_logger
from market_alerts.logging.config import configure_logging
from market_alerts.notifications import DigestNotifier
from market_alerts.persistence.database import close_database, init_database
from market_alerts.pipeline import DeliveryPipeline, DeliveryReport
from market_alerts.scheduler import SchedulerService
from market_alerts.smtp import SMTPClient

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path],
    log_level_override: Optional[str],
    pack_source: Optional[str] = None,
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and resolve the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Args:
        config_path: Path to configuration file (None searches the defaults)
        log_level_override: Log level from CLI
        pack_source: Pack source from CLI, overriding pack.source

    Returns:
        Tuple of (AppConfig, EnvironmentConfig)

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path, pack_source=pack_source)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"
    env_config.log_level = env_config.log_level.upper()

    return app_config, env_config


def build_pipeline(app_config: AppConfig, env_config: EnvironmentConfig) -> DeliveryPipeline:
    """Wire the directory store, SMTP client and notifier into a pipeline."""
    smtp_client = SMTPClient(
        ehlo_name=app_config.smtp.ehlo_name,
        connect_timeout=app_config.smtp.connect_timeout,
        command_timeout=app_config.smtp.command_timeout,
        time_budget=app_config.delivery.time_budget_seconds,
    )
    notifier = DigestNotifier(app_config.digest, smtp_client=smtp_client)
    return DeliveryPipeline(
        app_config=app_config,
        env_config=env_config,
        notifier=notifier,
        store=SqlDirectoryStore(),
    )


def emit_report(report: DeliveryReport, report_path: Optional[Path] = None) -> None:
    """
    Print the JSON report to stdout and optionally write it to a file.

    A report file that cannot be written is logged, not raised.
    """
    payload = json.dumps(report.to_dict(), indent=2)
    print(payload, flush=True)

    if report_path is None:
        return
    try:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(payload + "\n", encoding="utf-8")
    except OSError as e:
        logger.error(
            f"Failed to write report to {report_path}: {e}",
            extra={"event": "report.write.failed", "path": str(report_path)},
        )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Market Alerts - match market events against saved rules and email digests"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--manual-run",
        action="store_true",
        help="Run a single delivery immediately, print the report and exit",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    parser.add_argument(
        "--pack",
        default=None,
        help="Event pack file path or URL (overrides pack.source)",
    )
    parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Also write each JSON delivery report to this file",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Main entry point for Market Alerts.

    Returns:
        Exit code (0 for success, 1 when a run aborted, a digest failed, or
        configuration is invalid).
    """
    start_time = time.time()
    args = parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level, args.pack)

        environment = os.environ.get("ENVIRONMENT", "local")
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=environment,
        )

        logger.info(
            "Market Alerts starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "manual_run": args.manual_run,
            },
        )

        init_database(env_config.database_url, timeout=app_config.advanced.database_timeout)

        logger.info(
            "Configuration loaded",
            extra={
                "event": "config.loaded",
                "pack_source": app_config.pack.source,
                "scan_interval_seconds": app_config.scan_interval_seconds,
                "smtp_host": env_config.smtp_host,
                "smtp_port": env_config.smtp_port,
                "log_format": app_config.logging.format,
            },
        )

        pipeline = build_pipeline(app_config, env_config)

        if args.manual_run:
            logger.info("Executing manual run", extra={"event": "service.manual_run.starting"})
            report = pipeline.run_once()
            emit_report(report, args.report)

            logger.info(
                f"Manual run completed: {report.emails_sent} sent, {report.emails_failed} failed",
                extra={
                    "event": "service.manual_run.completed",
                    "aborted": report.aborted,
                    "emails_sent": report.emails_sent,
                    "emails_failed": report.emails_failed,
                },
            )

            close_database()
            logger.info(
                "Market Alerts stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )
            return 1 if report.had_errors else 0

        # Daemon mode: start scheduler
        shutdown_event = threading.Event()
        scheduler_service = SchedulerService(
            pipeline_callable=pipeline.run_once,
            interval_seconds=app_config.scan_interval_seconds,
            shutdown_event=shutdown_event,
            report_callback=lambda report: emit_report(report, args.report),
        )

        def signal_handler(signum, frame):
            logger.info(
                f"Received signal {signum}, shutting down",
                extra={"event": "service.signal_received", "signal": signum},
            )
            scheduler_service.shutdown(wait=False)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        scheduler_service.start()
        logger.info(
            "Scheduler started. Press Ctrl+C to stop",
            extra={"event": "service.daemon_mode.started"},
        )

        try:
            shutdown_event.wait()
        except KeyboardInterrupt:
            logger.info(
                "Keyboard interrupt received, shutting down",
                extra={"event": "service.keyboard_interrupt"},
            )
            scheduler_service.shutdown(wait=False)

        close_database()
        logger.info(
            "Market Alerts stopped",
            extra={
                "event": "service.stopping",
                "uptime_seconds": round(time.time() - start_time, 2),
            },
        )
        return 0

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e.message}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
