"""Pipeline orchestration for digest delivery."""

import threading
from typing import List, Optional
from uuid import uuid4

from market_alerts.config.environment import EnvironmentConfig
from market_alerts.config.models import AppConfig
from market_alerts.directory import DirectoryAccount, DirectoryError, DirectoryScanner, DirectoryStore
from market_alerts.domain.models import DeliveryJob, EventPack
from market_alerts.events import PackError, PackLoader
from market_alerts.logging import get_logger
from market_alerts.logging.context import log_context
from market_alerts.matching import MatchDeduplicator, RuleMatcher
from market_alerts.notifications import DigestNotifier

from .models import DeliveryReport, RunSession

logger = get_logger(__name__, component="pipeline")


def build_pack_loader(app_config: AppConfig, env_config: EnvironmentConfig) -> PackLoader:
    """Create the pack loader described by the configuration."""
    return PackLoader(
        source=app_config.pack.source,
        timeout=app_config.advanced.http_request_timeout,
        user_agent=app_config.advanced.user_agent,
        max_bytes=app_config.pack.max_bytes,
        signing_secret=env_config.pack_signing_secret,
        signature_tolerance=app_config.pack.signature_tolerance_seconds,
    )


class DeliveryPipeline:
    """
    Orchestrates a single delivery run.

    The pipeline loads and validates the event pack, scans the account
    directory, matches and deduplicates each account's rules against the
    pack, and delivers one digest per matched account, strictly one at a
    time. A failed delivery is recorded and the run moves on to the next
    recipient.
    """

    def __init__(
        self,
        app_config: AppConfig,
        env_config: EnvironmentConfig,
        notifier: DigestNotifier,
        store: DirectoryStore,
        pack_loader: Optional[PackLoader] = None,
    ):
        """
        Initialize the delivery pipeline.

        Args:
            app_config: Application configuration
            env_config: Environment configuration
            notifier: Renders and sends digests
            store: Account directory to scan
            pack_loader: Pack loader (built from app_config if None)
        """
        self.app_config = app_config
        self.env_config = env_config
        self.notifier = notifier
        self.store = store
        self.pack_loader = pack_loader or build_pack_loader(app_config, env_config)
        self._lock = threading.Lock()

    def run_once(self, pack: Optional[EventPack] = None) -> DeliveryReport:
        """
        Execute a complete delivery run.

        This method:
        1. Acquires a lock to prevent concurrent runs
        2. Loads and validates the pack (unless one is given)
        3. Scans the directory for eligible accounts
        4. Matches and deduplicates per account to build jobs
        5. Delivers each job sequentially and aggregates the report

        Args:
            pack: Already validated pack (skips loading)

        Returns:
            DeliveryReport with counters and the first failures

        Raises:
            No exceptions are raised for pack or per-recipient failures; they
            are captured in the report.
        """
        session = RunSession(
            run_id=uuid4().hex,
            max_reported_failures=self.app_config.delivery.max_reported_failures,
        )

        # Try to acquire the lock; if already held, skip this run
        if not self._lock.acquire(blocking=False):
            with log_context(run_id=session.run_id):
                logger.warning(
                    "Pipeline run skipped: previous run still in progress",
                    extra={
                        "event": "pipeline.run.skipped",
                        "reason": "lock_held",
                    },
                )
            return session.to_report(skipped=True)

        try:
            with log_context(run_id=session.run_id):
                logger.info(
                    "Pipeline run started",
                    extra={
                        "event": "pipeline.run.started",
                        "pack_source": "inline" if pack is not None else self.pack_loader.source,
                    },
                )

                if pack is None:
                    try:
                        pack = self.pack_loader.load()
                    except PackError as e:
                        session.abort(f"{type(e).__name__}: {e}")
                        logger.error(
                            f"Pipeline run aborted, event pack rejected: {e}",
                            extra={
                                "event": "pipeline.run.aborted",
                                "error_type": type(e).__name__,
                            },
                        )
                        return session.to_report()

                session.pack_generated_at = pack.generated_at
                session.event_count = len(pack.events)
                session.dropped_events = pack.dropped_event_count
                session.dropped_skus = pack.dropped_sku_count

                scanner = DirectoryScanner(
                    self.store,
                    prefix=self.app_config.directory.email_prefix,
                    page_size=self.app_config.directory.page_size,
                )
                scan = scanner.scan()
                session.scanned_accounts = scan.scanned
                session.skipped_accounts = scan.skipped
                session.scan_error = scan.error

                jobs = self._build_jobs(pack, scan.accounts, session)
                for job in jobs:
                    self._deliver(job, pack, session)

                report = session.to_report()
                logger.info(
                    "Pipeline run completed",
                    extra={
                        "event": "pipeline.run.completed",
                        "duration_ms": int(report.duration_seconds * 1000),
                        "scanned_accounts": report.scanned_accounts,
                        "matched_accounts": report.matched_accounts,
                        "emails_attempted": report.emails_attempted,
                        "emails_sent": report.emails_sent,
                        "emails_failed": report.emails_failed,
                        "scan_error": report.scan_error,
                    },
                )
                return report

        finally:
            self._lock.release()

    def _build_jobs(
        self, pack: EventPack, accounts: List[DirectoryAccount], session: RunSession
    ) -> List[DeliveryJob]:
        """
        Match each account against the pack, in scan order.

        Args:
            pack: Validated event pack
            accounts: Accounts found by the directory scan
            session: Run counters

        Returns:
            One DeliveryJob per account with at least one match
        """
        matcher = RuleMatcher(pack)
        deduplicator = MatchDeduplicator()
        jobs: List[DeliveryJob] = []

        for account in accounts:
            with log_context(user_id=account.user_id):
                try:
                    hits = matcher.match_user(account.rules, account.favourites)
                except DirectoryError as e:
                    session.skipped_accounts += 1
                    logger.warning(
                        f"Skipping account, favourites unreadable: {e}",
                        extra={"event": "directory.account.skipped", "reason": "favourites_unreadable"},
                    )
                    continue

                events = deduplicator.deduplicate(hits)
                if not events:
                    continue

                session.matched_accounts += 1
                jobs.append(
                    DeliveryJob(
                        user_id=account.user_id,
                        recipient_email=account.email,
                        events=tuple(events),
                    )
                )
                logger.debug(
                    f"Account matched {len(events)} events",
                    extra={"event": "pipeline.job.built", "hits": len(hits), "event_count": len(events)},
                )

        return jobs

    def _deliver(self, job: DeliveryJob, pack: EventPack, session: RunSession) -> None:
        """Deliver one job and record the outcome; never raises."""
        try:
            result = self.notifier.deliver(
                job,
                self.env_config,
                commit_range=pack.range,
                time_budget=self.app_config.delivery.time_budget_seconds,
            )
        except Exception as e:
            # Catch any unexpected errors to keep the remaining jobs going
            logger.error(
                f"Unexpected error delivering digest to {job.recipient_email}: {e}",
                exc_info=True,
                extra={"event": "delivery.failed", "error_type": type(e).__name__},
            )
            session.record_failure(job.recipient_email, f"{type(e).__name__}: {e}")
            return

        if result.is_success():
            session.record_sent()
        else:
            session.record_failure(job.recipient_email, f"{result.error_type}: {result.error}")
