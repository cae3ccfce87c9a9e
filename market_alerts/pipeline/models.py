"""Data models for pipeline execution tracking and reporting."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from market_alerts.utils.timestamps import format_timestamp, utc_now

DEFAULT_MAX_REPORTED_FAILURES = 25


@dataclass(frozen=True)
class DeliveryFailure:
    """
    One recipient whose digest could not be delivered.

    Attributes:
        recipient: Recipient email address
        error: Error message, including the SMTP reply when there was one
    """

    recipient: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {"recipient": self.recipient, "error": self.error}


@dataclass
class RunSession:
    """
    Mutable counters for a single pipeline run.

    Passed through each step of the run; only the step currently executing
    updates it.

    Attributes:
        run_id: Unique identifier for the run
        started_at: UTC timestamp when the run began
        max_reported_failures: Failures kept for the report
        scanned_accounts: Email index entries visited
        skipped_accounts: Entries skipped (unverified, malformed, duplicate, ...)
        matched_accounts: Accounts with at least one deduplicated match
        event_count: Events in the validated pack
        dropped_events: Event rows dropped while parsing the pack
        dropped_skus: SKU entries dropped while parsing the pack
        emails_attempted: Digests handed to the SMTP client
        emails_sent: Digests accepted by the server
        emails_failed: Digests that failed at any step
        failures: First failures, capped at max_reported_failures
        scan_error: Listing error that cut the directory scan short
        aborted: Whether the run stopped before delivery
        error: Reason the run aborted
    """

    run_id: str
    started_at: datetime = field(default_factory=utc_now)
    max_reported_failures: int = DEFAULT_MAX_REPORTED_FAILURES
    scanned_accounts: int = 0
    skipped_accounts: int = 0
    matched_accounts: int = 0
    event_count: int = 0
    dropped_events: int = 0
    dropped_skus: int = 0
    emails_attempted: int = 0
    emails_sent: int = 0
    emails_failed: int = 0
    failures: List[DeliveryFailure] = field(default_factory=list)
    pack_generated_at: Optional[str] = None
    scan_error: Optional[str] = None
    aborted: bool = False
    error: Optional[str] = None

    def record_sent(self) -> None:
        self.emails_attempted += 1
        self.emails_sent += 1

    def record_failure(self, recipient: str, error: str) -> None:
        """Count a failed delivery; only the first few are kept verbatim."""
        self.emails_attempted += 1
        self.emails_failed += 1
        if len(self.failures) < self.max_reported_failures:
            self.failures.append(DeliveryFailure(recipient=recipient, error=error))

    def abort(self, error: str) -> None:
        self.aborted = True
        self.error = error

    def to_report(self, skipped: bool = False) -> "DeliveryReport":
        finished_at = utc_now()
        return DeliveryReport(
            run_id=self.run_id,
            run_started_at=self.started_at,
            run_finished_at=finished_at,
            duration_seconds=(finished_at - self.started_at).total_seconds(),
            skipped=skipped,
            aborted=self.aborted,
            error=self.error,
            pack_generated_at=self.pack_generated_at,
            event_count=self.event_count,
            dropped_events=self.dropped_events,
            dropped_skus=self.dropped_skus,
            scanned_accounts=self.scanned_accounts,
            skipped_accounts=self.skipped_accounts,
            matched_accounts=self.matched_accounts,
            scan_error=self.scan_error,
            emails_attempted=self.emails_attempted,
            emails_sent=self.emails_sent,
            emails_failed=self.emails_failed,
            failures=list(self.failures),
        )


@dataclass
class DeliveryReport:
    """
    Summary of a complete pipeline run, returned to the caller.

    Attributes:
        run_id: Unique identifier for the run
        run_started_at: UTC timestamp when the run began
        run_finished_at: UTC timestamp when the run completed
        duration_seconds: Total time for the entire run
        skipped: Whether the run was skipped (lock already held)
        aborted: Whether the pack could not be loaded or validated
        error: Abort reason
        pack_generated_at: generatedAt of the pack that was delivered
        event_count: Events in the pack
        dropped_events: Malformed event rows dropped from the pack
        dropped_skus: Malformed SKU entries dropped from the pack
        scanned_accounts: Directory entries visited
        skipped_accounts: Directory entries skipped
        matched_accounts: Accounts with at least one match
        scan_error: Listing error that cut the scan short, if any
        emails_attempted: Digests attempted
        emails_sent: Digests accepted
        emails_failed: Digests that failed
        failures: First failures (recipient and error)
    """

    run_id: str
    run_started_at: datetime
    run_finished_at: datetime
    duration_seconds: float = 0.0
    skipped: bool = False
    aborted: bool = False
    error: Optional[str] = None
    pack_generated_at: Optional[str] = None
    event_count: int = 0
    dropped_events: int = 0
    dropped_skus: int = 0
    scanned_accounts: int = 0
    skipped_accounts: int = 0
    matched_accounts: int = 0
    scan_error: Optional[str] = None
    emails_attempted: int = 0
    emails_sent: int = 0
    emails_failed: int = 0
    failures: List[DeliveryFailure] = field(default_factory=list)

    @property
    def had_errors(self) -> bool:
        """Whether the run aborted or any digest failed."""
        return self.aborted or self.emails_failed > 0

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready report with camelCase keys."""
        return {
            "runId": self.run_id,
            "generatedAt": format_timestamp(self.run_finished_at),
            "packGeneratedAt": self.pack_generated_at,
            "skipped": self.skipped,
            "aborted": self.aborted,
            "error": self.error,
            "eventCount": self.event_count,
            "droppedEvents": self.dropped_events,
            "droppedSkus": self.dropped_skus,
            "scannedAccounts": self.scanned_accounts,
            "skippedAccounts": self.skipped_accounts,
            "matchedAccounts": self.matched_accounts,
            "scanError": self.scan_error,
            "emailsAttempted": self.emails_attempted,
            "emailsSent": self.emails_sent,
            "emailsFailed": self.emails_failed,
            "failures": [failure.to_dict() for failure in self.failures],
            "durationSeconds": round(self.duration_seconds, 3),
        }
