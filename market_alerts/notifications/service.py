"""Digest notifier for sending matched-event digests.

This module provides the DigestNotifier class that orchestrates one
recipient's notification: template context, rendering, message
construction, and SMTP delivery under the delivery time budget.
"""

import logging
from email.message import EmailMessage
from typing import Optional

from market_alerts.config.environment import EnvironmentConfig
from market_alerts.config.models import DigestConfig
from market_alerts.domain.models import CommitRange, DeliveryJob
from market_alerts.logging import get_logger
from market_alerts.logging.context import log_context
from market_alerts.smtp import (
    MESSAGE_POLICY,
    SMTPClient,
    SMTPDeliveryError,
    build_sender_address,
    validate_recipient,
)

from .models import Digest, NotificationError, NotificationResult
from .payloads import build_digest_context
from .templates import TemplateRenderer

logger = get_logger(__name__, component="notification")


class DigestNotifier:
    """Renders and delivers one digest per DeliveryJob.

    Coordinates the notification flow:
    1. Build template context from the job's matched events
    2. Render subject, text and HTML bodies
    3. Build the MIME message (text with HTML alternative)
    4. Deliver via the SMTP client within the time budget

    Delivery failures never propagate; they are returned as a failed
    NotificationResult so the caller can continue with the next job.
    """

    def __init__(
        self,
        digest_config: DigestConfig,
        template_renderer: Optional[TemplateRenderer] = None,
        smtp_client: Optional[SMTPClient] = None,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """Initialize digest notifier.

        Args:
            digest_config: Branding and link settings
            template_renderer: Template renderer instance (creates default if None)
            smtp_client: SMTP client instance (creates default if None)
            logger_instance: Logger instance (uses module logger if None)
        """
        self.digest_config = digest_config
        self.template_renderer = template_renderer or TemplateRenderer()
        self.smtp_client = smtp_client or SMTPClient()
        self.logger = logger_instance or logger

    def render(self, job: DeliveryJob, commit_range: Optional[CommitRange] = None) -> Digest:
        """Render the digest for a job.

        Raises:
            NotificationTemplateError: If template rendering fails
        """
        context = build_digest_context(job, self.digest_config, commit_range)
        return self.template_renderer.render(context)

    def build_message(
        self, digest: Digest, recipient: str, env_config: EnvironmentConfig
    ) -> EmailMessage:
        """Wrap a rendered digest in a text + HTML alternative message.

        Raises:
            NotificationError: If the message headers cannot be built
        """
        try:
            message = EmailMessage(policy=MESSAGE_POLICY)
            message["Subject"] = digest.subject
            message["From"] = build_sender_address(env_config)
            message["To"] = recipient
            message.set_content(digest.text_body)
            message.add_alternative(digest.html_body, subtype="html")
        except (ValueError, TypeError) as e:
            raise NotificationError(f"Failed to build email message: {e}") from e
        return message

    def deliver(
        self,
        job: DeliveryJob,
        env_config: EnvironmentConfig,
        commit_range: Optional[CommitRange] = None,
        time_budget: Optional[float] = None,
    ) -> NotificationResult:
        """Render and send one job's digest.

        Args:
            job: DeliveryJob with at least one matched event
            env_config: Environment configuration with SMTP settings
            commit_range: Commit range of the pack for the footer link
            time_budget: Seconds allowed for the whole SMTP exchange

        Returns:
            NotificationResult with status "sent" or "failed"
        """
        with log_context(user_id=job.user_id, recipient=job.recipient_email):
            try:
                recipient = validate_recipient(job.recipient_email)
                digest = self.render(job, commit_range)
                message = self.build_message(digest, recipient, env_config)
                self.smtp_client.send(
                    message, env_config, recipient=recipient, time_budget=time_budget
                )
            except (SMTPDeliveryError, NotificationError) as e:
                error_type = type(e).__name__
                self.logger.error(
                    f"Digest delivery failed for {job.recipient_email}: {e}",
                    extra={
                        "event": "delivery.failed",
                        "error_type": error_type,
                        "event_count": job.event_count,
                    },
                )
                return NotificationResult(
                    user_id=job.user_id,
                    recipient=job.recipient_email,
                    event_count=job.event_count,
                    status="failed",
                    error=str(e),
                    error_type=error_type,
                )

            self.logger.info(
                f"Digest sent to {recipient} ({job.event_count} events)",
                extra={"event": "delivery.sent", "event_count": job.event_count},
            )
            return NotificationResult(
                user_id=job.user_id,
                recipient=job.recipient_email,
                event_count=job.event_count,
                status="sent",
            )
