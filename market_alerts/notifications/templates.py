"""Template rendering for digest emails using Jinja2.

This module wraps Jinja2 template rendering with caching and strict
undefined checking to catch template errors early.
"""

from typing import Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError, select_autoescape

from market_alerts.logging import get_logger

from .models import Digest, NotificationTemplateError

logger = get_logger(__name__, component="notification")


class TemplateRenderer:
    """Renders digest templates using Jinja2.

    Provides methods to render subject lines and body content (HTML and plain text)
    from template files in the market_alerts.notifications.email_templates package.
    Only the HTML template is auto-escaped.

    Templates are cached for reuse across multiple invocations.
    """

    def __init__(
        self,
        template_dir: str = "email_templates",
        subject_template: str = "digest_subject.j2",
        html_template: str = "digest_body.html.j2",
        text_template: str = "digest_body.txt.j2",
    ):
        """Initialize template renderer with Jinja2 environment.

        Args:
            template_dir: Directory name within market_alerts.notifications package
            subject_template: Filename of subject line template
            html_template: Filename of HTML body template
            text_template: Filename of plain text body template
        """
        self.subject_template_name = subject_template
        self.html_template_name = html_template
        self.text_template_name = text_template

        self.env = Environment(
            loader=PackageLoader("market_alerts.notifications", template_dir),
            autoescape=select_autoescape(
                enabled_extensions=("html", "html.j2"),
                default_for_string=True,
                default=False,
            ),
            undefined=StrictUndefined,  # Raise errors for missing variables
        )

        logger.debug(f"Initialized TemplateRenderer with templates from {template_dir}")

    def render(self, context: Dict) -> Digest:
        """Render all digest templates with the provided context.

        Args:
            context: Dictionary of template variables (see build_digest_context)

        Returns:
            Digest with a single-line subject and both bodies

        Raises:
            NotificationTemplateError: If template rendering fails
        """
        try:
            subject_template = self.env.get_template(self.subject_template_name)
            html_template = self.env.get_template(self.html_template_name)
            text_template = self.env.get_template(self.text_template_name)

            subject = " ".join(subject_template.render(context).split())
            html_body = html_template.render(context)
            text_body = text_template.render(context)

        except TemplateError as e:
            error_msg = f"Template rendering failed: {e}"
            logger.error(error_msg, exc_info=True, extra={"event": "digest.render.failed"})
            raise NotificationTemplateError(error_msg) from e

        logger.debug(
            f"Rendered digest for user {context.get('user_id', 'unknown')}",
            extra={"event": "digest.rendered", "event_count": context.get("total")},
        )
        return Digest(subject=subject, text_body=text_body, html_body=html_body)
