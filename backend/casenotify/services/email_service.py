"""Email service for sending notification emails via SMTP."""

from __future__ import annotations

import logging
from email.message import EmailMessage
from html import escape

import aiosmtplib

from casenotify.core.config import settings

logger = logging.getLogger(__name__)


def render_notification_html(title: str, message: str, action_url: str | None = None) -> str:
    """Render the HTML body of a notification email."""
    body = f"<h2>{escape(title)}</h2><p>{escape(message)}</p>"
    if action_url:
        body += f'<p><a href="{escape(action_url, quote=True)}">{escape(action_url)}</a></p>'
    return body


class EmailService:
    """Service for sending notification emails via SMTP."""

    async def send_email(self, to: str, subject: str, html_body: str) -> bool:
        """Send an email via SMTP.

        Args:
            to: Recipient email address.
            subject: Email subject line.
            html_body: HTML content of the email.

        Returns:
            True if the message was handed to the SMTP server, False when SMTP
            is not configured.
        """
        if not settings.SMTP_HOST:
            logger.info("SMTP not configured, cannot email %s: %s", to, subject)
            return False

        msg = EmailMessage()
        msg["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("Please view this email in an HTML-capable client.")
        msg.add_alternative(html_body, subtype="html")

        await aiosmtplib.send(
            msg,
            hostname=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME or None,
            password=settings.SMTP_PASSWORD or None,
            start_tls=settings.SMTP_USE_TLS,
            timeout=settings.CHANNEL_TIMEOUT_SECONDS,
        )
        logger.info("Email sent to %s: %s", to, subject)
        return True
