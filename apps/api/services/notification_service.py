"""
Notification Service

Sends the daily quote as an email notification.
Uses SMTP; disabled by default, in which case it only logs what it would send.
"""

import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from typing import Optional
from core.config import settings
import logging

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for sending quote notifications"""

    def __init__(self):
        self.smtp_server = settings.SMTP_SERVER
        self.smtp_port = settings.SMTP_PORT
        self.smtp_username = settings.SMTP_USERNAME
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME
        self.recipient = settings.NOTIFICATION_RECIPIENT
        self.enabled = settings.NOTIFICATIONS_ENABLED

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email.

        Returns True if sent successfully, False otherwise.
        """
        if not self.enabled:
            logger.info(f"Notifications disabled, would send to {to_email}: {subject}")
            return False

        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = to_email

            if text_content:
                msg.attach(MIMEText(text_content, 'plain'))
            msg.attach(MIMEText(html_content, 'html'))

            if self.smtp_username and self.smtp_password:
                with smtplib.SMTP(self.smtp_server, self.smtp_port) as server:
                    server.starttls()
                    server.login(self.smtp_username, self.smtp_password)
                    server.send_message(msg)
            else:
                # Local development - just log
                logger.info(f"Would send email to {to_email}: {subject}")
                logger.debug(f"Content: {html_content[:200]}...")

            return True

        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Error sending email to {to_email}: {str(e)}")
            return False

    def send_quote_notification(self, author: str, text: str, to_email: Optional[str] = None) -> bool:
        """Send the "quote of the moment" notification."""
        to_email = to_email or self.recipient
        if not to_email:
            logger.info("No notification recipient configured; skipping quote notification")
            return False

        subject = f"Your quote from {author}" if author else "Your daily quote"
        html_content = "\n".join([
            f"<blockquote><p>{escape(text)}</p></blockquote>",
            f"<p>— {escape(author)}</p>" if author else "",
        ])
        text_content = f"\"{text}\"\n\n— {author}" if author else f"\"{text}\""

        return self.send_email(to_email, subject, html_content, text_content)


# Singleton instance
notification_service = NotificationService()
