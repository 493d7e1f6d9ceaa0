# backend/bookpay/services/email.py
"""
Email delivery.

``EmailService`` sends through the Resend API. ``ConsoleEmailService`` is
selected when ``EMAIL_PROVIDER=console`` and only logs.
"""

import logging
import re
from typing import Any, Dict, Optional, Protocol

import resend

from ..core.config import settings
from ..core.exceptions import ServiceException

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> Any: ...


def _html_to_text(html_content: str) -> str:
    """Convert HTML content to plain text for better deliverability"""
    text = re.sub(r"<[^>]+>", "", html_content)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


class EmailService:
    """Service for sending emails using Resend API."""

    def __init__(self, api_key: Optional[str] = None, from_email: Optional[str] = None):
        api_key = api_key or settings.resend_api_key
        if not api_key:
            raise ServiceException("Resend API key not configured")

        resend.api_key = api_key
        self.from_email = from_email or settings.from_email
        self.logger = logging.getLogger(self.__class__.__name__)

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send an email using Resend.

        Raises:
            ServiceException: If email sending fails
        """
        email_data = {
            "from": self.from_email,
            "to": to_email,
            "subject": subject,
            "html": html_content,
            "text": text_content or _html_to_text(html_content),
        }
        try:
            response = resend.Emails.send(email_data)
        except Exception as e:
            self.logger.error(f"Failed to send email to {to_email}: {type(e).__name__}: {e}")
            raise ServiceException(f"Email sending failed: {e}") from e

        self.logger.info(f"Email sent successfully to {to_email} - Subject: {subject}")
        return response


class ConsoleEmailService:
    """Email sender that only logs, for local development."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> bool:
        self.logger.info(f"[console email] to={to_email} subject={subject!r}")
        return True


def build_email_sender() -> EmailSender:
    """Pick the email sender from configuration."""
    if settings.email_provider == "resend":
        return EmailService()
    return ConsoleEmailService()
