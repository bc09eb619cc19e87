"""
Resend email service for magic links and verification codes.

Templates are deliberately plain; marketing layouts live with the frontend.
"""

import html
import logging
from typing import Optional

import resend

from saveplate.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """
    Sends transactional email through Resend.

    Send methods return True when Resend accepted the message and False
    otherwise. Callers decide whether a failed send fails their operation.
    """

    def __init__(self, api_key: str, from_email: str, from_name: str):
        self.api_key = api_key
        self.sender = f"{from_name} <{from_email}>"

    def send_magic_link_email(self, to_email: str, magic_link: str) -> bool:
        body = (
            "<p>Hi there,</p>"
            "<p>Click the link below to log in to SavePlate. It expires in 30 minutes.</p>"
            f'<p><a href="{magic_link}">Log in to SavePlate</a></p>'
            "<p>If you did not request this email, you can safely ignore it.</p>"
        )
        return self._send(to_email, "Log in to SavePlate", body)

    def send_verification_email(self, to_email: str, verification_code: str,
                                user_name: Optional[str] = None) -> bool:
        greeting = f"Hi {html.escape(user_name)}," if user_name else "Hi there,"
        body = (
            f"<p>{greeting}</p>"
            "<p>Use the code below to verify your email address:</p>"
            f'<p style="font-size: 32px; letter-spacing: 8px; font-weight: 700;">{verification_code}</p>'
            "<p>This code will expire in <strong>10 minutes</strong>.</p>"
        )
        return self._send(to_email, "Verify your email - SavePlate", body)

    def _send(self, to_email: str, subject: str, body: str) -> bool:
        if not self.api_key:
            logger.error("RESEND_API_KEY is not configured; cannot send email")
            return False

        resend.api_key = self.api_key
        params = {
            "from": self.sender,
            "to": [to_email],
            "subject": subject,
            "html": body,
        }
        try:
            response = resend.Emails.send(params)
        except Exception as e:
            logger.error(f"Resend error sending '{subject}' to {to_email}: {e}")
            return False

        if not response or "id" not in response:
            logger.error(f"Unexpected response from Resend for {to_email}: {response}")
            return False

        logger.info(f"Email '{subject}' sent to {to_email} (id: {response['id']})")
        return True


# Singleton instance
email_service = EmailService(
    api_key=settings.RESEND_API_KEY,
    from_email=settings.RESEND_FROM_EMAIL,
    from_name=settings.RESEND_FROM_NAME,
)
